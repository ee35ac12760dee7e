"""
Workflow exception hierarchy.

Services raise only these types. The app registers one handler per type
(see ``buildroom.utils.errors``) so every endpoint answers with the same
HTTP status and machine-readable code for the same failure.

Usage:
    from buildroom.core.exceptions import NotFoundError, PreconditionFailedError

    raise NotFoundError(resource="Order", resource_id=42)
    raise PreconditionFailedError(
        "Order has open systems", details={"blocking_system_ids": [7, 9]},
    )
"""


class WorkflowError(Exception):
    """Base class. ``details`` is echoed to the caller as structured data."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(WorkflowError):
    """Raised when a referenced order, system, step or user does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Order", "ChecklistStep").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg, details={"resource": resource, "resource_id": resource_id})


class ValidationError(WorkflowError):
    """Raised for malformed input: bad enum value, out-of-range priority,
    malformed external reference, missing required field.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown, keyed by field name.
    """


class PreconditionFailedError(WorkflowError):
    """Raised when a transition is blocked by the current state, e.g. an
    order with open systems cannot be completed."""


class NoChangeError(PreconditionFailedError):
    """Raised when the requested state equals the current state.

    Duplicate client retries surface here explicitly instead of being
    accepted silently.
    """

    def __init__(self, resource: str, resource_id, field: str, value) -> None:
        super().__init__(
            f"{resource} id={resource_id} already has {field}={value!r}",
            details={"resource": resource, "resource_id": resource_id,
                     "field": field, "value": value},
        )


class ForbiddenError(WorkflowError):
    """Raised when the acting user's role does not allow the operation."""

    def __init__(self, user_id: int | None, action: str, reason: str | None = None) -> None:
        self.user_id = user_id
        self.action = action
        msg = f"User {user_id} is not allowed to '{action}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, details={"action": action})


class AuthenticationError(WorkflowError):
    """Raised when no valid, active identity accompanies a request."""


class ConflictError(WorkflowError):
    """Raised when an operation would violate a unique constraint.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(
            f"{resource} with {field}={value!r} already exists",
            details={"resource": resource, "field": field, "value": value},
        )


class DuplicateExternalReferenceError(ConflictError):
    """Raised when the commerce platform re-delivers an order whose external
    reference already exists. Order creation is idempotent on that key."""

    def __init__(self, external_ref: str, existing_order_id: int | None = None) -> None:
        super().__init__("Order", "external_ref", external_ref)
        if existing_order_id is not None:
            self.details["existing_order_id"] = existing_order_id
