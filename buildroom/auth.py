"""
Buildroom Workflow
Actor resolution and role checks.

The identity provider hands every request a user id (JWT ``sub``). The
service layer never reads request state: blueprints resolve the acting
``User`` here and pass it into each mutating operation explicitly.

Roles:
    staff    — works checklists, moves orders across the board
    manager  — additionally assigns orders, sets priority, QA-checks steps
    admin    — everything, including deleting orders

Usage:
    from buildroom.auth import current_actor, ensure_role, MANAGER_ROLES

    actor = current_actor()
    ensure_role(actor, MANAGER_ROLES, "assign")
"""

import logging

from flask import g

from buildroom.core.exceptions import AuthenticationError, ForbiddenError
from buildroom.models import db
from buildroom.models.auth import User

logger = logging.getLogger(__name__)

# ── Roles ────────────────────────────────────────────────────────────────────

MANAGER_ROLES = frozenset({"manager", "admin"})
ADMIN_ROLES = frozenset({"admin"})


def current_actor() -> User:
    """Return the active ``User`` behind the request's bearer token.

    Raises:
        AuthenticationError: no token, an invalid or expired token, or a
            token whose user is unknown or deactivated.
    """
    user_id = getattr(g, "jwt_user_id", None)
    if user_id is None:
        raise AuthenticationError(getattr(g, "jwt_error", None) or "Authentication required")
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        logger.warning("Token for unknown or inactive user_id=%s", user_id)
        raise AuthenticationError("Unknown or inactive user")
    return user


def has_role(actor: User, roles) -> bool:
    return actor is not None and actor.role in roles


def ensure_role(actor: User, roles, action: str) -> None:
    """Raise ``ForbiddenError`` unless ``actor`` holds one of ``roles``."""
    if not has_role(actor, roles):
        raise ForbiddenError(
            getattr(actor, "id", None), action,
            f"requires role {' or '.join(sorted(roles))}",
        )
