"""Request payload parsing shared by services and blueprints.

Every helper raises ``ValidationError`` naming the offending field, so a
malformed request never reaches a state change.
"""
import re
from datetime import date, datetime, timezone

from email_validator import EmailNotValidError, validate_email

from buildroom.core.exceptions import ValidationError

EXTERNAL_REF_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._\-]{0,99}$")


def require_fields(data: dict, *fields: str) -> None:
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(
            f"Missing required field(s): {', '.join(missing)}",
            details={f: "required" for f in missing},
        )


def parse_enum(value, field: str, allowed) -> str:
    if value not in allowed:
        raise ValidationError(
            f"{field} must be one of: {', '.join(allowed)}",
            details={field: f"invalid value {value!r}"},
        )
    return value


def parse_int(value, field: str, *, minimum: int | None = None,
              maximum: int | None = None) -> int:
    """Strict integer parsing; booleans and floats with a fraction are rejected."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: "not an integer"})
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{field} must be an integer", details={field: "not an integer"})
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: "not an integer"})
    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", details={field: "out of range"})
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be <= {maximum}", details={field: "out of range"})
    return result


def parse_optional_int(value, field: str, **bounds) -> int | None:
    if value is None or value == "":
        return None
    return parse_int(value, field, **bounds)


def parse_int_list(value, field: str, *, minimum: int | None = None) -> list[int]:
    if not isinstance(value, list) or not value:
        raise ValidationError(f"{field} must be a non-empty list",
                              details={field: "expected non-empty list"})
    return [parse_int(v, f"{field}[{i}]", minimum=minimum) for i, v in enumerate(value)]


def parse_datetime(value, field: str) -> datetime:
    """Parse an ISO-8601 date or datetime. Naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 date-time",
                                  details={field: "invalid date-time"})
    else:
        raise ValidationError(f"{field} must be an ISO-8601 date-time",
                              details={field: "invalid date-time"})
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_email(value, field: str = "customer_email") -> str:
    try:
        return validate_email(str(value or ""), check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid {field}: {exc}", details={field: "invalid email"})


def parse_external_ref(value) -> str:
    ref = str(value or "").strip()
    if not EXTERNAL_REF_RE.match(ref):
        raise ValidationError(
            "external_ref must be 1-100 characters of letters, digits, '.', '_' or '-'",
            details={"external_ref": "malformed"},
        )
    return ref


def parse_bool(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false", "1", "0"):
        return value.lower() in ("true", "1")
    if value in (0, 1):
        return bool(value)
    raise ValidationError(f"{field} must be a boolean", details={field: "not a boolean"})


def optional_text(value, field: str, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be ≤ {max_length} characters",
                              details={field: "too long"})
    return text or None
