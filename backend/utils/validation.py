import re
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError

USERNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")

_email_adapter = TypeAdapter(EmailStr)


def normalize_email(email: str) -> str:
    """Trim and lower-case an address so lookups and passcodes agree on one key."""
    return (email or "").strip().lower()


def require_email(email: str) -> str:
    """Return the normalized address or raise ValidationError.

    Syntax checks are delegated to email-validator through pydantic's EmailStr;
    no DNS lookups are made.
    """
    normalized = normalize_email(email)
    if not normalized:
        raise ValidationError("Email is required")
    try:
        validated = _email_adapter.validate_python(normalized)
    except PydanticValidationError:
        raise ValidationError("Invalid email format")
    # EmailStr also accepts "Name <addr>"; the bare address must round-trip
    if validated.lower() != normalized:
        raise ValidationError("Invalid email format")
    return normalized


def require_password(password: str, min_length: int) -> str:
    if not password:
        raise ValidationError("Password is required")
    if len(password) < min_length:
        raise ValidationError(f"Password must be at least {min_length} characters long")
    return password


def require_username(username: str) -> str:
    username = (username or "").strip()
    if len(username) < 3:
        raise ValidationError("Username must be at least 3 characters long")
    if not USERNAME_RE.match(username):
        raise ValidationError("Username can only contain letters, numbers and underscores")
    return username
