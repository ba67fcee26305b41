from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi.security import HTTPBearer
from core.config import settings
import logging

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Bearer scheme shared by user and admin routes; missing headers are handled by the dependencies
bearer_scheme = HTTPBearer(auto_error=False)

TOKEN_TYPE_USER = "user"
TOKEN_TYPE_ADMIN = "admin"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Malformed or unknown hash format
        return False


def get_password_hash(password: str) -> str:
    """Generate a salted bcrypt hash"""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed JWT carrying ``data`` plus an ``exp`` claim"""
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_user_token(user_id: int) -> str:
    return create_access_token({"sub": str(user_id), "type": TOKEN_TYPE_USER})


def create_admin_token(admin_id: str, email: str) -> str:
    return create_access_token(
        {"sub": admin_id, "email": email, "role": "admin", "type": TOKEN_TYPE_ADMIN},
        expires_delta=timedelta(minutes=settings.ADMIN_TOKEN_EXPIRE_MINUTES),
    )


def verify_token(token: str, expected_type: Optional[str] = None) -> Optional[dict]:
    """Verify and decode a JWT; returns None when invalid, expired or of the wrong type"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT decode failed: {e}")
        return None
    if not payload.get("sub"):
        return None
    if expected_type is not None and payload.get("type") != expected_type:
        return None
    return payload
