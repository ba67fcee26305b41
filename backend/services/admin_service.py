import hmac
import logging
import platform
import time
from typing import Optional

from sqlalchemy import delete, func, or_, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings, PasscodePolicy
from core.errors import ConflictError, NotFoundError, StorageError, UnauthorizedError, ValidationError
from core.security import create_admin_token, get_password_hash
from db.models.passcode import Passcode
from db.models.user import DEFAULT_ROLE, ROLES, User as UserModel
from schemas.user_schema import AdminIdentity, AdminUserCreate, AdminUserUpdate
from services.passcode_store import PasscodeStore
from utils.db import safe_commit
from utils.timing import utcnow
from utils.validation import normalize_email, require_email, require_password, require_username

logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()

DUPLICATE_USER = "Username or email already exists"


def get_admin_identity() -> AdminIdentity:
    return AdminIdentity(id=settings.ADMIN_ID, email=normalize_email(settings.ADMIN_EMAIL), username=settings.ADMIN_USERNAME)


def check_admin_credentials(email: str, password: str) -> bool:
    """Constant-time comparison against the configured admin identity."""
    email_ok = hmac.compare_digest(normalize_email(email).encode(), normalize_email(settings.ADMIN_EMAIL).encode())
    password_ok = hmac.compare_digest((password or "").encode(), settings.ADMIN_PASSWORD.encode())
    return email_ok and password_ok


def login_admin(email: str, password: str) -> dict:
    if not email or not password:
        raise ValidationError("Email and password are required")
    if not check_admin_credentials(email, password):
        logger.warning(f"Rejected admin login for {normalize_email(email)}")
        raise UnauthorizedError("Invalid admin credentials")

    admin = get_admin_identity()
    return {
        "success": True,
        "message": "Admin login successful",
        "data": {
            "admin": admin.model_dump(),
            "token": create_admin_token(admin.id, admin.email),
            "token_type": "bearer",
        },
    }


async def get_passcode_history(email: str, store: PasscodeStore, limit: int = 10) -> dict:
    """Audit view of recent passcodes for an address; codes themselves are never returned."""
    email = normalize_email(email)
    rows = await store.history(email, limit=limit)
    return {
        "success": True,
        "data": {
            "email": email,
            "history": [
                {
                    "purpose": row.purpose.value,
                    "created_at": row.created_at.isoformat(),
                    "expires_at": row.expires_at.isoformat(),
                    "used": bool(row.used),
                }
                for row in rows
            ],
        },
    }


async def _execute(db: AsyncSession, statement):
    try:
        return await db.execute(statement)
    except SQLAlchemyError as e:
        await db.rollback()
        raise StorageError(detail=str(e)) from e


def _parse_user_id(user_id) -> int:
    try:
        value = int(user_id)
    except (TypeError, ValueError):
        raise ValidationError("Invalid user ID")
    if value < 1:
        raise ValidationError("Invalid user ID")
    return value


def _require_role(role: Optional[str]) -> str:
    role = (role or DEFAULT_ROLE).strip().lower()
    if role not in ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")
    return role


async def _load_user(user_id, db: AsyncSession) -> UserModel:
    result = await _execute(db, select(UserModel).where(UserModel.id == _parse_user_id(user_id)))
    user = result.scalars().first()
    if not user:
        raise NotFoundError("User not found")
    return user


async def _ensure_unique(db: AsyncSession, username: Optional[str], email: Optional[str], exclude_id: Optional[int] = None) -> None:
    clauses = []
    if username:
        clauses.append(UserModel.username == username)
    if email:
        clauses.append(UserModel.email == email)
    if not clauses:
        return
    query = select(UserModel.id).where(or_(*clauses))
    if exclude_id is not None:
        query = query.where(UserModel.id != exclude_id)
    result = await _execute(db, query.limit(1))
    if result.scalars().first() is not None:
        raise ConflictError(DUPLICATE_USER)


async def list_users(db: AsyncSession, page: int = 1, size: int = 20, search: Optional[str] = None) -> dict:
    """Paginated account listing, optionally filtered by a username/email substring."""
    page = max(1, int(page or 1))
    size = max(1, min(int(size or 20), 100))
    filters = None
    if search and search.strip():
        like = f"%{search.strip()}%"
        filters = or_(UserModel.username.ilike(like), UserModel.email.ilike(like))

    count_query = select(func.count(UserModel.id))
    query = select(UserModel).order_by(UserModel.created_at.desc(), UserModel.id.desc())
    if filters is not None:
        count_query = count_query.where(filters)
        query = query.where(filters)

    total = (await _execute(db, count_query)).scalar() or 0
    items = (await _execute(db, query.offset((page - 1) * size).limit(size))).scalars().all()
    total_pages = max(1, (total + size - 1) // size)
    return {
        "success": True,
        "data": {
            "users": [user.to_public_dict() for user in items],
            "page": page,
            "size": size,
            "total": total,
            "total_pages": total_pages,
        },
    }


async def get_user(user_id, db: AsyncSession) -> dict:
    user = await _load_user(user_id, db)
    return {"success": True, "data": {"user": user.to_public_dict()}}


async def create_user_as_admin(payload: AdminUserCreate, db: AsyncSession, policy: PasscodePolicy) -> dict:
    """Accounts created here skip the signup passcode; ``email_verified`` is taken from the payload."""
    username = require_username(payload.username)
    email = require_email(payload.email)
    password = require_password(payload.password, policy.password_min_length)
    role = _require_role(payload.role)

    await _ensure_unique(db, username, email)
    user = UserModel(
        username=username,
        email=email,
        hashed_password=get_password_hash(password),
        role=role,
        email_verified=bool(payload.email_verified),
    )
    db.add(user)
    await safe_commit(db, conflict_message=DUPLICATE_USER)
    await db.refresh(user)
    logger.info(f"Admin created user {user.id} ({user.username}, role={role})")
    return {"success": True, "message": "User created successfully", "data": {"user": user.to_public_dict()}}


async def update_user_as_admin(user_id, payload: AdminUserUpdate, db: AsyncSession) -> dict:
    if payload.username is None and payload.email is None and payload.role is None and payload.email_verified is None:
        raise ValidationError("At least one field (username or email) is required for update")

    user = await _load_user(user_id, db)
    username = require_username(payload.username) if payload.username is not None else None
    email = require_email(payload.email) if payload.email is not None else None
    await _ensure_unique(db, username, email, exclude_id=user.id)

    if username is not None:
        user.username = username
    if email is not None and email != user.email:
        user.email = email
        # A new address has not been proven yet
        user.email_verified = False
    if payload.role is not None:
        user.role = _require_role(payload.role)
    if payload.email_verified is not None:
        user.email_verified = payload.email_verified

    await safe_commit(db, conflict_message=DUPLICATE_USER)
    await db.refresh(user)
    logger.info(f"Admin updated user {user.id}")
    return {"success": True, "message": "User updated successfully", "data": {"user": user.to_public_dict()}}


async def delete_user_as_admin(user_id, db: AsyncSession) -> dict:
    """Remove the account and every passcode issued to its address."""
    user = await _load_user(user_id, db)
    user_id, email = user.id, user.email
    await _execute(db, delete(Passcode).where(Passcode.email == email))
    await _execute(db, delete(UserModel).where(UserModel.id == user_id))
    await safe_commit(db)
    logger.info(f"Admin deleted user {user_id}")
    return {"success": True, "message": "User deleted successfully", "data": {"id": user_id}}


async def get_system_status(db: AsyncSession) -> dict:
    database = "connected"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"System status database check failed: {e}")
        await db.rollback()
        database = "disconnected"
    return {
        "success": True,
        "data": {
            "server": "running",
            "database": database,
            "timestamp": utcnow().isoformat(),
            "uptime_seconds": round(time.monotonic() - STARTED_AT, 3),
            "version": settings.VERSION,
            "python_version": platform.python_version(),
        },
    }
