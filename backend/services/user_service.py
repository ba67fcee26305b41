from typing import Optional
import asyncio
import logging

from sqlalchemy import select, update, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import (
    AccountNotFound,
    AlreadyVerified,
    ConflictError,
    ForbiddenError,
    StorageError,
    TransportError,
    UnauthorizedError,
    ValidationError,
)
from core.security import get_password_hash, verify_password, create_user_token
from db.models.passcode import PasscodePurpose
from db.models.user import User as UserModel
from schemas.user_schema import UserCreate
from services.notification_service import NotificationDispatcher
from services.otp_service import VerificationService
from utils.db import safe_commit
from utils.timing import timeit
from utils.validation import normalize_email, require_email, require_password, require_username

logger = logging.getLogger(__name__)


async def _scalar(db: AsyncSession, statement):
    try:
        result = await db.execute(statement)
    except SQLAlchemyError as e:
        await db.rollback()
        raise StorageError(detail=str(e)) from e
    return result.scalars().first()


async def get_user_by_email(email: str, db: AsyncSession) -> Optional[UserModel]:
    return await _scalar(db, select(UserModel).where(UserModel.email == normalize_email(email)))


async def get_user_by_id(user_id: int, db: AsyncSession) -> Optional[UserModel]:
    return await _scalar(db, select(UserModel).where(UserModel.id == user_id))


async def get_user_by_login(login: str, db: AsyncSession) -> Optional[UserModel]:
    """Accept either the email address or the username."""
    login = (login or "").strip()
    return await _scalar(
        db,
        select(UserModel).where(or_(UserModel.email == normalize_email(login), UserModel.username == login)),
    )


async def update_password_hash(user_id: int, hashed_password: str, db: AsyncSession) -> None:
    """Swap the stored credential with one UPDATE statement."""
    try:
        await db.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(hashed_password=hashed_password)
        )
    except SQLAlchemyError as e:
        await db.rollback()
        raise StorageError(detail=str(e)) from e
    await safe_commit(db)


async def mark_email_verified(email: str, db: AsyncSession) -> None:
    try:
        await db.execute(
            update(UserModel)
            .where(UserModel.email == normalize_email(email))
            .values(email_verified=True)
        )
    except SQLAlchemyError as e:
        await db.rollback()
        raise StorageError(detail=str(e)) from e
    await safe_commit(db)


@timeit("create_user")
async def create_user(user: UserCreate, db: AsyncSession, verification: VerificationService) -> dict:
    """Register an unverified account and send it an email verification code."""
    username = require_username(user.username)
    email = require_email(user.email)
    require_password(user.password, verification.policy.password_min_length)

    if await _scalar(db, select(UserModel).where(UserModel.email == email)) is not None:
        raise ConflictError("User with this email or username already exists")
    if await _scalar(db, select(UserModel).where(UserModel.username == username)) is not None:
        raise ConflictError("User with this email or username already exists")

    new_user = UserModel(
        username=username,
        email=email,
        hashed_password=get_password_hash(user.password),
        role="user",
        email_verified=False,
    )
    db.add(new_user)
    await safe_commit(db, conflict_message="User with this email or username already exists")

    # Registration stands even if the first code cannot be delivered; the user can request another
    try:
        await verification.issue(email, PasscodePurpose.EMAIL_VERIFICATION)
    except (TransportError, StorageError) as e:
        logger.error(f"Failed to send verification code to {email}: {e.detail or e.message}")

    return {
        "success": True,
        "message": "User registered successfully. Please check your email for verification.",
        "data": {"user": new_user.to_public_dict()},
    }


@timeit("login_user")
async def login_user(login: str, password: str, db: AsyncSession) -> dict:
    if not login or not password:
        raise ValidationError("Email and password are required")

    user = await get_user_by_login(login, db)
    # Same answer for unknown account and wrong password
    if user is None or not verify_password(password, user.hashed_password):
        raise UnauthorizedError("Invalid email or password")
    if not user.email_verified:
        raise ForbiddenError("Please verify your email before logging in. Check your email for verification code.")

    return {
        "success": True,
        "message": "Login successful",
        "data": {
            "token": create_user_token(user.id),
            "token_type": "bearer",
            "user": user.to_public_dict(),
        },
    }


async def send_verification_code(email: str, db: AsyncSession, verification: VerificationService) -> dict:
    email = require_email(email)
    user = await get_user_by_email(email, db)
    if user is None:
        raise AccountNotFound()
    if user.email_verified:
        raise AlreadyVerified()

    issued = await verification.issue(email, PasscodePurpose.EMAIL_VERIFICATION)
    return {
        "success": True,
        "message": "Verification OTP sent to email",
        "data": {"email": issued.email, "expiresIn": issued.expires_in_minutes},
    }


async def verify_email(
    email: str,
    code: str,
    db: AsyncSession,
    verification: VerificationService,
    dispatcher: NotificationDispatcher,
) -> dict:
    email = require_email(email)
    if not (code or "").strip():
        raise ValidationError("Email and OTP are required")

    user = await get_user_by_email(email, db)
    if user is None:
        raise AccountNotFound()
    if user.email_verified:
        raise AlreadyVerified()

    await verification.verify(email, code, PasscodePurpose.EMAIL_VERIFICATION)
    await mark_email_verified(email, db)

    try:
        await asyncio.to_thread(dispatcher.send_welcome, email, user.username)
    except TransportError as e:
        logger.warning(f"Welcome email to {email} failed: {e.detail or e.message}")

    return {
        "success": True,
        "message": "Email verified successfully",
        "data": {"email": email, "verified": True},
    }


async def get_verification_status(email: str, db: AsyncSession) -> dict:
    email = require_email(email)
    user = await get_user_by_email(email, db)
    if user is None:
        raise AccountNotFound()
    return {
        "success": True,
        "data": {"email": email, "verified": bool(user.email_verified), "username": user.username},
    }


async def get_user_profile(user_id: int, db: AsyncSession) -> dict:
    user = await get_user_by_id(user_id, db)
    if user is None:
        raise AccountNotFound()
    return {"success": True, "data": {"user": user.to_public_dict()}}
