from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings, passcode_policy, PasscodePolicy
from core.errors import AccountNotFound, UnauthorizedError
from core.security import bearer_scheme, verify_token, TOKEN_TYPE_ADMIN, TOKEN_TYPE_USER
from db.session import get_db_session
from schemas.user_schema import AdminIdentity, CurrentUser
from services.admin_service import get_admin_identity
from services.notification_service import EmailDispatcher, NotificationDispatcher
from services.otp_service import VerificationService
from services.passcode_store import PasscodeStore
from services.password_service import PasswordResetWorkflow
from services.user_service import get_user_by_id
import logging

logger = logging.getLogger(__name__)


def get_passcode_policy() -> PasscodePolicy:
    return passcode_policy


def get_dispatcher(policy: PasscodePolicy = Depends(get_passcode_policy)) -> NotificationDispatcher:
    return EmailDispatcher(validity_minutes=policy.validity_minutes, app_name=settings.SMTP_FROM_NAME or settings.APP_NAME)


def get_passcode_store(db: AsyncSession = Depends(get_db_session)) -> PasscodeStore:
    return PasscodeStore(db)


def get_verification_service(
    store: PasscodeStore = Depends(get_passcode_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    policy: PasscodePolicy = Depends(get_passcode_policy),
) -> VerificationService:
    return VerificationService(store, dispatcher, policy)


def get_password_reset_workflow(
    db: AsyncSession = Depends(get_db_session),
    verification: VerificationService = Depends(get_verification_service),
    policy: PasscodePolicy = Depends(get_passcode_policy),
) -> PasswordResetWorkflow:
    return PasswordResetWorkflow(db, verification, policy)


def _bearer_payload(credentials: Optional[HTTPAuthorizationCredentials], token_type: str) -> dict:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Access token required")
    payload = verify_token(credentials.credentials, expected_type=token_type)
    if not payload:
        raise UnauthorizedError("Invalid or expired token")
    return payload


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    payload = _bearer_payload(credentials, TOKEN_TYPE_USER)
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise UnauthorizedError("Invalid or expired token")
    user = await get_user_by_id(user_id, db)
    if user is None:
        raise AccountNotFound()
    return CurrentUser.model_validate(user)


async def admin_required(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AdminIdentity:
    # Admin identity comes from configuration, so the token claims are checked against it
    payload = _bearer_payload(credentials, TOKEN_TYPE_ADMIN)
    admin = get_admin_identity()
    if payload.get("sub") != admin.id or payload.get("role") != "admin":
        raise UnauthorizedError("Invalid or expired admin token")
    return admin
