"""Password reset on top of passcode verification.

Requesting a reset answers the same way whether or not the account exists.
Completing one consumes the code before the credential is touched; if the
credential update then fails the code stays consumed and the user must ask
for a new one.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import PasscodePolicy
from core.errors import AccountNotFound, ValidationError
from core.security import get_password_hash
from db.models.passcode import PasscodePurpose
from services.otp_service import VerificationService
from services import user_service
from utils.timing import timeit
from utils.validation import require_email, require_password

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = "If an account exists, a password reset code has been sent"
RESET_COMPLETED_MESSAGE = "Password reset successful"


class PasswordResetWorkflow:
    def __init__(self, db: AsyncSession, verification: VerificationService, policy: PasscodePolicy):
        self.db = db
        self.verification = verification
        self.policy = policy

    @timeit("request_password_reset")
    async def request_reset(self, email: str) -> dict:
        email = require_email(email)
        response = {"success": True, "message": RESET_REQUESTED_MESSAGE}

        user = await user_service.get_user_by_email(email, self.db)
        if user is None:
            logger.info(f"Password reset requested for unknown account {email}")
            return response

        await self.verification.issue(email, PasscodePurpose.PASSWORD_RESET)
        return response

    @timeit("complete_password_reset")
    async def complete_reset(self, email: str, code: str, new_password: str) -> dict:
        if not email or not code or not new_password:
            raise ValidationError("Email, OTP and new password are required")
        email = require_email(email)
        require_password(new_password, self.policy.password_min_length)

        user = await user_service.get_user_by_email(email, self.db)
        if user is None:
            raise AccountNotFound()

        await self.verification.verify(email, code, PasscodePurpose.PASSWORD_RESET)

        await user_service.update_password_hash(user.id, get_password_hash(new_password), self.db)
        logger.info(f"Password reset completed for {email}")
        return {"success": True, "message": RESET_COMPLETED_MESSAGE}
