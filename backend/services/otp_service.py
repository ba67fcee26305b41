"""One-time passcode issuance and verification.

Per (email, purpose) a passcode moves forward only:

    no code --issue--> outstanding --verify ok--> used
                       outstanding --time-------> expired
                       outstanding --issue------> replaced by a new outstanding code

A wrong code leaves the outstanding record untouched.
"""
import asyncio
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable
import logging

from core.config import PasscodePolicy
from core.errors import InvalidOrExpiredCode, TransportError
from db.models.passcode import PasscodePurpose
from services.notification_service import NotificationDispatcher
from services.passcode_store import PasscodeStore
from utils.timing import utcnow
from utils.validation import normalize_email

logger = logging.getLogger(__name__)

DIGITS = "0123456789"


def generate_code(length: int = 6) -> str:
    """Numeric code with every digit drawn independently from the OS CSPRNG."""
    if length < 1:
        raise ValueError("Passcode length must be at least 1")
    return "".join(secrets.choice(DIGITS) for _ in range(length))


@dataclass(frozen=True)
class IssuedPasscode:
    email: str
    purpose: PasscodePurpose
    expires_at: datetime
    expires_in_minutes: int


class VerificationService:
    def __init__(
        self,
        store: PasscodeStore,
        dispatcher: NotificationDispatcher,
        policy: PasscodePolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.policy = policy
        self.clock = clock

    async def issue(self, email: str, purpose: PasscodePurpose) -> IssuedPasscode:
        email = normalize_email(email)
        code = generate_code(self.policy.code_length)
        expires_at = self.clock() + timedelta(minutes=self.policy.validity_minutes)

        # Prior codes for the pair go away in the same transaction as the insert
        await self.store.replace(email, purpose, code, expires_at)
        logger.info(f"Issued {purpose.value} passcode for {email}, expires at {expires_at.isoformat()}")

        try:
            await asyncio.to_thread(self.dispatcher.send, email, purpose, code)
        except TransportError as e:
            logger.error(f"Passcode delivery failed for {email} ({purpose.value}): {e.detail or e.message}")
            raise

        return IssuedPasscode(
            email=email,
            purpose=purpose,
            expires_at=expires_at,
            expires_in_minutes=self.policy.validity_minutes,
        )

    async def verify(self, email: str, code: str, purpose: PasscodePurpose) -> None:
        email = normalize_email(email)
        code = (code or "").strip()
        if not code:
            raise InvalidOrExpiredCode()

        record = await self.store.find_valid(email, code, purpose, self.clock())
        if record is None:
            logger.info(f"Rejected {purpose.value} passcode for {email}")
            raise InvalidOrExpiredCode()

        # Conditional update: only one concurrent verifier can flip the flag
        if not await self.store.mark_used(record.id):
            logger.warning(f"Passcode {record.id} for {email} was consumed concurrently")
            raise InvalidOrExpiredCode()
        logger.info(f"Verified {purpose.value} passcode for {email}")

    async def purge_expired(self) -> int:
        return await self.store.delete_expired(self.clock())
