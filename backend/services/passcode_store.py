"""Durable passcode records.

Every query that can hand a record back to a caller filters on ``expires_at``
and ``used`` itself, so rows that have expired but not yet been swept are
never returned as valid.
"""
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy import select, update, delete, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import StorageError
from db.models.passcode import Passcode, PasscodePurpose
from utils.db import safe_commit

logger = logging.getLogger(__name__)


class PasscodeStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _execute(self, statement):
        try:
            return await self.db.execute(statement)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageError(detail=str(e)) from e

    async def insert(self, email: str, code: str, purpose: PasscodePurpose, expires_at: datetime) -> Passcode:
        row = Passcode(email=email, code=code, purpose=purpose, expires_at=expires_at, used=False)
        self.db.add(row)
        await safe_commit(self.db)
        return row

    async def replace(self, email: str, purpose: PasscodePurpose, code: str, expires_at: datetime) -> Passcode:
        """Delete every record for (email, purpose) and insert a new one in one transaction."""
        await self._execute(
            delete(Passcode).where(Passcode.email == email, Passcode.purpose == purpose)
        )
        row = Passcode(email=email, code=code, purpose=purpose, expires_at=expires_at, used=False)
        self.db.add(row)
        await safe_commit(self.db)
        return row

    async def find_valid(self, email: str, code: str, purpose: PasscodePurpose, now: datetime) -> Optional[Passcode]:
        result = await self._execute(
            select(Passcode)
            .where(
                Passcode.email == email,
                Passcode.code == code,
                Passcode.purpose == purpose,
                Passcode.expires_at > now,
                Passcode.used.is_(False),
            )
            .order_by(desc(Passcode.created_at), desc(Passcode.id))
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def mark_used(self, passcode_id: int) -> bool:
        """Flip ``used`` only if it is still false; True means this caller consumed it."""
        result = await self._execute(
            update(Passcode)
            .where(Passcode.id == passcode_id, Passcode.used.is_(False))
            .values(used=True)
        )
        await safe_commit(self.db)
        return (result.rowcount or 0) == 1

    async def delete_all_for(self, email: str, purpose: PasscodePurpose) -> int:
        result = await self._execute(
            delete(Passcode).where(Passcode.email == email, Passcode.purpose == purpose)
        )
        await safe_commit(self.db)
        return result.rowcount or 0

    async def delete_expired(self, now: datetime) -> int:
        result = await self._execute(delete(Passcode).where(Passcode.expires_at <= now))
        await safe_commit(self.db)
        removed = result.rowcount or 0
        if removed:
            logger.info(f"Purged {removed} expired passcodes")
        return removed

    async def history(self, email: str, limit: int = 10) -> List[Passcode]:
        result = await self._execute(
            select(Passcode)
            .where(Passcode.email == email)
            .order_by(desc(Passcode.created_at), desc(Passcode.id))
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
