from typing import Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from core.errors import ConflictError, StorageError


async def safe_commit(session, conflict_message: Optional[str] = None, server_error_message: str = "Internal server error"):
    """Commit, rolling back on failure.

    Constraint violations become ConflictError when ``conflict_message`` is given;
    every other database failure becomes StorageError.
    """
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        if conflict_message:
            raise ConflictError(conflict_message, detail=str(e)) from e
        raise StorageError(server_error_message, detail=str(e)) from e
    except SQLAlchemyError as e:
        await session.rollback()
        raise StorageError(server_error_message, detail=str(e)) from e
