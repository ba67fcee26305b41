import time
import asyncio
import functools
import logging
from datetime import datetime, timezone

logger = logging.getLogger("passcode_auth.timing")


def utcnow() -> datetime:
    """Naive UTC timestamp; all persisted times use this convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _report(name: str, start: float) -> None:
    elapsed_ms = (time.perf_counter() - start) * 1000.0
    logger.info(f"[timing] {name} took {elapsed_ms:.2f} ms")


def timeit(label: str = ""):
    """Log how long the wrapped callable (sync or async) took.

    Usage:
        @timeit("forgot_password")
        async def handler(...):
            ...
    """

    def _decorate(func):
        name = label or func.__qualname__

        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def _aw(*args, **kwargs):
                start = time.perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    _report(name, start)

            return _aw

        @functools.wraps(func)
        def _w(*args, **kwargs):
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                _report(name, start)

        return _w

    return _decorate
