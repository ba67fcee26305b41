import logging
import logging.handlers
import contextvars
from pathlib import Path
from typing import Optional

from core.config import settings
from core.security import verify_token
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


def map_log_level(level_name: str) -> int:
    level = logging.getLevelName((level_name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


user_id_var = contextvars.ContextVar("user_id", default="-")
api_var = contextvars.ContextVar("api", default="-")


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # Inject per-request context variables
        record.user_id = user_id_var.get()
        record.api = api_var.get()
        return True


def _rotating_file_handler(filename: str, level: int, formatter: logging.Formatter, log_dir: Path) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(log_dir / filename),
        when="midnight",
        interval=1,
        backupCount=max(settings.LOG_TTL_DAYS, 0),
        encoding="utf-8",
        utc=True,
    )
    handler.suffix = "%Y-%m-%d"
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    return handler


def _build_handlers(level: int, log_dir: Path) -> dict:
    formatter = logging.Formatter(
        fmt="%(levelname)s - %(asctime)s - %(user_id)s - %(api)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(ContextFilter())

    return {
        "app": _rotating_file_handler("app.log", level, formatter, log_dir),
        "access": _rotating_file_handler("access.log", level, formatter, log_dir),
        "error": _rotating_file_handler("error.log", logging.WARNING, formatter, log_dir),
        "console": console_handler,
    }


def _reset_handlers(target_logger: logging.Logger, handlers: list, level: int) -> None:
    for h in list(target_logger.handlers):
        target_logger.removeHandler(h)
    for h in handlers:
        target_logger.addHandler(h)
    target_logger.setLevel(level)


def configure_logging(app_logger_name: Optional[str] = None) -> logging.Logger:
    """Daily-rotated app/access/error files in LOG_DIR (LOG_TTL_DAYS kept) plus console.

    Applied to the root logger, the app logger and the uvicorn/fastapi loggers.
    """
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = map_log_level(settings.LOG_LEVEL)
    handlers = _build_handlers(level, log_dir)
    app_handlers = [handlers["app"], handlers["error"], handlers["console"]]

    _reset_handlers(logging.getLogger(), app_handlers, level)

    app_logger = logging.getLogger(app_logger_name or "passcode_auth")
    app_logger.propagate = False
    _reset_handlers(app_logger, app_handlers, level)

    for name in ("uvicorn", "uvicorn.error", "fastapi"):
        lgr = logging.getLogger(name)
        lgr.propagate = False
        _reset_handlers(lgr, app_handlers, level)
    access_logger = logging.getLogger("uvicorn.access")
    access_logger.propagate = False
    _reset_handlers(access_logger, [handlers["access"], handlers["console"]], level)

    return app_logger


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        user_id = "-"
        auth_header = request.headers.get("authorization")
        if auth_header and auth_header.startswith("Bearer "):
            payload = verify_token(auth_header.split(" ", 1)[1])
            if payload:
                user_id = f"{payload.get('type', 'user')}:{payload.get('sub')}"

        user_token = user_id_var.set(user_id)
        api_token = api_var.set(f"{request.method} {request.url.path}")
        try:
            return await call_next(request)
        finally:
            user_id_var.reset(user_token)
            api_var.reset(api_token)
