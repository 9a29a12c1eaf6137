"""Centralized logging for the evidence pipeline."""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from webevidence.config import settings

APP_LOG_LEVEL = getattr(logging, settings.app_log_level.upper(), logging.INFO)
NOISY_LOG_LEVEL = getattr(logging, settings.noisy_log_level.upper(), logging.WARNING)

_handlers: list[logging.Handler] = [logging.StreamHandler()]
if settings.log_dir:
    LOG_DIR = Path(settings.log_dir)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    _handlers.append(logging.FileHandler(LOG_DIR / "webevidence.log"))

logging.basicConfig(
    level=APP_LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=_handlers,
)

# Network client chatter stays quiet unless explicitly overridden.
for logger_name in (
    "httpx",
    "httpcore",
    "hpack",
    "asyncio",
):
    logging.getLogger(logger_name).setLevel(NOISY_LOG_LEVEL)

logger = logging.getLogger("webevidence")


def log_provider_call(
    provider: str,
    operation: str,
    status: str = "success",
    duration_ms: int = 0,
    results: int = 0,
    error: Optional[str] = None,
) -> None:
    """Log one search provider call (search or extract)."""
    call_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "provider": provider,
        "operation": operation,
        "status": status,
        "duration_ms": duration_ms,
        "results": results,
        "error": error,
    }
    level = logging.INFO if status == "success" else logging.WARNING
    logger.log(level, f"PROVIDER_CALL: {json.dumps(call_data)}")


def log_event(
    event_type: str,
    message: str,
    level: int = logging.INFO,
    **kwargs,
) -> None:
    """Log a generic pipeline event."""
    event_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "message": message,
        **kwargs,
    }
    logger.log(level, f"EVENT: {json.dumps(event_data, default=str)}")
