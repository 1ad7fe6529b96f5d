import logging
from typing import Optional


def setup_orchestrator_logger(name: str = "orchestrator", level: str = "INFO") -> logging.Logger:
    """Setup standardized logger for orchestrator operations with UTF-8 support."""
    logger = logging.getLogger(name)

    if not logger.handlers:  # Avoid duplicate handlers
        handler = logging.StreamHandler()
        # Replies carry emoji; make sure the console can print them
        if hasattr(handler.stream, 'reconfigure'):
            handler.stream.reconfigure(encoding='utf-8')

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger


def log_execution(logger: logging.Logger,
                  session_id: str,
                  text: str,
                  action: str,
                  success: bool,
                  duration_ms: float,
                  keyword: Optional[str] = None,
                  provider: Optional[str] = None,
                  reply: Optional[str] = None,
                  error: Optional[str] = None) -> None:
    """Log one handled utterance as a single structured line."""

    log_data = {
        "session_id": session_id[:16],
        "text": _truncate(text, 120),
        "action": action,
        "success": success,
        "duration_ms": round(duration_ms, 1),
    }

    if keyword:
        log_data["keyword"] = keyword

    # Provider label includes "(fallback from ...)" when the chain moved on
    if provider:
        log_data["provider"] = provider

    if reply:
        log_data["reply_length"] = len(reply)
        log_data["reply_preview"] = _truncate(reply.split("\n")[0], 100)

    if error:
        log_data["error"] = error

    status_icon = "✅" if success else "❌"
    action_desc = action.replace("_", " ").title()

    if error:
        logger.error(f"{status_icon} {action_desc}: {log_data}")
    else:
        logger.info(f"{status_icon} {action_desc}: {log_data}")


def _truncate(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[:limit - 3] + "..."
