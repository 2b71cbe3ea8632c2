"""Central logging setup for the project."""
from __future__ import annotations
import logging
import re
import sys

_KEY_PARAM = re.compile(r"([?&]key=)[^&\s\"']+")


def redact_secret(text: str, secret: str | None = None) -> str:
    """
    Mask API keys in free text.

    Args:
        text: Text that may contain a URL or the raw secret.
        secret: The secret value itself, masked wherever it appears.
    """
    if secret:
        text = text.replace(secret, "***")
    return _KEY_PARAM.sub(r"\1***", text)


class RedactApiKeyFilter(logging.Filter):
    """Rewrite records whose rendered message carries a `key=` query parameter."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secret(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(level: int | str = logging.INFO) -> None:
    """
    Configure root logger with sane defaults.

    Args:
        level: Logging level.
    """
    handler = logging.StreamHandler(sys.stdout)
    fmt = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
    handler.setFormatter(logging.Formatter(fmt))
    handler.addFilter(RedactApiKeyFilter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # httpx logs full request URLs, which include the API key
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
