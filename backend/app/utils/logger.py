"""Logging setup that is safe for Unicode/emoji message content."""
import logging
import sys
from typing import Any

from app.core.config import settings

# Configure stdout/stderr for UTF-8 on Windows
if sys.platform == 'win32':
    if hasattr(sys.stdout, 'reconfigure'):
        sys.stdout.reconfigure(encoding='utf-8', errors='replace')
    if hasattr(sys.stderr, 'reconfigure'):
        sys.stderr.reconfigure(encoding='utf-8', errors='replace')

_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
_configured = False


def _configure_root():
    global _configured
    if _configured:
        return
    root = logging.getLogger("app")
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(settings.LOG_LEVEL.upper())
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger under the ``app`` namespace.

    Names that are not already dotted under ``app`` are nested beneath it so
    one handler and one level govern every module.
    """
    _configure_root()
    if name != "app" and not name.startswith("app."):
        name = f"app.{name}"
    return logging.getLogger(name)


def safe_repr(obj: Any, limit: int = 80) -> str:
    """
    Safe, truncated representation for log lines.

    Message content may contain emojis or lone surrogates that some consoles
    cannot encode; those are replaced instead of raising.
    """
    try:
        text = repr(obj)
    except (UnicodeEncodeError, UnicodeDecodeError):
        text = str(obj).encode('ascii', errors='replace').decode('ascii')
    text = text.encode('utf-8', errors='replace').decode('utf-8')
    if len(text) > limit:
        text = text[:limit] + "..."
    return text
