"""
Process-wide logging setup.

Called once from app.main. Modules log through logging.getLogger(__name__);
gunicorn captures stdout, so a single stream handler is enough.
"""
import logging
import sys

from app.core.config import settings

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str | None = None) -> None:
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())

    # Idempotent: uvicorn reloads and the test client import main repeatedly.
    if any(getattr(h, "_journal_handler", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._journal_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # The OpenAI SDK logs every request at INFO through httpx.
    logging.getLogger("httpx").setLevel(logging.WARNING)
