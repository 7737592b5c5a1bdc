import logging
import sys
from contextvars import ContextVar

from dreik.config import ENV_DEVELOPMENT, ENV_LOCAL

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

LOCAL_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(request_id)s]: %(message)s"
SERVER_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | request_id=%(request_id)s | %(message)s"
DATEFMT = "%Y-%m-%d %H:%M:%S"


class RequestIdFilter(logging.Filter):
    """Stamp every record with the id of the request being handled."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def setup_logging(env: str, level: str = "") -> None:
    """
    - local: readable console output, DEBUG
    - dev: DEBUG
    - prod: INFO
    LOG_LEVEL overrides the environment default.
    """
    if not level:
        level = "DEBUG" if env in (ENV_LOCAL, ENV_DEVELOPMENT) else "INFO"

    root = logging.getLogger()
    root.setLevel(level.upper())

    # Prevent duplicate handlers
    if any(isinstance(f, RequestIdFilter) for h in root.handlers for f in h.filters):
        return

    console = logging.StreamHandler(sys.stdout)
    console.addFilter(RequestIdFilter())
    console.setFormatter(logging.Formatter(fmt=LOCAL_FORMAT if env == ENV_LOCAL else SERVER_FORMAT, datefmt=DATEFMT))
    root.addHandler(console)

    for noisy in ("httpx", "httpcore", "multipart", "python_multipart"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
