import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# 每次上游请求都会打一行的第三方库，压到 WARNING
NOISY_LOGGERS = ("urllib3", "httpx", "sqlalchemy.engine")


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Make sure INFO event lines (`shopify.graphql.ok ...`, `stocky.http.429_throttled ...`) reach stdout.
    Under uvicorn the root logger already has handlers, so only the level is adjusted.
    The CLI poller script calls this before anything else logs.
    """
    resolved = (level or DEFAULT_LEVEL).upper()
    root = logging.getLogger()

    if root.handlers:
        root.setLevel(resolved)
    else:
        logging.basicConfig(level=resolved, format=LOG_FORMAT, handlers=[logging.StreamHandler(sys.stdout)])

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.captureWarnings(True)
    return logging.getLogger("markdown_report")
