# kas_server/app/logging.py
import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# uvicorn installs its own handlers unless told otherwise; route them through root
UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def setup_logging(level: str = "INFO") -> None:
    """
    Send the service, uvicorn and SQLAlchemy through one stdout handler.

    `kas_server.*` follows `level`. SQL statements only show up at DEBUG,
    since every ingest writes one record plus a row per scan event.
    """
    level = level.upper()
    root = logging.getLogger()
    root.setLevel(level)

    for h in list(root.handlers):
        root.removeHandler(h)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    for name in UVICORN_LOGGERS:
        uv = logging.getLogger(name)
        uv.handlers.clear()
        uv.propagate = True
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)

    logging.getLogger("kas_server").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if level == "DEBUG" else logging.WARNING)
    # carrier calls log their own outcome; urllib3's per-connection lines are noise
    logging.getLogger("urllib3").setLevel(logging.WARNING)
