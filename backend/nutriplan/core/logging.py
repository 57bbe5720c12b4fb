from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once per process.
    Uvicorn installs its own handlers; we only attach ours when none exist.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)

    # SQLAlchemy echo is controlled by the engine; keep its logger quiet by default.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
