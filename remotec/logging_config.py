from __future__ import annotations

import logging
from pathlib import Path

from .config import Settings
from .reporting import RESULT_LOGGER_NAME
from .utils import TIME_FORMAT

LOG_FORMAT = "[%(levelname)s][%(asctime)s][PID:%(process)d][%(filename)s:%(lineno)d] %(message)s"


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=TIME_FORMAT, force=True)

    # Result records always reach the console; the file sink is the durable copy.
    results = logging.getLogger(RESULT_LOGGER_NAME)
    results.setLevel(logging.INFO)
    for handler in list(results.handlers):
        results.removeHandler(handler)
        handler.close()

    if settings.result_log_path:
        path = Path(settings.result_log_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        results.addHandler(file_handler)
