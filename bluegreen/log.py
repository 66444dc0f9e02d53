import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from bluegreen.config import Settings, settings as default_settings

SUCCESS = 25
STATUS = 26

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logging.addLevelName(SUCCESS, "SUCCESS")
logging.addLevelName(STATUS, "STATUS")


def log_file_path(settings: Settings = default_settings, now: Optional[datetime] = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return Path(settings.log_dir) / f"{settings.log_file_prefix}_{stamp}.log"


def configure_logging(
    settings: Settings = default_settings,
    stream=None,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """Send ``bluegreen`` records to the terminal and to a durable per-run log file.

    Calling it again replaces the handlers installed by the previous call.
    """
    logging.addLevelName(logging.WARNING, "WARN")

    logger = logging.getLogger("bluegreen")
    logger.setLevel(logging.INFO)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    terminal = logging.StreamHandler(stream or sys.stdout)
    terminal.setFormatter(formatter)
    logger.addHandler(terminal)

    path = log_file or log_file_path(settings)
    path.parent.mkdir(parents=True, exist_ok=True)
    durable = logging.FileHandler(path, encoding="utf-8")
    durable.setFormatter(formatter)
    logger.addHandler(durable)

    return logger
