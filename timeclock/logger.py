# timeclock/logger.py
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(filename)s:%(lineno)d] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(
        name="timeclock",
        level=logging.INFO,
        log_dir: Path | None = None,
        max_bytes=5 * 1024 * 1024,
        backup_count=5,
        console=True,
) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.propagate = False
    logger.setLevel(level)

    fmt = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    # Rotating file handler, only when a directory is configured
    file_handler_name = f"{name}:file"
    if log_dir is not None and not any(h.get_name() == file_handler_name for h in logger.handlers):
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=log_dir / f"{name}.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(fmt)
        file_handler.set_name(file_handler_name)
        logger.addHandler(file_handler)

    console_handler_name = f"{name}:console"
    if console and not any(h.get_name() == console_handler_name for h in logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(fmt)
        console_handler.set_name(console_handler_name)
        logger.addHandler(console_handler)

    return logger


# Shared logger for the core; handlers are attached by main.py through get_logger().
log = logging.getLogger("timeclock")
