import logging
import sys
from datetime import datetime
from pathlib import Path

from ladder_bot.config import Config

PACKAGE_LOGGER = 'ladder_bot'


def _configure(logger: logging.Logger) -> None:
    log_level = logging.DEBUG if Config.DEBUG else logging.INFO
    logger.setLevel(log_level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    log_dir = Path(Config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(
        log_dir / f'ladder_bot_{datetime.now().strftime("%Y%m%d")}.log',
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    # Records stop here; the root logger is left to discord.py
    logger.propagate = False


def setup_logger(name: str) -> logging.Logger:
    """
    Return the logger for ``name``.

    Handlers live on the ``ladder_bot`` package logger only; module and
    per-class loggers beneath it propagate there, so nested names such as
    ``ladder_bot.operations.player_operations.PlayerOperations`` print once.
    Names outside the package are configured on their own.
    """
    in_package = name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + '.')
    owner = logging.getLogger(PACKAGE_LOGGER if in_package else name)
    if not owner.handlers:
        _configure(owner)
    return logging.getLogger(name)
