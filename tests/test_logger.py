"""Logger wiring."""
import logging

from ladder_bot.utils.logger import PACKAGE_LOGGER, setup_logger


class Collect(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def test_nested_loggers_share_the_package_handlers():
    module_logger = setup_logger("ladder_bot.operations.player_operations")
    class_logger = setup_logger("ladder_bot.operations.player_operations.PlayerOperations")
    package = logging.getLogger(PACKAGE_LOGGER)

    assert package.handlers
    assert not package.propagate
    assert module_logger.handlers == []
    assert class_logger.handlers == []


def test_class_logger_record_is_handled_once():
    collect = Collect()
    package = logging.getLogger(PACKAGE_LOGGER)
    setup_logger(PACKAGE_LOGGER)
    package.addHandler(collect)
    try:
        setup_logger("ladder_bot.services.expiration")
        setup_logger("ladder_bot.services.expiration.ExpirationService").warning("sweep failed")
    finally:
        package.removeHandler(collect)

    assert [r.getMessage() for r in collect.records] == ["sweep failed"]


def test_setup_is_idempotent():
    package = logging.getLogger(PACKAGE_LOGGER)
    setup_logger("ladder_bot.cogs.admin")
    before = list(package.handlers)
    setup_logger("ladder_bot.cogs.admin")
    assert package.handlers == before
