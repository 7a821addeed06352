"""Tests for the logging channels"""

import logging

import pytest

from flowcore import logging_config
from flowcore.logging_config import LOG_CHANNELS, get_logger, setup_logger


@pytest.fixture
def scratch_logger():
    """Yield a unique logger name and detach its handlers afterwards."""
    name = "flowcore.tests.scratch"
    yield name
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logging_config._configured_loggers.discard(name)


class TestLoggingChannels:

    def test_channels_share_the_package_namespace(self):
        assert LOG_CHANNELS["engine"][0] == "flowcore"
        assert all(name.startswith("flowcore") for name, _ in LOG_CHANNELS.values())
        assert len({filename for _, filename in LOG_CHANNELS.values()}) == len(LOG_CHANNELS)

    def test_unknown_channel_rejected(self):
        with pytest.raises(ValueError, match="Unknown log channel"):
            get_logger("metrics")

    def test_setup_writes_to_own_file(self, tmp_path, scratch_logger):
        logger = setup_logger(scratch_logger, "scratch.log", log_dir=tmp_path / "logs")
        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()

        assert logger.propagate is False
        assert "hello" in (tmp_path / "logs" / "scratch.log").read_text(encoding="utf-8")

    def test_setup_attaches_handlers_once(self, tmp_path, scratch_logger):
        first = setup_logger(scratch_logger, "scratch.log", log_dir=tmp_path)
        second = setup_logger(scratch_logger, "scratch.log", log_dir=tmp_path)
        assert first is second
        assert len(first.handlers) == 2
