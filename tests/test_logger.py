import pytest
from loguru import logger

from config.settings import LoggingSettings
from utils.logger import get_logger, log_execution_time, setup_logging


def test_file_sinks_split_errors(tmp_path):
    setup_logging(LoggingSettings(console_enabled=False, file_enabled=True, directory=tmp_path))

    log = get_logger("probes")
    log.info("probe finished")
    log.error("disk full")
    logger.remove()

    everything = (tmp_path / "uptime_monitor.log").read_text()
    errors = (tmp_path / "errors.log").read_text()

    assert "probes:" in everything
    assert "probe finished" in everything
    assert "disk full" in errors
    assert "probe finished" not in errors


@pytest.mark.asyncio
async def test_log_execution_time_reraises():
    @log_execution_time
    async def broken():
        raise RuntimeError("socket closed")

    with pytest.raises(RuntimeError):
        await broken()
