"""Tests for root logger configuration."""

import json
import logging

import pytest

from oracle_orchestrator.config import LoggingSettings
from oracle_orchestrator.logging_setup import JsonFormatter, configure_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.unit
def test_installs_single_named_handler():
    configure_logging(LoggingSettings(level="DEBUG", format="simple"))
    configure_logging(LoggingSettings(level="WARNING", format="detailed"))

    root = logging.getLogger()
    ours = [h for h in root.handlers if h.get_name() == "oracle-orchestrator"]
    assert len(ours) == 1
    assert root.level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING


@pytest.mark.unit
def test_unknown_level_falls_back_to_info():
    configure_logging(LoggingSettings(level="LOUD"))

    assert logging.getLogger().level == logging.INFO


@pytest.mark.unit
def test_json_formatter_emits_one_object_per_record():
    record = logging.LogRecord(
        name="oracle_orchestrator.sync.fulfiller",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="[%s] fulfilled request %d",
        args=("rooch/local/0xa", 7),
        exc_info=None,
    )

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "oracle_orchestrator.sync.fulfiller"
    assert payload["message"] == "[rooch/local/0xa] fulfilled request 7"
    assert "timestamp" in payload


@pytest.mark.unit
def test_json_format_selected():
    handler = configure_logging(LoggingSettings(format="json"))

    assert isinstance(handler.formatter, JsonFormatter)
