"""Tests for oracle_orchestrator.config loading and overrides."""

import configparser
import os

import pytest

from oracle_orchestrator import config as config_module
from oracle_orchestrator.config import (
    PROJECT_ROOT,
    LedgerSettings,
    OrchestratorConfig,
    _load_from_ini,
    get_config_status,
    load_config,
    mask_secret,
    print_config_summary,
    use_test_config,
)

ENV_PREFIXES = ("ORACLE_",)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Drop any ORACLE_* variables from the developer's shell."""
    for name in list(os.environ):
        if name.startswith(ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)


@pytest.mark.unit
def test_defaults():
    cfg = OrchestratorConfig()

    assert cfg.orchestrator.chains == []
    assert cfg.orchestrator.workers_per_oracle == 4
    assert cfg.orchestrator.start_at_head is False
    assert set(cfg.ledgers) == {"rooch", "aptos"}
    rooch = cfg.ledgers["rooch"]
    assert rooch.indexer_interval == "*/10 * * * * *"
    assert rooch.sweep_interval == "*/15 * * * *"
    assert rooch.missing_fields() == ["private_key", "chain_ids", "oracle_addresses"]


@pytest.mark.unit
def test_ini_sections_load():
    parser = configparser.ConfigParser()
    parser.read_dict(
        {
            "orchestrator": {
                "chains": "ROOCH, APTOS",
                "workers_per_oracle": "8",
                "max_pending": "32",
                "http_timeout_seconds": "2.5",
                "start_at_head": "yes",
            },
            "logging": {"level": "debug", "format": "json"},
            "ledger.rooch": {
                "private_key": "0xkey",
                "chain_ids": "local, testnet",
                "oracle_addresses": "0xa,0xb",
                "indexer_interval": "5",
                "sweep_horizon_seconds": "120",
                "database_path": "/var/lib/oracle/{ledger}-{chain}.db",
            },
        }
    )

    cfg = OrchestratorConfig()
    _load_from_ini(parser, cfg)

    assert cfg.orchestrator.chains == ["ROOCH", "APTOS"]
    assert cfg.orchestrator.workers_per_oracle == 8
    assert cfg.orchestrator.max_pending == 32
    assert cfg.orchestrator.http_timeout_seconds == 2.5
    assert cfg.orchestrator.start_at_head is True
    assert cfg.logging.level == "DEBUG"
    assert cfg.logging.format == "json"
    rooch = cfg.ledgers["rooch"]
    assert rooch.private_key == "0xkey"
    assert rooch.chain_ids == ["local", "testnet"]
    assert rooch.oracle_addresses == ["0xa", "0xb"]
    assert rooch.indexer_interval == "5"
    assert rooch.sweep_horizon_seconds == 120
    assert rooch.missing_fields() == []
    assert str(rooch.database_path_for("local")) == "/var/lib/oracle/rooch-local.db"


@pytest.mark.unit
def test_unknown_logging_format_is_ignored():
    parser = configparser.ConfigParser()
    parser.read_dict({"logging": {"format": "xml"}})

    cfg = OrchestratorConfig()
    _load_from_ini(parser, cfg)

    assert cfg.logging.format == "detailed"


@pytest.mark.unit
def test_extra_ledger_section_adds_a_target():
    parser = configparser.ConfigParser()
    parser.read_dict({"ledger.Sui": {"chain_ids": "devnet"}})

    cfg = OrchestratorConfig()
    _load_from_ini(parser, cfg)

    assert cfg.ledgers["sui"].chain_ids == ["devnet"]
    assert cfg.ledgers["sui"].name == "sui"


@pytest.mark.unit
def test_env_overrides(monkeypatch):
    monkeypatch.setenv("ORACLE_CHAINS", "ROOCH")
    monkeypatch.setenv("ORACLE_WORKERS", "2")
    monkeypatch.setenv("ORACLE_START_AT_HEAD", "true")
    monkeypatch.setenv("ORACLE_LOG_LEVEL", "warning")
    monkeypatch.setenv("ORACLE_ROOCH_PRIVATE_KEY", "0xsecret")
    monkeypatch.setenv("ORACLE_ROOCH_CHAIN_IDS", "local,test")
    monkeypatch.setenv("ORACLE_ROOCH_ORACLE_ADDRESSES", "0xa")
    monkeypatch.setenv("ORACLE_ROOCH_INDEXER_INTERVAL", "3")
    monkeypatch.setenv("ORACLE_ROOCH_SWEEP_INTERVAL", "*/5 * * * *")
    monkeypatch.setenv("ORACLE_APTOS_DB_PATH", "/tmp/aptos-{chain}.db")

    cfg = load_config()

    assert cfg.orchestrator.chains == ["ROOCH"]
    assert cfg.orchestrator.workers_per_oracle == 2
    assert cfg.orchestrator.start_at_head is True
    assert cfg.logging.level == "WARNING"
    assert cfg.is_enabled("rooch")
    assert not cfg.is_enabled("aptos")
    rooch = cfg.ledgers["rooch"]
    assert rooch.private_key == "0xsecret"
    assert rooch.chain_ids == ["local", "test"]
    assert rooch.oracle_addresses == ["0xa"]
    assert rooch.indexer_interval == "3"
    assert rooch.sweep_interval == "*/5 * * * *"
    assert cfg.ledgers["aptos"].database_path == "/tmp/aptos-{chain}.db"


@pytest.mark.unit
def test_relative_database_path_resolves_under_project_root():
    ledger = LedgerSettings(name="rooch")

    assert ledger.database_path_for("local") == PROJECT_ROOT / "data" / "rooch-local.db"


@pytest.mark.unit
@pytest.mark.parametrize(
    ("value", "expected"),
    [("", "<unset>"), ("short", "****"), ("0x1234567890abcdef", "0x12…(18 chars)")],
)
def test_mask_secret(value, expected):
    assert mask_secret(value) == expected


@pytest.mark.unit
def test_use_test_config_swaps_and_restores():
    original = config_module.config
    replacement = OrchestratorConfig()

    with use_test_config(replacement) as active:
        assert active is replacement
        assert config_module.config is replacement

    assert config_module.config is original


@pytest.mark.unit
def test_config_status_never_exposes_keys():
    cfg = OrchestratorConfig()
    cfg.orchestrator.chains = ["ROOCH"]
    cfg.ledgers["rooch"].private_key = "0xtopsecretkey"
    cfg.ledgers["rooch"].chain_ids = ["local"]

    with use_test_config(cfg):
        status = get_config_status()

    assert status["chains"] == ["ROOCH"]
    assert status["ledgers"]["rooch"]["enabled"] is True
    assert status["ledgers"]["rooch"]["missing"] == ["oracle_addresses"]
    assert status["ledgers"]["aptos"]["enabled"] is False
    assert "0xtopsecretkey" not in repr(status)


@pytest.mark.unit
def test_print_config_summary_masks_keys(capsys):
    cfg = OrchestratorConfig()
    cfg.ledgers["rooch"].private_key = "0xtopsecretkey"

    with use_test_config(cfg):
        print_config_summary()

    out = capsys.readouterr().out
    assert "ORACLE ORCHESTRATOR CONFIGURATION" in out
    assert "[rooch]" in out
    assert "0xtopsecretkey" not in out
    assert "0xto…(14 chars)" in out
