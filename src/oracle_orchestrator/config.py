"""
Orchestrator configuration management.

This module loads the orchestrator configuration from multiple sources with a
clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/orchestrator.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The
OrchestratorConfig dataclass provides typed access to all settings.

Usage:
    from oracle_orchestrator.config import config

    print(config.orchestrator.chains)
    for name, ledger in config.ledgers.items():
        print(name, ledger.chain_ids, ledger.oracle_addresses)

Target ledgers:
    Each target ledger is configured in its own ``[ledger.<name>]`` INI
    section. ``rooch`` and ``aptos`` always exist (possibly empty); any other
    ``[ledger.<name>]`` section adds a new target. A ledger only runs when its
    name appears in ``[orchestrator] chains`` and its credentials are complete.

Environment Variable Mapping:
    ORACLE_CHAINS                   -> orchestrator.chains
    ORACLE_WORKERS                  -> orchestrator.workers_per_oracle
    ORACLE_START_AT_HEAD            -> orchestrator.start_at_head
    ORACLE_LOG_LEVEL                -> logging.level
    ORACLE_<NAME>_PRIVATE_KEY       -> ledgers[<name>].private_key
    ORACLE_<NAME>_CHAIN_IDS         -> ledgers[<name>].chain_ids
    ORACLE_<NAME>_ORACLE_ADDRESSES  -> ledgers[<name>].oracle_addresses
    ORACLE_<NAME>_INDEXER_INTERVAL  -> ledgers[<name>].indexer_interval
    ORACLE_<NAME>_SWEEP_INTERVAL    -> ledgers[<name>].sweep_interval
    ORACLE_<NAME>_DB_PATH           -> ledgers[<name>].database_path
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Config file paths
CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "orchestrator.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "orchestrator.example.ini"

# Target ledgers the orchestrator ships defaults for.
KNOWN_LEDGERS = ("rooch", "aptos")

# INI section prefix for per-ledger settings.
LEDGER_SECTION_PREFIX = "ledger."


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class OrchestratorSettings:
    """Process-wide sync settings shared by every target ledger."""

    chains: list[str] = field(default_factory=list)
    workers_per_oracle: int = 4
    max_pending: int = 256
    http_timeout_seconds: float = 30.0
    ledger_timeout_seconds: float = 30.0
    shutdown_grace_seconds: float = 30.0
    watch_batch_size: int = 100
    start_at_head: bool = False


@dataclass
class LedgerSettings:
    """Settings for one target ledger.

    Attributes:
        name: Lower-case ledger name (``"rooch"``, ``"aptos"``, ...).
        private_key: Signing credential for the oracle identities. Opaque to
            the orchestrator; only its presence is checked.
        chain_ids: Target chain identifiers. One sync pipeline is built per
            chain id and oracle address.
        oracle_addresses: Oracle identities served on this ledger.
        indexer_interval: Event-poll period expression (seconds or ``*/N``
            cron form).
        sweep_interval: Reconciliation sweep period expression.
        sweep_horizon_seconds: Minimum request age before the sweep picks it up.
        database_path: Ledger store path template. ``{ledger}`` and
            ``{chain}`` are substituted per chain id.
    """

    name: str
    private_key: str = ""
    chain_ids: list[str] = field(default_factory=list)
    oracle_addresses: list[str] = field(default_factory=list)
    indexer_interval: str = "*/10 * * * * *"
    sweep_interval: str = "*/15 * * * *"
    sweep_horizon_seconds: float = 60.0
    database_path: str = "data/{ledger}-{chain}.db"

    def missing_fields(self) -> list[str]:
        """Return the names of required settings that are not filled in."""
        missing = []
        if not self.private_key:
            missing.append("private_key")
        if not self.chain_ids:
            missing.append("chain_ids")
        if not self.oracle_addresses:
            missing.append("oracle_addresses")
        return missing

    def database_path_for(self, chain_id: str) -> Path:
        """Resolve the absolute ledger store path for one chain id."""
        p = Path(self.database_path.format(ledger=self.name, chain=chain_id))
        if p.is_absolute():
            return p
        return PROJECT_ROOT / p


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


def _default_ledgers() -> dict[str, LedgerSettings]:
    return {name: LedgerSettings(name=name) for name in KNOWN_LEDGERS}


@dataclass
class OrchestratorConfig:
    """
    Complete orchestrator configuration.

    Aggregates all settings sections. Access via the module-level `config`
    singleton.
    """

    orchestrator: OrchestratorSettings = field(default_factory=OrchestratorSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    ledgers: dict[str, LedgerSettings] = field(default_factory=_default_ledgers)

    def is_enabled(self, ledger_name: str) -> bool:
        """Check the ``chains`` feature flag for a ledger (case-insensitive)."""
        enabled = {chain.upper() for chain in self.orchestrator.chains}
        return ledger_name.upper() in enabled

    def ledger(self, name: str) -> LedgerSettings:
        """Return the settings for ``name``, creating an empty entry if absent."""
        key = name.lower()
        if key not in self.ledgers:
            self.ledgers[key] = LedgerSettings(name=key)
        return self.ledgers[key]


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.lower() in ("true", "yes", "1", "on", "enabled")


def _parse_list(value: str) -> list[str]:
    """Parse a comma-separated string to list, stripping whitespace."""
    if not value or value.strip() == "":
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _load_ledger_section(
    parser: configparser.ConfigParser, section: str, ledger: LedgerSettings
) -> None:
    """Load one ``[ledger.<name>]`` section into its LedgerSettings."""
    if parser.has_option(section, "private_key"):
        ledger.private_key = parser.get(section, "private_key").strip()
    if parser.has_option(section, "chain_ids"):
        ledger.chain_ids = _parse_list(parser.get(section, "chain_ids"))
    if parser.has_option(section, "oracle_addresses"):
        ledger.oracle_addresses = _parse_list(parser.get(section, "oracle_addresses"))
    if parser.has_option(section, "indexer_interval"):
        ledger.indexer_interval = parser.get(section, "indexer_interval").strip()
    if parser.has_option(section, "sweep_interval"):
        ledger.sweep_interval = parser.get(section, "sweep_interval").strip()
    if parser.has_option(section, "sweep_horizon_seconds"):
        ledger.sweep_horizon_seconds = parser.getfloat(section, "sweep_horizon_seconds")
    if parser.has_option(section, "database_path"):
        ledger.database_path = parser.get(section, "database_path").strip()


def _load_from_ini(parser: configparser.ConfigParser, cfg: OrchestratorConfig) -> None:
    """Load configuration from parsed INI file into OrchestratorConfig."""
    # Orchestrator section
    if parser.has_section("orchestrator"):
        section = "orchestrator"
        settings = cfg.orchestrator
        if parser.has_option(section, "chains"):
            settings.chains = _parse_list(parser.get(section, "chains"))
        if parser.has_option(section, "workers_per_oracle"):
            settings.workers_per_oracle = parser.getint(section, "workers_per_oracle")
        if parser.has_option(section, "max_pending"):
            settings.max_pending = parser.getint(section, "max_pending")
        if parser.has_option(section, "http_timeout_seconds"):
            settings.http_timeout_seconds = parser.getfloat(section, "http_timeout_seconds")
        if parser.has_option(section, "ledger_timeout_seconds"):
            settings.ledger_timeout_seconds = parser.getfloat(section, "ledger_timeout_seconds")
        if parser.has_option(section, "shutdown_grace_seconds"):
            settings.shutdown_grace_seconds = parser.getfloat(section, "shutdown_grace_seconds")
        if parser.has_option(section, "watch_batch_size"):
            settings.watch_batch_size = parser.getint(section, "watch_batch_size")
        if parser.has_option(section, "start_at_head"):
            settings.start_at_head = _parse_bool(parser.get(section, "start_at_head"))

    # Logging section
    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed", "json"):
                cfg.logging.format = val  # type: ignore[assignment]

    # Ledger sections
    for section in parser.sections():
        if not section.startswith(LEDGER_SECTION_PREFIX):
            continue
        name = section[len(LEDGER_SECTION_PREFIX) :].strip().lower()
        if not name:
            continue
        _load_ledger_section(parser, section, cfg.ledger(name))


def _apply_env_overrides(cfg: OrchestratorConfig) -> None:
    """Apply environment variable overrides to configuration."""
    if env_chains := os.getenv("ORACLE_CHAINS"):
        cfg.orchestrator.chains = _parse_list(env_chains)
    if env_workers := os.getenv("ORACLE_WORKERS"):
        cfg.orchestrator.workers_per_oracle = int(env_workers)
    if env_head := os.getenv("ORACLE_START_AT_HEAD"):
        cfg.orchestrator.start_at_head = _parse_bool(env_head)
    if env_log := os.getenv("ORACLE_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()

    for name, ledger in cfg.ledgers.items():
        prefix = f"ORACLE_{name.upper()}_"
        if env_key := os.getenv(prefix + "PRIVATE_KEY"):
            ledger.private_key = env_key
        if env_chain_ids := os.getenv(prefix + "CHAIN_IDS"):
            ledger.chain_ids = _parse_list(env_chain_ids)
        if env_addresses := os.getenv(prefix + "ORACLE_ADDRESSES"):
            ledger.oracle_addresses = _parse_list(env_addresses)
        if env_indexer := os.getenv(prefix + "INDEXER_INTERVAL"):
            ledger.indexer_interval = env_indexer
        if env_sweep := os.getenv(prefix + "SWEEP_INTERVAL"):
            ledger.sweep_interval = env_sweep
        if env_db := os.getenv(prefix + "DB_PATH"):
            ledger.database_path = env_db


def load_config() -> OrchestratorConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/orchestrator.ini
        3. config/orchestrator.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        OrchestratorConfig: Fully populated configuration object.
    """
    cfg = OrchestratorConfig()

    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        config_file = CONFIG_EXAMPLE

    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    _apply_env_overrides(cfg)

    return cfg


def reload_config() -> "OrchestratorConfig":
    """
    Reload configuration from disk and environment.

    This updates the module-level `config` singleton. Pipelines that are
    already running keep the settings they were built with.

    Returns:
        OrchestratorConfig: The newly loaded configuration.
    """
    global config
    config = load_config()
    return config


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

# Load configuration once at module import time
config = load_config()


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def mask_secret(value: str) -> str:
    """Mask a credential for display, keeping only a short prefix."""
    if not value:
        return "<unset>"
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}…({len(value)} chars)"


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information and a
    per-ledger readiness summary. Private keys are never included.
    """
    ledgers = {}
    for name, ledger in sorted(config.ledgers.items()):
        ledgers[name] = {
            "enabled": config.is_enabled(name),
            "missing": ledger.missing_fields(),
            "chain_ids": list(ledger.chain_ids),
            "oracle_count": len(ledger.oracle_addresses),
        }
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "chains": list(config.orchestrator.chains),
        "ledgers": ledgers,
    }


def print_config_summary() -> None:
    """Print a summary of current configuration to stdout."""
    status = get_config_status()
    print("\n" + "=" * 60)
    print("ORACLE ORCHESTRATOR CONFIGURATION")
    print("=" * 60)
    print(f"Config file: {status['config_file_path']}")
    print(f"File exists: {status['config_file_exists']}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to orchestrator.ini for production)")
    print("-" * 60)
    print(f"Chains:      {', '.join(status['chains']) or '<none>'}")
    print(f"Workers:     {config.orchestrator.workers_per_oracle} per oracle")
    print(f"Log level:   {config.logging.level}")
    for name, ledger in sorted(config.ledgers.items()):
        info = status["ledgers"][name]
        print("-" * 60)
        print(f"[{name}] enabled={info['enabled']}")
        print(f"  private key:  {mask_secret(ledger.private_key)}")
        print(f"  chain ids:    {', '.join(ledger.chain_ids) or '<none>'}")
        print(f"  oracles:      {', '.join(ledger.oracle_addresses) or '<none>'}")
        print(f"  indexer:      {ledger.indexer_interval}")
        print(f"  sweep:        {ledger.sweep_interval}")
        if info["missing"]:
            print(f"  missing:      {', '.join(info['missing'])}")
    print("=" * 60 + "\n")


# =============================================================================
# TEST HELPERS
# =============================================================================


class use_test_config:
    """
    Context manager for swapping in a test configuration.

    Replaces the module-level ``config`` singleton for the duration of the
    block and restores the original on exit.

    Usage:
        from oracle_orchestrator.config import OrchestratorConfig, use_test_config

        def test_something():
            cfg = OrchestratorConfig()
            cfg.orchestrator.chains = ["ROOCH"]
            with use_test_config(cfg):
                ...

    Args:
        cfg: Configuration to install while the block runs.
    """

    def __init__(self, cfg: OrchestratorConfig):
        self.cfg = cfg
        self.original: OrchestratorConfig | None = None

    def __enter__(self) -> OrchestratorConfig:
        """Install the test configuration."""
        global config
        self.original = config
        config = self.cfg
        return self.cfg

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Restore the original configuration."""
        global config
        if self.original is not None:
            config = self.original
        return None
