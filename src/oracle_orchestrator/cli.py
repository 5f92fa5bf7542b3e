"""
Command-line interface for the oracle orchestrator.

Provides CLI commands for running and preparing the orchestrator:
- run: Start the sync loop for every configured ledger
- init-ledger: Create a SQLite ledger store and record its owner
- config: Print the effective configuration (private keys masked)

Usage:
    oracle-orchestrator run [--log-level LEVEL]
    oracle-orchestrator init-ledger --owner ADDRESS [--path PATH] [--ledger NAME]
    oracle-orchestrator config

Environment Variables:
    ORACLE_CHAINS: Comma-separated list of enabled ledgers (e.g. ROOCH,APTOS)
    ORACLE_LOG_LEVEL: Root log level (default: INFO)
    ORACLE_<NAME>_*: Per-ledger overrides, see oracle_orchestrator.config
"""

import argparse
import asyncio
import sys
from pathlib import Path

from oracle_orchestrator import config as config_module


def cmd_run(args: argparse.Namespace) -> int:
    """
    Run the sync loop until SIGINT/SIGTERM.

    Builds one pipeline per configured (ledger, chain id, oracle address) over
    the SQLite ledger stores and runs them in a single event loop.

    Returns:
        0 on clean shutdown, 1 on startup error
    """
    from oracle_orchestrator.logging_setup import configure_logging
    from oracle_orchestrator.sync import Dispatcher

    cfg = config_module.config
    if getattr(args, "log_level", None):
        cfg.logging.level = args.log_level.upper()
    configure_logging(cfg.logging)

    try:
        dispatcher = Dispatcher(cfg)
        asyncio.run(dispatcher.run_forever())
        return 0
    except KeyboardInterrupt:
        print("\nOrchestrator stopped.")
        return 0
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1


def _init_targets(args: argparse.Namespace) -> list[Path]:
    """Resolve which ledger store files ``init-ledger`` should create."""
    if args.path:
        return [Path(args.path)]

    cfg = config_module.config
    names = [args.ledger.lower()] if args.ledger else sorted(cfg.ledgers)
    targets = []
    for name in names:
        settings = cfg.ledger(name)
        targets.extend(settings.database_path_for(chain_id) for chain_id in settings.chain_ids)
    return targets


def cmd_init_ledger(args: argparse.Namespace) -> int:
    """
    Create the ledger schema and owner row.

    With ``--path`` a single store is initialized. Otherwise every chain id of
    every configured ledger (or of ``--ledger NAME`` only) gets its store.
    Existing stores keep their current owner.

    Returns:
        0 on success, 1 on error
    """
    from oracle_orchestrator.ledger import LedgerStorageError, SqliteRequestLedger

    targets = _init_targets(args)
    if not targets:
        print(
            "Error: No ledger store to initialize.\n"
            "Pass --path, or configure chain_ids for a [ledger.<name>] section.",
            file=sys.stderr,
        )
        return 1

    for path in targets:
        ledger = SqliteRequestLedger(path)
        try:
            created = ledger.initialize(owner=args.owner)
        except LedgerStorageError as e:
            print(f"Error initializing {path}: {e}", file=sys.stderr)
            return 1
        if created:
            print(f"Initialized {path} (owner {args.owner})")
        else:
            print(f"{path} already initialized (owner {ledger.get_owner()})")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Print the configuration summary."""
    config_module.print_config_summary()
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with every subcommand."""
    parser = argparse.ArgumentParser(
        prog="oracle-orchestrator",
        description="Oracle orchestrator - fulfils HTTP oracle requests recorded on a ledger",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run command
    run_parser = subparsers.add_parser(
        "run",
        help="Run the sync loop",
        description=(
            "Watch every configured ledger for new requests, fulfil them, and "
            "periodically re-dispatch requests left unfulfilled."
        ),
    )
    run_parser.add_argument(
        "--log-level",
        type=str,
        help="Root log level (default: INFO, or ORACLE_LOG_LEVEL env var)",
    )
    run_parser.set_defaults(func=cmd_run)

    # init-ledger command
    init_parser = subparsers.add_parser(
        "init-ledger",
        help="Create a ledger store",
        description="Create the SQLite ledger schema and record the owner identity.",
    )
    init_parser.add_argument("--owner", required=True, help="Owner identity of the new ledger")
    init_parser.add_argument("--path", type=str, help="Ledger store file to create")
    init_parser.add_argument(
        "--ledger",
        type=str,
        help="Only initialize the stores of this ledger (e.g. rooch)",
    )
    init_parser.set_defaults(func=cmd_init_ledger)

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Show the effective configuration",
        description="Print the loaded configuration with private keys masked.",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
