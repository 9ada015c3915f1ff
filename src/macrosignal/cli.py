"""Command-line interface for MACROSIGNAL.

Provides commands for running the macro signal pipeline from the terminal.

Usage:
    macrosignal run
    macrosignal run --date 2024-01-15 --format json
    macrosignal bias EURUSD
    macrosignal check --strict
"""

import argparse
import asyncio
import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import date as date_type
from pathlib import Path
from typing import Optional

from macrosignal import __version__
from macrosignal.config import settings
from macrosignal.errors import InconsistentStateError, MacroSignalError
from macrosignal.pipeline.orchestrator import Orchestrator
from macrosignal.store.parquet_store import ParquetRepository
from macrosignal.store.results import ResultStore

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=1)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_SKIPPED = 2


def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser.

    Returns:
        Configured ArgumentParser with all commands and arguments.
    """
    parser = argparse.ArgumentParser(
        prog="macrosignal",
        description="MACROSIGNAL — Macro Signal Engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  macrosignal run
  macrosignal run --date 2024-01-15 --format json
  macrosignal bias EURUSD
  macrosignal check --strict
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def add_common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "--date",
            type=str,
            default=None,
            help="Date in YYYY-MM-DD format (default: today)",
        )
        sub.add_argument(
            "--data-dir",
            type=Path,
            default=Path(settings.data_dir),
            help=f"Parquet repository directory (default: {settings.data_dir})",
        )
        sub.add_argument(
            "--ledger-dir",
            type=Path,
            default=Path(settings.ledger_dir),
            help=f"Release ledger directory, kept across runs (default: {settings.ledger_dir})",
        )
        sub.add_argument(
            "--format",
            type=str,
            choices=["text", "json"],
            default="text",
            help="Output format (default: text)",
        )

    run_parser = subparsers.add_parser(
        "run",
        help="Run the full pipeline",
        description="Diagnosis, correlations, releases, bias and quality checks",
    )
    add_common(run_parser)
    run_parser.add_argument(
        "--export-dir",
        type=Path,
        default=None,
        help="Write result Parquet files to this directory",
    )

    bias_parser = subparsers.add_parser(
        "bias",
        help="Compute the bias for one symbol",
        description="Ad-hoc bias for one instrument (no releases processed)",
    )
    bias_parser.add_argument(
        "symbol",
        type=str,
        help="Instrument symbol (e.g., EURUSD, USDJPY, XAUUSD)",
    )
    add_common(bias_parser)

    check_parser = subparsers.add_parser(
        "check",
        help="Run the pipeline and report quality invariants",
    )
    add_common(check_parser)
    check_parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit non-zero if any invariant FAILs",
    )

    subparsers.add_parser(
        "version",
        help="Show version information",
    )

    return parser


def _run_async(coro):
    """Run an async coroutine from synchronous CLI context.

    Spins up a new event loop in a dedicated thread to avoid conflicts
    with any existing event loop.
    """
    def _target():
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(coro)
        finally:
            loop.close()

    future = _executor.submit(_target)
    return future.result()


def _parse_date(value: Optional[str]) -> Optional[date_type]:
    return date_type.fromisoformat(value) if value else None


def _orchestrator(args: argparse.Namespace) -> Orchestrator:
    """Orchestrator over the Parquet repository, with the saved release ledger loaded."""
    results = ResultStore()
    _run_async(results.load_ledger(args.ledger_dir))
    return Orchestrator(repository=ParquetRepository(args.data_dir), results=results)


def cmd_run(args: argparse.Namespace) -> int:
    """Execute the run command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 success, 1 failure, 2 skipped because a run is in progress)
    """
    try:
        as_of = _parse_date(args.date)
        orchestrator = _orchestrator(args)
        report = _run_async(orchestrator.run(as_of=as_of))

        if report is None:
            print("Run skipped: another run is in progress", file=sys.stderr)
            return EXIT_SKIPPED

        _run_async(orchestrator.results.save_ledger(args.ledger_dir))
        if args.export_dir is not None:
            _run_async(orchestrator.results.export(args.export_dir))

        if args.format == "json":
            print(json.dumps(report.to_dict(), indent=2, default=str))
        else:
            print(report.format_report())
        return EXIT_OK

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except (MacroSignalError, ValueError) as e:
        logger.error("Run failed: %s", e, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE


def cmd_bias(args: argparse.Namespace) -> int:
    """Execute the bias command."""
    try:
        as_of = _parse_date(args.date)
        orchestrator = _orchestrator(args)
        bias = _run_async(orchestrator.run_single_symbol(args.symbol, as_of=as_of))

        if args.format == "json":
            print(json.dumps(bias.to_dict(), indent=2, default=str))
        else:
            print(bias.narrative)
        return EXIT_OK

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except (MacroSignalError, ValueError) as e:
        logger.error("Bias failed: %s", e, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE


def cmd_check(args: argparse.Namespace) -> int:
    """Execute the check command."""
    try:
        as_of = _parse_date(args.date)
        orchestrator = _orchestrator(args)
        report = _run_async(orchestrator.run(as_of=as_of))
        if report is None:
            print("Check skipped: another run is in progress", file=sys.stderr)
            return EXIT_SKIPPED
        _run_async(orchestrator.results.save_ledger(args.ledger_dir))

        if args.format == "json":
            print(json.dumps(report.quality.to_dict(), indent=2))
        else:
            print(report.quality.format_report())

        if args.strict:
            report.quality.raise_for_failures()
        return EXIT_OK

    except InconsistentStateError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except (MacroSignalError, ValueError) as e:
        logger.error("Check failed: %s", e, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE


def cmd_version(args: argparse.Namespace) -> int:
    """Execute the version command."""
    print(f"MACROSIGNAL v{__version__}")
    print("Macro Signal Engine")
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    parser = create_parser()
    args = parser.parse_args(argv)

    # Route to command handler
    if args.command == "run":
        return cmd_run(args)
    elif args.command == "bias":
        return cmd_bias(args)
    elif args.command == "check":
        return cmd_check(args)
    elif args.command == "version":
        return cmd_version(args)
    else:
        # No command specified
        parser.print_help()
        return EXIT_OK


def cli_entry() -> None:
    """Console script entry point for setuptools."""
    sys.exit(main())


if __name__ == "__main__":
    cli_entry()
