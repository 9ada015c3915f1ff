#!/usr/bin/env python3
"""MACROSIGNAL — Daily Signal Runner.

Runs the full pipeline (diagnosis, correlations, pending releases, bias,
quality checks) against the Parquet repository and saves the results.
Designed to be called from cron once the day's closes and releases are loaded.

Usage:
    python scripts/daily_run.py
    python scripts/daily_run.py --date 2024-01-15
    python scripts/daily_run.py --symbols EURUSD USDJPY

Scheduling (UTC, after the New York close):
    crontab -e
    30 22 * * 1-5 /path/to/macrosignal/.venv/bin/python /path/to/macrosignal/scripts/daily_run.py >> /path/to/macrosignal/logs/daily.log 2>&1
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Load .env before importing macrosignal (settings are built at import time)
load_dotenv(PROJECT_ROOT / ".env")

from macrosignal.errors import MacroSignalError  # noqa: E402
from macrosignal.pipeline.orchestrator import Orchestrator, RunReport  # noqa: E402
from macrosignal.store.parquet_store import ParquetRepository  # noqa: E402
from macrosignal.store.results import ResultStore  # noqa: E402


def setup_logging(log_dir: Path, target_date: date) -> None:
    """Configure logging to both console and daily log file."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"daily_{target_date.isoformat()}.log"

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
    )


def print_summary(report: RunReport) -> None:
    """Log a human-readable summary of a run."""
    logger = logging.getLogger(__name__)

    logger.info("=" * 60)
    logger.info("MACROSIGNAL Daily Run — %s (run %s)", report.as_of.isoformat(), report.run_id)
    logger.info("=" * 60)
    if report.diagnosis is not None:
        logger.info(
            "Regime: %s  USD: %s  Quadrant: %s",
            report.diagnosis.regime.value,
            report.diagnosis.usd_bias.value,
            report.diagnosis.macro_quadrant.value,
        )

    for symbol, bias in report.biases.items():
        logger.info(
            "  %-7s  %-8s  score=%+.2f  conf=%.2f  drivers=%d/%d",
            symbol, bias.direction.value, bias.score, bias.confidence,
            bias.meta.drivers_used, bias.meta.drivers_total,
        )
    for symbol, message in sorted(report.errors.items()):
        logger.warning("  %-7s  ERROR %s", symbol, message)

    counts = report.quality.counts
    logger.info(
        "Quality: %d PASS, %d WARN, %d FAIL",
        counts["PASS"], counts["WARN"], counts["FAIL"],
    )
    logger.info("=" * 60)


def save_results(report: RunReport, output_dir: Path) -> Path:
    """Save the run report as JSON for inspection."""
    output_dir.mkdir(parents=True, exist_ok=True)
    output_file = output_dir / f"results_{report.as_of.isoformat()}.json"

    with open(output_file, "w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2, default=str)

    logging.getLogger(__name__).info("Results saved to %s", output_file)
    return output_file


async def run_pipeline(
    target_date: date,
    data_dir: str,
    symbols: list[str] | None,
    export_dir: Path,
    ledger_dir: Path,
):
    results = ResultStore()
    await results.load_ledger(ledger_dir)
    orchestrator = Orchestrator(repository=ParquetRepository(data_dir), results=results)
    report = await orchestrator.run(as_of=target_date, symbols=symbols)
    if report is not None:
        await results.save_ledger(ledger_dir)
        await results.export(export_dir)
    return report


def main() -> int:
    """Main entry point for daily runner."""
    parser = argparse.ArgumentParser(
        description="MACROSIGNAL — Daily signal pipeline",
    )
    parser.add_argument(
        "--date",
        type=str,
        default=None,
        help="Target date YYYY-MM-DD (default: today)",
    )
    parser.add_argument(
        "--symbols",
        nargs="+",
        default=None,
        help="Symbols to score (default: all catalogued instruments)",
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=str(PROJECT_ROOT / "data"),
        help="Parquet repository directory (default: data/)",
    )
    parser.add_argument(
        "--ledger-dir",
        type=str,
        default=str(PROJECT_ROOT / "data" / "ledger"),
        help="Release ledger directory, kept across runs (default: data/ledger/)",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=str(PROJECT_ROOT / "output"),
        help="JSON and Parquet results directory (default: output/)",
    )
    args = parser.parse_args()

    target_date = date.fromisoformat(args.date) if args.date else date.today()

    setup_logging(PROJECT_ROOT / "logs", target_date)
    logger = logging.getLogger(__name__)

    logger.info("Starting MACROSIGNAL daily run")
    logger.info("  Date: %s", target_date.isoformat())
    logger.info("  Data dir: %s", args.data_dir)

    output_dir = Path(args.output_dir)
    try:
        report = asyncio.run(
            run_pipeline(
                target_date,
                args.data_dir,
                args.symbols,
                output_dir / target_date.isoformat(),
                Path(args.ledger_dir),
            )
        )
        if report is None:
            logger.warning("Another run is in progress; skipped")
            return 2

        print_summary(report)
        save_results(report, output_dir)
        return 1 if report.quality.has_failures else 0

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except MacroSignalError as e:
        logger.error("Daily run failed: %s", e, exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
