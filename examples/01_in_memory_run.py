"""Example 1: In-Memory Run

This example shows the most basic usage of MACROSIGNAL: loading a few
indicator and price series into an in-memory repository and running the
full pipeline for one day.

For demonstration purposes, this uses synthetic data.
In production, the repository would be a ParquetRepository populated
by your own ingestion jobs.
"""

import asyncio
from datetime import date, datetime, timezone

import numpy as np
import pandas as pd

from macrosignal.catalog import Directionality
from macrosignal.engine import EconomicEvent
from macrosignal.pipeline import Orchestrator
from macrosignal.store import MemoryRepository

AS_OF = date(2024, 6, 28)


def monthly(start: float, step: float, periods: int = 24) -> list[tuple[date, float]]:
    dates = pd.date_range(end=AS_OF, periods=periods, freq="MS")
    return [(d.date(), start + step * i) for i, d in enumerate(dates)]


def random_walk(start: float, vol: float, seed: int, n_days: int = 300) -> pd.Series:
    rng = np.random.default_rng(seed)
    dates = pd.bdate_range(end=AS_OF, periods=n_days)
    return pd.Series(start * np.exp(np.cumsum(rng.normal(0, vol, n_days))), index=dates)


def build_repository() -> MemoryRepository:
    """Synthetic observations: USD data improving, EUR data softening."""
    repo = MemoryRepository()

    # United States
    repo.upsert_observations("CPIAUCSL", monthly(300.0, 1.0))
    repo.upsert_observations("PCEPILFE", monthly(118.0, 0.35))
    repo.upsert_observations("RSAFS", monthly(690.0, 2.5))
    repo.upsert_observations("UNRATE", monthly(4.0, -0.02))
    repo.upsert_observations("FEDFUNDS", monthly(5.0, 0.01))
    repo.upsert_observations("UMCSENT", monthly(65.0, 0.4))

    # Euro area
    repo.upsert_observations("CP0000EZ19M086NEST", monthly(120.0, 0.1))
    repo.upsert_observations("LRHUTTTTEZM156S", monthly(6.4, 0.02))
    ecb = pd.bdate_range(end=AS_OF, periods=60)
    repo.upsert_observations("ECBDFR", [(d.date(), 4.0 if i < 50 else 3.75) for i, d in enumerate(ecb)])

    # Prices (EURUSD moves inversely to the dollar index)
    dxy = random_walk(104.0, 0.004, seed=7)
    noise = random_walk(1.0, 0.002, seed=11)
    repo.upsert_prices("DXY", dxy)
    repo.upsert_prices("EURUSD", 112.0 / dxy * noise)
    repo.upsert_prices("USDJPY", random_walk(150.0, 0.005, seed=3) * (dxy / 104.0))

    # A CPI print released on the run date
    cpi = EconomicEvent(
        event_id="US-CPI-2024-06",
        currency="USD",
        indicator_key="cpi_yoy",
        scheduled_time=datetime(2024, 6, 28, 12, 30, tzinfo=timezone.utc),
        consensus=3.3,
        previous=3.4,
        directionality=Directionality.HIGHER_IS_POSITIVE,
        name="US CPI y/y",
    )
    repo.add_release(cpi, actual=3.5, released_at=datetime(2024, 6, 28, 12, 30, tzinfo=timezone.utc))
    return repo


async def main():
    """Run the in-memory example."""
    print("=" * 60)
    print("MACROSIGNAL — Example 1: In-Memory Run")
    print("=" * 60)
    print()

    print("Step 1: Building a synthetic repository...")
    orchestrator = Orchestrator(repository=build_repository())
    print()

    print("Step 2: Running the pipeline...")
    report = await orchestrator.run(as_of=AS_OF, symbols=["EURUSD", "USDJPY"])
    print()

    print("Step 3: Report")
    print(report.format_report())
    print()

    print("Step 4: Narratives")
    for bias in report.biases.values():
        print(f"  {bias.narrative}")
    print()

    for outcome in report.releases:
        impact = outcome.impact
        if impact is not None:
            print(
                f"Release {impact.release_id}: USD score "
                f"{impact.score_before} -> {impact.score_after}"
            )


if __name__ == "__main__":
    asyncio.run(main())
