"""Shared fixtures: a synthetic repository with a clear macro picture.

USD data is firming (CPI and core PCE accelerating, unemployment falling,
policy rate and retail sales rising) while EUR data is softening, so USD
scores Hawkish, EUR Dovish, and EURUSD tracks the inverse of the dollar
index.
"""

from datetime import date, datetime, timezone

import numpy as np
import pandas as pd
import pytest

from macrosignal.catalog.indicators import Directionality
from macrosignal.engine.surprise import EconomicEvent
from macrosignal.store.memory import MemoryRepository

AS_OF = date(2024, 6, 28)
RELEASED_AT = datetime(2024, 6, 28, 12, 30, tzinfo=timezone.utc)


def monthly(values: list[float], end: date = AS_OF) -> list[tuple[date, float]]:
    dates = pd.date_range(end=end, periods=len(values), freq="MS")
    return [(d.date(), v) for d, v in zip(dates, values)]


def yoy_levels(prior_yoy: float, current_yoy: float) -> list[float]:
    """24 monthly index levels whose last two YoY prints are prior_yoy, current_yoy."""
    base = [100.0] * 12
    middle = [100.0 * (1 + prior_yoy / 100)] * 11
    return base + middle + [100.0 * (1 + current_yoy / 100)]


def random_walk(start: float, vol: float, seed: int, n_days: int = 300) -> pd.Series:
    rng = np.random.default_rng(seed)
    dates = pd.bdate_range(end=AS_OF, periods=n_days)
    return pd.Series(start * np.exp(np.cumsum(rng.normal(0, vol, n_days))), index=dates)


def cpi_event(**overrides) -> EconomicEvent:
    params = dict(
        event_id="US-CPI-2024-06",
        currency="USD",
        indicator_key="cpi_yoy",
        scheduled_time=RELEASED_AT,
        consensus=4.2,
        previous=3.0,
        directionality=Directionality.HIGHER_IS_POSITIVE,
        name="US CPI y/y",
    )
    params.update(overrides)
    return EconomicEvent(**params)


@pytest.fixture
def as_of() -> date:
    return AS_OF


@pytest.fixture
def repository() -> MemoryRepository:
    """In-memory repository populated with the synthetic macro picture."""
    repo = MemoryRepository()

    # United States: five usable indicators, all voting USD-positive
    repo.upsert_observations("CPIAUCSL", monthly(yoy_levels(3.0, 4.5)))
    repo.upsert_observations("PCEPILFE", monthly(yoy_levels(2.8, 3.4)))
    repo.upsert_observations("UNRATE", monthly([4.0] * 23 + [3.8]))
    repo.upsert_observations("FEDFUNDS", monthly([5.0] * 23 + [5.25]))
    repo.upsert_observations("RSAFS", monthly([700.0] * 23 + [707.0]))

    # Euro area: three usable indicators, all voting EUR-negative
    repo.upsert_observations("CP0000EZ19M086NEST", monthly(yoy_levels(3.0, 1.5)))
    repo.upsert_observations("LRHUTTTTEZM156S", monthly([6.4] * 23 + [6.6]))
    ecb_days = pd.bdate_range(end=AS_OF, periods=40)
    repo.upsert_observations(
        "ECBDFR", [(d.date(), 4.0 if i < len(ecb_days) - 1 else 3.75) for i, d in enumerate(ecb_days)]
    )

    dxy = random_walk(104.0, 0.004, seed=7)
    repo.upsert_prices("DXY", dxy)
    repo.upsert_prices("EURUSD", 112.0 / dxy * random_walk(1.0, 0.001, seed=11))
    repo.upsert_prices("USDJPY", 1.45 * dxy * random_walk(1.0, 0.001, seed=3))

    repo.add_release(cpi_event(), actual=4.5, released_at=RELEASED_AT)
    return repo
