"""Storage adapters for MACROSIGNAL.

- ObservationRepository: read-only contract the engines consume
- MemoryRepository / ParquetRepository: repository adapters
- ResultStore: idempotent storage of engine outputs
"""

from macrosignal.store.base import (
    Observation,
    ObservationRepository,
    PendingRelease,
)
from macrosignal.store.memory import MemoryRepository
from macrosignal.store.parquet_store import ParquetRepository
from macrosignal.store.results import ResultStore

__all__ = [
    "Observation",
    "ObservationRepository",
    "PendingRelease",
    "MemoryRepository",
    "ParquetRepository",
    "ResultStore",
]
