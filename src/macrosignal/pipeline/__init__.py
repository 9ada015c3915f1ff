"""Pipeline orchestration — Repository → Engines → Results → Quality.

Components:
- Orchestrator: Main coordinator (diagnosis → correlations → releases → bias → quality)
- RunState: Per-run state, opened and closed at run boundaries
- RunLock: Acquire-or-skip lock preventing overlapping runs
"""

from macrosignal.pipeline.lock import RunLock
from macrosignal.pipeline.orchestrator import Orchestrator, RunReport
from macrosignal.pipeline.state import RunState

__all__ = ["Orchestrator", "RunReport", "RunLock", "RunState"]
