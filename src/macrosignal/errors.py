"""Error taxonomy for MACROSIGNAL.

Only infrastructure faults abort a run. Data gaps and short samples are
raised internally and converted into null values with an explicit reason
at the engine boundary; quality failures are reported as diagnostics and
only raised when a consumer asks for it.
"""


class MacroSignalError(Exception):
    """Base class for all MACROSIGNAL errors."""


class DataGapError(MacroSignalError):
    """A recent observation needed for a reading is missing."""


class InsufficientSampleError(MacroSignalError):
    """Fewer aligned observations than a window's minimum sample.

    Attributes:
        n_observations: Number of points actually available
        min_obs: Minimum required by the window
    """

    def __init__(self, n_observations: int, min_obs: int) -> None:
        super().__init__(f"n = {n_observations} < {min_obs}")
        self.n_observations = n_observations
        self.min_obs = min_obs


class InconsistentStateError(MacroSignalError):
    """A quality invariant failed (two code paths disagree)."""

    def __init__(self, failures: list) -> None:
        names = ", ".join(sorted({f.name for f in failures}))
        super().__init__(f"{len(failures)} quality invariant(s) failed: {names}")
        self.failures = failures


class DuplicateReleaseError(MacroSignalError):
    """An economic event already has a recorded release."""

    def __init__(self, event_id: str) -> None:
        super().__init__(f"Event {event_id} already has a release")
        self.event_id = event_id


class RepositoryUnavailableError(MacroSignalError):
    """The observation repository cannot be reached or read."""
