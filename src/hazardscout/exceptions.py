"""Custom exception hierarchy for hazardscout."""

from __future__ import annotations


class HazardScoutError(Exception):
    """Base exception for all hazardscout errors."""


class HazardNotFoundError(HazardScoutError):
    """Unknown (or already purged) hazard id."""

    def __init__(self, hazard_id: str) -> None:
        self.hazard_id = hazard_id
        super().__init__(f"Hazard not found: {hazard_id}")


class InvalidHazardInputError(HazardScoutError, ValueError):
    """Malformed creation, event or policy payload."""

    def __init__(self, message: str, *, errors: list[str] | None = None) -> None:
        self.errors = list(errors or [])
        super().__init__(message)


class InvalidTransitionError(HazardScoutError):
    """Requested lifecycle transition is not allowed from the current status."""

    def __init__(self, message: str, *, hazard_id: str = "") -> None:
        self.hazard_id = hazard_id
        super().__init__(message)


class TransitionConflictError(HazardScoutError):
    """A concurrent writer changed the record between read and write.

    Raised by compare-and-retry transitions when the expected record
    version no longer matches.  The scheduler catches this internally and
    re-evaluates the record; it never reaches public callers.
    """

    def __init__(self, hazard_id: str, *, expected_version: int, actual_version: int) -> None:
        self.hazard_id = hazard_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on {hazard_id}: expected {expected_version}, found {actual_version}",
        )


class PolicyEvaluationError(HazardScoutError):
    """A hazard's policy snapshot cannot be evaluated (e.g. corrupt values)."""


class PersistenceError(HazardScoutError):
    """Loading or saving durable state failed."""

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)
