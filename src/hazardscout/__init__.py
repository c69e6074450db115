"""hazardscout - Road hazard lifecycle tracking with crowd confirmation."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("hazardscout")
except PackageNotFoundError:
    __version__ = "0+local"
from hazardscout.config import HazardScoutConfig
from hazardscout.exceptions import (
    HazardNotFoundError,
    HazardScoutError,
    InvalidHazardInputError,
    InvalidTransitionError,
    PersistenceError,
    PolicyEvaluationError,
    TransitionConflictError,
)
from hazardscout.models import (
    ConfirmationEntry,
    DetectionResult,
    DoNotDisturbWindow,
    GeoPoint,
    HazardInput,
    HazardRecord,
    HazardSeverity,
    HazardSource,
    HazardStatus,
    NotificationSettings,
    PolicySnapshot,
    PolicyUpdateResult,
    ProximityAlert,
    ResolutionProgress,
    ServiceSettings,
    StatusReason,
    VoteOutcome,
    VoteResult,
    VoteType,
)
from hazardscout.notifier import ProximityNotifier
from hazardscout.persistence import JsonFileStateBackend, MemoryStateBackend, PersistedState, StateBackend
from hazardscout.scheduler import Scheduler, SweepReport
from hazardscout.service import HazardService
from hazardscout.state.events import ChangeKind, ConfirmationEvent, DetectionEvent, HazardChange, PolicyUpdate
from hazardscout.state.ledger import ConfirmationLedger
from hazardscout.state.store import HazardStore

__all__ = [
    "__version__",
    "ChangeKind",
    "ConfirmationEntry",
    "ConfirmationEvent",
    "ConfirmationLedger",
    "DetectionEvent",
    "DetectionResult",
    "DoNotDisturbWindow",
    "GeoPoint",
    "HazardChange",
    "HazardInput",
    "HazardNotFoundError",
    "HazardRecord",
    "HazardScoutConfig",
    "HazardScoutError",
    "HazardService",
    "HazardSeverity",
    "HazardSource",
    "HazardStatus",
    "HazardStore",
    "InvalidHazardInputError",
    "InvalidTransitionError",
    "JsonFileStateBackend",
    "MemoryStateBackend",
    "NotificationSettings",
    "PersistedState",
    "PersistenceError",
    "PolicyEvaluationError",
    "PolicySnapshot",
    "PolicyUpdate",
    "PolicyUpdateResult",
    "ProximityAlert",
    "ProximityNotifier",
    "ResolutionProgress",
    "Scheduler",
    "ServiceSettings",
    "StatusReason",
    "StateBackend",
    "SweepReport",
    "TransitionConflictError",
    "VoteOutcome",
    "VoteResult",
    "VoteType",
]
