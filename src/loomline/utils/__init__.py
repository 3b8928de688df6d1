"""Utility modules for loomline."""

from .errors import (
    DuplicateCreationError,
    DuplicateIdError,
    HierarchyCycleError,
    InvalidPlacementError,
    LoomlineError,
    RecoveryAction,
    SnapshotError,
    TimeslotNotEmptyError,
    UnknownMilestoneError,
    UnknownObjectError,
    UnknownPlacementError,
    UnknownTimeslotError,
)
from .events import ChangeEvent, ChangeNotifier, ChangeSubscription
from .hashing import canonical_json, digest, sequence_digest
from .telemetry import (
    PerformanceTimer,
    get_logger,
    log_operation,
    record_operation,
    setup_logging,
)

__all__ = [
    "ChangeEvent",
    "ChangeNotifier",
    "ChangeSubscription",
    "DuplicateCreationError",
    "DuplicateIdError",
    "HierarchyCycleError",
    "InvalidPlacementError",
    "LoomlineError",
    "PerformanceTimer",
    "RecoveryAction",
    "SnapshotError",
    "TimeslotNotEmptyError",
    "UnknownMilestoneError",
    "UnknownObjectError",
    "UnknownPlacementError",
    "UnknownTimeslotError",
    "canonical_json",
    "digest",
    "get_logger",
    "log_operation",
    "record_operation",
    "sequence_digest",
    "setup_logging",
]
