"""Structured error types for the timeline engine.

This module provides structured exceptions with recovery actions for the
failure cases the registries and command factories can hit. The operation
registry catches all of them at its boundary; lower layers simply raise.
"""

from enum import Enum


class RecoveryAction(Enum):
    """Recovery actions suggested to the caller."""

    ABORT = "abort"
    REFRESH = "refresh"
    DETACH_FIRST = "detach_first"
    FIX_INPUT = "fix_input"


class LoomlineError(Exception):
    """Base exception for engine errors."""

    def __init__(
        self, message: str, recovery_action: RecoveryAction = RecoveryAction.ABORT
    ):
        """Initialize engine error.

        Args:
            message: Error message
            recovery_action: Suggested recovery action
        """
        super().__init__(message)
        self.recovery_action = recovery_action


class _UnknownReferenceError(LoomlineError):
    """Raised when an id does not resolve to a live record."""

    kind = "record"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Unknown {self.kind}: {record_id}", RecoveryAction.REFRESH)


class UnknownTimeslotError(_UnknownReferenceError):
    """Timeslot id is not part of the current order."""

    kind = "timeslot"


class UnknownObjectError(_UnknownReferenceError):
    """Object id is not registered."""

    kind = "object"


class UnknownPlacementError(_UnknownReferenceError):
    """Placement id is not in the log."""

    kind = "placement"


class UnknownMilestoneError(_UnknownReferenceError):
    """Milestone id is not registered."""

    kind = "milestone"


class DuplicateIdError(LoomlineError):
    """Error raised when a record is added under an id that is already taken."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(
            f"Duplicate {kind} id: {record_id}", RecoveryAction.FIX_INPUT
        )


class HierarchyCycleError(LoomlineError):
    """Error raised when reparenting would put an object below itself."""

    def __init__(self, object_id: str, parent_id: str):
        self.object_id = object_id
        self.parent_id = parent_id

        message = (
            f"Object {object_id} cannot be placed under {parent_id}: "
            "it would become its own ancestor"
        )
        super().__init__(message, RecoveryAction.FIX_INPUT)


class DuplicateCreationError(LoomlineError):
    """Error raised when an object would receive a second Creation placement.

    Each object is created on the timeline at most once; further appearances
    are expressed as Mutation placements.
    """

    def __init__(self, object_id: str, existing_placement_id: str):
        self.object_id = object_id
        self.existing_placement_id = existing_placement_id

        message = (
            f"Object {object_id} already has creation placement "
            f"{existing_placement_id}"
        )
        super().__init__(message, RecoveryAction.ABORT)


class InvalidPlacementError(LoomlineError):
    """Error raised when a placement record violates its invariants."""

    def __init__(self, placement_id: str, problems: list[str]):
        self.placement_id = placement_id
        self.problems = problems

        message = f"Placement {placement_id} is invalid: {'; '.join(problems)}"
        super().__init__(message, RecoveryAction.FIX_INPUT)


class TimeslotNotEmptyError(LoomlineError):
    """Error raised when removing a timeslot that cards or mutations still use."""

    def __init__(self, timeslot_id: str, card_count: int, mutation_count: int):
        self.timeslot_id = timeslot_id
        self.card_count = card_count
        self.mutation_count = mutation_count

        message = (
            f"Timeslot {timeslot_id} is not empty: "
            f"{card_count} card(s), {mutation_count} mutation(s)"
        )
        super().__init__(message, RecoveryAction.DETACH_FIRST)


class SnapshotError(LoomlineError):
    """Error raised when a project snapshot cannot be loaded."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__(
            f"Invalid project snapshot: {'; '.join(problems)}", RecoveryAction.ABORT
        )
