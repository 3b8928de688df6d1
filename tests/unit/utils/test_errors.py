"""Unit tests for engine error types."""

import pytest

from loomline.utils.errors import (
    DuplicateCreationError,
    DuplicateIdError,
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


class TestLoomlineError:
    """Test base LoomlineError class."""

    def test_initialization(self) -> None:
        """Test error initialization with message and recovery action."""
        error = LoomlineError("Test error", RecoveryAction.REFRESH)
        assert str(error) == "Test error"
        assert error.recovery_action == RecoveryAction.REFRESH

    def test_default_recovery_action(self) -> None:
        """Test default recovery action is ABORT."""
        assert LoomlineError("Test error").recovery_action == RecoveryAction.ABORT


class TestUnknownReferenceErrors:
    """Test the unknown-id family."""

    @pytest.mark.parametrize(
        ("error_type", "kind"),
        [
            (UnknownTimeslotError, "timeslot"),
            (UnknownObjectError, "object"),
            (UnknownPlacementError, "placement"),
            (UnknownMilestoneError, "milestone"),
        ],
    )
    def test_message_and_recovery(self, error_type: type, kind: str) -> None:
        error = error_type("abc")

        assert error.record_id == "abc"
        assert str(error) == f"Unknown {kind}: abc"
        assert error.recovery_action == RecoveryAction.REFRESH
        assert isinstance(error, LoomlineError)


class TestRecordErrors:
    """Test errors carrying record details."""

    def test_duplicate_id(self) -> None:
        error = DuplicateIdError("placement", "p1")
        assert (error.kind, error.record_id) == ("placement", "p1")
        assert error.recovery_action == RecoveryAction.FIX_INPUT

    def test_duplicate_creation(self) -> None:
        error = DuplicateCreationError("frodo", "p1")
        assert str(error) == "Object frodo already has creation placement p1"
        assert error.existing_placement_id == "p1"

    def test_invalid_placement(self) -> None:
        error = InvalidPlacementError("p1", ["no mutation payload", "bad seq"])
        assert error.problems == ["no mutation payload", "bad seq"]
        assert str(error) == "Placement p1 is invalid: no mutation payload; bad seq"

    def test_timeslot_not_empty(self) -> None:
        error = TimeslotNotEmptyError("t1", 1, 2)

        assert error.card_count == 1
        assert error.mutation_count == 2
        assert str(error) == "Timeslot t1 is not empty: 1 card(s), 2 mutation(s)"
        assert error.recovery_action == RecoveryAction.DETACH_FIRST

    def test_snapshot_error(self) -> None:
        error = SnapshotError(["duplicate object id a", "duplicate object id b"])

        assert len(error.problems) == 2
        assert str(error).startswith("Invalid project snapshot: duplicate object id a;")
