"""Placement log: Creation and Mutation events bound to timeslots.

Every placement carries a log sequence number (``seq``). Placements sharing
a timeslot are replayed in ``seq`` order, and because ``seq`` is persisted
with the record that order survives a snapshot round-trip.
"""

from typing import Any

from pydantic import ValidationError

from loomline.core.timeslots import TimeslotUsage
from loomline.schemas.types import Placement, PlacementType
from loomline.utils.errors import (
    DuplicateCreationError,
    DuplicateIdError,
    InvalidPlacementError,
    UnknownPlacementError,
)
from loomline.utils.events import ChangeNotifier
from loomline.utils.hashing import sequence_digest
from loomline.utils.telemetry import get_logger, record_registry_size, utc_now_iso

# Fields an in-place edit never changes
_IDENTITY_FIELDS = frozenset({"id", "seq", "created_at"})


class PlacementLog:
    """Append/remove log of placements keyed by id.

    The log enforces the structural rules of a placement record: unique ids,
    at most one Creation per object, and a mutation payload on (and only on)
    Mutation placements. It does not check that a change's ``from`` value
    matches the state computed before it; deltas are trusted and the last
    write per key wins.

    Examples
    --------
    >>> log = PlacementLog()
    >>> creation = log.add(Placement.creation("obj-1", "ts-1"))
    >>> creation.seq
    1
    >>> [p.id for p in log.get_for_object("obj-1")] == [creation.id]
    True
    """

    def __init__(self) -> None:
        self._placements: dict[str, Placement] = {}
        self._creations: dict[str, str] = {}
        self._next_seq = 1
        self.notifier = ChangeNotifier("placements")
        self._logger = get_logger("loomline.placement_log")

    def __len__(self) -> int:
        return len(self._placements)

    def __contains__(self, placement_id: object) -> bool:
        return placement_id in self._placements

    # Writes

    def add(self, placement: Placement) -> Placement:
        """Append a placement.

        A placement without a sequence number (``seq == 0``) gets the next
        one; a placement that already has one keeps it, which is how undo
        restores a removed placement to its original position.

        Args:
            placement: Placement record to append

        Returns:
            The stored placement, with ``seq`` assigned

        Raises:
            DuplicateIdError: If the id is already in the log
            DuplicateCreationError: If the object already has a Creation
        """
        if placement.id in self._placements:
            raise DuplicateIdError("placement", placement.id)
        if placement.is_creation and placement.object_id in self._creations:
            raise DuplicateCreationError(
                placement.object_id, self._creations[placement.object_id]
            )

        if placement.seq == 0:
            placement = placement.model_copy(update={"seq": self._next_seq})
        self._next_seq = max(self._next_seq, placement.seq + 1)

        self._store(placement)
        self._logger.debug(
            "Placement added",
            placement_id=placement.id,
            object_id=placement.object_id,
            placement_type=placement.type.value,
            timeslot_id=placement.timeslot_id,
            seq=placement.seq,
        )
        self._changed("add", placement_id=placement.id)
        return placement

    def update(self, placement_id: str, partial: dict[str, Any]) -> Placement | None:
        """Shallow-merge ``partial`` into a placement, keeping its identity.

        ``id``, ``seq`` and ``created_at`` are never changed; ``updated_at``
        is bumped.

        Returns:
            The updated placement, or None if the id is unknown

        Raises:
            InvalidPlacementError: If the merged record fails validation
            DuplicateCreationError: If the edit would give the object a
                second Creation
        """
        existing = self._placements.get(placement_id)
        if existing is None:
            return None

        merged = existing.model_dump()
        merged.update({k: v for k, v in partial.items() if k not in _IDENTITY_FIELDS})
        merged["updated_at"] = utc_now_iso()

        try:
            updated = Placement.model_validate(merged)
        except ValidationError as e:
            problems = [error["msg"] for error in e.errors()]
            raise InvalidPlacementError(placement_id, problems) from e

        if updated.is_creation:
            holder = self._creations.get(updated.object_id)
            if holder is not None and holder != placement_id:
                raise DuplicateCreationError(updated.object_id, holder)

        self._unstore(existing)
        self._store(updated)
        self._logger.debug(
            "Placement updated", placement_id=placement_id, fields=sorted(partial)
        )
        self._changed("update", placement_id=placement_id)
        return updated

    def restore(self, placement: Placement) -> Placement:
        """Put back an exact earlier version of a placement.

        Used by undo: the record is stored as given, including its
        timestamps, replacing the current version if there is one.
        """
        existing = self._placements.get(placement.id)
        if existing is not None:
            self._unstore(existing)
        elif placement.is_creation and placement.object_id in self._creations:
            raise DuplicateCreationError(
                placement.object_id, self._creations[placement.object_id]
            )

        self._next_seq = max(self._next_seq, placement.seq + 1)
        self._store(placement)
        self._changed("restore", placement_id=placement.id)
        return placement

    def remove(self, placement_id: str) -> Placement | None:
        existing = self._placements.get(placement_id)
        if existing is None:
            return None

        self._unstore(existing)
        self._logger.debug(
            "Placement removed", placement_id=placement_id, object_id=existing.object_id
        )
        self._changed("remove", placement_id=placement_id)
        return existing

    def remove_all_for_object(self, object_id: str) -> list[Placement]:
        """Remove every placement of an object, returning them in seq order."""
        removed = self.get_for_object(object_id)
        if not removed:
            return []

        for placement in removed:
            self._unstore(placement)
        self._changed("remove_all", object_id=object_id, count=len(removed))
        return removed

    # Thread tags

    def add_tag(self, placement_id: str, thread_id: str) -> bool:
        """Tag a placement with a thread (set semantics).

        Returns:
            True if the tag was added, False if it was already present

        Raises:
            UnknownPlacementError: If the placement does not exist
        """
        placement = self._require(placement_id)
        if thread_id in placement.thread_ids:
            return False

        self._replace_fields(
            placement, thread_ids=[*placement.thread_ids, thread_id]
        )
        self._changed("tag", placement_id=placement_id, thread_id=thread_id)
        return True

    def remove_tag(
        self,
        placement_id: str,
        thread_id: str,
        subthread_ids: frozenset[str] | set[str] = frozenset(),
    ) -> bool:
        """Untag a placement, dropping the given subthread ids with it.

        Args:
            placement_id: Placement to untag
            thread_id: Thread to remove
            subthread_ids: Section ids of that thread, which lose their
                meaning once the placement leaves the thread

        Returns:
            True if the tag was present and removed
        """
        placement = self._require(placement_id)
        if thread_id not in placement.thread_ids:
            return False

        self._replace_fields(
            placement,
            thread_ids=[tid for tid in placement.thread_ids if tid != thread_id],
            subthread_ids=[
                sid for sid in placement.subthread_ids if sid not in subthread_ids
            ],
        )
        self._changed("untag", placement_id=placement_id, thread_id=thread_id)
        return True

    def set_subthreads(self, placement_id: str, subthread_ids: list[str]) -> bool:
        """Replace a placement's subthread ids (duplicates collapse)."""
        placement = self._require(placement_id)
        unique = list(dict.fromkeys(subthread_ids))
        if unique == placement.subthread_ids:
            return False

        self._replace_fields(placement, subthread_ids=unique)
        self._changed("subthreads", placement_id=placement_id)
        return True

    # Reads

    def get(self, placement_id: str) -> Placement | None:
        return self._placements.get(placement_id)

    def all(self) -> list[Placement]:
        """All placements in log (seq) order."""
        return sorted(self._placements.values(), key=lambda p: p.seq)

    def get_for_object(self, object_id: str) -> list[Placement]:
        return [p for p in self.all() if p.object_id == object_id]

    def creation_for(self, object_id: str) -> Placement | None:
        placement_id = self._creations.get(object_id)
        return self._placements.get(placement_id) if placement_id else None

    def mutations_for(self, object_id: str) -> list[Placement]:
        return [p for p in self.get_for_object(object_id) if p.is_mutation]

    def at_timeslot(self, timeslot_id: str) -> list[Placement]:
        return [p for p in self.all() if p.timeslot_id == timeslot_id]

    def attached_to(self, card_object_id: str) -> list[Placement]:
        """Mutations drawn beneath a card."""
        return [p for p in self.all() if p.attached_to_card_id == card_object_id]

    def in_thread(self, thread_id: str) -> list[Placement]:
        return [p for p in self.all() if thread_id in p.thread_ids]

    def timeslot_usage(self, timeslot_id: str) -> TimeslotUsage:
        """Usage probe for the timeslot registry.

        A Creation counts as a card and a Mutation as a mutation.
        """
        cards = mutations = 0
        for placement in self._placements.values():
            if placement.timeslot_id != timeslot_id:
                continue
            if placement.type is PlacementType.CREATION:
                cards += 1
            else:
                mutations += 1
        return TimeslotUsage(cards, mutations)

    def references_timeslot(self, timeslot_id: str) -> bool:
        return not self.timeslot_usage(timeslot_id).is_empty

    def validate_integrity(self, timeslot_order: list[str]) -> list[str]:
        """Check the log against a timeslot order.

        Returns:
            Human-readable problems; empty when the log is consistent
        """
        problems: list[str] = []
        live = set(timeslot_order)
        seen_seq: dict[int, str] = {}

        for placement in self.all():
            if placement.timeslot_id not in live:
                problems.append(
                    f"placement {placement.id} references missing timeslot "
                    f"{placement.timeslot_id}"
                )
            if placement.seq in seen_seq:
                problems.append(
                    f"placement {placement.id} shares seq {placement.seq} with "
                    f"{seen_seq[placement.seq]}"
                )
            seen_seq[placement.seq] = placement.id
            if placement.is_mutation and not (
                placement.mutation.changes
                or placement.mutation.content_change
                or placement.mutation.section_changes
            ):
                problems.append(f"mutation {placement.id} carries no changes")

        return problems

    def digest(self) -> str:
        """Order-sensitive digest of the whole log."""
        return sequence_digest(self.all())

    # Persistence boundary

    def load(self, placements: list[Placement]) -> None:
        """Replace the whole log.

        Records are added in the given order, so records without a sequence
        number are numbered after the highest persisted one in list order.
        """
        self._placements = {}
        self._creations = {}
        self._next_seq = max((p.seq for p in placements), default=0) + 1

        for placement in placements:
            if placement.id in self._placements:
                raise DuplicateIdError("placement", placement.id)
            if placement.is_creation and placement.object_id in self._creations:
                raise DuplicateCreationError(
                    placement.object_id, self._creations[placement.object_id]
                )
            if placement.seq == 0:
                placement = placement.model_copy(update={"seq": self._next_seq})
                self._next_seq += 1
            self._store(placement)

        self._changed("load", count=len(self._placements))

    def clear(self) -> None:
        self._placements = {}
        self._creations = {}
        self._next_seq = 1
        self._changed("clear")

    # Internals

    def _require(self, placement_id: str) -> Placement:
        placement = self._placements.get(placement_id)
        if placement is None:
            raise UnknownPlacementError(placement_id)
        return placement

    def _replace_fields(self, placement: Placement, **fields: Any) -> None:
        updated = placement.model_copy(update={**fields, "updated_at": utc_now_iso()})
        self._placements[placement.id] = updated

    def _store(self, placement: Placement) -> None:
        self._placements[placement.id] = placement
        if placement.is_creation:
            self._creations[placement.object_id] = placement.id

    def _unstore(self, placement: Placement) -> None:
        del self._placements[placement.id]
        if self._creations.get(placement.object_id) == placement.id:
            del self._creations[placement.object_id]

    def _changed(self, action: str, **details: Any) -> None:
        record_registry_size("placements", len(self._placements))
        self.notifier.notify(action, **details)
