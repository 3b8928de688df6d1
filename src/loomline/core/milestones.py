"""Milestone registry: named structural markers (acts, parts...).

A milestone sits before a timeslot; its rank is derived from that
timeslot's position and is never stored. A milestone with no timeslot sits
before the first timeslot (rank 0). One whose timeslot is gone is dangling
(rank -1) and sorts after every anchored milestone.
"""

from typing import Any

from loomline.core.timeslots import TimeslotRegistry
from loomline.schemas.types import Milestone
from loomline.utils.errors import DuplicateIdError
from loomline.utils.events import ChangeNotifier
from loomline.utils.telemetry import get_logger, record_registry_size, utc_now_iso

_IDENTITY_FIELDS = frozenset({"id", "created_at"})


class MilestoneRegistry:
    """Owns milestones and answers section queries against the timeslot order."""

    def __init__(self, timeslots: TimeslotRegistry) -> None:
        self._timeslots = timeslots
        self._milestones: dict[str, Milestone] = {}
        self._positions: dict[str, int] = {}
        self.notifier = ChangeNotifier("milestones")
        self._logger = get_logger("loomline.milestones")

    def __len__(self) -> int:
        return len(self._milestones)

    def __contains__(self, milestone_id: object) -> bool:
        return milestone_id in self._milestones

    # Writes

    def create(
        self, name: str, timeslot_id: str | None = None, **fields: Any
    ) -> Milestone:
        return self.add(Milestone(name=name, timeslot_id=timeslot_id, **fields))

    def add(self, milestone: Milestone) -> Milestone:
        if milestone.id in self._milestones:
            raise DuplicateIdError("milestone", milestone.id)

        self._put(milestone)
        self._logger.debug(
            "Milestone added", milestone_id=milestone.id, timeslot_id=milestone.timeslot_id
        )
        self._changed("add", milestone_id=milestone.id)
        return milestone

    def update(self, milestone_id: str, partial: dict[str, Any]) -> Milestone | None:
        existing = self._milestones.get(milestone_id)
        if existing is None:
            return None

        merged = existing.model_dump()
        merged.update({k: v for k, v in partial.items() if k not in _IDENTITY_FIELDS})
        merged["updated_at"] = utc_now_iso()
        updated = Milestone.model_validate(merged)

        self._milestones[milestone_id] = updated
        self._changed("update", milestone_id=milestone_id)
        return updated

    def move(self, milestone_id: str, timeslot_id: str | None) -> Milestone | None:
        """Re-anchor a milestone before another timeslot (None = start)."""
        return self.update(milestone_id, {"timeslot_id": timeslot_id})

    def restore(self, milestone: Milestone) -> Milestone:
        """Store an exact earlier version of a milestone (used by undo)."""
        self._put(milestone)
        self._changed("restore", milestone_id=milestone.id)
        return milestone

    def delete(self, milestone_id: str) -> Milestone | None:
        existing = self._milestones.pop(milestone_id, None)
        if existing is not None:
            self._changed("delete", milestone_id=milestone_id)
        return existing

    def reanchor(
        self, removed_timeslot_id: str, next_timeslot_id: str | None
    ) -> list[Milestone]:
        """Move milestones off a timeslot that is being removed.

        Milestones anchored to ``removed_timeslot_id`` move to
        ``next_timeslot_id``. When the removed timeslot was the last one
        there is nothing to move to and they are left dangling.

        Returns:
            The previous versions of every milestone that moved
        """
        if next_timeslot_id is None:
            return []

        previous = self.anchored_to(removed_timeslot_id)
        for milestone in previous:
            self._milestones[milestone.id] = milestone.model_copy(
                update={"timeslot_id": next_timeslot_id, "updated_at": utc_now_iso()}
            )
        if previous:
            self._changed(
                "reanchor",
                from_timeslot_id=removed_timeslot_id,
                to_timeslot_id=next_timeslot_id,
                count=len(previous),
            )
        return previous

    # Reads

    def get(self, milestone_id: str) -> Milestone | None:
        return self._milestones.get(milestone_id)

    def get_by_name(self, name: str) -> Milestone | None:
        wanted = name.casefold()
        for milestone in self.all():
            if milestone.name.casefold() == wanted:
                return milestone
        return None

    def anchored_to(self, timeslot_id: str) -> list[Milestone]:
        return [m for m in self._milestones.values() if m.timeslot_id == timeslot_id]

    def rank_of(self, milestone: Milestone | str) -> int:
        """Rank of the timeslot a milestone precedes.

        Returns:
            0 for a milestone at the start, -1 for a dangling one
        """
        if isinstance(milestone, str):
            found = self._milestones.get(milestone)
            if found is None:
                return -1
            milestone = found
        if milestone.timeslot_id is None:
            return 0
        return self._timeslots.index_of(milestone.timeslot_id)

    def all(self) -> list[Milestone]:
        """Milestones by rank; ties keep insertion order, dangling ones last."""
        ranked = [
            (self.rank_of(m), self._positions[m.id], m)
            for m in self._milestones.values()
        ]
        ranked.sort(key=lambda item: (item[0] < 0, item[0], item[1]))
        return [m for _, _, m in ranked]

    def section_for_index(self, index: int) -> Milestone | None:
        """Milestone whose section contains the timeslot at ``index``.

        That is the last anchored milestone with rank at or before
        ``index``; None when the index precedes every milestone.
        """
        current: Milestone | None = None
        for milestone in self.all():
            rank = self.rank_of(milestone)
            if rank < 0 or rank > index:
                break
            current = milestone
        return current

    def section_range(self, milestone_id: str) -> tuple[int, int] | None:
        """Half-open ``[start, end)`` index range covered by a milestone.

        The range ends where the next milestone begins, or at the end of the
        timeline. Dangling and unknown milestones have no range.
        """
        milestone = self._milestones.get(milestone_id)
        if milestone is None:
            return None

        start = self.rank_of(milestone)
        if start < 0:
            return None

        end = len(self._timeslots)
        ordered = self.all()
        position = ordered.index(milestone)
        for later in ordered[position + 1:]:
            rank = self.rank_of(later)
            if rank >= 0:
                end = rank
            break
        return start, max(start, end)

    # Persistence boundary

    def load(self, milestones: list[Milestone]) -> None:
        ids = [m.id for m in milestones]
        if len(set(ids)) != len(ids):
            duplicate = next(mid for mid in ids if ids.count(mid) > 1)
            raise DuplicateIdError("milestone", duplicate)

        self._milestones = {}
        self._positions = {}
        for milestone in milestones:
            self._put(milestone)
        self._changed("load", count=len(self._milestones))

    def clear(self) -> None:
        self._milestones = {}
        self._positions = {}
        self._changed("clear")

    def _put(self, milestone: Milestone) -> None:
        self._positions.setdefault(milestone.id, len(self._positions))
        self._milestones[milestone.id] = milestone

    def _changed(self, action: str, **details: Any) -> None:
        record_registry_size("milestones", len(self._milestones))
        self.notifier.notify(action, **details)
