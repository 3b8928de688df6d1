"""Timeslot registry: identity and canonical order of narrative moments.

Timeslots are referenced everywhere by id, never by rank, so reordering or
inserting only touches the order list. Rank (index in the order) is the sole
source of before/after.
"""

from collections.abc import Callable
from typing import NamedTuple

from loomline.schemas.types import Timeslot
from loomline.utils.errors import DuplicateIdError
from loomline.utils.events import ChangeNotifier
from loomline.utils.telemetry import get_logger, record_registry_size


class TimeslotUsage(NamedTuple):
    """Cards and mutations that reference one timeslot."""

    cards: int = 0
    mutations: int = 0

    @property
    def is_empty(self) -> bool:
        return self.cards == 0 and self.mutations == 0


UsageProbe = Callable[[str], TimeslotUsage]


class TimeslotRegistry:
    """Owns timeslot records and their order.

    Consumers that reference timeslots (the placement log, the object
    registry) register a usage probe so that ``remove_if_empty`` can refuse
    to drop a timeslot that is still in use.

    Examples
    --------
    >>> registry = TimeslotRegistry()
    >>> first = registry.create_at_end()
    >>> second = registry.create_after(0)
    >>> registry.index_of(second)
    1
    """

    def __init__(self) -> None:
        self._order: list[str] = []
        self._timeslots: dict[str, Timeslot] = {}
        self._probes: list[UsageProbe] = []
        self.notifier = ChangeNotifier("timeslots")
        self._logger = get_logger("loomline.timeslots")

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, timeslot_id: object) -> bool:
        return timeslot_id in self._timeslots

    @property
    def order(self) -> list[str]:
        """Timeslot ids in rank order (a copy)."""
        return list(self._order)

    def all(self) -> list[Timeslot]:
        return [self._timeslots[tid] for tid in self._order]

    def get(self, timeslot_id: str) -> Timeslot | None:
        return self._timeslots.get(timeslot_id)

    def index_of(self, timeslot_id: str | None) -> int:
        """Rank of a timeslot, or -1 when it is not on the timeline."""
        if timeslot_id is None or timeslot_id not in self._timeslots:
            return -1
        return self._order.index(timeslot_id)

    def id_at(self, index: int) -> str | None:
        if 0 <= index < len(self._order):
            return self._order[index]
        return None

    def rank_map(self) -> dict[str, int]:
        """Map every live timeslot id to its rank."""
        return {tid: rank for rank, tid in enumerate(self._order)}

    # Creation

    def create_at_end(self) -> str:
        return self.insert(Timeslot(), len(self._order)).id

    def create_after(self, index: int) -> str:
        """Create a timeslot directly after ``index``.

        The index is clamped to ``[-1, len - 1]``, so ``create_after(-1)`` on
        any order inserts at the front and an index past the end appends.
        """
        anchor = max(-1, min(index, len(self._order) - 1))
        return self.insert(Timeslot(), anchor + 1).id

    def create_before(self, index: int) -> str:
        """Create a timeslot directly before ``index`` (clamped to ``[0, len]``)."""
        position = max(0, min(index, len(self._order)))
        return self.insert(Timeslot(), position).id

    # Primitives used by commands

    def insert(self, timeslot: Timeslot, index: int) -> Timeslot:
        """Insert an existing timeslot record at ``index`` (clamped).

        Raises:
            DuplicateIdError: If the timeslot is already in the order
        """
        if timeslot.id in self._timeslots:
            raise DuplicateIdError("timeslot", timeslot.id)

        position = max(0, min(index, len(self._order)))
        self._timeslots[timeslot.id] = timeslot
        self._order.insert(position, timeslot.id)

        self._logger.debug("Timeslot inserted", timeslot_id=timeslot.id, index=position)
        self._changed("insert", timeslot_id=timeslot.id, index=position)
        return timeslot

    def discard(self, timeslot_id: str) -> int:
        """Remove a timeslot without checking usage.

        Returns:
            The rank the timeslot had, or -1 if it was not present
        """
        if timeslot_id not in self._timeslots:
            return -1

        position = self._order.index(timeslot_id)
        del self._order[position]
        del self._timeslots[timeslot_id]

        self._logger.debug("Timeslot discarded", timeslot_id=timeslot_id, index=position)
        self._changed("discard", timeslot_id=timeslot_id, index=position)
        return position

    # Reordering and removal

    def move_to_index(self, timeslot_id: str, new_index: int) -> bool:
        """Move a timeslot to a new rank, keeping its identity.

        Returns:
            True if the order changed
        """
        if timeslot_id not in self._timeslots:
            return False

        current = self._order.index(timeslot_id)
        target = max(0, min(new_index, len(self._order) - 1))
        if target == current:
            return False

        self._order.pop(current)
        self._order.insert(target, timeslot_id)

        self._logger.debug(
            "Timeslot moved", timeslot_id=timeslot_id, from_index=current, to_index=target
        )
        self._changed("move", timeslot_id=timeslot_id, from_index=current, to_index=target)
        return True

    def register_probe(self, probe: UsageProbe) -> None:
        """Register a callable that reports how a timeslot is referenced."""
        self._probes.append(probe)

    def usage(self, timeslot_id: str) -> TimeslotUsage:
        cards = mutations = 0
        for probe in self._probes:
            found = probe(timeslot_id)
            cards += found.cards
            mutations += found.mutations
        return TimeslotUsage(cards, mutations)

    def is_empty(self, timeslot_id: str) -> bool:
        return self.usage(timeslot_id).is_empty

    def remove_if_empty(self, timeslot_id: str) -> bool:
        """Remove a timeslot unless a card or mutation still references it."""
        if timeslot_id not in self._timeslots:
            return False

        usage = self.usage(timeslot_id)
        if not usage.is_empty:
            self._logger.debug(
                "Timeslot removal refused",
                timeslot_id=timeslot_id,
                cards=usage.cards,
                mutations=usage.mutations,
            )
            return False

        self.discard(timeslot_id)
        return True

    # Persistence boundary

    def load(self, timeslots: list[Timeslot], order: list[str]) -> None:
        """Replace all records and the order.

        Records missing from ``order`` are dropped; order entries without a
        record get a fresh ``Timeslot`` with that id.
        """
        if len(set(order)) != len(order):
            duplicate = next(tid for tid in order if order.count(tid) > 1)
            raise DuplicateIdError("timeslot", duplicate)

        records = {timeslot.id: timeslot for timeslot in timeslots}
        self._timeslots = {tid: records.get(tid) or Timeslot(id=tid) for tid in order}
        self._order = list(order)
        self._changed("load", count=len(self._order))

    def clear(self) -> None:
        self._order = []
        self._timeslots = {}
        self._changed("clear")

    def _changed(self, action: str, **details: object) -> None:
        record_registry_size("timeslots", len(self._order))
        self.notifier.notify(action, **details)
