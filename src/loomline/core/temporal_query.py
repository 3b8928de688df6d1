"""Temporal query engine: net object state at a timeslot index.

State is rebuilt by replaying Mutation placements, never stored. For an
object and an index ``i`` the engine takes the prefix of the timeslot order
of length ``i + 1``, keeps the object's mutations whose timeslot lies in that
prefix, orders them by timeslot rank then ``seq``, and replays them:

- ``changes``: ``computed_attributes[key] = change.to``
- ``content_change``: ``computed_content = change.to`` (full replacement)
- ``section_changes``: ``computed_sections[section_id] = change.to``

Content and sections start from the object's base body; attributes start
empty. Mutations whose timeslot is no longer on the timeline are neither
past nor future. The result depends only on the placement log, the timeslot
order and the index, so it is memoized until any of the three registries
reports a change.
"""

from typing import Any

from loomline.core.objects import ObjectRegistry
from loomline.core.placement_log import PlacementLog
from loomline.core.timeslots import TimeslotRegistry
from loomline.schemas.types import ComputedObjectState, Placement
from loomline.utils.telemetry import PerformanceTimer, get_logger


class TemporalQueryEngine:
    """Reconstructs object state from the placement log.

    Examples
    --------
    >>> engine = TemporalQueryEngine(timeslots, placements, objects)
    >>> engine.state_at("obj-1", 1).computed_attributes
    {'status': 'white'}
    """

    def __init__(
        self,
        timeslots: TimeslotRegistry,
        placements: PlacementLog,
        objects: ObjectRegistry,
        cache_enabled: bool = True,
    ) -> None:
        self._timeslots = timeslots
        self._placements = placements
        self._objects = objects
        self.cache_enabled = cache_enabled
        self._cache: dict[tuple[str, int], ComputedObjectState] = {}
        self._cache_versions: tuple[int, int, int] = (-1, -1, -1)
        self._logger = get_logger("loomline.temporal_query")

    def _clamp(self, index: int) -> int:
        # -1 means "before the first timeslot": nothing has happened yet
        return max(-1, min(index, len(self._timeslots) - 1))

    def _versions(self) -> tuple[int, int, int]:
        return (
            self._timeslots.notifier.version,
            self._placements.notifier.version,
            self._objects.notifier.version,
        )

    def invalidate(self) -> None:
        self._cache.clear()

    def _ranked_mutations(self, object_id: str) -> list[tuple[int, Placement]]:
        """The object's mutations on live timeslots, in replay order."""
        ranks = self._timeslots.rank_map()
        ranked = [
            (ranks[p.timeslot_id], p)
            for p in self._placements.mutations_for(object_id)
            if p.timeslot_id in ranks
        ]
        ranked.sort(key=lambda item: (item[0], item[1].seq))
        return ranked

    def state_at(self, object_id: str, index: int) -> ComputedObjectState:
        """Compute the state of ``object_id`` at timeslot ``index``.

        Args:
            object_id: Object to query; unknown objects yield an empty state
            index: Timeslot rank, clamped to ``[-1, len(order) - 1]``

        Returns:
            A fresh ComputedObjectState with applied and future mutations;
            changing it never affects later queries
        """
        index = self._clamp(index)

        if self.cache_enabled:
            versions = self._versions()
            if versions != self._cache_versions:
                self._cache.clear()
                self._cache_versions = versions
            cached = self._cache.get((object_id, index))
            if cached is not None:
                return cached.model_copy(deep=True)

        with PerformanceTimer("temporal_query", logger=self._logger):
            state = self._compute(object_id, index)

        if self.cache_enabled:
            self._cache[(object_id, index)] = state
        return state.model_copy(deep=True)

    def _compute(self, object_id: str, index: int) -> ComputedObjectState:
        obj = self._objects.get(object_id)
        content: Any = obj.content if obj is not None else None
        sections: dict[str, Any] = (
            {section.id: section.content for section in obj.sections}
            if obj is not None
            else {}
        )
        attributes: dict[str, Any] = {}
        applied: list[Placement] = []
        future: list[Placement] = []

        for rank, placement in self._ranked_mutations(object_id):
            if rank > index:
                future.append(placement)
                continue

            applied.append(placement)
            payload = placement.mutation
            for key, change in payload.changes.items():
                attributes[key] = change.to
            if payload.content_change is not None:
                content = payload.content_change.to
            if payload.section_changes:
                for section_id, change in payload.section_changes.items():
                    sections[section_id] = change.to

        return ComputedObjectState(
            object_id=object_id,
            index=index,
            mutations=applied,
            future_mutations=future,
            computed_attributes=attributes,
            computed_content=content,
            computed_sections=sections,
        )

    def states_at(self, index: int) -> dict[str, ComputedObjectState]:
        """State of every registered object at ``index``."""
        return {obj.id: self.state_at(obj.id, index) for obj in self._objects.all()}

    def resolved_attributes(self, object_id: str, index: int) -> dict[str, Any]:
        """Base attributes overlaid with the computed ones."""
        obj = self._objects.get(object_id)
        resolved = dict(obj.attributes) if obj is not None else {}
        resolved.update(self.state_at(object_id, index).computed_attributes)
        return resolved

    def value_at(self, object_id: str, key: str, index: int, default: Any = None) -> Any:
        return self.state_at(object_id, index).computed_attributes.get(key, default)

    def attribute_history(self, object_id: str, key: str) -> list[tuple[int, Placement, Any]]:
        """Every change to ``key`` as ``(rank, placement, new_value)`` in replay order."""
        return [
            (rank, placement, placement.mutation.changes[key].to)
            for rank, placement in self._ranked_mutations(object_id)
            if key in placement.mutation.changes
        ]

    def latest_mutation_at_or_before(self, object_id: str, index: int) -> Placement | None:
        return self.state_at(object_id, index).latest_mutation

    def mutation_index(self, placement: Placement) -> int:
        """Rank of a placement's timeslot, or -1 if it is off the timeline."""
        return self._timeslots.index_of(placement.timeslot_id)
