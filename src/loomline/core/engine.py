"""Timeline engine: one explicit instance owning all timeline state.

The engine wires the registries, the temporal query engine, the navigator
and the command history together. Every edit goes through a command built
by ``loomline.core.commands`` and executed by the history, so it can be
undone. Reads go straight to the registries or the query engine.
"""

from collections import Counter
from typing import Any, NamedTuple

from pydantic import ValidationError

from loomline.config import Config
from loomline.core import commands, threads
from loomline.core.history import CommandHistory
from loomline.core.milestones import MilestoneRegistry
from loomline.core.navigator import Navigator
from loomline.core.objects import ObjectRegistry
from loomline.core.placement_log import PlacementLog
from loomline.core.temporal_query import TemporalQueryEngine
from loomline.core.timeslots import TimeslotRegistry
from loomline.schemas.types import (
    ComputedObjectState,
    Milestone,
    Placement,
    ProjectSnapshot,
    StoryObject,
    Thread,
    Timeslot,
)
from loomline.utils.errors import (
    SnapshotError,
    UnknownPlacementError,
    UnknownTimeslotError,
)
from loomline.utils.hashing import digest
from loomline.utils.telemetry import PerformanceTimer, get_logger, set_metrics_enabled


class Selection(NamedTuple):
    """Where ``select_object`` left the cursor."""

    object_id: str
    index: int | None = None
    mutation_id: str | None = None
    card_id: str | None = None


class TimelineEngine:
    """Authoring engine for a single project.

    Core Features
    -------------
    - **Stable identity**: timeslots, placements and objects are referenced
      by id; reordering timeslots never rewrites a reference
    - **Temporal queries**: object state at any timeslot index is rebuilt
      from the placement log on demand
    - **Undo/redo**: every edit method runs a reversible command through
      ``history``
    - **Persistence boundary**: ``snapshot``, ``load`` and ``clear``

    Examples
    --------
    >>> engine = TimelineEngine()
    >>> frodo = engine.create_object("Frodo")
    >>> slot = engine.render_object(frodo.id)
    >>> engine.add_mutation(frodo.id, slot, {"ring": {"from": None, "to": True}})
    >>> engine.state_at(frodo.id, 0).computed_attributes
    {'ring': True}
    >>> engine.undo()
    True
    """

    def __init__(self, config: Config | None = None) -> None:
        self.config = config or Config()
        set_metrics_enabled(
            self.config.metrics.enabled and self.config.features.metrics_export
        )

        self.timeslots = TimeslotRegistry()
        self.placements = PlacementLog()
        self.objects = ObjectRegistry()
        self.milestones = MilestoneRegistry(self.timeslots)
        self.timeslots.register_probe(self.placements.timeslot_usage)
        self.timeslots.register_probe(self.objects.timeslot_usage)

        self.stores = commands.TimelineStores(
            timeslots=self.timeslots,
            placements=self.placements,
            objects=self.objects,
            milestones=self.milestones,
        )
        self.query = TemporalQueryEngine(
            self.timeslots,
            self.placements,
            self.objects,
            cache_enabled=(
                self.config.query.cache_enabled and self.config.features.query_caching
            ),
        )
        self.navigator = Navigator(self.timeslots)
        self.history = CommandHistory(max_history=self.config.history.max_entries)
        self._logger = get_logger("loomline.engine")

    # History

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def undo(self) -> bool:
        return self.history.undo()

    def redo(self) -> bool:
        return self.history.redo()

    # Timeslots

    def _insert_timeslot(self, position: int) -> str:
        timeslot = Timeslot()
        self.history.execute(commands.insert_timeslot(self.stores, timeslot, position))
        return timeslot.id

    def create_timeslot_at_end(self) -> str:
        return self._insert_timeslot(len(self.timeslots))

    def create_timeslot_after(self, index: int) -> str:
        """Create a timeslot right after ``index`` (clamped) and return its id."""
        anchor = max(-1, min(index, len(self.timeslots) - 1))
        return self._insert_timeslot(anchor + 1)

    def create_timeslot_before(self, index: int) -> str:
        return self._insert_timeslot(max(0, min(index, len(self.timeslots))))

    def move_timeslot(self, timeslot_id: str, new_index: int) -> bool:
        current = self.timeslots.index_of(timeslot_id)
        if current < 0:
            return False
        if max(0, min(new_index, len(self.timeslots) - 1)) == current:
            return False
        self.history.execute(commands.move_timeslot(self.stores, timeslot_id, new_index))
        return True

    def remove_timeslot_if_empty(self, timeslot_id: str) -> bool:
        """Remove a timeslot no card or mutation uses; False otherwise."""
        if timeslot_id not in self.timeslots or not self.timeslots.is_empty(timeslot_id):
            return False
        self.history.execute(commands.remove_timeslot(self.stores, timeslot_id))
        return True

    # Objects

    def add_object(self, obj: StoryObject) -> StoryObject:
        self.history.execute(commands.add_object(self.stores, obj))
        return obj

    def create_object(self, name: str, **fields: Any) -> StoryObject:
        return self.add_object(StoryObject(name=name, **fields))

    def create_thread(self, name: str, color: str | None = None, **fields: Any) -> StoryObject:
        return self.add_object(
            StoryObject(name=name, is_thread=True, thread_color=color, **fields)
        )

    def update_object(self, object_id: str, partial: dict[str, Any]) -> StoryObject:
        self.history.execute(commands.update_object(self.stores, object_id, partial))
        return self.objects.get(object_id)

    def delete_object(self, object_id: str) -> bool:
        if object_id not in self.objects:
            return False
        self.history.execute(commands.delete_object(self.stores, object_id))
        return True

    def render_object(self, object_id: str, timeslot_id: str | None = None) -> str:
        """Show an object as a card, on a new timeslot at the end by default.

        Returns:
            The id of the timeslot the card sits on

        Raises:
            UnknownTimeslotError: If ``timeslot_id`` is not on the timeline
        """
        timeslot = None
        if timeslot_id is not None:
            timeslot = self.timeslots.get(timeslot_id)
            if timeslot is None:
                raise UnknownTimeslotError(timeslot_id)
        command = commands.render_object(self.stores, object_id, timeslot)
        self.history.execute(command)
        return self.objects.get(object_id).timeslot_id

    def unrender_object(self, object_id: str) -> bool:
        obj = self.objects.get(object_id)
        if obj is None or not obj.rendered:
            return False
        self.history.execute(commands.unrender_object(self.stores, object_id))
        return True

    def card_at(self, index: int) -> StoryObject | None:
        """First rendered object on the timeslot at ``index``."""
        timeslot_id = self.timeslots.id_at(index)
        if timeslot_id is None:
            return None
        cards = self.objects.rendered_at(timeslot_id)
        return cards[0] if cards else None

    # Mutations

    def add_mutation(
        self,
        object_id: str,
        timeslot_id: str | None = None,
        changes: dict[str, Any] | None = None,
        label: str = "Property change",
        **fields: Any,
    ) -> Placement:
        """Record a Mutation, at the cursor's timeslot unless one is given.

        Raises:
            UnknownTimeslotError: If there is no such timeslot (or the
                timeline is empty and none was given)
        """
        timeslot_id = timeslot_id or self.navigator.current_timeslot_id or ""
        command = commands.create_mutation(
            self.stores, object_id, timeslot_id, changes, label, **fields
        )
        self.history.execute(command)
        return self.placements.get(command.placement.id)

    def update_mutation(self, placement_id: str, partial: dict[str, Any]) -> Placement:
        self.history.execute(commands.update_placement(self.stores, placement_id, partial))
        return self.placements.get(placement_id)

    def detach_mutation(self, placement_id: str) -> bool:
        """Remove a Mutation placement from its timeslot."""
        placement = self.placements.get(placement_id)
        if placement is None or not placement.is_mutation:
            return False
        self.history.execute(commands.remove_placement(self.stores, placement_id))
        return True

    # Threads

    def threads(self) -> list[Thread]:
        return self.objects.threads()

    def tag_placement(self, placement_id: str, thread_id: str) -> bool:
        placement = self._placement(placement_id)
        if thread_id in placement.thread_ids:
            return False
        self.history.execute(commands.add_thread_tag(self.stores, placement_id, thread_id))
        return True

    def untag_placement(self, placement_id: str, thread_id: str) -> bool:
        placement = self._placement(placement_id)
        if thread_id not in placement.thread_ids:
            return False
        self.history.execute(
            commands.remove_thread_tag(self.stores, placement_id, thread_id)
        )
        return True

    def set_subthreads(self, placement_id: str, subthread_ids: list[str]) -> bool:
        placement = self._placement(placement_id)
        if list(dict.fromkeys(subthread_ids)) == placement.subthread_ids:
            return False
        self.history.execute(
            commands.set_subthreads(self.stores, placement_id, subthread_ids)
        )
        return True

    def requires_promotion(self, card_object_id: str, thread_id: str) -> bool:
        return threads.requires_promotion(self.placements, card_object_id, thread_id)

    def promote(self, card_object_id: str, thread_id: str) -> bool:
        """Tag a card's Creation with a thread it only reaches via a mutation."""
        if not self.requires_promotion(card_object_id, thread_id):
            return False
        self.history.execute(commands.promote(self.stores, card_object_id, thread_id))
        return True

    def thread_members(self, thread_id: str, subthread_id: str | None = None) -> list[Placement]:
        return threads.thread_members(self.placements, self.objects, thread_id, subthread_id)

    def thread_lane(self, thread_id: str, subthread_id: str | None = None) -> list[Placement]:
        return threads.thread_lane(
            self.placements, self.timeslots, self.objects, thread_id, subthread_id
        )

    def _placement(self, placement_id: str) -> Placement:
        placement = self.placements.get(placement_id)
        if placement is None:
            raise UnknownPlacementError(placement_id)
        return placement

    # Milestones

    def create_milestone(
        self, name: str, timeslot_id: str | None = None, **fields: Any
    ) -> Milestone:
        milestone = Milestone(name=name, timeslot_id=timeslot_id, **fields)
        self.history.execute(commands.add_milestone(self.stores, milestone))
        return milestone

    def update_milestone(self, milestone_id: str, partial: dict[str, Any]) -> Milestone:
        self.history.execute(commands.update_milestone(self.stores, milestone_id, partial))
        return self.milestones.get(milestone_id)

    def move_milestone(self, milestone_id: str, timeslot_id: str | None) -> bool:
        milestone = self.milestones.get(milestone_id)
        if milestone is None or milestone.timeslot_id == timeslot_id:
            return False
        self.history.execute(
            commands.move_milestone(self.stores, milestone_id, timeslot_id)
        )
        return True

    def delete_milestone(self, milestone_id: str) -> bool:
        if milestone_id not in self.milestones:
            return False
        self.history.execute(commands.delete_milestone(self.stores, milestone_id))
        return True

    # Queries and navigation

    def state_at(self, object_id: str, index: int | None = None) -> ComputedObjectState:
        """Object state at ``index``, defaulting to the cursor."""
        if index is None:
            index = self.navigator.cursor_index
        return self.query.state_at(object_id, index)

    def states_at(self, index: int | None = None) -> dict[str, ComputedObjectState]:
        if index is None:
            index = self.navigator.cursor_index
        return self.query.states_at(index)

    def resolved_attributes(self, object_id: str, index: int | None = None) -> dict[str, Any]:
        if index is None:
            index = self.navigator.cursor_index
        return self.query.resolved_attributes(object_id, index)

    def select_object(self, object_id: str) -> Selection | None:
        """Jump to where an object last changed, relative to the reference index.

        With a mutation at or before the reference index (the anchor if set,
        else the cursor) the cursor jumps there with an anchor so the author
        can return. A rendered object without such a mutation becomes the new
        home: the anchor is dropped and the cursor moves to its card. Other
        objects leave the cursor alone.

        Returns:
            The resulting selection, or None for an unknown object
        """
        obj = self.objects.get(object_id)
        if obj is None:
            return None

        reference = self.navigator.reference_index
        latest = self.query.latest_mutation_at_or_before(object_id, reference)
        if latest is not None:
            target = self.timeslots.index_of(latest.timeslot_id)
            self.navigator.navigate_with_anchor(target)
            card = self.card_at(target)
            return Selection(
                object_id=object_id,
                index=target,
                mutation_id=latest.id,
                card_id=card.id if card else None,
            )

        if obj.rendered:
            index = self.timeslots.index_of(obj.timeslot_id)
            if index >= 0:
                self.navigator.clear_anchor()
                self.navigator.move_to(index)
                return Selection(object_id=object_id, index=index, card_id=object_id)

        return Selection(object_id=object_id)

    # Persistence boundary

    def snapshot(self) -> ProjectSnapshot:
        return ProjectSnapshot(
            timeslot_order=self.timeslots.order,
            timeslots=self.timeslots.all(),
            placements=self.placements.all(),
            objects=self.objects.all(),
            milestones=self.milestones.all(),
        )

    def load(self, data: ProjectSnapshot | dict[str, Any]) -> None:
        """Replace all state with a snapshot.

        The snapshot is validated completely before anything changes, so a
        rejected snapshot leaves the engine untouched. History and anchor
        are cleared; the cursor is kept where possible.

        Raises:
            SnapshotError: If the snapshot is malformed or inconsistent
        """
        if isinstance(data, ProjectSnapshot):
            snapshot = data
        else:
            try:
                snapshot = ProjectSnapshot.model_validate(data)
            except ValidationError as e:
                raise SnapshotError(
                    [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]
                ) from e

        problems = check_snapshot(snapshot, strict=self.config.features.strict_snapshots)
        if problems:
            raise SnapshotError(problems)

        with PerformanceTimer("engine_load", logger=self._logger):
            self.timeslots.load(snapshot.timeslots, snapshot.timeslot_order)
            self.objects.load(snapshot.objects)
            self.placements.load(snapshot.placements)
            self.milestones.load(snapshot.milestones)
            self.history.clear()
            self.navigator.clear_anchor()
            self.navigator.clamp()
            self.query.invalidate()

        self._logger.info(
            "Project loaded",
            timeslots=len(self.timeslots),
            objects=len(self.objects),
            placements=len(self.placements),
            milestones=len(self.milestones),
        )

    def clear(self) -> None:
        """Reset to an empty project without timeslots."""
        self.placements.clear()
        self.objects.clear()
        self.milestones.clear()
        self.timeslots.clear()
        self.history.clear()
        self.navigator.reset()
        self.query.invalidate()
        self._logger.info("Project cleared")

    def validate(self) -> list[str]:
        """Integrity report for the current state; empty when consistent."""
        return check_snapshot(self.snapshot(), strict=True)

    def snapshot_digest(self) -> str:
        return digest(self.snapshot())

    def state_digest(self, index: int | None = None) -> str:
        """Digest of every object's computed state at ``index``."""
        states = self.states_at(index)
        return digest(
            {object_id: state.model_dump(mode="json") for object_id, state in states.items()}
        )


def _duplicates(values: list[str]) -> list[str]:
    return sorted(value for value, count in Counter(values).items() if count > 1)


def check_snapshot(snapshot: ProjectSnapshot, strict: bool = False) -> list[str]:
    """List the problems that make a snapshot unloadable.

    Structural problems (duplicate ids, a second Creation for an object,
    clashing sequence numbers) are always reported. Dangling references
    (a placement or card on a timeslot that is gone, a placement of an
    unknown object, a tag naming something that is not a thread, a milestone
    before a missing timeslot) are tolerated at runtime and only reported
    when ``strict`` is set.
    """
    problems: list[str] = []

    for timeslot_id in _duplicates(snapshot.timeslot_order):
        problems.append(f"timeslot {timeslot_id} appears more than once in the order")
    for timeslot_id in _duplicates([t.id for t in snapshot.timeslots]):
        problems.append(f"duplicate timeslot id {timeslot_id}")
    for object_id in _duplicates([o.id for o in snapshot.objects]):
        problems.append(f"duplicate object id {object_id}")
    for placement_id in _duplicates([p.id for p in snapshot.placements]):
        problems.append(f"duplicate placement id {placement_id}")
    for milestone_id in _duplicates([m.id for m in snapshot.milestones]):
        problems.append(f"duplicate milestone id {milestone_id}")

    creations = [p.object_id for p in snapshot.placements if p.is_creation]
    for object_id in _duplicates(creations):
        problems.append(f"object {object_id} has more than one creation placement")

    seqs = [str(p.seq) for p in snapshot.placements if p.seq > 0]
    for seq in _duplicates(seqs):
        problems.append(f"sequence number {seq} is used by more than one placement")

    if not strict:
        return problems

    live = set(snapshot.timeslot_order)
    objects = {o.id: o for o in snapshot.objects}
    for placement in snapshot.placements:
        if placement.timeslot_id not in live:
            problems.append(
                f"placement {placement.id} references missing timeslot {placement.timeslot_id}"
            )
        if placement.object_id not in objects:
            problems.append(
                f"placement {placement.id} references unknown object {placement.object_id}"
            )
        for thread_id in placement.thread_ids:
            thread = objects.get(thread_id)
            if thread is None or not thread.is_thread:
                problems.append(f"placement {placement.id} is tagged with non-thread {thread_id}")
    for obj in snapshot.objects:
        if obj.rendered and obj.timeslot_id not in live:
            problems.append(f"object {obj.id} is rendered on missing timeslot {obj.timeslot_id}")
    for milestone in snapshot.milestones:
        if milestone.timeslot_id is not None and milestone.timeslot_id not in live:
            problems.append(
                f"milestone {milestone.id} precedes missing timeslot {milestone.timeslot_id}"
            )
    return problems
