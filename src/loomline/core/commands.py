"""Factories for reversible timeline commands.

Each factory checks its targets up front (raising ``loomline.utils.errors``
exceptions for missing ones), captures whatever it needs to undo, and
returns a ``Command`` that only calls primitive registry methods. Commands
never go through the history themselves, so nothing they do is recorded as a
nested entry.

Edits to existing records capture the record before and, on first
execution, after the change. Undo restores the "before" version and redo
restores the "after" version, so both directions reproduce the exact
records, timestamps included.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loomline.core.history import BatchCommand, Command, FunctionCommand
from loomline.core.milestones import MilestoneRegistry
from loomline.core.objects import ObjectRegistry
from loomline.core.placement_log import PlacementLog
from loomline.core.timeslots import TimeslotRegistry
from loomline.schemas.types import Milestone, Placement, StoryObject, Timeslot
from loomline.utils.errors import (
    HierarchyCycleError,
    LoomlineError,
    RecoveryAction,
    TimeslotNotEmptyError,
    UnknownMilestoneError,
    UnknownObjectError,
    UnknownPlacementError,
    UnknownTimeslotError,
)


@dataclass(frozen=True)
class TimelineStores:
    """The registries a command may touch."""

    timeslots: TimeslotRegistry
    placements: PlacementLog
    objects: ObjectRegistry
    milestones: MilestoneRegistry


def _require_object(stores: TimelineStores, object_id: str) -> StoryObject:
    obj = stores.objects.get(object_id)
    if obj is None:
        raise UnknownObjectError(object_id)
    return obj


def _require_placement(stores: TimelineStores, placement_id: str) -> Placement:
    placement = stores.placements.get(placement_id)
    if placement is None:
        raise UnknownPlacementError(placement_id)
    return placement


def _require_timeslot(stores: TimelineStores, timeslot_id: str) -> Timeslot:
    timeslot = stores.timeslots.get(timeslot_id)
    if timeslot is None:
        raise UnknownTimeslotError(timeslot_id)
    return timeslot


def _require_milestone(stores: TimelineStores, milestone_id: str) -> Milestone:
    milestone = stores.milestones.get(milestone_id)
    if milestone is None:
        raise UnknownMilestoneError(milestone_id)
    return milestone


def _require_thread(stores: TimelineStores, thread_id: str) -> StoryObject:
    thread = _require_object(stores, thread_id)
    if not thread.is_thread:
        raise LoomlineError(f"Object {thread_id} is not a thread", RecoveryAction.FIX_INPUT)
    return thread


# Placement commands


def _placement_edit(
    stores: TimelineStores,
    placement_id: str,
    kind: str,
    description: str,
    apply: Callable[[], Any],
) -> Command:
    before = _require_placement(stores, placement_id)
    after: Placement | None = None

    def do() -> None:
        nonlocal after
        if after is None:
            apply()
            after = stores.placements.get(placement_id)
        else:
            stores.placements.restore(after)

    def undo() -> None:
        stores.placements.restore(before)

    return FunctionCommand(kind, description, do, undo)


def _add_placement(stores: TimelineStores, placement: Placement, description: str) -> Command:
    stored = placement

    def do() -> None:
        nonlocal stored
        # The first add assigns seq; redo re-adds the same record
        stored = stores.placements.add(stored)

    def undo() -> None:
        stores.placements.remove(stored.id)

    return FunctionCommand("add-placement", description, do, undo)


def add_placement(stores: TimelineStores, placement: Placement) -> Command:
    """Add a placement whose object and timeslot already exist."""
    _require_object(stores, placement.object_id)
    _require_timeslot(stores, placement.timeslot_id)
    label = placement.mutation.label if placement.mutation else "creation"
    return _add_placement(stores, placement, f"Add {label}")


def create_mutation(
    stores: TimelineStores,
    object_id: str,
    timeslot_id: str,
    changes: dict[str, Any] | None = None,
    label: str = "Property change",
    **fields: Any,
) -> Command:
    """Record a Mutation of ``object_id`` at ``timeslot_id``.

    Extra keyword arguments (``content_change``, ``section_changes``,
    ``attached_to_card_id``, ``thread_ids``...) go to
    ``Placement.mutation_at``. The new placement is exposed as the
    command's ``placement`` attribute.
    """
    _require_object(stores, object_id)
    _require_timeslot(stores, timeslot_id)
    placement = Placement.mutation_at(
        object_id, timeslot_id, label=label, changes=changes, **fields
    )
    command = add_placement(stores, placement)
    command.placement = placement  # type: ignore[attr-defined]
    return command


def remove_placement(stores: TimelineStores, placement_id: str) -> Command:
    existing = _require_placement(stores, placement_id)
    label = existing.mutation.label if existing.mutation else "creation"

    def do() -> None:
        stores.placements.remove(placement_id)

    def undo() -> None:
        stores.placements.restore(existing)

    return FunctionCommand("remove-placement", f"Remove {label}", do, undo)


def update_placement(
    stores: TimelineStores, placement_id: str, partial: dict[str, Any]
) -> Command:
    return _placement_edit(
        stores,
        placement_id,
        "update-placement",
        "Update placement",
        lambda: stores.placements.update(placement_id, partial),
    )


# Thread commands


def add_thread_tag(stores: TimelineStores, placement_id: str, thread_id: str) -> Command:
    thread = _require_thread(stores, thread_id)
    return _placement_edit(
        stores,
        placement_id,
        "add-to-thread",
        f'Add to thread "{thread.name}"',
        lambda: stores.placements.add_tag(placement_id, thread_id),
    )


def remove_thread_tag(stores: TimelineStores, placement_id: str, thread_id: str) -> Command:
    """Untag a placement; its subthread ids from that thread go too."""
    sections = stores.objects.subthread_ids(thread_id)
    return _placement_edit(
        stores,
        placement_id,
        "remove-from-thread",
        "Remove from thread",
        lambda: stores.placements.remove_tag(placement_id, thread_id, sections),
    )


def set_subthreads(
    stores: TimelineStores, placement_id: str, subthread_ids: list[str]
) -> Command:
    return _placement_edit(
        stores,
        placement_id,
        "set-subthreads",
        "Set subthreads",
        lambda: stores.placements.set_subthreads(placement_id, subthread_ids),
    )


def promote(stores: TimelineStores, card_object_id: str, thread_id: str) -> Command:
    """Tag a card's own Creation placement with a thread."""
    card = _require_object(stores, card_object_id)
    _require_thread(stores, thread_id)
    creation = stores.placements.creation_for(card_object_id)
    if creation is None:
        raise LoomlineError(
            f"Object {card_object_id} has no creation placement to promote",
            RecoveryAction.REFRESH,
        )
    return _placement_edit(
        stores,
        creation.id,
        "promote",
        f'Promote "{card.name}" to thread',
        lambda: stores.placements.add_tag(creation.id, thread_id),
    )


# Object commands


def _object_edit(
    stores: TimelineStores, object_id: str, description: str, partial: dict[str, Any]
) -> Command:
    before = _require_object(stores, object_id)
    parent_id = partial.get("parent_id")
    if parent_id is not None and stores.objects.is_descendant_of(parent_id, object_id):
        raise HierarchyCycleError(object_id, parent_id)
    after: StoryObject | None = None

    def do() -> None:
        nonlocal after
        if after is None:
            after = stores.objects.update(object_id, partial)
        else:
            stores.objects.restore(after)

    def undo() -> None:
        stores.objects.restore(before)

    return FunctionCommand("update-object", description or f'Update "{before.name}"', do, undo)


def add_object(stores: TimelineStores, obj: StoryObject) -> Command:
    def do() -> None:
        stores.objects.add(obj)

    def undo() -> None:
        stores.objects.remove(obj.id)

    return FunctionCommand("add-object", f'Create "{obj.name}"', do, undo)


def update_object(stores: TimelineStores, object_id: str, partial: dict[str, Any]) -> Command:
    return _object_edit(stores, object_id, "", partial)


def delete_object(stores: TimelineStores, object_id: str) -> Command:
    """Delete an object, its descendants and all of their placements.

    Placements tagged with a deleted thread lose that tag (and its
    subthreads); undo puts everything back.
    """
    root = _require_object(stores, object_id)
    removed_objects: list[StoryObject] = []
    removed_placements: list[Placement] = []
    retagged: list[Placement] = []

    def do() -> None:
        removed_objects[:] = [root, *stores.objects.descendants(object_id)]
        removed_placements.clear()
        retagged.clear()
        doomed = {obj.id for obj in removed_objects}

        for obj in removed_objects:
            removed_placements.extend(stores.placements.remove_all_for_object(obj.id))
        for obj in removed_objects:
            if not obj.is_thread:
                continue
            sections = {section.id for section in obj.sections}
            for placement in stores.placements.in_thread(obj.id):
                if placement.object_id not in doomed:
                    retagged.append(placement)
                    stores.placements.remove_tag(placement.id, obj.id, sections)
        for obj in removed_objects:
            stores.objects.remove(obj.id)

    def undo() -> None:
        for obj in removed_objects:
            stores.objects.restore(obj)
        for placement in removed_placements:
            stores.placements.restore(placement)
        # Restore in reverse so a placement untagged twice ends up original
        for placement in reversed(retagged):
            stores.placements.restore(placement)

    return FunctionCommand("delete-object", f'Delete "{root.name}"', do, undo)


# Timeslot commands


def insert_timeslot(stores: TimelineStores, timeslot: Timeslot, index: int) -> Command:
    """Insert a prepared timeslot record at ``index``."""

    def do() -> None:
        stores.timeslots.insert(timeslot, index)

    def undo() -> None:
        stores.timeslots.discard(timeslot.id)

    return FunctionCommand("create-timeslot", "Create timeslot", do, undo)


def move_timeslot(stores: TimelineStores, timeslot_id: str, new_index: int) -> Command:
    _require_timeslot(stores, timeslot_id)
    original = stores.timeslots.index_of(timeslot_id)

    def do() -> None:
        stores.timeslots.move_to_index(timeslot_id, new_index)

    def undo() -> None:
        stores.timeslots.move_to_index(timeslot_id, original)

    return FunctionCommand("move-timeslot", "Move timeslot", do, undo)


def remove_timeslot(stores: TimelineStores, timeslot_id: str) -> Command:
    """Remove an empty timeslot.

    Milestones anchored to it move to the following timeslot.

    Raises:
        UnknownTimeslotError: If the timeslot is not on the timeline
        TimeslotNotEmptyError: If a card or mutation still references it
    """
    timeslot = _require_timeslot(stores, timeslot_id)
    usage = stores.timeslots.usage(timeslot_id)
    if not usage.is_empty:
        raise TimeslotNotEmptyError(timeslot_id, usage.cards, usage.mutations)

    position = stores.timeslots.index_of(timeslot_id)
    moved: list[Milestone] = []

    def do() -> None:
        following = stores.timeslots.id_at(position + 1)
        moved[:] = stores.milestones.reanchor(timeslot_id, following)
        stores.timeslots.discard(timeslot_id)

    def undo() -> None:
        stores.timeslots.insert(timeslot, position)
        for milestone in moved:
            stores.milestones.restore(milestone)

    return FunctionCommand("remove-timeslot", "Remove timeslot", do, undo)


# Rendering


def render_object(
    stores: TimelineStores, object_id: str, timeslot: Timeslot | None = None
) -> BatchCommand:
    """Put an object on the timeline as a card.

    When ``timeslot`` is a record not yet in the order it is appended first.
    The object's Creation placement is added (or moved, if it already has
    one) and the object is flagged rendered at that timeslot.
    """
    obj = _require_object(stores, object_id)
    timeslot = timeslot or Timeslot()
    members: list[Command] = []

    if timeslot.id not in stores.timeslots:
        members.append(insert_timeslot(stores, timeslot, len(stores.timeslots)))

    creation = stores.placements.creation_for(object_id)
    if creation is None:
        members.append(
            _add_placement(stores, Placement.creation(object_id, timeslot.id), "Add creation")
        )
    elif creation.timeslot_id != timeslot.id:
        members.append(update_placement(stores, creation.id, {"timeslot_id": timeslot.id}))

    members.append(
        _object_edit(
            stores,
            object_id,
            f'Render "{obj.name}"',
            {"rendered": True, "timeslot_id": timeslot.id},
        )
    )
    return BatchCommand(f'Render "{obj.name}"', members, kind="render-object")


def unrender_object(stores: TimelineStores, object_id: str) -> BatchCommand:
    """Take a card off the timeline, removing its Creation placement.

    The timeslot itself is kept; mutations of the object are untouched.
    """
    obj = _require_object(stores, object_id)
    members: list[Command] = []

    creation = stores.placements.creation_for(object_id)
    if creation is not None:
        members.append(remove_placement(stores, creation.id))
    members.append(
        _object_edit(
            stores,
            object_id,
            f'Unrender "{obj.name}"',
            {"rendered": False, "timeslot_id": None},
        )
    )
    return BatchCommand(f'Unrender "{obj.name}"', members, kind="unrender-object")


# Milestone commands


def add_milestone(stores: TimelineStores, milestone: Milestone) -> Command:
    def do() -> None:
        stores.milestones.add(milestone)

    def undo() -> None:
        stores.milestones.delete(milestone.id)

    return FunctionCommand("add-milestone", f'Add milestone "{milestone.name}"', do, undo)


def _milestone_edit(
    stores: TimelineStores,
    milestone_id: str,
    kind: str,
    description: str,
    partial: dict[str, Any],
) -> Command:
    before = _require_milestone(stores, milestone_id)
    after: Milestone | None = None

    def do() -> None:
        nonlocal after
        if after is None:
            after = stores.milestones.update(milestone_id, partial)
        else:
            stores.milestones.restore(after)

    def undo() -> None:
        stores.milestones.restore(before)

    return FunctionCommand(kind, description.format(name=before.name), do, undo)


def update_milestone(
    stores: TimelineStores, milestone_id: str, partial: dict[str, Any]
) -> Command:
    return _milestone_edit(
        stores, milestone_id, "update-milestone", 'Update milestone "{name}"', partial
    )


def move_milestone(
    stores: TimelineStores, milestone_id: str, timeslot_id: str | None
) -> Command:
    if timeslot_id is not None:
        _require_timeslot(stores, timeslot_id)
    return _milestone_edit(
        stores,
        milestone_id,
        "move-milestone",
        'Move milestone "{name}"',
        {"timeslot_id": timeslot_id},
    )


def delete_milestone(stores: TimelineStores, milestone_id: str) -> Command:
    existing = _require_milestone(stores, milestone_id)

    def do() -> None:
        stores.milestones.delete(milestone_id)

    def undo() -> None:
        stores.milestones.restore(existing)

    return FunctionCommand("delete-milestone", f'Delete milestone "{existing.name}"', do, undo)
