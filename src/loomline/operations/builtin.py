"""Built-in editor operations.

Operations take their arguments as a dict with snake_case keys
(``{"object_id": ..., "timeslot_id": ...}``). A missing or mistyped required
argument makes the operation a no-op that reports False.
"""

from typing import Any

from loomline.core import commands
from loomline.core.engine import TimelineEngine
from loomline.operations.keyboard import Shortcut
from loomline.operations.registry import Operation, OperationContext, OperationRegistry
from loomline.operations.state import EditorState


def _str_arg(args: dict[str, Any], key: str) -> str | None:
    value = args.get(key)
    return value if isinstance(value, str) and value else None


def _int_arg(args: dict[str, Any], key: str) -> int | None:
    value = args.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _dict_arg(args: dict[str, Any], key: str) -> dict[str, Any] | None:
    value = args.get(key)
    return value if isinstance(value, dict) else None


def _sync_selection_to_cursor(engine: TimelineEngine, state: EditorState) -> None:
    card = engine.card_at(engine.navigator.cursor_index)
    if card is not None:
        state.select_card(card.id)
        state.set_active_object(card.id)


def _cursor_operations(engine: TimelineEngine, state: EditorState) -> list[Operation]:
    navigator = engine.navigator

    def step(move):
        def execute(ctx: OperationContext, args: dict[str, Any]) -> bool:
            moved = move()
            _sync_selection_to_cursor(engine, state)
            return moved

        return execute

    def move_to(ctx: OperationContext, args: dict[str, Any]) -> bool:
        index = _int_arg(args, "index")
        timeslot_id = _str_arg(args, "timeslot_id")
        if index is not None:
            navigator.move_to(index)
        elif timeslot_id is not None:
            if not navigator.move_to_timeslot(timeslot_id):
                return False
        else:
            return False
        _sync_selection_to_cursor(engine, state)
        return True

    def go_to_mutation(ctx: OperationContext, args: dict[str, Any]) -> bool:
        mutation_id = _str_arg(args, "mutation_id")
        placement = engine.placements.get(mutation_id) if mutation_id else None
        if placement is None:
            return False
        index = engine.timeslots.index_of(placement.timeslot_id)
        if index < 0:
            return False
        navigator.move_to(index)
        state.set_active_mutation(placement.id)
        return True

    return [
        Operation(
            id="cursor.next",
            label="Next Slot",
            category="cursor",
            default_shortcut=Shortcut(key="ArrowRight"),
            precondition=lambda ctx: ctx.cursor < ctx.timeslot_count - 1,
            execute=step(navigator.next),
        ),
        Operation(
            id="cursor.prev",
            label="Previous Slot",
            category="cursor",
            default_shortcut=Shortcut(key="ArrowLeft"),
            precondition=lambda ctx: ctx.cursor > 0,
            execute=step(navigator.prev),
        ),
        Operation(
            id="cursor.move_to",
            label="Move to Slot",
            category="cursor",
            execute=move_to,
            description="Move the cursor to an index or a timeslot id",
        ),
        Operation(
            id="cursor.first",
            label="First Slot",
            category="cursor",
            default_shortcut=Shortcut(key="Home"),
            execute=step(navigator.first),
        ),
        Operation(
            id="cursor.last",
            label="Last Slot",
            category="cursor",
            default_shortcut=Shortcut(key="End"),
            execute=step(navigator.last),
        ),
        Operation(
            id="cursor.return_to_anchor",
            label="Return to Anchor",
            category="cursor",
            precondition=lambda ctx: ctx.has_anchor,
            execute=lambda ctx, args: navigator.return_to_anchor(),
        ),
        Operation(
            id="cursor.go_to_mutation",
            label="Go to Mutation",
            category="cursor",
            execute=go_to_mutation,
        ),
    ]


def _selection_operations(engine: TimelineEngine, state: EditorState) -> list[Operation]:
    def select_card(ctx: OperationContext, args: dict[str, Any]) -> bool:
        card_id = _str_arg(args, "id")
        if card_id is None:
            return False
        state.select_card(card_id, additive=bool(args.get("additive")))
        state.set_active_object(card_id)
        return True

    def select_mutation(ctx: OperationContext, args: dict[str, Any]) -> bool:
        mutation_id = _str_arg(args, "id")
        if mutation_id is None:
            return False
        if args.get("additive"):
            state.toggle_mutation(mutation_id)
        else:
            state.select_mutation(mutation_id)
        return True

    def select_all(ctx: OperationContext, args: dict[str, Any]) -> None:
        state.selected_card_ids = {obj.id for obj in engine.objects.all() if obj.rendered}
        state.selected_mutation_ids = set()

    def clear(ctx: OperationContext, args: dict[str, Any]) -> None:
        if ctx.has_anchor:
            engine.navigator.return_to_anchor()
            state.set_active_mutation(None)
        state.clear_selection()

    def toggle(toggler):
        def execute(ctx: OperationContext, args: dict[str, Any]) -> bool:
            record_id = _str_arg(args, "id")
            if record_id is None:
                return False
            toggler(record_id)
            return True

        return execute

    return [
        Operation(id="selection.card", label="Select Card", category="selection", execute=select_card),
        Operation(
            id="selection.mutation",
            label="Select Mutation",
            category="selection",
            execute=select_mutation,
        ),
        Operation(
            id="selection.all",
            label="Select All",
            category="selection",
            default_shortcut=Shortcut(key="a", ctrl=True),
            execute=select_all,
        ),
        Operation(
            id="selection.clear",
            label="Clear Selection",
            category="selection",
            default_shortcut=Shortcut(key="Escape"),
            precondition=lambda ctx: ctx.has_any_selection or ctx.has_anchor,
            execute=clear,
            description="Return to the anchor, if any, and clear the selection",
        ),
        Operation(
            id="selection.toggle_card",
            label="Toggle Card Selection",
            category="selection",
            execute=toggle(state.toggle_card),
        ),
        Operation(
            id="selection.toggle_mutation",
            label="Toggle Mutation Selection",
            category="selection",
            execute=toggle(state.toggle_mutation),
        ),
    ]


def _edit_operations(engine: TimelineEngine, state: EditorState) -> list[Operation]:
    def delete(ctx: OperationContext, args: dict[str, Any]) -> bool:
        batch = engine.history.begin_batch("Delete selection", kind="delete-selection")
        for mutation_id in sorted(ctx.selected_mutation_ids):
            placement = engine.placements.get(mutation_id)
            if placement is not None and placement.is_mutation:
                batch.add(commands.remove_placement(engine.stores, mutation_id))
        for card_id in sorted(ctx.selected_card_ids):
            obj = engine.objects.get(card_id)
            if obj is not None and obj.rendered:
                batch.add(commands.unrender_object(engine.stores, card_id))
        deleted = batch.commit()
        state.clear_selection()
        return deleted

    def copy(ctx: OperationContext, args: dict[str, Any]) -> None:
        if ctx.has_card_selection:
            state.copy_to_clipboard("card", sorted(ctx.selected_card_ids))
        else:
            state.copy_to_clipboard("mutation", sorted(ctx.selected_mutation_ids))

    return [
        Operation(
            id="edit.delete",
            label="Delete",
            category="edit",
            default_shortcut=Shortcut(key="Delete"),
            precondition=lambda ctx: ctx.has_any_selection,
            undoable=True,
            execute=delete,
            description="Remove selected mutations and take selected cards off the timeline",
        ),
        Operation(
            id="edit.copy",
            label="Copy",
            category="edit",
            default_shortcut=Shortcut(key="c", ctrl=True),
            precondition=lambda ctx: ctx.has_any_selection,
            execute=copy,
        ),
    ]


def _history_operations(engine: TimelineEngine, state: EditorState) -> list[Operation]:
    return [
        Operation(
            id="history.undo",
            label="Undo",
            category="history",
            default_shortcut=Shortcut(key="z", ctrl=True),
            precondition=lambda ctx: ctx.can_undo,
            execute=lambda ctx, args: engine.undo(),
        ),
        Operation(
            id="history.redo",
            label="Redo",
            category="history",
            default_shortcut=Shortcut(key="z", ctrl=True, shift=True),
            precondition=lambda ctx: ctx.can_redo,
            execute=lambda ctx, args: engine.redo(),
        ),
        Operation(
            id="history.redo_alt",
            label="Redo",
            category="history",
            default_shortcut=Shortcut(key="y", ctrl=True),
            precondition=lambda ctx: ctx.can_redo,
            execute=lambda ctx, args: engine.redo(),
        ),
        Operation(
            id="history.clear",
            label="Clear History",
            category="history",
            precondition=lambda ctx: ctx.can_undo or ctx.can_redo,
            execute=lambda ctx, args: engine.history.clear(),
        ),
    ]


def _object_operations(engine: TimelineEngine, state: EditorState) -> list[Operation]:
    def select(ctx: OperationContext, args: dict[str, Any]) -> bool:
        object_id = _str_arg(args, "id")
        if object_id is None:
            return False
        selection = engine.select_object(object_id)
        if selection is None:
            return False
        state.set_active_object(object_id)
        if selection.mutation_id is not None:
            state.set_active_mutation(selection.mutation_id)
        if selection.card_id is not None:
            state.select_card(selection.card_id)
        return True

    def create(ctx: OperationContext, args: dict[str, Any]) -> bool:
        name = _str_arg(args, "name")
        if name is None:
            return False
        fields: dict[str, Any] = {"type_id": _str_arg(args, "type_id") or "note"}
        parent_id = _str_arg(args, "parent_id")
        if parent_id is not None:
            fields["parent_id"] = parent_id
        obj = engine.create_object(name, **fields)
        state.set_active_object(obj.id)
        return True

    def delete(ctx: OperationContext, args: dict[str, Any]) -> bool:
        object_id = _str_arg(args, "id")
        if object_id is None:
            return False
        doomed = {object_id, *(o.id for o in engine.objects.descendants(object_id))}
        if not engine.delete_object(object_id):
            return False
        state.forget(doomed)
        return True

    def update(ctx: OperationContext, args: dict[str, Any]) -> bool:
        object_id = _str_arg(args, "id")
        data = _dict_arg(args, "data")
        if object_id is None or data is None:
            return False
        engine.update_object(object_id, data)
        return True

    def create_thread(ctx: OperationContext, args: dict[str, Any]) -> bool:
        name = _str_arg(args, "name")
        if name is None:
            return False
        engine.create_thread(name, color=_str_arg(args, "color"))
        return True

    return [
        Operation(id="object.select", label="Select Object", category="object", execute=select),
        Operation(
            id="object.create",
            label="Create Object",
            category="object",
            undoable=True,
            execute=create,
        ),
        Operation(
            id="object.delete",
            label="Delete Object",
            category="object",
            undoable=True,
            execute=delete,
        ),
        Operation(
            id="object.update",
            label="Update Object",
            category="object",
            undoable=True,
            execute=update,
        ),
        Operation(
            id="thread.create",
            label="Create Thread",
            category="thread",
            undoable=True,
            execute=create_thread,
        ),
    ]


def _card_operations(engine: TimelineEngine, state: EditorState) -> list[Operation]:
    def render(ctx: OperationContext, args: dict[str, Any]) -> bool:
        object_id = _str_arg(args, "object_id")
        if object_id is None:
            return False
        timeslot_id = engine.render_object(object_id, _str_arg(args, "timeslot_id"))
        engine.navigator.move_to_timeslot(timeslot_id)
        return True

    def unrender(ctx: OperationContext, args: dict[str, Any]) -> bool:
        object_id = _str_arg(args, "object_id")
        if object_id is None or not engine.unrender_object(object_id):
            return False
        state.selected_card_ids.discard(object_id)
        return True

    return [
        Operation(
            id="card.render",
            label="Render Object",
            category="card",
            undoable=True,
            execute=render,
        ),
        Operation(
            id="card.unrender",
            label="Unrender Object",
            category="card",
            undoable=True,
            execute=unrender,
        ),
    ]


def _mutation_operations(engine: TimelineEngine, state: EditorState) -> list[Operation]:
    def create(ctx: OperationContext, args: dict[str, Any]) -> bool:
        object_id = _str_arg(args, "object_id")
        if object_id is None:
            return False
        fields: dict[str, Any] = {}
        attached = _str_arg(args, "attached_to_card_id")
        if attached is not None:
            fields["attached_to_card_id"] = attached
        for key in ("content_change", "section_changes"):
            value = _dict_arg(args, key)
            if value is not None:
                fields[key] = value
        if isinstance(args.get("thread_ids"), list):
            fields["thread_ids"] = list(args["thread_ids"])
        placement = engine.add_mutation(
            object_id,
            _str_arg(args, "timeslot_id"),
            changes=_dict_arg(args, "changes") or {},
            label=_str_arg(args, "label") or "Property change",
            **fields,
        )
        state.set_active_mutation(placement.id)
        return True

    def delete(ctx: OperationContext, args: dict[str, Any]) -> bool:
        mutation_id = _str_arg(args, "mutation_id")
        if mutation_id is None or not engine.detach_mutation(mutation_id):
            return False
        state.forget({mutation_id})
        return True

    def update(ctx: OperationContext, args: dict[str, Any]) -> bool:
        mutation_id = _str_arg(args, "mutation_id")
        data = _dict_arg(args, "data")
        placement = engine.placements.get(mutation_id) if mutation_id else None
        if placement is None or placement.mutation is None or data is None:
            return False
        merged = {**placement.mutation.model_dump(), **data}
        engine.update_mutation(placement.id, {"mutation": merged})
        return True

    return [
        Operation(
            id="mutation.create",
            label="Create Mutation",
            category="mutation",
            precondition=lambda ctx: ctx.timeslot_count > 0,
            undoable=True,
            execute=create,
            description="Record a change at the cursor's timeslot unless one is given",
        ),
        Operation(
            id="mutation.delete",
            label="Delete Mutation",
            category="mutation",
            undoable=True,
            execute=delete,
        ),
        Operation(
            id="mutation.update",
            label="Update Mutation",
            category="mutation",
            undoable=True,
            execute=update,
            description="Merge fields into a mutation's payload",
        ),
    ]


def _timeslot_operations(engine: TimelineEngine, state: EditorState) -> list[Operation]:
    def insert(create):
        def execute(ctx: OperationContext, args: dict[str, Any]) -> bool:
            index = _int_arg(args, "index")
            timeslot_id = create(ctx.cursor if index is None else index)
            engine.navigator.move_to_timeslot(timeslot_id)
            return True

        return execute

    def move(ctx: OperationContext, args: dict[str, Any]) -> bool:
        timeslot_id = _str_arg(args, "timeslot_id")
        index = _int_arg(args, "index")
        if timeslot_id is None or index is None:
            return False
        return engine.move_timeslot(timeslot_id, index)

    def remove(ctx: OperationContext, args: dict[str, Any]) -> bool:
        timeslot_id = _str_arg(args, "timeslot_id") or engine.navigator.current_timeslot_id
        if timeslot_id is None:
            return False
        return engine.remove_timeslot_if_empty(timeslot_id)

    return [
        Operation(
            id="timeslot.insert_after",
            label="Insert Slot After",
            category="timeslot",
            undoable=True,
            execute=insert(engine.create_timeslot_after),
            description="Insert an empty timeslot after the cursor and move there",
        ),
        Operation(
            id="timeslot.insert_before",
            label="Insert Slot Before",
            category="timeslot",
            undoable=True,
            execute=insert(engine.create_timeslot_before),
        ),
        Operation(
            id="timeslot.move",
            label="Move Slot",
            category="timeslot",
            undoable=True,
            precondition=lambda ctx: ctx.timeslot_count > 1,
            execute=move,
        ),
        Operation(
            id="timeslot.remove",
            label="Remove Empty Slot",
            category="timeslot",
            undoable=True,
            precondition=lambda ctx: ctx.timeslot_count > 0,
            execute=remove,
        ),
    ]


def _thread_operations(engine: TimelineEngine, state: EditorState) -> list[Operation]:
    def tagging(apply):
        def execute(ctx: OperationContext, args: dict[str, Any]) -> bool:
            placement_id = _str_arg(args, "placement_id")
            thread_id = _str_arg(args, "thread_id")
            if placement_id is None or thread_id is None:
                return False
            return apply(placement_id, thread_id)

        return execute

    def promote(ctx: OperationContext, args: dict[str, Any]) -> bool:
        card_id = _str_arg(args, "card_id")
        thread_id = _str_arg(args, "thread_id")
        if card_id is None or thread_id is None:
            return False
        return engine.promote(card_id, thread_id)

    def set_subthreads(ctx: OperationContext, args: dict[str, Any]) -> bool:
        placement_id = _str_arg(args, "placement_id")
        subthread_ids = args.get("subthread_ids")
        if placement_id is None or not isinstance(subthread_ids, list):
            return False
        return engine.set_subthreads(placement_id, subthread_ids)

    return [
        Operation(
            id="thread.tag",
            label="Add to Thread",
            category="thread",
            undoable=True,
            execute=tagging(engine.tag_placement),
        ),
        Operation(
            id="thread.untag",
            label="Remove from Thread",
            category="thread",
            undoable=True,
            execute=tagging(engine.untag_placement),
        ),
        Operation(
            id="thread.promote",
            label="Promote to Thread",
            category="thread",
            undoable=True,
            execute=promote,
            description="Tag a card's creation with a thread one of its mutations joined",
        ),
        Operation(
            id="thread.set_subthreads",
            label="Set Subthreads",
            category="thread",
            undoable=True,
            execute=set_subthreads,
        ),
    ]


def _milestone_operations(engine: TimelineEngine, state: EditorState) -> list[Operation]:
    def create(ctx: OperationContext, args: dict[str, Any]) -> bool:
        name = _str_arg(args, "name")
        if name is None:
            return False
        timeslot_id = _str_arg(args, "timeslot_id") or engine.navigator.current_timeslot_id
        engine.create_milestone(name, timeslot_id)
        return True

    def move(ctx: OperationContext, args: dict[str, Any]) -> bool:
        milestone_id = _str_arg(args, "milestone_id")
        if milestone_id is None:
            return False
        return engine.move_milestone(milestone_id, _str_arg(args, "timeslot_id"))

    def update(ctx: OperationContext, args: dict[str, Any]) -> bool:
        milestone_id = _str_arg(args, "milestone_id")
        data = _dict_arg(args, "data")
        if milestone_id is None or data is None:
            return False
        engine.update_milestone(milestone_id, data)
        return True

    def delete(ctx: OperationContext, args: dict[str, Any]) -> bool:
        milestone_id = _str_arg(args, "milestone_id")
        if milestone_id is None:
            return False
        return engine.delete_milestone(milestone_id)

    return [
        Operation(
            id="milestone.create",
            label="Add Milestone",
            category="milestone",
            undoable=True,
            execute=create,
            description="Add a milestone before the cursor's timeslot unless one is given",
        ),
        Operation(
            id="milestone.move",
            label="Move Milestone",
            category="milestone",
            undoable=True,
            execute=move,
        ),
        Operation(
            id="milestone.update",
            label="Update Milestone",
            category="milestone",
            undoable=True,
            execute=update,
        ),
        Operation(
            id="milestone.delete",
            label="Delete Milestone",
            category="milestone",
            undoable=True,
            execute=delete,
        ),
    ]


def default_operations(engine: TimelineEngine, state: EditorState) -> list[Operation]:
    """Every built-in operation, bound to one engine and editor state."""
    operations: list[Operation] = []
    for group in (
        _cursor_operations,
        _selection_operations,
        _edit_operations,
        _history_operations,
        _object_operations,
        _card_operations,
        _mutation_operations,
        _timeslot_operations,
        _thread_operations,
        _milestone_operations,
    ):
        operations.extend(group(engine, state))
    return operations


def register_default_operations(registry: OperationRegistry) -> None:
    registry.register_all(default_operations(registry.engine, registry.state))
