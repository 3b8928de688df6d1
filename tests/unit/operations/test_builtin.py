"""Unit tests for the built-in editor operations."""

import pytest

from loomline.core.engine import TimelineEngine
from loomline.operations import (
    EditorState,
    OperationRegistry,
    register_default_operations,
)
from loomline.schemas import Section


@pytest.fixture
def engine() -> TimelineEngine:
    return TimelineEngine()


@pytest.fixture
def state() -> EditorState:
    return EditorState()


@pytest.fixture
def registry(engine: TimelineEngine, state: EditorState) -> OperationRegistry:
    registry = OperationRegistry(engine, state)
    register_default_operations(registry)
    return registry


@pytest.fixture
def story(engine: TimelineEngine) -> dict:
    """Frodo on slot 0, Gandalf on slot 2, an empty slot 1 between them."""
    frodo = engine.create_object("Frodo")
    gandalf = engine.create_object("Gandalf")
    first = engine.render_object(frodo.id)
    middle = engine.create_timeslot_at_end()
    last = engine.render_object(gandalf.id)
    mutation = engine.add_mutation(frodo.id, middle, {"ring": {"to": True}}, "Takes the Ring")
    engine.history.clear()
    return {
        "frodo": frodo,
        "gandalf": gandalf,
        "slots": [first, middle, last],
        "mutation": mutation,
    }


class TestDefaults:
    """Test the registered set."""

    def test_every_category_is_covered(self, registry: OperationRegistry) -> None:
        assert set(registry.all_by_category()) == {
            "cursor",
            "selection",
            "edit",
            "history",
            "object",
            "card",
            "mutation",
            "timeslot",
            "thread",
            "milestone",
        }

    def test_ids_are_namespaced_by_category(self, registry: OperationRegistry) -> None:
        for operation in registry.all().values():
            assert operation.id.split(".")[0] == operation.category


class TestCursorOperations:
    """Test cursor movement and selection sync."""

    def test_next_prev_sync_selection(
        self, registry: OperationRegistry, engine: TimelineEngine, state: EditorState, story: dict
    ) -> None:
        assert registry.execute("cursor.prev") is False
        assert registry.execute("cursor.next") is True
        assert registry.execute("cursor.next") is True
        assert registry.execute("cursor.next") is False

        assert engine.navigator.cursor_index == 2
        assert state.selected_card_ids == {story["gandalf"].id}
        assert state.active_object_id == story["gandalf"].id

    def test_first_last(self, registry: OperationRegistry, engine: TimelineEngine, story: dict) -> None:
        assert registry.execute("cursor.last") is True
        assert engine.navigator.cursor_index == 2
        assert registry.execute("cursor.first") is True
        assert engine.navigator.cursor_index == 0

    def test_move_to(self, registry: OperationRegistry, engine: TimelineEngine, story: dict) -> None:
        assert registry.execute("cursor.move_to", {"index": 1}) is True
        assert engine.navigator.cursor_index == 1
        assert registry.execute("cursor.move_to", {"timeslot_id": story["slots"][2]}) is True
        assert engine.navigator.cursor_index == 2
        assert registry.execute("cursor.move_to", {"timeslot_id": "missing"}) is False
        assert registry.execute("cursor.move_to", {}) is False

    def test_go_to_mutation(
        self, registry: OperationRegistry, engine: TimelineEngine, state: EditorState, story: dict
    ) -> None:
        mutation_id = story["mutation"].id

        assert registry.execute("cursor.go_to_mutation", {"mutation_id": mutation_id}) is True
        assert engine.navigator.cursor_index == 1
        assert state.active_mutation_id == mutation_id
        assert registry.execute("cursor.go_to_mutation", {"mutation_id": "missing"}) is False

    def test_return_to_anchor_needs_anchor(
        self, registry: OperationRegistry, engine: TimelineEngine, story: dict
    ) -> None:
        assert registry.can_execute("cursor.return_to_anchor") is False

        engine.navigator.move_to(2)
        engine.navigator.navigate_with_anchor(0)

        assert registry.execute("cursor.return_to_anchor") is True
        assert engine.navigator.cursor_index == 2


class TestSelectionOperations:
    """Test selection operations."""

    def test_select_card_and_mutation(
        self, registry: OperationRegistry, state: EditorState, story: dict
    ) -> None:
        frodo, gandalf = story["frodo"].id, story["gandalf"].id

        registry.execute("selection.card", {"id": frodo})
        registry.execute("selection.card", {"id": gandalf, "additive": True})
        assert state.selected_card_ids == {frodo, gandalf}

        registry.execute("selection.mutation", {"id": story["mutation"].id})
        assert state.selected_card_ids == set()
        registry.execute("selection.mutation", {"id": story["mutation"].id, "additive": True})
        assert state.selected_mutation_ids == set()

        assert registry.execute("selection.card", {}) is False

    def test_select_all_picks_rendered_cards(
        self, registry: OperationRegistry, engine: TimelineEngine, state: EditorState, story: dict
    ) -> None:
        engine.create_object("Note")

        registry.execute("selection.all")

        assert state.selected_card_ids == {story["frodo"].id, story["gandalf"].id}

    def test_clear_returns_to_anchor(
        self, registry: OperationRegistry, engine: TimelineEngine, state: EditorState, story: dict
    ) -> None:
        assert registry.can_execute("selection.clear") is False

        engine.navigator.move_to(2)
        registry.execute("object.select", {"id": story["frodo"].id})
        assert engine.navigator.cursor_index == 1
        assert state.active_mutation_id == story["mutation"].id

        assert registry.execute("selection.clear") is True
        assert engine.navigator.cursor_index == 2
        assert engine.navigator.has_anchor is False
        assert state.active_mutation_id is None
        assert state.has_any_selection is False

    def test_toggles(self, registry: OperationRegistry, state: EditorState) -> None:
        registry.execute("selection.toggle_card", {"id": "a"})
        registry.execute("selection.toggle_mutation", {"id": "m"})
        assert state.selected_card_ids == {"a"}
        assert state.selected_mutation_ids == {"m"}
        assert registry.execute("selection.toggle_card", {}) is False


class TestEditOperations:
    """Test delete and copy."""

    def test_delete_selection_is_one_undo_step(
        self, registry: OperationRegistry, engine: TimelineEngine, state: EditorState, story: dict
    ) -> None:
        state.select_card(story["gandalf"].id)
        state.select_mutation(story["mutation"].id, additive=True)
        before = engine.snapshot()

        assert registry.execute("edit.delete") is True

        assert engine.placements.get(story["mutation"].id) is None
        assert engine.objects.get(story["gandalf"].id).rendered is False
        assert state.has_any_selection is False
        assert engine.history.undo_description == "Delete selection"

        assert registry.execute("history.undo") is True
        assert engine.snapshot() == before

    def test_delete_needs_selection(self, registry: OperationRegistry, story: dict) -> None:
        assert registry.execute("edit.delete") is False

    def test_delete_of_stale_selection_is_no_op(
        self, registry: OperationRegistry, engine: TimelineEngine, state: EditorState
    ) -> None:
        state.select_card("gone")
        assert registry.execute("edit.delete") is False
        assert engine.can_undo is False

    def test_copy(self, registry: OperationRegistry, state: EditorState, story: dict) -> None:
        state.select_mutation(story["mutation"].id)
        registry.execute("edit.copy")
        assert state.clipboard.kind == "mutation"

        state.select_card(story["frodo"].id)
        registry.execute("edit.copy")
        assert state.clipboard.kind == "card"
        assert state.clipboard.ids == [story["frodo"].id]


class TestHistoryOperations:
    """Test undo and redo operations."""

    def test_undo_redo_preconditions(
        self, registry: OperationRegistry, engine: TimelineEngine
    ) -> None:
        assert registry.execute("history.undo") is False
        registry.execute("timeslot.insert_after")

        assert registry.execute("history.undo") is True
        assert len(engine.timeslots) == 0
        assert registry.execute("history.redo") is True
        assert len(engine.timeslots) == 1

        assert registry.execute("history.clear") is True
        assert registry.can_execute("history.clear") is False


class TestObjectOperations:
    """Test object and card operations."""

    def test_create_update_delete(
        self, registry: OperationRegistry, engine: TimelineEngine, state: EditorState
    ) -> None:
        assert registry.execute("object.create", {"name": "Shire", "type_id": "location"}) is True
        shire = engine.objects.find_by_name("Shire")
        assert shire.type_id == "location"
        assert state.active_object_id == shire.id

        registry.execute("object.create", {"name": "Bag End", "parent_id": shire.id})
        bag_end = engine.objects.find_by_name("Bag End")
        state.select_card(bag_end.id)

        assert registry.execute("object.update", {"id": shire.id, "data": {"color": "#0a0"}})
        assert engine.objects.get(shire.id).color == "#0a0"

        assert registry.execute("object.delete", {"id": shire.id}) is True
        assert len(engine.objects) == 0
        assert state.selected_card_ids == set()
        assert state.active_object_id is None

        assert registry.execute("object.delete", {"id": shire.id}) is False
        assert registry.execute("object.create", {}) is False

    def test_create_thread(self, registry: OperationRegistry, engine: TimelineEngine) -> None:
        assert registry.execute("thread.create", {"name": "Quest", "color": "#c00"}) is True
        assert [t.color for t in engine.threads()] == ["#c00"]

    def test_render_and_unrender(
        self, registry: OperationRegistry, engine: TimelineEngine, state: EditorState, story: dict
    ) -> None:
        note = engine.create_object("Note")

        assert registry.execute("card.render", {"object_id": note.id}) is True
        assert engine.navigator.cursor_index == 3

        state.select_card(note.id)
        assert registry.execute("card.unrender", {"object_id": note.id}) is True
        assert state.selected_card_ids == set()
        assert registry.execute("card.unrender", {"object_id": note.id}) is False

    def test_render_on_unknown_timeslot_fails(
        self, registry: OperationRegistry, engine: TimelineEngine
    ) -> None:
        note = engine.create_object("Note")
        args = {"object_id": note.id, "timeslot_id": "missing"}
        assert registry.execute("card.render", args) is False


class TestMutationOperations:
    """Test mutation operations."""

    def test_create_at_cursor(
        self, registry: OperationRegistry, engine: TimelineEngine, state: EditorState, story: dict
    ) -> None:
        engine.navigator.move_to(2)
        args = {
            "object_id": story["frodo"].id,
            "changes": {"ring": {"to": False}},
            "label": "Loses the Ring",
        }

        assert registry.execute("mutation.create", args) is True

        placement = engine.placements.get(state.active_mutation_id)
        assert placement.timeslot_id == story["slots"][2]
        assert engine.state_at(story["frodo"].id, 2).computed_attributes == {"ring": False}

    def test_create_with_content_and_section_changes(
        self, registry: OperationRegistry, engine: TimelineEngine
    ) -> None:
        letter = engine.create_object(
            "Letter", content="draft", sections=[Section(id="ps", name="Postscript", content="-")]
        )
        engine.render_object(letter.id)
        engine.create_timeslot_at_end()
        args = {
            "object_id": letter.id,
            "timeslot_id": engine.timeslots.id_at(1),
            "content_change": {"from": "draft", "to": "final"},
            "section_changes": {"ps": {"from": "-", "to": "Burn this"}},
        }

        assert registry.execute("mutation.create", args) is True

        before = engine.state_at(letter.id, 0)
        after = engine.state_at(letter.id, 1)
        assert before.computed_content == "draft"
        assert after.computed_content == "final"
        assert after.computed_sections == {"ps": "Burn this"}

    def test_create_ignores_non_mapping_content(
        self, registry: OperationRegistry, engine: TimelineEngine, story: dict
    ) -> None:
        args = {"object_id": story["frodo"].id, "content_change": "final"}

        assert registry.execute("mutation.create", args) is True
        placement = engine.placements.mutations_for(story["frodo"].id)[-1]
        assert placement.mutation.content_change is None

    def test_create_needs_timeslots(self, registry: OperationRegistry, engine: TimelineEngine) -> None:
        frodo = engine.create_object("Frodo")
        assert registry.execute("mutation.create", {"object_id": frodo.id}) is False

    def test_update_merges_payload(
        self, registry: OperationRegistry, engine: TimelineEngine, story: dict
    ) -> None:
        mutation_id = story["mutation"].id

        registry.execute("mutation.update", {"mutation_id": mutation_id, "data": {"label": "Finds it"}})

        stored = engine.placements.get(mutation_id)
        assert stored.mutation.label == "Finds it"
        assert stored.mutation.changes["ring"].to is True

    def test_delete(
        self, registry: OperationRegistry, engine: TimelineEngine, state: EditorState, story: dict
    ) -> None:
        mutation_id = story["mutation"].id
        state.select_mutation(mutation_id)

        assert registry.execute("mutation.delete", {"mutation_id": mutation_id}) is True
        assert mutation_id not in state.selected_mutation_ids
        assert registry.execute("mutation.delete", {"mutation_id": mutation_id}) is False


class TestTimeslotOperations:
    """Test timeslot operations."""

    def test_insert_moves_cursor(self, registry: OperationRegistry, engine: TimelineEngine, story: dict) -> None:
        registry.execute("timeslot.insert_after")
        assert engine.navigator.cursor_index == 1
        new_id = engine.navigator.current_timeslot_id

        registry.execute("timeslot.insert_before", {"index": 0})
        assert engine.navigator.cursor_index == 0
        assert engine.timeslots.order.index(new_id) == 2

    def test_move_and_remove(
        self, registry: OperationRegistry, engine: TimelineEngine, story: dict
    ) -> None:
        first, middle, last = story["slots"]

        assert registry.execute("timeslot.move", {"timeslot_id": last, "index": 0}) is True
        assert engine.timeslots.order == [last, first, middle]

        empty = engine.create_timeslot_at_end()
        assert registry.execute("timeslot.remove", {"timeslot_id": first}) is False
        assert registry.execute("timeslot.remove", {"timeslot_id": empty}) is True
        assert empty not in engine.timeslots


class TestThreadOperations:
    """Test thread tagging and promotion."""

    def test_tag_promote_untag(
        self, registry: OperationRegistry, engine: TimelineEngine, story: dict
    ) -> None:
        quest = engine.create_thread("Quest")
        ring = engine.create_object("Ring")
        slot = engine.render_object(ring.id)
        mutation = engine.add_mutation(
            story["frodo"].id, slot, {"ring": {"to": True}}, attached_to_card_id=ring.id
        )
        tag = {"placement_id": mutation.id, "thread_id": quest.id}

        assert registry.execute("thread.tag", tag) is True
        assert registry.execute("thread.tag", tag) is False

        promote = {"card_id": ring.id, "thread_id": quest.id}
        assert registry.execute("thread.promote", promote) is True
        assert registry.execute("thread.promote", promote) is False

        subthreads = {"placement_id": mutation.id, "subthread_ids": ["mordor"]}
        assert registry.execute("thread.set_subthreads", subthreads) is True

        assert registry.execute("thread.untag", tag) is True
        assert engine.placements.get(mutation.id).thread_ids == []


class TestMilestoneOperations:
    """Test milestone operations."""

    def test_lifecycle(
        self, registry: OperationRegistry, engine: TimelineEngine, story: dict
    ) -> None:
        engine.navigator.move_to(1)

        assert registry.execute("milestone.create", {"name": "Act II"}) is True
        act = engine.milestones.get_by_name("Act II")
        assert act.timeslot_id == story["slots"][1]

        move = {"milestone_id": act.id, "timeslot_id": story["slots"][2]}
        assert registry.execute("milestone.move", move) is True
        update = {"milestone_id": act.id, "data": {"export_as": "act"}}
        assert registry.execute("milestone.update", update) is True
        assert engine.milestones.get(act.id).export_as == "act"

        assert registry.execute("milestone.delete", {"milestone_id": act.id}) is True
        assert registry.execute("milestone.delete", {"milestone_id": act.id}) is False
