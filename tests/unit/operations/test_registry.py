"""Unit tests for OperationRegistry."""

from typing import Any

import pytest

from loomline.core.engine import TimelineEngine
from loomline.operations import (
    EditorState,
    Operation,
    OperationContext,
    OperationRegistry,
)


@pytest.fixture
def registry() -> OperationRegistry:
    return OperationRegistry(TimelineEngine())


def make_operation(op_id: str, calls: list, result: Any = None, **kwargs: Any) -> Operation:
    def execute(ctx: OperationContext, args: dict[str, Any]) -> Any:
        calls.append((op_id, args))
        return result

    return Operation(id=op_id, label=op_id.title(), category="edit", execute=execute, **kwargs)


class TestRegistration:
    """Test registering and looking up operations."""

    def test_register_and_get(self, registry: OperationRegistry) -> None:
        operation = make_operation("edit.noop", [])
        registry.register(operation)

        assert registry.get("edit.noop") is operation
        assert registry.get("missing") is None
        assert list(registry.all()) == ["edit.noop"]

    def test_all_returns_copy(self, registry: OperationRegistry) -> None:
        registry.register(make_operation("edit.noop", []))
        registry.all().clear()
        assert registry.get("edit.noop") is not None

    def test_overwrite_replaces(self, registry: OperationRegistry) -> None:
        registry.register(make_operation("edit.noop", []))
        replacement = make_operation("edit.noop", [])
        registry.register(replacement)
        assert registry.get("edit.noop") is replacement

    def test_grouping_by_category(self, registry: OperationRegistry) -> None:
        calls: list = []
        registry.register_all(
            [
                make_operation("edit.a", calls),
                make_operation("edit.b", calls),
                Operation(id="cursor.x", label="X", category="cursor", execute=lambda c, a: None),
            ]
        )

        assert [op.id for op in registry.by_category("edit")] == ["edit.a", "edit.b"]
        assert set(registry.all_by_category()) == {"edit", "cursor"}


class TestExecution:
    """Test precondition checks and the error boundary."""

    def test_execute_passes_args(self, registry: OperationRegistry) -> None:
        calls: list = []
        registry.register(make_operation("edit.noop", calls))

        assert registry.execute("edit.noop", {"id": "x"}) is True
        assert registry.execute("edit.noop") is True
        assert calls == [("edit.noop", {"id": "x"}), ("edit.noop", {})]

    def test_unknown_operation(self, registry: OperationRegistry) -> None:
        assert registry.execute("missing") is False
        assert registry.can_execute("missing") is False

    def test_precondition_blocks(self, registry: OperationRegistry) -> None:
        calls: list = []
        registry.register(
            make_operation("edit.guarded", calls, precondition=lambda ctx: ctx.has_anchor)
        )

        assert registry.can_execute("edit.guarded") is False
        assert registry.execute("edit.guarded") is False
        assert calls == []

    def test_false_result_reports_no_op(self, registry: OperationRegistry) -> None:
        registry.register(make_operation("edit.nothing", [], result=False))
        assert registry.execute("edit.nothing") is False

    def test_errors_are_contained(self, registry: OperationRegistry) -> None:
        def explode(ctx: OperationContext, args: dict[str, Any]) -> None:
            raise RuntimeError("boom")

        registry.register(Operation(id="edit.boom", label="Boom", category="edit", execute=explode))

        assert registry.execute("edit.boom") is False

    def test_available_operations(self, registry: OperationRegistry) -> None:
        registry.register(make_operation("edit.always", []))
        registry.register(
            make_operation("edit.never", [], precondition=lambda ctx: False)
        )

        assert [op.id for op in registry.available_operations()] == ["edit.always"]


class TestContext:
    """Test the context snapshot handed to operations."""

    def test_context_reflects_engine_and_state(self) -> None:
        engine = TimelineEngine()
        state = EditorState()
        registry = OperationRegistry(engine, state)
        engine.create_timeslot_at_end()
        engine.create_timeslot_at_end()
        engine.navigator.navigate_with_anchor(1)
        state.select_card("card-1")
        state.copy_to_clipboard("card", ["card-1"])

        ctx = registry.build_context()

        assert ctx.cursor == 1
        assert ctx.anchor == 0
        assert ctx.timeslot_count == 2
        assert ctx.selected_card_ids == frozenset({"card-1"})
        assert ctx.can_undo is True
        assert ctx.can_redo is False
        assert ctx.has_clipboard is True
        assert ctx.has_anchor and ctx.has_card_selection and not ctx.has_mutation_selection

    def test_context_is_frozen(self, registry: OperationRegistry) -> None:
        ctx = registry.build_context()
        with pytest.raises(AttributeError):
            ctx.cursor = 3  # type: ignore[misc]
