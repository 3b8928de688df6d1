"""Operation registry: named editor actions with preconditions.

Every user-facing action (menu item, key press, command palette entry) is an
``Operation`` registered by id. The registry builds an ``OperationContext``
from the engine and editor state, checks the precondition and runs the
action. Errors stop at this boundary: they are logged and the call reports
False instead of raising.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from loomline.operations.keyboard import Shortcut
from loomline.operations.state import EditorState
from loomline.utils.telemetry import PerformanceTimer, get_logger, record_operation

if TYPE_CHECKING:
    from loomline.core.engine import TimelineEngine

OperationCategory = Literal[
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
]


@dataclass(frozen=True)
class OperationContext:
    """Read-only view of editor state handed to preconditions and actions."""

    cursor: int
    anchor: int | None
    timeslot_count: int
    selected_card_ids: frozenset[str] = frozenset()
    selected_mutation_ids: frozenset[str] = frozenset()
    can_undo: bool = False
    can_redo: bool = False
    has_clipboard: bool = False
    active_object_id: str | None = None
    active_mutation_id: str | None = None

    @property
    def has_anchor(self) -> bool:
        return self.anchor is not None

    @property
    def has_card_selection(self) -> bool:
        return bool(self.selected_card_ids)

    @property
    def has_mutation_selection(self) -> bool:
        return bool(self.selected_mutation_ids)

    @property
    def has_any_selection(self) -> bool:
        return self.has_card_selection or self.has_mutation_selection


def _always(ctx: OperationContext) -> bool:
    return True


@dataclass
class Operation:
    """A named, optionally key-bound editor action.

    ``execute`` may return False to report that it did nothing (for example
    when a required argument is missing); any other return counts as done.
    """

    id: str
    label: str
    category: OperationCategory
    execute: Callable[[OperationContext, dict[str, Any]], Any]
    precondition: Callable[[OperationContext], bool] = field(default=_always)
    default_shortcut: Shortcut | None = None
    undoable: bool = False
    description: str | None = None


class OperationRegistry:
    """Registry and dispatcher for editor operations.

    Core Features
    -------------
    - **Lookup**: by id, by category, or all operations grouped by category
    - **Preconditions**: an operation runs only when its precondition holds
      for the current context
    - **Error boundary**: failures are logged and counted, never raised

    Examples
    --------
    >>> registry = OperationRegistry(engine)
    >>> register_default_operations(registry)
    >>> registry.execute("timeslot.insert_after")
    True
    >>> registry.execute("history.undo")
    True
    """

    def __init__(self, engine: "TimelineEngine", state: EditorState | None = None) -> None:
        self.engine = engine
        self.state = state or EditorState()
        self._operations: dict[str, Operation] = {}
        self._logger = get_logger("loomline.operations")

    def register(self, operation: Operation) -> None:
        if operation.id in self._operations:
            self._logger.warning("Overwriting operation", operation=operation.id)
        self._operations[operation.id] = operation

    def register_all(self, operations: list[Operation]) -> None:
        for operation in operations:
            self.register(operation)

    def get(self, operation_id: str) -> Operation | None:
        return self._operations.get(operation_id)

    def all(self) -> dict[str, Operation]:
        return dict(self._operations)

    def by_category(self, category: str) -> list[Operation]:
        return [op for op in self._operations.values() if op.category == category]

    def all_by_category(self) -> dict[str, list[Operation]]:
        grouped: dict[str, list[Operation]] = {}
        for operation in self._operations.values():
            grouped.setdefault(operation.category, []).append(operation)
        return grouped

    def build_context(self) -> OperationContext:
        navigator = self.engine.navigator
        return OperationContext(
            cursor=navigator.cursor_index,
            anchor=navigator.anchor_index,
            timeslot_count=len(self.engine.timeslots),
            selected_card_ids=frozenset(self.state.selected_card_ids),
            selected_mutation_ids=frozenset(self.state.selected_mutation_ids),
            can_undo=self.engine.can_undo,
            can_redo=self.engine.can_redo,
            has_clipboard=self.state.has_clipboard,
            active_object_id=self.state.active_object_id,
            active_mutation_id=self.state.active_mutation_id,
        )

    def execute(self, operation_id: str, args: dict[str, Any] | None = None) -> bool:
        """Run an operation if it exists and its precondition holds.

        Args:
            operation_id: Registered operation id
            args: Operation arguments, if it takes any

        Returns:
            True if the operation ran and did not report a no-op
        """
        operation = self._operations.get(operation_id)
        if operation is None:
            self._logger.warning("Unknown operation", operation=operation_id)
            return False

        ctx = self.build_context()
        if not operation.precondition(ctx):
            record_operation(operation_id, "rejected")
            self._logger.debug("Operation precondition failed", operation=operation_id)
            return False

        try:
            with PerformanceTimer(operation_id, logger=self._logger):
                result = operation.execute(ctx, args or {})
        except Exception as e:
            self._logger.error(
                "Operation failed",
                operation=operation_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        return result is not False

    def can_execute(self, operation_id: str) -> bool:
        operation = self._operations.get(operation_id)
        if operation is None:
            return False
        return operation.precondition(self.build_context())

    def available_operations(self) -> list[Operation]:
        """Operations whose precondition holds right now."""
        ctx = self.build_context()
        return [op for op in self._operations.values() if op.precondition(ctx)]
