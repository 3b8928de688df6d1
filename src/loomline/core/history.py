"""Undo/redo command history.

Commands are reversible units of change. ``CommandHistory.execute`` runs a
command and records it; ``undo``/``redo`` move it between two bounded
stacks. While a command is being undone or redone the history is
*replaying*: any command executed from inside it runs without being
recorded, so a command's own work never shows up as a separate entry.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from loomline.schemas.types import new_id
from loomline.utils.events import ChangeNotifier
from loomline.utils.telemetry import get_logger, record_history_depth

DEFAULT_MAX_HISTORY = 100


class Command(ABC):
    """A reversible change.

    ``execute`` followed by ``undo`` must restore the exact prior state, and
    ``execute`` must be safe to call again after ``undo`` (that is redo).
    """

    def __init__(self, kind: str, description: str):
        self.id = new_id()
        self.kind = kind
        self.description = description

    @abstractmethod
    def execute(self) -> None:
        """Apply the change."""

    @abstractmethod
    def undo(self) -> None:
        """Revert the change."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r}, description={self.description!r})"


class FunctionCommand(Command):
    """Command built from a pair of callables."""

    def __init__(
        self,
        kind: str,
        description: str,
        do: Callable[[], Any],
        undo: Callable[[], Any],
    ):
        super().__init__(kind, description)
        self._do = do
        self._undo = undo

    def execute(self) -> None:
        self._do()

    def undo(self) -> None:
        self._undo()


class BatchCommand(Command):
    """Ordered group of commands recorded as a single history entry.

    Executes in order and undoes in reverse. If a member fails while
    executing, the members that already ran are undone before the error
    propagates, so a batch applies completely or not at all.
    """

    def __init__(self, description: str, commands: list[Command], kind: str = "batch"):
        super().__init__(kind, description)
        self.commands = list(commands)

    def execute(self) -> None:
        done: list[Command] = []
        try:
            for command in self.commands:
                command.execute()
                done.append(command)
        except Exception:
            for command in reversed(done):
                command.undo()
            raise

    def undo(self) -> None:
        for command in reversed(self.commands):
            command.undo()


class BatchBuilder:
    """Collects commands and commits them as one history entry."""

    def __init__(self, history: "CommandHistory", description: str, kind: str = "batch"):
        self._history = history
        self.description = description
        self.kind = kind
        self.commands: list[Command] = []

    def add(self, command: Command) -> "BatchBuilder":
        self.commands.append(command)
        return self

    def __len__(self) -> int:
        return len(self.commands)

    def build(self) -> Command | None:
        """The command ``commit`` would execute, without executing it."""
        if not self.commands:
            return None
        if len(self.commands) == 1:
            return self.commands[0]
        return BatchCommand(self.description, self.commands, kind=self.kind)

    def commit(self) -> bool:
        """Execute the collected commands as one entry.

        An empty batch is a no-op; a batch of one records that command
        itself.

        Returns:
            True if something was executed
        """
        command = self.build()
        self.commands = []
        if command is None:
            return False
        self._history.execute(command)
        return True

    def cancel(self) -> None:
        self.commands = []


class CommandHistory:
    """Two bounded stacks of executed and undone commands.

    Core Features
    -------------
    - **Branching**: executing a new command clears the redo stack
    - **Bounded**: the oldest entry is dropped past ``max_history``
    - **Atomic entries**: a command that raises is not recorded; a command
      whose undo raises stays on the undo stack
    - **Batches**: ``begin_batch`` groups commands into one entry

    Examples
    --------
    >>> history = CommandHistory(max_history=50)
    >>> history.execute(FunctionCommand("demo", "Demo", do, undo))
    >>> history.undo()
    True
    >>> history.undo()
    False
    """

    def __init__(self, max_history: int = DEFAULT_MAX_HISTORY) -> None:
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self.max_history = max_history
        self._undo_stack: list[Command] = []
        self._redo_stack: list[Command] = []
        self._replaying = False
        self.notifier = ChangeNotifier("history")
        self._logger = get_logger("loomline.history")

    @property
    def replaying(self) -> bool:
        return self._replaying

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo_stack)

    @property
    def undo_description(self) -> str | None:
        return self._undo_stack[-1].description if self._undo_stack else None

    @property
    def redo_description(self) -> str | None:
        return self._redo_stack[-1].description if self._redo_stack else None

    def execute(self, command: Command) -> None:
        """Run a command and record it.

        While replaying, the command runs without being recorded. If the
        command raises, nothing is recorded and the exception propagates.
        """
        if self._replaying:
            command.execute()
            return

        self._replaying = True
        try:
            command.execute()
        finally:
            self._replaying = False

        self._undo_stack.append(command)
        if len(self._undo_stack) > self.max_history:
            dropped = self._undo_stack.pop(0)
            self._logger.debug("History entry dropped", description=dropped.description)
        self._redo_stack.clear()

        self._logger.info("Command executed", kind=command.kind, description=command.description)
        self._changed("execute", kind=command.kind)

    def undo(self) -> bool:
        """Undo the most recent command. False when there is nothing to undo."""
        if not self._undo_stack:
            return False

        command = self._undo_stack.pop()
        self._replaying = True
        try:
            command.undo()
        except Exception:
            self._undo_stack.append(command)
            raise
        finally:
            self._replaying = False

        self._redo_stack.append(command)
        self._logger.info("Command undone", kind=command.kind, description=command.description)
        self._changed("undo", kind=command.kind)
        return True

    def redo(self) -> bool:
        """Re-execute the most recently undone command."""
        if not self._redo_stack:
            return False

        command = self._redo_stack.pop()
        self._replaying = True
        try:
            command.execute()
        except Exception:
            self._redo_stack.append(command)
            raise
        finally:
            self._replaying = False

        self._undo_stack.append(command)
        self._logger.info("Command redone", kind=command.kind, description=command.description)
        self._changed("redo", kind=command.kind)
        return True

    def begin_batch(self, description: str, kind: str = "batch") -> BatchBuilder:
        return BatchBuilder(self, description, kind)

    def clear(self) -> None:
        self._undo_stack.clear()
        self._redo_stack.clear()
        self._changed("clear")

    def get_state(self) -> dict[str, Any]:
        """Stack sizes and descriptions, oldest first."""
        return {
            "undo_count": len(self._undo_stack),
            "redo_count": len(self._redo_stack),
            "undo_descriptions": [c.description for c in self._undo_stack],
            "redo_descriptions": [c.description for c in self._redo_stack],
        }

    def _changed(self, action: str, **details: Any) -> None:
        record_history_depth(len(self._undo_stack), len(self._redo_stack))
        self.notifier.notify(action, **details)
