"""Keyboard shortcuts bound to operations, with persisted user overrides.

A shortcut is a key plus ctrl/shift/alt modifiers. Every operation may
declare a default shortcut; users override it (or disable it with None) and
the overrides persist as ``{"version": 1, "overrides": [...]}``.
"""

from pathlib import Path
from typing import TYPE_CHECKING, NamedTuple

import orjson
from pydantic import ValidationError

from loomline.schemas.types import LoomModel
from loomline.utils.telemetry import get_logger

if TYPE_CHECKING:
    from loomline.operations.registry import Operation, OperationRegistry

STORED_SHORTCUTS_VERSION = 1


class Shortcut(LoomModel):
    """A key with modifiers. ``ctrl`` also stands for Cmd on macOS."""

    key: str
    ctrl: bool = False
    shift: bool = False
    alt: bool = False

    def combo(self) -> str:
        """Lookup key such as ``ctrl+shift+z``; the key is case-insensitive."""
        parts = [name for name in ("ctrl", "shift", "alt") if getattr(self, name)]
        parts.append(self.key.lower())
        return "+".join(parts)

    @classmethod
    def parse(cls, text: str) -> "Shortcut":
        """Build a shortcut from ``"ctrl+shift+z"`` style text."""
        *modifiers, key = [part.strip() for part in text.split("+")]
        flags = {m.lower() for m in modifiers}
        unknown = flags - {"ctrl", "shift", "alt"}
        if unknown or not key:
            raise ValueError(f"Invalid shortcut: {text!r}")
        return cls(key=key, ctrl="ctrl" in flags, shift="shift" in flags, alt="alt" in flags)


class ShortcutOverride(LoomModel):
    operation_id: str
    shortcut: Shortcut | None = None


class StoredShortcuts(LoomModel):
    version: int = STORED_SHORTCUTS_VERSION
    overrides: list[ShortcutOverride] = []


class ShortcutBinding(NamedTuple):
    """Binding info for a settings view."""

    operation: "Operation"
    shortcut: Shortcut | None
    is_custom: bool


class KeyBindings:
    """Maps shortcuts to operation ids and dispatches key presses.

    When ``overrides_path`` is set, every change to the overrides is written
    there and ``load_file`` reads it back.
    """

    def __init__(
        self, registry: "OperationRegistry", overrides_path: Path | str | None = None
    ) -> None:
        self._registry = registry
        self.overrides_path = Path(overrides_path) if overrides_path else None
        self._overrides: dict[str, Shortcut | None] = {}
        self._by_combo: dict[str, str] = {}
        self._logger = get_logger("loomline.keyboard")
        self.rebuild()

    def rebuild(self) -> None:
        """Recompute the combo lookup from defaults and overrides."""
        self._by_combo = {}
        for operation_id in self._registry.all():
            shortcut = self.get_effective_shortcut(operation_id)
            if shortcut is not None:
                self._by_combo[shortcut.combo()] = operation_id

    def get_effective_shortcut(self, operation_id: str) -> Shortcut | None:
        """The user override if there is one, else the operation's default."""
        if operation_id in self._overrides:
            return self._overrides[operation_id]
        operation = self._registry.get(operation_id)
        return operation.default_shortcut if operation else None

    def operation_for(self, shortcut: Shortcut) -> str | None:
        return self._by_combo.get(shortcut.combo())

    def set_shortcut(
        self, operation_id: str, shortcut: Shortcut | None, replace: bool = False
    ) -> str | None:
        """Override an operation's shortcut; None disables it.

        Args:
            operation_id: Operation to rebind
            shortcut: New combo, or None to disable the binding
            replace: Take the combo from another operation that holds it,
                disabling that operation's binding

        Returns:
            Id of the operation that held the combo, or None. Without
            ``replace`` a conflict leaves every binding unchanged.
        """
        conflict = (
            self.check_conflict(shortcut, exclude=operation_id) if shortcut is not None else None
        )
        if conflict is not None:
            if not replace:
                self._logger.info(
                    "Shortcut already bound",
                    operation=operation_id,
                    shortcut=shortcut.combo(),
                    bound_to=conflict,
                )
                return conflict
            self._overrides[conflict] = None
        self._overrides[operation_id] = shortcut
        self._overrides_changed()
        return conflict

    def reset_shortcut(self, operation_id: str) -> None:
        self._overrides.pop(operation_id, None)
        self._overrides_changed()

    def reset_all(self) -> None:
        self._overrides.clear()
        self._overrides_changed()

    def has_custom_shortcut(self, operation_id: str) -> bool:
        return operation_id in self._overrides

    def check_conflict(self, shortcut: Shortcut, exclude: str | None = None) -> str | None:
        """Id of another operation already using ``shortcut``, if any."""
        combo = shortcut.combo()
        for operation_id in self._registry.all():
            if operation_id == exclude:
                continue
            current = self.get_effective_shortcut(operation_id)
            if current is not None and current.combo() == combo:
                return operation_id
        return None

    def all_bindings(self) -> list[ShortcutBinding]:
        return [
            ShortcutBinding(
                operation=operation,
                shortcut=self.get_effective_shortcut(operation_id),
                is_custom=self.has_custom_shortcut(operation_id),
            )
            for operation_id, operation in self._registry.all().items()
        ]

    def handle_key(self, shortcut: Shortcut) -> bool:
        """Run the operation bound to a key press.

        Returns:
            True if an operation was bound, allowed and executed
        """
        operation_id = self.operation_for(shortcut)
        if operation_id is None:
            return False
        return self._registry.execute(operation_id)

    # Persistence

    def to_stored(self) -> StoredShortcuts:
        return StoredShortcuts(
            overrides=[
                ShortcutOverride(operation_id=operation_id, shortcut=shortcut)
                for operation_id, shortcut in self._overrides.items()
            ]
        )

    def load_stored(self, data: StoredShortcuts | dict) -> bool:
        """Replace the overrides with stored ones.

        Data with another version is ignored.

        Returns:
            True if the overrides were replaced
        """
        stored = data if isinstance(data, StoredShortcuts) else StoredShortcuts.model_validate(data)
        if stored.version != STORED_SHORTCUTS_VERSION:
            self._logger.warning("Ignoring stored shortcuts", version=stored.version)
            return False

        self._overrides = {o.operation_id: o.shortcut for o in stored.overrides}
        self.rebuild()
        return True

    def save_file(self, path: Path | str | None = None) -> None:
        """Write the overrides as JSON.

        Raises:
            ValueError: If no path is given and none is configured
        """
        target = Path(path) if path else self.overrides_path
        if target is None:
            raise ValueError("No shortcuts file configured")
        payload = self.to_stored().model_dump(mode="json", by_alias=True)
        target.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))

    def load_file(self, path: Path | str | None = None) -> bool:
        """Read overrides written by ``save_file``.

        A missing, unreadable or invalid file leaves the current overrides
        in place and is logged.
        """
        source = Path(path) if path else self.overrides_path
        if source is None or not source.exists():
            return False
        try:
            data = orjson.loads(source.read_bytes())
            return self.load_stored(data)
        except (OSError, orjson.JSONDecodeError, ValidationError) as e:
            self._logger.warning("Failed to load keyboard shortcuts", path=str(source), error=str(e))
            return False

    def _overrides_changed(self) -> None:
        self.rebuild()
        if self.overrides_path is None:
            return
        try:
            self.save_file()
        except OSError as e:
            self._logger.warning(
                "Failed to save keyboard shortcuts", path=str(self.overrides_path), error=str(e)
            )


_KEY_LABELS = {
    "arrowleft": ("←", "←"),
    "arrowright": ("→", "→"),
    "arrowup": ("↑", "↑"),
    "arrowdown": ("↓", "↓"),
    "delete": ("Del", "Del"),
    "backspace": ("Backspace", "⌫"),
    "escape": ("Esc", "Esc"),
    "enter": ("Enter", "↵"),
    " ": ("Space", "Space"),
}


def format_shortcut(shortcut: Shortcut | None, mac: bool = False) -> str:
    """Human-readable label, e.g. ``Ctrl+Shift+Z`` or ``⌘⇧Z`` with ``mac``."""
    if shortcut is None:
        return ""

    parts: list[str] = []
    if shortcut.ctrl:
        parts.append("⌘" if mac else "Ctrl")
    if shortcut.shift:
        parts.append("⇧" if mac else "Shift")
    if shortcut.alt:
        parts.append("⌥" if mac else "Alt")

    labels = _KEY_LABELS.get(shortcut.key.lower())
    if labels is not None:
        parts.append(labels[1] if mac else labels[0])
    elif len(shortcut.key) == 1:
        parts.append(shortcut.key.upper())
    else:
        parts.append(shortcut.key)

    return "".join(parts) if mac else "+".join(parts)
