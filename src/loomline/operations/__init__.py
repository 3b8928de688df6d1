"""Editor operations, key bindings and selection state."""

from .builtin import default_operations, register_default_operations
from .keyboard import (
    KeyBindings,
    Shortcut,
    ShortcutBinding,
    ShortcutOverride,
    StoredShortcuts,
    format_shortcut,
)
from .registry import Operation, OperationContext, OperationRegistry
from .state import Clipboard, EditorState

__all__ = [
    "Clipboard",
    "EditorState",
    "KeyBindings",
    "Operation",
    "OperationContext",
    "OperationRegistry",
    "Shortcut",
    "ShortcutBinding",
    "ShortcutOverride",
    "StoredShortcuts",
    "default_operations",
    "format_shortcut",
    "register_default_operations",
]
