"""Editor selection, clipboard and active-item state.

Cursor and anchor live in the engine's navigator; this holds the rest of
what operations read and write.
"""

from dataclasses import dataclass, field
from typing import Literal

ClipboardKind = Literal["card", "mutation"]


@dataclass
class Clipboard:
    kind: ClipboardKind | None = None
    ids: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.kind is None or not self.ids


class EditorState:
    """Selected cards and mutations, clipboard, and the open object."""

    def __init__(self) -> None:
        self.selected_card_ids: set[str] = set()
        self.selected_mutation_ids: set[str] = set()
        self.clipboard = Clipboard()
        self.active_object_id: str | None = None
        self.active_mutation_id: str | None = None

    @property
    def has_card_selection(self) -> bool:
        return bool(self.selected_card_ids)

    @property
    def has_mutation_selection(self) -> bool:
        return bool(self.selected_mutation_ids)

    @property
    def has_any_selection(self) -> bool:
        return self.has_card_selection or self.has_mutation_selection

    @property
    def has_clipboard(self) -> bool:
        return not self.clipboard.is_empty

    # Selection

    def select_card(self, card_id: str, additive: bool = False) -> None:
        if additive:
            self.selected_card_ids.add(card_id)
        else:
            self.selected_card_ids = {card_id}
            self.selected_mutation_ids = set()

    def select_mutation(self, mutation_id: str, additive: bool = False) -> None:
        if additive:
            self.selected_mutation_ids.add(mutation_id)
        else:
            self.selected_card_ids = set()
            self.selected_mutation_ids = {mutation_id}

    def toggle_card(self, card_id: str) -> None:
        if card_id in self.selected_card_ids:
            self.selected_card_ids.discard(card_id)
        else:
            self.selected_card_ids.add(card_id)

    def toggle_mutation(self, mutation_id: str) -> None:
        if mutation_id in self.selected_mutation_ids:
            self.selected_mutation_ids.discard(mutation_id)
        else:
            self.selected_mutation_ids.add(mutation_id)

    def clear_selection(self) -> None:
        self.selected_card_ids = set()
        self.selected_mutation_ids = set()

    def forget(self, ids: set[str]) -> None:
        """Drop ids of records that no longer exist."""
        self.selected_card_ids -= ids
        self.selected_mutation_ids -= ids
        if self.active_object_id in ids:
            self.active_object_id = None
        if self.active_mutation_id in ids:
            self.active_mutation_id = None

    # Clipboard

    def copy_to_clipboard(self, kind: ClipboardKind, ids: list[str]) -> None:
        self.clipboard = Clipboard(kind=kind, ids=list(ids))

    def clear_clipboard(self) -> None:
        self.clipboard = Clipboard()

    # Active items

    def set_active_object(self, object_id: str | None) -> None:
        self.active_object_id = object_id

    def set_active_mutation(self, mutation_id: str | None) -> None:
        self.active_mutation_id = mutation_id
