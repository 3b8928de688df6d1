"""Cursor/anchor navigation over the timeslot order.

The cursor is the author's current position. The anchor is a single saved
position: jumping away with ``navigate_with_anchor`` records where the jump
started, and ``return_to_anchor`` snaps back. Nested jumps never overwrite
the first anchor. All moves clamp to the order and report whether anything
changed instead of raising.
"""

from loomline.core.timeslots import TimeslotRegistry
from loomline.utils.events import ChangeEvent, ChangeNotifier
from loomline.utils.telemetry import get_logger


class Navigator:
    """Cursor index plus one optional anchor index."""

    def __init__(self, timeslots: TimeslotRegistry) -> None:
        self._timeslots = timeslots
        self.cursor_index = 0
        self.anchor_index: int | None = None
        self.notifier = ChangeNotifier("navigator")
        self._logger = get_logger("loomline.navigator")
        self._subscription = timeslots.notifier.subscribe(self._on_timeslots_changed)

    @property
    def last_index(self) -> int:
        return max(len(self._timeslots) - 1, 0)

    @property
    def has_anchor(self) -> bool:
        return self.anchor_index is not None

    @property
    def reference_index(self) -> int:
        """Where the author came from: the anchor if set, else the cursor."""
        return self.anchor_index if self.anchor_index is not None else self.cursor_index

    @property
    def current_timeslot_id(self) -> str | None:
        return self._timeslots.id_at(self.cursor_index)

    def _bounded(self, index: int) -> int:
        return max(0, min(index, self.last_index))

    def _set_cursor(self, index: int) -> bool:
        if index == self.cursor_index:
            return False
        previous = self.cursor_index
        self.cursor_index = index
        self.notifier.notify("cursor", from_index=previous, to_index=index)
        return True

    def next(self) -> bool:
        return self._set_cursor(self._bounded(self.cursor_index + 1))

    def prev(self) -> bool:
        return self._set_cursor(self._bounded(self.cursor_index - 1))

    def first(self) -> bool:
        return self._set_cursor(0)

    def last(self) -> bool:
        return self._set_cursor(self.last_index)

    def move_to(self, index: int) -> bool:
        return self._set_cursor(self._bounded(index))

    def move_to_timeslot(self, timeslot_id: str) -> bool:
        index = self._timeslots.index_of(timeslot_id)
        if index < 0:
            return False
        return self.move_to(index)

    def navigate_with_anchor(self, target: int) -> bool:
        """Jump to ``target``, remembering where the first jump started.

        Returns:
            True if the cursor moved
        """
        target = self._bounded(target)
        if self.anchor_index is None and target != self.cursor_index:
            self.anchor_index = self.cursor_index
            self._logger.debug("Anchor set", anchor_index=self.anchor_index)
        return self._set_cursor(target)

    def return_to_anchor(self) -> bool:
        """Move back to the anchor and clear it. False when no anchor is set."""
        if self.anchor_index is None:
            return False
        target = self._bounded(self.anchor_index)
        self.anchor_index = None
        if not self._set_cursor(target):
            self.notifier.notify("anchor_cleared")
        return True

    def clear_anchor(self) -> bool:
        if self.anchor_index is None:
            return False
        self.anchor_index = None
        self.notifier.notify("anchor_cleared")
        return True

    def clamp(self) -> None:
        """Pull cursor and anchor back inside the order after it shrinks."""
        self.cursor_index = self._bounded(self.cursor_index)
        if self.anchor_index is not None:
            self.anchor_index = self._bounded(self.anchor_index)

    def reset(self) -> None:
        self.cursor_index = 0
        self.anchor_index = None
        self.notifier.notify("reset")

    def _on_timeslots_changed(self, event: ChangeEvent) -> None:
        self.clamp()
