"""Object registry: tracked entities, their base attributes and hierarchy.

Threads are ordinary objects flagged ``is_thread``; their sections double as
subthreads.
"""

from typing import Any

from loomline.core.timeslots import TimeslotUsage
from loomline.schemas.types import StoryObject, Thread
from loomline.utils.errors import DuplicateIdError, HierarchyCycleError
from loomline.utils.events import ChangeNotifier
from loomline.utils.telemetry import get_logger, record_registry_size, utc_now_iso

_IDENTITY_FIELDS = frozenset({"id", "created_at"})


class ObjectRegistry:
    """Owns StoryObject records keyed by id, in insertion order."""

    def __init__(self) -> None:
        self._objects: dict[str, StoryObject] = {}
        # Insertion rank per id, kept after removal so undo restores position
        self._positions: dict[str, int] = {}
        self.notifier = ChangeNotifier("objects")
        self._logger = get_logger("loomline.objects")

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, object_id: object) -> bool:
        return object_id in self._objects

    # Writes

    def create(self, name: str, **fields: Any) -> StoryObject:
        """Build and add a new object."""
        return self.add(StoryObject(name=name, **fields))

    def add(self, obj: StoryObject) -> StoryObject:
        if obj.id in self._objects:
            raise DuplicateIdError("object", obj.id)
        if obj.parent_id is not None and self.is_descendant_of(obj.parent_id, obj.id):
            raise HierarchyCycleError(obj.id, obj.parent_id)

        self._put(obj)
        self._logger.debug("Object added", object_id=obj.id, type_id=obj.type_id)
        self._changed("add", object_id=obj.id)
        return obj

    def update(self, object_id: str, partial: dict[str, Any]) -> StoryObject | None:
        """Shallow-merge ``partial`` into an object, bumping ``updated_at``.

        Returns:
            The updated object, or None if the id is unknown

        Raises:
            pydantic.ValidationError: If the merged record is invalid
            HierarchyCycleError: If the new parent is the object or lies below it
        """
        existing = self._objects.get(object_id)
        if existing is None:
            return None
        parent_id = partial.get("parent_id")
        if parent_id is not None and self.is_descendant_of(parent_id, object_id):
            raise HierarchyCycleError(object_id, parent_id)

        merged = existing.model_dump()
        merged.update({k: v for k, v in partial.items() if k not in _IDENTITY_FIELDS})
        merged["updated_at"] = utc_now_iso()
        updated = StoryObject.model_validate(merged)

        self._objects[object_id] = updated
        self._logger.debug("Object updated", object_id=object_id, fields=sorted(partial))
        self._changed("update", object_id=object_id)
        return updated

    def restore(self, obj: StoryObject) -> StoryObject:
        """Store an exact earlier version of an object (used by undo)."""
        self._put(obj)
        self._changed("restore", object_id=obj.id)
        return obj

    def remove(self, object_id: str) -> StoryObject | None:
        existing = self._objects.pop(object_id, None)
        if existing is not None:
            self._logger.debug("Object removed", object_id=object_id)
            self._changed("remove", object_id=object_id)
        return existing

    # Reads

    def get(self, object_id: str) -> StoryObject | None:
        return self._objects.get(object_id)

    def all(self) -> list[StoryObject]:
        """Objects in insertion order."""
        return sorted(self._objects.values(), key=lambda o: self._positions[o.id])

    def find_by_name(self, name: str) -> StoryObject | None:
        """Case-insensitive lookup by name or alias."""
        wanted = name.casefold()
        for obj in self._objects.values():
            if obj.name.casefold() == wanted:
                return obj
            if any(alias.casefold() == wanted for alias in obj.aliases):
                return obj
        return None

    def children(self, parent_id: str | None) -> list[StoryObject]:
        """Direct children, ordered by ``sort_order`` then insertion."""
        kids = [obj for obj in self.all() if obj.parent_id == parent_id]
        return sorted(
            kids,
            key=lambda obj: (obj.sort_order is None, obj.sort_order or 0.0),
        )

    def descendants(self, object_id: str) -> list[StoryObject]:
        """All objects below ``object_id`` in the tree, depth first."""
        result: list[StoryObject] = []
        stack = list(reversed(self.children(object_id)))
        seen = {object_id}
        while stack:
            obj = stack.pop()
            if obj.id in seen:
                continue
            seen.add(obj.id)
            result.append(obj)
            stack.extend(reversed(self.children(obj.id)))
        return result

    def is_descendant_of(self, object_id: str, ancestor_id: str) -> bool:
        """Whether ``object_id`` is ``ancestor_id`` or sits somewhere below it."""
        seen: set[str] = set()
        current: str | None = object_id
        while current is not None and current not in seen:
            if current == ancestor_id:
                return True
            seen.add(current)
            parent = self._objects.get(current)
            current = parent.parent_id if parent is not None else None
        return False

    def rendered_at(self, timeslot_id: str) -> list[StoryObject]:
        return [
            obj for obj in self._objects.values()
            if obj.rendered and obj.timeslot_id == timeslot_id
        ]

    def timeslot_usage(self, timeslot_id: str) -> TimeslotUsage:
        """Usage probe for the timeslot registry: rendered cards."""
        return TimeslotUsage(cards=len(self.rendered_at(timeslot_id)))

    def threads(self) -> list[Thread]:
        return [
            Thread.from_object(obj) for obj in self.all() if obj.is_thread
        ]

    def thread(self, thread_id: str) -> Thread | None:
        obj = self._objects.get(thread_id)
        if obj is None or not obj.is_thread:
            return None
        return Thread.from_object(obj)

    def subthread_ids(self, thread_id: str) -> set[str]:
        """Section ids of a thread object (empty for non-threads)."""
        obj = self._objects.get(thread_id)
        if obj is None or not obj.is_thread:
            return set()
        return {section.id for section in obj.sections}

    # Persistence boundary

    def load(self, objects: list[StoryObject]) -> None:
        ids = [obj.id for obj in objects]
        if len(set(ids)) != len(ids):
            duplicate = next(oid for oid in ids if ids.count(oid) > 1)
            raise DuplicateIdError("object", duplicate)

        self._objects = {}
        self._positions = {}
        for obj in objects:
            self._put(obj)
        self._changed("load", count=len(self._objects))

    def clear(self) -> None:
        self._objects = {}
        self._positions = {}
        self._changed("clear")

    def _put(self, obj: StoryObject) -> None:
        self._positions.setdefault(obj.id, len(self._positions))
        self._objects[obj.id] = obj

    def _changed(self, action: str, **details: Any) -> None:
        record_registry_size("objects", len(self._objects))
        self.notifier.notify(action, **details)
