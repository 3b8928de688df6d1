"""Pydantic models for timeline records and computed views.

Attributes are snake_case in Python and camelCase at the persistence
boundary (``timeslotOrder``, ``threadIds``...). Records are frozen: an edit
produces a new instance that keeps the id, ``seq`` and ``created_at``.
"""

import uuid
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from loomline.utils.telemetry import utc_now_iso


def new_id() -> str:
    """Generate a fresh record id."""
    return str(uuid.uuid4())


class LoomModel(BaseModel):
    """Base for persisted records."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )


class PlacementType(str, Enum):
    """What a placement records about its object."""

    CREATION = "creation"
    MUTATION = "mutation"


ExportKind = Literal["part", "act", "section", "book"]


class Timeslot(LoomModel):
    """An atomic, identified narrative moment."""

    id: str = Field(default_factory=new_id, min_length=1)
    created_at: str = Field(default_factory=utc_now_iso)


class AttributeChange(LoomModel):
    """A single ``{from, to}`` delta. ``from`` is informational only."""

    from_: Any = Field(default=None, alias="from")
    to: Any = None


class MutationPayload(LoomModel):
    """Attribute and content deltas carried by a Mutation placement."""

    label: str = Field(default="Property change", description="e.g. 'Frodo receives Ring'")
    changes: dict[str, AttributeChange] = Field(default_factory=dict)
    content_change: AttributeChange | None = Field(
        default=None, description="Full replacement of the object's rich body"
    )
    section_changes: dict[str, AttributeChange] | None = Field(
        default=None, description="Full replacements keyed by section id"
    )


class Placement(LoomModel):
    """Binds an object to a timeslot as either a Creation or a Mutation."""

    id: str = Field(default_factory=new_id, min_length=1)
    seq: int = Field(
        default=0,
        ge=0,
        description="Log sequence number; orders placements sharing a timeslot",
    )
    object_id: str = Field(min_length=1)
    type: PlacementType
    timeslot_id: str = Field(min_length=1)
    attached_to_card_id: str | None = Field(
        default=None, description="Card this mutation is drawn beneath"
    )
    thread_ids: list[str] = Field(default_factory=list)
    subthread_ids: list[str] = Field(default_factory=list)
    mutation: MutationPayload | None = None
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)

    @model_validator(mode="after")
    def check_payload(self) -> "Placement":
        if self.type is PlacementType.MUTATION and self.mutation is None:
            raise ValueError("mutation placement requires a mutation payload")
        if self.type is PlacementType.CREATION and self.mutation is not None:
            raise ValueError("creation placement cannot carry a mutation payload")
        return self

    @property
    def is_creation(self) -> bool:
        return self.type is PlacementType.CREATION

    @property
    def is_mutation(self) -> bool:
        return self.type is PlacementType.MUTATION

    @classmethod
    def creation(cls, object_id: str, timeslot_id: str, **fields: Any) -> "Placement":
        return cls(
            object_id=object_id,
            type=PlacementType.CREATION,
            timeslot_id=timeslot_id,
            **fields,
        )

    @classmethod
    def mutation_at(
        cls,
        object_id: str,
        timeslot_id: str,
        label: str = "Property change",
        changes: dict[str, Any] | None = None,
        content_change: Any = None,
        section_changes: dict[str, Any] | None = None,
        **fields: Any,
    ) -> "Placement":
        """Build a Mutation placement.

        ``changes`` values may be ``AttributeChange`` instances or plain
        ``{"from": ..., "to": ...}`` dicts.
        """
        payload = MutationPayload(
            label=label,
            changes=changes or {},
            content_change=content_change,
            section_changes=section_changes,
        )
        return cls(
            object_id=object_id,
            type=PlacementType.MUTATION,
            timeslot_id=timeslot_id,
            mutation=payload,
            **fields,
        )


class Section(LoomModel):
    """Named slice of an object's body; on a thread object, a subthread."""

    id: str = Field(default_factory=new_id, min_length=1)
    name: str
    content: Any = None


class StoryObject(LoomModel):
    """A tracked entity: character, location, chapter, thread..."""

    id: str = Field(default_factory=new_id, min_length=1)
    name: str
    type_id: str = "note"
    parent_id: str | None = None
    sort_order: float | None = None
    aliases: list[str] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)
    color: str | None = None
    rendered: bool = False
    timeslot_id: str | None = None
    content: Any = None
    sections: list[Section] = Field(default_factory=list)
    is_thread: bool = False
    thread_color: str | None = None
    show_on_timeline: bool = True
    show_connecting_lines: bool = True
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)

    @model_validator(mode="after")
    def check_rendered_slot(self) -> "StoryObject":
        if self.rendered and self.timeslot_id is None:
            raise ValueError("rendered object requires a timeslot_id")
        if not self.rendered and self.timeslot_id is not None:
            raise ValueError("timeslot_id is only set on rendered objects")
        return self

    def section(self, section_id: str) -> Section | None:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None


class Milestone(LoomModel):
    """Structural marker (act, part...) drawn before a timeslot."""

    id: str = Field(default_factory=new_id, min_length=1)
    name: str
    timeslot_id: str | None = Field(
        default=None, description="Timeslot this milestone precedes; None = start"
    )
    color: str | None = None
    description: str | None = None
    export_as: ExportKind | None = None
    export_title: str | None = None
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)


class Thread(BaseModel):
    """Read model of a thread object."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    color: str | None = None
    show_on_timeline: bool = True
    show_connecting_lines: bool = True
    subthreads: list[Section] = Field(default_factory=list)

    @classmethod
    def from_object(cls, obj: StoryObject) -> "Thread":
        return cls(
            id=obj.id,
            name=obj.name,
            color=obj.thread_color or obj.color,
            show_on_timeline=obj.show_on_timeline,
            show_connecting_lines=obj.show_connecting_lines,
            subthreads=list(obj.sections),
        )


class ComputedObjectState(BaseModel):
    """Net state of one object at one timeslot index."""

    model_config = ConfigDict(frozen=True)

    object_id: str
    index: int
    mutations: list[Placement] = Field(
        default_factory=list, description="Applied mutations, in replay order"
    )
    future_mutations: list[Placement] = Field(default_factory=list)
    computed_attributes: dict[str, Any] = Field(default_factory=dict)
    computed_content: Any = None
    computed_sections: dict[str, Any] = Field(default_factory=dict)

    @property
    def latest_mutation(self) -> Placement | None:
        return self.mutations[-1] if self.mutations else None


class ProjectSnapshot(LoomModel):
    """Everything needed to rebuild engine state."""

    timeslot_order: list[str] = Field(default_factory=list)
    timeslots: list[Timeslot] = Field(default_factory=list)
    placements: list[Placement] = Field(default_factory=list)
    objects: list[StoryObject] = Field(default_factory=list)
    milestones: list[Milestone] = Field(default_factory=list)
