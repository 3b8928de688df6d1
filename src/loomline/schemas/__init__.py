# Record schemas and computed views

from .types import (
    AttributeChange,
    ComputedObjectState,
    Milestone,
    MutationPayload,
    Placement,
    PlacementType,
    ProjectSnapshot,
    Section,
    StoryObject,
    Thread,
    Timeslot,
    new_id,
)

__all__ = [
    "AttributeChange",
    "ComputedObjectState",
    "Milestone",
    "MutationPayload",
    "Placement",
    "PlacementType",
    "ProjectSnapshot",
    "Section",
    "StoryObject",
    "Thread",
    "Timeslot",
    "new_id",
]
