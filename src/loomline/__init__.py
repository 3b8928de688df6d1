"""loomline - Narrative timeline engine.

loomline tracks how the entities of a long-form story change across its
internal timeline. Changes are recorded as placements on ordered timeslots,
and the state of any entity at any point is rebuilt by replaying them.
"""

__version__ = "0.1.0"

# Core exports
from .core import (
    CommandHistory,
    MilestoneRegistry,
    Navigator,
    ObjectRegistry,
    PlacementLog,
    Selection,
    TemporalQueryEngine,
    TimelineEngine,
    TimeslotRegistry,
)

# Operation exports
from .operations import EditorState, KeyBindings, OperationRegistry, Shortcut
from .schemas import (
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
)

__all__ = [
    "AttributeChange",
    "CommandHistory",
    "ComputedObjectState",
    "EditorState",
    "KeyBindings",
    "Milestone",
    "MilestoneRegistry",
    "MutationPayload",
    "Navigator",
    "ObjectRegistry",
    "OperationRegistry",
    "Placement",
    "PlacementLog",
    "PlacementType",
    "ProjectSnapshot",
    "Section",
    "Selection",
    "Shortcut",
    "StoryObject",
    "TemporalQueryEngine",
    "Thread",
    "TimelineEngine",
    "Timeslot",
    "TimeslotRegistry",
]
