"""Core timeline engine components."""

from .commands import TimelineStores
from .engine import Selection, TimelineEngine, check_snapshot
from .history import BatchBuilder, BatchCommand, Command, CommandHistory, FunctionCommand
from .milestones import MilestoneRegistry
from .navigator import Navigator
from .objects import ObjectRegistry
from .placement_log import PlacementLog
from .temporal_query import TemporalQueryEngine
from .timeslots import TimeslotRegistry, TimeslotUsage

__all__ = [
    "BatchBuilder",
    "BatchCommand",
    "Command",
    "CommandHistory",
    "FunctionCommand",
    "MilestoneRegistry",
    "Navigator",
    "ObjectRegistry",
    "PlacementLog",
    "Selection",
    "TemporalQueryEngine",
    "TimelineEngine",
    "TimelineStores",
    "TimeslotRegistry",
    "TimeslotUsage",
    "check_snapshot",
]
