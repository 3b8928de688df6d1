"""Thread and subthread membership queries.

A placement belongs to a thread when the thread id is in its ``thread_ids``.
Its ``subthread_ids`` narrow that membership: only the ids that are sections
of the thread count, and when there are none the placement counts for the
whole thread.

Everything here is a pure query over the registries. Tag edits, including
promotion, are commands (see ``loomline.core.commands``).
"""

from loomline.core.objects import ObjectRegistry
from loomline.core.placement_log import PlacementLog
from loomline.core.timeslots import TimeslotRegistry
from loomline.schemas.types import Placement


def own_subthreads(
    placement: Placement, thread_id: str, objects: ObjectRegistry
) -> list[str]:
    """Subthread ids on ``placement`` that belong to ``thread_id``."""
    sections = objects.subthread_ids(thread_id)
    return [sid for sid in placement.subthread_ids if sid in sections]


def is_in_subthread(
    placement: Placement,
    thread_id: str,
    subthread_id: str,
    objects: ObjectRegistry,
) -> bool:
    """Whether a placement counts for one subthread of a thread.

    A placement tagged with the thread but with no subthreads of that thread
    counts for every subthread.
    """
    if thread_id not in placement.thread_ids:
        return False
    narrowed = own_subthreads(placement, thread_id, objects)
    return not narrowed or subthread_id in narrowed


def thread_members(
    placements: PlacementLog,
    objects: ObjectRegistry,
    thread_id: str,
    subthread_id: str | None = None,
) -> list[Placement]:
    """Placements in a thread, or in one of its subthreads, in log order."""
    tagged = placements.in_thread(thread_id)
    if subthread_id is None:
        return tagged
    return [p for p in tagged if is_in_subthread(p, thread_id, subthread_id, objects)]


def thread_lane(
    placements: PlacementLog,
    timeslots: TimeslotRegistry,
    objects: ObjectRegistry,
    thread_id: str,
    subthread_id: str | None = None,
) -> list[Placement]:
    """Members of a thread in timeline order, for drawing its connecting line.

    Placements on timeslots that are no longer on the timeline are skipped.
    """
    ranks = timeslots.rank_map()
    members = [
        p for p in thread_members(placements, objects, thread_id, subthread_id)
        if p.timeslot_id in ranks
    ]
    members.sort(key=lambda p: (ranks[p.timeslot_id], p.seq))
    return members


def threads_for_object(placements: PlacementLog, object_id: str) -> list[str]:
    """Thread ids that any placement of an object is tagged with."""
    found: dict[str, None] = {}
    for placement in placements.get_for_object(object_id):
        for thread_id in placement.thread_ids:
            found[thread_id] = None
    return list(found)


def requires_promotion(
    placements: PlacementLog, card_object_id: str, thread_id: str
) -> bool:
    """Whether a card reaches a thread only through a mutation attached below it.

    Such a card must be promoted (its Creation tagged with the thread) before
    subthread targeting can be applied to it directly. A card without a
    Creation placement is not on the timeline and never needs promotion.
    """
    creation = placements.creation_for(card_object_id)
    if creation is None or thread_id in creation.thread_ids:
        return False
    return any(
        thread_id in p.thread_ids
        for p in placements.attached_to(card_object_id)
        if p.is_mutation
    )


def promotion_candidates(placements: PlacementLog, card_object_id: str) -> list[str]:
    """Every thread id for which ``requires_promotion`` holds."""
    candidates: dict[str, None] = {}
    for placement in placements.attached_to(card_object_id):
        if not placement.is_mutation:
            continue
        for thread_id in placement.thread_ids:
            if requires_promotion(placements, card_object_id, thread_id):
                candidates[thread_id] = None
    return list(candidates)
