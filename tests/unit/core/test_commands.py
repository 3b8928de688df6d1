"""Unit tests for timeline command factories."""

import pytest

from loomline.core import commands
from loomline.core.commands import TimelineStores
from loomline.core.milestones import MilestoneRegistry
from loomline.core.objects import ObjectRegistry
from loomline.core.placement_log import PlacementLog
from loomline.core.timeslots import TimeslotRegistry
from loomline.schemas.types import Milestone, Placement, Section, StoryObject, Timeslot
from loomline.utils.errors import (
    LoomlineError,
    TimeslotNotEmptyError,
    UnknownMilestoneError,
    UnknownObjectError,
    UnknownPlacementError,
    UnknownTimeslotError,
)


@pytest.fixture
def stores() -> TimelineStores:
    timeslots = TimeslotRegistry()
    timeslots.load([], ["t0", "t1", "t2"])
    placements = PlacementLog()
    objects = ObjectRegistry()
    timeslots.register_probe(placements.timeslot_usage)
    timeslots.register_probe(objects.timeslot_usage)
    return TimelineStores(
        timeslots=timeslots,
        placements=placements,
        objects=objects,
        milestones=MilestoneRegistry(timeslots),
    )


def snapshot(stores: TimelineStores) -> tuple:
    return (
        stores.timeslots.order,
        stores.placements.all(),
        stores.objects.all(),
        stores.milestones.all(),
    )


def roundtrip(stores: TimelineStores, command) -> None:
    """Execute, undo and redo a command, checking both directions exactly."""
    before = snapshot(stores)
    command.execute()
    after = snapshot(stores)
    command.undo()
    assert snapshot(stores) == before
    command.execute()
    assert snapshot(stores) == after


class TestPlacementCommands:
    """Test placement and tag commands."""

    def test_create_mutation_roundtrip(self, stores: TimelineStores) -> None:
        frodo = stores.objects.create("Frodo")
        command = commands.create_mutation(
            stores, frodo.id, "t1", {"ring": {"from": False, "to": True}}, "Takes the Ring"
        )

        roundtrip(stores, command)

        stored = stores.placements.get(command.placement.id)
        assert stored.mutation.label == "Takes the Ring"
        assert stored.seq == 1
        assert command.kind == "add-placement"

    def test_create_mutation_validates_references(self, stores: TimelineStores) -> None:
        frodo = stores.objects.create("Frodo")
        with pytest.raises(UnknownObjectError):
            commands.create_mutation(stores, "nobody", "t1")
        with pytest.raises(UnknownTimeslotError):
            commands.create_mutation(stores, frodo.id, "missing")

    def test_add_placement_validates_references(self, stores: TimelineStores) -> None:
        with pytest.raises(UnknownObjectError):
            commands.add_placement(stores, Placement.creation("nobody", "t0"))

    def test_remove_placement_restores_seq(self, stores: TimelineStores) -> None:
        frodo = stores.objects.create("Frodo")
        first = stores.placements.add(Placement.mutation_at(frodo.id, "t1", changes={"a": {"to": 1}}))
        stores.placements.add(Placement.mutation_at(frodo.id, "t1", changes={"a": {"to": 2}}))

        command = commands.remove_placement(stores, first.id)
        roundtrip(stores, command)
        command.undo()

        assert stores.placements.get(first.id).seq == first.seq
        with pytest.raises(UnknownPlacementError):
            commands.remove_placement(stores, "missing")

    def test_update_placement_roundtrip(self, stores: TimelineStores) -> None:
        frodo = stores.objects.create("Frodo")
        placement = stores.placements.add(
            Placement.mutation_at(frodo.id, "t1", changes={"a": {"to": 1}})
        )
        roundtrip(stores, commands.update_placement(stores, placement.id, {"timeslot_id": "t2"}))
        assert stores.placements.get(placement.id).timeslot_id == "t2"

    def test_tag_commands(self, stores: TimelineStores) -> None:
        quest = stores.objects.create(
            "Quest", is_thread=True, sections=[Section(id="mordor", name="Mordor")]
        )
        frodo = stores.objects.create("Frodo")
        placement = stores.placements.add(Placement.creation(frodo.id, "t0"))

        roundtrip(stores, commands.add_thread_tag(stores, placement.id, quest.id))
        roundtrip(stores, commands.set_subthreads(stores, placement.id, ["mordor"]))
        assert stores.placements.get(placement.id).subthread_ids == ["mordor"]

        roundtrip(stores, commands.remove_thread_tag(stores, placement.id, quest.id))
        stored = stores.placements.get(placement.id)
        assert stored.thread_ids == []
        assert stored.subthread_ids == []

    def test_tagging_with_non_thread_raises(self, stores: TimelineStores) -> None:
        frodo = stores.objects.create("Frodo")
        placement = stores.placements.add(Placement.creation(frodo.id, "t0"))
        with pytest.raises(LoomlineError):
            commands.add_thread_tag(stores, placement.id, frodo.id)

    def test_promote(self, stores: TimelineStores) -> None:
        quest = stores.objects.create("Quest", is_thread=True)
        ring = stores.objects.create("Ring")
        creation = stores.placements.add(Placement.creation(ring.id, "t0"))

        roundtrip(stores, commands.promote(stores, ring.id, quest.id))
        assert stores.placements.get(creation.id).thread_ids == [quest.id]

        sting = stores.objects.create("Sting")
        with pytest.raises(LoomlineError):
            commands.promote(stores, sting.id, quest.id)


class TestObjectCommands:
    """Test object commands."""

    def test_add_and_update_object(self, stores: TimelineStores) -> None:
        frodo = StoryObject(name="Frodo")
        roundtrip(stores, commands.add_object(stores, frodo))
        roundtrip(stores, commands.update_object(stores, frodo.id, {"name": "Mr. Frodo"}))
        assert stores.objects.get(frodo.id).name == "Mr. Frodo"

    def test_delete_object_cascades_and_undo_restores(self, stores: TimelineStores) -> None:
        fellowship = stores.objects.create("Fellowship")
        frodo = stores.objects.create("Frodo", parent_id=fellowship.id)
        stores.objects.create("Gandalf")
        stores.placements.add(Placement.creation(fellowship.id, "t0"))
        stores.placements.add(Placement.mutation_at(frodo.id, "t1", changes={"a": {"to": 1}}))

        command = commands.delete_object(stores, fellowship.id)
        roundtrip(stores, command)

        assert fellowship.id not in stores.objects
        assert frodo.id not in stores.objects
        assert len(stores.placements) == 0

    def test_delete_thread_untags_other_placements(self, stores: TimelineStores) -> None:
        quest = stores.objects.create(
            "Quest", is_thread=True, sections=[Section(id="mordor", name="Mordor")]
        )
        frodo = stores.objects.create("Frodo")
        placement = stores.placements.add(
            Placement.creation(
                frodo.id, "t0", thread_ids=[quest.id], subthread_ids=["mordor", "other"]
            )
        )

        command = commands.delete_object(stores, quest.id)
        command.execute()
        stored = stores.placements.get(placement.id)
        assert stored.thread_ids == []
        assert stored.subthread_ids == ["other"]

        command.undo()
        assert stores.placements.get(placement.id) == placement

    def test_delete_unknown_object_raises(self, stores: TimelineStores) -> None:
        with pytest.raises(UnknownObjectError):
            commands.delete_object(stores, "missing")


class TestTimeslotCommands:
    """Test timeslot commands."""

    def test_insert_and_move(self, stores: TimelineStores) -> None:
        roundtrip(stores, commands.insert_timeslot(stores, Timeslot(id="new"), 1))
        assert stores.timeslots.order == ["t0", "new", "t1", "t2"]

        roundtrip(stores, commands.move_timeslot(stores, "t2", 0))
        assert stores.timeslots.order[0] == "t2"

    def test_remove_empty_timeslot_reanchors_milestones(self, stores: TimelineStores) -> None:
        act = stores.milestones.create("Act II", "t1")

        command = commands.remove_timeslot(stores, "t1")
        roundtrip(stores, command)

        assert stores.timeslots.order == ["t0", "t2"]
        assert stores.milestones.get(act.id).timeslot_id == "t2"

        command.undo()
        assert stores.timeslots.order == ["t0", "t1", "t2"]
        assert stores.milestones.get(act.id).timeslot_id == "t1"

    def test_remove_last_timeslot_leaves_milestone_dangling(self, stores: TimelineStores) -> None:
        act = stores.milestones.create("Epilogue", "t2")
        commands.remove_timeslot(stores, "t2").execute()
        assert stores.milestones.rank_of(act.id) == -1

    def test_remove_refuses_used_timeslot(self, stores: TimelineStores) -> None:
        frodo = stores.objects.create("Frodo")
        stores.placements.add(Placement.mutation_at(frodo.id, "t1", changes={"a": {"to": 1}}))

        with pytest.raises(TimeslotNotEmptyError) as exc_info:
            commands.remove_timeslot(stores, "t1")
        assert exc_info.value.mutation_count == 1
        with pytest.raises(UnknownTimeslotError):
            commands.remove_timeslot(stores, "missing")


class TestRenderCommands:
    """Test rendering objects as cards."""

    def test_render_on_new_timeslot(self, stores: TimelineStores) -> None:
        ring = stores.objects.create("Ring")
        command = commands.render_object(stores, ring.id)

        roundtrip(stores, command)

        obj = stores.objects.get(ring.id)
        assert obj.rendered is True
        assert obj.timeslot_id == stores.timeslots.order[-1]
        assert len(stores.timeslots) == 4
        assert stores.placements.creation_for(ring.id).timeslot_id == obj.timeslot_id
        assert command.kind == "render-object"

    def test_render_moves_existing_creation(self, stores: TimelineStores) -> None:
        ring = stores.objects.create("Ring")
        creation = stores.placements.add(Placement.creation(ring.id, "t0"))

        commands.render_object(stores, ring.id, stores.timeslots.get("t2")).execute()

        assert stores.placements.get(creation.id).timeslot_id == "t2"
        assert len(stores.timeslots) == 3

    def test_unrender_keeps_timeslot(self, stores: TimelineStores) -> None:
        ring = stores.objects.create("Ring")
        commands.render_object(stores, ring.id, stores.timeslots.get("t1")).execute()

        roundtrip(stores, commands.unrender_object(stores, ring.id))

        obj = stores.objects.get(ring.id)
        assert obj.rendered is False
        assert obj.timeslot_id is None
        assert stores.placements.creation_for(ring.id) is None
        assert "t1" in stores.timeslots


class TestMilestoneCommands:
    """Test milestone commands."""

    def test_milestone_lifecycle(self, stores: TimelineStores) -> None:
        act = Milestone(name="Act I", timeslot_id="t0")
        roundtrip(stores, commands.add_milestone(stores, act))
        roundtrip(stores, commands.update_milestone(stores, act.id, {"color": "#f00"}))
        roundtrip(stores, commands.move_milestone(stores, act.id, "t2"))
        assert stores.milestones.get(act.id).timeslot_id == "t2"
        roundtrip(stores, commands.delete_milestone(stores, act.id))
        assert act.id not in stores.milestones

    def test_move_to_unknown_timeslot_raises(self, stores: TimelineStores) -> None:
        act = stores.milestones.create("Act I")
        with pytest.raises(UnknownTimeslotError):
            commands.move_milestone(stores, act.id, "missing")
        with pytest.raises(UnknownMilestoneError):
            commands.delete_milestone(stores, "missing")
