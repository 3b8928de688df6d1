"""Demo of authoring a small story timeline.

This example demonstrates:
1. Creating objects and rendering them as cards on timeslots
2. Recording mutations and reading state at different cursor positions
3. Threads, attached mutations and promotion
4. Jump-and-return navigation with the anchor
5. Undo/redo through the operation registry and keyboard shortcuts
6. Snapshot round-trip with identical digests
"""

from loomline import EditorState, KeyBindings, OperationRegistry, Shortcut
from loomline.core.engine import TimelineEngine
from loomline.operations import format_shortcut, register_default_operations


def build_story(engine: TimelineEngine) -> dict[str, str]:
    """Create a three-slot story around Gandalf."""
    gandalf = engine.create_object("Gandalf", type_id="character", attributes={"staff": True})
    balrog = engine.create_object("Balrog", type_id="character")
    quest = engine.create_thread("Fellowship", color="#3a6")

    moria = engine.render_object(gandalf.id)
    bridge = engine.render_object(balrog.id)
    fangorn = engine.create_timeslot_at_end()

    engine.add_mutation(
        gandalf.id,
        bridge,
        {"status": {"from": "grey", "to": "fallen"}, "staff": {"from": True, "to": False}},
        "Falls with the Balrog",
        attached_to_card_id=balrog.id,
        thread_ids=[quest.id],
    )
    engine.add_mutation(
        gandalf.id, fangorn, {"status": {"from": "fallen", "to": "white"}}, "Returns"
    )
    engine.create_milestone("Book II", moria, export_as="book")
    return {"gandalf": gandalf.id, "balrog": balrog.id, "quest": quest.id, "fangorn": fangorn}


def demo_temporal_state(engine: TimelineEngine, ids: dict[str, str]) -> None:
    """Show Gandalf's attributes at each timeslot."""
    print("\n=== Demo 1: State Over Time ===\n")
    for index in range(len(engine.timeslots)):
        card = engine.card_at(index)
        attributes = engine.resolved_attributes(ids["gandalf"], index)
        print(f"[{index}] card={card.name if card else '-':8s} gandalf={attributes}")


def demo_threads(engine: TimelineEngine, ids: dict[str, str]) -> None:
    """Promote the Balrog's card into the thread its mutation joined."""
    print("\n=== Demo 2: Threads and Promotion ===\n")
    needs = engine.requires_promotion(ids["balrog"], ids["quest"])
    print(f"Balrog card needs promotion: {needs}")
    engine.promote(ids["balrog"], ids["quest"])
    lane = engine.thread_lane(ids["quest"])
    print(f"Fellowship lane: {[engine.objects.get(p.object_id).name for p in lane]}")


def demo_navigation(engine: TimelineEngine, ids: dict[str, str]) -> None:
    """Jump to Gandalf's latest change and come back."""
    print("\n=== Demo 3: Jump and Return ===\n")
    engine.navigator.last()
    engine.navigator.move_to(1)
    engine.navigator.navigate_with_anchor(2)
    selection = engine.select_object(ids["balrog"])
    print(f"Selected Balrog: cursor={engine.navigator.cursor_index} selection={selection}")
    engine.select_object(ids["gandalf"])
    print(
        f"Selected Gandalf: cursor={engine.navigator.cursor_index} "
        f"anchor={engine.navigator.anchor_index}"
    )
    engine.navigator.return_to_anchor()
    print(f"Returned to anchor: cursor={engine.navigator.cursor_index}")


def demo_operations(engine: TimelineEngine, ids: dict[str, str]) -> None:
    """Drive edits through the operation registry and key bindings."""
    print("\n=== Demo 4: Operations and Shortcuts ===\n")
    state = EditorState()
    registry = OperationRegistry(engine, state)
    register_default_operations(registry)
    keys = KeyBindings(registry)

    registry.execute("timeslot.insert_after", {"index": len(engine.timeslots) - 1})
    print(f"Timeslots after insert: {len(engine.timeslots)}")

    undo = Shortcut(key="z", ctrl=True)
    print(f"Press {format_shortcut(undo)}: {keys.handle_key(undo)}")
    print(f"Timeslots after undo: {len(engine.timeslots)}")

    redo = keys.get_effective_shortcut("history.redo")
    print(f"Press {format_shortcut(redo, mac=True)}: {keys.handle_key(redo)}")
    print(f"Available now: {len(registry.available_operations())} operations")


def demo_snapshot(engine: TimelineEngine) -> None:
    """Reload from a snapshot and compare digests."""
    print("\n=== Demo 5: Snapshot Round-Trip ===\n")
    data = engine.snapshot().model_dump(mode="json", by_alias=True)
    restored = TimelineEngine()
    restored.load(data)
    print(f"Snapshot digest matches: {restored.snapshot_digest() == engine.snapshot_digest()}")
    print(f"State digest matches:    {restored.state_digest(2) == engine.state_digest(2)}")
    print(f"Integrity problems:      {engine.validate()}")


def main() -> None:
    """Run all demos."""
    print("=" * 60)
    print("Story Timeline Demo")
    print("=" * 60)

    engine = TimelineEngine()
    ids = build_story(engine)

    demo_temporal_state(engine, ids)
    demo_threads(engine, ids)
    demo_navigation(engine, ids)
    demo_operations(engine, ids)
    demo_snapshot(engine)

    print("\n" + "=" * 60)
    print("Demo complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
