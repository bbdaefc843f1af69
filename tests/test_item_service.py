import pytest

from slipbox.errors import ConflictOnConstraintError, InvalidArgumentError, NotFoundError
from slipbox.sequencer import Sequencer

from conftest import ALICE, BOB, assert_dense, orders_of


def _everything(service, owner):
    return {
        "main": service.list_main_space(owner),
        "slips": service.list_slips(owner),
        "topics": service.list_topics(owner),
    }


# -----------------------
# Creation
# -----------------------

def test_create_slip_in_main_appends_after_topics(service, categories):
    main_id = categories[ALICE]["MAIN"]
    t = service.create_topic(ALICE, "Topic")
    s = service.create_slip(ALICE, "  first slip  ", main_id)

    assert s["content"] == "first slip"
    assert s["order"] == 1
    assert orders_of(service.list_main_space(ALICE)) == [(t["id"], 0), (s["id"], 1)]


def test_create_slip_at_explicit_position_shifts_later_items(service, categories):
    program = categories[ALICE]["PROGRAM"]
    a = service.create_slip(ALICE, "a", program)
    b = service.create_slip(ALICE, "b", program)
    c = service.create_slip(ALICE, "c", program, position=1)

    assert orders_of(service.list_slips(ALICE, program)) == [(a["id"], 0), (c["id"], 1), (b["id"], 2)]


def test_create_topic_at_position_zero_prepends(service, categories):
    main_id = categories[ALICE]["MAIN"]
    s = service.create_slip(ALICE, "s", main_id)
    t = service.create_topic(ALICE, "t", "about things", position=0)

    assert t["description"] == "about things"
    assert orders_of(service.list_main_space(ALICE)) == [(t["id"], 0), (s["id"], 1)]


def test_category_spaces_are_independent(service, categories):
    service.create_slip(ALICE, "main", categories[ALICE]["MAIN"])
    junk = service.create_slip(ALICE, "junk", categories[ALICE]["JUNK"])
    assert junk["order"] == 0


@pytest.mark.parametrize("content", ["", "   ", None, 42, "x" * 1001])
def test_create_slip_rejects_bad_content(service, categories, content):
    with pytest.raises(InvalidArgumentError):
        service.create_slip(ALICE, content, categories[ALICE]["MAIN"])
    assert service.list_slips(ALICE) == []


def test_create_slip_in_foreign_category_is_not_found(service, categories):
    with pytest.raises(NotFoundError):
        service.create_slip(ALICE, "sneaky", categories[BOB]["MAIN"])
    assert service.list_slips(BOB) == []


def test_create_topic_rejects_long_description(service, categories):
    with pytest.raises(InvalidArgumentError):
        service.create_topic(ALICE, "t", "d" * 501)


def test_owner_without_main_category(service, categories):
    with pytest.raises(NotFoundError):
        service.create_topic("carol", "no account")


# -----------------------
# Deletion
# -----------------------

def test_delete_from_main_recalculates(service, categories):
    main_id = categories[ALICE]["MAIN"]
    a = service.create_slip(ALICE, "a", main_id)
    b = service.create_topic(ALICE, "b")
    c = service.create_slip(ALICE, "c", main_id)

    service.delete_topic(ALICE, b["id"])

    assert orders_of(service.list_main_space(ALICE)) == [(a["id"], 0), (c["id"], 1)]


def test_delete_main_slip_recalculates(service, categories):
    main_id = categories[ALICE]["MAIN"]
    a = service.create_topic(ALICE, "a")
    b = service.create_slip(ALICE, "b", main_id)
    c = service.create_topic(ALICE, "c")

    service.delete_slip(ALICE, b["id"])

    assert orders_of(service.list_main_space(ALICE)) == [(a["id"], 0), (c["id"], 1)]


def test_delete_from_category_closes_gap(service, categories):
    tough = categories[ALICE]["TOUGH"]
    ids = [service.create_slip(ALICE, f"s{i}", tough)["id"] for i in range(4)]

    service.delete_slip(ALICE, ids[1])

    assert orders_of(service.list_slips(ALICE, tough)) == [(ids[0], 0), (ids[2], 1), (ids[3], 2)]


def test_delete_foreign_item_is_not_found(service, categories):
    theirs = service.create_slip(BOB, "b", categories[BOB]["MAIN"])
    before = _everything(service, BOB)

    with pytest.raises(NotFoundError):
        service.delete_slip(ALICE, theirs["id"])

    assert _everything(service, BOB) == before


# -----------------------
# Updates
# -----------------------

def test_text_update_keeps_order(service, categories):
    main_id = categories[ALICE]["MAIN"]
    service.create_slip(ALICE, "a", main_id)
    b = service.create_slip(ALICE, "b", main_id)

    updated = service.update_slip(ALICE, b["id"], {"content": "bee"})

    assert updated["content"] == "bee"
    assert updated["order"] == 1


def test_update_slip_order_repositions_within_category(service, categories):
    crit = categories[ALICE]["CRIT"]
    a, b, c = (service.create_slip(ALICE, text, crit)["id"] for text in ("a", "b", "c"))

    service.update_slip(ALICE, a, {"order": 2})

    assert orders_of(service.list_slips(ALICE, crit)) == [(b, 0), (c, 1), (a, 2)]


def test_update_slip_category_transfers_to_front(service, categories):
    program = categories[ALICE]["PROGRAM"]
    junk = categories[ALICE]["JUNK"]
    p = [service.create_slip(ALICE, f"p{i}", program)["id"] for i in range(3)]
    j = service.create_slip(ALICE, "j", junk)["id"]

    moved = service.update_slip(ALICE, p[1], {"category_id": junk})

    assert moved["category_id"] == junk
    assert orders_of(service.list_slips(ALICE, junk)) == [(p[1], 0), (j, 1)]
    assert orders_of(service.list_slips(ALICE, program)) == [(p[0], 0), (p[2], 1)]


def test_update_slip_into_main_appends_or_places(service, categories):
    main_id = categories[ALICE]["MAIN"]
    program = categories[ALICE]["PROGRAM"]
    t = service.create_topic(ALICE, "t")
    a = service.create_slip(ALICE, "a", program)
    b = service.create_slip(ALICE, "b", program)

    service.update_slip(ALICE, a["id"], {"category_id": main_id})
    service.update_slip(ALICE, b["id"], {"category_id": main_id, "order": 0})

    assert orders_of(service.list_main_space(ALICE)) == [(b["id"], 0), (t["id"], 1), (a["id"], 2)]
    assert service.list_slips(ALICE, program) == []


def test_update_slip_rejects_unknown_fields(service, categories):
    s = service.create_slip(ALICE, "s", categories[ALICE]["MAIN"])
    with pytest.raises(InvalidArgumentError):
        service.update_slip(ALICE, s["id"], {"user_id": BOB})


@pytest.mark.parametrize("blank", ["", "   "])
def test_update_slip_rejects_blank_category(service, categories, blank):
    s = service.create_slip(ALICE, "s", categories[ALICE]["PROGRAM"])
    before = _everything(service, ALICE)

    with pytest.raises(InvalidArgumentError):
        service.update_slip(ALICE, s["id"], {"content": "changed", "category_id": blank})

    assert _everything(service, ALICE) == before


def test_update_slip_into_foreign_category_changes_nothing(service, categories):
    s = service.create_slip(ALICE, "s", categories[ALICE]["PROGRAM"])
    before = _everything(service, ALICE)

    with pytest.raises(NotFoundError):
        service.update_slip(ALICE, s["id"], {"content": "changed", "category_id": categories[BOB]["JUNK"]})

    assert _everything(service, ALICE) == before


def test_update_topic_text_and_order(service, categories):
    main_id = categories[ALICE]["MAIN"]
    s = service.create_slip(ALICE, "s", main_id)
    t = service.create_topic(ALICE, "t", "old")

    updated = service.update_topic(ALICE, t["id"], {"name": "T", "description": None, "order": 0})

    assert updated["name"] == "T"
    assert updated["description"] is None
    assert orders_of(service.list_main_space(ALICE)) == [(t["id"], 0), (s["id"], 1)]


# -----------------------
# Bulk reorder / insert
# -----------------------

def test_bulk_reorder_slips(service, categories):
    program = categories[ALICE]["PROGRAM"]
    a, b, c = (service.create_slip(ALICE, text, program)["id"] for text in ("a", "b", "c"))

    result = service.bulk_reorder_slips(ALICE, [
        {"id": a, "order": 2}, {"id": b, "order": 0}, {"id": c, "order": 1},
    ])

    assert result["message"] == "Slips reordered successfully"
    assert orders_of(service.list_slips(ALICE, program)) == [(b, 0), (c, 1), (a, 2)]


def test_bulk_reorder_with_foreign_slip_writes_nothing(service, categories):
    program = categories[ALICE]["PROGRAM"]
    a, b = (service.create_slip(ALICE, text, program)["id"] for text in ("a", "b"))
    theirs = service.create_slip(BOB, "theirs", categories[BOB]["PROGRAM"])["id"]
    before_alice = _everything(service, ALICE)
    before_bob = _everything(service, BOB)

    with pytest.raises(NotFoundError):
        service.bulk_reorder_slips(ALICE, [
            {"id": a, "order": 1}, {"id": b, "order": 0}, {"id": theirs, "order": 2},
        ])

    assert _everything(service, ALICE) == before_alice
    assert _everything(service, BOB) == before_bob


@pytest.mark.parametrize("entries", [
    [],
    [{"id": "x"}],
    [{"order": 1}],
    [{"id": "x", "order": -1}],
    "not a list",
])
def test_bulk_reorder_validates_entries(service, categories, entries):
    with pytest.raises(InvalidArgumentError):
        service.bulk_reorder_slips(ALICE, entries)


def test_bulk_reorder_slips_requires_single_category(service, categories):
    a = service.create_slip(ALICE, "a", categories[ALICE]["PROGRAM"])["id"]
    b = service.create_slip(ALICE, "b", categories[ALICE]["JUNK"])["id"]

    with pytest.raises(InvalidArgumentError):
        service.bulk_reorder_slips(ALICE, [{"id": a, "order": 0}, {"id": b, "order": 1}])


def test_bulk_reorder_topics(service, categories):
    t1, t2 = (service.create_topic(ALICE, name)["id"] for name in ("one", "two"))

    service.bulk_reorder_topics(ALICE, [{"id": t1, "order": 1}, {"id": t2, "order": 0}])

    assert orders_of(service.list_topics(ALICE)) == [(t2, 0), (t1, 1)]


def test_bulk_reorder_topic_onto_main_slip_order_conflicts(service, categories):
    s = service.create_slip(ALICE, "s", categories[ALICE]["MAIN"])["id"]
    t = service.create_topic(ALICE, "t")["id"]
    before = _everything(service, ALICE)

    with pytest.raises(ConflictOnConstraintError):
        service.bulk_reorder_topics(ALICE, [{"id": t, "order": 0}])

    assert _everything(service, ALICE) == before
    assert orders_of(service.list_main_space(ALICE)) == [(s, 0), (t, 1)]


def test_bulk_reorder_main_slip_onto_topic_order_conflicts(service, categories):
    t = service.create_topic(ALICE, "t")["id"]
    s = service.create_slip(ALICE, "s", categories[ALICE]["MAIN"])["id"]

    with pytest.raises(ConflictOnConstraintError):
        service.bulk_reorder_slips(ALICE, [{"id": s, "order": 0}])

    main = service.list_main_space(ALICE)
    assert_dense(main)
    assert orders_of(main) == [(t, 0), (s, 1)]


def test_bulk_reorder_topics_past_main_slips(service, categories):
    s = service.create_slip(ALICE, "s", categories[ALICE]["MAIN"])["id"]
    t1, t2 = (service.create_topic(ALICE, name)["id"] for name in ("one", "two"))

    service.bulk_reorder_topics(ALICE, [{"id": t1, "order": 2}, {"id": t2, "order": 1}])

    assert orders_of(service.list_main_space(ALICE)) == [(s, 0), (t2, 1), (t1, 2)]


def test_insert_at_position_moves_slip_into_main(service, categories):
    main_id = categories[ALICE]["MAIN"]
    unassimilated = categories[ALICE]["UNASSIMILATED"]
    a = service.create_slip(ALICE, "a", main_id)["id"]
    b = service.create_topic(ALICE, "b")["id"]
    c = service.create_slip(ALICE, "c", main_id)["id"]
    u = [service.create_slip(ALICE, f"u{i}", unassimilated)["id"] for i in range(3)]

    service.insert_at_position(ALICE, "slip", u[0], 1)

    assert orders_of(service.list_main_space(ALICE)) == [(a, 0), (u[0], 1), (b, 2), (c, 3)]
    assert service.get_slip(ALICE, u[0])["category_id"] == main_id
    assert orders_of(service.list_slips(ALICE, unassimilated)) == [(u[1], 0), (u[2], 1)]


def test_insert_at_position_rejects_unknown_kind(service, categories):
    with pytest.raises(InvalidArgumentError):
        service.insert_at_position(ALICE, "category", "whatever", 0)


def test_insert_at_position_foreign_topic_is_not_found(service, categories):
    theirs = service.create_topic(BOB, "theirs")["id"]
    before = _everything(service, BOB)

    with pytest.raises(NotFoundError):
        service.insert_at_position(ALICE, "topic", theirs, 0)

    assert _everything(service, BOB) == before


# -----------------------
# Atomicity
# -----------------------

def test_transfer_rolls_back_on_failure(service, categories, monkeypatch):
    g1 = categories[ALICE]["PROGRAM"]
    g2 = categories[ALICE]["CRIT"]
    g1_ids = [service.create_slip(ALICE, f"g1-{i}", g1)["id"] for i in range(3)]
    for text in ("x", "y"):
        service.create_slip(ALICE, text, g2)
    before = _everything(service, ALICE)

    def boom(self, space, vacated):
        raise RuntimeError("injected failure")

    monkeypatch.setattr(Sequencer, "_close_gap", boom)

    with pytest.raises(RuntimeError):
        service.update_slip(ALICE, g1_ids[1], {"category_id": g2})

    assert _everything(service, ALICE) == before


def test_insert_rolls_back_after_partial_write(service, categories, monkeypatch):
    main_id = categories[ALICE]["MAIN"]
    for text in ("a", "b", "c"):
        service.create_slip(ALICE, text, main_id)
    service.create_topic(ALICE, "t", position=0)
    before = service.list_main_space(ALICE)

    original = Sequencer._write_orders

    def write_then_fail(self, assignments):
        original(self, assignments)
        raise RuntimeError("injected failure")

    monkeypatch.setattr(Sequencer, "_write_orders", write_then_fail)

    with pytest.raises(RuntimeError):
        service.insert_at_position(ALICE, "topic", before[0]["id"], 3)

    assert service.list_main_space(ALICE) == before


def test_long_mixed_session_stays_dense(service, categories):
    main_id = categories[ALICE]["MAIN"]
    program = categories[ALICE]["PROGRAM"]
    slips = [service.create_slip(ALICE, f"m{i}", main_id, position=i % 2)["id"] for i in range(4)]
    topics = [service.create_topic(ALICE, f"t{i}", position=i)["id"] for i in range(3)]
    others = [service.create_slip(ALICE, f"p{i}", program)["id"] for i in range(3)]

    service.insert_at_position(ALICE, "slip", others[2], 0)
    service.update_slip(ALICE, slips[0], {"category_id": program, "order": 1})
    service.delete_topic(ALICE, topics[1])
    service.update_topic(ALICE, topics[2], {"order": 99})
    service.delete_slip(ALICE, others[0])

    main = service.list_main_space(ALICE)
    assert_dense(main)
    assert main[-1]["id"] == topics[2]
    assert_dense(service.list_slips(ALICE, program))
    assert len(main) == 6
