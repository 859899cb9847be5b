from datetime import datetime, timedelta

from starjar.ledger import ActivityLedger
from starjar.models import ActivityCategory, ActivityLog, Child, OutcomeStatus
from starjar.store import InMemoryStore


def make_ledger() -> tuple[InMemoryStore, ActivityLedger]:
    store = InMemoryStore()
    store.save_children([Child(id="ava", name="Ava"), Child(id="ben", name="Ben")])
    return store, ActivityLedger(store)


def totals(store: InMemoryStore) -> dict[str, int]:
    return {child.id: child.total_points for child in store.get_children()}


def assert_consistent(store: InMemoryStore) -> None:
    sums: dict[str, int] = {}
    for log in store.get_logs():
        sums[log.child_id] = sums.get(log.child_id, 0) + log.points
    for child in store.get_children():
        assert child.total_points == sums.get(child.id, 0)


def test_add_entry_updates_owner_balance() -> None:
    store, ledger = make_ledger()

    outcome = ledger.record("ava", "Washed dishes", 10, ActivityCategory.CHORE)

    assert outcome.ok
    assert outcome.value.points == 10
    assert totals(store) == {"ava": 10, "ben": 0}
    assert ledger.entries("ava") == (outcome.value,)


def test_add_entry_for_unknown_child_writes_nothing() -> None:
    store, ledger = make_ledger()

    outcome = ledger.record("ghost", "Mystery", 5)

    assert outcome.status is OutcomeStatus.NOT_FOUND
    assert store.get_logs() == []


def test_duplicate_entry_id_is_rejected() -> None:
    store, ledger = make_ledger()
    entry = ActivityLog(id="e1", child_id="ava", description="Reading", points=4)
    assert ledger.add_entry(entry).ok

    outcome = ledger.add_entry(ActivityLog(id="e1", child_id="ava", description="Again", points=4))

    assert outcome.status is OutcomeStatus.REJECTED
    assert totals(store)["ava"] == 4


def test_update_entry_applies_delta() -> None:
    store, ledger = make_ledger()
    entry = ledger.record("ava", "Tidy room", 10).value
    ledger.record("ava", "Ice cream", -3, ActivityCategory.REDEMPTION)

    updated = ActivityLog(
        id=entry.id,
        child_id="ava",
        description="Tidy room (extra)",
        points=15,
        category=entry.category,
        timestamp=entry.timestamp,
    )
    outcome = ledger.update_entry(updated)

    assert outcome.ok
    assert totals(store)["ava"] == 12
    assert ledger.get(entry.id).description == "Tidy room (extra)"
    assert_consistent(store)


def test_update_missing_entry_is_a_noop() -> None:
    store, ledger = make_ledger()
    ledger.record("ava", "Homework", 5)
    before = store.snapshot()

    outcome = ledger.update_entry(ActivityLog(id="missing", child_id="ava", description="x", points=50))

    assert outcome.status is OutcomeStatus.NOT_FOUND
    assert store.snapshot() == before


def test_update_cannot_move_entry_to_another_child() -> None:
    store, ledger = make_ledger()
    entry = ledger.record("ava", "Homework", 5).value

    moved = ActivityLog(id=entry.id, child_id="ben", description="Homework", points=5)

    assert ledger.update_entry(moved).status is OutcomeStatus.REJECTED
    assert totals(store) == {"ava": 5, "ben": 0}


def test_delete_entry_subtracts_points() -> None:
    store, ledger = make_ledger()
    keep = ledger.record("ava", "Walked dog", 8).value
    drop = ledger.record("ava", "Toy", -5, ActivityCategory.REDEMPTION).value

    outcome = ledger.delete_entry(drop.id)

    assert outcome.ok
    assert outcome.value.id == drop.id
    assert totals(store)["ava"] == 8
    assert ledger.entries("ava") == (keep,)
    assert ledger.delete_entry(drop.id).status is OutcomeStatus.NOT_FOUND


def test_balance_matches_log_after_mixed_operations() -> None:
    store, ledger = make_ledger()
    ids = []
    for points in (5, 10, -3, 7, -12, 20):
        ids.append(ledger.record("ava", "step", points).value.id)
        ledger.record("ben", "step", points * 2)
    ledger.delete_entry(ids[1])
    original = ledger.get(ids[3])
    ledger.update_entry(
        ActivityLog(
            id=original.id,
            child_id="ava",
            description="changed",
            points=-1,
            timestamp=original.timestamp,
        )
    )
    ledger.delete_entry(ids[4])

    assert_consistent(store)
    assert ledger.balance_mismatches() == {}


def test_history_is_newest_first_and_grouped_by_month() -> None:
    _, ledger = make_ledger()
    start = datetime(2024, 1, 30, 9, 0)
    ledger.record("ava", "January", 1, at=start)
    ledger.record("ava", "February early", 2, at=start + timedelta(days=3))
    ledger.record("ava", "February late", 3, at=start + timedelta(days=20))

    history = ledger.history("ava")
    groups = ledger.monthly_history("ava")

    assert [log.description for log in history] == ["February late", "February early", "January"]
    assert [(year, month) for year, month, _ in groups] == [(2024, 2), (2024, 1)]
    assert [log.points for log in groups[0][2]] == [3, 2]


def test_rebuild_totals_repairs_cached_balance() -> None:
    store, ledger = make_ledger()
    ledger.record("ava", "Chores", 9)
    children = store.get_children()
    children[0].total_points = 100
    store.save_children(children)

    assert ledger.balance_mismatches() == {"ava": (100, 9)}
    changed = ledger.rebuild_totals()

    assert [child.id for child in changed] == ["ava"]
    assert totals(store)["ava"] == 9
    assert ledger.balance_mismatches() == {}
