import pytest

from inventory_ledger.domain.errors import ReservationConflict, StoreUnavailable
from inventory_ledger.domain.models import ReservationStatus
from inventory_ledger.infrastructure.db import make_engine, make_session_factory
from inventory_ledger.infrastructure.store import LedgerStore
from conftest import add_item


def test_get_missing_returns_none(store):
    assert store.get("missing") is None


def test_conditional_adjust_refuses_negative_available(store):
    add_item(store, "P-1", 5)
    assert store.conditional_adjust("P-1", -6, 1) == 0
    assert store.get("P-1").available_quantity == 5
    assert store.conditional_adjust("P-1", -5, 1) == 1
    assert store.get("P-1").available_quantity == 0


def test_conditional_reserve_and_release(store):
    add_item(store, "P-1", 5)
    assert store.conditional_reserve("P-1", 6, 1) == 0
    assert store.conditional_reserve("P-1", 5, 1) == 1
    assert store.conditional_release("P-1", 6, 2) == 0
    assert store.conditional_release("P-1", 5, 2) == 1
    item = store.get("P-1")
    assert (item.available_quantity, item.reserved_quantity) == (5, 0)


def test_conditional_write_on_missing_product_touches_nothing(store):
    assert store.conditional_reserve("nope", 1, 1) == 0


def test_has_available(store):
    add_item(store, "P-1", 3)
    assert store.has_available("P-1", 3) is True
    assert store.has_available("P-1", 4) is False
    assert store.has_available("nope", 1) is None


def test_listings_and_totals(store):
    add_item(store, "A", 2, reserved=1, warehouse="WH-1")
    add_item(store, "B", 50, warehouse="WH-2")
    add_item(store, "C", 7, warehouse="WH-1")

    assert [i.product_id for i in store.list_all()] == ["A", "B", "C"]
    assert [i.product_id for i in store.list_by_warehouse("WH-1")] == ["A", "C"]
    assert [i.product_id for i in store.list_below_threshold(10)] == ["A", "C"]
    assert store.count_below_threshold(10) == 2

    totals = store.totals()
    assert totals.total_items == 3
    assert totals.total_available == 59
    assert totals.total_reserved == 1


def test_reservation_records(store):
    add_item(store, "B", 5)
    store.create_reservation("R-1", [("A", 2), ("B", 1)])
    with pytest.raises(ReservationConflict):
        store.create_reservation("R-1", [("A", 1)])

    assert store.commit_line("R-1", 1, "B", 1, 1) is True
    store.set_reservation_status("R-1", ReservationStatus.ACTIVE)
    reservation = store.get_reservation("R-1")
    assert reservation.status == "ACTIVE"
    assert [(l.product_id, l.quantity, l.committed) for l in reservation.items] == [
        ("A", 2, False),
        ("B", 1, True),
    ]

    assert snapshot(store, "B") == (4, 1)


def snapshot(store, product_id):
    item = store.get(product_id)
    return item.available_quantity, item.reserved_quantity


def test_commit_line_is_all_or_nothing(store):
    add_item(store, "A", 3)
    store.create_reservation("R-1", [("A", 2), ("A", 2)])

    assert store.commit_line("R-1", 0, "A", 2, 1) is True
    # Not enough stock left: the line stays uncommitted
    assert store.commit_line("R-1", 1, "A", 2, 1) is False
    # Already committed: the reserve is rolled back with the flag update
    assert store.commit_line("R-1", 0, "A", 1, 1) is False

    assert snapshot(store, "A") == (1, 2)
    assert [l.committed for l in store.get_reservation("R-1").items] == [True, False]


def test_release_line_claims_each_line_once(store):
    add_item(store, "A", 10)
    store.create_reservation("R-1", [("A", 2)])
    store.create_reservation("R-2", [("A", 3)])
    store.commit_line("R-1", 0, "A", 2, 1)
    store.commit_line("R-2", 0, "A", 3, 1)

    assert store.release_line("R-1", 0, "A", 2, 2) is True
    assert store.release_line("R-1", 0, "A", 2, 2) is None
    assert snapshot(store, "A") == (7, 3)
    assert store.get_reservation("R-2").items[0].committed is True


def test_refused_release_keeps_the_line_committed(store):
    add_item(store, "A", 10)
    store.create_reservation("R-1", [("A", 2)])
    store.commit_line("R-1", 0, "A", 2, 1)
    # Reserved stock drained behind the ledger's back
    store.conditional_release("A", 2, 1)

    assert store.release_line("R-1", 0, "A", 2, 2) is False
    assert store.get_reservation("R-1").items[0].committed is True
    assert snapshot(store, "A") == (10, 0)


def test_expensive_analyses_run(store):
    add_item(store, "A", 2, warehouse="WH-1")
    add_item(store, "B", 40, warehouse="WH-1")
    add_item(store, "C", 12, warehouse="WH-2")

    position = store.analyze_stock_position("A")
    assert len(position) == 1
    assert position[0].warehouse_item_count == 2

    assert len(store.analyze_stock_trend("B")) >= 1

    distribution = store.analyze_stock_distribution("C")
    assert len(distribution) == 1
    assert distribution[0].total_items == 3


def test_driver_errors_surface_as_store_unavailable(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'missing-dir' / 'ledger.db'}")
    store = LedgerStore(make_session_factory(engine))
    with pytest.raises(StoreUnavailable) as exc_info:
        store.ping()
    assert exc_info.value.retryable
    engine.dispose()
