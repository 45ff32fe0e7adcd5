import pytest

from inventory_ledger.application import chaos
from inventory_ledger.application.schemas import CartItem
from inventory_ledger.domain.errors import (
    InjectedFailure,
    InsufficientStock,
    InvalidQuantity,
    NotFound,
    NotReserved,
)
from conftest import add_item


def test_get(container, store):
    add_item(store, "A", 4)
    assert container.ledger.get("A").available_quantity == 4
    with pytest.raises(NotFound):
        container.ledger.get("missing")


def test_adjust(container, store):
    add_item(store, "A", 4)
    assert container.ledger.adjust("A", 6).available_quantity == 10
    assert container.ledger.adjust("A", -10).total_quantity == 0
    with pytest.raises(InvalidQuantity):
        container.ledger.adjust("A", -1)
    with pytest.raises(InvalidQuantity):
        container.ledger.adjust("A", 0)
    with pytest.raises(NotFound):
        container.ledger.adjust("missing", 5)


def test_check_availability(container, store):
    add_item(store, "A", 4)
    result = container.ledger.check_availability([
        CartItem(product_id="A", quantity=4),
        CartItem(product_id="missing", quantity=1),
    ])
    assert result == {"A": True, "missing": False}


def test_single_item_reserve_and_release(container, store):
    add_item(store, "A", 2)
    container.ledger.reserve_item("A", 2)
    with pytest.raises(InsufficientStock):
        container.ledger.reserve_item("A", 1)
    with pytest.raises(NotReserved):
        container.ledger.release_item("A", 3)
    container.ledger.release_item("A", 2)
    with pytest.raises(NotFound):
        container.ledger.reserve_item("missing", 1)


def test_fault_injection_guards_every_operation(container, store, flags):
    add_item(store, "A", 2)
    flags.set(chaos.FLAG_SERVICE_FAILURE, True)
    calls = [
        lambda: container.ledger.get("A"),
        lambda: container.ledger.list_all(),
        lambda: container.ledger.list_by_warehouse("WH-EAST"),
        lambda: container.ledger.list_low_stock(10),
        lambda: container.ledger.adjust("A", 1),
        lambda: container.ledger.check_availability([CartItem(product_id="A", quantity=1)]),
        lambda: container.reservations.reserve_all([CartItem(product_id="A", quantity=1)], "R-1"),
        lambda: container.reservations.release_all("R-1"),
    ]
    for call in calls:
        with pytest.raises(InjectedFailure):
            call()
    assert store.get("A").available_quantity == 2
    assert store.get_reservation("R-1") is None


def test_reads_still_answer_with_slow_queries(container, store, flags):
    add_item(store, "A", 2, warehouse="WH-1")
    add_item(store, "B", 5, warehouse="WH-1")
    add_item(store, "C", 50, warehouse="WH-2")
    flags.set(chaos.FLAG_SLOW_QUERY, True)

    assert container.ledger.get("A").product_id == "A"
    assert len(container.ledger.list_all()) == 3
    assert [i.product_id for i in container.ledger.list_low_stock(10)] == ["A", "B"]


class CountingStore:
    def __init__(self, inner):
        self.inner = inner
        self.calls = []

    def __getattr__(self, name):
        self.calls.append(name)
        return getattr(self.inner, name)


def test_forced_failure_never_reaches_the_store(container, store, flags):
    from inventory_ledger.application.reservations import ReservationProtocol
    from inventory_ledger.application.service import LedgerService

    add_item(store, "A", 2)
    counting = CountingStore(store)
    ledger = LedgerService(counting, container.harness)
    reservations = ReservationProtocol(counting, container.harness)
    flags.set(chaos.FLAG_SERVICE_FAILURE, True)

    for call in (
        lambda: ledger.get("A"),
        lambda: ledger.adjust("A", 1),
        lambda: ledger.list_low_stock(10),
        lambda: ledger.list_all(),
        lambda: ledger.list_by_warehouse("WH-EAST"),
        lambda: ledger.check_availability([CartItem(product_id="A", quantity=1)]),
        lambda: reservations.reserve_all([CartItem(product_id="A", quantity=1)], "R-1"),
        lambda: reservations.release_all("R-1"),
    ):
        with pytest.raises(InjectedFailure):
            call()
    assert counting.calls == []
