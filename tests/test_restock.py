import random
import time

import pytest

from inventory_ledger.application.restock import RestockPolicy, RestockScheduler
from inventory_ledger.application.service import LedgerService
from inventory_ledger.domain.errors import StoreUnavailable
from conftest import add_item


def make_scheduler(container, **policy):
    policy = RestockPolicy(**{"enabled": True, "interval_seconds": 0.05, **policy})
    return RestockScheduler(container.ledger, container.store, policy, rng=random.Random(3))


def test_policy_rejects_bad_range():
    with pytest.raises(ValueError):
        RestockPolicy(quantity_min=50, quantity_max=20)
    with pytest.raises(ValueError):
        RestockPolicy(quantity_min=0, quantity_max=20)


def test_tick_restocks_only_low_items(container, store):
    add_item(store, "LOW-1", 2)
    add_item(store, "LOW-2", 9, reserved=4)
    add_item(store, "OK", 10)
    scheduler = make_scheduler(container)

    report = scheduler.tick()

    assert report.scanned == 2
    assert sorted(report.restocked) == ["LOW-1", "LOW-2"]
    assert report.failed == []
    for product_id, start in (("LOW-1", 2), ("LOW-2", 9)):
        added = report.restocked[product_id]
        assert 20 <= added <= 50
        item = store.get(product_id)
        assert item.available_quantity == start + added
        assert item.total_quantity == item.available_quantity + item.reserved_quantity
    assert store.get("LOW-2").reserved_quantity == 4
    assert store.get("OK").available_quantity == 10


def test_disabled_scheduler_skips(container, store):
    add_item(store, "LOW", 1)
    report = make_scheduler(container, enabled=False).tick()
    assert report.skipped
    assert store.get("LOW").available_quantity == 1


def test_restock_ignores_fault_injection(container, store, flags):
    add_item(store, "LOW", 1)
    flags.set("inventoryServiceFailure", True)
    report = make_scheduler(container).tick()
    assert list(report.restocked) == ["LOW"]


def test_one_failing_item_does_not_stop_the_scan(container, store):
    add_item(store, "A", 1)
    add_item(store, "B", 2)

    class BrokenLedger(LedgerService):
        def apply_adjustment(self, product_id, quantity_change, operation_type, reason):
            if product_id == "A":
                raise StoreUnavailable("write failed")
            return super().apply_adjustment(product_id, quantity_change, operation_type, reason)

    policy = RestockPolicy(enabled=True)
    scheduler = RestockScheduler(BrokenLedger(store, container.harness), store, policy)
    report = scheduler.tick()

    assert report.failed == ["A"]
    assert list(report.restocked) == ["B"]
    assert store.get("A").available_quantity == 1


def test_stats(container, store):
    add_item(store, "A", 3, reserved=2)
    add_item(store, "B", 30)
    stats = make_scheduler(container).stats()
    assert stats.total_items == 2
    assert stats.low_stock_count == 1
    assert stats.total_available_quantity == 33
    assert stats.total_reserved_quantity == 2
    assert stats.low_stock_threshold == 10
    assert stats.monitoring_enabled


def test_timer_thread_restocks_and_stops(container, store):
    add_item(store, "LOW", 0)
    scheduler = make_scheduler(container)
    scheduler.start()
    try:
        assert scheduler.is_running
        deadline = time.monotonic() + 5
        while store.get("LOW").available_quantity == 0 and time.monotonic() < deadline:
            time.sleep(0.02)
    finally:
        scheduler.stop(timeout=5)
    assert store.get("LOW").available_quantity >= 20
    assert not scheduler.is_running
