"""
Restock scheduler

Periodically scans the ledger for products whose available stock is below
the low-stock threshold and replenishes each one by a random quantity. Items
are restocked independently: a failure on one product is logged and the scan
moves on to the next.

The timer runs on its own daemon thread; ``trigger()`` runs the same scan
synchronously for manual checks.
"""

import random
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from inventory_ledger.core import get_logger, operation_context
from inventory_ledger.infrastructure.store import LedgerStore
from .service import LedgerService

logger = get_logger(__name__)


@dataclass
class RestockPolicy:
    enabled: bool = True
    interval_seconds: float = 300
    low_stock_threshold: int = 10
    quantity_min: int = 20
    quantity_max: int = 50

    def __post_init__(self):
        if self.quantity_min <= 0 or self.quantity_min > self.quantity_max:
            raise ValueError(
                f"invalid restock range [{self.quantity_min}, {self.quantity_max}]"
            )


@dataclass
class RestockReport:
    scanned: int = 0
    restocked: Dict[str, int] = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)
    skipped: bool = False


@dataclass(frozen=True)
class MonitoringStats:
    total_items: int
    low_stock_count: int
    total_available_quantity: int
    total_reserved_quantity: int
    low_stock_threshold: int
    monitoring_enabled: bool


class RestockScheduler:
    def __init__(
        self,
        ledger: LedgerService,
        store: LedgerStore,
        policy: Optional[RestockPolicy] = None,
        rng: Optional[random.Random] = None,
    ):
        self._ledger = ledger
        self._store = store
        self.policy = policy or RestockPolicy()
        self._rng = rng or random.Random()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._scan_lock = threading.Lock()

    # Scan

    def tick(self) -> RestockReport:
        """One scheduled pass; a disabled scheduler does nothing"""
        if not self.policy.enabled:
            logger.debug("Inventory monitoring disabled, skipping check")
            return RestockReport(skipped=True)
        return self._scan()

    def trigger(self) -> RestockReport:
        logger.info("Manual inventory check triggered")
        return self.tick()

    def _scan(self) -> RestockReport:
        report = RestockReport()
        # Manual triggers and the timer never scan concurrently
        with self._scan_lock, operation_context("checkAndRestockInventory"):
            threshold = self.policy.low_stock_threshold
            low_stock = self._store.list_below_threshold(threshold)
            report.scanned = len(low_stock)
            if not low_stock:
                logger.info("All products above low-stock threshold, nothing to restock")
                return report

            logger.info(
                f"Found {len(low_stock)} low-stock product(s), restocking",
                extra={'extra_fields': {'threshold': threshold, 'low_stock_count': len(low_stock)}},
            )
            for item in low_stock:
                quantity = self._rng.randint(self.policy.quantity_min, self.policy.quantity_max)
                try:
                    self._ledger.apply_adjustment(
                        item.product_id, quantity, operation_type="restock", reason="Automatic restock"
                    )
                except Exception as e:
                    logger.error(
                        f"Restock failed: product={item.product_id}, error={e}",
                        extra={'extra_fields': {'product_id': item.product_id, 'error': type(e).__name__}},
                    )
                    report.failed.append(item.product_id)
                    continue
                logger.info(
                    f"Restocked {item.product_id}: was {item.available_quantity}, added {quantity}",
                    extra={'extra_fields': {
                        'product_id': item.product_id,
                        'previous_available': item.available_quantity,
                        'restock_quantity': quantity,
                    }},
                )
                report.restocked[item.product_id] = quantity

        logger.info(
            f"Restock pass finished: {len(report.restocked)} restocked, {len(report.failed)} failed",
            extra={'extra_fields': {'restocked': len(report.restocked), 'failed': len(report.failed)}},
        )
        return report

    def stats(self) -> MonitoringStats:
        totals = self._store.totals()
        threshold = self.policy.low_stock_threshold
        return MonitoringStats(
            total_items=totals.total_items,
            low_stock_count=self._store.count_below_threshold(threshold),
            total_available_quantity=totals.total_available,
            total_reserved_quantity=totals.total_reserved,
            low_stock_threshold=threshold,
            monitoring_enabled=self.policy.enabled,
        )

    # Timer thread

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="restock-scheduler", daemon=True)
        self._thread.start()
        logger.info(
            "Restock scheduler started",
            extra={'extra_fields': {'interval_seconds': self.policy.interval_seconds}},
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for an in-flight scan to finish"""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Restock scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        # First pass one interval after start, then at a fixed rate
        while not self._stop_event.wait(self.policy.interval_seconds):
            try:
                self.tick()
            except Exception:
                logger.error("Inventory check and restock pass failed", exc_info=True)
