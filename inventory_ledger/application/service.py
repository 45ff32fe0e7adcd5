from typing import Dict, List, Sequence

from inventory_ledger.core import get_logger
from inventory_ledger.domain.errors import (
    InsufficientStock,
    InvalidQuantity,
    NotFound,
    NotReserved,
)
from inventory_ledger.domain.models import InventoryItem
from inventory_ledger.domain.quantities import now_millis, require_positive
from inventory_ledger.infrastructure.store import LedgerStore
from .chaos import ChaosHarness
from .schemas import CartItem

logger = get_logger(__name__)

# Read paths sample this many records for the expensive analyses
TREND_SAMPLE_SIZE = 3
DEEP_ANALYSIS_SAMPLE_SIZE = 2

class LedgerService:
    """Request-facing ledger operations; each one passes the fault harness first"""

    def __init__(self, store: LedgerStore, harness: ChaosHarness):
        self.store = store
        self.harness = harness

    def get(self, product_id: str) -> InventoryItem:
        self.harness.inject_all("getInventory")
        self.harness.run_expensive_reads("getInventory", [
            lambda: self.store.analyze_stock_position(product_id),
        ])
        item = self.store.get(product_id)
        if item is None:
            raise NotFound("Product", product_id)
        return item

    def check_availability(self, items: Sequence[CartItem]) -> Dict[str, bool]:
        self.harness.inject_all("checkAvailability")
        availability = {}
        for item in items:
            require_positive(item.quantity)
            has_stock = self.store.has_available(item.product_id, item.quantity)
            availability[item.product_id] = bool(has_stock)
        available_count = sum(1 for ok in availability.values() if ok)
        logger.info(
            f"Availability checked: {available_count}/{len(availability)} available",
            extra={'extra_fields': {'items': len(availability), 'available': available_count}},
        )
        return availability

    def adjust(self, product_id: str, quantity_change: int,
               operation_type: str = "manual", reason: str = "Manual adjustment") -> InventoryItem:
        self.harness.inject_all("updateInventory")
        return self.apply_adjustment(product_id, quantity_change, operation_type, reason)

    def apply_adjustment(self, product_id: str, quantity_change: int,
                         operation_type: str, reason: str) -> InventoryItem:
        """Adjustment primitive shared by manual updates and the restock scheduler"""
        rows = self.store.conditional_adjust(product_id, quantity_change, now_millis())
        if rows == 0:
            current = self.store.get(product_id)
            if current is None:
                raise NotFound("Product", product_id)
            raise InvalidQuantity(
                f"Adjustment of {quantity_change} would take {product_id} out of range "
                f"(available={current.available_quantity}, total={current.total_quantity})",
                product_id=product_id,
                quantity=quantity_change,
            )
        logger.info(
            f"Inventory adjusted: {product_id} {quantity_change:+d} ({operation_type})",
            extra={'extra_fields': {
                'product_id': product_id,
                'quantity_change': quantity_change,
                'operation_type': operation_type,
                'reason': reason,
            }},
        )
        item = self.store.get(product_id)
        if item is None:
            raise NotFound("Product", product_id)
        return item

    def reserve_item(self, product_id: str, quantity: int) -> None:
        if self.store.conditional_reserve(product_id, quantity, now_millis()) == 0:
            if self.store.get(product_id) is None:
                raise NotFound("Product", product_id)
            raise InsufficientStock(product_id, quantity)

    def release_item(self, product_id: str, quantity: int) -> None:
        if self.store.conditional_release(product_id, quantity, now_millis()) == 0:
            if self.store.get(product_id) is None:
                raise NotFound("Product", product_id)
            raise NotReserved(product_id, quantity)

    def list_all(self) -> List[InventoryItem]:
        self.harness.inject_all("getAllInventory")
        if self.harness.should_run_expensive_reads():
            sample = self.store.list_all()[:TREND_SAMPLE_SIZE]
            self.harness.run_expensive_reads("getAllInventory", [
                (lambda pid=item.product_id: self.store.analyze_stock_trend(pid)) for item in sample
            ])
        return self.store.list_all()

    def list_by_warehouse(self, warehouse_location: str) -> List[InventoryItem]:
        self.harness.inject_all("getInventoryByWarehouse")
        return self.store.list_by_warehouse(warehouse_location)

    def list_low_stock(self, threshold: int) -> List[InventoryItem]:
        self.harness.inject_all("getLowStockItems")
        items = self.store.list_below_threshold(threshold)
        self.harness.run_expensive_reads("getLowStockItems", [
            (lambda pid=item.product_id: self.store.analyze_stock_distribution(pid))
            for item in items[:DEEP_ANALYSIS_SAMPLE_SIZE]
        ])
        return items
