"""
Inventory seed loader

    python -m inventory_ledger.seed inventory.csv

CSV columns: product_id, available_quantity, reserved_quantity (optional),
warehouse_location. Products that already exist are left untouched, so the
loader can be re-run against a live ledger.
"""

import argparse
import csv
import time
from pathlib import Path
from typing import Dict, List, Optional

from inventory_ledger.core import get_logger, setup_logging
from inventory_ledger.core_settings import get_settings
from inventory_ledger.domain.errors import InvalidQuantity, StoreUnavailable
from inventory_ledger.domain.models import InventoryItem
from inventory_ledger.domain.quantities import MAX_QUANTITY, now_millis
from inventory_ledger.infrastructure.db import init_models, make_engine, make_session_factory
from inventory_ledger.infrastructure.store import LedgerStore

MAX_ATTEMPTS = 30
SLEEP_SECONDS = 2

logger = get_logger(__name__)

def wait_for_store(store: LedgerStore, max_attempts: int = MAX_ATTEMPTS, delay: float = SLEEP_SECONDS) -> None:
    for attempt in range(1, max_attempts + 1):
        try:
            store.ping()
            logger.info(f"Database ready after {attempt} attempt(s).")
            return
        except StoreUnavailable as e:
            logger.warning(f"DB not ready (attempt {attempt}): {e}")
            if attempt < max_attempts:
                time.sleep(delay)
    raise StoreUnavailable(f"Database not ready after {max_attempts} attempts")

def parse_row(row: Dict[str, str]) -> InventoryItem:
    product_id = (row.get("product_id") or "").strip()
    if not product_id:
        raise InvalidQuantity("seed row without product_id")
    available = int(row.get("available_quantity") or 0)
    reserved = int(row.get("reserved_quantity") or 0)
    if available < 0 or reserved < 0:
        raise InvalidQuantity(f"negative quantity for {product_id}")
    if available + reserved > MAX_QUANTITY:
        raise InvalidQuantity(f"quantity out of range for {product_id}")
    return InventoryItem(
        product_id=product_id,
        available_quantity=available,
        reserved_quantity=reserved,
        total_quantity=available + reserved,
        warehouse_location=(row.get("warehouse_location") or "default").strip(),
        last_updated_timestamp=now_millis(),
    )

def load_inventory(store: LedgerStore, path: Path) -> Dict[str, int]:
    """Insert every product from the CSV that is not yet in the ledger"""
    counts = {"loaded": 0, "skipped": 0, "invalid": 0}
    with open(path, newline="", encoding="utf-8") as f:
        rows: List[Dict[str, str]] = list(csv.DictReader(f))
    for line_no, row in enumerate(rows, start=2):
        try:
            item = parse_row(row)
        except (InvalidQuantity, ValueError) as e:
            logger.warning(f"Row {line_no} skipped: {e}")
            counts["invalid"] += 1
            continue
        if store.get(item.product_id) is not None:
            counts["skipped"] += 1
            continue
        store.add(item)
        counts["loaded"] += 1
    logger.info(
        f"Loaded {counts['loaded']} inventory record(s) from {path}",
        extra={'extra_fields': counts},
    )
    return counts

def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Provision inventory records from a CSV file")
    parser.add_argument("csv_path", type=Path)
    parser.add_argument("--attempts", type=int, default=MAX_ATTEMPTS)
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(service_name="inventory-seed", level=settings.LOG_LEVEL, version=settings.SERVICE_VERSION)
    engine = make_engine(settings.database_url)
    store = LedgerStore(make_session_factory(engine))
    wait_for_store(store, max_attempts=args.attempts)
    init_models(engine)
    load_inventory(store, args.csv_path)
    engine.dispose()

if __name__ == "__main__":
    main()
