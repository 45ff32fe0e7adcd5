"""
Quantity invariant model

Each state transition is described as data: a condition the row must satisfy
and the column assignments to apply. The store runs a transition as a single
``UPDATE ... WHERE product_id = :id AND <condition>``, so the precondition is
evaluated by the database at write time rather than by a read in Python.

All transitions keep ``total_quantity == available_quantity + reserved_quantity``.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict

from sqlalchemy import case, literal
from sqlalchemy.sql.elements import ColumnElement

from .errors import InvalidQuantity
from .models import InventoryItem

# Quantity columns are 32-bit integers
MAX_QUANTITY = 2**31 - 1


@dataclass(frozen=True)
class Transition:
    name: str
    condition: ColumnElement
    values: Dict[Any, Any] = field(default_factory=dict)


def now_millis() -> int:
    return int(time.time() * 1000)


def require_positive(quantity: int, what: str = "quantity") -> int:
    if quantity is None or quantity <= 0:
        raise InvalidQuantity(f"{what} must be positive, got {quantity}", quantity=quantity)
    if quantity > MAX_QUANTITY:
        raise InvalidQuantity(f"{what} exceeds {MAX_QUANTITY}, got {quantity}", quantity=quantity)
    return quantity


def _touch(timestamp: int) -> ColumnElement:
    # last_updated_timestamp is monotonically non-decreasing
    return case(
        (InventoryItem.last_updated_timestamp > timestamp, InventoryItem.last_updated_timestamp),
        else_=literal(timestamp),
    )


def adjust(delta: int, timestamp: int) -> Transition:
    """Manual correction or restock: available and total move together."""
    if delta == 0:
        raise InvalidQuantity("quantity change must be non-zero", quantity=delta)
    if abs(delta) > MAX_QUANTITY:
        raise InvalidQuantity(f"quantity change out of range: {delta}", quantity=delta)
    if delta < 0:
        condition = InventoryItem.available_quantity + delta >= 0
    else:
        # total must stay within the column range
        condition = InventoryItem.total_quantity <= MAX_QUANTITY - delta
    return Transition(
        name="adjust",
        condition=condition,
        values={
            InventoryItem.available_quantity: InventoryItem.available_quantity + delta,
            InventoryItem.total_quantity: InventoryItem.total_quantity + delta,
            InventoryItem.last_updated_timestamp: _touch(timestamp),
        },
    )


def reserve(quantity: int, timestamp: int) -> Transition:
    require_positive(quantity)
    return Transition(
        name="reserve",
        condition=InventoryItem.available_quantity >= quantity,
        values={
            InventoryItem.available_quantity: InventoryItem.available_quantity - quantity,
            InventoryItem.reserved_quantity: InventoryItem.reserved_quantity + quantity,
            InventoryItem.last_updated_timestamp: _touch(timestamp),
        },
    )


def release(quantity: int, timestamp: int) -> Transition:
    require_positive(quantity)
    return Transition(
        name="release",
        condition=InventoryItem.reserved_quantity >= quantity,
        values={
            InventoryItem.available_quantity: InventoryItem.available_quantity + quantity,
            InventoryItem.reserved_quantity: InventoryItem.reserved_quantity - quantity,
            InventoryItem.last_updated_timestamp: _touch(timestamp),
        },
    )


def check_invariant(item: InventoryItem) -> bool:
    return (
        item.available_quantity >= 0
        and item.reserved_quantity >= 0
        and item.total_quantity == item.available_quantity + item.reserved_quantity
    )
