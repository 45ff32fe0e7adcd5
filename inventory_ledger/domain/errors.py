"""
Inventory error taxonomy

Every failure the ledger surfaces to a caller is one of these types. The API
layer maps them onto HTTP responses using ``status_code``; ``retryable`` tells
callers which failures are transient.
"""

from typing import Any, Dict, List, Optional


class InventoryError(Exception):
    """Base class for all ledger failures"""

    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "error": type(self).__name__,
            "retryable": self.retryable,
        }


class NotFound(InventoryError):
    status_code = 404

    def __init__(self, kind: str, key: str):
        super().__init__(f"{kind} not found: {key}", kind=kind, key=key)
        self.key = key


class InvalidQuantity(InventoryError):
    status_code = 400


class InsufficientStock(InventoryError):
    status_code = 409

    def __init__(self, product_id: str, requested: int):
        super().__init__(
            f"Insufficient stock for {product_id}: requested={requested}",
            product_id=product_id,
            requested=requested,
        )
        self.product_id = product_id
        self.requested = requested


class NotReserved(InventoryError):
    status_code = 409

    def __init__(self, product_id: str, quantity: int):
        super().__init__(
            f"Cannot release {quantity} of {product_id}: not reserved",
            product_id=product_id,
            quantity=quantity,
        )
        self.product_id = product_id
        self.quantity = quantity


class ReservationConflict(InventoryError):
    status_code = 409

    def __init__(self, reservation_id: str):
        super().__init__(
            f"Reservation already exists: {reservation_id}",
            reservation_id=reservation_id,
        )
        self.reservation_id = reservation_id


class StoreUnavailable(InventoryError):
    status_code = 503
    retryable = True


class InjectedFailure(InventoryError):
    status_code = 500
    retryable = True


class PartialBatchFailure(InventoryError):
    """Some lines of a reservation batch are still held after a failure.

    ``held`` lists the ``(product_id, quantity)`` pairs that remain reserved;
    releasing the reservation id again reconciles them.
    """

    status_code = 409

    def __init__(self, reservation_id: str, held: List[tuple], reason: Optional[str] = None):
        message = f"Reservation {reservation_id} partially applied: {len(held)} line(s) still held"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, reservation_id=reservation_id, held=held)
        self.reservation_id = reservation_id
        self.held = held

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["reservation_id"] = self.reservation_id
        body["held"] = [{"product_id": p, "quantity": q} for p, q in self.held]
        return body
