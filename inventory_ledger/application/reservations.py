"""
Reservation / release protocol

A reservation holds stock for a whole cart. Each line is committed with the
store's atomic conditional reserve; when a later line cannot be committed the
earlier lines are released again (compensation), so a failed ``reserve_all``
leaves the ledger as it found it. Lines that cannot be compensated are reported
through ``PartialBatchFailure`` and stay recorded on the reservation, where a
later ``release_all`` picks them up.

Reservation status transitions::

    PENDING -> ACTIVE -> RELEASED
    PENDING -> FAILED                    (compensated)
    PENDING -> PARTIAL -> RELEASED       (compensation or release incomplete)
"""

from collections import OrderedDict
from typing import List, Optional, Sequence, Tuple

from inventory_ledger.core import get_logger
from inventory_ledger.domain.errors import (
    InventoryError,
    InvalidQuantity,
    NotFound,
    PartialBatchFailure,
    ReservationConflict,
)
from inventory_ledger.domain.models import Reservation, ReservationStatus
from inventory_ledger.domain.quantities import now_millis, require_positive
from inventory_ledger.infrastructure.store import LedgerStore
from .chaos import ChaosHarness
from .schemas import CartItem

logger = get_logger(__name__)

Line = Tuple[str, int]


def merge_lines(items: Sequence[CartItem]) -> List[Line]:
    """Validate a cart and fold repeated products into one line, keeping first-seen order"""
    if not items:
        raise InvalidQuantity("reservation must contain at least one item")
    merged: "OrderedDict[str, int]" = OrderedDict()
    for item in items:
        require_positive(item.quantity)
        merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
    return list(merged.items())


class ReservationProtocol:
    def __init__(self, store: LedgerStore, harness: ChaosHarness):
        self.store = store
        self.harness = harness

    def reserve_all(self, items: Sequence[CartItem], reservation_id: str) -> bool:
        lines = merge_lines(items)
        self.harness.inject_all("reserveInventory")
        logger.info(
            f"Reserving inventory: reservation={reservation_id}, lines={len(lines)}",
            extra={'extra_fields': {'reservation_id': reservation_id, 'lines': len(lines)}},
        )

        if self.store.get_reservation(reservation_id) is not None:
            raise ReservationConflict(reservation_id)

        # Pre-check: a cart that cannot be satisfied leaves no trace
        for product_id, quantity in lines:
            if not self.store.has_available(product_id, quantity):
                logger.warning(
                    f"Insufficient stock: product={product_id}, requested={quantity}",
                    extra={'extra_fields': {'reservation_id': reservation_id, 'product_id': product_id}},
                )
                return False

        self.store.create_reservation(reservation_id, lines)
        timestamp = now_millis()
        committed: List[Tuple[int, str, int]] = []
        lost_race = False
        failure: Optional[InventoryError] = None
        try:
            for position, (product_id, quantity) in enumerate(lines):
                if not self.store.commit_line(reservation_id, position, product_id, quantity, timestamp):
                    logger.error(
                        f"Reservation commit lost a race: product={product_id}, requested={quantity}",
                        extra={'extra_fields': {'reservation_id': reservation_id, 'product_id': product_id}},
                    )
                    lost_race = True
                    break
                committed.append((position, product_id, quantity))
        except InventoryError as e:
            failure = e

        if lost_race or failure is not None:
            self._compensate(reservation_id, committed, cause=failure)
            if failure is not None:
                raise failure
            return False

        self.store.set_reservation_status(reservation_id, ReservationStatus.ACTIVE)
        logger.info(
            f"Reservation succeeded: {reservation_id}",
            extra={'extra_fields': {'reservation_id': reservation_id}},
        )
        return True

    def _compensate(self, reservation_id: str, committed: List[Tuple[int, str, int]],
                    cause: Optional[Exception] = None) -> None:
        """Release committed lines newest first; PartialBatchFailure if any stay held"""
        timestamp = now_millis()
        held: List[Line] = []
        for position, product_id, quantity in reversed(committed):
            try:
                released = self.store.release_line(reservation_id, position, product_id, quantity, timestamp)
            except InventoryError as e:
                logger.error(f"Compensating release failed for {product_id}: {e}")
                released = False
            if released is False:
                held.append((product_id, quantity))

        if held:
            held.reverse()
            self.store.set_reservation_status(reservation_id, ReservationStatus.PARTIAL)
            logger.error(
                f"Reservation {reservation_id} left {len(held)} line(s) held after compensation",
                extra={'extra_fields': {'reservation_id': reservation_id, 'held': held}},
            )
            raise PartialBatchFailure(reservation_id, held, reason="compensation incomplete") from cause

        self.store.set_reservation_status(reservation_id, ReservationStatus.FAILED)
        logger.warning(
            f"Reservation {reservation_id} rolled back {len(committed)} line(s)",
            extra={'extra_fields': {'reservation_id': reservation_id, 'compensated': len(committed)}},
        )

    def release_all(self, reservation_id: str) -> bool:
        self.harness.inject_all("releaseInventory")
        logger.info(
            f"Releasing inventory: reservation={reservation_id}",
            extra={'extra_fields': {'reservation_id': reservation_id}},
        )
        reservation = self.store.get_reservation(reservation_id)
        if reservation is None:
            raise NotFound("Reservation", reservation_id)

        status = ReservationStatus(reservation.status)
        if status == ReservationStatus.RELEASED:
            return True
        if status in (ReservationStatus.FAILED, ReservationStatus.PENDING):
            logger.warning(f"Reservation {reservation_id} holds no stock (status={status.value})")
            return False

        timestamp = now_millis()
        held: List[Line] = []
        released = 0
        # Each line is claimed inside the store, so a concurrent or repeated
        # release of the same id cannot return the same stock twice
        for line in reservation.items:
            outcome = self.store.release_line(
                reservation_id, line.position, line.product_id, line.quantity, timestamp
            )
            if outcome is False:
                held.append((line.product_id, line.quantity))
            elif outcome:
                released += 1

        if held:
            self.store.set_reservation_status(reservation_id, ReservationStatus.PARTIAL)
            raise PartialBatchFailure(reservation_id, held, reason="release incomplete")

        self.store.set_reservation_status(reservation_id, ReservationStatus.RELEASED)
        logger.info(
            f"Reservation released: {reservation_id}, {released} line(s) returned",
            extra={'extra_fields': {'reservation_id': reservation_id, 'released_lines': released}},
        )
        return True

    def get(self, reservation_id: str) -> Reservation:
        reservation = self.store.get_reservation(reservation_id)
        if reservation is None:
            raise NotFound("Reservation", reservation_id)
        return reservation
