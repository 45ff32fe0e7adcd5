from dataclasses import asdict
from fastapi import APIRouter, Depends, Query, Request
from typing import List
from inventory_ledger.application.schemas import (
    CartItem,
    CheckAvailabilityRequest,
    CheckAvailabilityResponse,
    InventoryRead,
    MonitoringStatsRead,
    ReservationRead,
    ReservationResult,
    RestockTriggerResponse,
)
from inventory_ledger.bootstrap import ServiceContainer
from inventory_ledger.core import get_logger
from inventory_ledger.domain.quantities import MAX_QUANTITY, now_millis

router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"])
logger = get_logger(__name__)

def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container

@router.get("", response_model=list[InventoryRead])
def list_inventory(c: ServiceContainer = Depends(get_container)):
    return c.ledger.list_all()

@router.get("/low-stock", response_model=list[InventoryRead])
def list_low_stock(threshold: int = Query(10, ge=0, le=MAX_QUANTITY), c: ServiceContainer = Depends(get_container)):
    return c.ledger.list_low_stock(threshold)

@router.get("/warehouse/{warehouse_location}", response_model=list[InventoryRead])
def list_by_warehouse(warehouse_location: str, c: ServiceContainer = Depends(get_container)):
    return c.ledger.list_by_warehouse(warehouse_location)

@router.post("/check-availability", response_model=CheckAvailabilityResponse)
def check_availability(payload: CheckAvailabilityRequest, c: ServiceContainer = Depends(get_container)):
    availability = c.ledger.check_availability(payload.items)
    return CheckAvailabilityResponse(
        availability=availability,
        all_available=all(availability.values()),
    )

@router.post("/reserve", response_model=ReservationResult)
def reserve_inventory(items: List[CartItem], reservation_id: str = Query(..., min_length=1),
                      c: ServiceContainer = Depends(get_container)):
    success = c.reservations.reserve_all(items, reservation_id)
    return ReservationResult(
        success=success,
        reservation_id=reservation_id,
        message="Inventory reserved" if success else "Insufficient stock, nothing reserved",
    )

@router.post("/release", response_model=ReservationResult)
def release_inventory(reservation_id: str = Query(..., min_length=1),
                      c: ServiceContainer = Depends(get_container)):
    success = c.reservations.release_all(reservation_id)
    return ReservationResult(
        success=success,
        reservation_id=reservation_id,
        message="Inventory released" if success else "Reservation holds no stock",
    )

@router.get("/reservations/{reservation_id}", response_model=ReservationRead)
def get_reservation(reservation_id: str, c: ServiceContainer = Depends(get_container)):
    return c.reservations.get(reservation_id)

@router.post("/monitoring/trigger-check", response_model=RestockTriggerResponse)
def trigger_inventory_check(c: ServiceContainer = Depends(get_container)):
    report = c.scheduler.trigger()
    return RestockTriggerResponse(
        success=True,
        message="Monitoring disabled, check skipped" if report.skipped else "Inventory check and restock completed",
        timestamp=now_millis(),
        scanned=report.scanned,
        restocked=report.restocked,
        failed=report.failed,
    )

@router.get("/monitoring/stats", response_model=MonitoringStatsRead)
def monitoring_stats(c: ServiceContainer = Depends(get_container)):
    stats = c.scheduler.stats()
    return MonitoringStatsRead(**asdict(stats))

@router.get("/{product_id}", response_model=InventoryRead)
def get_inventory(product_id: str, c: ServiceContainer = Depends(get_container)):
    return c.ledger.get(product_id)

@router.put("/{product_id}", response_model=InventoryRead)
def update_inventory(
    product_id: str,
    quantity_change: int = Query(...),
    operation_type: str = Query("manual"),
    reason: str = Query("Manual adjustment"),
    c: ServiceContainer = Depends(get_container),
):
    logger.info(f"Update inventory requested: {product_id} {quantity_change:+d}")
    return c.ledger.adjust(product_id, quantity_change, operation_type, reason)
