"""
Chaos endpoints

Manual injections never fail the HTTP call: an injected error is reported in
the response body so operators can exercise a fault without a client retrying.
"""

import time
from typing import Callable
from fastapi import APIRouter, Depends
from inventory_ledger.application.schemas import ChaosInjectionResult, ChaosStatusRead
from inventory_ledger.bootstrap import ServiceContainer
from inventory_ledger.core import get_logger
from inventory_ledger.domain.errors import InventoryError
from inventory_ledger.domain.quantities import now_millis
from .routes import get_container

router = APIRouter(prefix="/api/v1/chaos", tags=["chaos"])
logger = get_logger(__name__)

def _run(label: str, operation: str, inject: Callable[[str], object]) -> ChaosInjectionResult:
    logger.info(f"Manual {label} injection: {operation}")
    start = time.perf_counter()
    try:
        inject(operation)
    except InventoryError as e:
        return ChaosInjectionResult(
            success=False,
            message=f"{label} injection raised: {e.message}",
            operation=operation,
            error=type(e).__name__,
            duration_ms=(time.perf_counter() - start) * 1000,
        )
    return ChaosInjectionResult(
        success=True,
        message=f"{label} injection completed",
        operation=operation,
        duration_ms=(time.perf_counter() - start) * 1000,
    )

@router.get("/status", response_model=ChaosStatusRead)
def chaos_status(c: ServiceContainer = Depends(get_container)):
    return ChaosStatusRead(**c.harness.status().to_dict())

@router.post("/inject/{operation}", response_model=ChaosInjectionResult)
def inject_all(operation: str, c: ServiceContainer = Depends(get_container)):
    return _run("Chaos", operation, c.harness.inject_all)

@router.post("/inject/latency/{operation}", response_model=ChaosInjectionResult)
def inject_latency(operation: str, c: ServiceContainer = Depends(get_container)):
    return _run("Latency", operation, c.harness.inject_latency)

@router.post("/inject/database/{operation}", response_model=ChaosInjectionResult)
def inject_database_failure(operation: str, c: ServiceContainer = Depends(get_container)):
    return _run("Database failure", operation, c.harness.inject_store_failure)

@router.post("/inject/slow-query/{operation}", response_model=ChaosInjectionResult)
def inject_slow_query(operation: str, c: ServiceContainer = Depends(get_container)):
    return _run("Slow query", operation, c.harness.inject_slow_query)

@router.post("/inject/memory-leak/{operation}", response_model=ChaosInjectionResult)
def inject_memory_leak(operation: str, c: ServiceContainer = Depends(get_container)):
    return _run("Memory pressure", operation, c.harness.inject_memory_pressure)

@router.post("/inject/high-cpu/{operation}", response_model=ChaosInjectionResult)
def inject_high_cpu(operation: str, c: ServiceContainer = Depends(get_container)):
    return _run("High CPU", operation, c.harness.inject_cpu_burn)

@router.post("/cleanup/memory-leak")
def cleanup_memory_leak(c: ServiceContainer = Depends(get_container)):
    freed = c.harness.cleanup()
    return {"success": True, "message": "Memory pressure released", "released_blocks": freed}

@router.get("/health")
def chaos_health(c: ServiceContainer = Depends(get_container)):
    return {
        "status": "UP",
        "service": "chaos-engineering",
        "timestamp": now_millis(),
        "chaos_status": c.harness.status().to_dict(),
    }
