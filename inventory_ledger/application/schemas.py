from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime
from inventory_ledger.domain.quantities import MAX_QUANTITY

class CartItem(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(gt=0, le=MAX_QUANTITY)

class CheckAvailabilityRequest(BaseModel):
    items: List[CartItem] = Field(min_length=1)

class CheckAvailabilityResponse(BaseModel):
    availability: Dict[str, bool]
    all_available: bool

class InventoryRead(BaseModel):
    product_id: str
    available_quantity: int
    reserved_quantity: int
    total_quantity: int
    warehouse_location: str
    last_updated_timestamp: int

    class Config:
        from_attributes = True

class ReservationResult(BaseModel):
    success: bool
    reservation_id: str
    message: str

class ReservationLineRead(BaseModel):
    product_id: str
    quantity: int
    committed: bool

    class Config:
        from_attributes = True

class ReservationRead(BaseModel):
    reservation_id: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[ReservationLineRead] = []

    class Config:
        from_attributes = True

class RestockTriggerResponse(BaseModel):
    success: bool
    message: str
    timestamp: int
    scanned: int = 0
    restocked: Dict[str, int] = {}
    failed: List[str] = []

class MonitoringStatsRead(BaseModel):
    total_items: int
    low_stock_count: int
    total_available_quantity: int
    total_reserved_quantity: int
    low_stock_threshold: int
    monitoring_enabled: bool

class ChaosStatusRead(BaseModel):
    service_failure_enabled: bool
    latency_injection_ms: int
    database_failure_enabled: bool
    slow_query_enabled: bool
    memory_leak_enabled: bool
    high_cpu_enabled: bool
    memory_leak_blocks: int
    memory_leak_bytes: int

class ChaosInjectionResult(BaseModel):
    success: bool
    message: str
    operation: Optional[str] = None
    error: Optional[str] = None
    duration_ms: Optional[float] = None
