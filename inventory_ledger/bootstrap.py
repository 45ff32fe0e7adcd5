"""Wiring of the ledger components from settings."""

import random
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from inventory_ledger.application.chaos import ChaosHarness
from inventory_ledger.application.reservations import ReservationProtocol
from inventory_ledger.application.restock import RestockPolicy, RestockScheduler
from inventory_ledger.application.service import LedgerService
from inventory_ledger.core_settings import Settings
from inventory_ledger.infrastructure.db import make_engine, make_session_factory
from inventory_ledger.infrastructure.flags import FlagSource, RedisFlagSource, StaticFlagSource
from inventory_ledger.infrastructure.store import LedgerStore


@dataclass
class ServiceContainer:
    engine: Optional[Engine]
    store: LedgerStore
    flags: FlagSource
    harness: ChaosHarness
    ledger: LedgerService
    reservations: ReservationProtocol
    scheduler: RestockScheduler


def build_flag_source(settings: Settings) -> FlagSource:
    if settings.FLAG_SOURCE == "static":
        return StaticFlagSource()
    if settings.FLAG_SOURCE == "redis":
        return RedisFlagSource.from_url(settings.REDIS_URL, settings.FLAG_KEY_PREFIX)
    raise ValueError(f"Unknown FLAG_SOURCE: {settings.FLAG_SOURCE}")


def assemble(
    store: LedgerStore,
    flags: FlagSource,
    settings: Settings,
    engine: Optional[Engine] = None,
    rng: Optional[random.Random] = None,
) -> ServiceContainer:
    harness = ChaosHarness(
        flags,
        memory_block_bytes=settings.CHAOS_MEMORY_BLOCK_BYTES,
        cpu_burn_ms=(settings.CHAOS_CPU_BURN_MIN_MS, settings.CHAOS_CPU_BURN_MAX_MS),
        rng=rng,
    )
    ledger = LedgerService(store, harness)
    policy = RestockPolicy(
        enabled=settings.RESTOCK_ENABLED,
        interval_seconds=settings.RESTOCK_INTERVAL_SECONDS,
        low_stock_threshold=settings.LOW_STOCK_THRESHOLD,
        quantity_min=settings.RESTOCK_QUANTITY_MIN,
        quantity_max=settings.RESTOCK_QUANTITY_MAX,
    )
    return ServiceContainer(
        engine=engine,
        store=store,
        flags=flags,
        harness=harness,
        ledger=ledger,
        reservations=ReservationProtocol(store, harness),
        scheduler=RestockScheduler(ledger, store, policy, rng=rng),
    )


def build_container(settings: Settings) -> ServiceContainer:
    engine = make_engine(settings.database_url)
    store = LedgerStore(make_session_factory(engine))
    return assemble(store, build_flag_source(settings), settings, engine=engine)
