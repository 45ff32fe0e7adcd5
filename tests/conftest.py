import random
import pytest
from fastapi.testclient import TestClient

from inventory_ledger.bootstrap import assemble
from inventory_ledger.core_settings import Settings
from inventory_ledger.domain.models import InventoryItem
from inventory_ledger.infrastructure.db import init_models, make_engine, make_session_factory
from inventory_ledger.infrastructure.flags import StaticFlagSource
from inventory_ledger.infrastructure.store import LedgerStore


def add_item(store, product_id, available, reserved=0, warehouse="WH-EAST", timestamp=0):
    return store.add(InventoryItem(
        product_id=product_id,
        available_quantity=available,
        reserved_quantity=reserved,
        total_quantity=available + reserved,
        warehouse_location=warehouse,
        last_updated_timestamp=timestamp,
    ))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'ledger.db'}",
        RUN_MIGRATIONS=False,
        FLAG_SOURCE="static",
        RESTOCK_ENABLED=False,
        RESTOCK_INTERVAL_SECONDS=0.05,
        LOW_STOCK_THRESHOLD=10,
        RESTOCK_QUANTITY_MIN=20,
        RESTOCK_QUANTITY_MAX=50,
        CHAOS_MEMORY_BLOCK_BYTES=1024,
        CHAOS_CPU_BURN_MIN_MS=5,
        CHAOS_CPU_BURN_MAX_MS=10,
    )


@pytest.fixture
def engine(settings):
    engine = make_engine(settings.database_url)
    init_models(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return LedgerStore(make_session_factory(engine))


@pytest.fixture
def flags():
    return StaticFlagSource()


@pytest.fixture
def container(store, flags, settings, engine):
    return assemble(store, flags, settings, engine=engine, rng=random.Random(7))


@pytest.fixture
def client(settings, container):
    from inventory_ledger.main import create_app

    app = create_app(settings=settings, container=container)
    with TestClient(app) as client:
        yield client
