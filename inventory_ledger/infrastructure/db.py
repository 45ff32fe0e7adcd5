from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from inventory_ledger.domain.models import Base

def make_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Scheduler and request threads each open their own connection
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(database_url, echo=False, future=True, pool_pre_ping=True, connect_args=connect_args)

def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

def init_models(engine: Engine):
    Base.metadata.create_all(engine)
