from pydantic import model_validator
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    SERVICE_NAME: str = "inventory-service"
    SERVICE_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"
    # Also write JSON logs to this file (rotated at 10MB) when set
    LOG_FILE: Optional[str] = None

    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "inventory"
    POSTGRES_USER: str = "inventory"
    POSTGRES_PASSWORD: str = "inventory"
    # Overrides the POSTGRES_* settings when set (e.g. sqlite:///./inventory.db)
    DATABASE_URL: Optional[str] = None
    RUN_MIGRATIONS: bool = True

    # Feature flags
    FLAG_SOURCE: str = "redis"
    REDIS_URL: str = "redis://redis:6379/0"
    FLAG_KEY_PREFIX: str = "flags:"

    # Restock scheduler
    RESTOCK_ENABLED: bool = True
    RESTOCK_INTERVAL_SECONDS: float = 300
    LOW_STOCK_THRESHOLD: int = 10
    RESTOCK_QUANTITY_MIN: int = 20
    RESTOCK_QUANTITY_MAX: int = 50

    # Fault injection
    CHAOS_MEMORY_BLOCK_BYTES: int = 1024 * 1024
    CHAOS_CPU_BURN_MIN_MS: int = 1000
    CHAOS_CPU_BURN_MAX_MS: int = 3000

    class Config:
        env_file = ".env"

    @model_validator(mode="after")
    def _check_ranges(self):
        if self.RESTOCK_QUANTITY_MIN > self.RESTOCK_QUANTITY_MAX:
            raise ValueError("RESTOCK_QUANTITY_MIN must not exceed RESTOCK_QUANTITY_MAX")
        if self.CHAOS_CPU_BURN_MIN_MS > self.CHAOS_CPU_BURN_MAX_MS:
            raise ValueError("CHAOS_CPU_BURN_MIN_MS must not exceed CHAOS_CPU_BURN_MAX_MS")
        return self

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

@lru_cache
def get_settings() -> Settings:
    return Settings()
