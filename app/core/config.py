from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Colocacion"
    APP_PORT: int = 9210
    DEBUG: bool = False

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "colocacion"
    POSTGRES_PORT: int = 5432
    DATABASE_URL_OVERRIDE: str = ""

    # Odoo ERP
    ODOO_URL: str = "http://localhost:8069"
    ODOO_DATABASE: str = "odoo"
    ODOO_USERNAME: str = "admin"
    ODOO_PASSWORD: str = "admin"
    ODOO_TIMEOUT_SECONDS: float = 30.0
    ODOO_SESSION_TTL_SECONDS: int = 3600

    # Ephemeral store: "memory" or "sql"
    KV_BACKEND: str = "sql"

    # Cache
    CACHE_TTL_SECONDS: int = 300
    CACHE_FREQUENT_TTL_SECONDS: int = 1800
    CACHE_FREQUENT_THRESHOLD: int = 5
    CACHE_FREQUENCY_WINDOW_SECONDS: int = 86400

    # Optimistic updates
    OPTIMISTIC_UPDATE_TTL_SECONDS: int = 300
    UNDO_REDO_TTL_SECONDS: int = 3600
    UNDO_REDO_MAX_OPERATIONS: int = 10
    CONFIRMATION_TOKEN_TTL_SECONDS: int = 300

    # Sync
    SYNC_LOCK_TTL_SECONDS: int = 30
    SYNC_STALE_AFTER_MINUTES: int = 60
    SYNC_ITEM_DELAY_SECONDS: float = 0.1
    SYNC_CONFLICT_TTL_SECONDS: int = 86400
    FULL_SYNC_MAX_ITEMS: int = 50

    # Print queue
    PRINT_MAX_RETRIES: int = 3
    PRINT_LEASE_SECONDS: int = 300
    PRINT_LEASE_GRACE_SECONDS: int = 60
    PRINT_JOB_RETENTION_SECONDS: int = 86400
    PRINT_WORKER_IDLE_SECONDS: float = 2.0
    LABEL_RETENTION_DAYS: int = 30
    PRINT_WORKER_ENABLED: bool = True
    PRINT_SPOOL_PATH: str = "/tmp/colocacion_spool"

    # Scheduler
    SCHEDULER_ENABLED: bool = True
    FULL_SYNC_INTERVAL_MINUTES: int = 30
    PRINT_CLEANUP_INTERVAL_MINUTES: int = 10
    OPTIMISTIC_CLEANUP_INTERVAL_MINUTES: int = 5
    CONNECTIVITY_CHECK_INTERVAL_MINUTES: int = 60

    # Paths
    LOGS_PATH: str = "/tmp/colocacion_logs"

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
