"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file).

    The ingestion server and the on-device agent share one settings class;
    each side only reads its own section.
    """

    # --- App ---
    app_name: str = "VeriHealth"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Supabase / Postgres (server) ---
    supabase_db_url: str = ""  # direct postgres connection string for asyncpg
    db_pool_min_size: int = 2
    db_pool_max_size: int = 20
    db_ensure_schema: bool = False  # create ingestion tables at startup

    # --- Ingestion (server) ---
    ingest_require_signature: bool = True
    ingest_timestamp_tolerance_seconds: int = 300  # ±5 minutes
    ingest_max_batch_size: int = 1000

    # --- Device provisioning (server) ---
    provisioning_api_key: str = ""  # service bearer key, never exposed to devices

    # --- CORS ---
    cors_origins: list[str] = ["*"]

    # --- Agent (device side) ---
    ingest_url: str = "http://localhost:8000/functions/v1/ingest_wearable_data"
    device_provision_url: str = "http://localhost:8000/api/v1/devices/provision"
    agent_data_dir: str = ".verihealth"
    sync_batch_size: int = 200
    sync_retries: int = 3
    sync_backoff_base_seconds: float = 0.5
    http_timeout_seconds: float = 30.0
    background_sync_interval_seconds: int = 300  # 5 minutes
    rescan_delay_seconds: float = 2.0
    max_characteristic_reads: int = 4

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
