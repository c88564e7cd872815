from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Store (SQLite file, created on first run)
    db_path: str = "data/health.db"
    db_max_connections: int = 10  # concurrent connection ceiling

    # Scheduler
    check_interval_seconds: int = 300  # one global cadence for every service
    probe_workers: int = 4
    autostart_monitoring: bool = True

    # Probe
    probe_user_agent: str = "MUDA-Pay-Health-Monitor/1.0"
    probe_body_limit: int = 2000  # chars of response body kept per record

    # Registry seed file (falls back to built-in defaults when missing)
    services_file: str = "services.yaml"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 3001

    # Logging
    log_level: str = "INFO"


settings = Settings()
