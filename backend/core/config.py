from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    # CORS – keep env parsing simple: store raw string, parse in app.py
    # This avoids pydantic-settings trying to JSON-decode LIST values and crashing
    # when environment stores comma-separated strings or '*'.
    ALLOW_ORIGINS: Optional[str] = None
    ALLOW_ORIGIN_REGEX: Optional[str] = None

    # Durable store: 'postgres', 'memory' or 'auto' (postgres when FAMILY_DB_HOST is set)
    STORE_BACKEND: str = "auto"

    # DB: family inventory (psycopg2)
    FAMILY_DB_HOST: Optional[str] = None
    FAMILY_DB_PORT: int = 5432
    FAMILY_DB_NAME: str = "railway"
    FAMILY_DB_USER: str = "postgres"
    FAMILY_DB_PASSWORD: Optional[str] = None
    DB_CONNECT_TIMEOUT: int = 5
    DB_SSLMODE: str = "prefer"
    DB_POOL_MIN: int = 2
    DB_POOL_MAX: int = 20

    # Families
    FAMILY_CODE_LENGTH: int = 8
    # Hold a per-family lock across check -> write -> broadcast.
    # False reproduces the old interleaving where two adds can both pass duplicate detection.
    SERIALIZE_FAMILY_MUTATIONS: bool = True

    # Socket.IO
    SOCKETIO_PATH: str = "ws/socket.io"  # NOTE: ASGIApp prepends '/', so keep this bare
    SIO_PING_TIMEOUT: int = 60
    SIO_PING_INTERVAL: int = 25
    SIO_CORS_ALLOWED_ORIGINS: str = "*"

    # Server
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = False

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    def resolved_store_backend(self) -> str:
        backend = (self.STORE_BACKEND or "auto").strip().lower()
        if backend == "auto":
            return "postgres" if self.FAMILY_DB_HOST else "memory"
        return backend


settings = Settings()
