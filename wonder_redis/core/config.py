import os
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuration class for environment variables and Redis settings.
    """
    # Service settings
    service_name: str = os.getenv("SERVICE_NAME", "wonder_redis")
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Logging settings
    log_level: str = os.getenv(
        "LOG_LEVEL", "DEBUG" if environment == "development" else "INFO"
    )

    # Redis connection settings
    redis_host: str = os.getenv("REDIS_HOST", "localhost")
    redis_port: int = int(os.getenv("REDIS_PORT", "6379"))
    redis_db: int = int(os.getenv("REDIS_DB", "0"))
    redis_password: Optional[str] = os.getenv("REDIS_PASSWORD", "")

    # Connection pool settings
    redis_max_connections: int = int(os.getenv("REDIS_MAX_CONNECTIONS", "10"))
    redis_connection_timeout: float = float(os.getenv("REDIS_CONNECTION_TIMEOUT", "2.0"))
    redis_health_check_interval: int = int(os.getenv("REDIS_HEALTH_CHECK_INTERVAL", "30"))

    # Retry settings (0 disables retries)
    redis_max_retries: int = int(os.getenv("REDIS_MAX_RETRIES", "0"))
    redis_initial_backoff_ms: int = int(os.getenv("REDIS_INITIAL_BACKOFF_MS", "100"))
    redis_max_backoff_ms: int = int(os.getenv("REDIS_MAX_BACKOFF_MS", "30000"))

    # Circuit breaker settings
    redis_circuit_failure_threshold: int = int(os.getenv("REDIS_CIRCUIT_FAILURE_THRESHOLD", "5"))
    redis_circuit_reset_timeout: int = int(os.getenv("REDIS_CIRCUIT_RESET_TIMEOUT", "30"))

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def redis_url(self) -> str:
        """Connection URL built from the host, port, db and password."""
        return build_redis_url(
            self.redis_host, self.redis_port, self.redis_db, self.redis_password
        )


def build_redis_url(host: str, port: int, db: int, password: Optional[str] = None) -> str:
    """``redis://[:password@]host:port/db``; no auth part when password is empty."""
    auth = f":{password}@" if password else ""
    return f"redis://{auth}{host}:{port}/{db}"


settings = Settings()

__all__ = ["Settings", "settings", "build_redis_url"]
