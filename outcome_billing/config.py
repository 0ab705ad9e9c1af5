"""
Runtime settings, read from the environment.
"""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///outcome_billing.db"
    environment: str = "dev"
    log_level: str = "INFO"
    port: int = 8080
    dedup_cache_size: int = 10000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.environ.get("DATABASE_URL", cls.database_url),
            environment=os.environ.get("ENVIRONMENT", cls.environment),
            log_level=os.environ.get("LOG_LEVEL", cls.log_level).upper(),
            port=int(os.environ.get("PORT", cls.port)),
            dedup_cache_size=int(os.environ.get("DEDUP_CACHE_SIZE", cls.dedup_cache_size)),
        )
