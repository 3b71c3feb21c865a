"""Backend settings."""
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database (Postgres via asyncpg in production)
    database_url: str = ""
    database_ssl: bool = True
    database_echo: bool = False
    auto_create_tables: bool = True

    # Identity tokens issued by the auth service
    jwt_secret: str = "dev-secret-change"
    jwt_algorithm: str = "HS256"

    # Emergency categories accepted at report creation (case-insensitive)
    report_types: List[str] = ["medical", "fire", "flood", "crime", "rescue", "other"]

    allowed_origins: List[str] = [
        "https://zapalert.netlify.app",
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()
