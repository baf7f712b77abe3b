from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GROCER_", env_file=".env", extra="ignore")

    app_name: str = "grocer"
    log_level: str = "INFO"
    low_stock_threshold: int = Field(default=10, ge=0)
    # JSON file with products/communities/users/orders; built-in demo data when unset
    seed_file: Path | None = None
    load_demo_data: bool = True
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ]


@lru_cache
def get_settings() -> Settings:
    return Settings()
