"""Configuration management."""

import os
from pathlib import Path

from dotenv import dotenv_values
from pydantic import Field
from pydantic_settings import BaseSettings

# Fill in values from a local .env without overriding the real environment
BASE_DIR = Path(__file__).resolve().parent.parent
env_file = BASE_DIR / ".env"

if env_file.exists():
    for key, value in dotenv_values(env_file).items():
        if key not in os.environ and value is not None:
            os.environ[key] = value


class Settings(BaseSettings):
    """Process settings pulled from ``HYDRO_*`` environment variables."""

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    max_cells: int = Field(default=200_000, description="Largest graph accepted by the API")

    # Simulation
    default_seed: str = Field(default="hydrology", description="Seed used when a request gives none")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format, json or console")

    class Config:
        env_prefix = "HYDRO_"


settings = Settings()
