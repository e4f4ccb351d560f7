# kas_server/app/config.py
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# file is kas_server/app/config.py -> parents[2] => project root
PROJECT_ROOT = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    """
    Service settings, read from the environment or a .env file.
    """

    DATABASE_URL: str = Field(default=f"sqlite:///{PROJECT_ROOT / 'kas_tracking.db'}")
    SQL_ECHO: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")

    # carrier (FedEx) api
    FEDEX_API_URL: str = Field(default="https://apis-sandbox.fedex.com")
    FEDEX_API_KEY: str = Field(default="")
    FEDEX_SECRET_KEY: str = Field(default="")
    FEDEX_TIMEOUT: float = Field(default=10.0)
    FEDEX_TOKEN_TTL_FALLBACK: int = Field(default=3600)

    # workflow status given to freshly ingested records
    DEFAULT_STATUS_NAME: str = Field(default="Received")

    # object store for package photos
    MINIO_ENDPOINT: str = Field(default="localhost:9000")
    MINIO_ACCESS_KEY: str = Field(default="minioadmin")
    MINIO_SECRET_KEY: str = Field(default="minioadmin")
    MINIO_SECURE: bool = Field(default=False)
    MINIO_REGION: str = Field(default="us-east-1")
    MINIO_BUCKET_NAME: str = Field(default="kas-images")
    IMAGE_URL_TTL: int = Field(default=24 * 60 * 60)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
