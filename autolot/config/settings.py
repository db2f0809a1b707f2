from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    database_url: str = "sqlite:///./autolot.db"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    debug: bool = False

    # Connection pool (ignored for SQLite)
    db_pool_size: int = 10
    db_max_overflow: int = 20

    # CORS - admin dashboard
    cors_origins: list[str] = ["http://localhost:3000"]

    # Azure Blob Storage. Empty connection string falls back to the in-memory store.
    azure_blob_conn_string: str = ""
    azure_blob_container: str = "vehicle-images"
    blob_key_prefix: str = "vehicle-images"
    blob_upload_workers: int = 4
    blob_upload_attempts: int = 3

    # Image upload limits
    max_image_count: int = 10
    max_image_bytes: int = 5 * 1024 * 1024

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def uses_sqlite(self) -> bool:
        return "sqlite" in self.database_url

    def validate_production(self) -> None:
        """Raise if production is using insecure or in-memory defaults."""
        if self.is_production and not self.azure_blob_conn_string:
            raise ValueError("AZURE_BLOB_CONN_STRING must be set in production")
        if self.is_production and self.uses_sqlite:
            raise ValueError("DATABASE_URL must point at PostgreSQL in production")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
