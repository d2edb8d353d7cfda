from typing import List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()


class Settings(BaseSettings):
    """Application settings with environment variable support"""
    app_name: str = "PGStay Rental Management API"
    environment: str = "development"
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    mongo_uri: str = "mongodb://localhost:27017"
    mongo_database: str = "pgstay"
    mongo_max_pool_size: int = 100
    mongo_min_pool_size: int = 10
    mongo_timeout_ms: int = 5000

    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None

    # collections
    properties_collection: str = "properties"
    tenants_collection: str = "tenants"
    visits_collection: str = "visits"
    ratings_collection: str = "ratings"
    counters_collection: str = "counters"

    property_cache_ttl: int = 300  # 5 minutes
    conflict_retry_attempts: int = 3
    request_timeout_seconds: float = 15.0
    visit_current_month_only: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


settings = Settings()
