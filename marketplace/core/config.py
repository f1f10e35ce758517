from pydantic_settings import BaseSettings, NoDecode
from pydantic import field_validator
from typing import Annotated, Optional, List, Union
import json


class Settings(BaseSettings):
    # Database
    database_url: str

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_password: Optional[str] = None
    redis_db: int = 0

    # Firebase
    firebase_project_id: str
    firebase_credentials_path: str

    # API
    api_v1_str: str = "/api/v1"

    # Environment
    environment: str = "development"
    debug: bool = True

    # CORS
    cors_origins: Annotated[List[str], NoDecode] = ["http://localhost:5173"]

    # Admin access (in addition to the 'admin' custom claim)
    admin_emails: Annotated[List[str], NoDecode] = []

    # Subscriptions
    free_plan_name: str = "Free"
    billing_period_days: int = 30
    default_free_listing_limit: int = 5

    # Listings
    listing_duration_days: int = 30
    default_currency: str = "USD"

    # Pricing cache
    pricing_cache_enabled: bool = True
    pricing_cache_ttl_minutes: int = 5

    @field_validator('cors_origins', 'admin_emails', mode='before')
    @classmethod
    def parse_comma_separated(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse list settings from environment variable (comma-separated) or use default list."""
        if isinstance(v, str):
            if v.strip().startswith("["):
                return json.loads(v)
            return [item.strip() for item in v.split(',') if item.strip()]
        return v

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from environment


settings = Settings()
