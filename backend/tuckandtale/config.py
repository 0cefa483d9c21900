from pydantic_settings import BaseSettings
from typing import Optional
from pydantic import field_validator
import json

class Settings(BaseSettings):
    # Application
    app_name: str = "Tuck and Tale"
    app_version: str = "0.3.0"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./data/tuckandtale.db"

    # Security - tokens are issued by the auth provider, we only verify them
    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = "authenticated"

    # Text generation provider
    text_provider_base_url: str = "https://api.openai.com/v1"
    openai_api_key: Optional[str] = None
    text_provider_backend: str = "http"  # "http" (direct SSE) or "litellm"
    text_provider_timeout_seconds: float = 120.0

    # Pricing / usage rules
    subscription_monthly_limit: int = 30  # Stories per billing cycle for subscribers
    tier_stories_plus: str = "tier_stories_plus"

    # Debugging
    prompt_debug: bool = False  # Write last prompt sent to logs/prompt_sent.json

    # CORS
    cors_origins: str = "*"

    @field_validator('cors_origins', mode='after')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from environment variable"""
        if isinstance(v, str):
            if v == "*":
                return ["*"]
            try:
                # Try to parse as JSON array
                return json.loads(v)
            except (json.JSONDecodeError, ValueError):
                # If not JSON, treat as comma-separated string
                return [origin.strip() for origin in v.split(',')]
        return v

    # File storage
    data_dir: str = "./data"

    # Logging
    log_level: str = "INFO"
    log_file: str = "./logs/tuckandtale.log"

    class Config:
        env_file = "../.env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields in .env that aren't in the model

# Create global settings instance
settings = Settings()
