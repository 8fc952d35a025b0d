from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional, List, Union


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./quizbanner.db"

    # Auth
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    access_token_expire_days: int = 7
    reset_token_expire_minutes: int = 60
    magic_link_expire_minutes: int = 60

    # API
    api_prefix: str = "/api"
    app_url: str = "http://localhost:5000"

    # Environment
    environment: str = "development"
    debug: bool = True

    # CORS
    cors_origins: List[str] = ["http://localhost:5000"]

    # Stripe
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    premium_price_cents: int = 199
    premium_currency: str = "usd"

    # Subscription
    subscription_term_days: int = 365
    renewal_reminder_days: int = 7

    # Email
    email_backend: str = "log"  # 'log', 'smtp' or 'resend'
    email_from: str = "QuizBanner <onboarding@resend.dev>"
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    resend_api_key: Optional[str] = None
    contact_inbox: Optional[str] = None

    # Rate limiting
    rate_limit_enabled: bool = True
    auth_rate_limit: str = "10/minute"

    # Daily sweep
    sweep_enabled: bool = True
    sweep_hour: int = 0

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse CORS origins from environment variable (comma-separated) or use default list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @field_validator('email_backend')
    @classmethod
    def validate_email_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ('log', 'smtp', 'resend'):
            raise ValueError(f"Unsupported email backend: {v}")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
