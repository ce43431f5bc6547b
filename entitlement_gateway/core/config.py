from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # App Basics
    app_env: str = "dev"
    app_name: str = "Entitlement Gateway"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "info"

    # Profile store
    database_url: str = "sqlite:///./dev.db"
    db_echo: bool = False
    db_auto_create: bool = True

    # JWT (access tokens issued by the auth backend, sub = user id)
    jwt_secret: str = "secret_key"
    jwt_alg: str = "HS256"

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_signature_tolerance_seconds: int = 300
    stripe_api_base: str = "https://api.stripe.com"
    app_base_url: str = "http://localhost:8000"

    # RevenueCat
    revenuecat_webhook_secret: str = ""
    # Accept unauthenticated RevenueCat calls when no secret is set.
    # Only for deployments where ingress already restricts callers.
    revenuecat_allow_unauthenticated: bool = False

    # Tell pydantic to read from .env file
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        extra="ignore",
    )

settings = Settings()