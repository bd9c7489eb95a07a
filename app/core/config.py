import os
from functools import lru_cache

from pydantic import ValidationError
from pydantic_settings import BaseSettings


class ConfigurationError(RuntimeError):
    """Raised when a required secret or setting is missing at startup."""


def _load_doppler_secrets():
    """Load secrets from Doppler API into environment variables.

    Must run BEFORE Settings is instantiated so pydantic can read the env vars.
    """
    token = os.getenv("DOPPLER_TOKEN")
    if not token:
        return

    try:
        import requests
        response = requests.get(
            "https://api.doppler.com/v3/configs/config/secrets/download",
            params={"format": "json"},
            auth=(token, ""),
            timeout=30,
        )
        response.raise_for_status()
        secrets = response.json()

        for key, value in secrets.items():
            if key not in os.environ:  # Don't override existing env vars
                os.environ[key] = value

        print(f"Loaded {len(secrets)} secrets from Doppler")
    except Exception as e:
        print(f"Warning: Failed to load Doppler secrets: {e}")


_load_doppler_secrets()


class Settings(BaseSettings):
    # Supabase (required)
    supabase_url: str
    supabase_publishable_key: str
    supabase_secret_key: str = ""  # service role, needed for server-side table access

    # Stripe (required)
    stripe_secret_key: str
    stripe_webhook_secret: str

    # Server
    environment: str = "development"
    web_app_url: str = "http://localhost:5173"

    # Notification checker
    notification_checker_enabled: bool = True
    notification_check_interval_seconds: float = 300
    notification_monitored_stages: list[str] = ["vegetative"]
    notification_suppression_minutes: int = 0  # 0 = emit on every cycle
    temperature_deadband: float = 5
    humidity_deadband: float = 10

    # Entitlements
    profile_cache_ttl_seconds: float = 30
    profile_cache_maxsize: int = 10000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as e:
        missing = [".".join(str(part) for part in err["loc"]).upper() for err in e.errors()]
        raise ConfigurationError(
            f"Invalid or missing configuration: {', '.join(missing)}. "
            "Set these environment variables before starting the service."
        ) from e


settings = get_settings()
