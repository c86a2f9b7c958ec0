from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
import os


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PAYMENTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = "Payments Engine"
    app_version: str = "1.0.0"
    debug: bool = False

    # Logging settings
    log_level: str = "WARNING"
    log_format: str = "text"  # json or text

    # Business logic settings
    max_decimal_places: int = 4

    # Report settings
    sort_output: bool = False  # default keeps first-touch order

    # Feature flags
    detailed_logging: bool = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    ``PAYMENTS_ENV`` (development, production, testing) selects a preset; explicit
    ``PAYMENTS_*`` variables still override it.
    """
    env = os.environ.get("PAYMENTS_ENV")
    if env:
        return get_settings_for_environment(env)
    return Settings()


# Environment-specific configurations
class DevelopmentSettings(Settings):
    debug: bool = True
    log_level: str = "DEBUG"
    detailed_logging: bool = True


class ProductionSettings(Settings):
    debug: bool = False
    log_level: str = "WARNING"
    log_format: str = "json"
    detailed_logging: bool = False


class TestingSettings(Settings):
    debug: bool = True
    log_level: str = "WARNING"  # Reduce noise in tests


def get_settings_for_environment(env: str = "development") -> Settings:
    """Get settings for specific environment."""
    settings_map = {
        "development": DevelopmentSettings,
        "production": ProductionSettings,
        "testing": TestingSettings,
    }

    settings_class = settings_map.get(env.lower(), Settings)
    return settings_class()
