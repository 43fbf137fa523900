from typing import List, Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class AppConfig(BaseSettings):
    """Application configuration using Pydantic BaseSettings.

    Loads configuration from environment variables and .env file (if present).
    Fields are type-checked and validated. Defaults are provided where appropriate.
    """
    # Application
    app_env: str = "local"
    log_level: str = "INFO"

    # Persistence
    store_kind: Literal["memory", "json"] = "memory"
    data_dir: str = "clinic_data"

    # Expiry scanning
    expiry_horizon_days: int = 30
    expiry_urgent_days: int = 7

    # Dashboard settings
    default_min_stock_level: int = 50
    default_usage_window_days: int = 30
    allowed_usage_windows: List[int] = [7, 30, 90, 365]
    movers_top_n: int = 5

    # External prediction service
    prediction_timeout_seconds: float = 30.0

    # Authentication
    password_hash_rounds: int = 12

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

_config: Optional[AppConfig] = None

def get_config() -> AppConfig:
    """Return the AppConfig instance (singleton pattern)."""
    global _config
    if _config is None:
        _config = AppConfig()
    return _config

def set_config_for_test(**kwargs):
    """For testing only: override the AppConfig instance with new values."""
    global _config
    _config = AppConfig(**kwargs)
