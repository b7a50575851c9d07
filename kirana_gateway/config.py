"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./kirana.db"

    # Service
    service_name: str = "kirana-gateway"
    log_level: str = "INFO"
    timezone: str = "Asia/Kolkata"

    # WhatsApp Cloud API
    whatsapp_api_base: str = "https://graph.facebook.com/v18.0"
    whatsapp_api_key: str = ""
    whatsapp_phone_number_id: str = ""

    # HTTP Client
    http_timeout_seconds: float = 5.0
    notification_max_retries: int = 3
    notification_backoff_base: float = 1.0  # Exponential backoff base in seconds

    # Scheduling / billing
    delivery_horizon_days: int = 30
    invoice_due_days: int = 7
    custom_schedule_search_limit: int = 366


settings = Settings()
