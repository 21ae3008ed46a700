"""Application configuration using Pydantic Settings."""
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_name: str = "Feedesk"
    debug: bool = False
    org_id: str = "default"
    timezone: str = "Asia/Kolkata"  # "today" for installment status is computed in this zone

    # School / Receipt
    school_name: str = ""
    school_address: str = ""
    currency_label: str = "Rs."
    receipt_prefix: str = "RCPT"

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "feedesk"

    # JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60

    # Reminders
    fee_reminder_days: int = 3  # first reminder this many days before due date
    fee_reminder_interval_days: int = 7  # gap between repeat reminders once overdue
    fee_reminder_max_count: int = 5

    # Listing
    default_page_limit: int = 20
    max_page_limit: int = 100

    # CORS (comma-separated origins)
    cors_origins: str = "http://localhost:5173"

    @model_validator(mode="after")
    def _validate_production_secrets(self):
        if not self.debug:
            if self.jwt_secret_key in ("change-me-in-production", ""):
                raise ValueError(
                    "JWT_SECRET_KEY must be set to a strong secret when DEBUG is not enabled. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
        return self


settings = Settings()
