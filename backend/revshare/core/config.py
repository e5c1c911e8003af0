# Central place for all configurable settings. We use Pydantic's
# BaseSettings so values can be read from env vars or a .env file.
# Jobs and the admin API read the same module-level instance.

import json
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def safe_json_loads(value):
    try:
        return json.loads(value)
    except Exception:
        return value


def normalize_commission_percent(value) -> float:
    # Legacy callers send whole percents (25 == 25%). Fractions pass through.
    percent = float(value)
    if percent < 0 or percent > 100:
        raise ValueError("commission percent must be between 0 and 100")
    return percent / 100.0 if percent > 1 else percent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_json_loads=safe_json_loads,
    )

    # Core DB connection string, like sqlite:///./revshare.db or a Postgres URL.
    DATABASE_URL: str

    # Echo SQL statements to the log. Only useful while debugging.
    DB_ECHO: bool = False

    # Refund-safety window used when neither the contract nor the
    # project define one.
    DEFAULT_REFUND_WINDOW_DAYS: int = Field(default=30, ge=0)

    # Platform fee taken from each sale, stored as a fraction in [0, 1].
    # Whole percents (5 == 5%) are accepted and normalized once here.
    PLATFORM_COMMISSION_PERCENT: float = 0.05

    # Stripe platform key used to issue Connect transfers.
    STRIPE_SECRET_KEY: Optional[str] = None

    # Upper bound on a single transfer call before it is treated as failed.
    TRANSFER_TIMEOUT_SECONDS: int = Field(default=30, gt=0)

    # Groups whose net amount is below this (minor units) are skipped.
    PAYOUT_MIN_AMOUNT: int = Field(default=1, ge=1)

    # Shared secret for the admin trigger endpoints. Unset disables them.
    ADMIN_API_TOKEN: Optional[str] = None
    ADMIN_TOKEN_HEADER_NAME: str = "X-Admin-Token"

    LOG_LEVEL: str = "INFO"

    @field_validator("PLATFORM_COMMISSION_PERCENT", mode="before")
    @classmethod
    def _normalize_platform_percent(cls, value):
        if value is None or value == "":
            return 0.05
        return normalize_commission_percent(value)

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _upper_log_level(cls, value):
        if not value:
            return "INFO"
        return str(value).strip().upper()

    @field_validator("STRIPE_SECRET_KEY", "ADMIN_API_TOKEN", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


settings = Settings()
