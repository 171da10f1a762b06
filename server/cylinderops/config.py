"""Application configuration using pydantic-settings.

Values are read from ``CYLINDEROPS_*`` environment variables or a local
``.env`` file. Use ``get_settings()`` rather than reading the environment
directly.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CYLINDEROPS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = "sqlite:///./cylinderops.db"
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    currency_code: str = "KES"
    default_tax_rate: Decimal = Decimal("0.16")

    # Empty-return credit windows, counted from order creation.
    credit_due_days: int = 7
    credit_expiry_days: int = 30
    credit_expiry_warning_days: int = 3

    # Used when no configured deposit rate matches a cylinder capacity.
    default_deposit_by_capacity: dict[Decimal, Decimal] = {
        Decimal("6"): Decimal("2500"),
        Decimal("13"): Decimal("3500"),
        Decimal("25"): Decimal("5500"),
        Decimal("50"): Decimal("8500"),
        Decimal("60"): Decimal("10000"),
    }
    global_default_deposit: Decimal = Decimal("2500")

    transfer_warning_ratio: Decimal = Decimal("0.9")

    @field_validator("default_tax_rate", "transfer_warning_ratio")
    @classmethod
    def validate_ratio(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 1:
            raise ValueError("Ratios must be between 0 and 1.")
        return v

    @field_validator("credit_due_days", "credit_expiry_days")
    @classmethod
    def validate_positive_days(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Credit windows must be at least one day.")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
