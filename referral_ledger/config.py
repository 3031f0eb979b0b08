from pydantic_settings import BaseSettings
from pydantic import field_validator
from decimal import Decimal
from typing import Optional
from functools import lru_cache
import json

from referral_ledger.services.commission_rates import CommissionSchedule


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Referral Ledger"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Creator commission schedule
    CREATOR_BASE_RATE: Decimal = Decimal("0.08")  # Below the tier threshold
    CREATOR_ELEVATED_RATE: Decimal = Decimal("0.12")  # At or above the tier threshold
    CREATOR_TIER_THRESHOLD: int = 500  # Lifetime paid users needed for the elevated rate

    # CMO override commission, applied to the creator's commission amount
    CMO_OVERRIDE_RATE: Decimal = Decimal("0.03")

    # Payouts and withdrawals at or above this amount need the operator code
    PAYOUT_CONFIRMATION_THRESHOLD: Decimal = Decimal("50000")
    PAYOUT_CONFIRMATION_CODE: Optional[str] = None

    # Withdrawals
    WITHDRAWAL_FEE_PERCENT: Decimal = Decimal("0")
    MIN_WITHDRAWAL_AMOUNT: Decimal = Decimal("1000")

    # Single-flight guard for bulk reconcile / recalculate runs
    BULK_OPERATION_LOCK_TTL_SECONDS: int = 3600

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    def commission_schedule(self) -> CommissionSchedule:
        """Build the rate schedule used by the attribution and recalculation services."""
        return CommissionSchedule(
            base_rate=self.CREATOR_BASE_RATE,
            elevated_rate=self.CREATOR_ELEVATED_RATE,
            tier_threshold=self.CREATOR_TIER_THRESHOLD,
            cmo_override_rate=self.CMO_OVERRIDE_RATE,
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
