"""
Service settings.

Loads configuration from environment variables (prefix ``LEDGER_``) using
pydantic-settings.
"""

import logging
from decimal import Decimal
from functools import lru_cache

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from payouts import CommissionSchedule, OperationalBonus


class OperationalBonusSetting(BaseModel):
    referral_code: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)


class Settings(BaseSettings):
    """Settings loaded from the environment."""

    service_name: str = "referral-task-ledger"
    log_level: str = "INFO"

    # Commission cascade
    l1_commission_rate: Decimal = Field(default=Decimal("0.10"), ge=0, le=1)
    l2_commission_rate: Decimal = Field(default=Decimal("0.01"), ge=0, le=1)
    currency_decimal_places: int = Field(default=2, ge=0, le=8)
    upline_depth: int = Field(default=2, ge=0, le=16)

    # Fixed payouts to platform operator accounts, e.g.
    # LEDGER_OPERATIONAL_BONUSES='[{"referral_code": "OPS-PLATFORM", "amount": "1000"}]'
    operational_bonuses: list[OperationalBonusSetting] = Field(
        default_factory=lambda: [
            OperationalBonusSetting(referral_code="OPS-PLATFORM", amount=Decimal("1000.00")),
            OperationalBonusSetting(referral_code="OPS-REVIEWER", amount=Decimal("500.00")),
        ]
    )

    # Upper bound for one unit of work, lock wait included
    transaction_timeout_seconds: float = Field(default=5.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    def commission_schedule(self) -> CommissionSchedule:
        return CommissionSchedule(
            l1_rate=self.l1_commission_rate,
            l2_rate=self.l2_commission_rate,
            operational_bonuses=tuple(
                OperationalBonus(referral_code=b.referral_code, amount=b.amount)
                for b in self.operational_bonuses
            ),
            decimal_places=self.currency_decimal_places,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
