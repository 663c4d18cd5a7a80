"""
Unit Tests for Settings
"""

import pytest
from decimal import Decimal

from ledger.config import Settings
from payouts import OperationalBonus


class TestSettings:
    """Tests for environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        """Defaults match the standard commission schedule."""
        monkeypatch.delenv("LEDGER_OPERATIONAL_BONUSES", raising=False)
        settings = Settings(_env_file=None)

        schedule = settings.commission_schedule()

        assert schedule.l1_rate == Decimal("0.10")
        assert schedule.l2_rate == Decimal("0.01")
        assert schedule.decimal_places == 2
        assert [b.referral_code for b in schedule.operational_bonuses] == ["OPS-PLATFORM", "OPS-REVIEWER"]

    def test_environment_overrides(self, monkeypatch):
        """Rates and the operator roster come from the environment."""
        monkeypatch.setenv("LEDGER_L1_COMMISSION_RATE", "0.05")
        monkeypatch.setenv("LEDGER_CURRENCY_DECIMAL_PLACES", "0")
        monkeypatch.setenv(
            "LEDGER_OPERATIONAL_BONUSES",
            '[{"referral_code": "FOUNDER", "amount": "2500"}]',
        )

        schedule = Settings(_env_file=None).commission_schedule()

        assert schedule.l1_rate == Decimal("0.05")
        assert schedule.decimal_places == 0
        assert schedule.operational_bonuses == (OperationalBonus("FOUNDER", Decimal("2500")),)

    def test_log_level_is_validated(self):
        """Unknown log levels are refused."""
        with pytest.raises(ValueError):
            Settings(_env_file=None, log_level="chatty")

        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_rate_bounds(self):
        """Commission rates are fractions."""
        with pytest.raises(ValueError):
            Settings(_env_file=None, l2_commission_rate=Decimal("1.5"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
