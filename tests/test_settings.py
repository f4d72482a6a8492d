from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from hotel_broker.config.settings import Settings


def test_settings_defaults_build_option_objects(tmp_path):
    settings = Settings(log_dir=tmp_path / "logs")

    pricing = settings.pricing_options()
    assert pricing.minimum_margin_percent == 10
    assert pricing.special_discount_percent == 5

    resilience = settings.resilience_options()
    assert resilience.retry_attempts == 3
    assert resilience.base_delay_s == pytest.approx(0.2)
    assert resilience.payment_delay_s == pytest.approx(0.1)
    assert resilience.failure_threshold == 5
    assert resilience.break_seconds == 30.0
    assert settings.payment_partner_source_codes == {}

    settings.ensure_directories()
    assert settings.log_dir.exists()


def test_settings_parse_special_codes_and_partner_mapping():
    settings = Settings(
        special_hotel_codes="H1, H2,,",
        payment_partner_source_codes='{"Partner.GR": "1234", "other.com": ""}',
    )

    assert settings.special_hotel_codes == ("H1", "H2")
    assert settings.payment_partner_source_codes == {"partner.gr": "1234", "other.com": ""}


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("BROKER_PRICING_MINIMUM_MARGIN_PERCENT", "15")
    monkeypatch.setenv("BROKER_INVENTORY_USERNAME", "agent")
    monkeypatch.setenv("BROKER_INVENTORY_PASSWORD", "secret")
    monkeypatch.setenv("BROKER_PAYMENT_PARTNER_SOURCE_CODES", '{"partner.gr": "1234"}')

    settings = Settings()

    assert settings.pricing_options().minimum_margin_percent == 15
    assert settings.inventory_auth() == ("agent", "secret")
    assert settings.payment_partner_source_codes == {"partner.gr": "1234"}


def test_settings_without_credentials_skip_auth():
    assert Settings(inventory_username=None).inventory_auth() is None


def test_settings_reject_out_of_range_percentages():
    with pytest.raises(PydanticValidationError):
        Settings(pricing_special_discount_percent=120)
