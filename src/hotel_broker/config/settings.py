"""Runtime configuration for the hotel broker.

Relies on pydantic-settings so that environment variables (prefixed with ``BROKER_``)
can override defaults. Pricing and resilience tuning are exposed as immutable option
objects built once at startup and handed to the components that need them.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hotel_broker.core.resilience import ResilienceOptions
from hotel_broker.pricing.engine import PricingOptions

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Captures runtime configuration for the broker and its upstreams."""

    log_level: str = Field(default="INFO")
    log_dir: Optional[Path] = Field(default=None, description="Write broker.log here when set")

    pricing_minimum_margin_percent: int = Field(
        default=10, description="Margin floor applied on top of the net price, in percent"
    )
    pricing_special_discount_percent: int = Field(
        default=5, description="Discount applied to special hotels after the margin floor, in percent"
    )
    special_hotel_codes: Tuple[str, ...] = Field(
        default=(), description="Inventory hotel codes that receive the special discount; comma-separated via env"
    )

    http_timeout_s: float = Field(default=10.0, description="Per-request timeout for upstream HTTP calls")

    inventory_base_url: str = Field(default="https://rest.reserve-online.net/")
    inventory_username: Optional[str] = Field(default=None, description="Inventory API basic-auth username")
    inventory_password: Optional[str] = Field(default=None, description="Inventory API basic-auth password")

    geocode_a_base_url: str = Field(default="https://api.mapbox.com/")
    geocode_a_api_key: Optional[str] = Field(default=None, description="Access token for the primary geocoder")
    geocode_a_countries: str = Field(default="gr,cy")
    geocode_a_limit: int = Field(default=10)

    geocode_b_base_url: str = Field(default="https://autocomplete.search.hereapi.com/v1/")
    geocode_b_api_key: Optional[str] = Field(default=None, description="API key for the secondary geocoder")
    geocode_b_countries: str = Field(default="CYP,GRC")
    geocode_b_limit: int = Field(default=20)

    payment_base_url: str = Field(default="https://api.vivapayments.com/")
    payment_auth_url: str = Field(default="https://accounts.vivapayments.com/connect/token")
    payment_client_id: Optional[str] = None
    payment_client_secret: Optional[str] = None
    payment_source_code: str = Field(default="", description="Generic gateway source code")
    payment_partner_source_codes: Dict[str, str] = Field(
        default_factory=dict,
        description="Partner domain to gateway source code; JSON object when provided via env",
    )

    retry_attempts: int = Field(default=3, description="Retries for standard calls after the first attempt")
    retry_base_delay_ms: int = Field(default=200)
    payment_retry_delay_ms: int = Field(default=100)
    breaker_failure_threshold: int = Field(default=5)
    breaker_break_seconds: float = Field(default=30.0)

    model_config = SettingsConfigDict(
        env_prefix="BROKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    @field_validator("log_dir", mode="before")
    def _expand_log_dir(cls, value: str | Path | None) -> Optional[Path]:
        if value in (None, ""):
            return None
        return Path(value).expanduser()

    @field_validator("pricing_minimum_margin_percent", "pricing_special_discount_percent")
    def _validate_percent(cls, value: int) -> int:
        if not 0 <= value <= 100:
            raise ValueError("percent values must be between 0 and 100")
        return value

    @field_validator("special_hotel_codes", mode="before")
    def _parse_special_codes(cls, value: object) -> Tuple[str, ...]:
        if value is None or value == "":
            return ()
        if isinstance(value, (tuple, list)):
            return tuple(str(item).strip() for item in value if str(item).strip())
        if isinstance(value, str):
            codes: Iterable[str] = (code.strip() for code in value.split(","))
            return tuple(code for code in codes if code)
        raise TypeError("special_hotel_codes must be provided as a comma-separated string or list")

    @field_validator("payment_partner_source_codes", mode="before")
    def _parse_partner_codes(cls, value: object) -> Dict[str, str]:
        if value in (None, ""):
            return {}
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as exc:  # noqa: TRY003
                raise ValueError("payment_partner_source_codes must be valid JSON") from exc
        if not isinstance(value, dict):
            raise TypeError("payment_partner_source_codes must be a mapping of domain to source code")
        return {str(domain).lower(): str(code) for domain, code in value.items()}

    def ensure_directories(self) -> None:
        """Create directories that must exist at runtime."""
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)

    def pricing_options(self) -> PricingOptions:
        return PricingOptions(
            minimum_margin_percent=self.pricing_minimum_margin_percent,
            special_discount_percent=self.pricing_special_discount_percent,
        )

    def resilience_options(self) -> ResilienceOptions:
        return ResilienceOptions(
            retry_attempts=self.retry_attempts,
            base_delay_s=self.retry_base_delay_ms / 1000,
            payment_delay_s=self.payment_retry_delay_ms / 1000,
            failure_threshold=self.breaker_failure_threshold,
            break_seconds=self.breaker_break_seconds,
        )

    def inventory_auth(self) -> Optional[Tuple[str, str]]:
        if not self.inventory_username:
            logger.debug("No inventory credentials configured; calls go out unauthenticated")
            return None
        return (self.inventory_username, self.inventory_password or "")
