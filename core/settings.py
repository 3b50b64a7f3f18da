"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Built once at startup and frozen; services receive the pieces they need
through their constructors instead of reading the environment.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, ConfigDict, Field, field_validator


class PaymentTimeouts(BaseModel):
    model_config = ConfigDict(frozen=True)

    connect: float = 2.0
    read: float = 5.0
    write: float = 5.0
    total: float = 10.0


class PaymentRetry(BaseModel):
    model_config = ConfigDict(frozen=True)

    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Signature verification; disable only for local sandbox testing.
    # Cashfree signs with the gateway secret key unless a dedicated secret is set.
    secret: Optional[str] = None
    require_signature: bool = True
    tolerance_seconds: int = 300
    dedupe_ttl_seconds: int = 86400
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks


class GatewaySettings(BaseModel):
    """Cashfree Payment Gateway credentials."""

    model_config = ConfigDict(frozen=True)

    provider: str = "cashfree"
    app_id: Optional[str] = None
    secret_key: Optional[str] = None
    environment: str = "sandbox"  # sandbox | production
    api_version: str = "2023-08-01"

    @property
    def configured(self) -> bool:
        return bool(self.app_id and self.secret_key)

    @property
    def base_url(self) -> str:
        if self.environment == "production":
            return "https://api.cashfree.com/pg"
        return "https://sandbox.cashfree.com/pg"


class PayoutSettings(BaseModel):
    """Cashfree Payouts credentials (separate product from the gateway)."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    environment: str = "sandbox"
    api_version: str = "2024-01-01"
    webhook_secret: Optional[str] = None
    # inline: 回调内直接下发; queued: 交给 celery payouts 队列
    dispatch_mode: Literal["inline", "queued"] = "inline"

    @property
    def configured(self) -> bool:
        return bool(self.enabled and self.client_id and self.client_secret)

    @property
    def base_url(self) -> str:
        if self.environment == "production":
            return "https://api.cashfree.com/payout"
        return "https://sandbox.cashfree.com/payout"


class PaymentSettings(BaseSettings):
    commission_rate: Decimal = Field(default=Decimal("0.10"), validation_alias="PLATFORM_COMMISSION_RATE")
    currency: str = "INR"
    return_url: str = "http://localhost:8080/payment/callback"
    notify_url: str = "http://localhost:8000/api/v1/payments/webhook"
    pending_expiry_minutes: int = 60
    order_token_prefix: str = "uplink"

    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    payout: PayoutSettings = Field(default_factory=PayoutSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
        populate_by_name=True,
        frozen=True,
    )

    @field_validator("commission_rate")
    @classmethod
    def _validate_rate(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 1:
            raise ValueError("PLATFORM_COMMISSION_RATE must be within [0, 1]")
        return v

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        u = (v or "").upper()
        if len(u) != 3 or not u.isalpha():
            raise ValueError("currency must be ISO-4217 alpha-3")
        return u


payment_settings = PaymentSettings()
