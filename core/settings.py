"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings; every key is read once at import and
treated as read-only for the life of the process.

Examples:
    STRIPE__SECRET_KEY=sk_live_...
    STRIPE__WEBHOOK_SECRET=whsec_current
    STRIPE__WEBHOOK_SECRETS=whsec_previous,whsec_older
    WEBHOOK__ACK_INVALID_SIGNATURE=false
    RECONCILE__RECALC_FUNCTION=recalc_order_totals
    CONFIRM__RETRY_DELAYS=0.4,0.9,1.5
"""
from __future__ import annotations

from typing import Annotated, Optional
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator


def _split_csv(v):
    if v is None:
        return []
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    return v


class PaymentTimeouts(BaseModel):
    connect: float = 2.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300
    # Debug-only: acknowledge failed signature checks with 200 instead of 400
    ack_invalid_signature: bool = False
    event_log_enabled: bool = True


class ReconcileSettings(BaseModel):
    order_id_metadata_keys: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["order_id", "orderId"])
    # Database function called as fn(order_id) after a successful transition
    recalc_function: Optional[str] = None
    refunds_enabled: bool = True

    @field_validator("order_id_metadata_keys", mode="before")
    @classmethod
    def _parse_keys(cls, v):
        return _split_csv(v)


class ConfirmSettings(BaseModel):
    # Seconds to wait before each re-check; the first check is immediate
    retry_delays: Annotated[list[float], NoDecode] = Field(default_factory=lambda: [0.4, 0.9, 1.5])

    @field_validator("retry_delays", mode="before")
    @classmethod
    def _parse_delays(cls, v):
        return _split_csv(v)


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    api_version: Optional[str] = None
    webhook_secret: Optional[str] = None
    # Additional secrets accepted during rotation
    webhook_secrets: Annotated[list[str], NoDecode] = Field(default_factory=list)

    @field_validator("webhook_secrets", mode="before")
    @classmethod
    def _parse_secrets(cls, v):
        return _split_csv(v)

    @property
    def all_webhook_secrets(self) -> list[str]:
        secrets: list[str] = []
        for s in [self.webhook_secret, *self.webhook_secrets]:
            if s and s not in secrets:
                secrets.append(s)
        return secrets


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="stripe", validation_alias="PAYMENT__DEFAULT_PROVIDER")
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    reconcile: ReconcileSettings = Field(default_factory=ReconcileSettings)
    confirm: ConfirmSettings = Field(default_factory=ConfirmSettings)

    stripe: StripeSettings = Field(default_factory=StripeSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
