"""
Telephony gateway configuration.

The provider is chosen per deployment; every provider talks to the same
``/webhooks/telephony/ivr`` endpoint and differs only in its wire format.
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderType(str, Enum):
    """Supported voice gateway wire formats."""

    YEMOT = "yemot"
    TWILIO = "twilio"
    MOCK = "mock"


class TelephonyConfig(BaseSettings):
    """Telephony configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="TELEPHONY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Provider selection
    provider_type: ProviderType = Field(default=ProviderType.YEMOT)

    # Provider credentials
    twilio_auth_token: str = Field(default="")
    validate_signatures: bool = Field(
        default=False,
        description="Reject Twilio webhooks whose X-Twilio-Signature does not match.",
    )

    # Webhook base URL (HTTP) used for TwiML action URLs
    webhook_base_url: str = Field(default="http://localhost:8000")

    # Speech
    tts_language: str = Field(default="en-US")

    # Concurrency / timeouts
    max_concurrent_calls: int = Field(default=100, ge=1, le=1000)
    read_timeout_seconds: int = Field(
        default=7,
        ge=1,
        le=60,
        description="Seconds the gateway waits for keypad input after a prompt.",
    )
    input_timeout_seconds: int = Field(
        default=120,
        ge=10,
        le=900,
        description="Seconds a call waits for the gateway's next request before it is dropped.",
    )
    response_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=60,
        description="Seconds a webhook request waits for the call to produce its next command.",
    )

    def get_webhook_url(self, path: str = "/webhooks/telephony/ivr") -> str:
        base = self.webhook_base_url.rstrip("/")
        return f"{base}{path}"


def get_telephony_config() -> TelephonyConfig:
    return TelephonyConfig()
