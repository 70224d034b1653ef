"""
Telephony wiring factory.

Single source of truth for configuration: ``TelephonyConfig`` (pydantic
settings from OS env + .env).
"""

from functools import lru_cache

from celebration_ivr.shared.logging import get_logger
from celebration_ivr.telephony.adapters.base import WebhookCodec
from celebration_ivr.telephony.adapters.twilio import TwilioCodec
from celebration_ivr.telephony.adapters.yemot import YemotCodec
from celebration_ivr.telephony.config import ProviderType, TelephonyConfig
from celebration_ivr.telephony.config import get_telephony_config as _load_telephony_config
from celebration_ivr.telephony.mock_adapter import MockCodec

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_telephony_config() -> TelephonyConfig:
    return _load_telephony_config()


def build_codec(cfg: TelephonyConfig) -> WebhookCodec:
    if cfg.provider_type == ProviderType.YEMOT:
        return YemotCodec()
    if cfg.provider_type == ProviderType.TWILIO:
        return TwilioCodec(
            action_url=cfg.get_webhook_url(),
            auth_token=cfg.twilio_auth_token,
            language=cfg.tts_language,
        )
    if cfg.provider_type == ProviderType.MOCK:
        return MockCodec()
    raise ValueError(f"Unsupported telephony provider_type: {cfg.provider_type}")


@lru_cache(maxsize=1)
def get_webhook_codec() -> WebhookCodec:
    """Create and cache the codec for the configured provider."""
    cfg = get_telephony_config()
    logger.info(
        "Telephony config resolved",
        extra={
            "provider_type": cfg.provider_type.value,
            "webhook_base_url": cfg.webhook_base_url,
            "validate_signatures": cfg.validate_signatures,
            "max_concurrent_calls": cfg.max_concurrent_calls,
        },
    )
    return build_codec(cfg)
