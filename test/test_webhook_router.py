"""Tests for the telephony webhook endpoint and health check."""

import asyncio
from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from celebration_ivr.dialogue.orchestrator import CallOrchestrator
from celebration_ivr.main import create_app
from celebration_ivr.telephony.adapters.base import WebhookCodec
from celebration_ivr.telephony.adapters.twilio import TwilioCodec, compute_signature
from celebration_ivr.telephony.adapters.yemot import YemotCodec
from celebration_ivr.telephony.bridge import CallRegistry
from celebration_ivr.telephony.config import ProviderType, TelephonyConfig
from celebration_ivr.telephony.factory import get_telephony_config

from conftest import TODAY, Seed

IVR = "/webhooks/telephony/ivr"
BASE_URL = "http://ivr.test"


def _app(orchestrator: CallOrchestrator, codec: WebhookCodec, cfg: TelephonyConfig) -> FastAPI:
    app = create_app()
    app.state.codec = codec
    app.state.call_registry = CallRegistry(orchestrator, cfg, today=lambda: TODAY)
    app.dependency_overrides[get_telephony_config] = lambda: cfg
    return app


@pytest_asyncio.fixture
async def yemot_client(orchestrator: CallOrchestrator, seed: Seed) -> AsyncGenerator[httpx.AsyncClient, None]:
    cfg = TelephonyConfig(provider_type=ProviderType.YEMOT, response_timeout_seconds=5.0)
    app = _app(orchestrator, YemotCodec(), cfg)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=BASE_URL) as client:
        yield client
    await app.state.call_registry.shutdown()


class TestYemotWebhook:
    @pytest.mark.asyncio
    async def test_call_starts_with_welcome_and_id_prompt(self, yemot_client: httpx.AsyncClient) -> None:
        response = await yemot_client.get(IVR, params={"ApiCallId": "y1", "ApiPhone": "0501234567"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == (
            "read=t-Welcome to the celebrations line.t-Please enter your 9 digit ID number"
            "=val_1,no,9,9,7,No,yes,no,,,1,Ok,None"
        )

    @pytest.mark.asyncio
    async def test_collected_values_drive_the_call(self, yemot_client: httpx.AsyncClient) -> None:
        await yemot_client.get(IVR, params={"ApiCallId": "y1"})

        response = await yemot_client.get(IVR, params={"ApiCallId": "y1", "val_1": "123456789"})

        assert "t-Hello Sarah Cohen" in response.text
        assert "=val_2,no,1,1,7," in response.text

    @pytest.mark.asyncio
    async def test_unknown_caller_is_hung_up(self, yemot_client: httpx.AsyncClient) -> None:
        await yemot_client.get(IVR, params={"ApiCallId": "y1"})

        response = await yemot_client.post(IVR, data={"ApiCallId": "y1", "val_1": "000000000"})

        assert response.text.endswith("&go_to_folder=hangup")
        assert "t-The ID number you entered is not registered" in response.text

    @pytest.mark.asyncio
    async def test_hangup_notification(self, yemot_client: httpx.AsyncClient) -> None:
        await yemot_client.get(IVR, params={"ApiCallId": "y1"})

        response = await yemot_client.get(IVR, params={"ApiCallId": "y1", "hangup": "yes"})
        assert response.text == "go_to_folder=hangup"

        for _ in range(200):
            health = (await yemot_client.get("/health")).json()
            if health["active_calls"] == 0:
                break
            await asyncio.sleep(0.01)
        assert health == {"status": "healthy", "active_calls": 0}

    @pytest.mark.asyncio
    async def test_request_without_call_id(self, yemot_client: httpx.AsyncClient) -> None:
        response = await yemot_client.get(IVR, params={"ApiPhone": "0501234567"})

        assert response.status_code == 200
        assert response.text == "go_to_folder=hangup"

    @pytest.mark.asyncio
    async def test_health_counts_active_calls(self, yemot_client: httpx.AsyncClient) -> None:
        await yemot_client.get(IVR, params={"ApiCallId": "y1"})

        response = await yemot_client.get("/health")

        assert response.json() == {"status": "healthy", "active_calls": 1}


class TestTwilioSignatures:
    @pytest_asyncio.fixture
    async def client(self, orchestrator: CallOrchestrator, seed: Seed) -> AsyncGenerator[httpx.AsyncClient, None]:
        cfg = TelephonyConfig(
            provider_type=ProviderType.TWILIO,
            twilio_auth_token="secret",
            validate_signatures=True,
            webhook_base_url=BASE_URL,
        )
        codec = TwilioCodec(action_url=cfg.get_webhook_url(), auth_token="secret")
        app = _app(orchestrator, codec, cfg)
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=BASE_URL) as client:
            yield client
        await app.state.call_registry.shutdown()

    @pytest.mark.asyncio
    async def test_unsigned_request_is_rejected(self, client: httpx.AsyncClient) -> None:
        response = await client.post(IVR, data={"CallSid": "CA1", "From": "+972501234567"})

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_signed_request_gets_twiml(self, client: httpx.AsyncClient) -> None:
        form = {"CallSid": "CA1", "From": "+972501234567", "CallStatus": "in-progress"}
        signature = compute_signature("secret", f"{BASE_URL}{IVR}", form)

        response = await client.post(IVR, data=form, headers={"X-Twilio-Signature": signature})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert "<Gather" in response.text
        assert "Please enter your 9 digit ID number." in response.text


class TestAppFactory:
    def test_only_request_validation_is_mapped(self) -> None:
        app = create_app()

        domain = [
            exc for exc in app.exception_handlers
            if isinstance(exc, type) and exc.__module__.startswith("celebration_ivr")
        ]

        assert domain == []
        assert RequestValidationError in app.exception_handlers
