"""
FastAPI router for the voice gateway webhook.

Every provider hits one endpoint for the whole call. The response is the
provider-specific rendering of the call's next command; internal failures
are answered with a hang-up so the gateway never receives an error page.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from celebration_ivr.shared.logging import get_logger
from celebration_ivr.telephony.adapters.base import WebhookCodec
from celebration_ivr.telephony.bridge import CallRegistry
from celebration_ivr.telephony.config import TelephonyConfig
from celebration_ivr.telephony.events import GatewayCommand, HangupCommand
from celebration_ivr.telephony.factory import get_telephony_config, get_webhook_codec
from celebration_ivr.telephony.interface import WebhookParseError

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks/telephony", tags=["webhooks"])


def get_codec(request: Request) -> WebhookCodec:
    codec = getattr(request.app.state, "codec", None)
    return codec if codec is not None else get_webhook_codec()


def get_call_registry(request: Request) -> CallRegistry:
    registry = getattr(request.app.state, "call_registry", None)
    if registry is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Call registry not ready")
    return registry


def _respond(codec: WebhookCodec, command: GatewayCommand) -> Response:
    return Response(content=codec.render(command), media_type=codec.media_type)


@router.api_route("/ivr", methods=["GET", "POST"])
async def ivr_webhook(
    request: Request,
    codec: Annotated[WebhookCodec, Depends(get_codec)],
    registry: Annotated[CallRegistry, Depends(get_call_registry)],
    cfg: Annotated[TelephonyConfig, Depends(get_telephony_config)],
) -> Response:
    form: dict[str, str] = {}
    if request.method == "POST":
        form = {k: str(v) for k, v in (await request.form()).items()}
    params = {**dict(request.query_params), **form}

    if cfg.validate_signatures:
        url = cfg.get_webhook_url()
        if request.url.query:
            url = f"{url}?{request.url.query}"
        signature = request.headers.get("X-Twilio-Signature")
        if not codec.validate_signature(url, form, signature):
            logger.warning("Webhook signature rejected", extra={"url": url})
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")

    try:
        gateway_request = codec.parse_request(params)
    except WebhookParseError as e:
        logger.warning(
            "Unparseable gateway request",
            extra={"error": str(e), "error_code": e.error_code},
        )
        return _respond(codec, HangupCommand())

    try:
        command = await registry.handle(gateway_request, codec)
    except Exception:
        # Never surface an error page to the gateway
        logger.exception("Webhook handling failed", extra={"call_id": gateway_request.call_id})
        command = HangupCommand()

    return _respond(codec, command)
