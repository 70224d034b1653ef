"""
Twilio adapter: TwiML responses and webhook signature validation.
"""

import base64
import hashlib
import hmac
from collections.abc import Mapping

from celebration_ivr.shared.logging import get_logger
from celebration_ivr.telephony.adapters.base import WebhookCodec
from celebration_ivr.telephony.events import GatewayCommand, GatewayRequest, ReadCommand
from celebration_ivr.telephony.interface import InputMode, PromptSegment, SegmentKind, WebhookParseError

logger = get_logger(__name__)

# CallStatus values after which Twilio will not call back with input
TERMINAL_STATUSES = frozenset({"completed", "busy", "failed", "no-answer", "canceled"})


def _twiml(s: str) -> str:
    return '<?xml version="1.0" encoding="UTF-8"?>\n<Response>\n' + s + "\n</Response>"


def _xml_escape(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def compute_signature(auth_token: str, url: str, params: Mapping[str, str]) -> str:
    """Twilio request signature: HMAC-SHA1 over URL + sorted POST params, base64."""
    signature_string = url
    for key in sorted(params):
        signature_string += key + str(params[key])
    digest = hmac.new(
        auth_token.encode("utf-8"),
        signature_string.encode("utf-8"),
        hashlib.sha1,
    ).digest()
    return base64.b64encode(digest).decode("utf-8")


class TwilioCodec(WebhookCodec):
    media_type = "application/xml"

    def __init__(self, action_url: str, auth_token: str = "", language: str = "en-US") -> None:
        """Initialize the codec.

        Args:
            action_url: Absolute webhook URL Twilio posts input back to.
            auth_token: Account auth token used to sign webhooks.
            language: ``<Say>`` voice language.
        """
        self._action_url = action_url
        self._auth_token = auth_token
        self._language = language

    def parse_request(self, params: Mapping[str, str]) -> GatewayRequest:
        call_sid = params.get("CallSid")
        if not call_sid:
            raise WebhookParseError(
                message="Missing CallSid in request",
                error_code="MISSING_CALL_SID",
                provider_response=dict(params),
            )
        status = (params.get("CallStatus") or "").lower()
        return GatewayRequest(
            call_id=call_sid,
            phone=params.get("From"),
            hangup=status in TERMINAL_STATUSES,
            values=dict(params),
        )

    def answer(self, request: GatewayRequest, command: ReadCommand) -> str:
        if command.mode is InputMode.RECORD:
            return request.values.get("RecordingUrl", "")
        return request.values.get("Digits", "")

    def _speech(self, prompts: tuple[PromptSegment, ...]) -> str:
        verbs = []
        for segment in prompts:
            if segment.kind is SegmentKind.FILE:
                verbs.append(f"<Play>{_xml_escape(segment.data)}</Play>")
            else:
                verbs.append(f'<Say language="{self._language}">{_xml_escape(segment.data)}</Say>')
        return "".join(verbs)

    def render(self, command: GatewayCommand) -> str:
        speech = self._speech(command.prompts)
        if not isinstance(command, ReadCommand):
            return _twiml(f"{speech}<Hangup/>")

        action = _xml_escape(self._action_url)
        c = command.constraints
        if command.mode is InputMode.RECORD:
            return _twiml(
                f"{speech}"
                f'<Record action="{action}" method="POST" maxLength="{c.max_record_seconds}" '
                f'finishOnKey="#" playBeep="true"/>'
            )

        num_digits = f' numDigits="{c.max_digits}"' if c.min_digits == c.max_digits else ""
        # No input: Gather falls through to the Redirect, which posts without Digits
        return _twiml(
            f'<Gather input="dtmf" action="{action}" method="POST" timeout="{c.timeout_seconds}" '
            f'finishOnKey="#"{num_digits}>{speech}</Gather>'
            f'<Redirect method="POST">{action}</Redirect>'
        )

    def validate_signature(self, url: str, params: Mapping[str, str], signature: str | None) -> bool:
        if not self._auth_token:
            logger.warning("Twilio auth token not configured; cannot validate signature")
            return False
        if not signature:
            return False
        expected = compute_signature(self._auth_token, url, params)
        return hmac.compare_digest(expected, signature)
