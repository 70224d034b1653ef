"""
Yemot HaMashiach API adapter.

Yemot calls the webhook with ``ApiCallId``/``ApiPhone`` plus every value
collected so far, and expects a plain-text command line in return, e.g.::

    read=t-Please enter your ID=val_1,no,9,9,7,No,yes,no,,,1,Ok,None,

Messages are ``.``-separated ``t-`` (text-to-speech) or ``f-`` (recorded file)
segments; ``&`` joins commands.
"""

import re
from collections.abc import Mapping

from celebration_ivr.shared.logging import get_logger
from celebration_ivr.telephony.adapters.base import WebhookCodec
from celebration_ivr.telephony.events import GatewayCommand, GatewayRequest, ReadCommand
from celebration_ivr.telephony.interface import InputMode, PromptSegment, SegmentKind, WebhookParseError

logger = get_logger(__name__)

# Characters with syntactic meaning in a Yemot command line
_RESERVED = re.compile(r"[.,\-&=\"'|]")
_SPACES = re.compile(r"\s+")

# Value Yemot substitutes when the caller entered nothing
EMPTY_VALUE = "None"


def sanitize_text(text: str) -> str:
    return _SPACES.sub(" ", _RESERVED.sub(" ", text)).strip()


def render_messages(prompts: tuple[PromptSegment, ...]) -> str:
    parts = []
    for segment in prompts:
        if segment.kind is SegmentKind.FILE:
            parts.append(f"f-{segment.data}")
        else:
            text = sanitize_text(segment.data)
            if text:
                parts.append(f"t-{text}")
    return ".".join(parts)


class YemotCodec(WebhookCodec):
    media_type = "text/plain"

    def parse_request(self, params: Mapping[str, str]) -> GatewayRequest:
        call_id = params.get("ApiCallId")
        if not call_id:
            raise WebhookParseError(
                message="Missing ApiCallId in request",
                error_code="MISSING_CALL_ID",
                provider_response=dict(params),
            )
        return GatewayRequest(
            call_id=call_id,
            phone=params.get("ApiPhone"),
            hangup=params.get("hangup") == "yes",
            values=dict(params),
        )

    def answer(self, request: GatewayRequest, command: ReadCommand) -> str:
        value = request.values.get(command.variable, "")
        return "" if value == EMPTY_VALUE else value

    def _read(self, command: ReadCommand) -> str:
        messages = render_messages(command.prompts)
        c = command.constraints
        if command.mode is InputMode.RECORD:
            # val_name, re_enter, record, folder, file_name, confirm_menu, save_on_hangup, append, min, max
            fields = [command.variable, "no", "record", "", "", "no", "yes", "no", "1", str(c.max_record_seconds)]
        else:
            allowed = ".".join(c.digits_allowed) if c.digits_allowed else ""
            # val_name, re_enter, max, min, timeout, playback, block_asterisk, block_zero,
            # replace_char, allowed, attempts, allow_empty, empty_value
            fields = [
                command.variable,
                "no",
                str(c.max_digits),
                str(c.min_digits),
                str(c.timeout_seconds),
                "No",
                "yes",
                "no",
                "",
                allowed,
                "1",
                "Ok",
                EMPTY_VALUE,
            ]
        return f"read={messages}={','.join(fields)}"

    def render(self, command: GatewayCommand) -> str:
        if isinstance(command, ReadCommand):
            return self._read(command)

        messages = render_messages(command.prompts)
        if messages:
            return f"id_list_message={messages}&go_to_folder=hangup"
        return "go_to_folder=hangup"
