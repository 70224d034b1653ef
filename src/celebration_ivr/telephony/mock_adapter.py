"""
Mock voice gateway and wire format for tests and local runs.
"""

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from celebration_ivr.shared.logging import get_logger
from celebration_ivr.telephony.adapters.base import WebhookCodec
from celebration_ivr.telephony.events import GatewayCommand, GatewayRequest, ReadCommand
from celebration_ivr.telephony.interface import (
    CallHangup,
    InputMode,
    PromptSegment,
    ReadConstraints,
    VoiceGateway,
    VoiceGatewayError,
    WebhookParseError,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class RecordedRead:
    prompts: tuple[PromptSegment, ...]
    mode: InputMode
    constraints: ReadConstraints
    answer: str


class MockVoiceGateway(VoiceGateway):
    """Scripted in-memory gateway.

    Answers ``read`` calls from a queue of inputs; running out of inputs
    behaves like the caller hanging up.
    """

    def __init__(self, inputs: Iterable[str] = ()) -> None:
        self._inputs: list[str] = list(inputs)
        self._reads: list[RecordedRead] = []
        self._announcements: list[tuple[PromptSegment, ...]] = []
        self._hangups: list[tuple[PromptSegment, ...]] = []
        self._should_fail: bool = False
        self._fail_error: str = "Mock failure"
        self._fail_code: str = "MOCK_ERROR"

    def reset(self) -> None:
        self._inputs.clear()
        self._reads.clear()
        self._announcements.clear()
        self._hangups.clear()
        self._should_fail = False
        self._fail_error = "Mock failure"
        self._fail_code = "MOCK_ERROR"

    def configure_failure(
        self,
        should_fail: bool = True,
        error_message: str = "Mock failure",
        error_code: str = "MOCK_ERROR",
    ) -> None:
        self._should_fail = should_fail
        self._fail_error = error_message
        self._fail_code = error_code

    def feed(self, *inputs: str) -> None:
        self._inputs.extend(inputs)

    @property
    def reads(self) -> list[RecordedRead]:
        return self._reads.copy()

    @property
    def announcements(self) -> list[tuple[PromptSegment, ...]]:
        return self._announcements.copy()

    @property
    def hangups(self) -> list[tuple[PromptSegment, ...]]:
        return self._hangups.copy()

    def spoken(self) -> list[str]:
        """Every text segment played so far, in order."""
        texts: list[str] = []
        for read in self._reads:
            texts.extend(s.data for s in read.prompts)
        for batch in (*self._announcements, *self._hangups):
            texts.extend(s.data for s in batch)
        return texts

    def _check(self) -> None:
        if self._should_fail:
            raise VoiceGatewayError(self._fail_error, error_code=self._fail_code)

    async def read(
        self,
        prompts: Sequence[PromptSegment],
        mode: InputMode,
        constraints: ReadConstraints,
    ) -> str:
        self._check()
        if not self._inputs:
            raise CallHangup("Mock caller ran out of input", error_code="HANGUP")
        answer = self._inputs.pop(0)
        self._reads.append(RecordedRead(tuple(prompts), mode, constraints, answer))
        return answer

    async def announce(self, prompts: Sequence[PromptSegment]) -> None:
        self._check()
        self._announcements.append(tuple(prompts))

    async def hangup(self, prompts: Sequence[PromptSegment]) -> None:
        self._check()
        self._hangups.append(tuple(prompts))


class MockCodec(WebhookCodec):
    """JSON wire format: ``call_id``, ``phone``, ``hangup`` and ``value`` params."""

    media_type = "application/json"

    def parse_request(self, params: Mapping[str, str]) -> GatewayRequest:
        if not params.get("call_id"):
            raise WebhookParseError(
                message="Missing call_id in payload",
                error_code="MISSING_CALL_ID",
                provider_response=dict(params),
            )
        return GatewayRequest(
            call_id=params["call_id"],
            phone=params.get("phone"),
            hangup=str(params.get("hangup", "")).lower() in ("1", "true", "yes"),
            values=dict(params),
        )

    def answer(self, request: GatewayRequest, command: ReadCommand) -> str:
        return request.values.get("value", "")

    def render(self, command: GatewayCommand) -> str:
        body: dict[str, Any] = {"prompts": [{"kind": s.kind.value, "data": s.data} for s in command.prompts]}
        if isinstance(command, ReadCommand):
            body.update(
                action="read",
                mode=command.mode.value,
                variable=command.variable,
                min_digits=command.constraints.min_digits,
                max_digits=command.constraints.max_digits,
            )
        else:
            body["action"] = "hangup"
        return json.dumps(body)
