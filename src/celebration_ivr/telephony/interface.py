"""
Voice gateway interface definition.

The call flow only ever talks to the caller through ``VoiceGateway``:
prompt-then-collect (``read``), announce-and-continue (``announce``) and
announce-and-terminate (``hangup``).
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any


class InputMode(str, Enum):
    """How the gateway collects the caller's answer."""

    TAP = "tap"
    RECORD = "record"


class SegmentKind(str, Enum):
    """Prompt segment source."""

    TEXT = "text"
    FILE = "file"


@dataclass(frozen=True)
class PromptSegment:
    """One piece of audio played to the caller: TTS text or a recorded file."""

    kind: SegmentKind
    data: str

    @classmethod
    def text(cls, data: str) -> "PromptSegment":
        return cls(kind=SegmentKind.TEXT, data=data)

    @classmethod
    def file(cls, path: str) -> "PromptSegment":
        return cls(kind=SegmentKind.FILE, data=path)


@dataclass(frozen=True)
class ReadConstraints:
    """Collection constraints passed through to the gateway.

    ``digits_allowed`` lets the gateway pre-filter keys; the prompt engine
    still validates whatever comes back.
    """

    min_digits: int = 1
    max_digits: int = 1
    digits_allowed: tuple[str, ...] | None = None
    timeout_seconds: int = 7
    max_record_seconds: int = 60


class TelephonyProviderError(Exception):
    """Base exception for telephony provider errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider_response: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.provider_response = provider_response or {}


class VoiceGatewayError(TelephonyProviderError):
    """The gateway could not deliver a prompt or collect input."""


class CallHangup(VoiceGatewayError):
    """The caller hung up while the flow was waiting on the gateway."""


class GatewayTimeout(CallHangup):
    """The gateway never came back for the next step."""


class WebhookParseError(TelephonyProviderError):
    """Error parsing a gateway webhook request."""


class VoiceGateway(ABC):
    """Abstract prompt/collect contract consumed by the call flow."""

    @abstractmethod
    async def read(
        self,
        prompts: Sequence[PromptSegment],
        mode: InputMode,
        constraints: ReadConstraints,
    ) -> str:
        """Play ``prompts`` and return the caller's raw input.

        Returns an empty string when the caller gave no input.

        Raises:
            CallHangup: The caller hung up (or the gateway timed out).
        """
        ...

    @abstractmethod
    async def announce(self, prompts: Sequence[PromptSegment]) -> None:
        """Play an informational message; the call continues."""
        ...

    @abstractmethod
    async def hangup(self, prompts: Sequence[PromptSegment]) -> None:
        """Play a final message and terminate the call."""
        ...
