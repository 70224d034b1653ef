"""
Normalized gateway requests and the commands answered to them.

Provider adapters translate between these values and their wire format;
the bridge only ever sees these.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

from celebration_ivr.telephony.interface import InputMode, PromptSegment, ReadConstraints


class GatewayRequest(BaseModel):
    """One webhook hit from the voice gateway."""

    model_config = ConfigDict(frozen=True)

    call_id: str = Field(..., min_length=1, description="Provider call identifier")
    phone: str | None = Field(default=None, description="Caller phone number")
    hangup: bool = Field(default=False, description="The caller has left the call")
    values: Mapping[str, str] = Field(
        default_factory=dict,
        description="Raw request parameters, including collected input",
    )


@dataclass(frozen=True)
class ReadCommand:
    """Play prompts, then collect input into ``variable``."""

    prompts: tuple[PromptSegment, ...]
    mode: InputMode
    constraints: ReadConstraints
    variable: str


@dataclass(frozen=True)
class HangupCommand:
    """Play prompts, then end the call."""

    prompts: tuple[PromptSegment, ...] = ()


GatewayCommand = Union[ReadCommand, HangupCommand]
