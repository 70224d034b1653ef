"""
Wire-format adapter contract for voice gateway webhooks.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping

from celebration_ivr.telephony.events import GatewayCommand, GatewayRequest, ReadCommand


class WebhookCodec(ABC):
    """Translates one provider's webhook dialect to and from gateway values."""

    #: Content type of rendered responses.
    media_type: str = "text/plain"

    @abstractmethod
    def parse_request(self, params: Mapping[str, str]) -> GatewayRequest:
        """Normalize query/form parameters of one webhook hit.

        Raises:
            WebhookParseError: Required provider fields are missing.
        """
        ...

    @abstractmethod
    def answer(self, request: GatewayRequest, command: ReadCommand) -> str:
        """Raw caller input for the pending read; empty when none was given."""
        ...

    @abstractmethod
    def render(self, command: GatewayCommand) -> str:
        """Serialize a command as the provider's response body."""
        ...

    def validate_signature(self, url: str, params: Mapping[str, str], signature: str | None) -> bool:
        """Check the provider's request signature. Unsigned dialects accept all."""
        return True
