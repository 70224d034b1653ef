"""
Menu/prompt engine.

Plays a step's prompt, collects one answer through the voice gateway and
validates it. Invalid answers are retried with an "invalid, try again"
prefix up to a fixed number of attempts; exhausting them is terminal.
"""

from celebration_ivr.catalog.texts import Prompt, TextCatalog
from celebration_ivr.dialogue.models import CallSession
from celebration_ivr.dialogue.steps import StepSpec
from celebration_ivr.shared.exceptions import MaxAttemptsExceeded
from celebration_ivr.shared.logging import get_logger
from celebration_ivr.telephony.interface import VoiceGateway

logger = get_logger(__name__)


class MenuEngine:
    """Runs ``StepSpec`` steps against a voice gateway."""

    def __init__(
        self,
        gateway: VoiceGateway,
        texts: TextCatalog,
        max_attempts: int = 3,
        timeout_seconds: int = 7,
    ) -> None:
        self._gateway = gateway
        self.texts = texts
        self._max_attempts = max_attempts
        self._timeout_seconds = timeout_seconds

    async def ask(self, session: CallSession, step: StepSpec) -> str:
        """Collect one valid answer for ``step``.

        Returns:
            The raw accepted answer (digits, or a recording reference).

        Raises:
            MaxAttemptsExceeded: ``max_attempts`` consecutive invalid answers.
            CallHangup: The caller hung up or the gateway timed out.
        """
        prompts: list[Prompt] = list(step.prompts)
        session.retries[step.name] = 0
        constraints = step.constraints(self._timeout_seconds)

        while True:
            raw = await self._gateway.read(self.texts.render(prompts), step.mode, constraints)
            raw = (raw or "").strip()

            if step.accepts(raw):
                echo = step.echo_prompt(raw)
                if echo is not None:
                    await self._gateway.announce(self.texts.render([echo]))
                session.record_answer(step.name, raw)
                return raw

            attempts = session.retries[step.name] + 1
            session.retries[step.name] = attempts
            logger.info(
                "Invalid input",
                extra={"step": step.name, "attempt": attempts, "input_length": len(raw)},
            )
            if attempts >= self._max_attempts:
                raise MaxAttemptsExceeded(step.name, attempts)

            prompts = [Prompt("GENERAL.INVALID_INPUT"), *step.prompts]
