"""
Call flow orchestrator.

Drives one call from identification to hang-up by interpreting the effects
returned by the pure sub-flows: ``Ask`` goes to the menu engine, ``Query`` to
the call services, ``Say`` and ``Finish`` to the voice gateway, ``Handoff``
switches sub-flow. Every terminal failure leaves through ``_terminate``, the
single announce-and-hang-up exit; a caller hang-up ends the call silently.
"""

import logging
from collections.abc import Mapping

from celebration_ivr.catalog.texts import Prompt, TextCatalog
from celebration_ivr.config import Settings, get_settings
from celebration_ivr.dialogue.effects import (
    Ask,
    CallFlow,
    Finish,
    Handoff,
    Query,
    Say,
    Transition,
)
from celebration_ivr.dialogue.flows import build_flows
from celebration_ivr.dialogue.models import CallOutcome, CallSession, CallState
from celebration_ivr.dialogue.prompts import MenuEngine
from celebration_ivr.dialogue.services import CallServices
from celebration_ivr.shared.exceptions import (
    IdentificationError,
    IvrError,
    MaxAttemptsExceeded,
    NoDataError,
    PersistenceError,
)
from celebration_ivr.shared.logging import correlation_id_var, get_logger, log_with_context
from celebration_ivr.telephony.interface import CallHangup, VoiceGateway, VoiceGatewayError

logger = get_logger(__name__)

_OUTCOME_FOR_ERROR: dict[type[IvrError], CallOutcome] = {
    IdentificationError: CallOutcome.IDENTIFICATION_FAILED,
    MaxAttemptsExceeded: CallOutcome.MAX_ATTEMPTS,
    NoDataError: CallOutcome.NO_DATA,
}


def _outcome_for(error: IvrError) -> CallOutcome:
    for error_type, outcome in _OUTCOME_FOR_ERROR.items():
        if isinstance(error, error_type):
            return outcome
    return CallOutcome.ERROR


class CallOrchestrator:
    """Runs calls; one instance is shared by every concurrent call task."""

    #: Upper bound on transitions per call; a flow that loops past it is a bug.
    MAX_TRANSITIONS = 1000

    def __init__(
        self,
        services: CallServices,
        settings: Settings | None = None,
        flows: Mapping[CallState, CallFlow] | None = None,
        input_timeout_seconds: int = 7,
    ) -> None:
        self._services = services
        self._settings = settings or get_settings()
        self._flows = dict(flows) if flows is not None else build_flows(self._settings)
        self._input_timeout_seconds = input_timeout_seconds

    async def run(self, session: CallSession, gateway: VoiceGateway) -> CallOutcome:
        """Drive ``session`` to completion.

        Never raises for call-level failures; the outcome is recorded on the
        session and returned.
        """
        token = correlation_id_var.set(session.call_id)
        try:
            engine = MenuEngine(
                gateway,
                await self._load_texts(self._settings.default_user_id),
                max_attempts=self._settings.max_retries,
                timeout_seconds=self._input_timeout_seconds,
            )
            logger.info("Call started", extra={"call_id": session.call_id, "phone": session.phone})

            try:
                await self._drive(session, gateway, engine)
            except CallHangup as e:
                logger.info(
                    "Caller hung up",
                    extra={"state": session.state.value, "reason": type(e).__name__},
                )
                session.finish(CallOutcome.HANGUP)
            except IvrError as e:
                logger.info(
                    "Call ended by terminal condition",
                    extra={"state": session.state.value, "error": str(e), "message_key": e.message_key},
                )
                await self._terminate(session, gateway, engine.texts, Prompt(e.message_key, e.params), _outcome_for(e))
            except PersistenceError as e:
                logger.error(
                    "Call ended by storage failure",
                    extra={"state": session.state.value, "error": str(e)},
                )
                await self._terminate(session, gateway, engine.texts, Prompt("GENERAL.ERROR"), CallOutcome.ERROR)
            except Exception:
                logger.exception("Unexpected call failure", extra={"state": session.state.value})
                await self._terminate(session, gateway, engine.texts, Prompt("GENERAL.ERROR"), CallOutcome.ERROR)

            log_with_context(
                logger,
                logging.INFO,
                "Call finished",
                call_id=session.call_id,
                outcome=session.outcome.value if session.outcome else None,
                flow=session.flow.value if session.flow else None,
                steps=session.step_index,
                student_id=session.identity.student_id if session.identity else None,
            )
            return session.outcome
        finally:
            correlation_id_var.reset(token)

    async def _load_texts(self, user_id: int | None) -> TextCatalog:
        try:
            return await self._services.load_texts(user_id)
        except Exception:
            logger.exception("Text overrides unavailable; using built-in texts", extra={"user_id": user_id})
            return TextCatalog()

    async def _drive(self, session: CallSession, gateway: VoiceGateway, engine: MenuEngine) -> None:
        flow = self._flows[CallState.IDENTIFYING]
        session.enter(flow.state)
        transition = flow.start(session, {})

        for _ in range(self.MAX_TRANSITIONS):
            state, effect = transition.state, transition.effect

            while isinstance(effect, Say):
                await gateway.announce(engine.texts.render(effect.prompts))
                if effect.then is None:
                    break
                effect = effect.then

            if isinstance(effect, Say):
                transition = flow.advance(session, state, None)
            elif isinstance(effect, Ask):
                value = await engine.ask(session, effect.step)
                transition = flow.advance(session, state, value)
            elif isinstance(effect, Query):
                value = await self._services.execute(effect.operation, effect.params)
                transition = flow.advance(session, state, value)
            elif isinstance(effect, Handoff):
                flow, transition = await self._handoff(session, engine, effect)
            elif isinstance(effect, Finish):
                await self._finish(session, gateway, engine.texts, effect)
                return
            else:
                raise TypeError(f"Unsupported effect: {effect!r}")

        raise IvrError(f"Call exceeded {self.MAX_TRANSITIONS} transitions")

    async def _handoff(
        self,
        session: CallSession,
        engine: MenuEngine,
        effect: Handoff,
    ) -> tuple[CallFlow, Transition]:
        if effect.identity is not None:
            loaded_for = session.user_id if session.identity is not None else self._settings.default_user_id
            tenant_changed = effect.identity.user_id != loaded_for
            session.identity = effect.identity
            if tenant_changed and session.user_id is not None:
                engine.texts = await self._load_texts(session.user_id)
        flow = self._flows[effect.target]
        session.enter(effect.target)
        logger.info("Entering sub-flow", extra={"state": effect.target.value})
        return flow, flow.start(session, effect.params)

    async def _finish(
        self,
        session: CallSession,
        gateway: VoiceGateway,
        texts: TextCatalog,
        effect: Finish,
    ) -> None:
        if effect.outcome is CallOutcome.COMPLETED:
            session.enter(CallState.CONFIRMING)
        try:
            await gateway.hangup(texts.render(effect.prompts))
        except CallHangup:
            logger.info("Caller left before the closing message")
        session.finish(effect.outcome)

    async def _terminate(
        self,
        session: CallSession,
        gateway: VoiceGateway,
        texts: TextCatalog,
        prompt: Prompt,
        outcome: CallOutcome,
    ) -> None:
        try:
            segments = texts.render([prompt])
        except (KeyError, IndexError, AttributeError, ValueError):
            logger.exception("Closing text could not be rendered; using built-in text", extra={"text_key": prompt.key})
            builtin = TextCatalog()
            segments = builtin.render([prompt if prompt.key in builtin else Prompt("GENERAL.ERROR")])
        try:
            await gateway.hangup(segments)
        except VoiceGatewayError as e:
            logger.warning("Could not deliver closing message", extra={"error": str(e)})
        session.finish(outcome)
