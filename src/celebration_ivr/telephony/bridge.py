"""
HTTP request/response bridge for the voice gateway.

Voice gateways drive a call as a series of webhook hits: each request
carries the caller's last input, each response tells the gateway what to
play and collect next. The call flow, on the other hand, is one long-running
coroutine that awaits ``read``. ``BridgedCall`` joins the two: ``read`` parks
the call task on a future that the next webhook request resolves, and the
request waits for the command the task produces next.
"""

import asyncio
from collections import OrderedDict
from collections.abc import Callable, Sequence
from datetime import date

import anyio

from celebration_ivr.dialogue.models import CallSession
from celebration_ivr.dialogue.orchestrator import CallOrchestrator
from celebration_ivr.shared.logging import get_logger
from celebration_ivr.telephony.adapters.base import WebhookCodec
from celebration_ivr.telephony.config import TelephonyConfig
from celebration_ivr.telephony.events import GatewayCommand, GatewayRequest, HangupCommand, ReadCommand
from celebration_ivr.telephony.interface import (
    CallHangup,
    GatewayTimeout,
    InputMode,
    PromptSegment,
    ReadConstraints,
    VoiceGateway,
)

logger = get_logger(__name__)


class BridgedCall(VoiceGateway):
    """``VoiceGateway`` for one call, fed by webhook requests.

    Announcements are buffered and prepended to the next command, since a
    webhook response is the only moment audio can be sent.
    """

    def __init__(self, call_id: str, input_timeout_seconds: float = 120) -> None:
        self.call_id = call_id
        self._input_timeout = input_timeout_seconds
        self._commands: asyncio.Queue[GatewayCommand] = asyncio.Queue()
        self._pending: list[PromptSegment] = []
        self._answer: asyncio.Future[str] | None = None
        self._reads = 0
        self._hung_up = False
        self._closed = False
        self.pending_read: ReadCommand | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def _drain(self, prompts: Sequence[PromptSegment]) -> tuple[PromptSegment, ...]:
        segments = (*self._pending, *prompts)
        self._pending.clear()
        return segments

    def _ensure_connected(self) -> None:
        if self._hung_up:
            raise CallHangup("Caller hung up", error_code="HANGUP")

    async def read(
        self,
        prompts: Sequence[PromptSegment],
        mode: InputMode,
        constraints: ReadConstraints,
    ) -> str:
        self._ensure_connected()
        self._reads += 1
        command = ReadCommand(
            prompts=self._drain(prompts),
            mode=mode,
            constraints=constraints,
            variable=f"val_{self._reads}",
        )
        self._answer = asyncio.get_running_loop().create_future()
        self.pending_read = command
        self._commands.put_nowait(command)
        try:
            with anyio.fail_after(self._input_timeout):
                return await self._answer
        except TimeoutError:
            raise GatewayTimeout(
                f"No gateway request within {self._input_timeout}s",
                error_code="INPUT_TIMEOUT",
            ) from None
        finally:
            self._answer = None
            self.pending_read = None

    async def announce(self, prompts: Sequence[PromptSegment]) -> None:
        self._ensure_connected()
        self._pending.extend(prompts)

    async def hangup(self, prompts: Sequence[PromptSegment]) -> None:
        self._closed = True
        self._commands.put_nowait(HangupCommand(self._drain(prompts)))

    def deliver(self, value: str) -> bool:
        """Resolve the pending ``read`` with the caller's input."""
        if self._answer is None or self._answer.done():
            logger.warning("Gateway request with no pending read", extra={"call_id": self.call_id})
            return False
        self._answer.set_result(value)
        return True

    def caller_hung_up(self) -> None:
        self._hung_up = True
        if self._answer is not None and not self._answer.done():
            self._answer.set_exception(CallHangup("Caller hung up", error_code="HANGUP"))

    def close(self) -> None:
        """Emit a bare hang-up if the call ended without one."""
        if not self._closed:
            self._closed = True
            self._commands.put_nowait(HangupCommand(self._drain(())))

    async def next_command(self, timeout_seconds: float) -> GatewayCommand:
        """Wait for the call task's next command.

        Raises:
            TimeoutError: The call produced nothing within ``timeout_seconds``.
        """
        with anyio.fail_after(timeout_seconds):
            return await self._commands.get()


class CallRegistry:
    """Active calls of this process, keyed by provider call id."""

    #: Recently finished call ids remembered to absorb late webhook hits.
    FINISHED_MEMORY = 1024

    def __init__(
        self,
        orchestrator: CallOrchestrator,
        config: TelephonyConfig,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._orchestrator = orchestrator
        self._config = config
        self._today = today
        self._calls: dict[str, BridgedCall] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._finished: OrderedDict[str, None] = OrderedDict()

    def __len__(self) -> int:
        return len(self._calls)

    def get(self, call_id: str) -> BridgedCall | None:
        return self._calls.get(call_id)

    async def handle(self, request: GatewayRequest, codec: WebhookCodec) -> GatewayCommand:
        """Route one webhook hit and wait for the command to answer it with."""
        call = self._calls.get(request.call_id)

        if request.hangup:
            if call is not None:
                logger.info("Gateway reported hangup", extra={"call_id": request.call_id})
                call.caller_hung_up()
            return HangupCommand()

        if call is None:
            if request.call_id in self._finished:
                logger.info("Request for finished call", extra={"call_id": request.call_id})
                return HangupCommand()
            if len(self._calls) >= self._config.max_concurrent_calls:
                logger.warning(
                    "Call rejected: concurrency limit reached",
                    extra={"call_id": request.call_id, "active_calls": len(self._calls)},
                )
                return HangupCommand()
            call = self._start(request)
        else:
            pending = call.pending_read
            call.deliver(codec.answer(request, pending) if pending is not None else "")

        try:
            return await call.next_command(self._config.response_timeout_seconds)
        except TimeoutError:
            logger.error(
                "Call produced no command in time; dropping it",
                extra={"call_id": request.call_id, "timeout_seconds": self._config.response_timeout_seconds},
            )
            task = self._tasks.get(request.call_id)
            if task is not None:
                task.cancel()
            return HangupCommand()

    def _start(self, request: GatewayRequest) -> BridgedCall:
        call = BridgedCall(request.call_id, self._config.input_timeout_seconds)
        session = CallSession(call_id=request.call_id, phone=request.phone, today=self._today())
        self._calls[request.call_id] = call
        self._tasks[request.call_id] = asyncio.create_task(
            self._run(call, session),
            name=f"call-{request.call_id}",
        )
        logger.info(
            "Call connected",
            extra={"call_id": request.call_id, "active_calls": len(self._calls)},
        )
        return call

    async def _run(self, call: BridgedCall, session: CallSession) -> None:
        try:
            await self._orchestrator.run(session, call)
        finally:
            call.close()
            self._calls.pop(call.call_id, None)
            self._tasks.pop(call.call_id, None)
            self._finished[call.call_id] = None
            while len(self._finished) > self.FINISHED_MEMORY:
                self._finished.popitem(last=False)

    async def shutdown(self) -> None:
        """Cancel every active call task."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Call registry stopped", extra={"cancelled_calls": len(tasks)})
