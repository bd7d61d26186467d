import asyncio
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import uuid4

from dojo.client.credit_gate import CreditGate, InsufficientBalance
from dojo.client.errors import InvalidSessionState, TransportBusy, TransportFailure
from dojo.client.scorecard import ANALYSIS_FAILED, PERSISTENCE_FAILED, ScorecardGenerator, SessionWarning
from dojo.config import OPENING_FALLBACK_QUESTION
from dojo.models.scoring import ScoreReport
from dojo.models.session import (
    SESSION_TRANSITIONS,
    ChannelMessage,
    SessionConfig,
    SessionEvent,
    SessionState,
    TranscriptEntry,
    Turn,
)
from dojo.protocol.sentinel_parser import DecodedState, SentinelStreamParser

LOGGER = logging.getLogger(__name__)

Subscriber = Callable[[SessionEvent], None]


class TurnOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TurnResult:
    outcome: TurnOutcome
    request_id: str
    error: str | None = None


class InterviewSession:
    """One mock interview from configuration to a saved scorecard.

    The session owns its config, the user turns and the paired channel
    messages. Everything outside observes it through subscribed events and the
    copy-returning properties below. Each assistant turn is tracked under a
    request id ``rN``: the suggester message uses that id and the interviewer
    message uses ``rN_int``, so both channels of a turn stay adjacent.
    """

    def __init__(
        self,
        config: SessionConfig,
        transport,
        credit_gate: CreditGate,
        scorecard: ScorecardGenerator,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or str(uuid4())
        self._config = config
        self._transport = transport
        self._credit_gate = credit_gate
        self._scorecard = scorecard
        self._state = SessionState.CONFIGURING
        self._turns: list[Turn] = []
        self._messages: list[ChannelMessage] = []
        self._request_turns: dict[str, Turn] = {}
        self._input = ""
        self._report: ScoreReport | None = None
        self._warnings: list[SessionWarning] = []
        self._telemetry: dict[str, Any] | None = None
        self._subscribers: list[Subscriber] = []
        self._request_ids = itertools.count(1)
        self._turn_ids = itertools.count(1)
        self._starting = False
        self._turn_task: asyncio.Task | None = None
        self._cancel_requested = False
        self._analysis_task: asyncio.Task | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def input_text(self) -> str:
        return self._input

    @property
    def turn_in_flight(self) -> bool:
        return self._turn_task is not None

    @property
    def turns(self) -> list[Turn]:
        return [turn.model_copy() for turn in self._turns]

    @property
    def messages(self) -> list[ChannelMessage]:
        return [message.model_copy() for message in self._messages]

    @property
    def visible_messages(self) -> list[ChannelMessage]:
        return [message.model_copy() for message in self._messages if message.visible]

    @property
    def report(self) -> ScoreReport | None:
        return self._report.model_copy(deep=True) if self._report is not None else None

    @property
    def warnings(self) -> list[SessionWarning]:
        return list(self._warnings)

    @property
    def latest_telemetry(self) -> dict[str, Any] | None:
        return dict(self._telemetry) if self._telemetry is not None else None

    @property
    def transcript(self) -> list[TranscriptEntry]:
        """User turns and visible interviewer lines in chronological order.

        Coaching hints are private to the candidate and never sent back.
        """
        entries: list[TranscriptEntry] = []
        emitted_requests: set[str] = set()
        for message in self._messages:
            if message.requestId not in emitted_requests:
                emitted_requests.add(message.requestId)
                turn = self._request_turns.get(message.requestId)
                if turn is not None:
                    entries.append(TranscriptEntry(role="user", content=turn.content))
            if message.persona == "interviewer" and message.visible:
                entries.append(TranscriptEntry(role="assistant", content=message.content))
        return entries

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def configure(self, **changes: Any) -> SessionConfig:
        self._require(SessionState.CONFIGURING)
        self._config = SessionConfig(**{**self._config.model_dump(), **changes})
        return self._config

    def set_input(self, text: str) -> None:
        self._input = text

    async def start(self) -> bool:
        """Pays for the session and runs the opening turn.

        Returns False without leaving CONFIGURING when the balance is too low;
        a ``purchase_required`` event is published in that case.
        """
        self._require(SessionState.CONFIGURING)
        if self._starting:
            raise InvalidSessionState("Session start already in progress")
        self._starting = True
        try:
            result = await self._credit_gate.check_and_start()
        finally:
            self._starting = False

        if isinstance(result, InsufficientBalance):
            self._emit("purchase_required", balance=result.balance)
            return False

        self._transition(SessionState.ACTIVE, remaining=result.remaining)
        LOGGER.info("Session %s started for role=%s difficulty=%s", self.session_id, self._config.role, self._config.difficulty)
        await self._run_turn([], opening=True)
        return True

    async def submit(self, text: str | None = None) -> TurnResult:
        self._require(SessionState.ACTIVE)
        if self._turn_task is not None:
            raise TransportBusy()
        content = self._input if text is None else text
        if not content.strip():
            raise ValueError("Cannot submit an empty answer")

        turn = Turn(id=f"t{next(self._turn_ids)}", content=content)
        self._turns.append(turn)
        self._input = ""
        return await self._run_turn(self.transcript + [TranscriptEntry(role="user", content=content)], turn=turn)

    async def end(self) -> ScoreReport:
        """Stops the interview, shows the provisional report and starts real analysis."""
        self._require(SessionState.ACTIVE)
        await self._cancel_turn()
        self._transition(SessionState.ENDED)

        transcript = self.transcript
        self._set_report(self._scorecard.provisional())
        self._transition(SessionState.ANALYZING)
        self._analysis_task = asyncio.get_running_loop().create_task(self._analyze(transcript, self._config))
        return self.report

    async def wait_analyzed(self) -> ScoreReport | None:
        if self._analysis_task is not None:
            await asyncio.shield(self._analysis_task)
        return self.report

    async def _run_turn(self, transcript: list[TranscriptEntry], *, opening: bool = False, turn: Turn | None = None) -> TurnResult:
        request_id = f"r{next(self._request_ids)}"
        self._messages.append(ChannelMessage(id=request_id, requestId=request_id, persona="suggester"))
        self._messages.append(ChannelMessage(id=f"{request_id}_int", requestId=request_id, persona="interviewer"))
        if turn is not None:
            self._request_turns[request_id] = turn
        self._emit("messages_updated", requestId=request_id)

        task = asyncio.get_running_loop().create_task(self._stream_turn(request_id, transcript, opening))
        self._turn_task = task
        try:
            await task
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            return TurnResult(TurnOutcome.CANCELLED, request_id)
        except TransportFailure as exc:
            LOGGER.warning("Turn %s failed: %s", request_id, exc)
            self._fail_turn(request_id, turn, opening, exc)
            return TurnResult(TurnOutcome.FAILED, request_id, error=str(exc))
        finally:
            if self._turn_task is task:
                self._turn_task = None
        return TurnResult(TurnOutcome.COMPLETED, request_id)

    async def _stream_turn(self, request_id: str, transcript: list[TranscriptEntry], opening: bool) -> None:
        parser = SentinelStreamParser(opening=opening)
        try:
            stream = await self._transport.send(transcript, self._config)
            try:
                async for fragment in stream:
                    self._apply(request_id, parser.feed(fragment))
            finally:
                await stream.aclose()
        except asyncio.CancelledError:
            # Whatever arrived before the cancel stays readable.
            self._apply(request_id, parser.finalize(), closing=True)
            raise
        self._apply(request_id, parser.finalize(), closing=True)

    def _apply(self, request_id: str, decoded: DecodedState, closing: bool = False) -> None:
        suggester, interviewer = self._pair(request_id)
        changed = suggester.content != decoded.suggester_text or interviewer.content != decoded.interviewer_text
        suggester.content = decoded.suggester_text
        interviewer.content = decoded.interviewer_text

        if decoded.telemetry_just_emitted and decoded.telemetry is not None:
            self._telemetry = decoded.telemetry
            self._emit("telemetry", requestId=request_id, payload=dict(decoded.telemetry))
        if changed:
            self._emit("messages_updated", requestId=request_id)
        if (decoded.separator_seen or closing) and not suggester.final:
            self._finalize_message(suggester)
        if closing and not interviewer.final:
            self._finalize_message(interviewer)

    def _finalize_message(self, message: ChannelMessage) -> None:
        message.final = True
        if message.visible:
            self._emit(
                "channel_finalized",
                requestId=message.requestId,
                messageId=message.id,
                persona=message.persona,
                content=message.content,
            )

    def _fail_turn(self, request_id: str, turn: Turn | None, opening: bool, exc: TransportFailure) -> None:
        self._messages = [message for message in self._messages if message.requestId != request_id]
        if opening:
            fallback = ChannelMessage(
                id=f"{request_id}_int",
                requestId=request_id,
                persona="interviewer",
                content=OPENING_FALLBACK_QUESTION,
            )
            self._messages.append(fallback)
            self._emit("messages_updated", requestId=request_id)
            self._finalize_message(fallback)
            return

        self._request_turns.pop(request_id, None)
        if turn is not None and turn in self._turns:
            self._turns.remove(turn)
            self._input = turn.content
        self._emit("messages_updated", requestId=request_id)
        self._emit(
            "turn_failed",
            requestId=request_id,
            error=str(exc),
            restoredInput=self._input,
            message="Connection interrupted, please retry.",
        )

    async def _cancel_turn(self) -> None:
        task = self._turn_task
        if task is None:
            return
        self._cancel_requested = True
        task.cancel()
        await asyncio.wait([task])

    async def _analyze(self, transcript: list[TranscriptEntry], config: SessionConfig) -> None:
        try:
            report = await self._scorecard.analyze(transcript, config)
            if report is None:
                self._warn(ANALYSIS_FAILED, "Detailed analysis is unavailable; showing the preliminary scorecard.")
                return
            self._set_report(report)
            if not await self._scorecard.persist(config, transcript, report):
                self._warn(PERSISTENCE_FAILED, "The scorecard could not be saved to your history.")
        except Exception:
            LOGGER.exception("Analysis of session %s failed unexpectedly", self.session_id)
            self._warn(ANALYSIS_FAILED, "Detailed analysis is unavailable; showing the preliminary scorecard.")
        finally:
            self._transition(SessionState.ANALYZED)

    def _set_report(self, report: ScoreReport) -> None:
        self._report = report
        self._emit("report_updated", report=report.model_dump(mode="json"))

    def _warn(self, code: str, message: str) -> None:
        warning = SessionWarning(code=code, message=message)
        self._warnings.append(warning)
        self._emit("warning", code=code, message=message)

    def _pair(self, request_id: str) -> tuple[ChannelMessage, ChannelMessage]:
        suggester = interviewer = None
        for message in self._messages:
            if message.requestId != request_id:
                continue
            if message.persona == "suggester":
                suggester = message
            else:
                interviewer = message
        if suggester is None or interviewer is None:
            raise KeyError(f"No message pair for request {request_id}")
        return suggester, interviewer

    def _require(self, *states: SessionState) -> None:
        if self._state not in states:
            expected = ", ".join(state.value for state in states)
            raise InvalidSessionState(f"Session is {self._state.value}, expected {expected}")

    def _transition(self, target: SessionState, **data: Any) -> None:
        if target not in SESSION_TRANSITIONS[self._state]:
            raise InvalidSessionState(f"Cannot move from {self._state.value} to {target.value}")
        previous = self._state
        self._state = target
        self._emit("state_changed", previous=previous.value, state=target.value, **data)

    def _emit(self, event_type: str, **data: Any) -> None:
        event = SessionEvent(type=event_type, sessionId=self.session_id, data=data)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                LOGGER.exception("Session subscriber failed on %s", event_type)
