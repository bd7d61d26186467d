import json
import logging
from dataclasses import dataclass, replace
from typing import Any

LOGGER = logging.getLogger(__name__)

TELEMETRY_START = "%%%"
TELEMETRY_END = "%%%"
CHANNEL_SEPARATOR = "|||"


@dataclass(frozen=True)
class DecodedState:
    """Decomposition of everything a turn stream has delivered so far."""

    suggester_text: str = ""
    interviewer_text: str = ""
    telemetry: dict[str, Any] | None = None
    telemetry_just_emitted: bool = False
    separator_seen: bool = False


class SentinelStreamParser:
    """Splits a streamed turn response into coach text, interviewer text and telemetry.

    Every call re-derives the decomposition from the cumulative buffer, so sentinels
    that straddle fragment boundaries are handled without partial-token state. Text
    that could still turn out to be protocol structure (an open telemetry block or a
    trailing partial sentinel) is withheld until it resolves or the stream closes,
    which keeps both channels prefix-monotonic while streaming.

    An opening parser also withholds text until a separator arrives, because an
    opening response without one belongs entirely to the interviewer channel.
    """

    def __init__(
        self,
        *,
        telemetry_start: str = TELEMETRY_START,
        telemetry_end: str = TELEMETRY_END,
        separator: str = CHANNEL_SEPARATOR,
        opening: bool = False,
    ) -> None:
        if len(telemetry_start) < 2 or len(telemetry_end) < 2 or len(separator) < 2:
            raise ValueError("Sentinels must be multi-character tokens")
        self._start = telemetry_start
        self._end = telemetry_end
        self._separator = separator
        self._opening = opening
        self._buffer = ""
        self._telemetry: dict[str, Any] | None = None
        self._telemetry_span: tuple[int, int] | None = None
        self._telemetry_resolved = False
        self._final_state: DecodedState | None = None
        self._state = DecodedState()

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def state(self) -> DecodedState:
        return replace(self._state, telemetry_just_emitted=False)

    @property
    def finalized(self) -> bool:
        return self._final_state is not None

    def feed(self, fragment: str) -> DecodedState:
        if self._final_state is not None:
            raise RuntimeError("Cannot feed a finalized parser")
        if fragment:
            self._buffer += fragment
        just_emitted = self._resolve_telemetry()
        self._state = self._decode(release=False, just_emitted=just_emitted)
        return self._state

    def finalize(self, *, opening: bool | None = None) -> DecodedState:
        """Closes the stream and releases any withheld text.

        On the opening turn a response without a separator belongs entirely to the
        interviewer channel.
        """
        if self._final_state is not None:
            return self._final_state
        just_emitted = self._resolve_telemetry()
        state = self._decode(release=True, just_emitted=just_emitted)
        if opening is None:
            opening = self._opening
        if opening and not state.separator_seen:
            state = replace(state, suggester_text="", interviewer_text=state.suggester_text)
        self._final_state = state
        self._state = state
        return state

    def _resolve_telemetry(self) -> bool:
        if self._telemetry_resolved:
            return False
        start = self._buffer.find(self._start)
        if start < 0:
            return False
        body_start = start + len(self._start)
        end = self._buffer.find(self._end, body_start)
        if end < 0:
            return False

        # Only the first delimited block is ever considered.
        self._telemetry_resolved = True
        body = self._buffer[body_start:end].strip()
        payload = _parse_telemetry_body(body)
        if payload is None:
            LOGGER.warning("Telemetry block is not a JSON object; leaving it in visible text (%d chars)", len(body))
            return False
        self._telemetry = payload
        self._telemetry_span = (start, end + len(self._end))
        return True

    def _visible_text(self, release: bool) -> str:
        text = self._buffer
        if self._telemetry_span is not None:
            span_start, span_end = self._telemetry_span
            text = text[:span_start] + text[span_end:]
        elif not self._telemetry_resolved and not release:
            open_block = text.find(self._start)
            if open_block >= 0:
                return text[:open_block]

        if release:
            return text
        if not self._telemetry_resolved:
            text = _drop_partial_suffix(text, self._start)
        if self._separator not in text:
            text = _drop_partial_suffix(text, self._separator)
        return text

    def _decode(self, release: bool, just_emitted: bool) -> DecodedState:
        text = self._visible_text(release)
        index = text.find(self._separator)
        if index < 0:
            suggester, interviewer, separator_seen = text, "", False
            if self._opening and not release:
                suggester = ""
        else:
            # Later separators are ordinary interviewer text.
            suggester = text[:index]
            interviewer = text[index + len(self._separator):]
            separator_seen = True
        return DecodedState(
            suggester_text=suggester.strip(),
            interviewer_text=interviewer.strip(),
            telemetry=self._telemetry,
            telemetry_just_emitted=just_emitted,
            separator_seen=separator_seen,
        )


def decode_response(text: str, *, opening: bool = False) -> DecodedState:
    parser = SentinelStreamParser(opening=opening)
    parser.feed(text)
    return parser.finalize()


def _parse_telemetry_body(body: str) -> dict[str, Any] | None:
    if not (body.startswith("{") and body.endswith("}")):
        return None
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    return payload


def _drop_partial_suffix(text: str, token: str) -> str:
    for size in range(min(len(token) - 1, len(text)), 0, -1):
        if text.endswith(token[:size]):
            return text[:-size]
    return text
