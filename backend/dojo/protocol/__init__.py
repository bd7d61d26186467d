from dojo.protocol.emphasis import Emphasis, StyledSegment, plain_text, split_emphasis, strongest_emphasis
from dojo.protocol.sentinel_parser import (
    CHANNEL_SEPARATOR,
    TELEMETRY_END,
    TELEMETRY_START,
    DecodedState,
    SentinelStreamParser,
    decode_response,
)

__all__ = [
    "CHANNEL_SEPARATOR",
    "DecodedState",
    "Emphasis",
    "SentinelStreamParser",
    "StyledSegment",
    "TELEMETRY_END",
    "TELEMETRY_START",
    "decode_response",
    "plain_text",
    "split_emphasis",
    "strongest_emphasis",
]
