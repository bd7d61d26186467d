import re
from dataclasses import dataclass
from enum import IntEnum

EMPHASIS_MARKER = "*"

# Longest wrapper first so ***x*** is never read as *(**x**)*.
_EMPHASIS_PATTERN = re.compile(r"(\*\*\*.+?\*\*\*|\*\*.+?\*\*|\*.+?\*)")


class Emphasis(IntEnum):
    NONE = 0
    CORRECTION = 1
    WARNING = 2
    SEVERE = 3


@dataclass(frozen=True)
class StyledSegment:
    text: str
    emphasis: Emphasis = Emphasis.NONE


def split_emphasis(text: str) -> list[StyledSegment]:
    segments: list[StyledSegment] = []
    for part in _EMPHASIS_PATTERN.split(text or ""):
        if not part:
            continue
        level = _wrapper_level(part)
        if level:
            segments.append(StyledSegment(text=part[level:-level], emphasis=Emphasis(level)))
        else:
            segments.append(StyledSegment(text=part))
    return segments


def plain_text(text: str) -> str:
    return "".join(segment.text for segment in split_emphasis(text))


def strongest_emphasis(text: str) -> Emphasis:
    levels = [segment.emphasis for segment in split_emphasis(text)]
    return max(levels, default=Emphasis.NONE)


def _wrapper_level(part: str) -> int:
    for level in (3, 2, 1):
        wrapper = EMPHASIS_MARKER * level
        if len(part) > 2 * level and part.startswith(wrapper) and part.endswith(wrapper):
            return level
    return 0
