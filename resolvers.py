"""
Layered field resolution and the text/number validators used by the header decoder.

Every header field is recovered the same way: try an ordered list of
candidate extractions (known offsets first, then scans) and keep the first
candidate a validator accepts.
"""

import re
from typing import Any, Callable, Iterable, Optional, Tuple

from byte_cursor import decode_text

RESERVED_PLAYER_NAMES = {'observer', 'computer', 'open', 'closed'}

MIN_TEXT_PRINTABLE_RATIO = 0.7
MAX_IDENTICAL_RUN = 3
PLAYER_NAME_LENGTH = (2, 24)

MAX_PLAUSIBLE_FRAMES = 1_000_000

_REPEAT_RUN = re.compile(rb'(.)\1{%d,}' % MAX_IDENTICAL_RUN, re.DOTALL)


def resolve_layered(attempts: Iterable[Tuple[str, Callable[[], Any]]],
                    validator: Callable[[Any], bool]) -> Tuple[Optional[Any], Optional[str]]:
    """Run ``attempts`` in order and return (candidate, tier) for the first valid one.

    Each attempt is a (tier name, thunk) pair. A thunk returning None is a
    miss, as is a candidate the validator rejects. Returns (None, None) when
    every attempt misses.
    """
    for tier, attempt in attempts:
        candidate = attempt()
        if candidate is not None and validator(candidate):
            return candidate, tier
    return None, None


def is_printable_byte(b: int) -> bool:
    """Printable ASCII, or any byte of a multi-byte / codepage character."""
    return 0x20 <= b < 0x7F or b >= 0x80


def printable_ratio(raw: bytes) -> float:
    if not raw:
        return 0.0
    printable = sum(1 for b in raw if is_printable_byte(b))
    return printable / len(raw)


def looks_like_text(raw: Optional[bytes]) -> bool:
    """Raw bytes that are mostly printable, hold a letter, and have no run of 4+ identical bytes."""
    if not raw:
        return False
    if printable_ratio(raw) < MIN_TEXT_PRINTABLE_RATIO:
        return False
    if _REPEAT_RUN.search(raw) is not None:
        return False
    return any(ch.isalpha() for ch in decode_text(raw))


def is_valid_map_name(raw: Optional[bytes]) -> bool:
    return bool(raw) and len(decode_text(raw).strip()) >= 3 and looks_like_text(raw)


def is_valid_player_name(raw: Optional[bytes]) -> bool:
    """Validate a NUL-truncated name field before it is decoded."""
    if not raw or not all(is_printable_byte(b) for b in raw):
        return False
    name = decode_text(raw).strip()
    lo, hi = PLAYER_NAME_LENGTH
    if not lo <= len(name) <= hi:
        return False
    if not any(ch.isalnum() for ch in name):
        return False
    return name.lower() not in RESERVED_PLAYER_NAMES


def is_plausible_frame_count(frames: Optional[int]) -> bool:
    return frames is not None and 0 < frames <= MAX_PLAUSIBLE_FRAMES
