"""
Detection and expansion of the compressed replay body.

A replay starts with a short uncompressed prolog (the signature lives there).
Some revisions store everything after the prolog as a zlib or gzip stream,
others store it as-is. expand_payload() returns a buffer that always has the
prolog followed by the decoded body, falling back to the raw bytes when no
decompression attempt produces something that looks like replay data.
A header-like byte pair inside a body that already looks like replay data
is not a stream: such buffers come back unchanged with method 'none'.
"""

import logging
import struct
import zlib
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

PROLOG_SIZE = 0x10
HEADER_SCAN_WINDOW = 64

MIN_EXPANDED_SIZE = 128
PRINTABLE_RATIO_RANGE = (0.005, 0.90)
ZERO_RATIO_RANGE = (0.05, 0.98)

GZIP_MAGIC = b'\x1f\x8b\x08'


@dataclass
class ExpandedPayload:
    data: bytes
    method: str  # 'none', 'zlib', 'gzip', 'raw-deflate', ..., or 'raw-fallback'
    compressed_offset: Optional[int] = None
    unused_bytes: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def decompressed(self) -> bool:
        return self.method not in ('none', 'raw-fallback')


def gzip_header_len(data: bytes) -> int:
    """
    Return the length of the gzip header (RFC 1952) at the start of ``data``.
    Raises ValueError when the header is missing or truncated.
    """
    # ID1 ID2 CM FLG MTIME(4) XFL OS
    if len(data) < 10:
        raise ValueError("Not enough data for gzip header")
    if data[0:3] != GZIP_MAGIC:
        raise ValueError("Missing gzip magic")

    flg = data[3]
    pos = 10

    # FEXTRA
    if flg & 0x04:
        if pos + 2 > len(data):
            raise ValueError("Truncated gzip extra length")
        xlen = struct.unpack('<H', data[pos:pos+2])[0]
        pos += 2 + xlen

    # FNAME, FCOMMENT (zero-terminated)
    for flag in (0x08, 0x10):
        if flg & flag:
            end = data.find(b'\x00', pos)
            if end < 0:
                raise ValueError("Truncated gzip header string")
            pos = end + 1

    # FHCRC
    if flg & 0x02:
        pos += 2

    if pos > len(data):
        raise ValueError("Truncated gzip header")
    return pos


def is_zlib_header(data: bytes, pos: int) -> bool:
    """CMF/FLG check: deflate method, window <= 32K, header checksum."""
    if pos < 0 or pos + 1 >= len(data):
        return False
    cmf, flg = data[pos], data[pos + 1]
    if cmf & 0x0F != 8 or cmf >> 4 > 7:
        return False
    return ((cmf << 8) | flg) % 31 == 0


def find_compression_header(data: bytes, start: int = PROLOG_SIZE,
                            window: int = HEADER_SCAN_WINDOW) -> Tuple[Optional[int], Optional[str]]:
    """Scan ``window`` bytes from ``start`` for a zlib or gzip stream header.

    Returns (offset, kind) with kind 'zlib' or 'gzip', or (None, None).
    """
    end = min(len(data) - 1, start + window)
    for pos in range(start, end):
        if data[pos:pos + 3] == GZIP_MAGIC:
            return pos, 'gzip'
        if is_zlib_header(data, pos):
            return pos, 'zlib'
    return None, None


def byte_ratios(data: bytes) -> Tuple[float, float]:
    """Return (printable ASCII ratio, zero byte ratio)."""
    if not data:
        return 0.0, 0.0
    printable = sum(1 for b in data if 0x20 <= b <= 0x7E)
    zeros = data.count(0)
    return printable / len(data), zeros / len(data)


def looks_like_replay_data(data: bytes) -> bool:
    """Cheap plausibility check for a decompressed body.

    Replay bodies are mostly zero padding with a few names in them. Random
    bytes that happened to inflate have almost no zeros; pure text has none.
    """
    if len(data) < MIN_EXPANDED_SIZE:
        return False
    printable, zeros = byte_ratios(data)
    lo, hi = PRINTABLE_RATIO_RANGE
    if not lo <= printable <= hi:
        return False
    lo, hi = ZERO_RATIO_RANGE
    return lo <= zeros <= hi


def _inflate(data: bytes, wbits: int) -> Tuple[bytes, int]:
    """Inflate ``data``; returns (output, number of unused trailing bytes)."""
    decompressor = zlib.decompressobj(wbits)
    out = decompressor.decompress(data) + decompressor.flush()
    return out, len(decompressor.unused_data or b"")


def _attempts(data: bytes, offset: int, kind: str) -> List[Tuple[str, int, int]]:
    """Ordered (method, wbits, start offset) parameterisations to try."""
    attempts = []
    if kind == 'gzip':
        try:
            attempts.append(('gzip', -zlib.MAX_WBITS, offset + gzip_header_len(data[offset:])))
        except ValueError:
            pass
        attempts.append(('gzip-auto', 16 + zlib.MAX_WBITS, offset))
    else:
        attempts.append(('zlib', zlib.MAX_WBITS, offset))
        attempts.append(('raw-deflate', -zlib.MAX_WBITS, offset + 2))
    attempts.append(('raw-deflate-unaligned', -zlib.MAX_WBITS, offset))
    attempts.append(('auto', 32 + zlib.MAX_WBITS, offset))
    return attempts


def expand_payload(data: bytes, window: int = HEADER_SCAN_WINDOW) -> ExpandedPayload:
    """Return the replay buffer with its body decompressed when it is compressed."""
    data = bytes(data)
    offset, kind = find_compression_header(data, PROLOG_SIZE, window)
    if offset is None:
        return ExpandedPayload(data=data, method='none')

    logger.debug("Found %s stream header at offset %d", kind, offset)
    errors = []
    for method, wbits, start in _attempts(data, offset, kind):
        try:
            body, unused = _inflate(data[start:], wbits)
        except zlib.error as e:
            logger.debug("Inflate %s at %d failed: %s", method, start, e)
            continue
        if not looks_like_replay_data(body):
            logger.debug("Inflate %s at %d produced %d implausible bytes", method, start, len(body))
            continue
        return ExpandedPayload(
            data=data[:PROLOG_SIZE] + body,
            method=method,
            compressed_offset=offset,
            unused_bytes=unused,
        )

    if looks_like_replay_data(data[PROLOG_SIZE:]):
        # Header field bytes (e.g. a frame count) that happen to pass the CMF/FLG check
        logger.debug("No %s stream at %d; body is already uncompressed", kind, offset)
        return ExpandedPayload(data=data, method='none')

    errors.append(
        f"payload: {kind} header at offset {offset} but no decompression attempt "
        f"produced plausible data; using raw bytes"
    )
    logger.debug(errors[-1])
    return ExpandedPayload(data=data, method='raw-fallback', compressed_offset=offset, errors=errors)
