"""
Bounds-checked little-endian reader over an immutable replay buffer.
"""

import struct
from typing import Optional


class BufferUnderrun(ValueError):
    """Raised when a read would pass the end of the buffer."""

    def __init__(self, position: int, wanted: int, available: int):
        self.position = position
        self.wanted = wanted
        self.available = available
        super().__init__(
            f"Need {wanted} bytes at offset {position}, only {available} available"
        )


def is_printable(ch: str) -> bool:
    """Printable ASCII or a printable non-ASCII character."""
    if ' ' <= ch <= '~':
        return True
    return ord(ch) >= 0xA0 and ch.isprintable()


def decode_text(raw: bytes) -> str:
    """Decode name/map bytes: strict UTF-8 first, then a byte-filtered latin-1 fallback."""
    try:
        text = raw.decode('utf-8')
    except UnicodeDecodeError:
        # Old replays use a single-byte codepage; keep printable bytes only
        text = bytes(b for b in raw if b >= 0x20 and b != 0x7F).decode('latin-1')
    return ''.join(ch for ch in text if is_printable(ch))


class ByteCursor:
    """Read position over an immutable byte buffer.

    ``read_*`` methods raise BufferUnderrun when the buffer is too short;
    ``try_read_*`` methods return None instead and leave the position alone.
    Callers pick whichever suits the call site.
    """

    def __init__(self, data: bytes, position: int = 0):
        self._data = bytes(data)
        self._pos = 0
        self.seek(position)

    def __len__(self) -> int:
        return len(self._data)

    @property
    def data(self) -> bytes:
        return self._data

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def can_read(self, n: int) -> bool:
        return n >= 0 and self._pos + n <= len(self._data)

    def seek(self, pos: int) -> int:
        """Move to ``pos``, clamped to ``[0, len]``. Returns the new position."""
        self._pos = max(0, min(pos, len(self._data)))
        return self._pos

    def skip(self, n: int) -> int:
        """Advance by up to ``n`` bytes. Returns how many bytes were skipped."""
        start = self._pos
        self.seek(self._pos + max(0, n))
        return self._pos - start

    def _take(self, n: int) -> bytes:
        if not self.can_read(n):
            raise BufferUnderrun(self._pos, n, self.remaining)
        chunk = self._data[self._pos:self._pos + n]
        self._pos += n
        return chunk

    def read_bytes(self, n: int) -> bytes:
        return self._take(n)

    def read_u8(self) -> int:
        return self._take(1)[0]

    def read_u16le(self) -> int:
        return struct.unpack('<H', self._take(2))[0]

    def read_u32le(self) -> int:
        return struct.unpack('<I', self._take(4))[0]

    def read_fixed_string(self, n: int) -> str:
        """Read ``n`` bytes, cut at the first NUL and decode permissively."""
        raw = self._take(n)
        end = raw.find(b'\x00')
        if end >= 0:
            raw = raw[:end]
        return decode_text(raw)

    def peek_u8(self) -> Optional[int]:
        if not self.can_read(1):
            return None
        return self._data[self._pos]

    def try_read_u8(self) -> Optional[int]:
        if not self.can_read(1):
            return None
        return self.read_u8()

    def try_read_u16le(self) -> Optional[int]:
        if not self.can_read(2):
            return None
        return self.read_u16le()

    def try_read_u32le(self) -> Optional[int]:
        if not self.can_read(4):
            return None
        return self.read_u32le()

    def try_read_fixed_string(self, n: int) -> Optional[str]:
        if not self.can_read(n):
            return None
        return self.read_fixed_string(n)

    def u8_at(self, pos: int) -> Optional[int]:
        """Random-access read that does not move the cursor."""
        if 0 <= pos < len(self._data):
            return self._data[pos]
        return None

    def u16_at(self, pos: int) -> Optional[int]:
        if pos < 0 or pos + 2 > len(self._data):
            return None
        return struct.unpack_from('<H', self._data, pos)[0]

    def u32_at(self, pos: int) -> Optional[int]:
        if pos < 0 or pos + 4 > len(self._data):
            return None
        return struct.unpack_from('<I', self._data, pos)[0]

    def raw_at(self, pos: int, n: int) -> Optional[bytes]:
        """``n`` bytes at ``pos`` cut at the first NUL, undecoded."""
        if pos < 0 or pos + n > len(self._data):
            return None
        raw = self._data[pos:pos + n]
        end = raw.find(b'\x00')
        if end >= 0:
            raw = raw[:end]
        return raw

    def string_at(self, pos: int, n: int) -> Optional[str]:
        raw = self.raw_at(pos, n)
        if raw is None:
            return None
        return decode_text(raw)
