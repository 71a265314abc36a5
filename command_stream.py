"""
Command section decoding.

The command section is a flat byte stream: frame-advance markers interleaved
with opcode-tagged player commands. The decoder keeps one running frame
counter and never aborts on bad input: unknown opcodes are skipped with a
one-byte resync, out-of-range players drop the command, and running out of
bytes (or hitting the iteration cap) ends the loop with what was decoded.
"""

import logging
import struct
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from byte_cursor import BufferUnderrun, ByteCursor, decode_text
from models import Command
from opcode_lookup import (
    FRAME_INCREMENT,
    FRAME_SKIP_U8,
    FRAME_SKIP_U16,
    FRAME_SKIP_U32,
    OpcodeInfo,
    OpcodeLookup,
)

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 500_000
MAX_PLAYER_SLOTS = 8

# Chat-like records have no declared length
VARIABLE_LENGTH_RULES = ('null', 'prefixed', 'fixed')
DEFAULT_VARIABLE_LENGTH_RULE = 'null'
MAX_VARIABLE_LENGTH = 80

MAX_RAW_PARAMETER_LENGTH = 32

# layout -> (struct format, field names)
LAYOUTS = {
    'build': ('<HHH', ('entity_id', 'x', 'y')),
    'train': ('<H', ('entity_id',)),
    'morph': ('<H', ('entity_id',)),
    'research': ('<H', ('entity_id',)),
    'upgrade': ('<H', ('entity_id',)),
    'move': ('<HH', ('x', 'y')),
    'attack': ('<HHH', ('x', 'y', 'target_id')),
    'select': ('<BB', ('count', 'entity_type')),
    'hotkey': ('<BB', ('hotkey_type', 'hotkey')),
}

_OPCODES = OpcodeLookup()


@dataclass
class CommandStreamResult:
    commands: List[Command] = field(default_factory=list)
    final_frame: int = 0
    iterations: int = 0
    unknown_opcodes: int = 0
    dropped: int = 0
    truncated: bool = False
    iteration_cap_hit: bool = False
    end_offset: int = 0

    @property
    def decoded_opcodes(self) -> int:
        """Opcode bytes seen, known or not."""
        return len(self.commands) + self.dropped + self.unknown_opcodes


def decode_fixed_parameters(info: OpcodeInfo, block: bytes) -> Dict[str, object]:
    """Decode a fixed-length parameter block according to the opcode layout."""
    layout = LAYOUTS.get(info.layout)
    if layout is not None:
        fmt, names = layout
        if struct.calcsize(fmt) <= len(block):
            return dict(zip(names, struct.unpack_from(fmt, block)))
    if info.layout == 'none' or not block:
        return {}
    if len(block) <= MAX_RAW_PARAMETER_LENGTH:
        return {'raw': list(block)}
    return {}


def read_variable_parameters(cursor: ByteCursor, rule: str = DEFAULT_VARIABLE_LENGTH_RULE,
                             max_length: int = MAX_VARIABLE_LENGTH) -> Dict[str, object]:
    """Read a chat-like record.

    rule 'null': bytes up to a NUL terminator (consumed), at most ``max_length``.
    rule 'prefixed': a u8 length followed by that many bytes.
    rule 'fixed': exactly ``max_length`` bytes, text cut at the first NUL.
    Raises BufferUnderrun when the record runs past the buffer.
    """
    if rule == 'prefixed':
        length = cursor.read_u8()
        raw = cursor.read_bytes(length)[:max_length]
        return {'message': decode_text(raw.split(b'\x00', 1)[0])}
    if rule == 'fixed':
        return {'message': cursor.read_fixed_string(max_length)}

    window = cursor.data[cursor.position:cursor.position + max_length]
    end = window.find(b'\x00')
    if end >= 0:
        raw = cursor.read_bytes(end)
        cursor.skip(1)
    elif len(window) < max_length:
        raise BufferUnderrun(cursor.position, max_length, len(window))
    else:
        raw = cursor.read_bytes(max_length)
    return {'message': decode_text(raw)}


def decode_commands(data: bytes, start: int = 0, players: Optional[Iterable[int]] = None, *,
                    max_slots: int = MAX_PLAYER_SLOTS,
                    max_iterations: int = MAX_ITERATIONS,
                    variable_length_rule: str = DEFAULT_VARIABLE_LENGTH_RULE,
                    max_variable_length: int = MAX_VARIABLE_LENGTH,
                    opcodes: OpcodeLookup = None) -> CommandStreamResult:
    """Walk the command section starting at ``start``.

    ``players`` is the set of slot ids in the roster; commands for other
    in-range slots are consumed and dropped. When None, every slot below
    ``max_slots`` is accepted.

    After an unknown opcode the next byte is taken as its player byte when it
    is at most ``max_slots``, then decoding resumes after it.
    """
    if variable_length_rule not in VARIABLE_LENGTH_RULES:
        raise ValueError(f"Unknown variable length rule: {variable_length_rule!r}")
    opcodes = opcodes or _OPCODES
    roster = None if players is None else set(players)

    cursor = ByteCursor(data, start)
    result = CommandStreamResult()
    frame = 0

    while cursor.remaining > 0:
        if result.iterations >= max_iterations:
            result.iteration_cap_hit = True
            logger.debug("Iteration cap %d reached at offset %d", max_iterations, cursor.position)
            break
        result.iterations += 1

        try:
            op = cursor.read_u8()
            if op == FRAME_INCREMENT:
                frame += 1
                continue
            if op == FRAME_SKIP_U8:
                frame += cursor.read_u8()
                continue
            if op == FRAME_SKIP_U16:
                frame += cursor.read_u16le()
                continue
            if op == FRAME_SKIP_U32:
                frame += cursor.read_u32le()
                continue

            info = opcodes.get(op)
            if info is None:
                result.unknown_opcodes += 1
                tentative = cursor.peek_u8()
                if tentative is not None and tentative <= max_slots:
                    cursor.skip(1)
                continue

            after_opcode = cursor.position
            player = cursor.read_u8()
            if player >= max_slots:
                result.dropped += 1
                cursor.seek(after_opcode)
                continue

            if info.variable:
                parameters = read_variable_parameters(cursor, variable_length_rule, max_variable_length)
            else:
                parameters = decode_fixed_parameters(info, cursor.read_bytes(info.length))

            if roster is not None and player not in roster:
                result.dropped += 1
                continue

            result.commands.append(Command(
                frame=frame,
                player=player,
                opcode=op,
                name=info.name,
                parameters=parameters,
                effective=info.effective,
            ))
        except BufferUnderrun as e:
            result.truncated = True
            logger.debug("Command stream truncated: %s", e)
            break

    if result.unknown_opcodes:
        logger.debug("Skipped %d unknown opcodes", result.unknown_opcodes)
    result.final_frame = frame
    result.end_offset = cursor.position
    return result
