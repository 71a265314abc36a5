"""
Replay container decoding: signature check, header fields and player table.

Every field goes through resolvers.resolve_layered() with the primary offset
first, alternate offsets used by other format revisions next, then a bounded
scan, then a documented default. Only a bad signature is fatal.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from byte_cursor import ByteCursor, decode_text
from models import PlayerRecord, ReplayHeader
from resolvers import (
    is_plausible_frame_count,
    is_valid_map_name,
    is_valid_player_name,
    resolve_layered,
)

logger = logging.getLogger(__name__)

SIGNATURE_OFFSET = 0x0C
SIGNATURE_LENGTH = 4
SIGNATURES = {
    b'reRS': '1.18-1.20',
    b'seRS': '1.21+',
}

ENGINE_OFFSET = 0x10
ENGINES = {0: 'StarCraft', 1: 'Brood War'}

FRAMES_OFFSET = 0x11
FRAMES_ALTERNATES = (0x08, 0x14)

MAP_NAME_OFFSET = 0x71
MAP_NAME_ALTERNATES = (0x61, 0x68, 0x7C, 0x89)
MAP_NAME_LENGTH = 26
MAP_SCAN_RANGE = (0x18, 0xB1)
UNKNOWN_MAP = 'Unknown Map'

GAME_TYPE_OFFSET = 0x91
GAME_TYPE_ALTERNATES = (0x28, 0x1D0)
GAME_TYPES = {
    0x02: 'Melee',
    0x03: 'Free For All',
    0x04: 'One on One',
    0x0F: 'Use Map Settings',
    0x10: 'Team Melee',
    0x20: 'Team Free For All',
}

PLAYER_TABLE_OFFSET = 0xB1
PLAYER_TABLE_ALTERNATES = (0xA1, 0x161)
PLAYER_SLOT_SIZE = 36
PLAYER_SCAN_SLOT_SIZES = (36, 40, 48)
PLAYER_SCAN_RANGE = (0x20, 0x289)
MAX_PLAYER_SLOTS = 8

# Offsets inside a player slot
SLOT_PLAYER_ID = 4
SLOT_COLOR = 7
SLOT_KIND = 8
SLOT_RACE = 9
SLOT_TEAM = 10
SLOT_NAME = 11
SLOT_NAME_LENGTH = 25

RACES = {0: 'Zerg', 1: 'Terran', 2: 'Protoss', 3: 'Random', 6: 'Random'}
KINDS = {1: 'human', 2: 'computer'}

COMMAND_SECTION_OFFSET = 0x289

# Fallback tier names
TIER_PRIMARY = 'primary'
TIER_SCAN = 'scan'
TIER_DEFAULT = 'default'
TIER_SYNTHESIZED = 'synthesized'


class InvalidFormat(ValueError):
    """The buffer does not carry a recognised replay signature."""


@dataclass
class ContainerResult:
    header: ReplayHeader
    players: List[PlayerRecord]
    command_offset: int
    fallbacks: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def roster_synthesized(self) -> bool:
        return self.fallbacks.get('players') == TIER_SYNTHESIZED


def check_signature(data: bytes) -> bytes:
    """Return the signature tag, or raise InvalidFormat."""
    tag = bytes(data[SIGNATURE_OFFSET:SIGNATURE_OFFSET + SIGNATURE_LENGTH])
    if len(tag) < SIGNATURE_LENGTH:
        raise InvalidFormat(f"Buffer too short for a signature ({len(data)} bytes)")
    if tag not in SIGNATURES:
        raise InvalidFormat(f"Unrecognised signature {tag!r}")
    return tag


def _alternate(offset: int) -> str:
    return f'alternate@0x{offset:X}'


def _read_frames(cursor: ByteCursor):
    attempts = [(TIER_PRIMARY, lambda: cursor.u32_at(FRAMES_OFFSET))]
    attempts += [(_alternate(o), lambda o=o: cursor.u32_at(o)) for o in FRAMES_ALTERNATES]
    return resolve_layered(attempts, is_plausible_frame_count)


def _scan_map_name(cursor: ByteCursor) -> Optional[bytes]:
    lo, hi = MAP_SCAN_RANGE
    data = cursor.data
    for pos in range(lo, min(hi, len(data))):
        b = data[pos]
        # Candidates start at a letter right after padding
        if not (0x41 <= b <= 0x5A or 0x61 <= b <= 0x7A) or data[pos - 1] != 0:
            continue
        raw = cursor.raw_at(pos, min(MAP_NAME_LENGTH, len(data) - pos))
        if is_valid_map_name(raw):
            return raw
    return None


def _read_map_name(cursor: ByteCursor):
    """Resolve the raw map name bytes; callers decode the winner."""
    attempts = [(TIER_PRIMARY, lambda: cursor.raw_at(MAP_NAME_OFFSET, MAP_NAME_LENGTH))]
    attempts += [(_alternate(o), lambda o=o: cursor.raw_at(o, MAP_NAME_LENGTH))
                 for o in MAP_NAME_ALTERNATES]
    attempts.append((TIER_SCAN, lambda: _scan_map_name(cursor)))
    return resolve_layered(attempts, is_valid_map_name)


def _read_game_type(cursor: ByteCursor):
    attempts = [(TIER_PRIMARY, lambda: cursor.u16_at(GAME_TYPE_OFFSET))]
    attempts += [(_alternate(o), lambda o=o: cursor.u16_at(o)) for o in GAME_TYPE_ALTERNATES]
    return resolve_layered(attempts, lambda v: v in GAME_TYPES)


def _slot_could_be_valid(data: bytes, pos: int, size: int) -> bool:
    """Byte-level precheck so scans skip obviously empty slots without decoding."""
    if pos + size > len(data) or size < SLOT_NAME + 2:
        return False
    if data[pos + SLOT_RACE] not in RACES:
        return False
    first, second = data[pos + SLOT_NAME], data[pos + SLOT_NAME + 1]
    return first >= 0x20 and first != 0x7F and second != 0


def decode_slot(cursor: ByteCursor, pos: int, index: int,
                size: int = PLAYER_SLOT_SIZE) -> Optional[PlayerRecord]:
    """Decode the slot at ``pos``; None unless its name and race are valid."""
    data = cursor.data
    if not _slot_could_be_valid(data, pos, size):
        return None
    name_length = min(SLOT_NAME_LENGTH, size - SLOT_NAME)
    raw = cursor.raw_at(pos + SLOT_NAME, name_length)
    if not is_valid_player_name(raw):
        return None
    player_id = data[pos + SLOT_PLAYER_ID]
    return PlayerRecord(
        slot=player_id if player_id < MAX_PLAYER_SLOTS else index,
        name=decode_text(raw).strip(),
        race=RACES[data[pos + SLOT_RACE]],
        team=data[pos + SLOT_TEAM],
        color=data[pos + SLOT_COLOR],
        kind=KINDS.get(data[pos + SLOT_KIND], 'empty'),
    )


def decode_player_table(cursor: ByteCursor, base: int,
                        size: int = PLAYER_SLOT_SIZE) -> List[PlayerRecord]:
    """Return the valid slots of a table at ``base``, slot ids made unique."""
    players = []
    seen = set()
    for index in range(MAX_PLAYER_SLOTS):
        record = decode_slot(cursor, base + index * size, index, size)
        if record is None:
            continue
        if record.slot in seen:
            record.slot = index
        if record.slot in seen:
            continue
        seen.add(record.slot)
        players.append(record)
    return players


def scan_player_table(cursor: ByteCursor) -> List[PlayerRecord]:
    """Try every base in the scan range with each slot size; keep the best table.

    Score is the number of valid slots. Ties keep the earliest base.
    """
    data = cursor.data
    lo, hi = PLAYER_SCAN_RANGE
    hi = min(hi, len(data))
    best: List[PlayerRecord] = []
    best_base = None
    for size in PLAYER_SCAN_SLOT_SIZES:
        for base in range(lo, hi):
            if not any(_slot_could_be_valid(data, base + i * size, size)
                       for i in range(MAX_PLAYER_SLOTS)):
                continue
            players = decode_player_table(cursor, base, size)
            if len(players) > len(best) or (
                    players and len(players) == len(best) and base < best_base):
                best, best_base = players, base
    if best:
        logger.debug("Player table scan: %d slots at 0x%X", len(best), best_base)
    return best


def synthesize_roster() -> List[PlayerRecord]:
    return [
        PlayerRecord(slot=0, name='Player 1', race='Random', team=0, color=0, kind='human'),
        PlayerRecord(slot=1, name='Player 2', race='Random', team=1, color=1, kind='human'),
    ]


def filter_roster(players: List[PlayerRecord]) -> List[PlayerRecord]:
    """Humans only; computers when no human slot is valid."""
    humans = [p for p in players if p.kind == 'human']
    if humans:
        return humans
    return [p for p in players if p.kind == 'computer']


def _read_players(cursor: ByteCursor):
    attempts = [(TIER_PRIMARY, lambda: filter_roster(decode_player_table(cursor, PLAYER_TABLE_OFFSET)))]
    attempts += [(_alternate(o), lambda o=o: filter_roster(decode_player_table(cursor, o)))
                 for o in PLAYER_TABLE_ALTERNATES]
    attempts.append((TIER_SCAN, lambda: filter_roster(scan_player_table(cursor))))
    return resolve_layered(attempts, bool)


def decode_container(data: bytes) -> ContainerResult:
    """Decode header and roster from an expanded replay buffer.

    Raises InvalidFormat on a bad signature; every other problem degrades to
    an alternate tier or a default and is reported in ``fallbacks``/``errors``.
    """
    tag = check_signature(data)
    cursor = ByteCursor(data)
    fallbacks: Dict[str, str] = {}
    errors: List[str] = []

    def note(field_name: str, tier: str, message: str):
        fallbacks[field_name] = tier
        errors.append(f"{field_name}: {message}")
        logger.debug("%s resolved via %s", field_name, tier)

    frames, tier = _read_frames(cursor)
    low_confidence = False
    if tier is None:
        frames, low_confidence = 0, True
        note('frames', TIER_DEFAULT, "no plausible frame count found, defaulted to 0")
    elif tier != TIER_PRIMARY:
        note('frames', tier, f"primary offset implausible, used {tier}")

    raw_map_name, tier = _read_map_name(cursor)
    if tier is None:
        map_name, low_confidence = UNKNOWN_MAP, True
        note('map_name', TIER_DEFAULT, "no map name found")
    else:
        map_name = decode_text(raw_map_name)
        if tier != TIER_PRIMARY:
            note('map_name', tier, f"primary offset not text, used {tier}")

    game_type, tier = _read_game_type(cursor)
    if tier is None:
        game_type = 0
        note('game_type', TIER_DEFAULT, "no known game type found")
    elif tier != TIER_PRIMARY:
        note('game_type', tier, f"primary offset unknown, used {tier}")

    players, tier = _read_players(cursor)
    if tier is None:
        players = synthesize_roster()
        note('players', TIER_SYNTHESIZED, "player table not found, synthesized placeholder roster")
    elif tier != TIER_PRIMARY:
        note('players', tier, f"player table not at primary offset, used {tier}")

    engine = cursor.u8_at(ENGINE_OFFSET)
    header = ReplayHeader(
        signature=tag.decode('ascii'),
        version=SIGNATURES[tag],
        engine=ENGINES.get(engine, 'Unknown'),
        frames=frames,
        map_name=map_name,
        game_type=game_type,
        game_type_name=GAME_TYPES.get(game_type, 'Unknown'),
        low_confidence=low_confidence,
    )
    return ContainerResult(
        header=header,
        players=sorted(players, key=lambda p: p.slot),
        command_offset=min(COMMAND_SECTION_OFFSET, len(data)),
        fallbacks=fallbacks,
        errors=errors,
    )
