"""
Replay analysis functions for extracting game statistics.
These functions operate on decoded commands and the player roster.
"""

import re
from collections import Counter, defaultdict, deque
from typing import Dict, Iterable, List, Optional, Tuple

from entity_lookup import (
    KIND_TECH,
    KIND_UNIT,
    KIND_UPGRADE,
    PROTOSS,
    SUPPLY_CAP,
    TERRAN,
    ZERG,
    EntityLookup,
)
from models import (
    AnalyticsSummary,
    BuildOrderEntry,
    Command,
    PlayerRecord,
    ReplayHeader,
    StrategicSummary,
    SupplySnapshot,
)
from opcode_lookup import (
    ACTION_BUILD,
    ACTION_MORPH,
    ACTION_RESEARCH,
    ACTION_TRAIN,
    ACTION_UPGRADE,
    BUILD_ACTIONS,
    OpcodeLookup,
)

# Frame rate constant (fastest game speed)
FRAMES_PER_SECOND = 24

ENTITY_LOOKUP = EntityLookup()
OPCODE_LOOKUP = OpcodeLookup()


def frame_to_time(frame: int) -> str:
    """Convert frame number to mm:ss format"""
    if frame is None:
        return "00:00"
    total_secs = frame / FRAMES_PER_SECOND
    mins = int(total_secs // 60)
    secs = int(total_secs % 60)
    return f"{mins:02d}:{secs:02d}"


def frame_to_seconds(frame: int) -> float:
    """Convert frame to seconds"""
    if frame is None:
        return 0
    return frame / FRAMES_PER_SECOND


def game_minutes(frames: int) -> float:
    if not frames or frames < 0:
        return 0.0
    return frames / FRAMES_PER_SECOND / 60


# --- Command effectiveness ---

EFFECTIVE = 'effective'
NON_GAME = 'non-game'
FAST_REPETITION = 'fast-repetition'
FAST_RESELECTION = 'fast-reselection'
REPETITION = 'repetition'
HOTKEY_REPETITION = 'hotkey-repetition'

EFFECTIVENESS_WINDOW = 24  # about one second
FAST_REPETITION_FRAMES = 12
MAX_RECENT_SELECTIONS = 2

SELECT_OPCODES = (0x09, 0x0A)
HOTKEY_OPCODE = 0x13
HOTKEY_ASSIGN_OR_ADD = (0, 2)


def _assigns_hotkey(c: Command, hotkey) -> bool:
    params = c.parameters or {}
    return (c.opcode == HOTKEY_OPCODE and params.get('hotkey') == hotkey
            and params.get('hotkey_type') in HOTKEY_ASSIGN_OR_ADD)


def _effectiveness(c: Command, recent: Iterable[Command]) -> str:
    recent = list(recent)
    same_type = [r for r in recent if r.opcode == c.opcode]
    if same_type and c.frame - same_type[-1].frame < FAST_REPETITION_FRAMES:
        return FAST_REPETITION

    if c.opcode in SELECT_OPCODES:
        if sum(1 for r in recent if r.opcode in SELECT_OPCODES) > MAX_RECENT_SELECTIONS:
            return FAST_RESELECTION

    if any(r.parameters == c.parameters for r in same_type):
        return REPETITION

    hotkey = (c.parameters or {}).get('hotkey')
    if _assigns_hotkey(c, hotkey) and any(_assigns_hotkey(r, hotkey) for r in same_type):
        return HOTKEY_REPETITION

    return EFFECTIVE


def classify_effectiveness(commands: Iterable[Command]) -> List[str]:
    """Effectiveness kind of each of one player's commands, in frame order.

    Commands whose opcode is not a game action are 'non-game' and never
    enter the window. The others are compared with that player's game
    commands from the last second: a repeat of the same opcode within half
    a second, a third selection change in the window, the same opcode with
    equal parameters, or re-assigning the same hotkey is ineffective.
    """
    window = deque()
    kinds = []
    for c in sorted(commands, key=lambda c: c.frame):
        if not c.effective:
            kinds.append(NON_GAME)
            continue
        while window and c.frame - window[0].frame > EFFECTIVENESS_WINDOW:
            window.popleft()
        kinds.append(_effectiveness(c, window))
        window.append(c)
    return kinds


def efficiency_percent(kinds: List[str]) -> int:
    """Percentage of commands classified effective; 0 without commands."""
    if not kinds:
        return 0
    return int(round(kinds.count(EFFECTIVE) / len(kinds) * 100))


def compute_apm(commands: Iterable[Command], players: Iterable[PlayerRecord],
                frames: int,
                kinds: Optional[Dict[int, List[str]]] = None) -> Dict[int, Tuple[int, int]]:
    """Return {slot: (apm, eapm)} over the whole game.

    EAPM counts only commands classify_effectiveness() calls effective;
    ``kinds`` takes precomputed classifications per slot. A zero-length
    game gives 0 for both rather than dividing by zero.
    """
    by_player = defaultdict(list)
    for c in commands:
        by_player[c.player].append(c)
    if kinds is None:
        kinds = {slot: classify_effectiveness(own) for slot, own in by_player.items()}

    minutes = game_minutes(frames)
    result = {}
    for p in players:
        if minutes <= 0:
            result[p.slot] = (0, 0)
            continue
        effective = kinds.get(p.slot, []).count(EFFECTIVE)
        result[p.slot] = (int(round(len(by_player[p.slot]) / minutes)),
                          int(round(effective / minutes)))
    return result


# --- Entity resolution ---

CONFIDENCE_DIRECT = 100
CONFIDENCE_OPCODE_NAME = 70
CONFIDENCE_PARAMETER_SCAN = 50
CONFIDENCE_INFERRED = 15

# Entries below this are guesses, not facts
CONFIDENCE_THRESHOLD = 50

PLAUSIBLE_ENTITY_IDS = range(0, 228)

ACTION_KINDS = {
    ACTION_RESEARCH: KIND_TECH,
    ACTION_UPGRADE: KIND_UPGRADE,
}

EARLY_GAME_FRAMES = 3 * 60 * FRAMES_PER_SECOND

# (race, action, early game?) -> probable entity id
PROBABLE_ENTITIES = {
    (TERRAN, ACTION_TRAIN, True): 7,       # SCV
    (TERRAN, ACTION_TRAIN, False): 0,      # Marine
    (TERRAN, ACTION_BUILD, True): 109,     # Supply Depot
    (TERRAN, ACTION_BUILD, False): 111,    # Barracks
    (TERRAN, ACTION_RESEARCH, False): 0,   # Stim Packs
    (TERRAN, ACTION_UPGRADE, False): 16,   # U-238 Shells
    (PROTOSS, ACTION_TRAIN, True): 64,     # Protoss worker
    (PROTOSS, ACTION_TRAIN, False): 66,    # Dragoon
    (PROTOSS, ACTION_BUILD, True): 156,    # Pylon
    (PROTOSS, ACTION_BUILD, False): 160,   # Gateway
    (PROTOSS, ACTION_RESEARCH, False): 19,  # Psionic Storm
    (PROTOSS, ACTION_UPGRADE, False): 33,  # Singularity Charge
    (ZERG, ACTION_MORPH, True): 41,        # Drone
    (ZERG, ACTION_MORPH, False): 132,      # Lair
    (ZERG, ACTION_BUILD, True): 142,       # Spawning Pool
    (ZERG, ACTION_BUILD, False): 131,      # Hatchery
    (ZERG, ACTION_RESEARCH, False): 11,    # Burrowing
    (ZERG, ACTION_UPGRADE, False): 27,     # Metabolic Boost
}

_NAME_NUMBER = re.compile(r'0x([0-9A-Fa-f]+)|(\d+)')


def _race_matches(entity, race: str) -> bool:
    return race not in (TERRAN, PROTOSS, ZERG) or entity.race == race


def _numeric_siblings(parameters: dict) -> List[int]:
    """Numeric values found in a command's parameters, raw byte lists included."""
    values = []
    for key in sorted(parameters):
        if key == 'entity_id':
            continue
        value = parameters[key]
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            values.append(value)
        elif isinstance(value, list) and all(isinstance(b, int) for b in value):
            # raw blocks: little-endian u16 pairs first, then single bytes
            values.extend(value[i] | (value[i + 1] << 8) for i in range(0, len(value) - 1, 2))
            values.extend(value)
    return values


def resolve_entity(command: Command, race: str, kind: str = KIND_UNIT,
                   action: Optional[str] = None,
                   lookup: EntityLookup = None) -> Optional[Tuple[int, int, str]]:
    """Recover the entity a build-type command acts on.

    Returns (entity_id, confidence, method) or None. Paths, strongest first:
    the command's entity_id parameter, a number embedded in the command name,
    another numeric parameter in entity id range, and finally a guess from
    race and game phase. The guess is always tagged low confidence.
    """
    lookup = lookup or ENTITY_LOOKUP
    params = command.parameters or {}

    eid = params.get('entity_id')
    if isinstance(eid, int) and not isinstance(eid, bool) and lookup.get(eid, kind):
        return eid, CONFIDENCE_DIRECT, 'direct'

    for match in _NAME_NUMBER.finditer(command.name or ''):
        hex_digits, digits = match.groups()
        value = int(hex_digits, 16) if hex_digits else int(digits)
        if lookup.get(value, kind):
            return value, CONFIDENCE_OPCODE_NAME, 'opcode-name'

    for value in _numeric_siblings(params):
        if value not in PLAUSIBLE_ENTITY_IDS:
            continue
        entity = lookup.get(value, kind)
        if entity and _race_matches(entity, race):
            return value, CONFIDENCE_PARAMETER_SCAN, 'parameter-scan'

    if action is not None:
        early = command.frame < EARLY_GAME_FRAMES
        guess = PROBABLE_ENTITIES.get((race, action, early))
        if guess is None:
            guess = PROBABLE_ENTITIES.get((race, action, False))
        if guess is not None and lookup.get(guess, kind):
            return guess, CONFIDENCE_INFERRED, 'inferred'

    return None


def reliable_entries(entries: Iterable[BuildOrderEntry],
                     threshold: int = CONFIDENCE_THRESHOLD) -> List[BuildOrderEntry]:
    return [e for e in entries if e.confidence >= threshold]


# --- Build order and supply ---

STARTING_SUPPLY = {
    TERRAN: (4, 10),
    PROTOSS: (4, 9),
    ZERG: (4, 9),
}
DEFAULT_STARTING_SUPPLY = (4, 9)


def starting_supply(race: str) -> SupplySnapshot:
    current, maximum = STARTING_SUPPLY.get(race, DEFAULT_STARTING_SUPPLY)
    return SupplySnapshot(frame=0, current=current, maximum=maximum)


def _apply_supply(snapshot: SupplySnapshot, entity, action: str, frame: int) -> SupplySnapshot:
    current, maximum = snapshot.current, snapshot.maximum
    if entity.kind == KIND_UNIT:
        if entity.supply_provided:
            maximum = max(maximum, min(SUPPLY_CAP, maximum + entity.supply_provided))
        if action in (ACTION_TRAIN, ACTION_MORPH) and not entity.building:
            current += entity.cost.supply
        if action == ACTION_BUILD and entity.building and entity.race == ZERG:
            # The drone becomes the building
            current = max(0, current - 1)
    return SupplySnapshot(frame=frame, current=current, maximum=maximum)


def extract_build_order(commands: Iterable[Command], race: str,
                        lookup: EntityLookup = None,
                        opcodes: OpcodeLookup = None) -> Tuple[List[BuildOrderEntry], List[SupplySnapshot]]:
    """Build order entries and supply history for one player's commands.

    Each entry carries the supply snapshot from just before the action. The
    history starts with the race's starting snapshot and gains one snapshot
    per action that changes supply.
    """
    lookup = lookup or ENTITY_LOOKUP
    opcodes = opcodes or OPCODE_LOOKUP
    supply = starting_supply(race)
    history = [supply]
    entries = []

    for c in sorted(commands, key=lambda c: c.frame):
        info = opcodes.get(c.opcode)
        action = info.action if info else None
        if action not in BUILD_ACTIONS:
            continue
        kind = ACTION_KINDS.get(action, KIND_UNIT)
        resolved = resolve_entity(c, race, kind, action, lookup)
        if resolved is None:
            continue
        entity_id, confidence, method = resolved
        entity = lookup.get(entity_id, kind)

        entries.append(BuildOrderEntry(
            frame=c.frame,
            time=frame_to_time(c.frame),
            action=action,
            entity_id=entity_id,
            entity_name=entity.name,
            category=entity.category,
            supply=SupplySnapshot(c.frame, supply.current, supply.maximum),
            confidence=confidence,
            method=method,
        ))

        updated = _apply_supply(supply, entity, action, c.frame)
        if (updated.current, updated.maximum) != (supply.current, supply.maximum):
            history.append(updated)
        supply = updated

    return entries, history


# --- Strategic summary ---

STRATEGY_WINDOW = 10
OPENING_WORKERS = 6
OPENING_MILITARY = 3
OPENING_SUPPLY = 2
TECH_PATH_LENGTH = 5

KEY_TIMING_CATEGORIES = (
    ('supply', 'First supply'),
    ('military', 'First military'),
    ('tech', 'First tech'),
    ('defense', 'First defense'),
)


def _is_worker(entry: BuildOrderEntry) -> bool:
    entity = ENTITY_LOOKUP.get(entry.entity_id, KIND_UNIT)
    return entry.action in (ACTION_TRAIN, ACTION_MORPH) and bool(entity and entity.is_worker)


def _supply_management(history: List[SupplySnapshot]) -> str:
    if len(history) <= 1:
        return 'unknown'
    blocked = sum(1 for s in history if s.blocked) / len(history)
    if blocked == 0:
        return 'excellent'
    if blocked < 0.1:
        return 'good'
    if blocked < 0.25:
        return 'fair'
    return 'poor'


def summarize_strategy(entries: List[BuildOrderEntry],
                       supply_history: List[SupplySnapshot],
                       window: int = STRATEGY_WINDOW) -> StrategicSummary:
    """Heuristic labels from the first ``window`` build order entries."""
    early = entries[:window]
    summary = StrategicSummary(supply_management=_supply_management(supply_history))
    if not early:
        return summary

    categories = Counter(e.category for e in early)
    workers = sum(1 for e in early if _is_worker(e))
    military = categories['military']

    if workers >= OPENING_WORKERS:
        summary.opening = 'Economic'
    elif military >= OPENING_MILITARY:
        summary.opening = 'Aggressive'
    elif categories['supply'] >= OPENING_SUPPLY:
        summary.opening = 'Safe'
    else:
        summary.opening = 'Standard'

    economy = categories['economy']
    if economy + military == 0:
        summary.economic_pattern = 'tech'
    else:
        ratio = economy / (economy + military)
        if ratio >= 0.6:
            summary.economic_pattern = 'economic'
        elif ratio <= 0.3:
            summary.economic_pattern = 'military'
        else:
            summary.economic_pattern = 'balanced'

    for e in entries:
        if e.category == 'tech' and e.entity_name not in summary.tech_path:
            summary.tech_path.append(e.entity_name)
        if len(summary.tech_path) >= TECH_PATH_LENGTH:
            break

    for category, label in KEY_TIMING_CATEGORIES:
        first = next((e for e in entries if e.category == category), None)
        if first is not None:
            summary.key_timings.append({'milestone': label, 'time': first.time, 'entity': first.entity_name})
    return summary


def analyze(header: ReplayHeader, players: List[PlayerRecord],
            commands: List[Command]) -> Dict[int, AnalyticsSummary]:
    """Per-player APM/EAPM, efficiency, build order, supply history and strategy."""
    by_player = defaultdict(list)
    for c in commands:
        by_player[c.player].append(c)
    kinds = {slot: classify_effectiveness(own) for slot, own in by_player.items()}

    apm = compute_apm(commands, players, header.frames, kinds)
    result = {}
    for p in players:
        own = by_player.get(p.slot, [])
        own_kinds = kinds.get(p.slot, [])
        entries, history = extract_build_order(own, p.race)
        player_apm, player_eapm = apm[p.slot]
        result[p.slot] = AnalyticsSummary(
            player=p.slot,
            apm=player_apm,
            eapm=player_eapm,
            command_count=len(own),
            effective_count=own_kinds.count(EFFECTIVE),
            build_order=entries,
            supply_history=history,
            strategy=summarize_strategy(entries, history),
            efficiency=efficiency_percent(own_kinds),
            ineffective_kinds=dict(Counter(k for k in own_kinds if k != EFFECTIVE)),
        )
    return result
