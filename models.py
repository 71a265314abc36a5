"""
Data model for a decoded replay.

DecodeResult is the only thing the pipeline returns. Every type maps to a
JSON-friendly dict with to_dict(), and DecodeResult.from_dict() rebuilds an
equal value from that form.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

RELIABILITY_HIGH = 'high'
RELIABILITY_MEDIUM = 'medium'
RELIABILITY_LOW = 'low'


@dataclass
class ReplayHeader:
    signature: str
    version: str
    engine: str
    frames: int
    map_name: str
    game_type: int
    game_type_name: str
    low_confidence: bool = False

    @property
    def duration(self) -> str:
        from replay_analyzers import frame_to_time
        return frame_to_time(self.frames)

    def to_dict(self) -> dict:
        return {
            'signature': self.signature,
            'version': self.version,
            'engine': self.engine,
            'frames': self.frames,
            'duration': self.duration,
            'map_name': self.map_name,
            'game_type': self.game_type,
            'game_type_name': self.game_type_name,
            'low_confidence': self.low_confidence,
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'ReplayHeader':
        return cls(
            signature=d['signature'],
            version=d['version'],
            engine=d['engine'],
            frames=d['frames'],
            map_name=d['map_name'],
            game_type=d['game_type'],
            game_type_name=d['game_type_name'],
            low_confidence=d.get('low_confidence', False),
        )


@dataclass
class PlayerRecord:
    slot: int
    name: str
    race: str
    team: int
    color: int
    kind: str  # 'human', 'computer' or 'empty'

    def to_dict(self) -> dict:
        return {
            'slot': self.slot,
            'name': self.name,
            'race': self.race,
            'team': self.team,
            'color': self.color,
            'kind': self.kind,
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'PlayerRecord':
        return cls(**{k: d[k] for k in ('slot', 'name', 'race', 'team', 'color', 'kind')})


@dataclass(frozen=True)
class Command:
    frame: int
    player: int
    opcode: int
    name: str
    parameters: Dict[str, Any]
    effective: bool

    def to_dict(self) -> dict:
        return {
            'frame': self.frame,
            'player': self.player,
            'opcode': self.opcode,
            'name': self.name,
            'parameters': dict(self.parameters),
            'effective': self.effective,
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'Command':
        return cls(
            frame=d['frame'],
            player=d['player'],
            opcode=d['opcode'],
            name=d['name'],
            parameters=dict(d['parameters']),
            effective=d['effective'],
        )


@dataclass(frozen=True)
class SupplySnapshot:
    frame: int
    current: int
    maximum: int

    @property
    def blocked(self) -> bool:
        return self.current >= self.maximum

    def to_dict(self) -> dict:
        return {
            'frame': self.frame,
            'current': self.current,
            'maximum': self.maximum,
            'blocked': self.blocked,
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'SupplySnapshot':
        return cls(frame=d['frame'], current=d['current'], maximum=d['maximum'])


@dataclass
class BuildOrderEntry:
    frame: int
    time: str
    action: str  # Build, Train, Morph, Research, Upgrade
    entity_id: int
    entity_name: str
    category: str
    supply: SupplySnapshot
    confidence: int  # 0-100
    method: str  # how the entity id was recovered

    def to_dict(self) -> dict:
        return {
            'frame': self.frame,
            'time': self.time,
            'action': self.action,
            'entity_id': self.entity_id,
            'entity_name': self.entity_name,
            'category': self.category,
            'supply': self.supply.to_dict(),
            'confidence': self.confidence,
            'method': self.method,
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'BuildOrderEntry':
        return cls(
            frame=d['frame'],
            time=d['time'],
            action=d['action'],
            entity_id=d['entity_id'],
            entity_name=d['entity_name'],
            category=d['category'],
            supply=SupplySnapshot.from_dict(d['supply']),
            confidence=d['confidence'],
            method=d['method'],
        )


@dataclass
class StrategicSummary:
    """Heuristic labels derived from the start of a build order. Not authoritative."""
    opening: str = 'Unknown'
    tech_path: List[str] = field(default_factory=list)
    economic_pattern: str = 'unknown'
    supply_management: str = 'unknown'
    key_timings: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'opening': self.opening,
            'tech_path': list(self.tech_path),
            'economic_pattern': self.economic_pattern,
            'supply_management': self.supply_management,
            'key_timings': [dict(t) for t in self.key_timings],
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'StrategicSummary':
        return cls(
            opening=d['opening'],
            tech_path=list(d['tech_path']),
            economic_pattern=d['economic_pattern'],
            supply_management=d['supply_management'],
            key_timings=[dict(t) for t in d['key_timings']],
        )


@dataclass
class AnalyticsSummary:
    player: int
    apm: int
    eapm: int
    command_count: int
    effective_count: int
    build_order: List[BuildOrderEntry] = field(default_factory=list)
    supply_history: List[SupplySnapshot] = field(default_factory=list)
    strategy: StrategicSummary = field(default_factory=StrategicSummary)
    efficiency: int = 0  # effective share of commands, percent
    ineffective_kinds: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'player': self.player,
            'apm': self.apm,
            'eapm': self.eapm,
            'command_count': self.command_count,
            'effective_count': self.effective_count,
            'build_order': [e.to_dict() for e in self.build_order],
            'supply_history': [s.to_dict() for s in self.supply_history],
            'strategy': self.strategy.to_dict(),
            'efficiency': self.efficiency,
            'ineffective_kinds': dict(self.ineffective_kinds),
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'AnalyticsSummary':
        return cls(
            player=d['player'],
            apm=d['apm'],
            eapm=d['eapm'],
            command_count=d['command_count'],
            effective_count=d['effective_count'],
            build_order=[BuildOrderEntry.from_dict(e) for e in d['build_order']],
            supply_history=[SupplySnapshot.from_dict(s) for s in d['supply_history']],
            strategy=StrategicSummary.from_dict(d['strategy']),
            efficiency=d.get('efficiency', 0),
            ineffective_kinds=dict(d.get('ineffective_kinds', {})),
        )


@dataclass
class ParseStatistics:
    total_bytes: int = 0
    expanded_bytes: int = 0
    payload_method: str = 'none'
    command_bytes: int = 0
    commands: int = 0
    dropped_commands: int = 0
    unknown_opcodes: int = 0
    iterations: int = 0
    iteration_cap_hit: bool = False
    truncated: bool = False
    fallbacks: Dict[str, str] = field(default_factory=dict)  # field -> tier that produced it
    errors: List[str] = field(default_factory=list)
    reliability: str = RELIABILITY_HIGH

    def to_dict(self) -> dict:
        return {
            'total_bytes': self.total_bytes,
            'expanded_bytes': self.expanded_bytes,
            'payload_method': self.payload_method,
            'command_bytes': self.command_bytes,
            'commands': self.commands,
            'dropped_commands': self.dropped_commands,
            'unknown_opcodes': self.unknown_opcodes,
            'iterations': self.iterations,
            'iteration_cap_hit': self.iteration_cap_hit,
            'truncated': self.truncated,
            'fallbacks': dict(self.fallbacks),
            'errors': list(self.errors),
            'reliability': self.reliability,
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'ParseStatistics':
        stats = cls(**{k: v for k, v in d.items() if k not in ('fallbacks', 'errors')})
        stats.fallbacks = dict(d.get('fallbacks', {}))
        stats.errors = list(d.get('errors', []))
        return stats


@dataclass
class DecodeResult:
    header: ReplayHeader
    players: List[PlayerRecord]
    commands: List[Command]
    analytics: Dict[int, AnalyticsSummary]
    stats: ParseStatistics

    def player(self, slot: int) -> Optional[PlayerRecord]:
        for p in self.players:
            if p.slot == slot:
                return p
        return None

    def to_dict(self, include_commands: bool = True) -> dict:
        data = {
            'header': self.header.to_dict(),
            'players': [p.to_dict() for p in self.players],
            'analytics': {str(slot): a.to_dict() for slot, a in self.analytics.items()},
            'stats': self.stats.to_dict(),
        }
        if include_commands:
            data['commands'] = [c.to_dict() for c in self.commands]
        return data

    @classmethod
    def from_dict(cls, d: dict) -> 'DecodeResult':
        return cls(
            header=ReplayHeader.from_dict(d['header']),
            players=[PlayerRecord.from_dict(p) for p in d['players']],
            commands=[Command.from_dict(c) for c in d.get('commands', [])],
            analytics={int(slot): AnalyticsSummary.from_dict(a) for slot, a in d['analytics'].items()},
            stats=ParseStatistics.from_dict(d['stats']),
        )
