#!/usr/bin/env python3
"""
Entity Lookup for Brood War Replays

Maps the game-object ids carried by Build/Train/Morph/Tech/Upgrade commands to
names, races, categories and costs. Units and buildings share one id space;
tech and upgrade ids are separate namespaces and overlap with unit ids, so
every lookup is keyed by (kind, id).

Usage:
    python entity_lookup.py            # Show table stats
"""

from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

KIND_UNIT = 'unit'
KIND_TECH = 'tech'
KIND_UPGRADE = 'upgrade'
KINDS = (KIND_UNIT, KIND_TECH, KIND_UPGRADE)

CATEGORIES = ('economy', 'military', 'tech', 'supply', 'defense')

TERRAN, PROTOSS, ZERG = 'Terran', 'Protoss', 'Zerg'

SUPPLY_CAP = 200

WORKER_IDS = (7, 41, 64)  # one worker per race


@dataclass(frozen=True)
class Cost:
    minerals: int
    gas: int
    supply: int


@dataclass(frozen=True)
class EntityInfo:
    entity_id: int
    name: str
    race: str
    category: str
    cost: Cost
    kind: str = KIND_UNIT
    building: bool = False
    supply_provided: int = 0

    @property
    def is_worker(self) -> bool:
        return self.kind == KIND_UNIT and self.entity_id in WORKER_IDS


# id: (name, race, category, minerals, gas, supply)
_UNITS = {
    0: ('Marine', TERRAN, 'military', 50, 0, 1),
    1: ('Ghost', TERRAN, 'military', 25, 75, 1),
    2: ('Vulture', TERRAN, 'military', 75, 0, 2),
    3: ('Goliath', TERRAN, 'military', 100, 50, 2),
    5: ('Siege Tank', TERRAN, 'military', 150, 100, 2),
    7: ('SCV', TERRAN, 'economy', 50, 0, 1),
    8: ('Wraith', TERRAN, 'military', 150, 100, 2),
    9: ('Science Vessel', TERRAN, 'tech', 100, 225, 2),
    11: ('Dropship', TERRAN, 'military', 100, 100, 2),
    12: ('Battlecruiser', TERRAN, 'military', 400, 300, 6),
    32: ('Firebat', TERRAN, 'military', 50, 25, 1),
    34: ('Medic', TERRAN, 'tech', 50, 25, 1),
    37: ('Zergling', ZERG, 'military', 50, 0, 1),
    38: ('Hydralisk', ZERG, 'military', 75, 25, 1),
    39: ('Ultralisk', ZERG, 'military', 200, 200, 4),
    41: ('Drone', ZERG, 'economy', 50, 0, 1),
    42: ('Overlord', ZERG, 'supply', 100, 0, 0),
    43: ('Mutalisk', ZERG, 'military', 100, 100, 2),
    44: ('Guardian', ZERG, 'military', 50, 100, 2),
    45: ('Queen', ZERG, 'tech', 100, 100, 2),
    46: ('Defiler', ZERG, 'tech', 50, 150, 2),
    47: ('Scourge', ZERG, 'military', 25, 75, 1),
    58: ('Valkyrie', TERRAN, 'military', 250, 125, 3),
    60: ('Corsair', PROTOSS, 'military', 150, 100, 2),
    61: ('Dark Templar', PROTOSS, 'military', 125, 100, 2),
    62: ('Devourer', ZERG, 'military', 50, 100, 2),
    63: ('Dark Archon', PROTOSS, 'tech', 0, 0, 4),
    64: ('Probe', PROTOSS, 'economy', 50, 0, 1),
    65: ('Zealot', PROTOSS, 'military', 100, 0, 2),
    66: ('Dragoon', PROTOSS, 'military', 125, 50, 2),
    67: ('High Templar', PROTOSS, 'tech', 50, 150, 2),
    68: ('Archon', PROTOSS, 'military', 0, 0, 4),
    69: ('Shuttle', PROTOSS, 'military', 200, 0, 2),
    70: ('Scout', PROTOSS, 'military', 275, 125, 3),
    71: ('Arbiter', PROTOSS, 'tech', 100, 350, 4),
    72: ('Carrier', PROTOSS, 'military', 350, 250, 6),
    83: ('Reaver', PROTOSS, 'military', 200, 100, 4),
    84: ('Observer', PROTOSS, 'tech', 25, 75, 1),
    103: ('Lurker', ZERG, 'military', 50, 100, 2),
}

# id: (name, race, category, minerals, gas)
_BUILDINGS = {
    106: ('Command Center', TERRAN, 'economy', 400, 0),
    107: ('Comsat Station', TERRAN, 'tech', 50, 50),
    108: ('Nuclear Silo', TERRAN, 'tech', 100, 100),
    109: ('Supply Depot', TERRAN, 'supply', 100, 0),
    110: ('Refinery', TERRAN, 'economy', 100, 0),
    111: ('Barracks', TERRAN, 'military', 150, 0),
    112: ('Academy', TERRAN, 'tech', 150, 0),
    113: ('Factory', TERRAN, 'military', 200, 100),
    114: ('Starport', TERRAN, 'military', 150, 100),
    115: ('Control Tower', TERRAN, 'tech', 50, 50),
    116: ('Science Facility', TERRAN, 'tech', 100, 150),
    117: ('Covert Ops', TERRAN, 'tech', 50, 50),
    118: ('Physics Lab', TERRAN, 'tech', 50, 50),
    120: ('Machine Shop', TERRAN, 'tech', 50, 50),
    122: ('Engineering Bay', TERRAN, 'tech', 125, 0),
    123: ('Armory', TERRAN, 'tech', 100, 50),
    124: ('Missile Turret', TERRAN, 'defense', 100, 0),
    125: ('Bunker', TERRAN, 'defense', 100, 0),
    131: ('Hatchery', ZERG, 'economy', 300, 0),
    132: ('Lair', ZERG, 'economy', 150, 100),
    133: ('Hive', ZERG, 'economy', 200, 150),
    134: ('Nydus Canal', ZERG, 'tech', 150, 0),
    135: ('Hydralisk Den', ZERG, 'military', 100, 50),
    136: ('Defiler Mound', ZERG, 'tech', 100, 100),
    137: ('Greater Spire', ZERG, 'military', 100, 150),
    138: ("Queen's Nest", ZERG, 'tech', 150, 100),
    139: ('Evolution Chamber', ZERG, 'tech', 75, 0),
    140: ('Ultralisk Cavern', ZERG, 'military', 150, 200),
    141: ('Spire', ZERG, 'military', 200, 150),
    142: ('Spawning Pool', ZERG, 'military', 200, 0),
    143: ('Creep Colony', ZERG, 'defense', 75, 0),
    144: ('Spore Colony', ZERG, 'defense', 50, 0),
    145: ('Sunken Colony', ZERG, 'defense', 50, 0),
    149: ('Extractor', ZERG, 'economy', 50, 0),
    154: ('Nexus', PROTOSS, 'economy', 400, 0),
    155: ('Robotics Facility', PROTOSS, 'military', 200, 200),
    156: ('Pylon', PROTOSS, 'supply', 100, 0),
    157: ('Assimilator', PROTOSS, 'economy', 100, 0),
    159: ('Observatory', PROTOSS, 'tech', 50, 100),
    160: ('Gateway', PROTOSS, 'military', 150, 0),
    162: ('Photon Cannon', PROTOSS, 'defense', 150, 0),
    163: ('Citadel of Adun', PROTOSS, 'tech', 150, 100),
    164: ('Cybernetics Core', PROTOSS, 'tech', 200, 0),
    165: ('Templar Archives', PROTOSS, 'tech', 150, 200),
    166: ('Forge', PROTOSS, 'tech', 150, 0),
    167: ('Stargate', PROTOSS, 'military', 150, 150),
    169: ('Fleet Beacon', PROTOSS, 'tech', 300, 200),
    170: ('Arbiter Tribunal', PROTOSS, 'tech', 200, 150),
    171: ('Robotics Support Bay', PROTOSS, 'tech', 150, 100),
    172: ('Shield Battery', PROTOSS, 'defense', 100, 0),
}

# Maximum-supply increase when the entity completes
SUPPLY_PROVIDERS = {
    42: 8,    # Overlord
    106: 10,  # Command Center
    109: 8,   # Supply Depot
    131: 1,   # Hatchery
    154: 9,   # Nexus
    156: 8,   # Pylon
}

# id: (name, race, minerals, gas)
_TECH = {
    0: ('Stim Packs', TERRAN, 100, 100),
    1: ('Lockdown', TERRAN, 200, 200),
    2: ('EMP Shockwave', TERRAN, 200, 200),
    3: ('Spider Mines', TERRAN, 100, 100),
    5: ('Tank Siege Mode', TERRAN, 150, 150),
    7: ('Irradiate', TERRAN, 200, 200),
    8: ('Yamato Gun', TERRAN, 100, 100),
    9: ('Cloaking Field', TERRAN, 150, 150),
    10: ('Personnel Cloaking', TERRAN, 100, 100),
    11: ('Burrowing', ZERG, 100, 100),
    13: ('Spawn Broodlings', ZERG, 100, 100),
    15: ('Plague', ZERG, 200, 200),
    16: ('Consume', ZERG, 100, 100),
    17: ('Ensnare', ZERG, 100, 100),
    19: ('Psionic Storm', PROTOSS, 200, 200),
    20: ('Hallucination', PROTOSS, 150, 150),
    21: ('Recall', PROTOSS, 150, 150),
    22: ('Stasis Field', PROTOSS, 150, 150),
    24: ('Restoration', TERRAN, 100, 100),
    25: ('Disruption Web', PROTOSS, 200, 200),
    27: ('Mind Control', PROTOSS, 200, 200),
    30: ('Optical Flare', TERRAN, 100, 100),
    31: ('Maelstrom', PROTOSS, 100, 100),
    32: ('Lurker Aspect', ZERG, 200, 200),
}

# id: (name, race, minerals, gas)
_UPGRADES = {
    0: ('Terran Infantry Armor', TERRAN, 100, 100),
    1: ('Terran Vehicle Plating', TERRAN, 100, 100),
    2: ('Terran Ship Plating', TERRAN, 150, 150),
    3: ('Zerg Carapace', ZERG, 150, 150),
    4: ('Zerg Flyer Carapace', ZERG, 150, 150),
    5: ('Protoss Ground Armor', PROTOSS, 100, 100),
    6: ('Protoss Air Armor', PROTOSS, 150, 150),
    7: ('Terran Infantry Weapons', TERRAN, 100, 100),
    8: ('Terran Vehicle Weapons', TERRAN, 100, 100),
    9: ('Terran Ship Weapons', TERRAN, 100, 100),
    10: ('Zerg Melee Attacks', ZERG, 100, 100),
    11: ('Zerg Missile Attacks', ZERG, 100, 100),
    12: ('Zerg Flyer Attacks', ZERG, 100, 100),
    13: ('Protoss Ground Weapons', PROTOSS, 100, 100),
    14: ('Protoss Air Weapons', PROTOSS, 100, 100),
    15: ('Protoss Plasma Shields', PROTOSS, 200, 200),
    16: ('U-238 Shells', TERRAN, 150, 150),
    17: ('Ion Thrusters', TERRAN, 100, 100),
    19: ('Titan Reactor', TERRAN, 150, 150),
    20: ('Ocular Implants', TERRAN, 100, 100),
    21: ('Moebius Reactor', TERRAN, 150, 150),
    22: ('Apollo Reactor', TERRAN, 200, 200),
    23: ('Colossus Reactor', TERRAN, 150, 150),
    24: ('Ventral Sacs', ZERG, 200, 200),
    25: ('Antennae', ZERG, 150, 150),
    26: ('Pneumatized Carapace', ZERG, 150, 150),
    27: ('Metabolic Boost', ZERG, 100, 100),
    28: ('Adrenal Glands', ZERG, 200, 200),
    29: ('Muscular Augments', ZERG, 150, 150),
    30: ('Grooved Spines', ZERG, 150, 150),
    31: ('Gamete Meiosis', ZERG, 150, 150),
    32: ('Metasynaptic Node', ZERG, 150, 150),
    33: ('Singularity Charge', PROTOSS, 150, 150),
    34: ('Leg Enhancements', PROTOSS, 150, 150),
    35: ('Scarab Damage', PROTOSS, 200, 200),
    36: ('Reaver Capacity', PROTOSS, 200, 200),
    37: ('Gravitic Drive', PROTOSS, 200, 200),
    38: ('Sensor Array', PROTOSS, 150, 150),
    39: ('Gravitic Boosters', PROTOSS, 150, 150),
    40: ('Khaydarin Amulet', PROTOSS, 150, 150),
    41: ('Apial Sensors', PROTOSS, 100, 100),
    42: ('Gravitic Thrusters', PROTOSS, 200, 200),
    43: ('Carrier Capacity', PROTOSS, 100, 100),
    44: ('Khaydarin Core', PROTOSS, 150, 150),
    47: ('Argus Jewel', PROTOSS, 100, 100),
    49: ('Argus Talisman', PROTOSS, 150, 150),
    51: ('Caduceus Reactor', TERRAN, 150, 150),
    52: ('Chitinous Plating', ZERG, 150, 150),
    53: ('Anabolic Synthesis', ZERG, 200, 200),
    54: ('Charon Boosters', TERRAN, 100, 100),
}


def _build_table() -> Dict[Tuple[str, int], EntityInfo]:
    table = {}
    for eid, (name, race, category, minerals, gas, supply) in _UNITS.items():
        table[(KIND_UNIT, eid)] = EntityInfo(
            eid, name, race, category, Cost(minerals, gas, supply),
            supply_provided=SUPPLY_PROVIDERS.get(eid, 0),
        )
    for eid, (name, race, category, minerals, gas) in _BUILDINGS.items():
        table[(KIND_UNIT, eid)] = EntityInfo(
            eid, name, race, category, Cost(minerals, gas, 0),
            building=True, supply_provided=SUPPLY_PROVIDERS.get(eid, 0),
        )
    for kind, source in ((KIND_TECH, _TECH), (KIND_UPGRADE, _UPGRADES)):
        for eid, (name, race, minerals, gas) in source.items():
            table[(kind, eid)] = EntityInfo(eid, name, race, 'tech', Cost(minerals, gas, 0), kind=kind)
    return table


ENTITIES: Dict[Tuple[str, int], EntityInfo] = _build_table()


class EntityLookup:
    """Lookup table for unit, building, tech and upgrade ids."""

    def __init__(self, table: Dict[Tuple[str, int], EntityInfo] = None):
        self.lookup: Dict[Tuple[str, int], EntityInfo] = dict(ENTITIES if table is None else table)

    def get(self, entity_id: int, kind: str = KIND_UNIT) -> Optional[EntityInfo]:
        """Look up an entity id within a namespace; None when unknown."""
        return self.lookup.get((kind, entity_id))

    def get_name(self, entity_id: int, kind: str = KIND_UNIT) -> str:
        """Get the name for an entity id, or a placeholder if not found."""
        info = self.get(entity_id, kind)
        if info:
            return info.name
        return f'Unknown {kind} ({entity_id})'

    def get_full(self, entity_id: int, kind: str = KIND_UNIT) -> Tuple[str, str]:
        """Get (name, category) for an entity id."""
        info = self.get(entity_id, kind)
        if info:
            return (info.name, info.category)
        return (self.get_name(entity_id, kind), 'unknown')

    def is_known(self, entity_id: int, kind: str = KIND_UNIT) -> bool:
        return (kind, entity_id) in self.lookup

    def by_race(self, race: str, kind: str = KIND_UNIT) -> List[EntityInfo]:
        return [e for (k, _), e in sorted(self.lookup.items()) if k == kind and e.race == race]

    def stats(self) -> dict:
        """Get statistics about the lookup table."""
        values = self.lookup.values()
        return {
            'total_entries': len(self.lookup),
            'by_kind': dict(Counter(e.kind for e in values)),
            'by_race': dict(Counter(e.race for e in values)),
            'by_category': dict(Counter(e.category for e in values).most_common()),
        }


def main():
    lookup = EntityLookup()
    stats = lookup.stats()
    print(f"Loaded {stats['total_entries']} entities")
    for title in ('by_kind', 'by_race', 'by_category'):
        print(f"\n{title.replace('_', ' ').capitalize()}:")
        for key, count in stats[title].items():
            print(f"  {key}: {count}")


if __name__ == '__main__':
    main()
