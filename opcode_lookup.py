#!/usr/bin/env python3
"""
Opcode Lookup for Brood War Replays

Maps the one-byte command opcodes found in a replay's command section to a
name, a fixed parameter length, an effectiveness class and a parameter layout.

Usage:
    python opcode_lookup.py            # Show table stats
"""

from collections import Counter
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

# Frame-advance markers in the command section
FRAME_INCREMENT = 0x00
FRAME_SKIP_U8 = 0x01
FRAME_SKIP_U16 = 0x02
FRAME_SKIP_U32 = 0x03
FRAME_MARKERS = (FRAME_INCREMENT, FRAME_SKIP_U8, FRAME_SKIP_U16, FRAME_SKIP_U32)

VARIABLE_LENGTH = -1

# Build-order action kinds
ACTION_BUILD = 'Build'
ACTION_TRAIN = 'Train'
ACTION_MORPH = 'Morph'
ACTION_RESEARCH = 'Research'
ACTION_UPGRADE = 'Upgrade'
BUILD_ACTIONS = (ACTION_BUILD, ACTION_TRAIN, ACTION_MORPH, ACTION_RESEARCH, ACTION_UPGRADE)


@dataclass(frozen=True)
class OpcodeInfo:
    opcode: int
    name: str
    length: int  # parameter bytes after the player byte, VARIABLE_LENGTH for chat
    effective: bool
    layout: str = 'raw'
    action: Optional[str] = None

    @property
    def variable(self) -> bool:
        return self.length == VARIABLE_LENGTH


def _op(opcode, name, length, effective=True, layout=None, action=None):
    if layout is None:
        layout = 'none' if length == 0 else 'raw'
    return opcode, OpcodeInfo(opcode, name, length, effective, layout, action)


# (opcode, name, parameter length, effective, layout, build action)
OPCODES: Dict[int, OpcodeInfo] = dict([
    _op(0x09, 'Select', 2, layout='select'),
    _op(0x0A, 'Shift Select', 2, layout='select'),
    _op(0x0B, 'Shift Deselect', 2, layout='select'),
    _op(0x0C, 'Build', 6, layout='build', action=ACTION_BUILD),
    _op(0x0D, 'Vision', 2, effective=False),
    _op(0x0E, 'Alliance', 4, effective=False),
    _op(0x0F, 'Game Speed', 1, effective=False),
    _op(0x10, 'Pause', 0, effective=False),
    _op(0x11, 'Resume', 0, effective=False),
    _op(0x12, 'Cheat', 0, effective=False),
    _op(0x13, 'Hotkey', 2, layout='hotkey'),
    _op(0x14, 'Move', 4, layout='move'),
    _op(0x15, 'Attack', 6, layout='attack'),
    _op(0x16, 'Cast Spell', 8),
    _op(0x17, 'Right Click', 6, layout='attack'),
    _op(0x18, 'Cancel', 0),
    _op(0x19, 'Cancel Hatch', 0),
    _op(0x1A, 'Stop', 0),
    _op(0x1B, 'Carrier Stop', 0),
    _op(0x1C, 'Reaver Stop', 0),
    _op(0x1D, 'Return Cargo', 0),
    _op(0x1E, 'Train', 2, layout='train', action=ACTION_TRAIN),
    _op(0x1F, 'Cancel Train', 2),
    _op(0x20, 'Cloak', 0),
    _op(0x21, 'Decloak', 0),
    _op(0x22, 'Unit Morph', 2, layout='morph', action=ACTION_MORPH),
    _op(0x23, 'Unsiege', 0),
    _op(0x24, 'Siege', 0),
    _op(0x25, 'Train Fighter', 0),
    _op(0x26, 'Unload Unit', 2),
    _op(0x27, 'Unload All', 0),
    _op(0x28, 'Unload', 2),
    _op(0x29, 'Merge Archon', 0),
    _op(0x2A, 'Hold Position', 0),
    _op(0x2B, 'Burrow', 0),
    _op(0x2C, 'Unburrow', 0),
    _op(0x2D, 'Cancel Nuke', 0),
    _op(0x2E, 'Lift', 4, layout='move'),
    _op(0x2F, 'Tech', 2, layout='research', action=ACTION_RESEARCH),
    _op(0x30, 'Cancel Tech', 0),
    _op(0x31, 'Upgrade', 2, layout='upgrade', action=ACTION_UPGRADE),
    _op(0x32, 'Cancel Upgrade', 0),
    _op(0x33, 'Cancel Addon', 0),
    _op(0x34, 'Building Morph', 2, layout='morph', action=ACTION_MORPH),
    _op(0x35, 'Stim', 0),
    _op(0x36, 'Sync', 6, effective=False),
    _op(0x37, 'Voice Enable', 1, effective=False),
    _op(0x38, 'Voice Disable', 1, effective=False),
    _op(0x39, 'Start Game', 0, effective=False),
    _op(0x3A, 'Download Percentage', 1, effective=False),
    _op(0x3B, 'Change Game Slot', 5, effective=False),
    _op(0x3C, 'New Net Player', 7, effective=False),
    _op(0x3D, 'Joined Game', 17, effective=False),
    _op(0x3E, 'Change Race', 2, effective=False),
    _op(0x3F, 'Team Game Team', 1, effective=False),
    _op(0x40, 'UMS Team', 1, effective=False),
    _op(0x41, 'Melee Team', 2, effective=False),
    _op(0x42, 'Swap Players', 2, effective=False),
    _op(0x43, 'Saved Data', 12, effective=False),
    _op(0x44, 'Load Game', 0, effective=False),
    _op(0x48, 'Minimap Ping', 4, effective=False, layout='move'),
    _op(0x49, 'Merge Dark Archon', 0),
    _op(0x4A, 'Make Game Public', 0, effective=False),
    _op(0x4B, 'Chat', VARIABLE_LENGTH, effective=False, layout='chat'),
    _op(0x5A, 'Keep Alive', 0, effective=False),
    _op(0x5B, 'Chat To Allies', VARIABLE_LENGTH, effective=False, layout='chat'),
    _op(0x5C, 'Chat To All', VARIABLE_LENGTH, effective=False, layout='chat'),
])


class OpcodeLookup:
    """Lookup table for command opcodes."""

    def __init__(self, table: Dict[int, OpcodeInfo] = None):
        self.lookup: Dict[int, OpcodeInfo] = dict(OPCODES if table is None else table)

    def __contains__(self, opcode: int) -> bool:
        return opcode in self.lookup

    def get(self, opcode: int) -> Optional[OpcodeInfo]:
        """Look up an opcode; None when it is not in the table."""
        return self.lookup.get(opcode)

    def get_name(self, opcode: int) -> str:
        """Get the name for an opcode, or a hex placeholder if not found."""
        info = self.get(opcode)
        if info:
            return info.name
        return f'Unknown 0x{opcode:02X}'

    def get_full(self, opcode: int) -> Tuple[str, bool]:
        """Get (name, effective) for an opcode."""
        info = self.get(opcode)
        if info:
            return (info.name, info.effective)
        return (self.get_name(opcode), False)

    def is_effective(self, opcode: int) -> bool:
        info = self.get(opcode)
        return bool(info and info.effective)

    def stats(self) -> dict:
        """Get statistics about the lookup table."""
        layouts = Counter(i.layout for i in self.lookup.values())
        return {
            'total_entries': len(self.lookup),
            'effective': sum(1 for i in self.lookup.values() if i.effective),
            'variable_length': sum(1 for i in self.lookup.values() if i.variable),
            'by_layout': dict(layouts.most_common()),
        }


def main():
    lookup = OpcodeLookup()
    stats = lookup.stats()
    print(f"Loaded {stats['total_entries']} opcodes "
          f"({stats['effective']} effective, {stats['variable_length']} variable length)")
    print(f"\nBy layout:")
    for layout, count in stats['by_layout'].items():
        print(f"  {layout}: {count}")
    print(f"\n{'Opcode':>6}  {'Len':>3}  {'Eff':3}  {'Name'}")
    print(f"{'-'*40}")
    for opcode, info in sorted(lookup.lookup.items()):
        length = 'var' if info.variable else str(info.length)
        print(f"  0x{opcode:02X}  {length:>3}  {'yes' if info.effective else 'no':3}  {info.name}")


if __name__ == '__main__':
    main()
