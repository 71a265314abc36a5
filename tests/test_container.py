"""Tests for header and player table decoding."""

import pytest
from container import (
    COMMAND_SECTION_OFFSET,
    UNKNOWN_MAP,
    InvalidFormat,
    check_signature,
    decode_container,
    filter_roster,
)
from models import PlayerRecord
from replay_builder import (
    KIND_COMPUTER,
    RACE_PROTOSS,
    RACE_RANDOM,
    RACE_TERRAN,
    RACE_ZERG,
    build_replay,
    player,
    two_players,
)
from resolvers import (
    is_plausible_frame_count,
    is_valid_map_name,
    is_valid_player_name,
    looks_like_text,
    printable_ratio,
    resolve_layered,
)


class TestSignature:
    """Tests for the signature check."""

    def test_both_tags_accepted(self):
        """Test legacy and current signatures."""
        assert check_signature(build_replay(signature=b'reRS')) == b'reRS'
        assert check_signature(build_replay(signature=b'seRS')) == b'seRS'

    def test_wrong_tag(self):
        """Test an unknown tag is fatal."""
        with pytest.raises(InvalidFormat):
            decode_container(build_replay(signature=b'XXXX'))

    def test_short_buffer(self):
        """Test a buffer too short to hold the tag."""
        with pytest.raises(InvalidFormat):
            check_signature(b'\x00' * 14)


class TestValidators:
    """Tests for the text and number validators."""

    def test_looks_like_text(self):
        """Test the text validator."""
        assert looks_like_text(b'Lost Temple')
        assert not looks_like_text(b'1234')
        assert not looks_like_text(b'aaaab')
        assert not looks_like_text(b'')

    def test_printable_ratio_boundary(self):
        """Test the 0.7 printable threshold is measured on the raw bytes."""
        assert printable_ratio(b'Temples\x01\x02\x03') == 0.7
        assert looks_like_text(b'Temples\x01\x02\x03')
        assert not looks_like_text(b'Temple\x01\x02\x03')
        assert not looks_like_text(bytes(range(1, 10)) + b'Abc')

    def test_control_byte_run(self):
        """Test a run of four identical control bytes is rejected."""
        assert printable_ratio(b'Lost\x01\x01\x01\x01 Temple Map') >= 0.7
        assert not looks_like_text(b'Lost\x01\x01\x01\x01 Temple Map')
        assert looks_like_text(b'Lost\x01\x01\x01 Temple Map')

    def test_non_ascii_bytes_count_as_printable(self):
        """Test UTF-8 names pass the byte-level checks."""
        assert looks_like_text('투혼 Fighting'.encode('utf-8'))

    def test_map_name_length(self):
        """Test map names need three characters."""
        assert is_valid_map_name(b'Fighting Spirit')
        assert not is_valid_map_name(b'Ab')
        assert not is_valid_map_name(b'Ab\x01\x01\x01\x01cd')

    def test_player_names(self):
        """Test the player name validator."""
        assert is_valid_player_name(b'Alice')
        assert is_valid_player_name(b'[KT]Flash')
        assert is_valid_player_name('저그왕'.encode('utf-8'))
        assert not is_valid_player_name(b'A')
        assert not is_valid_player_name(b'x' * 25)
        assert not is_valid_player_name(b'Observer')
        assert not is_valid_player_name(b'closed')
        assert not is_valid_player_name(b'--')
        assert not is_valid_player_name(b'Bo\x07b')

    def test_frame_count(self):
        """Test plausible frame bounds."""
        assert is_plausible_frame_count(24)
        assert not is_plausible_frame_count(0)
        assert not is_plausible_frame_count(0xFFFFFFFF)
        assert not is_plausible_frame_count(None)

    def test_resolve_layered_order(self):
        """Test the first valid attempt wins and reports its tier."""
        attempts = [('a', lambda: None), ('b', lambda: 3), ('c', lambda: 10)]
        assert resolve_layered(attempts, lambda v: v > 5) == (10, 'c')
        assert resolve_layered(attempts, lambda v: v > 1) == (3, 'b')
        assert resolve_layered(attempts, lambda v: v > 50) == (None, None)


class TestHeaderFields:
    """Tests for header field resolution."""

    def test_primary_layout(self):
        """Test every field read from its primary offset."""
        result = decode_container(build_replay(two_players(), frames=7200, map_name='Python'))
        header = result.header
        assert header.signature == 'seRS'
        assert header.version == '1.21+'
        assert header.engine == 'Brood War'
        assert header.frames == 7200
        assert header.duration == '05:00'
        assert header.map_name == 'Python'
        assert header.game_type_name == 'One on One'
        assert not header.low_confidence
        assert result.fallbacks == {}
        assert result.errors == []
        assert result.command_offset == COMMAND_SECTION_OFFSET

    def test_legacy_frames_mirror(self):
        """Test the frame count falls back to the prolog mirror."""
        data = build_replay(two_players(), frames=0, legacy_frames=1440, signature=b'reRS')
        result = decode_container(data)
        assert result.header.frames == 1440
        assert result.fallbacks['frames'] == 'alternate@0x8'
        assert result.header.version == '1.18-1.20'

    def test_frames_default(self):
        """Test an implausible frame count defaults to 0 with low confidence."""
        result = decode_container(build_replay(two_players(), frames=0))
        assert result.header.frames == 0
        assert result.header.low_confidence
        assert result.fallbacks['frames'] == 'default'

    def test_map_alternate_offset(self):
        """Test the map name is found at an alternate offset."""
        data = bytearray(build_replay(two_players(), map_name=None))
        data[0x68:0x68 + 11] = b'Destination'
        result = decode_container(bytes(data))
        assert result.header.map_name == 'Destination'
        assert result.fallbacks['map_name'] == 'alternate@0x68'

    def test_map_garbage_at_primary(self):
        """Test control bytes at the primary offset fall through to an alternate."""
        data = bytearray(build_replay(two_players(), map_name=None))
        data[0x61:0x61 + 11] = b'Destination'
        data[0x71:0x71 + 12] = bytes(range(1, 10)) + b'Abc'
        result = decode_container(bytes(data))
        assert result.header.map_name == 'Destination'
        assert result.fallbacks['map_name'] == 'alternate@0x61'

    def test_map_garbage_only(self):
        """Test garbage with no other candidate gives the placeholder."""
        data = bytearray(build_replay(two_players(), map_name=None))
        data[0x71:0x71 + 8] = b'Ab\x01\x01\x01\x01cd'
        result = decode_container(bytes(data))
        assert result.header.map_name == UNKNOWN_MAP
        assert result.header.low_confidence

    def test_control_bytes_in_player_name(self):
        """Test a slot whose name holds control bytes is not a player."""
        data = bytearray(build_replay(two_players()))
        data[0xB1 + 36 + 11:0xB1 + 36 + 14] = b'B\x07b'
        result = decode_container(bytes(data))
        assert [p.name for p in result.players] == ['Alice']

    def test_map_scan(self):
        """Test the map name scan over the header window."""
        data = bytearray(build_replay(two_players(), map_name=None))
        data[0x40:0x40 + 9] = b'Neo Sylph'
        result = decode_container(bytes(data))
        assert result.header.map_name == 'Neo Sylph'
        assert result.fallbacks['map_name'] == 'scan'

    def test_map_placeholder(self):
        """Test the placeholder map name."""
        result = decode_container(build_replay(two_players(), map_name=None))
        assert result.header.map_name == UNKNOWN_MAP
        assert result.header.low_confidence

    def test_unknown_game_type(self):
        """Test an unknown game type defaults to 0."""
        result = decode_container(build_replay(two_players(), game_type=0x77))
        assert result.header.game_type == 0
        assert result.header.game_type_name == 'Unknown'
        assert result.fallbacks['game_type'] == 'default'


class TestPlayerTable:
    """Tests for roster decoding."""

    def test_two_humans(self):
        """Test the primary player table."""
        result = decode_container(build_replay(two_players()))
        assert [(p.slot, p.name, p.race, p.kind) for p in result.players] == [
            (0, 'Alice', 'Zerg', 'human'),
            (1, 'Bob', 'Terran', 'human'),
        ]

    def test_random_race(self):
        """Test random race codes."""
        result = decode_container(build_replay([player('Carol', RACE_RANDOM), player('Dan', 3)]))
        assert [p.race for p in result.players] == ['Random', 'Random']

    def test_alternate_table_offset(self):
        """Test a table at an alternate base offset."""
        result = decode_container(build_replay(two_players(), table_offset=0xA1))
        assert [p.name for p in result.players] == ['Alice', 'Bob']
        assert result.fallbacks['players'] == 'alternate@0xA1'

    def test_scan_with_other_slot_size(self):
        """Test the scored scan finds a table with 40-byte slots."""
        players = [player('Alice', RACE_ZERG), player('Bob', RACE_TERRAN), player('Eve', RACE_PROTOSS)]
        result = decode_container(build_replay(players, table_offset=0xC4, slot_size=40))
        assert [p.name for p in result.players] == ['Alice', 'Bob', 'Eve']
        assert result.fallbacks['players'] == 'scan'

    def test_computers_only_when_no_humans(self):
        """Test computer slots are kept when no human slot is valid."""
        players = [player('Bot One', RACE_ZERG, KIND_COMPUTER), player('Bot Two', RACE_TERRAN, KIND_COMPUTER)]
        result = decode_container(build_replay(players))
        assert [p.kind for p in result.players] == ['computer', 'computer']

    def test_computers_dropped_with_humans(self):
        """Test computer slots are excluded when a human exists."""
        players = [player('Alice', RACE_ZERG), player('Bot', RACE_TERRAN, KIND_COMPUTER)]
        result = decode_container(build_replay(players))
        assert [p.name for p in result.players] == ['Alice']

    def test_reserved_names_skipped(self):
        """Test reserved slot names are not players."""
        players = [player('Alice', RACE_ZERG), player('Observer', RACE_TERRAN)]
        result = decode_container(build_replay(players))
        assert [p.name for p in result.players] == ['Alice']

    def test_synthesized_roster(self):
        """Test two placeholder players when no table is found."""
        result = decode_container(build_replay([]))
        assert [p.name for p in result.players] == ['Player 1', 'Player 2']
        assert all(p.race == 'Random' for p in result.players)
        assert result.roster_synthesized

    def test_duplicate_player_ids(self):
        """Test slot ids stay unique."""
        players = [player('Alice', RACE_ZERG, player_id=0), player('Bob', RACE_TERRAN, player_id=0)]
        result = decode_container(build_replay(players))
        assert sorted(p.slot for p in result.players) == [0, 1]

    def test_filter_roster(self):
        """Test filter_roster on an empty-only roster."""
        empty = PlayerRecord(slot=0, name='Alice', race='Zerg', team=0, color=0, kind='empty')
        assert filter_roster([empty]) == []

    def test_non_ascii_name(self):
        """Test non-ASCII player names survive decoding."""
        result = decode_container(build_replay([player('저그왕', RACE_ZERG), player('Bob')]))
        assert result.players[0].name == '저그왕'
