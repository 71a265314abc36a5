"""Tests for the command stream decoder."""

from dataclasses import replace

import pytest
from command_stream import decode_commands, decode_fixed_parameters, read_variable_parameters
from byte_cursor import ByteCursor
from opcode_lookup import OPCODES
from replay_builder import build, chat, command, hotkey, move, select, train, wait


class TestFrameMarkers:
    """Tests for frame-advance markers."""

    def test_single_increments(self):
        """Test 240 single-frame markers advance to frame 240."""
        result = decode_commands(b'\x00' * 240)
        assert result.final_frame == 240
        assert result.commands == []
        assert not result.truncated

    def test_skip_markers(self):
        """Test 1, 2 and 4 byte skip markers."""
        stream = b'\x01\x10' + b'\x02\x00\x01' + b'\x03\x00\x00\x01\x00'
        result = decode_commands(stream)
        assert result.final_frame == 0x10 + 0x100 + 0x10000

    def test_frames_stamped_on_commands(self):
        """Test commands carry the running frame."""
        stream = train(0, 7) + wait(30) + train(0, 7) + wait(300) + move(1, 5, 6)
        result = decode_commands(stream, players=[0, 1])
        assert [c.frame for c in result.commands] == [0, 30, 330]

    def test_truncated_skip_marker(self):
        """Test a skip marker cut off by the end of the buffer."""
        result = decode_commands(b'\x00\x02\x01')
        assert result.truncated
        assert result.final_frame == 1


class TestCommands:
    """Tests for known opcodes."""

    def test_train(self):
        """Test a Train command."""
        result = decode_commands(train(0, 65))
        assert len(result.commands) == 1
        c = result.commands[0]
        assert c.opcode == 0x1E
        assert c.name == 'Train'
        assert c.player == 0
        assert c.effective
        assert c.parameters == {'entity_id': 65}

    def test_build(self):
        """Test a Build command with coordinates."""
        c = decode_commands(build(1, 109, 64, 96)).commands[0]
        assert c.parameters == {'entity_id': 109, 'x': 64, 'y': 96}

    def test_select_and_hotkey(self):
        """Test small fixed layouts."""
        cmds = decode_commands(select(0, 3, 7) + hotkey(0, 1, 4)).commands
        assert cmds[0].parameters == {'count': 3, 'entity_type': 7}
        assert cmds[1].parameters == {'hotkey_type': 1, 'hotkey': 4}

    def test_zero_length_opcode(self):
        """Test an opcode without parameters."""
        c = decode_commands(command(0x1A, 2)).commands[0]
        assert c.name == 'Stop'
        assert c.parameters == {}

    def test_raw_layout(self):
        """Test opcodes without a named layout keep raw bytes."""
        c = decode_commands(command(0x16, 0, bytes(range(8)))).commands[0]
        assert c.parameters == {'raw': list(range(8))}

    def test_ineffective_opcode(self):
        """Test network opcodes are not effective."""
        c = decode_commands(command(0x36, 0, b'\x00' * 6)).commands[0]
        assert c.name == 'Sync'
        assert not c.effective

    def test_truncated_parameters(self):
        """Test a command cut short ends the stream without emitting it."""
        result = decode_commands(train(0, 7) + build(0, 109)[:4])
        assert len(result.commands) == 1
        assert result.truncated


class TestResync:
    """Tests for unknown opcodes and bad players."""

    def test_unknown_then_known(self):
        """Test an unknown opcode followed by a valid command."""
        result = decode_commands(b'\xee' + train(0, 7))
        assert result.unknown_opcodes == 1
        assert [c.name for c in result.commands] == ['Train']

    def test_unknown_consumes_tentative_player(self):
        """Test the byte after an unknown opcode is skipped when it is a slot id."""
        result = decode_commands(b'\xee\x01' + train(1, 7))
        assert result.unknown_opcodes == 1
        assert len(result.commands) == 1
        assert result.commands[0].player == 1

    def test_unknown_consumes_slot_count_byte(self):
        """Test a byte equal to the slot count is still taken as the tentative player."""
        result = decode_commands(b'\xee\x08' + train(0, 7))
        assert result.unknown_opcodes == 1
        assert [c.name for c in result.commands] == ['Train']

    def test_unknown_leaves_larger_byte(self):
        """Test a byte past the slot count is decoded as the next opcode."""
        result = decode_commands(b'\xee\x09' + b'\x00\x01\x02')
        assert result.unknown_opcodes == 1
        assert result.commands[0].name == 'Select'

    def test_out_of_range_player_dropped(self):
        """Test a player id past the slot count drops the command."""
        result = decode_commands(bytes([0x1A, 200]) + train(0, 7))
        assert result.dropped == 1
        assert [c.name for c in result.commands] == ['Train']

    def test_player_not_in_roster(self):
        """Test in-range players missing from the roster are consumed and dropped."""
        result = decode_commands(train(5, 7) + train(0, 64), players=[0, 1])
        assert result.dropped == 1
        assert [c.player for c in result.commands] == [0]
        assert result.commands[0].parameters['entity_id'] == 64

    def test_all_garbage(self):
        """Test a stream of unknown opcodes."""
        result = decode_commands(b'\xfe' * 50)
        assert result.commands == []
        assert result.unknown_opcodes == 50

    def test_iteration_cap(self):
        """Test hitting the iteration cap returns what was decoded."""
        result = decode_commands(train(0, 7) + b'\x00' * 100, max_iterations=10)
        assert result.iteration_cap_hit
        assert len(result.commands) == 1
        assert result.iterations == 10

    def test_monotonic_frames(self):
        """Test frames never decrease across a mixed stream."""
        stream = b''
        for i in range(20):
            stream += wait(i % 4 + 1) + b'\xee' + train(i % 2, 7) + bytes([0x1A, 200])
        frames = [c.frame for c in decode_commands(stream).commands]
        assert frames == sorted(frames)


class TestVariableLength:
    """Tests for chat-like records."""

    def test_null_terminated(self):
        """Test the default NUL rule."""
        result = decode_commands(chat(0, 'gl hf') + train(0, 7))
        assert result.commands[0].parameters == {'message': 'gl hf'}
        assert result.commands[1].name == 'Train'

    def test_prefixed(self):
        """Test the length-prefixed rule."""
        stream = chat(1, 'gg', rule='prefixed') + train(1, 7)
        result = decode_commands(stream, variable_length_rule='prefixed')
        assert result.commands[0].parameters == {'message': 'gg'}
        assert len(result.commands) == 2

    def test_fixed(self):
        """Test the fixed-width rule."""
        stream = chat(0, 'hi', rule='fixed', length=80) + train(0, 7)
        result = decode_commands(stream, variable_length_rule='fixed')
        assert result.commands[0].parameters == {'message': 'hi'}
        assert len(result.commands) == 2

    def test_null_rule_capped(self):
        """Test an unterminated message stops at the cap."""
        cursor = ByteCursor(b'x' * 100)
        assert read_variable_parameters(cursor, 'null', 10) == {'message': 'x' * 10}
        assert cursor.position == 10

    def test_null_rule_runs_off_end(self):
        """Test an unterminated message shorter than the cap is truncation."""
        result = decode_commands(command(0x5C, 0, b'abc'))
        assert result.truncated
        assert result.commands == []

    def test_unknown_rule(self):
        """Test an unknown rule is rejected."""
        with pytest.raises(ValueError):
            decode_commands(b'', variable_length_rule='guess')


class TestParameterDecoding:
    """Tests for decode_fixed_parameters."""

    def test_short_block_falls_back_to_raw(self):
        """Test a block too short for its layout."""
        assert decode_fixed_parameters(OPCODES[0x0C], b'\x01\x02') == {'raw': [1, 2]}

    def test_long_raw_block_skipped(self):
        """Test raw blocks over 32 bytes are not kept."""
        info = replace(OPCODES[0x3D], length=40)
        assert decode_fixed_parameters(info, bytes(40)) == {}
