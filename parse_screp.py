#!/usr/bin/env python3
"""
Brood War Replay Parser
Decodes .rep files into header, players, commands and per-player analytics.

Usage: python parse_screp.py <replay_file.rep> [more.rep ...]
"""

import json
import logging
import multiprocessing
import os
import sys
from collections import Counter
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import replace
from typing import Dict, List, Optional

from command_stream import (
    DEFAULT_VARIABLE_LENGTH_RULE,
    MAX_ITERATIONS,
    MAX_VARIABLE_LENGTH,
    VARIABLE_LENGTH_RULES,
    decode_commands,
)
from container import (
    MAX_PLAYER_SLOTS,
    TIER_DEFAULT,
    TIER_SYNTHESIZED,
    InvalidFormat,
    check_signature,
    decode_container,
)
from models import (
    RELIABILITY_HIGH,
    RELIABILITY_LOW,
    RELIABILITY_MEDIUM,
    DecodeResult,
    ParseStatistics,
)
from payload import expand_payload
from replay_analyzers import CONFIDENCE_THRESHOLD, analyze, frame_to_time

logger = logging.getLogger(__name__)

TIER_COMMAND_STREAM = 'command-stream'

# Share of unknown opcodes (relative to decoded commands) that downgrades reliability
UNKNOWN_OPCODE_RATIO = 0.05


def assess_reliability(stats: ParseStatistics) -> str:
    """Grade a decode from the fallback tiers that fired and the stream counters."""
    fallbacks = stats.fallbacks
    if fallbacks.get('players') == TIER_SYNTHESIZED:
        return RELIABILITY_LOW
    if fallbacks.get('frames') == TIER_DEFAULT:
        return RELIABILITY_LOW
    if stats.unknown_opcodes and not stats.commands and not stats.dropped_commands:
        return RELIABILITY_LOW

    if fallbacks or stats.payload_method == 'raw-fallback':
        return RELIABILITY_MEDIUM
    if stats.truncated or stats.iteration_cap_hit:
        return RELIABILITY_MEDIUM
    if stats.unknown_opcodes > UNKNOWN_OPCODE_RATIO * stats.commands:
        return RELIABILITY_MEDIUM
    return RELIABILITY_HIGH


def decode_replay(data: bytes, *,
                  max_iterations: int = MAX_ITERATIONS,
                  variable_length_rule: str = DEFAULT_VARIABLE_LENGTH_RULE,
                  max_variable_length: int = MAX_VARIABLE_LENGTH) -> DecodeResult:
    """Decode a complete replay buffer.

    Raises InvalidFormat when the signature is missing or unrecognised.
    Anything else degrades the result instead of failing: see
    ``DecodeResult.stats`` for what fell back and how reliable the result is.
    """
    data = bytes(data)
    check_signature(data)

    payload = expand_payload(data)
    container = decode_container(payload.data)
    header = container.header
    fallbacks = dict(container.fallbacks)
    errors = list(payload.errors) + list(container.errors)
    if payload.method == 'raw-fallback':
        fallbacks['payload'] = payload.method

    stream = decode_commands(
        payload.data,
        container.command_offset,
        [p.slot for p in container.players],
        max_slots=MAX_PLAYER_SLOTS,
        max_iterations=max_iterations,
        variable_length_rule=variable_length_rule,
        max_variable_length=max_variable_length,
    )

    if fallbacks.get('frames') == TIER_DEFAULT and stream.final_frame > 0:
        header = replace(header, frames=stream.final_frame)
        fallbacks['frames'] = TIER_COMMAND_STREAM
        errors.append(f"frames: using final command stream frame {stream.final_frame}")

    if stream.unknown_opcodes:
        errors.append(f"commands: skipped {stream.unknown_opcodes} unknown opcodes")
    if stream.dropped:
        errors.append(f"commands: dropped {stream.dropped} commands with an invalid player")
    if stream.truncated:
        errors.append(f"commands: stream truncated at offset {stream.end_offset}")
    if stream.iteration_cap_hit:
        errors.append(f"commands: stopped after {stream.iterations} iterations")

    stats = ParseStatistics(
        total_bytes=len(data),
        expanded_bytes=len(payload.data),
        payload_method=payload.method,
        command_bytes=max(0, len(payload.data) - container.command_offset),
        commands=len(stream.commands),
        dropped_commands=stream.dropped,
        unknown_opcodes=stream.unknown_opcodes,
        iterations=stream.iterations,
        iteration_cap_hit=stream.iteration_cap_hit,
        truncated=stream.truncated,
        fallbacks=fallbacks,
        errors=errors,
    )
    stats.reliability = assess_reliability(stats)
    if stats.reliability == RELIABILITY_LOW:
        logger.info("Low reliability decode: %s", '; '.join(errors) or 'no details')

    return DecodeResult(
        header=header,
        players=container.players,
        commands=stream.commands,
        analytics=analyze(header, container.players, stream.commands),
        stats=stats,
    )


class ReplayParser:
    def __init__(self, filepath: str, **options):
        self.filepath = filepath
        self.options = options
        self.data = b""
        self.result: Optional[DecodeResult] = None

    def load(self):
        """Read the replay file"""
        with open(self.filepath, 'rb') as f:
            self.data = f.read()
        return self

    def parse(self):
        """Decode the loaded bytes"""
        self.result = decode_replay(self.data, **self.options)
        return self

    def report(self):
        """Print analysis report"""
        result = self.result
        header = result.header
        stats = result.stats

        print("=" * 80)
        print("BROOD WAR REPLAY ANALYSIS")
        print("=" * 80)

        print(f"\nFile: {os.path.basename(self.filepath)}")
        print(f"Signature: {header.signature} ({header.version})")
        print(f"Size: {stats.total_bytes:,} bytes ({stats.expanded_bytes:,} expanded, {stats.payload_method})")
        print(f"Reliability: {stats.reliability}")

        print(f"\n{'='*40}")
        print("GAME INFO")
        print(f"{'='*40}")
        print(f"Engine: {header.engine}")
        print(f"Map: {header.map_name}")
        print(f"Game type: {header.game_type_name}")
        confidence = " (low confidence)" if header.low_confidence else ""
        print(f"Duration: {header.duration} ({header.frames:,} frames){confidence}")

        print(f"\n{'='*40}")
        print("PLAYERS")
        print(f"{'='*40}")
        for p in result.players:
            print(f"  Slot {p.slot}: {p.name} ({p.race}, team {p.team}, {p.kind})")

        print(f"\n{'='*40}")
        print("COMMAND SUMMARY")
        print(f"{'='*40}")
        print(f"  Commands: {stats.commands:,} (dropped {stats.dropped_commands}, "
              f"unknown opcodes {stats.unknown_opcodes})")
        command_types = Counter(c.name for c in result.commands)
        for name, count in command_types.most_common(15):
            print(f"  {name:20}: {count:6}")

        print(f"\n{'='*40}")
        print("APM (Actions Per Minute)")
        print(f"{'='*40}")
        for p in result.players:
            a = result.analytics[p.slot]
            print(f"  {p.name:20}: APM {a.apm:4}  EAPM {a.eapm:4}  ({a.efficiency}% effective)")

        for p in result.players:
            a = result.analytics[p.slot]
            print(f"\n{'='*40}")
            print(f"BUILD ORDER: {p.name}")
            print(f"{'='*40}")
            if not a.build_order:
                print("  (none)")
            for e in a.build_order[:30]:
                guess = "" if e.confidence >= CONFIDENCE_THRESHOLD else f"  [guess {e.confidence}%]"
                print(f"  {e.time}  {e.supply.current:3}/{e.supply.maximum:<3} {e.action:9} {e.entity_name}{guess}")
            s = a.strategy
            print(f"  Opening: {s.opening}, economy: {s.economic_pattern}, supply: {s.supply_management}")
            if s.tech_path:
                print(f"  Tech path: {' -> '.join(s.tech_path)}")

        if stats.errors:
            print(f"\n{'='*40}")
            print("DECODE NOTES")
            print(f"{'='*40}")
            for err in stats.errors:
                print(f"  {err}")

    def to_json(self, include_commands: bool = False) -> dict:
        """Export as JSON-serializable dict"""
        data = {'file': os.path.basename(self.filepath)}
        data.update(self.result.to_dict(include_commands=include_commands))
        return data

    def export_json(self, output_path: str, include_commands: bool = True):
        """Export the decoded replay to a JSON file"""
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(self.to_json(include_commands=include_commands), f, indent=2, ensure_ascii=False)
        return output_path


def _decode_file(path: str, include_commands: bool = False, options: dict = None) -> dict:
    """Decode a single replay file. Module-level function for multiprocessing."""
    try:
        parser = ReplayParser(path, **(options or {})).load().parse()
        return {'success': True, 'path': path, 'data': parser.to_json(include_commands=include_commands)}
    except (OSError, InvalidFormat) as e:
        return {'success': False, 'path': path, 'error': str(e)}


def decode_files(paths: List[str], workers: Optional[int] = None,
                 include_commands: bool = False, **options) -> List[dict]:
    """Decode many replay files in parallel; one result dict per path, in input order."""
    if not paths:
        return []
    num_workers = workers or min(8, multiprocessing.cpu_count())
    results: Dict[str, dict] = {}
    with ProcessPoolExecutor(max_workers=num_workers) as executor:
        futures = {executor.submit(_decode_file, p, include_commands, options): p for p in paths}
        for future in as_completed(futures):
            results[futures[future]] = future.result()
    return [results[p] for p in paths]


def default_output_path(replay_path: str) -> str:
    return replay_path.rsplit('.', 1)[0] + '_screp.json'


def main(argv=None):
    import argparse

    arg_parser = argparse.ArgumentParser(
        description='Parse StarCraft: Brood War replay files (.rep)',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python parse_screp.py game.rep
  python parse_screp.py game.rep --json
  python parse_screp.py game.rep --json --include-commands --output game.json
  python parse_screp.py replays/*.rep --workers 4 --json
        """
    )
    arg_parser.add_argument('replay', nargs='+', help='Path(s) to .rep file')
    arg_parser.add_argument('--json', action='store_true',
                            help='Export the decoded replay to JSON')
    arg_parser.add_argument('--output', '-o',
                            help='Output JSON file path for a single replay (default: <replay>_screp.json)')
    arg_parser.add_argument('--quiet', '-q', action='store_true',
                            help='Suppress console output (only export JSON)')
    arg_parser.add_argument('--include-commands', action='store_true',
                            help='Include the full command list in exported JSON (can be large)')
    arg_parser.add_argument('--workers', type=int, default=None,
                            help='Worker processes when decoding several replays (default: up to 8)')
    arg_parser.add_argument('--variable-length-rule', choices=VARIABLE_LENGTH_RULES,
                            default=DEFAULT_VARIABLE_LENGTH_RULE,
                            help='How chat record lengths are read (default: %(default)s)')
    arg_parser.add_argument('--verbose', '-v', action='store_true',
                            help='Log decoder fallbacks to stderr')

    args = arg_parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(levelname)s %(name)s: %(message)s')

    missing = [p for p in args.replay if not os.path.exists(p)]
    if missing:
        print(f"Error: File not found: {missing[0]}")
        sys.exit(1)

    options = {'variable_length_rule': args.variable_length_rule}

    if len(args.replay) == 1:
        path = args.replay[0]
        parser = ReplayParser(path, **options).load()
        try:
            parser.parse()
        except InvalidFormat as e:
            print(f"Error: {path}: {e}")
            sys.exit(1)
        if not args.quiet:
            parser.report()
        if args.json:
            json_path = parser.export_json(args.output or default_output_path(path),
                                           include_commands=args.include_commands)
            if not args.quiet:
                print(f"\nExported {len(parser.result.commands):,} commands to: {json_path}")
        return

    results = decode_files(args.replay, args.workers, args.include_commands, **options)
    failures = 0
    for r in results:
        if not r['success']:
            failures += 1
            print(f"Error parsing {r['path']}: {r['error']}")
            continue
        data = r['data']
        if not args.quiet:
            names = ', '.join(p['name'] for p in data['players'])
            print(f"{r['path']}: {data['header']['map_name']} "
                  f"[{frame_to_time(data['header']['frames'])}] {names} "
                  f"({data['stats']['reliability']})")
        if args.json:
            with open(default_output_path(r['path']), 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
    if failures == len(results):
        sys.exit(1)


if __name__ == '__main__':
    main()
