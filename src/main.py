# Command line entry point: replay a tournament file and print its state

import argparse
import os
import sys

import yaml

from ttengine.config import configure_logging, load_settings
from ttengine.errors import TournamentError
from ttengine.tournament import Tournament


def load_tournament_file(file_path, settings=None):
    with open(file_path, mode='r', encoding='utf-8') as file:
        record = yaml.safe_load(file) or {}
    return Tournament.replay(record, settings)


def format_bracket(bracket_snapshot):
    lines = []
    for round_info in bracket_snapshot['rounds']:
        lines.append(f"\n{round_info['name']}")
        for node in round_info['matches']:
            slot_a = node['slot_a'] if node['slot_a'] is not None else 'TBD'
            slot_b = node['slot_b'] if node['slot_b'] is not None else 'TBD'
            seed_a = f"[{node['seed_a']}] " if node['seed_a'] else ''
            seed_b = f"[{node['seed_b']}] " if node['seed_b'] else ''
            line = f"  {node['round']}-{node['position']}: {seed_a}{slot_a} vs {seed_b}{slot_b}  ({node['state']})"
            match = node['match']
            if match:
                line += f"  {match['sets_a']}:{match['sets_b']}"
                if match['forfeit_a'] or match['forfeit_b']:
                    line += ' (forfeit)'
                line += f" -> {node['winner_id']}"
            lines.append(line)
    if bracket_snapshot['champion'] is not None:
        lines.append(f"\nChampion: {bracket_snapshot['champion']}")
    return '\n'.join(lines)


def format_standings(standings):
    lines = [f"{'Place':>5}  {'Player':<24} {'W':>3} {'L':>3} {'Sets':>7}"]
    for row in standings:
        sets = f"{row.get('sets_won', 0)}-{row.get('sets_lost', 0)}"
        lines.append(f"{row['place']:>5}  {str(row['name']):<24} {row.get('wins', '-'):>3} "
                     f"{row.get('losses', '-'):>3} {sets:>7}")
    return '\n'.join(lines)


def print_tournament(snapshot):
    print(f"{snapshot['name']} ({snapshot['format']}) - {snapshot['status']}"
          f"{' (cancelled)' if snapshot['cancelled'] else ''}")
    print(f"Matches: {snapshot['expected_matches'] - snapshot['matches_remaining']}"
          f"/{snapshot['expected_matches']}")
    if 'bracket' in snapshot:
        print(format_bracket(snapshot['bracket']))
    elif snapshot['standings']:
        print()
        print(format_standings(snapshot['standings']))
    for child in snapshot['children']:
        print(f"\n--- {child['name']} ---")
        print_tournament(child)
    if snapshot['final_ratings']:
        print("\nRatings after the tournament:")
        for member_id, rating in snapshot['final_ratings'].items():
            print(f"  {member_id}: {rating}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Replay a tournament YAML file and print its bracket or standings'
    )
    parser.add_argument('tournament_file', help='Tournament record (YAML)')
    parser.add_argument('--config', help='Engine settings file (default: $TT_ENGINE_CONFIG)')
    args = parser.parse_args(argv)

    settings = load_settings(args.config)
    configure_logging(settings)

    if not os.path.exists(args.tournament_file):
        print(f"Error: {args.tournament_file} not found", file=sys.stderr)
        return 1
    try:
        tournament = load_tournament_file(args.tournament_file, settings)
    except yaml.YAMLError as e:
        print(f"Error: Failed to parse {args.tournament_file}: {e}", file=sys.stderr)
        return 2
    except TournamentError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 3

    print_tournament(tournament.snapshot())
    return 0


if __name__ == "__main__":
    sys.exit(main())
