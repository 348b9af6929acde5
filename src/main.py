# Command line entry point for the tournament progression engine

import argparse
import logging
import os
import random
import sys

import yaml

from progression.elimination import draw_knockout_stage
from progression.errors import TournamentError, ValidationError
from progression.group_draw import compute_group_draw
from progression.models import Team
from progression.qualifying import compute_qualifying_draw
from settings import get_data_dir, load_settings
from tournament_store import TournamentStore


def load_teams(file_path):
    """Load a YAML list of team mappings."""
    with open(file_path, mode='r', encoding='utf-8') as file:
        data = yaml.safe_load(file)
    if not isinstance(data, list):
        raise ValidationError(f"{file_path} must contain a list of teams")
    teams = []
    for entry in data:
        if not isinstance(entry, dict):
            raise ValidationError(f"Invalid team entry in {file_path}: {entry!r}")
        try:
            teams.append(Team(**entry))
        except TypeError as e:
            raise ValidationError(f"Invalid team entry {entry.get('name', entry)!r}: {e}")
    return teams


def _open_store(args, settings):
    return TournamentStore(
        tournament_id=args.tournament,
        data_dir=args.data_dir,
        lock_timeout=settings['lock_timeout'],
        teams_per_group=settings['teams_per_group'],
    )


def _rng(args):
    return random.Random(args.seed) if args.seed is not None else random.Random()


def _slot_name(slot):
    return slot if isinstance(slot, str) else slot.name


def cmd_draw_groups(args, settings):
    teams = load_teams(args.teams)
    groups = compute_group_draw(
        teams,
        number_of_groups=settings['number_of_groups'],
        teams_per_group=settings['teams_per_group'],
        max_draw_attempts=settings['max_draw_attempts'],
        max_assignment_attempts=settings['max_assignment_attempts'],
        rng=_rng(args),
    )

    print("\n--- Group Stage Draw ---")
    for group in groups:
        print(f"\nGroup {group['group']}")
        for team in group['teams']:
            marker = " (Q)" if team.is_from_qualifying_stage else ""
            print(f"  Bombo {team.bombo}: {team.name} [{team.country}]{marker}")

    if args.save:
        store = _open_store(args, settings)
        store.register_teams_and_draw(teams, groups)
        print(f"\nSaved to {store.path}")


def cmd_draw_qualifying(args, settings):
    draw = compute_qualifying_draw(load_teams(args.teams), rng=_rng(args))

    for number, phase_key in enumerate(('phase1', 'phase2', 'phase3'), start=1):
        print(f"\n--- Qualifying Phase {number} ---")
        for match in draw[phase_key]:
            print(f"  {match['id']}: {_slot_name(match['first_team'])} vs {_slot_name(match['second_team'])}")

    summary = draw['summary']
    print(f"\n{summary['total_teams']} teams, {summary['qualified_to_group_stage']} qualify to the group stage")


def cmd_bracket(args, settings):
    store = _open_store(args, settings)
    bracket = store.bracket()
    if bracket is None:
        knockout = draw_knockout_stage(store.knockout_groups(), rng=_rng(args))
        store.save_bracket(knockout['rounds'][0]['matchups'])
        bracket = store.bracket()

    for round_data in bracket['rounds']:
        print(f"\n--- {round_data['round']} ---")
        for matchup in round_data['matchups']:
            team1, team2 = matchup['teams']
            result = f" -> {matchup['winner']}" if matchup['winner'] else ""
            print(f"  {matchup['matchup_id']}: {team1} vs {team2}{result}")

    if bracket['champion']:
        print(f"\nChampion: {bracket['champion']}")


def cmd_standings(args, settings):
    standings = _open_store(args, settings).group_standings()
    if not standings:
        print("No group draw saved yet.")
        return

    for label, rows in standings.items():
        print(f"\nGroup {label}")
        print(f"  {'Team':<24} {'P':>2} {'W':>2} {'D':>2} {'L':>2} {'GF':>3} {'GA':>3} {'GD':>4} {'Pts':>4}")
        for row in rows:
            print(f"  {str(row.tournament_team_id):<24} {row.matches_played:>2} {row.wins:>2} "
                  f"{row.draws:>2} {row.losses:>2} {row.goals_for:>3} {row.goals_against:>3} "
                  f"{row.goal_difference:>4} {row.points:>4}")


def build_parser():
    parser = argparse.ArgumentParser(
        prog='tournament-progression',
        description='Draws, standings and knockout brackets for a club football tournament',
    )
    parser.add_argument('--data-dir', default=None,
                        help='Data directory (default: $TOURNAMENT_DATA_DIR or ./data)')
    parser.add_argument('--tournament', default='default', help='Tournament id within the data directory')
    parser.add_argument('--seed', type=int, default=None, help='Seed for the random draws')

    subparsers = parser.add_subparsers(dest='command', required=True)

    draw_groups = subparsers.add_parser('draw-groups', help='Draw the group stage from a teams YAML file')
    draw_groups.add_argument('teams', help='YAML file with a list of teams')
    draw_groups.add_argument('--save', action='store_true', help='Register the teams and store the draw')
    draw_groups.set_defaults(func=cmd_draw_groups)

    draw_qualifying = subparsers.add_parser('draw-qualifying', help='Draw the three qualifying phases')
    draw_qualifying.add_argument('teams', help='YAML file with a list of teams')
    draw_qualifying.set_defaults(func=cmd_draw_qualifying)

    bracket = subparsers.add_parser('bracket', help='Draw or show the knockout bracket')
    bracket.set_defaults(func=cmd_bracket)

    standings = subparsers.add_parser('standings', help='Show the group tables')
    standings.set_defaults(func=cmd_standings)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    data_dir = args.data_dir or get_data_dir()
    settings = load_settings(os.path.join(data_dir, 'settings.yaml'))

    level = getattr(logging, str(settings['log_level']).upper(), logging.INFO)
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    try:
        args.func(args, settings)
    except (TournamentError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
