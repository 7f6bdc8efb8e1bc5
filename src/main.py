# Command-line report of season standings or a tournament bracket

import argparse
import os
import sys

from competition.bracket_view import get_tournament_bracket
from competition.config import load_settings
from competition.errors import CompetitionError
from competition.standings import get_standings
from competition.store import Store


def print_standings(store, season_id, age_group=None):
    rows = get_standings(store, season_id, age_group)
    if not rows:
        print(f"No standings for season {season_id}.")
        return
    print(f"# Season {season_id}" + (f" ({age_group})" if age_group else ""))
    for row in rows:
        print(f"{row['rank']:>3}. {row['team_name'] or row['team_id']:<30} "
              f"{row['wins']}-{row['losses']}  sets {row['sets_won']}-{row['sets_lost']}  "
              f"pts {row['points_scored']}-{row['points_allowed']}  {row['win_percentage']:.3f}")


def print_bracket(store, tournament_id, settings):
    bracket = get_tournament_bracket(store, tournament_id, settings)
    print(f"# {bracket['name']} ({bracket['status']})")
    for pool_name, pool_rows in bracket['pools'].items():
        print()
        print(f"Pool {pool_name}")
        for position, row in enumerate(pool_rows, start=1):
            print(f"  {position}. {row['team_name'] or row['team_id']:<30} "
                  f"{row['wins']}-{row['losses']}  set diff {row['set_diff']:+d}  point diff {row['point_diff']:+d}")
    for round_number, round_data in bracket['rounds'].items():
        print()
        print(f"{round_data['name']} (round {round_number})")
        for match in round_data['matches']:
            home = match['home_team_name'] or 'TBD'
            away = match['away_team_name'] or 'TBD'
            print(f"  M{match['match_number']}: {home} vs {away}  [{match['status']}] "
                  f"{match['home_score']}-{match['away_score']}")
    if bracket['champion_team_id'] is not None:
        print()
        print(f"Champion: team {bracket['champion_team_id']}")


def main():
    script_dir = os.path.dirname(__file__)
    base_dir = os.path.dirname(script_dir)

    parser = argparse.ArgumentParser(description="Print standings or a tournament bracket.")
    parser.add_argument('--data-dir', default=os.environ.get('COMPETITION_DATA_DIR', os.path.join(base_dir, 'data')))
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument('--season', type=int, help="season id to print standings for")
    group.add_argument('--tournament', type=int, help="tournament id to print the bracket for")
    parser.add_argument('--age-group', help="limit standings to one age group")
    args = parser.parse_args()

    settings = load_settings(args.data_dir)
    store = Store(args.data_dir, lock_timeout=settings['lock_timeout_seconds'])
    try:
        if args.season is not None:
            print_standings(store, args.season, args.age_group)
        else:
            print_bracket(store, args.tournament, settings)
    except CompetitionError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
