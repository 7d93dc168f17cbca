"""Rebuild a match board from its revealed seed.

Usage:
    python -m minematch.verify <seed>
    python -m minematch.verify <seed> --grid-size 10 --bomb-count 25
"""
import argparse
import sys

from minematch.board import generate_board, render_ascii, verify_board
from minematch.errors import BoardConfigError
from minematch.types import MatchConfig


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Verify a minematch board from its seed")
    parser.add_argument("seed", help="Seed revealed after settlement")
    parser.add_argument("--grid-size", type=int, default=MatchConfig.grid_size)
    parser.add_argument("--bomb-count", type=int, default=MatchConfig.bomb_count)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        bombs = verify_board(args.seed, args.grid_size, args.bomb_count)
    except BoardConfigError as error:
        print(f"error: {error}", file=sys.stderr)
        return 2

    print(f"Seed: {args.seed}")
    print(f"Grid: {args.grid_size}x{args.grid_size}")
    print(f"Bombs: {args.bomb_count}")
    print()
    print("Bomb positions (x,y):")
    for x, y in sorted(bombs):
        print(f"  {x},{y}")
    print()
    print("Board (X = bomb, digits = adjacent bombs):")
    print(render_ascii(generate_board(args.seed, args.grid_size, args.bomb_count)))
    return 0


if __name__ == "__main__":
    sys.exit(main())
