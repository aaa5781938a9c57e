#!/usr/bin/env python3
# ruff: noqa: E402
from __future__ import annotations

import argparse
import time
import os
import sys

# Allow running this script directly via `python scripts/perft.py`
# by adding the repo root (which contains `draughts/`) to sys.path.
REPO_ROOT = os.path.dirname(os.path.dirname(__file__))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from draughts.engine.board import STARTPOS_LAYOUT
from draughts.engine.game import Game
from draughts.engine.perft import perft


def main() -> None:
    parser = argparse.ArgumentParser(description="Count positions reachable in N plies from a layout")
    parser.add_argument(
        "--layout", type=str, default=STARTPOS_LAYOUT, help="board layout (default: start position)"
    )
    parser.add_argument("--depth", type=int, default=4, help="ply depth (default: 4)")
    args = parser.parse_args()

    game = Game.from_layout(args.layout)
    start = time.perf_counter()
    nodes = perft(game, args.depth)
    dt = time.perf_counter() - start
    print(f"nodes={nodes} depth={args.depth} time_ms={int(dt*1000)}")


if __name__ == "__main__":
    main()
