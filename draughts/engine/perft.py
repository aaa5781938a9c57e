from __future__ import annotations

from copy import deepcopy
from typing import Iterator

from .game import Game, PlyOutcome


def perft(game: Game, depth: int) -> int:
    """Count the positions reachable from ``game`` in ``depth`` plies.

    Definition:
    - depth == 0 returns 1 (the current node).
    - depth > 0 returns the sum over all child positions' perft(depth-1).

    A multi-jump is expanded inside its ply, so every distinct jump sequence
    is one child. Both peers must agree on these counts for their replicas to
    stay in step.
    """
    if depth < 0:
        raise ValueError("depth must be >= 0")
    if depth == 0:
        return 1

    nodes = 0
    for child in _ply_children(game):
        nodes += perft(child, depth - 1)
    return nodes


def _ply_children(game: Game) -> Iterator[Game]:
    for move in game.legal_moves():
        child = deepcopy(game)
        res = child.apply_move(move)
        if res.outcome is PlyOutcome.CONTINUATION_REQUIRED:
            yield from _ply_children(child)
        else:
            yield child
