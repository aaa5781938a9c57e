from __future__ import annotations


class IllegalMoveError(ValueError):
    """A move was applied that the local replica does not consider legal."""

    def __init__(self, message: str, move: object = None) -> None:
        super().__init__(message)
        self.move = move
