"""
Gameplay agent contract used by the turn scheduler for AI seats.
"""

from __future__ import annotations

from typing import AbstractSet, Any, List, Optional, Protocol, Tuple

from engine.board import Board, PlayerColor
from engine.move_generator import Move


class GameplayAgentProtocol(Protocol):
    """
    Minimal gameplay contract for AI seats and the offline-player proxy.

    Implementations must be deterministic for identical inputs and must not
    mutate ``board``.
    """

    def make_move(
        self,
        board: Board,
        color: PlayerColor,
        piece_ids: List[int],
        blocked: Optional[AbstractSet[Tuple[int, int]]] = None,
        context: Optional[Any] = None,
    ) -> Optional[Move]:
        ...
