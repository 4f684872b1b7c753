"""
Heuristic agent for Blokus with positional preferences.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import AbstractSet, Any, Dict, List, Optional, Tuple

from engine.board import Board, PlayerColor
from engine.move_generator import LegalMoveGenerator, Move
from engine.pieces import PieceGenerator

logger = logging.getLogger(__name__)

Cell = Tuple[int, int]

# Tile values for creative games
GOLD_TILE_VALUE = 50.0
PURPLE_TILE_VALUE = 15.0
RED_TILE_PENALTY = -15.0
RED_TILE_SHIELDED_VALUE = 35.0


@dataclass
class MoveContext:
    """
    Creative-mode information the agent may use when scoring a move.

    Attributes:
        special_tiles: Unused special tiles by cell, as ``gold``/``purple``/``red``
        shielded: The player holds score_shield or steel
        big_piece_ban: Pieces of size 4 or more may not be placed
    """
    special_tiles: Dict[Cell, str] = field(default_factory=dict)
    shielded: bool = False
    big_piece_ban: bool = False


class HeuristicAgent:
    """
    Deterministic greedy agent:
    - Try the largest remaining size class first
    - Prefer cells on the perimeter and near corners
    - Favor own-color surroundings, avoid opponents and barriers
    - Reward diagonal contact with own pieces
    - In creative games, chase gold/purple tiles and avoid red ones
    """

    def __init__(self, weights: Optional[Dict[str, float]] = None):
        """
        Initialize heuristic agent.

        Args:
            weights: Optional overrides for the scoring weights
        """
        self.move_generator = LegalMoveGenerator()

        # Heuristic weights
        self.edge_weight = 1.0
        self.corner_weight = 0.5
        self.neighborhood_weight = 1.0
        self.corner_adjacency_weight = 1.0
        self.special_tile_weight = 1.0
        if weights:
            self.set_weights(weights)

    def make_move(
        self,
        board: Board,
        color: PlayerColor,
        piece_ids: List[int],
        blocked: Optional[AbstractSet[Cell]] = None,
        context: Optional[MoveContext] = None,
    ) -> Optional[Move]:
        """
        Choose a move, or None when no remaining piece fits anywhere.

        Args:
            board: Current board state
            color: Color to move
            piece_ids: Unused piece ids
            blocked: Cells treated as occupied (barriers)
            context: Creative-mode extras

        Returns:
            Best move of the largest size class that has any legal move
        """
        start = time.perf_counter()
        by_size: Dict[int, List[int]] = {}
        for piece_id in piece_ids:
            piece = PieceGenerator.get_piece_by_id(piece_id)
            if piece is None:
                continue
            if context is not None and context.big_piece_ban and piece.is_large:
                continue
            by_size.setdefault(piece.size, []).append(piece_id)

        for size in sorted(by_size, reverse=True):
            legal_moves = self.move_generator.get_legal_moves(board, color, by_size[size], blocked)
            if not legal_moves:
                continue
            move = self.select_action(board, color, legal_moves, blocked, context)
            logger.debug(
                f"HeuristicAgent: color={color.name}, size={size}, candidates={len(legal_moves)}, "
                f"chosen={move}, elapsed={time.perf_counter() - start:.4f}s"
            )
            return move

        logger.debug(f"HeuristicAgent: no legal move for color={color.name}")
        return None

    def select_action(
        self,
        board: Board,
        color: PlayerColor,
        legal_moves: List[Move],
        blocked: Optional[AbstractSet[Cell]] = None,
        context: Optional[MoveContext] = None,
    ) -> Optional[Move]:
        """
        Select the highest-scoring move; ties keep the earliest candidate.

        Args:
            board: Current board state
            color: Color making the move
            legal_moves: List of legal moves available

        Returns:
            Selected move, or None if no legal moves available
        """
        best_move = None
        best_score = float("-inf")
        for move in legal_moves:
            score = self.evaluate_move(board, color, move, blocked, context)
            if score > best_score:
                best_score = score
                best_move = move
        return best_move

    def evaluate_move(
        self,
        board: Board,
        color: PlayerColor,
        move: Move,
        blocked: Optional[AbstractSet[Cell]] = None,
        context: Optional[MoveContext] = None,
    ) -> float:
        """
        Weighted positional score of a move.

        Args:
            board: Current board state
            color: Color making the move
            move: Move to evaluate

        Returns:
            Heuristic score for the move
        """
        cells = move.get_cells()
        cell_set = set(cells)
        blocked = blocked or frozenset()

        score = 0.0
        score += self.edge_weight * self._edge_score(board.size, cells)
        score += self.corner_weight * self._corner_score(board.size, cells)
        score += self.neighborhood_weight * self._neighborhood_score(board, color, cells, cell_set, blocked)
        score += self.corner_adjacency_weight * self._corner_adjacency_score(board, color, cells, cell_set)
        if context is not None:
            score += self.special_tile_weight * self._special_tile_score(cells, context)
        return score

    def _edge_score(self, size: int, cells: List[Cell]) -> float:
        """Higher for cells close to the perimeter."""
        half = (size - 1) / 2.0
        return sum(half - min(r, c, size - 1 - r, size - 1 - c) for r, c in cells)

    def _corner_score(self, size: int, cells: List[Cell]) -> float:
        """Higher for cells close to any board corner (Manhattan distance)."""
        last = size - 1
        total = 0.0
        for r, c in cells:
            nearest = min(r + c, r + (last - c), (last - r) + c, (last - r) + (last - c))
            total += last - nearest
        return total

    def _neighborhood_score(
        self,
        board: Board,
        color: PlayerColor,
        cells: List[Cell],
        cell_set: set,
        blocked: AbstractSet[Cell],
    ) -> float:
        """
        3x3 surroundings of every cell: own color +2, opponent or barrier -3,
        empty +0.5. The piece's own cells are not counted.
        """
        grid = board.grid
        size = board.size
        own = color.value
        total = 0.0
        for r, c in cells:
            for dr in (-1, 0, 1):
                for dc in (-1, 0, 1):
                    nr, nc = r + dr, c + dc
                    if (nr, nc) in cell_set or not (0 <= nr < size and 0 <= nc < size):
                        continue
                    value = grid[nr, nc]
                    if (nr, nc) in blocked:
                        total -= 3.0
                    elif value == own:
                        total += 2.0
                    elif value != 0:
                        total -= 3.0
                    else:
                        total += 0.5
        return total

    def _corner_adjacency_score(
        self,
        board: Board,
        color: PlayerColor,
        cells: List[Cell],
        cell_set: set,
    ) -> float:
        """+8 for every distinct own cell touching the piece diagonally."""
        grid = board.grid
        size = board.size
        touching = set()
        for r, c in cells:
            for dr, dc in ((-1, -1), (-1, 1), (1, -1), (1, 1)):
                nr, nc = r + dr, c + dc
                if (nr, nc) in cell_set or not (0 <= nr < size and 0 <= nc < size):
                    continue
                if grid[nr, nc] == color.value:
                    touching.add((nr, nc))
        return 8.0 * len(touching)

    def _special_tile_score(self, cells: List[Cell], context: MoveContext) -> float:
        total = 0.0
        for cell in cells:
            tile_type = context.special_tiles.get(cell)
            if tile_type == "gold":
                total += GOLD_TILE_VALUE
            elif tile_type == "purple":
                total += PURPLE_TILE_VALUE
            elif tile_type == "red":
                total += RED_TILE_SHIELDED_VALUE if context.shielded else RED_TILE_PENALTY
        return total

    def get_action_info(self) -> Dict[str, Any]:
        """Get information about the agent."""
        return {
            "name": "HeuristicAgent",
            "type": "heuristic",
            "description": "Largest-piece-first greedy agent with positional scoring",
            "weights": {
                "edge": self.edge_weight,
                "corner": self.corner_weight,
                "neighborhood": self.neighborhood_weight,
                "corner_adjacency": self.corner_adjacency_weight,
                "special_tile": self.special_tile_weight,
            },
        }

    def reset(self):
        """Reset agent state (no-op for heuristic agent)."""
        pass

    def set_weights(self, weights: Dict[str, float]):
        """
        Set heuristic weights.

        Args:
            weights: Dictionary of weight names and values
        """
        if "edge" in weights:
            self.edge_weight = weights["edge"]
        if "corner" in weights:
            self.corner_weight = weights["corner"]
        if "neighborhood" in weights:
            self.neighborhood_weight = weights["neighborhood"]
        if "corner_adjacency" in weights:
            self.corner_adjacency_weight = weights["corner_adjacency"]
        if "special_tile" in weights:
            self.special_tile_weight = weights["special_tile"]
