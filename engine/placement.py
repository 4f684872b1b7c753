"""
Placement rules for the corner-touch Blokus variant.
"""

from typing import AbstractSet, List, Optional, Tuple

import numpy as np

from .board import Board, PlayerColor
from .pieces import Piece, shape_to_offsets

Cell = Tuple[int, int]

_EDGE_STEPS = ((-1, 0), (1, 0), (0, -1), (0, 1))
_CORNER_STEPS = ((-1, -1), (-1, 1), (1, -1), (1, 1))


def is_first_move(board: Board, color: PlayerColor) -> bool:
    """A color is on its first move while it owns no cell on the board."""
    return not board.has_cells(color)


def piece_cells(shape: np.ndarray, anchor_row: int, anchor_col: int) -> List[Cell]:
    return [(anchor_row + r, anchor_col + c) for r, c in shape_to_offsets(shape)]


class PlacementValidator:
    """
    Decides whether a piece may legally be placed.

    Rules:
    1. Every cell lies on the board and is empty (and not blocked)
    2. No cell shares an edge with a cell of the same color
    3. After the color's first move, at least one cell touches a same-color
       cell diagonally
    4. The color's first move covers its start corner

    Violations are reported as ``False``; nothing here raises.
    """

    def can_place(
        self,
        board: Board,
        piece: Piece,
        anchor_row: int,
        anchor_col: int,
        color: PlayerColor,
        blocked: Optional[AbstractSet[Cell]] = None,
    ) -> bool:
        return self.can_place_cells(
            board, piece_cells(piece.shape, anchor_row, anchor_col), color, blocked
        )

    def can_place_cells(
        self,
        board: Board,
        cells: List[Cell],
        color: PlayerColor,
        blocked: Optional[AbstractSet[Cell]] = None,
    ) -> bool:
        """Same rules as ``can_place`` for an already translated cell list."""
        if not cells:
            return False

        grid = board.grid
        size = board.size
        for r, c in cells:
            if r < 0 or r >= size or c < 0 or c >= size:
                return False
            if grid[r, c] != 0:
                return False
            if blocked and (r, c) in blocked:
                return False

        if is_first_move(board, color):
            corner = board.start_corner(color)
            return (corner.row, corner.col) in cells and self._no_edge_contact(grid, size, cells, color.value)

        return self._check_adjacency_rules(grid, size, cells, color.value)

    def _no_edge_contact(self, grid: np.ndarray, size: int, cells: List[Cell], value: int) -> bool:
        for r, c in cells:
            for dr, dc in _EDGE_STEPS:
                nr, nc = r + dr, c + dc
                if 0 <= nr < size and 0 <= nc < size and grid[nr, nc] == value:
                    return False
        return True

    def _check_adjacency_rules(self, grid: np.ndarray, size: int, cells: List[Cell], value: int) -> bool:
        """
        Edge contact with the same color is forbidden; corner contact is required.
        """
        has_corner_connection = False
        for r, c in cells:
            for dr, dc in _EDGE_STEPS:
                nr, nc = r + dr, c + dc
                if 0 <= nr < size and 0 <= nc < size and grid[nr, nc] == value:
                    return False
            if not has_corner_connection:
                for dr, dc in _CORNER_STEPS:
                    nr, nc = r + dr, c + dc
                    if 0 <= nr < size and 0 <= nc < size and grid[nr, nc] == value:
                        has_corner_connection = True
                        break
        return has_corner_connection

    def explain(
        self,
        board: Board,
        piece: Piece,
        anchor_row: int,
        anchor_col: int,
        color: PlayerColor,
        blocked: Optional[AbstractSet[Cell]] = None,
    ) -> Optional[str]:
        """
        Human-readable reason a placement is illegal, or None when it is legal.

        Used for rejection messages; ``can_place`` remains the source of truth.
        """
        cells = piece_cells(piece.shape, anchor_row, anchor_col)
        for r, c in cells:
            if not board.in_bounds(r, c):
                return "Move is out of bounds."
        for r, c in cells:
            if board.grid[r, c] != 0:
                return "Cell is already occupied."
            if blocked and (r, c) in blocked:
                return "Cell is blocked by a barrier."
        if is_first_move(board, color):
            corner = board.start_corner(color)
            if (corner.row, corner.col) not in cells:
                return f"First move must cover the start corner ({corner.row}, {corner.col})."
        if not self._no_edge_contact(board.grid, board.size, cells, color.value):
            return "Piece shares an edge with your own color."
        if not self.can_place_cells(board, cells, color, blocked):
            return "Piece must touch your own color at a corner."
        return None
