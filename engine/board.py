"""
Blokus board model: a square grid of owner marks with bounds checks.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

import numpy as np


class PlayerColor(Enum):
    """Player colors in seat order. The value is the mark written on the board."""
    RED = 1
    YELLOW = 2
    BLUE = 3
    GREEN = 4

    @classmethod
    def seats(cls, count: int) -> List["PlayerColor"]:
        """Colors used by a game with ``count`` players."""
        if not 1 <= count <= 4:
            raise ValueError(f"Player count must be between 1 and 4, got {count}")
        return list(cls)[:count]


@dataclass
class Position:
    """Represents a position on the board."""
    row: int
    col: int

    def __hash__(self):
        return hash((self.row, self.col))

    def __eq__(self, other):
        return self.row == other.row and self.col == other.col


@dataclass(frozen=True)
class CellChange:
    """Absolute value written to one cell (0 clears it)."""
    row: int
    col: int
    color: int


class Board:
    """
    Blokus game board.

    The board is an N x N grid (N=20 by default) where:
    - 0 represents empty space
    - 1-4 represent player colors (RED, YELLOW, BLUE, GREEN)

    The board holds data only; placement rules live in
    ``engine.placement.PlacementValidator``.
    """

    SIZE = 20

    def __init__(self, size: int = SIZE):
        self.size = size
        self.grid = np.zeros((size, size), dtype=int)
        last = size - 1
        self.player_start_corners: Dict[PlayerColor, Position] = {
            PlayerColor.RED: Position(0, 0),
            PlayerColor.YELLOW: Position(0, last),
            PlayerColor.BLUE: Position(last, last),
            PlayerColor.GREEN: Position(last, 0),
        }

    def is_valid_position(self, pos: Position) -> bool:
        """Check if position is within board bounds."""
        return 0 <= pos.row < self.size and 0 <= pos.col < self.size

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.size and 0 <= col < self.size

    def get_cell(self, pos: Position) -> int:
        """Get the value at a position, -1 when off the board."""
        if not self.is_valid_position(pos):
            return -1
        return int(self.grid[pos.row, pos.col])

    def is_empty(self, pos: Position) -> bool:
        """Check if a position is empty."""
        return self.get_cell(pos) == 0

    def get_player_at(self, pos: Position) -> Optional[PlayerColor]:
        """Get the color at a position, or None if empty or off the board."""
        value = self.get_cell(pos)
        if value <= 0:
            return None
        return PlayerColor(value)

    def get_edge_adjacent_positions(self, pos: Position) -> List[Position]:
        """Get positions that share an edge (not diagonal)."""
        positions = []
        for dr, dc in [(-1, 0), (1, 0), (0, -1), (0, 1)]:
            new_pos = Position(pos.row + dr, pos.col + dc)
            if self.is_valid_position(new_pos):
                positions.append(new_pos)
        return positions

    def get_corner_adjacent_positions(self, pos: Position) -> List[Position]:
        """Get positions that are diagonally adjacent (corner touching)."""
        positions = []
        for dr, dc in [(-1, -1), (-1, 1), (1, -1), (1, 1)]:
            new_pos = Position(pos.row + dr, pos.col + dc)
            if self.is_valid_position(new_pos):
                positions.append(new_pos)
        return positions

    def start_corner(self, color: PlayerColor) -> Position:
        return self.player_start_corners[color]

    def count_cells(self, color: PlayerColor) -> int:
        """Number of cells owned by ``color``."""
        return int(np.count_nonzero(self.grid == color.value))

    def has_cells(self, color: PlayerColor) -> bool:
        return bool(np.any(self.grid == color.value))

    def get_frontier(self, color: PlayerColor) -> Set[Tuple[int, int]]:
        """
        Empty cells where ``color`` may grow: diagonally adjacent to its
        pieces but not edge-adjacent to them. A color with no cells yet
        has only its start corner.
        """
        if not self.has_cells(color):
            corner = self.start_corner(color)
            return {(corner.row, corner.col)} if self.is_empty(corner) else set()

        frontier = set()
        rows, cols = np.nonzero(self.grid == color.value)
        for row, col in zip(rows.tolist(), cols.tolist()):
            for pos in self.get_corner_adjacent_positions(Position(row, col)):
                if not self.is_empty(pos):
                    continue
                if any(self.get_cell(n) == color.value for n in self.get_edge_adjacent_positions(pos)):
                    continue
                frontier.add((pos.row, pos.col))
        return frontier

    def apply_changes(self, changes: Iterable[CellChange]) -> int:
        """
        Write absolute cell values.

        Out-of-range changes are skipped so a malformed delta cannot corrupt
        the grid.

        Returns:
            Number of cells written
        """
        written = 0
        for change in changes:
            if self.in_bounds(change.row, change.col):
                self.grid[change.row, change.col] = change.color
                written += 1
        return written

    def copy(self) -> "Board":
        """Create a deep copy of the board."""
        new_board = Board(self.size)
        new_board.grid = self.grid.copy()
        return new_board

    def to_list(self) -> List[List[int]]:
        return self.grid.tolist()

    @classmethod
    def from_list(cls, cells: List[List[int]]) -> "Board":
        """Build a board from a nested list snapshot."""
        grid = np.array(cells, dtype=int)
        if grid.ndim != 2 or grid.shape[0] != grid.shape[1]:
            raise ValueError(f"Board snapshot must be square, got shape {grid.shape}")
        board = cls(grid.shape[0])
        board.grid = grid
        return board

    def __eq__(self, other):
        if not isinstance(other, Board):
            return NotImplemented
        return self.size == other.size and np.array_equal(self.grid, other.grid)

    def __str__(self) -> str:
        """String representation of the board."""
        result = []
        for row in range(self.size):
            row_str = ""
            for col in range(self.size):
                value = self.grid[row, col]
                if value == 0:
                    row_str += "."
                else:
                    row_str += str(value)
            result.append(row_str)
        return "\n".join(result)
