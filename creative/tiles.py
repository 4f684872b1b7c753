"""
Special-tile generation and trigger detection.
"""

from typing import FrozenSet, Iterable, List, Optional, Tuple

from engine.rng import RandomSource

from .types import SpecialTile, TileType

Cell = Tuple[int, int]

# Cumulative thresholds for a uniform roll
TILE_TYPE_WEIGHTS = (
    (0.20, TileType.GOLD),
    (0.60, TileType.PURPLE),
    (0.85, TileType.RED),
    (1.00, TileType.BARRIER),
)
TILE_TYPE_WEIGHTS_BARRIERS_CAPPED = (
    (0.235, TileType.GOLD),
    (0.705, TileType.PURPLE),
    (1.00, TileType.RED),
)


def roll_tile_type(rng: RandomSource, barriers_capped: bool = False) -> TileType:
    """Weighted tile type; barriers drop out of the table once capped."""
    table = TILE_TYPE_WEIGHTS_BARRIERS_CAPPED if barriers_capped else TILE_TYPE_WEIGHTS
    roll = rng.random()
    for threshold, tile_type in table:
        if roll < threshold:
            return tile_type
    return table[-1][1]


def in_safe_zone(row: int, col: int, board_size: int, radius: int) -> bool:
    """True when (row, col) is within ``radius`` (Chebyshev, exclusive) of a start corner."""
    last = board_size - 1
    for corner_row, corner_col in ((0, 0), (0, last), (last, 0), (last, last)):
        if abs(row - corner_row) < radius and abs(col - corner_col) < radius:
            return True
    return False


def _far_enough(row: int, col: int, tiles: Iterable[SpecialTile], min_distance: int) -> bool:
    return all(abs(row - t.row) + abs(col - t.col) >= min_distance for t in tiles)


def generate_special_tiles(
    rng: RandomSource,
    board_size: int = 20,
    min_tiles: int = 10,
    max_tiles: int = 14,
    max_barriers: int = 3,
    safe_zone_radius: int = 3,
    min_distance: int = 2,
) -> List[SpecialTile]:
    """
    Scatter special tiles over the board.

    Candidates outside the corner safe zones are shuffled and taken in
    order, skipping any cell closer than ``min_distance`` (Manhattan) to a
    tile already placed.

    Args:
        rng: Random source for the count, shuffle and type rolls
        board_size: Side length of the board
        min_tiles: Lower bound of the tile count (inclusive)
        max_tiles: Upper bound of the tile count (inclusive)
        max_barriers: Barrier cap
        safe_zone_radius: Corner exclusion radius
        min_distance: Minimum spacing between tiles

    Returns:
        Tiles in placement order
    """
    count = rng.randint(min_tiles, max_tiles)
    candidates = [
        (row, col)
        for row in range(board_size)
        for col in range(board_size)
        if not in_safe_zone(row, col, board_size, safe_zone_radius)
    ]
    rng.shuffle(candidates)

    tiles: List[SpecialTile] = []
    barrier_count = 0
    for row, col in candidates:
        if len(tiles) >= count:
            break
        if not _far_enough(row, col, tiles, min_distance):
            continue
        tile_type = roll_tile_type(rng, barriers_capped=barrier_count >= max_barriers)
        if tile_type == TileType.BARRIER:
            barrier_count += 1
        tiles.append(SpecialTile(row=row, col=col, type=tile_type))
    return tiles


def barrier_cells(tiles: Iterable[SpecialTile]) -> FrozenSet[Cell]:
    """Cells that no piece may cover."""
    return frozenset(t.cell for t in tiles if t.type == TileType.BARRIER)


def overlaps_barrier(cells: Iterable[Cell], tiles: Iterable[SpecialTile]) -> bool:
    barriers = barrier_cells(tiles)
    return any(cell in barriers for cell in cells)


def find_triggered_tiles(cells: Iterable[Cell], tiles: Iterable[SpecialTile]) -> List[SpecialTile]:
    """
    Unused, non-barrier tiles under ``cells``, in the order the cells are
    given (row-major for a placed piece).
    """
    by_cell = {t.cell: t for t in tiles if not t.used and t.type != TileType.BARRIER}
    triggered = []
    for cell in cells:
        tile = by_cell.get(cell)
        if tile is not None and tile not in triggered:
            triggered.append(tile)
    return triggered


def tile_at(tiles: Iterable[SpecialTile], row: int, col: int) -> Optional[SpecialTile]:
    for tile in tiles:
        if tile.row == row and tile.col == col:
            return tile
    return None
