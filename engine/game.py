"""
Game state and the pure transition functions that drive it.

Every reducer takes a ``GameState`` and returns a new one; the input is
never mutated. ``TurnScheduler`` owns the live state and swaps it for the
reducer output, which keeps pre-move snapshots valid for rollback and replay.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Set, Tuple

from .board import Board, CellChange, PlayerColor
from .move_generator import Move
from .pieces import PieceGenerator
from .scoring import ScoringEngine


class GamePhase(str, Enum):
    """Lifecycle of a game. ``settling`` exists for the wire format only."""
    WAITING = "waiting"
    PLAYING = "playing"
    SETTLING = "settling"
    FINISHED = "finished"


@dataclass
class PlayerState:
    """One seat at the table."""
    player_id: str
    name: str
    color: PlayerColor
    is_ai: bool = False
    difficulty: str = "medium"
    used_pieces: Set[int] = field(default_factory=set)
    removed_pieces: Set[int] = field(default_factory=set)
    score: int = 0
    is_settled: bool = False
    is_current_turn: bool = False
    is_offline: bool = False

    def available_piece_ids(self) -> List[int]:
        """Pieces neither placed nor lost to an effect, by id."""
        gone = self.used_pieces | self.removed_pieces
        return [piece_id for piece_id in PieceGenerator.all_piece_ids() if piece_id not in gone]

    def has_piece(self, piece_id: int) -> bool:
        return piece_id in self.available_piece_ids()

    def copy(self) -> "PlayerState":
        return PlayerState(
            player_id=self.player_id,
            name=self.name,
            color=self.color,
            is_ai=self.is_ai,
            difficulty=self.difficulty,
            used_pieces=set(self.used_pieces),
            removed_pieces=set(self.removed_pieces),
            score=self.score,
            is_settled=self.is_settled,
            is_current_turn=self.is_current_turn,
            is_offline=self.is_offline,
        )


@dataclass(frozen=True)
class MoveRecord:
    """
    One entry of the append-only move log.

    ``kind`` is ``place`` for a normal placement, ``territory`` for a free
    cell granted by an effect and ``undo`` for the compensating entry that
    clears an earlier placement (``undoes`` holds its move number).
    """
    move_number: int
    player_id: str
    color: PlayerColor
    piece_id: int
    orientation: int
    anchor_row: int
    anchor_col: int
    board_changes: Tuple[CellChange, ...]
    timestamp: float
    kind: str = "place"
    undoes: Optional[int] = None


@dataclass
class GameState:
    """Complete, copyable state of one game."""
    board: Board
    players: List[PlayerState]
    current_player_index: int = 0
    phase: GamePhase = GamePhase.WAITING
    time_limit: int = 60
    time_left: int = 60
    turn_count: int = 0
    moves: List[MoveRecord] = field(default_factory=list)
    selected_piece: Optional[int] = None
    timeout_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def current_player(self) -> PlayerState:
        return self.players[self.current_player_index]

    def player_index(self, player_id: str) -> Optional[int]:
        for i, player in enumerate(self.players):
            if player.player_id == player_id:
                return i
        return None

    def player_by_id(self, player_id: str) -> Optional[PlayerState]:
        index = self.player_index(player_id)
        return None if index is None else self.players[index]

    def player_by_color(self, color: PlayerColor) -> Optional[PlayerState]:
        for player in self.players:
            if player.color == color:
                return player
        return None

    def all_settled(self) -> bool:
        return all(p.is_settled for p in self.players)

    def copy(self) -> "GameState":
        """Deep copy; move records are immutable and shared."""
        return GameState(
            board=self.board.copy(),
            players=[p.copy() for p in self.players],
            current_player_index=self.current_player_index,
            phase=self.phase,
            time_limit=self.time_limit,
            time_left=self.time_left,
            turn_count=self.turn_count,
            moves=list(self.moves),
            selected_piece=self.selected_piece,
            timeout_counts=dict(self.timeout_counts),
        )


def create_game_state(players: List[PlayerState], board_size: int = Board.SIZE, time_limit: int = 60) -> GameState:
    """Fresh ``waiting`` state for the given seats."""
    return GameState(
        board=Board(board_size),
        players=[p.copy() for p in players],
        time_limit=time_limit,
        time_left=time_limit,
        timeout_counts={p.player_id: 0 for p in players},
    )


def recompute_scores(state: GameState, bonuses: Optional[Mapping[str, int]] = None) -> None:
    """
    Set every player's score to base + bonus.

    Mutates ``state``; reducers call it on their own copy only.
    """
    bonuses = bonuses or {}
    for player in state.players:
        base = ScoringEngine.base_score(state.board, player.color)
        player.score = max(0, base + bonuses.get(player.player_id, 0))


def _set_turn_flags(state: GameState) -> None:
    for i, player in enumerate(state.players):
        player.is_current_turn = state.phase == GamePhase.PLAYING and i == state.current_player_index


def start_game(state: GameState, first_index: int) -> GameState:
    """Move a waiting game to ``playing`` with ``first_index`` to act."""
    new_state = state.copy()
    new_state.phase = GamePhase.PLAYING
    new_state.current_player_index = first_index
    new_state.time_left = new_state.time_limit
    new_state.turn_count = 1
    _set_turn_flags(new_state)
    return new_state


def apply_move(
    state: GameState,
    player_index: int,
    move: Move,
    bonuses: Optional[Mapping[str, int]] = None,
    timestamp: Optional[float] = None,
) -> Tuple[GameState, MoveRecord]:
    """
    Write a validated placement to the board.

    Marks the piece used, appends the move record, recomputes scores and
    clears the player's consecutive-timeout count. Legality is the caller's
    responsibility.
    """
    new_state = state.copy()
    player = new_state.players[player_index]
    changes = tuple(CellChange(r, c, player.color.value) for r, c in move.get_cells())
    new_state.board.apply_changes(changes)
    player.used_pieces.add(move.piece_id)

    record = MoveRecord(
        move_number=len(new_state.moves) + 1,
        player_id=player.player_id,
        color=player.color,
        piece_id=move.piece_id,
        orientation=move.orientation,
        anchor_row=move.anchor_row,
        anchor_col=move.anchor_col,
        board_changes=changes,
        timestamp=time.time() if timestamp is None else timestamp,
    )
    new_state.moves.append(record)
    new_state.timeout_counts[player.player_id] = 0
    new_state.selected_piece = None
    recompute_scores(new_state, bonuses)
    return new_state, record


def place_free_cell(
    state: GameState,
    player_index: int,
    row: int,
    col: int,
    bonuses: Optional[Mapping[str, int]] = None,
    timestamp: Optional[float] = None,
) -> Tuple[GameState, MoveRecord]:
    """Write a single granted cell (no piece consumed) and log it as ``territory``."""
    new_state = state.copy()
    player = new_state.players[player_index]
    changes = (CellChange(row, col, player.color.value),)
    new_state.board.apply_changes(changes)
    record = MoveRecord(
        move_number=len(new_state.moves) + 1,
        player_id=player.player_id,
        color=player.color,
        piece_id=0,
        orientation=0,
        anchor_row=row,
        anchor_col=col,
        board_changes=changes,
        timestamp=time.time() if timestamp is None else timestamp,
        kind="territory",
    )
    new_state.moves.append(record)
    recompute_scores(new_state, bonuses)
    return new_state, record


def last_live_placement(state: GameState, player_id: str, exclude_move: Optional[int] = None) -> Optional[MoveRecord]:
    """Most recent ``place`` record of a player that has not been undone (skipping ``exclude_move``)."""
    undone = {m.undoes for m in state.moves if m.kind == "undo"}
    for record in reversed(state.moves):
        if record.kind == "place" and record.player_id == player_id and record.move_number not in undone and record.move_number != exclude_move:
            return record
    return None


def undo_last_move(
    state: GameState,
    player_index: int,
    bonuses: Optional[Mapping[str, int]] = None,
    timestamp: Optional[float] = None,
    exclude_move: Optional[int] = None,
) -> Tuple[GameState, Optional[MoveRecord]]:
    """
    Clear the player's most recent live placement.

    The cleared cells go back to empty, the piece returns to the player's
    hand and a compensating ``undo`` record is appended. Returns the state
    unchanged and ``None`` when there is nothing to undo.
    """
    player = state.players[player_index]
    target = last_live_placement(state, player.player_id, exclude_move)
    if target is None:
        return state, None

    new_state = state.copy()
    changes = tuple(CellChange(c.row, c.col, 0) for c in target.board_changes)
    new_state.board.apply_changes(changes)
    new_state.players[player_index].used_pieces.discard(target.piece_id)

    record = MoveRecord(
        move_number=len(new_state.moves) + 1,
        player_id=player.player_id,
        color=player.color,
        piece_id=target.piece_id,
        orientation=target.orientation,
        anchor_row=target.anchor_row,
        anchor_col=target.anchor_col,
        board_changes=changes,
        timestamp=time.time() if timestamp is None else timestamp,
        kind="undo",
        undoes=target.move_number,
    )
    new_state.moves.append(record)
    recompute_scores(new_state, bonuses)
    return new_state, record


def remove_piece(state: GameState, player_index: int, piece_id: int) -> GameState:
    """Take an unused piece out of a player's hand for the rest of the game."""
    new_state = state.copy()
    player = new_state.players[player_index]
    if piece_id not in player.used_pieces:
        player.removed_pieces.add(piece_id)
    return new_state


def next_active_player(players: List[PlayerState], current_index: int) -> Optional[int]:
    """
    Index of the next unsettled player after ``current_index``.

    The search wraps around and checks ``current_index`` itself last, so
    it returns the current index only when everyone else is settled and
    ``None`` when every player is settled.
    """
    count = len(players)
    for step in range(1, count + 1):
        index = (current_index + step) % count
        if not players[index].is_settled:
            return index
    return None


def finish_game(state: GameState) -> GameState:
    new_state = state.copy()
    new_state.phase = GamePhase.FINISHED
    new_state.time_left = 0
    _set_turn_flags(new_state)
    return new_state


def advance_turn(state: GameState, made_progress: bool = True) -> GameState:
    """
    Hand the turn to the next active player.

    When nobody else is active and the current player passes the turn
    without placing (timeout), they are settled so the game ends instead
    of looping on a single idle player.
    """
    next_index = next_active_player(state.players, state.current_player_index)
    if next_index is None:
        return finish_game(state)

    new_state = state.copy()
    if next_index == state.current_player_index and not made_progress:
        new_state.players[next_index].is_settled = True
        return finish_game(new_state)

    new_state.current_player_index = next_index
    new_state.turn_count += 1
    new_state.time_left = new_state.time_limit
    new_state.selected_piece = None
    _set_turn_flags(new_state)
    return new_state


def settle_player(state: GameState, player_index: int) -> GameState:
    """
    Mark a player settled. Ends the game when everyone is settled and
    passes the turn on when the settled player was the one to move.
    """
    new_state = state.copy()
    new_state.players[player_index].is_settled = True
    if new_state.all_settled():
        return finish_game(new_state)
    if player_index == new_state.current_player_index:
        return advance_turn(new_state)
    return new_state


def record_timeout(state: GameState, max_timeouts: int) -> Tuple[GameState, bool]:
    """
    Count a timeout strike for the current player.

    Returns the new state and whether the player was force-settled because
    the strike count reached ``max_timeouts``.
    """
    new_state = state.copy()
    player = new_state.current_player
    strikes = new_state.timeout_counts.get(player.player_id, 0) + 1
    new_state.timeout_counts[player.player_id] = strikes
    if strikes >= max_timeouts:
        return settle_player(new_state, new_state.current_player_index), True
    return advance_turn(new_state, made_progress=False), False
