"""
Client-side mirror of an authoritative game.

``SyncReconciler`` keeps a local ``GameState`` that renders instantly:
own moves are validated and applied optimistically, then confirmed or
rolled back; everything else is overwritten by server pushes. The local
state is a prediction only. Every authoritative message replaces the part
of the mirror it covers by absolute value, so duplicate or reordered
pushes are harmless. Pushes that land while an own move is pending are
written to its rollback point too, so a rejection never loses them.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from pydantic import ValidationError

from engine.board import Board, CellChange, PlayerColor
from engine.game import GamePhase, GameState, PlayerState, apply_move
from engine.move_generator import Move
from engine.pieces import PieceGenerator
from engine.placement import PlacementValidator
from engine.scheduler import ActionResult, ErrorCode
from engine.scoring import ScoringEngine
from schemas.game_state import CreativeSnapshot, GameSnapshot, ItemPhaseModel, RankingEntry
from schemas.state_update import (
    FinishedPayload,
    ItemPhasePayload,
    MovePayload,
    PlayerSettledPayload,
    TimeUpdatePayload,
    TurnChangedPayload,
)
from utils.config import GameSettings

from .transport import EventBus, NotConnectedError, RequestChannel, Transport, TransportError

logger = logging.getLogger(__name__)

Cell = Tuple[int, int]
ChangeListener = Callable[[str], None]

TIME_TICK_TOLERANCE = 2


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"


@dataclass
class PendingMove:
    """A submitted move with everything needed to undo its optimistic effect."""
    move: Move
    player_id: str
    snapshot: GameState
    creative: Optional[CreativeSnapshot] = None
    submitted_at: float = field(default_factory=time.time)

    def matches(self, payload: MovePayload) -> bool:
        return (
            payload.player_id == self.player_id
            and (payload.piece_id, payload.orientation, payload.anchor_row, payload.anchor_col) == self.move.as_tuple()
        )


def state_from_snapshot(snapshot: GameSnapshot) -> GameState:
    """Build a mirror ``GameState`` from an authoritative snapshot."""
    players = [
        PlayerState(
            player_id=p.player_id,
            name=p.name,
            color=PlayerColor[p.color.upper()],
            is_ai=p.is_ai,
            used_pieces=set(p.used_pieces),
            removed_pieces=set(p.removed_pieces),
            score=p.score,
            is_settled=p.is_settled,
            is_current_turn=p.is_current_turn,
            is_offline=p.is_offline,
        )
        for p in snapshot.players
    ]
    return GameState(
        board=Board.from_list(snapshot.board),
        players=players,
        current_player_index=snapshot.current_player_index,
        phase=GamePhase(snapshot.phase),
        time_limit=snapshot.time_limit,
        time_left=snapshot.time_left,
        turn_count=snapshot.turn_count,
        timeout_counts={p.player_id: 0 for p in players},
    )


class SyncReconciler:
    """
    Mirror of one remote game for one local player.

    Args:
        player_id: The local player's id
        channel: Request channel to the authoritative server
        tolerance: Time ticks lower than ``time_left - tolerance`` are ignored
    """

    def __init__(self, player_id: str, channel: RequestChannel, tolerance: int = TIME_TICK_TOLERANCE):
        self.player_id = player_id
        self.channel = channel
        self.tolerance = tolerance
        self.validator = PlacementValidator()

        self.state: Optional[GameState] = None
        self.creative: Optional[CreativeSnapshot] = None
        self.game_id: Optional[str] = None
        self.paused = False
        self.frozen = False
        self.rankings: List[RankingEntry] = []
        self.pending: Optional[PendingMove] = None
        self.connection = ConnectionState.CONNECTED if channel.transport.connected else ConnectionState.DISCONNECTED

        self.listeners: List[ChangeListener] = []
        self._unsubscribers: List[Callable[[], None]] = []

    @classmethod
    def connect(cls, player_id: str, transport: Transport, settings: Optional[GameSettings] = None) -> "SyncReconciler":
        """Mirror wired to ``transport`` with the request timeout and tick tolerance from ``settings``."""
        settings = settings or GameSettings()
        channel = RequestChannel(transport, timeout=settings.request_timeout)
        reconciler = cls(player_id, channel, tolerance=settings.time_tick_tolerance)
        reconciler.attach()
        return reconciler

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def attach(self, bus: Optional[EventBus] = None) -> None:
        """Subscribe to every game push on ``bus`` (the channel's bus by default)."""
        bus = bus or self.channel.bus
        handlers = {
            "game.started": self._on_state,
            "game.state": self._on_state,
            "game.move": self.apply_move_push,
            "game.turnChanged": self.apply_turn_changed,
            "game.timeUpdate": self.apply_time_update,
            "game.playerSettled": self.apply_player_settled,
            "game.finished": self.apply_finished,
            "game.itemUsed": self.apply_item_used,
            "game.itemPhase": self.apply_item_phase,
            "game.paused": lambda data: self._set_paused(True),
            "game.resumed": lambda data: self._set_paused(False),
            "game.presence": self.apply_presence,
        }
        for event, handler in handlers.items():
            self._unsubscribers.append(bus.subscribe(event, handler))

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a callback run with the event name after every mirror change."""
        self.listeners.append(listener)

        def unsubscribe():
            if listener in self.listeners:
                self.listeners.remove(listener)

        return unsubscribe

    def _changed(self, event: str) -> None:
        for listener in list(self.listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Mirror listener failed on {event}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_my_turn(self) -> bool:
        return (
            self.state is not None
            and self.state.phase == GamePhase.PLAYING
            and not self.frozen
            and self.state.current_player.player_id == self.player_id
        )

    def blocked_cells(self) -> FrozenSet[Cell]:
        if self.creative is None:
            return frozenset()
        return frozenset((t.row, t.col) for t in self.creative.special_tiles if t.type == "barrier")

    def _has_status(self, status: str) -> bool:
        if self.creative is None or self.player_id not in self.creative.players:
            return False
        return any(s.type == status for s in self.creative.players[self.player_id].status_effects)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def load_snapshot(self, data: Dict[str, Any]) -> None:
        """Replace the whole mirror with an authoritative snapshot."""
        snapshot = GameSnapshot.model_validate(data)
        self.game_id = snapshot.game_id
        self.state = state_from_snapshot(snapshot)
        self.creative = snapshot.creative
        self.paused = snapshot.paused
        self.frozen = self.state.phase == GamePhase.FINISHED
        if self.pending is not None:
            # a later rejection must restore this state, not the older one
            self.pending.snapshot = self.state.copy()
            self.pending.creative = None if self.creative is None else self.creative.model_copy(deep=True)
        logger.info(
            f"Loaded snapshot of game {snapshot.game_id}: phase={snapshot.phase}, "
            f"turn={snapshot.turn_count}, moves={snapshot.move_count}"
        )
        self._changed("game.state")

    def _on_state(self, data: Dict[str, Any]) -> None:
        self.load_snapshot(data.get("snapshot", data))

    # ------------------------------------------------------------------
    # Own moves
    # ------------------------------------------------------------------

    def validate_move(self, move: Move) -> Optional[ActionResult]:
        """Local placement check for instant feedback. None means legal."""
        if self.state is None or self.state.phase != GamePhase.PLAYING or self.frozen:
            return ActionResult.fail(ErrorCode.GAME_NOT_PLAYING, "Game is not in progress")
        if self.paused:
            return ActionResult.fail(ErrorCode.GAME_PAUSED, "Game is paused")
        if not self.is_my_turn:
            return ActionResult.fail(ErrorCode.NOT_YOUR_TURN, "Not your turn")
        if self.pending is not None:
            return ActionResult.fail(ErrorCode.NOT_YOUR_TURN, "A move is already waiting for confirmation")

        player = self.state.current_player
        if move.piece_id not in PieceGenerator.all_piece_ids():
            return ActionResult.fail(ErrorCode.INVALID_PIECE, f"Unknown piece {move.piece_id}")
        if not player.has_piece(move.piece_id):
            return ActionResult.fail(ErrorCode.PIECE_USED, f"Piece {move.piece_id} is no longer available")
        piece = move.get_piece()
        if piece is None:
            return ActionResult.fail(ErrorCode.INVALID_ORIENTATION, f"Invalid orientation {move.orientation}")

        if self.creative is not None:
            phase = self.creative.item_phase
            if phase is not None and phase.player_id == self.player_id:
                return ActionResult.fail(ErrorCode.ITEM_PHASE_ACTIVE, "Use or skip your item cards first")
            if self._has_status("big_piece_ban") and piece.is_large:
                return ActionResult.fail(ErrorCode.PIECE_BANNED, "Pieces of 4 or more cells are banned this turn")

        board = self.state.board
        if not all(board.in_bounds(r, c) for r, c in move.get_cells()):
            return ActionResult.fail(ErrorCode.OUT_OF_BOUNDS, "Move is out of bounds")
        if not self.validator.can_place(
            board, piece, move.anchor_row, move.anchor_col, player.color, self.blocked_cells()
        ):
            return ActionResult.fail(ErrorCode.ILLEGAL_PLACEMENT, "Illegal placement")
        return None

    def apply_optimistic(self, move: Move) -> PendingMove:
        """Mutate the mirror as if the move succeeded and remember how to undo it."""
        pending = PendingMove(
            move=move,
            player_id=self.player_id,
            snapshot=self.state.copy(),
            creative=None if self.creative is None else self.creative.model_copy(deep=True),
        )
        index = self.state.current_player_index
        bonuses = {
            p.player_id: p.score - ScoringEngine.base_score(self.state.board, p.color)
            for p in self.state.players
        }
        self.state, _ = apply_move(self.state, index, move, bonuses=bonuses)
        self.pending = pending
        self._changed("optimistic")
        return pending

    def rollback(self, reason: str) -> None:
        """Restore the pre-move snapshot of the pending move."""
        pending = self.pending
        if pending is None:
            return
        self.state = pending.snapshot
        self.creative = pending.creative
        self.pending = None
        logger.info(f"Rolled back piece {pending.move.piece_id} ({reason})")
        self._changed("rollback")

    async def submit_move(self, move: Move) -> ActionResult:
        """
        Validate locally, apply optimistically and send the move.

        Returns:
            The server's verdict; on rejection, timeout or disconnect the
            mirror is back to its pre-move state
        """
        if self.connection != ConnectionState.CONNECTED:
            return ActionResult.fail(ErrorCode.NETWORK_ERROR, "Not connected")
        rejected = self.validate_move(move)
        if rejected:
            return rejected

        pending = self.apply_optimistic(move)
        payload = {
            "player_id": self.player_id,
            "piece_id": move.piece_id,
            "orientation": move.orientation,
            "anchor_row": move.anchor_row,
            "anchor_col": move.anchor_col,
        }
        try:
            response = await self.channel.request("game.move", payload)
        except TransportError as e:
            if self.pending is pending:
                self.rollback(f"transport: {e}")
            self.mark_disconnected(e)
            return ActionResult.fail(ErrorCode.NETWORK_ERROR, str(e))

        if response.get("success"):
            if self.pending is pending:
                self.pending = None
            return ActionResult.ok(response.get("message", ""), **(response.get("data") or {}))

        if self.pending is pending:
            self.rollback(f"rejected: {response.get('error')}")
        error = response.get("error")
        return ActionResult(
            success=False,
            message=response.get("message", "Move rejected"),
            error=ErrorCode(error) if error in ErrorCode.__members__ else None,
        )

    async def send_command(self, event: str, data: Optional[Dict[str, Any]] = None) -> ActionResult:
        """Settle, use a card or skip the item phase; no optimistic mutation."""
        payload = {"player_id": self.player_id}
        payload.update(data or {})
        try:
            response = await self.channel.request(event, payload)
        except TransportError as e:
            self.mark_disconnected(e)
            return ActionResult.fail(ErrorCode.NETWORK_ERROR, str(e))
        error = response.get("error")
        return ActionResult(
            success=bool(response.get("success")),
            message=response.get("message", ""),
            error=ErrorCode(error) if error in ErrorCode.__members__ else None,
            data=response.get("data") or {},
        )

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def mark_disconnected(self, error: Optional[TransportError] = None) -> None:
        """Connection lost: reject waiting requests and wait for a reconnect."""
        if self.connection == ConnectionState.RECONNECTING:
            return
        self.connection = ConnectionState.RECONNECTING
        self.channel.fail_all(error or NotConnectedError("Connection lost"))
        if self.pending is not None:
            self.rollback("disconnected")
        logger.warning(f"Connection to game {self.game_id} lost, reconnecting")
        self._changed("connection")

    async def reconnect(self) -> bool:
        """
        Fetch a full snapshot after the transport is back.

        Returns:
            True when the mirror is synchronized again
        """
        try:
            response = await self.channel.request("game.getState", {"player_id": self.player_id})
        except TransportError as e:
            logger.error(f"State fetch after reconnect failed: {e}")
            self.connection = ConnectionState.RECONNECTING
            return False
        if not response.get("success"):
            logger.error(f"State fetch after reconnect refused: {response.get('message')}")
            return False
        try:
            self.load_snapshot(response.get("data") or {})
        except ValidationError as e:
            logger.error(f"Malformed snapshot after reconnect: {e}")
            return False
        self.connection = ConnectionState.CONNECTED
        logger.info(f"Reconnected to game {self.game_id}")
        self._changed("connection")
        return True

    # ------------------------------------------------------------------
    # Server pushes
    # ------------------------------------------------------------------

    def _accepts(self, turn_count: int) -> bool:
        if self.state is None or self.frozen:
            return False
        if turn_count < self.state.turn_count:
            logger.debug(f"Ignoring push for turn {turn_count} (mirror at {self.state.turn_count})")
            return False
        return True

    def _mirrored_states(self) -> List[GameState]:
        """The live mirror plus the rollback point of a pending move; pushes go to both."""
        states = [self.state]
        if self.pending is not None:
            states.append(self.pending.snapshot)
        return states

    def _mirrored_creatives(self) -> List[CreativeSnapshot]:
        creatives = [self.creative]
        if self.pending is not None:
            creatives.append(self.pending.creative)
        return [c for c in creatives if c is not None]

    @staticmethod
    def _write_move(state: GameState, payload: MovePayload) -> None:
        if payload.board is not None:
            state.board = Board.from_list(payload.board)
        else:
            state.board.apply_changes(CellChange(c.row, c.col, c.color) for c in payload.board_changes)

        for player in state.players:
            if player.player_id in payload.scores:
                player.score = payload.scores[player.player_id]
            if player.player_id in payload.used_pieces:
                player.used_pieces = set(payload.used_pieces[player.player_id])
            elif player.player_id == payload.player_id:
                player.used_pieces.add(payload.piece_id)
            if player.player_id in payload.removed_pieces:
                player.removed_pieces = set(payload.removed_pieces[player.player_id])
            if player.player_id in payload.settled:
                player.is_settled = True
        state.turn_count = max(state.turn_count, payload.turn_count)

    def apply_move_push(self, data: Dict[str, Any]) -> None:
        """
        Apply a landed move: the full board when the server sent one,
        otherwise the cell delta; scores and pieces by absolute value.
        """
        payload = MovePayload.model_validate(data)
        if not self._accepts(payload.turn_count):
            return

        if self.pending is not None and self.pending.matches(payload):
            # confirmed by the push before the response arrived
            self.pending = None
        for state in self._mirrored_states():
            self._write_move(state, payload)
        if payload.creative is not None:
            self.creative = payload.creative
            if self.pending is not None:
                self.pending.creative = payload.creative.model_copy(deep=True)
        self._changed("game.move")

    def apply_turn_changed(self, data: Dict[str, Any]) -> None:
        payload = TurnChangedPayload.model_validate(data)
        if not self._accepts(payload.turn_count):
            return
        for state in self._mirrored_states():
            state.current_player_index = payload.current_player_index
            state.turn_count = payload.turn_count
            state.time_left = payload.time_left if payload.time_left >= 0 else state.time_limit
            state.phase = GamePhase.PLAYING
            for i, player in enumerate(state.players):
                player.is_current_turn = i == payload.current_player_index
        for creative in self._mirrored_creatives():
            creative.item_phase = None
        self._changed("game.turnChanged")

    def _write_tick(self, state: GameState, payload: TimeUpdatePayload) -> bool:
        time_left = max(0, payload.time_left)
        if payload.turn_count > state.turn_count:
            # first tick of a turn whose turnChanged has not arrived yet
            state.turn_count = payload.turn_count
        elif time_left < state.time_left - self.tolerance:
            return False
        state.time_left = time_left
        return True

    def apply_time_update(self, data: Dict[str, Any]) -> None:
        payload = TimeUpdatePayload.model_validate(data)
        if not self._accepts(payload.turn_count):
            return
        if not self._write_tick(self.state, payload):
            logger.debug(f"Ignoring stale tick {payload.time_left} (mirror at {self.state.time_left})")
            return
        if self.pending is not None:
            self._write_tick(self.pending.snapshot, payload)
        self._changed("game.timeUpdate")

    def apply_player_settled(self, data: Dict[str, Any]) -> None:
        payload = PlayerSettledPayload.model_validate(data)
        if self.state is None or self.frozen:
            return
        if self.state.player_by_id(payload.player_id) is None:
            return
        for state in self._mirrored_states():
            player = state.player_by_id(payload.player_id)
            player.is_settled = True
            player.score = payload.score
        self._changed("game.playerSettled")

    def apply_finished(self, data: Dict[str, Any]) -> None:
        payload = FinishedPayload.model_validate(data)
        if self.frozen:
            return
        if payload.snapshot is not None:
            self.load_snapshot(payload.snapshot.model_dump())
        if self.state is not None:
            self.state.phase = GamePhase.FINISHED
            scores = {r.player_id: r.score for r in payload.rankings}
            for player in self.state.players:
                player.is_current_turn = False
                if player.player_id in scores:
                    player.score = scores[player.player_id]
        self.rankings = payload.rankings
        self.pending = None
        self.frozen = True
        logger.info(f"Game {self.game_id} finished, winners: {payload.winners}")
        self._changed("game.finished")

    def apply_item_used(self, data: Dict[str, Any]) -> None:
        if self.state is None or self.frozen:
            return
        snapshot = data.get("snapshot")
        if snapshot is not None:
            self.load_snapshot(snapshot)
        self._changed("game.itemUsed")

    def apply_item_phase(self, data: Dict[str, Any]) -> None:
        payload = ItemPhasePayload.model_validate(data)
        if self.creative is None or self.frozen:
            return
        for creative in self._mirrored_creatives():
            if payload.active:
                duration = creative.item_phase.duration if creative.item_phase else payload.remaining
                creative.item_phase = ItemPhaseModel(
                    player_id=payload.player_id, remaining=payload.remaining, duration=duration
                )
            else:
                creative.item_phase = None
        self._changed("game.itemPhase")

    def apply_presence(self, data: Dict[str, Any]) -> None:
        if self.state is None:
            return
        player_id = data.get("player_id", "")
        if self.state.player_by_id(player_id) is None:
            return
        for state in self._mirrored_states():
            state.player_by_id(player_id).is_offline = bool(data.get("is_offline"))
        self._changed("game.presence")

    def _set_paused(self, paused: bool) -> None:
        if self.frozen:
            return
        self.paused = paused
        self._changed("game.paused" if paused else "game.resumed")
