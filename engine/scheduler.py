"""
Authoritative turn scheduler.

``TurnScheduler`` owns the live ``GameState`` and is the only place it
changes. Every command (place, settle, use a card, tick the clock, run an
AI turn) validates its input, swaps in the output of a pure reducer from
``engine.game`` and notifies listeners with ``SchedulerEvent`` objects.

Game-mode extensions (creative tiles, statuses, item cards) plug in through
``TurnRules``; ``ClassicRules`` is the plain game.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from agents.gameplay_protocol import GameplayAgentProtocol
from utils.config import GameSettings

from .board import PlayerColor
from .game import (
    GamePhase,
    GameState,
    MoveRecord,
    PlayerState,
    advance_turn,
    apply_move,
    create_game_state,
    record_timeout,
    settle_player,
    start_game,
)
from .history import HistorySink, MatchRecord, PlayerResult
from .move_generator import LegalMoveGenerator, Move
from .pieces import PieceGenerator
from .rng import RandomSource, SeededRandom
from .scoring import Ranking, ScoringEngine
from .timers import CountdownTimer, TimerFactory

logger = logging.getLogger(__name__)

Cell = Tuple[int, int]
Listener = Callable[["SchedulerEvent"], None]


class ErrorCode(str, Enum):
    GAME_NOT_FOUND = "GAME_NOT_FOUND"
    GAME_NOT_PLAYING = "GAME_NOT_PLAYING"
    GAME_PAUSED = "GAME_PAUSED"
    NOT_YOUR_TURN = "NOT_YOUR_TURN"
    PIECE_USED = "PIECE_USED"
    INVALID_PIECE = "INVALID_PIECE"
    INVALID_ORIENTATION = "INVALID_ORIENTATION"
    OUT_OF_BOUNDS = "OUT_OF_BOUNDS"
    ILLEGAL_PLACEMENT = "ILLEGAL_PLACEMENT"
    ITEM_PHASE_ACTIVE = "ITEM_PHASE_ACTIVE"
    PIECE_BANNED = "PIECE_BANNED"
    NO_ITEM_PHASE = "NO_ITEM_PHASE"
    INVALID_CARD = "INVALID_CARD"
    INVALID_TARGET = "INVALID_TARGET"
    NETWORK_ERROR = "NETWORK_ERROR"


@dataclass
class SchedulerEvent:
    """Notification sent to listeners after every state change."""
    type: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ActionResult:
    """Outcome of a player command. Rule violations come back here, never as exceptions."""
    success: bool
    message: str = ""
    error: Optional[ErrorCode] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str = "", **data) -> "ActionResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, error: ErrorCode, message: str) -> "ActionResult":
        return cls(success=False, message=message, error=error)


@dataclass
class PlacementOutcome:
    """What a game mode did after a placement landed."""
    state: GameState
    extra_turn: bool = False
    effects: List[Dict[str, Any]] = field(default_factory=list)


class TurnRules:
    """
    Extension points of the turn cycle.

    The base implementation is the classic game: no blocked cells, no
    bonuses, no statuses and no item phase.
    """

    mode = "classic"

    def bind(self, scheduler: "TurnScheduler") -> None:
        self.scheduler = scheduler

    def on_game_start(self, state: GameState) -> GameState:
        return state

    def blocked_cells(self, state: GameState) -> FrozenSet[Cell]:
        return frozenset()

    def bonuses(self) -> Dict[str, int]:
        return {}

    def allowed_piece_ids(self, state: GameState, player: PlayerState) -> List[int]:
        return player.available_piece_ids()

    def move_context(self, state: GameState, player: PlayerState) -> Optional[Any]:
        """Extra input for AI agents (special tiles, shield, bans)."""
        return None

    def validate_move(self, state: GameState, player: PlayerState, move: Move) -> Optional[ActionResult]:
        """Mode-specific rejection, or None to continue with the placement rules."""
        return None

    def after_placement(self, state: GameState, player_index: int, record: MoveRecord) -> PlacementOutcome:
        return PlacementOutcome(state=state)

    def should_skip_turn(self, state: GameState, player: PlayerState) -> bool:
        return False

    def turn_time_limit(self, state: GameState, player: PlayerState, default: int) -> int:
        return default

    def begin_turn(self, state: GameState, player: PlayerState, ai_controlled: bool) -> List[SchedulerEvent]:
        return []

    def end_turn(self, state: GameState, player: PlayerState) -> None:
        pass

    def item_phase_remaining(self) -> Optional[int]:
        """Seconds left in the open item phase, or None when no phase is open."""
        return None

    def tick_item_phase(self) -> int:
        return 0

    def close_item_phase(self, reason: str) -> None:
        pass

    def use_item_card(
        self,
        state: GameState,
        player_index: int,
        card_index: int,
        target_id: Optional[str],
        ai_controlled: bool = False,
    ) -> Tuple[GameState, ActionResult]:
        return state, ActionResult.fail(ErrorCode.NO_ITEM_PHASE, "Item cards are not enabled in this game")

    def choose_ai_card(self, state: GameState, player_index: int) -> Optional[Tuple[int, Optional[str]]]:
        return None

    def snapshot(self, state: GameState) -> Dict[str, Any]:
        return {}


class ClassicRules(TurnRules):
    """The plain corner-touch game."""
    mode = "classic"


class TurnScheduler:
    """
    State machine for one game: ``waiting -> playing -> finished``.

    Timers are optional. Without a ``timer_factory`` the clock only moves
    when ``tick()`` is called, which is how tests drive it.
    """

    def __init__(
        self,
        players: List[PlayerState],
        settings: Optional[GameSettings] = None,
        rules: Optional[TurnRules] = None,
        rng: Optional[RandomSource] = None,
        agents: Optional[Dict[str, GameplayAgentProtocol]] = None,
        timer_factory: Optional[TimerFactory] = None,
        history_sinks: Optional[List[HistorySink]] = None,
        game_id: str = "local",
    ):
        if not 2 <= len(players) <= 4:
            raise ValueError(f"A game needs 2-4 players, got {len(players)}")
        colors = [p.color for p in players]
        if len(set(colors)) != len(colors):
            raise ValueError("Players must have distinct colors")
        ids = [p.player_id for p in players]
        if len(set(ids)) != len(ids):
            raise ValueError("Players must have distinct ids")

        self.game_id = game_id
        self.settings = settings or GameSettings()
        self.rng = rng or SeededRandom(self.settings.seed)
        self.rules = rules or ClassicRules()
        self.rules.bind(self)
        self.agents: Dict[str, GameplayAgentProtocol] = dict(agents or {})
        self.history_sinks: List[HistorySink] = list(history_sinks or [])
        self.move_generator = LegalMoveGenerator()

        self.state: GameState = create_game_state(
            players, board_size=self.settings.board_size, time_limit=self.settings.time_limit
        )
        self.paused = False
        self.listeners: List[Listener] = []
        self.match_record: Optional[MatchRecord] = None
        self._closed = False

        self._turn_timer: Optional[CountdownTimer] = None
        self._item_timer: Optional[CountdownTimer] = None
        if timer_factory is not None:
            self._turn_timer = timer_factory(self._on_turn_timer, "turn")
            self._item_timer = timer_factory(self._on_item_timer, "item_phase")

    # ------------------------------------------------------------------
    # Listeners and queries
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self.listeners.append(listener)

        def unsubscribe():
            if listener in self.listeners:
                self.listeners.remove(listener)

        return unsubscribe

    def _emit(self, event_type: str, **data) -> None:
        event = SchedulerEvent(type=event_type, data=data)
        for listener in list(self.listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Listener failed on {event_type}: {e}", exc_info=True)

    @property
    def phase(self) -> GamePhase:
        return self.state.phase

    @property
    def is_finished(self) -> bool:
        return self.state.phase == GamePhase.FINISHED

    @property
    def current_player(self) -> PlayerState:
        return self.state.current_player

    def is_ai_controlled(self, player: PlayerState) -> bool:
        """AI seats, plus offline humans when the AI proxy is enabled."""
        return player.is_ai or (player.is_offline and self.settings.ai_proxy)

    def is_ai_turn(self) -> bool:
        return (
            self.state.phase == GamePhase.PLAYING
            and not self.paused
            and self.is_ai_controlled(self.state.current_player)
        )

    def blocked_cells(self) -> FrozenSet[Cell]:
        return self.rules.blocked_cells(self.state)

    def can_player_continue(self, player: PlayerState) -> bool:
        """True while the player has at least one legal placement left."""
        if player.is_settled:
            return False
        piece_ids = self.rules.allowed_piece_ids(self.state, player)
        if not piece_ids:
            return False
        return self.move_generator.has_legal_moves(
            self.state.board, player.color, piece_ids, self.rules.blocked_cells(self.state)
        )

    def rankings(self) -> List[Ranking]:
        return ScoringEngine.rank_players(self.state.players)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, first_index: Optional[int] = None) -> None:
        """Start the game with a random (or the given) first player."""
        if self.state.phase != GamePhase.WAITING:
            raise RuntimeError(f"Game {self.game_id} already started")
        if first_index is None:
            first_index = self.rng.randint(0, len(self.state.players) - 1)
        if not 0 <= first_index < len(self.state.players):
            raise ValueError(f"first_index out of range: {first_index}")

        state = self.rules.on_game_start(self.state)
        self._set_state(start_game(state, first_index))
        logger.info(f"Game {self.game_id} started ({self.rules.mode}), first player: {self.state.current_player.name}")
        self._emit("game_started", first_player_id=self.state.current_player.player_id)
        self._begin_turn()

    def pause(self) -> ActionResult:
        if self.state.phase != GamePhase.PLAYING:
            return ActionResult.fail(ErrorCode.GAME_NOT_PLAYING, "Game is not in progress")
        if self.paused:
            return ActionResult.ok("Game already paused")
        self.paused = True
        self._cancel_timers()
        logger.info(f"Game {self.game_id} paused")
        self._emit("paused")
        return ActionResult.ok("Game paused")

    def resume(self) -> ActionResult:
        if self.state.phase != GamePhase.PLAYING:
            return ActionResult.fail(ErrorCode.GAME_NOT_PLAYING, "Game is not in progress")
        if not self.paused:
            return ActionResult.ok("Game is not paused")
        self.paused = False
        self._start_timers()
        logger.info(f"Game {self.game_id} resumed")
        self._emit("resumed")
        return ActionResult.ok("Game resumed")

    def set_offline(self, player_id: str, offline: bool) -> None:
        """Mark a human as gone or back; an offline human is played by the AI proxy."""
        index = self.state.player_index(player_id)
        if index is None or self.state.players[index].is_offline == offline:
            return
        state = self.state.copy()
        state.players[index].is_offline = offline
        self._set_state(state)
        logger.info(f"Player {player_id} is now {'offline' if offline else 'online'}")
        self._emit("presence", player_id=player_id, is_offline=offline)

        player = self.state.players[index]
        if (
            offline
            and index == self.state.current_player_index
            and self.is_ai_controlled(player)
            and self.rules.item_phase_remaining() is not None
        ):
            self._close_item_phase("proxy")

    def close(self) -> None:
        """Stop all timers; the scheduler accepts no further timer callbacks."""
        self._closed = True
        self._cancel_timers()
        self.listeners.clear()

    # ------------------------------------------------------------------
    # Player commands
    # ------------------------------------------------------------------

    def _check_turn(self, player_id: str) -> Optional[ActionResult]:
        if self.state.phase != GamePhase.PLAYING:
            return ActionResult.fail(ErrorCode.GAME_NOT_PLAYING, f"Game is {self.state.phase.value}")
        if self.paused:
            return ActionResult.fail(ErrorCode.GAME_PAUSED, "Game is paused")
        if self.state.current_player.player_id != player_id:
            return ActionResult.fail(ErrorCode.NOT_YOUR_TURN, "Not your turn")
        return None

    def validate_placement(self, player_id: str, move: Move) -> Optional[ActionResult]:
        """
        Check a placement without applying it.

        Returns:
            None when the move is legal, otherwise the failing ActionResult
        """
        rejected = self._check_turn(player_id)
        if rejected:
            return rejected

        player = self.state.current_player
        if move.piece_id not in PieceGenerator.all_piece_ids():
            return ActionResult.fail(ErrorCode.INVALID_PIECE, f"Unknown piece {move.piece_id}")
        if move.piece_id in player.used_pieces or move.piece_id in player.removed_pieces:
            return ActionResult.fail(ErrorCode.PIECE_USED, f"Piece {move.piece_id} is no longer available")

        piece = move.get_piece()
        if piece is None:
            return ActionResult.fail(ErrorCode.INVALID_ORIENTATION, f"Invalid orientation {move.orientation}")

        rejected = self.rules.validate_move(self.state, player, move)
        if rejected:
            return rejected

        board = self.state.board
        if not all(board.in_bounds(r, c) for r, c in move.get_cells()):
            return ActionResult.fail(ErrorCode.OUT_OF_BOUNDS, "Move is out of bounds")

        blocked = self.rules.blocked_cells(self.state)
        if not self.move_generator.validator.can_place(
            board, piece, move.anchor_row, move.anchor_col, player.color, blocked
        ):
            reason = self.move_generator.validator.explain(
                board, piece, move.anchor_row, move.anchor_col, player.color, blocked
            )
            return ActionResult.fail(ErrorCode.ILLEGAL_PLACEMENT, reason or "Illegal placement")
        return None

    def place(self, player_id: str, move: Move) -> ActionResult:
        """
        Validate and apply a placement for the player to move.

        Args:
            player_id: Id of the acting player
            move: Piece id, orientation index and top-left anchor

        Returns:
            ActionResult with the new score, triggered effects and extra-turn flag
        """
        rejected = self.validate_placement(player_id, move)
        if rejected:
            logger.warning(f"Rejected move from {player_id}: {rejected.error.value} ({rejected.message})")
            return rejected

        index = self.state.current_player_index
        new_state, record = apply_move(self.state, index, move, bonuses=self.rules.bonuses())
        outcome = self.rules.after_placement(new_state, index, record)
        self._set_state(outcome.state)

        player = self.state.players[index]
        logger.info(
            f"{player.name} placed piece {move.piece_id} at ({move.anchor_row}, {move.anchor_col}), "
            f"score={player.score}, effects={len(outcome.effects)}"
        )
        self._emit(
            "move",
            player_id=player.player_id,
            color=player.color.name.lower(),
            piece_id=move.piece_id,
            orientation=move.orientation,
            anchor_row=move.anchor_row,
            anchor_col=move.anchor_col,
            move_number=record.move_number,
            board_changes=[(c.row, c.col, c.color) for c in record.board_changes],
            scores={p.player_id: p.score for p in self.state.players},
            effects=outcome.effects,
            extra_turn=outcome.extra_turn,
            turn_count=self.state.turn_count,
        )

        self.rules.end_turn(self.state, player)
        self._cancel_timers()
        if outcome.extra_turn and self.state.phase == GamePhase.PLAYING:
            state = self.state.copy()
            state.turn_count += 1
            self._set_state(state)
            logger.info(f"{player.name} earned an extra turn")
            self._begin_turn()
        else:
            self._set_state(advance_turn(self.state, made_progress=True))
            self._after_transition()

        return ActionResult.ok(
            "Move successful",
            score=player.score,
            effects=outcome.effects,
            extra_turn=outcome.extra_turn,
            move_number=record.move_number,
        )

    def settle(self, player_id: str) -> ActionResult:
        """Voluntarily stop placing for the rest of the game."""
        if self.state.phase != GamePhase.PLAYING:
            return ActionResult.fail(ErrorCode.GAME_NOT_PLAYING, f"Game is {self.state.phase.value}")
        index = self.state.player_index(player_id)
        if index is None:
            return ActionResult.fail(ErrorCode.INVALID_TARGET, f"Unknown player {player_id}")
        if self.state.players[index].is_settled:
            return ActionResult.ok("Already settled")

        state = self.state.copy()
        state.timeout_counts[player_id] = 0
        self._set_state(state)
        self._settle(index, reason="voluntary")
        return ActionResult.ok("Player settled", score=self.state.players[index].score)

    def use_item_card(self, player_id: str, card_index: int, target_id: Optional[str] = None) -> ActionResult:
        rejected = self._check_turn(player_id)
        if rejected:
            return rejected

        index = self.state.current_player_index
        ai_controlled = self.is_ai_controlled(self.state.current_player)
        phase_was_open = self.rules.item_phase_remaining() is not None
        new_state, result = self.rules.use_item_card(self.state, index, card_index, target_id, ai_controlled)
        if not result.success:
            logger.warning(f"Rejected card use from {player_id}: {result.error.value} ({result.message})")
            return result

        self._set_state(new_state)
        logger.info(f"{self.state.players[index].name} used an item card: {result.message}")
        payload = dict(result.data)
        payload.setdefault("player_id", player_id)
        self._emit("item_used", **payload)

        if phase_was_open:
            self._close_item_phase("used")
        return result

    def skip_item_phase(self, player_id: str) -> ActionResult:
        rejected = self._check_turn(player_id)
        if rejected:
            return rejected
        if self.rules.item_phase_remaining() is None:
            return ActionResult.fail(ErrorCode.NO_ITEM_PHASE, "No item phase is open")
        self._close_item_phase("skipped")
        return ActionResult.ok("Item phase skipped")

    # ------------------------------------------------------------------
    # AI turns
    # ------------------------------------------------------------------

    def _agent_for(self, player: PlayerState) -> GameplayAgentProtocol:
        agent = self.agents.get(player.player_id)
        if agent is None:
            from agents.heuristic_agent import HeuristicAgent
            agent = HeuristicAgent()
            self.agents[player.player_id] = agent
        return agent

    def ai_use_card(self) -> Optional[ActionResult]:
        """Let the AI in control of the current seat play at most one item card."""
        if not self.is_ai_turn():
            return None
        index = self.state.current_player_index
        decision = self.rules.choose_ai_card(self.state, index)
        if decision is None:
            if self.rules.item_phase_remaining() is not None:
                self._close_item_phase("skipped")
            return None
        card_index, target_id = decision
        return self.use_item_card(self.state.current_player.player_id, card_index, target_id)

    def compute_ai_move(self) -> Optional[Move]:
        """
        Ask the current seat's agent for a placement.

        Agent failures are logged and reported as "no move".
        """
        player = self.state.current_player
        agent = self._agent_for(player)
        piece_ids = self.rules.allowed_piece_ids(self.state, player)
        try:
            return agent.make_move(
                self.state.board,
                player.color,
                piece_ids,
                blocked=self.rules.blocked_cells(self.state),
                context=self.rules.move_context(self.state, player),
            )
        except Exception as e:
            logger.error(f"Agent for {player.name} failed: {e}", exc_info=True)
            return None

    def complete_ai_turn(self, move: Optional[Move], turn_count: Optional[int] = None) -> ActionResult:
        """
        Apply an AI decision, force-settling the seat when it has no move.

        ``turn_count`` guards against applying a move computed for a turn
        that has already ended.
        """
        if self.state.phase != GamePhase.PLAYING:
            return ActionResult.fail(ErrorCode.GAME_NOT_PLAYING, f"Game is {self.state.phase.value}")
        if self.paused:
            return ActionResult.fail(ErrorCode.GAME_PAUSED, "Game is paused")
        if turn_count is not None and turn_count != self.state.turn_count:
            logger.warning(f"Discarding AI move computed for turn {turn_count} (now {self.state.turn_count})")
            return ActionResult.fail(ErrorCode.NOT_YOUR_TURN, "Turn already ended")

        index = self.state.current_player_index
        player = self.state.current_player
        if self.rules.item_phase_remaining() is not None:
            self._close_item_phase("proxy")

        if move is None:
            if self.can_player_continue(player):
                logger.warning(f"Agent for {player.name} returned no move although legal moves exist")
            self._settle(index, reason="no_moves")
            return ActionResult.ok("No legal move, player settled")

        result = self.place(player.player_id, move)
        if not result.success:
            logger.warning(f"Agent move for {player.name} rejected ({result.message}), settling player")
            self._settle(index, reason="no_moves")
        return result

    def run_ai_turn(self) -> ActionResult:
        """Card decision, move computation and placement in one synchronous call."""
        if not self.is_ai_turn():
            return ActionResult.fail(ErrorCode.NOT_YOUR_TURN, "Current player is not AI-controlled")
        self.ai_use_card()
        if not self.is_ai_turn():
            return ActionResult.ok("Turn ended during card use")
        return self.complete_ai_turn(self.compute_ai_move(), self.state.turn_count)

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------

    def tick(self) -> None:
        """Advance whichever countdown is live by one second."""
        if self.state.phase != GamePhase.PLAYING or self.paused:
            return
        if self.rules.item_phase_remaining() is not None:
            self._tick_item_phase()
        else:
            self._tick_turn()

    def _on_turn_timer(self) -> None:
        if self._closed or self.rules.item_phase_remaining() is not None:
            return
        if self.state.phase == GamePhase.PLAYING and not self.paused:
            self._tick_turn()

    def _on_item_timer(self) -> None:
        if self._closed or self.rules.item_phase_remaining() is None:
            return
        if self.state.phase == GamePhase.PLAYING and not self.paused:
            self._tick_item_phase()

    def _tick_turn(self) -> None:
        state = self.state.copy()
        state.time_left = max(0, state.time_left - 1)
        self._set_state(state)
        self._emit(
            "time_update",
            player_id=state.current_player.player_id,
            time_left=state.time_left,
            turn_count=state.turn_count,
        )
        if state.time_left <= 0:
            self._handle_timeout()

    def _tick_item_phase(self) -> None:
        remaining = self.rules.tick_item_phase()
        player_id = self.state.current_player.player_id
        if remaining <= 0:
            self._close_item_phase("timeout")
        else:
            self._emit("item_phase", player_id=player_id, active=True, remaining=remaining, reason="tick")

    def _handle_timeout(self) -> None:
        player = self.state.current_player
        index = self.state.current_player_index
        self._cancel_timers()
        self.rules.end_turn(self.state, player)
        new_state, settled = record_timeout(self.state, self.settings.max_timeouts)
        self._set_state(new_state)
        strikes = self.state.timeout_counts.get(player.player_id, 0)
        logger.info(f"{player.name} timed out ({strikes}/{self.settings.max_timeouts})")
        if settled or self.state.players[index].is_settled:
            self._emit(
                "player_settled",
                player_id=player.player_id,
                reason="timeouts",
                forced=True,
                score=self.state.players[index].score,
            )
        self._after_transition()

    # ------------------------------------------------------------------
    # Internal transitions
    # ------------------------------------------------------------------

    def _set_state(self, state: GameState) -> None:
        self.state = state

    def _settle(self, index: int, reason: str) -> None:
        was_current = index == self.state.current_player_index
        if was_current:
            self._cancel_timers()
            if self.rules.item_phase_remaining() is not None:
                self.rules.close_item_phase("settled")
        self._set_state(settle_player(self.state, index))
        player = self.state.players[index]
        logger.info(f"{player.name} settled ({reason}) with score {player.score}")
        self._emit(
            "player_settled",
            player_id=player.player_id,
            reason=reason,
            forced=reason != "voluntary",
            score=player.score,
        )
        if was_current or self.state.phase == GamePhase.FINISHED:
            self._after_transition()

    def _after_transition(self) -> None:
        if self.state.phase == GamePhase.FINISHED:
            self._finish()
        else:
            self._begin_turn()

    def _begin_turn(self) -> None:
        """
        Prepare the current player's turn: skip statuses, auto-settle a
        player who cannot move, set the clock and open the item phase.
        """
        for _ in range(4 * len(self.state.players) + 1):
            if self.state.phase != GamePhase.PLAYING:
                self._finish()
                return
            player = self.state.current_player
            index = self.state.current_player_index

            if self.rules.should_skip_turn(self.state, player):
                logger.info(f"{player.name} skips this turn")
                self.rules.end_turn(self.state, player)
                self._emit("turn_skipped", player_id=player.player_id, turn_count=self.state.turn_count)
                self._set_state(advance_turn(self.state, made_progress=True))
                continue

            if not self.can_player_continue(player):
                settled_state = settle_player(self.state, index)
                self._set_state(settled_state)
                logger.info(f"{player.name} has no legal moves and is settled")
                self._emit(
                    "player_settled",
                    player_id=player.player_id,
                    reason="no_moves",
                    forced=True,
                    score=self.state.players[index].score,
                )
                continue
            break
        else:
            logger.warning(f"Turn preparation did not converge in game {self.game_id}")

        if self.state.phase != GamePhase.PLAYING:
            self._finish()
            return

        player = self.state.current_player
        state = self.state.copy()
        state.time_left = self.rules.turn_time_limit(state, player, state.time_limit)
        self._set_state(state)

        phase_events = self.rules.begin_turn(self.state, player, self.is_ai_controlled(player))
        logger.info(f"Turn {self.state.turn_count}: {player.name} ({player.color.name}) to move, {self.state.time_left}s")
        self._emit(
            "turn_changed",
            player_id=player.player_id,
            current_player_index=self.state.current_player_index,
            turn_count=self.state.turn_count,
            time_left=self.state.time_left,
        )
        for event in phase_events:
            self._emit(event.type, **event.data)
        self._start_timers()

    def _close_item_phase(self, reason: str) -> None:
        self.rules.close_item_phase(reason)
        self._emit(
            "item_phase",
            player_id=self.state.current_player.player_id,
            active=False,
            remaining=0,
            reason=reason,
        )
        self._start_timers()

    def _finish(self) -> None:
        if self.match_record is not None:
            return
        self._cancel_timers()
        rankings = self.rankings()
        self.match_record = self._build_match_record(rankings)
        logger.info(
            f"Game {self.game_id} finished: "
            + ", ".join(f"{r.rank}. {r.name} ({r.score})" for r in rankings)
        )
        for sink in self.history_sinks:
            try:
                sink.record(self.match_record)
            except Exception as e:
                logger.error(f"History sink failed for game {self.game_id}: {e}", exc_info=True)
        self._emit(
            "finished",
            rankings=[
                {
                    "player_id": r.player_id,
                    "name": r.name,
                    "color": r.color.name.lower(),
                    "score": r.score,
                    "rank": r.rank,
                }
                for r in rankings
            ],
            winners=ScoringEngine.winners(rankings),
        )

    def _build_match_record(self, rankings: List[Ranking]) -> MatchRecord:
        by_id = {p.player_id: p for p in self.state.players}
        results = [
            PlayerResult(
                player_id=r.player_id,
                name=r.name,
                color=r.color.name.lower(),
                score=r.score,
                rank=r.rank,
                pieces_used=len(by_id[r.player_id].used_pieces),
                is_ai=by_id[r.player_id].is_ai,
            )
            for r in rankings
        ]
        return MatchRecord(
            game_id=self.game_id,
            date=datetime.now(),
            results=results,
            moves=list(self.state.moves),
            final_board=self.state.board.to_list(),
            mode=self.rules.mode,
            winner_ids=ScoringEngine.winners(rankings),
        )

    def _start_timers(self) -> None:
        self._cancel_timers()
        if self._closed or self.paused or self.state.phase != GamePhase.PLAYING:
            return
        if self._turn_timer is None or self._item_timer is None:
            return
        if self.rules.item_phase_remaining() is not None:
            self._item_timer.start()
        else:
            self._turn_timer.start()

    def _cancel_timers(self) -> None:
        if self._turn_timer is not None:
            self._turn_timer.cancel()
        if self._item_timer is not None:
            self._item_timer.cancel()


def make_players(
    names: List[str],
    ai_flags: Optional[List[bool]] = None,
    difficulty: str = "medium",
) -> List[PlayerState]:
    """Seat players in color order (red, yellow, blue, green)."""
    ai_flags = ai_flags or [False] * len(names)
    colors = PlayerColor.seats(len(names))
    return [
        PlayerState(
            player_id=f"player-{color.name.lower()}",
            name=name,
            color=color,
            is_ai=is_ai,
            difficulty=difficulty,
        )
        for name, color, is_ai in zip(names, colors, ai_flags)
    ]
