"""
Creative-mode overlay for the turn scheduler.

``CreativeRules`` plugs special tiles, status effects and item cards into
``TurnScheduler`` through the ``TurnRules`` hooks. ``CreativeState`` holds
everything the overlay owns; it is created when the game starts and only
changes through the effect engine and the item card system.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from agents.heuristic_agent import MoveContext
from agents.item_card_agent import ItemCardAgent
from engine.game import GameState, MoveRecord, PlayerState, recompute_scores
from engine.move_generator import Move
from engine.pieces import PieceGenerator
from engine.scheduler import ActionResult, ErrorCode, PlacementOutcome, SchedulerEvent, TurnRules
from engine.scoring import ScoringEngine
from utils.config import GameSettings

from .effects import EffectEngine, tick_status_effects
from .items import ItemCardSystem
from .tiles import barrier_cells, find_triggered_tiles, generate_special_tiles
from .types import CreativePlayerState, SpecialTile, StatusEffectType, TileType

logger = logging.getLogger(__name__)

Cell = Tuple[int, int]


@dataclass
class CreativeState:
    special_tiles: List[SpecialTile] = field(default_factory=list)
    players: Dict[str, CreativePlayerState] = field(default_factory=dict)

    def overlay(self, player_id: str) -> CreativePlayerState:
        return self.players[player_id]

    def bonuses(self) -> Dict[str, int]:
        return {pid: overlay.bonus_score for pid, overlay in self.players.items()}

    def unused_tiles(self, tile_type: Optional[TileType] = None) -> List[SpecialTile]:
        return [
            t for t in self.special_tiles
            if not t.used and t.type != TileType.BARRIER and (tile_type is None or t.type == tile_type)
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "special_tiles": [t.to_dict() for t in self.special_tiles],
            "players": {pid: overlay.to_dict() for pid, overlay in self.players.items()},
        }


class CreativeRules(TurnRules):
    """Tiles, statuses and item cards on top of the classic turn cycle."""

    mode = "creative"

    def __init__(
        self,
        settings: Optional[GameSettings] = None,
        special_tiles: Optional[List[SpecialTile]] = None,
        card_agent: Optional[ItemCardAgent] = None,
    ):
        self.settings = settings or GameSettings(creative=True)
        self._preset_tiles = special_tiles
        self.card_agent = card_agent or ItemCardAgent()
        self.creative = CreativeState()
        self.effects: Optional[EffectEngine] = None
        self.items: Optional[ItemCardSystem] = None

    def bind(self, scheduler) -> None:
        super().bind(scheduler)
        self.effects = EffectEngine(scheduler.rng, hand_limit=self.settings.hand_limit)
        self.items = ItemCardSystem(self.effects, phase_time=self.settings.item_phase_time)

    def on_game_start(self, state: GameState) -> GameState:
        if self._preset_tiles is not None:
            tiles = [SpecialTile(t.row, t.col, t.type, t.used) for t in self._preset_tiles]
        else:
            tiles = generate_special_tiles(
                self.effects.rng,
                board_size=state.board.size,
                min_tiles=self.settings.min_special_tiles,
                max_tiles=self.settings.max_special_tiles,
                max_barriers=self.settings.max_barriers,
                safe_zone_radius=self.settings.safe_zone_radius,
                min_distance=self.settings.min_tile_distance,
            )
        self.creative = CreativeState(
            special_tiles=tiles,
            players={p.player_id: CreativePlayerState(p.player_id, p.color) for p in state.players},
        )
        counts = {t.value: sum(1 for tile in tiles if tile.type == t) for t in TileType}
        logger.info(f"Creative game set up with {len(tiles)} special tiles: {counts}")
        return state

    # ------------------------------------------------------------------
    # Placement hooks
    # ------------------------------------------------------------------

    def blocked_cells(self, state: GameState) -> FrozenSet[Cell]:
        return barrier_cells(self.creative.special_tiles)

    def bonuses(self) -> Dict[str, int]:
        return self.creative.bonuses()

    def _banned(self, player: PlayerState) -> bool:
        overlay = self.creative.players.get(player.player_id)
        return overlay is not None and overlay.has_status(StatusEffectType.BIG_PIECE_BAN)

    def allowed_piece_ids(self, state: GameState, player: PlayerState) -> List[int]:
        piece_ids = player.available_piece_ids()
        if self._banned(player):
            piece_ids = [pid for pid in piece_ids if not PieceGenerator.get_piece_by_id(pid).is_large]
        return piece_ids

    def move_context(self, state: GameState, player: PlayerState) -> MoveContext:
        overlay = self.creative.overlay(player.player_id)
        return MoveContext(
            special_tiles={t.cell: t.type.value for t in self.creative.unused_tiles()},
            shielded=overlay.is_shielded,
            big_piece_ban=self._banned(player),
        )

    def validate_move(self, state: GameState, player: PlayerState, move: Move) -> Optional[ActionResult]:
        if self.items.phase is not None:
            return ActionResult.fail(ErrorCode.ITEM_PHASE_ACTIVE, "Use or skip your item cards first")
        piece = PieceGenerator.get_piece_by_id(move.piece_id)
        if self._banned(player) and piece.is_large:
            return ActionResult.fail(ErrorCode.PIECE_BANNED, "Pieces of 4 or more cells are banned this turn")
        return None

    def after_placement(self, state: GameState, player_index: int, record: MoveRecord) -> PlacementOutcome:
        """
        Apply status modifiers for the placed cells, then resolve every
        special tile the piece covered, in coverage order.
        """
        player = state.players[player_index]
        overlay = self.creative.overlay(player.player_id)
        effects: List[Dict[str, Any]] = []

        placed = len(record.board_changes)
        modifier = ScoringEngine.placement_modifier(
            placed,
            next_double=overlay.has_status(StatusEffectType.NEXT_DOUBLE),
            half_score=overlay.has_status(StatusEffectType.HALF_SCORE),
        )
        if modifier:
            base = ScoringEngine.base_score(state.board, player.color)
            overlay.bonus_score = ScoringEngine.adjust_bonus(base, overlay.bonus_score, modifier)
            effects.append({"kind": "status_modifier", "player_id": player.player_id, "score_delta": modifier})

        cells = [(c.row, c.col) for c in record.board_changes]
        triggered = find_triggered_tiles(cells, self.creative.special_tiles)
        for tile in triggered:
            tile.used = True

        extra_turn = False
        for tile in triggered:
            effect = self.effects.roll_effect(
                tile.type, purple_upgrade=overlay.has_status(StatusEffectType.PURPLE_UPGRADE)
            )
            total = self.effects.total_score(state, self.creative.players, player.player_id)
            result = self.effects.resolve_effect(effect.id, overlay, total)
            state, summary = self.effects.apply_effect_result(
                state,
                self.creative.players,
                player.player_id,
                result,
                exclude_move=record.move_number,
                blocked_cells=self.blocked_cells(state),
            )
            summary.update({
                "kind": "tile",
                "tile": tile.to_dict(),
                "effect_id": effect.id,
                "effect_name": effect.name,
                "description": effect.description,
            })
            effects.append(summary)
            extra_turn = extra_turn or result.extra_turn
            logger.info(f"{player.name} triggered {tile.type.value} tile at ({tile.row}, {tile.col}): {effect.id}")

        state = state.copy()
        recompute_scores(state, self.creative.bonuses())
        return PlacementOutcome(state=state, extra_turn=extra_turn, effects=effects)

    # ------------------------------------------------------------------
    # Turn hooks
    # ------------------------------------------------------------------

    def should_skip_turn(self, state: GameState, player: PlayerState) -> bool:
        return self.creative.overlay(player.player_id).has_status(StatusEffectType.SKIP_TURN)

    def turn_time_limit(self, state: GameState, player: PlayerState, default: int) -> int:
        if self.creative.overlay(player.player_id).has_status(StatusEffectType.TIME_PRESSURE):
            return self.settings.pressure_time_limit
        return default

    def begin_turn(self, state: GameState, player: PlayerState, ai_controlled: bool) -> List[SchedulerEvent]:
        self.items.close("turn_start")
        if ai_controlled:
            return []
        if not self.items.open_phase(player.player_id, self.creative.overlay(player.player_id)):
            return []
        return [SchedulerEvent(
            type="item_phase",
            data={
                "player_id": player.player_id,
                "active": True,
                "remaining": self.items.remaining(),
                "reason": "opened",
            },
        )]

    def end_turn(self, state: GameState, player: PlayerState) -> None:
        overlay = self.creative.overlay(player.player_id)
        overlay.status_effects = tick_status_effects(overlay.status_effects)

    def item_phase_remaining(self) -> Optional[int]:
        return self.items.remaining()

    def tick_item_phase(self) -> int:
        return self.items.tick()

    def close_item_phase(self, reason: str) -> None:
        self.items.close(reason)

    def use_item_card(
        self,
        state: GameState,
        player_index: int,
        card_index: int,
        target_id: Optional[str],
        ai_controlled: bool = False,
    ) -> Tuple[GameState, ActionResult]:
        return self.items.use_card(
            state,
            self.creative.players,
            player_index,
            card_index,
            target_id,
            require_phase=not ai_controlled,
        )

    def choose_ai_card(self, state: GameState, player_index: int) -> Optional[Tuple[int, Optional[str]]]:
        player = state.players[player_index]
        return self.card_agent.decide(
            player,
            self.creative.overlay(player.player_id),
            state.players,
            self.creative.players,
            unused_red_tiles=len(self.creative.unused_tiles(TileType.RED)),
        )

    def snapshot(self, state: GameState) -> Dict[str, Any]:
        data = self.creative.to_dict()
        phase = self.items.phase if self.items is not None else None
        data["item_phase"] = None if phase is None else {
            "player_id": phase.player_id,
            "remaining": phase.remaining,
            "duration": phase.duration,
        }
        return data
