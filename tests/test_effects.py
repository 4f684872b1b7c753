"""
Tests for tile effect rolling, resolution and application.
"""

import unittest

from creative.effects import EffectEngine, find_territory_expansion_cell, tick_status_effects
from creative.types import (
    CreativePlayerState,
    EffectResult,
    StatusEffect,
    StatusEffectType,
    TileType,
)
from engine.board import PlayerColor, Position
from engine.rng import SequenceRandom
from tests.utils_game_states import build_three_player_game


def scores(state):
    return [p.score for p in state.players]


class TestEffectApplication(unittest.TestCase):
    """apply_effect_result keeps total = base + bonus."""

    def setUp(self):
        self.engine = EffectEngine(SequenceRandom([0.0]), hand_limit=3)
        self.state, self.overlays = build_three_player_game()

    def apply(self, actor_id, result, **kwargs):
        return self.engine.apply_effect_result(self.state, self.overlays, actor_id, result, **kwargs)

    def test_score_and_card_grant(self):
        """+5 and a card: the ledger moves by exactly 5 and the base is untouched."""
        state, summary = self.apply("player-red", EffectResult(score_delta=5, grant_item_card=True))

        red = self.overlays["player-red"]
        self.assertEqual(red.bonus_score, 5)
        self.assertEqual(len(red.item_cards), 1)
        self.assertEqual(red.item_cards[0].id, "card_aaaaaaaa")
        self.assertEqual(summary["card_granted"], "item_blackhole")
        self.assertEqual(self.engine.base_score(state, "player-red"), 5)
        self.assertEqual(state.players[0].score, 10)

    def test_loss_floors_total_at_zero(self):
        state, _ = self.apply("player-yellow", EffectResult(score_delta=-10))
        self.assertEqual(state.players[1].score, 0)
        self.assertEqual(self.overlays["player-yellow"].bonus_score, -2)

    def test_global_bonus(self):
        result = self.engine.resolve_effect("gold_global_bonus", self.overlays["player-red"], 5)
        state, summary = self.apply("player-red", result)
        self.assertEqual(summary["score_delta"], 1)
        self.assertEqual(state.players[0].score, 6)

    def test_swap_with_highest(self):
        state, summary = self.apply("player-yellow", EffectResult(swap_with_highest=True))
        self.assertEqual(summary["swapped_with"], "player-red")
        self.assertEqual(scores(state), [2, 5, 4])
        self.assertEqual(self.overlays["player-red"].bonus_score, -3)

    def test_swap_when_already_highest(self):
        state, summary = self.apply("player-red", EffectResult(swap_with_highest=True))
        self.assertNotIn("swapped_with", summary)
        self.assertEqual(scores(state), [5, 2, 4])

    def test_set_all_to_average(self):
        state, summary = self.apply("player-blue", EffectResult(set_all_to_average=True))
        self.assertEqual(summary["average"], 3)
        self.assertEqual(scores(state), [3, 3, 3])

    def test_remove_largest_piece(self):
        state, summary = self.apply("player-red", EffectResult(remove_piece="largest"))
        self.assertEqual(summary["removed_piece"], 21)
        self.assertIn(21, state.players[0].removed_pieces)

    def test_remove_random_piece(self):
        state, summary = self.apply("player-yellow", EffectResult(remove_piece="random"))
        self.assertEqual(summary["removed_piece"], 1)

    def test_undo_keeps_score_identity(self):
        self.overlays["player-red"].bonus_score = -4
        state, summary = self.apply("player-red", EffectResult(undo_last_move=True))
        self.assertEqual(summary["undone_move"], 1)
        self.assertEqual(state.board.count_cells(PlayerColor.RED), 0)
        self.assertEqual(state.players[0].score, 0)
        self.assertEqual(self.overlays["player-red"].bonus_score, 0)
        self.assertNotIn(12, state.players[0].used_pieces)

    def test_undo_skips_triggering_move(self):
        state, summary = self.apply("player-red", EffectResult(undo_last_move=True), exclude_move=1)
        self.assertNotIn("undone_move", summary)
        self.assertEqual(state.board.count_cells(PlayerColor.RED), 5)

    def test_territory_expansion(self):
        state, summary = self.apply("player-red", EffectResult(territory_expand=True))
        self.assertEqual(summary["territory_cell"], [1, 5])
        self.assertEqual(state.board.get_player_at(Position(1, 5)), PlayerColor.RED)
        self.assertEqual(state.players[0].score, 6)
        self.assertEqual(state.moves[-1].kind, "territory")

    def test_territory_respects_blocked_cells(self):
        cell = find_territory_expansion_cell(
            self.state.board, PlayerColor.RED, SequenceRandom([0.0]), blocked=frozenset({(1, 5)})
        )
        # (1, 5) is red's only diagonal-only neighbour
        self.assertIsNone(cell)

    def test_input_state_is_not_mutated(self):
        self.apply("player-red", EffectResult(undo_last_move=True, territory_expand=True))
        self.assertEqual(self.state.board.count_cells(PlayerColor.RED), 5)
        self.assertEqual(len(self.state.moves), 3)

    def test_unknown_actor(self):
        with self.assertRaises(KeyError):
            self.apply("nobody", EffectResult(score_delta=1))


class TestEffectResolution(unittest.TestCase):
    """resolve_effect and the shields."""

    def setUp(self):
        self.engine = EffectEngine(SequenceRandom([0.0]))
        self.overlay = CreativePlayerState("player-red", PlayerColor.RED)

    def test_score_effects(self):
        self.assertEqual(self.engine.resolve_effect("gold_plus10", self.overlay, 0).score_delta, 10)
        self.assertEqual(self.engine.resolve_effect("purple_minus3", self.overlay, 0).score_delta, -3)

    def test_red_effects_grant_a_card(self):
        result = self.engine.resolve_effect("red_minus5", self.overlay, 20)
        self.assertEqual(result.score_delta, -5)
        self.assertTrue(result.grant_item_card)

    def test_total_times_point_eight(self):
        result = self.engine.resolve_effect("red_total_08", self.overlay, 23)
        self.assertEqual(result.score_delta, -4)

    def test_score_shield_blocks_losses(self):
        self.overlay.status_effects = [StatusEffect(StatusEffectType.SCORE_SHIELD, 2)]
        result = self.engine.resolve_effect("purple_minus10", self.overlay, 20)
        self.assertTrue(result.blocked)
        self.assertEqual(result.score_delta, 0)

        red = self.engine.resolve_effect("red_total_08", self.overlay, 20)
        self.assertTrue(red.blocked)
        self.assertTrue(red.grant_item_card)

        # score_shield does not stop statuses or piece loss
        self.assertFalse(self.engine.resolve_effect("purple_skip", self.overlay, 20).blocked)
        self.assertEqual(self.engine.resolve_effect("red_remove_piece", self.overlay, 20).remove_piece, "largest")

    def test_steel_blocks_negative_effects(self):
        self.overlay.status_effects = [StatusEffect(StatusEffectType.STEEL, 2)]
        for effect_id in ("purple_minus1", "purple_skip", "red_half_score", "purple_remove_piece", "red_undo_last"):
            self.assertTrue(self.engine.resolve_effect(effect_id, self.overlay, 10).blocked, effect_id)
        self.assertFalse(self.engine.resolve_effect("gold_next_double", self.overlay, 10).blocked)

    def test_statuses_are_fresh(self):
        result = self.engine.resolve_effect("red_big_piece_ban", self.overlay, 0)
        self.assertEqual(len(result.statuses), 1)
        status = result.statuses[0]
        self.assertEqual(status.type, StatusEffectType.BIG_PIECE_BAN)
        self.assertEqual(status.remaining_turns, 2)
        self.assertTrue(status.fresh)

    def test_flag_effects(self):
        self.assertTrue(self.engine.resolve_effect("gold_extra_turn", self.overlay, 0).extra_turn)
        self.assertTrue(self.engine.resolve_effect("gold_territory", self.overlay, 0).territory_expand)
        self.assertTrue(self.engine.resolve_effect("purple_score_average", self.overlay, 0).set_all_to_average)
        nothing = self.engine.resolve_effect("purple_nothing", self.overlay, 0)
        self.assertEqual(nothing, EffectResult())

    def test_unknown_effect(self):
        with self.assertRaises(KeyError):
            self.engine.resolve_effect("gold_unicorn", self.overlay, 0)

    def test_roll_effect(self):
        self.assertEqual(self.engine.roll_effect(TileType.GOLD).id, "gold_plus3")
        self.assertEqual(self.engine.roll_effect(TileType.PURPLE, purple_upgrade=True).id, "gold_plus3")
        last = EffectEngine(SequenceRandom([0.99]))
        self.assertEqual(last.roll_effect(TileType.PURPLE).id, "purple_remove_piece")
        self.assertEqual(last.roll_effect(TileType.RED).id, "red_total_08")
        with self.assertRaises(ValueError):
            self.engine.roll_effect(TileType.BARRIER)


class TestStatusTick(unittest.TestCase):
    """End-of-turn status bookkeeping."""

    def test_fresh_status_survives_first_tick(self):
        statuses = [StatusEffect(StatusEffectType.SKIP_TURN, 1, fresh=True)]
        ticked = tick_status_effects(statuses)
        self.assertEqual(ticked, [StatusEffect(StatusEffectType.SKIP_TURN, 1, fresh=False)])
        self.assertEqual(tick_status_effects(ticked), [])

    def test_non_fresh_status_counts_down(self):
        statuses = [
            StatusEffect(StatusEffectType.STEEL, 2),
            StatusEffect(StatusEffectType.HALF_SCORE, 1),
        ]
        self.assertEqual(tick_status_effects(statuses), [StatusEffect(StatusEffectType.STEEL, 1)])
        self.assertEqual(statuses[0].remaining_turns, 2)


if __name__ == '__main__':
    unittest.main()
