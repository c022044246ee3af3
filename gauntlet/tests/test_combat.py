"""
Tests for combat state (health pools and outcome).
"""

import pytest

from ..engine_core import CombatState, Outcome
from ..errors import ValidationError


class TestApplyDamage:
    """Tests for CombatState.apply_damage."""

    def test_starts_full(self):
        combat = CombatState()
        assert (combat.participant_hp, combat.judge_hp, combat.turn_number) == (100, 100, 0)

    def test_damage_reduces_both_pools(self):
        combat = CombatState()

        result = combat.apply_damage(15, 30)

        assert (result.participant_hp, result.judge_hp) == (85, 70)
        assert result.outcome == Outcome.ONGOING
        assert combat.turn_number == 1

    def test_zero_damage_is_a_miss(self):
        combat = CombatState()

        result = combat.apply_damage(0, 0)

        assert result.outcome == Outcome.ONGOING
        assert combat.turn_number == 1

    def test_clamps_at_zero(self):
        """Overkill never goes negative."""
        combat = CombatState(judge_hp=10)

        result = combat.apply_damage(0, 95)

        assert result.judge_hp == 0
        assert result.outcome == Outcome.VICTORY

    def test_participant_knockout_is_defeat(self):
        combat = CombatState(participant_hp=20)

        result = combat.apply_damage(40, 10)

        assert result.participant_hp == 0
        assert result.outcome == Outcome.DEFEAT
        assert not result.simultaneous_knockout

    def test_simultaneous_knockout_is_defeat(self):
        """Both pools at 0 on one turn: the participant loses."""
        combat = CombatState(participant_hp=30, judge_hp=30)

        result = combat.apply_damage(50, 50)

        assert (result.participant_hp, result.judge_hp) == (0, 0)
        assert result.outcome == Outcome.DEFEAT
        assert result.simultaneous_knockout

    def test_negative_damage_rejected(self):
        combat = CombatState()

        with pytest.raises(ValidationError):
            combat.apply_damage(-5, 0)
        assert combat.turn_number == 0

    def test_no_damage_after_decision(self):
        combat = CombatState()
        combat.apply_damage(100, 0)

        with pytest.raises(ValidationError):
            combat.apply_damage(0, 10)

    def test_pools_never_increase(self):
        """HP is a non-increasing step function of turns."""
        combat = CombatState()
        previous = (combat.participant_hp, combat.judge_hp)
        for participant_damage, judge_damage in [(10, 0), (0, 25), (0, 0), (33, 12)]:
            result = combat.apply_damage(participant_damage, judge_damage)
            assert 0 <= result.participant_hp <= previous[0]
            assert 0 <= result.judge_hp <= previous[1]
            previous = (result.participant_hp, result.judge_hp)
        assert len(combat.history) == 4
