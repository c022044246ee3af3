"""
Combat State - The two health pools of a Battle.

Both pools start at 100 and only ever go down. Damage is applied to both
pools in one call, and the outcome is derived from the post-damage values
in that same call.

Tie-break: if both pools hit 0 on the same turn the participant loses.
Participant failure is checked first.

Combat State does not know whether a turn's damage was already applied.
The session state machine calls apply_damage() exactly once per resolved
turn.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum

from ..errors import ValidationError


MAX_HP = 100


class Outcome(str, Enum):
    """Result of a damage exchange."""
    ONGOING = "ongoing"
    VICTORY = "victory"
    DEFEAT = "defeat"


@dataclass(frozen=True)
class DamageResult:
    """Pools after one exchange, and what that means for the battle."""
    participant_hp: int
    judge_hp: int
    outcome: Outcome
    simultaneous_knockout: bool = False


@dataclass
class CombatState:
    """
    Participant vs Judge health pools.

    turn_number counts resolved exchanges only. While the battle is ongoing
    the ledger also holds the pending prompt, so it is one turn longer.

    Usage:
        combat = CombatState()
        result = combat.apply_damage(participant_damage=0, judge_damage=40)
        if result.outcome != Outcome.ONGOING:
            ...
    """
    participant_hp: int = MAX_HP
    judge_hp: int = MAX_HP
    turn_number: int = 0
    history: list[DamageResult] = field(default_factory=list)

    @property
    def is_over(self) -> bool:
        return self.participant_hp == 0 or self.judge_hp == 0

    def apply_damage(self, participant_damage: int, judge_damage: int) -> DamageResult:
        """
        Subtract damage from both pools, clamping at 0.

        Raises:
            ValidationError: negative or non-integer damage, or the battle
                is already decided
        """
        for name, value in (
            ("participant_damage", participant_damage),
            ("judge_damage", judge_damage),
        ):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{name} must be an integer", {"field": name})
            if value < 0:
                raise ValidationError(f"{name} must not be negative", {"field": name})
        if self.is_over:
            raise ValidationError("Battle is already decided")

        self.participant_hp = max(0, self.participant_hp - participant_damage)
        self.judge_hp = max(0, self.judge_hp - judge_damage)
        self.turn_number += 1

        both_down = self.participant_hp == 0 and self.judge_hp == 0
        if self.participant_hp == 0:
            outcome = Outcome.DEFEAT
        elif self.judge_hp == 0:
            outcome = Outcome.VICTORY
        else:
            outcome = Outcome.ONGOING

        result = DamageResult(
            participant_hp=self.participant_hp,
            judge_hp=self.judge_hp,
            outcome=outcome,
            simultaneous_knockout=both_down,
        )
        self.history.append(result)
        return result
