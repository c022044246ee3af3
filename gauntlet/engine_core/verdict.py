"""
Verdict - The Judge's decision on one response.

A verdict is a value object. It is normalized once, at the Judge boundary
(fractional numbers rounded half-up to integers), and range-checked by the
ledger before it is attached to a turn.

Viva verdicts carry a score in [0, 10].
Battle verdicts carry two damages in [0, 100] and an optional next prompt.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Mapping

from ..errors import ValidationError, InvalidModeError


SCORE_MIN, SCORE_MAX = 0, 10
DAMAGE_MIN, DAMAGE_MAX = 0, 100


class SessionMode(str, Enum):
    """Kind of evaluation session."""
    VIVA = "viva"
    BATTLE = "battle"

    @classmethod
    def parse(cls, value: Any) -> SessionMode:
        """Accept a SessionMode or its name/value in any case."""
        if isinstance(value, SessionMode):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for mode in cls:
                if normalized == mode.value:
                    return mode
        raise InvalidModeError(value)


def round_half_up(value: Any, field_name: str) -> int:
    """Convert a Judge number to an int, rounding .5 away from zero (6.5 -> 7)."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(
            f"{field_name} must be a number, got {value!r}",
            {"field": field_name},
        )
    if isinstance(value, int):
        return value
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(
            f"{field_name} must be a number, got {value!r}",
            {"field": field_name},
        )
    if not number.is_finite():
        raise ValidationError(f"{field_name} must be finite", {"field": field_name})
    return int(number.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def score_band(score: int | None) -> str | None:
    """Label a Viva score: strong (>=7), fair (>=4) or weak."""
    if score is None:
        return None
    if score >= 7:
        return "strong"
    if score >= 4:
        return "fair"
    return "weak"


@dataclass(frozen=True)
class Verdict:
    """
    Normalized Judge output for a single turn.

    Fields unused by a mode stay None.
    """
    feedback: str
    score: int | None = None
    participant_damage: int | None = None
    judge_damage: int | None = None
    next_prompt: str | None = None

    @classmethod
    def from_payload(cls, payload: Any, mode: SessionMode) -> Verdict:
        """
        Build a verdict from a raw Judge response body.

        Only the fields the mode uses are read; a Viva ignores damages and
        a Battle ignores the score. Accepts the legacy battle field names
        ``user_damage`` / ``ai_damage`` and ``next_question``. Raises
        ValidationError for anything malformed.
        """
        if not isinstance(payload, Mapping):
            raise ValidationError("Judge verdict must be a JSON object")

        feedback = payload.get("feedback")
        if feedback is None:
            feedback = ""
        if not isinstance(feedback, str):
            raise ValidationError("feedback must be text", {"field": "feedback"})

        if mode == SessionMode.VIVA:
            score = None
            if payload.get("score") is not None:
                score = round_half_up(payload["score"], "score")
            verdict = cls(feedback=feedback, score=score)
        else:
            participant_damage = _first_present(payload, "participant_damage", "user_damage")
            judge_damage = _first_present(payload, "judge_damage", "ai_damage")
            if participant_damage is not None:
                participant_damage = round_half_up(participant_damage, "participant_damage")
            if judge_damage is not None:
                judge_damage = round_half_up(judge_damage, "judge_damage")

            next_prompt = _first_present(payload, "next_prompt", "next_question")
            if not isinstance(next_prompt, str) or not next_prompt.strip():
                next_prompt = None

            verdict = cls(
                feedback=feedback,
                participant_damage=participant_damage,
                judge_damage=judge_damage,
                next_prompt=next_prompt,
            )
        verdict.check_required(mode)
        return verdict

    def for_mode(self, mode: SessionMode) -> Verdict:
        """Copy with the fields the mode does not use cleared."""
        if mode == SessionMode.VIVA:
            return replace(self, participant_damage=None, judge_damage=None, next_prompt=None)
        return replace(self, score=None)

    def check_required(self, mode: SessionMode) -> None:
        """Ensure the fields a mode depends on are present."""
        if mode == SessionMode.VIVA and self.score is None:
            raise ValidationError("Viva verdict is missing a score", {"field": "score"})
        if mode == SessionMode.BATTLE:
            missing = [
                name for name in ("participant_damage", "judge_damage")
                if getattr(self, name) is None
            ]
            if missing:
                raise ValidationError(
                    f"Battle verdict is missing {', '.join(missing)}",
                    {"fields": missing},
                )

    def validate(self, mode: SessionMode) -> None:
        """Check required fields and the numeric ranges of the mode's own fields."""
        self.check_required(mode)
        if mode == SessionMode.VIVA:
            _check_range("score", self.score, SCORE_MIN, SCORE_MAX)
        else:
            _check_range("participant_damage", self.participant_damage, DAMAGE_MIN, DAMAGE_MAX)
            _check_range("judge_damage", self.judge_damage, DAMAGE_MIN, DAMAGE_MAX)


def _first_present(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


def _check_range(name: str, value: int | None, low: int, high: int) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", {"field": name})
    if not low <= value <= high:
        raise ValidationError(
            f"{name} must be within [{low}, {high}], got {value}",
            {"field": name, "value": value},
        )
