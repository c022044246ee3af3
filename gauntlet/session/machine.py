"""
Session State Machine - One Viva or Battle run against a subject.

Lifecycle:
    CREATED -> ACTIVE -> COMPLETED | VICTORY | DEFEAT | ABANDONED

CREATED is never observable: start() appends the first prompt and moves to
ACTIVE before returning.

Turn cycle (submit_response):
1. Store the response on the pending turn
2. Call the Judge (outside the session lock)
3. Resolve the turn with the verdict
4. Battle: apply damage, evaluate outcome, append the next prompt
5. Viva: wait for advance() or finish()

Concurrency:
- One lock per session guards every state change
- A second submit while the Judge is running fails fast with StateError
- abandon() may run while the Judge is running; the late verdict is
  discarded because its fence token no longer matches
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Callable
import threading
import time
import uuid

import structlog

from ..engine_core.combat import CombatState, DamageResult, Outcome
from ..engine_core.ledger import Turn, TurnLedger
from ..engine_core.verdict import SessionMode, Verdict
from ..errors import StateError, ValidationError
from ..judge.client import (
    GENERIC_CONTINUATION_PROMPT,
    FenceToken,
    Judge,
    SubjectContext,
)


logger = structlog.get_logger(__name__)

DEFAULT_MAX_BATTLE_TURNS = 20


class SessionStatus(str, Enum):
    """Status of an evaluation session."""
    CREATED = "created"  # Transient, before the first prompt
    ACTIVE = "active"
    COMPLETED = "completed"  # Viva only
    VICTORY = "victory"  # Battle only
    DEFEAT = "defeat"  # Battle only
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self not in {SessionStatus.CREATED, SessionStatus.ACTIVE}


_OUTCOME_STATUS = {
    Outcome.VICTORY: SessionStatus.VICTORY,
    Outcome.DEFEAT: SessionStatus.DEFEAT,
}


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session at one instant."""
    session_id: str
    subject_id: str
    mode: SessionMode
    status: SessionStatus
    created_at: float
    closed_at: float | None
    turns: tuple[Turn, ...]
    opening_line: str | None = None

    # Battle
    participant_hp: int | None = None
    judge_hp: int | None = None

    # Viva
    question_count: int | None = None

    @property
    def current_turn(self) -> Turn | None:
        return self.turns[-1] if self.turns else None

    @property
    def resolved_count(self) -> int:
        return sum(1 for turn in self.turns if turn.is_resolved)

    @property
    def scores(self) -> list[int]:
        return [
            turn.verdict.score for turn in self.turns
            if turn.verdict is not None and turn.verdict.score is not None
        ]

    @property
    def total_score(self) -> int:
        return sum(self.scores)

    @property
    def average_score(self) -> float | None:
        scores = self.scores
        return round(sum(scores) / len(scores), 2) if scores else None


@dataclass(frozen=True)
class SubmitResult:
    """What one judged response did to the session."""
    turn: Turn
    status: SessionStatus
    next_turn: Turn | None = None
    damage: DamageResult | None = None
    turn_cap_reached: bool = False


class SessionMachine:
    """
    Drives one evaluation session.

    Usage:
        machine = SessionMachine.start(
            "project-42", SessionMode.VIVA, bank[0],
            judge=judge, question_bank=bank,
        )
        machine.submit_response("We shard by tenant because ...")
        machine.advance()
        ...
        machine.finish()
    """

    def __init__(
        self,
        judge: Judge,
        context: SubjectContext,
        mode: SessionMode,
        *,
        session_id: str | None = None,
        question_bank: tuple[str, ...] = (),
        opening_line: str | None = None,
        max_battle_turns: int = DEFAULT_MAX_BATTLE_TURNS,
        judge_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.session_id = session_id or uuid.uuid4().hex
        self.judge = judge
        self.context = context
        self.mode = mode
        self.question_bank = tuple(question_bank)
        self.opening_line = opening_line
        self.max_battle_turns = max_battle_turns
        self.judge_timeout = judge_timeout
        self._clock = clock

        self.ledger = TurnLedger(mode)
        self.combat = CombatState() if mode == SessionMode.BATTLE else None

        self.status = SessionStatus.CREATED
        self.created_at = clock()
        self.closed_at: float | None = None
        self.last_activity_at = self.created_at

        self._lock = threading.Lock()
        self._judging = False
        self._attempt = 0

    @classmethod
    def start(
        cls,
        subject_id: str,
        mode: SessionMode | str,
        first_prompt: str,
        *,
        judge: Judge,
        context: SubjectContext | None = None,
        question_bank: list[str] | tuple[str, ...] | None = None,
        opening_line: str | None = None,
        session_id: str | None = None,
        max_battle_turns: int = DEFAULT_MAX_BATTLE_TURNS,
        judge_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> SessionMachine:
        """
        Create a session and issue its first prompt.

        Viva sessions take the fixed question bank here; its first entry
        must be first_prompt. Battle sessions take no bank.

        Raises:
            InvalidModeError: mode is not viva or battle
            ValidationError: empty prompt or inconsistent bank
        """
        session_mode = SessionMode.parse(mode)

        if session_mode == SessionMode.VIVA:
            bank = tuple(question_bank) if question_bank else (first_prompt,)
            if bank[0] != first_prompt:
                raise ValidationError("first_prompt must be the first question of the bank")
        else:
            if question_bank:
                raise ValidationError("Battle sessions do not take a question bank")
            bank = ()

        machine = cls(
            judge=judge,
            context=context or SubjectContext(subject_id=subject_id, title=subject_id),
            mode=session_mode,
            session_id=session_id,
            question_bank=bank,
            opening_line=opening_line,
            max_battle_turns=max_battle_turns,
            judge_timeout=judge_timeout,
            clock=clock,
        )
        machine.ledger.append_prompt(first_prompt)
        machine.status = SessionStatus.ACTIVE
        logger.info(
            "session_started",
            session_id=machine.session_id,
            subject_id=subject_id,
            mode=session_mode.value,
        )
        return machine

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def subject_id(self) -> str:
        return self.context.subject_id

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def is_judging(self) -> bool:
        return self._judging

    # =========================================================================
    # Operations
    # =========================================================================

    def submit_response(self, text: str, timeout: float | None = None) -> SubmitResult:
        """
        Answer the current prompt and have the Judge rule on it.

        On Judge failure the turn stays pending with the response stored,
        and the error propagates. Calling again is a safe retry.

        Raises:
            StateError: session not active, no pending turn, a judgment
                already in flight, or the session closed mid-judgment
            ValidationError: blank response, or a malformed verdict
            JudgeUnavailableError: Judge timed out or failed
        """
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Response text must not be empty")

        with self._lock:
            self._require_active()
            if self._judging:
                raise StateError("turn already being judged")
            pending = self.ledger.pending
            if pending is None:
                raise StateError("No pending turn to answer")

            self.ledger.record_response(text)
            self._attempt += 1
            fence = FenceToken(self.session_id, pending.sequence_index, self._attempt)
            self._judging = True
            self._touch()

        try:
            verdict = self.judge.evaluate(
                self.context,
                self.mode,
                pending.prompt,
                text,
                fence,
                timeout if timeout is not None else self.judge_timeout,
            )
        except Exception as e:
            with self._lock:
                self._judging = False
            logger.warning(
                "judge_failed",
                session_id=self.session_id,
                fence=str(fence),
                error=type(e).__name__,
            )
            raise

        with self._lock:
            self._judging = False
            if not self._fence_holds(fence):
                logger.info(
                    "late_verdict_discarded",
                    session_id=self.session_id,
                    fence=str(fence),
                    status=self.status.value,
                )
                raise StateError(
                    "Session changed while the turn was being judged",
                    {"status": self.status.value},
                )
            return self._apply_verdict(verdict)

    def advance(self) -> Turn:
        """
        Viva: issue the next question from the bank.

        Raises:
            StateError: not a Viva, not active, current turn unresolved,
                or the bank is exhausted
        """
        with self._lock:
            self._require_active()
            self._require_viva("advance")
            self._require_current_resolved()
            if len(self.ledger) >= len(self.question_bank):
                raise StateError("Question bank exhausted")

            turn = self.ledger.append_prompt(self.question_bank[len(self.ledger)])
            self._touch()
            return turn

    def finish(self) -> SessionStatus:
        """
        Viva: close the session once the last question is resolved.

        Raises:
            StateError: not a Viva, not active, current turn unresolved,
                or questions remain in the bank
        """
        with self._lock:
            self._require_active()
            self._require_viva("finish")
            self._require_current_resolved()
            remaining = len(self.question_bank) - len(self.ledger)
            if remaining > 0:
                raise StateError(
                    f"{remaining} question(s) remain",
                    {"remaining": remaining},
                )
            self._close(SessionStatus.COMPLETED)
            return self.status

    def abandon(self, reason: str = "user") -> SessionStatus:
        """
        Quit the session. Allowed at any time while active, even with a
        pending turn or a judgment in flight. The pending turn is dropped.
        """
        with self._lock:
            self._require_active()
            discarded = self.ledger.discard_pending()
            self._close(SessionStatus.ABANDONED, reason=reason)
            if discarded is not None:
                logger.info(
                    "pending_turn_discarded",
                    session_id=self.session_id,
                    sequence_index=discarded.sequence_index,
                )
            return self.status

    def snapshot(self) -> SessionSnapshot:
        """Consistent read-only view. Never mutates."""
        with self._lock:
            return SessionSnapshot(
                session_id=self.session_id,
                subject_id=self.subject_id,
                mode=self.mode,
                status=self.status,
                created_at=self.created_at,
                closed_at=self.closed_at,
                turns=tuple(self.ledger.history()),
                opening_line=self.opening_line,
                participant_hp=self.combat.participant_hp if self.combat else None,
                judge_hp=self.combat.judge_hp if self.combat else None,
                question_count=(
                    len(self.question_bank) if self.mode == SessionMode.VIVA else None
                ),
            )

    def idle_for(self, now: float) -> float:
        """Seconds since the last turn activity."""
        return now - self.last_activity_at

    # =========================================================================
    # Internals (call with the lock held)
    # =========================================================================

    def _apply_verdict(self, verdict: Verdict) -> SubmitResult:
        turn = self.ledger.resolve_current(verdict)

        if self.mode == SessionMode.VIVA:
            self._touch()
            return SubmitResult(turn=turn, status=self.status)

        damage = self.combat.apply_damage(
            verdict.participant_damage, verdict.judge_damage
        )
        if damage.simultaneous_knockout:
            logger.info("simultaneous_knockout", session_id=self.session_id)

        if damage.outcome != Outcome.ONGOING:
            self._close(_OUTCOME_STATUS[damage.outcome])
            return SubmitResult(turn=turn, status=self.status, damage=damage)

        if self.max_battle_turns and self.combat.turn_number >= self.max_battle_turns:
            self._close(SessionStatus.DEFEAT, reason="turn_cap")
            return SubmitResult(
                turn=turn, status=self.status, damage=damage, turn_cap_reached=True
            )

        next_turn = self.ledger.append_prompt(
            verdict.next_prompt or GENERIC_CONTINUATION_PROMPT
        )
        self._touch()
        return SubmitResult(
            turn=turn, status=self.status, next_turn=next_turn, damage=damage
        )

    def _fence_holds(self, fence: FenceToken) -> bool:
        pending = self.ledger.pending
        return (
            self.status == SessionStatus.ACTIVE
            and pending is not None
            and pending.sequence_index == fence.sequence_index
            and self._attempt == fence.attempt
        )

    def _close(self, status: SessionStatus, reason: str | None = None) -> None:
        self.status = status
        self.closed_at = self._clock()
        self._touch()
        logger.info(
            "session_closed",
            session_id=self.session_id,
            status=status.value,
            reason=reason,
            turns=len(self.ledger),
        )

    def _touch(self) -> None:
        self.last_activity_at = self._clock()

    def _require_active(self) -> None:
        if self.status != SessionStatus.ACTIVE:
            raise StateError(
                f"Session is {self.status.value}",
                {"status": self.status.value},
            )

    def _require_viva(self, operation: str) -> None:
        if self.mode != SessionMode.VIVA:
            raise StateError(f"{operation} is only valid for viva sessions")

    def _require_current_resolved(self) -> None:
        current = self.ledger.current
        if current is None or current.is_pending:
            raise StateError("Current turn is not resolved")
