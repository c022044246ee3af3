"""
Turn Ledger - Append-only record of a session's turns.

Invariants enforced here (not by callers):
- sequence_index is zero-based, strictly increasing and gapless
- at most one turn is pending (has a prompt but no verdict)
- a resolved turn is never mutated again
- only the pending turn can be resolved, so turns resolve in order

The ledger is not thread-safe on its own. The session state machine
serializes access to it.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Iterator

from ..errors import ConflictError, NotFoundError, StateError, ValidationError
from .verdict import SessionMode, Verdict


@dataclass(frozen=True)
class Turn:
    """
    One prompt/response/verdict cycle.

    Turns are frozen; the ledger replaces its stored instance when a
    response or verdict lands.
    """
    sequence_index: int
    prompt: str
    response: str | None = None
    verdict: Verdict | None = None

    @property
    def is_resolved(self) -> bool:
        return self.verdict is not None

    @property
    def is_pending(self) -> bool:
        return self.verdict is None


class TurnHistory:
    """
    Read view over a ledger's turns.

    Iterating takes a snapshot at that moment and yields copies, so a
    caller can iterate again for fresh state and can never reach the
    ledger's own instances.
    """

    def __init__(self, ledger: TurnLedger):
        self._ledger = ledger

    def __iter__(self) -> Iterator[Turn]:
        for turn in tuple(self._ledger._turns):
            yield replace(turn)

    def __len__(self) -> int:
        return len(self._ledger._turns)


class TurnLedger:
    """
    Ordered, append-only store of turns for one session.

    Usage:
        ledger = TurnLedger(SessionMode.VIVA)
        ledger.append_prompt("Why did you pick PostgreSQL?")
        ledger.record_response("Because ...")
        ledger.resolve_current(verdict)
    """

    def __init__(self, mode: SessionMode):
        self.mode = mode
        self._turns: list[Turn] = []

    def __len__(self) -> int:
        return len(self._turns)

    @property
    def current(self) -> Turn | None:
        """Most recent turn, resolved or not."""
        return replace(self._turns[-1]) if self._turns else None

    @property
    def pending(self) -> Turn | None:
        """The unresolved turn, if there is one."""
        if self._turns and self._turns[-1].is_pending:
            return replace(self._turns[-1])
        return None

    @property
    def resolved_count(self) -> int:
        return sum(1 for turn in self._turns if turn.is_resolved)

    def append_prompt(self, text: str) -> Turn:
        """Open a new turn. Fails if a turn is still pending."""
        if self.pending is not None:
            raise ConflictError(
                "A turn is already pending",
                {"sequence_index": self._turns[-1].sequence_index},
            )
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Prompt text must not be empty")

        turn = Turn(sequence_index=len(self._turns), prompt=text)
        self._turns.append(turn)
        return replace(turn)

    def record_response(self, text: str) -> Turn:
        """
        Store the participant's response on the pending turn.

        May be called again before resolution (a retry with corrected text).
        """
        index = self._pending_position()
        turn = replace(self._turns[index], response=text)
        self._turns[index] = turn
        return replace(turn)

    def resolve_current(self, verdict: Verdict) -> Turn:
        """
        Attach a verdict to the pending turn, making it immutable.

        Fields the ledger's mode does not use are dropped, not checked.
        """
        index = self._pending_position()
        verdict = verdict.for_mode(self.mode)
        verdict.validate(self.mode)
        if self._turns[index].response is None:
            raise StateError("Cannot resolve a turn that has no response")

        turn = replace(self._turns[index], verdict=verdict)
        self._turns[index] = turn
        return replace(turn)

    def discard_pending(self) -> Turn | None:
        """Drop the pending turn without resolving it. Returns it, if any."""
        if self._turns and self._turns[-1].is_pending:
            return self._turns.pop()
        return None

    def history(self) -> TurnHistory:
        """Ordered read view of every turn."""
        return TurnHistory(self)

    def _pending_position(self) -> int:
        if not self._turns or self._turns[-1].is_resolved:
            raise NotFoundError("No pending turn")
        return len(self._turns) - 1
