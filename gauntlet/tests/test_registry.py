"""
Tests for the session registry.

Tests:
- One active session per subject
- Idle abandonment and retention-based eviction
- Failed openings leave nothing behind
"""

import threading

import pytest

from ..engine_core import SessionMode
from ..errors import (
    ConflictError,
    InvalidModeError,
    JudgeUnavailableError,
    NotFoundError,
)
from ..session import SessionRegistry, SessionStatus
from .conftest import VIVA_BANK, ScriptedJudge, viva


class TestCreate:
    """Tests for SessionRegistry.create."""

    def test_viva_gets_question_bank(self, registry, judge):
        session_id = registry.create("proj-1", "viva")

        machine = registry.get(session_id)
        assert machine.mode == SessionMode.VIVA
        assert machine.question_bank == tuple(VIVA_BANK)
        assert machine.ledger.pending.prompt == VIVA_BANK[0]
        assert judge.open_calls == [("proj-1", SessionMode.VIVA, 3)]

    def test_battle_gets_opening_line(self, registry):
        session_id = registry.create("proj-1", SessionMode.BATTLE)

        snapshot = registry.get(session_id).snapshot()
        assert snapshot.opening_line == "I am The Deprecator."
        assert snapshot.participant_hp == 100

    def test_second_active_session_conflicts(self, registry):
        """Scenario: a subject already under evaluation."""
        first = registry.create("proj-1", "viva")

        with pytest.raises(ConflictError) as exc_info:
            registry.create("proj-1", "battle")

        assert exc_info.value.details["session_id"] == first
        assert len(registry) == 1
        assert registry.get(first).is_active

    def test_other_subjects_unaffected(self, registry):
        registry.create("proj-1", "viva")

        registry.create("proj-2", "battle")

        assert len(registry.list_active()) == 2

    def test_new_session_after_abandon(self, registry):
        first = registry.create("proj-1", "viva")
        registry.get(first).abandon()

        second = registry.create("proj-1", "viva")

        assert second != first
        assert registry.get(first).status == SessionStatus.ABANDONED

    def test_unknown_subject(self, registry, judge):
        with pytest.raises(NotFoundError):
            registry.create("proj-404", "viva")
        assert judge.open_calls == []

    def test_invalid_mode(self, registry):
        with pytest.raises(InvalidModeError):
            registry.create("proj-1", "duel")

    def test_judge_failure_frees_subject(self, registry, judge):
        """A failed opening registers nothing and holds no reservation."""
        judge.open_error = JudgeUnavailableError("judge down")

        with pytest.raises(JudgeUnavailableError):
            registry.create("proj-1", "viva")
        assert len(registry) == 0

        judge.open_error = None
        session_id = registry.create("proj-1", "viva")
        assert registry.get(session_id).is_active


class TestLookup:

    def test_unknown_id(self, registry):
        with pytest.raises(NotFoundError) as exc_info:
            registry.get("nope")
        assert exc_info.value.details["evicted"] is False

    def test_list_for_subject_oldest_first(self, registry, clock):
        first = registry.create("proj-1", "viva")
        registry.get(first).abandon()
        clock.advance(5)
        second = registry.create("proj-1", "battle")

        machines = registry.list_for_subject("proj-1")

        assert [m.session_id for m in machines] == [first, second]
        assert registry.list_for_subject("proj-2") == []


class TestSweep:
    """Tests for idle abandonment and eviction."""

    def test_idle_session_abandoned_then_evicted(self, registry, clock):
        """Scenario: idle past threshold, then past retention."""
        session_id = registry.create("proj-1", "viva")

        clock.advance(31)
        result = registry.sweep(idle_threshold=30)

        assert result["abandoned"] == [session_id]
        assert registry.get(session_id).status == SessionStatus.ABANDONED

        clock.advance(61)
        result = registry.sweep(idle_threshold=30)

        assert result["evicted"] == [session_id]
        with pytest.raises(NotFoundError) as exc_info:
            registry.get(session_id)
        assert exc_info.value.details["evicted"] is True

    def test_recent_activity_keeps_session(self, registry, clock, judge):
        session_id = registry.create("proj-1", "viva")
        clock.advance(20)
        judge.queue(viva(5))
        registry.get(session_id).submit_response("answer")
        clock.advance(20)

        result = registry.sweep(idle_threshold=30)

        assert result == {"abandoned": [], "evicted": []}
        assert registry.get(session_id).is_active

    def test_closed_session_kept_within_retention(self, registry, clock):
        session_id = registry.create("proj-1", "viva")
        registry.get(session_id).abandon()
        clock.advance(30)

        registry.sweep(idle_threshold=1_000)

        assert registry.get(session_id).status == SessionStatus.ABANDONED

    def test_evicted_id_never_reused(self, registry, clock):
        session_id = registry.create("proj-1", "viva")
        registry.get(session_id).abandon()
        clock.advance(61)
        registry.sweep(idle_threshold=1_000)

        assert session_id in registry._retired_ids
        assert registry.create("proj-1", "viva") != session_id


class TestEvict:

    def test_evict_closed(self, registry):
        session_id = registry.create("proj-1", "viva")
        registry.get(session_id).abandon()

        assert registry.evict(session_id) is True
        assert len(registry) == 0

    def test_evict_active_conflicts(self, registry):
        session_id = registry.create("proj-1", "viva")

        with pytest.raises(ConflictError):
            registry.evict(session_id)

    def test_evict_unknown(self, registry):
        assert registry.evict("nope") is False


class SlowOpeningJudge(ScriptedJudge):
    """ScriptedJudge whose open_session() waits until released."""

    def __init__(self):
        super().__init__()
        self.opening = threading.Event()
        self.release = threading.Event()

    def open_session(self, *args, **kwargs):
        self.opening.set()
        assert self.release.wait(timeout=5)
        return super().open_session(*args, **kwargs)


class TestConcurrentCreate:

    def test_create_in_progress_conflicts(self, directory, clock):
        """A subject is reserved while its opening is being fetched."""
        judge = SlowOpeningJudge()
        registry = SessionRegistry(judge=judge, directory=directory, clock=clock)
        outcome = {}

        def first_create():
            outcome["session_id"] = registry.create("proj-1", "viva")

        thread = threading.Thread(target=first_create)
        thread.start()
        try:
            assert judge.opening.wait(timeout=5)

            with pytest.raises(ConflictError):
                registry.create("proj-1", "battle")
            assert len(registry) == 0
        finally:
            judge.release.set()
            thread.join(timeout=5)

        assert registry.get(outcome["session_id"]).is_active
        assert len(judge.open_calls) == 1


class TestRetiredIds:

    def test_only_recent_evictions_remembered(self, judge, directory, clock):
        registry = SessionRegistry(
            judge=judge, directory=directory, retention=0, retired_capacity=2, clock=clock,
        )
        evicted = []
        for _ in range(3):
            session_id = registry.create("proj-1", "viva")
            registry.get(session_id).abandon()
            registry.evict(session_id)
            evicted.append(session_id)

        assert list(registry._retired_ids) == evicted[1:]
        with pytest.raises(NotFoundError) as exc_info:
            registry.get(evicted[0])
        assert exc_info.value.details["evicted"] is False
        with pytest.raises(NotFoundError) as exc_info:
            registry.get(evicted[2])
        assert exc_info.value.details["evicted"] is True
