"""
Session Registry - Maps session ids to live state machines.

LIFECYCLE:
1. create() looks up the subject, asks the Judge how to open, and starts
   a machine (in-memory only)
2. Callers get() the machine and drive it
3. sweep() runs on a timer:
   - ACTIVE sessions idle past the threshold become ABANDONED
   - closed sessions past the retention window are evicted
4. Evicted ids are never handed out again; the most recent ones are
   remembered so get() can report them as evicted

RULES:
- At most one ACTIVE session per subject
- The registry lock covers insertion, removal and sweep only; it is never
  held while a session runs a turn
"""

from __future__ import annotations
from typing import Callable
import threading
import time
import uuid

import structlog

from ..engine_core.verdict import SessionMode
from ..errors import ConflictError, NotFoundError, StateError
from ..judge.client import Judge
from .machine import DEFAULT_MAX_BATTLE_TURNS, SessionMachine
from .subjects import SubjectDirectory


logger = structlog.get_logger(__name__)

RETIRED_ID_CAPACITY = 10_000


class SessionRegistry:
    """
    Owns every live session.

    Usage:
        registry = SessionRegistry(judge=judge, directory=directory)
        session_id = registry.create("project-42", "battle")
        machine = registry.get(session_id)
    """

    def __init__(
        self,
        judge: Judge,
        directory: SubjectDirectory,
        *,
        viva_question_count: int = 5,
        max_battle_turns: int = DEFAULT_MAX_BATTLE_TURNS,
        judge_timeout: float | None = None,
        retention: float = 600.0,
        retired_capacity: int = RETIRED_ID_CAPACITY,
        clock: Callable[[], float] = time.time,
    ):
        self.judge = judge
        self.directory = directory
        self.viva_question_count = viva_question_count
        self.max_battle_turns = max_battle_turns
        self.judge_timeout = judge_timeout
        self.retention = retention
        self.retired_capacity = retired_capacity
        self._clock = clock

        self._sessions: dict[str, SessionMachine] = {}
        self._active_by_subject: dict[str, str] = {}
        self._reserved_subjects: set[str] = set()
        # Insertion-ordered; only the most recent evictions are remembered
        self._retired_ids: dict[str, None] = {}
        self._lock = threading.Lock()

    def create(self, subject_id: str, mode: SessionMode | str) -> str:
        """
        Start a session for a subject and return its id.

        Raises:
            InvalidModeError: unknown mode
            ConflictError: the subject already has an active session
            NotFoundError: unknown subject
            JudgeUnavailableError / ValidationError: the Judge could not
                supply an opening; nothing is registered
        """
        session_mode = SessionMode.parse(mode)

        with self._lock:
            self._release_if_closed(subject_id)
            if subject_id in self._active_by_subject or subject_id in self._reserved_subjects:
                raise ConflictError(
                    f"Subject {subject_id} already has an active session",
                    {
                        "subject_id": subject_id,
                        "session_id": self._active_by_subject.get(subject_id),
                    },
                )
            self._reserved_subjects.add(subject_id)
            session_id = self._new_session_id()

        try:
            context = self.directory.lookup(subject_id)
            question_count = (
                self.viva_question_count if session_mode == SessionMode.VIVA else 1
            )
            opening = self.judge.open_session(
                context, session_mode, question_count, self.judge_timeout
            )
            machine = SessionMachine.start(
                subject_id,
                session_mode,
                opening.first_prompt,
                judge=self.judge,
                context=context,
                question_bank=opening.prompts if session_mode == SessionMode.VIVA else None,
                opening_line=opening.opening_line,
                session_id=session_id,
                max_battle_turns=self.max_battle_turns,
                judge_timeout=self.judge_timeout,
                clock=self._clock,
            )
        except Exception:
            with self._lock:
                self._reserved_subjects.discard(subject_id)
            raise

        with self._lock:
            self._reserved_subjects.discard(subject_id)
            self._sessions[session_id] = machine
            self._active_by_subject[subject_id] = session_id
        return session_id

    def get(self, session_id: str) -> SessionMachine:
        """Return the machine for an id, or raise NotFoundError."""
        with self._lock:
            machine = self._sessions.get(session_id)
        if machine is None:
            raise NotFoundError(
                f"Session {session_id} not found",
                {"session_id": session_id, "evicted": session_id in self._retired_ids},
            )
        return machine

    def evict(self, session_id: str) -> bool:
        """
        Remove a closed session (e.g. once it has been exported).

        Active sessions must be abandoned first. Returns False if the id
        is unknown.
        """
        with self._lock:
            machine = self._sessions.get(session_id)
            if machine is None:
                return False
            if machine.is_active:
                raise ConflictError(
                    "Active sessions cannot be evicted",
                    {"session_id": session_id},
                )
            self._remove(session_id)
            return True

    def sweep(self, idle_threshold: float) -> dict[str, list[str]]:
        """
        Abandon idle sessions and evict expired closed ones.

        Returns the affected ids under ``abandoned`` and ``evicted``.
        """
        now = self._clock()
        with self._lock:
            machines = list(self._sessions.values())

        abandoned = []
        for machine in machines:
            if machine.is_active and not machine.is_judging and machine.idle_for(now) > idle_threshold:
                try:
                    machine.abandon(reason="idle")
                except StateError:
                    # Closed concurrently by its own caller
                    logger.debug("sweep_skip", session_id=machine.session_id)
                    continue
                abandoned.append(machine.session_id)

        evicted = []
        with self._lock:
            for session_id, machine in list(self._sessions.items()):
                if machine.closed_at is not None and session_id not in abandoned:
                    if now - machine.closed_at > self.retention:
                        self._remove(session_id)
                        evicted.append(session_id)

        if abandoned or evicted:
            logger.info("registry_swept", abandoned=abandoned, evicted=evicted)
        return {"abandoned": abandoned, "evicted": evicted}

    def list_active(self) -> list[str]:
        """Ids of ACTIVE sessions."""
        with self._lock:
            return [
                sid for sid, machine in self._sessions.items() if machine.is_active
            ]

    def list_for_subject(self, subject_id: str) -> list[SessionMachine]:
        """Every retained session for a subject, oldest first."""
        with self._lock:
            machines = [
                machine for machine in self._sessions.values()
                if machine.subject_id == subject_id
            ]
        return sorted(machines, key=lambda m: m.created_at)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _new_session_id(self) -> str:
        while True:
            session_id = uuid.uuid4().hex
            if session_id not in self._sessions and session_id not in self._retired_ids:
                return session_id

    def _retire(self, session_id: str) -> None:
        self._retired_ids[session_id] = None
        while len(self._retired_ids) > self.retired_capacity:
            del self._retired_ids[next(iter(self._retired_ids))]

    def _release_if_closed(self, subject_id: str) -> None:
        session_id = self._active_by_subject.get(subject_id)
        if session_id is None:
            return
        machine = self._sessions.get(session_id)
        if machine is None or not machine.is_active:
            del self._active_by_subject[subject_id]

    def _remove(self, session_id: str) -> None:
        machine = self._sessions.pop(session_id)
        self._retire(session_id)
        if self._active_by_subject.get(machine.subject_id) == session_id:
            del self._active_by_subject[machine.subject_id]
        logger.info("session_evicted", session_id=session_id, status=machine.status.value)
