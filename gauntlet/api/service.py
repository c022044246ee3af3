"""
API Service - Business logic layer between API and engine.

The service:
1. Translates API requests to registry / state machine calls
2. Converts engine values into response schemas
3. Lets engine errors propagate for the app to map onto HTTP

This layer is framework-agnostic (can be used with FastAPI, Flask, etc.)
All methods block while the Judge is consulted; async callers should run
them in a thread pool.
"""

from __future__ import annotations
from dataclasses import dataclass

from .schemas import (
    # Requests
    CreateSessionRequest,
    SubmitResponseRequest,
    # Responses
    CreateSessionResponse,
    SubmitResponseResponse,
    AdvanceResponse,
    StatusResponse,
    SessionSnapshotResponse,
    SessionListResponse,
    # Shared
    SessionSummary,
    TurnInfo,
    VerdictInfo,
    CombatInfo,
    ProgressInfo,
    # Enums
    SessionMode,
    SessionStatus,
)
from ..config import EngineConfig
from ..engine_core import MAX_HP, Turn, score_band
from ..judge import HttpJudgeClient
from ..session import (
    SessionRegistry,
    SessionSnapshot,
    StaticSubjectDirectory,
    HttpSubjectDirectory,
)


@dataclass
class APIService:
    """
    Main API service for the dashboard.

    Usage:
        service = APIService.from_config(EngineConfig.from_env())

        created = service.create_session(CreateSessionRequest(subject_id="p1", mode="viva"))
        result = service.submit_response(created.session_id, SubmitResponseRequest(text="..."))
    """
    registry: SessionRegistry
    idle_timeout: float = 1800.0

    @classmethod
    def from_config(cls, config: EngineConfig) -> APIService:
        """Wire the HTTP judge, the subject directory and the registry."""
        judge = HttpJudgeClient(base_url=config.judge_url, timeout=config.judge_timeout)
        if config.directory_url:
            directory = HttpSubjectDirectory(base_url=config.directory_url)
        elif config.subjects_file:
            directory = StaticSubjectDirectory.from_file(config.subjects_file)
        else:
            directory = StaticSubjectDirectory()

        registry = SessionRegistry(
            judge=judge,
            directory=directory,
            viva_question_count=config.viva_question_count,
            max_battle_turns=config.max_battle_turns,
            judge_timeout=config.judge_timeout,
            retention=config.retention,
        )
        return cls(registry=registry, idle_timeout=config.idle_timeout)

    def create_session(self, request: CreateSessionRequest) -> CreateSessionResponse:
        """Start a session; the response always includes the first prompt."""
        session_id = self.registry.create(request.subject_id, request.mode)
        snapshot = self.registry.get(session_id).snapshot()
        return CreateSessionResponse(
            session_id=session_id,
            first_prompt=snapshot.turns[0].prompt,
            opening_line=snapshot.opening_line,
            snapshot=self._snapshot_to_response(snapshot),
        )

    def submit_response(
        self,
        session_id: str,
        request: SubmitResponseRequest,
    ) -> SubmitResponseResponse:
        """Answer the current prompt and return the judged turn."""
        machine = self.registry.get(session_id)
        result = machine.submit_response(request.text, timeout=request.timeout)

        combat = None
        if result.damage is not None:
            combat = CombatInfo(
                participant_hp=result.damage.participant_hp,
                judge_hp=result.damage.judge_hp,
                max_hp=MAX_HP,
            )
        return SubmitResponseResponse(
            session_id=session_id,
            turn=self._turn_to_info(result.turn),
            status=SessionStatus(result.status.value),
            next_turn=self._turn_to_info(result.next_turn) if result.next_turn else None,
            combat=combat,
            turn_cap_reached=result.turn_cap_reached,
        )

    def advance(self, session_id: str) -> AdvanceResponse:
        """Viva: move to the next question."""
        machine = self.registry.get(session_id)
        turn = machine.advance()
        snapshot = machine.snapshot()
        return AdvanceResponse(
            session_id=session_id,
            turn=self._turn_to_info(turn),
            status=SessionStatus(snapshot.status.value),
            progress=self._progress(snapshot),
        )

    def finish(self, session_id: str) -> StatusResponse:
        """Viva: close after the last question."""
        machine = self.registry.get(session_id)
        machine.finish()
        return self._status_response(machine.snapshot())

    def abandon(self, session_id: str) -> StatusResponse:
        """Quit a session at any point."""
        machine = self.registry.get(session_id)
        machine.abandon()
        return self._status_response(machine.snapshot())

    def get_snapshot(self, session_id: str) -> SessionSnapshotResponse:
        """Full read-only session view."""
        return self._snapshot_to_response(self.registry.get(session_id).snapshot())

    def list_sessions(self, subject_id: str | None = None) -> SessionListResponse:
        """Sessions for one subject, or every active session."""
        if subject_id:
            machines = self.registry.list_for_subject(subject_id)
        else:
            machines = [self.registry.get(sid) for sid in self.registry.list_active()]

        summaries = []
        for machine in machines:
            snapshot = machine.snapshot()
            summaries.append(
                SessionSummary(
                    session_id=snapshot.session_id,
                    subject_id=snapshot.subject_id,
                    mode=SessionMode(snapshot.mode.value),
                    status=SessionStatus(snapshot.status.value),
                    created_at=snapshot.created_at,
                    closed_at=snapshot.closed_at,
                    turn_count=len(snapshot.turns),
                    total_score=(
                        snapshot.total_score
                        if snapshot.mode.value == SessionMode.VIVA.value else None
                    ),
                )
            )
        return SessionListResponse(sessions=summaries, count=len(summaries))

    def sweep(self) -> dict[str, list[str]]:
        """Abandon idle sessions and evict expired ones."""
        return self.registry.sweep(self.idle_timeout)

    # =========================================================================
    # Helper methods
    # =========================================================================

    def _snapshot_to_response(self, snapshot: SessionSnapshot) -> SessionSnapshotResponse:
        """Convert SessionSnapshot to its response schema."""
        turns = [self._turn_to_info(turn) for turn in snapshot.turns]
        is_viva = snapshot.mode.value == SessionMode.VIVA.value

        combat = None
        if snapshot.participant_hp is not None and snapshot.judge_hp is not None:
            combat = CombatInfo(
                participant_hp=snapshot.participant_hp,
                judge_hp=snapshot.judge_hp,
                max_hp=MAX_HP,
            )

        return SessionSnapshotResponse(
            session_id=snapshot.session_id,
            subject_id=snapshot.subject_id,
            mode=SessionMode(snapshot.mode.value),
            status=SessionStatus(snapshot.status.value),
            created_at=snapshot.created_at,
            closed_at=snapshot.closed_at,
            opening_line=snapshot.opening_line,
            turns=turns,
            current_turn=turns[-1] if turns else None,
            combat=combat,
            progress=self._progress(snapshot) if is_viva else None,
            total_score=snapshot.total_score if is_viva else None,
            average_score=snapshot.average_score if is_viva else None,
        )

    def _turn_to_info(self, turn: Turn) -> TurnInfo:
        """Convert a ledger Turn to TurnInfo."""
        verdict = None
        if turn.verdict is not None:
            verdict = VerdictInfo(
                feedback=turn.verdict.feedback,
                score=turn.verdict.score,
                band=score_band(turn.verdict.score),
                participant_damage=turn.verdict.participant_damage,
                judge_damage=turn.verdict.judge_damage,
            )
        return TurnInfo(
            sequence_index=turn.sequence_index,
            prompt=turn.prompt,
            response=turn.response,
            verdict=verdict,
            is_resolved=turn.is_resolved,
        )

    def _progress(self, snapshot: SessionSnapshot) -> ProgressInfo:
        total = snapshot.question_count or 0
        answered = snapshot.resolved_count
        percent = round(answered * 100 / total) if total else 0
        return ProgressInfo(answered=answered, total=total, percent=percent)

    def _status_response(self, snapshot: SessionSnapshot) -> StatusResponse:
        return StatusResponse(
            session_id=snapshot.session_id,
            status=SessionStatus(snapshot.status.value),
            closed_at=snapshot.closed_at,
        )
