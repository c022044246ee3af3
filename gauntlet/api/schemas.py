"""
Pydantic Schemas for API - Request/response models for OpenAPI.

These models define the contract between the dashboard UI and the engine.

Error Codes:
- VALIDATION_ERROR: Malformed input, or the Judge returned a malformed verdict
- INVALID_MODE: Session mode is not viva or battle
- INVALID_STATE: Operation not valid for the session's current state
- CONFLICT: Subject already has an active session
- NOT_FOUND: Session or subject does not exist (or was evicted)
- JUDGE_UNAVAILABLE: Judge timed out or failed; the turn stays pending
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class SessionMode(str, Enum):
    """Session modes."""
    VIVA = "viva"
    BATTLE = "battle"


class SessionStatus(str, Enum):
    """Session status values."""
    ACTIVE = "active"
    COMPLETED = "completed"
    VICTORY = "victory"
    DEFEAT = "defeat"
    ABANDONED = "abandoned"


class ScoreBand(str, Enum):
    """Viva score bands."""
    STRONG = "strong"
    FAIR = "fair"
    WEAK = "weak"


class ErrorCode(str, Enum):
    """Structured error codes."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_MODE = "INVALID_MODE"
    INVALID_STATE = "INVALID_STATE"
    CONFLICT = "CONFLICT"
    NOT_FOUND = "NOT_FOUND"
    JUDGE_UNAVAILABLE = "JUDGE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# =============================================================================
# Shared Models
# =============================================================================

class VerdictInfo(BaseModel):
    """The Judge's ruling on one response."""
    feedback: str
    score: Optional[int] = Field(None, ge=0, le=10)
    band: Optional[ScoreBand] = None
    participant_damage: Optional[int] = Field(None, ge=0, le=100)
    judge_damage: Optional[int] = Field(None, ge=0, le=100)


class TurnInfo(BaseModel):
    """One prompt/response/verdict cycle."""
    sequence_index: int = Field(ge=0)
    prompt: str
    response: Optional[str] = None
    verdict: Optional[VerdictInfo] = None
    is_resolved: bool = False


class CombatInfo(BaseModel):
    """Battle health pools."""
    participant_hp: int = Field(ge=0, le=100)
    judge_hp: int = Field(ge=0, le=100)
    max_hp: int = 100


class ProgressInfo(BaseModel):
    """Viva progress through the question bank."""
    answered: int = 0
    total: int = 0
    percent: int = Field(0, ge=0, le=100)


class SessionSummary(BaseModel):
    """Short session listing entry."""
    session_id: str
    subject_id: str
    mode: SessionMode
    status: SessionStatus
    created_at: float
    closed_at: Optional[float] = None
    turn_count: int = 0
    total_score: Optional[int] = None


# =============================================================================
# Request Models
# =============================================================================

class CreateSessionRequest(BaseModel):
    """Start a Viva or Battle for a project."""
    subject_id: str = Field(min_length=1, description="Project under evaluation")
    mode: str = Field(description="viva or battle")


class SubmitResponseRequest(BaseModel):
    """Answer the current prompt."""
    text: str = Field(min_length=1, description="Participant's answer")
    timeout: Optional[float] = Field(
        None, gt=0, le=300, description="Judge timeout in seconds"
    )


# =============================================================================
# Response Models
# =============================================================================

class SessionSnapshotResponse(BaseModel):
    """Complete read-only view of a session."""
    session_id: str
    subject_id: str
    mode: SessionMode
    status: SessionStatus
    created_at: float
    closed_at: Optional[float] = None
    opening_line: Optional[str] = None
    turns: list[TurnInfo] = Field(default_factory=list)
    current_turn: Optional[TurnInfo] = None
    combat: Optional[CombatInfo] = None
    progress: Optional[ProgressInfo] = None
    total_score: Optional[int] = None
    average_score: Optional[float] = None


class CreateSessionResponse(BaseModel):
    """Returned by POST /sessions. Always carries the first prompt."""
    session_id: str
    first_prompt: str
    opening_line: Optional[str] = None
    snapshot: SessionSnapshotResponse


class SubmitResponseResponse(BaseModel):
    """Returned after the Judge rules on a response."""
    session_id: str
    turn: TurnInfo
    status: SessionStatus
    next_turn: Optional[TurnInfo] = None
    combat: Optional[CombatInfo] = None
    turn_cap_reached: bool = False


class AdvanceResponse(BaseModel):
    """Returned by POST /advance (Viva)."""
    session_id: str
    turn: TurnInfo
    status: SessionStatus
    progress: ProgressInfo


class StatusResponse(BaseModel):
    """Returned by POST /finish and POST /abandon."""
    session_id: str
    status: SessionStatus
    closed_at: Optional[float] = None


class SessionListResponse(BaseModel):
    """List of sessions."""
    sessions: list[SessionSummary] = Field(default_factory=list)
    count: int = 0


class ErrorResponse(BaseModel):
    """Standardized error response."""
    error: str
    error_code: ErrorCode
    details: Optional[dict[str, Any]] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    service: str = "gauntlet-engine"
    version: str
    active_sessions: int = 0
