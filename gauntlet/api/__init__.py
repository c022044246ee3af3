"""
API Module - Dashboard interface.

Exposes the engine via REST API for the project dashboard.
The dashboard:
1. Starts a Viva or Battle for a project
2. Submits answers and shows the Judge's feedback
3. Advances or finishes a Viva, or follows a Battle to its outcome
4. Reads session snapshots, or listens on a WebSocket for updates

All state is session-scoped and held in memory.
"""

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
    ErrorResponse,
    HealthResponse,
    # Shared
    SessionSummary,
    TurnInfo,
    VerdictInfo,
    CombatInfo,
    ProgressInfo,
)
from .service import APIService
from .app import create_app

__all__ = [
    # Requests
    "CreateSessionRequest",
    "SubmitResponseRequest",
    # Responses
    "CreateSessionResponse",
    "SubmitResponseResponse",
    "AdvanceResponse",
    "StatusResponse",
    "SessionSnapshotResponse",
    "SessionListResponse",
    "ErrorResponse",
    "HealthResponse",
    # Shared
    "SessionSummary",
    "TurnInfo",
    "VerdictInfo",
    "CombatInfo",
    "ProgressInfo",
    # Service
    "APIService",
    "create_app",
]
