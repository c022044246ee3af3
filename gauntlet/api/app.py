"""
FastAPI Application - REST API for the dashboard.

Endpoints:
    POST   /api/v1/sessions                   Start a Viva or Battle
    GET    /api/v1/sessions                   List sessions (optionally per subject)
    GET    /api/v1/sessions/{id}              Session snapshot
    POST   /api/v1/sessions/{id}/responses    Answer the current prompt
    POST   /api/v1/sessions/{id}/advance      Next question (Viva)
    POST   /api/v1/sessions/{id}/finish       Close after the last question (Viva)
    POST   /api/v1/sessions/{id}/abandon      Quit the session
    WS     /api/v1/sessions/{id}/ws           Push updates for a session

Turn Flow:
    1. POST /sessions returns the first prompt (and the Battle opening line)
    2. POST /responses blocks while the Judge rules
       - Battle: damage is applied and the next prompt is included, or the
         session ends in victory/defeat
       - Viva: call /advance for the next question, /finish after the last
    3. On JUDGE_UNAVAILABLE the turn stays pending; resubmit to retry

All responses are JSON with explicit Pydantic schemas.
"""

from contextlib import asynccontextmanager
from typing import Annotated, Optional
import asyncio
import json

import structlog
from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import EngineConfig
from ..errors import (
    GauntletError,
    ValidationError,
    InvalidModeError,
    StateError,
    ConflictError,
    NotFoundError,
    JudgeUnavailableError,
)
from ..log import configure_logging
from .service import APIService
from .schemas import (
    # Request models
    CreateSessionRequest,
    SubmitResponseRequest,
    # Response models
    CreateSessionResponse,
    SubmitResponseResponse,
    AdvanceResponse,
    StatusResponse,
    SessionSnapshotResponse,
    SessionListResponse,
    ErrorResponse,
    HealthResponse,
    # Enums
    ErrorCode,
)


logger = structlog.get_logger(__name__)

# Most specific first
ERROR_STATUS = [
    (InvalidModeError, 422),
    (ValidationError, 422),
    (StateError, 409),
    (ConflictError, 409),
    (NotFoundError, 404),
    (JudgeUnavailableError, 503),
]


def status_for(error: GauntletError) -> int:
    """HTTP status for an engine error."""
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 500


def create_app(service: APIService | None = None, config: EngineConfig | None = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        service: Optional APIService instance (built from config if not provided)
        config: Optional EngineConfig (read from the environment if not provided)

    Returns:
        FastAPI application instance
    """
    config = config or EngineConfig.from_env()
    configure_logging(config.log_level)
    api_service = service or APIService.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = asyncio.create_task(sweep_periodically())
        try:
            yield
        finally:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass

    app = FastAPI(
        title="Gauntlet Engine API",
        description="""
Turn-based AI evaluation sessions: Viva simulations and Boss Battles.

## Error Codes

| Code | HTTP | Description |
|------|------|-------------|
| `VALIDATION_ERROR` | 422 | Bad input, or a malformed Judge verdict (turn stays pending) |
| `INVALID_MODE` | 422 | Mode is not `viva` or `battle` |
| `INVALID_STATE` | 409 | Operation not valid now (e.g. turn already being judged) |
| `CONFLICT` | 409 | Subject already has an active session |
| `NOT_FOUND` | 404 | Unknown or evicted session, or unknown subject |
| `JUDGE_UNAVAILABLE` | 503 | Judge timed out or failed (turn stays pending) |
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.service = api_service

    # WebSocket connections
    ws_connections: dict[str, list[WebSocket]] = {}

    # =========================================================================
    # Error helpers
    # =========================================================================

    def make_error_response(
        error_code: ErrorCode,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ) -> JSONResponse:
        """Create a standardized error response."""
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=message,
                error_code=error_code,
                details=details,
            ).model_dump(mode="json"),
        )

    @app.exception_handler(GauntletError)
    async def handle_engine_error(request: Request, exc: GauntletError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.warning("request_failed", path=request.url.path, code=exc.code, error=exc.message)
        known_codes = {code.value for code in ErrorCode}
        return make_error_response(
            ErrorCode(exc.code) if exc.code in known_codes else ErrorCode.INTERNAL_ERROR,
            exc.message,
            status_code=status_code,
            details=exc.details or None,
        )

    async def broadcast_to_session(session_id: str, message: dict):
        """Broadcast a message to all WebSocket connections for a session."""
        if session_id in ws_connections:
            dead_connections = []
            for ws in ws_connections[session_id]:
                try:
                    await ws.send_json(message)
                except (WebSocketDisconnect, RuntimeError):
                    dead_connections.append(ws)
            for ws in dead_connections:
                ws_connections[session_id].remove(ws)

    async def push_snapshot(session_id: str):
        if session_id not in ws_connections:
            return
        snapshot = api_service.get_snapshot(session_id)
        await broadcast_to_session(session_id, {
            "type": "state_update",
            "payload": snapshot.model_dump(mode="json"),
        })

    async def sweep_once():
        """Run one registry sweep and notify subscribers of abandoned sessions."""
        result = await run_in_threadpool(api_service.sweep)
        for session_id in result["abandoned"]:
            try:
                await push_snapshot(session_id)
            except NotFoundError:
                continue
        return result

    async def sweep_periodically():
        while True:
            await asyncio.sleep(config.sweep_interval)
            try:
                await sweep_once()
            except GauntletError as e:
                logger.warning("sweep_failed", code=e.code, error=e.message)

    app.state.sweep_once = sweep_once

    # =========================================================================
    # Session Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/sessions",
        response_model=CreateSessionResponse,
        status_code=201,
        responses={
            404: {"model": ErrorResponse, "description": "Unknown subject"},
            409: {"model": ErrorResponse, "description": "Subject already has an active session"},
            422: {"model": ErrorResponse, "description": "Invalid mode"},
            503: {"model": ErrorResponse, "description": "Judge unavailable"},
        },
        tags=["Sessions"],
        summary="Start a Viva or Battle session",
    )
    async def create_session(body: CreateSessionRequest) -> CreateSessionResponse:
        """
        Start a session for a project.

        The response always carries the first prompt, so a session is never
        observed without one.
        """
        return await run_in_threadpool(api_service.create_session, body)

    @app.get(
        "/api/v1/sessions",
        response_model=SessionListResponse,
        tags=["Sessions"],
        summary="List sessions",
    )
    async def list_sessions(
        subject_id: Annotated[Optional[str], Query(description="Only this project's sessions")] = None,
    ) -> SessionListResponse:
        """Active sessions, or every retained session of one project."""
        return api_service.list_sessions(subject_id)

    @app.get(
        "/api/v1/sessions/{session_id}",
        response_model=SessionSnapshotResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Sessions"],
        summary="Get a session snapshot",
    )
    async def get_session(session_id: str) -> SessionSnapshotResponse:
        """Mode, status, health pools (Battle) and full turn history."""
        return api_service.get_snapshot(session_id)

    # =========================================================================
    # Turn Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/sessions/{session_id}/responses",
        response_model=SubmitResponseResponse,
        responses={
            404: {"model": ErrorResponse},
            409: {"model": ErrorResponse, "description": "Not active, or already being judged"},
            422: {"model": ErrorResponse, "description": "Malformed verdict; retry"},
            503: {"model": ErrorResponse, "description": "Judge unavailable; retry"},
        },
        tags=["Turns"],
        summary="Answer the current prompt",
    )
    async def submit_response(session_id: str, body: SubmitResponseRequest) -> SubmitResponseResponse:
        """
        Submit an answer. Blocks while the Judge rules.

        **Request Body:**
        ```json
        {"text": "We cache at the edge because ...", "timeout": 20}
        ```
        """
        result = await run_in_threadpool(api_service.submit_response, session_id, body)
        await push_snapshot(session_id)
        return result

    @app.post(
        "/api/v1/sessions/{session_id}/advance",
        response_model=AdvanceResponse,
        responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
        tags=["Turns"],
        summary="Move to the next Viva question",
    )
    async def advance(session_id: str) -> AdvanceResponse:
        """Valid once the current question is judged and questions remain."""
        result = api_service.advance(session_id)
        await push_snapshot(session_id)
        return result

    @app.post(
        "/api/v1/sessions/{session_id}/finish",
        response_model=StatusResponse,
        responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
        tags=["Turns"],
        summary="Finish a Viva",
    )
    async def finish(session_id: str) -> StatusResponse:
        """Valid once the last question is judged."""
        result = api_service.finish(session_id)
        await push_snapshot(session_id)
        return result

    @app.post(
        "/api/v1/sessions/{session_id}/abandon",
        response_model=StatusResponse,
        responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
        tags=["Turns"],
        summary="Abandon a session",
    )
    async def abandon(session_id: str) -> StatusResponse:
        """Always available while active. A pending turn is discarded."""
        result = api_service.abandon(session_id)
        await push_snapshot(session_id)
        return result

    # =========================================================================
    # WebSocket Endpoint
    # =========================================================================

    @app.websocket("/api/v1/sessions/{session_id}/ws")
    async def websocket_endpoint(websocket: WebSocket, session_id: str):
        """
        WebSocket for session updates.

        Messages from server:
        - state_update: Session snapshot changed
        - error: Error occurred

        Messages from client:
        - ping: Keep-alive
        """
        await websocket.accept()

        try:
            snapshot = api_service.get_snapshot(session_id)
        except NotFoundError as e:
            await websocket.send_json({
                "type": "error",
                "payload": {"message": e.message, "error_code": e.code},
            })
            await websocket.close()
            return

        ws_connections.setdefault(session_id, []).append(websocket)

        try:
            await websocket.send_json({
                "type": "state_update",
                "payload": snapshot.model_dump(mode="json"),
            })

            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                    if message.get("type") == "ping":
                        await websocket.send_json({"type": "pong"})
                except (json.JSONDecodeError, AttributeError):
                    await websocket.send_json({
                        "type": "error",
                        "payload": {"message": "Invalid JSON"},
                    })

        except WebSocketDisconnect:
            pass
        finally:
            if session_id in ws_connections:
                if websocket in ws_connections[session_id]:
                    ws_connections[session_id].remove(websocket)
                if not ws_connections[session_id]:
                    del ws_connections[session_id]

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            status="healthy",
            service="gauntlet-engine",
            version=__version__,
            active_sessions=len(api_service.registry.list_active()),
        )

    @app.get("/", tags=["System"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Gauntlet Engine API",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/health",
        }

    return app
