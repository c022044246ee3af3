"""
Error taxonomy shared by the engine and the API layer.

Every error carries a stable ``code`` that the API reports verbatim.
ValidationError and JudgeUnavailableError leave the current turn pending
and are safe to retry. StateError, ConflictError and NotFoundError signal
caller misuse.
"""

from __future__ import annotations
from typing import Any


class GauntletError(Exception):
    """Base class for all engine errors."""
    code = "GAUNTLET_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(GauntletError):
    """Malformed verdict, out-of-range score/damage, or bad input."""
    code = "VALIDATION_ERROR"


class InvalidModeError(ValidationError):
    """Session mode is not one of the known modes."""
    code = "INVALID_MODE"

    def __init__(self, mode: Any):
        super().__init__(f"Unknown session mode: {mode!r}", {"mode": str(mode)})
        self.mode = mode


class StateError(GauntletError):
    """Operation is not valid for the current session or turn state."""
    code = "INVALID_STATE"


class ConflictError(GauntletError):
    """Duplicate active session, or a second pending turn."""
    code = "CONFLICT"


class NotFoundError(GauntletError):
    """Unknown session, subject, or no pending turn."""
    code = "NOT_FOUND"


class JudgeUnavailableError(GauntletError):
    """The Judge service timed out, refused, or returned an error status."""
    code = "JUDGE_UNAVAILABLE"
