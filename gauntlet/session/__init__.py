"""
Session Module - Manages ephemeral evaluation sessions.

A session is one Viva or Battle run against a project:
- Created when the participant starts
- Holds its turns and (Battle) health pools in memory
- Closed by finishing, winning, losing or abandoning
- Evicted from the registry after a retention window

Sessions are EPHEMERAL: nothing is persisted beyond the process.
"""

from .machine import SessionMachine, SessionStatus, SessionSnapshot, SubmitResult
from .registry import SessionRegistry
from .subjects import SubjectDirectory, StaticSubjectDirectory, HttpSubjectDirectory

__all__ = [
    "SessionMachine",
    "SessionStatus",
    "SessionSnapshot",
    "SubmitResult",
    "SessionRegistry",
    "SubjectDirectory",
    "StaticSubjectDirectory",
    "HttpSubjectDirectory",
]
