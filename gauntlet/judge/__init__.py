"""
Judge Module - The external scoring collaborator.

The engine treats the Judge as a black box: given a prompt and a response
it returns a score (Viva) or a damage pair (Battle) plus feedback. It also
supplies the questions a session opens with.
"""

from .client import (
    Judge,
    HttpJudgeClient,
    SubjectContext,
    FenceToken,
    SessionOpening,
    parse_opening,
    GENERIC_CONTINUATION_PROMPT,
    FENCE_HEADER,
)

__all__ = [
    "Judge",
    "HttpJudgeClient",
    "SubjectContext",
    "FenceToken",
    "SessionOpening",
    "parse_opening",
    "GENERIC_CONTINUATION_PROMPT",
    "FENCE_HEADER",
]
