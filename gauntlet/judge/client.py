"""
Judge Client - Adapter for the external Judge/Question service.

The Judge decides answer quality; the engine never does. This module:
1. Defines the Judge interface the state machine depends on
2. Implements it over HTTP (HttpJudgeClient)
3. Normalizes raw responses into Verdict / SessionOpening values

Failure mapping:
- timeout, connection error, non-2xx, {"error": ...} -> JudgeUnavailableError
- undecodable body or malformed fields -> ValidationError

Both leave the caller's turn pending; neither is retried here.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

import httpx
import structlog

from ..engine_core.verdict import SessionMode, Verdict
from ..errors import JudgeUnavailableError, ValidationError


logger = structlog.get_logger(__name__)

# Used when a battle verdict carries no usable next question.
GENERIC_CONTINUATION_PROMPT = (
    "Your defense holds for now. Walk me through the weakest part of your "
    "design and explain why it will not fail in production."
)

FENCE_HEADER = "X-Fence-Token"


@dataclass(frozen=True)
class SubjectContext:
    """What the Judge knows about the project under evaluation."""
    subject_id: str
    title: str
    abstract: str = ""
    tech_stack: str = ""

    def summary(self) -> str:
        """One-line project context, as sent with every turn."""
        text = f"Title: {self.title}. Abstract: {self.abstract}"
        if self.tech_stack:
            text += f". Tech stack: {self.tech_stack}"
        return text

    def as_payload(self) -> dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "title": self.title,
            "abstract": self.abstract,
            "tech_stack": self.tech_stack,
            "summary": self.summary(),
        }


@dataclass(frozen=True)
class FenceToken:
    """
    Identifies one judge request.

    A verdict is applied only if the session is still active and its
    pending turn and attempt still match the token it was requested with.
    """
    session_id: str
    sequence_index: int
    attempt: int

    def __str__(self) -> str:
        return f"{self.session_id}:{self.sequence_index}:{self.attempt}"


@dataclass(frozen=True)
class SessionOpening:
    """How a session begins: an optional taunt and one or more prompts."""
    prompts: tuple[str, ...]
    opening_line: str | None = None

    @property
    def first_prompt(self) -> str:
        return self.prompts[0]


class Judge(Protocol):
    """Interface to the Judge/Question collaborator."""

    def open_session(
        self,
        context: SubjectContext,
        mode: SessionMode,
        question_count: int,
        timeout: float | None = None,
    ) -> SessionOpening:
        """Viva: the full question bank. Battle: the first question."""
        ...

    def evaluate(
        self,
        context: SubjectContext,
        mode: SessionMode,
        prompt: str,
        response: str,
        fence: FenceToken,
        timeout: float | None = None,
    ) -> Verdict:
        """Judge one response."""
        ...


def parse_opening(payload: Any, mode: SessionMode, question_count: int) -> SessionOpening:
    """
    Normalize an opening payload.

    Viva expects ``questions``: a list of strings or of objects carrying
    ``question_text``. Battle expects ``first_question``.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Judge opening must be a JSON object")

    opening_line = payload.get("opening_line")
    if not isinstance(opening_line, str) or not opening_line.strip():
        opening_line = None

    if mode == SessionMode.VIVA:
        raw_questions = payload.get("questions")
        if not isinstance(raw_questions, list):
            raise ValidationError("Viva opening must include a questions list")
        prompts = []
        for item in raw_questions:
            text = item.get("question_text") if isinstance(item, Mapping) else item
            if isinstance(text, str) and text.strip():
                prompts.append(text.strip())
        prompts = prompts[:question_count]
    else:
        first = payload.get("first_question") or payload.get("next_question")
        prompts = [first.strip()] if isinstance(first, str) and first.strip() else []

    if not prompts:
        raise ValidationError("Judge opening contained no usable question")
    return SessionOpening(prompts=tuple(prompts), opening_line=opening_line)


@dataclass
class HttpJudgeClient:
    """
    Judge over HTTP.

    Usage:
        judge = HttpJudgeClient(base_url="http://judge:8001", timeout=30)
        opening = judge.open_session(context, SessionMode.BATTLE, 1)
        verdict = judge.evaluate(context, SessionMode.BATTLE, prompt, text, fence)
    """
    base_url: str = "http://127.0.0.1:8001"
    timeout: float = 30.0
    transport: httpx.BaseTransport | None = None
    client: httpx.Client = field(init=False, repr=False)

    def __post_init__(self):
        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
        )

    def close(self) -> None:
        self.client.close()

    def open_session(
        self,
        context: SubjectContext,
        mode: SessionMode,
        question_count: int,
        timeout: float | None = None,
    ) -> SessionOpening:
        payload = self._post(
            "/sessions/open",
            {
                "mode": mode.value,
                "context": context.as_payload(),
                "question_count": question_count,
            },
            timeout=timeout,
        )
        return parse_opening(payload, mode, question_count)

    def evaluate(
        self,
        context: SubjectContext,
        mode: SessionMode,
        prompt: str,
        response: str,
        fence: FenceToken,
        timeout: float | None = None,
    ) -> Verdict:
        payload = self._post(
            "/evaluate",
            {
                "mode": mode.value,
                "context": context.as_payload(),
                "prompt": prompt,
                "response": response,
            },
            timeout=timeout,
            headers={FENCE_HEADER: str(fence)},
        )
        echoed = payload.get("fence") if isinstance(payload, Mapping) else None
        if echoed is not None and echoed != str(fence):
            raise ValidationError(
                "Judge answered a different request",
                {"expected": str(fence), "received": echoed},
            )
        return Verdict.from_payload(payload, mode)

    def _post(
        self,
        path: str,
        body: dict[str, Any],
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        request_timeout = timeout if timeout is not None else self.timeout
        try:
            response = self.client.post(
                path, json=body, headers=headers, timeout=request_timeout
            )
            response.raise_for_status()
        except httpx.TimeoutException:
            logger.warning("judge_timeout", path=path, timeout=request_timeout)
            raise JudgeUnavailableError(
                f"Judge did not answer within {request_timeout}s",
                {"path": path, "timeout": request_timeout},
            )
        except httpx.HTTPStatusError as e:
            logger.warning("judge_http_error", path=path, status=e.response.status_code)
            raise JudgeUnavailableError(
                f"Judge returned HTTP {e.response.status_code}",
                {"path": path, "status": e.response.status_code},
            )
        except httpx.RequestError as e:
            logger.warning("judge_unreachable", path=path, error=str(e))
            raise JudgeUnavailableError(
                f"Judge unreachable: {e}", {"path": path}
            )

        try:
            payload = response.json()
        except ValueError:
            raise ValidationError("Judge returned a non-JSON body", {"path": path})

        if isinstance(payload, Mapping) and payload.get("error"):
            raise JudgeUnavailableError(
                f"Judge reported an error: {payload['error']}",
                {"path": path},
            )
        return payload
