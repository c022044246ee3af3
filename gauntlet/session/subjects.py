"""
Subject Directory - Read-only lookup of the projects being evaluated.

The directory is owned by the surrounding application. The engine only
reads from it, once per session, to build the Judge context.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol
import json

import httpx

from ..errors import JudgeUnavailableError, NotFoundError, ValidationError
from ..judge.client import SubjectContext


class SubjectDirectory(Protocol):
    """Looks up a subject by id."""

    def lookup(self, subject_id: str) -> SubjectContext:
        """Return the subject or raise NotFoundError."""
        ...


def subject_from_mapping(subject_id: str, data: Any) -> SubjectContext:
    """Build a SubjectContext from a directory record."""
    if not isinstance(data, Mapping):
        raise ValidationError(f"Subject {subject_id} record must be an object")
    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        raise ValidationError(f"Subject {subject_id} has no title")
    tech_stack = data.get("tech_stack") or ""
    if isinstance(tech_stack, list):
        tech_stack = ", ".join(str(item) for item in tech_stack)
    return SubjectContext(
        subject_id=subject_id,
        title=title.strip(),
        abstract=str(data.get("abstract") or ""),
        tech_stack=str(tech_stack),
    )


@dataclass
class StaticSubjectDirectory:
    """
    In-memory directory.

    Usage:
        directory = StaticSubjectDirectory.from_file("subjects.json")
        context = directory.lookup("project-42")
    """
    subjects: dict[str, SubjectContext] = field(default_factory=dict)

    @classmethod
    def from_records(cls, records: Mapping[str, Any]) -> StaticSubjectDirectory:
        return cls(subjects={
            str(subject_id): subject_from_mapping(str(subject_id), data)
            for subject_id, data in records.items()
        })

    @classmethod
    def from_file(cls, path: str | Path) -> StaticSubjectDirectory:
        """Load ``{"<subject_id>": {"title": ..., "abstract": ...}}`` JSON."""
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_records(json.load(f))

    def add(self, subject: SubjectContext) -> None:
        self.subjects[subject.subject_id] = subject

    def lookup(self, subject_id: str) -> SubjectContext:
        subject = self.subjects.get(subject_id)
        if subject is None:
            raise NotFoundError(f"Subject {subject_id} not found", {"subject_id": subject_id})
        return subject


@dataclass
class HttpSubjectDirectory:
    """Directory served by the dashboard API at ``GET /projects/{id}``."""
    base_url: str
    timeout: float = 10.0
    transport: httpx.BaseTransport | None = None

    def lookup(self, subject_id: str) -> SubjectContext:
        try:
            with httpx.Client(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = client.get(f"/projects/{subject_id}")
        except httpx.HTTPError as e:
            raise JudgeUnavailableError(f"Subject directory unreachable: {e}")

        if response.status_code == 404:
            raise NotFoundError(f"Subject {subject_id} not found", {"subject_id": subject_id})
        if response.status_code >= 400:
            raise JudgeUnavailableError(
                f"Subject directory returned HTTP {response.status_code}"
            )
        try:
            data = response.json()
        except ValueError:
            raise ValidationError("Subject directory returned a non-JSON body")
        return subject_from_mapping(subject_id, data)
