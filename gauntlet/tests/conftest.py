"""
Pytest fixtures for Gauntlet tests.
"""

import threading

import pytest

from ..engine_core import SessionMode, Verdict
from ..judge import SessionOpening, SubjectContext
from ..session import SessionMachine, SessionRegistry, StaticSubjectDirectory


VIVA_BANK = [
    "Why did you choose a relational database?",
    "How does your system handle concurrent edits?",
    "What would you change with another month?",
]

BATTLE_FIRST_QUESTION = "Your API has no rate limiting. Defend that."


class ScriptedJudge:
    """
    Judge that replays queued verdict payloads.

    Each queued item is a raw payload dict or an exception to raise.
    """

    def __init__(self, verdicts=None, questions=None, opening_line="I am The Deprecator."):
        self.verdicts = list(verdicts or [])
        self.questions = list(questions or VIVA_BANK)
        self.opening_line = opening_line
        self.calls = []
        self.open_calls = []
        self.open_error = None

    def queue(self, *items):
        self.verdicts.extend(items)

    def open_session(self, context, mode, question_count, timeout=None):
        self.open_calls.append((context.subject_id, mode, question_count))
        if self.open_error is not None:
            raise self.open_error
        if mode == SessionMode.VIVA:
            return SessionOpening(prompts=tuple(self.questions[:question_count]))
        return SessionOpening(
            prompts=(BATTLE_FIRST_QUESTION,),
            opening_line=self.opening_line,
        )

    def evaluate(self, context, mode, prompt, response, fence, timeout=None):
        self.calls.append({
            "prompt": prompt,
            "response": response,
            "fence": fence,
            "timeout": timeout,
        })
        item = self.verdicts.pop(0)
        if isinstance(item, Exception):
            raise item
        return Verdict.from_payload(item, mode)


class BlockingJudge(ScriptedJudge):
    """ScriptedJudge whose evaluate() waits until released."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.entered = threading.Event()
        self.release = threading.Event()

    def evaluate(self, *args, **kwargs):
        self.entered.set()
        assert self.release.wait(timeout=5)
        return super().evaluate(*args, **kwargs)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start=1_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def viva(score, feedback="ok"):
    return {"score": score, "feedback": feedback}


def hit(participant_damage, judge_damage, next_question="Next question?", feedback="ok"):
    return {
        "participant_damage": participant_damage,
        "judge_damage": judge_damage,
        "feedback": feedback,
        "next_question": next_question,
    }


@pytest.fixture
def judge():
    return ScriptedJudge()


@pytest.fixture
def blocking_judge():
    blocking = BlockingJudge()
    yield blocking
    blocking.release.set()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def subject():
    return SubjectContext(
        subject_id="proj-1",
        title="Campus Navigator",
        abstract="Indoor routing for the university",
        tech_stack="Django, React",
    )


@pytest.fixture
def directory(subject):
    directory = StaticSubjectDirectory()
    directory.add(subject)
    directory.add(SubjectContext(subject_id="proj-2", title="Library Bot"))
    return directory


@pytest.fixture
def registry(judge, directory, clock):
    return SessionRegistry(
        judge=judge,
        directory=directory,
        viva_question_count=3,
        retention=60.0,
        clock=clock,
    )


@pytest.fixture
def viva_machine(judge, subject):
    return SessionMachine.start(
        subject.subject_id,
        SessionMode.VIVA,
        VIVA_BANK[0],
        judge=judge,
        context=subject,
        question_bank=VIVA_BANK,
    )


@pytest.fixture
def battle_machine(judge, subject):
    return SessionMachine.start(
        subject.subject_id,
        SessionMode.BATTLE,
        BATTLE_FIRST_QUESTION,
        judge=judge,
        context=subject,
    )
