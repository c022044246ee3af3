"""
Tests for the HTTP Judge client and subject directory.

Uses httpx.MockTransport so no network is touched.
"""

import json
import threading

import httpx
import pytest

from ..engine_core import SessionMode
from ..errors import JudgeUnavailableError, NotFoundError, ValidationError
from ..judge import FENCE_HEADER, FenceToken, HttpJudgeClient, parse_opening
from ..session import HttpSubjectDirectory, StaticSubjectDirectory


FENCE = FenceToken("abc123", 2, 1)


def make_client(handler):
    return HttpJudgeClient(
        base_url="http://judge.test",
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


class TestEvaluate:
    """Tests for HttpJudgeClient.evaluate."""

    def test_sends_fence_and_context(self, subject):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["fence"] = request.headers[FENCE_HEADER]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"score": 8, "feedback": "Solid"})

        verdict = make_client(handler).evaluate(
            subject, SessionMode.VIVA, "Why Postgres?", "Transactions.", FENCE
        )

        assert verdict.score == 8
        assert seen["path"] == "/evaluate"
        assert seen["fence"] == "abc123:2:1"
        assert seen["body"]["mode"] == "viva"
        assert seen["body"]["response"] == "Transactions."
        assert "Campus Navigator" in seen["body"]["context"]["summary"]

    def test_battle_aliases(self, subject):
        def handler(request):
            return httpx.Response(200, json={
                "user_damage": 10,
                "ai_damage": 25.5,
                "feedback": "ok",
                "next_question": "And scaling?",
            })

        verdict = make_client(handler).evaluate(
            subject, SessionMode.BATTLE, "Defend", "answer", FENCE
        )

        assert (verdict.participant_damage, verdict.judge_damage) == (10, 26)
        assert verdict.next_prompt == "And scaling?"

    def test_timeout(self, subject):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(JudgeUnavailableError):
            make_client(handler).evaluate(subject, SessionMode.VIVA, "Q", "A", FENCE)

    def test_connection_error(self, subject):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(JudgeUnavailableError):
            make_client(handler).evaluate(subject, SessionMode.VIVA, "Q", "A", FENCE)

    def test_server_error(self, subject):
        def handler(request):
            return httpx.Response(500, json={"detail": "boom"})

        with pytest.raises(JudgeUnavailableError) as exc_info:
            make_client(handler).evaluate(subject, SessionMode.VIVA, "Q", "A", FENCE)
        assert exc_info.value.details["status"] == 500

    def test_error_payload(self, subject):
        def handler(request):
            return httpx.Response(200, json={"error": "model overloaded"})

        with pytest.raises(JudgeUnavailableError):
            make_client(handler).evaluate(subject, SessionMode.VIVA, "Q", "A", FENCE)

    def test_non_json_body(self, subject):
        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(ValidationError):
            make_client(handler).evaluate(subject, SessionMode.VIVA, "Q", "A", FENCE)

    def test_mismatched_fence_echo(self, subject):
        def handler(request):
            return httpx.Response(200, json={"score": 5, "fence": "other:0:1"})

        with pytest.raises(ValidationError):
            make_client(handler).evaluate(subject, SessionMode.VIVA, "Q", "A", FENCE)


class TestOpenSession:
    """Tests for opening payloads."""

    def test_viva_questions_truncated(self, subject):
        def handler(request):
            assert request.url.path == "/sessions/open"
            return httpx.Response(200, json={
                "questions": [
                    {"question_text": "Q1"},
                    {"question_text": "Q2"},
                    "Q3",
                    {"question_text": "Q4"},
                ],
            })

        opening = make_client(handler).open_session(subject, SessionMode.VIVA, 3)

        assert opening.prompts == ("Q1", "Q2", "Q3")
        assert opening.opening_line is None

    def test_battle_opening(self, subject):
        def handler(request):
            return httpx.Response(200, json={
                "opening_line": "Your code smells of legacy.",
                "first_question": "Why no caching layer?",
            })

        opening = make_client(handler).open_session(subject, SessionMode.BATTLE, 1)

        assert opening.first_prompt == "Why no caching layer?"
        assert opening.opening_line == "Your code smells of legacy."

    def test_empty_bank_rejected(self):
        with pytest.raises(ValidationError):
            parse_opening({"questions": ["", "  "]}, SessionMode.VIVA, 5)

    def test_battle_without_question_rejected(self):
        with pytest.raises(ValidationError):
            parse_opening({"opening_line": "Hi"}, SessionMode.BATTLE, 1)


class TestSubjectDirectory:

    def test_http_lookup(self):
        def handler(request):
            assert request.url.path == "/projects/proj-9"
            return httpx.Response(200, json={
                "title": "Smart Greenhouse",
                "abstract": "Sensors and a dashboard",
                "tech_stack": ["FastAPI", "Vue"],
            })

        directory = HttpSubjectDirectory(
            base_url="http://dash.test", transport=httpx.MockTransport(handler)
        )
        subject = directory.lookup("proj-9")

        assert subject.title == "Smart Greenhouse"
        assert subject.tech_stack == "FastAPI, Vue"

    def test_http_not_found(self):
        directory = HttpSubjectDirectory(
            base_url="http://dash.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(404)),
        )

        with pytest.raises(NotFoundError):
            directory.lookup("missing")

    def test_http_unavailable(self):
        directory = HttpSubjectDirectory(
            base_url="http://dash.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(502)),
        )

        with pytest.raises(JudgeUnavailableError):
            directory.lookup("proj-1")

    def test_static_from_file(self, tmp_path):
        path = tmp_path / "subjects.json"
        path.write_text(json.dumps({
            "proj-7": {"title": "Bus Tracker", "abstract": "Live ETAs"},
        }))

        directory = StaticSubjectDirectory.from_file(path)

        assert directory.lookup("proj-7").abstract == "Live ETAs"
        with pytest.raises(NotFoundError):
            directory.lookup("proj-8")

    def test_record_without_title(self):
        with pytest.raises(ValidationError):
            StaticSubjectDirectory.from_records({"proj-1": {"abstract": "x"}})


class TestClientLifecycle:

    def test_one_client_shared_across_threads(self, subject):
        """Concurrent requests reuse the client built at construction."""
        judge = make_client(lambda request: httpx.Response(200, json={"score": 5}))
        built = judge.client
        seen = []

        def worker():
            judge.evaluate(subject, SessionMode.VIVA, "Q", "A", FENCE)
            seen.append(judge.client)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert len(seen) == 8
        assert all(client is built for client in seen)

    def test_close(self):
        judge = make_client(lambda request: httpx.Response(200, json={}))

        judge.close()

        assert judge.client.is_closed
