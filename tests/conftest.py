import asyncio
import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

BASE_TIME = datetime(2024, 3, 4, 10, 0, 0, tzinfo=timezone.utc)


def at(minutes: float) -> datetime:
    """Timestamp ``minutes`` after the shared test base time."""
    return BASE_TIME + timedelta(minutes=minutes)


def answers(**outcomes: bool) -> list[dict]:
    """Answer entries keyed by question text; ``True`` means answered correctly."""
    return [
        {"question": question, "user_answer": 0 if correct else 1, "correct_answer": 0}
        for question, correct in outcomes.items()
    ]


def attempt_row(
    all_answers: list[dict],
    *,
    completed_at,
    user_id: str = "zoe",
    user_name: str = "Zoe",
    theme_name: str = "addition",
    level: str = "easy",
    round: int = 1,
    session_id=None,
    attempt_id: int = 0,
    avg_time_per_question: float = 6.0,
    is_test_mode: bool = False,
    mistakes=None,
) -> dict:
    correct = sum(1 for entry in all_answers if entry["user_answer"] == entry["correct_answer"])
    return {
        "id": attempt_id,
        "user_id": user_id,
        "user_name": user_name,
        "session_id": session_id,
        "theme_name": theme_name,
        "level": level,
        "round": round,
        "score": correct,
        "total_questions": len(all_answers),
        "total_time_seconds": avg_time_per_question * len(all_answers),
        "avg_time_per_question": avg_time_per_question,
        "is_test_mode": is_test_mode,
        "all_answers": all_answers,
        "mistakes": mistakes or [],
        "completed_at": completed_at,
    }


@pytest.fixture
def temp_db(monkeypatch, tmp_path):
    import db

    db_path = tmp_path / "test.db"
    monkeypatch.setattr(db, "DB_PATH", str(db_path))

    # Fresh pool per test so no connection points at another test's file
    pool = db.SQLiteConnectionPool(str(db_path), max_connections=10)
    monkeypatch.setattr(db, "_pool", pool)
    db.init()
    yield str(db_path)
    pool.close_all()


class ApiClient:
    """Drives the FastAPI app over raw ASGI and returns ``(status, json_body)``."""

    def __init__(self, asgi_app):
        self.asgi_app = asgi_app

    def post(self, path: str, payload: dict) -> tuple[int, dict]:
        return asyncio.run(self._request("POST", path, body=json.dumps(payload).encode("utf-8")))

    def get(self, path: str, query: Optional[dict] = None) -> tuple[int, dict]:
        return asyncio.run(self._request("GET", path, query=query))

    async def _request(self, method: str, path: str, *, body: bytes = b"", query: Optional[dict] = None):
        headers = [(b"host", b"stats.test")]
        if body:
            headers += [(b"content-type", b"application/json"), (b"content-length", str(len(body)).encode())]
        scope = {
            "type": "http",
            "http_version": "1.1",
            "method": method,
            "scheme": "http",
            "path": path,
            "raw_path": path.encode(),
            "root_path": "",
            "query_string": urlencode(query or {}, doseq=True).encode(),
            "headers": headers,
            "client": ("quiz-client", 50000),
            "server": ("stats.test", 80),
            "state": {},
        }
        pending = [{"type": "http.request", "body": body, "more_body": False}]
        sent = []

        async def receive():
            return pending.pop(0) if pending else {"type": "http.disconnect"}

        async def send(message):
            sent.append(message)

        await self.asgi_app(scope, receive, send)
        status = next((m["status"] for m in sent if m["type"] == "http.response.start"), 500)
        raw = b"".join(m.get("body", b"") for m in sent if m["type"] == "http.response.body")
        return status, json.loads(raw or b"{}")


@pytest.fixture
def api():
    import app

    return ApiClient(app.app)
