import sqlite3
from unittest.mock import patch

import pytest

import db
from analytics.errors import RetryExhaustedError, StatsUnavailableError, with_retry
from analytics.report import build_admin_report
from conftest import answers, at, attempt_row


def test_with_retry_recovers_from_transient_lock():
    calls = {"count": 0}

    @with_retry(max_retries=3, initial_delay=0, exceptions=(sqlite3.OperationalError,))
    def flaky():
        calls["count"] += 1
        if calls["count"] < 3:
            raise sqlite3.OperationalError("database is locked")
        return "ok"

    assert flaky() == "ok"
    assert calls["count"] == 3


def test_with_retry_gives_up_with_last_error_as_cause():
    calls = {"count": 0}

    @with_retry(max_retries=2, initial_delay=0, exceptions=(sqlite3.OperationalError,))
    def always_locked():
        calls["count"] += 1
        raise sqlite3.OperationalError("database is locked")

    with pytest.raises(RetryExhaustedError, match="always_locked failed after 2 attempts") as excinfo:
        always_locked()
    assert isinstance(excinfo.value.__cause__, sqlite3.OperationalError)
    assert calls["count"] == 2


def test_with_retry_does_not_retry_other_errors():
    calls = {"count": 0}

    @with_retry(max_retries=3, initial_delay=0, exceptions=(sqlite3.OperationalError,))
    def broken():
        calls["count"] += 1
        raise KeyError("missing column")

    with pytest.raises(KeyError):
        broken()
    assert calls["count"] == 1


def test_build_admin_report_combines_training_and_test_mode(temp_db):
    for row in (
        attempt_row(answers(q1=False, q2=False), completed_at=at(0), session_id="s-1"),
        attempt_row(answers(q1=True, q2=True), completed_at=at(3), session_id="s-1", round=2),
    ):
        db.save_quiz_result(row, completed_at=row["completed_at"])
    test_row = attempt_row(
        [{"question": "9-3", "user_answer": 1, "correct_answer": 1, "source_theme": "Subtraction"}],
        completed_at=at(10),
        is_test_mode=True,
    )
    db.save_quiz_result(test_row, completed_at=at(10))

    report = build_admin_report(include_sessions=True)

    focus = report["seriousnessStats"][0]
    assert (focus["total_mistakes"], focus["total_corrections"], focus["mastery_count"]) == (2, 2, 1)
    assert report["sessionAnalysis"][0]["reason"] == "Mastered!"
    assert report["testThemeBreakdown"] == [
        {"user_name": "Zoe", "source_theme": "Subtraction", "total_questions": 1, "correct_count": 1, "percentage": 100}
    ]
    assert report["debugSessions"][0]["session_id"] == "s-1"
    assert len(report["allQuizResults"]) == 3


def test_build_admin_report_is_all_or_nothing(temp_db):
    with patch("analytics.report.compute_focus_metrics", side_effect=KeyError("boom")):
        with pytest.raises(StatsUnavailableError) as excinfo:
            build_admin_report()
    assert isinstance(excinfo.value.__cause__, KeyError)


def test_build_admin_report_survives_out_of_range_timestamp(temp_db):
    db.save_quiz_result(attempt_row(answers(q1=False), completed_at=at(0), session_id="s-1"), completed_at=at(0))
    db.save_quiz_result(
        attempt_row(answers(q1=True), completed_at=at(2), session_id="s-1", round=2), completed_at=at(2)
    )
    bad_id = db.save_quiz_result(attempt_row(answers(q1=True), completed_at=at(5)), completed_at=at(5))
    db._exec(
        "UPDATE quiz_results SET completed_at = ? WHERE id = ?",
        ("9999-12-31T23:59:59-05:00", bad_id),
    )

    report = build_admin_report()

    focus = report["seriousnessStats"][0]
    assert (focus["total_mistakes"], focus["total_corrections"]) == (1, 1)
    assert len(report["allQuizResults"]) == 3
