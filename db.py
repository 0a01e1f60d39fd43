import json
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from db_pool import SQLiteConnectionPool

DB_PATH = os.getenv("DB_PATH", "data.db")

_JSON_COLUMNS = ("all_answers", "mistakes")

# Initialize connection pool
_pool = SQLiteConnectionPool(DB_PATH, max_connections=10)


def _conn():
    """Return a context manager for acquiring a pooled SQLite connection."""
    return _pool.get_connection()


def _exec(sql: str, params: Iterable = ()):
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        con.commit()
        return cur


def _query(sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        return cur.fetchall()


def _decode_json_field(value: Optional[str]) -> Any:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    value = value.strip()
    if not value:
        return []
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    record = dict(row)
    for column in _JSON_COLUMNS:
        if column in record:
            record[column] = _decode_json_field(record[column])
    if "is_test_mode" in record and record["is_test_mode"] is not None:
        record["is_test_mode"] = bool(record["is_test_mode"])
    return record


def _rows(sql: str, params: Iterable = ()) -> List[Dict[str, Any]]:
    return [_row_to_dict(row) for row in _query(sql, params)]


def _format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        value = datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


# -------------- schema --------------
def init():
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    with _conn() as con:
        con.executescript(
            """
            PRAGMA journal_mode=WAL;

            CREATE TABLE IF NOT EXISTS quiz_results (
              id                     INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id                TEXT NOT NULL,
              user_name              TEXT NOT NULL,
              theme_id               TEXT,
              theme_name             TEXT NOT NULL,
              score                  INTEGER NOT NULL DEFAULT 0,
              total_questions        INTEGER NOT NULL DEFAULT 0,
              total_time_seconds     REAL DEFAULT 0,
              avg_time_per_question  REAL DEFAULT 0,
              mistakes               TEXT NOT NULL DEFAULT '[]',
              all_answers            TEXT NOT NULL DEFAULT '[]',
              round                  INTEGER NOT NULL DEFAULT 1,
              level                  TEXT NOT NULL DEFAULT 'easy',
              is_test_mode           INTEGER NOT NULL DEFAULT 0,
              session_id             TEXT,
              completed_at           TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_quiz_results_focus
              ON quiz_results(user_id, theme_name, level, completed_at);
            CREATE INDEX IF NOT EXISTS idx_quiz_results_session
              ON quiz_results(session_id);
            """
        )
        con.commit()


# -------------- writes --------------
def save_quiz_result(result: Mapping[str, Any], completed_at: Optional[datetime] = None) -> int:
    """Insert one finished quiz round and return its storage id."""
    cur = _exec(
        """
        INSERT INTO quiz_results (
          user_id, user_name, theme_id, theme_name,
          score, total_questions, total_time_seconds, avg_time_per_question,
          mistakes, all_answers, round, level, is_test_mode, session_id, completed_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            result["user_id"],
            result["user_name"],
            result.get("theme_id"),
            result["theme_name"],
            int(result.get("score") or 0),
            int(result.get("total_questions") or 0),
            float(result.get("total_time_seconds") or 0),
            float(result.get("avg_time_per_question") or 0),
            json.dumps(list(result.get("mistakes") or [])),
            json.dumps(list(result.get("all_answers") or [])),
            int(result.get("round") or 1),
            result.get("level") or "easy",
            1 if result.get("is_test_mode") else 0,
            result.get("session_id") or None,
            _format_timestamp(completed_at),
        ),
    )
    return int(cur.lastrowid)


# -------------- attempt reads --------------
_ATTEMPT_COLUMNS = """
    id, user_id, user_name, session_id, theme_name, level, round,
    score, total_questions, total_time_seconds, avg_time_per_question,
    is_test_mode, all_answers, mistakes, completed_at
"""


def list_attempts(is_test_mode: bool = False) -> List[Dict[str, Any]]:
    """All attempts of one mode, in storage order per user, theme and level."""
    return _rows(
        f"""
        SELECT {_ATTEMPT_COLUMNS}
        FROM quiz_results
        WHERE is_test_mode = ?
        ORDER BY user_id, theme_name, level, completed_at, id
        """,
        (1 if is_test_mode else 0,),
    )


def list_recent_mistake_attempts(limit: int = 200) -> List[Dict[str, Any]]:
    """Newest training attempts that recorded at least one mistake."""
    return _rows(
        f"""
        SELECT {_ATTEMPT_COLUMNS}
        FROM quiz_results
        WHERE is_test_mode = 0
          AND mistakes IS NOT NULL AND mistakes NOT IN ('', '[]')
        ORDER BY completed_at DESC, id DESC
        LIMIT ?
        """,
        (int(limit),),
    )


def list_recent_results(limit: int = 500) -> List[Dict[str, Any]]:
    """Inbox view: latest results of both modes with their percentage."""
    return _rows(
        """
        SELECT
          id, user_id, user_name, theme_name, level, round, score, total_questions,
          ROUND(CAST(score AS REAL) / NULLIF(total_questions, 0) * 100, 1) AS percentage,
          total_time_seconds, avg_time_per_question, completed_at, is_test_mode,
          session_id, all_answers, mistakes
        FROM quiz_results
        ORDER BY completed_at DESC, id DESC
        LIMIT ?
        """,
        (int(limit),),
    )


# -------------- dashboard aggregates --------------
def list_users() -> List[Dict[str, Any]]:
    return _rows("SELECT DISTINCT user_id, user_name FROM quiz_results ORDER BY user_name")


def summary_stats() -> List[Dict[str, Any]]:
    return _rows(
        """
        SELECT
          user_id,
          user_name,
          COUNT(*) AS total_quizzes,
          SUM(total_questions) AS total_questions,
          ROUND(AVG(avg_time_per_question), 1) AS avg_time_per_question
        FROM quiz_results
        WHERE is_test_mode = 0
        GROUP BY user_id, user_name
        ORDER BY user_name
        """
    )


def single_round_stats() -> List[Dict[str, Any]]:
    return _rows(
        """
        SELECT
          user_id,
          user_name,
          theme_name,
          level,
          COUNT(*) AS total_sessions,
          SUM(CASE WHEN score = total_questions THEN 1 ELSE 0 END) AS perfect_sessions,
          MAX(completed_at) AS last_attempt
        FROM quiz_results
        WHERE is_test_mode = 0
        GROUP BY user_id, user_name, theme_name, level
        ORDER BY user_name, theme_name, level
        """
    )


def round1_progress() -> List[Dict[str, Any]]:
    return _rows(
        """
        SELECT
          user_id,
          user_name,
          theme_name,
          level,
          completed_at,
          ROUND(CAST(score AS REAL) / NULLIF(total_questions, 0) * 100, 1) AS percentage
        FROM quiz_results
        WHERE round = 1 AND is_test_mode = 0
        ORDER BY user_name, theme_name, level, completed_at
        """
    )


def theme_mastery() -> List[Dict[str, Any]]:
    return _rows(
        """
        SELECT
          user_id,
          user_name,
          theme_name,
          level,
          MAX(ROUND(CAST(score AS REAL) / NULLIF(total_questions, 0) * 100, 0)) AS best_percentage,
          COUNT(*) AS attempts,
          MAX(completed_at) AS last_attempt
        FROM quiz_results
        WHERE round = 1 AND is_test_mode = 0
        GROUP BY user_id, user_name, theme_name, level
        ORDER BY user_name, theme_name,
          CASE level WHEN 'easy' THEN 1 WHEN 'medium' THEN 2 WHEN 'hard' THEN 3 ELSE 4 END
        """
    )


def summary_stats_test_mode() -> List[Dict[str, Any]]:
    return _rows(
        """
        SELECT
          user_id,
          user_name,
          COUNT(*) AS total_tests,
          SUM(total_questions) AS total_questions,
          ROUND(AVG(CAST(score AS REAL) / NULLIF(total_questions, 0) * 100), 1) AS avg_percentage,
          ROUND(AVG(avg_time_per_question), 1) AS avg_time_per_question
        FROM quiz_results
        WHERE is_test_mode = 1
        GROUP BY user_id, user_name
        ORDER BY user_name
        """
    )


def progress_test_mode() -> List[Dict[str, Any]]:
    return _rows(
        """
        SELECT
          user_id,
          user_name,
          level,
          completed_at,
          score,
          total_questions,
          ROUND(CAST(score AS REAL) / NULLIF(total_questions, 0) * 100, 1) AS percentage,
          total_time_seconds
        FROM quiz_results
        WHERE is_test_mode = 1
        ORDER BY user_name, level, completed_at
        """
    )

