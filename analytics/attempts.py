"""Quiz attempt records as consumed by the analytics pipeline.

Rows come out of ``quiz_results`` with JSON text columns and loosely typed
values. Everything downstream works on the frozen dataclasses defined here, so
shape validation happens once, in :func:`parse_attempt`.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from .errors import MalformedAttemptError

logger = logging.getLogger(__name__)

__all__ = [
    "AnswerRecord",
    "MistakeRecord",
    "Attempt",
    "coerce_timestamp",
    "parse_attempt",
    "parse_attempts",
    "chronological_key",
]

DEFAULT_LEVEL = "easy"


@dataclass(frozen=True)
class AnswerRecord:
    """One question as answered inside a quiz round."""

    question_text: str
    user_answer: Optional[int]
    correct_answer: int
    source_theme: Optional[str] = None
    time_spent: Optional[float] = None

    @property
    def is_correct(self) -> bool:
        return self.user_answer is not None and self.user_answer == self.correct_answer

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AnswerRecord":
        question = payload.get("question_text", payload.get("question"))
        if question is None:
            raise MalformedAttemptError("answer entry without question text")
        user_answer = payload.get("user_answer", payload.get("userAnswer"))
        correct_answer = payload.get("correct_answer", payload.get("correctAnswer"))
        if correct_answer is None:
            raise MalformedAttemptError(f"answer entry without correct answer: {question!r}")
        time_spent = payload.get("time_spent", payload.get("timeSpent"))
        try:
            return cls(
                question_text=str(question),
                user_answer=None if user_answer is None else int(user_answer),
                correct_answer=int(correct_answer),
                source_theme=payload.get("source_theme", payload.get("sourceTheme")),
                time_spent=None if time_spent is None else float(time_spent),
            )
        except (TypeError, ValueError) as exc:
            raise MalformedAttemptError(f"invalid answer entry for {question!r}") from exc


@dataclass(frozen=True)
class MistakeRecord:
    """Redundant per-attempt mistake summary kept for the mistakes tracker."""

    question_text: str
    correct_answer_text: str
    user_answer_text: Optional[str] = None
    hint: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MistakeRecord":
        question = payload.get("question_text", payload.get("question"))
        if question is None:
            raise MalformedAttemptError("mistake entry without question text")
        correct = payload.get("correct_answer_text", payload.get("correct_answer", payload.get("correctAnswer")))
        user_answer = payload.get("user_answer_text", payload.get("user_answer", payload.get("userAnswer")))
        return cls(
            question_text=str(question),
            correct_answer_text="" if correct is None else str(correct),
            user_answer_text=None if user_answer is None else str(user_answer),
            hint=payload.get("hint"),
        )


@dataclass(frozen=True)
class Attempt:
    """One completed quiz round by one user on one theme and level."""

    user_id: str
    user_name: str
    theme_name: str
    level: str
    round: int
    completed_at: datetime
    session_id: Optional[str] = None
    attempt_id: int = 0
    score: int = 0
    total_questions: int = 0
    total_time_seconds: float = 0.0
    avg_time_per_question: float = 0.0
    is_test_mode: bool = False
    all_answers: Tuple[AnswerRecord, ...] = field(default_factory=tuple)
    mistakes: Tuple[MistakeRecord, ...] = field(default_factory=tuple)

    @property
    def percentage(self) -> float:
        if self.total_questions <= 0:
            return 0.0
        return round(self.score / self.total_questions * 100, 1)


def coerce_timestamp(value: Any) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Accepts datetimes, UNIX seconds, ISO-8601 strings (a trailing ``Z`` is
    allowed) and SQLite's ``YYYY-MM-DD HH:MM:SS``. Naive values are UTC.
    """

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise MalformedAttemptError(f"Timestamp of type {type(value)!r} is not supported")
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (ValueError, OverflowError, OSError) as exc:
            raise MalformedAttemptError(f"Timestamp out of range: {value!r}") from exc
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            try:
                parsed = datetime.strptime(text, "%Y-%m-%d %H:%M:%S")
            except ValueError as exc:
                raise MalformedAttemptError(f"Unsupported timestamp format: {value!r}") from exc
    else:
        raise MalformedAttemptError(f"Timestamp of type {type(value)!r} is not supported")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError as exc:
        raise MalformedAttemptError(f"Timestamp out of range: {value!r}") from exc


def _decode_entries(value: Any) -> List[Mapping[str, Any]]:
    if value is None:
        return []
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        if not value.strip():
            return []
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise MalformedAttemptError("answer payload is not valid JSON") from exc
    if not isinstance(value, list):
        raise MalformedAttemptError(f"expected a list of entries, got {type(value).__name__}")
    return [entry for entry in value if isinstance(entry, Mapping)]


def _decode_records(value: Any, factory, attempt_ref: Any) -> Tuple[Any, ...]:
    """Build records from JSON entries, dropping only the entries that fail.

    An undecodable payload yields no records; the attempt itself is kept.
    """

    try:
        entries = _decode_entries(value)
    except MalformedAttemptError as exc:
        logger.warning("Ignoring entries of quiz attempt %s: %s", attempt_ref, exc)
        return ()
    records = []
    for entry in entries:
        try:
            records.append(factory(entry))
        except MalformedAttemptError as exc:
            logger.warning("Ignoring entry of quiz attempt %s: %s", attempt_ref, exc)
    return tuple(records)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _number(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise MalformedAttemptError(f"not a number: {value!r}") from exc
    if not math.isfinite(number):
        raise MalformedAttemptError(f"not a finite number: {value!r}")
    return number


def parse_attempt(row: Mapping[str, Any]) -> Attempt:
    """Validate one storage row and build an :class:`Attempt`."""

    if row.get("completed_at") is None:
        raise MalformedAttemptError("attempt without completed_at")
    completed_at = coerce_timestamp(row["completed_at"])
    session_id = row.get("session_id")
    answers = _decode_records(row.get("all_answers"), AnswerRecord.from_dict, row.get("id"))
    mistakes = _decode_records(row.get("mistakes"), MistakeRecord.from_dict, row.get("id"))
    return Attempt(
        user_id=_text(row.get("user_id")),
        user_name=_text(row.get("user_name")),
        theme_name=_text(row.get("theme_name")),
        level=_text(row.get("level")) or DEFAULT_LEVEL,
        round=int(_number(row.get("round"), 1)),
        completed_at=completed_at,
        session_id=str(session_id) if session_id else None,
        attempt_id=int(_number(row.get("id"), 0)),
        score=int(_number(row.get("score"))),
        total_questions=int(_number(row.get("total_questions"))),
        total_time_seconds=_number(row.get("total_time_seconds")),
        avg_time_per_question=_number(row.get("avg_time_per_question")),
        is_test_mode=bool(row.get("is_test_mode") or False),
        all_answers=answers,
        mistakes=mistakes,
    )


def parse_attempts(rows: Iterable[Mapping[str, Any]]) -> List[Attempt]:
    """Parse storage rows, skipping the ones that cannot be trusted."""

    attempts: List[Attempt] = []
    for row in rows:
        try:
            attempts.append(parse_attempt(row))
        except MalformedAttemptError as exc:
            logger.warning("Skipping quiz attempt %s: %s", row.get("id"), exc)
    return attempts


def chronological_key(attempt: Attempt) -> Tuple[datetime, int]:
    """Sort key for attempts: completion time, then storage id on ties."""

    return (attempt.completed_at, attempt.attempt_id)
