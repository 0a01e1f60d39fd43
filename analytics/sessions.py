"""Rebuild practice sessions from a flat list of quiz attempts.

Newer attempts carry the ``session_id`` written by the quiz client. Legacy rows
do not, so for those a session is inferred: attempts of the same user, theme
and level belong together until the learner pauses for longer than the gap
threshold. Either way, rounds inside a session are ordered by completion time,
never by the stored round number.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .attempts import Attempt, chronological_key

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_SESSION_GAP",
    "AnswerOutcome",
    "Round",
    "Session",
    "build_round",
    "group_explicit_sessions",
    "infer_sessions",
    "reconstruct_sessions",
]

DEFAULT_SESSION_GAP = timedelta(minutes=30)
INFERRED_PREFIX = "inferred-"


@dataclass(frozen=True)
class AnswerOutcome:
    is_correct: bool
    user_answer: Optional[int]


@dataclass(frozen=True)
class Round:
    """One attempt's answers as seen from inside a session."""

    round_number: int
    completed_at: datetime
    answers: Mapping[str, AnswerOutcome] = field(default_factory=dict)
    attempt_id: int = 0
    score: int = 0
    total_questions: int = 0
    avg_time_per_question: float = 0.0
    total_time_seconds: float = 0.0

    @property
    def mistakes(self) -> List[str]:
        return [question for question, outcome in self.answers.items() if not outcome.is_correct]

    @property
    def percentage(self) -> float:
        if self.total_questions <= 0:
            return 0.0
        return round(self.score / self.total_questions * 100, 1)


@dataclass(frozen=True)
class Session:
    session_id: str
    user_id: str
    user_name: str
    theme_name: str
    level: str
    completed_at: datetime
    rounds: Tuple[Round, ...]
    explicit: bool = True


def build_round(attempt: Attempt) -> Round:
    answers: Dict[str, AnswerOutcome] = {}
    for record in attempt.all_answers:
        # a repeated question keeps the last recorded answer
        answers[record.question_text] = AnswerOutcome(
            is_correct=record.is_correct,
            user_answer=record.user_answer,
        )
    return Round(
        round_number=attempt.round,
        completed_at=attempt.completed_at,
        answers=answers,
        attempt_id=attempt.attempt_id,
        score=attempt.score,
        total_questions=attempt.total_questions,
        avg_time_per_question=attempt.avg_time_per_question,
        total_time_seconds=attempt.total_time_seconds,
    )


def _session_from(session_id: str, attempts: Sequence[Attempt], *, level: str, explicit: bool) -> Session:
    first = attempts[0]
    completed_at = first.completed_at
    for attempt in attempts:
        if attempt.completed_at > completed_at:
            completed_at = attempt.completed_at
    return Session(
        session_id=session_id,
        user_id=first.user_id,
        user_name=first.user_name,
        theme_name=first.theme_name,
        level=level,
        completed_at=completed_at,
        rounds=tuple(build_round(attempt) for attempt in attempts),
        explicit=explicit,
    )


def group_explicit_sessions(attempts: Iterable[Attempt]) -> Dict[str, Session]:
    """Group attempts that carry a ``session_id``.

    The level stored on the round-1 attempt wins when rounds disagree; older
    clients sometimes wrote the wrong level on retry rounds.
    """

    grouped: Dict[str, List[Attempt]] = defaultdict(list)
    for attempt in attempts:
        if attempt.session_id:
            grouped[attempt.session_id].append(attempt)

    sessions: Dict[str, Session] = {}
    for session_id in sorted(grouped):
        ordered = sorted(grouped[session_id], key=chronological_key)
        first_round = next((attempt for attempt in ordered if attempt.round == 1), ordered[0])
        sessions[session_id] = _session_from(
            session_id, ordered, level=first_round.level, explicit=True
        )
    return sessions


def infer_sessions(
    attempts: Iterable[Attempt],
    gap: timedelta = DEFAULT_SESSION_GAP,
) -> Dict[str, Session]:
    """Infer sessions for attempts without a ``session_id``.

    A new session starts whenever more than ``gap`` passed since the previous
    attempt of the same user, theme and level.
    """

    grouped: Dict[Tuple[str, str, str], List[Attempt]] = defaultdict(list)
    for attempt in attempts:
        if not attempt.session_id:
            grouped[(attempt.user_id, attempt.theme_name, attempt.level)].append(attempt)

    sessions: Dict[str, Session] = {}
    counter = 0
    for key in sorted(grouped):
        ordered = sorted(grouped[key], key=chronological_key)
        current: List[Attempt] = []
        for attempt in ordered:
            if current and attempt.completed_at - current[-1].completed_at > gap:
                counter += 1
                session_id = f"{INFERRED_PREFIX}{counter}"
                sessions[session_id] = _session_from(session_id, current, level=key[2], explicit=False)
                current = []
            current.append(attempt)
        if current:
            counter += 1
            session_id = f"{INFERRED_PREFIX}{counter}"
            sessions[session_id] = _session_from(session_id, current, level=key[2], explicit=False)
    return sessions


def reconstruct_sessions(
    attempts: Sequence[Attempt],
    gap: timedelta = DEFAULT_SESSION_GAP,
) -> Dict[str, Session]:
    """Partition ``attempts`` into explicit and inferred sessions."""

    explicit = group_explicit_sessions(attempts)
    inferred = infer_sessions(attempts, gap=gap)
    collisions = explicit.keys() & inferred.keys()
    if collisions:
        # a stored session id that looks like an inferred one; keep both apart
        logger.warning("Stored session ids clash with inferred ids: %s", sorted(collisions))
        renamed: Dict[str, Session] = {}
        for session_id, session in explicit.items():
            if session_id in collisions:
                session_id = f"session:{session_id}"
                session = replace(session, session_id=session_id)
            renamed[session_id] = session
        explicit = renamed
    logger.debug(
        "Reconstructed %d explicit and %d inferred sessions from %d attempts",
        len(explicit), len(inferred), len(attempts),
    )
    return {**explicit, **inferred}
