"""Correction-rate and mastery metrics over reconstructed sessions.

A *mistake* is a question answered wrong in one round; it counts as
*corrected* when the very next round answers the same question correctly.
Single-round sessions carry no correction signal and only move the
``last_attempt`` bookkeeping.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from .sessions import Round, Session

__all__ = [
    "SessionSummary",
    "FocusMetric",
    "LearningRatePoint",
    "percentage",
    "count_corrections",
    "summarise_session",
    "compute_focus_metrics",
    "compute_learning_rate_progress",
]

FocusKey = Tuple[str, str, str]


def percentage(part: int, whole: int) -> int:
    """Whole-number percentage, rounding halves up; 0 when ``whole`` is 0."""

    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


@dataclass(frozen=True)
class SessionSummary:
    session_id: str
    user_name: str
    theme_name: str
    level: str
    completed_at: datetime
    is_multi_round: bool
    mistakes: int
    corrections: int
    mastered: bool

    @property
    def key(self) -> FocusKey:
        return (self.user_name, self.theme_name, self.level)


@dataclass(frozen=True)
class FocusMetric:
    user_name: str
    theme_name: str
    level: str
    total_multi_round_sessions: int
    total_mistakes: int
    total_corrections: int
    correction_rate: int
    mastery_count: int
    last_attempt: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LearningRatePoint:
    user_name: str
    theme_name: str
    level: str
    session_id: str
    completed_at: datetime
    mistakes: int
    corrections: int
    correction_rate: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _ordered_rounds(session: Session) -> List[Round]:
    return sorted(session.rounds, key=lambda item: (item.completed_at, item.attempt_id))


def count_corrections(current: Round, following: Round) -> Tuple[int, int]:
    """Return ``(mistakes, corrections)`` between two consecutive rounds.

    A question the following round did not ask again is not corrected.
    """

    mistakes = current.mistakes
    corrections = 0
    for question in mistakes:
        outcome = following.answers.get(question)
        if outcome is not None and outcome.is_correct:
            corrections += 1
    return len(mistakes), corrections


def _pairwise_totals(rounds: List[Round]) -> Tuple[int, int]:
    total_mistakes = 0
    total_corrections = 0
    for current, following in zip(rounds, rounds[1:]):
        mistakes, corrections = count_corrections(current, following)
        total_mistakes += mistakes
        total_corrections += corrections
    return total_mistakes, total_corrections


def _is_mastered(final: Round) -> bool:
    return bool(final.answers) and all(outcome.is_correct for outcome in final.answers.values())


def summarise_session(session: Session) -> SessionSummary:
    rounds = _ordered_rounds(session)
    multi_round = len(rounds) >= 2
    mistakes, corrections = _pairwise_totals(rounds) if multi_round else (0, 0)
    return SessionSummary(
        session_id=session.session_id,
        user_name=session.user_name,
        theme_name=session.theme_name,
        level=session.level,
        completed_at=session.completed_at,
        is_multi_round=multi_round,
        mistakes=mistakes,
        corrections=corrections,
        mastered=multi_round and _is_mastered(rounds[-1]),
    )


def _fold(acc: Mapping[str, Any], summary: SessionSummary) -> Dict[str, Any]:
    last_attempt = acc["last_attempt"]
    if last_attempt is None or summary.completed_at > last_attempt:
        last_attempt = summary.completed_at
    if not summary.is_multi_round:
        return {**acc, "last_attempt": last_attempt}
    return {
        "total_multi_round_sessions": acc["total_multi_round_sessions"] + 1,
        "total_mistakes": acc["total_mistakes"] + summary.mistakes,
        "total_corrections": acc["total_corrections"] + summary.corrections,
        "mastery_count": acc["mastery_count"] + (1 if summary.mastered else 0),
        "last_attempt": last_attempt,
    }


_EMPTY_ACC: Mapping[str, Any] = {
    "total_multi_round_sessions": 0,
    "total_mistakes": 0,
    "total_corrections": 0,
    "mastery_count": 0,
    "last_attempt": None,
}


def compute_focus_metrics(sessions: Iterable[Session]) -> List[FocusMetric]:
    """Aggregate sessions into one :class:`FocusMetric` per user, theme and level."""

    summaries = [summarise_session(session) for session in sessions]
    aggregates: Dict[FocusKey, Mapping[str, Any]] = {}
    for summary in summaries:
        aggregates[summary.key] = _fold(aggregates.get(summary.key, _EMPTY_ACC), summary)

    return [
        FocusMetric(
            user_name=user_name,
            theme_name=theme_name,
            level=level,
            total_multi_round_sessions=acc["total_multi_round_sessions"],
            total_mistakes=acc["total_mistakes"],
            total_corrections=acc["total_corrections"],
            correction_rate=percentage(acc["total_corrections"], acc["total_mistakes"]),
            mastery_count=acc["mastery_count"],
            last_attempt=acc["last_attempt"],
        )
        for (user_name, theme_name, level), acc in sorted(aggregates.items())
    ]


def compute_learning_rate_progress(sessions: Iterable[Session]) -> List[LearningRatePoint]:
    """One point per multi-round session that had at least one mistake."""

    points: List[LearningRatePoint] = []
    for session in sessions:
        rounds = _ordered_rounds(session)
        if len(rounds) < 2:
            continue
        mistakes, corrections = _pairwise_totals(rounds)
        if mistakes <= 0:
            continue
        points.append(
            LearningRatePoint(
                user_name=session.user_name,
                theme_name=session.theme_name,
                level=session.level,
                session_id=session.session_id,
                completed_at=session.completed_at,
                mistakes=mistakes,
                corrections=corrections,
                correction_rate=percentage(corrections, mistakes),
            )
        )
    points.sort(key=lambda point: (point.completed_at, point.session_id))
    return points
