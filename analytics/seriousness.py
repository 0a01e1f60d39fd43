"""Classify how seriously a learner worked through a session.

Only sessions with a stored ``session_id`` are analysed: the retry rounds of a
legacy session cannot be told apart from a fresh start reliably enough to
judge effort.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .sessions import Round, Session

__all__ = ["SeriousnessReport", "classify_session", "analyse_seriousness"]

RUSHING_SECONDS = 3.0
GIVING_UP_SECONDS = 5.0


@dataclass(frozen=True)
class SeriousnessReport:
    user_name: str
    theme_name: str
    level: str
    session_id: str
    rounds_count: int
    round1_percentage: float
    final_percentage: float
    improvement: float
    avg_time_later_rounds: float
    avg_time_round1: float
    total_time_seconds: float
    serious: bool
    reason: str
    completed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def classify_session(first: Round, later: List[Round], final: Round, rounds_count: int) -> Tuple[bool, str]:
    """Return ``(serious, reason)`` for a session's rounds.

    ``later`` holds the rounds numbered above 1. A session with several rows
    but no later round counts as a retry with no time spent on later rounds.
    """

    if rounds_count == 1:
        if first.percentage == 100:
            return True, "Perfect!"
        if first.percentage >= 80:
            return True, "Good start"
        return first.avg_time_per_question >= RUSHING_SECONDS, "Needs practice"

    avg_later = sum(item.avg_time_per_question for item in later) / len(later) if later else 0.0
    improvement = final.percentage - first.percentage
    if avg_later < RUSHING_SECONDS:
        return False, "Rushing"
    if improvement < -10 and avg_later < GIVING_UP_SECONDS:
        return False, "Gave up"
    if final.percentage < first.percentage and len(later) > 2:
        return False, "Getting worse"
    if final.percentage == 100:
        return True, "Mastered!"
    if improvement > 20:
        return True, "Great progress"
    if improvement > 0:
        return True, "Improving"
    return True, "Struggling"


def _analyse(session: Session) -> Optional[SeriousnessReport]:
    rounds = sorted(session.rounds, key=lambda item: (item.completed_at, item.attempt_id))
    first = next((item for item in rounds if item.round_number == 1), None)
    if first is None:
        return None
    later = [item for item in rounds if item.round_number > 1]
    final = rounds[-1]
    serious, reason = classify_session(first, later, final, len(rounds))
    avg_later = sum(item.avg_time_per_question for item in later) / len(later) if later else 0.0
    return SeriousnessReport(
        user_name=session.user_name,
        theme_name=session.theme_name,
        level=session.level,
        session_id=session.session_id,
        rounds_count=len(rounds),
        round1_percentage=first.percentage,
        final_percentage=final.percentage,
        improvement=round(final.percentage - first.percentage, 1),
        avg_time_later_rounds=round(avg_later, 1),
        avg_time_round1=round(first.avg_time_per_question, 1),
        total_time_seconds=sum(item.total_time_seconds for item in rounds),
        serious=serious,
        reason=reason,
        completed_at=session.completed_at,
    )


def analyse_seriousness(sessions: Iterable[Session]) -> List[SeriousnessReport]:
    reports = [report for report in (_analyse(s) for s in sessions if s.explicit) if report is not None]
    reports.sort(key=lambda report: (report.completed_at, report.session_id))
    return reports
