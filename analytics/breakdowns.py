"""Smaller dashboard aggregates computed from parsed attempts."""
from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from .attempts import Attempt
from .metrics import percentage
from .sessions import Session

__all__ = [
    "UNKNOWN_THEME",
    "track_repeated_mistakes",
    "compute_test_theme_breakdown",
    "describe_sessions",
]

UNKNOWN_THEME = "Unknown"


def track_repeated_mistakes(
    attempts: Iterable[Attempt],
    *,
    min_count: int = 2,
    limit: int = 30,
) -> List[Dict[str, Any]]:
    """Questions a learner got wrong at least ``min_count`` times.

    ``attempts`` are expected newest first; the theme, level and correct
    answer reported for a question are the ones of its most recent mistake.
    """

    counts: Counter[Tuple[str, str]] = Counter()
    details: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for attempt in attempts:
        for mistake in attempt.mistakes:
            key = (attempt.user_name, mistake.question_text)
            counts[key] += 1
            details.setdefault(
                key,
                {
                    "user_name": attempt.user_name,
                    "theme_name": attempt.theme_name,
                    "level": attempt.level,
                    "question": mistake.question_text,
                    "correct_answer": mistake.correct_answer_text,
                },
            )
    repeated = [
        {**details[key], "count": count}
        for key, count in counts.items()
        if count >= min_count
    ]
    repeated.sort(key=lambda item: item["count"], reverse=True)
    return repeated[:limit]


def compute_test_theme_breakdown(attempts: Iterable[Attempt]) -> List[Dict[str, Any]]:
    """Per learner and source theme accuracy across test-mode attempts."""

    totals: Dict[Tuple[str, str], List[int]] = {}
    for attempt in attempts:
        if not attempt.is_test_mode:
            continue
        for answer in attempt.all_answers:
            key = (attempt.user_name, answer.source_theme or UNKNOWN_THEME)
            bucket = totals.setdefault(key, [0, 0])
            bucket[0] += 1
            if answer.is_correct:
                bucket[1] += 1

    breakdown = [
        {
            "user_name": user_name,
            "source_theme": source_theme,
            "total_questions": total,
            "correct_count": correct,
            "percentage": percentage(correct, total),
        }
        for (user_name, source_theme), (total, correct) in totals.items()
    ]
    breakdown.sort(key=lambda item: (item["user_name"], -item["percentage"]))
    return breakdown


def describe_sessions(sessions: Mapping[str, Session]) -> List[Dict[str, Any]]:
    """Round-level counts per session, for troubleshooting the grouping."""

    described = []
    for session_id, session in sessions.items():
        described.append(
            {
                "session_id": session_id,
                "user_name": session.user_name,
                "theme_name": session.theme_name,
                "level": session.level,
                "explicit": session.explicit,
                "rounds_count": len(session.rounds),
                "rounds": [
                    {
                        "round": item.round_number,
                        "questions_count": len(item.answers),
                        "correct_count": len(item.answers) - len(item.mistakes),
                        "mistakes_count": len(item.mistakes),
                    }
                    for item in session.rounds
                ],
            }
        )
    return described
