"""Assemble the admin dashboard payload.

The report is all or nothing: if any part fails the caller gets a
:class:`StatsUnavailableError` instead of a half-filled payload.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import timedelta
from typing import Any, Dict, List

import db

from .attempts import parse_attempts
from .breakdowns import compute_test_theme_breakdown, describe_sessions, track_repeated_mistakes
from .errors import StatsUnavailableError, with_retry
from .metrics import compute_focus_metrics, compute_learning_rate_progress
from .sessions import DEFAULT_SESSION_GAP, reconstruct_sessions
from .seriousness import analyse_seriousness

logger = logging.getLogger(__name__)

__all__ = ["learning_analytics", "build_admin_report"]

_storage_read = with_retry(exceptions=(sqlite3.OperationalError,))


def learning_analytics(
    rows: List[Dict[str, Any]],
    gap: timedelta = DEFAULT_SESSION_GAP,
) -> Dict[str, Any]:
    """Sessions, focus metrics and learning-rate points for training attempts."""

    attempts = parse_attempts(rows)
    sessions = reconstruct_sessions(attempts, gap=gap)
    return {
        "sessions": sessions,
        "seriousnessStats": [metric.to_dict() for metric in compute_focus_metrics(sessions.values())],
        "learningRateProgress": [
            point.to_dict() for point in compute_learning_rate_progress(sessions.values())
        ],
        "sessionAnalysis": [report.to_dict() for report in analyse_seriousness(sessions.values())],
    }


def build_admin_report(
    *,
    gap: timedelta = DEFAULT_SESSION_GAP,
    include_sessions: bool = False,
    recent_limit: int = 500,
) -> Dict[str, Any]:
    try:
        training = learning_analytics(_storage_read(db.list_attempts)(is_test_mode=False), gap=gap)
        mistake_attempts = parse_attempts(_storage_read(db.list_recent_mistake_attempts)(200))
        test_attempts = parse_attempts(_storage_read(db.list_attempts)(is_test_mode=True))

        report: Dict[str, Any] = {
            "users": _storage_read(db.list_users)(),
            "summaryStats": _storage_read(db.summary_stats)(),
            "seriousnessStats": training["seriousnessStats"],
            "learningRateProgress": training["learningRateProgress"],
            "sessionAnalysis": training["sessionAnalysis"],
            "singleRoundStats": _storage_read(db.single_round_stats)(),
            "round1Progress": _storage_read(db.round1_progress)(),
            "themeMastery": _storage_read(db.theme_mastery)(),
            "repeatedMistakes": track_repeated_mistakes(mistake_attempts),
            "testSummaryStats": _storage_read(db.summary_stats_test_mode)(),
            "testProgress": _storage_read(db.progress_test_mode)(),
            "testThemeBreakdown": compute_test_theme_breakdown(test_attempts),
            "allQuizResults": _storage_read(db.list_recent_results)(recent_limit),
        }
        if include_sessions:
            report["debugSessions"] = describe_sessions(training["sessions"])
    except Exception as exc:
        logger.exception("Admin stats report failed")
        raise StatsUnavailableError("Failed to fetch stats") from exc

    logger.info(
        "Admin stats built: %d focus rows, %d learning-rate points, %d sessions",
        len(report["seriousnessStats"]),
        len(report["learningRateProgress"]),
        len(training["sessions"]),
    )
    return report
