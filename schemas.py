"""Pydantic schemas for quiz result payloads and admin analytics output."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field, field_validator

__all__ = [
    "Level",
    "AnswerPayload",
    "MistakePayload",
    "QuizResultPayload",
    "ResultStored",
    "PasscodeRequest",
    "FocusMetricRow",
    "LearningRatePointRow",
    "SeriousnessRow",
    "AdminStatsResponse",
]

Level = Literal["easy", "medium", "hard"]


class AnswerPayload(BaseModel):
    question_id: int | None = None
    question: str
    user_answer: int | None = Field(
        default=None,
        description="Index of the chosen option; null when the learner skipped or ran out of time.",
    )
    correct_answer: int = Field(ge=0, le=3)
    time_spent: float | None = None
    source_theme: str | None = Field(
        default=None,
        description="Theme the question was drawn from; only set in test mode.",
    )


class MistakePayload(BaseModel):
    question_number: int | None = None
    question: str
    user_answer: str | None = None
    correct_answer: str
    hint: str | None = None


class QuizResultPayload(BaseModel):
    """One finished quiz round as posted by the quiz client."""
    user_id: str = Field(min_length=1)
    user_name: str = Field(min_length=1)
    theme_id: str | None = None
    theme_name: str = Field(min_length=1)
    score: int = Field(ge=0)
    total_questions: int = Field(ge=0)
    total_time_seconds: float = Field(default=0.0, ge=0)
    avg_time_per_question: float = Field(default=0.0, ge=0)
    mistakes: List[MistakePayload] = Field(default_factory=list)
    all_answers: List[AnswerPayload] = Field(default_factory=list)
    round: int = Field(default=1, ge=1)
    level: Level = "easy"
    is_test_mode: bool = False
    session_id: str | None = None

    @field_validator("session_id")
    @classmethod
    def _blank_session_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()


class ResultStored(BaseModel):
    success: bool
    stored: bool
    result_id: int | None = None


class PasscodeRequest(BaseModel):
    code: str


class FocusMetricRow(BaseModel):
    user_name: str
    theme_name: str
    level: str
    total_multi_round_sessions: int
    total_mistakes: int
    total_corrections: int
    correction_rate: int
    mastery_count: int
    last_attempt: datetime | None


class LearningRatePointRow(BaseModel):
    user_name: str
    theme_name: str
    level: str
    session_id: str
    completed_at: datetime
    mistakes: int
    corrections: int
    correction_rate: int


class SeriousnessRow(BaseModel):
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


class AdminStatsResponse(BaseModel):
    """Everything the admin dashboard renders, in one payload."""
    users: List[Dict[str, Any]] = Field(default_factory=list)
    summaryStats: List[Dict[str, Any]] = Field(default_factory=list)
    seriousnessStats: List[FocusMetricRow] = Field(default_factory=list)
    learningRateProgress: List[LearningRatePointRow] = Field(default_factory=list)
    sessionAnalysis: List[SeriousnessRow] = Field(default_factory=list)
    singleRoundStats: List[Dict[str, Any]] = Field(default_factory=list)
    round1Progress: List[Dict[str, Any]] = Field(default_factory=list)
    themeMastery: List[Dict[str, Any]] = Field(default_factory=list)
    repeatedMistakes: List[Dict[str, Any]] = Field(default_factory=list)
    testSummaryStats: List[Dict[str, Any]] = Field(default_factory=list)
    testProgress: List[Dict[str, Any]] = Field(default_factory=list)
    testThemeBreakdown: List[Dict[str, Any]] = Field(default_factory=list)
    allQuizResults: List[Dict[str, Any]] = Field(default_factory=list)
    debugSessions: List[Dict[str, Any]] | None = None
