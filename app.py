# app.py - Galamath stats service
# - Stores finished quiz rounds posted by the quiz client
# - Admin passcode check
# - Admin dashboard analytics (sessions, correction rates, mastery)

import hmac
import json
import logging
import os
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response

import db
from analytics.errors import StatsUnavailableError
from analytics.report import build_admin_report
from env_validation import get_env_bool, get_env_int
from schemas import AdminStatsResponse, PasscodeRequest, QuizResultPayload, ResultStored

logger = logging.getLogger(__name__)

DEFAULT_PASSCODE = "1234"


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        # Validate environment variables first
        from env_validation import validate_environment
        validate_environment()

        db.init()
        logger.info("Quiz results store ready at %s", db.DB_PATH)
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="Galamath stats", version="1.0.0", lifespan=_lifespan)

_RESULTS_LOGGER = logging.getLogger("galamath.results")
if not _RESULTS_LOGGER.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
    _RESULTS_LOGGER.addHandler(_handler)
_RESULTS_LOGGER.setLevel(logging.INFO)
_RESULTS_LOGGER.propagate = False


@app.post("/results", response_model=ResultStored)
def submit_result(payload: QuizResultPayload) -> ResultStored:
    record = payload.model_dump()
    try:
        result_id = db.save_quiz_result(record)
    except Exception:
        logger.exception("Database error (continuing without save)")
        return ResultStored(success=True, stored=False)

    _RESULTS_LOGGER.info(
        "result user=%s theme=%s level=%s round=%d score=%d/%d test=%s session=%s",
        payload.user_id,
        payload.theme_name,
        payload.level,
        payload.round,
        payload.score,
        payload.total_questions,
        payload.is_test_mode,
        payload.session_id or "-",
    )
    return ResultStored(success=True, stored=True, result_id=result_id)


@app.post("/auth")
def check_passcode(payload: PasscodeRequest):
    expected = os.getenv("PASSCODE") or DEFAULT_PASSCODE
    if hmac.compare_digest(payload.code.encode("utf-8"), expected.encode("utf-8")):
        return {"success": True}
    return Response(
        status_code=401,
        content=json.dumps({"success": False}),
        media_type="application/json",
    )


@app.get("/admin/stats", response_model=AdminStatsResponse)
def admin_stats():
    try:
        gap = timedelta(minutes=get_env_int("SESSION_GAP_MINUTES", 30))
        recent_limit = get_env_int("RECENT_RESULTS_LIMIT", 500)
        report = build_admin_report(
            gap=gap,
            include_sessions=get_env_bool("STATS_DEBUG_SESSIONS"),
            recent_limit=recent_limit,
        )
    except StatsUnavailableError as exc:
        raise HTTPException(status_code=500, detail="Failed to fetch stats") from exc
    except Exception as exc:
        logger.exception("Admin stats configuration error")
        raise HTTPException(status_code=500, detail="Failed to fetch stats") from exc
    return report
