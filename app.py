# app.py
# =============================================================================
# LiftLog API: personal workout log (FastAPI + SQLAlchemy 2.x async, Pydantic v2)
# Workouts by calendar date, each made of ordered exercises and ordered sets.
# v1.0.0: every route scoped to the authenticated user
# =============================================================================

from __future__ import annotations

import logging
import os
import time
import traceback
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi import Path as FPath
from fastapi.responses import JSONResponse

import workouts as data
from auth import get_current_user
from dates import resolve_date_param
from db import db_type, engine, init_db, ping
from schemas import (
    ExerciseIn,
    ExerciseOut,
    GenericResponse,
    HealthOut,
    SetIn,
    SetOut,
    WorkoutExerciseIn,
    WorkoutExerciseOut,
    WorkoutIn,
    WorkoutOut,
    WorkoutWithExercisesOut,
)

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
log = logging.getLogger("liftlog")


# -----------------------------------------------------------------------------
# App (with lifespan)
# -----------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    await init_db()
    yield
    await engine.dispose()


app = FastAPI(
    title="LiftLog API",
    description="Personal workout log. Workouts by date, with ordered exercises and sets.",
    version="1.0.0",
    lifespan=lifespan,
)


# -----------------------------------------------------------------------------
# Exception handlers
# -----------------------------------------------------------------------------
@app.exception_handler(data.Unauthorized)
async def _unauthorized_handler(request: Request, exc: data.Unauthorized):
    return JSONResponse(status_code=401, content={"detail": "Unauthorized"})


@app.exception_handler(data.IntegrityViolation)
async def _integrity_handler(request: Request, exc: data.IntegrityViolation):
    log.error(f"Data integrity violation on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error: inconsistent data"})


# Global handler: log the full traceback so server logs show the cause
@app.exception_handler(Exception)
async def _global_exception_handler(request: Request, exc: Exception):
    tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    log.error(f"Unhandled error on {request.method} {request.url.path}: {exc}\n{tb}")
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal server error: {type(exc).__name__}"},
    )


# -----------------------------------------------------------------------------
# Rate limiting middleware (simple in-memory, per-IP)
# -----------------------------------------------------------------------------
_rate_limit_store: Dict[str, List[float]] = defaultdict(list)
RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "120"))
RATE_LIMIT_WINDOW = int(os.getenv("RATE_LIMIT_WINDOW", "60"))  # seconds


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    client_ip = request.client.host if request.client else "unknown"
    now = time.time()
    window_start = now - RATE_LIMIT_WINDOW
    _rate_limit_store[client_ip] = [
        t for t in _rate_limit_store[client_ip] if t > window_start
    ]
    if len(_rate_limit_store[client_ip]) >= RATE_LIMIT_REQUESTS:
        return Response(
            content='{"detail":"Rate limit exceeded. Try again later."}',
            status_code=429,
            media_type="application/json",
        )
    _rate_limit_store[client_ip].append(now)
    # Prune stale IPs to bound memory
    if len(_rate_limit_store) > 1000:
        stale = [ip for ip, ts in _rate_limit_store.items()
                 if not ts or ts[-1] < window_start]
        for ip in stale:
            del _rate_limit_store[ip]
    response = await call_next(request)
    response.headers["X-RateLimit-Limit"] = str(RATE_LIMIT_REQUESTS)
    response.headers["X-RateLimit-Remaining"] = str(
        RATE_LIMIT_REQUESTS - len(_rate_limit_store[client_ip])
    )
    return response


def _exercise_to_out(e) -> ExerciseOut:
    return ExerciseOut(id=e.id, name=e.name, shared=e.user_id is None)


# =============================================================================
# ENDPOINTS: Health / Root
# =============================================================================
@app.get("/health", response_model=HealthOut)
async def health() -> HealthOut:
    db_connected = False
    try:
        db_connected = await ping()
    except Exception as e:
        log.error(f"Health check DB query failed: {e}")
    return HealthOut(
        ok=db_connected,
        db_connected=db_connected,
        db_type=db_type(),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@app.get("/", response_model=GenericResponse)
async def root() -> GenericResponse:
    return GenericResponse(message="LiftLog API v1 is running")


# =============================================================================
# ENDPOINTS: Workouts
# IMPORTANT: define GET /workouts BEFORE any dynamic /workouts/{...}
# =============================================================================
@app.get("/workouts", response_model=List[WorkoutWithExercisesOut])
async def workouts_for_date(
    date: Optional[str] = Query(None, description="YYYY-MM-DD; today if missing or malformed"),
    user_id: str = Depends(get_current_user),
) -> List[WorkoutWithExercisesOut]:
    day = resolve_date_param(date)
    return await data.get_workouts_for_date(user_id, day)


@app.post("/workouts", response_model=WorkoutOut)
async def create_workout(
    body: WorkoutIn, user_id: str = Depends(get_current_user)
) -> WorkoutOut:
    obj = await data.create_workout(user_id, body)
    return WorkoutOut.model_validate(obj)


@app.get("/workouts/{workout_id}", response_model=WorkoutOut)
async def get_workout(
    workout_id: int = FPath(..., ge=1), user_id: str = Depends(get_current_user)
) -> WorkoutOut:
    obj = await data.get_workout_by_id(user_id, workout_id)
    if not obj:
        raise HTTPException(404, "Workout not found")
    return WorkoutOut.model_validate(obj)


@app.put("/workouts/{workout_id}", response_model=WorkoutOut)
async def edit_workout(
    workout_id: int = FPath(..., ge=1),
    body: WorkoutIn = Body(...),
    user_id: str = Depends(get_current_user),
) -> WorkoutOut:
    obj = await data.update_workout(user_id, workout_id, body)
    if not obj:
        raise HTTPException(404, "Workout not found")
    return WorkoutOut.model_validate(obj)


@app.delete("/workouts/{workout_id}", response_model=GenericResponse)
async def delete_workout(
    workout_id: int = FPath(..., ge=1), user_id: str = Depends(get_current_user)
) -> GenericResponse:
    if not await data.delete_workout(user_id, workout_id):
        raise HTTPException(404, "Workout not found")
    return GenericResponse(message="Workout deleted")


@app.post("/workouts/{workout_id}/exercises", response_model=WorkoutExerciseOut)
async def add_workout_exercise(
    workout_id: int = FPath(..., ge=1),
    body: WorkoutExerciseIn = Body(...),
    user_id: str = Depends(get_current_user),
) -> WorkoutExerciseOut:
    obj = await data.add_exercise_to_workout(user_id, workout_id, body)
    if not obj:
        raise HTTPException(404, "Workout or exercise not found")
    return WorkoutExerciseOut.model_validate(obj)


@app.post("/workout_exercises/{workout_exercise_id}/sets", response_model=SetOut)
async def add_set(
    workout_exercise_id: int = FPath(..., ge=1),
    body: SetIn = Body(...),
    user_id: str = Depends(get_current_user),
) -> SetOut:
    obj = await data.add_set(user_id, workout_exercise_id, body)
    if not obj:
        raise HTTPException(404, "Workout exercise not found")
    return SetOut.model_validate(obj)


# =============================================================================
# ENDPOINTS: Exercise library
# =============================================================================
@app.get("/exercises", response_model=List[ExerciseOut])
async def list_exercises(user_id: str = Depends(get_current_user)) -> List[ExerciseOut]:
    return [_exercise_to_out(e) for e in await data.list_exercises(user_id)]


@app.post("/exercises", response_model=ExerciseOut)
async def create_exercise(
    body: ExerciseIn, user_id: str = Depends(get_current_user)
) -> ExerciseOut:
    obj = await data.create_exercise(user_id, body)
    return _exercise_to_out(obj)
