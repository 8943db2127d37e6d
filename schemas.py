# schemas.py
# =============================================================================
# Pydantic schemas: request validation and response shapes.
# Validation runs when a model is built, i.e. before any session is opened.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dates import validate_date_str
from db import WORKOUT_NAME_MAX


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class HealthOut(BaseModel):
    ok: bool = True
    db_connected: bool = True
    db_type: str
    timestamp: str


class GenericResponse(BaseModel):
    message: str


# -----------------------------------------------------------------------------
# Workouts
# -----------------------------------------------------------------------------
class WorkoutIn(BaseModel):
    """Create/update payload. name is optional, date is YYYY-MM-DD."""
    name: Optional[str] = Field(None, max_length=WORKOUT_NAME_MAX)
    date: str

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return validate_date_str(v)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


class WorkoutOut(BaseModel):
    id: int
    name: Optional[str] = None
    date: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class SetSummaryOut(BaseModel):
    weight: float
    reps: int


class ExerciseWithSetsOut(BaseModel):
    id: int  # workout_exercise id
    name: str
    sets: List[SetSummaryOut] = Field(default_factory=list)


class WorkoutWithExercisesOut(BaseModel):
    id: int
    name: Optional[str] = None
    date: str
    exercises: List[ExerciseWithSetsOut] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Exercise library
# -----------------------------------------------------------------------------
class ExerciseIn(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("exercise name cannot be empty")
        return v


class ExerciseOut(BaseModel):
    id: int
    name: str
    shared: bool = False
    model_config = ConfigDict(from_attributes=True)


# -----------------------------------------------------------------------------
# Workout contents
# -----------------------------------------------------------------------------
class WorkoutExerciseIn(BaseModel):
    exercise_id: int = Field(..., ge=1)
    order: Optional[int] = Field(None, ge=0)


class WorkoutExerciseOut(BaseModel):
    id: int
    workout_id: int
    exercise_id: int
    order: int
    model_config = ConfigDict(from_attributes=True)


class SetIn(BaseModel):
    weight: float = Field(..., ge=0, allow_inf_nan=False)
    reps: int = Field(..., ge=1)
    set_number: Optional[int] = Field(None, ge=1)


class SetOut(BaseModel):
    id: int
    workout_exercise_id: int
    set_number: int
    weight: float
    reps: int
    model_config = ConfigDict(from_attributes=True)
