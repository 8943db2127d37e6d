# workouts.py
# =============================================================================
# Data access for workouts, exercises and sets.
# Every query carries the requesting user's id in its predicate: a row owned
# by someone else behaves exactly like a row that does not exist.
# =============================================================================

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from pydantic import BaseModel
from sqlalchemy import and_, asc, delete, func, or_, select, update

from db import Exercise, Set, Workout, WorkoutExercise, async_session
from schemas import (
    ExerciseIn,
    ExerciseWithSetsOut,
    SetIn,
    SetSummaryOut,
    WorkoutExerciseIn,
    WorkoutIn,
    WorkoutWithExercisesOut,
)

log = logging.getLogger("liftlog.workouts")


class Unauthorized(Exception):
    """Raised when a data-access call is made without a resolved user."""


class IntegrityViolation(RuntimeError):
    """Raised when persisted rows reference something that is not there."""


def _require_user(user_id: Optional[str]) -> str:
    if not user_id or not str(user_id).strip():
        raise Unauthorized("a resolved user id is required")
    return user_id


def _coerce(model: Type[BaseModel], data: Any) -> BaseModel:
    if isinstance(data, model):
        return data
    return model.model_validate(data)


# -----------------------------------------------------------------------------
# Workouts: writer
# -----------------------------------------------------------------------------
async def create_workout(user_id: str, data: Union[WorkoutIn, Mapping[str, Any]]) -> Workout:
    _require_user(user_id)
    payload = _coerce(WorkoutIn, data)
    async with async_session() as s:
        obj = Workout(user_id=user_id, name=payload.name, date=payload.date)
        s.add(obj)
        await s.commit()
        await s.refresh(obj)
    log.info(f"Created workout {obj.id} on {obj.date} for {user_id}")
    return obj


async def get_workout_by_id(user_id: str, workout_id: int) -> Optional[Workout]:
    _require_user(user_id)
    async with async_session() as s:
        result = await s.execute(
            select(Workout).where(Workout.id == workout_id, Workout.user_id == user_id)
        )
        return result.scalar_one_or_none()


async def update_workout(
    user_id: str, workout_id: int, data: Union[WorkoutIn, Mapping[str, Any]]
) -> Optional[Workout]:
    """Update name/date of an owned workout; None when nothing matched.

    Only fields present in the payload are written, so omitting ``name``
    keeps the stored one.
    """
    _require_user(user_id)
    payload = _coerce(WorkoutIn, data)
    values: Dict[str, Any] = payload.model_dump(exclude_unset=True)
    values["updated_at"] = func.now()
    async with async_session() as s:
        result = await s.execute(
            update(Workout)
            .where(Workout.id == workout_id, Workout.user_id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await s.rollback()
            log.info(f"Update of workout {workout_id} by {user_id} matched no row")
            return None
        await s.commit()
        row = await s.execute(
            select(Workout).where(Workout.id == workout_id, Workout.user_id == user_id)
        )
        return row.scalar_one_or_none()


async def delete_workout(user_id: str, workout_id: int) -> bool:
    _require_user(user_id)
    async with async_session() as s:
        result = await s.execute(
            delete(Workout)
            .where(Workout.id == workout_id, Workout.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        await s.commit()
    return result.rowcount > 0


# -----------------------------------------------------------------------------
# Workouts: date-scoped aggregation
# -----------------------------------------------------------------------------
async def get_workouts_for_date(user_id: str, date: str) -> List[WorkoutWithExercisesOut]:
    """All of a user's workouts on ``date`` with their exercises and sets.

    Workouts come back in id order, exercises by ``order`` and sets by
    ``set_number``. Two flat queries are run and re-nested in memory.
    """
    _require_user(user_id)
    async with async_session() as s:
        w_result = await s.execute(
            select(Workout.id, Workout.name, Workout.date)
            .where(Workout.user_id == user_id, Workout.date == date)
            .order_by(asc(Workout.id))
        )
        workouts = w_result.all()
        if not workouts:
            return []

        rows_result = await s.execute(
            select(
                WorkoutExercise.workout_id,
                WorkoutExercise.id,
                WorkoutExercise.exercise_id,
                Exercise.name,
                Set.id,
                Set.weight,
                Set.reps,
            )
            .select_from(WorkoutExercise)
            .outerjoin(Exercise, Exercise.id == WorkoutExercise.exercise_id)
            .outerjoin(Set, Set.workout_exercise_id == WorkoutExercise.id)
            .where(WorkoutExercise.workout_id.in_([w.id for w in workouts]))
            .order_by(
                asc(WorkoutExercise.workout_id),
                asc(WorkoutExercise.order),
                asc(WorkoutExercise.id),
                asc(Set.set_number),
                asc(Set.id),
            )
        )
        rows = rows_result.all()

    by_workout: Dict[int, List[ExerciseWithSetsOut]] = {w.id: [] for w in workouts}
    by_we: Dict[int, ExerciseWithSetsOut] = {}
    for workout_id, we_id, exercise_id, exercise_name, set_id, weight, reps in rows:
        entry = by_we.get(we_id)
        if entry is None:
            if exercise_name is None:
                raise IntegrityViolation(
                    f"workout_exercise {we_id} references missing exercise {exercise_id}"
                )
            entry = ExerciseWithSetsOut(id=we_id, name=exercise_name)
            by_we[we_id] = entry
            by_workout[workout_id].append(entry)
        if set_id is not None:
            entry.sets.append(SetSummaryOut(weight=float(weight), reps=int(reps)))

    return [
        WorkoutWithExercisesOut(id=w.id, name=w.name, date=w.date, exercises=by_workout[w.id])
        for w in workouts
    ]


# -----------------------------------------------------------------------------
# Exercise library
# -----------------------------------------------------------------------------
def _visible_exercise(user_id: str):
    return or_(Exercise.user_id.is_(None), Exercise.user_id == user_id)


async def list_exercises(user_id: str) -> List[Exercise]:
    _require_user(user_id)
    async with async_session() as s:
        result = await s.execute(
            select(Exercise)
            .where(_visible_exercise(user_id))
            .order_by(asc(func.lower(Exercise.name)), asc(Exercise.id))
        )
        return list(result.scalars().all())


async def create_exercise(user_id: str, data: Union[ExerciseIn, Mapping[str, Any]]) -> Exercise:
    _require_user(user_id)
    payload = _coerce(ExerciseIn, data)
    async with async_session() as s:
        obj = Exercise(name=payload.name, user_id=user_id)
        s.add(obj)
        await s.commit()
        await s.refresh(obj)
    return obj


# -----------------------------------------------------------------------------
# Workout contents
# -----------------------------------------------------------------------------
async def add_exercise_to_workout(
    user_id: str, workout_id: int, data: Union[WorkoutExerciseIn, Mapping[str, Any]]
) -> Optional[WorkoutExercise]:
    """Append an exercise to an owned workout; None if either is not visible."""
    _require_user(user_id)
    payload = _coerce(WorkoutExerciseIn, data)
    async with async_session() as s:
        owned = await s.execute(
            select(Workout.id).where(Workout.id == workout_id, Workout.user_id == user_id)
        )
        if owned.scalar_one_or_none() is None:
            return None
        visible = await s.execute(
            select(Exercise.id).where(
                Exercise.id == payload.exercise_id, _visible_exercise(user_id)
            )
        )
        if visible.scalar_one_or_none() is None:
            return None

        order = payload.order
        if order is None:
            current = await s.execute(
                select(func.max(WorkoutExercise.order)).where(
                    WorkoutExercise.workout_id == workout_id
                )
            )
            top = current.scalar()
            order = 1 if top is None else int(top) + 1

        obj = WorkoutExercise(workout_id=workout_id, exercise_id=payload.exercise_id, order=order)
        s.add(obj)
        await s.commit()
        await s.refresh(obj)
    return obj


async def add_set(
    user_id: str, workout_exercise_id: int, data: Union[SetIn, Mapping[str, Any]]
) -> Optional[Set]:
    """Record a set under an owned workout exercise; None if not visible."""
    _require_user(user_id)
    payload = _coerce(SetIn, data)
    async with async_session() as s:
        owned = await s.execute(
            select(WorkoutExercise.id)
            .join(Workout, Workout.id == WorkoutExercise.workout_id)
            .where(
                and_(
                    WorkoutExercise.id == workout_exercise_id,
                    Workout.user_id == user_id,
                )
            )
        )
        if owned.scalar_one_or_none() is None:
            return None

        set_number = payload.set_number
        if set_number is None:
            current = await s.execute(
                select(func.max(Set.set_number)).where(
                    Set.workout_exercise_id == workout_exercise_id
                )
            )
            top = current.scalar()
            set_number = 1 if top is None else int(top) + 1

        obj = Set(
            workout_exercise_id=workout_exercise_id,
            set_number=set_number,
            weight=Decimal(str(payload.weight)),
            reps=payload.reps,
        )
        s.add(obj)
        await s.commit()
        await s.refresh(obj)
    return obj
