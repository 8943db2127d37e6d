"""
Data-access tests for workouts.py: ownership isolation, validation before
persistence, and the ordering of the date-scoped aggregation.
"""
import pytest
import pytest_asyncio
from pydantic import ValidationError
from sqlalchemy import func, select, text

import workouts as data
from db import Set, Workout, WorkoutExercise, async_session


@pytest_asyncio.fixture(autouse=True)
async def setup_db(fresh_db):
    yield


async def _count(model) -> int:
    async with async_session() as s:
        result = await s.execute(select(func.count()).select_from(model))
        return int(result.scalar_one())


async def _build_workout(user_id: str, date: str, plan):
    """plan: list of (exercise name, [(weight, reps), ...]) in display order."""
    w = await data.create_workout(user_id, {"name": "Session", "date": date})
    for name, sets in plan:
        ex = await data.create_exercise(user_id, {"name": name})
        we = await data.add_exercise_to_workout(user_id, w.id, {"exercise_id": ex.id})
        for weight, reps in sets:
            await data.add_set(user_id, we.id, {"weight": weight, "reps": reps})
    return w


# ─── create / get ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_then_get():
    w = await data.create_workout("u1", {"name": "Leg Day", "date": "2024-03-15"})
    assert w.id > 0
    assert w.name == "Leg Day"
    assert w.date == "2024-03-15"
    assert w.user_id == "u1"
    assert w.created_at is not None
    assert w.updated_at is not None

    fetched = await data.get_workout_by_id("u1", w.id)
    assert fetched is not None
    assert (fetched.name, fetched.date) == ("Leg Day", "2024-03-15")


@pytest.mark.asyncio
async def test_create_without_name():
    w = await data.create_workout("u1", {"date": "2024-03-15"})
    assert w.name is None


@pytest.mark.asyncio
async def test_get_other_users_workout_is_none():
    w = await data.create_workout("u1", {"name": "Mine", "date": "2024-03-15"})
    assert await data.get_workout_by_id("u2", w.id) is None
    assert await data.get_workout_by_id("u1", 999999) is None


@pytest.mark.asyncio
async def test_bad_date_persists_nothing():
    with pytest.raises(ValidationError):
        await data.create_workout("u1", {"date": "03/15/2024"})
    assert await _count(Workout) == 0


@pytest.mark.asyncio
async def test_name_too_long_persists_nothing():
    with pytest.raises(ValidationError) as exc:
        await data.create_workout("u1", {"name": "x" * 101, "date": "2024-03-15"})
    assert exc.value.errors()[0]["loc"] == ("name",)
    assert await _count(Workout) == 0


@pytest.mark.asyncio
async def test_name_at_limit_accepted():
    w = await data.create_workout("u1", {"name": "x" * 100, "date": "2024-03-15"})
    assert len(w.name) == 100


@pytest.mark.asyncio
async def test_empty_user_rejected_before_data_access():
    with pytest.raises(data.Unauthorized):
        await data.create_workout("", {"date": "2024-03-15"})
    with pytest.raises(data.Unauthorized):
        await data.get_workouts_for_date(None, "2024-03-15")
    assert await _count(Workout) == 0


# ─── update ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_update_moves_workout_between_dates():
    w = await data.create_workout("u1", {"name": "Leg Day", "date": "2024-03-15"})
    updated = await data.update_workout("u1", w.id, {"date": "2024-03-16"})
    assert updated is not None
    assert updated.date == "2024-03-16"
    assert updated.name == "Leg Day"

    assert await data.get_workouts_for_date("u1", "2024-03-15") == []
    moved = await data.get_workouts_for_date("u1", "2024-03-16")
    assert [x.id for x in moved] == [w.id]


@pytest.mark.asyncio
async def test_update_can_rename_and_clear_name():
    w = await data.create_workout("u1", {"name": "Leg Day", "date": "2024-03-15"})
    renamed = await data.update_workout("u1", w.id, {"name": "Legs", "date": "2024-03-15"})
    assert renamed.name == "Legs"
    cleared = await data.update_workout("u1", w.id, {"name": None, "date": "2024-03-15"})
    assert cleared.name is None


@pytest.mark.asyncio
async def test_update_by_other_user_is_not_found_and_leaves_row():
    w = await data.create_workout("u1", {"name": "Leg Day", "date": "2024-03-15"})
    assert await data.update_workout("u2", w.id, {"name": "Hacked", "date": "2024-01-01"}) is None

    untouched = await data.get_workout_by_id("u1", w.id)
    assert (untouched.name, untouched.date) == ("Leg Day", "2024-03-15")


@pytest.mark.asyncio
async def test_update_missing_id_is_not_found():
    assert await data.update_workout("u1", 424242, {"date": "2024-03-15"}) is None


@pytest.mark.asyncio
async def test_update_validates_before_writing():
    w = await data.create_workout("u1", {"name": "Leg Day", "date": "2024-03-15"})
    with pytest.raises(ValidationError):
        await data.update_workout("u1", w.id, {"date": "2024-3-16"})
    assert (await data.get_workout_by_id("u1", w.id)).date == "2024-03-15"


# ─── aggregation ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_empty_day_is_empty_list():
    assert await data.get_workouts_for_date("u1", "2024-03-15") == []


@pytest.mark.asyncio
async def test_exercises_and_sets_are_ordered():
    w = await data.create_workout("u1", {"name": "Push", "date": "2024-03-15"})
    bench = await data.create_exercise("u1", {"name": "Bench Press"})
    fly = await data.create_exercise("u1", {"name": "Cable Fly"})

    # Insert out of display order to prove the reader sorts
    we2 = await data.add_exercise_to_workout("u1", w.id, {"exercise_id": fly.id, "order": 2})
    we1 = await data.add_exercise_to_workout("u1", w.id, {"exercise_id": bench.id, "order": 1})
    for we in (we1, we2):
        for n in (3, 1, 2):
            await data.add_set("u1", we.id, {"set_number": n, "weight": 10.0 * n, "reps": n})

    [result] = await data.get_workouts_for_date("u1", "2024-03-15")
    assert result.id == w.id
    assert result.name == "Push"
    assert [e.id for e in result.exercises] == [we1.id, we2.id]
    assert [e.name for e in result.exercises] == ["Bench Press", "Cable Fly"]
    for e in result.exercises:
        assert [s.reps for s in e.sets] == [1, 2, 3]
        assert [s.weight for s in e.sets] == [10.0, 20.0, 30.0]


@pytest.mark.asyncio
async def test_weight_is_numeric():
    await _build_workout("u1", "2024-03-15", [("Squat", [(102.5, 5)])])
    [result] = await data.get_workouts_for_date("u1", "2024-03-15")
    weight = result.exercises[0].sets[0].weight
    assert isinstance(weight, float)
    assert weight == 102.5


@pytest.mark.asyncio
async def test_exercise_without_sets_is_listed():
    await _build_workout("u1", "2024-03-15", [("Plank", [])])
    [result] = await data.get_workouts_for_date("u1", "2024-03-15")
    assert result.exercises[0].name == "Plank"
    assert result.exercises[0].sets == []


@pytest.mark.asyncio
async def test_multiple_workouts_in_id_order_and_user_scoped():
    first = await _build_workout("u1", "2024-03-15", [("Squat", [(100, 5)])])
    second = await _build_workout("u1", "2024-03-15", [("Deadlift", [(140, 3)])])
    await _build_workout("u2", "2024-03-15", [("Curl", [(15, 12)])])
    await _build_workout("u1", "2024-03-14", [("Row", [(60, 10)])])

    result = await data.get_workouts_for_date("u1", "2024-03-15")
    assert [w.id for w in result] == [first.id, second.id]
    assert [w.exercises[0].name for w in result] == ["Squat", "Deadlift"]


@pytest.mark.asyncio
async def test_missing_exercise_is_integrity_violation():
    w = await data.create_workout("u1", {"date": "2024-03-15"})
    async with async_session() as s:
        await s.execute(text("PRAGMA foreign_keys=OFF"))
        s.add(WorkoutExercise(workout_id=w.id, exercise_id=9999, order=1))
        await s.commit()
        await s.execute(text("PRAGMA foreign_keys=ON"))

    with pytest.raises(data.IntegrityViolation):
        await data.get_workouts_for_date("u1", "2024-03-15")


# ─── delete & cascade ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_delete_cascades_to_exercises_and_sets():
    w = await _build_workout("u1", "2024-03-15", [("Squat", [(100, 5), (110, 3)])])
    assert await _count(Set) == 2

    assert await data.delete_workout("u2", w.id) is False
    assert await _count(Set) == 2

    assert await data.delete_workout("u1", w.id) is True
    assert await _count(WorkoutExercise) == 0
    assert await _count(Set) == 0
    assert await data.get_workout_by_id("u1", w.id) is None


# ─── exercise library & workout contents ─────────────────────────────────────

@pytest.mark.asyncio
async def test_list_exercises_shared_and_own_only():
    async with async_session() as s:
        await s.execute(text("INSERT INTO exercises (name, user_id) VALUES ('Back Squat', NULL)"))
        await s.commit()
    await data.create_exercise("u1", {"name": "Zercher Squat"})
    await data.create_exercise("u2", {"name": "Secret Lift"})

    names = [e.name for e in await data.list_exercises("u1")]
    assert names == ["Back Squat", "Zercher Squat"]


@pytest.mark.asyncio
async def test_blank_exercise_name_rejected():
    with pytest.raises(ValidationError):
        await data.create_exercise("u1", {"name": "   "})


@pytest.mark.asyncio
async def test_add_exercise_defaults_to_next_order():
    w = await data.create_workout("u1", {"date": "2024-03-15"})
    ex = await data.create_exercise("u1", {"name": "Squat"})
    a = await data.add_exercise_to_workout("u1", w.id, {"exercise_id": ex.id, "order": 5})
    b = await data.add_exercise_to_workout("u1", w.id, {"exercise_id": ex.id})
    assert (a.order, b.order) == (5, 6)


@pytest.mark.asyncio
async def test_add_exercise_refuses_foreign_workout_or_exercise():
    mine = await data.create_workout("u1", {"date": "2024-03-15"})
    theirs = await data.create_workout("u2", {"date": "2024-03-15"})
    my_ex = await data.create_exercise("u1", {"name": "Squat"})
    their_ex = await data.create_exercise("u2", {"name": "Press"})

    assert await data.add_exercise_to_workout("u1", theirs.id, {"exercise_id": my_ex.id}) is None
    assert await data.add_exercise_to_workout("u1", mine.id, {"exercise_id": their_ex.id}) is None
    assert await _count(WorkoutExercise) == 0


@pytest.mark.asyncio
async def test_add_set_numbers_sequentially_and_checks_owner():
    w = await _build_workout("u1", "2024-03-15", [("Squat", [(100, 5), (105, 5)])])
    [result] = await data.get_workouts_for_date("u1", w.date)
    we_id = result.exercises[0].id

    third = await data.add_set("u1", we_id, {"weight": 110, "reps": 3})
    assert third.set_number == 3
    assert await data.add_set("u2", we_id, {"weight": 1, "reps": 1}) is None
    assert await _count(Set) == 3


@pytest.mark.asyncio
async def test_add_set_rejects_non_positive_reps():
    w = await _build_workout("u1", "2024-03-15", [("Squat", [])])
    [result] = await data.get_workouts_for_date("u1", w.date)
    with pytest.raises(ValidationError):
        await data.add_set("u1", result.exercises[0].id, {"weight": 100, "reps": 0})
    assert await _count(Set) == 0


@pytest.mark.asyncio
async def test_add_set_rejects_infinite_weight():
    w = await _build_workout("u1", "2024-03-15", [("Squat", [])])
    [result] = await data.get_workouts_for_date("u1", w.date)
    with pytest.raises(ValidationError):
        await data.add_set("u1", result.exercises[0].id, {"weight": float("inf"), "reps": 1})
    assert await _count(Set) == 0
