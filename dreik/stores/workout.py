"""Workout store."""

from datetime import date

from sqlalchemy.orm import Session

from dreik.models.workout import Workout
from dreik.stores.errors import WorkoutNotFound


class WorkoutStore:
    """Data access for workouts. Flushes only; callers own the transaction."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def create(self, user_id: str, workout_date: date, duration: int, kind: str) -> Workout:
        workout = Workout(user_id=user_id, date=workout_date, duration=duration, kind=kind)
        self.db.add(workout)
        self.db.flush()
        return workout

    def get_by_id(self, workout_id: str) -> Workout:
        workout = self.db.query(Workout).filter(Workout.id == workout_id).first()
        if workout is None:
            raise WorkoutNotFound()
        return workout

    def delete(self, workout_id: str) -> None:
        deleted = self.db.query(Workout).filter(Workout.id == workout_id).delete()
        if not deleted:
            raise WorkoutNotFound()

    def list_for_user(self, user_id: str, begin: date | None = None, end: date | None = None) -> list[Workout]:
        """Workouts of a user, oldest first, optionally bounded by an inclusive date range."""
        query = self.db.query(Workout).filter(Workout.user_id == user_id)
        if begin is not None:
            query = query.filter(Workout.date >= begin)
        if end is not None:
            query = query.filter(Workout.date <= end)
        return query.order_by(Workout.date.asc(), Workout.created_at.asc()).all()
