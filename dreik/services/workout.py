"""Workout service for logging sessions and reporting activity."""

import logging
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

from dreik.errors import Forbidden, NotFound, ValidationError
from dreik.models.workout import Workout
from dreik.schemas.workout import (
    DATE_FORMAT,
    ActivityHistoryResponse,
    ProfileResponse,
    StatisticsResponse,
    WorkoutResponse,
)
from dreik.stores.errors import UserNotFound, WorkoutNotFound
from dreik.stores.user import UserStore
from dreik.stores.workout import WorkoutStore

logger = logging.getLogger("dreik.workout")

EPOCH = date(1970, 1, 1)
WEEK_DAYS = 7


def parse_date(value: str) -> date:
    """Parse a DD-MM-YYYY date. Raises ValueError."""
    return datetime.strptime(value, DATE_FORMAT).date()


class WorkoutService:
    """Handles workout records, activity history and public profiles."""

    def create_workout(self, db: Session, user_id: str, date_str: str, duration: int, kind: str) -> Workout:
        try:
            workout_date = parse_date(date_str)
        except ValueError:
            logger.debug("invalid date format: %s", date_str)
            raise ValidationError("invalid date format") from None

        workout = WorkoutStore(db).create(user_id, workout_date, duration, kind.strip())
        db.commit()
        db.refresh(workout)

        logger.info("created a workout record id=%s", workout.id)
        return workout

    def delete_workout(self, db: Session, user_id: str, workout_id: str) -> None:
        workouts = WorkoutStore(db)
        try:
            workout = workouts.get_by_id(workout_id)
        except WorkoutNotFound:
            raise NotFound("workout not found") from None

        if workout.user_id != user_id:
            logger.info("user %s tried to delete workout %s of %s", user_id, workout_id, workout.user_id)
            raise Forbidden("forbidden to delete workout")

        workouts.delete(workout_id)
        db.commit()

    def activity_history(
        self, db: Session, user_id: str, begin: str | None = None, end: str | None = None
    ) -> ActivityHistoryResponse:
        """Workouts between two inclusive DD-MM-YYYY dates, defaulting to all time up to today."""
        try:
            begin_date = parse_date(begin) if begin is not None else EPOCH
            end_date = parse_date(end) if end is not None else date.today()
        except ValueError:
            logger.debug("incorrect date range: %s..%s", begin, end)
            raise ValidationError("date not provided or invalid date format") from None

        workouts = WorkoutStore(db).list_for_user(user_id, begin_date, end_date)
        return ActivityHistoryResponse(
            user_id=user_id,
            count=len(workouts),
            workouts=[WorkoutResponse.from_workout(w) for w in workouts],
        )

    def statistics(self, db: Session, user_id: str) -> StatisticsResponse:
        workouts = WorkoutStore(db).list_for_user(user_id)
        return StatisticsResponse(
            user_id=user_id,
            minutes_spent=sum(w.duration for w in workouts),
            longest_activity=max((w.duration for w in workouts), default=0),
        )

    def profile(self, db: Session, username: str) -> ProfileResponse:
        """Public view of a user. Private users hide everything but their name."""
        try:
            user = UserStore(db).get_by_username(username)
        except UserNotFound:
            raise NotFound("user not found") from None

        if user.is_private:
            return ProfileResponse(id=user.id, username=user.username, name=user.name, is_private=True)

        today = date.today()
        week = WorkoutStore(db).list_for_user(user.id, today - timedelta(days=WEEK_DAYS - 1), today)
        return ProfileResponse(
            id=user.id,
            username=user.username,
            name=user.name,
            is_private=False,
            avatar_url=user.avatar_url,
            week_activity=[WorkoutResponse.from_workout(w) for w in week],
        )
