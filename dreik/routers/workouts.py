"""Workout, activity and public profile endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from dreik.database import get_db
from dreik.dependencies import CurrentUser, get_current_user, get_workout_service
from dreik.schemas.auth import MessageResponse
from dreik.schemas.workout import (
    ActivityHistoryResponse,
    CreateWorkoutRequest,
    ProfileResponse,
    StatisticsResponse,
    WorkoutResponse,
)
from dreik.services.workout import WorkoutService

router = APIRouter(prefix="/api", tags=["activity"])


@router.post("/workout", response_model=WorkoutResponse, status_code=201)
def create_workout(
    body: CreateWorkoutRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    workouts: WorkoutService = Depends(get_workout_service),
) -> WorkoutResponse:
    """Record a past workout session."""
    workout = workouts.create_workout(db, user.user_id, body.date, body.duration, body.kind)
    return WorkoutResponse.from_workout(workout)


@router.delete("/workout/{workout_id}", response_model=MessageResponse)
def delete_workout(
    workout_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    workouts: WorkoutService = Depends(get_workout_service),
) -> MessageResponse:
    """Delete one of the caller's workouts."""
    workouts.delete_workout(db, user.user_id, workout_id)
    return MessageResponse(message="workout deleted")


@router.get("/activity", response_model=ActivityHistoryResponse)
def get_activity_history(
    begin: str | None = None,
    end: str | None = None,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    workouts: WorkoutService = Depends(get_workout_service),
) -> ActivityHistoryResponse:
    """Workout history between two DD-MM-YYYY dates."""
    return workouts.activity_history(db, user.user_id, begin, end)


@router.get("/statistics", response_model=StatisticsResponse)
def get_statistics(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    workouts: WorkoutService = Depends(get_workout_service),
) -> StatisticsResponse:
    return workouts.statistics(db, user.user_id)


@router.get("/user/{username}", response_model=ProfileResponse, response_model_exclude_none=True)
def get_user_profile(
    username: str,
    db: Session = Depends(get_db),
    workouts: WorkoutService = Depends(get_workout_service),
) -> ProfileResponse:
    """Public profile with the last week of activity, unless the user is private."""
    return workouts.profile(db, username)
