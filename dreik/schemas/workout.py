"""Pydantic schemas for workout and activity endpoints."""

from pydantic import BaseModel, Field

from dreik.models.workout import Workout

DATE_FORMAT = "%d-%m-%Y"


class CreateWorkoutRequest(BaseModel):
    date: str = Field(description="DD-MM-YYYY")
    duration: int = Field(gt=0, description="Minutes")
    kind: str = Field(min_length=1)


class WorkoutResponse(BaseModel):
    id: str
    date: str
    duration: int
    kind: str

    @classmethod
    def from_workout(cls, workout: Workout) -> "WorkoutResponse":
        return cls(
            id=workout.id,
            date=workout.date.strftime(DATE_FORMAT),
            duration=workout.duration,
            kind=workout.kind,
        )


class ActivityHistoryResponse(BaseModel):
    user_id: str
    count: int
    workouts: list[WorkoutResponse]


class StatisticsResponse(BaseModel):
    user_id: str
    minutes_spent: int
    longest_activity: int


class ProfileResponse(BaseModel):
    """Public profile. Private users expose only id, username, name and is_private."""

    id: str
    username: str
    name: str
    is_private: bool
    avatar_url: str | None = None
    week_activity: list[WorkoutResponse] | None = None
