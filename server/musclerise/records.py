"""
Record types persisted by every backend.

Field names are camelCase because that is how the records are stored in
both the JSON files and the remote collections. The models accept exactly
what the application writes, so anything else is treated as corrupt.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from musclerise.errors import Corrupt


class StoredModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class DailyHistoryEntry(StoredModel):
    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    calories: float = Field(..., ge=0)
    exercisesCompleted: int = Field(..., ge=0)


class PlanExercise(StoredModel):
    id: str
    name: str
    caloriesPerRep: float = Field(..., ge=0)
    targetReps: int = Field(..., ge=0)
    completedReps: int = Field(..., ge=0)


class WorkoutPlan(StoredModel):
    id: str
    name: str
    exercises: list[PlanExercise] = Field(default_factory=list)


class WorkoutDay(StoredModel):
    """Workout state recorded for one calendar day."""

    planId: str
    plans: list[WorkoutPlan] = Field(default_factory=list)


class SelectedExercise(StoredModel):
    exerciseName: str
    category: str
    reps: int = Field(..., ge=0)
    dateAdded: datetime
    timesUsed: Optional[int] = Field(default=None, ge=0)
    lastUsed: Optional[datetime] = None


class User(StoredModel):
    id: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    passwordHash: Optional[str] = None
    weightKg: float = Field(..., gt=0)
    heightCm: float = Field(..., gt=0)
    avatarUrl: Optional[str] = None
    musclesLevel: int = Field(default=1, ge=1)
    coins: int = Field(default=0, ge=0)
    name: Optional[str] = None
    # Free-form entries authored by the client.
    customExercises: Optional[list[Any]] = None
    todayCalories: Optional[float] = Field(default=None, ge=0)
    todayExercises: Optional[int] = Field(default=None, ge=0)
    planId: Optional[str] = None

    themeSkin: Optional[str] = None
    themeUnlockedSkins: Optional[list[str]] = None
    themeOutfitsUnlocked: Optional[list[str]] = None
    themePrimaryChoicesOwned: Optional[list[str]] = None
    themeWhiteThemeEnabled: Optional[bool] = None
    themeMuscleBoostEnabled: Optional[bool] = None
    customPrimaryColor: Optional[str] = None
    customPlanName: Optional[str] = None

    dailyHistory: Optional[list[DailyHistoryEntry]] = None
    # Keyed by YYYY-MM-DD.
    dateWorkoutDataMap: Optional[dict[str, WorkoutDay]] = None
    selectedExercises: Optional[list[SelectedExercise]] = None

    passwordChangedAt: Optional[datetime] = None
    lastLoginAt: Optional[datetime] = None
    loginAttempts: Optional[int] = Field(default=None, ge=0)
    accountLockedUntil: Optional[datetime] = None


class AdminSettings(StoredModel):
    lastUpdated: datetime
    lastLoginAt: Optional[datetime] = None
    globalMuscleBoostEnabled: bool = False
    # Written only by the migration tool.
    migratedAt: Optional[datetime] = None

    passwordHash: Optional[str] = None
    loginAttempts: Optional[int] = Field(default=None, ge=0)
    passwordStrength: Optional[int] = Field(default=None, ge=0)


def username_key(username: str) -> str:
    """Usernames are unique and looked up without regard to case."""
    return username.casefold()


def decode_user(raw: Any) -> User:
    try:
        return User.model_validate(raw)
    except ValidationError as exc:
        raise Corrupt(f"invalid user record: {exc}") from exc


def decode_admin(raw: Any) -> AdminSettings:
    try:
        return AdminSettings.model_validate(raw)
    except ValidationError as exc:
        raise Corrupt(f"invalid admin settings record: {exc}") from exc


def encode(record: BaseModel) -> dict:
    return record.model_dump(mode="json")


def check_unique_users(users: Iterable[User]) -> None:
    """Raise ``Corrupt`` if two users share an id or a username."""
    ids: set[str] = set()
    usernames: set[str] = set()
    for user in users:
        key = username_key(user.username)
        if user.id in ids:
            raise Corrupt(f"duplicate user id {user.id!r}")
        if key in usernames:
            raise Corrupt(f"duplicate username {user.username!r}")
        ids.add(user.id)
        usernames.add(key)
