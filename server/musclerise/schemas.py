"""
Pydantic schemas for the HTTP API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from musclerise.records import AdminSettings, User


class PingResponse(BaseModel):
    message: str


class UserResponse(BaseModel):
    id: str
    username: str
    name: Optional[str] = None
    weightKg: float
    heightCm: float
    musclesLevel: int
    coins: int
    avatarUrl: Optional[str] = None

    @classmethod
    def from_record(cls, user: User) -> "UserResponse":
        return cls(**user.model_dump(include=set(cls.model_fields)))


class ListUsersResponse(BaseModel):
    users: list[UserResponse]


class AdminSettingsResponse(BaseModel):
    lastUpdated: datetime
    lastLoginAt: Optional[datetime] = None
    globalMuscleBoostEnabled: bool
    migratedAt: Optional[datetime] = None

    @classmethod
    def from_record(cls, admin: AdminSettings) -> "AdminSettingsResponse":
        return cls(**admin.model_dump(include=set(cls.model_fields)))


class UpdateAdminSettingsRequest(BaseModel):
    globalMuscleBoostEnabled: Optional[bool] = None


class StorageStatusResponse(BaseModel):
    mode: str
    remoteConfigured: bool
    users: int
    adminRecords: int
