"""
HTTP routes over the record store.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query

from musclerise.dependencies import get_record_store
from musclerise.failover import FailoverRecordStore
from musclerise.records import AdminSettings
from musclerise.schemas import (
    AdminSettingsResponse,
    ListUsersResponse,
    PingResponse,
    StorageStatusResponse,
    UpdateAdminSettingsRequest,
    UserResponse,
)
from musclerise.store import ADMIN_SETTINGS_KEY, EntityKind

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/ping", response_model=PingResponse)
def ping():
    return PingResponse(message="pong")


@router.get("/users", response_model=ListUsersResponse)
def list_users(
    limit: int = Query(100, ge=1, le=1000),
    store: FailoverRecordStore = Depends(get_record_store),
):
    """
    Leaderboard view: richest users first, muscle level breaking ties.
    """
    users = store.list(EntityKind.USER)
    users.sort(key=lambda user: (user.coins, user.musclesLevel), reverse=True)
    return ListUsersResponse(users=[UserResponse.from_record(u) for u in users[:limit]])


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(user_id: str, store: FailoverRecordStore = Depends(get_record_store)):
    user = store.get(EntityKind.USER, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User does not exist")
    return UserResponse.from_record(user)


@router.get("/admin/settings", response_model=AdminSettingsResponse)
def get_admin_settings(store: FailoverRecordStore = Depends(get_record_store)):
    admin = store.get(EntityKind.ADMIN, ADMIN_SETTINGS_KEY)
    if admin is None:
        raise HTTPException(status_code=404, detail="Admin settings do not exist")
    return AdminSettingsResponse.from_record(admin)


@router.put("/admin/settings", response_model=AdminSettingsResponse)
def update_admin_settings(
    payload: UpdateAdminSettingsRequest,
    store: FailoverRecordStore = Depends(get_record_store),
):
    updates = payload.model_dump(exclude_none=True)
    updates["lastUpdated"] = datetime.now(timezone.utc)
    current = store.get(EntityKind.ADMIN, ADMIN_SETTINGS_KEY)
    if current is None:
        admin = AdminSettings(**updates)
    else:
        admin = current.model_copy(update=updates)
    store.put(EntityKind.ADMIN, admin)
    logger.info("Admin settings updated: %s", sorted(updates))
    return AdminSettingsResponse.from_record(admin)


@router.get("/storage/status", response_model=StorageStatusResponse)
def storage_status(store: FailoverRecordStore = Depends(get_record_store)):
    return StorageStatusResponse(
        mode=store.mode.value,
        remoteConfigured=store.remote is not None,
        users=store.count(EntityKind.USER),
        adminRecords=store.count(EntityKind.ADMIN),
    )
