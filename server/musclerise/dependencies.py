"""
Store construction and lifecycle.

Stores are built explicitly from settings and closed on exit; the app
holds its store on ``app.state`` for the lifetime of the process.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import Request

from musclerise.config import PersistenceMode, Settings, get_settings
from musclerise.failover import FailoverRecordStore
from musclerise.json_store import JsonFileRecordStore
from musclerise.mongo_store import MongoRecordStore

logger = logging.getLogger(__name__)


def build_record_store(settings: Settings) -> FailoverRecordStore:
    local = JsonFileRecordStore(settings.data_dir)
    remote = None
    mode = settings.persistence_mode
    if mode is PersistenceMode.REMOTE:
        remote = MongoRecordStore.from_settings(settings)
    elif settings.enable_mongodb:
        logger.warning(
            "ENABLE_MONGODB is set but MONGO_URI or DB_NAME is missing; "
            "using JSON files only"
        )
    logger.info("Persistence mode: %s (data dir %s)", mode.value, settings.data_dir)
    return FailoverRecordStore(local, remote, mode)


@contextmanager
def open_record_store(
    settings: Optional[Settings] = None,
) -> Iterator[FailoverRecordStore]:
    store = build_record_store(settings or get_settings())
    try:
        yield store
    finally:
        store.close()


@contextmanager
def open_backends(
    settings: Optional[Settings] = None,
) -> Iterator[tuple[JsonFileRecordStore, Optional[MongoRecordStore]]]:
    """
    Yield the JSON store and, when a remote endpoint is configured, the
    Mongo store, without any failover between them. Used by the operator
    tools, which must address both stores whatever the persistence mode.
    """
    settings = settings or get_settings()
    local = JsonFileRecordStore(settings.data_dir)
    remote = None
    if settings.remote_configured:
        remote = MongoRecordStore.from_settings(settings)
    try:
        yield local, remote
    finally:
        if remote is not None:
            remote.close()


def get_record_store(request: Request) -> FailoverRecordStore:
    return request.app.state.record_store
