"""
Connection diagnostics for the remote store.

Answers the questions operators ask when MongoDB is misbehaving: is the
connection string well formed, do its hosts resolve, which transport
profile (if any) can reach the server, and has a migration already run.
"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional

from musclerise.config import Settings
from musclerise.errors import StoreError
from musclerise.mongo_store import MongoRecordStore, redact_endpoint, split_endpoint
from musclerise.store import ADMIN_SETTINGS_KEY, EntityKind, RecordStore

logger = logging.getLogger(__name__)

PROBE_PROFILES = (
    ("default", {}),
    (
        "allow invalid certificates",
        {"use_encrypted_transport": True, "allow_weak_certificate_validation": True},
    ),
    ("extended timeouts", {"connect_timeout_ms": 30000, "operation_timeout_ms": 30000}),
)


@dataclass(frozen=True)
class EndpointReport:
    redacted: str
    hosts: list[str]
    is_srv: bool
    has_placeholder: bool
    password_embedded: bool


@dataclass(frozen=True)
class ProbeResult:
    profile: str
    ok: bool
    error_class: Optional[str] = None
    error: Optional[str] = None


def inspect_endpoint(uri: str) -> EndpointReport:
    hosts, is_srv = split_endpoint(uri)
    credentials = uri.partition("://")[2].rpartition("@")[0]
    return EndpointReport(
        redacted=redact_endpoint(uri),
        hosts=hosts,
        is_srv=is_srv,
        has_placeholder="<" in uri or ">" in uri,
        password_embedded=bool(credentials.partition(":")[2]),
    )


def resolve_hosts(hosts: Iterable[str]) -> dict[str, Optional[str]]:
    """Resolve each host; maps host to ``None`` on success or the error text."""
    results: dict[str, Optional[str]] = {}
    for host in hosts:
        try:
            socket.getaddrinfo(host, None)
        except OSError as exc:
            results[host] = str(exc)
        else:
            results[host] = None
    return results


def probe_tls_profiles(
    settings: Settings,
    store_factory: Callable[..., MongoRecordStore] = MongoRecordStore,
) -> list[ProbeResult]:
    """Ping the server once per transport profile and report what worked."""
    base = {
        "use_encrypted_transport": settings.mongo_tls,
        "allow_weak_certificate_validation": False,
        "connect_timeout_ms": settings.mongo_connect_timeout_ms,
        "operation_timeout_ms": settings.mongo_operation_timeout_ms,
    }
    results = []
    for name, overrides in PROBE_PROFILES:
        options = {**base, **overrides}
        store = store_factory(settings.mongo_uri, settings.db_name, **options)
        try:
            store.ping()
        except StoreError as exc:
            logger.info("Profile %r failed: %s", name, exc)
            results.append(
                ProbeResult(name, False, error_class=type(exc).__name__, error=str(exc))
            )
        else:
            logger.info("Profile %r connected", name)
            results.append(ProbeResult(name, True))
        finally:
            store.close()
    return results


def migration_stamp(store: RecordStore) -> Optional[datetime]:
    """Return when the admin record was last written by a migration, if ever."""
    admin = store.get(EntityKind.ADMIN, ADMIN_SETTINGS_KEY)
    return admin.migratedAt if admin is not None else None
