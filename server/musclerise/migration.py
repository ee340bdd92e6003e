"""
One-shot full-overwrite copy of one record store into another.

Every requested kind is read from the source and validated before the
destination is touched. Each destination kind is then replaced wholesale
(delete all, insert all). This is not a merge: run it only when the
destination should end up exactly equal to the source, and only while no
application traffic is writing to either store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence

from musclerise.errors import MigrationError, StoreError
from musclerise.store import EntityKind, Record, RecordStore, check_replacement

logger = logging.getLogger(__name__)

ALL_KINDS = (EntityKind.USER, EntityKind.ADMIN)


@dataclass
class MigrationReport:
    migrated_at: datetime
    counts: dict[EntityKind, int] = field(default_factory=dict)

    def summary(self) -> str:
        return ", ".join(f"{kind.value}={n}" for kind, n in self.counts.items())


def _read_source(
    source: RecordStore, kinds: Sequence[EntityKind], stamp: datetime
) -> dict[EntityKind, list[Record]]:
    buffered: dict[EntityKind, list[Record]] = {}
    for kind in kinds:
        records = source.list(kind)
        if kind is EntityKind.ADMIN:
            records = [r.model_copy(update={"migratedAt": stamp}) for r in records]
        check_replacement(kind, records)
        logger.info("Read %d %s record(s) from source", len(records), kind.value)
        buffered[kind] = records
    return buffered


def migrate(
    source: RecordStore,
    destination: RecordStore,
    kinds: Sequence[EntityKind] = ALL_KINDS,
    *,
    now: Optional[datetime] = None,
) -> MigrationReport:
    """Overwrite ``destination`` with the contents of ``source`` for ``kinds``."""
    if source is destination:
        raise ValueError("source and destination must be different stores")
    report = MigrationReport(migrated_at=now or datetime.now(timezone.utc))
    pending = list(kinds)

    try:
        buffered = _read_source(source, kinds, report.migrated_at)
    except (StoreError, ValueError) as exc:
        raise MigrationError(
            f"could not read source: {exc}", committed={}, pending=pending
        ) from exc

    for kind in kinds:
        try:
            migrated = destination.replace_all(kind, buffered[kind])
        except StoreError as exc:
            logger.error(
                "Migration of %s failed after committing %s: %s",
                kind.value,
                report.summary() or "nothing",
                exc,
            )
            raise MigrationError(
                f"migration of {kind.value} failed: {exc}",
                committed=dict(report.counts),
                pending=list(pending),
            ) from exc
        report.counts[kind] = migrated
        pending.remove(kind)
        logger.info("Migrated %d %s record(s)", migrated, kind.value)

    return report
