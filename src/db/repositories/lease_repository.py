"""Lease repository: which service instance runs an entity's progression chain."""

from datetime import datetime, timedelta

from sqlalchemy import delete, or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from ..schema import ProgressionLease
from ..utils import to_db_datetime


class LeaseRepository:
    """Compare-and-swap leases keyed by entity key (e.g. ``order:o1``)."""

    def __init__(self, session):
        self.session = session

    def try_acquire(
        self, entity_key: str, owner_id: str, now: datetime, ttl: timedelta
    ) -> bool:
        """Acquire or renew a lease.

        Succeeds when the lease is free, already ours, or expired.
        """
        now_db = to_db_datetime(now)
        expires_at = to_db_datetime(now + ttl)

        inserted = self.session.execute(
            sqlite_insert(ProgressionLease)
            .values(entity_key=entity_key, owner_id=owner_id, expires_at=expires_at)
            .on_conflict_do_nothing(index_elements=["entity_key"])
        )
        if inserted.rowcount == 1:
            return True

        result = self.session.execute(
            update(ProgressionLease)
            .where(
                ProgressionLease.entity_key == entity_key,
                or_(
                    ProgressionLease.owner_id == owner_id,
                    ProgressionLease.expires_at < now_db,
                ),
            )
            .values(owner_id=owner_id, expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount == 1)

    def release(self, entity_key: str, owner_id: str) -> bool:
        """Drop our lease; a lease taken over by another instance is left alone."""
        result = self.session.execute(
            delete(ProgressionLease)
            .where(
                ProgressionLease.entity_key == entity_key,
                ProgressionLease.owner_id == owner_id,
            )
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount == 1)

    def owner_of(self, entity_key: str) -> str | None:
        stmt = select(ProgressionLease.owner_id).where(
            ProgressionLease.entity_key == entity_key
        )
        return self.session.execute(stmt).scalar_one_or_none()
