"""Persistence adapter for entitlement records.

The only write path is `update`, an atomic read-modify-write per user id.
Two requests for the same user (same or different provider) are serialized:
in-process by a per-user lock, across processes by a row lock
(SELECT ... FOR UPDATE) inside a single transaction. Without that, the later
write can silently drop a logically newer update.
"""

import logging
import threading
import weakref
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from entitlement_gateway.core.clock import Clock, utc_now
from entitlement_gateway.core.errors import PersistenceError
from entitlement_gateway.models.profile import Profile
from entitlement_gateway.schemas.entitlement import EntitlementRecord

logger = logging.getLogger(__name__)

RecordUpdate = Callable[[EntitlementRecord | None], EntitlementRecord]


class _KeyLock:
    __slots__ = ("lock", "__weakref__")

    def __init__(self):
        self.lock = threading.Lock()


class KeyedLocks:
    """One lock per key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[str, _KeyLock]" = weakref.WeakValueDictionary()

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = _KeyLock()
                self._locks[key] = entry
        with entry.lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


def _to_record(row: Profile) -> EntitlementRecord:
    return EntitlementRecord(
        user_id=row.id,
        is_entitled=bool(row.is_entitled),
        renewal_at=row.renewal_at,
        billing_customer_ref=row.billing_customer_ref,
        last_event_at=row.last_event_at,
    )


class ProfileStore:
    def __init__(
        self,
        session_factory: sessionmaker,
        locks: KeyedLocks | None = None,
        clock: Clock = utc_now,
    ):
        self._session_factory = session_factory
        self._locks = locks or KeyedLocks()
        self._clock = clock

    def get(self, user_id: str) -> EntitlementRecord | None:
        try:
            with self._session_factory() as db:
                row = db.get(Profile, user_id)
                return _to_record(row) if row else None
        except SQLAlchemyError as exc:
            logger.error("Profile read failed for user=%s: %s", user_id, exc.__class__.__name__)
            raise PersistenceError("profile store read failed") from exc

    def update(
        self, user_id: str, mutate: RecordUpdate
    ) -> tuple[EntitlementRecord | None, EntitlementRecord]:
        """
        Run `mutate(current)` and persist its result as one atomic step.
        Returns (before, after). Nothing is written when after == before.
        """
        with self._locks.hold(user_id):
            try:
                return self._update_once(user_id, mutate)
            except IntegrityError:
                # another process inserted the first row; it exists and is lockable now
                logger.info("Concurrent first write for user=%s, retrying", user_id)
            except SQLAlchemyError as exc:
                logger.error("Profile write failed for user=%s: %s", user_id, exc.__class__.__name__)
                raise PersistenceError("profile store write failed") from exc

            try:
                return self._update_once(user_id, mutate)
            except SQLAlchemyError as exc:
                logger.error("Profile write failed for user=%s: %s", user_id, exc.__class__.__name__)
                raise PersistenceError("profile store write failed") from exc

    def _update_once(
        self, user_id: str, mutate: RecordUpdate
    ) -> tuple[EntitlementRecord | None, EntitlementRecord]:
        with self._session_factory() as db, db.begin():
            row = self._select_for_update(db, user_id)
            before = _to_record(row) if row else None
            after = mutate(before)
            if after == before:
                return before, after

            if row is None:
                row = Profile(id=user_id)
                db.add(row)
            row.is_entitled = after.is_entitled
            row.renewal_at = after.renewal_at
            row.billing_customer_ref = after.billing_customer_ref
            row.last_event_at = after.last_event_at
            row.updated_at = self._clock()
        return before, after

    @staticmethod
    def _select_for_update(db: Session, user_id: str) -> Profile | None:
        stmt = select(Profile).where(Profile.id == user_id).with_for_update()
        return db.execute(stmt).scalar_one_or_none()
