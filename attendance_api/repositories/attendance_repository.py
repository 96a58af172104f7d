"""
Attendance persistence: the repository interface the services depend on, and its SQLAlchemy implementation.

Write methods never hold locks across calls. The two race-sensitive primitives are:
- create_if_absent: insert guarded by the unique open_slot column (one open session per user per day)
- conditional_update: UPDATE ... WHERE id = :id AND status = :expected AND check_out_time IS NULL
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session, joinedload

from attendance_api.models.attendance_session import (
    AttendanceEvent,
    AttendanceLocation,
    AttendanceSession,
    SessionStatus,
)
from attendance_api.models.user import User

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionCriteria:
    """Store-level predicate for history/export reads. All fields optional, combined with AND."""
    user_id: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    work_locations: Tuple[str, ...] = ()
    statuses: Tuple[str, ...] = ()
    search: Optional[str] = None


class AttendanceRepository(ABC):
    """Persistence operations used by the attendance services."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[AttendanceSession]:
        raise NotImplementedError

    @abstractmethod
    def find_open_for_day(self, user_id: str, day: date) -> Optional[AttendanceSession]:
        raise NotImplementedError

    @abstractmethod
    def list_for_day(self, user_id: str, day: date) -> List[AttendanceSession]:
        raise NotImplementedError

    @abstractmethod
    def create_if_absent(self, session: AttendanceSession) -> bool:
        """Insert session unless an open one exists for its (user_id, date). Returns False on conflict."""
        raise NotImplementedError

    @abstractmethod
    def conditional_update(
        self,
        session_id: str,
        expected_status: SessionStatus,
        patch: Dict[str, Any],
    ) -> bool:
        """Apply patch only if the session is still open in expected_status. Returns False when zero rows matched."""
        raise NotImplementedError

    @abstractmethod
    def find_open_through(self, last_day: date) -> List[AttendanceSession]:
        """Open sessions whose date is on or before last_day."""
        raise NotImplementedError

    @abstractmethod
    def find_many(self, criteria: SessionCriteria, page: int, limit: int) -> List[AttendanceSession]:
        raise NotImplementedError

    @abstractmethod
    def count(self, criteria: SessionCriteria) -> int:
        raise NotImplementedError

    @abstractmethod
    def iter_batches(self, criteria: SessionCriteria, batch_size: int) -> Iterator[List[AttendanceSession]]:
        raise NotImplementedError

    @abstractmethod
    def add_location(self, location: AttendanceLocation) -> AttendanceLocation:
        raise NotImplementedError

    @abstractmethod
    def latest_location(self, session_id: str) -> Optional[AttendanceLocation]:
        raise NotImplementedError

    @abstractmethod
    def add_event(self, event: AttendanceEvent) -> AttendanceEvent:
        raise NotImplementedError

    @abstractmethod
    def commit(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def rollback(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def refresh(self, obj: Any) -> None:
        raise NotImplementedError


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlAlchemyAttendanceRepository(AttendanceRepository):
    """AttendanceRepository over a SQLAlchemy Session (PostgreSQL in production, SQLite in tests)."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, session_id: str) -> Optional[AttendanceSession]:
        return (
            self.db.query(AttendanceSession)
            .options(joinedload(AttendanceSession.user))
            .filter(AttendanceSession.id == session_id)
            .first()
        )

    def find_open_for_day(self, user_id: str, day: date) -> Optional[AttendanceSession]:
        return (
            self.db.query(AttendanceSession)
            .filter(
                AttendanceSession.user_id == user_id,
                AttendanceSession.date == day,
                AttendanceSession.check_out_time.is_(None),
            )
            .order_by(AttendanceSession.check_in_time.desc())
            .first()
        )

    def list_for_day(self, user_id: str, day: date) -> List[AttendanceSession]:
        return (
            self.db.query(AttendanceSession)
            .filter(
                AttendanceSession.user_id == user_id,
                AttendanceSession.date == day,
            )
            .order_by(AttendanceSession.check_in_time.desc())
            .all()
        )

    def create_if_absent(self, session: AttendanceSession) -> bool:
        slot, user_id, day = session.open_slot, session.user_id, session.date
        self.db.add(session)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            # only the open_slot unique key means "already open"; FK and other violations propagate
            taken = (
                slot is not None
                and self.db.query(AttendanceSession.id).filter(AttendanceSession.open_slot == slot).first() is not None
            )
            if not taken:
                raise
            _log.info("create_if_absent conflict: user_id=%s date=%s", user_id, day)
            return False
        return True

    def conditional_update(
        self,
        session_id: str,
        expected_status: SessionStatus,
        patch: Dict[str, Any],
    ) -> bool:
        affected = (
            self.db.query(AttendanceSession)
            .filter(
                AttendanceSession.id == session_id,
                AttendanceSession.status == expected_status.value,
                AttendanceSession.check_out_time.is_(None),
            )
            .update(patch, synchronize_session=False)
        )
        _log.debug("conditional_update: session_id=%s affected=%s", session_id, affected)
        return affected == 1

    def find_open_through(self, last_day: date) -> List[AttendanceSession]:
        return (
            self.db.query(AttendanceSession)
            .filter(
                AttendanceSession.check_out_time.is_(None),
                AttendanceSession.date <= last_day,
            )
            .order_by(AttendanceSession.date, AttendanceSession.check_in_time)
            .all()
        )

    def _filtered(self, criteria: SessionCriteria, eager: bool = True) -> Query:
        query = self.db.query(AttendanceSession)
        if eager:
            query = query.options(joinedload(AttendanceSession.user))
        if criteria.user_id is not None:
            query = query.filter(AttendanceSession.user_id == criteria.user_id)
        if criteria.date_from is not None:
            query = query.filter(AttendanceSession.date >= criteria.date_from)
        if criteria.date_to is not None:
            query = query.filter(AttendanceSession.date <= criteria.date_to)
        if criteria.work_locations:
            query = query.filter(AttendanceSession.work_location.in_(criteria.work_locations))
        if criteria.statuses:
            query = query.filter(AttendanceSession.status.in_(criteria.statuses))
        if criteria.search:
            pattern = f"%{_escape_like(criteria.search)}%"
            query = query.join(User, AttendanceSession.user_id == User.id).filter(
                or_(
                    User.name.ilike(pattern, escape="\\"),
                    User.email.ilike(pattern, escape="\\"),
                )
            )
        return query

    def find_many(self, criteria: SessionCriteria, page: int, limit: int) -> List[AttendanceSession]:
        return (
            self._filtered(criteria)
            .order_by(AttendanceSession.check_in_time.desc(), AttendanceSession.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

    def count(self, criteria: SessionCriteria) -> int:
        return self._filtered(criteria, eager=False).count()

    def iter_batches(self, criteria: SessionCriteria, batch_size: int) -> Iterator[List[AttendanceSession]]:
        """Keyset pagination on (check_in_time DESC, id DESC); each batch is a separate query."""
        last: Optional[Tuple[datetime, str]] = None
        while True:
            query = self._filtered(criteria)
            if last is not None:
                last_time, last_id = last
                query = query.filter(
                    or_(
                        AttendanceSession.check_in_time < last_time,
                        and_(
                            AttendanceSession.check_in_time == last_time,
                            AttendanceSession.id < last_id,
                        ),
                    )
                )
            batch = (
                query.order_by(AttendanceSession.check_in_time.desc(), AttendanceSession.id.desc())
                .limit(batch_size)
                .all()
            )
            if not batch:
                return
            yield batch
            if len(batch) < batch_size:
                return
            last = (batch[-1].check_in_time, batch[-1].id)

    def add_location(self, location: AttendanceLocation) -> AttendanceLocation:
        self.db.add(location)
        self.db.flush()
        return location

    def latest_location(self, session_id: str) -> Optional[AttendanceLocation]:
        return (
            self.db.query(AttendanceLocation)
            .filter(AttendanceLocation.session_id == session_id)
            .order_by(AttendanceLocation.timestamp.desc(), AttendanceLocation.id.desc())
            .first()
        )

    def add_event(self, event: AttendanceEvent) -> AttendanceEvent:
        self.db.add(event)
        self.db.flush()
        return event

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def refresh(self, obj: Any) -> None:
        self.db.refresh(obj)
