"""
Tests for the SQLAlchemy attendance repository race primitives
"""
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from attendance_api.models.attendance_session import AttendanceSession, SessionStatus, open_slot_key
from attendance_api.repositories.attendance_repository import SessionCriteria, SqlAlchemyAttendanceRepository

KTM = timezone(timedelta(hours=5, minutes=45))


def local(year, month, day, hour=0, minute=0, second=0):
    """Aware datetime on the Kathmandu wall clock"""
    return datetime(year, month, day, hour, minute, second, tzinfo=KTM)


@pytest.fixture
def repo(db):
    return SqlAlchemyAttendanceRepository(db)


def _open(user_id, day, check_in_time):
    return AttendanceSession(
        user_id=user_id,
        date=day,
        work_location="OFFICE",
        status=SessionStatus.CHECKED_IN.value,
        flags=[],
        check_in_time=check_in_time,
        is_late=False,
        late_minutes=0,
        auto_checked_out=False,
        open_slot=open_slot_key(user_id, day),
    )


def test_create_if_absent_allows_one_open_session_per_day(repo, db, staff_user):
    day = date(2026, 3, 2)
    assert repo.create_if_absent(_open(staff_user.id, day, local(2026, 3, 2, 9, 0))) is True
    repo.commit()
    assert repo.create_if_absent(_open(staff_user.id, day, local(2026, 3, 2, 9, 1))) is False
    assert db.query(AttendanceSession).count() == 1


def test_create_if_absent_other_day_is_independent(repo, db, staff_user):
    assert repo.create_if_absent(_open(staff_user.id, date(2026, 3, 2), local(2026, 3, 2, 9, 0))) is True
    assert repo.create_if_absent(_open(staff_user.id, date(2026, 3, 3), local(2026, 3, 3, 9, 0))) is True
    repo.commit()
    assert db.query(AttendanceSession).count() == 2


def test_conditional_update_exactly_one_winner(repo, db, staff_user, policy, make_session):
    session = make_session(staff_user, local(2026, 3, 2, 9, 0))
    first = {"check_out_time": local(2026, 3, 2, 17, 0), "status": "CHECKED_OUT", "open_slot": None}
    second = {"check_out_time": local(2026, 3, 2, 23, 59), "status": "AUTO_CHECKED_OUT", "open_slot": None}

    assert repo.conditional_update(session.id, SessionStatus.CHECKED_IN, first) is True
    assert repo.conditional_update(session.id, SessionStatus.CHECKED_IN, second) is False
    repo.commit()
    assert db.get(AttendanceSession, session.id).status == "CHECKED_OUT"


def test_find_open_through_selects_open_sessions_up_to_day(repo, db, staff_user, other_staff_user, policy, make_session):
    old = make_session(staff_user, local(2026, 3, 1, 9, 0))
    make_session(other_staff_user, local(2026, 3, 2, 9, 0))
    make_session(other_staff_user, local(2026, 2, 27, 9, 0), check_out_time=local(2026, 2, 27, 17, 0))
    assert [s.id for s in repo.find_open_through(date(2026, 3, 1))] == [old.id]


def test_iter_batches_breaks_ties_by_id(repo, db, staff_user, other_staff_user, admin_user, policy, make_session):
    same_time = local(2026, 3, 2, 9, 0)
    created = [make_session(u, same_time) for u in (staff_user, other_staff_user, admin_user)]
    ids = [s.id for batch in repo.iter_batches(SessionCriteria(), 1) for s in batch]
    assert ids == sorted((s.id for s in created), reverse=True)


def test_offset_datetimes_are_stored_as_the_same_instant(db, staff_user):
    """A +05:45 value written straight through the ORM reads back as the same UTC instant"""
    at = local(2026, 3, 2, 9, 30)
    session = _open(staff_user.id, date(2026, 3, 2), at)
    session.check_out_time = local(2026, 3, 2, 18, 0)
    session.open_slot = None
    db.add(session)
    db.commit()
    db.expire_all()

    stored = db.get(AttendanceSession, session.id)
    assert stored.check_in_time == at
    assert stored.check_in_time.utcoffset() == timedelta(0)
    assert stored.check_out_time - stored.check_in_time == timedelta(hours=8, minutes=30)


def test_create_if_absent_unknown_user_is_not_a_conflict(repo, db):
    """Only the open-slot key maps to False; a foreign key violation propagates"""
    with pytest.raises(IntegrityError):
        repo.create_if_absent(_open("no-such-user", date(2026, 3, 2), local(2026, 3, 2, 9, 0)))
    assert db.query(AttendanceSession).count() == 0
