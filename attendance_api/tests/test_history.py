"""
Tests for attendance history (role scoping, filters, pagination)
"""
from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi import status

from attendance_api.core.errors import ForbiddenError, ValidationFailedError
from attendance_api.core.security import create_access_token
from attendance_api.models.attendance_session import WorkLocation
from attendance_api.repositories.attendance_repository import SqlAlchemyAttendanceRepository
from attendance_api.services.attendance_query_service import (
    HistoryFilter,
    build_criteria,
    preset_range,
    resolve_scope,
    RoleScope,
    search,
)

KTM = timezone(timedelta(hours=5, minutes=45))


def local(year, month, day, hour=0, minute=0, second=0):
    """Aware datetime on the Kathmandu wall clock"""
    return datetime(year, month, day, hour, minute, second, tzinfo=KTM)


def auth_headers(user):
    """Helper to build a bearer header for user"""
    token = create_access_token({"sub": user.id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def repo(db):
    return SqlAlchemyAttendanceRepository(db)


@pytest.fixture
def seeded(db, staff_user, other_staff_user, policy, make_session):
    """Sessions for two staff users across early March 2026"""
    sessions = {
        "s1_office": make_session(
            staff_user, local(2026, 3, 2, 9, 0), check_out_time=local(2026, 3, 2, 17, 0),
        ),
        "s1_remote": make_session(
            staff_user, local(2026, 3, 3, 9, 0),
            check_out_time=local(2026, 3, 3, 17, 0), work_location=WorkLocation.REMOTE,
        ),
        "s1_office_late": make_session(
            staff_user, local(2026, 3, 4, 9, 45), check_out_time=local(2026, 3, 4, 18, 0),
        ),
        "s2_office": make_session(
            other_staff_user, local(2026, 3, 3, 8, 30),
            check_out_time=local(2026, 3, 3, 23, 59), auto=True,
        ),
        "s1_outside": make_session(
            staff_user, local(2026, 2, 20, 9, 0), check_out_time=local(2026, 2, 20, 17, 0),
        ),
    }
    return sessions


def test_role_scopes():
    assert resolve_scope("STAFF") == RoleScope.SELF
    assert resolve_scope("FINANCE") == RoleScope.SELF
    assert resolve_scope("ADMIN") == RoleScope.ALL
    assert resolve_scope("PLATFORM_ADMIN") == RoleScope.ALL
    with pytest.raises(ForbiddenError):
        resolve_scope("JANITOR")


def test_date_range_and_work_location_newest_first(repo, staff_user, seeded, policy):
    flt = HistoryFilter(date_from="2026-03-01", date_to="2026-03-31", work_location="OFFICE")
    page = search(repo, "STAFF", staff_user.id, flt, 1, 20, policy)
    assert [s.id for s in page.sessions] == [seeded["s1_office_late"].id, seeded["s1_office"].id]
    assert page.total == 2


def test_staff_user_id_override_is_ignored(repo, staff_user, other_staff_user, seeded, policy):
    flt = HistoryFilter(user_id=other_staff_user.id)
    page = search(repo, "STAFF", staff_user.id, flt, 1, 20, policy)
    assert page.total == 4
    assert all(s.user_id == staff_user.id for s in page.sessions)


def test_admin_sees_all_or_selected_user(repo, admin_user, other_staff_user, seeded, policy):
    everyone = search(repo, "ADMIN", admin_user.id, HistoryFilter(), 1, 20, policy)
    assert everyone.total == 5
    one = search(repo, "ADMIN", admin_user.id, HistoryFilter(user_id=other_staff_user.id), 1, 20, policy)
    assert [s.id for s in one.sessions] == [seeded["s2_office"].id]


def test_status_filter_is_or_of_values(repo, admin_user, seeded, policy):
    flt = HistoryFilter(status="AUTO_CHECKED_OUT, CHECKED_IN")
    page = search(repo, "ADMIN", admin_user.id, flt, 1, 20, policy)
    assert [s.id for s in page.sessions] == [seeded["s2_office"].id]


def test_multiple_work_locations(repo, staff_user, seeded, policy):
    flt = HistoryFilter(work_location="REMOTE,SITE")
    page = search(repo, "STAFF", staff_user.id, flt, 1, 20, policy)
    assert [s.id for s in page.sessions] == [seeded["s1_remote"].id]


def test_name_search_matches_name_or_email(repo, admin_user, seeded, policy):
    by_name = search(repo, "ADMIN", admin_user.id, HistoryFilter(name="ram"), 1, 20, policy)
    assert [s.id for s in by_name.sessions] == [seeded["s2_office"].id]
    by_email = search(repo, "ADMIN", admin_user.id, HistoryFilter(name="SITA@"), 1, 20, policy)
    assert by_email.total == 4


def test_name_search_treats_wildcards_literally(repo, admin_user, seeded, policy):
    page = search(repo, "ADMIN", admin_user.id, HistoryFilter(name="%"), 1, 20, policy)
    assert page.total == 0


def test_date_preset_takes_precedence(repo, staff_user, seeded, policy):
    flt = HistoryFilter(date_preset="2026-02", date_from="2026-03-01")
    page = search(repo, "STAFF", staff_user.id, flt, 1, 20, policy)
    assert [s.id for s in page.sessions] == [seeded["s1_outside"].id]


def test_pagination_45_rows_limit_20(repo, db, staff_user, policy, make_session):
    start = local(2026, 1, 1, 9, 0)
    for i in range(45):
        make_session(
            staff_user, start + timedelta(days=i),
            check_out_time=start + timedelta(days=i, hours=8),
        )
    sizes = []
    seen = []
    for page_number in (1, 2, 3):
        page = search(repo, "STAFF", staff_user.id, HistoryFilter(), page_number, 20, policy)
        assert page.total == 45
        sizes.append(len(page.sessions))
        seen.extend(s.id for s in page.sessions)
    assert sizes == [20, 20, 5]
    assert len(set(seen)) == 45


@pytest.mark.parametrize("page,limit", [(0, 20), (1, 0), (1, 101)])
def test_invalid_paging_rejected(repo, staff_user, policy, page, limit):
    with pytest.raises(ValidationFailedError):
        search(repo, "STAFF", staff_user.id, HistoryFilter(), page, limit, policy)


@pytest.mark.parametrize(
    "flt",
    [
        HistoryFilter(work_location="MOON"),
        HistoryFilter(status="OPEN"),
        HistoryFilter(date_from="03/01/2026"),
        HistoryFilter(date_from="2026-03-05", date_to="2026-03-01"),
        HistoryFilter(date_preset="next-week"),
        HistoryFilter(date_preset="2026-13"),
    ],
)
def test_invalid_filters_rejected(staff_user, policy, flt):
    with pytest.raises(ValidationFailedError):
        build_criteria("STAFF", staff_user.id, flt, policy)


def test_preset_ranges():
    today = date(2026, 3, 4)  # Wednesday
    assert preset_range("today", today) == (today, today)
    assert preset_range("this-week", today) == (date(2026, 3, 1), date(2026, 3, 7))
    assert preset_range("this-month", today) == (date(2026, 3, 1), date(2026, 3, 31))
    assert preset_range("last-month", today) == (date(2026, 2, 1), date(2026, 2, 28))
    assert preset_range("last-month", date(2026, 1, 15)) == (date(2025, 12, 1), date(2025, 12, 31))
    assert preset_range("this-year", today) == (date(2026, 1, 1), date(2026, 12, 31))


def test_history_endpoint(client, staff_user, seeded):
    response = client.get(
        "/api/v1/attendance/history",
        params={"dateFrom": "2026-03-01", "dateTo": "2026-03-31", "workLocation": "OFFICE", "limit": 1},
        headers=auth_headers(staff_user),
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["total"] == 2
    assert data["page"] == 1
    assert data["limit"] == 1
    assert len(data["sessions"]) == 1
    session = data["sessions"][0]
    assert session["id"] == seeded["s1_office_late"].id
    assert session["user"]["email"] == "sita@example.com"
    assert session["late_minutes"] == 35


def test_history_endpoint_bad_limit_is_validation_error(client, staff_user):
    response = client.get(
        "/api/v1/attendance/history", params={"limit": 500}, headers=auth_headers(staff_user),
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["kind"] == "ValidationError"


def test_history_endpoint_unknown_role_forbidden(client, db, staff_user):
    staff_user.role = "CONTRACTOR"
    db.commit()
    response = client.get("/api/v1/attendance/history", headers=auth_headers(staff_user))
    assert response.status_code == status.HTTP_403_FORBIDDEN
