from __future__ import annotations

import datetime
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from shiftroster.api import _parse_template, create_app
from shiftroster.config import Settings
from shiftroster.database import Shift
from shiftroster.errors import ValidationError

SECRET = "api-test-signing-secret-with-enough-entropy-42"


@pytest.fixture()
def client(memory_db, org):
    settings = Settings(jwt_secret=SECRET, database_url="sqlite://")
    app = create_app(settings, engine=memory_db["engine"])
    with TestClient(app) as test_client:
        yield test_client


def _auth(client, user) -> dict:
    token = client.app.state.credentials.issue(user.id)
    return {"Authorization": token}


def _shifts_url(org, suffix: str = "shifts") -> str:
    return f"/organizations/{org.organization.id}/{suffix}"


def _body(org, **overrides) -> dict:
    body = {
        "location_id": str(org.location.id),
        "start_time": "2024-04-01T09:00:00+00:00",
        "end_time": "2024-04-01T17:00:00+00:00",
        "notes": "Desk cover",
        "rrule": "FREQ=WEEKLY;COUNT=3",
        "assigned_staff": [str(org.staff.id)],
    }
    body.update(overrides)
    return body


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_missing_and_invalid_credentials_get_the_same_401(client, org) -> None:
    expired = client.app.state.credentials.issue(
        org.admin_user.id, now=datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc)
    )
    responses = [
        client.get(_shifts_url(org)),
        client.get(_shifts_url(org), headers={"Authorization": "garbage"}),
        client.get(_shifts_url(org), headers={"Authorization": expired}),
        client.post(_shifts_url(org), json=_body(org)),
    ]

    for response in responses:
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}


def test_credential_for_unknown_user_is_rejected(client, org) -> None:
    token = client.app.state.credentials.issue(uuid.uuid4())

    response = client.get(_shifts_url(org, "my-shifts"), headers={"Authorization": token})

    assert response.status_code == 401


def test_bearer_prefix_is_accepted(client, org) -> None:
    token = client.app.state.credentials.issue(org.admin_user.id)

    response = client.get(_shifts_url(org), headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json() == []


def test_non_member_gets_403_without_data(client, org) -> None:
    response = client.get(_shifts_url(org), headers=_auth(client, org.outsider_user))

    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden"}


def test_malformed_organization_id_is_forbidden(client, org) -> None:
    response = client.get("/organizations/not-a-uuid/my-shifts", headers=_auth(client, org.staff_user))

    assert response.status_code == 403


def test_staff_cannot_read_admin_roster_or_create_shifts(client, org) -> None:
    headers = _auth(client, org.staff_user)

    assert client.get(_shifts_url(org), headers=headers).status_code == 403
    assert client.post(_shifts_url(org), json=_body(org), headers=headers).status_code == 403


def test_membership_endpoint_reports_capability(client, org) -> None:
    admin = client.get(_shifts_url(org, "me"), headers=_auth(client, org.admin_user)).json()
    staff = client.get(_shifts_url(org, "me"), headers=_auth(client, org.staff_user)).json()

    assert admin["capability"] == "admin"
    assert admin["title"] == "Manager"
    assert staff["capability"] == "member"
    assert staff["staff_id"] == str(org.staff.id)


def test_admin_creates_series_and_reads_roster(client, org) -> None:
    headers = _auth(client, org.admin_user)

    response = client.post(_shifts_url(org), json=_body(org), headers=headers)

    assert response.status_code == 200
    assert response.json()["message"] == "Successfully created 3 shifts"
    assert len(response.json()["shift_ids"]) == 3

    roster = client.get(_shifts_url(org), headers=headers).json()
    assert [item["start"] for item in roster] == [
        "2024-04-01T09:00:00+00:00",
        "2024-04-08T09:00:00+00:00",
        "2024-04-15T09:00:00+00:00",
    ]
    assert all(item["assigned"][0]["staff_id"] == str(org.staff.id) for item in roster)
    assert all(item["color"] for item in roster)

    windowed = client.get(
        _shifts_url(org),
        params={"start": "2024-04-07T00:00:00+00:00", "end": "2024-04-09T00:00:00+00:00"},
        headers=headers,
    ).json()
    assert len(windowed) == 1


def test_my_shifts_only_returns_the_callers_assignments(client, org) -> None:
    admin_headers = _auth(client, org.admin_user)
    client.post(_shifts_url(org), json=_body(org, rrule=None), headers=admin_headers)
    client.post(
        _shifts_url(org),
        json=_body(org, rrule=None, assigned_staff=[str(org.second.id)], start_time="2024-04-02T09:00:00+00:00", end_time="2024-04-02T12:00:00+00:00"),
        headers=admin_headers,
    )

    mine = client.get(_shifts_url(org, "my-shifts"), headers=_auth(client, org.staff_user)).json()
    admin_own = client.get(_shifts_url(org, "my-shifts"), headers=admin_headers).json()

    assert len(mine) == 1
    assert mine[0]["title"] == "Front Desk"
    assert "assigned" not in mine[0]
    assert admin_own == []


def test_conflicting_request_returns_409_and_creates_nothing(client, org, memory_db) -> None:
    headers = _auth(client, org.admin_user)
    first = client.post(_shifts_url(org), json=_body(org, rrule=None), headers=headers)
    assert first.status_code == 200

    response = client.post(
        _shifts_url(org),
        json=_body(org, rrule=None, start_time="2024-04-01T10:00:00+00:00", end_time="2024-04-01T18:00:00+00:00"),
        headers=headers,
    )

    assert response.status_code == 409
    assert response.json()["staff_id"] == str(org.staff.id)
    assert response.json()["shift_id"] == first.json()["shift_ids"][0]
    with memory_db["session_factory"]() as check:
        assert check.scalar(select(func.count()).select_from(Shift)) == 1


@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"rrule": "FREQ=SOMETIMES"}, "rrule"),
        ({"assigned_staff": [str(uuid.uuid4())]}, "assigned_staff"),
        ({"assigned_staff": ["not-a-uuid"]}, "assigned_staff"),
        ({"end_time": "2024-04-01T08:00:00+00:00"}, "end_time"),
        ({"start_time": "2024-04-01T09:00:00"}, "start_time"),
        ({"location_id": "nowhere"}, "location_id"),
    ],
)
def test_invalid_requests_return_400_naming_the_field(client, org, overrides, field) -> None:
    response = client.post(_shifts_url(org), json=_body(org, **overrides), headers=_auth(client, org.admin_user))

    assert response.status_code == 400
    assert response.json()["field"] == field


def test_non_object_body_is_a_400(client, org) -> None:
    response = client.post(_shifts_url(org), json=["nope"], headers=_auth(client, org.admin_user))

    assert response.status_code == 400
    assert response.json()["field"] == "body"


def test_compact_utc_offsets_are_accepted(client, org) -> None:
    headers = _auth(client, org.admin_user)

    response = client.post(
        _shifts_url(org),
        json=_body(org, rrule=None, start_time="2024-04-01T09:00:00+0000", end_time="2024-04-01T17:00:00Z"),
        headers=headers,
    )

    assert response.status_code == 200
    roster = client.get(_shifts_url(org), params={"start": "2024-04-01T00:00:00+0000"}, headers=headers).json()
    assert [item["start"] for item in roster] == ["2024-04-01T09:00:00+00:00"]


def test_unparseable_window_names_the_query_field(client, org) -> None:
    response = client.get(_shifts_url(org), params={"start": "next tuesday"}, headers=_auth(client, org.admin_user))

    assert response.status_code == 400
    assert response.json()["field"] == "start"


def test_template_parser_rejects_non_object_payload() -> None:
    with pytest.raises(ValidationError) as excinfo:
        _parse_template(uuid.uuid4(), ["nope"])

    assert excinfo.value.field == "body"
