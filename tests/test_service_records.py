from datetime import datetime
from decimal import Decimal

import pytest

from homeledger.core.errors import ForbiddenError, InvalidStateError
from homeledger.models.models import Connection, Notification, ServiceRecord
from homeledger.services import service_records as record_service


@pytest.fixture
def setup(create_user, create_home, create_connection):
    owner = create_user(email="owner@example.com")
    pro = create_user(email="pro@example.com", role="PRO")
    home = create_home(owner)
    connection = create_connection(
        home,
        pro,
        verified_service_count=2,
        total_spent=Decimal("1200.00"),
        last_service_date=datetime(2024, 1, 10),
    )
    return owner, pro, home, connection


def _document(client, headers, home_id, cost="250.00", service_date="2024-03-01T09:00:00"):
    return client.post(
        f"/homes/{home_id}/records",
        json={"service_type": "Plumbing", "service_date": service_date, "description": "Fixed leak", "cost": cost},
        headers=headers,
    )


def test_connected_pro_documents_unverified_record(client, db_session, setup, auth_headers):
    owner, pro, home, _ = setup
    response = _document(client, auth_headers(pro), home.id)
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "DOCUMENTED_UNVERIFIED"
    assert body["is_verified"] is False

    pending = client.get(f"/homes/{home.id}/completed-service-submissions", headers=auth_headers(owner))
    assert [r["id"] for r in pending.json()] == [body["id"]]

    notes = db_session.query(Notification).filter(Notification.user_id == owner.id).all()
    assert len(notes) == 1
    assert notes[0].payload["service_record_id"] == body["id"]


def test_unconnected_pro_cannot_document(client, create_user, setup, auth_headers):
    _, _, home, _ = setup
    stranger = create_user(email="stranger@example.com", role="PRO")
    assert _document(client, auth_headers(stranger), home.id).status_code == 403


def test_approval_updates_connection_rollups(client, db_session, setup, auth_headers):
    owner, pro, home, connection = setup
    record_id = _document(client, auth_headers(pro), home.id).json()["id"]

    response = client.post(
        f"/homes/{home.id}/completed-service-submissions/{record_id}/approve",
        headers=auth_headers(owner),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "APPROVED"
    assert response.json()["is_verified"] is True
    assert response.json()["approved_by"] == owner.id

    db_session.expire_all()
    refreshed = db_session.get(Connection, connection.id)
    assert refreshed.verified_service_count == 3
    assert refreshed.total_spent == Decimal("1450.00")
    assert refreshed.last_service_date == datetime(2024, 3, 1, 9, 0)

    again = client.post(
        f"/homes/{home.id}/completed-service-submissions/{record_id}/approve",
        headers=auth_headers(owner),
    )
    assert again.status_code == 409
    db_session.expire_all()
    assert db_session.get(Connection, connection.id).verified_service_count == 3


def test_older_service_keeps_latest_service_date(client, db_session, setup, auth_headers):
    owner, pro, home, connection = setup
    record_id = _document(client, auth_headers(pro), home.id, cost=None, service_date="2023-06-01T00:00:00").json()["id"]

    client.post(f"/homes/{home.id}/completed-service-submissions/{record_id}/approve", headers=auth_headers(owner))

    db_session.expire_all()
    refreshed = db_session.get(Connection, connection.id)
    assert refreshed.verified_service_count == 3
    assert refreshed.total_spent == Decimal("1200.00")
    assert refreshed.last_service_date == datetime(2024, 1, 10)


def test_only_the_owner_reviews(client, create_user, setup, auth_headers):
    _, pro, home, _ = setup
    other_owner = create_user(email="other@example.com")
    record_id = _document(client, auth_headers(pro), home.id).json()["id"]

    approve = client.post(
        f"/homes/{home.id}/completed-service-submissions/{record_id}/approve",
        headers=auth_headers(other_owner),
    )
    reject = client.post(
        f"/homes/{home.id}/completed-service-submissions/{record_id}/reject",
        headers=auth_headers(pro),
    )
    assert approve.status_code == 403
    assert reject.status_code == 403


def test_reject_with_reason_and_no_rollup(client, db_session, setup, auth_headers):
    owner, pro, home, connection = setup
    record_id = _document(client, auth_headers(pro), home.id).json()["id"]

    response = client.post(
        f"/homes/{home.id}/completed-service-submissions/{record_id}/reject",
        json={"reason": "Not our house"},
        headers=auth_headers(owner),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "REJECTED"
    assert response.json()["rejection_reason"] == "Not our house"

    db_session.expire_all()
    assert db_session.get(Connection, connection.id).verified_service_count == 2

    approve = client.post(
        f"/homes/{home.id}/completed-service-submissions/{record_id}/approve",
        headers=auth_headers(owner),
    )
    assert approve.status_code == 409


def test_approval_reactivates_archived_connection(db_session, create_user, create_home, create_connection):
    owner = create_user(email="owner@example.com")
    pro = create_user(email="pro@example.com", role="PRO")
    home = create_home(owner)
    archived = create_connection(home, pro, status="ARCHIVED")
    record = ServiceRecord(
        home_id=home.id,
        contractor_id=pro.id,
        service_type="HVAC",
        service_date=datetime(2024, 5, 1),
        cost=Decimal("99.99"),
        status="DOCUMENTED",
    )
    db_session.add(record)
    db_session.commit()

    record_service.approve_record(db_session, owner, home.id, record.id)

    connections = db_session.query(Connection).all()
    assert len(connections) == 1
    assert connections[0].id == archived.id
    assert connections[0].status == "ACTIVE"
    assert connections[0].verified_service_count == 1
    assert connections[0].total_spent == Decimal("99.99")


def test_service_layer_guards(db_session, setup):
    owner, pro, home, _ = setup
    record = record_service.create_record(
        db_session, pro, home.id, service_type="Roof", service_date=datetime(2024, 2, 2), cost=Decimal("10")
    )
    with pytest.raises(ForbiddenError):
        record_service.approve_record(db_session, pro, home.id, record.id)
    record_service.approve_record(db_session, owner, home.id, record.id)
    with pytest.raises(InvalidStateError):
        record_service.approve_record(db_session, owner, home.id, record.id)
    with pytest.raises(InvalidStateError):
        record_service.update_record(db_session, pro, home.id, record.id, {"description": "late edit"})
