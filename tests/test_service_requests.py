from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from homeledger.models.models import Notification, Quote, ServiceRecord, ServiceRequest, utcnow
from homeledger.services.transitions import can_transition


@pytest.fixture
def parties(create_user, create_home, create_connection):
    owner = create_user(email="owner@example.com")
    pro = create_user(email="pro@example.com", role="PRO")
    home = create_home(owner)
    connection = create_connection(home, pro)
    return owner, pro, home, connection


def _create_request(client, headers, connection_id, **extra):
    body = {"connection_id": connection_id, "title": "Leaky faucet", "category": "Plumbing"}
    body.update(extra)
    return client.post("/service-requests", json=body, headers=headers)


def _quote(client, headers, request_id, items=None, **extra):
    body = {
        "title": "Faucet repair",
        "items": items
        or [
            {"item": "Cartridge", "qty": "2", "unit_price": "19.99"},
            {"item": "Labor", "qty": "1.5", "unit_price": "80"},
        ],
    }
    body.update(extra)
    return client.post(f"/service-requests/{request_id}/quotes", json=body, headers=headers)


def test_request_state_machine_is_closed():
    assert can_transition("ServiceRequest", "PENDING", "QUOTED")
    assert can_transition("ServiceRequest", "QUOTED", "ACCEPTED")
    assert can_transition("ServiceRequest", "IN_PROGRESS", "COMPLETED")
    assert not can_transition("ServiceRequest", "PENDING", "COMPLETED")
    assert not can_transition("ServiceRequest", "COMPLETED", "CANCELLED")
    assert not can_transition("ServiceRequest", "ACCEPTED", "CANCELLED")


def test_homeowner_creates_request_and_pro_is_notified(client, db_session, parties, auth_headers):
    owner, pro, home, connection = parties
    response = _create_request(client, auth_headers(owner), connection.id, urgency="HIGH")
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "PENDING"
    assert body["home_id"] == home.id
    assert body["contractor_id"] == pro.id

    notes = db_session.query(Notification).filter(Notification.user_id == pro.id).all()
    assert [n.payload["service_request_id"] for n in notes] == [body["id"]]


def test_request_needs_own_active_connection(client, create_user, create_home, create_connection, auth_headers):
    owner = create_user(email="owner@example.com")
    pro = create_user(email="pro@example.com", role="PRO")
    archived = create_connection(create_home(owner), pro, status="ARCHIVED")

    assert _create_request(client, auth_headers(owner), archived.id).status_code == 409
    assert _create_request(client, auth_headers(pro), archived.id).status_code == 403
    assert _create_request(client, auth_headers(owner), 999).status_code == 404


def test_budget_bounds_are_validated(client, parties, auth_headers):
    owner, _, _, connection = parties
    response = _create_request(client, auth_headers(owner), connection.id, budget_min="500", budget_max="100")
    assert response.status_code == 400
    assert response.json()["error"] == "Validation failed."


def test_quote_total_is_computed_from_items(client, parties, auth_headers):
    owner, pro, _, connection = parties
    request_id = _create_request(client, auth_headers(owner), connection.id).json()["id"]

    response = _quote(client, auth_headers(pro), request_id)
    assert response.status_code == 201
    quote = response.json()
    assert Decimal(quote["total_amount"]) == Decimal("159.98")
    assert [Decimal(item["total"]) for item in quote["items"]] == [Decimal("39.98"), Decimal("120.00")]

    detail = client.get(f"/service-requests/{request_id}", headers=auth_headers(owner)).json()
    assert detail["status"] == "QUOTED"


def test_second_active_quote_is_rejected(client, parties, auth_headers):
    owner, pro, _, connection = parties
    request_id = _create_request(client, auth_headers(owner), connection.id).json()["id"]
    assert _quote(client, auth_headers(pro), request_id).status_code == 201
    assert _quote(client, auth_headers(pro), request_id).status_code == 409


def test_only_the_assigned_pro_quotes(client, create_user, parties, auth_headers):
    owner, _, _, connection = parties
    other_pro = create_user(email="other@example.com", role="PRO")
    request_id = _create_request(client, auth_headers(owner), connection.id).json()["id"]
    assert _quote(client, auth_headers(other_pro), request_id).status_code == 403


def test_expired_quote_cannot_be_accepted(client, db_session, parties, auth_headers):
    owner, pro, _, connection = parties
    request_id = _create_request(client, auth_headers(owner), connection.id).json()["id"]
    quote_id = _quote(client, auth_headers(pro), request_id).json()["id"]

    quote = db_session.get(Quote, quote_id)
    quote.expires_at = utcnow() - timedelta(days=1)
    db_session.commit()

    response = client.post(f"/service-requests/{request_id}/quotes/{quote_id}/accept", headers=auth_headers(owner))
    assert response.status_code == 410

    db_session.expire_all()
    assert db_session.get(Quote, quote_id).status == "EXPIRED"
    assert db_session.get(ServiceRequest, request_id).status == "QUOTED"


def test_full_lifecycle_creates_documented_record(client, db_session, parties, auth_headers):
    owner, pro, home, connection = parties
    request_id = _create_request(client, auth_headers(owner), connection.id).json()["id"]
    quote_id = _quote(client, auth_headers(pro), request_id).json()["id"]

    accepted = client.post(f"/service-requests/{request_id}/quotes/{quote_id}/accept", headers=auth_headers(owner))
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "ACCEPTED"
    assert accepted.json()["quotes"][0]["status"] == "ACCEPTED"

    # Completing before starting skips a state.
    early = client.post(f"/service-requests/{request_id}/complete", json={"record": {}}, headers=auth_headers(pro))
    assert early.status_code == 409

    started = client.post(f"/service-requests/{request_id}/start", headers=auth_headers(pro))
    assert started.json()["status"] == "IN_PROGRESS"

    completed = client.post(
        f"/service-requests/{request_id}/complete",
        json={"record": {"description": "Replaced cartridge"}},
        headers=auth_headers(pro),
    )
    assert completed.status_code == 200
    assert completed.json()["status"] == "COMPLETED"

    record = db_session.query(ServiceRecord).filter(ServiceRecord.service_request_id == request_id).one()
    assert record.status == "DOCUMENTED"
    assert record.is_verified is False
    assert record.cost == Decimal("159.98")
    assert record.service_type == "Plumbing"
    assert record.home_id == home.id

    cancel = client.post(f"/service-requests/{request_id}/cancel", headers=auth_headers(owner))
    assert cancel.status_code == 409


def test_pro_declines_pending_request(client, parties, auth_headers):
    owner, pro, _, connection = parties
    request_id = _create_request(client, auth_headers(owner), connection.id).json()["id"]

    response = client.post(f"/service-requests/{request_id}/decline", headers=auth_headers(pro))
    assert response.status_code == 200
    assert response.json()["status"] == "DECLINED"
    assert response.json()["responded_at"] is not None


def test_homeowner_cancel_closes_open_quote(client, db_session, parties, auth_headers):
    owner, pro, _, connection = parties
    request_id = _create_request(client, auth_headers(owner), connection.id).json()["id"]
    quote_id = _quote(client, auth_headers(pro), request_id).json()["id"]

    response = client.post(f"/service-requests/{request_id}/cancel", headers=auth_headers(owner))
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"

    db_session.expire_all()
    assert db_session.get(Quote, quote_id).status == "DECLINED"


def test_disconnect_cancels_open_requests_only(client, db_session, parties, auth_headers):
    owner, pro, home, connection = parties
    pending_id = _create_request(client, auth_headers(owner), connection.id).json()["id"]
    quoted_id = _create_request(client, auth_headers(owner), connection.id, title="Gutter").json()["id"]
    _quote(client, auth_headers(pro), quoted_id)
    declined_id = _create_request(client, auth_headers(owner), connection.id, title="Paint").json()["id"]
    client.post(f"/service-requests/{declined_id}/decline", headers=auth_headers(pro))

    response = client.delete(f"/homes/{home.id}/connections/{connection.id}", headers=auth_headers(owner))
    assert response.status_code == 200
    assert response.json()["status"] == "ARCHIVED"
    assert response.json()["archived_at"] is not None

    db_session.expire_all()
    statuses = {r.id: r.status for r in db_session.query(ServiceRequest).all()}
    assert statuses == {pending_id: "CANCELLED", quoted_id: "CANCELLED", declined_id: "DECLINED"}

    assert _create_request(client, auth_headers(owner), connection.id).status_code == 409


def test_contractor_cannot_disconnect(client, parties, auth_headers):
    _, pro, home, connection = parties
    response = client.delete(f"/homes/{home.id}/connections/{connection.id}", headers=auth_headers(pro))
    assert response.status_code == 403


def test_pro_lists_only_own_requests(client, create_user, create_connection, parties, auth_headers):
    owner, pro, home, connection = parties
    other_pro = create_user(email="other@example.com", role="PRO")
    other_connection = create_connection(home, other_pro)
    _create_request(client, auth_headers(owner), connection.id)
    _create_request(client, auth_headers(owner), other_connection.id, title="Roof")

    mine = client.get(f"/homes/{home.id}/service-requests", headers=auth_headers(pro)).json()
    assert [r["title"] for r in mine] == ["Leaky faucet"]
    assert len(client.get(f"/homes/{home.id}/service-requests", headers=auth_headers(owner)).json()) == 2
    assert [r["title"] for r in client.get("/pro/service-requests", headers=auth_headers(other_pro)).json()] == ["Roof"]


def test_quote_expiry_with_offset_is_converted_to_utc(client, db_session, parties, auth_headers):
    owner, pro, _, connection = parties
    request_id = _create_request(client, auth_headers(owner), connection.id).json()["id"]
    an_hour_ago = datetime.now(timezone.utc) - timedelta(hours=1)
    expires_at = an_hour_ago.astimezone(timezone(timedelta(hours=5))).isoformat()

    quote_id = _quote(client, auth_headers(pro), request_id, expires_at=expires_at).json()["id"]
    stored = db_session.get(Quote, quote_id).expires_at
    assert stored.tzinfo is None
    assert abs(stored - an_hour_ago.replace(tzinfo=None)) < timedelta(seconds=1)

    response = client.post(f"/service-requests/{request_id}/quotes/{quote_id}/accept", headers=auth_headers(owner))
    assert response.status_code == 410


def test_quote_edits_recompute_total_until_accepted(client, create_user, parties, auth_headers):
    owner, pro, _, connection = parties
    other_pro = create_user(email="other@example.com", role="PRO")
    request_id = _create_request(client, auth_headers(owner), connection.id).json()["id"]
    quote_id = _quote(client, auth_headers(pro), request_id).json()["id"]
    url = f"/service-requests/{request_id}/quotes/{quote_id}"

    edited = client.patch(
        url,
        json={"title": "Faucet replacement", "items": [{"item": "New faucet", "qty": "1", "unit_price": "210.50"}]},
        headers=auth_headers(pro),
    )
    assert edited.status_code == 200
    assert edited.json()["title"] == "Faucet replacement"
    assert Decimal(edited.json()["total_amount"]) == Decimal("210.50")
    assert [item["item"] for item in edited.json()["items"]] == ["New faucet"]

    assert client.patch(url, json={"title": "Mine now"}, headers=auth_headers(other_pro)).status_code == 403

    client.post(f"{url}/accept", headers=auth_headers(owner))
    after_accept = client.patch(url, json={"title": "Too late"}, headers=auth_headers(pro))
    assert after_accept.status_code == 409
