from datetime import datetime

import pytest

from homeledger.models.models import Attachment, Connection, Reminder, ServiceRecord, ServiceRequest, Warranty
from homeledger.services.storage import (
    build_message_key,
    build_record_key,
    build_reminder_key,
    build_service_request_key,
    build_warranty_key,
    safe_filename,
)


@pytest.fixture
def home_graph(db_session, create_user, create_home, create_connection):
    owner = create_user(email="owner@example.com")
    pro = create_user(email="pro@example.com", role="PRO")
    home = create_home(owner)
    connection = create_connection(home, pro)
    record = ServiceRecord(
        home_id=home.id, contractor_id=pro.id, service_type="Plumbing", service_date=datetime(2024, 4, 1)
    )
    warranty = Warranty(home_id=home.id, item="Water heater", created_by=pro.id)
    reminder = Reminder(home_id=home.id, title="Flush tank", due_at=datetime(2030, 1, 1), created_by=owner.id)
    service_request = ServiceRequest(
        connection_id=connection.id,
        home_id=home.id,
        homeowner_id=owner.id,
        contractor_id=pro.id,
        title="Leak",
    )
    db_session.add_all([record, warranty, reminder, service_request])
    db_session.commit()
    return {
        "owner": owner,
        "pro": pro,
        "home": home,
        "record": record,
        "warranty": warranty,
        "reminder": reminder,
        "request": service_request,
        "connection": connection,
    }


def _presign(client, headers, **body):
    return client.post("/uploads/presign", json=body, headers=headers)


def test_keys_are_deterministic_and_scoped():
    assert build_record_key(7, 3, "invoice.pdf") == "homes/7/records/3/invoice.pdf"
    assert build_warranty_key(7, 4, "card.png") == "homes/7/warranties/4/card.png"
    assert build_reminder_key(7, 5, "filter.jpg") == "homes/7/reminders/5/filter.jpg"
    assert build_service_request_key(7, 6, "leak.jpg") == "homes/7/service-requests/6/leak.jpg"
    assert build_message_key(7, 8, "photo.heic") == "homes/7/messages/8/photo.heic"
    assert build_record_key(7, 3, "invoice.pdf") == build_record_key(7, 3, "invoice.pdf")


def test_safe_filename_strips_paths_and_odd_characters():
    assert safe_filename("../../etc/passwd") == "passwd"
    assert safe_filename("C:\\Users\\me\\My Photo (1).jpg") == "My_Photo_1_.jpg"
    assert safe_filename("...") == "file"


def test_pro_presigns_record_upload(client, s3_client, home_graph, auth_headers):
    home, record = home_graph["home"], home_graph["record"]
    response = _presign(
        client,
        auth_headers(home_graph["pro"]),
        homeId=home.id,
        filename="invoice.pdf",
        contentType="application/pdf",
        size=2048,
        recordId=record.id,
    )
    assert response.status_code == 200
    body = response.json()
    key = f"homes/{home.id}/records/{record.id}/invoice.pdf"
    assert body["key"] == key
    assert body["publicUrl"] == f"https://cdn.example.com/{key}"
    assert body["url"].startswith(f"https://test-bucket.s3.test/{key}")
    assert s3_client.calls[0]["params"]["ContentType"] == "application/pdf"
    assert s3_client.calls[0]["expires_in"] == 300


def test_presign_body_validation(client, home_graph, auth_headers):
    headers = auth_headers(home_graph["owner"])
    home_id = home_graph["home"].id
    reminder_id = home_graph["reminder"].id

    string_size = _presign(
        client, headers, homeId=home_id, filename="a.jpg", contentType="image/jpeg", size="12", reminderId=reminder_id
    )
    assert string_size.status_code == 400

    missing_type = _presign(client, headers, homeId=home_id, filename="a.jpg", size=12, reminderId=reminder_id)
    assert missing_type.status_code == 400

    no_entity = _presign(client, headers, homeId=home_id, filename="a.jpg", contentType="image/jpeg", size=12)
    assert no_entity.status_code == 400
    assert "Missing entity identifier" in no_entity.json()["error"]


def test_entity_precedence_prefers_service_request(client, home_graph, auth_headers):
    home = home_graph["home"]
    response = _presign(
        client,
        auth_headers(home_graph["owner"]),
        homeId=home.id,
        filename="leak.jpg",
        contentType="image/jpeg",
        size=10,
        recordId=home_graph["record"].id,
        warrantyId=home_graph["warranty"].id,
        serviceRequestId=home_graph["request"].id,
    )
    assert response.status_code == 200
    assert response.json()["key"] == f"homes/{home.id}/service-requests/{home_graph['request'].id}/leak.jpg"

    warranty_first = _presign(
        client,
        auth_headers(home_graph["owner"]),
        homeId=home.id,
        filename="card.png",
        contentType="image/png",
        size=10,
        recordId=home_graph["record"].id,
        warrantyId=home_graph["warranty"].id,
        reminderId=home_graph["reminder"].id,
    )
    assert warranty_first.json()["key"] == f"homes/{home.id}/warranties/{home_graph['warranty'].id}/card.png"


def test_unconnected_pro_cannot_presign(client, create_user, home_graph, auth_headers):
    stranger = create_user(email="stranger@example.com", role="PRO")
    response = _presign(
        client,
        auth_headers(stranger),
        homeId=home_graph["home"].id,
        filename="a.jpg",
        contentType="image/jpeg",
        size=1,
        warrantyId=home_graph["warranty"].id,
    )
    assert response.status_code == 403


def test_commit_appends_public_urls(client, db_session, home_graph, auth_headers):
    home, reminder = home_graph["home"], home_graph["reminder"]
    prefix = f"homes/{home.id}/reminders/{reminder.id}/"
    response = client.post(
        f"/homes/{home.id}/reminders/{reminder.id}/attachments",
        json={
            "files": [
                {"key": f"{prefix}filter.jpg", "filename": "filter.jpg", "mimeType": "image/jpeg", "size": 100},
                {"key": f"{prefix}box.jpg", "filename": "box.jpg"},
            ]
        },
        headers=auth_headers(home_graph["owner"]),
    )
    assert response.status_code == 201
    assert [a["filename"] for a in response.json()] == ["filter.jpg", "box.jpg"]

    db_session.expire_all()
    assert db_session.get(Reminder, reminder.id).photos == [
        f"https://cdn.example.com/{prefix}filter.jpg",
        f"https://cdn.example.com/{prefix}box.jpg",
    ]

    listed = client.get(f"/homes/{home.id}/reminders/{reminder.id}/attachments", headers=auth_headers(home_graph["owner"]))
    assert len(listed.json()) == 2


def test_commit_rejects_foreign_keys(client, db_session, home_graph, auth_headers):
    home, record = home_graph["home"], home_graph["record"]
    response = client.post(
        f"/homes/{home.id}/records/{record.id}/attachments",
        json={"files": [{"key": f"homes/{home.id}/records/{record.id + 1}/x.pdf", "filename": "x.pdf"}]},
        headers=auth_headers(home_graph["pro"]),
    )
    assert response.status_code == 400

    db_session.expire_all()
    assert db_session.get(ServiceRecord, record.id).photos == []


def test_commit_to_unknown_kind_is_not_found(client, home_graph, auth_headers):
    home = home_graph["home"]
    response = client.post(
        f"/homes/{home.id}/invoices/1/attachments",
        json={"files": [{"key": "homes/1/invoices/1/x.pdf", "filename": "x.pdf"}]},
        headers=auth_headers(home_graph["owner"]),
    )
    assert response.status_code == 404


def test_message_attachment_presign_and_commit(client, db_session, home_graph, auth_headers):
    home, connection, owner, pro = home_graph["home"], home_graph["connection"], home_graph["owner"], home_graph["pro"]
    message = client.post(f"/messages/{connection.id}", json={"content": "Photo of the leak"}, headers=auth_headers(owner))
    message_id = message.json()["id"]

    presigned = _presign(
        client,
        auth_headers(owner),
        homeId=home.id,
        filename="leak.jpg",
        contentType="image/jpeg",
        size=2048,
        connectionId=connection.id,
    )
    assert presigned.status_code == 200
    key = presigned.json()["key"]
    assert key == f"homes/{home.id}/messages/{connection.id}/leak.jpg"

    files = {"files": [{"key": key, "filename": "leak.jpg", "mimeType": "image/jpeg", "size": 2048}]}
    url = f"/homes/{home.id}/messages/{message_id}/attachments"
    assert client.post(url, json=files, headers=auth_headers(pro)).status_code == 403

    committed = client.post(url, json=files, headers=auth_headers(owner))
    assert committed.status_code == 201
    assert committed.json()[0]["url"] == f"https://cdn.example.com/{key}"

    db_session.expire_all()
    stored = db_session.query(Attachment).filter(Attachment.message_id == message_id).one()
    assert stored.key == key

    conversation = client.get(f"/messages/{connection.id}", headers=auth_headers(pro)).json()
    assert [a["filename"] for a in conversation["messages"][0]["attachments"]] == ["leak.jpg"]


def test_message_presign_requires_an_open_conversation(client, db_session, create_user, home_graph, auth_headers):
    home, connection = home_graph["home"], home_graph["connection"]
    outsider = create_user(email="outsider@example.com")
    body = {"homeId": home.id, "filename": "a.jpg", "contentType": "image/jpeg", "size": 1, "connectionId": connection.id}

    assert _presign(client, auth_headers(outsider), **body).status_code == 403

    db_session.get(Connection, connection.id).status = "ARCHIVED"
    db_session.commit()
    assert _presign(client, auth_headers(home_graph["owner"]), **body).status_code == 409
