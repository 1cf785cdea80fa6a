from homeledger.models.models import AuditLog, Home
from homeledger.services.access import normalize_address

ADDRESS = {"address": "12 Oak Lane", "city": "Austin", "state": "TX", "zip": "78701"}


def test_normalize_address_ignores_case_and_punctuation():
    assert normalize_address("12 Oak Lane", "Austin", "TX", "78701") == "12oaklaneaustintx78701"
    assert normalize_address("12 OAK LANE.", "austin", "tx", "78701") == normalize_address(
        "12 Oak Lane", "Austin", "TX", "78701"
    )


def test_claim_home_creates_and_audits(client, db_session, create_user, auth_headers):
    owner = create_user(email="owner@example.com")
    response = client.post("/homes/", json=ADDRESS, headers=auth_headers(owner))
    assert response.status_code == 201
    body = response.json()
    assert body["owner_id"] == owner.id
    assert body["verification_status"] == "UNVERIFIED"

    listed = client.get("/homes/", headers=auth_headers(owner))
    assert [home["id"] for home in listed.json()] == [body["id"]]

    entry = db_session.query(AuditLog).filter(AuditLog.action == "home.claim").one()
    assert entry.home_id == body["id"]


def test_claiming_an_owned_home_is_rejected(client, create_user, create_home, auth_headers):
    owner = create_user(email="owner@example.com")
    other = create_user(email="other@example.com")
    create_home(owner)

    response = client.post(
        "/homes/",
        json={"address": "12 oak lane", "city": "AUSTIN", "state": "tx", "zip": "78701"},
        headers=auth_headers(other),
    )
    assert response.status_code == 400
    assert "already claimed" in response.json()["error"]


def test_claim_adopts_unowned_home(client, db_session, create_user, create_home, auth_headers):
    owner = create_user(email="owner@example.com")
    home = create_home(None)

    response = client.post("/homes/", json=ADDRESS, headers=auth_headers(owner))
    assert response.status_code == 201
    assert response.json()["id"] == home.id
    db_session.expire_all()
    assert db_session.get(Home, home.id).owner_id == owner.id


def test_pros_cannot_claim_homes(client, create_user, auth_headers):
    pro = create_user(email="pro@example.com", role="PRO")
    response = client.post("/homes/", json=ADDRESS, headers=auth_headers(pro))
    assert response.status_code == 403


def test_home_access_rules(client, create_user, create_home, create_connection, auth_headers):
    owner = create_user(email="owner@example.com")
    connected = create_user(email="connected@example.com", role="PRO")
    stranger = create_user(email="stranger@example.com", role="PRO")
    admin = create_user(email="admin@example.com", role="ADMIN")
    home = create_home(owner)
    create_connection(home, connected)

    assert client.get(f"/homes/{home.id}", headers=auth_headers(owner)).status_code == 200
    assert client.get(f"/homes/{home.id}", headers=auth_headers(connected)).status_code == 200
    assert client.get(f"/homes/{home.id}", headers=auth_headers(admin)).status_code == 200
    assert client.get(f"/homes/{home.id}", headers=auth_headers(stranger)).status_code == 403
    assert client.get("/homes/999", headers=auth_headers(owner)).status_code == 404


def test_verify_home_records_method(client, create_user, create_home, auth_headers):
    owner = create_user(email="owner@example.com")
    home = create_home(owner)

    response = client.post(f"/homes/{home.id}/verify", json={"method": "POSTCARD"}, headers=auth_headers(owner))
    assert response.status_code == 200
    assert response.json()["verification_status"] == "VERIFIED_BY_POSTCARD"
    assert response.json()["verification_method"] == "POSTCARD"
