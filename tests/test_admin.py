from datetime import timedelta

import pytest

from homeledger.auth.jwt import decode_token
from homeledger.core.errors import ValidationError
from homeledger.models.models import AuditLog, HomeTransfer, ProProfile, User, utcnow
from homeledger.services import admin as admin_service


@pytest.fixture
def admin(create_user):
    return create_user(email="admin@example.com", role="ADMIN", name="Ada Admin")


def test_page_params_clamp_limits():
    assert admin_service.PageParams(page=0, limit=5).limit == 10
    assert admin_service.PageParams(page=0, limit=5).page == 1
    assert admin_service.PageParams(limit=500).limit == 50
    assert admin_service.PageParams(limit=None).limit == 20
    assert admin_service.PageParams(page=3, limit=25).offset == 50


def test_admin_routes_require_admin(client, create_user, auth_headers):
    owner = create_user(email="owner@example.com")
    assert client.get("/admin/users", headers=auth_headers(owner)).status_code == 403
    assert client.get("/admin/users").status_code == 401


def test_user_list_search_role_filter_and_counts(client, create_user, admin, auth_headers):
    create_user(email="alice@example.com", name="Alice Smith")
    create_user(email="bob@example.com", name="Bob Jones", role="PRO")
    create_user(email="carol@example.com", name="Carol Smith", role="PRO", pro_status="PENDING")

    response = client.get("/admin/users", params={"search": "smith"}, headers=auth_headers(admin))
    assert response.status_code == 200
    body = response.json()
    assert {u["email"] for u in body["items"]} == {"alice@example.com", "carol@example.com"}
    assert body["total"] == 2
    assert body["limit"] == 20
    assert body["counts"] == {"admin": 1, "homeowner": 1, "pro": 2}

    pros = client.get(
        "/admin/users",
        params={"role": "pro", "sortBy": "email", "sortOrder": "asc", "limit": 3},
        headers=auth_headers(admin),
    ).json()
    assert [u["email"] for u in pros["items"]] == ["bob@example.com", "carol@example.com"]
    assert pros["limit"] == 10
    assert pros["pages"] == 1


def test_contractor_tabs(client, db_session, create_user, admin, auth_headers):
    pending = create_user(email="pending@example.com", role="PRO", pro_status="PENDING")
    create_user(email="approved@example.com", role="PRO", pro_status="APPROVED")
    create_user(email="rejected@example.com", role="PRO", pro_status="REJECTED")
    db_session.add(ProProfile(user_id=pending.id, type="REALTOR", business_name="Keys & Co"))
    db_session.commit()

    default_tab = client.get("/admin/contractors", headers=auth_headers(admin)).json()
    assert [u["email"] for u in default_tab["items"]] == ["pending@example.com"]
    assert default_tab["counts"] == {"pending": 1, "approved": 1, "rejected": 1, "all": 3}

    everyone = client.get("/admin/contractors", params={"status": "all"}, headers=auth_headers(admin)).json()
    assert everyone["total"] == 3

    by_business = client.get(
        "/admin/contractors", params={"status": "all", "search": "keys"}, headers=auth_headers(admin)
    ).json()
    assert [u["email"] for u in by_business["items"]] == ["pending@example.com"]

    realtors = client.get(
        "/admin/contractors", params={"status": "all", "type": "realtor"}, headers=auth_headers(admin)
    ).json()
    assert realtors["total"] == 1

    bad = client.get("/admin/contractors", params={"status": "bogus"}, headers=auth_headers(admin))
    assert bad.status_code == 400


def test_approve_and_reject_pro_applications(client, db_session, create_user, admin, auth_headers):
    applicant = create_user(email="applicant@example.com", role="PRO", pro_status="PENDING")
    homeowner = create_user(email="homeowner@example.com")

    approved = client.post(
        "/admin/pro-applications/approve", json={"userId": applicant.id}, headers=auth_headers(admin)
    )
    assert approved.status_code == 200
    assert approved.json()["pro_status"] == "APPROVED"

    rejected = client.post(
        "/admin/pro-applications/reject", json={"userId": applicant.id}, headers=auth_headers(admin)
    )
    assert rejected.json()["pro_status"] == "REJECTED"

    not_pro = client.post(
        "/admin/pro-applications/approve", json={"userId": homeowner.id}, headers=auth_headers(admin)
    )
    assert not_pro.status_code == 409

    actions = [a.action for a in db_session.query(AuditLog).order_by(AuditLog.id).all()]
    assert actions == ["admin.pro.approve", "admin.pro.reject"]


def test_suspend_and_activate(client, db_session, create_user, admin, auth_headers):
    user = create_user(email="target@example.com")

    suspended = client.post(f"/admin/users/{user.id}/suspend", headers=auth_headers(admin))
    assert suspended.status_code == 200
    assert suspended.json()["is_suspended"] is True
    assert client.get("/auth/me", headers=auth_headers(user)).status_code == 403

    assert client.post(f"/admin/users/{user.id}/suspend", headers=auth_headers(admin)).status_code == 409
    assert client.post(f"/admin/users/{admin.id}/suspend", headers=auth_headers(admin)).status_code == 400

    activated = client.post(f"/admin/users/{user.id}/activate", headers=auth_headers(admin))
    assert activated.json()["is_suspended"] is False
    assert client.get("/auth/me", headers=auth_headers(user)).status_code == 200


def test_change_role(client, create_user, admin, auth_headers):
    user = create_user(email="target@example.com")
    response = client.patch(f"/admin/users/{user.id}/role", json={"role": "PRO"}, headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["role"] == "PRO"
    assert response.json()["pro_status"] == "PENDING"

    demote_self = client.patch(f"/admin/users/{admin.id}/role", json={"role": "HOMEOWNER"}, headers=auth_headers(admin))
    assert demote_self.status_code == 400


def test_impersonation_token_carries_admin_id(client, settings, create_user, admin, auth_headers):
    target = create_user(email="target@example.com")
    other_admin = create_user(email="admin2@example.com", role="ADMIN")

    response = client.post(f"/admin/users/{target.id}/impersonate", headers=auth_headers(admin))
    assert response.status_code == 200
    body = response.json()
    assert body["impersonated_user_id"] == target.id
    assert body["expires_in_minutes"] == settings.impersonation_token_expire_minutes

    claims = decode_token(body["access_token"], settings)
    assert claims["sub"] == str(target.id)
    assert claims["impersonated_by"] == admin.id

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.json()["email"] == "target@example.com"

    blocked = client.post(f"/admin/users/{other_admin.id}/impersonate", headers=auth_headers(admin))
    assert blocked.status_code == 403


def test_homes_transfers_and_stats(client, db_session, create_user, create_home, admin, auth_headers):
    owner = create_user(email="owner@example.com", name="Olive Owner")
    home = create_home(owner, address="99 Elm Street", city="Dallas")
    create_home(None, address="1 Pine Road")
    db_session.add_all(
        [
            HomeTransfer(
                home_id=home.id,
                from_user_id=owner.id,
                recipient_email="buyer@example.com",
                token="t-1",
                status="PENDING",
                expires_at=utcnow() + timedelta(days=3),
            ),
            HomeTransfer(
                home_id=home.id,
                from_user_id=owner.id,
                recipient_email="earlier@example.com",
                token="t-2",
                status="DECLINED",
                expires_at=utcnow() - timedelta(days=3),
            ),
        ]
    )
    db_session.commit()

    homes = client.get("/admin/homes", params={"search": "olive"}, headers=auth_headers(admin)).json()
    assert [h["address"] for h in homes["items"]] == ["99 Elm Street"]
    assert homes["items"][0]["owner"]["email"] == "owner@example.com"

    transfers = client.get("/admin/transfers", params={"status": "pending"}, headers=auth_headers(admin)).json()
    assert [t["recipient_email"] for t in transfers["items"]] == ["buyer@example.com"]
    assert transfers["counts"]["pending"] == 1
    assert transfers["counts"]["all"] == 2

    pending_id = transfers["items"][0]["id"]
    cancelled = client.post(f"/admin/transfers/{pending_id}/cancel", headers=auth_headers(admin))
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "CANCELLED"

    stats = client.get("/admin/stats", headers=auth_headers(admin)).json()
    assert stats["total_users"] == 2
    assert stats["total_homes"] == 2
    assert stats["total_transfers"] == 2
    assert stats["pending_transfers"] == 0


def test_unknown_contractor_status_raises_validation_error(db_session):
    with pytest.raises(ValidationError):
        admin_service.list_contractors(db_session, admin_service.ContractorFilter(status="archived"))


def test_user_lookup_is_case_insensitive(db_session, create_user):
    create_user(email="mixed@example.com")
    filters = admin_service.UserFilter(search="MIXED")
    page = admin_service.list_users(db_session, filters)
    assert [u.email for u in page.items] == ["mixed@example.com"]
    assert isinstance(page.items[0], User)


def test_search_wildcards_match_literally(db_session, create_user):
    create_user(email="fifty@example.com", name="50% Off Plumbing")
    create_user(email="unit@example.com", name="Unit 50 Builders")
    create_user(email="under_score@example.com", name="Under Score")
    create_user(email="peter@example.com", name="Peter Sand")

    def emails(search):
        page = admin_service.list_users(db_session, admin_service.UserFilter(search=search))
        return sorted(u.email for u in page.items)

    assert emails("50%") == ["fifty@example.com"]
    assert emails("%") == ["fifty@example.com"]
    assert emails("r_s") == ["under_score@example.com"]
    assert emails("50") == ["fifty@example.com", "unit@example.com"]
