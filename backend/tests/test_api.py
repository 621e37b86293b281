"""
DCLense - API tests (in-process, in-memory database)
Tests: login / session, companies CRUD + per-user read status through the list endpoint,
filter validation, admin-only surfaces, contact form validation.
Run: cd backend && pytest tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from config import hash_password
from models import RepresentativeUpdate
from server import app
from tests.fake_mongo import FakeDB

PASSWORD = "DcLense2026!"


@pytest.fixture
def db():
    database = FakeDB()
    database.users.docs = [
        {"id": "u-admin", "email": "admin@dclense.app", "password": hash_password(PASSWORD),
         "first_name": "Ada", "last_name": "Admin", "role": "admin", "is_active": True},
        {"id": "u-agent", "email": "agent@dclense.app", "password": hash_password(PASSWORD),
         "first_name": "Ben", "last_name": "Agent", "role": "user", "is_active": True},
    ]
    app.state.db = database
    return database


@pytest.fixture
def client(db):
    # no context manager: startup (Mongo, scheduler, change streams) is not run
    return TestClient(app)


def login(client, email):
    r = client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['token']}"}


# ═══════════════════════════════════════════════════════════════
# 1. AUTH
# ═══════════════════════════════════════════════════════════════

class TestAuth:
    def test_login_and_me(self, client):
        headers = login(client, "Agent@DCLense.app")
        me = client.get("/api/auth/me", headers=headers).json()
        assert me["email"] == "agent@dclense.app"
        assert "password" not in me
        assert me["permissions"]["logs.view"] is False

    def test_wrong_password(self, client):
        r = client.post("/api/auth/login", json={"email": "agent@dclense.app", "password": "nope"})
        assert r.status_code == 401

    def test_unknown_email_not_authorized(self, client):
        assert client.post("/api/auth/check-role", json={"email": "who@else.com"}).status_code == 403

    def test_no_token(self, client):
        assert client.get("/api/companies").status_code == 401

    def test_logout_ends_session(self, client):
        headers = login(client, "agent@dclense.app")
        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401


# ═══════════════════════════════════════════════════════════════
# 2. COMPANIES
# ═══════════════════════════════════════════════════════════════

class TestCompanies:
    def test_create_duplicate_list_delete(self, client, db):
        headers = login(client, "agent@dclense.app")

        r = client.post("/api/companies", json={"company_name": "Acme", "status": "In Progress"}, headers=headers)
        assert r.status_code == 200
        company = r.json()["company"]
        assert company["mark_unread"] is True
        assert db.companies.docs[0]["_id"] == company["id"]

        r = client.post("/api/companies", json={"company_name": " acme "}, headers=headers)
        assert r.status_code == 409

        page = client.get("/api/companies", headers=headers).json()
        assert page["total"] == 1

        assert client.delete(f"/api/companies/{company['id']}", headers=headers).status_code == 200
        assert client.get("/api/companies", headers=headers).json()["total"] == 0
        assert db.companies.docs[0]["is_deleted"] is True
        assert [e["action"] for e in db.audit_logs.docs] == ["create", "delete"]

    def test_opening_marks_read_for_that_user_only(self, client):
        agent = login(client, "agent@dclense.app")
        admin = login(client, "admin@dclense.app")
        company = client.post("/api/companies", json={"company_name": "Globex"}, headers=agent).json()["company"]

        opened = client.get(f"/api/companies/{company['id']}", headers=agent).json()
        assert opened["mark_unread"] is False

        unread = "/api/companies?unread_filter=unread_only"
        assert client.get(unread, headers=agent).json()["total"] == 0
        assert client.get(unread, headers=admin).json()["total"] == 1

        r = client.put(f"/api/companies/{company['id']}/read-status", json={"mark_unread": True}, headers=agent)
        assert r.status_code == 200
        assert client.get(unread, headers=agent).json()["total"] == 1

    def test_invalid_filters_rejected(self, client):
        headers = login(client, "agent@dclense.app")
        assert client.get("/api/companies?colour=blue", headers=headers).status_code == 422
        assert client.get("/api/companies?unread_filter=maybe", headers=headers).status_code == 422

    def test_update_rejects_null_required_fields(self, client, db):
        headers = login(client, "agent@dclense.app")
        company = client.post("/api/companies", json={"company_name": "Umbrella"}, headers=headers).json()["company"]

        for body in ({"company_name": None}, {"company_name": "  "}, {"mark_unread": None}):
            r = client.put(f"/api/companies/{company['id']}", json=body, headers=headers)
            assert r.status_code == 422
        assert db.companies.docs[0]["company_name"] == "Umbrella"
        assert db.companies.docs[0]["mark_unread"] is True

        r = client.put(f"/api/companies/{company['id']}", json={"company_name": " Umbrella Corp "}, headers=headers)
        assert r.status_code == 200
        assert r.json()["company"]["company_name"] == "Umbrella Corp"

    @pytest.mark.parametrize("body", [{"first_name": None}, {"first_name": ""}, {"mark_unread": None}])
    def test_representative_update_rejects_null_required_fields(self, body):
        with pytest.raises(ValidationError):
            RepresentativeUpdate(**body)
        assert RepresentativeUpdate(last_name=None).model_dump(exclude_unset=True) == {"last_name": None}

    def test_invalid_status_rejected(self, client):
        headers = login(client, "agent@dclense.app")
        r = client.post("/api/companies", json={"company_name": "Initech", "status": "Sold"}, headers=headers)
        assert r.status_code == 422


# ═══════════════════════════════════════════════════════════════
# 3. PERMISSIONS / PUBLIC
# ═══════════════════════════════════════════════════════════════

class TestSurfaces:
    def test_logs_admin_only(self, client):
        assert client.get("/api/logs/audit", headers=login(client, "agent@dclense.app")).status_code == 403

    def test_user_management_admin_only(self, client):
        headers = login(client, "agent@dclense.app")
        r = client.post("/api/auth/users", json={
            "email": "new@dclense.app", "password": "x", "first_name": "New",
        }, headers=headers)
        assert r.status_code == 403

    def test_contact_form_validation(self, client):
        r = client.post("/api/contact", json={"name": "Ana", "email": "bad", "message": "hi"})
        assert r.status_code == 422

    def test_root(self, client):
        assert client.get("/").json()["status"] == "running"
