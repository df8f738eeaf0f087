# tests/test_api_accounts.py
from __future__ import annotations

import uuid

from sqlalchemy import select

from expense_desk.models.rbac import User
from expense_desk.services.invites import consume_invite_code
from expense_desk.services import roles as roles_service
from expense_desk.services.roles import ADMIN_ROLES, Operation


def _sign_up(client, email, invite_code=None, display_name="New Person"):
    body = {"email": email, "display_name": display_name}
    if invite_code is not None:
        body["invite_code"] = invite_code
    return client.post("/auth/sign-up", json=body)


# ---- authentication ----------------------------------------------------------------

def test_missing_and_invalid_api_key(client, member):
    r = client.get("/member/expenses")
    assert r.status_code == 401, r.text
    assert r.json()["code"] == "not_authenticated"

    r = client.get("/member/expenses", headers={"X-API-Key": "not-a-real-key"})
    assert r.status_code == 401, r.text
    assert r.json()["code"] == "invalid_api_key"


def test_inactive_user_cannot_authenticate(client, db, member):
    member.user.is_active = False
    db.commit()
    r = client.get("/rbac/whoami", headers=member.headers)
    assert r.status_code == 401
    assert r.json()["code"] == "invalid_api_key"


def test_whoami_reports_effective_roles(client, member, finance, admin):
    r = client.get("/rbac/whoami", headers=member.headers)
    assert r.status_code == 200, r.text
    assert r.json()["email"] == "maria@example.com"
    assert r.json()["roles"] == ["member"]

    assert client.get("/rbac/whoami", headers=finance.headers).json()["roles"] == ["finance"]
    assert client.get("/rbac/whoami", headers=admin.headers).json()["roles"] == ["admin", "finance", "member"]


# ---- sign-up -------------------------------------------------------------------------

def test_sign_up_requires_invite_by_default(client):
    r = _sign_up(client, "new@example.com")
    assert r.status_code == 403, r.text
    assert r.json()["code"] == "invite_required"


def test_sign_up_in_open_mode(client, monkeypatch):
    monkeypatch.setenv("AUTH_SIGNUP_MODE", "open")
    r = _sign_up(client, "  New@Example.com ")
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["email"] == "new@example.com"
    assert body["roles"] == ["member"]
    assert body["api_key"]

    # the returned key works right away
    r = client.get("/rbac/whoami", headers={"X-API-Key": body["api_key"]})
    assert r.status_code == 200, r.text

    r = _sign_up(client, "new@example.com")
    assert r.status_code == 409
    assert r.json()["code"] == "email_taken"


def test_sign_up_rejects_bad_fields(client, monkeypatch):
    monkeypatch.setenv("AUTH_SIGNUP_MODE", "open")
    assert _sign_up(client, "no-at-sign").json()["code"] == "invalid_email"
    assert _sign_up(client, "ok@example.com", display_name="   ").json()["code"] == "invalid_display_name"


def test_sign_up_with_admin_invite(client, admin):
    # 1) Admin issues an invite bound to one email
    r = client.post("/admin/invites", json={"email": "Guest@Example.com"}, headers=admin.headers)
    assert r.status_code == 201, r.text
    invite = r.json()
    assert invite["email"] == "guest@example.com"
    assert invite["token"].startswith("inv_")
    assert invite["used_at"] is None

    # 2) Another email cannot use it
    r = _sign_up(client, "someone@example.com", invite["token"])
    assert r.status_code == 403
    assert r.json()["code"] == "invite_required"

    # 3) The invited email can
    r = _sign_up(client, "guest@example.com", invite["token"])
    assert r.status_code == 201, r.text

    # 4) The invite is now spent
    r = _sign_up(client, "guest2@example.com", invite["token"])
    assert r.status_code == 403
    [listed] = client.get("/admin/invites", headers=admin.headers).json()
    assert listed["used_at"] is not None


def test_rejected_sign_up_does_not_burn_invite(client, admin, member):
    token = client.post("/admin/invites", json={}, headers=admin.headers).json()["token"]

    r = _sign_up(client, member.user.email, token)
    assert r.status_code == 409
    assert r.json()["code"] == "email_taken"

    r = _sign_up(client, "fresh@example.com", token)
    assert r.status_code == 201, r.text


def test_failed_account_creation_keeps_invite(client, admin, member, monkeypatch):
    token = client.post("/admin/invites", json={}, headers=admin.headers).json()["token"]
    # a concurrent sign-up registered the email after the duplicate check
    monkeypatch.setattr("expense_desk.api.auth.email_taken", lambda *args: False)

    r = _sign_up(client, member.user.email, token)
    assert r.status_code == 409, r.text
    assert r.json()["code"] == "email_taken"

    [listed] = client.get("/admin/invites", headers=admin.headers).json()
    assert listed["used_at"] is None


def test_unavailable_invite_removes_new_account(client, db, admin, monkeypatch):
    token = client.post("/admin/invites", json={}, headers=admin.headers).json()["token"]
    monkeypatch.setattr("expense_desk.api.auth.consume_invite_code", lambda *args: False)

    r = _sign_up(client, "late@example.com", token)
    assert r.status_code == 409, r.text
    assert r.json()["code"] == "invite_unavailable"
    assert db.execute(select(User).where(User.email == "late@example.com")).first() is None

    monkeypatch.setattr("expense_desk.api.auth.consume_invite_code", consume_invite_code)
    r = _sign_up(client, "late@example.com", token)
    assert r.status_code == 201, r.text


def test_fallback_invite_codes_are_single_use(client, monkeypatch):
    monkeypatch.setenv("INVITE_CODES", "alpha, beta")
    assert _sign_up(client, "a@example.com", "alpha").status_code == 201
    assert _sign_up(client, "b@example.com", "alpha").status_code == 403
    assert _sign_up(client, "c@example.com", "beta").status_code == 201


def test_bootstrap_admin_sign_up(client, monkeypatch):
    monkeypatch.setenv("AUTH_ADMIN_EMAILS", "boss@example.com")
    r = _sign_up(client, "Boss@example.com")
    assert r.status_code == 201, r.text
    assert r.json()["roles"] == ["admin", "finance", "member"]


def test_invite_routes_are_admin_only(client, finance):
    r = client.post("/admin/invites", json={}, headers=finance.headers)
    assert r.status_code == 403
    assert r.json()["code"] == "forbidden"


# ---- role administration ---------------------------------------------------------------

def test_admin_assigns_and_revokes_roles(client, admin, member):
    url = f"/rbac/users/{member.id}/roles"

    r = client.post(url, json={"role": "Finance"}, headers=admin.headers)
    assert r.status_code == 201, r.text
    assert r.json()["role"] == "finance"

    r = client.get(url, headers=admin.headers)
    assert r.status_code == 200, r.text
    assert r.json()["roles"] == ["finance"]
    assert [a["role"] for a in r.json()["assignments"]] == ["finance"]

    # the member can now reach finance routes
    assert client.get("/finance/expenses", headers=member.headers).status_code == 200

    r = client.delete(f"{url}/finance", headers=admin.headers)
    assert r.status_code == 204, r.text
    assert client.get("/finance/expenses", headers=member.headers).status_code == 403

    r = client.delete(f"{url}/finance", headers=admin.headers)
    assert r.status_code == 404
    assert r.json()["code"] == "role_assignment_not_found"


def test_role_admin_errors(client, admin, member):
    r = client.post(f"/rbac/users/{member.id}/roles", json={"role": "owner"}, headers=admin.headers)
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_role"

    r = client.get(f"/rbac/users/{uuid.uuid4()}/roles", headers=admin.headers)
    assert r.status_code == 404
    assert r.json()["code"] == "user_not_found"

    r = client.get(f"/rbac/users/{admin.id}/roles", headers=member.headers)
    assert r.status_code == 403


def test_admin_creates_and_lists_users(client, admin):
    r = client.post(
        "/rbac/users",
        json={"email": "clerk@example.com", "display_name": "Clerk", "role": "finance"},
        headers=admin.headers,
    )
    assert r.status_code == 201, r.text
    created = r.json()
    assert created["roles"] == ["finance"]
    assert created["api_key"]

    r = client.get("/rbac/users", headers=admin.headers)
    assert r.status_code == 200, r.text
    emails = [u["email"] for u in r.json()]
    assert emails == sorted(emails)
    assert "clerk@example.com" in emails
    assert all(u["api_key"] is None for u in r.json())


# ---- ops -------------------------------------------------------------------------------

def test_health_and_version(client):
    r = client.get("/health")
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "ok"
    assert r.json()["db"]["status"] == "ok"

    r = client.get("/version")
    assert r.status_code == 200
    assert r.json()["app"] == "Expense Desk"


def test_routes_follow_the_operation_policy(client, member, finance, monkeypatch):
    assert client.get("/member/expenses", headers=member.headers).status_code == 200

    # tighten one operation and the route follows
    monkeypatch.setitem(roles_service._REQUIRED_ROLES, Operation.LIST_OWN_EXPENSES, ADMIN_ROLES)
    r = client.get("/member/expenses", headers=member.headers)
    assert r.status_code == 403, r.text
    assert r.json()["code"] == "forbidden"

    monkeypatch.setitem(roles_service._REQUIRED_ROLES, Operation.VALIDATE_EXPENSE, ADMIN_ROLES)
    r = client.post(f"/finance/expenses/{uuid.uuid4()}/validate", headers=finance.headers)
    assert r.status_code == 403, r.text
