# tests/test_organizations_api.py: Organization, device and key endpoints over HTTP
from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from auth import AuthService
from main import app
from models import AuditLog, AuditEventType


@pytest.mark.asyncio
async def test_create_organization(client: AsyncClient, owner, auth_headers, make_org_payload):
    """Owner creates an org; the response carries both new identifiers"""
    resp = await client.post("/api/v1/organizations", json=make_org_payload(), headers=auth_headers(owner))
    assert resp.status_code == 201
    body = resp.json()
    assert body["error"] is None
    assert body["message"] == "Organization created successfully"
    assert set(body["data"]) == {"organizationId", "deviceRegistrationId"}


@pytest.mark.asyncio
async def test_create_for_another_user_forbidden(client: AsyncClient, owner, other_user, auth_headers,
                                                 make_org_payload):
    payload = make_org_payload()
    payload["ownerId"] = other_user.id
    resp = await client.post("/api/v1/organizations", json=payload, headers=auth_headers(owner))
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_create_rejects_more_required_than_enabled_factors(client: AsyncClient, owner, auth_headers,
                                                                 make_org_payload):
    payload = make_org_payload()
    payload["mkdfConfig"] = {"requiredFactors": 3, "enabledFactors": ["passphrase", "device"]}
    resp = await client.post("/api/v1/organizations", json=payload, headers=auth_headers(owner))
    assert resp.status_code == 400
    body = resp.json()
    assert body["data"] is None
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["error"]["statusCode"] == 400


@pytest.mark.asyncio
async def test_create_rejects_missing_device_info(client: AsyncClient, owner, auth_headers, make_org_payload):
    payload = make_org_payload()
    del payload["deviceInfo"]
    resp = await client.post("/api/v1/organizations", json=payload, headers=auth_headers(owner))
    assert resp.status_code == 400
    assert "deviceInfo" in resp.json()["message"]


@pytest.mark.asyncio
async def test_requests_without_token_rejected(client: AsyncClient):
    resp = await client.get("/api/v1/organizations")
    assert resp.status_code == 401
    body = resp.json()
    assert body["error"]["code"] == "TOKEN_MISSING"
    assert body["data"] is None


@pytest.mark.asyncio
async def test_expired_token_rejected(client: AsyncClient, owner):
    token = AuthService.create_access_token({"sub": owner.id}, expires_delta=timedelta(minutes=-5))
    resp = await client.get("/api/v1/organizations", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "TOKEN_EXPIRED"


@pytest.mark.asyncio
async def test_list_organizations(client: AsyncClient, owner, other_user, auth_headers, create_org):
    await create_org(owner, name="Mine")
    await create_org(other_user, name="Theirs")

    resp = await client.get("/api/v1/organizations?page=1&limit=5", headers=auth_headers(owner))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [o["name"] for o in data["organizations"]] == ["Mine"]
    assert data["pagination"] == {
        "total": 1, "page": 1, "limit": 5, "pages": 1, "hasNext": False, "hasPrev": False,
    }


@pytest.mark.asyncio
async def test_get_organization(client: AsyncClient, owner, owned_org, auth_headers):
    resp = await client.get(f"/api/v1/organizations/{owned_org.organization_id}", headers=auth_headers(owner))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["id"] == owned_org.organization_id
    assert data["ownerId"] == owner.id
    assert "encryptedPrivateKey" not in data


@pytest.mark.asyncio
async def test_get_foreign_organization_not_found(client: AsyncClient, other_user, owned_org, auth_headers):
    resp = await client.get(f"/api/v1/organizations/{owned_org.organization_id}", headers=auth_headers(other_user))
    assert resp.status_code == 404
    assert resp.json()["error"] == {
        "code": "ORG_NOT_FOUND", "message": "Organization not found", "statusCode": 404,
    }


@pytest.mark.asyncio
async def test_rename_organization(client: AsyncClient, owner, owned_org, auth_headers):
    resp = await client.patch(
        f"/api/v1/organizations/{owned_org.organization_id}",
        json={"name": "Acme Holdings"},
        headers=auth_headers(owner),
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["name"] == "Acme Holdings"


@pytest.mark.asyncio
async def test_delete_organization(client: AsyncClient, owner, owned_org, auth_headers):
    headers = auth_headers(owner)
    org_id = owned_org.organization_id

    resp = await client.delete(f"/api/v1/organizations/{org_id}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"] == {"deleted": True, "id": org_id}

    resp = await client.get(f"/api/v1/organizations/{org_id}", headers=headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_get_keys(client: AsyncClient, owner, owned_org, auth_headers):
    resp = await client.get(
        "/api/v1/organizations/keys",
        params={"orgId": owned_org.organization_id},
        headers=auth_headers(owner),
    )
    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "no-store"
    data = resp.json()["data"]
    assert data["encryptedPrivateKey"] == "org-private-key-encrypted"
    assert data["deviceInfo"]["id"] == owned_org.device_registration_id


@pytest.mark.asyncio
async def test_get_keys_requires_org_id(client: AsyncClient, owner, auth_headers):
    resp = await client.get("/api/v1/organizations/keys", headers=auth_headers(owner))
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["message"] == "Organization ID is required"


@pytest.mark.asyncio
async def test_get_keys_of_foreign_org(client: AsyncClient, other_user, owned_org, auth_headers):
    resp = await client.get(
        "/api/v1/organizations/keys",
        params={"orgId": owned_org.organization_id},
        headers=auth_headers(other_user),
    )
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "ORG_NOT_FOUND"


@pytest.mark.asyncio
async def test_list_and_revoke_devices(client: AsyncClient, owner, owned_org, auth_headers):
    headers = auth_headers(owner)
    org_id = owned_org.organization_id
    device_id = owned_org.device_registration_id

    resp = await client.get(f"/api/v1/organizations/{org_id}/devices", headers=headers)
    assert resp.status_code == 200
    assert [d["id"] for d in resp.json()["data"]] == [device_id]

    resp = await client.delete(f"/api/v1/organizations/{org_id}/devices/{device_id}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["alreadyRevoked"] is False
    assert resp.json()["data"]["status"] == "revoked"

    resp = await client.delete(f"/api/v1/organizations/{org_id}/devices/{device_id}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["alreadyRevoked"] is True

    resp = await client.get(
        "/api/v1/organizations/keys", params={"orgId": org_id}, headers=headers,
    )
    assert resp.json()["data"]["deviceInfo"] is None


@pytest.mark.asyncio
async def test_revoke_device_as_non_owner(client: AsyncClient, other_user, owned_org, auth_headers):
    resp = await client.delete(
        f"/api/v1/organizations/{owned_org.organization_id}/devices/{owned_org.device_registration_id}",
        headers=auth_headers(other_user),
    )
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "DEVICE_NOT_FOUND"


@pytest.mark.asyncio
async def test_response_headers(client: AsyncClient):
    resp = await client.get("/", headers={"X-Request-ID": "req-123"})
    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"] == "req-123"
    assert resp.headers["X-Correlation-ID"] == "req-123"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


@pytest.mark.asyncio
async def test_health_reports_database(client: AsyncClient, database):
    app.state.database = database
    try:
        resp = await client.get("/health")
    finally:
        del app.state.database
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert resp.json()["database"] == "connected"


@pytest.mark.asyncio
async def test_list_organizations_page_far_past_the_end(client: AsyncClient, owner, owned_org, auth_headers):
    resp = await client.get(
        "/api/v1/organizations",
        params={"page": 10**20, "limit": 10},
        headers=auth_headers(owner),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["organizations"] == []
    assert data["pagination"]["total"] == 1
    assert data["pagination"]["hasNext"] is False


@pytest.mark.asyncio
async def test_audit_rows_carry_request_id(client: AsyncClient, database, owner, auth_headers, make_org_payload):
    headers = {**auth_headers(owner), "X-Request-ID": "req-create-1"}

    # A client retrying with the same request id still gets through
    first = await client.post("/api/v1/organizations", json=make_org_payload("First"), headers=headers)
    second = await client.post("/api/v1/organizations", json=make_org_payload("Second"), headers=headers)
    assert first.status_code == 201
    assert second.status_code == 201

    async with database.session() as session:
        request_ids = (await session.execute(
            select(AuditLog.request_id).where(AuditLog.event_type == AuditEventType.ORG_CREATED)
        )).scalars().all()
    assert request_ids == ["req-create-1", "req-create-1"]
