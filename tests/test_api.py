"""Leave API tests — routing, auth, RBAC and RFC 7807 error bodies."""

from __future__ import annotations

import uuid

from httpx import AsyncClient

from leave_ledger.common.constants import UserRole
from tests.conftest import bearer, create_access_token

BASE = "/api/v1/leave"


def _body(leave_type_id, start="2026-11-02", end="2026-11-06", **extra) -> dict:
    return {
        "leave_type_id": str(leave_type_id),
        "start_date": start,
        "end_date": end,
        **extra,
    }


async def _submit(client: AsyncClient, headers, leave_type_id, **kwargs) -> dict:
    resp = await client.post(f"{BASE}/requests", json=_body(leave_type_id, **kwargs), headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _my_balance(client: AsyncClient, headers) -> int:
    resp = await client.get(f"{BASE}/allocations/mine", headers=headers)
    assert resp.status_code == 200
    return resp.json()[0]["number_of_days"]


# ═════════════════════════════════════════════════════════════════════
# SYSTEM / AUTH
# ═════════════════════════════════════════════════════════════════════


class TestSystem:

    async def test_health(self, client: AsyncClient):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    async def test_missing_token(self, client: AsyncClient):
        resp = await client.get(f"{BASE}/types")
        assert resp.status_code == 401

    async def test_expired_token(self, client: AsyncClient):
        token = create_access_token(uuid.uuid4(), expired=True)
        resp = await client.get(f"{BASE}/types", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token has expired."

    async def test_garbage_token(self, client: AsyncClient):
        resp = await client.get(f"{BASE}/types", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401


# ═════════════════════════════════════════════════════════════════════
# REQUEST LIFECYCLE OVER HTTP
# ═════════════════════════════════════════════════════════════════════


class TestLeaveTypes:

    async def test_list_types(self, client, auth_headers, leave_type):
        resp = await client.get(f"{BASE}/types", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert len(data) == 1
        assert data[0]["name"] == "Annual Leave"
        assert data[0]["default_days"] == 10


class TestSubmit:

    async def test_submit(self, client, auth_headers, allocation, leave_type):
        data = await _submit(client, auth_headers, leave_type.id, request_comments="Trip")
        assert data["status"] == "pending"
        assert data["approved"] is None
        assert data["days_requested"] == 4
        assert data["state"] == "pending"
        assert data["allowed_actions"] == ["approve", "reject", "cancel"]
        assert await _my_balance(client, auth_headers) == 6

    async def test_insufficient_balance(self, client, auth_headers, allocation, leave_type):
        resp = await client.post(
            f"{BASE}/requests",
            json=_body(leave_type.id, start="2026-11-01", end="2026-11-12"),
            headers=auth_headers,
        )
        assert resp.status_code == 422
        assert resp.headers["content-type"].startswith("application/problem+json")
        body = resp.json()
        assert body["type"].endswith("/insufficient-balance")
        assert "Available: 10, Requested: 11" in body["detail"]
        assert await _my_balance(client, auth_headers) == 10

    async def test_start_after_end(self, client, auth_headers, allocation, leave_type):
        resp = await client.post(
            f"{BASE}/requests",
            json=_body(leave_type.id, start="2026-11-06", end="2026-11-02"),
            headers=auth_headers,
        )
        assert resp.status_code == 422
        assert resp.json()["type"].endswith("/validation-error")

    async def test_comments_too_long(self, client, auth_headers, allocation, leave_type):
        resp = await client.post(
            f"{BASE}/requests",
            json=_body(leave_type.id, request_comments="x" * 301),
            headers=auth_headers,
        )
        assert resp.status_code == 422

    async def test_unknown_leave_type(self, client, auth_headers, allocation):
        resp = await client.post(f"{BASE}/requests", json=_body(uuid.uuid4()), headers=auth_headers)
        assert resp.status_code == 404
        assert resp.json()["type"].endswith("/not-found")

    async def test_no_allocation(self, client, leave_type):
        resp = await client.post(
            f"{BASE}/requests", json=_body(leave_type.id), headers=bearer(uuid.uuid4()),
        )
        assert resp.status_code == 404


class TestDecisions:

    async def test_employee_cannot_approve(self, client, auth_headers, allocation, leave_type):
        req = await _submit(client, auth_headers, leave_type.id)
        resp = await client.put(f"{BASE}/requests/{req['id']}/approve", headers=auth_headers)
        assert resp.status_code == 403
        assert resp.json()["type"].endswith("/forbidden")

    async def test_approve_then_reject_conflicts(
        self, client, auth_headers, admin_headers, admin_id, allocation, leave_type,
    ):
        req = await _submit(client, auth_headers, leave_type.id)

        resp = await client.put(f"{BASE}/requests/{req['id']}/approve", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["approved"] is True
        assert resp.json()["approved_by_id"] == str(admin_id)
        assert await _my_balance(client, auth_headers) == 6

        resp = await client.put(f"{BASE}/requests/{req['id']}/reject", headers=admin_headers)
        assert resp.status_code == 409
        body = resp.json()
        assert body["type"].endswith("/invalid-transition")
        assert body["errors"] == {"status": ["approved"]}
        assert await _my_balance(client, auth_headers) == 6

    async def test_reject_releases(self, client, auth_headers, admin_headers, allocation, leave_type):
        req = await _submit(client, auth_headers, leave_type.id)
        resp = await client.put(f"{BASE}/requests/{req['id']}/reject", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "rejected"
        assert await _my_balance(client, auth_headers) == 10

    async def test_unknown_request(self, client, admin_headers):
        resp = await client.put(f"{BASE}/requests/{uuid.uuid4()}/approve", headers=admin_headers)
        assert resp.status_code == 404


class TestCancel:

    async def test_owner_cancels_approved(
        self, client, auth_headers, admin_headers, allocation, leave_type,
    ):
        req = await _submit(client, auth_headers, leave_type.id)
        await client.put(f"{BASE}/requests/{req['id']}/approve", headers=admin_headers)

        resp = await client.put(f"{BASE}/requests/{req['id']}/cancel", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["cancelled"] is True
        assert resp.json()["state"] == "approved_cancelled"
        assert await _my_balance(client, auth_headers) == 10

        resp = await client.put(f"{BASE}/requests/{req['id']}/cancel", headers=auth_headers)
        assert resp.status_code == 409
        assert await _my_balance(client, auth_headers) == 10

    async def test_admin_cannot_cancel_others(
        self, client, auth_headers, admin_headers, allocation, leave_type,
    ):
        req = await _submit(client, auth_headers, leave_type.id)
        resp = await client.put(f"{BASE}/requests/{req['id']}/cancel", headers=admin_headers)
        assert resp.status_code == 403
        assert await _my_balance(client, auth_headers) == 6


# ═════════════════════════════════════════════════════════════════════
# READS
# ═════════════════════════════════════════════════════════════════════


class TestReads:

    async def test_admin_listing_with_summary(
        self, client, auth_headers, admin_headers, allocation, leave_type,
    ):
        first = await _submit(client, auth_headers, leave_type.id, start="2026-11-02", end="2026-11-03")
        await _submit(client, auth_headers, leave_type.id, start="2026-12-01", end="2026-12-02")
        await client.put(f"{BASE}/requests/{first['id']}/approve", headers=admin_headers)

        resp = await client.get(f"{BASE}/requests", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["summary"] == {
            "total": 2, "approved": 1, "pending": 1, "rejected": 0, "cancelled": 0,
        }
        assert body["meta"]["total"] == 2

        resp = await client.get(
            f"{BASE}/requests", params={"status": "approved"}, headers=admin_headers,
        )
        assert [r["id"] for r in resp.json()["data"]] == [first["id"]]

    async def test_employee_cannot_list_all(self, client, auth_headers):
        resp = await client.get(f"{BASE}/requests", headers=auth_headers)
        assert resp.status_code == 403

    async def test_my_requests(self, client, auth_headers, employee_id, allocation, leave_type):
        await _submit(client, auth_headers, leave_type.id)
        resp = await client.get(f"{BASE}/requests/mine", headers=auth_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["employee_id"] == str(employee_id)
        assert len(body["requests"]) == 1
        assert body["allocations"][0]["number_of_days"] == 6
        assert body["allocations"][0]["leave_type"]["name"] == "Annual Leave"

    async def test_request_detail_visibility(
        self, client, auth_headers, admin_headers, allocation, leave_type,
    ):
        req = await _submit(client, auth_headers, leave_type.id)
        url = f"{BASE}/requests/{req['id']}"

        assert (await client.get(url, headers=auth_headers)).status_code == 200
        assert (await client.get(url, headers=admin_headers)).status_code == 200
        assert (await client.get(url, headers=bearer(uuid.uuid4()))).status_code == 403
        resp = await client.get(f"{BASE}/requests/{uuid.uuid4()}", headers=auth_headers)
        assert resp.status_code == 404


class TestAllocations:

    async def test_provision(self, client, admin_headers, leave_type):
        employee_id = uuid.uuid4()
        payload = {"employee_id": str(employee_id), "leave_type_id": str(leave_type.id)}

        resp = await client.post(f"{BASE}/allocations", json=payload, headers=admin_headers)
        assert resp.status_code == 201
        first = resp.json()
        assert first["number_of_days"] == 10

        resp = await client.post(f"{BASE}/allocations", json=payload, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.json()["id"] == first["id"]

        headers = bearer(employee_id)
        assert await _my_balance(client, headers) == 10

    async def test_employee_cannot_provision(self, client, auth_headers, leave_type):
        payload = {"employee_id": str(uuid.uuid4()), "leave_type_id": str(leave_type.id)}
        resp = await client.post(f"{BASE}/allocations", json=payload, headers=auth_headers)
        assert resp.status_code == 403
        assert "allocation:provision" in resp.json()["detail"]

    async def test_unknown_role_is_employee(self, client, leave_type):
        from jose import jwt

        from leave_ledger.config import settings

        token = jwt.encode(
            {"sub": str(uuid.uuid4()), "role": "superuser", "type": "access"},
            settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
        )
        payload = {"employee_id": str(uuid.uuid4()), "leave_type_id": str(leave_type.id)}
        resp = await client.post(
            f"{BASE}/allocations", json=payload, headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 403
        assert UserRole.employee.value in resp.json()["detail"]


# ═════════════════════════════════════════════════════════════════════
# RATE LIMITING
# ═════════════════════════════════════════════════════════════════════


class TestRateLimiting:

    async def test_write_routes_limited(
        self, client, auth_headers, allocation, leave_type, monkeypatch,
    ):
        """Submits beyond RATE_LIMIT_WRITE get 429 and reserve nothing."""
        from leave_ledger.config import settings

        monkeypatch.setattr(settings, "RATE_LIMIT_WRITE", "2/minute")
        await _submit(client, auth_headers, leave_type.id, start="2026-11-02", end="2026-11-03")
        await _submit(client, auth_headers, leave_type.id, start="2026-11-09", end="2026-11-10")

        resp = await client.post(
            f"{BASE}/requests",
            json=_body(leave_type.id, start="2026-11-16", end="2026-11-17"),
            headers=auth_headers,
        )
        assert resp.status_code == 429
        assert await _my_balance(client, auth_headers) == 8

    async def test_reads_use_default_limit(self, client, auth_headers, leave_type, monkeypatch):
        from leave_ledger.config import settings

        monkeypatch.setattr(settings, "RATE_LIMIT_WRITE", "1/minute")
        for _ in range(3):
            resp = await client.get(f"{BASE}/types", headers=auth_headers)
            assert resp.status_code == 200
