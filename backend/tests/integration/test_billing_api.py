"""End-to-end tests of the billing HTTP API."""
from uuid import uuid4

import pytest
from httpx import AsyncClient

from tests.utils.auth import auth_headers
from tests.utils.factories import MemberFactory, OrganizationFactory, PaymentReferenceFactory


async def _create_org(client: AsyncClient, headers: dict[str, str]) -> str:
    response = await client.post("/v1/orgs", json=OrganizationFactory.create(), headers=headers)
    assert response.status_code == 201
    return response.json()["id"]


async def _add_member(client: AsyncClient, org_id: str, headers: dict[str, str], **overrides) -> dict:
    payload = {"display_name": MemberFactory.create()["display_name"], "status": "active", **overrides}
    response = await client.post(f"/v1/orgs/{org_id}/members", json=payload, headers=headers)
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_health_endpoints(async_client: AsyncClient) -> None:
    response = await async_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

    ready = await async_client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json()["checks"]["database"] == "connected"


@pytest.mark.asyncio
async def test_requests_without_token_are_rejected(async_client: AsyncClient) -> None:
    response = await async_client.post(f"/v1/orgs/{uuid4()}/billing/ensure")
    assert response.status_code == 401

    garbage = await async_client.post(
        f"/v1/orgs/{uuid4()}/billing/ensure", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert garbage.status_code == 401


@pytest.mark.asyncio
async def test_plan_templates_are_listed_by_rank(async_client: AsyncClient) -> None:
    response = await async_client.get("/v1/plan-templates")

    assert response.status_code == 200
    items = response.json()["items"]
    assert [item["template_id"] for item in items] == ["free", "coop_basic", "coop_premium", "enterprise_default"]


@pytest.mark.asyncio
async def test_seat_purchase_flow(async_client: AsyncClient) -> None:
    """Create an org, provision the trial, hand out a seat, buy more seats and confirm payment."""
    headers = auth_headers()
    org_id = await _create_org(async_client, headers)

    ensured = await async_client.post(f"/v1/orgs/{org_id}/billing/ensure", headers=headers)
    assert ensured.status_code == 200
    body = ensured.json()
    assert body["created"] is True
    assert body["subscription"]["plan_id"] == "coop_trial"
    assert body["subscription"]["status"] == "trialing"

    member = await _add_member(async_client, org_id, headers)
    assigned = await async_client.post(
        f"/v1/orgs/{org_id}/billing/seats/{member['id']}/assign", json={"seat_type": "paid"}, headers=headers
    )
    assert assigned.status_code == 200
    assert assigned.json()["seat_type"] == "paid"
    assert assigned.json()["entitlement"]["premiumActive"] is True

    usage = (await async_client.get(f"/v1/orgs/{org_id}/billing/usage", headers=headers)).json()
    assert usage["paid_used"] == 1
    assert usage["paid_remaining"] == 9

    invoice = await async_client.post(
        f"/v1/orgs/{org_id}/billing/invoices/seats",
        json={"seat_type": "sponsored", "quantity": 2, "payment_method": "bank_transfer"},
        headers=headers,
    )
    assert invoice.status_code == 201
    created = invoice.json()
    assert created["amount"] == 200

    confirmation = {
        "invoice_id": created["invoice_id"],
        "payment_id": created["payment_id"],
        "reference": PaymentReferenceFactory.bank_transfer(),
    }
    confirmed = await async_client.post(
        f"/v1/orgs/{org_id}/billing/payments/confirm", json=confirmation, headers=headers
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["sponsored_seats_total"] == 7
    assert confirmed.json()["status"] == "active"

    again = await async_client.post(f"/v1/orgs/{org_id}/billing/payments/confirm", json=confirmation, headers=headers)
    assert again.status_code == 200
    assert again.json()["sponsored_seats_total"] == 7

    docs = (await async_client.get(f"/v1/orgs/{org_id}/billing/docs", headers=headers)).json()
    assert docs["invoices"][0]["status"] == "paid"
    assert docs["payments"][0]["status"] == "confirmed"
    event_types = [entry["event_type"] for entry in docs["ledger"]]
    assert "SPONSORED_SEAT_ADDED" in event_types
    assert "SEAT_ASSIGNED" in event_types


@pytest.mark.asyncio
async def test_plan_change_flow(async_client: AsyncClient) -> None:
    headers = auth_headers()
    org_id = await _create_org(async_client, headers)
    await async_client.post(f"/v1/orgs/{org_id}/billing/ensure", headers=headers)

    change = await async_client.post(
        f"/v1/orgs/{org_id}/billing/plan-template",
        json={"template_id": "coop_basic", "billing_cycle": "monthly", "seats": {"paidTotal": 20, "sponsoredTotal": 5}},
        headers=headers,
    )
    assert change.status_code == 200
    result = change.json()
    assert result["requires_payment"] is True
    assert result["amount"] == 7000

    pending = (await async_client.get(f"/v1/orgs/{org_id}/billing/subscription", headers=headers)).json()
    assert pending["status"] == "past_due"
    assert pending["paid_seats_total"] == 10

    confirmed = await async_client.post(
        f"/v1/orgs/{org_id}/billing/payments/confirm",
        json={
            "invoice_id": result["invoice_id"],
            "payment_id": result["payment_id"],
            "reference": PaymentReferenceFactory.mpesa(),
        },
        headers=headers,
    )
    assert confirmed.status_code == 200
    subscription = confirmed.json()
    assert (subscription["paid_seats_total"], subscription["sponsored_seats_total"]) == (20, 5)
    assert subscription["plan_id"] == "coop_basic"
    assert subscription["status"] == "active"


@pytest.mark.asyncio
async def test_full_seat_pool_returns_409(async_client: AsyncClient) -> None:
    headers = auth_headers()
    org_id = await _create_org(async_client, headers)
    await async_client.post(f"/v1/orgs/{org_id}/billing/ensure", headers=headers)
    members = [await _add_member(async_client, org_id, headers) for _ in range(6)]

    for member in members[:5]:
        response = await async_client.post(
            f"/v1/orgs/{org_id}/billing/seats/{member['id']}/assign",
            json={"seat_type": "sponsored"},
            headers=headers,
        )
        assert response.status_code == 200

    refused = await async_client.post(
        f"/v1/orgs/{org_id}/billing/seats/{members[5]['id']}/assign",
        json={"seat_type": "sponsored"},
        headers=headers,
    )
    assert refused.status_code == 409
    body = refused.json()
    assert body["message"] == "No sponsored seats remaining."
    assert body["details"][0]["code"] == "no_seats_remaining"


@pytest.mark.asyncio
async def test_pending_member_cannot_get_a_seat(async_client: AsyncClient) -> None:
    headers = auth_headers()
    org_id = await _create_org(async_client, headers)
    await async_client.post(f"/v1/orgs/{org_id}/billing/ensure", headers=headers)
    member = await _add_member(async_client, org_id, headers, status="pending")

    response = await async_client.post(
        f"/v1/orgs/{org_id}/billing/seats/{member['id']}/assign", json={"seat_type": "paid"}, headers=headers
    )

    assert response.status_code == 409
    assert response.json()["details"][0]["code"] == "member_not_active"


@pytest.mark.asyncio
async def test_suspension_sweep_over_http(async_client: AsyncClient) -> None:
    headers = auth_headers()
    org_id = await _create_org(async_client, headers)
    await async_client.post(f"/v1/orgs/{org_id}/billing/ensure", headers=headers)
    member = await _add_member(async_client, org_id, headers)
    await async_client.post(
        f"/v1/orgs/{org_id}/billing/seats/{member['id']}/assign", json={"seat_type": "sponsored"}, headers=headers
    )

    settings = await async_client.patch(
        f"/v1/orgs/{org_id}/billing/settings", json={"auto_unassign_seats_on_suspension": True}, headers=headers
    )
    assert settings.json()["auto_unassign_seats_on_suspension"] is True

    suspended = await async_client.patch(
        f"/v1/orgs/{org_id}/members/{member['id']}/status", json={"status": "suspended"}, headers=headers
    )
    assert suspended.status_code == 200
    assert suspended.json()["seat_type"] == "sponsored"

    swept = await async_client.post(f"/v1/orgs/{org_id}/billing/auto-unassign", headers=headers)
    assert swept.status_code == 200
    assert swept.json()["unassigned_member_ids"] == [member["id"]]

    members = (await async_client.get(f"/v1/orgs/{org_id}/members", params={"status": "suspended"}, headers=headers)).json()
    assert members[0]["seat_type"] == "none"


@pytest.mark.asyncio
async def test_billing_manager_permissions(async_client: AsyncClient) -> None:
    """Admins manage billing; staff only while the org allows it; plain members never."""
    admin = auth_headers()
    org_id = await _create_org(async_client, admin)
    await async_client.post(f"/v1/orgs/{org_id}/billing/ensure", headers=admin)
    await _add_member(async_client, org_id, admin, user_uid="staff-uid", role="org_staff")
    await _add_member(async_client, org_id, admin, user_uid="member-uid", role="member")
    purchase = {"seat_type": "paid", "quantity": 1}

    staff = auth_headers(uid="staff-uid", name="Staff Person")
    allowed = await async_client.post(f"/v1/orgs/{org_id}/billing/invoices/seats", json=purchase, headers=staff)
    assert allowed.status_code == 201

    plain = auth_headers(uid="member-uid", name="Plain Member")
    denied = await async_client.post(f"/v1/orgs/{org_id}/billing/invoices/seats", json=purchase, headers=plain)
    assert denied.status_code == 403

    await async_client.patch(
        f"/v1/orgs/{org_id}/billing/settings", json={"staff_can_manage_billing": False}, headers=admin
    )
    revoked = await async_client.post(f"/v1/orgs/{org_id}/billing/invoices/seats", json=purchase, headers=staff)
    assert revoked.status_code == 403


@pytest.mark.asyncio
async def test_unconfigured_subscription_returns_404(async_client: AsyncClient) -> None:
    headers = auth_headers()
    org_id = await _create_org(async_client, headers)

    response = await async_client.get(f"/v1/orgs/{org_id}/billing/subscription", headers=headers)

    assert response.status_code == 404
    assert response.json()["message"] == "Subscription not configured"


@pytest.mark.asyncio
async def test_invalid_requests_return_422(async_client: AsyncClient) -> None:
    headers = auth_headers()
    org_id = await _create_org(async_client, headers)
    await async_client.post(f"/v1/orgs/{org_id}/billing/ensure", headers=headers)

    zero = await async_client.post(
        f"/v1/orgs/{org_id}/billing/invoices/seats", json={"seat_type": "paid", "quantity": 0}, headers=headers
    )
    assert zero.status_code == 422
    assert zero.json()["details"][0]["code"] == "value_too_small"

    unknown_plan = await async_client.post(
        f"/v1/orgs/{org_id}/billing/plan-template", json={"template_id": "platinum"}, headers=headers
    )
    assert unknown_plan.status_code == 422


@pytest.mark.asyncio
async def test_importing_seat_holders_into_full_pool_returns_409(async_client: AsyncClient) -> None:
    headers = auth_headers()
    org_id = await _create_org(async_client, headers)
    await async_client.post(f"/v1/orgs/{org_id}/billing/ensure", headers=headers)
    for _ in range(5):
        await _add_member(async_client, org_id, headers, seatType="sponsored")

    payload = {"display_name": MemberFactory.create()["display_name"], "status": "active", "seatType": "sponsored"}
    refused = await async_client.post(f"/v1/orgs/{org_id}/members", json=payload, headers=headers)

    assert refused.status_code == 409
    assert refused.json()["details"][0]["code"] == "no_seats_remaining"
    usage = (await async_client.get(f"/v1/orgs/{org_id}/billing/usage", headers=headers)).json()
    assert (usage["sponsored_used"], usage["sponsored_total"]) == (5, 5)
