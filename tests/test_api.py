"""HTTP surface, exercised end to end against a SQLite database."""

import uuid
from decimal import Decimal

import pytest


async def create_creator(client, name="Alice Sharma", **extra):
    response = await client.post("/api/v1/creators", json={"display_name": name, **extra})
    assert response.status_code == 201
    return response.json()


def finalize_body(order_id, **extra):
    body = {
        "order_id": order_id,
        "user_id": str(uuid.uuid4()),
        "amount": "1500.00",
        "tier": "pro",
        "paid_at": "2026-06-10T12:00:00+00:00",
    }
    body.update(extra)
    return body


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["checks"]["database"] == "connected"


class TestCreatorsApi:

    @pytest.mark.asyncio
    async def test_create_generates_referral_code(self, client):
        creator = await create_creator(client)

        assert creator["referral_code"].startswith("ALIC")
        assert len(creator["referral_code"]) == 8
        assert creator["lifetime_paid_users"] == 0

    @pytest.mark.asyncio
    async def test_duplicate_referral_code(self, client):
        await create_creator(client, referral_code="alice")

        response = await client.post(
            "/api/v1/creators", json={"display_name": "Other Alice", "referral_code": "ALICE"}
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_commission_override_and_stats(self, client):
        creator = await create_creator(client, referral_code="ALICE")
        operator = str(uuid.uuid4())

        response = await client.put(
            f"/api/v1/creators/{creator['id']}/commission-override",
            json={"custom_commission_rate": "0.15"},
            headers={"X-Operator-Id": operator},
        )
        assert response.status_code == 200
        assert Decimal(response.json()["custom_commission_rate"]) == Decimal("0.15")

        stats = (await client.get(f"/api/v1/creators/{creator['id']}/stats")).json()
        assert stats["rate_source"] == "custom"
        assert Decimal(stats["current_rate"]) == Decimal("0.15")
        assert stats["users_to_next_tier"] == 500

        logs = (await client.get("/api/v1/reports/audit-logs", params={"action": "SET_OVERRIDE"})).json()
        assert logs["total"] == 1
        assert logs["items"][0]["operator_id"] == operator

    @pytest.mark.asyncio
    async def test_invalid_operator_header(self, client):
        creator = await create_creator(client)

        response = await client.put(
            f"/api/v1/creators/{creator['id']}/commission-override",
            json={"custom_commission_rate": None},
            headers={"X-Operator-Id": "not-a-uuid"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_creator(self, client):
        response = await client.get(f"/api/v1/creators/{uuid.uuid4()}")

        assert response.status_code == 404


class TestPaymentsApi:

    @pytest.mark.asyncio
    async def test_finalize_is_idempotent(self, client):
        creator = await create_creator(client, referral_code="ALICE")
        body = finalize_body("order-1", referral_code="alice")

        first = (await client.post("/api/v1/payments/finalize", json=body)).json()
        second = (await client.post("/api/v1/payments/finalize", json=body)).json()

        assert first["success"] is True
        assert first["already_attributed"] is False
        assert first["creator_id"] == creator["id"]
        assert Decimal(first["commission_amount"]) == Decimal("120.00")
        assert second["already_attributed"] is True
        assert second["attribution_id"] == first["attribution_id"]

        refreshed = (await client.get(f"/api/v1/creators/{creator['id']}")).json()
        assert refreshed["lifetime_paid_users"] == 1
        assert Decimal(refreshed["available_balance"]) == Decimal("120.00")

    @pytest.mark.asyncio
    async def test_get_attribution(self, client):
        await client.post("/api/v1/payments/finalize", json=finalize_body("order-2"))

        found = await client.get("/api/v1/payments/attributions/order-2")
        missing = await client.get("/api/v1/payments/attributions/order-404")

        assert found.status_code == 200
        assert found.json()["creator_id"] is None
        assert found.json()["payment_month"] == "2026-06-01"
        assert missing.status_code == 404


class TestReconciliationApi:

    @pytest.mark.asyncio
    async def test_orphans_and_reconcile_all(self, client, create_creator, create_payment):
        await create_creator("ALICE")
        await create_payment("order-1", user_id=uuid.uuid4(), ref_creator="ALICE")
        await create_payment("order-2", user_id=None)

        orphans = (await client.get("/api/v1/reconciliation/orphans")).json()
        assert orphans["total"] == 2

        outcome = (await client.post("/api/v1/reconciliation/reconcile-all")).json()
        assert outcome["success"] is True
        assert outcome["fixed"] == 1
        assert outcome["failed"] == 1
        assert outcome["errors"][0].startswith("order-2:")

        orphans = (await client.get("/api/v1/reconciliation/orphans")).json()
        assert [o["order_id"] for o in orphans["items"]] == ["order-2"]

    @pytest.mark.asyncio
    async def test_fix_unknown_orphan(self, client):
        response = await client.post("/api/v1/reconciliation/orphans/order-404/fix")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_recalculate_clears_discrepancies(self, client):
        creator = await create_creator(client, referral_code="ALICE")
        await client.post("/api/v1/payments/finalize", json=finalize_body("order-1", referral_code="ALICE"))

        summary = (await client.post("/api/v1/reconciliation/recalculate")).json()
        report = (await client.get(
            "/api/v1/reconciliation/discrepancies", params={"only_mismatched": True}
        )).json()

        assert summary["success"] is True
        assert summary["creators_updated"] == 1
        assert summary["creator_payouts_regenerated"] == 1
        assert report["with_discrepancy"] == 0
        assert report["items"] == []
        refreshed = (await client.get(f"/api/v1/creators/{creator['id']}")).json()
        assert Decimal(refreshed["available_balance"]) == Decimal("120.00")


class TestPayoutsApi:

    @pytest.mark.asyncio
    async def test_list_and_mark_paid(self, client):
        await create_creator(client, referral_code="ALICE")
        await client.post("/api/v1/payments/finalize", json=finalize_body("order-1", referral_code="ALICE"))

        listing = (await client.get("/api/v1/payouts", params={"kind": "creator"})).json()
        assert listing["total"] == 1
        payout = listing["items"][0]
        assert payout["status"] == "pending"

        response = await client.post(f"/api/v1/payouts/creator/{payout['id']}/mark-paid", json={})
        assert response.status_code == 200
        assert response.json()["status"] == "paid"

        again = await client.post(f"/api/v1/payouts/creator/{payout['id']}/mark-paid", json={})
        assert again.status_code == 400

    @pytest.mark.asyncio
    async def test_mark_paid_unknown(self, client):
        response = await client.post(f"/api/v1/payouts/cmo/{uuid.uuid4()}/mark-paid", json={})

        assert response.status_code == 404


class TestReportsApi:

    @pytest.mark.asyncio
    async def test_revenue(self, client):
        await create_creator(client, referral_code="ALICE")
        await client.post("/api/v1/payments/finalize", json=finalize_body("order-1", referral_code="ALICE"))
        await client.post("/api/v1/payments/finalize", json=finalize_body("order-2", amount="500.00"))

        stats = (await client.get("/api/v1/reports/revenue", params={"today": "2026-06-20"})).json()

        assert Decimal(stats["total_revenue"]) == Decimal("2000.00")
        assert Decimal(stats["this_month_revenue"]) == Decimal("2000.00")
        assert Decimal(stats["unattributed_revenue"]) == Decimal("500.00")
        assert Decimal(stats["total_commission"]) == Decimal("120.00")
        months = [m["month"] for m in stats["monthly_breakdown"]]
        assert months == ["2026-01", "2026-02", "2026-03", "2026-04", "2026-05", "2026-06"]
        assert stats["monthly_breakdown"][-1]["payments"] == 2
