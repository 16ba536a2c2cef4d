from datetime import date

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.database import get_db
from main import app


@pytest.fixture
def client_app(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


def _headers(user):
    return {"X-User-Id": str(user.id)}


def _client(client_app):
    return AsyncClient(transport=ASGITransport(app=client_app), base_url="http://test")


@pytest.mark.asyncio
async def test_budget_lifecycle(client_app, user, categories, add_transaction):
    async with _client(client_app) as ac:
        r = await ac.post("/api/v1/budgets/", headers=_headers(user), json={
            "period_type": "monthly",
            "start_date": "2024-01-01",
            "rollover_unused": True,
            "categories": [
                {"category_id": str(categories["groceries"].id), "allocated_amount": "300.00"},
                {"category_id": str(categories["salary"].id), "allocated_amount": "3000.00"},
            ],
        })
        assert r.status_code == 201
        body = r.json()
        budget_id = body["id"]
        assert body["status"] == "draft"
        assert body["end_date"] == "2024-01-31"
        assert body["name"] == "January 2024 Budget"
        assert len(body["budget_categories"]) == 2

        r = await ac.post(f"/api/v1/budgets/{budget_id}/approve", headers=_headers(user))
        assert r.status_code == 200
        assert r.json()["status"] == "active"

        r = await ac.post(f"/api/v1/budgets/{budget_id}/approve", headers=_headers(user))
        assert r.status_code == 409

        add_transaction("200.00", date(2024, 1, 10), category=categories["groceries"])
        r = await ac.post(f"/api/v1/budgets/{budget_id}/recalculate", headers=_headers(user))
        assert r.status_code == 200

        r = await ac.get(
            f"/api/v1/budgets/{budget_id}/performance",
            headers=_headers(user),
            params={"as_of": "2024-01-31"},
        )
        assert r.status_code == 200
        summary = r.json()
        assert summary["period"]["duration_days"] == 31
        assert float(summary["expenses"]["actual"]) == 200.0
        assert float(summary["period"]["progress_percentage"]) == 100.0

        r = await ac.post(f"/api/v1/budgets/{budget_id}/next-period", headers=_headers(user))
        assert r.status_code == 201
        following = r.json()
        assert following["start_date"] == "2024-02-01"
        assert following["end_date"] == "2024-02-29"
        assert float(following["planned_expenses"]) == 400.0

        r = await ac.post(f"/api/v1/budgets/{budget_id}/next-period", headers=_headers(user))
        assert r.status_code == 409


@pytest.mark.asyncio
async def test_invalid_input_and_missing_budget(client_app, user):
    async with _client(client_app) as ac:
        r = await ac.post("/api/v1/budgets/", headers=_headers(user), json={
            "period_type": "custom",
            "start_date": "2024-02-01",
            "end_date": "2024-01-01",
        })
        assert r.status_code == 400

        r = await ac.post("/api/v1/budgets/", headers=_headers(user), json={
            "period_type": "quarterly",
            "start_date": "2024-01-01",
        })
        assert r.status_code == 422

        r = await ac.get("/api/v1/budgets/00000000-0000-0000-0000-000000000000", headers=_headers(user))
        assert r.status_code == 404


@pytest.mark.asyncio
async def test_requests_without_user_are_rejected(client_app):
    async with _client(client_app) as ac:
        r = await ac.get("/api/v1/budgets/", headers={"X-User-Id": "not-a-uuid"})
        assert r.status_code == 401

        r = await ac.get("/api/v1/budgets/")
        assert r.status_code in (401, 422)


@pytest.mark.asyncio
async def test_health():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        r = await ac.get("/health")
        assert r.status_code == 200
        assert r.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_allocation_changes(client_app, user, categories, add_transaction, service, make_budget):
    budget = make_budget(date(2024, 1, 1), [(categories["groceries"], "300"), (categories["dining"], "100")])
    service.approve(budget, user.id)
    add_transaction("150.00", date(2024, 1, 5), category=categories["groceries"])
    service.recalculate_actuals(budget)
    groceries_id = str(categories["groceries"].id)
    dining_id = str(categories["dining"].id)

    async with _client(client_app) as ac:
        r = await ac.get("/api/v1/budgets/current", headers=_headers(user), params={"as_of": "2024-01-15"})
        assert r.status_code == 200
        assert [b["id"] for b in r.json()] == [str(budget.id)]
        groceries = next(c for c in r.json()[0]["budget_categories"] if c["category_id"] == groceries_id)
        assert float(groceries["amount_until_alert"]) == 90.0

        r = await ac.put(
            f"/api/v1/budgets/{budget.id}/categories/{groceries_id}",
            headers=_headers(user),
            json={"allocated_amount": "350.00", "reason": "Family visit"},
        )
        assert r.status_code == 200
        assert float(r.json()["allocated_amount"]) == 350.0
        assert r.json()["notes"].endswith("Adjusted from 300.00 to 350.00: Family visit")

        r = await ac.post(f"/api/v1/budgets/{budget.id}/transfer", headers=_headers(user), json={
            "from_category_id": groceries_id,
            "to_category_id": dining_id,
            "amount": "500.00",
        })
        assert r.status_code == 200
        assert float(r.json()["transferred"]) == 200.0
        assert float(r.json()["budget"]["planned_expenses"]) == 450.0

        r = await ac.post(f"/api/v1/budgets/{budget.id}/previous-period", headers=_headers(user))
        assert r.status_code == 200

        r = await ac.get(
            f"/api/v1/budgets/{budget.id}/categories/{groceries_id}/performance",
            headers=_headers(user),
            params={"as_of": "2024-01-16"},
        )
        assert r.status_code == 200
        assert r.json()["projection"]["days_remaining"] == 16

        r = await ac.put(
            f"/api/v1/budgets/{budget.id}/categories/{categories['rent'].id}",
            headers=_headers(user),
            json={"allocated_amount": "10"},
        )
        assert r.status_code == 404
