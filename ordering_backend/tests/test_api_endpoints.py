"""
API endpoint tests.

Dashboard (tenant staff) and driver surfaces, the error envelope and the
tenant guards.
"""

import pytest
from decimal import Decimal

from ordering_backend.app.domain.routing.route_assignment import RouteAssignmentService
from ordering_backend.app.models.enums import UserRole
from ordering_backend.app.models.order_enums import OrderStatus


API = "/v1"


# TEST 1: Dashboard order transitions
@pytest.mark.asyncio
async def test_dashboard_approve(client, db_session, staff_headers, make_order):
    order = await make_order(status=OrderStatus.PENDING, total=90)

    response = await client.post(
        f"{API}/tenants/acme/orders/{order.id}/approve",
        json={"invoice_number": "INV-9"},
        headers=staff_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["ledger_synced"] is True
    assert body["order"]["status"] == "approved"
    assert body["order"]["invoice_number"] == "INV-9"
    assert "X-Correlation-ID" in response.headers


@pytest.mark.asyncio
async def test_dashboard_invalid_transition(client, staff_headers, make_order):
    order = await make_order(status=OrderStatus.DELIVERED)

    response = await client.post(f"{API}/tenants/acme/orders/{order.id}/reject", headers=staff_headers)

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "ERR_INVALID_TRANSITION"


# TEST 2: Tenant and role guards
@pytest.mark.asyncio
async def test_unknown_tenant_slug(client, staff_headers, make_order):
    order = await make_order(status=OrderStatus.PENDING)

    response = await client.post(f"{API}/tenants/nowhere/orders/{order.id}/approve", headers=staff_headers)

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "ERR_NOT_FOUND"


@pytest.mark.asyncio
async def test_staff_of_other_tenant_forbidden(client, other_tenant, staff_headers, make_order):
    order = await make_order(status=OrderStatus.PENDING, tenant_id=other_tenant.id)

    response = await client.post(f"{API}/tenants/globex/orders/{order.id}/approve", headers=staff_headers)

    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_FORBIDDEN"


@pytest.mark.asyncio
async def test_driver_cannot_use_dashboard(client, driver_headers, make_order):
    order = await make_order(status=OrderStatus.PENDING)

    response = await client.post(f"{API}/tenants/acme/orders/{order.id}/approve", headers=driver_headers)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_missing_token(client, make_order):
    order = await make_order(status=OrderStatus.PENDING)

    response = await client.post(f"{API}/tenants/acme/orders/{order.id}/approve")

    assert response.status_code in (401, 403)
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_driver_without_tenant_forbidden(client, make_user, headers_for):
    freelancer = await make_user("driver_fred", UserRole.DRIVER)

    response = await client.post(f"{API}/driver/routes/1/start", headers=headers_for(freelancer))

    assert response.status_code == 403


# TEST 3: Route creation
@pytest.mark.asyncio
async def test_create_route(client, driver, staff_headers, make_order):
    first, second = await make_order(), await make_order()

    response = await client.post(
        f"{API}/tenants/acme/routes",
        json={"driver_id": driver.id, "order_ids": [second.id, first.id], "planned_date": "2026-10-19"},
        headers=staff_headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["route"]["status"] == "planned"
    assert body["route"]["total_stops"] == 2
    assert [s["order_id"] for s in body["stops"]] == [second.id, first.id]
    assert [s["sequence_order"] for s in body["stops"]] == [1, 2]


@pytest.mark.asyncio
async def test_create_route_conflict(client, driver, staff_headers, make_order, make_route):
    order = await make_order()
    await make_route([order.id])

    response = await client.post(
        f"{API}/tenants/acme/routes",
        json={"driver_id": driver.id, "order_ids": [order.id], "planned_date": "2026-10-19"},
        headers=staff_headers,
    )

    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "ERR_CLAIM_CONFLICT"
    assert body["details"]["conflicts"] == {str(order.id): "status_processing"}


@pytest.mark.asyncio
async def test_create_route_empty_orders(client, driver, staff_headers):
    response = await client.post(
        f"{API}/tenants/acme/routes",
        json={"driver_id": driver.id, "order_ids": [], "planned_date": "2026-10-19"},
        headers=staff_headers,
    )

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


# TEST 4: Driver flow
@pytest.mark.asyncio
async def test_driver_route_flow(client, db_session, driver_headers, make_order, make_route):
    delivered, failed = await make_order(), await make_order()
    route = await make_route([delivered.id, failed.id])

    response = await client.post(f"{API}/driver/routes/{route.id}/start", headers=driver_headers)
    assert response.status_code == 200
    assert response.json()["route"]["status"] == "in_progress"

    response = await client.post(f"{API}/driver/routes/{route.id}/start", headers=driver_headers)
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_INVALID_STATE"

    s1, s2 = await RouteAssignmentService.get_stops(db_session, route.id)

    response = await client.post(
        f"{API}/driver/stops/{s1.id}/outcome", json={"outcome": "delivered"}, headers=driver_headers
    )
    assert response.status_code == 200
    assert response.json()["stop"]["status"] == "delivered"

    response = await client.post(
        f"{API}/driver/stops/{s2.id}/outcome",
        json={"outcome": "failed", "failure_reason": "Nobody home"},
        headers=driver_headers,
    )
    assert response.json()["stop"]["failure_reason"] == "Nobody home"

    response = await client.post(f"{API}/driver/routes/{route.id}/finish", headers=driver_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["route"]["status"] == "finished"
    assert body["already_finished"] is False
    assert [s["order_status"] for s in body["stops"]] == ["delivered", "approved"]
    assert [s["resolution"] for s in body["stops"]] == ["applied", "applied"]

    response = await client.post(f"{API}/driver/routes/{route.id}/finish", headers=driver_headers)
    assert response.status_code == 200
    assert response.json()["already_finished"] is True


@pytest.mark.asyncio
async def test_other_driver_cannot_finish(client, driver_headers, other_driver_headers, make_order, make_route):
    route = await make_route([(await make_order()).id])
    await client.post(f"{API}/driver/routes/{route.id}/start", headers=driver_headers)

    response = await client.post(f"{API}/driver/routes/{route.id}/finish", headers=other_driver_headers)

    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_FORBIDDEN"


@pytest.mark.asyncio
async def test_dashboard_finish(client, staff_headers, driver_headers, make_order, make_route):
    route = await make_route([(await make_order()).id])
    await client.post(f"{API}/driver/routes/{route.id}/start", headers=driver_headers)

    response = await client.post(f"{API}/tenants/acme/routes/{route.id}/finish", headers=staff_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["route"]["status"] == "finished"
    assert body["stops"][0]["order_status"] == "approved"


# TEST 5: Finance
@pytest.mark.asyncio
async def test_office_payment_sequence(client, customer, staff_headers, make_ledger):
    await make_ledger(credit_limit=500, current_debt=300)
    url = f"{API}/tenants/acme/finance/payments"

    response = await client.post(url, json={"customer_id": customer.id, "amount": 400}, headers=staff_headers)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_AMOUNT_EXCEEDS_DEBT"

    response = await client.post(url, json={"customer_id": customer.id, "amount": 300}, headers=staff_headers)
    assert response.status_code == 201
    assert response.json()["payment"]["payment_method"] == "office"

    response = await client.post(url, json={"customer_id": customer.id, "amount": 1}, headers=staff_headers)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_AMOUNT_EXCEEDS_DEBT"


@pytest.mark.asyncio
async def test_office_payments_in_cents(client, customer, staff_headers, make_ledger):
    await make_ledger(credit_limit=500, current_debt=Decimal("0.30"))
    url = f"{API}/tenants/acme/finance/payments"

    response = await client.post(url, json={"customer_id": customer.id, "amount": 0.1}, headers=staff_headers)
    assert response.status_code == 201
    response = await client.post(url, json={"customer_id": customer.id, "amount": 0.2}, headers=staff_headers)
    assert response.status_code == 201
    assert response.json()["payment"]["amount"] == 0.2

    response = await client.get(f"{API}/tenants/acme/customers/{customer.id}/credit", headers=staff_headers)
    assert response.json()["credit"]["current_debt"] == 0

    response = await client.post(url, json={"customer_id": customer.id, "amount": 0.015}, headers=staff_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_payment_amount_must_be_positive(client, customer, staff_headers, make_ledger):
    await make_ledger(current_debt=300)

    response = await client.post(
        f"{API}/tenants/acme/finance/payments",
        json={"customer_id": customer.id, "amount": 0},
        headers=staff_headers,
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_credit_read_and_update(client, customer, staff_headers, make_ledger):
    await make_ledger(credit_limit=500, current_debt=300)
    base = f"{API}/tenants/acme/customers/{customer.id}"

    response = await client.get(f"{base}/credit", headers=staff_headers)
    assert response.status_code == 200
    credit = response.json()["credit"]
    assert credit["available"] == 200
    assert credit["status"] == "active"

    response = await client.put(f"{base}/credit-limit", json={"credit_limit": 800}, headers=staff_headers)
    assert response.status_code == 200
    assert response.json()["credit"]["available"] == 500

    response = await client.put(f"{base}/credit-limit", json={"credit_limit": -10}, headers=staff_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_credit_for_unknown_relationship(client, customer, staff_headers):
    response = await client.get(f"{API}/tenants/acme/customers/{customer.id}/credit", headers=staff_headers)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_route_collections(client, db_session, staff_headers, driver_headers, make_ledger, make_order, make_route):
    await make_ledger(current_debt=200)
    first, second = await make_order(), await make_order()
    route = await make_route([first.id, second.id])
    await client.post(f"{API}/driver/routes/{route.id}/start", headers=driver_headers)

    s1, s2 = await RouteAssignmentService.get_stops(db_session, route.id)

    response = await client.post(f"{API}/driver/stops/{s1.id}/payments", json={"amount": 40}, headers=driver_headers)
    assert response.status_code == 201
    assert response.json()["payment"]["payment_method"] == "cash"
    await client.post(f"{API}/driver/stops/{s2.id}/payments", json={"amount": 25.5}, headers=driver_headers)

    response = await client.get(f"{API}/tenants/acme/routes/{route.id}/collections", headers=staff_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["total_collected"] == 65.5
    assert len(body["payments"]) == 2


# TEST 6: Health
@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["redis"] == "up"
