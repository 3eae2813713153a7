"""
HTTP API Tests.

Drives the counter workflow through the v1 routes and checks the error
envelope for each error category.
"""

from decimal import Decimal

import pytest

from poultry_backend.app.core.config import OverpaymentPolicy, Settings
from poultry_backend.app.main import log_startup_policies

OPERATOR = {"X-Operator": "cashier-7"}


async def setup_sale_day(client):
    customer = (await client.post(
        "/v1/customers", json={"customer_name": "Hotel Zaytoun", "phone_number": "0599111222"}, headers=OPERATOR
    )).json()
    truck = (await client.post(
        "/v1/trucks", json={"truck_number": "TRK-900", "driver_name": "Omar"}, headers=OPERATOR
    )).json()
    load = (await client.post(
        "/v1/truck-loads",
        json={"truck_id": truck["id"], "load_date": "2024-03-15", "gross_weight": "500", "cages_count": 20},
        headers=OPERATOR,
    )).json()
    return customer, truck, load


@pytest.mark.asyncio
async def test_root(client):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.json()["docs"] == "/docs"


@pytest.mark.asyncio
async def test_counter_workflow(client):
    customer, truck, load = await setup_sale_day(client)
    assert Decimal(customer["total_debt"]) == Decimal("0")
    assert load["is_weight_valid"] is True
    assert Decimal(load["efficiency"]) == Decimal("100")

    # Scale reading 110 kg with 4 cages of 2.5 kg -> 100 kg net
    response = await client.post("/v1/invoices", json={
        "customer_id": customer["id"],
        "truck_load_id": load["id"],
        "gross_weight": "110",
        "cages_count": 4,
        "cage_weight": "2.5",
        "unit_price": "7.50",
    }, headers=OPERATOR)
    assert response.status_code == 201
    sale = response.json()
    assert Decimal(sale["invoice"]["sold_weight"]) == Decimal("100")
    assert Decimal(sale["invoice"]["net_amount"]) == Decimal("750.00")
    assert sale["invoice"]["created_by"] == "cashier-7"
    assert Decimal(sale["truck_load_remaining_weight"]) == Decimal("400")
    assert Decimal(sale["truck_day_sold_weight"]) == Decimal("100")

    response = await client.post(
        "/v1/payments", json={"customer_id": customer["id"], "amount": "250"}, headers=OPERATOR
    )
    assert response.status_code == 201
    assert Decimal(response.json()["balance_after"]) == Decimal("500.00")

    balance = (await client.get(f"/v1/customers/{customer['id']}/balance")).json()
    assert Decimal(balance["balance"]) == Decimal("500.00")

    aging = (await client.get(f"/v1/customers/{customer['id']}/aging")).json()
    assert aging["as_of"] == "2024-03-15"
    assert Decimal(aging["buckets"][0]["amount"]) == Decimal("500.00")

    risk = (await client.get(f"/v1/customers/{customer['id']}/risk")).json()
    assert risk["tier"] == "LOW"

    plan = (await client.get(f"/v1/customers/{customer['id']}/payment-plan", params={"months": 2})).json()
    assert [Decimal(i["amount"]) for i in plan["installments"]] == [Decimal("250.00"), Decimal("250.00")]

    invoices = (await client.get(f"/v1/customers/{customer['id']}/invoices")).json()
    payments = (await client.get(f"/v1/customers/{customer['id']}/payments")).json()
    assert len(invoices) == 1
    assert len(payments) == 1

    fetched = (await client.get(f"/v1/truck-loads/{load['id']}")).json()
    assert fetched["status"] == "PARTIALLY_SOLD"


@pytest.mark.asyncio
async def test_reconciliation_routes(client):
    customer, truck, load = await setup_sale_day(client)
    await client.post("/v1/invoices", json={
        "customer_id": customer["id"], "truck_load_id": load["id"], "sold_weight": "480", "unit_price": "5",
    }, headers=OPERATOR)

    day_url = f"/v1/reconciliations/{truck['id']}/2024-03-15"
    record = (await client.get(day_url)).json()
    assert record["status"] == "OPEN"
    assert Decimal(record["loaded_weight"]) == Decimal("500")

    closed = (await client.post(f"{day_url}/close", json={"declared_waste": "10"}, headers=OPERATOR)).json()
    assert closed["status"] == "VARIANCE"
    assert closed["requires_review"] is True
    assert Decimal(closed["variance"]) == Decimal("10")

    response = await client.post(f"{day_url}/reopen", json={"reason": "late sale slip"}, headers=OPERATOR)
    assert response.status_code == 200
    assert response.json()["status"] == "UNDER_REVIEW"

    await client.post(f"{day_url}/sales", json={"sold_weight": "10"}, headers=OPERATOR)
    closed = (await client.post(f"{day_url}/close", json={"declared_waste": "10"}, headers=OPERATOR)).json()
    assert closed["status"] == "BALANCED"

    logs = (await client.get(
        "/v1/admin/ops/audit-logs", params={"action": "RECONCILIATION_REOPENED"}
    )).json()
    assert len(logs) == 1
    assert logs[0]["actor"] == "cashier-7"
    assert logs[0]["reason"] == "late sale slip"


@pytest.mark.asyncio
async def test_debt_summary_and_filters(client):
    customer, truck, load = await setup_sale_day(client)
    await client.post("/v1/customers", json={"customer_name": "Paid Up Grill"})
    await client.post("/v1/invoices", json={
        "customer_id": customer["id"], "truck_load_id": load["id"], "sold_weight": "20", "unit_price": "6",
    })

    summary = (await client.get("/v1/customers/debt-summary")).json()
    assert Decimal(summary["total_debt"]) == Decimal("120.00")
    assert summary["customers_with_debt"] == 1

    listing = (await client.get("/v1/customers", params={"with_debt_only": "true"})).json()
    assert listing["total"] == 1
    assert listing["customers"][0]["customer_name"] == "Hotel Zaytoun"


@pytest.mark.asyncio
async def test_debt_adjustment_route(client):
    customer, _, _ = await setup_sale_day(client)

    response = await client.post(
        f"/v1/customers/{customer['id']}/adjustments",
        json={"amount": "35.00", "reason": "crate deposit"},
        headers=OPERATOR,
    )

    assert response.status_code == 201
    body = response.json()
    assert Decimal(body["balance_after"]) == Decimal("35.00")
    assert body["created_by"] == "cashier-7"


@pytest.mark.asyncio
async def test_aging_recompute_route(client):
    await setup_sale_day(client)

    response = await client.post("/v1/admin/ops/aging-recompute", json={"repair_balances": True})

    assert response.status_code == 200
    assert response.json() == {"processed": 1, "drifted": [], "repaired": [], "cancelled": False}


@pytest.mark.asyncio
async def test_operator_defaults_to_system(client):
    await client.post("/v1/customers", json={"customer_name": "Walk-in"})

    logs = (await client.get("/v1/admin/ops/audit-logs", params={"action": "CUSTOMER_CREATED"})).json()

    assert logs[0]["actor"] == "system"


@pytest.mark.asyncio
async def test_not_found_envelope(client):
    response = await client.get("/v1/customers/9999")

    assert response.status_code == 404
    body = response.json()
    assert body["error_code"] == "ERR_NOT_FOUND_001"
    assert body["category"] == "validation"


@pytest.mark.asyncio
async def test_over_allocation_envelope(client):
    customer, _, load = await setup_sale_day(client)

    response = await client.post("/v1/invoices", json={
        "customer_id": customer["id"], "truck_load_id": load["id"], "sold_weight": "500.001", "unit_price": "1",
    })

    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "ERR_RECON_002"
    assert body["details"]["scope"] == "truck load"


@pytest.mark.asyncio
async def test_overpayment_is_a_policy_error(client):
    customer, _, _ = await setup_sale_day(client)

    response = await client.post("/v1/payments", json={"customer_id": customer["id"], "amount": "10"})

    assert response.status_code == 422
    assert response.json()["category"] == "policy"


@pytest.mark.asyncio
async def test_request_validation_envelope(client):
    customer, _, load = await setup_sale_day(client)

    missing_weight = await client.post("/v1/invoices", json={
        "customer_id": customer["id"], "truck_load_id": load["id"], "unit_price": "5",
    })
    negative_price = await client.post("/v1/invoices", json={
        "customer_id": customer["id"], "truck_load_id": load["id"], "sold_weight": "1", "unit_price": "-5",
    })
    blank_reason = await client.post(
        f"/v1/reconciliations/{load['truck_id']}/2024-03-15/reopen", json={"reason": ""}
    )

    for response in (missing_weight, negative_price, blank_reason):
        assert response.status_code == 422
        assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_sub_cent_money_fails_request_validation(client):
    customer, _, load = await setup_sale_day(client)

    payment = await client.post("/v1/payments", json={"customer_id": customer["id"], "amount": "100.005"})
    adjustment = await client.post(
        f"/v1/customers/{customer['id']}/adjustments", json={"amount": "0.001", "reason": "rounding"}
    )
    invoice = await client.post("/v1/invoices", json={
        "customer_id": customer["id"], "truck_load_id": load["id"], "sold_weight": "10", "unit_price": "5.555",
    })

    for response in (payment, adjustment, invoice):
        assert response.status_code == 422
        assert response.json()["error_code"] == "ERR_VALIDATION"
    balance = (await client.get(f"/v1/customers/{customer['id']}/balance")).json()
    assert Decimal(balance["balance"]) == Decimal("0")


@pytest.mark.asyncio
async def test_bulk_invoice_route(client):
    customer, _, load = await setup_sale_day(client)

    response = await client.post("/v1/invoices/bulk", json={
        "customer_id": customer["id"],
        "truck_load_id": load["id"],
        "lines": [
            {"gross_weight": "110", "cages_count": 4, "cage_weight": "2.5", "unit_price": "7.50"},
            {"gross_weight": "40", "unit_price": "6.00", "discount_percentage": "50"},
        ],
    }, headers=OPERATOR)

    assert response.status_code == 201
    sale = response.json()
    assert Decimal(sale["invoice"]["sold_weight"]) == Decimal("140")
    assert Decimal(sale["invoice"]["net_amount"]) == Decimal("870.00")
    assert [Decimal(item["net_weight"]) for item in sale["items"]] == [Decimal("100"), Decimal("40")]
    assert Decimal(sale["balance_after"]) == Decimal("870.00")
    assert Decimal(sale["truck_load_remaining_weight"]) == Decimal("360")

    items = (await client.get(f"/v1/invoices/{sale['invoice']['id']}/items")).json()
    assert [item["line_number"] for item in items] == [1, 2]


@pytest.mark.asyncio
async def test_bulk_invoice_line_errors(client):
    customer, _, load = await setup_sale_day(client)

    no_lines = await client.post("/v1/invoices/bulk", json={
        "customer_id": customer["id"], "truck_load_id": load["id"], "lines": [],
    })
    heavy_cages = await client.post("/v1/invoices/bulk", json={
        "customer_id": customer["id"],
        "truck_load_id": load["id"],
        "lines": [
            {"gross_weight": "50", "unit_price": "5"},
            {"gross_weight": "20", "cages_count": 10, "cage_weight": "2", "unit_price": "5"},
        ],
    })

    assert no_lines.status_code == 422
    assert no_lines.json()["error_code"] == "ERR_VALIDATION"
    assert heavy_cages.status_code == 422
    assert heavy_cages.json()["details"]["line"] == 2
    assert (await client.get(f"/v1/customers/{customer['id']}/invoices")).json() == []


@pytest.mark.asyncio
async def test_invoice_items_unknown_invoice(client):
    response = await client.get("/v1/invoices/9999/items")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_customer_search_and_pages(client):
    for name, phone in [
        ("Al Amal Grill", "0599000011"),
        ("Amal Sweets", "0599000012"),
        ("Blue Coast Hotel", "0599000013"),
        ("Cedar Kitchen", "0568111222"),
    ]:
        await client.post("/v1/customers", json={"customer_name": name, "phone_number": phone})

    by_name = (await client.get("/v1/customers", params={"search": "amal"})).json()
    assert [c["customer_name"] for c in by_name["customers"]] == ["Al Amal Grill", "Amal Sweets"]
    assert by_name["total"] == 2

    by_phone = (await client.get("/v1/customers", params={"search": "0568"})).json()
    assert [c["customer_name"] for c in by_phone["customers"]] == ["Cedar Kitchen"]

    second_page = (await client.get("/v1/customers", params={"page": 2, "page_size": 3})).json()
    assert [c["customer_name"] for c in second_page["customers"]] == ["Cedar Kitchen"]
    assert second_page["total"] == 4
    assert second_page["page"] == 2
    assert second_page["page_size"] == 3

    invalid = await client.get("/v1/customers", params={"page": 0})
    assert invalid.status_code == 422


def test_startup_logs_defaulted_overpayment_policy(mocker):
    logger = mocker.patch("poultry_backend.app.main.logger")

    log_startup_policies(Settings(_env_file=None))

    logger.warning.assert_called_once()
    assert "REJECT" in logger.warning.call_args.args
    assert "REJECT" in logger.info.call_args.args


def test_startup_logs_configured_overpayment_policy(mocker):
    logger = mocker.patch("poultry_backend.app.main.logger")

    log_startup_policies(Settings(_env_file=None, overpayment_policy=OverpaymentPolicy.ALLOW_CREDIT))

    logger.warning.assert_not_called()
    assert "ALLOW_CREDIT" in logger.info.call_args.args
