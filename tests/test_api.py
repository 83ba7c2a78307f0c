"""Integration tests for API endpoints"""

import zipfile
from io import BytesIO

from fastapi.testclient import TestClient
from openpyxl import load_workbook

from velocity_optimizer import api
from velocity_optimizer.exceptions import InvalidLoanParameters


def test_health_endpoint(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_compare_endpoint(client: TestClient, strategy_payload: dict):
    response = client.post("/v1/strategies:compare", json=strategy_payload)

    assert response.status_code == 200
    data = response.json()
    assert abs(data["base_payment"] - 1703.37) < 0.01
    assert abs(data["extra_payment_capacity"] - 296.63) < 0.01

    traditional = data["traditional"]
    assert traditional["status"] == "paid_off"
    assert traditional["payoff_months"] == 360
    assert traditional["interest_savings_vs_traditional"] == 0

    for name in ("extra_payment", "line_of_credit"):
        summary = data[name]
        assert summary["strategy"] == name
        assert summary["status"] == "paid_off"
        assert summary["payoff_months"] < 360
        assert summary["interest_savings_vs_traditional"] > 0
        assert summary["months_saved_vs_traditional"] > 0

    assert data["line_of_credit"]["initial_chunk"] == 10000


def test_schedule_endpoint_traditional(client: TestClient, strategy_payload: dict):
    response = client.post("/v1/strategies/traditional:schedule", json=strategy_payload)

    assert response.status_code == 200
    data = response.json()
    assert len(data["records"]) == 360
    assert len(data["balances"]) == 361
    assert data["balances"][0] == 300000
    assert data["loc_balances"] == []
    assert set(data["records"][0]) == {
        "month_index",
        "calendar_label",
        "payment",
        "interest",
        "principal",
        "cumulative_interest",
        "balance",
    }
    assert data["records"][0]["calendar_label"] == "Year 1, Month 1"


def test_schedule_endpoint_line_of_credit_parking(client: TestClient, strategy_payload: dict):
    payload = dict(strategy_payload, loc_strategy="paycheck_parking", start_date="2027-03-01")
    response = client.post("/v1/strategies/line_of_credit:schedule", json=payload)

    assert response.status_code == 200
    data = response.json()
    first = data["records"][0]
    assert first["calendar_label"] == "Mar 2027"
    assert first["amount_deposited"] == 6000
    assert first["chunk_applied"] is False
    assert len(data["loc_balances"]) == len(data["balances"])
    assert any(r["chunk_applied"] for r in data["records"])
    assert data["summary"]["strategy"] == "line_of_credit"


def test_schedule_endpoint_unknown_strategy(client: TestClient, strategy_payload: dict):
    response = client.post("/v1/strategies/snowball:schedule", json=strategy_payload)
    assert response.status_code == 422


def test_invalid_loc_strategy_rejected(client: TestClient, strategy_payload: dict):
    payload = dict(strategy_payload, loc_strategy="snowball")
    response = client.post("/v1/strategies:compare", json=payload)
    assert response.status_code == 422


def test_chunk_larger_than_principal_is_capped(client: TestClient, strategy_payload: dict):
    """The opening transfer is capped at the principal, as in the engine"""
    payload = dict(strategy_payload, principal=5000, term_years=5, loc_chunk_size=10000)
    response = client.post("/v1/strategies:compare", json=payload)

    assert response.status_code == 200
    loc = response.json()["line_of_credit"]
    assert loc["initial_chunk"] == 5000
    assert loc["status"] == "paid_off"
    assert loc["chunks_applied"] == 0


def test_negative_principal_rejected(client: TestClient, strategy_payload: dict):
    payload = dict(strategy_payload, principal=-1)
    response = client.post("/v1/strategies:compare", json=payload)
    assert response.status_code == 422


def test_engine_validation_error_maps_to_400(client: TestClient, strategy_payload: dict, monkeypatch):
    def _reject(*args, **kwargs):
        raise InvalidLoanParameters("principal must be greater than 0")

    monkeypatch.setattr(api, "compare_strategies", _reject)
    response = client.post("/v1/strategies:compare", json=strategy_payload)

    assert response.status_code == 400
    assert response.json()["detail"] == "principal must be greater than 0"


def test_non_convergent_result_is_returned(client: TestClient, strategy_payload: dict):
    payload = dict(strategy_payload, monthly_income=3000, monthly_expenses=2500, loc_strategy="paycheck_parking")
    response = client.post("/v1/strategies:compare", json=payload)

    assert response.status_code == 200
    loc = response.json()["line_of_credit"]
    assert loc["status"] == "non_convergent"
    assert loc["payoff_months"] == 360
    assert loc["limit_breaches"] > 0


def test_projection_endpoint(client: TestClient):
    response = client.post(
        "/v1/budget:projection",
        json={
            "monthly_income": 6000,
            "monthly_expenses": 4000,
            "growth_enabled": True,
            "income_growth_rate": 3,
            "expense_growth_rate": 2,
        },
    )

    assert response.status_code == 200
    years = response.json()["years"]
    assert len(years) == 41
    assert years[0] == {"year": 0, "income": 6000, "expenses": 4000, "available": 2000}
    assert abs(years[12]["income"] - 6000 * 1.03 ** 12) < 0.01


def test_projection_rejects_growth_floor(client: TestClient):
    response = client.post(
        "/v1/budget:projection",
        json={"monthly_income": 6000, "monthly_expenses": 4000, "income_growth_rate": -100},
    )
    assert response.status_code == 422


def test_export_zip(client: TestClient, strategy_payload: dict):
    response = client.post("/v1/strategies:export-zip", json=strategy_payload)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert float(response.headers["x-total-interest-traditional"]) > float(
        response.headers["x-total-interest-line-of-credit"]
    )

    with zipfile.ZipFile(BytesIO(response.content)) as zf:
        names = sorted(zf.namelist())
        assert names == [
            "extra_payment_schedule.xlsx",
            "line_of_credit_schedule.xlsx",
            "traditional_schedule.xlsx",
        ]
        workbook = load_workbook(BytesIO(zf.read("traditional_schedule.xlsx")))

    sheet = workbook["Schedule"]
    assert sheet.max_row == 361
    assert sheet.cell(row=1, column=1).value == "Month Index"
    assert sheet.cell(row=2, column=2).value == "Year 1, Month 1"


def test_row_limit(client: TestClient, strategy_payload: dict, monkeypatch):
    monkeypatch.setattr(api, "MAX_SCHEDULE_ROWS", 100)
    response = client.post("/v1/strategies/traditional:schedule", json=strategy_payload)
    assert response.status_code == 413


def test_api_key_required_when_configured(client: TestClient, strategy_payload: dict, monkeypatch):
    monkeypatch.setattr(api, "API_KEY", "secret")

    response = client.post("/v1/strategies:compare", json=strategy_payload)
    assert response.status_code == 401

    response = client.post("/v1/strategies:compare", json=strategy_payload, headers={"x-api-key": "secret"})
    assert response.status_code == 200
