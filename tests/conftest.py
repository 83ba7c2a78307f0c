"""Pytest fixtures for testing"""

import pytest
from fastapi.testclient import TestClient

from velocity_optimizer.api import app
from velocity_optimizer.budget import BudgetParams
from velocity_optimizer.calculator import LineOfCreditParams, LoanParams, LocStrategy


@pytest.fixture
def loan() -> LoanParams:
    """300k at 5.5% over 30 years"""
    return LoanParams(principal=300000, annual_rate=5.5, term_years=30)


@pytest.fixture
def budget() -> BudgetParams:
    """6000 income / 4000 expenses, no growth"""
    return BudgetParams(monthly_income=6000, monthly_expenses=4000)


@pytest.fixture
def sweep_loc() -> LineOfCreditParams:
    return LineOfCreditParams(limit=20000, annual_rate=7.0, chunk_size=10000)


@pytest.fixture
def parking_loc() -> LineOfCreditParams:
    return LineOfCreditParams(
        limit=20000,
        annual_rate=7.0,
        chunk_size=10000,
        strategy=LocStrategy.PAYCHECK_PARKING,
    )


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def strategy_payload() -> dict:
    """Request body for the strategy endpoints (default scenario)"""
    return {
        "principal": 300000,
        "annual_rate": 5.5,
        "term_years": 30,
        "monthly_income": 6000,
        "monthly_expenses": 4000,
        "loc_limit": 20000,
        "loc_annual_rate": 7.0,
        "loc_chunk_size": 10000,
    }
