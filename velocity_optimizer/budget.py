from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Tuple

from velocity_optimizer.exceptions import InvalidBudgetParameters


logger = logging.getLogger(__name__)

# Projections always cover at least this many years, even for short loans.
MIN_PROJECTION_YEARS = 40


@dataclass(frozen=True)
class BudgetParams:
    """Household monthly budget.

    Fields:
        monthly_income: take-home income per month.
        monthly_expenses: living expenses per month (mortgage excluded).
        growth_enabled: compound income/expenses once per year when True.
        income_growth_rate: annual income growth, percent (3 means 3%).
        expense_growth_rate: annual expense growth, percent.
    """

    monthly_income: float
    monthly_expenses: float
    growth_enabled: bool = False
    income_growth_rate: float = 0.0
    expense_growth_rate: float = 0.0

    @property
    def available(self) -> float:
        # May be negative; amortizers treat that as zero extra capacity.
        return self.monthly_income - self.monthly_expenses


@dataclass(frozen=True)
class YearlyBudget:
    year: int
    income: float
    expenses: float
    available: float


@dataclass(frozen=True)
class MonthlyBudget:
    income: float
    expenses: float
    available: float


def validate_budget(budget: BudgetParams) -> None:
    values = (
        budget.monthly_income,
        budget.monthly_expenses,
        budget.income_growth_rate,
        budget.expense_growth_rate,
    )
    if not all(math.isfinite(v) for v in values):
        raise InvalidBudgetParameters("budget parameters must be finite numbers")
    if budget.monthly_income < 0 or budget.monthly_expenses < 0:
        raise InvalidBudgetParameters("monthly_income and monthly_expenses must be >= 0")
    if budget.income_growth_rate <= -100 or budget.expense_growth_rate <= -100:
        raise InvalidBudgetParameters("growth rates must be greater than -100%")


class BudgetProjection:
    """Yearly income/expense snapshots with a month-level interpolated lookup.

    Snapshot ``y`` holds the values in force at the start of year ``y``
    (``y = 0`` is the initial budget). A month between two anniversaries sees
    the straight-line blend of its two neighbouring snapshots, so cash flow
    moves smoothly instead of jumping once a year. This is an approximation of
    annual compounding, not monthly compounding.
    """

    def __init__(self, years: Tuple[YearlyBudget, ...]):
        if not years:
            raise ValueError("projection requires at least one year")
        self.years = years

    def __len__(self) -> int:
        return len(self.years)

    def __getitem__(self, year: int) -> YearlyBudget:
        return self.years[year]

    @property
    def max_year(self) -> int:
        return self.years[-1].year

    def budget_for_month(self, month: int) -> MonthlyBudget:
        # month is the absolute, 1-based month since the simulation started
        if month < 0:
            raise ValueError("month must be >= 0")
        year, rem = divmod(month, 12)
        frac = rem / 12
        last = len(self.years) - 1
        lower = self.years[min(year, last)]
        upper = self.years[min(year + 1, last)]

        income = lower.income + (upper.income - lower.income) * frac
        expenses = lower.expenses + (upper.expenses - lower.expenses) * frac
        # available is derived after interpolation so it stays consistent
        return MonthlyBudget(income=income, expenses=expenses, available=income - expenses)


def project_budget(budget: BudgetParams, term_years: int) -> BudgetProjection:
    """Build the yearly projection for years 0..max(term_years, 40)."""
    validate_budget(budget)
    max_years = max(int(term_years), MIN_PROJECTION_YEARS)

    income = budget.monthly_income
    expenses = budget.monthly_expenses
    income_factor = 1 + budget.income_growth_rate / 100.0
    expense_factor = 1 + budget.expense_growth_rate / 100.0

    years = [YearlyBudget(0, income, expenses, income - expenses)]
    for year in range(1, max_years + 1):
        if budget.growth_enabled:
            income *= income_factor
            expenses *= expense_factor
        years.append(YearlyBudget(year, income, expenses, income - expenses))

    logger.debug(
        "Budget projected",
        extra={"years": max_years, "growth_enabled": budget.growth_enabled},
    )
    return BudgetProjection(tuple(years))
