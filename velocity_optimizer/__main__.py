from __future__ import annotations

import os

from velocity_optimizer.budget import BudgetParams
from velocity_optimizer.calculator import LineOfCreditParams, LoanParams, LocStrategy, compare_strategies
from velocity_optimizer.observability import setup_logging


def main() -> None:
    setup_logging(os.getenv("LOG_LEVEL", "WARNING"))

    loan = LoanParams(principal=300000, annual_rate=5.5, term_years=30)
    budget = BudgetParams(monthly_income=6000, monthly_expenses=4000)

    for policy in LocStrategy:
        loc = LineOfCreditParams(limit=20000, annual_rate=7.0, chunk_size=10000, strategy=policy)
        comparison = compare_strategies(loan, budget, loc)
        print(f"== {policy.value} ==")
        print(f"monthly payment: {comparison.base_payment:,.2f}  extra capacity: {comparison.extra_payment_capacity:,.2f}")
        for strategy, result in comparison.results().items():
            print(
                f"{strategy.value:<16} {result.status.value:<15} "
                f"interest {result.total_interest:>12,.2f}  "
                f"payoff {result.payoff_years:5.1f} years  "
                f"saved {comparison.interest_savings[strategy]:>12,.2f}"
            )


if __name__ == "__main__":
    main()
