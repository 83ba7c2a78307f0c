"""Loan Velocity Optimizer: mortgage payoff strategy comparison engine.

Common imports:
    from velocity_optimizer import LoanParams, BudgetParams, LineOfCreditParams, compare_strategies

Debug run:
    python -m velocity_optimizer

The debug entry simulates the default scenario (300k at 5.5% over 30 years,
6000 income / 4000 expenses, 20k credit line at 7% chunked 10k at a time)
under both credit line policies and prints a summary of each strategy.
"""

from .budget import BudgetParams, BudgetProjection, project_budget
from .calculator import (
    LineOfCreditParams,
    LoanParams,
    LocStrategy,
    StrategyComparison,
    compare_strategies,
    monthly_payment,
    simulate_extra_payment,
    simulate_line_of_credit,
    simulate_traditional,
)
from .exceptions import (
    InvalidBudgetParameters,
    InvalidLineOfCreditParameters,
    InvalidLoanParameters,
    NonAmortizingPayment,
    SimulationError,
)
from .schedule import SimulationStatus, Strategy, StrategyResult

__all__ = [
    "BudgetParams",
    "BudgetProjection",
    "project_budget",
    "LineOfCreditParams",
    "LoanParams",
    "LocStrategy",
    "StrategyComparison",
    "compare_strategies",
    "monthly_payment",
    "simulate_extra_payment",
    "simulate_line_of_credit",
    "simulate_traditional",
    "InvalidBudgetParameters",
    "InvalidLineOfCreditParameters",
    "InvalidLoanParameters",
    "NonAmortizingPayment",
    "SimulationError",
    "SimulationStatus",
    "Strategy",
    "StrategyResult",
]
