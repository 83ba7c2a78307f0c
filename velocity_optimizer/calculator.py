from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from velocity_optimizer.budget import BudgetParams, BudgetProjection, MonthlyBudget, project_budget, validate_budget
from velocity_optimizer.exceptions import (
    InvalidLineOfCreditParameters,
    InvalidLoanParameters,
    NonAmortizingPayment,
)
from velocity_optimizer.schedule import (
    AmortizationRecord,
    ExtraPaymentRecord,
    LineOfCreditRecord,
    ScheduleRecorder,
    SimulationStatus,
    Strategy,
    StrategyResult,
    aggregate_interest_by_year,
)


logger = logging.getLogger(__name__)

# Balances below half a hundredth of a cent are floating-point residue.
BALANCE_EPSILON = 0.00005


class LocStrategy(str, Enum):
    # cash_flow_sweep: free cash flow after the mortgage payment pays the line down
    # paycheck_parking: income is deposited on the line, expenses and mortgage drawn from it
    CASH_FLOW_SWEEP = "cash_flow_sweep"
    PAYCHECK_PARKING = "paycheck_parking"


@dataclass(frozen=True)
class LoanParams:
    """Mortgage input.

    Fields:
        principal: amount borrowed.
        annual_rate: nominal annual rate, percent (5.5 means 5.5%).
        term_years: whole number of years; the schedule has term_years * 12 payments.
    """

    principal: float
    annual_rate: float
    term_years: int

    @property
    def term_months(self) -> int:
        return int(self.term_years) * 12


@dataclass(frozen=True)
class LineOfCreditParams:
    """Revolving credit line used for chunking.

    Fields:
        limit: credit limit.
        annual_rate: nominal annual rate on the drawn balance, percent.
        chunk_size: lump sum moved onto the mortgage each time the line is clear.
        strategy: monthly draw-down policy, see LocStrategy.
    """

    limit: float
    annual_rate: float
    chunk_size: float
    strategy: LocStrategy = LocStrategy.CASH_FLOW_SWEEP


@dataclass(frozen=True)
class LocFlow:
    # Credit line movement for one month, before any chunk.
    balance: float
    deposited: float
    drawn: float
    unfunded: float


def monthly_rate(annual_rate: float) -> float:
    # Annual percent -> monthly decimal, e.g. 6% => 0.005
    return annual_rate / 100.0 / 12.0


def annuity_payment(principal: float, rate: float, months: int) -> float:
    if months <= 0:
        return 0.0
    if rate == 0:
        return principal / months
    # P*i*(1+i)^n / ((1+i)^n - 1), written so large n does not overflow
    return principal * rate / (1 - math.pow(1 + rate, -months))


def validate_loan(loan: LoanParams) -> None:
    values = (loan.principal, loan.annual_rate, loan.term_years)
    if not all(math.isfinite(v) for v in values):
        raise InvalidLoanParameters("loan parameters must be finite numbers")
    if loan.principal <= 0:
        raise InvalidLoanParameters("principal must be greater than 0")
    if loan.term_years <= 0 or int(loan.term_years) != loan.term_years:
        raise InvalidLoanParameters("term_years must be a positive whole number")
    if loan.annual_rate < 0:
        raise InvalidLoanParameters("annual_rate must be >= 0")


def validate_line_of_credit(loc: LineOfCreditParams) -> None:
    if not all(math.isfinite(v) for v in (loc.limit, loc.annual_rate, loc.chunk_size)):
        raise InvalidLineOfCreditParameters("line of credit parameters must be finite numbers")
    if loc.limit < 0 or loc.annual_rate < 0 or loc.chunk_size < 0:
        raise InvalidLineOfCreditParameters("limit, annual_rate and chunk_size must be >= 0")
    try:
        LocStrategy(loc.strategy)
    except ValueError:
        raise InvalidLineOfCreditParameters(f"unsupported line of credit strategy: {loc.strategy}") from None


def monthly_payment(loan: LoanParams) -> float:
    """Fixed monthly payment (EMI) for the loan."""
    validate_loan(loan)
    return annuity_payment(loan.principal, monthly_rate(loan.annual_rate), loan.term_months)


def check_amortizing(payment: float, balance: float, rate: float) -> None:
    interest = balance * rate
    # "not >" also rejects a NaN payment
    if not payment > interest:
        raise NonAmortizingPayment(payment, interest)


def pay_down(balance: float, amount: float) -> Tuple[float, float]:
    """Apply ``amount`` to ``balance``; returns (amount applied, new balance).

    The amount is capped at the balance and the result is clamped at zero.
    Residue below BALANCE_EPSILON is credited to the amount applied.
    """
    applied = max(0.0, min(amount, balance))
    remaining = settle(balance - applied)
    if remaining == 0.0:
        applied = balance
    return applied, remaining


def settle(balance: float) -> float:
    if balance < BALANCE_EPSILON:
        return 0.0
    return balance


def _log_result(result: StrategyResult) -> None:
    logger.info(
        "Strategy simulated",
        extra={
            "strategy": result.strategy.value,
            "status": result.status.value,
            "payoff_months": result.payoff_months,
            "total_interest": round(result.total_interest, 2),
        },
    )
    if not result.converged:
        logger.warning(
            "Strategy did not pay off within the term",
            extra={
                "strategy": result.strategy.value,
                "status": result.status.value,
                "residual_balance": round(result.residual_balance, 2),
            },
        )


def simulate_traditional(loan: LoanParams, start_date: Optional[date] = None) -> StrategyResult:
    """Fixed EMI every month until the balance reaches zero or the term ends."""
    payment = monthly_payment(loan)
    rate = monthly_rate(loan.annual_rate)
    check_amortizing(payment, loan.principal, rate)
    logger.debug("Simulating traditional strategy", extra={"principal": loan.principal})

    recorder = ScheduleRecorder(Strategy.TRADITIONAL, loan.principal, start_date)
    balance = loan.principal
    for month in range(1, loan.term_months + 1):
        if balance <= 0:
            break
        interest = balance * rate
        principal, balance = pay_down(balance, payment - interest)
        recorder.add(
            AmortizationRecord,
            month,
            interest,
            balance,
            payment=interest + principal,
            principal=principal,
        )

    status = SimulationStatus.PAID_OFF if balance == 0 else SimulationStatus.TERM_EXHAUSTED
    result = recorder.finish(status, payment, residual_balance=balance)
    _log_result(result)
    return result


def simulate_extra_payment(
    loan: LoanParams,
    budget: BudgetParams,
    projection: Optional[BudgetProjection] = None,
    start_date: Optional[date] = None,
) -> StrategyResult:
    """Fixed EMI plus whatever the month's free cash flow leaves over.

    The base payment never changes; the extra part is
    ``max(0, available - base_payment)`` for that month, so with budget growth
    enabled it drifts as income and expenses move apart.
    """
    payment = monthly_payment(loan)
    rate = monthly_rate(loan.annual_rate)
    check_amortizing(payment, loan.principal, rate)
    # a supplied projection takes precedence; the budget is still validated
    if projection is None:
        projection = project_budget(budget, loan.term_years)
    else:
        validate_budget(budget)
    logger.debug("Simulating extra payment strategy", extra={"principal": loan.principal})

    recorder = ScheduleRecorder(Strategy.EXTRA_PAYMENT, loan.principal, start_date)
    balance = loan.principal
    for month in range(1, loan.term_months + 1):
        if balance <= 0:
            break
        interest = balance * rate
        available = projection.budget_for_month(month).available
        extra = max(0.0, available - payment)

        from_base = min(payment - interest, balance)
        from_extra = min(extra, balance - from_base)
        principal, balance = pay_down(balance, from_base + from_extra)
        # settled residue goes to whichever stream was paying
        residue = principal - (from_base + from_extra)
        if from_extra > 0:
            from_extra += residue
        else:
            from_base += residue

        recorder.add(
            ExtraPaymentRecord,
            month,
            interest,
            balance,
            payment=interest + principal,
            principal=principal,
            available_cash=available,
            principal_from_base=from_base,
            principal_from_extra=from_extra,
        )

    status = SimulationStatus.PAID_OFF if balance == 0 else SimulationStatus.TERM_EXHAUSTED
    result = recorder.finish(status, payment, residual_balance=balance)
    _log_result(result)
    return result


def _cash_flow_sweep(line: float, interest: float, mortgage_paid: float, cash: MonthlyBudget, limit: float) -> LocFlow:
    # What is left after the mortgage payment goes to the line, never more than is owed.
    owed = line + interest
    remaining = cash.available - mortgage_paid
    paid = max(0.0, min(owed, remaining))
    return LocFlow(balance=settle(owed - paid), deposited=paid, drawn=0.0, unfunded=0.0)


def _paycheck_parking(line: float, interest: float, mortgage_paid: float, cash: MonthlyBudget, limit: float) -> LocFlow:
    # Income lands on the line; expenses and the mortgage payment are drawn from it.
    deposit = cash.income
    draw = cash.expenses + mortgage_paid
    if draw > deposit:
        wanted = line + interest + (draw - deposit)
        return LocFlow(
            balance=min(limit, wanted),
            deposited=deposit,
            drawn=draw,
            unfunded=max(0.0, wanted - limit),
        )
    balance = settle(max(0.0, line + interest - (deposit - draw)))
    return LocFlow(balance=balance, deposited=deposit, drawn=draw, unfunded=0.0)


LOC_POLICIES: Dict[LocStrategy, Callable[[float, float, float, MonthlyBudget, float], LocFlow]] = {
    LocStrategy.CASH_FLOW_SWEEP: _cash_flow_sweep,
    LocStrategy.PAYCHECK_PARKING: _paycheck_parking,
}


def _chunk_allowed(loc: LineOfCreditParams) -> bool:
    return 0 < loc.chunk_size <= loc.limit


def simulate_line_of_credit(
    loan: LoanParams,
    budget: BudgetParams,
    loc: LineOfCreditParams,
    projection: Optional[BudgetProjection] = None,
    start_date: Optional[date] = None,
) -> StrategyResult:
    """Chunk a lump sum from the credit line onto the mortgage, then clear the line.

    Every month the base mortgage payment is made, the selected policy moves
    cash on or off the line, and once the line is back at zero another chunk
    is applied (while the mortgage still exceeds the chunk). The run stops when
    both balances are zero or the term is used up; the latter comes back as a
    NON_CONVERGENT result carrying the partial trajectory.
    """
    payment = monthly_payment(loan)
    validate_line_of_credit(loc)
    rate = monthly_rate(loan.annual_rate)
    loc_rate = monthly_rate(loc.annual_rate)
    check_amortizing(payment, loan.principal, rate)
    # a supplied projection takes precedence; the budget is still validated
    if projection is None:
        projection = project_budget(budget, loan.term_years)
    else:
        validate_budget(budget)
    policy = LOC_POLICIES[LocStrategy(loc.strategy)]
    logger.debug(
        "Simulating line of credit strategy",
        extra={"principal": loan.principal, "policy": LocStrategy(loc.strategy).value},
    )

    recorder = ScheduleRecorder(Strategy.LINE_OF_CREDIT, loan.principal, start_date, track_loc=True)
    mortgage = loan.principal
    line = 0.0

    # Opening chunk, before the first payment
    initial_chunk = 0.0
    if _chunk_allowed(loc):
        initial_chunk, mortgage = pay_down(mortgage, loc.chunk_size)
        line = initial_chunk

    mortgage_interest_total = 0.0
    loc_interest_total = 0.0
    chunks = 0
    breaches = 0
    month = 0
    while month < loan.term_months and (mortgage > 0 or line > 0):
        month += 1
        cash = projection.budget_for_month(month)
        mortgage_interest = mortgage * rate
        loc_interest = line * loc_rate

        principal, mortgage = pay_down(mortgage, payment - mortgage_interest)
        flow = policy(line, loc_interest, mortgage_interest + principal, cash, loc.limit)
        line = flow.balance
        if flow.unfunded > 0 or line > loc.limit:
            breaches += 1

        chunk = 0.0
        if line == 0 and mortgage > loc.chunk_size and _chunk_allowed(loc):
            chunk = loc.chunk_size
            mortgage -= chunk
            line = chunk
            chunks += 1

        mortgage_interest_total += mortgage_interest
        loc_interest_total += loc_interest
        recorder.add(
            LineOfCreditRecord,
            month,
            mortgage_interest + loc_interest,
            mortgage,
            mortgage_interest=mortgage_interest,
            loc_interest=loc_interest,
            principal=principal,
            loc_balance=line,
            amount_deposited=flow.deposited,
            amount_drawn=flow.drawn,
            chunk_amount=chunk,
            chunk_applied=chunk > 0,
            unfunded_draw=flow.unfunded,
        )

    converged = mortgage == 0 and line == 0
    if breaches:
        logger.warning(
            "Line of credit limit breached",
            extra={"months": breaches, "limit": loc.limit, "policy": LocStrategy(loc.strategy).value},
        )
    result = recorder.finish(
        SimulationStatus.PAID_OFF if converged else SimulationStatus.NON_CONVERGENT,
        payment,
        residual_balance=mortgage + line,
        mortgage_interest=mortgage_interest_total,
        loc_interest=loc_interest_total,
        initial_chunk=initial_chunk,
        chunks_applied=chunks,
        limit_breaches=breaches,
    )
    _log_result(result)
    return result


@dataclass(frozen=True)
class StrategyComparison:
    """All three strategies for one parameter set, plus the dashboard figures.

    Fields:
        base_payment: fixed monthly EMI shared by every strategy.
        extra_payment_capacity: initial monthly cash flow left after the EMI (>= 0).
        interest_savings: strategy -> interest saved versus traditional.
        months_saved: strategy -> payoff months saved versus traditional.
        interest_by_year: strategy -> {loan year: interest}.
    """

    traditional: StrategyResult
    extra_payment: StrategyResult
    line_of_credit: StrategyResult
    projection: BudgetProjection
    base_payment: float
    extra_payment_capacity: float
    interest_savings: Dict[Strategy, float]
    months_saved: Dict[Strategy, int]
    interest_by_year: Dict[Strategy, Dict[int, float]]

    def results(self) -> Dict[Strategy, StrategyResult]:
        return {
            Strategy.TRADITIONAL: self.traditional,
            Strategy.EXTRA_PAYMENT: self.extra_payment,
            Strategy.LINE_OF_CREDIT: self.line_of_credit,
        }


def compare_strategies(
    loan: LoanParams,
    budget: BudgetParams,
    loc: LineOfCreditParams,
    start_date: Optional[date] = None,
    parallel: bool = False,
) -> StrategyComparison:
    # 1) validate everything up front so no strategy starts on bad input
    # 2) build the budget projection once and share it
    # 3) run the three amortizers (independent, optionally on a thread pool)
    # 4) derive savings against the traditional baseline
    validate_loan(loan)
    validate_budget(budget)
    validate_line_of_credit(loc)
    projection = project_budget(budget, loan.term_years)

    jobs = {
        Strategy.TRADITIONAL: lambda: simulate_traditional(loan, start_date=start_date),
        Strategy.EXTRA_PAYMENT: lambda: simulate_extra_payment(
            loan, budget, projection=projection, start_date=start_date
        ),
        Strategy.LINE_OF_CREDIT: lambda: simulate_line_of_credit(
            loan, budget, loc, projection=projection, start_date=start_date
        ),
    }
    if parallel:
        with ThreadPoolExecutor(max_workers=len(jobs)) as pool:
            futures = {key: pool.submit(job) for key, job in jobs.items()}
            results = {key: future.result() for key, future in futures.items()}
    else:
        results = {key: job() for key, job in jobs.items()}

    baseline = results[Strategy.TRADITIONAL]
    base_payment = baseline.base_payment
    return StrategyComparison(
        traditional=baseline,
        extra_payment=results[Strategy.EXTRA_PAYMENT],
        line_of_credit=results[Strategy.LINE_OF_CREDIT],
        projection=projection,
        base_payment=base_payment,
        extra_payment_capacity=max(0.0, budget.available - base_payment),
        interest_savings={key: baseline.total_interest - r.total_interest for key, r in results.items()},
        months_saved={key: baseline.payoff_months - r.payoff_months for key, r in results.items()},
        interest_by_year={key: aggregate_interest_by_year(r.records) for key, r in results.items()},
    )
