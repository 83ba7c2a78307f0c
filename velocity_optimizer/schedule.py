from __future__ import annotations

import calendar
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar


class Strategy(str, Enum):
    TRADITIONAL = "traditional"
    EXTRA_PAYMENT = "extra_payment"
    LINE_OF_CREDIT = "line_of_credit"


class SimulationStatus(str, Enum):
    # paid_off: every balance reached zero within the term
    # term_exhausted: fixed-payment strategy ran the whole term with a residual balance
    # non_convergent: credit line strategy could not clear both balances within the term
    PAID_OFF = "paid_off"
    TERM_EXHAUSTED = "term_exhausted"
    NON_CONVERGENT = "non_convergent"


@dataclass(frozen=True)
class AmortizationRecord:
    """One month of a fixed-payment schedule.

    Fields:
        month_index: month number, starting at 1.
        calendar_label: "Year 1, Month 1" or "Jan 2027" when a start date is known.
        payment: amount actually paid this month (interest + principal).
        interest: interest charged this month.
        principal: principal repaid this month.
        cumulative_interest: interest charged from month 1 through this month.
        balance: mortgage balance after this month's payment.
    """

    month_index: int
    calendar_label: str
    payment: float
    interest: float
    principal: float
    cumulative_interest: float
    balance: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ExtraPaymentRecord:
    """One month of the extra-payment schedule.

    Same as AmortizationRecord, plus the month's cash-flow figure and the
    principal split between the fixed base payment and the extra payment.
    ``principal`` is always principal_from_base + principal_from_extra.
    """

    month_index: int
    calendar_label: str
    payment: float
    interest: float
    principal: float
    cumulative_interest: float
    balance: float
    available_cash: float
    principal_from_base: float
    principal_from_extra: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LineOfCreditRecord:
    """One month of the line-of-credit (chunk and sweep) schedule.

    Fields:
        mortgage_interest / loc_interest: interest charged on each balance.
        interest: the sum of both, what cumulative_interest accumulates.
        principal: mortgage principal repaid by the base payment (chunks excluded).
        balance: mortgage balance at month end, after any chunk.
        loc_balance: credit line balance at month end, after any chunk.
        amount_deposited: cash paid onto the credit line this month.
        amount_drawn: cash drawn from the credit line this month (chunks excluded).
        chunk_amount: lump sum moved from the credit line to the mortgage, 0 if none.
        chunk_applied: True when a chunk was moved this month.
        unfunded_draw: part of the draw that did not fit under the limit.
    """

    month_index: int
    calendar_label: str
    mortgage_interest: float
    loc_interest: float
    interest: float
    principal: float
    cumulative_interest: float
    balance: float
    loc_balance: float
    amount_deposited: float
    amount_drawn: float
    chunk_amount: float
    chunk_applied: bool
    unfunded_draw: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class StrategyResult:
    """Outcome of one strategy run.

    ``balances`` always starts with the original principal, followed by the
    mortgage balance at the end of each simulated month. ``loc_balances`` has
    the same shape for the credit line strategy and is empty otherwise.
    """

    strategy: Strategy
    status: SimulationStatus
    principal: float
    base_payment: float
    total_interest: float
    total_payments: float
    payoff_months: int
    residual_balance: float
    balances: Tuple[float, ...]
    records: Tuple[Any, ...]
    mortgage_interest: float = 0.0
    loc_interest: float = 0.0
    loc_balances: Tuple[float, ...] = field(default_factory=tuple)
    initial_chunk: float = 0.0
    chunks_applied: int = 0
    limit_breaches: int = 0

    @property
    def converged(self) -> bool:
        return self.status == SimulationStatus.PAID_OFF

    @property
    def payoff_years(self) -> float:
        return self.payoff_months / 12

    def summary(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "status": self.status.value,
            "base_payment": self.base_payment,
            "total_interest": self.total_interest,
            "total_payments": self.total_payments,
            "payoff_months": self.payoff_months,
            "payoff_years": self.payoff_years,
            "residual_balance": self.residual_balance,
            "mortgage_interest": self.mortgage_interest,
            "loc_interest": self.loc_interest,
            "initial_chunk": self.initial_chunk,
            "chunks_applied": self.chunks_applied,
            "limit_breaches": self.limit_breaches,
        }


R = TypeVar("R", AmortizationRecord, ExtraPaymentRecord, LineOfCreditRecord)


def add_months(src: date, months: int) -> date:
    month = src.month - 1 + months
    year = src.year + month // 12
    month = month % 12 + 1
    day = min(src.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def calendar_label(month_index: int, start_date: Optional[date] = None) -> str:
    # Without a start date, count loan years/months like the comparison chart does.
    if start_date is None:
        year, month = divmod(month_index - 1, 12)
        return f"Year {year + 1}, Month {month + 1}"
    when = add_months(start_date, month_index - 1)
    return f"{calendar.month_abbr[when.month]} {when.year}"


class ScheduleRecorder:
    """Collects per-month records for one strategy run and builds the result.

    The recorder owns everything the amortizers share: calendar labels,
    cumulative interest, the balance series and the final totals.
    """

    def __init__(
        self,
        strategy: Strategy,
        principal: float,
        start_date: Optional[date] = None,
        track_loc: bool = False,
    ):
        self.strategy = strategy
        self.principal = principal
        self.start_date = start_date
        self.cumulative_interest = 0.0
        self.balances: List[float] = [principal]
        self.loc_balances: List[float] = [0.0] if track_loc else []
        self.records: List[Any] = []

    @property
    def months(self) -> int:
        return len(self.records)

    def add(self, record_type: Type[R], month_index: int, interest: float, balance: float, **fields: Any) -> R:
        self.cumulative_interest += interest
        record = record_type(
            month_index=month_index,
            calendar_label=calendar_label(month_index, self.start_date),
            interest=interest,
            cumulative_interest=self.cumulative_interest,
            balance=balance,
            **fields,
        )
        self.records.append(record)
        self.balances.append(balance)
        if "loc_balance" in fields:
            self.loc_balances.append(fields["loc_balance"])
        return record

    def finish(
        self,
        status: SimulationStatus,
        base_payment: float,
        residual_balance: float = 0.0,
        **extra: Any,
    ) -> StrategyResult:
        extra.setdefault("mortgage_interest", self.cumulative_interest)
        return StrategyResult(
            strategy=self.strategy,
            status=status,
            principal=self.principal,
            base_payment=base_payment,
            total_interest=self.cumulative_interest,
            total_payments=self.cumulative_interest + self.principal,
            payoff_months=self.months,
            residual_balance=residual_balance,
            balances=tuple(self.balances),
            records=tuple(self.records),
            loc_balances=tuple(self.loc_balances),
            **extra,
        )


def aggregate_interest_by_year(records: Sequence[Any]) -> Dict[int, float]:
    # Sum interest per loan year (year 1 = months 1..12, year 2 = 13..24 ...).
    totals: Dict[int, float] = {}
    for row in records:
        year = (row.month_index - 1) // 12 + 1
        totals[year] = totals.get(year, 0.0) + row.interest
    return totals
