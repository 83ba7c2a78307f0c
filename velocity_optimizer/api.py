import logging
import os
import time
import uuid
import zipfile
from dataclasses import fields
from datetime import date
from io import BytesIO
from typing import Any, Dict, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from fastapi import FastAPI, HTTPException, Request, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field, field_validator
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from velocity_optimizer.budget import BudgetParams, project_budget
from velocity_optimizer.calculator import (
    LineOfCreditParams,
    LoanParams,
    LocStrategy,
    StrategyComparison,
    compare_strategies,
)
from velocity_optimizer.observability import log_comparison, setup_logging
from velocity_optimizer.schedule import (
    AmortizationRecord,
    ExtraPaymentRecord,
    LineOfCreditRecord,
    Strategy,
    StrategyResult,
)


API_KEY = os.getenv("API_KEY")

DEFAULT_RATE_LIMIT = os.getenv("RATE_LIMIT_DEFAULT", "60/minute")
EXPORT_RATE_LIMIT = os.getenv("RATE_LIMIT_EXPORT", "15/minute")
MAX_TERM_YEARS = int(os.getenv("MAX_TERM_YEARS", "50"))
MAX_PRINCIPAL = float(os.getenv("MAX_PRINCIPAL", "30000000"))
MAX_ANNUAL_RATE = float(os.getenv("MAX_ANNUAL_RATE", "30"))
MAX_GROWTH_RATE = float(os.getenv("MAX_GROWTH_RATE", "50"))
MAX_SCHEDULE_ROWS = int(os.getenv("MAX_SCHEDULE_ROWS", "2000"))
MAX_EXPORT_BYTES = int(os.getenv("MAX_EXPORT_BYTES", str(6 * 1024 * 1024)))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
ALLOWED_LOC_STRATEGIES = {s.value for s in LocStrategy}

setup_logging(LOG_LEVEL)
logger = logging.getLogger(__name__)


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        candidate = forwarded.split(",")[0].strip()
        if candidate:
            return candidate
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return get_remote_address(request)


limiter = Limiter(key_func=_client_ip, default_limits=[DEFAULT_RATE_LIMIT])

app = FastAPI(
    title="Loan Velocity Optimizer",
    description="Compare traditional, extra-payment and line-of-credit mortgage payoff strategies.",
    version="0.1.0",
)
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


def require_api_key(request: Request):
    if not API_KEY:
        return
    provided = request.headers.get("x-api-key")
    if not provided or provided != API_KEY:
        raise HTTPException(status_code=401, detail="invalid or missing api key")


@app.exception_handler(RateLimitExceeded)
async def _rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded"})


class BudgetRequest(BaseModel):
    monthly_income: float = Field(..., ge=0, le=MAX_PRINCIPAL, description="Monthly take-home income")
    monthly_expenses: float = Field(..., ge=0, le=MAX_PRINCIPAL, description="Monthly living expenses, mortgage excluded")
    growth_enabled: bool = Field(False, description="Compound income and expenses once a year")
    income_growth_rate: float = Field(0.0, gt=-100, le=MAX_GROWTH_RATE, description="Annual income growth, percent")
    expense_growth_rate: float = Field(0.0, gt=-100, le=MAX_GROWTH_RATE, description="Annual expense growth, percent")

    def to_budget(self) -> BudgetParams:
        return BudgetParams(
            monthly_income=self.monthly_income,
            monthly_expenses=self.monthly_expenses,
            growth_enabled=self.growth_enabled,
            income_growth_rate=self.income_growth_rate,
            expense_growth_rate=self.expense_growth_rate,
        )


class ProjectionRequest(BudgetRequest):
    term_years: int = Field(30, gt=0, le=MAX_TERM_YEARS, description="Loan term in years; projection covers at least 40")


class StrategyRequest(BudgetRequest):
    # Mortgage
    principal: float = Field(..., gt=0, le=MAX_PRINCIPAL, description="Loan amount")
    annual_rate: float = Field(..., ge=0, le=MAX_ANNUAL_RATE, description="Annual rate, percent, e.g. 5.5")
    term_years: int = Field(..., gt=0, le=MAX_TERM_YEARS, description="Loan term in years, e.g. 30")

    # Line of credit
    loc_limit: float = Field(..., ge=0, le=MAX_PRINCIPAL, description="Credit line limit")
    loc_annual_rate: float = Field(..., ge=0, le=MAX_ANNUAL_RATE, description="Credit line annual rate, percent")
    loc_chunk_size: float = Field(..., ge=0, le=MAX_PRINCIPAL, description="Lump sum moved onto the mortgage per cycle")
    loc_strategy: str = Field("cash_flow_sweep", description="cash_flow_sweep / paycheck_parking")

    start_date: Optional[date] = Field(None, description="First payment date, used for calendar labels")

    @field_validator("loc_strategy")
    @classmethod
    def _validate_loc_strategy(cls, value: str) -> str:
        normalized = (value or "").strip().lower()
        if normalized not in ALLOWED_LOC_STRATEGIES:
            raise ValueError(f"loc_strategy must be one of {sorted(ALLOWED_LOC_STRATEGIES)}")
        return normalized

    def to_loan(self) -> LoanParams:
        return LoanParams(principal=self.principal, annual_rate=self.annual_rate, term_years=self.term_years)

    def to_line_of_credit(self) -> LineOfCreditParams:
        return LineOfCreditParams(
            limit=self.loc_limit,
            annual_rate=self.loc_annual_rate,
            chunk_size=self.loc_chunk_size,
            strategy=LocStrategy(self.loc_strategy),
        )


class StrategySummary(BaseModel):
    strategy: str
    status: str
    base_payment: float
    total_interest: float
    total_payments: float
    payoff_months: int
    payoff_years: float
    residual_balance: float
    mortgage_interest: float
    loc_interest: float
    initial_chunk: float
    chunks_applied: int
    limit_breaches: int
    interest_savings_vs_traditional: float
    months_saved_vs_traditional: int


class CompareResponse(BaseModel):
    base_payment: float
    extra_payment_capacity: float
    traditional: StrategySummary
    extra_payment: StrategySummary
    line_of_credit: StrategySummary


class ScheduleResponse(BaseModel):
    summary: StrategySummary
    balances: List[float]
    loc_balances: List[float]
    interest_by_year: Dict[int, float]
    records: List[Dict[str, Any]]


class YearlyBudgetOut(BaseModel):
    year: int
    income: float
    expenses: float
    available: float


class ProjectionResponse(BaseModel):
    growth_enabled: bool
    years: List[YearlyBudgetOut]


@app.get("/health", tags=["health"])
@limiter.exempt
def health() -> dict:
    return {"status": "ok"}


@app.post(
    "/v1/strategies:compare",
    tags=["strategies"],
    responses={400: {"description": "Invalid loan, budget or credit line parameters"}},
)
@limiter.limit(DEFAULT_RATE_LIMIT)
def calc_compare(request: Request, body: StrategyRequest, _=Depends(require_api_key)) -> CompareResponse:
    comparison = _run_comparison(body)
    return CompareResponse(
        base_payment=float(comparison.base_payment),
        extra_payment_capacity=float(comparison.extra_payment_capacity),
        traditional=_summary(comparison, Strategy.TRADITIONAL),
        extra_payment=_summary(comparison, Strategy.EXTRA_PAYMENT),
        line_of_credit=_summary(comparison, Strategy.LINE_OF_CREDIT),
    )


@app.post(
    "/v1/strategies/{strategy}:schedule",
    tags=["strategies"],
    responses={
        400: {"description": "Invalid loan, budget or credit line parameters"},
        413: {"description": "Schedule exceeds the row limit"},
    },
)
@limiter.limit(DEFAULT_RATE_LIMIT)
def calc_schedule(
    request: Request,
    strategy: Strategy,
    body: StrategyRequest,
    _=Depends(require_api_key),
) -> ScheduleResponse:
    """Month-by-month schedule of one strategy, with its balance series."""
    comparison = _run_comparison(body)
    result = comparison.results()[strategy]
    _ensure_row_limit(len(result.records), strategy.value)

    return ScheduleResponse(
        summary=_summary(comparison, strategy),
        balances=list(result.balances),
        loc_balances=list(result.loc_balances),
        interest_by_year=comparison.interest_by_year[strategy],
        records=[row.to_dict() for row in result.records],
    )


@app.post(
    "/v1/budget:projection",
    tags=["budget"],
    responses={400: {"description": "Invalid budget parameters"}},
)
@limiter.limit(DEFAULT_RATE_LIMIT)
def calc_projection(request: Request, body: ProjectionRequest, _=Depends(require_api_key)) -> ProjectionResponse:
    try:
        projection = project_budget(body.to_budget(), body.term_years)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ProjectionResponse(
        growth_enabled=body.growth_enabled,
        years=[
            YearlyBudgetOut(year=y.year, income=y.income, expenses=y.expenses, available=y.available)
            for y in projection.years
        ],
    )


@app.post(
    "/v1/strategies:export-zip",
    tags=["strategies"],
    responses={400: {"description": "Invalid loan, budget or credit line parameters"}},
)
@limiter.limit(EXPORT_RATE_LIMIT)
def export_zip(request: Request, body: StrategyRequest, _=Depends(require_api_key)):
    """Export every strategy's schedule as an xlsx file inside one ZIP."""
    comparison = _run_comparison(body)
    results = comparison.results()
    for strategy, result in results.items():
        _ensure_row_limit(len(result.records), strategy.value)

    zip_buf = BytesIO()
    with zipfile.ZipFile(zip_buf, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
        for strategy, result in results.items():
            zf.writestr(f"{strategy.value}_schedule.xlsx", _schedule_to_xlsx(result))
    zip_bytes = zip_buf.getvalue()
    _ensure_export_size(len(zip_bytes))

    return StreamingResponse(
        BytesIO(zip_bytes),
        media_type="application/zip",
        headers={
            "Content-Disposition": "attachment; filename=payoff_schedules.zip",
            "X-Total-Interest-Traditional": f"{comparison.traditional.total_interest:.2f}",
            "X-Total-Interest-Extra-Payment": f"{comparison.extra_payment.total_interest:.2f}",
            "X-Total-Interest-Line-Of-Credit": f"{comparison.line_of_credit.total_interest:.2f}",
        },
    )


def _run_comparison(body: StrategyRequest) -> StrategyComparison:
    request_id = uuid.uuid4().hex
    started = time.perf_counter()
    try:
        comparison = compare_strategies(
            body.to_loan(),
            body.to_budget(),
            body.to_line_of_credit(),
            start_date=body.start_date,
        )
    except ValueError as e:
        logger.info("Comparison rejected", extra={"request_id": request_id, "reason": str(e)})
        raise HTTPException(status_code=400, detail=str(e))

    log_comparison(
        request_id,
        {key.value: result.summary() for key, result in comparison.results().items()},
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    return comparison


def _summary(comparison: StrategyComparison, strategy: Strategy) -> StrategySummary:
    result = comparison.results()[strategy]
    return StrategySummary(
        **result.summary(),
        interest_savings_vs_traditional=float(comparison.interest_savings[strategy]),
        months_saved_vs_traditional=comparison.months_saved[strategy],
    )


_RECORD_TYPES = {
    Strategy.TRADITIONAL: AmortizationRecord,
    Strategy.EXTRA_PAYMENT: ExtraPaymentRecord,
    Strategy.LINE_OF_CREDIT: LineOfCreditRecord,
}


def _schedule_to_xlsx(result: StrategyResult) -> bytes:
    """Write one strategy schedule to an xlsx workbook and return its bytes."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Schedule"

    columns = [f.name for f in fields(_RECORD_TYPES[result.strategy])]
    ws.append([name.replace("_", " ").title() for name in columns])

    header_font = Font(bold=True, name="Arial", size=11, color="FFFFFF")
    body_font = Font(name="Arial", size=10)
    header_fill = PatternFill("solid", fgColor="0F172A")
    alt_fill = PatternFill("solid", fgColor="F8FAFC")
    chunk_fill = PatternFill("solid", fgColor="ECFDF3")
    border = Border(bottom=Side(style="thin", color="E2E8F0"))
    align_right = Alignment(horizontal="right")
    align_center = Alignment(horizontal="center")

    for cell in ws[1]:
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = align_center

    for idx, row in enumerate(result.records, start=2):
        values = row.to_dict()
        ws.append([
            round(values[name], 2) if isinstance(values[name], float) else values[name]
            for name in columns
        ])
        chunk_row = bool(values.get("chunk_applied"))
        for col_idx in range(1, len(columns) + 1):
            cell = ws.cell(row=idx, column=col_idx)
            cell.font = body_font
            cell.alignment = align_right if col_idx > 2 else align_center
            # chunk months are highlighted so the cycles stand out
            if chunk_row:
                cell.fill = chunk_fill
            elif idx % 2 == 0:
                cell.fill = alt_fill
            cell.border = border

    for i, name in enumerate(columns, start=1):
        ws.column_dimensions[get_column_letter(i)].width = 18 if name == "calendar_label" else 14

    buf = BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf.getvalue()


def _ensure_row_limit(rows: int, label: str) -> None:
    if rows > MAX_SCHEDULE_ROWS:
        raise HTTPException(status_code=413, detail=f"{label} too large, exceeds {MAX_SCHEDULE_ROWS} rows limit")


def _ensure_export_size(size_bytes: int) -> None:
    if size_bytes > MAX_EXPORT_BYTES:
        raise HTTPException(status_code=413, detail="export file too large")
