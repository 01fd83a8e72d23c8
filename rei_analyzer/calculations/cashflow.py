"""
Cash Flow Calculations

Folds the event stream and the loan accrual into one row per project month
and computes return metrics on the investor (equity) cash flows.

All rows are rebuilt from the ProjectData snapshot on every call.
"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from rei_analyzer.calculations import irr
from rei_analyzer.calculations.accrual import (
    AccrualResult,
    LoanApplication,
    accrue,
    calculate_total_interest,
    round_currency,
)
from rei_analyzer.calculations.events import (
    Event,
    EventKind,
    EventOrigin,
    build_events,
    month_of,
    month_start,
)
from rei_analyzer.calculations.models import (
    BalancePoint,
    CashFlowResult,
    CashFlowRow,
    EngineOptions,
    InterestBreakdownItem,
    LoanBalance,
    ProcessedPayment,
    ProjectData,
    ReturnMetrics,
)

logger = logging.getLogger(__name__)

BUCKETS = ("payments", "interest", "rental", "sale")


def generate_monthly_dates(start_date: date, num_months: int) -> List[date]:
    """Generate array of monthly dates."""
    return [month_start(start_date, i) for i in range(num_months + 1)]


def calculate_horizon(project: ProjectData, events: Sequence[Event]) -> int:
    """Last project month: the later of the sale month and the last event month."""
    horizon = project.sale_month or 0
    if events:
        horizon = max(horizon, max(event.month for event in events))
    return horizon


def split_interest_by_month(
    item: InterestBreakdownItem, start_date: date
) -> List[Tuple[int, float]]:
    """
    Pro-rate an accrual interval's interest across the project months it spans.

    Pieces are rounded to cents; the last piece absorbs the rounding residue
    so that the pieces sum to the interval's interest.
    """
    spans = []
    cursor = item.from_date
    while cursor < item.to_date:
        month = month_of(start_date, cursor)
        boundary = min(month_start(start_date, month + 1), item.to_date)
        spans.append((month, (boundary - cursor).days))
        cursor = boundary

    pieces = []
    allocated = 0.0
    for index, (month, days) in enumerate(spans):
        if index == len(spans) - 1:
            amount = round_currency(item.interest - allocated)
        else:
            amount = round_currency(item.interest * days / item.days)
            allocated += amount
        pieces.append((month, amount))

    return pieces


def equity_amount(event: Event, application: LoanApplication) -> float:
    """
    Investor cash flow for one event.

    Debt-funded outflows are financed by the loan and carry no equity flow;
    debt-applying inflows contribute only what is left after the loan, which
    is negative when sale proceeds fall short of the balance they pay off.
    """
    if event.kind == EventKind.DRAWDOWN:
        return 0.0
    if event.applies_to_debt and event.amount > 0:
        return application.net_return
    return event.amount


def build_cash_flow_rows(
    start_date: date,
    horizon: int,
    events: Sequence[Event],
    accrual: AccrualResult,
) -> Tuple[List[CashFlowRow], List[float], List[Tuple[date, float]]]:
    """
    Build one CashFlowRow per month from 0 to the horizon.

    Returns:
        Tuple of (rows, monthly equity series, dated equity flows)
    """
    totals: Dict[int, Dict[str, float]] = defaultdict(lambda: dict.fromkeys(BUCKETS, 0.0))
    equity: Dict[int, float] = defaultdict(float)
    dated_flows: List[Tuple[date, float]] = []

    for event in events:
        totals[event.month][event.bucket] += event.amount
        amount = equity_amount(event, accrual.applications[event.sequence])
        equity[event.month] += amount
        if amount:
            dated_flows.append((event.event_date, amount))

    # Accrued interest is an investor outflow, posted on the last day of the month
    for item in accrual.breakdown:
        for month, interest in split_interest_by_month(item, start_date):
            totals[month]["interest"] -= interest
            equity[month] -= interest
            if interest:
                posted = month_start(start_date, month + 1) - timedelta(days=1)
                dated_flows.append((posted, -interest))

    # Month m closes at the start of month m + 1
    month_dates = generate_monthly_dates(start_date, horizon + 1)

    rows = []
    cumulative = 0.0
    equity_series = []

    for month in range(horizon + 1):
        month_totals = totals[month]
        payments = round_currency(month_totals["payments"])
        interest = round_currency(month_totals["interest"])
        rental = round_currency(month_totals["rental"])
        sale = round_currency(month_totals["sale"])
        net = round_currency(payments + interest + rental + sale)
        cumulative = round_currency(cumulative + net)
        equity_cf = round_currency(equity[month])
        equity_series.append(equity_cf)

        rows.append(
            CashFlowRow(
                month=month,
                payments=payments,
                interest=interest,
                rental=rental,
                sale=sale,
                net_cash_flow=net,
                cumulative_cash_flow=cumulative,
                outstanding_balance=accrual.balance_before(month_dates[month + 1]),
                equity_cash_flow=equity_cf,
            )
        )

    dated_flows.sort(key=lambda flow: flow[0])
    return rows, equity_series, dated_flows


def build_processed_payments(
    events: Sequence[Event], accrual: AccrualResult
) -> List[ProcessedPayment]:
    """Payments in chronological order with the loan split applied to each."""
    processed = []
    for event in events:
        if event.origin != EventOrigin.PAYMENT:
            continue
        application = accrual.applications[event.sequence]
        processed.append(
            ProcessedPayment(
                id=event.source_id,
                month=event.month,
                date=event.event_date,
                amount=event.amount,
                category=event.payment.category,
                loan_adjustment=application.loan_adjustment,
                net_return=(
                    application.net_return
                    if event.applies_to_debt
                    else max(0.0, equity_amount(event, application))
                ),
                is_partial_loan_payment=application.is_partial_loan_payment,
                running_loan_balance=application.balance_after,
                debt_drawdown=event.kind == EventKind.DRAWDOWN,
                description=event.description,
            )
        )
    return processed


def calculate_return_metrics(
    equity_series: Sequence[float],
    dated_flows: Sequence[Tuple[date, float]],
    discount_rate: float,
    total_interest: float,
    options: EngineOptions,
) -> Tuple[ReturnMetrics, List[str]]:
    """
    NPV, IRR, XIRR and multiple on the equity series.

    IRR failures are reported as None plus a warning, never approximated.
    """
    warnings = []
    monthly_discount = irr.annual_to_monthly_irr(discount_rate)
    npv = irr.calculate_npv(equity_series, monthly_discount)

    monthly_irr: Optional[float] = None
    annual_irr: Optional[float] = None
    try:
        monthly_irr = irr.calculate_irr(
            equity_series,
            tolerance=options.irr_tolerance,
            max_iterations=options.irr_max_iterations,
        )
        annual_irr = irr.monthly_to_annual_irr(monthly_irr)
    except irr.IRRError as e:
        message = f"IRR unavailable ({e.reason}): {e}"
        logger.warning(message)
        warnings.append(message)

    xirr_value: Optional[float] = None
    if dated_flows:
        try:
            xirr_value = irr.calculate_xirr(
                [flow[1] for flow in dated_flows],
                [flow[0] for flow in dated_flows],
                tolerance=options.irr_tolerance,
                max_iterations=options.irr_max_iterations,
            )
        except irr.IRRError as e:
            message = f"XIRR unavailable ({e.reason}): {e}"
            logger.warning(message)
            warnings.append(message)

    try:
        multiple = irr.calculate_multiple(equity_series)
    except ValueError as e:
        multiple = None
        warnings.append(f"Equity multiple unavailable: {e}")

    total_invested = round_currency(abs(sum(cf for cf in equity_series if cf < 0)))
    total_returned = round_currency(sum(cf for cf in equity_series if cf > 0))

    metrics = ReturnMetrics(
        npv=round_currency(npv),
        irr=annual_irr,
        monthly_irr=monthly_irr,
        xirr=xirr_value,
        equity_multiple=multiple,
        total_invested=total_invested,
        total_returned=total_returned,
        net_profit=round_currency(irr.calculate_profit(equity_series)),
        total_interest=total_interest,
    )
    return metrics, warnings


def compute_cash_flow(
    project: ProjectData, options: Optional[EngineOptions] = None
) -> CashFlowResult:
    """
    Run the full engine on a project snapshot.

    Args:
        project: Immutable project snapshot
        options: Day-count and IRR solver settings (defaults if omitted)

    Returns:
        CashFlowResult with monthly rows, balance series, interest breakdown,
        return metrics and any warnings for skipped records

    Raises:
        LoanInvariantError: If the event stream violates a loan invariant
    """
    options = options or EngineOptions()
    start = project.start_date

    events, warnings = build_events(project)
    horizon = calculate_horizon(project, events)
    evaluation_date = month_start(start, horizon + 1)

    accrual = accrue(
        events,
        evaluation_date=evaluation_date,
        monthly_rate=project.effective_monthly_rate,
        day_count=options.day_count,
    )

    rows, equity_series, dated_flows = build_cash_flow_rows(start, horizon, events, accrual)

    manual_interest = sum(
        abs(event.amount) for event in events if event.kind == EventKind.INTEREST
    )
    total_interest = round_currency(calculate_total_interest(accrual.breakdown) + manual_interest)

    metrics, metric_warnings = calculate_return_metrics(
        equity_series, dated_flows, project.discount_rate, total_interest, options
    )

    processed = build_processed_payments(events, accrual)

    logger.debug(
        f"Computed {len(rows)} months for '{project.project_name}': "
        f"npv={metrics.npv:,.2f} irr={metrics.irr}"
    )

    return CashFlowResult(
        rows=rows,
        balance_series=[BalancePoint(row.month, row.outstanding_balance) for row in rows],
        breakdown=list(accrual.breakdown),
        metrics=metrics,
        warnings=warnings + metric_warnings,
        processed_payments=processed,
        loan_balance=LoanBalance(
            outstanding=accrual.outstanding,
            total_drawn=accrual.total_drawn,
            total_repaid=accrual.total_repaid,
        ),
    )


def sum_rows(
    rows: Sequence[CashFlowRow], field: str, start_month: int = 0, end_month: Optional[int] = None
) -> float:
    """Sum a specific field across rows for a range of months."""
    if end_month is None:
        end_month = len(rows) - 1

    return round_currency(
        sum(getattr(row, field) for row in rows if start_month <= row.month <= end_month)
    )


def annualize_rows(rows: Sequence[CashFlowRow]) -> List[Dict]:
    """
    Convert monthly rows to project-year totals.

    Year 1 covers months 0-11. The closing balance is the last month's balance.
    """
    annual_data = []
    numeric_fields = ["payments", "interest", "rental", "sale", "net_cash_flow", "equity_cash_flow"]

    if not rows:
        return annual_data

    last_month = rows[-1].month
    for year_start in range(0, last_month + 1, 12):
        year_end = min(year_start + 11, last_month)
        year_totals = {"year": (year_start // 12) + 1}
        for name in numeric_fields:
            year_totals[name] = sum_rows(rows, name, year_start, year_end)
        year_totals["closing_balance"] = rows[year_end].outstanding_balance
        annual_data.append(year_totals)

    return annual_data
