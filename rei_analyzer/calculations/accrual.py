"""
Loan Accrual Calculations

Walks the event stream in date order, tracking the outstanding loan balance
and the interest accrued on each interval between balance changes.

Interest is simple (never capitalized into principal). Each interval is
half-open, [from_date, to_date), and is priced at the balance in force
before the event that closes it.
"""

import logging
from bisect import bisect_left
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Dict, List, Optional, Sequence, Tuple

from rei_analyzer.calculations.events import Event, EventKind
from rei_analyzer.calculations.models import (
    DayCountConvention,
    InterestBreakdownItem,
    LoanBalance,
    ProcessedPayment,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class LoanInvariantError(ValueError):
    """The event stream violates a loan invariant; the run cannot continue."""


@dataclass(frozen=True)
class LoanApplication:
    """How a single event moved the loan balance."""

    loan_adjustment: float  # Principal drawn (drawdown) or repaid (repayment)
    net_return: float  # Equity portion of a debt-applying inflow (negative on a sale shortfall)
    is_partial_loan_payment: bool
    balance_after: float


@dataclass
class AccrualResult:
    breakdown: List[InterestBreakdownItem] = field(default_factory=list)
    applications: Dict[int, LoanApplication] = field(default_factory=dict)
    balance_points: List[Tuple[date, float]] = field(default_factory=list)
    total_drawn: float = 0.0
    total_repaid: float = 0.0

    @property
    def outstanding(self) -> float:
        return self.balance_points[-1][1] if self.balance_points else 0.0

    def balance_before(self, boundary: date) -> float:
        """Balance after every balance change dated strictly before ``boundary``."""
        dates = [point[0] for point in self.balance_points]
        index = bisect_left(dates, boundary)
        if index == 0:
            return 0.0
        return self.balance_points[index - 1][1]


def round_currency(value: float) -> float:
    """Round to cents, half to even."""
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_EVEN))


def rate_for_convention(monthly_rate: float, day_count: DayCountConvention) -> Tuple[float, int]:
    """
    Periodic rate and day-count base for a convention.

    Returns:
        Tuple of (rate, base days)
    """
    if day_count == DayCountConvention.THIRTY_DAY_MONTH:
        return monthly_rate, 30
    return monthly_rate * 12, 365


def calculate_interval_interest(principal: float, rate: float, days: int, base: int) -> float:
    """
    Simple interest for one accrual interval.

    interest = principal * rate * days / base, rounded half-even to cents.
    """
    if days <= 0:
        raise LoanInvariantError(f"Accrual interval must be positive, got {days} days")
    if base <= 0:
        raise LoanInvariantError(f"Day-count base must be positive, got {base}")

    interest = Decimal(str(principal)) * Decimal(str(rate)) * days / base
    return float(interest.quantize(CENT, rounding=ROUND_HALF_EVEN))


def _apply_to_loan(event: Event, balance: float) -> Tuple[float, float, float]:
    """
    Split a debt-applying event between the loan and equity.

    Returns:
        Tuple of (principal applied, net return, new balance)
    """
    if event.kind == EventKind.SALE:
        # A sale pays off the whole loan; a shortfall comes out of equity
        applied = round_currency(balance)
        return applied, round_currency(event.amount - applied), 0.0

    magnitude = abs(event.amount)
    offered = magnitude
    if event.loan_limit is not None:
        offered = min(abs(event.loan_limit), magnitude)

    applied = round_currency(min(offered, balance))
    # Inflows beyond the applied principal flow through to equity;
    # an investor-funded paydown (outflow) yields no return
    net_return = round_currency(magnitude - applied) if event.amount > 0 else 0.0
    return applied, net_return, round_currency(balance - applied)


def accrue(
    events: Sequence[Event],
    evaluation_date: date,
    monthly_rate: float,
    day_count: DayCountConvention = DayCountConvention.ACTUAL_365,
) -> AccrualResult:
    """
    Accrue interest over the loan balance implied by an ordered event stream.

    Args:
        events: Events sorted chronologically (see build_events)
        evaluation_date: Exclusive end of the final accrual interval
        monthly_rate: Monthly interest rate as decimal
        day_count: Day-count convention for converting days to rate periods

    Returns:
        AccrualResult with the interest breakdown, per-event loan applications
        and the balance after each balance change

    Raises:
        LoanInvariantError: Negative balance, repayment before any drawdown,
            or events out of chronological order
    """
    rate, base = rate_for_convention(monthly_rate, day_count)
    result = AccrualResult()
    balance = 0.0
    last_boundary: Optional[date] = None
    last_event_date: Optional[date] = None

    def close_interval(until: date) -> None:
        days = (until - last_boundary).days
        if days < 0:
            raise LoanInvariantError(
                f"Accrual interval ends {until.isoformat()} before it starts "
                f"{last_boundary.isoformat()}"
            )
        if days == 0:
            return
        result.breakdown.append(
            InterestBreakdownItem(
                from_date=last_boundary,
                to_date=until,
                days=days,
                principal=balance,
                rate=rate,
                interest=calculate_interval_interest(balance, rate, days, base),
            )
        )

    for event in events:
        if last_event_date is not None and event.event_date < last_event_date:
            raise LoanInvariantError(
                f"Event {event.source_id} dated {event.event_date.isoformat()} "
                f"is out of order"
            )
        last_event_date = event.event_date

        if balance < 0:
            raise LoanInvariantError(f"Negative loan balance {balance:,.2f}")

        if not event.changes_balance:
            result.applications[event.sequence] = LoanApplication(0.0, 0.0, False, balance)
            continue

        if event.kind == EventKind.DRAWDOWN:
            if last_boundary is None:
                last_boundary = event.event_date
            else:
                close_interval(event.event_date)
                last_boundary = event.event_date

            drawn = round_currency(abs(event.amount))
            balance = round_currency(balance + drawn)
            result.total_drawn = round_currency(result.total_drawn + drawn)
            result.applications[event.sequence] = LoanApplication(drawn, 0.0, False, balance)
            result.balance_points.append((event.event_date, balance))
            continue

        if event.kind == EventKind.REPAYMENT and result.total_drawn == 0:
            raise LoanInvariantError(
                f"Repayment {event.source_id} on {event.event_date.isoformat()} "
                f"precedes any drawdown"
            )

        if last_boundary is None:
            # No loan has been opened; the whole amount is equity
            net_return = round_currency(event.amount) if event.amount > 0 else 0.0
            result.applications[event.sequence] = LoanApplication(0.0, net_return, False, 0.0)
            continue

        close_interval(event.event_date)
        last_boundary = event.event_date

        balance_before = balance
        applied, net_return, balance = _apply_to_loan(event, balance)
        is_partial = 0 < applied < balance_before
        result.total_repaid = round_currency(result.total_repaid + applied)
        result.applications[event.sequence] = LoanApplication(
            applied, net_return, is_partial, balance
        )
        result.balance_points.append((event.event_date, balance))

    if last_boundary is not None and evaluation_date > last_boundary:
        close_interval(evaluation_date)

    logger.debug(
        f"Accrued {len(result.breakdown)} intervals, "
        f"outstanding balance {result.outstanding:,.2f}"
    )
    return result


def calculate_total_interest(breakdown: Sequence[InterestBreakdownItem]) -> float:
    """Total interest accrued over a breakdown."""
    return round_currency(sum(item.interest for item in breakdown))


def calculate_loan_balance(
    processed_payments: Sequence[ProcessedPayment], up_to_index: Optional[int] = None
) -> LoanBalance:
    """
    Loan balance after the first ``up_to_index`` processed payments.

    Args:
        processed_payments: Payments in chronological order
        up_to_index: Exclusive index to stop at (default: all payments)
    """
    end = len(processed_payments) if up_to_index is None else up_to_index
    total_drawn = 0.0
    total_repaid = 0.0

    for payment in processed_payments[:end]:
        if payment.debt_drawdown:
            total_drawn += payment.loan_adjustment
        else:
            total_repaid += payment.loan_adjustment

    return LoanBalance(
        outstanding=round_currency(max(0.0, total_drawn - total_repaid)),
        total_drawn=round_currency(total_drawn),
        total_repaid=round_currency(total_repaid),
    )
