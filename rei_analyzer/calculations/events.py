"""
Event Model

Normalizes the purchase parameters, payments, income and expense records of a
project into one chronological stream of dated, signed, categorized events.

Month-index inputs resolve to the first day of that month relative to the
project start date; dated inputs take the project month they fall in.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from rei_analyzer.calculations.models import (
    ExpenseType,
    IncomeType,
    Payment,
    PaymentCategory,
    ProjectData,
)

logger = logging.getLogger(__name__)

# Tolerance when reconciling loan_adjustment + net_return against the amount
AMOUNT_TOLERANCE = 0.01


class EventKind(str, Enum):
    DRAWDOWN = "drawdown"
    REPAYMENT = "repayment"
    SALE = "sale"
    PAYMENT = "payment"
    INTEREST = "interest"
    RENTAL = "rental"
    EXPENSE = "expense"


class EventOrigin(str, Enum):
    OUTLAY = "outlay"
    PAYMENT = "payment"
    INCOME = "income"
    SALE = "sale"
    EXPENSE = "expense"


# Same-day ordering: balance changes before equity postings
KIND_PRIORITY = {
    EventKind.DRAWDOWN: 0,
    EventKind.REPAYMENT: 1,
    EventKind.SALE: 2,
    EventKind.PAYMENT: 3,
    EventKind.INTEREST: 4,
    EventKind.RENTAL: 5,
    EventKind.EXPENSE: 6,
}


class EventError(ValueError):
    """A record that cannot be placed in the event stream."""


@dataclass(frozen=True)
class Event:
    """One dated, signed cash event."""

    sequence: int
    event_date: date
    month: int
    amount: float  # Signed as stored
    kind: EventKind
    origin: EventOrigin
    source_id: Optional[str] = None
    apply_to_debt: bool = False
    loan_limit: Optional[float] = None  # Cap on the portion offered to the loan
    description: Optional[str] = None
    payment: Optional[Payment] = None

    @property
    def bucket(self) -> str:
        """Cash flow row column this event is summed into."""
        if self.kind == EventKind.INTEREST:
            return "interest"
        if self.kind == EventKind.RENTAL:
            return "rental"
        if self.kind == EventKind.SALE:
            return "sale"
        return "payments"

    @property
    def changes_balance(self) -> bool:
        return self.kind in (EventKind.DRAWDOWN, EventKind.REPAYMENT) or self.applies_to_debt

    @property
    def applies_to_debt(self) -> bool:
        # Only positive sale proceeds settle the loan
        if self.kind == EventKind.SALE:
            return self.amount > 0
        return self.kind == EventKind.REPAYMENT or self.apply_to_debt

    def sort_key(self) -> Tuple[date, int, int]:
        return (self.event_date, KIND_PRIORITY[self.kind], self.sequence)


def month_start(start_date: date, month: int) -> date:
    """First day of project month ``month``."""
    return start_date + relativedelta(months=month)


def month_of(start_date: date, when: date) -> int:
    """Project month containing ``when`` (may be negative before the start)."""
    month = (when.year - start_date.year) * 12 + (when.month - start_date.month)
    while month_start(start_date, month + 1) <= when:
        month += 1
    while month_start(start_date, month) > when:
        month -= 1
    return month


def resolve_date(
    start_date: date, month: Optional[int], when: Optional[date]
) -> Tuple[date, int]:
    """
    Resolve a (month, date) pair to a calendar date and project month.

    An explicit date wins over a month index.

    Raises:
        EventError: If neither is usable or the result precedes the project start
    """
    if when is not None:
        resolved_month = month_of(start_date, when)
        if resolved_month < 0:
            raise EventError(f"date {when.isoformat()} is before project start")
        return when, resolved_month

    if month is None:
        raise EventError("record has neither a date nor a month")
    if month < 0:
        raise EventError(f"month {month} is before project start")
    return month_start(start_date, month), month


def validate_payment(payment: Payment) -> Tuple[Payment, Optional[str]]:
    """
    Reconcile an explicit loan/return split with the payment amount.

    When both ``loan_adjustment`` and ``net_return`` are present and their sum
    disagrees with the amount, the amount is set to their sum (keeping its sign).
    ``is_partial_loan_payment`` is recomputed from the split.

    Returns:
        Tuple of (validated payment, warning message or None)
    """
    message = None
    amount = payment.amount

    if payment.loan_adjustment is not None and payment.net_return is not None:
        split_total = payment.loan_adjustment + payment.net_return
        if abs(split_total - abs(amount)) > AMOUNT_TOLERANCE:
            message = (
                f"Payment {payment.id}: loan adjustment {payment.loan_adjustment:,.2f} + "
                f"net return {payment.net_return:,.2f} does not match amount "
                f"{amount:,.2f}; using {split_total:,.2f}"
            )
            logger.warning(message)
            amount = split_total if amount >= 0 else -split_total

    loan_adjustment = payment.loan_adjustment or 0.0
    is_partial = 0 < loan_adjustment < abs(amount)

    return replace(payment, amount=amount, is_partial_loan_payment=is_partial), message


def classify_payment(payment: Payment) -> EventKind:
    """
    Determine the event kind of a payment record.

    Raises:
        EventError: If the record is both a drawdown and a repayment
    """
    is_drawdown = (
        payment.category == PaymentCategory.DRAWDOWN
        or payment.debt_funded
        or payment.debt_drawdown
    )
    is_repayment = payment.category == PaymentCategory.REPAYMENT or payment.apply_to_debt

    if is_drawdown and is_repayment:
        raise EventError("record is flagged as both a drawdown and a repayment")
    if is_drawdown:
        return EventKind.DRAWDOWN
    if payment.category == PaymentCategory.REPAYMENT:
        return EventKind.REPAYMENT
    if payment.category == PaymentCategory.INTEREST:
        if payment.apply_to_debt:
            raise EventError("interest records cannot be applied to debt")
        return EventKind.INTEREST
    return EventKind.PAYMENT


def build_events(project: ProjectData) -> Tuple[List[Event], List[str]]:
    """
    Build the ordered event stream for a project.

    Unusable records are dropped and reported; they never abort the run.

    Returns:
        Tuple of (events sorted chronologically, warning messages)
    """
    start = project.start_date
    events: List[Event] = []
    warnings: List[str] = []

    def add(**kwargs) -> None:
        events.append(Event(sequence=len(events), **kwargs))

    # Initial outlay at month 0
    outlay = project.initial_outlay
    if outlay > 0:
        add(
            event_date=start,
            month=0,
            amount=-outlay,
            kind=EventKind.DRAWDOWN if project.debt_funded else EventKind.PAYMENT,
            origin=EventOrigin.OUTLAY,
            source_id="initial-outlay",
            description="Purchase, closing, repairs and other initial costs",
        )

    for payment in project.payments:
        payment, message = validate_payment(payment)
        if message:
            warnings.append(message)
        try:
            kind = classify_payment(payment)
            when, month = resolve_date(start, payment.month, payment.date)
        except EventError as e:
            message = f"Skipped payment {payment.id}: {e}"
            logger.warning(message)
            warnings.append(message)
            continue

        add(
            event_date=when,
            month=month,
            amount=-abs(payment.amount) if kind == EventKind.INTEREST else payment.amount,
            kind=kind,
            origin=EventOrigin.PAYMENT,
            source_id=payment.id,
            apply_to_debt=payment.apply_to_debt,
            loan_limit=(
                payment.loan_adjustment
                if kind == EventKind.REPAYMENT or payment.apply_to_debt
                else None
            ),
            description=payment.description,
            payment=payment,
        )

    for index, item in enumerate(project.rental_income):
        label = item.id or f"income-{index}"
        try:
            when, month = resolve_date(start, item.month, item.date)
        except EventError as e:
            message = f"Skipped income {label}: {e}"
            logger.warning(message)
            warnings.append(message)
            continue

        add(
            event_date=when,
            month=month,
            amount=abs(item.amount),
            kind=EventKind.SALE if item.type == IncomeType.SALE else EventKind.RENTAL,
            origin=EventOrigin.INCOME,
            source_id=label,
            description=item.description,
        )

    # Sale proceeds net of selling costs
    exit_value = project.exit_value
    if project.sale_month is not None and exit_value:
        try:
            when, month = resolve_date(start, project.sale_month, None)
        except EventError as e:
            message = f"Skipped sale: {e}"
            logger.warning(message)
            warnings.append(message)
        else:
            add(
                event_date=when,
                month=month,
                amount=exit_value - project.selling_costs,
                kind=EventKind.SALE,
                origin=EventOrigin.SALE,
                source_id="sale",
                description="Sale proceeds net of selling costs",
            )

    for index, expense in enumerate(project.operating_expenses):
        label = f"expense-{index}"
        try:
            when, month = resolve_date(start, expense.month, expense.date)
        except EventError as e:
            message = f"Skipped expense {label}: {e}"
            logger.warning(message)
            warnings.append(message)
            continue

        add(
            event_date=when,
            month=month,
            amount=-abs(expense.amount),
            kind=EventKind.INTEREST if expense.type == ExpenseType.INTEREST else EventKind.EXPENSE,
            origin=EventOrigin.EXPENSE,
            source_id=label,
            description=expense.type.value,
        )

    events.sort(key=Event.sort_key)
    logger.debug(f"Built {len(events)} events ({len(warnings)} records skipped)")
    return events, warnings
