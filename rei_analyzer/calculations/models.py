"""
Project and Cash Flow Data Model

Immutable snapshots passed into the calculation engine and the derived
structures it returns. Rates are fractions (0.12 = 12%) throughout.
"""

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

# Month 0 of a project when no explicit start date is supplied
DEFAULT_START_DATE = datetime.date(2024, 1, 1)


class PaymentCategory(str, Enum):
    """Category tag carried by a payment record."""

    PAYMENT = "payment"
    RETURN = "return"
    INTEREST = "interest"
    DRAWDOWN = "drawdown"
    REPAYMENT = "repayment"


class IncomeType(str, Enum):
    RENTAL = "rental"
    SALE = "sale"


class ExpenseType(str, Enum):
    OPERATING = "operating"
    INTEREST = "interest"
    SELLING = "selling"


class DayCountConvention(str, Enum):
    """How an accrual interval is converted into a fraction of the rate period."""

    ACTUAL_365 = "actual/365"  # annual rate * days / 365
    THIRTY_DAY_MONTH = "30-day"  # monthly rate * days / 30


@dataclass(frozen=True)
class InterestBreakdownItem:
    """One accrual interval [from_date, to_date) at a constant principal."""

    from_date: datetime.date
    to_date: datetime.date
    days: int
    principal: float
    rate: float  # Periodic rate applied (annual for actual/365, monthly for 30-day)
    interest: float


@dataclass(frozen=True)
class Payment:
    """A single dated cash event entered against the project."""

    id: str
    amount: float  # Negative = outflow, positive = inflow
    month: Optional[int] = None
    date: Optional[datetime.date] = None
    category: PaymentCategory = PaymentCategory.PAYMENT
    debt_funded: bool = False
    debt_drawdown: bool = False
    apply_to_debt: bool = False
    loan_adjustment: Optional[float] = None
    net_return: Optional[float] = None
    description: Optional[str] = None
    # Stored with the record only. validate_payment rewrites the flag and the
    # engine prices interest from the balance history, never from these.
    is_partial_loan_payment: bool = False
    interest_breakdown: Tuple[InterestBreakdownItem, ...] = ()


@dataclass(frozen=True)
class IncomeItem:
    month: Optional[int]
    amount: float
    type: IncomeType = IncomeType.RENTAL
    date: Optional[datetime.date] = None
    id: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class ExpenseItem:
    month: Optional[int]
    amount: float
    type: ExpenseType = ExpenseType.OPERATING
    date: Optional[datetime.date] = None


@dataclass(frozen=True)
class ProjectData:
    """
    Aggregate root for a single investment project.

    Collections are stored as tuples; callers replace whole collections
    (``dataclasses.replace``) rather than mutating them.
    """

    project_name: str = ""
    start_date: datetime.date = DEFAULT_START_DATE

    # Acquisition
    purchase_price: float = 0.0
    closing_costs: float = 0.0
    repairs: float = 0.0
    renovation_costs: float = 0.0  # Older projects store repairs under this name
    other_initial_costs: float = 0.0
    debt_funded: bool = False  # Initial outlay drawn from the loan

    # Exit
    sale_price: Optional[float] = None
    after_repair_value: Optional[float] = None
    sale_month: Optional[int] = None
    selling_costs: float = 0.0

    # Rates
    annual_interest_rate: float = 0.0
    monthly_interest_rate: Optional[float] = None
    discount_rate: float = 0.0  # Annual

    payments: Tuple[Payment, ...] = ()
    rental_income: Tuple[IncomeItem, ...] = ()
    operating_expenses: Tuple[ExpenseItem, ...] = ()

    def __post_init__(self):
        for name in ("payments", "rental_income", "operating_expenses"):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    @property
    def repair_costs(self) -> float:
        return self.repairs or self.renovation_costs

    @property
    def initial_outlay(self) -> float:
        return (
            self.purchase_price
            + self.closing_costs
            + self.repair_costs
            + self.other_initial_costs
        )

    @property
    def exit_value(self) -> Optional[float]:
        """Gross sale value: explicit sale price, else after-repair value."""
        if self.sale_price is not None:
            return self.sale_price
        return self.after_repair_value

    @property
    def effective_monthly_rate(self) -> float:
        if self.monthly_interest_rate is not None:
            return self.monthly_interest_rate
        return self.annual_interest_rate / 12


@dataclass(frozen=True)
class EngineOptions:
    """Numeric configuration for a single engine run."""

    day_count: DayCountConvention = DayCountConvention.ACTUAL_365
    irr_tolerance: float = 1e-7
    irr_max_iterations: int = 100


@dataclass(frozen=True)
class CashFlowRow:
    """Totals for one project month. Outflows (including interest) are negative."""

    month: int
    payments: float
    interest: float
    rental: float
    sale: float
    net_cash_flow: float
    cumulative_cash_flow: float
    outstanding_balance: float
    equity_cash_flow: float  # Investor perspective, excludes loan principal


@dataclass(frozen=True)
class BalancePoint:
    month: int
    balance: float


@dataclass(frozen=True)
class ProcessedPayment:
    """A payment together with the loan split the engine computed for it."""

    id: str
    month: int
    date: datetime.date
    amount: float
    category: PaymentCategory
    loan_adjustment: float
    net_return: float
    is_partial_loan_payment: bool
    running_loan_balance: float
    debt_drawdown: bool = False
    description: Optional[str] = None


@dataclass(frozen=True)
class LoanBalance:
    outstanding: float
    total_drawn: float
    total_repaid: float


@dataclass(frozen=True)
class ReturnMetrics:
    npv: float
    irr: Optional[float]  # Annualised
    monthly_irr: Optional[float]
    xirr: Optional[float]
    equity_multiple: Optional[float]
    total_invested: float
    total_returned: float
    net_profit: float
    total_interest: float


@dataclass(frozen=True)
class CashFlowResult:
    rows: List[CashFlowRow]
    balance_series: List[BalancePoint]
    breakdown: List[InterestBreakdownItem]
    metrics: ReturnMetrics
    warnings: List[str] = field(default_factory=list)
    processed_payments: List[ProcessedPayment] = field(default_factory=list)
    loan_balance: LoanBalance = LoanBalance(0.0, 0.0, 0.0)
