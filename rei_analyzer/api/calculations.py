"""
Financial calculation API endpoints.

These endpoints accept a project snapshot and return calculated results.
Nothing is stored; every request runs the engine from scratch.
"""

import datetime
import logging
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from rei_analyzer.calculations import irr
from rei_analyzer.calculations.accrual import LoanInvariantError, calculate_loan_balance
from rei_analyzer.calculations.cashflow import annualize_rows, compute_cash_flow
from rei_analyzer.calculations.models import (
    ExpenseItem,
    ExpenseType,
    IncomeItem,
    IncomeType,
    Payment,
    PaymentCategory,
    ProjectData,
)
from rei_analyzer.config import Settings, get_settings

logger = logging.getLogger(__name__)

router = APIRouter()


class PaymentInput(BaseModel):
    """A payment as posted by the UI."""

    id: str
    amount: float
    month: Optional[int] = None
    date: Optional[datetime.date] = None
    type: PaymentCategory = PaymentCategory.PAYMENT
    debt_funded: bool = False
    debt_drawdown: bool = False
    apply_to_debt: bool = False
    loan_adjustment: Optional[float] = None
    net_return: Optional[float] = None
    description: Optional[str] = None

    def to_payment(self) -> Payment:
        return Payment(
            id=self.id,
            amount=self.amount,
            month=self.month,
            date=self.date,
            category=self.type,
            debt_funded=self.debt_funded,
            debt_drawdown=self.debt_drawdown,
            apply_to_debt=self.apply_to_debt,
            loan_adjustment=self.loan_adjustment,
            net_return=self.net_return,
            description=self.description,
        )


class IncomeInput(BaseModel):
    month: Optional[int] = None
    amount: float
    type: IncomeType = IncomeType.RENTAL
    date: Optional[datetime.date] = None
    id: Optional[str] = None
    description: Optional[str] = None


class ExpenseInput(BaseModel):
    month: Optional[int] = None
    amount: float
    type: ExpenseType = ExpenseType.OPERATING
    date: Optional[datetime.date] = None


class ProjectDataInput(BaseModel):
    """Project snapshot for cash flow calculation."""

    project_name: str = ""
    start_date: Optional[datetime.date] = None

    # Acquisition
    purchase_price: float = 0.0
    closing_costs: float = 0.0
    repairs: float = 0.0
    renovation_costs: float = 0.0
    other_initial_costs: float = 0.0
    debt_funded: bool = False

    # Exit
    sale_price: Optional[float] = None
    after_repair_value: Optional[float] = None
    sale_month: Optional[int] = None
    selling_costs: float = 0.0

    # Rates (fractions, e.g. 0.12 for 12%)
    annual_interest_rate: float = 0.0
    monthly_interest_rate: Optional[float] = None
    discount_rate: float = 0.0

    payments: List[PaymentInput] = []
    rental_income: List[IncomeInput] = []
    operating_expenses: List[ExpenseInput] = []

    def to_project(self, default_start_date: datetime.date) -> ProjectData:
        return ProjectData(
            project_name=self.project_name,
            start_date=self.start_date or default_start_date,
            purchase_price=self.purchase_price,
            closing_costs=self.closing_costs,
            repairs=self.repairs,
            renovation_costs=self.renovation_costs,
            other_initial_costs=self.other_initial_costs,
            debt_funded=self.debt_funded,
            sale_price=self.sale_price,
            after_repair_value=self.after_repair_value,
            sale_month=self.sale_month,
            selling_costs=self.selling_costs,
            annual_interest_rate=self.annual_interest_rate,
            monthly_interest_rate=self.monthly_interest_rate,
            discount_rate=self.discount_rate,
            payments=[p.to_payment() for p in self.payments],
            rental_income=[
                IncomeItem(
                    month=i.month,
                    amount=i.amount,
                    type=i.type,
                    date=i.date,
                    id=i.id,
                    description=i.description,
                )
                for i in self.rental_income
            ],
            operating_expenses=[
                ExpenseItem(month=e.month, amount=e.amount, type=e.type, date=e.date)
                for e in self.operating_expenses
            ],
        )


class ReturnMetricsResponse(BaseModel):
    """Calculated return metrics."""

    npv: float
    irr: Optional[float] = None
    monthly_irr: Optional[float] = None
    xirr: Optional[float] = None
    equity_multiple: Optional[float] = None
    total_invested: float
    total_returned: float
    net_profit: float
    total_interest: float


class CashFlowResponse(BaseModel):
    """Response with cash flows and metrics."""

    metrics: ReturnMetricsResponse
    rows: List[dict]
    annual_rows: List[dict]
    balance_series: List[dict]
    breakdown: List[dict]
    processed_payments: List[dict]
    loan_balance: dict
    warnings: List[str]


@router.post("/cashflow", response_model=CashFlowResponse)
async def calculate_cashflow(
    inputs: ProjectDataInput, settings: Settings = Depends(get_settings)
):
    """Calculate the monthly cash flow table and return metrics for a project."""

    project = inputs.to_project(settings.default_start_date)

    try:
        result = compute_cash_flow(project, settings.engine_options())
    except LoanInvariantError as e:
        logger.error(f"Cash flow run rejected for '{project.project_name}': {e}")
        raise HTTPException(status_code=422, detail=str(e))

    return CashFlowResponse(
        metrics=ReturnMetricsResponse(**asdict(result.metrics)),
        rows=[asdict(row) for row in result.rows],
        annual_rows=annualize_rows(result.rows),
        balance_series=[asdict(point) for point in result.balance_series],
        breakdown=[asdict(item) for item in result.breakdown],
        processed_payments=[asdict(p) for p in result.processed_payments],
        loan_balance=asdict(result.loan_balance),
        warnings=result.warnings,
    )


class IRRInput(BaseModel):
    """Input for IRR calculation."""

    cash_flows: List[float]
    dates: Optional[List[datetime.date]] = None
    discount_rate: float = 0.10


class IRRResponse(BaseModel):
    """Response with IRR calculation."""

    irr: float
    multiple: float
    profit: float
    npv: float


@router.post("/irr", response_model=IRRResponse)
async def calculate_irr_endpoint(
    inputs: IRRInput, settings: Settings = Depends(get_settings)
):
    """Calculate IRR for given cash flows (per period, or annual when dated)."""

    try:
        if inputs.dates:
            irr_val = irr.calculate_xirr(
                inputs.cash_flows,
                inputs.dates,
                tolerance=settings.irr_tolerance,
                max_iterations=settings.irr_max_iterations,
            )
            npv = irr.calculate_xnpv(inputs.cash_flows, inputs.dates, inputs.discount_rate)
        else:
            irr_val = irr.calculate_irr(
                inputs.cash_flows,
                tolerance=settings.irr_tolerance,
                max_iterations=settings.irr_max_iterations,
            )
            npv = irr.calculate_npv(inputs.cash_flows, inputs.discount_rate)

        multiple = irr.calculate_multiple(inputs.cash_flows)
        profit = irr.calculate_profit(inputs.cash_flows)

        return IRRResponse(
            irr=irr_val,
            multiple=multiple,
            profit=profit,
            npv=npv,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


class LoanBalanceInput(BaseModel):
    """Input for loan tracking over a list of payments."""

    payments: List[PaymentInput]
    start_date: Optional[datetime.date] = None
    up_to_index: Optional[int] = None


@router.post("/loan-balance")
async def calculate_loan_balance_endpoint(
    inputs: LoanBalanceInput, settings: Settings = Depends(get_settings)
):
    """Track the loan balance across payments, optionally up to an index."""

    project = ProjectData(
        start_date=inputs.start_date or settings.default_start_date,
        payments=[p.to_payment() for p in inputs.payments],
    )

    try:
        result = compute_cash_flow(project, settings.engine_options())
    except LoanInvariantError as e:
        raise HTTPException(status_code=422, detail=str(e))

    balance = calculate_loan_balance(result.processed_payments, inputs.up_to_index)

    return {
        "processed_payments": [asdict(p) for p in result.processed_payments],
        "loan_balance": asdict(balance),
        "warnings": result.warnings,
    }
