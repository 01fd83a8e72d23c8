"""
Run the cash flow engine on a demo BRRRR-style project and print the results.
"""
import sys
import os
from datetime import date

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rei_analyzer.calculations.accrual import LoanInvariantError
from rei_analyzer.calculations.cashflow import annualize_rows, compute_cash_flow
from rei_analyzer.calculations.models import (
    IncomeItem,
    Payment,
    PaymentCategory,
    ProjectData,
)
from rei_analyzer.config import get_settings


def build_demo_project() -> ProjectData:
    """Buy with a hard-money loan, renovate, rent for a while, then sell."""
    return ProjectData(
        project_name="12 Elm St",
        start_date=date(2025, 1, 1),
        purchase_price=120000,
        closing_costs=3600,
        repairs=35000,
        debt_funded=True,
        annual_interest_rate=0.11,
        discount_rate=0.10,
        sale_price=245000,
        sale_month=14,
        selling_costs=14700,  # 6% of sale price
        payments=[
            Payment(id="down", amount=-30000, month=0, description="Down payment"),
            Payment(
                id="refi-paydown",
                amount=60000,
                date=date(2025, 7, 15),
                category=PaymentCategory.RETURN,
                apply_to_debt=True,
                description="Cash-out from partner buy-in applied to loan",
            ),
        ],
        rental_income=[IncomeItem(month=m, amount=1850) for m in range(5, 14)],
    )


def main():
    settings = get_settings()
    project = build_demo_project()

    try:
        result = compute_cash_flow(project, settings.engine_options())
    except LoanInvariantError as e:
        print(f"Error: {e}")
        raise

    print(f"Project: {project.project_name} (start {project.start_date.isoformat()})")
    print(f"Day count: {settings.day_count_convention.value}\n")

    print(f"{'Month':>5} {'Payments':>12} {'Interest':>10} {'Rental':>9} {'Sale':>11} "
          f"{'Net':>12} {'Equity CF':>12} {'Balance':>12}")
    for row in result.rows:
        print(
            f"{row.month:>5} {row.payments:>12,.2f} {row.interest:>10,.2f} {row.rental:>9,.2f} "
            f"{row.sale:>11,.2f} {row.net_cash_flow:>12,.2f} {row.equity_cash_flow:>12,.2f} "
            f"{row.outstanding_balance:>12,.2f}"
        )

    print("\nAnnual totals:")
    for year in annualize_rows(result.rows):
        print(f"  Year {year['year']}: net {year['net_cash_flow']:,.2f}, "
              f"equity {year['equity_cash_flow']:,.2f}, closing balance {year['closing_balance']:,.2f}")

    print("\nInterest accrual:")
    for item in result.breakdown:
        print(f"  {item.from_date} -> {item.to_date} ({item.days} days) "
              f"on {item.principal:,.2f}: {item.interest:,.2f}")

    metrics = result.metrics
    print("\nReturns:")
    print(f"  NPV:             {metrics.npv:,.2f}")
    print(f"  IRR (annual):    {metrics.irr:.2%}" if metrics.irr is not None else "  IRR (annual):    n/a")
    print(f"  XIRR:            {metrics.xirr:.2%}" if metrics.xirr is not None else "  XIRR:            n/a")
    if metrics.equity_multiple is not None:
        print(f"  Equity multiple: {metrics.equity_multiple:.2f}x")
    print(f"  Net profit:      {metrics.net_profit:,.2f}")
    print(f"  Total interest:  {metrics.total_interest:,.2f}")

    for warning in result.warnings:
        print(f"Warning: {warning}")


if __name__ == "__main__":
    main()
