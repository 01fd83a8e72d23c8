"""
Tests for the monthly cash flow table and project return metrics.
"""

import pytest
from dataclasses import replace
from datetime import date

from rei_analyzer.calculations.accrual import LoanInvariantError, calculate_loan_balance
from rei_analyzer.calculations.cashflow import (
    annualize_rows,
    compute_cash_flow,
    generate_monthly_dates,
    split_interest_by_month,
    sum_rows,
)
from rei_analyzer.calculations.models import (
    DayCountConvention,
    EngineOptions,
    ExpenseItem,
    IncomeItem,
    InterestBreakdownItem,
    Payment,
    PaymentCategory,
    ProjectData,
)


class TestCashFlowRows:
    """Test the month-indexed fold."""

    def test_rows_cover_horizon(self, equity_project):
        result = compute_cash_flow(equity_project)
        assert [row.month for row in result.rows] == list(range(13))

    def test_horizon_extends_to_last_event(self):
        project = ProjectData(
            sale_price=1000,
            sale_month=3,
            rental_income=[IncomeItem(month=8, amount=10)],
        )
        result = compute_cash_flow(project)
        assert len(result.rows) == 9

    def test_no_debt_means_zero_balance(self, equity_project):
        result = compute_cash_flow(equity_project)
        assert all(row.outstanding_balance == 0 for row in result.rows)
        assert result.breakdown == []

    def test_cumulative_is_running_sum(self, leveraged_project):
        result = compute_cash_flow(leveraged_project)
        previous = 0.0
        for row in result.rows:
            assert row.cumulative_cash_flow == pytest.approx(previous + row.net_cash_flow)
            previous = row.cumulative_cash_flow

    def test_net_is_sum_of_buckets(self, leveraged_project):
        result = compute_cash_flow(leveraged_project)
        for row in result.rows:
            assert row.net_cash_flow == pytest.approx(
                row.payments + row.interest + row.rental + row.sale
            )

    def test_buckets(self, equity_project):
        project = replace(
            equity_project,
            operating_expenses=[ExpenseItem(month=5, amount=250)],
        )
        result = compute_cash_flow(project)
        assert result.rows[0].payments == -100000
        assert result.rows[5].rental == 1000
        assert result.rows[5].payments == -250
        assert result.rows[12].sale == 150000
        assert result.rows[12].net_cash_flow == 150000

    def test_deterministic(self, leveraged_project):
        """Two runs on the same snapshot give identical results."""
        first = compute_cash_flow(leveraged_project)
        second = compute_cash_flow(leveraged_project)
        assert first == second

    def test_generate_monthly_dates(self):
        dates = generate_monthly_dates(date(2025, 1, 1), 3)
        assert dates == [date(2025, 1, 1), date(2025, 2, 1), date(2025, 3, 1), date(2025, 4, 1)]


class TestLeveragedProject:
    """Worked example: 100k loan at 12% actual/365, 30k paydown, sale in month 6."""

    def test_balance_series(self, leveraged_project):
        result = compute_cash_flow(leveraged_project)
        balances = [point.balance for point in result.balance_series]
        assert balances == [100000, 100000, 70000, 70000, 70000, 70000, 0]

    def test_breakdown(self, leveraged_project):
        result = compute_cash_flow(leveraged_project)
        first, second, third = result.breakdown

        assert first.days == 73
        assert first.principal == 100000
        assert first.interest == 2400.00

        assert second.from_date == date(2025, 3, 15)
        assert second.days == 108
        assert second.principal == 70000
        assert second.interest == 2485.48

        assert third.principal == 0
        assert third.to_date == date(2025, 8, 1)

    def test_breakdown_days_span(self, leveraged_project):
        result = compute_cash_flow(leveraged_project)
        total_days = sum(item.days for item in result.breakdown)
        assert total_days == (date(2025, 8, 1) - date(2025, 1, 1)).days

    def test_interest_pro_rated_by_month(self, leveraged_project):
        result = compute_cash_flow(leveraged_project)
        interest = [row.interest for row in result.rows]
        assert interest == pytest.approx(
            [-1019.18, -920.55, -851.50, -690.41, -713.42, -690.42, 0.0]
        )
        assert -sum(interest) == pytest.approx(4885.48)
        assert result.metrics.total_interest == pytest.approx(4885.48)

    def test_sale_pays_off_loan(self, leveraged_project):
        result = compute_cash_flow(leveraged_project)
        assert result.rows[6].sale == 200000
        assert result.rows[6].equity_cash_flow == 130000
        assert result.loan_balance.outstanding == 0
        assert result.loan_balance.total_drawn == 100000
        assert result.loan_balance.total_repaid == 100000

    def test_equity_excludes_loan_principal(self, leveraged_project):
        result = compute_cash_flow(leveraged_project)
        assert result.rows[0].payments == -140000
        assert result.rows[0].equity_cash_flow == pytest.approx(-41019.18)
        assert result.rows[2].payments == 30000
        assert result.rows[2].equity_cash_flow == pytest.approx(-851.50)

    def test_processed_payments(self, leveraged_project):
        result = compute_cash_flow(leveraged_project)
        by_id = {p.id: p for p in result.processed_payments}

        assert by_id["loan"].debt_drawdown is True
        assert by_id["loan"].running_loan_balance == 100000
        assert by_id["paydown"].loan_adjustment == 30000
        assert by_id["paydown"].is_partial_loan_payment is True
        assert by_id["paydown"].running_loan_balance == 70000

        balance = calculate_loan_balance(result.processed_payments)
        assert balance.outstanding == 70000
        assert balance.total_drawn == 100000
        assert balance.total_repaid == 30000

    def test_loan_balance_up_to_index(self, leveraged_project):
        result = compute_cash_flow(leveraged_project)
        balance = calculate_loan_balance(result.processed_payments, up_to_index=1)
        assert balance.outstanding == 100000
        assert balance.total_repaid == 0

    def test_leveraged_metrics(self, leveraged_project):
        result = compute_cash_flow(leveraged_project)
        metrics = result.metrics
        assert metrics.irr is not None
        assert metrics.irr > 0
        assert metrics.xirr is not None
        assert metrics.equity_multiple == pytest.approx(
            130000 / (41019.18 + 920.55 + 851.50 + 690.41 + 713.42 + 690.42)
        )
        assert metrics.net_profit == pytest.approx(130000 - 44885.48)

    def test_thirty_day_convention_option(self, leveraged_project):
        options = EngineOptions(day_count=DayCountConvention.THIRTY_DAY_MONTH)
        result = compute_cash_flow(leveraged_project, options)
        first = result.breakdown[0]
        assert first.rate == pytest.approx(0.01)
        assert first.interest == pytest.approx(round(100000 * 0.01 * 73 / 30, 2))


class TestRepaymentScenarios:
    """Loan capping and partial repayment through the full engine."""

    def _project(self, repayment):
        return ProjectData(
            start_date=date(2025, 1, 1),
            payments=[
                Payment(id="equity", amount=-10000, month=0),
                Payment(id="draw", amount=-50000, month=0, category=PaymentCategory.DRAWDOWN),
                Payment(id="repay", amount=repayment, month=2, category=PaymentCategory.REPAYMENT),
            ],
        )

    def test_repayment_exceeding_balance(self):
        result = compute_cash_flow(self._project(80000))
        repay = [p for p in result.processed_payments if p.id == "repay"][0]

        assert result.rows[2].outstanding_balance == 0
        assert repay.is_partial_loan_payment is False
        assert repay.loan_adjustment == 50000
        assert repay.net_return == 30000
        assert result.rows[2].equity_cash_flow == 30000

    def test_partial_repayment(self):
        result = compute_cash_flow(self._project(20000))
        repay = [p for p in result.processed_payments if p.id == "repay"][0]

        assert result.rows[2].outstanding_balance == 30000
        assert repay.is_partial_loan_payment is True
        assert result.rows[2].equity_cash_flow == 0

    def test_sale_short_of_loan_is_funded_by_equity(self):
        """Sale proceeds below the balance still pay the loan off; equity covers the gap."""
        project = ProjectData(
            start_date=date(2025, 1, 1),
            purchase_price=100000,
            debt_funded=True,
            sale_price=80000,
            sale_month=6,
            payments=[Payment(id="fee", amount=-1000, month=0)],
        )
        result = compute_cash_flow(project)

        assert result.rows[6].sale == 80000
        assert result.rows[6].equity_cash_flow == -20000
        assert result.rows[6].outstanding_balance == 0
        assert result.loan_balance.outstanding == 0
        assert result.loan_balance.total_repaid == 100000
        assert result.metrics.net_profit == -21000
        assert result.metrics.total_invested == 21000

    def test_negative_net_sale_does_not_repay_loan(self):
        """Selling costs above the price are an outflow, not proceeds against the loan."""
        project = ProjectData(
            start_date=date(2025, 1, 1),
            purchase_price=100000,
            debt_funded=True,
            sale_price=5000,
            selling_costs=15000,
            sale_month=6,
        )
        result = compute_cash_flow(project)

        assert result.rows[6].sale == -10000
        assert result.rows[6].equity_cash_flow == -10000
        assert result.rows[6].outstanding_balance == 100000
        assert result.loan_balance.outstanding == 100000
        assert result.loan_balance.total_repaid == 0

    def test_stored_partial_flag_and_breakdown_are_ignored(self):
        stale = InterestBreakdownItem(
            from_date=date(2025, 1, 1),
            to_date=date(2025, 2, 1),
            days=31,
            principal=1,
            rate=1.0,
            interest=999.0,
        )
        project = ProjectData(
            start_date=date(2025, 1, 1),
            payments=[
                Payment(id="draw", amount=-50000, month=0, category=PaymentCategory.DRAWDOWN),
                Payment(
                    id="repay",
                    amount=80000,
                    month=2,
                    category=PaymentCategory.REPAYMENT,
                    is_partial_loan_payment=True,
                    interest_breakdown=(stale,),
                ),
            ],
        )
        result = compute_cash_flow(project)
        repay = [p for p in result.processed_payments if p.id == "repay"][0]

        assert repay.is_partial_loan_payment is False
        assert result.metrics.total_interest == 0

    def test_repayment_without_drawdown_aborts(self):
        project = ProjectData(
            payments=[Payment(id="repay", amount=100, month=0, category=PaymentCategory.REPAYMENT)]
        )
        with pytest.raises(LoanInvariantError):
            compute_cash_flow(project)


class TestReturnMetrics:
    """Test NPV/IRR/multiple on the equity series."""

    def test_fifty_percent_hold(self):
        """[-100000, 0 ... 0, 150000] at month 12 is a 50% annual return."""
        project = ProjectData(
            purchase_price=100000,
            sale_price=150000,
            sale_month=12,
            discount_rate=0.5,
        )
        result = compute_cash_flow(project)
        assert result.metrics.irr == pytest.approx(0.5, abs=1e-6)
        assert result.metrics.npv == pytest.approx(0.0, abs=0.01)
        assert result.metrics.equity_multiple == pytest.approx(1.5)
        assert result.warnings == []

    def test_equity_project_metrics(self, equity_project):
        result = compute_cash_flow(equity_project)
        metrics = result.metrics
        assert metrics.total_invested == 100000
        assert metrics.total_returned == 159000
        assert metrics.net_profit == 59000
        assert metrics.equity_multiple == pytest.approx(1.59)
        assert metrics.npv > 0
        assert metrics.total_interest == 0

    def test_no_sign_change_gives_no_irr(self):
        project = ProjectData(rental_income=[IncomeItem(month=m, amount=500) for m in range(6)])
        result = compute_cash_flow(project)
        assert result.metrics.irr is None
        assert result.metrics.monthly_irr is None
        assert any("NoSolution" in w for w in result.warnings)

    def test_non_convergence_gives_no_irr(self, equity_project):
        result = compute_cash_flow(equity_project, EngineOptions(irr_max_iterations=1))
        assert result.metrics.irr is None
        assert any("DidNotConverge" in w for w in result.warnings)

    def test_skipped_records_are_warnings_not_failures(self, equity_project):
        project = replace(
            equity_project,
            payments=[Payment(id="orphan", amount=-100)],
        )
        result = compute_cash_flow(project)
        assert any("orphan" in w for w in result.warnings)
        assert result.metrics.irr is not None


class TestHelpers:
    """Test aggregation helpers."""

    def test_split_interest_by_month_sums_to_item(self):
        item = InterestBreakdownItem(
            from_date=date(2025, 1, 20),
            to_date=date(2025, 3, 10),
            days=49,
            principal=10000,
            rate=0.12,
            interest=161.10,
        )
        pieces = split_interest_by_month(item, date(2025, 1, 1))
        assert [month for month, _ in pieces] == [0, 1, 2]
        assert sum(amount for _, amount in pieces) == pytest.approx(161.10)

    def test_annualize_rows(self, equity_project):
        result = compute_cash_flow(equity_project)
        annual = annualize_rows(result.rows)
        assert [year["year"] for year in annual] == [1, 2]
        assert annual[0]["rental"] == 9000
        assert annual[0]["payments"] == -100000
        assert annual[1]["sale"] == 150000
        assert annual[1]["closing_balance"] == 0

    def test_sum_rows(self, equity_project):
        result = compute_cash_flow(equity_project)
        assert sum_rows(result.rows, "rental") == 9000
        assert sum_rows(result.rows, "rental", start_month=10) == 2000
