"""
Pytest configuration and shared fixtures.
"""

import pytest
import sys
import os
from datetime import date

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rei_analyzer.calculations.models import (
    IncomeItem,
    Payment,
    PaymentCategory,
    ProjectData,
)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks integration tests")


@pytest.fixture(scope="session")
def anyio_backend():
    """Backend for async tests."""
    return "asyncio"


@pytest.fixture
def start_date():
    return date(2025, 1, 1)


@pytest.fixture
def equity_project(start_date):
    """All-cash flip: buy, renovate, collect rent, sell in month 12."""
    return ProjectData(
        project_name="Equity Flip",
        start_date=start_date,
        purchase_price=80000,
        closing_costs=5000,
        repairs=15000,
        sale_price=150000,
        sale_month=12,
        discount_rate=0.10,
        rental_income=[
            IncomeItem(month=m, amount=1000) for m in range(3, 12)
        ],
    )


@pytest.fixture
def leveraged_project(start_date):
    """Loan-funded purchase with a mid-hold partial repayment and a sale."""
    return ProjectData(
        project_name="Leveraged Hold",
        start_date=start_date,
        annual_interest_rate=0.12,
        discount_rate=0.10,
        sale_price=200000,
        sale_month=6,
        payments=[
            Payment(id="equity", amount=-40000, month=0, category=PaymentCategory.PAYMENT),
            Payment(
                id="loan",
                amount=-100000,
                date=date(2025, 1, 1),
                category=PaymentCategory.DRAWDOWN,
            ),
            Payment(
                id="paydown",
                amount=30000,
                date=date(2025, 3, 15),
                category=PaymentCategory.REPAYMENT,
            ),
        ],
    )
