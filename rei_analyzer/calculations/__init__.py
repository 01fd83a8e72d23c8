"""
Investment Cash Flow Engine

Turns a project's dated financial events into a monthly cash flow table with
a running loan balance, and computes return metrics on the equity flows.
The engine is pure: no I/O, no shared state.
"""

from rei_analyzer.calculations import irr, events, accrual, cashflow
from rei_analyzer.calculations.accrual import LoanInvariantError
from rei_analyzer.calculations.cashflow import annualize_rows, compute_cash_flow
from rei_analyzer.calculations.irr import DidNotConvergeError, IRRError, NoSolutionError

__all__ = [
    "irr",
    "events",
    "accrual",
    "cashflow",
    "compute_cash_flow",
    "annualize_rows",
    "LoanInvariantError",
    "IRRError",
    "NoSolutionError",
    "DidNotConvergeError",
]
