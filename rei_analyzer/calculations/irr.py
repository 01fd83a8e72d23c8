"""
IRR and NPV Calculations

Finds the rate of return by first bracketing a sign change of NPV on a grid
of candidate rates, then refining with Newton-Raphson steps that fall back to
bisection whenever a step leaves the bracket.
"""

from typing import Callable, Optional, Sequence, Tuple
from datetime import date
import numpy as np

MAX_ITERATIONS = 100
TOLERANCE = 1e-7

# Candidate rates scanned in ascending order when bracketing a root
BRACKET_GRID = (
    -0.99, -0.9, -0.75, -0.5, -0.25, -0.1, -0.05, -0.02, -0.01, 0.0,
    0.005, 0.01, 0.02, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0,
)


class IRRError(ValueError):
    """Base class for rate-of-return failures."""

    reason = "IRRError"


class NoSolutionError(IRRError):
    """The cash flows have no rate at which NPV is zero."""

    reason = "NoSolution"


class DidNotConvergeError(IRRError):
    """Root refinement exhausted its iteration limit."""

    reason = "DidNotConverge"


def calculate_npv(cash_flows: Sequence[float], discount_rate: float) -> float:
    """
    Calculate NPV (Net Present Value) of cash flows.

    Args:
        cash_flows: Periodic cash flows from t = 0 (negative = outflow)
        discount_rate: Rate per period (e.g., 0.01 for 1% per month)

    Returns:
        NPV value
    """
    flows = np.asarray(cash_flows, dtype=float)
    periods = np.arange(flows.size)
    with np.errstate(over="ignore", divide="ignore", invalid="ignore"):
        return float(np.sum(flows / (1.0 + discount_rate) ** periods))


def _npv_derivative(cash_flows: Sequence[float], rate: float) -> float:
    """Calculate derivative of NPV with respect to rate (for Newton-Raphson)."""
    flows = np.asarray(cash_flows, dtype=float)
    periods = np.arange(flows.size)
    with np.errstate(over="ignore", divide="ignore", invalid="ignore"):
        return float(-np.sum(periods * flows / (1.0 + rate) ** (periods + 1)))


def _check_sign_change(cash_flows: Sequence[float]) -> None:
    if len(cash_flows) < 2:
        raise NoSolutionError("At least 2 cash flows required")

    has_positive = any(cf > 0 for cf in cash_flows)
    has_negative = any(cf < 0 for cf in cash_flows)

    if not has_positive or not has_negative:
        raise NoSolutionError("Cash flows must contain both positive and negative values")


def _find_bracket(
    func: Callable[[float], float], grid: Sequence[float] = BRACKET_GRID
) -> Optional[Tuple[float, float]]:
    """Return the first pair of adjacent grid rates where func changes sign."""
    previous: Optional[Tuple[float, float]] = None

    for rate in grid:
        value = func(rate)
        if not np.isfinite(value):
            continue
        if value == 0:
            return rate, rate
        if previous is not None and np.sign(value) != np.sign(previous[1]):
            return previous[0], rate
        previous = (rate, value)

    return None


def solve_rate(
    func: Callable[[float], float],
    derivative: Callable[[float], float],
    tolerance: float = TOLERANCE,
    max_iterations: int = MAX_ITERATIONS,
) -> float:
    """
    Find the first root of ``func`` on the bracketing grid.

    Args:
        func: NPV-like function of the rate
        derivative: Its derivative with respect to the rate
        tolerance: Absolute error in func accepted as a root
        max_iterations: Refinement steps allowed after bracketing

    Raises:
        NoSolutionError: If no sign change is found on the grid
        DidNotConvergeError: If refinement does not converge in time
    """
    bracket = _find_bracket(func)
    if bracket is None:
        raise NoSolutionError("NPV does not change sign over the searched rate range")

    low, high = bracket
    if low == high:
        return low

    f_low = func(low)
    rate = (low + high) / 2

    for _ in range(max_iterations):
        value = func(rate)
        if abs(value) < tolerance:
            return rate

        # Shrink the bracket around the root
        if np.sign(value) == np.sign(f_low):
            low, f_low = rate, value
        else:
            high = rate

        if high - low <= 1e-15 * max(1.0, abs(rate)):
            return rate

        slope = derivative(rate)
        candidate = rate - value / slope if slope != 0 and np.isfinite(slope) else None
        if candidate is None or not low < candidate < high:
            candidate = (low + high) / 2

        rate = candidate

    raise DidNotConvergeError(f"IRR calculation did not converge in {max_iterations} iterations")


def calculate_irr(
    cash_flows: Sequence[float],
    tolerance: float = TOLERANCE,
    max_iterations: int = MAX_ITERATIONS,
) -> float:
    """
    Calculate IRR (Internal Rate of Return) for periodic cash flows.

    Args:
        cash_flows: Array of periodic cash flows
        tolerance: Absolute NPV error accepted at the root
        max_iterations: Refinement iterations allowed

    Returns:
        IRR per period as decimal (e.g., 0.01 for 1% per month)

    Raises:
        NoSolutionError: If the flows never change sign or no root is bracketed
        DidNotConvergeError: If refinement exceeds max_iterations
    """
    _check_sign_change(cash_flows)

    return solve_rate(
        lambda rate: calculate_npv(cash_flows, rate),
        lambda rate: _npv_derivative(cash_flows, rate),
        tolerance=tolerance,
        max_iterations=max_iterations,
    )


def _year_fractions(dates: Sequence[date]) -> np.ndarray:
    base_date = min(dates)
    return np.array([(d - base_date).days / 365.0 for d in dates])


def calculate_xnpv(
    cash_flows: Sequence[float], dates: Sequence[date], discount_rate: float
) -> float:
    """Calculate XNPV (NPV with specific dates, actual/365 years)."""
    if len(cash_flows) != len(dates):
        raise ValueError("Cash flows and dates arrays must have same length")

    flows = np.asarray(cash_flows, dtype=float)
    years = _year_fractions(dates)
    with np.errstate(over="ignore", divide="ignore", invalid="ignore"):
        return float(np.sum(flows / (1.0 + discount_rate) ** years))


def _xnpv_derivative(
    cash_flows: Sequence[float], dates: Sequence[date], rate: float
) -> float:
    """Calculate derivative of XNPV with respect to rate."""
    flows = np.asarray(cash_flows, dtype=float)
    years = _year_fractions(dates)
    with np.errstate(over="ignore", divide="ignore", invalid="ignore"):
        return float(-np.sum(years * flows / (1.0 + rate) ** (years + 1)))


def calculate_xirr(
    cash_flows: Sequence[float],
    dates: Sequence[date],
    tolerance: float = TOLERANCE,
    max_iterations: int = MAX_ITERATIONS,
) -> float:
    """
    Calculate XIRR (IRR with specific dates).

    Args:
        cash_flows: Array of cash flows
        dates: Array of dates corresponding to each cash flow

    Returns:
        Annual IRR as decimal

    Raises:
        NoSolutionError, DidNotConvergeError: As for calculate_irr
    """
    if len(cash_flows) != len(dates):
        raise ValueError("Cash flows and dates arrays must have same length")

    _check_sign_change(cash_flows)

    return solve_rate(
        lambda rate: calculate_xnpv(cash_flows, dates, rate),
        lambda rate: _xnpv_derivative(cash_flows, dates, rate),
        tolerance=tolerance,
        max_iterations=max_iterations,
    )


def calculate_multiple(cash_flows: Sequence[float]) -> float:
    """
    Calculate equity multiple.

    Args:
        cash_flows: Array of cash flows (investments are negative)

    Returns:
        Multiple (e.g., 2.0 = 2.0x return)
    """
    total_inflows = sum(cf for cf in cash_flows if cf > 0)
    total_outflows = abs(sum(cf for cf in cash_flows if cf < 0))

    if total_outflows == 0:
        raise ValueError("No investment (outflows) found")

    return total_inflows / total_outflows


def calculate_profit(cash_flows: Sequence[float]) -> float:
    """Calculate profit (total inflows minus total outflows)."""
    return sum(cash_flows)


def monthly_to_annual_irr(monthly_irr: float) -> float:
    """Convert monthly IRR to annual IRR."""
    return ((1 + monthly_irr) ** 12) - 1


def annual_to_monthly_irr(annual_irr: float) -> float:
    """Convert annual IRR to monthly IRR."""
    return ((1 + annual_irr) ** (1 / 12)) - 1
