"""
Derived Fields - Vectorized bar statistics using NumPy.

Pure functions used by BarBuffer on every update: simple return,
annualized rolling volatility, intrabar amplitude and the
return/volatility ratio (wt).

Guarded divisions return None instead of a value so the caller decides
what to write into the slot.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

# One bar per calendar day
DEFAULT_PERIODS_PER_YEAR = 365.0


def simple_return(open_price: float, close_price: float) -> Optional[float]:
    """Simple return over the bar, close/open - 1. None when open is zero."""
    if open_price == 0:
        return None
    return close_price / open_price - 1.0


def annualized_volatility(
    returns: np.ndarray, periods_per_year: float = DEFAULT_PERIODS_PER_YEAR
) -> float:
    """
    Population standard deviation of the full return window, annualized.

    Uses ddof=0 (divisor N) over every slot, including zero
    placeholders left over from warm-up.
    """
    if len(returns) == 0:
        return 0.0
    return float(np.std(returns, ddof=0) * math.sqrt(periods_per_year))


def amplitude(high: float, low: float, prev_close: float) -> Optional[float]:
    """Intrabar range normalized by the previous close. None when prev_close is zero."""
    if prev_close == 0:
        return None
    return abs(high - low) / prev_close


def wt_ratio(returns: np.ndarray, volatility: np.ndarray) -> np.ndarray:
    """
    Elementwise return / volatility.

    Zero volatility follows IEEE-754: +/-inf for a nonzero return,
    NaN when both are zero.
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.true_divide(
            np.asarray(returns, dtype=np.float64),
            np.asarray(volatility, dtype=np.float64),
        )
