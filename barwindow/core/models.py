"""
Data Models - Bar record and state record contracts.

BarBuffer accepts any object (or mapping) exposing the BAR_FIELDS
attributes; BarData is the bundled implementation of that contract.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

# Fields read from every bar
BAR_FIELDS = ("open_price", "high_price", "low_price", "close_price", "volume")

# Fields read only in extended mode
EXTENDED_BAR_FIELDS = ("datetime", "open_interest")

# Array names in persisted state, in the order they are exported
BASE_ARRAYS = ("open", "high", "low", "close", "return", "volume")
AUX_ARRAYS = ("timestamp", "open_interest", "volatility", "amplitude")
STATE_ARRAYS = (
    "timestamp", "open", "high", "low", "close",
    "return", "volume", "open_interest", "volatility", "amplitude",
)

# Flat mapping of named arrays plus scalars (see codec.export_state)
StateRecord = Dict[str, Union[int, float, bool, str, List[Any]]]


@dataclass(frozen=True)
class BarData:
    """
    One OHLCV observation for a fixed interval.

    `datetime` may be a datetime, a pandas Timestamp, or epoch seconds.
    """
    open_price: float
    high_price: float
    low_price: float
    close_price: float
    volume: float = 0.0
    datetime: Optional[Union[datetime, float, int]] = None
    open_interest: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BarData:
        """Build from a row using either short (open) or long (open_price) keys."""
        def pick(*keys, default=None):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        return cls(
            open_price=pick("open_price", "open"),
            high_price=pick("high_price", "high"),
            low_price=pick("low_price", "low"),
            close_price=pick("close_price", "close"),
            volume=pick("volume", default=0.0),
            datetime=pick("datetime", "time", "timestamp"),
            open_interest=pick("open_interest", default=0.0),
        )
