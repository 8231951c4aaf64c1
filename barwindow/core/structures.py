"""
Core Data Structures - Fixed-capacity bar window backed by NumPy arrays.

BarBuffer keeps the last `capacity` bars in ten parallel pre-allocated
arrays and derives return, volatility and amplitude as each bar lands.
Index -1 is always the newest bar, index 0 the oldest retained one.
"""

from __future__ import annotations

import math
import numbers
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from barwindow.core.errors import (
    ConstructionError,
    FieldExtractionError,
    InvalidTimestampError,
)
from barwindow.core.logger import get_logger
from barwindow.core.models import BAR_FIELDS, BASE_ARRAYS, STATE_ARRAYS
from barwindow.utils.indicators import (
    DEFAULT_PERIODS_PER_YEAR,
    amplitude as bar_amplitude,
    annualized_volatility,
    simple_return,
    wt_ratio,
)

if TYPE_CHECKING:
    from barwindow.core.config import BufferConfig

logger = get_logger("bar_buffer")

GUARD_POLICIES = ("carry", "zero")

# Epoch-second bounds of datetime in UTC (0001-01-01 .. 9999-12-31 23:59:59)
_MIN_TIMESTAMP = -62135596800
_MAX_TIMESTAMP = 253402300799


def _extract_field(bar: Any, name: str) -> Any:
    if isinstance(bar, Mapping):
        if name not in bar:
            raise FieldExtractionError(name)
        return bar[name]
    try:
        return getattr(bar, name)
    except AttributeError:
        raise FieldExtractionError(name) from None


def _extract_float(bar: Any, name: str) -> float:
    value = _extract_field(bar, name)
    if value is None or isinstance(value, (str, bytes)):
        raise FieldExtractionError(name, f"Bar field '{name}' is not numeric: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise FieldExtractionError(name, f"Bar field '{name}' is not numeric: {value!r}") from e


def to_epoch_seconds(value: Any) -> int:
    """
    Convert a datetime-like value to whole UTC epoch seconds.

    Objects with .timestamp() (datetime, pandas.Timestamp) are converted
    through it; plain real numbers are taken as epoch seconds. Fractions
    are truncated toward zero.
    """
    if value is None or isinstance(value, bool):
        raise InvalidTimestampError(f"Cannot convert {value!r} to a timestamp")

    if isinstance(value, numbers.Real):
        try:
            seconds = float(value)
        except OverflowError as e:
            raise InvalidTimestampError(f"Timestamp out of range: {value!r}") from e
    elif hasattr(value, "timestamp"):
        try:
            seconds = float(value.timestamp())
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise InvalidTimestampError(f"Cannot convert {value!r} to a timestamp: {e}") from e
    else:
        raise InvalidTimestampError(f"Cannot convert {value!r} to a timestamp")

    if not math.isfinite(seconds):
        raise InvalidTimestampError(f"Timestamp is not finite: {seconds}")
    ts = int(seconds)
    if ts < _MIN_TIMESTAMP or ts > _MAX_TIMESTAMP:
        raise InvalidTimestampError(f"Timestamp out of range: {ts}")
    return ts


def _read_only(arr: np.ndarray) -> np.ndarray:
    view = arr.view()
    view.flags.writeable = False
    return view


class BarBuffer:
    """
    Fixed-size rolling window of bars with derived statistics.

    Every update shifts the arrays left by one in place and writes the
    new bar into the last slot, so reads are always oldest-to-newest
    without unrolling. The four auxiliary arrays (timestamp,
    open_interest, volatility, amplitude) are only maintained in
    extended mode; otherwise they stay zero.

    Guarded divisions (zero open, zero previous close) either leave the
    slot holding the value shifted in from the previous bar ("carry")
    or write 0.0 ("zero").

    Not thread-safe: one writer, no concurrent reads during update_bar.
    """

    def __init__(
        self,
        capacity: int,
        extended_mode: bool = False,
        periods_per_year: float = DEFAULT_PERIODS_PER_YEAR,
        guard_policy: str = "carry",
    ):
        if isinstance(capacity, bool) or not isinstance(capacity, numbers.Integral):
            raise ConstructionError(f"capacity must be an integer, got {capacity!r}")
        if capacity <= 0:
            raise ConstructionError(f"capacity must be positive, got {capacity}")
        if not periods_per_year > 0:
            raise ConstructionError(f"periods_per_year must be positive, got {periods_per_year}")
        if guard_policy not in GUARD_POLICIES:
            raise ConstructionError(
                f"guard_policy must be one of {GUARD_POLICIES}, got {guard_policy!r}"
            )

        self._capacity = int(capacity)
        self._extended_mode = bool(extended_mode)
        self.periods_per_year = float(periods_per_year)
        self.guard_policy = guard_policy
        self._count = 0
        self._warmed_up = False

        self._arrays: Dict[str, np.ndarray] = {
            name: np.zeros(self._capacity, dtype=np.int64 if name == "timestamp" else np.float64)
            for name in STATE_ARRAYS
        }

    @classmethod
    def from_config(cls, config: BufferConfig) -> BarBuffer:
        """Build a buffer from the validated `buffer` config section."""
        return cls(
            capacity=config.capacity,
            extended_mode=config.extended_mode,
            periods_per_year=config.periods_per_year,
            guard_policy=config.guard_policy,
        )

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def _read_bar(self, bar: Any) -> Tuple[List[float], Optional[int], float]:
        """Extract every field needed for the update before touching state."""
        prices = [_extract_float(bar, name) for name in BAR_FIELDS]
        timestamp = None
        open_interest = 0.0
        if self._extended_mode:
            timestamp = to_epoch_seconds(_extract_field(bar, "datetime"))
            open_interest = _extract_float(bar, "open_interest")
        return prices, timestamp, open_interest

    def _shift(self) -> None:
        if self._capacity < 2:
            return
        names = STATE_ARRAYS if self._extended_mode else BASE_ARRAYS
        for name in names:
            arr = self._arrays[name]
            arr[:-1] = arr[1:]

    def _apply_guarded(self, name: str, value: Optional[float]) -> None:
        if value is not None:
            self._arrays[name][-1] = value
        elif self.guard_policy == "zero":
            self._arrays[name][-1] = 0.0
        else:
            logger.debug("Guard failed, carrying previous value", field=name, count=self._count)

    def update_bar(self, bar: Any) -> None:
        """
        Ingest one bar: shift every active array left and append.

        Raises FieldExtractionError / InvalidTimestampError before any
        state changes if the bar is malformed.
        """
        try:
            (open_price, high_price, low_price, close_price, volume), timestamp, open_interest = (
                self._read_bar(bar)
            )
        except (FieldExtractionError, InvalidTimestampError) as e:
            logger.warning("Bar rejected", error=str(e), count=self._count)
            raise

        self._count += 1
        if not self._warmed_up and self._count >= self._capacity:
            self._warmed_up = True
            logger.info("Buffer warmed up", capacity=self._capacity, count=self._count)

        self._shift()

        arrays = self._arrays
        arrays["open"][-1] = open_price
        arrays["high"][-1] = high_price
        arrays["low"][-1] = low_price
        arrays["close"][-1] = close_price
        arrays["volume"][-1] = volume

        self._apply_guarded("return", simple_return(open_price, close_price))

        if self._extended_mode:
            arrays["timestamp"][-1] = timestamp
            arrays["open_interest"][-1] = open_interest
            arrays["volatility"][-1] = annualized_volatility(
                arrays["return"], self.periods_per_year
            )
            prev = None
            if self._capacity >= 2:
                prev = bar_amplitude(high_price, low_price, arrays["close"][-2])
            self._apply_guarded("amplitude", prev)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def extended_mode(self) -> bool:
        return self._extended_mode

    @property
    def count(self) -> int:
        return self._count

    @property
    def warmed_up(self) -> bool:
        return self._warmed_up

    # Older name for the warm-up flag
    inited = warmed_up

    @property
    def open(self) -> np.ndarray:
        return _read_only(self._arrays["open"])

    @property
    def high(self) -> np.ndarray:
        return _read_only(self._arrays["high"])

    @property
    def low(self) -> np.ndarray:
        return _read_only(self._arrays["low"])

    @property
    def close(self) -> np.ndarray:
        return _read_only(self._arrays["close"])

    @property
    def volume(self) -> np.ndarray:
        return _read_only(self._arrays["volume"])

    @property
    def returns(self) -> np.ndarray:
        return _read_only(self._arrays["return"])

    @property
    def open_interest(self) -> np.ndarray:
        return _read_only(self._arrays["open_interest"])

    @property
    def volatility(self) -> np.ndarray:
        return _read_only(self._arrays["volatility"])

    @property
    def amplitude(self) -> np.ndarray:
        return _read_only(self._arrays["amplitude"])

    @property
    def timestamps(self) -> np.ndarray:
        """Epoch seconds (UTC), int64."""
        return _read_only(self._arrays["timestamp"])

    @property
    def wt(self) -> np.ndarray:
        """Return / volatility per slot, computed on demand."""
        return wt_ratio(self._arrays["return"], self._arrays["volatility"])

    @property
    def datetimes(self) -> List[datetime]:
        """UTC datetimes at second resolution, one per slot."""
        return [
            datetime.fromtimestamp(int(ts), tz=timezone.utc)
            for ts in self._arrays["timestamp"]
        ]

    def to_dataframe(self) -> pd.DataFrame:
        """All arrays plus wt as columns, oldest bar first."""
        data = {name: self._arrays[name].copy() for name in STATE_ARRAYS}
        data["wt"] = self.wt
        return pd.DataFrame(data, columns=[*STATE_ARRAYS, "wt"])

    # ------------------------------------------------------------------
    # State (pickle goes through the flat state record)
    # ------------------------------------------------------------------

    def __getstate__(self) -> Dict[str, Any]:
        from barwindow.core.codec import export_state
        return export_state(self)

    def __setstate__(self, state: Dict[str, Any]) -> None:
        from barwindow.core.codec import import_state
        restored = import_state(state)
        self.__dict__.update(restored.__dict__)

    def __len__(self) -> int:
        return self._capacity

    def __repr__(self) -> str:
        return (
            f"BarBuffer(capacity={self._capacity}, count={self._count}, "
            f"warmed_up={self._warmed_up}, extended_mode={self._extended_mode})"
        )
