"""
State Codec - Flat, language-neutral snapshots of a BarBuffer.

A state record is a plain dict: scalars `count` and `warmed_up`, one
list per named array (oldest-to-newest, length `capacity`), plus the
construction settings. It round-trips through JSON without loss
(NaN/Infinity use the json module's extended literals).
"""

from __future__ import annotations

import json
import numbers
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import numpy as np

from barwindow.core.errors import ConstructionError, InvalidTimestampError, StateDecodeError
from barwindow.core.logger import get_logger
from barwindow.core.models import AUX_ARRAYS, STATE_ARRAYS, StateRecord
from barwindow.core.structures import BarBuffer, to_epoch_seconds

logger = get_logger("state_codec")


def export_state(buffer: BarBuffer) -> StateRecord:
    """Snapshot every field of the buffer, including inactive arrays."""
    record: StateRecord = {
        "count": buffer.count,
        "warmed_up": buffer.warmed_up,
        "extended_mode": buffer.extended_mode,
        "periods_per_year": buffer.periods_per_year,
        "guard_policy": buffer.guard_policy,
    }
    for name in STATE_ARRAYS:
        record[name] = buffer._arrays[name].tolist()
    return record


def _decode_array(name: str, values: Any) -> np.ndarray:
    if isinstance(values, (str, bytes)) or not hasattr(values, "__len__"):
        raise StateDecodeError(f"State array '{name}' is not a sequence")
    for v in values:
        if isinstance(v, (str, bytes, bool)) or not isinstance(v, numbers.Real):
            raise StateDecodeError(f"State array '{name}' holds a non-numeric value: {v!r}")

    if name == "timestamp":
        decoded = []
        for v in values:
            try:
                ts = to_epoch_seconds(v)
            except InvalidTimestampError as e:
                raise StateDecodeError(f"State array 'timestamp' holds an invalid value: {e}") from e
            if float(v) != ts:
                raise StateDecodeError(f"State array 'timestamp' holds a non-integer value: {v!r}")
            decoded.append(ts)
        return np.array(decoded, dtype=np.int64)
    return np.array(values, dtype=np.float64)


def import_state(record: Mapping[str, Any], extended_mode: Optional[bool] = None) -> BarBuffer:
    """
    Rebuild a BarBuffer from a state record.

    Capacity is the common length of the arrays. Extended mode comes
    from the argument, then the record, and is otherwise inferred from
    whether any auxiliary array holds a nonzero value.
    """
    missing = [key for key in ("count", "warmed_up", *STATE_ARRAYS) if key not in record]
    if missing:
        raise StateDecodeError(f"State record is missing keys: {missing}")

    arrays = {name: _decode_array(name, record[name]) for name in STATE_ARRAYS}
    lengths = {len(arr) for arr in arrays.values()}
    if len(lengths) != 1:
        raise StateDecodeError(f"State arrays have unequal lengths: {sorted(lengths)}")
    capacity = lengths.pop()
    if capacity == 0:
        raise StateDecodeError("State arrays are empty")

    count = record["count"]
    if isinstance(count, bool) or not isinstance(count, numbers.Integral) or count < 0:
        raise StateDecodeError(f"State 'count' must be a non-negative integer, got {count!r}")
    warmed_up = record["warmed_up"]
    if not isinstance(warmed_up, (bool, np.bool_)):
        raise StateDecodeError(f"State 'warmed_up' must be a bool, got {warmed_up!r}")
    if bool(warmed_up) != (count >= capacity):
        raise StateDecodeError(
            f"State 'warmed_up'={warmed_up} contradicts count={count}, capacity={capacity}"
        )

    if extended_mode is None:
        extended_mode = record.get("extended_mode")
    if extended_mode is None:
        extended_mode = any(np.any(arrays[name] != 0) for name in AUX_ARRAYS)
    elif not isinstance(extended_mode, (bool, np.bool_)):
        raise StateDecodeError(f"State 'extended_mode' must be a bool, got {extended_mode!r}")

    try:
        buffer = BarBuffer(
            capacity,
            extended_mode=bool(extended_mode),
            periods_per_year=record.get("periods_per_year", 365.0),
            guard_policy=record.get("guard_policy", "carry"),
        )
    except (ConstructionError, TypeError) as e:
        raise StateDecodeError(f"State settings are invalid: {e}") from e

    buffer._count = int(count)
    buffer._warmed_up = bool(warmed_up)
    buffer._arrays = arrays
    return buffer


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------

def dumps_state(buffer: BarBuffer, indent: Optional[int] = None) -> str:
    """Serialize the buffer state to JSON text."""
    return json.dumps(export_state(buffer), indent=indent)


def loads_state(text: str, extended_mode: Optional[bool] = None) -> BarBuffer:
    """Rebuild a buffer from JSON text produced by dumps_state."""
    try:
        record = json.loads(text)
    except json.JSONDecodeError as e:
        raise StateDecodeError(f"State is not valid JSON: {e}") from e
    if not isinstance(record, dict):
        raise StateDecodeError("State JSON must be an object")
    return import_state(record, extended_mode=extended_mode)


def save_state(buffer: BarBuffer, path: Union[str, Path]) -> Path:
    """Write the buffer state to a JSON file, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dumps_state(buffer), encoding="utf-8")
    logger.info("State saved", path=str(path), capacity=buffer.capacity, count=buffer.count)
    return path


def load_state(path: Union[str, Path], extended_mode: Optional[bool] = None) -> BarBuffer:
    """Read a buffer back from a JSON state file."""
    path = Path(path)
    buffer = loads_state(path.read_text(encoding="utf-8"), extended_mode=extended_mode)
    logger.info("State loaded", path=str(path), capacity=buffer.capacity, count=buffer.count)
    return buffer
