"""Conversion of result dataclasses into JSON-friendly structures."""

from dataclasses import fields, is_dataclass
from datetime import date, datetime
from enum import Enum
import math
from typing import Any

import numpy as np


def to_serializable(value: Any, precision: int | None = None) -> Any:
    """Recursively convert dataclasses, enums and numpy scalars to plain types.

    Non-finite floats become None so the output survives strict JSON encoders.

    Args:
        value: Object to convert
        precision: Optional number of decimals floats are rounded to

    Returns:
        dict/list/str/int/float/bool/None structure
    """
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_serializable(getattr(value, f.name), precision) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(to_serializable(k)): to_serializable(v, precision) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_serializable(item, precision) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        number = float(value)
        if not math.isfinite(number):
            return None
        return round(number, precision) if precision is not None else number
    return value


class SerializableMixin:
    """Adds ``to_dict`` to result dataclasses."""

    def to_dict(self) -> dict:
        return to_serializable(self)
