#!/usr/bin/env python3
"""
Serialization utilities for the count-regression LOO analysis.

This module converts analysis results (numpy arrays, pandas objects,
dataclasses, enums) into JSON-serializable structures.
"""

import dataclasses
import enum
import math
import numpy as np
import pandas as pd
from typing import Any

from utils.logging_utils import logger


def to_serializable(obj: Any) -> Any:
    """
    Convert object to JSON-serializable format.

    Args:
        obj: Object to convert

    Returns:
        JSON-serializable representation of object
    """
    if isinstance(obj, enum.Enum):
        return obj.value
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, (np.floating, float)):
        value = float(obj)
        # JSON has no inf/nan
        return value if math.isfinite(value) else None
    elif isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, (np.ndarray, list, tuple)):
        return [to_serializable(x) for x in obj]
    elif isinstance(obj, dict):
        return {str(k): to_serializable(v) for k, v in obj.items()}
    elif isinstance(obj, pd.DataFrame):
        return to_serializable(obj.reset_index().to_dict(orient='records'))
    elif isinstance(obj, pd.Series):
        return to_serializable(obj.to_dict())
    elif hasattr(obj, 'to_dict'):
        return to_serializable(obj.to_dict())
    elif dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return to_serializable(dataclasses.asdict(obj))
    elif obj is None or isinstance(obj, (str, int, bool)):
        return obj
    else:
        logger.warning(f"Serializing object of type {type(obj).__name__} as string")
        return str(obj)
