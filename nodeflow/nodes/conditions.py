"""Comparison operators for ``if`` condition nodes.

Both operands arrive as strings after variable resolution. Equality and
ordering compare numerically when both sides parse as numbers and fall
back to plain string comparison otherwise.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


def as_number(value: str) -> Optional[float]:
    try:
        number = float(value.strip())
    except (AttributeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def _numbers(left: str, right: str):
    a, b = as_number(left), as_number(right)
    if a is None or b is None:
        return None
    return a, b


def equals(left: str, right: str) -> bool:
    nums = _numbers(left, right)
    if nums is not None:
        return nums[0] == nums[1]
    return left == right


def not_equals(left: str, right: str) -> bool:
    return not equals(left, right)


def contains(left: str, right: str) -> bool:
    return str(right) in str(left)


def greater_than(left: str, right: str) -> bool:
    nums = _numbers(left, right)
    if nums is not None:
        return nums[0] > nums[1]
    return left > right


def less_than(left: str, right: str) -> bool:
    nums = _numbers(left, right)
    if nums is not None:
        return nums[0] < nums[1]
    return left < right


OPERATORS: Dict[str, Callable[[str, str], bool]] = {
    "equals": equals,
    "not_equals": not_equals,
    "contains": contains,
    "greater_than": greater_than,
    "less_than": less_than,
}


def evaluate(operator: str, left: str, right: str) -> bool:
    """Apply ``operator``; unknown operators evaluate to ``False``."""
    fn = OPERATORS.get(operator)
    if fn is None:
        logger.warning(f"Unknown condition operator '{operator}', evaluating to False")
        return False
    return fn(left, right)
