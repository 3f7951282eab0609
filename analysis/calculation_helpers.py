"""
Calculation Helpers - Common Aggregation Patterns

Percentage and rounding helpers shared by the statistics engine
and the report assembler, plus a population-weighted median.

Focuses on reusable calculation patterns, not a complex formula engine.
"""

import math
from typing import Sequence, Union

import numpy as np
import pandas as pd

Number = Union[int, float]


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer with halves rounded up (2.5 -> 3).

    Python's round() uses banker's rounding, which would report 2.5 Mbps as 2.
    """
    return int(math.floor(value + 0.5))


def calculate_percentage(numerator: Number, denominator: Number) -> int:
    """
    Whole-number percentage with zero handling.

    Args:
        numerator: Part
        denominator: Whole

    Returns:
        round_half_up(numerator / denominator * 100), or 0 when the whole is 0
    """
    if denominator == 0:
        return 0
    return round_half_up(numerator / denominator * 100)


def weighted_median(values: Sequence[float], weights: Sequence[float]) -> float:
    """
    Weighted median: the smallest value whose cumulative weight reaches half the total.

    Args:
        values: Observations (e.g. tile download speeds)
        weights: Non-negative weights (e.g. tile population)

    Returns:
        Weighted median, or 0.0 when there is no positive weight
    """
    values_arr = np.asarray(values, dtype=float)
    weights_arr = np.asarray(weights, dtype=float)
    if values_arr.shape != weights_arr.shape:
        raise ValueError("values and weights must have the same length")

    mask = ~np.isnan(values_arr) & ~np.isnan(weights_arr) & (weights_arr > 0)
    if not mask.any():
        return 0.0

    values_arr = values_arr[mask]
    weights_arr = weights_arr[mask]
    order = np.argsort(values_arr, kind="mergesort")
    cumulative = np.cumsum(weights_arr[order])
    cutoff = cumulative[-1] / 2.0
    position = int(np.searchsorted(cumulative, cutoff, side="left"))
    return float(values_arr[order][position])


def count_where(mask: pd.Series) -> int:
    """Number of True entries in a boolean Series."""
    return int(mask.sum())
