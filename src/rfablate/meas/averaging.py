"""Outlier-rejecting average of three samples."""

from typing import Sequence

import numpy as np

from rfablate.types.errors import ValueUnavailable


def discard_and_average(samples: Sequence[float]) -> float:
    """Average the two closest of three samples.

    The pair with the smallest absolute difference is taken as the two
    reliable samples and their mean returned. If the smallest difference is
    shared by more than one pair there is no single outlier, and the median
    is returned instead.

    Raises
    ------
    ValueUnavailable
        If not given exactly three samples, or if any sample is NaN or
        infinite.

    Examples
    --------
    >>> discard_and_average([10.0, 10.2, 15.0])
    10.1
    >>> discard_and_average([1.0, 2.0, 3.0])
    2.0
    """
    if len(samples) != 3:
        raise ValueUnavailable(f"Need exactly 3 samples, got {len(samples)}")
    a, b, c = (float(s) for s in samples)
    if not np.all(np.isfinite([a, b, c])):
        raise ValueUnavailable(f"Non-finite sample in {[a, b, c]}")
    pairs = (((a + b) / 2, abs(a - b)), ((a + c) / 2, abs(a - c)), ((b + c) / 2, abs(b - c)))
    gaps = np.array([gap for _, gap in pairs])
    closest = np.flatnonzero(np.isclose(gaps, gaps.min(), rtol=0.0, atol=1e-12))
    if len(closest) > 1:
        return float(np.median([a, b, c]))
    return pairs[int(closest[0])][0]
