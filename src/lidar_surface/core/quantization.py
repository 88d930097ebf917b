"""
Scale/Offset Quantization

Chooses the LAS integer quantization for a bounding box: the offset is
the box midpoint on each axis and a single power-of-ten scale is shared
by all three axes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

DEFAULT_EXPONENT = -3        # 0.001, millimetres for metric data
MIN_EXPONENT = -7            # scale floor, 1e-7
MAX_QUANTIZED_RANGE = 2_000_000_000
MIN_QUANTIZED_RANGE = 1000


@dataclass(frozen=True)
class ScaleOffset:
    scale: Tuple[float, float, float]
    offset: Tuple[float, float, float]


def compute_scale_offset(bounds) -> ScaleOffset:
    """
    Derive LAS scale and offset from a bounding box.

    The scale starts at 0.001 and grows by 10x while the largest axis range
    would need more than 2e9 integer steps, then shrinks by 10x while it
    would use fewer than 1000 steps, stopping at 1e-7. Working on the
    exponent keeps the result exact and identical for identical bounds.

    Args:
        bounds: (min_xyz, max_xyz) pair, as returned by PointCloud.bounds

    Returns:
        ScaleOffset with the same scale on every axis
    """
    mins, maxs = (np.asarray(b, dtype=np.float64) for b in bounds)
    offset = tuple(float(v) for v in (mins + maxs) / 2.0)
    max_range = float(np.max(maxs - mins))

    exponent = DEFAULT_EXPONENT
    while max_range / 10.0 ** exponent > MAX_QUANTIZED_RANGE:
        exponent += 1
    while max_range / 10.0 ** exponent < MIN_QUANTIZED_RANGE and exponent > MIN_EXPONENT:
        exponent -= 1

    scale = 10.0 ** exponent
    return ScaleOffset(scale=(scale, scale, scale), offset=offset)
