"""
Tests for scale/offset selection.
"""

import pytest

from lidar_surface.core.quantization import ScaleOffset, compute_scale_offset


def _bounds(size, origin=(0.0, 0.0, 0.0)):
    mins = origin
    maxs = tuple(o + s for o, s in zip(origin, size))
    return mins, maxs


class TestComputeScaleOffset:
    """Tests for compute_scale_offset."""

    def test_default_millimetre_scale(self):
        result = compute_scale_offset(_bounds((4.0, 4.0, 0.0)))
        assert result.scale == (0.001, 0.001, 0.001)

    def test_offset_is_midpoint(self):
        result = compute_scale_offset(((100.0, 200.0, 10.0), (300.0, 600.0, 30.0)))
        assert result.offset == (200.0, 400.0, 20.0)

    def test_same_scale_on_every_axis(self):
        result = compute_scale_offset(_bounds((1_000_000.0, 5.0, 0.1)))
        assert len(set(result.scale)) == 1

    def test_large_range_coarsens_scale(self):
        # 1e7 units at 0.001 would need 1e10 steps
        result = compute_scale_offset(_bounds((1e7, 10.0, 10.0)))
        assert result.scale[0] == pytest.approx(0.01)

    def test_small_range_refines_scale(self):
        # 0.02 degrees needs 1e-5 to reach 1000 steps
        result = compute_scale_offset(_bounds((0.02, 0.02, 0.0), origin=(115.0, -32.0, 0.0)))
        assert result.scale[0] == pytest.approx(1e-5)

    def test_zero_range_stops_at_floor(self):
        result = compute_scale_offset(((5.0, 5.0, 5.0), (5.0, 5.0, 5.0)))
        assert result.scale[0] == pytest.approx(1e-7)
        assert result.offset == (5.0, 5.0, 5.0)

    def test_deterministic(self):
        bounds = ((391234.5, 6453001.25, 12.0), (392876.75, 6454999.0, 88.5))
        assert compute_scale_offset(bounds) == compute_scale_offset(bounds)

    def test_range_fits_int32(self):
        bounds = ((391234.5, 6453001.25, 12.0), (392876.75, 6454999.0, 88.5))
        result = compute_scale_offset(bounds)
        half_range = (6454999.0 - 6453001.25) / 2
        assert half_range / result.scale[1] < 2 ** 31

    def test_returns_scale_offset(self):
        assert isinstance(compute_scale_offset(_bounds((1.0, 1.0, 1.0))), ScaleOffset)

    @pytest.mark.parametrize("extent", [0.003, 0.5, 42.0, 12_345.0, 3e6, 5e8])
    def test_steps_within_limits(self, extent):
        result = compute_scale_offset(_bounds((extent, extent / 2, extent / 4)))
        steps = extent / result.scale[0]
        assert 1000 <= steps * (1 + 1e-9)
        assert steps <= 2_000_000_000 * (1 + 1e-9)
