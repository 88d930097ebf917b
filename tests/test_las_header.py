"""
Tests for the LAS public header block and version/format coercion.
"""

import pytest

from lidar_surface.core.validation import FormatError
from lidar_surface.io.las_format import (
    HEADER_SIZES,
    classification_name,
    combine_uint64,
    parse_version,
    read_fixed_string,
    split_uint64,
    write_fixed_string,
)
from lidar_surface.io.las_header import LASHeader, coerce_version_format, decode_header, encode_header


def make_header(version="1.2", **overrides):
    major, minor = parse_version(version)
    fields = dict(
        version_major=major,
        version_minor=minor,
        point_format=0,
        point_record_length=20,
        point_count=3,
        scale=(0.001, 0.001, 0.001),
        offset=(500.0, 1000.0, 50.0),
        min_x=499.0, max_x=501.0,
        min_y=999.0, max_y=1001.0,
        min_z=49.0, max_z=51.0,
        header_size=HEADER_SIZES[minor],
        offset_to_point_data=HEADER_SIZES[minor],
        legacy_point_count=3,
        legacy_points_by_return=(3, 0, 0, 0, 0),
        points_by_return=(3,) + (0,) * 14,
        system_identifier="test",
        generating_software="pytest",
        creation_day=42,
        creation_year=2024,
    )
    fields.update(overrides)
    return LASHeader(**fields)


class TestUint64Words:
    """64-bit counts are stored as two 32-bit words."""

    @pytest.mark.parametrize("value", [0, 2 ** 32 - 1, 2 ** 32, 2 ** 40, 2 ** 53 - 1])
    def test_split_and_combine(self, value):
        low, high = split_uint64(value)
        assert 0 <= low <= 0xFFFFFFFF
        assert combine_uint64(low, high) == value

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            split_uint64(-1)


class TestFormatHelpers:
    """Tests for the small LAS format helpers."""

    def test_fixed_string_padding(self):
        raw = write_fixed_string("abc", 8)
        assert raw == b"abc\x00\x00\x00\x00\x00"
        assert read_fixed_string(raw) == "abc"

    def test_fixed_string_truncated(self):
        assert write_fixed_string("x" * 40, 32) == b"x" * 32

    def test_parse_version(self):
        assert parse_version("1.4") == (1, 4)

    def test_classification_names(self):
        assert classification_name(2) == "Ground"
        assert classification_name(200) == "Reserved"


class TestCoercion:
    """Version/point-format reconciliation for the writer."""

    def test_compatible_request_unchanged(self):
        result = coerce_version_format("1.2", 3)
        assert (result.version, result.point_format) == ("1.2", 3)
        assert not result.coerced

    def test_extended_format_upgrades_version(self):
        result = coerce_version_format("1.2", 7)
        assert (result.version, result.point_format) == ("1.4", 7)
        assert "requires LAS 1.4" in result.messages[0]

    def test_force_version_keeps_12_for_format_8(self):
        result = coerce_version_format("1.2", 8, force_version=True)
        assert (result.version, result.point_format) == ("1.2", 0)

    def test_force_version_drops_format(self):
        result = coerce_version_format("1.3", 6, force_version=True)
        assert (result.version, result.point_format) == ("1.3", 0)
        assert result.coerced

    def test_unwritable_format_becomes_zero(self):
        for fmt in (4, 5, 9, 10, 42):
            result = coerce_version_format("1.4", fmt)
            assert result.point_format == 0
            assert result.version == "1.4"

    def test_unknown_version_falls_back(self):
        result = coerce_version_format("2.0", 1)
        assert result.version == "1.2"
        assert result.requested_version == "2.0"

    def test_legacy_format_in_14_allowed(self):
        result = coerce_version_format("1.4", 1)
        assert (result.version, result.point_format) == ("1.4", 1)
        assert not result.coerced


class TestHeaderCodec:
    """Header encode/decode across versions."""

    @pytest.mark.parametrize("version", ["1.2", "1.3", "1.4"])
    def test_encoded_size(self, version):
        _, minor = parse_version(version)
        assert len(encode_header(make_header(version))) == HEADER_SIZES[minor]

    @pytest.mark.parametrize("version", ["1.2", "1.3", "1.4"])
    def test_fields_survive(self, version):
        header = decode_header(encode_header(make_header(version)))
        assert header.version == version
        assert header.point_count == 3
        assert header.scale == (0.001, 0.001, 0.001)
        assert header.offset == (500.0, 1000.0, 50.0)
        assert header.bounds["minX"] == 499.0
        assert header.bounds["maxZ"] == 51.0
        assert header.system_identifier == "test"
        assert header.generating_software == "pytest"
        assert header.creation_year == 2024

    def test_14_point_count_above_32_bits(self):
        big = 2 ** 33 + 7
        header = make_header("1.4", point_count=big, legacy_point_count=0)
        decoded = decode_header(encode_header(header))
        assert decoded.point_count == big
        assert decoded.legacy_point_count == 0

    def test_legacy_counts_padded_to_15(self):
        decoded = decode_header(encode_header(make_header("1.2")))
        assert len(decoded.points_by_return) == 15
        assert decoded.points_by_return[0] == 3

    def test_bad_signature(self):
        data = bytearray(encode_header(make_header()))
        data[:4] = b"LASX"
        with pytest.raises(FormatError, match="signature"):
            decode_header(bytes(data))

    def test_truncated_header(self):
        data = encode_header(make_header())
        with pytest.raises(FormatError, match="Truncated"):
            decode_header(data[:100])

    def test_truncated_14_header(self):
        data = encode_header(make_header("1.4"))
        with pytest.raises(FormatError, match="Truncated LAS 1.4"):
            decode_header(data[:300])
