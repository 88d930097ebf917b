"""
Tests for variable length records and GeoKey directories.
"""

import struct
from types import SimpleNamespace

import pytest
from pyproj import CRS

from lidar_surface.core.validation import FormatError, ProjectionError
from lidar_surface.io.georef import PROJECTION_CATALOG
from lidar_surface.io.las_vlr import (
    GEOKEY_DIRECTORY_RECORD_ID,
    PROJECTION_USER_ID,
    WKT_RECORD_ID,
    GeoKeyDirectory,
    VariableLengthRecord,
    WKTDefinition,
    build_geokey_directory,
    build_geokey_vlr,
    crs_from_vlrs,
    decode_vlrs,
    encode_vlr,
    parse_geokey_directory,
)


def _decode(records, header_size=10):
    buffer = b"\x00" * header_size + b"".join(encode_vlr(r) for r in records)
    header = SimpleNamespace(header_size=header_size, number_of_vlrs=len(records))
    return decode_vlrs(buffer, header)


class TestGeoKeyDirectory:
    """Tests for GeoKey directory building and parsing."""

    def test_projected_code(self):
        directory = build_geokey_directory(28350)
        assert directory.epsg_code() == 28350
        assert directory.entries[0].value_offset == 1  # projected model

    def test_geographic_code(self):
        directory = build_geokey_directory(4326)
        assert directory.epsg_code() == 4326
        assert directory.entries[0].value_offset == 2  # geographic model

    def test_geographic_code_outside_4xxx(self):
        directory = build_geokey_directory(7844)  # GDA2020
        keys = {entry.key_id: entry.value_offset for entry in directory.entries}
        assert keys == {1024: 2, 1025: 1, 2048: 7844}

    @pytest.mark.parametrize("code", sorted(PROJECTION_CATALOG))
    def test_model_type_matches_catalog_crs(self, code):
        directory = build_geokey_directory(code)
        geographic = CRS.from_epsg(code).is_geographic
        assert directory.entries[0].value_offset == (2 if geographic else 1)
        assert directory.entries[2].key_id == (2048 if geographic else 3072)
        assert directory.epsg_code() == code

    def test_unknown_code(self):
        with pytest.raises(ProjectionError):
            build_geokey_directory(1)

    def test_parse_bytes(self):
        directory = build_geokey_directory(32750)
        parsed = parse_geokey_directory(directory.to_bytes())
        assert parsed == directory

    def test_short_payload(self):
        assert parse_geokey_directory(b"\x01\x00") is None

    def test_truncated_entries_kept(self):
        payload = struct.pack("<4H", 1, 1, 0, 3) + struct.pack("<4H", 3072, 0, 1, 28350)
        parsed = parse_geokey_directory(payload)
        assert len(parsed.entries) == 1
        assert parsed.epsg_code() == 28350

    def test_referenced_value_ignored(self):
        # value stored in another tag, so there is no inline EPSG code
        payload = struct.pack("<4H", 1, 1, 0, 1) + struct.pack("<4H", 3072, 34736, 1, 0)
        assert parse_geokey_directory(payload).epsg_code() is None


class TestVLRCodec:
    """Tests for VLR encode/decode."""

    def test_header_is_54_bytes(self):
        vlr = VariableLengthRecord("custom", 7, b"abc")
        assert len(encode_vlr(vlr)) == 54 + 3
        assert vlr.size == 57

    def test_decode_interprets_geokeys(self):
        (vlr,) = _decode([build_geokey_vlr(7850)])
        assert vlr.user_id == PROJECTION_USER_ID
        assert vlr.record_id == GEOKEY_DIRECTORY_RECORD_ID
        assert isinstance(vlr.parsed, GeoKeyDirectory)
        assert vlr.parsed.epsg_code() == 7850

    def test_decode_wkt(self):
        wkt = 'PROJCS["GDA94 / MGA zone 50"]'
        (vlr,) = _decode([VariableLengthRecord(PROJECTION_USER_ID, WKT_RECORD_ID, wkt.encode() + b"\x00")])
        assert vlr.parsed == WKTDefinition(wkt)

    def test_unknown_records_kept_raw(self):
        (vlr,) = _decode([VariableLengthRecord("vendor", 1, b"\x01\x02", description="blob")])
        assert vlr.parsed is None
        assert vlr.payload == b"\x01\x02"
        assert vlr.description == "blob"

    def test_truncated_payload(self):
        buffer = encode_vlr(VariableLengthRecord("vendor", 1, b"x" * 20))[:-5]
        header = SimpleNamespace(header_size=0, number_of_vlrs=1)
        with pytest.raises(FormatError, match="Truncated VLR"):
            decode_vlrs(buffer, header)

    def test_missing_record_header(self):
        header = SimpleNamespace(header_size=0, number_of_vlrs=2)
        buffer = encode_vlr(VariableLengthRecord("vendor", 1, b""))
        with pytest.raises(FormatError, match="record 1 header"):
            decode_vlrs(buffer, header)

    def test_oversized_payload(self):
        with pytest.raises(FormatError, match="65535"):
            encode_vlr(VariableLengthRecord("vendor", 1, b"x" * 70000))


class TestCRSFromVLRs:
    """WKT wins over GeoKeys; no projection records means no CRS."""

    def test_geokey(self):
        assert crs_from_vlrs([build_geokey_vlr(28350)]) == "EPSG:28350"

    def test_wkt_preferred(self):
        wkt_vlr = VariableLengthRecord(
            PROJECTION_USER_ID, WKT_RECORD_ID, b"GEOGCS[]", parsed=WKTDefinition("GEOGCS[]")
        )
        assert crs_from_vlrs([build_geokey_vlr(28350), wkt_vlr]) == "GEOGCS[]"

    def test_none(self):
        assert crs_from_vlrs([]) is None
