"""
Georeferencing Helpers

Static projection catalog, .prj sidecar writer and GeoKey injection into
classic TIFF buffers.
"""

from __future__ import annotations

import logging
import struct
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List

from ..core.validation import FormatError
from .las_vlr import GEOKEY_DIRECTORY_RECORD_ID, build_geokey_directory

logger = logging.getLogger(__name__)


def _build_catalog() -> Dict[int, str]:
    catalog = {
        4326: "WGS 84",
        4283: "GDA94",
        7844: "GDA2020",
        4269: "NAD83",
        4267: "NAD27",
        4258: "ETRS89",
        3857: "WGS 84 / Pseudo-Mercator",
        3112: "GDA94 / Geoscience Australia Lambert",
        27700: "OSGB36 / British National Grid",
        2193: "NZGD2000 / New Zealand Transverse Mercator 2000",
        25832: "ETRS89 / UTM zone 32N",
        25833: "ETRS89 / UTM zone 33N",
    }
    for zone in range(1, 61):
        catalog[32600 + zone] = f"WGS 84 / UTM zone {zone}N"
        catalog[32700 + zone] = f"WGS 84 / UTM zone {zone}S"
    for zone in range(48, 59):
        catalog[28300 + zone] = f"GDA94 / MGA zone {zone}"
        catalog[7800 + zone] = f"GDA2020 / MGA zone {zone}"
    return catalog


# EPSG code -> display name
PROJECTION_CATALOG = MappingProxyType(_build_catalog())

GEO_DOUBLE_PARAMS_TAG = 34736
GEO_ASCII_PARAMS_TAG = 34737

# TIFF field type -> bytes per value
_TIFF_TYPE_SIZES = {1: 1, 2: 1, 3: 2, 4: 4, 5: 8, 6: 1, 7: 1, 8: 2, 9: 4, 10: 8, 11: 4, 12: 8, 13: 4}

# Tags whose values are file offsets
_OFFSET_TAGS = frozenset({273, 288, 324, 513})

# Tags whose values point at further IFDs (SubIFDs, Exif, GPS)
_IFD_POINTER_TAGS = frozenset({330, 34665, 34853})

_TIFF_SHORT = 3
_TIFF_LONG = 4
_TIFF_ASCII = 2
_TIFF_DOUBLE = 12


def write_projection_sidecar(las_path: str | Path, epsg_code: int) -> Path:
    """
    Write `<stem>.prj` next to `las_path` with the ESRI WKT for `epsg_code`.

    Raises:
        ProjectionError: If the code cannot be resolved
    """
    from ..core.transform import load_projection_catalog_entry

    wkt = load_projection_catalog_entry(epsg_code, wkt_version="WKT1_ESRI")
    prj_path = Path(las_path).with_suffix(".prj")
    prj_path.write_text(wkt, encoding="ascii")
    logger.info("Wrote projection sidecar %s (EPSG:%d)", prj_path, epsg_code)
    return prj_path


def geokey_payload(epsg_code: int) -> List[int]:
    """GeoKeyDirectoryTag contents as a flat list of shorts."""
    directory = build_geokey_directory(epsg_code)
    values = [
        directory.key_directory_version,
        directory.key_revision,
        directory.minor_revision,
        len(directory.entries),
    ]
    for entry in directory.entries:
        values += [entry.key_id, entry.tiff_tag_location, entry.count, entry.value_offset]
    return values


def inject_geokeys(tiff: bytes, epsg_code: int) -> bytes:
    """
    Add GeoKeyDirectory, GeoDoubleParams and GeoAsciiParams tags to the
    first IFD of a classic TIFF.

    The three 12-byte entries are inserted into the first IFD at their
    sorted tag position (normally just before the next-IFD pointer), the
    entry count grows by 3 and the GeoKey payload is appended at the end
    of the file. Bytes before the insertion point keep their offsets;
    every stored offset that refers to data at or after the insertion
    point is moved forward by the 36 inserted bytes.

    Args:
        tiff: Complete classic TIFF file contents
        epsg_code: EPSG code for the ProjectedCSType (or GeographicType) key

    Returns:
        New TIFF bytes; the input is not modified

    Raises:
        FormatError: If the buffer is not a classic TIFF or already has GeoKeys
    """
    data = bytes(tiff)
    if len(data) < 8:
        raise FormatError(f"Not a TIFF file: {len(data)} bytes")

    if data[:2] == b"II":
        endian = "<"
    elif data[:2] == b"MM":
        endian = ">"
    else:
        raise FormatError(f"Not a TIFF file: byte order mark {data[:2]!r}")

    magic, ifd0 = struct.unpack_from(endian + "HI", data, 2)
    if magic != 42:
        raise FormatError(f"Not a classic TIFF file (magic {magic})")

    short = struct.Struct(endian + "H")
    long_ = struct.Struct(endian + "I")
    entry = struct.Struct(endian + "HHII")

    if ifd0 + 2 > len(data):
        raise FormatError(f"First IFD offset {ifd0} is past the end of the file")
    (count,) = short.unpack_from(data, ifd0)
    if ifd0 + 2 + 12 * count + 4 > len(data):
        raise FormatError(f"First IFD ({count} entries at byte {ifd0}) runs past the end of the file")

    tags = [entry.unpack_from(data, ifd0 + 2 + 12 * i)[0] for i in range(count)]
    if GEOKEY_DIRECTORY_RECORD_ID in tags:
        raise FormatError("TIFF already carries a GeoKeyDirectoryTag")

    position = sum(1 for tag in tags if tag < GEOKEY_DIRECTORY_RECORD_ID)
    insert_at = ifd0 + 2 + 12 * position
    shift = 3 * entry.size

    def moved(offset: int) -> int:
        return offset + shift if offset >= insert_at else offset

    out = bytearray(data[:insert_at]) + bytearray(shift) + bytearray(data[insert_at:])
    short.pack_into(out, ifd0, count + 3)

    _relocate_ifds(data, out, ifd0, moved, short, long_, entry)

    if len(out) % 2:
        out += b"\x00"
    payload_offset = len(out)
    payload = geokey_payload(epsg_code)
    out += struct.pack(endian + "%dH" % len(payload), *payload)

    entry.pack_into(out, insert_at, GEOKEY_DIRECTORY_RECORD_ID, _TIFF_SHORT, len(payload), payload_offset)
    entry.pack_into(out, insert_at + 12, GEO_DOUBLE_PARAMS_TAG, _TIFF_DOUBLE, 0, 0)
    entry.pack_into(out, insert_at + 24, GEO_ASCII_PARAMS_TAG, _TIFF_ASCII, 0, 0)

    logger.info(
        "Injected GeoKeys for EPSG:%d (%d -> %d bytes)", epsg_code, len(data), len(out)
    )
    return bytes(out)


def _relocate_ifds(data: bytes, out: bytearray, ifd0: int, moved, short, long_, entry) -> None:
    """Rewrite every IFD link and data offset in `out` through `moved`."""
    pending = [ifd0]
    visited = set()

    while pending:
        ifd = pending.pop()
        if ifd == 0 or ifd in visited or ifd + 2 > len(data):
            continue
        visited.add(ifd)

        (count,) = short.unpack_from(data, ifd)
        for i in range(count):
            pos = ifd + 2 + 12 * i
            if pos + 12 > len(data):
                raise FormatError(f"IFD at byte {ifd} runs past the end of the file")
            tag, field_type, n_values, value = entry.unpack_from(data, pos)
            size = _TIFF_TYPE_SIZES.get(field_type, 1) * n_values

            if size > 4:
                long_.pack_into(out, moved(pos) + 8, moved(value))
                values_at = value
            else:
                values_at = pos + 8

            if tag in _OFFSET_TAGS or tag in _IFD_POINTER_TAGS:
                codec = short if field_type == _TIFF_SHORT else long_
                for k in range(n_values):
                    old = codec.unpack_from(data, values_at + k * codec.size)[0]
                    codec.pack_into(out, moved(values_at + k * codec.size), moved(old))
                    if tag in _IFD_POINTER_TAGS:
                        pending.append(old)

        next_pos = ifd + 2 + 12 * count
        if next_pos + 4 > len(data):
            raise FormatError(f"IFD at byte {ifd} has no next-IFD pointer")
        (next_ifd,) = long_.unpack_from(data, next_pos)
        long_.pack_into(out, moved(next_pos), moved(next_ifd) if next_ifd else 0)
        pending.append(next_ifd)
