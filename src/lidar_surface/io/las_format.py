"""
LAS Format Tables

Read-only constants shared by the header, VLR and point codecs, plus
the small binary helpers they all use. LAS is little-endian throughout.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Tuple

SIGNATURE = b"LASF"

# Header sizes by minor version (major is always 1)
HEADER_SIZES = MappingProxyType({2: 227, 3: 235, 4: 375})

# Size of the block shared by every version
BASE_HEADER_SIZE = 227

VLR_HEADER_SIZE = 54

SUPPORTED_VERSIONS = ("1.2", "1.3", "1.4")

# Formats the writer can produce
WRITABLE_FORMATS = frozenset({0, 1, 2, 3, 6, 7, 8})

# Scan angle unit for the extended (6-10) layouts, in degrees
SCAN_ANGLE_UNIT = 0.006
SCAN_ANGLE_LIMIT = 30000

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

# ASPRS standard classes
CLASSIFICATION_NAMES = MappingProxyType({
    0: "Created, never classified",
    1: "Unclassified",
    2: "Ground",
    3: "Low Vegetation",
    4: "Medium Vegetation",
    5: "High Vegetation",
    6: "Building",
    7: "Low Point (noise)",
    8: "Model Key-point",
    9: "Water",
    10: "Rail",
    11: "Road Surface",
    12: "Reserved (Overlap)",
    13: "Wire - Guard (Shield)",
    14: "Wire - Conductor (Phase)",
    15: "Transmission Tower",
    16: "Wire-structure Connector",
    17: "Bridge Deck",
    18: "High Noise",
})


def classification_name(code: int) -> str:
    """Human-readable ASPRS class name, "Reserved" for unknown codes."""
    return CLASSIFICATION_NAMES.get(code, "Reserved")


def parse_version(version: str) -> Tuple[int, int]:
    """Split "1.4" into (1, 4)."""
    major, _, minor = str(version).partition(".")
    return int(major), int(minor or 0)


def split_uint64(value: int) -> Tuple[int, int]:
    """
    Split an unsigned 64-bit value into (low, high) 32-bit words.

    Point counts and byte offsets in LAS files stay well below 2**53, the
    range in which the combined value also round-trips through a float.
    """
    if value < 0 or value >= 2 ** 64:
        raise ValueError(f"value out of uint64 range: {value}")
    return value & 0xFFFFFFFF, value >> 32


def combine_uint64(low: int, high: int) -> int:
    """Inverse of split_uint64: high * 2**32 + low."""
    return high * 0x100000000 + low


def read_fixed_string(data: bytes) -> str:
    """Decode a NUL-padded ASCII field, stopping at the first NUL."""
    raw = bytes(data).split(b"\x00", 1)[0]
    return raw.decode("ascii", errors="replace")


def write_fixed_string(text: str, length: int) -> bytes:
    """Encode text into a NUL-padded field of exactly `length` bytes."""
    raw = text.encode("ascii", errors="replace")[:length]
    return raw.ljust(length, b"\x00")

