"""
LAS Public Header Block

Decodes and encodes the fixed-size header for LAS 1.2, 1.3 and 1.4, and
holds the version/point-format coercion policy used by the writer.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import List, Tuple

from ..core.validation import FormatError
from .las_format import (
    BASE_HEADER_SIZE,
    HEADER_SIZES,
    SIGNATURE,
    SUPPORTED_VERSIONS,
    WRITABLE_FORMATS,
    combine_uint64,
    parse_version,
    read_fixed_string,
    split_uint64,
    write_fixed_string,
)

# Fields common to every version (227 bytes)
_BASE = struct.Struct("<4sHH16sBB32s32sHHHLLBHL5L12d")

# 1.3: start of waveform data packet record, as (low, high) words
_EXT_13 = struct.Struct("<LL")

# 1.4: first EVLR offset, EVLR count, point count, 15 counts by return
_EXT_14 = struct.Struct("<LLL" + "LL" * 16)


@dataclass(frozen=True)
class LASHeader:
    """
    Public header block of a LAS file.

    `point_count` and `points_by_return` are the canonical counts for every
    version: files older than 1.4 get them copied from the legacy 32-bit
    fields (by-return counts padded to 15 entries).
    """
    version_major: int
    version_minor: int
    point_format: int
    point_record_length: int
    point_count: int
    scale: Tuple[float, float, float]
    offset: Tuple[float, float, float]
    min_x: float
    max_x: float
    min_y: float
    max_y: float
    min_z: float
    max_z: float
    header_size: int
    offset_to_point_data: int
    number_of_vlrs: int = 0
    legacy_point_count: int = 0
    legacy_points_by_return: Tuple[int, ...] = (0, 0, 0, 0, 0)
    points_by_return: Tuple[int, ...] = (0,) * 15
    file_source_id: int = 0
    global_encoding: int = 0
    project_guid: bytes = bytes(16)
    system_identifier: str = ""
    generating_software: str = ""
    creation_day: int = 0
    creation_year: int = 0
    waveform_data_offset: int = 0
    evlr_offset: int = 0
    evlr_count: int = 0
    signature: str = "LASF"

    @property
    def version(self) -> str:
        return f"{self.version_major}.{self.version_minor}"

    @property
    def bounds(self) -> dict:
        return {
            "minX": self.min_x, "maxX": self.max_x,
            "minY": self.min_y, "maxY": self.max_y,
            "minZ": self.min_z, "maxZ": self.max_z,
        }


@dataclass(frozen=True)
class CoercionResult:
    """Outcome of reconciling a requested version with a requested point format."""
    version: str
    point_format: int
    requested_version: str
    requested_format: int
    messages: List[str] = field(default_factory=list)

    @property
    def coerced(self) -> bool:
        return bool(self.messages)


def coerce_version_format(
    version: str,
    point_format: int,
    force_version: bool = False,
) -> CoercionResult:
    """
    Reconcile a requested LAS version and point format for writing.

    Never raises; every adjustment is reported in `messages`.

    - Unknown versions fall back to 1.2.
    - Formats the writer cannot produce (4, 5, 9, 10, unknown) become 0.
    - Formats 6-8 need 1.4: the version is upgraded, unless `force_version`
      is set, in which case the requested version is kept and the format
      drops to 0.
    """
    requested_version = str(version)
    requested_format = point_format
    messages = []

    if requested_version not in SUPPORTED_VERSIONS:
        messages.append(
            f"LAS version {requested_version} not supported, using 1.2"
        )
        version = "1.2"
    else:
        version = requested_version

    if point_format not in WRITABLE_FORMATS:
        messages.append(
            f"Point format {point_format} cannot be written, using format 0"
        )
        point_format = 0

    if point_format >= 6 and version != "1.4":
        if force_version:
            messages.append(
                f"Point format {point_format} not supported in LAS {version}, using format 0"
            )
            point_format = 0
        else:
            messages.append(
                f"Point format {point_format} requires LAS 1.4, upgrading version from {version}"
            )
            version = "1.4"

    return CoercionResult(
        version=version,
        point_format=point_format,
        requested_version=requested_version,
        requested_format=requested_format,
        messages=messages,
    )


def decode_header(buffer) -> LASHeader:
    """
    Decode the public header block at the start of `buffer`.

    Raises:
        FormatError: Bad signature, or buffer shorter than the header
    """
    view = memoryview(buffer)

    signature = bytes(view[:4])
    if signature != SIGNATURE:
        raise FormatError(
            f"Invalid LAS file: signature must be 'LASF', got {signature!r}"
        )

    if len(view) < BASE_HEADER_SIZE:
        raise FormatError(
            f"Truncated LAS header: {len(view)} bytes, need at least {BASE_HEADER_SIZE}"
        )

    (
        _sig, file_source_id, global_encoding, guid,
        version_major, version_minor,
        system_identifier, generating_software,
        creation_day, creation_year,
        header_size, offset_to_point_data, number_of_vlrs,
        point_format, point_record_length,
        legacy_point_count,
        *rest,
    ) = _BASE.unpack_from(view, 0)

    legacy_by_return = tuple(rest[:5])
    scale_x, scale_y, scale_z, off_x, off_y, off_z = rest[5:11]
    max_x, min_x, max_y, min_y, max_z, min_z = rest[11:17]

    required = HEADER_SIZES.get(min(version_minor, 4), BASE_HEADER_SIZE)
    if len(view) < required:
        raise FormatError(
            f"Truncated LAS {version_major}.{version_minor} header: "
            f"{len(view)} bytes, need {required}"
        )
    if header_size < required:
        raise FormatError(
            f"Header size {header_size} is smaller than the {required} bytes "
            f"LAS {version_major}.{version_minor} requires"
        )

    waveform_data_offset = 0
    if version_minor >= 3:
        waveform_data_offset = combine_uint64(*_EXT_13.unpack_from(view, BASE_HEADER_SIZE))

    evlr_offset = 0
    evlr_count = 0
    if version_minor >= 4:
        words = _EXT_14.unpack_from(view, HEADER_SIZES[3])
        evlr_offset = combine_uint64(words[0], words[1])
        evlr_count = words[2]
        pairs = words[3:]
        point_count = combine_uint64(pairs[0], pairs[1])
        points_by_return = tuple(
            combine_uint64(pairs[i], pairs[i + 1]) for i in range(2, 32, 2)
        )
    else:
        point_count = legacy_point_count
        points_by_return = legacy_by_return + (0,) * 10

    return LASHeader(
        signature=signature.decode("ascii"),
        file_source_id=file_source_id,
        global_encoding=global_encoding,
        project_guid=bytes(guid),
        version_major=version_major,
        version_minor=version_minor,
        system_identifier=read_fixed_string(system_identifier),
        generating_software=read_fixed_string(generating_software),
        creation_day=creation_day,
        creation_year=creation_year,
        header_size=header_size,
        offset_to_point_data=offset_to_point_data,
        number_of_vlrs=number_of_vlrs,
        point_format=point_format,
        point_record_length=point_record_length,
        legacy_point_count=legacy_point_count,
        legacy_points_by_return=legacy_by_return,
        scale=(scale_x, scale_y, scale_z),
        offset=(off_x, off_y, off_z),
        min_x=min_x, max_x=max_x,
        min_y=min_y, max_y=max_y,
        min_z=min_z, max_z=max_z,
        waveform_data_offset=waveform_data_offset,
        evlr_offset=evlr_offset,
        evlr_count=evlr_count,
        point_count=point_count,
        points_by_return=points_by_return,
    )


def encode_header(header: LASHeader) -> bytes:
    """
    Encode `header` into exactly HEADER_SIZES[minor] bytes.

    Raises:
        FormatError: If the header's version has no defined layout
    """
    major, minor = parse_version(header.version)
    if minor not in HEADER_SIZES:
        raise FormatError(f"Cannot encode a LAS {header.version} header")

    legacy_by_return = tuple(header.legacy_points_by_return[:5])
    legacy_by_return += (0,) * (5 - len(legacy_by_return))

    out = bytearray(_BASE.pack(
        SIGNATURE,
        header.file_source_id,
        header.global_encoding,
        bytes(header.project_guid).ljust(16, b"\x00")[:16],
        major,
        minor,
        write_fixed_string(header.system_identifier, 32),
        write_fixed_string(header.generating_software, 32),
        header.creation_day,
        header.creation_year,
        HEADER_SIZES[minor],
        header.offset_to_point_data,
        header.number_of_vlrs,
        header.point_format,
        header.point_record_length,
        header.legacy_point_count,
        *legacy_by_return,
        *header.scale,
        *header.offset,
        header.max_x, header.min_x,
        header.max_y, header.min_y,
        header.max_z, header.min_z,
    ))

    if minor >= 3:
        out += _EXT_13.pack(*split_uint64(header.waveform_data_offset))

    if minor >= 4:
        by_return = tuple(header.points_by_return[:15])
        by_return += (0,) * (15 - len(by_return))
        words = [*split_uint64(header.evlr_offset), header.evlr_count]
        words.extend(split_uint64(header.point_count))
        for count in by_return:
            words.extend(split_uint64(count))
        out += _EXT_14.pack(*words)

    return bytes(out)
