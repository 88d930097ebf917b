"""
Variable Length Records

Decodes the VLR block that follows the LAS header. Two records are
interpreted: the GeoTIFF GeoKeyDirectoryTag (LASF_Projection / 34735) and
the OGC WKT coordinate system (LASF_Projection / 2112). Every other
record is kept with its raw payload.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from ..core.transform import resolve_crs
from ..core.validation import FormatError
from .las_format import VLR_HEADER_SIZE, read_fixed_string, write_fixed_string

logger = logging.getLogger(__name__)

PROJECTION_USER_ID = "LASF_Projection"
GEOKEY_DIRECTORY_RECORD_ID = 34735
WKT_RECORD_ID = 2112

# GeoKey ids
GT_MODEL_TYPE_KEY = 1024
GT_RASTER_TYPE_KEY = 1025
GEOGRAPHIC_TYPE_KEY = 2048
PROJECTED_CS_TYPE_KEY = 3072

_VLR_HEADER = struct.Struct("<H16sHH32s")
_GEOKEY = struct.Struct("<HHHH")


@dataclass(frozen=True)
class GeoKeyEntry:
    key_id: int
    tiff_tag_location: int
    count: int
    value_offset: int


@dataclass(frozen=True)
class GeoKeyDirectory:
    """GeoTIFF key directory: version triple plus ordered key entries."""
    key_directory_version: int
    key_revision: int
    minor_revision: int
    entries: Tuple[GeoKeyEntry, ...] = ()

    def epsg_code(self) -> Optional[int]:
        """EPSG code from ProjectedCSType or GeographicType, inline values only."""
        for wanted in (PROJECTED_CS_TYPE_KEY, GEOGRAPHIC_TYPE_KEY):
            for entry in self.entries:
                if entry.key_id == wanted and entry.tiff_tag_location == 0:
                    return entry.value_offset
        return None

    def to_bytes(self) -> bytes:
        out = bytearray(_GEOKEY.pack(
            self.key_directory_version,
            self.key_revision,
            self.minor_revision,
            len(self.entries),
        ))
        for entry in self.entries:
            out += _GEOKEY.pack(
                entry.key_id, entry.tiff_tag_location, entry.count, entry.value_offset
            )
        return bytes(out)


@dataclass(frozen=True)
class WKTDefinition:
    wkt: str


@dataclass(frozen=True)
class VariableLengthRecord:
    """A tagged metadata block following the LAS header."""
    user_id: str
    record_id: int
    payload: bytes
    description: str = ""
    reserved: int = 0
    parsed: Optional[Union[GeoKeyDirectory, WKTDefinition]] = field(
        default=None, compare=False
    )

    @property
    def record_length(self) -> int:
        return len(self.payload)

    @property
    def size(self) -> int:
        """Bytes occupied in the file, header included."""
        return VLR_HEADER_SIZE + len(self.payload)


def parse_geokey_directory(payload: bytes) -> Optional[GeoKeyDirectory]:
    """Parse a GeoKeyDirectoryTag payload; None when shorter than its header."""
    if len(payload) < _GEOKEY.size:
        return None

    version, revision, minor, number_of_keys = _GEOKEY.unpack_from(payload, 0)

    entries = []
    offset = _GEOKEY.size
    for _ in range(number_of_keys):
        if offset + _GEOKEY.size > len(payload):
            logger.warning(
                "GeoKey directory declares %d keys but holds %d",
                number_of_keys, len(entries),
            )
            break
        entries.append(GeoKeyEntry(*_GEOKEY.unpack_from(payload, offset)))
        offset += _GEOKEY.size

    return GeoKeyDirectory(version, revision, minor, tuple(entries))


def _interpret(user_id: str, record_id: int, payload: bytes):
    if user_id != PROJECTION_USER_ID:
        return None
    if record_id == GEOKEY_DIRECTORY_RECORD_ID:
        return parse_geokey_directory(payload)
    if record_id == WKT_RECORD_ID:
        return WKTDefinition(read_fixed_string(payload))
    return None


def decode_vlrs(buffer, header) -> List[VariableLengthRecord]:
    """
    Read `header.number_of_vlrs` records starting at `header.header_size`.

    Raises:
        FormatError: If a record header or payload runs past the buffer
    """
    view = memoryview(buffer)
    records = []
    offset = header.header_size

    for index in range(header.number_of_vlrs):
        if offset + VLR_HEADER_SIZE > len(view):
            raise FormatError(
                f"Truncated VLR block: record {index} header at byte {offset} "
                f"runs past end of data ({len(view)} bytes)"
            )

        reserved, user_id, record_id, length, description = _VLR_HEADER.unpack_from(view, offset)
        offset += VLR_HEADER_SIZE

        if offset + length > len(view):
            raise FormatError(
                f"Truncated VLR block: record {index} payload of {length} bytes "
                f"at byte {offset} runs past end of data"
            )

        payload = bytes(view[offset:offset + length])
        offset += length

        user_id = read_fixed_string(user_id).strip()
        records.append(VariableLengthRecord(
            user_id=user_id,
            record_id=record_id,
            payload=payload,
            description=read_fixed_string(description),
            reserved=reserved,
            parsed=_interpret(user_id, record_id, payload),
        ))
        logger.debug("VLR %d: %s/%d (%d bytes)", index, user_id, record_id, length)

    return records


def encode_vlr(vlr: VariableLengthRecord) -> bytes:
    """Encode a record as its 54-byte header followed by the payload."""
    if len(vlr.payload) > 0xFFFF:
        raise FormatError(
            f"VLR payload of {len(vlr.payload)} bytes exceeds the 65535-byte limit"
        )
    return _VLR_HEADER.pack(
        vlr.reserved,
        write_fixed_string(vlr.user_id, 16),
        vlr.record_id,
        len(vlr.payload),
        write_fixed_string(vlr.description, 32),
    ) + bytes(vlr.payload)


def build_geokey_directory(epsg_code: int) -> GeoKeyDirectory:
    """
    Three-key directory: model type, raster type and the CRS code.

    Geographic CRSs get GTModelType 2 and GeographicTypeGeoKey, everything
    else GTModelType 1 and ProjectedCSTypeGeoKey.

    Raises:
        ProjectionError: If pyproj has no definition for `epsg_code`
    """
    geographic = resolve_crs(int(epsg_code)).is_geographic
    return GeoKeyDirectory(1, 1, 0, (
        GeoKeyEntry(GT_MODEL_TYPE_KEY, 0, 1, 2 if geographic else 1),
        GeoKeyEntry(GT_RASTER_TYPE_KEY, 0, 1, 1),
        GeoKeyEntry(GEOGRAPHIC_TYPE_KEY if geographic else PROJECTED_CS_TYPE_KEY, 0, 1, epsg_code),
    ))


def build_geokey_vlr(epsg_code: int) -> VariableLengthRecord:
    directory = build_geokey_directory(epsg_code)
    return VariableLengthRecord(
        user_id=PROJECTION_USER_ID,
        record_id=GEOKEY_DIRECTORY_RECORD_ID,
        payload=directory.to_bytes(),
        description="GeoTIFF GeoKeyDirectoryTag",
        parsed=directory,
    )


def crs_from_vlrs(vlrs: List[VariableLengthRecord]) -> Optional[str]:
    """
    CRS as WKT text or "EPSG:<code>", or None.

    WKT records win over GeoKeys since they carry the full definition.
    """
    for vlr in vlrs:
        if isinstance(vlr.parsed, WKTDefinition) and vlr.parsed.wkt.strip():
            return vlr.parsed.wkt

    for vlr in vlrs:
        if isinstance(vlr.parsed, GeoKeyDirectory):
            code = vlr.parsed.epsg_code()
            if code:
                return f"EPSG:{code}"

    return None
