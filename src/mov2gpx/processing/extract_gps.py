"""
GPS extraction from Nextbase-style dashcam MOV files.

The firmware stores one GPS block per second of video inside a ``free``
atom in the ``mdat`` region.  Nothing in the atom tree points at those
blocks directly, but each one sits at a fixed displacement (64 KiB) past an
audio chunk:

    moov > trak > mdia > minf > smhd          marks the sound track
    moov > trak > mdia > minf > stbl > stco   its chunk-offset table

Extraction is therefore two passes over the file:

1. :class:`SampleAccumulator` walks the atom tree and collects the sound
   track's chunk offsets together with the ``\\xa9fmt`` / ``\\xa9inf``
   strings of ``moov > udta``.
2. :func:`read_gps_records` decodes the fixed-layout GPS block at
   ``offset + 0x10000`` for every chunk offset.

Early firmware used 32 KiB free atoms and later firmware 64 KiB ones; only
the first few hundred bytes are non-zero, so the block is read directly
rather than through the atom walker.
"""

from __future__ import annotations

import io
import logging
import struct
import time
from pathlib import Path
from typing import BinaryIO, Iterable

from mov2gpx.atoms import SectionReader, inside, visit_atoms
from mov2gpx.config import config
from mov2gpx.errors import MalformedRead
from mov2gpx.gps_data import ExtractionResult, GPSRecord, UserData

logger = logging.getLogger(__name__)

FORMAT_ATOM = "\xa9fmt"
COMMENT_ATOM = "\xa9inf"

_U16 = struct.Struct(">H")
_U32 = struct.Struct(">I")

# ---------------------------------------------------------------------------
# GPS block layout (little-endian)
# ---------------------------------------------------------------------------

# Length of each copied NMEA section and distance between the RMC and GGA magics
NMEA_PART_LEN = 0x48
NMEA_OFFSET = 0x80

_GPS_BLOCK = struct.Struct(
    "<"
    "4s"  # enclosing atom type, normally "free"
    "4x"  # enclosing atom length
    "4s"  # magic "GPS "
    "36x"
    "6I"  # hour, minute, second, year (since 2000), month, day
    "c"  # receiver status
    "c"  # latitude hemisphere
    "c"  # longitude hemisphere
    "x"
    "4f"  # latitude, longitude (decimal minutes), speed (knots), course
    "12x"
    "14s"  # ASCII display date/time
    "14x"
    "7s"  # "$GPRMC,"
    f"{NMEA_PART_LEN}s"
    f"{NMEA_OFFSET - NMEA_PART_LEN - 7}x"
    "7s"  # "$GPGGA,"
    f"{NMEA_PART_LEN}s"
)

GPS_RECORD_SIZE = _GPS_BLOCK.size


# ---------------------------------------------------------------------------
# Atom payload decoders
# ---------------------------------------------------------------------------


def trim_trailing_zeros(data: bytes) -> bytes:
    return data.rstrip(b"\x00")


def read_chunk_offsets(sr: SectionReader) -> list[int]:
    """Decode an ``stco`` payload into its list of absolute chunk offsets."""
    sr.seek(4, io.SEEK_CUR)  # version + flags
    (count,) = _U32.unpack(sr.read_exact(4, "stco entry count"))
    raw = sr.read_exact(4 * count, "stco chunk offsets")
    return [offset for (offset,) in _U32.iter_unpack(raw)]


def read_counted_string(sr: SectionReader) -> bytes:
    """Read a QuickTime user-data text item: length, language, bytes.

    Only the first string is read, even though an item may carry several
    in different languages.  Nextbase strings are dirty: one kind has
    garbage after the counted bytes, the other pads them with NULs.
    """
    (length,) = _U16.unpack(sr.read_exact(2, "user data string length"))
    sr.read_exact(2, "user data language code")
    if length == 0:
        return b""
    return sr.read_exact(length, "user data string")


# ---------------------------------------------------------------------------
# Atom visitor
# ---------------------------------------------------------------------------


class SampleAccumulator:
    """Collect the sound track's chunk offsets and the ``udta`` strings.

    A track is known to be the sound track once its ``smhd`` atom has been
    seen; ``in_sound`` is cleared again on the next ``trak``.  ``stbl``
    follows ``smhd`` inside ``minf``, so the ``stco`` of the sound track is
    always met while ``in_sound`` is set.

    If a file holds more than one sound track or ``udta`` string, the last
    one wins.
    """

    def __init__(self) -> None:
        self.in_sound = False
        self.audio_offsets: list[int] = []
        self.format: bytes | None = None
        self.comment: bytes | None = None

    def visit(self, path: list[str], content: SectionReader) -> None:
        if len(path) < 2:
            return
        cur = path[-1]
        parents = path[:-1]

        if cur == "smhd" and inside(parents, "minf"):
            self.in_sound = True
        elif cur == "trak":
            self.in_sound = False
        elif cur == "stco" and self.in_sound and inside(parents, "stbl"):
            self.audio_offsets = read_chunk_offsets(content)
            logger.debug("Sound track has %d chunks", len(self.audio_offsets))
        elif cur == FORMAT_ATOM and parents[-1] == "udta":
            self.format = trim_trailing_zeros(read_counted_string(content))
        elif cur == COMMENT_ATOM and parents[-1] == "udta":
            self.comment = trim_trailing_zeros(read_counted_string(content))

    @property
    def user_data(self) -> UserData:
        return UserData(format=self.format, comment=self.comment)


# ---------------------------------------------------------------------------
# GPS blocks
# ---------------------------------------------------------------------------


def decode_gps_record(raw: bytes) -> GPSRecord:
    """Decode one GPS block of exactly :data:`GPS_RECORD_SIZE` bytes."""
    if len(raw) < GPS_RECORD_SIZE:
        raise MalformedRead(
            f"GPS block: expected {GPS_RECORD_SIZE} bytes, got {len(raw)}"
        )
    (
        block_type,
        magic,
        hour,
        minute,
        second,
        year,
        month,
        day,
        receiver_status,
        latitude_spec,
        longitude_spec,
        latitude,
        longitude,
        speed,
        course,
        display_time,
        rmc_magic,
        rmc_entries,
        gga_magic,
        gga_entries,
    ) = _GPS_BLOCK.unpack_from(raw)
    return GPSRecord(
        block_type=block_type,
        magic=magic,
        hour=hour,
        minute=minute,
        second=second,
        year=year,
        month=month,
        day=day,
        receiver_status=receiver_status,
        latitude_spec=latitude_spec,
        longitude_spec=longitude_spec,
        latitude=latitude,
        longitude=longitude,
        speed=speed,
        course=course,
        display_time=display_time,
        rmc_magic=rmc_magic,
        rmc_entries=rmc_entries,
        gga_magic=gga_magic,
        gga_entries=gga_entries,
    )


def read_gps_records(
    source: BinaryIO,
    offsets: Iterable[int],
    displacement: int | None = None,
) -> list[GPSRecord]:
    """Decode the GPS block found *displacement* bytes past every chunk offset.

    Any block cut short by the end of *source* fails the whole read.
    """
    if displacement is None:
        displacement = config.GPS_BLOCK_DISPLACEMENT

    records: list[GPSRecord] = []
    for offset in offsets:
        position = offset + displacement
        source.seek(position)
        raw = source.read(GPS_RECORD_SIZE)
        if len(raw) != GPS_RECORD_SIZE:
            raise MalformedRead(
                f"GPS block at {position:#x}: expected {GPS_RECORD_SIZE} bytes, got {len(raw)}"
            )
        record = decode_gps_record(raw)
        if not record.is_valid:
            logger.debug("Not a GPS block at %#x (magic %r)", position, record.magic)
        records.append(record)
    return records


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def extract_gps(
    source: BinaryIO,
    *,
    debug: bool | None = None,
    displacement: int | None = None,
    max_depth: int | None = None,
) -> ExtractionResult:
    """Extract every GPS block and the ``udta`` strings from a MOV stream.

    Records come back in chunk order, including blocks whose magic is not
    ``"GPS "`` (see :attr:`GPSRecord.is_valid`).  Any read error aborts the
    extraction; no partial result is returned.
    """
    if debug is None:
        debug = config.DEBUG

    accumulator = SampleAccumulator()
    visit_atoms(accumulator, source, debug=debug, max_depth=max_depth)
    if debug:
        logger.debug(
            "chunk offsets: %s", " ".join(f"{o:x}" for o in accumulator.audio_offsets)
        )

    records = read_gps_records(source, accumulator.audio_offsets, displacement)
    return ExtractionResult(records=records, user_data=accumulator.user_data)


def extract_gps_from_path(mov_path: Path, **kwargs) -> ExtractionResult:
    """Open *mov_path* and run :func:`extract_gps` on it."""
    mov_size_mb = mov_path.stat().st_size / (1024 * 1024)
    logger.debug("Extracting GPS from %s (%.1f MiB)", mov_path.name, mov_size_mb)
    t0 = time.monotonic()

    with open(mov_path, "rb") as f:
        result = extract_gps(f, **kwargs)

    invalid = len(result.records) - len(result.valid_records)
    logger.debug(
        "Decoded %d GPS blocks (%d without GPS magic) in %.2f s",
        len(result.records),
        invalid,
        time.monotonic() - t0,
    )
    return result
