"""
GPX 1.0 / 1.1 output for decoded GPS blocks.

See https://en.wikipedia.org/wiki/GPS_Exchange_Format and the GPX xsd
schemas.  GPX 1.1 has no ``<speed>`` / ``<course>`` elements, so those go
into a Garmin ``TrackPointExtension`` instead.

Position, time, speed and course come from the binary part of the GPS
block.  Elevation, geoid height, satellite count and HDOP are only present
in the firmware's copy of the ``$GPGGA`` sentence, which is split on ``,``
and used only when it has the expected number of fields.
"""

from __future__ import annotations

import logging
from typing import Iterable, TextIO
from xml.sax.saxutils import escape

from mov2gpx.config import config
from mov2gpx.gps_data import ExtractionResult, GPSRecord
from mov2gpx.utils import knots_to_mps, to_decimal_degrees

logger = logging.getLogger(__name__)

# $GPGGA field positions (after the "$GPGGA," prefix)
GGA_UTC = 0
GGA_LAT = 1
GGA_NS = 2
GGA_LON = 3
GGA_EW = 4
GGA_QUALITY = 5  # 0 no fix, 1 GPS, 2 DGPS
GGA_SATELLITES = 6
GGA_HDOP = 7
GGA_HEIGHT = 8
GGA_HEIGHT_UNIT = 9
GGA_GEOID = 10
GGA_GEOID_UNIT = 11
GGA_MIN_FIELDS = 14

_TPX_NS = "http://www.garmin.com/xmlschemas/TrackPointExtension/v2"


def _field(fields: list[bytes], index: int) -> str:
    # Firmware copies of NMEA sentences can be corrupt
    return escape(fields[index].decode("ascii", errors="replace"))


def write_header(out: TextIO, gpx_version: int = 1, creator: str = "mov2gpx") -> None:
    ns = f"http://www.topografix.com/GPX/1/{gpx_version}"
    out.write('<?xml version="1.0" encoding="UTF-8" ?>\n')
    out.write("<gpx\n")
    out.write(f' xmlns="{ns}"\n')
    out.write(' xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"\n')
    out.write(f' xsi:schemaLocation="{ns} {ns}/gpx.xsd"\n')
    if gpx_version == 1:
        out.write(f' xmlns:gpxtpx="{_TPX_NS}"\n')
    out.write(f' version="1.{gpx_version}"\n')
    out.write(f' creator="{creator}">\n')
    out.write("  <trk>\n")
    out.write("    <trkseg>")


def write_footer(out: TextIO) -> None:
    out.write("\n    </trkseg>\n  </trk>\n</gpx>\n")


def is_plottable(record: GPSRecord, clean: bool = True) -> bool:
    """False for blocks without GPS magic, without a date, or at 0/0 when cleaning."""
    if not record.is_valid or record.month == 0:
        return False
    if clean and record.latitude == 0 and record.longitude == 0:
        return False
    return True


def _speed_course(record: GPSRecord, prefix: str) -> list[str]:
    lines = [f"<{prefix}speed>{knots_to_mps(record.speed):.6f}</{prefix}speed>"]
    # At low speed a zero course means "unknown"
    if record.speed > 2 or record.course > 0.00001:
        lines.append(f"<{prefix}course>{record.course:.6f}</{prefix}course>")
    return lines


def write_point(
    out: TextIO,
    record: GPSRecord,
    *,
    gpx_version: int = 1,
    use_nmea: bool = True,
    debug: bool = False,
) -> None:
    """Write one ``<trkpt>``."""
    gga = record.gga_fields
    use_gga = use_nmea and record.has_gga and len(gga) >= GGA_MIN_FIELDS

    if debug:
        if record.has_rmc:
            logger.debug("RMC present: %r", record.rmc_entries)
        if record.has_gga:
            logger.debug("GGA present: %r", gga)

    lat = to_decimal_degrees(record.latitude_spec, record.latitude)
    lon = to_decimal_degrees(record.longitude_spec, record.longitude)
    out.write(f'\n      <trkpt lat="{lat:.6f}" lon="{lon:.6f}">')

    if use_gga:
        height = _field(gga, GGA_HEIGHT)
        if height and gga[GGA_HEIGHT_UNIT] == b"M":
            out.write(f"\n\t<ele>{height}</ele>")

    out.write(
        f"\n        <time>{2000 + record.year:4d}-{record.month:02d}-{record.day:02d}"
        f"T{record.hour:02d}:{record.minute:02d}:{record.second:02d}Z</time>"
    )

    if gpx_version == 0:
        # GPX 1.0 schema order: course before speed
        for line in reversed(_speed_course(record, "")):
            out.write(f"\n\t   {line}")

    if use_gga:
        geoid = _field(gga, GGA_GEOID)
        if geoid and gga[GGA_GEOID_UNIT] == b"M":
            out.write(f"\n\t<geoidheight>{geoid}</geoidheight>")
        sat = _field(gga, GGA_SATELLITES)
        if sat and gpx_version == 0:
            out.write(f"\n\t<sat>{sat}</sat>")
        hdop = _field(gga, GGA_HDOP)
        if hdop:
            out.write(f"\n\t<hdop>{hdop}</hdop>")

    if gpx_version == 1:
        out.write("\n\t<extensions>\n\t  <gpxtpx:TrackPointExtension>")
        for line in _speed_course(record, "gpxtpx:"):
            out.write(f"\n\t   {line}")
        out.write("\n\t  </gpxtpx:TrackPointExtension>\n       </extensions>")

    out.write("\n     </trkpt>")


def write_gpx(
    source: ExtractionResult | Iterable[GPSRecord],
    out: TextIO,
    *,
    gpx_version: int | None = None,
    clean: bool | None = None,
    use_nmea: bool | None = None,
    creator: str | None = None,
    debug: bool | None = None,
) -> int:
    """Write a complete GPX track and return the number of points written.

    Unset options fall back to :data:`mov2gpx.config.config`.
    """
    if gpx_version is None:
        gpx_version = config.GPX_VERSION
    if gpx_version not in (0, 1):
        raise ValueError("Only gpx 1.0 or 1.1 supported: set gpx_version to 0 or 1")
    if clean is None:
        clean = config.CLEAN
    if use_nmea is None:
        use_nmea = config.USE_NMEA
    if creator is None:
        creator = config.CREATOR
    if debug is None:
        debug = config.DEBUG

    records = source.records if isinstance(source, ExtractionResult) else source

    write_header(out, gpx_version, creator)
    written = 0
    for record in records:
        if not is_plottable(record, clean):
            continue
        write_point(
            out, record, gpx_version=gpx_version, use_nmea=use_nmea, debug=debug
        )
        written += 1
    write_footer(out)
    return written
