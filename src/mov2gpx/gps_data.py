"""Models for the GPS blocks decoded from a dashcam MOV file."""

from __future__ import annotations

import pydantic

GPS_MAGIC = b"GPS "
RMC_MAGIC = b"$GPRMC,"
GGA_MAGIC = b"$GPGGA,"


# ---------------------------------------------------------------------------
# GPS block
# ---------------------------------------------------------------------------


class GPSRecord(pydantic.BaseModel):
    """One GPS block, as written by the firmware.

    Values are kept exactly as stored.  Latitude and longitude are in NMEA
    decimal-minutes form (``ddmm.mmmm``), speed is in knots and the time is
    UTC.  Use :func:`mov2gpx.utils.to_decimal_degrees` and
    :func:`mov2gpx.utils.knots_to_mps` for display units.

    The RMC / GGA windows hold the firmware's copy of the NMEA sentences,
    without their ``$GPxxx,`` prefix.  Older firmware leaves them zeroed and
    newer firmware sometimes truncates or corrupts them; they are not
    validated here.
    """

    model_config = pydantic.ConfigDict(frozen=True)

    block_type: bytes
    """Type of the enclosing atom, normally ``b"free"``."""

    magic: bytes
    """``b"GPS "`` for a genuine GPS block."""

    hour: int
    minute: int
    second: int
    year: int
    """Years since 2000."""
    month: int
    day: int

    receiver_status: bytes
    """``b"A"`` valid, ``b"V"`` warning."""
    latitude_spec: bytes
    """``b"N"`` or ``b"S"``."""
    longitude_spec: bytes
    """``b"E"`` or ``b"W"``."""

    latitude: float
    longitude: float
    speed: float
    """Knots."""
    course: float
    """Degrees true."""

    display_time: bytes
    """ASCII date/time as shown on screen (firmware local time)."""

    rmc_magic: bytes
    rmc_entries: bytes
    gga_magic: bytes
    gga_entries: bytes

    @property
    def is_valid(self) -> bool:
        return self.magic == GPS_MAGIC

    @property
    def has_rmc(self) -> bool:
        return self.rmc_magic == RMC_MAGIC

    @property
    def has_gga(self) -> bool:
        return self.gga_magic == GGA_MAGIC

    @property
    def gga_fields(self) -> list[bytes]:
        """Comma-separated GGA fields, empty when the section is absent."""
        if not self.has_gga:
            return []
        return self.gga_entries.rstrip(b"\x00").split(b",")


# ---------------------------------------------------------------------------
# Extraction output
# ---------------------------------------------------------------------------


class UserData(pydantic.BaseModel):
    """Free-text strings found in ``moov > udta``.

    Nextbase writes the model name into ``\\xa9fmt`` and, depending on the
    firmware, either the model or the firmware version into ``\\xa9inf``.
    """

    format: bytes | None = None
    comment: bytes | None = None


class ExtractionResult(pydantic.BaseModel):
    records: list[GPSRecord] = pydantic.Field(default_factory=list)
    user_data: UserData = pydantic.Field(default_factory=UserData)

    @property
    def valid_records(self) -> list[GPSRecord]:
        return [r for r in self.records if r.is_valid]
