"""
Tabular view of the decoded GPS blocks.

One row per GPS block, in chunk order, with positions converted to decimal
degrees and speed to m/s.  Blocks without the ``"GPS "`` magic are kept and
flagged in the ``valid`` column so that odd firmware can be inspected.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd
import pandera.pandas as pa

from mov2gpx.gps_data import GPSRecord
from mov2gpx.utils import knots_to_mps, to_decimal_degrees

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Track dataframe schema
# ---------------------------------------------------------------------------

gps_track_schema = pa.DataFrameSchema(
    columns={
        "time_utc": pa.Column(pd.DatetimeTZDtype(unit="ns", tz="UTC"), nullable=True),
        "gps_lat_deg": pa.Column(float, nullable=True),
        "gps_lon_deg": pa.Column(float, nullable=True),
        "speed_ms": pa.Column(float, nullable=True),
        "course_deg": pa.Column(float, nullable=True),
        "status": pa.Column(str, checks=pa.Check.str_length(0, 1)),
        "valid": pa.Column(bool),
    },
    # Blocks from odd firmware can hold garbage coordinates, so no range checks
    strict=False,
    coerce=True,
)


def _record_time(record: GPSRecord) -> datetime | None:
    """UTC timestamp of *record*, or None when the block holds no usable date."""
    # The firmware copies the two-digit NMEA year
    if record.year > 99:
        return None
    try:
        return datetime(
            2000 + record.year,
            record.month,
            record.day,
            record.hour,
            record.minute,
            record.second,
            tzinfo=timezone.utc,
        )
    except ValueError:
        return None


def records_to_dataframe(records: Sequence[GPSRecord]) -> pd.DataFrame:
    """Build the validated track table for *records*."""
    df = pd.DataFrame(
        {
            "time_utc": pd.to_datetime([_record_time(r) for r in records], utc=True),
            "gps_lat_deg": np.array(
                [to_decimal_degrees(r.latitude_spec, r.latitude) for r in records],
                dtype=np.float64,
            ),
            "gps_lon_deg": np.array(
                [to_decimal_degrees(r.longitude_spec, r.longitude) for r in records],
                dtype=np.float64,
            ),
            "speed_ms": np.array(
                [knots_to_mps(r.speed) for r in records], dtype=np.float64
            ),
            "course_deg": np.array([r.course for r in records], dtype=np.float64),
            "status": [
                r.receiver_status.decode("latin-1").strip("\x00") for r in records
            ],
            "valid": np.array([r.is_valid for r in records], dtype=bool),
        }
    )
    return gps_track_schema.validate(df)


def write_track_csv(records: Sequence[GPSRecord], csv_path: Path) -> pd.DataFrame:
    df = records_to_dataframe(records)
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(csv_path, index=False)
    logger.info("Wrote track CSV: %s  (%d rows)", csv_path.name, len(df))
    return df
