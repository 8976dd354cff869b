"""Unit conversions and output path helpers for the GPX writer."""

from __future__ import annotations

import math
import pathlib
import sys
from typing import TextIO

import numpy as np

from mov2gpx.errors import OutputExistsError

KNOTS_TO_MPS = 1852.0 / 3600.0


def to_decimal_degrees(spec: bytes, value: float) -> float:
    """Convert an NMEA ``dddmm.mmmm`` value to signed decimal degrees.

    *spec* is the hemisphere byte; ``S`` and ``W`` give a negative result.
    The result is rounded to single precision, the precision of the stored
    value, so printed GPX coordinates match the dashcam vendor tools.
    """
    frac, deg = math.modf(value / 100)
    result = float(np.float32(deg + frac / 0.6))
    if spec in (b"S", b"W"):
        result = -result
    return result


def knots_to_mps(speed: float) -> float:
    return speed * KNOTS_TO_MPS


def derive_output_path(
    mov_path: pathlib.Path, output_dir: str | pathlib.Path | None = None
) -> pathlib.Path | None:
    """Return where the GPX for *mov_path* goes, or None for stdout.

    Without *output_dir* the GPX sits beside the MOV file; ``"-"`` selects
    stdout.
    """
    if mov_path.suffix.lower() != ".mov":
        raise ValueError(f"{mov_path}: Does not end with .MOV")

    if output_dir is None or str(output_dir) == "":
        return mov_path.with_suffix(".gpx")
    if str(output_dir) == "-":
        return None
    return pathlib.Path(output_dir) / f"{mov_path.stem}.gpx"


def check_output(gpx_path: pathlib.Path | None, overwrite: bool = False) -> None:
    """Raise :class:`OutputExistsError` if *gpx_path* exists and may not be replaced."""
    if gpx_path is not None and not overwrite and gpx_path.exists():
        raise OutputExistsError(f"{gpx_path}: already exists. Use -w to overwrite.")


def open_output(gpx_path: pathlib.Path | None, overwrite: bool = False) -> TextIO:
    """Open *gpx_path* for writing, or return stdout when it is None."""
    check_output(gpx_path, overwrite)
    if gpx_path is None:
        return sys.stdout
    return open(gpx_path, "w", encoding="utf-8")
