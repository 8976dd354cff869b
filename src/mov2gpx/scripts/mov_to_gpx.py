#!/usr/bin/env python3
"""
MOV to GPX Converter Script

Reads the GPS blocks that Nextbase (and similar Novatek based) dashcams hide
in their MOV files and writes them as a GPX track.

Usage:
    mov2gpx [flags] <file.MOV> [<file.MOV> ...]

Example:
    mov2gpx -w -O tracks 20190512_101500_NF.MOV
"""

import argparse
import logging
import sys
from pathlib import Path

import rich.console
import rich.logging

from mov2gpx import __version__
from mov2gpx.config import config
from mov2gpx.errors import Mov2GpxError
from mov2gpx.gpx_writer import write_gpx
from mov2gpx.processing.extract_gps import extract_gps_from_path
from mov2gpx.processing.gps_track import write_track_csv
from mov2gpx.utils import check_output, derive_output_path, open_output

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    log_format = "\\[[bold]%(name)s[/bold]] %(message)s"
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=log_format,
        datefmt="[%X]",
        handlers=[
            rich.logging.RichHandler(
                console=rich.console.Console(color_system="auto", stderr=True),
                show_level=True,
                show_path=False,
                enable_link_path=False,
                rich_tracebacks=True,
                tracebacks_show_locals=False,
                markup=True,
            )
        ],
    )


def _show(data: bytes | None) -> str:
    return "" if data is None else data.decode("latin-1")


def process(mov_path: Path, args: argparse.Namespace) -> int:
    """Convert one MOV file and return the number of track points written."""
    gpx_path = derive_output_path(mov_path, args.output_dir)
    if gpx_path is not None and args.verbose and args.output_dir:
        logger.info("Writing to %s", gpx_path)

    # Refuse an existing GPX before reading the MOV; create it only once
    # extraction has succeeded
    check_output(gpx_path, overwrite=args.overwrite)
    result = extract_gps_from_path(mov_path, debug=args.debug)

    if args.verbose or args.debug:
        # Labels as printed by the Nextbase tools: the model string (\xa9fmt)
        # under "Comment", \xa9inf (often the firmware version) under
        # "Format/firmware"
        logger.info(
            "%s\n\tComment: %s\t Format/firmware: %s",
            mov_path,
            _show(result.user_data.format),
            _show(result.user_data.comment),
        )

    out = open_output(gpx_path, overwrite=args.overwrite)
    try:
        written = write_gpx(
            result,
            out,
            gpx_version=args.gpx_version,
            clean=args.clean,
            use_nmea=not args.no_nmea,
            debug=args.debug,
        )
    finally:
        if out is sys.stdout:
            out.flush()
        else:
            out.close()

    if args.csv:
        csv_path = (gpx_path or mov_path).with_suffix(".csv")
        write_track_csv(result.records, csv_path)

    logger.debug(
        "%s: %d of %d GPS blocks written", mov_path.name, written, len(result.records)
    )
    return written


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="mov2gpx", description="Extract dashcam GPS tracks from MOV files"
    )
    parser.add_argument("paths", nargs="*", type=Path, help="MOV files")
    parser.add_argument(
        "-w",
        dest="overwrite",
        action="store_true",
        help="Overwrite any existing gpx file",
    )
    parser.add_argument(
        "-v",
        dest="verbose",
        action="store_true",
        help="Report firmware details, etc, if present",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=config.DEBUG,
        help="Atom tracing to stderr",
    )
    parser.add_argument(
        "-O",
        dest="output_dir",
        default="",
        help="Destination directory for gpx file(s) or '-' for stdout. "
        "Default: MOV file directory",
    )
    parser.add_argument(
        "-g",
        dest="gpx_version",
        type=int,
        choices=(0, 1),
        default=config.GPX_VERSION,
        help="gpx version: 0 or 1 for 1.0 or 1.1",
    )
    parser.add_argument(
        "-x",
        dest="no_nmea",
        action="store_true",
        default=not config.USE_NMEA,
        help="Do not use NMEA GGA records",
    )
    parser.add_argument(
        "--no-clean",
        dest="clean",
        action="store_false",
        default=config.CLEAN,
        help="Keep dubious points at sea with lat/long = 0/0",
    )
    parser.add_argument(
        "--csv",
        action="store_true",
        help="Also write the decoded track as CSV next to the gpx file",
    )
    parser.add_argument("-V", dest="show_version", action="store_true", help="Display version")
    args = parser.parse_args(argv)

    if args.show_version:
        print(f"mov2gpx version {__version__}")
        return 0

    if not args.paths:
        parser.print_usage(sys.stderr)
        return 2

    setup_logging(args.verbose or args.debug)

    for mov_path in args.paths:
        try:
            process(mov_path, args)
        except (Mov2GpxError, ValueError, OSError) as e:
            logger.error("%s", e)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
