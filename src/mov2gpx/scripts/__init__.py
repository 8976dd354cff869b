"""
mov2gpx Scripts Package

Command-line entry points.

Available scripts:
- mov_to_gpx: Convert dashcam MOV files to GPX tracks (installed as ``mov2gpx``)
"""

__all__ = ["mov_to_gpx"]
