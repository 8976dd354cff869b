"""
mov2gpx

Extracts the GPS track that Nextbase-style dashcams embed in their MOV files
and writes it as GPX.
"""

__version__ = "1.0.0"
