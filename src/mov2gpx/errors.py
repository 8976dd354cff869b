"""Exceptions raised while walking a MOV file and decoding its GPS blocks."""


class Mov2GpxError(Exception):
    """Base class for all mov2gpx errors."""


class EndOfStream(Mov2GpxError):
    """No more atoms in the enclosing region.

    Raised by :func:`mov2gpx.atoms.next_atom` and swallowed by the walker;
    it ends a sibling list and never reaches the caller.
    """


class AtomTooLarge(Mov2GpxError):
    """An extended-size atom declares a size beyond the signed 64-bit range."""


class MalformedRead(Mov2GpxError):
    """A header, table, string or GPS block ended before its declared length."""


class AtomNestingTooDeep(Mov2GpxError):
    """Container atoms are nested deeper than ``config.MAX_ATOM_DEPTH``."""


class OutputExistsError(Mov2GpxError):
    """The GPX output file already exists and overwriting was not requested."""
