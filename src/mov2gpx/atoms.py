"""
QuickTime / ISO BMFF atom walker.

A MOV file is a sequence of atoms, each introduced by a big-endian header::

    [size:4][type:4][extended size:8, only when size == 1][payload]

``size == 0`` means the payload runs to the end of the enclosing region and
``size == 1`` means a 64-bit extended size follows the type.  Some atoms are
containers whose payload is itself a sequence of atoms.

:func:`visit_atoms` walks the file depth first, in on-disk order, calling a
:class:`Visitor` for every atom.  Only the containers listed in
``CONTAINER_ATOMS`` are descended into; ``meta`` in particular is visited as
a leaf even though it can hold child atoms.  No tree is built: the visitor
sees the path of ancestor tags and a bounded :class:`SectionReader` over the
atom's payload.
"""

from __future__ import annotations

import io
import logging
import struct
from typing import BinaryIO, Callable, Protocol, Sequence

from mov2gpx.config import config
from mov2gpx.errors import (
    AtomNestingTooDeep,
    AtomTooLarge,
    EndOfStream,
    MalformedRead,
)

logger = logging.getLogger(__name__)

_U32 = struct.Struct(">I")
_U64 = struct.Struct(">Q")

_MAX_INT64 = 2**63 - 1

# Containers the walker descends into.  Not a complete list: "meta" is left out.
# udta carries the \xa9fmt / \xa9inf strings written by Nextbase firmware.
CONTAINER_ATOMS = frozenset({"moov", "trak", "mdia", "minf", "stbl", "dinf", "udta"})


# ---------------------------------------------------------------------------
# Bounded reader
# ---------------------------------------------------------------------------


class SectionReader:
    """A bounded view ``[offset, offset + size)`` of a seekable binary source.

    Each view keeps its own position.  Reads seek the shared source to an
    absolute offset first, so reading from a child view never moves the
    position of its parent.
    """

    def __init__(self, source: BinaryIO, offset: int, size: int):
        self.source = source
        self.offset = offset
        self.size = size
        self._pos = 0

    def __repr__(self) -> str:
        return f"SectionReader(offset={self.offset:#x}, size={self.size:#x}, pos={self._pos:#x})"

    def tell(self) -> int:
        return self._pos

    def remaining(self) -> int:
        return max(self.size - self._pos, 0)

    def seek(self, pos: int, whence: int = io.SEEK_SET) -> int:
        """Move the view position.  Seeking past the end is allowed; reads then return nothing."""
        if whence == io.SEEK_SET:
            new_pos = pos
        elif whence == io.SEEK_CUR:
            new_pos = self._pos + pos
        elif whence == io.SEEK_END:
            new_pos = self.size + pos
        else:
            raise ValueError(f"invalid whence: {whence!r}")
        if new_pos < 0:
            raise ValueError(f"negative seek position {new_pos}")
        self._pos = new_pos
        return new_pos

    def read(self, n: int) -> bytes:
        """Read up to *n* bytes, never past the end of the view."""
        n = min(n, self.remaining())
        if n <= 0:
            return b""
        self.source.seek(self.offset + self._pos)
        data = self.source.read(n)
        self._pos += len(data)
        return data

    def read_exact(self, n: int, what: str) -> bytes:
        """Read exactly *n* bytes or raise :class:`MalformedRead`."""
        start = self.offset + self._pos
        data = self.read(n)
        if len(data) != n:
            raise MalformedRead(
                f"{what}: expected {n} bytes at {start:#x}, got {len(data)}"
            )
        return data

    def section(self, pos: int, size: int) -> SectionReader:
        """Child view starting at *pos* within this view, clamped to its end."""
        size = max(min(size, self.size - pos), 0)
        return SectionReader(self.source, self.offset + pos, size)


# ---------------------------------------------------------------------------
# Visitors
# ---------------------------------------------------------------------------


class Visitor(Protocol):
    """Called by :func:`visit_atoms` once per atom.

    *path* lists the ancestor tags root first and ends with the atom's own
    tag.  *content* is a fresh view over the atom payload.  Raising aborts
    the walk.
    """

    def visit(self, path: list[str], content: SectionReader) -> None: ...


class VisitorFunc:
    """Turn a plain ``f(path, content)`` function into a :class:`Visitor`."""

    def __init__(self, func: Callable[[list[str], SectionReader], None]):
        self.func = func

    def visit(self, path: list[str], content: SectionReader) -> None:
        self.func(path, content)


def inside(path: Sequence[str], target: str) -> bool:
    """Return True if *target* is any element of *path*, looking from the end."""
    return any(tag == target for tag in reversed(path))


# ---------------------------------------------------------------------------
# Header reader
# ---------------------------------------------------------------------------


def _read_size(sr: SectionReader) -> int:
    # Nothing left at all is the normal end of a sibling list; a partial size is not.
    start = sr.offset + sr.tell()
    data = sr.read(4)
    if not data:
        raise EndOfStream()
    if len(data) != 4:
        raise MalformedRead(f"atom size: expected 4 bytes at {start:#x}, got {len(data)}")
    (size,) = _U32.unpack(data)
    return size


def next_atom(sr: SectionReader, debug: bool = False) -> tuple[str, SectionReader]:
    """Read the atom header at the current position of *sr*.

    Returns the atom type and a :class:`SectionReader` over its payload, and
    leaves *sr* positioned at the next sibling header.  The type is decoded
    as latin-1 so that tags such as ``b"\\xa9fmt"`` map to ``"\\xa9fmt"``.

    Raises :class:`EndOfStream` when *sr* holds no further atoms.
    """
    header_start = sr.tell()
    size = _read_size(sr)
    if size == 0 and sr.remaining() == 0:
        # The 32-bit zero QuickTime puts at the end of udta lists
        raise EndOfStream()
    atom_type = sr.read_exact(4, "atom type").decode("latin-1")

    if size == 0:
        # Runs to the end of the enclosing region
        length = sr.size - header_start - 8
    elif size == 1:
        (ext_size,) = _U64.unpack(sr.read_exact(8, "extended atom size"))
        if ext_size > _MAX_INT64:
            raise AtomTooLarge(
                f"{atom_type!r} at {sr.offset + header_start:#x} declares {ext_size} bytes"
            )
        length = ext_size - 16
    else:
        length = size - 8

    if length < 0:
        raise MalformedRead(
            f"{atom_type!r} at {sr.offset + header_start:#x}: size {size} is smaller than its header"
        )

    body = sr.tell()
    if debug:
        logger.debug(
            "cur = %#x, body length = %#x, atom type is %r",
            sr.offset + body,
            length,
            atom_type,
        )
    if length > sr.size - body:
        logger.debug(
            "%r at %#x overruns its enclosing region by %d bytes",
            atom_type,
            sr.offset + header_start,
            length - (sr.size - body),
        )

    content = sr.section(body, length)
    sr.seek(length, io.SEEK_CUR)
    return atom_type, content


# ---------------------------------------------------------------------------
# Walker
# ---------------------------------------------------------------------------


def walk_atom_list(
    root: list[str],
    visitor: Visitor,
    sr: SectionReader,
    *,
    debug: bool = False,
    max_depth: int | None = None,
) -> None:
    """Visit every atom in *sr* and recurse into the known containers.

    *root* is the path of the atoms enclosing *sr*.  A container is visited
    before its children; siblings are visited in storage order.
    """
    if max_depth is None:
        max_depth = config.MAX_ATOM_DEPTH
    if len(root) > max_depth:
        raise AtomNestingTooDeep(
            f"atoms nested deeper than {max_depth} at {'/'.join(root)}"
        )
    if debug:
        logger.debug("Visiting at %s", root)

    while True:
        try:
            atom_type, content = next_atom(sr, debug=debug)
        except EndOfStream:
            return

        path = [*root, atom_type]
        visitor.visit(path, content)

        if atom_type in CONTAINER_ATOMS:
            # The visitor may have read from the view; children start at its beginning
            content.seek(0)
            walk_atom_list(path, visitor, content, debug=debug, max_depth=max_depth)


def visit_atoms(
    visitor: Visitor,
    source: BinaryIO,
    *,
    debug: bool | None = None,
    max_depth: int | None = None,
) -> None:
    """Depth-first visit of every atom in *source*, in file order.

    *source* is any seekable binary stream.  On return, whether normal or by
    exception, *source* is positioned at its end.
    """
    if debug is None:
        debug = config.DEBUG
    file_size = source.seek(0, io.SEEK_END)
    try:
        walk_atom_list(
            [],
            visitor,
            SectionReader(source, 0, file_size),
            debug=debug,
            max_depth=max_depth,
        )
    finally:
        source.seek(0, io.SEEK_END)
