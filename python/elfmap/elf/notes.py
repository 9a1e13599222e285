"""ELF note record parser.

Notes live in SHT_NOTE sections and PT_NOTE segments. Each record is:

  Offset | Size    | Field
  -------|---------|------
  0x00   | 4       | namesz
  0x04   | 4       | descsz
  0x08   | 4       | type
  0x0c   | namesz  | name (NUL-terminated)
  ...    | pad     | padding to alignment
  ...    | descsz  | desc
  ...    | pad     | padding to alignment

Documentation differs on whether namesz counts the trailing NUL, but every
producer NUL-terminates the name, so the parser trusts the terminator and
uses the length it actually consumed for padding arithmetic.
"""

import struct
from dataclasses import dataclass
from typing import BinaryIO, Iterable

from .types import LITTLE_ENDIAN

MAX_NOTE_SIZE = 1 << 20  # Cap on namesz and descsz, in bytes
NOTE_HEADER_SIZE = 12  # 3 4-byte words


class NoteParseError(ValueError):
    """Raised when a note stream is truncated or has corrupt size fields."""

    pass


@dataclass(frozen=True)
class Note:
    """A single decoded note record.

    Attributes:
        name: Contents of the name field, without the trailing NUL
        desc: Contents of the desc field
        type: Contents of the type field
    """

    name: str
    desc: bytes
    type: int


def _padding(size: int, alignment: int) -> int:
    """Bytes needed to pad size up to the next alignment boundary."""
    return ((size + alignment - 1) & ~(alignment - 1)) - size


def _check_alignment(alignment: int) -> None:
    if alignment < 1 or alignment & (alignment - 1):
        raise ValueError(f"Note alignment must be a positive power of two: {alignment}")


def _read_name(stream: BinaryIO, namesz: int) -> bytes:
    """Read a NUL-terminated name, returning it including the terminator."""
    name = bytearray()
    while True:
        b = stream.read(1)
        if not b:
            raise NoteParseError(f"missing note name (want {namesz} bytes)")
        name += b
        if b == b"\x00":
            return bytes(name)
        if len(name) > MAX_NOTE_SIZE:
            raise NoteParseError(
                f"note name not terminated within {MAX_NOTE_SIZE} bytes"
            )


def _skip(stream: BinaryIO, count: int) -> int:
    """Consume up to count bytes, returning how many were actually available."""
    skipped = 0
    while skipped < count:
        chunk = stream.read(count - skipped)
        if not chunk:
            break
        skipped += len(chunk)
    return skipped


def _read_exact(stream: BinaryIO, count: int) -> bytes:
    """Read up to count bytes, stopping early only at end of stream."""
    parts = []
    remaining = count
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


def parse_notes(
    stream: BinaryIO, alignment: int, byte_order: str = LITTLE_ENDIAN
) -> list[Note]:
    """Parse every note record in a stream.

    The stream is read sequentially and never seeked.

    Args:
        stream: Binary stream positioned at the first note header
        alignment: Record alignment (power of two, typically 4)
        byte_order: Struct byte-order prefix for the size and type fields

    Returns:
        Decoded notes in stream order (empty for an empty stream)

    Raises:
        NoteParseError: If a size field exceeds MAX_NOTE_SIZE or the stream
            ends inside a header, name, name padding or desc
        ValueError: If alignment is not a positive power of two
    """
    _check_alignment(alignment)
    header_fmt = byte_order + "III"

    notes: list[Note] = []
    while True:
        header = _read_exact(stream, NOTE_HEADER_SIZE)
        if not header:
            break
        if len(header) < NOTE_HEADER_SIZE:
            raise NoteParseError(
                f"truncated note header ({len(header)} of {NOTE_HEADER_SIZE} bytes)"
            )
        namesz, descsz, note_type = struct.unpack(header_fmt, header)

        if namesz > MAX_NOTE_SIZE:
            raise NoteParseError(f"note name too long ({namesz} bytes)")

        name = ""
        if namesz > 0:
            raw_name = _read_name(stream, namesz)
            namesz = len(raw_name)
            name = raw_name[:-1].decode("ascii", errors="replace")

        # Padding before desc is mandatory.
        pad = _padding(NOTE_HEADER_SIZE + namesz, alignment)
        missing = pad - _skip(stream, pad)
        if missing:
            raise NoteParseError(
                f"missing {missing} bytes of padding after note name"
            )

        if descsz > MAX_NOTE_SIZE:
            raise NoteParseError(f"note desc too long ({descsz} bytes)")
        desc = _read_exact(stream, descsz)
        if len(desc) < descsz:
            raise NoteParseError(f"missing desc (want {descsz} bytes)")

        notes.append(Note(name=name, desc=desc, type=note_type))

        # The section may end before the next alignment boundary when it is
        # last in the file or followed by a less-aligned section.
        _skip(stream, _padding(descsz, alignment))

    return notes


def encode_notes(
    notes: Iterable[Note], alignment: int, byte_order: str = LITTLE_ENDIAN
) -> bytes:
    """Encode notes into a padded note stream.

    namesz includes the trailing NUL; names are ASCII.

    Args:
        notes: Notes to encode
        alignment: Record alignment (power of two)
        byte_order: Struct byte-order prefix

    Returns:
        Encoded stream, each record padded to alignment
    """
    _check_alignment(alignment)
    out = bytearray()
    for note in notes:
        name = note.name.encode("ascii") + b"\x00" if note.name else b""
        out += struct.pack(byte_order + "III", len(name), len(note.desc), note.type)
        out += name
        out += b"\x00" * _padding(NOTE_HEADER_SIZE + len(name), alignment)
        out += note.desc
        out += b"\x00" * _padding(len(note.desc), alignment)
    return bytes(out)
