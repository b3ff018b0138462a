# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Minimal streaming tar reader.

Supports the subset of the ustar format found in root filesystem
images: regular files, directories, symlinks and hardlinks, with the
optional ustar name prefix.  Anything else is reported as
``EntryType.OTHER`` and its payload is skipped.

The reader works on any readable binary stream, including
non-seekable ones such as a ``gzip.GzipFile`` over a network download.
Each entry's payload is padded to the next 512-byte block; the reader
always consumes that padding before reading the next header, whether
or not the caller read the payload.

Parsing is lenient: a malformed size field is read as zero rather than
aborting the archive.  Entries whose name contains a ``..`` segment are
never returned.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO


logger = logging.getLogger(__name__)

BLOCK_SIZE = 512

_COPY_CHUNK = 8192

# Header field offsets and widths (POSIX ustar).
_NAME = (0, 100)
_SIZE = (124, 12)
_TYPEFLAG = 156
_LINKNAME = (157, 100)
_MAGIC = (257, 6)
_PREFIX = (345, 155)


class EntryType(Enum):
    """Kind of a tar entry."""

    REGULAR = "regular"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    HARDLINK = "hardlink"
    OTHER = "other"


_TYPEFLAGS: dict[int, EntryType] = {
    ord("0"): EntryType.REGULAR,
    0: EntryType.REGULAR,
    ord("7"): EntryType.REGULAR,
    ord("1"): EntryType.HARDLINK,
    ord("2"): EntryType.SYMLINK,
    ord("5"): EntryType.DIRECTORY,
}


@dataclass(frozen=True)
class TarEntry:
    """A single archive member.

    Attributes:
        name: Slash-separated relative path with any leading ``./`` or
            ``/`` removed.  A trailing slash is preserved.
        type: Entry kind.
        size: Payload size in bytes.
        link_target: Target of a symlink or hardlink, else empty.
    """

    name: str
    type: EntryType
    size: int
    link_target: str = ""

    @property
    def is_dir(self) -> bool:
        return self.type is EntryType.DIRECTORY or self.name.endswith("/")

    @property
    def is_link(self) -> bool:
        return self.type in (EntryType.SYMLINK, EntryType.HARDLINK)


def normalize_name(name: str) -> str:
    """Strip leading ``./`` and ``/`` components from an entry name."""
    while True:
        if name.startswith("./"):
            name = name[2:]
        elif name.startswith("/"):
            name = name[1:]
        else:
            return name


def has_parent_segment(name: str) -> bool:
    """Return True if any slash-separated segment of *name* is ``..``."""
    return ".." in name.split("/")


def _field(header: bytes, offset: int, width: int) -> str:
    """Decode a NUL-terminated ASCII field."""
    raw = header[offset : offset + width]
    end = raw.find(b"\0")
    if end != -1:
        raw = raw[:end]
    return raw.decode("utf-8", errors="replace")


def parse_size(header: bytes) -> int:
    """Parse the octal size field, returning 0 when malformed.

    Digits are read up to the first NUL or space.
    """
    offset, width = _SIZE
    digits = bytearray()
    for byte in header[offset : offset + width]:
        if byte in (0, 0x20):
            if digits:
                break
            continue
        digits.append(byte)
    try:
        return int(digits.decode("ascii"), 8)
    except (UnicodeDecodeError, ValueError):
        return 0


def parse_header(header: bytes) -> TarEntry:
    """Build a TarEntry from one 512-byte header block."""
    name = _field(header, *_NAME)
    if _field(header, *_MAGIC).startswith("ustar"):
        prefix = _field(header, *_PREFIX)
        if prefix:
            name = f"{prefix}/{name}"
    entry_type = _TYPEFLAGS.get(header[_TYPEFLAG], EntryType.OTHER)
    return TarEntry(
        name=normalize_name(name),
        type=entry_type,
        size=parse_size(header),
        link_target=_field(header, *_LINKNAME),
    )


class TarStreamReader:
    """Sequential reader over an uncompressed tar byte stream.

    Usage::

        reader = TarStreamReader(stream)
        for entry in reader:
            if entry.type is EntryType.REGULAR:
                with open(dest, "wb") as out:
                    reader.copy_to(out)

    Not thread-safe.
    """

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._current: TarEntry | None = None
        self._remaining = 0
        self._padding = 0
        self._offset = 0
        self._eof = False

    @property
    def offset(self) -> int:
        """Number of bytes consumed from the underlying stream."""
        return self._offset

    @property
    def current(self) -> TarEntry | None:
        """Entry whose payload is currently readable."""
        return self._current

    @property
    def remaining(self) -> int:
        """Unread payload bytes of the current entry."""
        return self._remaining

    def __iter__(self) -> Iterator[TarEntry]:
        while True:
            entry = self.next_entry()
            if entry is None:
                return
            yield entry

    def next_entry(self) -> TarEntry | None:
        """Advance to the next entry.

        Skips any unread payload and padding of the previous entry.

        Returns:
            The next entry, or None at end of archive (an all-zero
            header block or end of stream).
        """
        while True:
            self._skip_rest()
            self._current = None
            if self._eof:
                return None

            header = self._read_exact(BLOCK_SIZE)
            if len(header) < BLOCK_SIZE:
                if header:
                    logger.warning(
                        "Truncated tar header at offset %d",
                        self._offset - len(header),
                    )
                self._eof = True
                return None
            if not any(header):
                self._eof = True
                return None

            entry = parse_header(header)
            self._current = entry
            self._remaining = entry.size
            self._padding = (BLOCK_SIZE - entry.size % BLOCK_SIZE) % BLOCK_SIZE

            if has_parent_segment(entry.name):
                logger.warning("Skipping unsafe tar entry: %s", entry.name)
                continue
            return entry

    def read(self, size: int = -1) -> bytes:
        """Read up to *size* payload bytes of the current entry.

        Returns an empty bytes object once the payload is exhausted.
        """
        if self._remaining <= 0:
            return b""
        if size < 0 or size > self._remaining:
            size = self._remaining
        data = self._stream.read(size)
        if not data:
            logger.warning(
                "Unexpected end of stream in payload of %s",
                self._current.name if self._current else "?",
            )
            self._remaining = 0
            self._padding = 0
            self._eof = True
            return b""
        self._offset += len(data)
        self._remaining -= len(data)
        return data

    def copy_to(self, out: BinaryIO) -> int:
        """Copy the rest of the current payload to *out*.

        Also consumes the entry's block padding.

        Returns:
            Number of payload bytes written.
        """
        written = 0
        while True:
            chunk = self.read(_COPY_CHUNK)
            if not chunk:
                break
            out.write(chunk)
            written += len(chunk)
        self._skip_rest()
        return written

    def _skip_rest(self) -> None:
        """Discard unread payload plus padding of the current entry."""
        pending = self._remaining + self._padding
        self._remaining = 0
        self._padding = 0
        while pending > 0 and not self._eof:
            data = self._stream.read(min(pending, _COPY_CHUNK))
            if not data:
                self._eof = True
                break
            self._offset += len(data)
            pending -= len(data)

    def _read_exact(self, size: int) -> bytes:
        """Read *size* bytes, looping over short reads until EOF."""
        buf = bytearray()
        while len(buf) < size:
            data = self._stream.read(size - len(buf))
            if not data:
                break
            buf += data
        self._offset += len(buf)
        return bytes(buf)
