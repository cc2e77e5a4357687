from __future__ import annotations

import os
import struct
from contextlib import ExitStack
from typing import BinaryIO, Optional, Tuple

from .constants import (
    AR_MAGIC,
    AR_HEADER_SIZE,
    AR_FMAG,
    AR_BSD_LONGNAME_PREFIX,
    AR_GNU_STRING_TABLE,
    AR_GNU_SYMBOL_TABLE,
    AR_BSD_SYMBOL_TABLES,
    AR_NAME_FIELD,
    KIND_FILE,
)
from .errors import ArchiveError, CorruptArchiveError
from .ioutil import BoundedReader, copy, read_exact
from .reader import ArchiveEntry, ArchiveStream
from .writer import ArchiveWriter


# Member header (fixed 60 bytes, ASCII, space padded)
#  - name[16]
#  - mtime[12]  decimal
#  - uid[6]     decimal
#  - gid[6]     decimal
#  - mode[8]    octal
#  - size[10]   decimal
#  - fmag[2]    "`\n"
_AR_HDR_STRUCT = struct.Struct("16s12s6s6s8s10s2s")


def _field(raw: bytes, base: int) -> int:
    s = raw.decode("ascii", "replace").strip()
    if not s:
        return 0
    try:
        return int(s, base)
    except ValueError:
        raise CorruptArchiveError(f"Bad ar header field {s!r}") from None


def _fmt(value: int, width: int, base: int = 10, label: str = "", overflow_zero: bool = False) -> bytes:
    s = format(value, "o") if base == 8 else str(value)
    if len(s) > width:
        if not overflow_zero:
            raise ArchiveError(f"ar {label} {value} does not fit the {width} byte header field")
        # ids that do not fit are stored as 0
        s = "0"
    return s.ljust(width).encode("ascii")


def parse_header(raw: bytes) -> Tuple[str, int, int, int, int, int]:
    """
    Returns: (name, mtime, uid, gid, mode, size) with the raw name field
    (trailing spaces removed, long name references unresolved).
    """
    name_b, mtime_b, uid_b, gid_b, mode_b, size_b, fmag = _AR_HDR_STRUCT.unpack(raw)
    if fmag != AR_FMAG:
        raise CorruptArchiveError("Bad ar member header")
    name = name_b.decode("utf-8", "surrogateescape").rstrip(" ")
    return name, _field(mtime_b, 10), _field(uid_b, 10), _field(gid_b, 10), _field(mode_b, 8), _field(size_b, 10)


def pack_header(name: str, mtime: int, uid: int, gid: int, mode: int, size: int) -> bytes:
    name_b = name.encode("utf-8")
    if len(name_b) > AR_NAME_FIELD:
        raise ValueError("ar member name too long for header")
    return _AR_HDR_STRUCT.pack(
        name_b.ljust(AR_NAME_FIELD),
        _fmt(mtime, 12, label="mtime"),
        _fmt(uid, 6, overflow_zero=True),
        _fmt(gid, 6, overflow_zero=True),
        _fmt(mode, 8, base=8, label="mode"),
        _fmt(size, 10, label="member size"),
        AR_FMAG,
    )


class ArStream(ArchiveStream):
    """Sequential ar reader (BSD and GNU variants)."""

    def __init__(self, fileobj: BinaryIO, resources: Optional[ExitStack] = None):
        super().__init__(resources)
        self._f = fileobj
        self._started = False
        self._data: Optional[BoundedReader] = None
        self._pad = 0
        self._gnu_names = b""

    def _finish_current(self) -> None:
        if self._data is not None:
            self._data.drain()
            self._data = None
        if self._pad:
            # the final pad byte may be missing in some writers
            self._f.read(self._pad)
            self._pad = 0

    def _gnu_name(self, ref: str) -> str:
        offset = int(ref[1:])
        if offset >= len(self._gnu_names):
            raise CorruptArchiveError(f"Bad GNU long name reference {ref}")
        end = self._gnu_names.find(b"\n", offset)
        raw = self._gnu_names[offset:] if end < 0 else self._gnu_names[offset:end]
        return raw.decode("utf-8", "surrogateescape").rstrip("/")

    def _next_entry(self) -> Optional[ArchiveEntry]:
        if not self._started:
            if self._f.read(len(AR_MAGIC)) != AR_MAGIC:
                raise CorruptArchiveError("Not an ar archive (bad magic)")
            self._started = True
        while True:
            self._finish_current()
            raw = self._f.read(AR_HEADER_SIZE)
            if not raw:
                return None
            if len(raw) != AR_HEADER_SIZE:
                raise CorruptArchiveError("Truncated ar member header")
            name, mtime, _uid, _gid, mode, size = parse_header(raw)
            self._pad = size % 2
            if name == AR_GNU_STRING_TABLE:
                self._gnu_names = read_exact(self._f, size)
                continue
            if name == AR_GNU_SYMBOL_TABLE:
                self._data = BoundedReader(self._f, size)
                continue
            if name.startswith(AR_BSD_LONGNAME_PREFIX):
                try:
                    name_len = int(name[len(AR_BSD_LONGNAME_PREFIX):])
                except ValueError:
                    raise CorruptArchiveError(f"Bad BSD long name {name!r}") from None
                if name_len > size:
                    raise CorruptArchiveError(f"BSD long name longer than member {name!r}")
                name = read_exact(self._f, name_len).decode("utf-8", "surrogateescape").rstrip("\x00")
                size -= name_len
            elif name.startswith("/") and name[1:].isdigit():
                name = self._gnu_name(name)
            elif name.endswith("/"):
                name = name[:-1]
            self._data = BoundedReader(self._f, size)
            if name in AR_BSD_SYMBOL_TABLES:
                continue
            return ArchiveEntry(name=name, kind=KIND_FILE, size=size, mtime=float(mtime), mode=mode or None)

    def _open_current(self) -> BinaryIO:
        return self._data


class ArWriter(ArchiveWriter):
    """Writes BSD-style ar archives.

    ar has no notion of directories: only regular files are stored, under
    their full relative name. Names that do not fit the 16 byte header
    field, or contain spaces or slashes, use the ``#1/<len>`` convention.
    """

    def __init__(self, path: str):
        super().__init__(path)
        self._f: Optional[BinaryIO] = open(path, "wb")
        self._f.write(AR_MAGIC)

    def add_file(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        name_b = arc_name.encode("utf-8")
        if len(name_b) > AR_NAME_FIELD or b" " in name_b or b"/" in name_b:
            header_name = f"{AR_BSD_LONGNAME_PREFIX}{len(name_b)}"
            prefix = name_b
        else:
            header_name = arc_name
            prefix = b""
        total = st.st_size + len(prefix)
        self._f.write(pack_header(header_name, int(st.st_mtime), st.st_uid, st.st_gid, st.st_mode, total))
        self._f.write(prefix)
        with open(fs_path, "rb") as src:
            written = copy(src, self._f)
        if written != st.st_size:
            raise ArchiveError(f"{fs_path} changed size while archiving")
        if total % 2:
            self._f.write(b"\n")

    def add_dir(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        pass

    def add_symlink(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        # links are dereferenced; dangling links and links to directories are dropped
        if os.path.isfile(fs_path):
            self.add_file(fs_path, arc_name, os.stat(fs_path))

    def close(self) -> None:
        if self._f is not None:
            self._f.close()
            self._f = None


def open_stream(fileobj: BinaryIO, resources: Optional[ExitStack] = None, password: Optional[str] = None) -> ArStream:
    return ArStream(fileobj, resources)


def open_writer(path: str, password: Optional[str] = None) -> ArWriter:
    return ArWriter(path)
