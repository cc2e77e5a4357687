from __future__ import annotations

import os
import stat
from contextlib import ExitStack
from typing import BinaryIO, List, Optional

from .constants import (
    CPIO_MAGIC_NEWC,
    CPIO_MAGIC_CRC,
    CPIO_MAGIC_ODC,
    CPIO_TRAILER,
    KIND_FILE,
    KIND_DIRECTORY,
    KIND_SYMLINK,
    KIND_OTHER,
)
from .errors import ArchiveError, CorruptArchiveError
from .ioutil import BoundedReader, copy, read_exact, skip
from .reader import ArchiveEntry, ArchiveStream
from .writer import ArchiveWriter

_NEWC_FIELDS = 13  # 8 hex digits each, after the 6 byte magic
_NEWC_HEADER_SIZE = 6 + _NEWC_FIELDS * 8
_NEWC_MAX = 0xFFFFFFFF
# odc: dev ino mode uid gid nlink rdev (6 octal digits), mtime (11), namesize (6), filesize (11)
_ODC_WIDTHS = (6, 6, 6, 6, 6, 6, 6, 11, 6, 11)
_BLOCK_SIZE = 512


def _pad4(n: int) -> int:
    return (4 - n % 4) % 4


def _parse_numbers(raw: bytes, widths, base: int) -> List[int]:
    out = []
    pos = 0
    for w in widths:
        field = raw[pos:pos + w]
        pos += w
        try:
            out.append(int(field, base))
        except ValueError:
            raise CorruptArchiveError(f"Bad cpio header field {field!r}") from None
    return out


def pack_newc_header(ino: int, mode: int, uid: int, gid: int, nlink: int, mtime: int, filesize: int, namesize: int) -> bytes:
    for label, value in (("inode", ino), ("mtime", mtime), ("file size", filesize), ("name size", namesize)):
        if value > _NEWC_MAX:
            raise ArchiveError(f"cpio {label} {value} does not fit the newc header")
    # ids that do not fit are stored as 0; times before the epoch as 0
    uid = uid if uid <= _NEWC_MAX else 0
    gid = gid if gid <= _NEWC_MAX else 0
    mtime = max(mtime, 0)
    fields = (ino, mode, uid, gid, nlink, mtime, filesize, 0, 0, 0, 0, namesize, 0)
    return CPIO_MAGIC_NEWC + b"".join(b"%08X" % v for v in fields)


class CpioStream(ArchiveStream):
    """Sequential cpio reader for the newc, crc and odc ASCII formats."""

    def __init__(self, fileobj: BinaryIO, resources: Optional[ExitStack] = None):
        super().__init__(resources)
        self._f = fileobj
        self._data: Optional[BoundedReader] = None
        self._pad = 0
        self._done = False

    def _finish_current(self) -> None:
        if self._data is not None:
            self._data.drain()
            self._data = None
        if self._pad:
            skip(self._f, self._pad)
            self._pad = 0

    def _next_entry(self) -> Optional[ArchiveEntry]:
        if self._done:
            return None
        self._finish_current()
        magic = self._f.read(6)
        if not magic:
            # archives without a trailer end here
            self._done = True
            return None
        if magic in (CPIO_MAGIC_NEWC, CPIO_MAGIC_CRC):
            fields = _parse_numbers(read_exact(self._f, _NEWC_FIELDS * 8), (8,) * _NEWC_FIELDS, 16)
            _ino, mode, _uid, _gid, _nlink, mtime, filesize = fields[:7]
            namesize = fields[11]
            name_b = read_exact(self._f, namesize)
            skip(self._f, _pad4(_NEWC_HEADER_SIZE + namesize))
            data_pad = _pad4(filesize)
        elif magic == CPIO_MAGIC_ODC:
            fields = _parse_numbers(read_exact(self._f, sum(_ODC_WIDTHS)), _ODC_WIDTHS, 8)
            mode = fields[2]
            mtime, namesize, filesize = fields[7], fields[8], fields[9]
            name_b = read_exact(self._f, namesize)
            data_pad = 0
        else:
            raise CorruptArchiveError("Not a cpio archive (bad magic)")

        name = name_b.rstrip(b"\x00").decode("utf-8", "surrogateescape")
        if name == CPIO_TRAILER:
            self._done = True
            return None

        fmt = stat.S_IFMT(mode)
        perm = stat.S_IMODE(mode) or None
        if fmt == stat.S_IFLNK:
            target = read_exact(self._f, filesize).decode("utf-8", "surrogateescape")
            self._pad = data_pad
            return ArchiveEntry(name=name, kind=KIND_SYMLINK, mtime=float(mtime), mode=perm, link_target=target)
        self._data = BoundedReader(self._f, filesize)
        self._pad = data_pad
        if fmt == stat.S_IFDIR:
            kind = KIND_DIRECTORY
        elif fmt == stat.S_IFREG:
            kind = KIND_FILE
        else:
            kind = KIND_OTHER
        return ArchiveEntry(name=name, kind=kind, size=filesize if kind == KIND_FILE else 0, mtime=float(mtime), mode=perm)

    def _open_current(self) -> BinaryIO:
        return self._data


class CpioWriter(ArchiveWriter):
    """Writes SVR4 "newc" cpio archives."""

    def __init__(self, path: str):
        super().__init__(path)
        self._f: Optional[BinaryIO] = open(path, "wb")
        self._next_ino = 1
        self._written = 0

    def _write(self, data: bytes) -> None:
        self._f.write(data)
        self._written += len(data)

    def _write_header(self, name: str, mode: int, nlink: int, mtime: int, filesize: int, uid: int = 0, gid: int = 0) -> None:
        name_b = name.encode("utf-8") + b"\x00"
        ino = self._next_ino if name != CPIO_TRAILER else 0
        self._next_ino += 1
        self._write(pack_newc_header(ino, mode, uid, gid, nlink, mtime, filesize, len(name_b)))
        self._write(name_b)
        self._write(b"\x00" * _pad4(_NEWC_HEADER_SIZE + len(name_b)))

    def add_file(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        self._write_header(arc_name, st.st_mode, 1, int(st.st_mtime), st.st_size, st.st_uid, st.st_gid)
        with open(fs_path, "rb") as src:
            written = copy(src, self._f)
        if written != st.st_size:
            raise ArchiveError(f"{fs_path} changed size while archiving")
        self._written += written
        self._write(b"\x00" * _pad4(written))

    def add_dir(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        self._write_header(arc_name, st.st_mode, 2, int(st.st_mtime), 0, st.st_uid, st.st_gid)

    def add_symlink(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        target = os.readlink(fs_path).encode("utf-8")
        self._write_header(arc_name, st.st_mode, 1, int(st.st_mtime), len(target), st.st_uid, st.st_gid)
        self._write(target)
        self._write(b"\x00" * _pad4(len(target)))

    def close(self) -> None:
        if self._f is None:
            return
        self._write_header(CPIO_TRAILER, 0, 1, 0, 0)
        self._write(b"\x00" * ((_BLOCK_SIZE - self._written % _BLOCK_SIZE) % _BLOCK_SIZE))
        self._f.close()
        self._f = None


def open_stream(fileobj: BinaryIO, resources: Optional[ExitStack] = None, password: Optional[str] = None) -> CpioStream:
    return CpioStream(fileobj, resources)


def open_writer(path: str, password: Optional[str] = None) -> CpioWriter:
    return CpioWriter(path)
