from __future__ import annotations

import os
import stat
import time
import zipfile
import zlib
from contextlib import ExitStack
from typing import BinaryIO, Iterator, Optional

from .constants import JAR_MAGIC_EXTRA, KIND_FILE, KIND_DIRECTORY, KIND_SYMLINK
from .errors import ArchiveError, UnsupportedFormatError
from .ioutil import copy, spool
from .reader import ArchiveEntry, ArchiveStream
from .writer import ArchiveWriter

_UNIX_SYSTEM = 3


def _zip_date_time(mtime: float):
    # zip timestamps cannot represent dates before 1980
    return time.localtime(max(mtime, 315532800))[:6]


class ZipStream(ArchiveStream):
    """Reads zip/jar members in central directory order.

    Zip needs random access, so non-seekable input is spooled first.
    """

    read_errors = (EOFError, zipfile.BadZipFile, zipfile.LargeZipFile, zlib.error)

    def __init__(self, fileobj: BinaryIO, resources: Optional[ExitStack] = None, password: Optional[str] = None):
        super().__init__(resources)
        self._fileobj = fileobj
        self._password = password.encode("utf-8") if password else None
        self._zip: Optional[zipfile.ZipFile] = None
        self._members: Optional[Iterator[zipfile.ZipInfo]] = None
        self._info: Optional[zipfile.ZipInfo] = None

    def _start(self) -> None:
        src = spool(self._fileobj)
        if src is not self._fileobj:
            self.resources.callback(src.close)
        self._zip = zipfile.ZipFile(src)
        self.resources.callback(self._zip.close)
        self._members = iter(self._zip.infolist())

    def _next_entry(self) -> Optional[ArchiveEntry]:
        if self._zip is None:
            self._start()
        info = next(self._members, None)
        self._info = info
        if info is None:
            return None
        unix_mode = (info.external_attr >> 16) if info.create_system == _UNIX_SYSTEM else 0
        mtime = time.mktime(info.date_time + (0, 0, -1))
        if info.is_dir():
            return ArchiveEntry(name=info.filename, kind=KIND_DIRECTORY, mtime=mtime, mode=stat.S_IMODE(unix_mode) or None)
        if stat.S_ISLNK(unix_mode):
            target = self._read_member(info).decode("utf-8")
            return ArchiveEntry(name=info.filename, kind=KIND_SYMLINK, mtime=mtime, link_target=target)
        return ArchiveEntry(
            name=info.filename,
            kind=KIND_FILE,
            size=info.file_size,
            mtime=mtime,
            mode=stat.S_IMODE(unix_mode) or None,
        )

    def _read_member(self, info: zipfile.ZipInfo) -> bytes:
        try:
            return self._zip.read(info, pwd=self._password)
        except RuntimeError as exc:
            # zipfile reports encrypted members without (or with a bad) password this way
            raise ArchiveError(str(exc)) from exc

    def _open_current(self) -> BinaryIO:
        try:
            return self._zip.open(self._info, pwd=self._password)
        except RuntimeError as exc:
            raise ArchiveError(str(exc)) from exc


class ZipWriter(ArchiveWriter):
    def __init__(self, path: str, jar: bool = False):
        super().__init__(path)
        self._zip = zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED, strict_timestamps=False)
        self._jar_marker_pending = jar

    def _mark(self, info: zipfile.ZipInfo) -> None:
        # The first entry of a jar carries the JAR magic extra field
        if self._jar_marker_pending:
            info.extra = JAR_MAGIC_EXTRA + info.extra
            self._jar_marker_pending = False

    def add_file(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        info = zipfile.ZipInfo.from_file(fs_path, arc_name, strict_timestamps=False)
        info.compress_type = zipfile.ZIP_DEFLATED
        self._mark(info)
        with open(fs_path, "rb") as src, self._zip.open(info, "w") as dst:
            copy(src, dst)

    def add_dir(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        info = zipfile.ZipInfo.from_file(fs_path, arc_name, strict_timestamps=False)
        self._mark(info)
        self._zip.writestr(info, b"")

    def add_symlink(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        info = zipfile.ZipInfo(arc_name, date_time=_zip_date_time(st.st_mtime))
        info.create_system = _UNIX_SYSTEM
        info.external_attr = (stat.S_IFLNK | 0o777) << 16
        self._mark(info)
        self._zip.writestr(info, os.readlink(fs_path).encode("utf-8"))

    def close(self) -> None:
        self._zip.close()


def open_stream(fileobj: BinaryIO, resources: Optional[ExitStack] = None, password: Optional[str] = None) -> ZipStream:
    return ZipStream(fileobj, resources, password=password)


def open_writer(path: str, password: Optional[str] = None) -> ZipWriter:
    if password:
        raise UnsupportedFormatError("Writing encrypted zip archives is not supported")
    return ZipWriter(path)


def open_jar_writer(path: str, password: Optional[str] = None) -> ZipWriter:
    if password:
        raise UnsupportedFormatError("Writing encrypted jar archives is not supported")
    return ZipWriter(path, jar=True)
