from __future__ import annotations

import io
import os
import tarfile
from contextlib import ExitStack
from typing import BinaryIO, Optional

from .constants import KIND_FILE, KIND_DIRECTORY, KIND_SYMLINK, KIND_HARDLINK, KIND_OTHER
from .reader import ArchiveEntry, ArchiveStream
from .writer import ArchiveWriter


class TarStream(ArchiveStream):
    """Reads tar members in stream mode; works on non-seekable input."""

    read_errors = (EOFError, tarfile.TarError)

    def __init__(self, fileobj: BinaryIO, resources: Optional[ExitStack] = None):
        super().__init__(resources)
        self._fileobj = fileobj
        self._tar: Optional[tarfile.TarFile] = None
        self._member: Optional[tarfile.TarInfo] = None

    def _next_entry(self) -> Optional[ArchiveEntry]:
        if self._tar is None:
            self._tar = tarfile.open(fileobj=self._fileobj, mode="r|")
            self.resources.callback(self._tar.close)
        m = self._tar.next()
        self._member = m
        if m is None:
            return None
        if m.isreg():
            kind = KIND_FILE
        elif m.isdir():
            kind = KIND_DIRECTORY
        elif m.issym():
            kind = KIND_SYMLINK
        elif m.islnk():
            kind = KIND_HARDLINK
        else:
            kind = KIND_OTHER
        return ArchiveEntry(
            name=m.name,
            kind=kind,
            size=m.size if kind == KIND_FILE else 0,
            mtime=float(m.mtime),
            mode=m.mode,
            link_target=m.linkname or None,
        )

    def _open_current(self) -> BinaryIO:
        f = self._tar.extractfile(self._member) if self._tar and self._member else None
        return f if f is not None else io.BytesIO(b"")


class TarWriter(ArchiveWriter):
    def __init__(self, path: str):
        super().__init__(path)
        # GNU format: long names and large sizes without pax headers
        self._tar = tarfile.open(path, "w", format=tarfile.GNU_FORMAT)

    def _add(self, fs_path: str, arc_name: str) -> None:
        self._tar.add(fs_path, arcname=arc_name, recursive=False)

    def add_file(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        self._add(fs_path, arc_name)

    def add_dir(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        self._add(fs_path, arc_name)

    def add_symlink(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        self._add(fs_path, arc_name)

    def close(self) -> None:
        self._tar.close()


def open_stream(fileobj: BinaryIO, resources: Optional[ExitStack] = None, password: Optional[str] = None) -> TarStream:
    return TarStream(fileobj, resources)


def open_writer(path: str, password: Optional[str] = None) -> TarWriter:
    return TarWriter(path)
