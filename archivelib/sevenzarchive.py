from __future__ import annotations

import io
import lzma
import os
import stat
import tempfile
from contextlib import ExitStack
from typing import BinaryIO, Iterator, Optional

import py7zr
from py7zr.exceptions import ArchiveError as SevenZError, PasswordRequired

from .constants import KIND_FILE, KIND_DIRECTORY, KIND_SYMLINK, KIND_OTHER
from .errors import ArchiveError, CorruptArchiveError
from .ioutil import copy_to_file
from .reader import ArchiveEntry, ArchiveStream
from .writer import ArchiveWriter


class SevenZStream(ArchiveStream):
    """Entries of a 7z archive in archive order.

    7z is not a streaming format: on first access the archive is expanded
    into a private temporary directory and entries are served from there.
    """

    def __init__(self, fileobj: BinaryIO, resources: Optional[ExitStack] = None, password: Optional[str] = None):
        super().__init__(resources)
        self._fileobj = fileobj
        self._password = password
        self._root: Optional[str] = None
        self._infos: Optional[Iterator] = None
        self._path: Optional[str] = None
        self._handle: Optional[BinaryIO] = None

    def _source(self, workdir: str):
        src = self._fileobj
        if isinstance(src, io.IOBase) and src.seekable():
            return src
        spooled = os.path.join(workdir, "input.7z")
        copy_to_file(src, spooled)
        return spooled

    def _start(self) -> None:
        workdir = self.resources.enter_context(tempfile.TemporaryDirectory(prefix="archivelib-7z-"))
        self._root = os.path.join(workdir, "content")
        try:
            with py7zr.SevenZipFile(self._source(workdir), mode="r", password=self._password) as archive:
                infos = archive.list()
                archive.extractall(path=self._root)
        except PasswordRequired as exc:
            raise ArchiveError("Archive is encrypted; password required") from exc
        except (SevenZError, lzma.LZMAError, EOFError) as exc:
            raise CorruptArchiveError(f"Failed to read 7z archive: {exc}") from exc
        self._infos = iter(infos)

    def _release_handle(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def _next_entry(self) -> Optional[ArchiveEntry]:
        if self._infos is None:
            self._start()
            self.resources.callback(self._release_handle)
        self._release_handle()
        info = next(self._infos, None)
        if info is None:
            self._path = None
            return None
        self._path = os.path.join(self._root, info.filename)
        st = os.lstat(self._path)
        written = getattr(info, "creationtime", None)
        mtime = written.timestamp() if written is not None else st.st_mtime
        mode = stat.S_IMODE(st.st_mode) or None
        if stat.S_ISLNK(st.st_mode):
            return ArchiveEntry(name=info.filename, kind=KIND_SYMLINK, mtime=mtime, link_target=os.readlink(self._path))
        if stat.S_ISDIR(st.st_mode):
            return ArchiveEntry(name=info.filename, kind=KIND_DIRECTORY, mtime=mtime, mode=mode)
        if stat.S_ISREG(st.st_mode):
            return ArchiveEntry(name=info.filename, kind=KIND_FILE, size=st.st_size, mtime=mtime, mode=mode)
        return ArchiveEntry(name=info.filename, kind=KIND_OTHER, mtime=mtime)

    def _open_current(self) -> BinaryIO:
        self._release_handle()
        self._handle = open(self._path, "rb")
        return self._handle


class SevenZWriter(ArchiveWriter):
    def __init__(self, path: str, password: Optional[str] = None):
        super().__init__(path)
        self._archive = py7zr.SevenZipFile(path, mode="w", password=password)
        if password:
            self._archive.set_encrypted_header(True)

    def add_file(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        self._archive.write(fs_path, arcname=arc_name)

    def add_dir(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        self._archive.write(fs_path, arcname=arc_name)

    def add_symlink(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        self._archive.write(fs_path, arcname=arc_name)

    def close(self) -> None:
        self._archive.close()


def open_stream(fileobj: BinaryIO, resources: Optional[ExitStack] = None, password: Optional[str] = None) -> SevenZStream:
    return SevenZStream(fileobj, resources, password=password)


def open_writer(path: str, password: Optional[str] = None) -> SevenZWriter:
    return SevenZWriter(path, password=password)
