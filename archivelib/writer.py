from __future__ import annotations

import os
import stat
from typing import Iterable, Iterator, Set, Tuple

from .ioutil import PathLike, files_contained_in, relative_path


class ArchiveWriter:
    """Receives filesystem nodes in order and stores them in an archive."""

    def __init__(self, path: str):
        self.path = path

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def add(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        if stat.S_ISLNK(st.st_mode):
            self.add_symlink(fs_path, arc_name, st)
        elif stat.S_ISDIR(st.st_mode):
            self.add_dir(fs_path, arc_name, st)
        elif stat.S_ISREG(st.st_mode):
            self.add_file(fs_path, arc_name, st)
        # sockets, fifos and devices are not archived

    def add_file(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        raise NotImplementedError

    def add_dir(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        raise NotImplementedError

    def add_symlink(self, fs_path: str, arc_name: str, st: os.stat_result) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


def check_sources(sources: Iterable[PathLike]) -> None:
    """Fail early on sources that do not exist or cannot be read."""
    for source in sources:
        src = os.fspath(source)
        if not os.path.lexists(src):
            raise FileNotFoundError(src)
        if not os.path.islink(src) and not os.access(src, os.R_OK):
            raise FileNotFoundError(f"{src} (Permission denied)")


def iter_sources(sources: Iterable[PathLike], exclude: Iterable[PathLike] = ()) -> Iterator[Tuple[str, str, os.stat_result]]:
    """Yield ``(fs_path, arc_name, lstat)`` for every source and its descendants.

    Archive names are relative to the parent of each top-level source, so a
    directory becomes the root of its own subtree. Children are visited in
    sorted order, each directory before its contents. Symlinked directories
    are not followed. Paths in ``exclude`` (the archive being written) are
    skipped.
    """
    skip = {os.path.abspath(p) for p in exclude}
    for source in sources:
        node = os.path.abspath(os.fspath(source))
        parent = os.path.dirname(node)
        yield from _walk(parent, node, skip)


def _walk(parent: str, node: str, skip: Set[str]) -> Iterator[Tuple[str, str, os.stat_result]]:
    if node in skip:
        return
    st = os.lstat(node)
    yield node, relative_path(parent, node), st
    if stat.S_ISDIR(st.st_mode):
        for child in files_contained_in(node):
            yield from _walk(parent, str(child), skip)
