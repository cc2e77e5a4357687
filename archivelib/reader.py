from __future__ import annotations

import errno
import os
import shutil
import sys
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Tuple

from .constants import (
    DEFAULT_BUFFER_SIZE,
    KIND_FILE,
    KIND_DIRECTORY,
    KIND_SYMLINK,
    KIND_HARDLINK,
)
from .errors import ArchiveError, CorruptArchiveError, EntryNotValidError, UnsafeEntryPathError
from .filemode import apply_metadata
from .ioutil import norm_path


# (path, mode, mtime) of extracted directories whose metadata is applied last
DeferredDirs = List[Tuple[str, Optional[int], Optional[float]]]


@dataclass
class ArchiveEntry:
    name: str
    kind: int = KIND_FILE  # 0=file, 1=dir, 2=symlink, 3=hardlink, 4=other
    size: int = 0
    mtime: Optional[float] = None
    mode: Optional[int] = None
    link_target: Optional[str] = None
    stream: Optional["ArchiveStream"] = field(default=None, repr=False, compare=False)

    def get_name(self) -> str:
        return self.name

    def get_size(self) -> int:
        return self.size

    def get_last_modified_date(self) -> Optional[datetime]:
        if self.mtime is None:
            return None
        return datetime.fromtimestamp(self.mtime, tz=timezone.utc)

    def is_directory(self) -> bool:
        return self.kind == KIND_DIRECTORY

    def extract(self, destination) -> Optional[Path]:
        """Write this entry below ``destination`` and return the created path.

        Only the stream's current entry can be extracted; once the stream has
        moved on (or was closed) this raises EntryNotValidError.
        """
        if self.stream is None:
            raise EntryNotValidError(f"Entry {self.name} is not attached to an archive stream")
        return self.stream.extract_entry(self, destination)

    def open(self) -> BinaryIO:
        """Readable binary view of the entry data (current entry only)."""
        if self.stream is None:
            raise EntryNotValidError(f"Entry {self.name} is not attached to an archive stream")
        return self.stream.open_entry(self)


class ArchiveStream:
    """Sequential reader over the entries of one archive.

    Subclasses implement ``_next_entry`` and ``_open_current``; everything they
    open is registered on ``resources`` and released by ``close``.
    """

    # Exceptions raised while decoding that denote malformed input
    read_errors: Tuple[type, ...] = (EOFError,)

    def __init__(self, resources: Optional[ExitStack] = None):
        self.resources = resources if resources is not None else ExitStack()
        self._current: Optional[ArchiveEntry] = None
        self._closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __iter__(self) -> Iterator[ArchiveEntry]:
        while True:
            entry = self.get_next_entry()
            if entry is None:
                return
            yield entry

    def get_next_entry(self) -> Optional[ArchiveEntry]:
        """Advance to the next entry, skipping unread data of the current one.

        Returns:
            The next entry, or None at the end of the archive.
        """
        if self._closed:
            raise ArchiveError("Stream is closed")
        self._current = None
        try:
            entry = self._next_entry()
        except self.read_errors as exc:
            raise CorruptArchiveError(f"Failed to read archive: {exc}") from exc
        if entry is not None:
            entry.stream = self
        self._current = entry
        return entry

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._current = None
        self.resources.close()

    # format hooks
    def _next_entry(self) -> Optional[ArchiveEntry]:
        raise NotImplementedError

    def _open_current(self) -> BinaryIO:
        raise NotImplementedError

    def _require_current(self, entry: ArchiveEntry) -> None:
        if self._closed or entry is not self._current:
            raise EntryNotValidError(f"Entry {entry.name} is no longer valid")

    def open_entry(self, entry: ArchiveEntry) -> BinaryIO:
        self._require_current(entry)
        if entry.kind != KIND_FILE:
            raise ArchiveError(f"Entry {entry.name} has no data")
        return self._open_current()

    def extract_entry(self, entry: ArchiveEntry, destination, deferred: Optional[DeferredDirs] = None) -> Optional[Path]:
        """Write the current entry below ``destination``.

        Args:
            entry: The stream's current entry.
            destination: Directory to extract into.
            deferred: When given, directory metadata is collected here instead
                of being applied immediately.

        Returns:
            The created path, or None for entries that were skipped.
        """
        self._require_current(entry)
        dest_root = os.path.abspath(destination)
        target = _target_path(dest_root, entry.name)

        if entry.kind == KIND_DIRECTORY:
            os.makedirs(target, exist_ok=True)
            if deferred is not None:
                deferred.append((target, entry.mode, entry.mtime))
            else:
                apply_metadata(target, entry.mode, entry.mtime)
            return Path(target)

        if entry.kind == KIND_SYMLINK:
            if not entry.link_target:
                raise CorruptArchiveError(f"Symlink {entry.name} has no target")
            os.makedirs(os.path.dirname(target), exist_ok=True)
            _remove_existing(target)
            try:
                os.symlink(entry.link_target, target)
            except (NotImplementedError, AttributeError):
                print(f"Warning: symlinks not supported; skipping {entry.name}", file=sys.stderr)
                return None
            except OSError as exc:
                if exc.errno in (errno.EPERM, errno.EOPNOTSUPP) or getattr(exc, "winerror", None) == 1314:
                    print(f"Warning: symlinks not supported; skipping {entry.name}", file=sys.stderr)
                    return None
                raise
            return Path(target)

        if entry.kind == KIND_HARDLINK:
            if not entry.link_target:
                raise CorruptArchiveError(f"Hard link {entry.name} has no target")
            source = _target_path(dest_root, entry.link_target)
            if os.path.islink(source):
                # a link through an extracted symlink could reach outside the destination
                print(f"Warning: link target {entry.link_target} is a symlink; skipping {entry.name}", file=sys.stderr)
                return None
            if not os.path.isfile(source):
                print(f"Warning: link target {entry.link_target} not extracted; skipping {entry.name}", file=sys.stderr)
                return None
            os.makedirs(os.path.dirname(target), exist_ok=True)
            _remove_existing(target)
            try:
                os.link(source, target)
            except OSError:
                shutil.copy2(source, target)
            return Path(target)

        if entry.kind != KIND_FILE:
            return None

        os.makedirs(os.path.dirname(target), exist_ok=True)
        _remove_existing(target)
        src = self._open_current()
        with open(target, "wb") as out:
            while True:
                try:
                    buf = src.read(DEFAULT_BUFFER_SIZE)
                except self.read_errors as exc:
                    raise CorruptArchiveError(f"Failed to read {entry.name}: {exc}") from exc
                if not buf:
                    break
                out.write(buf)
        apply_metadata(target, entry.mode, entry.mtime)
        return Path(target)


def _target_path(dest_root: str, name: str) -> str:
    """Resolve an entry name below ``dest_root``, refusing anything that escapes it."""
    try:
        rel = norm_path(name)
    except UnsafeEntryPathError:
        raise UnsafeEntryPathError(f"Expanding {name} would create file outside of {dest_root}") from None
    target = os.path.join(dest_root, rel) if rel else dest_root
    real_root = os.path.realpath(dest_root)
    real_parent = os.path.realpath(os.path.dirname(target)) if rel else real_root
    if real_parent != real_root and not real_parent.startswith(real_root + os.sep):
        raise UnsafeEntryPathError(f"Expanding {name} would create file outside of {dest_root}")
    return target


def _remove_existing(path: str) -> None:
    # Replace links and files, never write through an existing symlink.
    if os.path.islink(path) or os.path.isfile(path):
        os.remove(path)
