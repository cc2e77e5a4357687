from __future__ import annotations

import io
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, List, Union

from .constants import DEFAULT_BUFFER_SIZE
from .errors import CorruptArchiveError, UnsafeEntryPathError

PathLike = Union[str, os.PathLike]


def copy(src: BinaryIO, dst: BinaryIO, buffer_size: int = DEFAULT_BUFFER_SIZE) -> int:
    """Copy everything readable from ``src`` into ``dst``.

    Returns:
        The number of bytes written.
    """
    count = 0
    while True:
        buf = src.read(buffer_size)
        if not buf:
            break
        dst.write(buf)
        count += len(buf)
    return count


def copy_to_file(src: BinaryIO, destination: PathLike) -> int:
    with open(destination, "wb") as out:
        return copy(src, out)


def relative_path(root: PathLike, node: PathLike) -> str:
    """Path of ``node`` relative to ``root`` after resolving both.

    With root ``/home/user/project`` and node ``/home/user/project/docs/a.txt``
    the result is ``docs/a.txt``. The last component of ``node`` is kept as
    is, so a symlink is named by itself rather than by its target.
    """
    root_p = Path(os.path.realpath(root))
    node_abs = os.path.abspath(node)
    node_p = Path(os.path.realpath(os.path.dirname(node_abs))) / os.path.basename(node_abs)
    return node_p.relative_to(root_p).as_posix()


def require_directory(destination: PathLike) -> None:
    """Ensure ``destination`` is a writable directory, creating it if missing.

    Raises:
        ValueError: If the destination is an existing file or is not writable.
    """
    if os.path.isfile(destination):
        raise ValueError(f"{destination} exists and is a file, directory or path expected.")
    if not os.path.exists(destination):
        os.makedirs(destination, exist_ok=True)
    if not os.access(destination, os.W_OK):
        raise ValueError(f"Can not write to destination {destination}")


@contextmanager
def replace_on_success(destination: PathLike) -> Iterator[str]:
    """Yield a temporary sibling of ``destination`` to write into.

    The temporary file replaces ``destination`` when the block completes and
    is removed when it fails, so an existing destination is left untouched.
    """
    dest = os.path.abspath(destination)
    fd, temp = tempfile.mkstemp(prefix=".archivelib-", dir=os.path.dirname(dest))
    os.close(fd)
    umask = os.umask(0)
    os.umask(umask)
    os.chmod(temp, 0o666 & ~umask)
    try:
        yield temp
        os.replace(temp, dest)
    finally:
        if os.path.exists(temp):
            os.remove(temp)


def files_contained_in(source: PathLike) -> List[Path]:
    """Direct children of a directory (sorted), or the file itself."""
    p = Path(source)
    if p.is_dir():
        return sorted(p.iterdir())
    return [p]


def norm_path(p: str) -> str:
    """Normalize archive paths to a canonical forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Strip leading/trailing slashes
    - Remove empty and '.' segments
    - Reject '..' segments
    """
    p = p.replace("\\", "/").strip("/")
    parts = [q for q in p.split("/") if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise UnsafeEntryPathError(f"Path may not contain '..': {p}")
    return "/".join(parts)


def read_exact(f: BinaryIO, n: int) -> bytes:
    b = f.read(n)
    if len(b) != n:
        raise CorruptArchiveError("Unexpected EOF")
    return b


def skip(f: BinaryIO, n: int) -> None:
    """Advance a possibly non-seekable stream by ``n`` bytes."""
    while n > 0:
        chunk = f.read(min(n, DEFAULT_BUFFER_SIZE))
        if not chunk:
            raise CorruptArchiveError("Unexpected EOF")
        n -= len(chunk)


def spool(fileobj: BinaryIO, force: bool = False) -> BinaryIO:
    """Return a seekable view of ``fileobj``.

    Seekable streams are returned as is unless ``force`` is set; anything
    else is copied into a temporary file which the caller owns.
    """
    if not force:
        try:
            if fileobj.seekable():
                return fileobj
        except (AttributeError, OSError, ValueError):
            pass
    tmp = tempfile.TemporaryFile()
    shutil.copyfileobj(fileobj, tmp, DEFAULT_BUFFER_SIZE)
    tmp.seek(0)
    return tmp


class BoundedReader(io.RawIOBase):
    """Read-only window over the next ``length`` bytes of ``raw``."""

    def __init__(self, raw: BinaryIO, length: int):
        super().__init__()
        self._raw = raw
        self._remaining = length

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self._remaining <= 0:
            return 0
        n = min(len(b), self._remaining)
        data = self._raw.read(n)
        if not data:
            raise CorruptArchiveError("Unexpected EOF inside entry data")
        b[: len(data)] = data
        self._remaining -= len(data)
        return len(data)

    @property
    def remaining(self) -> int:
        return self._remaining

    def drain(self) -> None:
        if self._remaining > 0:
            skip(self._raw, self._remaining)
            self._remaining = 0
