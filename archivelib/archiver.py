from __future__ import annotations

import os
import tempfile
from contextlib import ExitStack
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, Optional, Sequence

from . import ararchive, cpioarchive, sevenzarchive, tararchive, ziparchive
from .compressor import Compressor
from .errors import CorruptArchiveError, UnsupportedFormatError
from .filemode import apply_metadata
from .formats import ArchiveFormat
from .ioutil import PathLike, replace_on_success, require_directory, spool
from .reader import ArchiveEntry, ArchiveStream, DeferredDirs
from .writer import check_sources, iter_sources


# format -> (open_stream, open_writer)
_HANDLERS = {
    ArchiveFormat.AR: (ararchive.open_stream, ararchive.open_writer),
    ArchiveFormat.CPIO: (cpioarchive.open_stream, cpioarchive.open_writer),
    ArchiveFormat.JAR: (ziparchive.open_stream, ziparchive.open_jar_writer),
    ArchiveFormat.SEVEN_Z: (sevenzarchive.open_stream, sevenzarchive.open_writer),
    ArchiveFormat.TAR: (tararchive.open_stream, tararchive.open_writer),
    ArchiveFormat.ZIP: (ziparchive.open_stream, ziparchive.open_writer),
}

RANDOM_ACCESS_FORMATS = (ArchiveFormat.JAR, ArchiveFormat.SEVEN_Z, ArchiveFormat.ZIP)

# called with (archive name, lstat result) before each node is added
CreateProgress = Callable[[str, os.stat_result], None]


def archive_filename(archive: str, extension: str) -> str:
    """Append ``extension`` unless ``archive`` already ends with it."""
    return archive if archive.endswith(extension) else archive + extension


def assert_extract_source(archive: PathLike) -> None:
    if os.path.isdir(archive):
        raise ValueError(f"Can not extract {archive}. Source is a directory.")
    if not os.path.exists(archive):
        raise FileNotFoundError(os.fspath(archive))
    if not os.access(archive, os.R_OK):
        raise ValueError(f"Can not extract {archive}. Can not read from source.")


def extract_all(
    stream: ArchiveStream,
    destination: PathLike,
    progress: Optional[Callable[[ArchiveEntry], None]] = None,
) -> int:
    """Extract every entry of ``stream`` below ``destination``.

    Directory permissions and timestamps are applied once all entries are
    written, deepest first, so read-only directories can still be filled.

    Returns:
        The number of entries processed.
    """
    deferred: DeferredDirs = []
    count = 0
    for entry in stream:
        if progress is not None:
            progress(entry)
        stream.extract_entry(entry, destination, deferred)
        count += 1
    for path, mode, mtime in reversed(deferred):
        apply_metadata(path, mode, mtime)
    return count


class Archiver:
    """Creates, extracts and streams archives of one kind."""

    def create(
        self,
        archive: str,
        destination: PathLike,
        *sources: PathLike,
        progress: Optional[CreateProgress] = None,
    ) -> Path:
        """Create ``archive`` in ``destination`` from the given files and directories.

        The archiver's file name extension is appended to ``archive`` unless
        already present. Directories are stored recursively with their own
        name as the root of their subtree. ``progress`` is called with the
        archive name and lstat result of every node before it is added. An
        existing archive of the same name is only replaced once the new one
        is complete.

        Returns:
            Path of the newly created archive.
        """
        raise NotImplementedError

    def extract(self, archive: PathLike, destination: PathLike) -> None:
        """Extract all entries of the archive file into ``destination``."""
        assert_extract_source(archive)
        require_directory(destination)
        with self.stream(archive) as s:
            extract_all(s, destination)

    def extract_from(self, fileobj: BinaryIO, destination: PathLike) -> None:
        """Extract an archive read from an open binary stream into ``destination``."""
        require_directory(destination)
        with self.stream_from(fileobj) as s:
            extract_all(s, destination)

    def stream(self, archive: PathLike) -> ArchiveStream:
        """Open the archive file for sequential reading; the stream owns the file."""
        assert_extract_source(archive)
        resources = ExitStack()
        try:
            fh = resources.enter_context(open(archive, "rb"))
            return self._open_stream(fh, resources)
        except BaseException:
            resources.close()
            raise

    def stream_from(self, fileobj: BinaryIO) -> ArchiveStream:
        """Read an archive from an open binary stream; the caller keeps ownership of it."""
        return self._open_stream(fileobj, ExitStack())

    def _open_stream(self, fileobj: BinaryIO, resources: ExitStack) -> ArchiveStream:
        raise NotImplementedError

    def get_filename_extension(self) -> str:
        raise NotImplementedError


class FormatArchiver(Archiver):
    def __init__(self, archive_format: ArchiveFormat, password: Optional[str] = None):
        if archive_format not in _HANDLERS:
            raise UnsupportedFormatError(f"Archive format {archive_format} is not supported")
        self.archive_format = archive_format
        self.password = password
        self._open_stream_fn, self._open_writer_fn = _HANDLERS[archive_format]

    def get_filename_extension(self) -> str:
        return self.archive_format.default_file_extension

    def create(
        self,
        archive: str,
        destination: PathLike,
        *sources: PathLike,
        progress: Optional[CreateProgress] = None,
    ) -> Path:
        require_directory(destination)
        check_sources(sources)
        out = os.path.join(os.fspath(destination), archive_filename(archive, self.get_filename_extension()))
        with replace_on_success(out) as temp:
            self.write(temp, sources, exclude=(out,), progress=progress)
        return Path(out)

    def write(
        self,
        path: str,
        sources: Sequence[PathLike],
        exclude: Iterable[PathLike] = (),
        progress: Optional[CreateProgress] = None,
    ) -> None:
        """Write an archive of ``sources`` to ``path``, skipping ``path`` and ``exclude``."""
        with self._open_writer_fn(path, password=self.password) as w:
            for fs_path, arc_name, st in iter_sources(sources, exclude=(path, *exclude)):
                if progress is not None:
                    progress(arc_name, st)
                w.add(fs_path, arc_name, st)

    def _open_stream(self, fileobj: BinaryIO, resources: ExitStack) -> ArchiveStream:
        return self._open_stream_fn(fileobj, resources, password=self.password)

    def __repr__(self) -> str:
        return f"FormatArchiver({self.archive_format})"


class CompressedArchiver(Archiver):
    """An archiver whose archives are additionally compressed, e.g. ``.tar.gz``."""

    def __init__(self, archiver: FormatArchiver, compressor: Compressor):
        self.archiver = archiver
        self.compressor = compressor

    def get_filename_extension(self) -> str:
        return self.archiver.get_filename_extension() + self.compressor.get_filename_extension()

    def create(
        self,
        archive: str,
        destination: PathLike,
        *sources: PathLike,
        progress: Optional[CreateProgress] = None,
    ) -> Path:
        require_directory(destination)
        check_sources(sources)
        target = Path(destination) / archive_filename(archive, self.get_filename_extension())
        fd, temp = tempfile.mkstemp(prefix=".archivelib-", dir=os.fspath(destination))
        os.close(fd)
        try:
            self.archiver.write(temp, sources, exclude=(target,), progress=progress)
            return self.compressor.compress(temp, target)
        finally:
            if os.path.exists(temp):
                os.remove(temp)

    def _open_stream(self, fileobj: BinaryIO, resources: ExitStack) -> ArchiveStream:
        decompressed = resources.enter_context(self.compressor.decompressing_stream(fileobj))
        if self.archiver.archive_format in RANDOM_ACCESS_FORMATS:
            # decompressors cannot seek from the end
            try:
                decompressed = resources.enter_context(spool(decompressed, force=True))
            except self.compressor.read_errors as exc:
                raise CorruptArchiveError(f"Failed to decompress archive: {exc}") from exc
        stream = self.archiver._open_stream(decompressed, resources)
        stream.read_errors = tuple(stream.read_errors) + self.compressor.read_errors
        return stream

    def __repr__(self) -> str:
        return f"CompressedArchiver({self.archiver.archive_format}, {self.compressor.compression_type})"
