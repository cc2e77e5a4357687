"""
archivelib — one API for archives and compressed files.

Features:

- Archive formats: tar, zip, jar, ar, cpio and 7z (dump is recognised by name only).
- Compression types: gzip, bzip2, xz, lzma and zstd, alone or on top of an
  archive (``.tar.gz``, ``.tar.zst``, ...).
- Format detection from file names via FileType.
- Archivers create archives from files/directories, extract them (from a path
  or an open stream) and stream them entry by entry; Compressors handle single
  files.
- Extraction refuses entries that would land outside the destination and
  restores permissions, timestamps and symlinks where the format stores them.

Typical use::

    archiver = create_archiver("tar", "gz")
    archive = archiver.create("backup", "/tmp", "docs", "notes.md")
    archiver.extract(archive, "/tmp/restore")
"""

__version__ = "1.4.0"

from .archiver import Archiver, CompressedArchiver, FormatArchiver
from .compressor import Compressor
from .errors import (
    ArchiveError,
    CorruptArchiveError,
    EntryNotValidError,
    UnknownFormatError,
    UnsafeEntryPathError,
    UnsupportedFormatError,
)
from .factory import create_archiver, create_archiver_for, create_compressor, create_compressor_for
from .filetype import FileType
from .formats import ArchiveFormat, CompressionType
from .reader import ArchiveEntry, ArchiveStream

__all__ = [
    "ArchiveEntry",
    "ArchiveError",
    "ArchiveFormat",
    "ArchiveStream",
    "Archiver",
    "CompressedArchiver",
    "CompressionType",
    "Compressor",
    "CorruptArchiveError",
    "EntryNotValidError",
    "FileType",
    "FormatArchiver",
    "UnknownFormatError",
    "UnsafeEntryPathError",
    "UnsupportedFormatError",
    "create_archiver",
    "create_archiver_for",
    "create_compressor",
    "create_compressor_for",
]
