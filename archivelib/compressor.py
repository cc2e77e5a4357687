from __future__ import annotations

import bz2
import gzip
import lzma
import os
import zlib
from pathlib import Path
from typing import BinaryIO, Optional, Tuple

import zstandard

from .constants import DEFAULT_BUFFER_SIZE, GZIP_LEVEL, BZIP2_LEVEL, XZ_PRESET, ZSTD_LEVEL
from .errors import CorruptArchiveError
from .filetype import FileType
from .formats import CompressionType
from .ioutil import PathLike, copy, replace_on_success, require_directory


def _assert_source(source: PathLike) -> None:
    if os.path.isdir(source):
        raise ValueError(f"Source {source} is a directory.")
    if not os.path.exists(source):
        raise FileNotFoundError(os.fspath(source))
    if not os.access(source, os.R_OK):
        raise ValueError(f"Can not read from source {source}")


class Compressor:
    """Compresses and decompresses single files with one compression type."""

    def __init__(self, compression_type: CompressionType, level: Optional[int] = None):
        self.compression_type = compression_type
        self.level = level

    def get_filename_extension(self) -> str:
        return self.compression_type.default_file_extension

    @property
    def read_errors(self) -> Tuple[type, ...]:
        """Exceptions the decompressing stream raises on malformed input."""
        ct = self.compression_type
        if ct is CompressionType.GZIP:
            return (OSError, EOFError, zlib.error)
        if ct is CompressionType.BZIP2:
            return (OSError, EOFError)
        if ct in (CompressionType.XZ, CompressionType.LZMA):
            return (lzma.LZMAError, EOFError)
        return (zstandard.ZstdError, EOFError)

    def compressing_stream(self, fileobj: BinaryIO) -> BinaryIO:
        """Wrap a writable binary file; closing the wrapper does not close ``fileobj``."""
        ct = self.compression_type
        if ct is CompressionType.GZIP:
            return gzip.GzipFile(fileobj=fileobj, mode="wb", compresslevel=self.level if self.level is not None else GZIP_LEVEL)
        if ct is CompressionType.BZIP2:
            return bz2.BZ2File(fileobj, mode="wb", compresslevel=self.level if self.level is not None else BZIP2_LEVEL)
        if ct is CompressionType.XZ:
            return lzma.LZMAFile(fileobj, mode="wb", format=lzma.FORMAT_XZ, preset=self.level if self.level is not None else XZ_PRESET)
        if ct is CompressionType.LZMA:
            return lzma.LZMAFile(fileobj, mode="wb", format=lzma.FORMAT_ALONE, preset=self.level if self.level is not None else XZ_PRESET)
        if ct is CompressionType.ZSTD:
            c = zstandard.ZstdCompressor(level=self.level if self.level is not None else ZSTD_LEVEL)
            return c.stream_writer(fileobj, closefd=False)
        # Unknown/unsupported type: fail fast
        raise ValueError(f"unsupported compression type: {ct}")

    def decompressing_stream(self, fileobj: BinaryIO) -> BinaryIO:
        """Wrap a readable binary file; closing the wrapper does not close ``fileobj``."""
        ct = self.compression_type
        if ct is CompressionType.GZIP:
            return gzip.GzipFile(fileobj=fileobj, mode="rb")
        if ct is CompressionType.BZIP2:
            return bz2.BZ2File(fileobj, mode="rb")
        if ct is CompressionType.XZ:
            return lzma.LZMAFile(fileobj, mode="rb", format=lzma.FORMAT_XZ)
        if ct is CompressionType.LZMA:
            return lzma.LZMAFile(fileobj, mode="rb", format=lzma.FORMAT_ALONE)
        if ct is CompressionType.ZSTD:
            d = zstandard.ZstdDecompressor()
            return d.stream_reader(fileobj, read_across_frames=True, closefd=False)
        raise ValueError(f"unsupported compression type: {ct}")

    def compressed_filename(self, source: PathLike) -> str:
        return Path(source).name + self.get_filename_extension()

    def decompressed_filename(self, source: PathLike) -> str:
        """Name for the decompressed form of ``source``.

        The compression suffix is removed (".tgz" and friends become ".tar");
        names without a matching suffix get ".out" appended.
        """
        name = Path(source).name
        ft = FileType.get(name)
        if ft.compression_type is not self.compression_type or len(name) <= len(ft.suffix):
            return name + ".out"
        stem = name[: -len(ft.suffix)]
        if ft.archive_format is not None:
            return stem + ft.archive_format.default_file_extension
        return stem

    def compress(self, source: PathLike, destination: PathLike) -> Path:
        """Compress ``source`` into ``destination`` (a file, or a directory to place it in)."""
        _assert_source(source)
        dest = Path(destination)
        if dest.is_dir():
            dest = dest / self.compressed_filename(source)
        else:
            dest.parent.mkdir(parents=True, exist_ok=True)
        with replace_on_success(dest) as temp:
            with open(source, "rb") as src, open(temp, "wb") as raw, self.compressing_stream(raw) as out:
                copy(src, out)
        return dest

    def decompress(self, source: PathLike, destination: PathLike) -> Path:
        """Decompress ``source`` into ``destination`` (a file, or a directory to place it in)."""
        _assert_source(source)
        dest = Path(destination)
        if dest.is_dir():
            require_directory(dest)
            dest = dest / self.decompressed_filename(source)
        with open(source, "rb") as raw:
            return self.decompress_from(raw, dest)

    def decompress_from(self, fileobj: BinaryIO, destination: PathLike) -> Path:
        """Decompress an open binary stream into the file ``destination``."""
        dest = Path(destination)
        dest.parent.mkdir(parents=True, exist_ok=True)
        with replace_on_success(dest) as temp:
            with self.decompressing_stream(fileobj) as src, open(temp, "wb") as out:
                while True:
                    try:
                        buf = src.read(DEFAULT_BUFFER_SIZE)
                    except self.read_errors as exc:
                        raise CorruptArchiveError(f"Failed to decompress ({self.compression_type}): {exc}") from exc
                    if not buf:
                        break
                    out.write(buf)
        return dest

    def __repr__(self) -> str:
        return f"Compressor({self.compression_type}, level={self.level})"
