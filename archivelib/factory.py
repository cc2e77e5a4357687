from __future__ import annotations

import os
from typing import Optional, Union

from .archiver import Archiver, CompressedArchiver, FormatArchiver
from .compressor import Compressor
from .errors import UnknownFormatError, UnsupportedFormatError
from .filetype import FileType
from .formats import ArchiveFormat, CompressionType
from .ioutil import PathLike

# Formats that can carry a password (zip/jar: read only)
PASSWORD_FORMATS = (ArchiveFormat.ZIP, ArchiveFormat.JAR, ArchiveFormat.SEVEN_Z)


def _archive_format(value: Union[ArchiveFormat, str]) -> ArchiveFormat:
    if isinstance(value, ArchiveFormat):
        return value
    return ArchiveFormat.from_string(value)


def _compression_type(value: Union[CompressionType, str]) -> CompressionType:
    if isinstance(value, CompressionType):
        return value
    return CompressionType.from_string(value)


def create_archiver(
    archive_format: Union[ArchiveFormat, str],
    compression_type: Union[CompressionType, str, None] = None,
    *,
    password: Optional[str] = None,
) -> Archiver:
    """Create an Archiver for the given format and optional compression.

    Args:
        archive_format: An ArchiveFormat or its name, e.g. "tar" or "ZIP".
        compression_type: Optional CompressionType or name, e.g. "gz".
        password: Password for encrypted archives (zip/jar reading, 7z).

    Raises:
        UnknownFormatError: If a name is not known.
        UnsupportedFormatError: For formats that cannot be handled (dump), or
            a password with a format that has no encryption.
    """
    fmt = _archive_format(archive_format)
    if not fmt.is_supported():
        raise UnsupportedFormatError(f"Archive format {fmt} is not supported")
    if password and fmt not in PASSWORD_FORMATS:
        raise UnsupportedFormatError(f"Archive format {fmt} does not support passwords")
    archiver = FormatArchiver(fmt, password=password)
    if compression_type is None:
        return archiver
    return CompressedArchiver(archiver, create_compressor(compression_type))


def create_archiver_for(archive: PathLike, *, password: Optional[str] = None) -> Archiver:
    """Create an Archiver from the file name extension of ``archive``."""
    ft = FileType.get(archive)
    if not ft.is_archive():
        raise UnknownFormatError(f"Unknown archive file extension {os.path.basename(os.fspath(archive))}")
    return create_archiver(ft.archive_format, ft.compression_type, password=password)


def create_compressor(compression_type: Union[CompressionType, str], *, level: Optional[int] = None) -> Compressor:
    return Compressor(_compression_type(compression_type), level=level)


def create_compressor_for(source: PathLike, *, level: Optional[int] = None) -> Compressor:
    """Create a Compressor from the file name extension of ``source``."""
    ft = FileType.get(source)
    if not ft.is_compressed():
        raise UnknownFormatError(f"Unknown compressed file extension {os.path.basename(os.fspath(source))}")
    return Compressor(ft.compression_type, level=level)
