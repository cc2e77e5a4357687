from __future__ import annotations

from enum import Enum

from .errors import UnknownFormatError


class CompressionType(Enum):
    """Denotes a compression algorithm such as gzip or bzip2."""

    BZIP2 = ("bzip2", ".bz2")
    GZIP = ("gz", ".gz")
    XZ = ("xz", ".xz")
    LZMA = ("lzma", ".lzma")
    ZSTD = ("zstd", ".zst")

    def __init__(self, type_name: str, default_file_extension: str):
        self.type_name = type_name
        self.default_file_extension = default_file_extension

    @classmethod
    def is_valid_compression_type(cls, compression: str) -> bool:
        """Return True if ``compression`` names a known compression type (ignoring case)."""
        return any(compression.lower() == t.type_name for t in cls)

    @classmethod
    def from_string(cls, compression: str) -> "CompressionType":
        """Look up a compression type by name, e.g. "GZ" or "xz".

        Raises:
            UnknownFormatError: If the name is not known.
        """
        for t in cls:
            if compression.lower() == t.type_name:
                return t
        raise UnknownFormatError(f"Unknown compression type {compression}")

    def get_name(self) -> str:
        return self.type_name

    def get_default_file_extension(self) -> str:
        return self.default_file_extension

    def __str__(self) -> str:
        return self.type_name


class ArchiveFormat(Enum):
    """Denotes an archive format such as zip or tar."""

    AR = ("ar", ".ar")
    CPIO = ("cpio", ".cpio")
    DUMP = ("dump", ".dump")
    JAR = ("jar", ".jar")
    SEVEN_Z = ("7z", ".7z")
    TAR = ("tar", ".tar")
    ZIP = ("zip", ".zip")

    def __init__(self, type_name: str, default_file_extension: str):
        self.type_name = type_name
        self.default_file_extension = default_file_extension

    @classmethod
    def is_valid_archive_format(cls, archive_format: str) -> bool:
        """Return True if ``archive_format`` names a known archive format (ignoring case)."""
        return any(archive_format.lower() == f.type_name for f in cls)

    @classmethod
    def from_string(cls, archive_format: str) -> "ArchiveFormat":
        """Look up an archive format by name, e.g. "TAR" or "7z".

        Raises:
            UnknownFormatError: If the name is not known.
        """
        for f in cls:
            if archive_format.lower() == f.type_name:
                return f
        raise UnknownFormatError(f"Unknown archive format {archive_format}")

    def get_name(self) -> str:
        return self.type_name

    def get_default_file_extension(self) -> str:
        return self.default_file_extension

    def is_supported(self) -> bool:
        # dump is detected by name but cannot be read or written
        return self is not ArchiveFormat.DUMP

    def __str__(self) -> str:
        return self.type_name
