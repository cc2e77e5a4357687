from __future__ import annotations

import os
from typing import Dict, Optional, Union

from .formats import ArchiveFormat, CompressionType


class FileType:
    """A file name suffix and the archive format and/or compression it denotes."""

    UNKNOWN: "FileType"
    _REGISTRY: Dict[str, "FileType"] = {}

    def __init__(
        self,
        suffix: str,
        archive_format: Optional[ArchiveFormat] = None,
        compression_type: Optional[CompressionType] = None,
    ):
        self.suffix = suffix
        self.archive_format = archive_format
        self.compression_type = compression_type

    @classmethod
    def get(cls, name: Union[str, os.PathLike]) -> "FileType":
        """Return the FileType for the suffix of ``name``, or FileType.UNKNOWN.

        Only the last path component is considered and matching ignores case.
        The first registered suffix that matches wins, so compound suffixes
        such as ".tar.gz" take precedence over ".gz".
        """
        filename = os.path.basename(os.fspath(name)).lower()
        for suffix, ft in cls._REGISTRY.items():
            if filename.endswith(suffix):
                return ft
        return cls.UNKNOWN

    @classmethod
    def _add(
        cls,
        suffix: str,
        archive_format: Optional[ArchiveFormat] = None,
        compression_type: Optional[CompressionType] = None,
    ) -> None:
        cls._REGISTRY[suffix] = cls(suffix, archive_format, compression_type)

    def is_archive(self) -> bool:
        return self.archive_format is not None

    def is_compressed(self) -> bool:
        return self.compression_type is not None

    def get_suffix(self) -> str:
        return self.suffix

    def get_archive_format(self) -> Optional[ArchiveFormat]:
        return self.archive_format

    def get_compression_type(self) -> Optional[CompressionType]:
        return self.compression_type

    def __repr__(self) -> str:
        return f"FileType({self.suffix!r}, {self.archive_format}, {self.compression_type})"

    def __str__(self) -> str:
        return self.suffix


FileType.UNKNOWN = FileType("")

# compressed archives
FileType._add(".tar.gz", ArchiveFormat.TAR, CompressionType.GZIP)
FileType._add(".tgz", ArchiveFormat.TAR, CompressionType.GZIP)
FileType._add(".tar.bz2", ArchiveFormat.TAR, CompressionType.BZIP2)
FileType._add(".tbz2", ArchiveFormat.TAR, CompressionType.BZIP2)
FileType._add(".tar.xz", ArchiveFormat.TAR, CompressionType.XZ)
FileType._add(".txz", ArchiveFormat.TAR, CompressionType.XZ)
FileType._add(".tar.lzma", ArchiveFormat.TAR, CompressionType.LZMA)
FileType._add(".tar.zst", ArchiveFormat.TAR, CompressionType.ZSTD)
FileType._add(".tzst", ArchiveFormat.TAR, CompressionType.ZSTD)
# archive formats
FileType._add(".7z", ArchiveFormat.SEVEN_Z)
FileType._add(".a", ArchiveFormat.AR)
FileType._add(".ar", ArchiveFormat.AR)
FileType._add(".deb", ArchiveFormat.AR)
FileType._add(".rpm", ArchiveFormat.CPIO)
FileType._add(".cpio", ArchiveFormat.CPIO)
FileType._add(".dump", ArchiveFormat.DUMP)
FileType._add(".jar", ArchiveFormat.JAR)
FileType._add(".tar", ArchiveFormat.TAR)
FileType._add(".zip", ArchiveFormat.ZIP)
FileType._add(".zipx", ArchiveFormat.ZIP)
# compression formats
FileType._add(".bz2", compression_type=CompressionType.BZIP2)
FileType._add(".xz", compression_type=CompressionType.XZ)
FileType._add(".lzma", compression_type=CompressionType.LZMA)
FileType._add(".gzip", compression_type=CompressionType.GZIP)
FileType._add(".gz", compression_type=CompressionType.GZIP)
FileType._add(".zst", compression_type=CompressionType.ZSTD)
