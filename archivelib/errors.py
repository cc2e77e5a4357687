class ArchiveError(Exception):
    """Base class for archivelib errors."""


# Format selection
class UnknownFormatError(ArchiveError, ValueError):
    pass


class UnsupportedFormatError(ArchiveError, ValueError):
    pass


# Entry handling
class UnsafeEntryPathError(ArchiveError, ValueError):
    pass


class EntryNotValidError(ArchiveError, RuntimeError):
    pass


# Malformed input
class CorruptArchiveError(ArchiveError):
    pass
