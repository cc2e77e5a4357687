# Copy buffer
DEFAULT_BUFFER_SIZE = 8024


# Entry kinds
KIND_FILE = 0
KIND_DIRECTORY = 1
KIND_SYMLINK = 2
KIND_HARDLINK = 3
KIND_OTHER = 4

KIND_NAMES = {
    KIND_FILE: "file",
    KIND_DIRECTORY: "dir",
    KIND_SYMLINK: "symlink",
    KIND_HARDLINK: "hardlink",
    KIND_OTHER: "other",
}


# ar
AR_MAGIC = b"!<arch>\n"
AR_HEADER_SIZE = 60
AR_FMAG = b"`\n"
AR_BSD_LONGNAME_PREFIX = "#1/"
AR_GNU_STRING_TABLE = "//"
AR_GNU_SYMBOL_TABLE = "/"
AR_BSD_SYMBOL_TABLES = ("__.SYMDEF", "__.SYMDEF SORTED")
AR_NAME_FIELD = 16

# cpio
CPIO_MAGIC_NEWC = b"070701"
CPIO_MAGIC_CRC = b"070702"
CPIO_MAGIC_ODC = b"070707"
CPIO_TRAILER = "TRAILER!!!"

# JAR marker extra field (header id 0xCAFE, empty payload)
JAR_MAGIC_EXTRA = b"\xfe\xca\x00\x00"


# Default compression levels
GZIP_LEVEL = 9
BZIP2_LEVEL = 9
XZ_PRESET = 6
ZSTD_LEVEL = 3
