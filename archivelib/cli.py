from __future__ import annotations

import os
import stat
import sys
import time
import argparse
import getpass as _getpass

from typing import List, Optional

from archivelib.archiver import Archiver, extract_all
from archivelib.constants import KIND_NAMES, KIND_FILE, KIND_SYMLINK, KIND_HARDLINK
from archivelib.errors import ArchiveError
from archivelib.factory import (
    create_archiver,
    create_archiver_for,
    create_compressor,
    create_compressor_for,
)
from archivelib.filetype import FileType
from archivelib.formats import ArchiveFormat, CompressionType
from archivelib.ioutil import require_directory


def _archiver(archive: str, archive_format: Optional[str], compression: Optional[str], password: Optional[str]) -> Archiver:
    """Pick an archiver from explicit flags, falling back to the file name."""
    if archive_format:
        return create_archiver(archive_format, compression, password=password)
    if compression:
        raise ValueError("--compression requires --format")
    return create_archiver_for(archive, password=password)


def cmd_create(
    archive: str,
    sources: List[str],
    *,
    archive_format: Optional[str] = None,
    compression: Optional[str] = None,
    password: Optional[str] = None,
    quiet: bool = False,
) -> bool:
    """Create an archive from filesystem paths.

    Args:
        archive: Output archive path. Its extension selects the format unless
            ``archive_format`` is given; the format's extension is appended
            when missing.
        sources: Files and directories to store.
        archive_format: Archive format name (tar, zip, jar, ar, cpio, 7z).
        compression: Compression name (gz, bzip2, xz, lzma, zstd).
        password: Password for 7z archives.
        quiet: Suppress the per-entry progress lines.
    """
    archiver = _archiver(archive, archive_format, compression, password)

    def _progress(arc_name: str, st: os.stat_result) -> None:
        if not quiet:
            suffix = "/" if stat.S_ISDIR(st.st_mode) else ""
            print(f" adding: {arc_name}{suffix}")

    t0 = time.time()
    out = archiver.create(os.path.basename(archive), os.path.dirname(archive) or ".", *sources, progress=_progress)
    dt = max(0.000001, time.time() - t0)
    size = os.path.getsize(out)
    print(f"Done: created {out} ({size / (1024.0 * 1024.0):.2f} MiB) in {dt:.1f}s")
    return True


def cmd_extract(
    archive: str,
    *,
    outdir: str = ".",
    archive_format: Optional[str] = None,
    compression: Optional[str] = None,
    password: Optional[str] = None,
    quiet: bool = False,
) -> bool:
    """Extract all entries of an archive into ``outdir``."""
    archiver = _archiver(archive, archive_format, compression, password)
    require_directory(outdir)
    processed_bytes = 0

    def _progress(entry) -> None:
        nonlocal processed_bytes
        processed_bytes += entry.size or 0
        if not quiet:
            suffix = "/" if entry.is_directory() and not entry.name.endswith("/") else ""
            print(f" extracting: {entry.name}{suffix}")

    t0 = time.time()
    with archiver.stream(archive) as s:
        count = extract_all(s, outdir, progress=_progress)
    dt = max(0.000001, time.time() - t0)
    mib = processed_bytes / (1024.0 * 1024.0)
    print(f"Done: extracted {count} entries ({mib:.2f} MiB) in {dt:.1f}s; {mib / dt:.2f} MiB/s")
    return True


def cmd_list(
    archive: str,
    *,
    archive_format: Optional[str] = None,
    compression: Optional[str] = None,
    password: Optional[str] = None,
) -> bool:
    """List archive entries as ``kind<TAB>size<TAB>name``."""
    archiver = _archiver(archive, archive_format, compression, password)
    with archiver.stream(archive) as s:
        for e in s:
            k = KIND_NAMES.get(e.kind, str(e.kind))
            if e.kind == KIND_FILE:
                print(f"{k}\t{e.size}\t{e.name}")
            elif e.kind in (KIND_SYMLINK, KIND_HARDLINK) and e.link_target:
                print(f"{k}\t-> {e.link_target}\t{e.name}")
            else:
                print(f"{k}\t-\t{e.name}")
    return True


def cmd_compress(source: str, destination: Optional[str] = None, *, compression: str, level: Optional[int] = None) -> bool:
    """Compress a single file.

    Args:
        source: File to compress.
        destination: Output file or directory; defaults to the source's directory.
        compression: Compression name (gz, bzip2, xz, lzma, zstd).
        level: Codec specific compression level.
    """
    compressor = create_compressor(compression, level=level)
    out = compressor.compress(source, destination or (os.path.dirname(source) or "."))
    print(f"Compressed: {out}")
    return True


def cmd_decompress(source: str, destination: Optional[str] = None, *, compression: Optional[str] = None) -> bool:
    """Decompress a single file; the compression is taken from its name unless given."""
    compressor = create_compressor(compression) if compression else create_compressor_for(source)
    out = compressor.decompress(source, destination or (os.path.dirname(source) or "."))
    print(f"Decompressed: {out}")
    return True


def cmd_info(names: List[str]) -> bool:
    """Show what each file name denotes (archive format and/or compression)."""
    for name in names:
        ft = FileType.get(name)
        fmt = ft.archive_format.type_name if ft.archive_format else "-"
        comp = ft.compression_type.type_name if ft.compression_type else "-"
        print(f"{name}: archive={fmt} compression={comp} suffix={ft.suffix or '-'}")
    return True


def main(argv: List[str] | None = None):
    formats = [f.type_name for f in ArchiveFormat if f.is_supported()]
    compressions = [c.type_name for c in CompressionType]

    ap = argparse.ArgumentParser(
        prog="archivelib",
        description="Create, extract and inspect archives and compressed files",
        epilog="Format and compression are inferred from file names unless given explicitly.",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    def _format_flags(p):
        p.add_argument("--format", dest="archive_format", choices=formats, help="Archive format")
        p.add_argument("--compression", choices=compressions, help="Compression applied to the archive")
        p.add_argument("--password", help="Archive password (7z; zip/jar for reading)")
        p.add_argument("--ask-password", action="store_true", help="Prompt for the archive password")

    ap_create = sub.add_parser("create", help="Create archive")
    ap_create.add_argument("archive", help="Output archive path")
    ap_create.add_argument("sources", nargs="+", help="Input files/directories")
    ap_create.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    _format_flags(ap_create)

    ap_extract = sub.add_parser("extract", help="Extract archive")
    ap_extract.add_argument("archive", help="Archive path")
    ap_extract.add_argument("--outdir", default=".", help="Output directory")
    ap_extract.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    _format_flags(ap_extract)

    ap_list = sub.add_parser("list", help="List archive contents")
    ap_list.add_argument("archive", help="Archive path")
    _format_flags(ap_list)

    ap_compress = sub.add_parser("compress", help="Compress a single file")
    ap_compress.add_argument("source", help="File to compress")
    ap_compress.add_argument("destination", nargs="?", help="Output file or directory (default: next to source)")
    ap_compress.add_argument("--compression", required=True, choices=compressions, help="Compression type")
    ap_compress.add_argument("--level", type=int, help="Compression level")

    ap_decompress = sub.add_parser("decompress", help="Decompress a single file")
    ap_decompress.add_argument("source", help="File to decompress")
    ap_decompress.add_argument("destination", nargs="?", help="Output file or directory (default: next to source)")
    ap_decompress.add_argument("--compression", choices=compressions, help="Compression type (default: from file name)")

    ap_info = sub.add_parser("info", help="Show the archive format/compression a file name denotes")
    ap_info.add_argument("names", nargs="+", help="File names")

    args = ap.parse_args(argv)
    password = getattr(args, "password", None)
    if getattr(args, "ask_password", False) and not password:
        password = _getpass.getpass("Archive password: ")
    try:
        if args.cmd == "create":
            cmd_create(
                args.archive,
                args.sources,
                archive_format=args.archive_format,
                compression=args.compression,
                password=password,
                quiet=args.quiet,
            )
        elif args.cmd == "extract":
            cmd_extract(
                args.archive,
                outdir=args.outdir,
                archive_format=args.archive_format,
                compression=args.compression,
                password=password,
                quiet=args.quiet,
            )
        elif args.cmd == "list":
            cmd_list(args.archive, archive_format=args.archive_format, compression=args.compression, password=password)
        elif args.cmd == "compress":
            cmd_compress(args.source, args.destination, compression=args.compression, level=args.level)
        elif args.cmd == "decompress":
            cmd_decompress(args.source, args.destination, compression=args.compression)
        elif args.cmd == "info":
            cmd_info(args.names)
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (ArchiveError, ValueError) as e:
        msg = str(e)
        if "password required" in msg.lower():
            print("Error: Archive is encrypted. Provide --password.", file=sys.stderr)
        else:
            print(f"Error: {msg}", file=sys.stderr)
        sys.exit(2)
    except (RuntimeError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
