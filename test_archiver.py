from __future__ import annotations

import io
import os
import tarfile
import tempfile
import time
import unittest
import zipfile
from pathlib import Path
from typing import Dict

from archivelib import create_archiver, create_archiver_for
from archivelib.archiver import CompressedArchiver, FormatArchiver
from archivelib.constants import KIND_DIRECTORY, KIND_FILE, KIND_SYMLINK
from archivelib.errors import (
    ArchiveError,
    CorruptArchiveError,
    EntryNotValidError,
    UnsafeEntryPathError,
    UnsupportedFormatError,
)


def _create_sample_files(base: Path, *, include_symlink: bool = True) -> Dict[str, bytes]:
    files: Dict[str, bytes] = {}
    (base / "docs").mkdir()
    (base / "docs" / "sub").mkdir()
    files["docs/a.txt"] = b"hello world\n" * 50
    files["docs/b.bin"] = os.urandom(4096)
    files["docs/sub/c.txt"] = b""
    files["notes.md"] = b"# Title\nSome content\n"
    for name, data in files.items():
        (base / name).write_bytes(data)
    os.chmod(base / "docs" / "b.bin", 0o600)
    if include_symlink and hasattr(os, "symlink"):
        try:
            os.symlink("a.txt", base / "docs" / "ln")
        except OSError:
            pass
    return files


def _assert_files(test: unittest.TestCase, root: Path, files: Dict[str, bytes]):
    for name, data in files.items():
        path = root / name
        test.assertTrue(path.is_file(), f"Missing file: {name}")
        test.assertEqual(path.read_bytes(), data, f"File contents differ: {name}")


class _Unseekable(io.RawIOBase):
    """Readable stream over bytes that refuses to seek, like a pipe."""

    def __init__(self, data: bytes):
        super().__init__()
        self._buf = io.BytesIO(data)

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        chunk = self._buf.read(len(b))
        b[: len(chunk)] = chunk
        return len(chunk)


class ArchiverTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def _roundtrip(self, tmp_path: Path, archiver, *, include_symlink: bool = True, check_modes: bool = True):
        src = tmp_path / "src"
        src.mkdir()
        files = _create_sample_files(src, include_symlink=include_symlink)
        archive = archiver.create("sample", tmp_path, src / "docs", src / "notes.md")
        self.assertEqual(archive, tmp_path / ("sample" + archiver.get_filename_extension()))
        self.assertTrue(archive.is_file())
        self.assertEqual([p.name for p in tmp_path.iterdir() if p.name.startswith(".archivelib-")], [])

        out = tmp_path / "out"
        archiver.extract(archive, out)
        _assert_files(self, out, files)
        if check_modes:
            self.assertEqual(os.stat(out / "docs" / "b.bin").st_mode & 0o777, 0o600)
        if include_symlink and os.path.islink(src / "docs" / "ln"):
            self.assertTrue(os.path.islink(out / "docs" / "ln"))
            self.assertEqual(os.readlink(out / "docs" / "ln"), "a.txt")
        return archive, files

    def test_tar_roundtrip(self):
        def scenario(tmp_path: Path):
            archive, _files = self._roundtrip(tmp_path, create_archiver("tar"))
            self.assertEqual(archive.name, "sample.tar")
            with tarfile.open(archive) as tar:
                names = tar.getnames()
            self.assertEqual(names[0], "docs")
            self.assertIn("docs/sub/c.txt", names)
            self.assertIn("notes.md", names)

        self.run_with_tmpdir(scenario)

    def test_compressed_tar_roundtrips(self):
        for compression, extension in (
            ("gz", ".tar.gz"),
            ("bzip2", ".tar.bz2"),
            ("xz", ".tar.xz"),
            ("lzma", ".tar.lzma"),
            ("zstd", ".tar.zst"),
        ):
            with self.subTest(compression=compression):

                def scenario(tmp_path: Path):
                    archiver = create_archiver("tar", compression)
                    self.assertIsInstance(archiver, CompressedArchiver)
                    archive, _files = self._roundtrip(tmp_path, archiver)
                    self.assertEqual(archive.name, "sample" + extension)

                self.run_with_tmpdir(scenario)

    def test_zip_and_jar_roundtrip(self):
        for fmt in ("zip", "jar"):
            with self.subTest(format=fmt):

                def scenario(tmp_path: Path):
                    archive, _files = self._roundtrip(tmp_path, create_archiver(fmt))
                    with zipfile.ZipFile(archive) as zf:
                        infos = zf.infolist()
                    self.assertEqual(infos[0].filename, "docs/")
                    if fmt == "jar":
                        self.assertTrue(infos[0].extra.startswith(b"\xfe\xca\x00\x00"))
                        self.assertFalse(any(i.extra.startswith(b"\xfe\xca") for i in infos[1:]))

                self.run_with_tmpdir(scenario)

    def test_compressed_zip_roundtrip(self):
        def scenario(tmp_path: Path):
            archive, _files = self._roundtrip(tmp_path, create_archiver("zip", "xz"))
            self.assertEqual(archive.name, "sample.zip.xz")

        self.run_with_tmpdir(scenario)

    def test_cpio_roundtrip(self):
        def scenario(tmp_path: Path):
            archive, _files = self._roundtrip(tmp_path, create_archiver("cpio"))
            self.assertEqual(archive.stat().st_size % 512, 0)
            with create_archiver("cpio").stream(archive) as s:
                kinds = {e.name: e.kind for e in s}
            self.assertEqual(kinds["docs"], KIND_DIRECTORY)
            self.assertEqual(kinds["notes.md"], KIND_FILE)
            if "docs/ln" in kinds:
                self.assertEqual(kinds["docs/ln"], KIND_SYMLINK)

        self.run_with_tmpdir(scenario)

    def test_ar_roundtrip_stores_files_only(self):
        def scenario(tmp_path: Path):
            archive, _files = self._roundtrip(tmp_path, create_archiver("ar"), include_symlink=False)
            with create_archiver("ar").stream(archive) as s:
                names = [e.name for e in s]
            self.assertEqual(names, ["docs/a.txt", "docs/b.bin", "docs/sub/c.txt", "notes.md"])

        self.run_with_tmpdir(scenario)

    def test_7z_roundtrip(self):
        def scenario(tmp_path: Path):
            archive, _files = self._roundtrip(tmp_path, create_archiver("7z"), include_symlink=False, check_modes=False)
            self.assertEqual(archive.name, "sample.7z")

        self.run_with_tmpdir(scenario)

    def test_7z_password_roundtrip(self):
        def scenario(tmp_path: Path):
            archiver = create_archiver("7z", password="s3cret")
            archive, _files = self._roundtrip(tmp_path, archiver, include_symlink=False, check_modes=False)
            with self.assertRaises(ArchiveError):
                create_archiver("7z").extract(archive, tmp_path / "nopw")

        self.run_with_tmpdir(scenario)

    def test_extension_appended_once(self):
        def scenario(tmp_path: Path):
            (tmp_path / "f.txt").write_text("x")
            out = tmp_path / "out"
            self.assertEqual(create_archiver("tar").create("a.tar", out, tmp_path / "f.txt").name, "a.tar")
            self.assertEqual(create_archiver("tar", "gz").create("b", out, tmp_path / "f.txt").name, "b.tar.gz")
            self.assertEqual(create_archiver("tar", "gz").create("c.tar.gz", out, tmp_path / "f.txt").name, "c.tar.gz")

        self.run_with_tmpdir(scenario)

    def test_create_errors(self):
        def scenario(tmp_path: Path):
            archiver = create_archiver("tar")
            with self.assertRaises(FileNotFoundError):
                archiver.create("a", tmp_path, tmp_path / "missing")
            self.assertFalse((tmp_path / "a.tar").exists())
            (tmp_path / "file").write_text("x")
            with self.assertRaises(ValueError):
                archiver.create("a", tmp_path / "file", tmp_path / "file")

        self.run_with_tmpdir(scenario)

    def test_archive_inside_source_is_skipped(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            (src / "f.txt").write_text("x")
            archive = create_archiver("zip").create("self", src, src)
            with zipfile.ZipFile(archive) as zf:
                self.assertEqual(sorted(zf.namelist()), ["src/", "src/f.txt"])

        self.run_with_tmpdir(scenario)

    def test_create_reports_progress(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            _create_sample_files(src, include_symlink=False)
            seen = []
            create_archiver("tar", "gz").create(
                "p", tmp_path, src / "docs", src / "notes.md", progress=lambda name, st: seen.append(name)
            )
            self.assertEqual(seen, ["docs", "docs/a.txt", "docs/b.bin", "docs/sub", "docs/sub/c.txt", "notes.md"])

        self.run_with_tmpdir(scenario)

    def test_failed_create_keeps_existing_archive(self):
        def scenario(tmp_path: Path):
            (tmp_path / "f.txt").write_text("x")
            for name, archiver in (
                ("enc.zip", create_archiver("zip", password="pw")),
                ("enc.zip.gz", create_archiver("zip", "gz", password="pw")),
            ):
                with self.subTest(archive=name):
                    existing = tmp_path / name
                    existing.write_bytes(b"previous archive")
                    with self.assertRaises(UnsupportedFormatError):
                        archiver.create("enc", tmp_path, tmp_path / "f.txt")
                    self.assertEqual(existing.read_bytes(), b"previous archive")
                    self.assertEqual([p.name for p in tmp_path.iterdir() if p.name.startswith(".archivelib-")], [])

            # a successful create replaces the old archive
            existing = tmp_path / "plain.tar"
            existing.write_bytes(b"previous archive")
            create_archiver("tar").create("plain", tmp_path, tmp_path / "f.txt")
            with tarfile.open(existing) as tar:
                self.assertEqual(tar.getnames(), ["f.txt"])

        self.run_with_tmpdir(scenario)

    def test_extract_errors(self):
        def scenario(tmp_path: Path):
            archiver = create_archiver("tar")
            with self.assertRaises(ValueError):
                archiver.extract(tmp_path, tmp_path / "out")
            with self.assertRaises(FileNotFoundError):
                archiver.extract(tmp_path / "missing.tar", tmp_path / "out")

        self.run_with_tmpdir(scenario)

    def test_corrupt_archives(self):
        def scenario(tmp_path: Path):
            garbage = b"definitely not an archive " * 64
            for name in ("bad.tar", "bad.zip", "bad.ar", "bad.cpio", "bad.7z", "bad.tar.gz"):
                with self.subTest(name=name):
                    path = tmp_path / name
                    path.write_bytes(garbage)
                    with self.assertRaises(CorruptArchiveError):
                        create_archiver_for(path).extract(path, tmp_path / "out")

        self.run_with_tmpdir(scenario)

    def test_extract_from_streams(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            files = _create_sample_files(src, include_symlink=False)
            for fmt, compression in (("tar", "gz"), ("zip", None), ("cpio", "bzip2"), ("7z", None), ("jar", "zstd")):
                with self.subTest(format=fmt, compression=compression):
                    archiver = create_archiver(fmt, compression)
                    archive = archiver.create("stream_" + fmt, tmp_path, src / "docs", src / "notes.md")
                    data = archive.read_bytes()

                    out = tmp_path / ("seekable_" + fmt)
                    archiver.extract_from(io.BytesIO(data), out)
                    _assert_files(self, out, files)

                    out = tmp_path / ("pipe_" + fmt)
                    archiver.extract_from(_Unseekable(data), out)
                    _assert_files(self, out, files)

        self.run_with_tmpdir(scenario)

    def test_stream_entries(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            files = _create_sample_files(src, include_symlink=False)
            archiver = create_archiver("tar")
            archive = archiver.create("sample", tmp_path, src / "docs", src / "notes.md")
            seen = {}
            with archiver.stream(archive) as s:
                for entry in s:
                    if entry.kind == KIND_FILE:
                        with entry.open() as fh:
                            seen[entry.get_name()] = fh.read()
                        self.assertEqual(entry.get_size(), len(files[entry.name]))
                        self.assertEqual(entry.get_last_modified_date().timestamp(), int(os.stat(src / entry.name).st_mtime))
                    else:
                        self.assertTrue(entry.is_directory())
            self.assertEqual(seen, files)
            with self.assertRaises(ArchiveError):
                s.get_next_entry()

        self.run_with_tmpdir(scenario)

    def test_stale_entry_cannot_be_extracted(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            _create_sample_files(src, include_symlink=False)
            for fmt in ("tar", "zip", "cpio", "ar"):
                with self.subTest(format=fmt):
                    archiver = create_archiver(fmt)
                    archive = archiver.create("stale", tmp_path, src / "notes.md", src / "docs")
                    with archiver.stream(archive) as s:
                        first = s.get_next_entry()
                        self.assertEqual(first.name, "notes.md")
                        first.extract(tmp_path / "ok")
                        self.assertTrue((tmp_path / "ok" / "notes.md").is_file())
                        s.get_next_entry()
                        with self.assertRaises(EntryNotValidError):
                            first.extract(tmp_path / "stale")
                        current = s.get_next_entry()
                    with self.assertRaises(EntryNotValidError):
                        current.open()

        self.run_with_tmpdir(scenario)

    def test_unsafe_tar_entry_rejected(self):
        def scenario(tmp_path: Path):
            archive = tmp_path / "evil.tar"
            with tarfile.open(archive, "w") as tar:
                info = tarfile.TarInfo("../evil.txt")
                info.size = 4
                tar.addfile(info, io.BytesIO(b"evil"))
            with self.assertRaises(UnsafeEntryPathError) as ctx:
                create_archiver("tar").extract(archive, tmp_path / "out")
            self.assertIn("would create file outside of", str(ctx.exception))
            self.assertFalse((tmp_path / "evil.txt").exists())

        self.run_with_tmpdir(scenario)

    def test_unsafe_zip_entry_rejected(self):
        def scenario(tmp_path: Path):
            archive = tmp_path / "evil.zip"
            with zipfile.ZipFile(archive, "w") as zf:
                zf.writestr("ok.txt", b"fine")
                zf.writestr("../../evil.txt", b"evil")
            with self.assertRaises(UnsafeEntryPathError):
                create_archiver("zip").extract(archive, tmp_path / "a" / "out")
            self.assertTrue((tmp_path / "a" / "out" / "ok.txt").is_file())
            self.assertFalse((tmp_path / "evil.txt").exists())

        self.run_with_tmpdir(scenario)

    @unittest.skipUnless(hasattr(os, "symlink"), "symlinks not supported")
    def test_write_through_symlink_rejected(self):
        def scenario(tmp_path: Path):
            outside = tmp_path / "outside"
            outside.mkdir()
            archive = tmp_path / "link.tar"
            with tarfile.open(archive, "w") as tar:
                link = tarfile.TarInfo("link")
                link.type = tarfile.SYMTYPE
                link.linkname = str(outside)
                tar.addfile(link)
                info = tarfile.TarInfo("link/evil.txt")
                info.size = 4
                tar.addfile(info, io.BytesIO(b"evil"))
            with self.assertRaises(UnsafeEntryPathError):
                create_archiver("tar").extract(archive, tmp_path / "out")
            self.assertFalse((outside / "evil.txt").exists())

        self.run_with_tmpdir(scenario)

    def test_hardlinks_extracted(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            (src / "one.txt").write_bytes(b"shared")
            try:
                os.link(src / "one.txt", src / "two.txt")
            except OSError:
                self.skipTest("hard links not supported")
            archiver = create_archiver("tar")
            archive = archiver.create("links", tmp_path, src)
            out = tmp_path / "out"
            archiver.extract(archive, out)
            self.assertEqual((out / "src" / "one.txt").read_bytes(), b"shared")
            self.assertEqual((out / "src" / "two.txt").read_bytes(), b"shared")

        self.run_with_tmpdir(scenario)

    @unittest.skipUnless(hasattr(os, "symlink"), "symlinks not supported")
    def test_hardlink_to_extracted_symlink_skipped(self):
        def scenario(tmp_path: Path):
            outside = tmp_path / "outside"
            outside.mkdir()
            (outside / "secret").write_bytes(b"TOP SECRET")
            archive = tmp_path / "leak.tar"
            with tarfile.open(archive, "w") as tar:
                link = tarfile.TarInfo("evil")
                link.type = tarfile.SYMTYPE
                link.linkname = str(outside / "secret")
                tar.addfile(link)
                hard = tarfile.TarInfo("leak")
                hard.type = tarfile.LNKTYPE
                hard.linkname = "evil"
                tar.addfile(hard)
            out = tmp_path / "out"
            create_archiver("tar").extract(archive, out)
            self.assertTrue(os.path.islink(out / "evil"))
            self.assertFalse(os.path.lexists(out / "leak"))
            self.assertEqual((outside / "secret").read_bytes(), b"TOP SECRET")
            self.assertEqual(os.stat(outside / "secret").st_nlink, 1)

        self.run_with_tmpdir(scenario)

    def test_directory_metadata_preserved_on_extract(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            tracked = src / "tracked"
            tracked.mkdir(parents=True)
            (tracked / "inside.txt").write_text("content")
            base_mtime = int(time.time()) - 5000
            os.utime(tracked, (base_mtime, base_mtime))
            os.chmod(tracked, 0o555)
            try:
                for fmt in ("tar", "zip", "cpio"):
                    with self.subTest(format=fmt):
                        archiver = create_archiver(fmt)
                        archive = archiver.create("meta", tmp_path, tracked)
                        out = tmp_path / ("out_" + fmt)
                        archiver.extract(archive, out)
                        extracted = out / "tracked"
                        try:
                            self.assertEqual((extracted / "inside.txt").read_text(), "content")
                            self.assertEqual(os.stat(extracted).st_mode & 0o777, 0o555)
                            if fmt != "zip":
                                self.assertEqual(int(os.stat(extracted).st_mtime), base_mtime)
                        finally:
                            os.chmod(extracted, 0o755)
            finally:
                os.chmod(tracked, 0o755)

        self.run_with_tmpdir(scenario)

    def test_repr(self):
        self.assertEqual(repr(create_archiver("tar")), "FormatArchiver(tar)")
        self.assertEqual(repr(create_archiver("tar", "gz")), "CompressedArchiver(tar, gz)")
        self.assertIsInstance(create_archiver_for("x.tgz"), CompressedArchiver)
        self.assertIsInstance(create_archiver_for("x.jar"), FormatArchiver)


if __name__ == "__main__":
    unittest.main()
