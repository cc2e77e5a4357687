from __future__ import annotations

import gzip
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from typing import Dict


def _build_fixture_tree(root: Path) -> Dict[str, bytes]:
    files: Dict[str, bytes] = {}
    (root / "docs").mkdir()
    (root / "docs" / "notes").mkdir()
    files["docs/readme.txt"] = b"hello world\n" * 20
    files["docs/notes/binary.bin"] = os.urandom(2048)
    files["docs/notes/empty.txt"] = b""
    for name, data in files.items():
        (root / name).write_bytes(data)
    os.chmod(root / "docs" / "notes" / "binary.bin", 0o600)
    return files


class CLIIntegrationTests(unittest.TestCase):
    def run_cli(self, args, *, expect: int | None = 0, cwd: Path | None = None):
        cmd = [sys.executable, "-m", "archivelib.cli"] + list(args)
        env = os.environ.copy()
        repo_root = Path(__file__).resolve().parent
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(repo_root) if not existing else f"{repo_root}{os.pathsep}{existing}"
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def _check_extracted(self, root: Path, files: Dict[str, bytes]):
        for name, data in files.items():
            self.assertEqual((root / name).read_bytes(), data, f"File contents differ: {name}")

    def test_create_list_extract_roundtrip(self):
        for archive_name in ("bundle.tar.gz", "bundle.zip", "bundle.cpio", "bundle.tar.zst", "bundle.7z"):
            with self.subTest(archive=archive_name):
                with tempfile.TemporaryDirectory() as tmp:
                    root = Path(tmp)
                    src = root / "src"
                    src.mkdir()
                    files = _build_fixture_tree(src)
                    archive = root / archive_name

                    create_proc = self.run_cli(["create", str(archive), str(src / "docs")])
                    self.assertIn("Done: created", create_proc.stdout)
                    self.assertTrue(archive.is_file())

                    list_proc = self.run_cli(["list", str(archive)])
                    self.assertIn(f"file\t{len(files['docs/readme.txt'])}\tdocs/readme.txt", list_proc.stdout)
                    self.assertIn("dir\t-\tdocs", list_proc.stdout)

                    out = root / "out"
                    extract_proc = self.run_cli(["extract", str(archive), "--outdir", str(out)])
                    self.assertIn(" extracting: docs/readme.txt", extract_proc.stdout)
                    self.assertIn("Done: extracted", extract_proc.stdout)
                    self._check_extracted(out, files)

                    quiet = root / "quiet"
                    quiet_proc = self.run_cli(["extract", str(archive), "--outdir", str(quiet), "--quiet"])
                    self.assertNotIn("extracting:", quiet_proc.stdout)
                    self._check_extracted(quiet, files)

    def test_create_progress_and_quiet(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "src"
            src.mkdir()
            _build_fixture_tree(src)

            proc = self.run_cli(["create", str(root / "loud.tar"), str(src / "docs")])
            self.assertIn(" adding: docs/\n", proc.stdout)
            self.assertIn(" adding: docs/readme.txt\n", proc.stdout)
            self.assertIn(" adding: docs/notes/binary.bin\n", proc.stdout)

            proc = self.run_cli(["create", str(root / "quiet.tar"), str(src / "docs"), "--quiet"])
            self.assertNotIn("adding:", proc.stdout)
            self.assertIn("Done: created", proc.stdout)
            self.assertTrue((root / "quiet.tar").is_file())

    def test_explicit_format_overrides_name(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "src"
            src.mkdir()
            files = _build_fixture_tree(src)
            self.run_cli(["create", str(root / "payload"), str(src / "docs"), "--format", "tar", "--compression", "bzip2"])
            archive = root / "payload.tar.bz2"
            self.assertTrue(archive.is_file())
            out = root / "out"
            self.run_cli(["extract", str(archive), "--outdir", str(out), "--quiet"])
            self._check_extracted(out, files)

    def test_7z_password(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "src"
            src.mkdir()
            files = _build_fixture_tree(src)
            archive = root / "secret.7z"
            self.run_cli(["create", str(archive), str(src / "docs"), "--password", "hunter2"])

            denied = self.run_cli(["list", str(archive)], expect=2)
            self.assertIn("Error:", denied.stderr)

            out = root / "out"
            self.run_cli(["extract", str(archive), "--outdir", str(out), "--password", "hunter2", "--quiet"])
            self._check_extracted(out, files)

    def test_compress_and_decompress(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "data.txt"
            src.write_bytes(b"compress me\n" * 100)

            proc = self.run_cli(["compress", str(src), "--compression", "gz", "--level", "6"])
            packed = root / "data.txt.gz"
            self.assertIn(f"Compressed: {packed}", proc.stdout)
            with gzip.open(packed, "rb") as fh:
                self.assertEqual(fh.read(), src.read_bytes())

            out = root / "out"
            out.mkdir()
            proc = self.run_cli(["decompress", str(packed), str(out)])
            self.assertIn("Decompressed:", proc.stdout)
            self.assertEqual((out / "data.txt").read_bytes(), src.read_bytes())

            xz_target = root / "explicit.xz"
            self.run_cli(["compress", str(src), str(xz_target), "--compression", "xz"])
            self.run_cli(["decompress", str(xz_target), str(root / "restored.txt")])
            self.assertEqual((root / "restored.txt").read_bytes(), src.read_bytes())

    def test_info(self):
        proc = self.run_cli(["info", "a.tar.gz", "b.zip", "c.bz2", "d.txt"])
        self.assertIn("a.tar.gz: archive=tar compression=gz suffix=.tar.gz", proc.stdout)
        self.assertIn("b.zip: archive=zip compression=- suffix=.zip", proc.stdout)
        self.assertIn("c.bz2: archive=- compression=bzip2 suffix=.bz2", proc.stdout)
        self.assertIn("d.txt: archive=- compression=- suffix=-", proc.stdout)

    def test_errors_exit_with_status_2(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "f.txt").write_text("x")

            proc = self.run_cli(["create", str(root / "out.rar"), str(root / "f.txt")], expect=2)
            self.assertIn("Error: Unknown archive file extension out.rar", proc.stderr)

            proc = self.run_cli(["extract", str(root / "missing.tar"), "--outdir", str(root / "o")], expect=2)
            self.assertIn("Error:", proc.stderr)

            proc = self.run_cli(["decompress", str(root / "f.txt")], expect=2)
            self.assertIn("Unknown compressed file extension f.txt", proc.stderr)

            bad = root / "bad.tar"
            bad.write_bytes(b"garbage" * 200)
            proc = self.run_cli(["list", str(bad)], expect=2)
            self.assertIn("Error:", proc.stderr)

            proc = self.run_cli(["create", str(root / "x.tar"), str(root / "f.txt"), "--password", "pw"], expect=2)
            self.assertIn("does not support passwords", proc.stderr)


if __name__ == "__main__":
    unittest.main()
