from __future__ import annotations

import os
import sys
from typing import Optional


def apply_mode(path: str, mode: Optional[int]) -> None:
    """Best‑effort chmod that never raises.

    Args:
        path: Destination filesystem path to update.
        mode: POSIX mode bits as stored in the archive. Only the permission
            bits (0o7777) are applied. If None or 0, no change is made.
    """
    if not mode:
        return
    try:
        os.chmod(path, mode & 0o7777)
    except OSError as exc:
        print(f"Warning: failed to set mode on {path}: {exc}", file=sys.stderr)


def apply_mtime(path: str, mtime: Optional[float]) -> None:
    """Best‑effort utime that never raises.

    The access time is set to the modification time. Symlinks themselves are
    left untouched.

    Args:
        path: Destination filesystem path to update.
        mtime: Modification time (seconds since epoch). If None, no change is made.
    """
    if mtime is None or os.path.islink(path):
        return
    try:
        os.utime(path, (mtime, mtime))
    except OSError as exc:
        print(f"Warning: failed to set timestamps on {path}: {exc}", file=sys.stderr)


def apply_metadata(path: str, mode: Optional[int], mtime: Optional[float]) -> None:
    if os.path.islink(path):
        return
    apply_mode(path, mode)
    apply_mtime(path, mtime)
