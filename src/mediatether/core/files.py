from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def make_read_only(path: Path) -> None:
    current_mode = path.stat().st_mode
    # Strip write permissions for user/group/other.
    path.chmod(current_mode & ~0o222)


def safe_copy_atomic(src: Path, dst: Path) -> None:
    """Copy ``src`` over ``dst`` through a sibling temp file and ``os.replace``.

    Concurrent writers each stage their own temp file, so the last replace wins
    and readers never observe a partially written target.
    """
    ensure_directory(dst.parent)
    fd, temp_name = tempfile.mkstemp(prefix=f".{dst.name}.", suffix=".tmp", dir=dst.parent)
    os.close(fd)
    temp_path = Path(temp_name)
    try:
        shutil.copyfile(src, temp_path)
        os.replace(temp_path, dst)
    finally:
        if temp_path.exists():
            temp_path.unlink()


def remove_file(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def clear_directory(path: Path) -> int:
    """Delete everything below ``path`` and return the number of files removed."""
    if not path.exists():
        return 0
    removed = 0
    for child in path.iterdir():
        if child.is_dir() and not child.is_symlink():
            removed += sum(1 for p in child.rglob("*") if p.is_file())
            shutil.rmtree(child)
        else:
            child.unlink()
            removed += 1
    return removed
