from __future__ import annotations

from pathlib import Path

from mediatether.core.files import ensure_directory, make_read_only, remove_file, safe_copy_atomic
from mediatether.core.hashing import compute_file_digest


class ArchiveStore:
    """Immutable, content-addressed storage for embedded resource bytes."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir

    def ensure_archive_layout(self) -> None:
        ensure_directory(self.base_dir)
        ensure_directory(self.base_dir / "sha256")

    def archive_relpath_for_digest(self, digest_sha256: str, suffix: str = "") -> Path:
        shard_a = digest_sha256[:2]
        shard_b = digest_sha256[2:4]
        name = f"{digest_sha256}{suffix}"
        return Path("sha256") / shard_a / shard_b / name

    def archive_abspath_for_digest(self, digest_sha256: str, suffix: str = "") -> Path:
        return self.base_dir / self.archive_relpath_for_digest(digest_sha256, suffix)

    def abspath(self, relpath: str) -> Path:
        return self.base_dir / relpath

    def store_file_immutable(self, src: Path, suffix: str = "") -> tuple[str, Path]:
        """Archive ``src`` and return its sha256 digest and archived path."""
        digest_sha256 = compute_file_digest(src, "sha256")
        self.ensure_archive_layout()
        dst = self.archive_abspath_for_digest(digest_sha256, suffix)
        ensure_directory(dst.parent)

        if not dst.exists():
            safe_copy_atomic(src, dst)
            make_read_only(dst)

        return digest_sha256, dst

    def remove(self, relpath: str) -> bool:
        path = self.abspath(relpath)
        if path.exists():
            # Archived objects are read-only; restore write access before unlinking.
            path.chmod(path.stat().st_mode | 0o200)
        return remove_file(path)
