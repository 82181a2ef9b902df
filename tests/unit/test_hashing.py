from pathlib import Path

from mediatether.core.hashing import compute_bytes_digest, compute_file_digest, compute_text_digest


def test_compute_bytes_digest_sha256() -> None:
    assert (
        compute_bytes_digest(b"abc")
        == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    )


def test_cache_key_digest_is_md5_of_url() -> None:
    assert compute_text_digest("abc") == "900150983cd24fb0d6963f7d28e17f72"


def test_file_digest_matches_bytes_digest(tmp_path: Path) -> None:
    path = tmp_path / "blob.bin"
    path.write_bytes(b"abc" * 100_000)
    assert compute_file_digest(path) == compute_bytes_digest(b"abc" * 100_000)
