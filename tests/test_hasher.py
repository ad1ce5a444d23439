import hashlib
import pytest
from photo_catalog.scanning.hasher import FileHasher
from photo_catalog.exceptions import FileHashError
from photo_catalog import config

def test_full_hash_is_sha256(tmp_path):
    p = tmp_path / "sample.jpg"
    data = b"hello world" * 10000
    p.write_bytes(data)

    assert FileHasher().full_hash(p) == hashlib.sha256(data).hexdigest()

def test_full_hash_missing_file_raises(tmp_path):
    with pytest.raises(FileHashError):
        FileHasher().full_hash(tmp_path / "gone.jpg")

def test_try_variants_return_none_on_failure(tmp_path, caplog):
    hasher = FileHasher()

    assert hasher.try_full_hash(tmp_path / "gone.jpg") is None
    assert hasher.try_partial_hash(tmp_path / "gone.jpg") is None
    assert "gone.jpg" in caplog.text

def test_partial_hash_small_file_covers_everything(tmp_path):
    p = tmp_path / "small.jpg"
    data = b"a" * 1000
    p.write_bytes(data)

    assert FileHasher().partial_hash(p) == hashlib.md5(data).hexdigest()

def test_partial_hash_large_file_uses_head_and_tail(tmp_path):
    chunk = config.PARTIAL_HASH_SIZE
    head, middle, tail = b"H" * chunk, b"M" * chunk * 3, b"T" * chunk
    p = tmp_path / "large.jpg"
    p.write_bytes(head + middle + tail)

    assert FileHasher().partial_hash(p) == hashlib.md5(head + tail).hexdigest()

def test_partial_hash_ignores_middle_bytes(tmp_path):
    chunk = config.PARTIAL_HASH_SIZE
    a = tmp_path / "a.jpg"
    b = tmp_path / "b.jpg"
    a.write_bytes(b"H" * chunk + b"1" * chunk + b"T" * chunk)
    b.write_bytes(b"H" * chunk + b"2" * chunk + b"T" * chunk)

    hasher = FileHasher()

    assert hasher.partial_hash(a) == hasher.partial_hash(b)
    assert hasher.full_hash(a) != hasher.full_hash(b)
