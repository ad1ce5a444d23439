import os
import pytest
from photo_catalog.duplicates.cache import CacheEntry, FolderContentCache, decode_cache
from photo_catalog.models import ComparisonMode, FingerprintKind, FolderContent
from photo_catalog import config

@pytest.fixture
def album(tmp_path, make_image):
    root = tmp_path / "album"
    make_image(root / "a.png", 20, 10)
    make_image(root / "trip" / "b.png", 30, 15)
    return root

def _age(path, seconds):
    st = os.stat(path)
    os.utime(path, (st.st_atime, st.st_mtime + seconds))

def test_compute_is_recursive_with_relative_paths(album):
    cache = FolderContentCache()

    content = cache.get_or_compute(str(album), ComparisonMode.QUICK)

    assert content.all_files == ["a.png", "trip/b.png"]
    assert content.all_subfolders == ["trip"]
    info = content.file_info["trip/b.png"]
    assert (info.image_width, info.image_height) == (30, 15)
    assert info.partial_hash is None
    assert info.fingerprint == FingerprintKind.SIZE_ONLY
    assert content.total_size == (album / "a.png").stat().st_size + (album / "trip" / "b.png").stat().st_size

def test_valid_entry_is_reused(monkeypatch, album):
    cache = FolderContentCache()
    cache.get_or_compute(str(album), ComparisonMode.QUICK)

    calls = []
    monkeypatch.setattr(cache, "compute", lambda *a, **kw: calls.append(a))
    cache.get_or_compute(str(album), ComparisonMode.QUICK)

    assert calls == []

def test_stale_entry_is_recomputed(album):
    cache = FolderContentCache()
    cache.get_or_compute(str(album), ComparisonMode.QUICK)
    assert not cache.needs_compute(str(album), ComparisonMode.QUICK)

    _age(album / "trip", 10)

    assert cache.needs_compute(str(album), ComparisonMode.QUICK)

def test_mtime_within_tolerance_is_still_valid(album):
    cache = FolderContentCache()
    cache.get_or_compute(str(album), ComparisonMode.QUICK)

    _age(album, config.CACHE_MTIME_TOLERANCE_SEC / 2)

    assert not cache.needs_compute(str(album), ComparisonMode.QUICK)

def test_sanity_check_rejects_empty_entry_for_folder_with_images(album):
    cache = FolderContentCache()
    entry = CacheEntry(folder_mtime=album.stat().st_mtime + 3600, content=FolderContent())

    assert not cache.is_entry_valid(str(album), entry)

def test_quick_entry_is_recomputed_for_deep(album):
    cache = FolderContentCache()
    cache.get_or_compute(str(album), ComparisonMode.QUICK)

    assert cache.needs_compute(str(album), ComparisonMode.DEEP)
    content = cache.get_or_compute(str(album), ComparisonMode.DEEP)

    assert all(i.partial_hash for i in content.file_info.values())
    assert all(i.fingerprint == FingerprintKind.SIZE_AND_HASH for i in content.file_info.values())
    # Deep fingerprints also serve Quick comparisons
    assert not cache.needs_compute(str(album), ComparisonMode.QUICK)

def test_save_and_load(tmp_path, album):
    path = tmp_path / config.CACHE_FILENAME
    cache = FolderContentCache(path)
    original = cache.get_or_compute(str(album), ComparisonMode.DEEP)
    assert cache.save(ComparisonMode.DEEP)

    reloaded = FolderContentCache(path)

    assert reloaded.load() == 1
    assert reloaded.get(str(album)).content == original
    assert reloaded.last_mode == ComparisonMode.DEEP
    assert [p.name for p in tmp_path.iterdir() if p.name.endswith(".tmp")] == []

def test_load_drops_deleted_folders(tmp_path, album, make_image):
    gone = tmp_path / "gone"
    make_image(gone / "x.png")
    path = tmp_path / config.CACHE_FILENAME
    cache = FolderContentCache(path)
    cache.get_or_compute(str(album), ComparisonMode.QUICK)
    cache.get_or_compute(str(gone), ComparisonMode.QUICK)
    cache.save()

    (gone / "x.png").unlink()
    gone.rmdir()

    reloaded = FolderContentCache(path)
    assert reloaded.load() == 1
    assert reloaded.get(str(gone)) is None

def test_version_mismatch_discards_everything(monkeypatch, tmp_path, album, caplog):
    path = tmp_path / config.CACHE_FILENAME
    cache = FolderContentCache(path)
    cache.get_or_compute(str(album), ComparisonMode.QUICK)
    monkeypatch.setattr(config, "CACHE_VERSION", "FolderContentCache_v2.0")
    cache.save()
    monkeypatch.undo()

    reloaded = FolderContentCache(path)

    assert reloaded.load() == 0
    assert reloaded.entries == {}
    assert "Discarding folder cache" in caplog.text

def test_truncated_file_is_discarded(tmp_path, album):
    path = tmp_path / config.CACHE_FILENAME
    cache = FolderContentCache(path)
    cache.get_or_compute(str(album), ComparisonMode.QUICK)
    cache.save()
    path.write_bytes(path.read_bytes()[:-7])

    assert FolderContentCache(path).load() == 0

def test_decode_rejects_garbage():
    from photo_catalog.exceptions import CacheFormatError
    with pytest.raises(CacheFormatError):
        decode_cache(b"\x00\x00\x00\xffnope")

def test_invalidate(album):
    cache = FolderContentCache()
    cache.get_or_compute(str(album), ComparisonMode.QUICK)

    cache.invalidate(str(album))

    assert cache.get(str(album)) is None
    assert cache.needs_compute(str(album), ComparisonMode.QUICK)

def test_undecodable_file_name_survives_save_and_load(tmp_path, album):
    raw = os.path.join(os.fsencode(album), b"caf\xe9.png")
    try:
        with open(raw, "wb") as f:
            f.write((album / "a.png").read_bytes())
    except OSError:
        pytest.skip("filesystem rejects non UTF-8 names")
    path = tmp_path / config.CACHE_FILENAME
    cache = FolderContentCache(path)
    original = cache.get_or_compute(str(album), ComparisonMode.QUICK)
    assert os.fsdecode(b"caf\xe9.png") in original.all_files

    assert cache.save(ComparisonMode.QUICK)
    reloaded = FolderContentCache(path)

    assert reloaded.load() == 1
    assert reloaded.get(str(album)).content == original

def test_changed_file_is_not_served_from_memo(album, make_image):
    cache = FolderContentCache()
    cache.get_or_compute(str(album), ComparisonMode.QUICK)

    make_image(album / "a.png", 64, 48)
    cache.invalidate(str(album))
    content = cache.get_or_compute(str(album), ComparisonMode.QUICK)

    info = content.file_info["a.png"]
    assert (info.image_width, info.image_height) == (64, 48)
