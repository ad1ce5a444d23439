import os
import pytest
from pathlib import Path
from photo_catalog.scanning.filesystem import ImageScanner, is_image_file

def test_is_image_file_is_case_insensitive():
    assert is_image_file(Path("a.JPG"))
    assert is_image_file(Path("b.cr2"))
    assert not is_image_file(Path("notes.txt"))
    assert not is_image_file(Path("clip.mp4"))

def test_scan_finds_nested_images_only(tmp_path):
    (tmp_path / "a" / "b").mkdir(parents=True)
    (tmp_path / "top.jpg").write_bytes(b"x")
    (tmp_path / "a" / "mid.png").write_bytes(b"x")
    (tmp_path / "a" / "b" / "deep.tif").write_bytes(b"x")
    (tmp_path / "a" / "readme.txt").write_text("ignore me")

    found = ImageScanner().scan(tmp_path)

    assert set(found) == {
        tmp_path / "top.jpg",
        tmp_path / "a" / "mid.png",
        tmp_path / "a" / "b" / "deep.tif",
    }

def test_scan_missing_root_yields_nothing(tmp_path):
    assert ImageScanner().scan(tmp_path / "nope") == []

def test_symlink_cycle_terminates(tmp_path):
    sub = tmp_path / "a"
    sub.mkdir()
    (sub / "img.jpg").write_bytes(b"x")
    try:
        os.symlink(tmp_path, sub / "loop", target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported")

    found = ImageScanner().scan(tmp_path)

    assert found == [sub / "img.jpg"]

def test_depth_bound_prunes_deep_trees(tmp_path, caplog):
    deep = tmp_path / "a" / "b"
    deep.mkdir(parents=True)
    (tmp_path / "a" / "shallow.jpg").write_bytes(b"x")
    (deep / "deep.jpg").write_bytes(b"x")

    found = ImageScanner(max_depth=1).scan(tmp_path)

    assert found == [tmp_path / "a" / "shallow.jpg"]
    assert "Max scan depth" in caplog.text

def test_expand_folders_dedupes_and_drops_missing(tmp_path):
    (tmp_path / "root" / "x" / "y").mkdir(parents=True)
    root = tmp_path / "root"

    folders = ImageScanner().expand_folders([str(root), str(root / "x"), str(tmp_path / "gone")])

    assert folders == [str(root), str(root / "x"), str(root / "x" / "y")]

def test_list_direct_images_is_not_recursive(tmp_path):
    (tmp_path / "sub").mkdir()
    (tmp_path / "a.jpg").write_bytes(b"x")
    (tmp_path / "sub" / "b.jpg").write_bytes(b"x")

    assert ImageScanner().list_direct_images(tmp_path) == [tmp_path / "a.jpg"]

def test_tree_mtime_tracks_descendants(tmp_path):
    sub = tmp_path / "sub"
    sub.mkdir()
    base = tmp_path.stat().st_mtime
    os.utime(sub, (base + 500, base + 500))

    scanner = ImageScanner()

    assert scanner.tree_mtime(tmp_path) == pytest.approx(base + 500)
    assert scanner.tree_mtime(tmp_path / "gone") is None
