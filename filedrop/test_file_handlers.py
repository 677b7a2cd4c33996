#!/usr/bin/env python3
"""
Tests for the upload and delete handlers
"""

import asyncio
import io
import re
import tempfile
from pathlib import Path

from starlette.datastructures import UploadFile

from drop_config import ServerConfig
from drop_errors import NotFound, SizeLimitExceeded, UnsupportedOperation, ValidationError
from file_handlers import DeleteHandler, UploadHandler
from file_tree import FileTreeLister


def make_upload(name: str, data: bytes) -> UploadFile:
    return UploadFile(file=io.BytesIO(data), filename=name)


def store(handler: UploadHandler, *uploads):
    return asyncio.run(handler.store(list(uploads)))


def expect(exc_type, coro):
    try:
        asyncio.run(coro)
    except exc_type:
        return
    raise AssertionError(f"expected {exc_type.__name__}")


def all_files(root: Path):
    return sorted(str(p.relative_to(root)) for p in root.rglob("*") if p.is_file())


def test_nested_upload_keeps_folders():
    print("\n[TEST 1] Testing nested upload...")

    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        handler = UploadHandler(ServerConfig(upload_dir=tmp, chunk_size=4))

        stored = store(handler,
                       make_upload("photos/2024/beach day.jpg", b"jpegdata"),
                       make_upload("readme.txt", b"hi"))

        assert stored[0] == {
            "name": "beach_day.jpg",
            "originalName": "photos/2024/beach day.jpg",
            "size": 8,
            "url": "/uploads/photos/2024/beach_day.jpg",
        }
        assert (root / "photos" / "2024" / "beach_day.jpg").read_bytes() == b"jpegdata"
        assert (root / "readme.txt").read_bytes() == b"hi"
        assert all_files(root) == ["photos/2024/beach_day.jpg", "readme.txt"], "no staging files left"
    print("  ✓ Folder structure preserved")


def test_nested_upload_overwrites():
    with tempfile.TemporaryDirectory() as tmp:
        handler = UploadHandler(ServerConfig(upload_dir=tmp))
        store(handler, make_upload("a/b.txt", b"first version"))
        store(handler, make_upload("a\\b.txt", b"second"))
        assert (Path(tmp) / "a" / "b.txt").read_bytes() == b"second"
        assert all_files(Path(tmp)) == ["a/b.txt"]


def test_traversal_upload_stays_in_root():
    print("\n[TEST 2] Testing traversal names...")

    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp) / "uploads"
        root.mkdir()
        handler = UploadHandler(ServerConfig(upload_dir=str(root)))

        stored = store(handler, make_upload("../../x.txt", b"x"))
        assert stored[0]["url"] == "/uploads/x.txt"
        assert (root / "x.txt").read_bytes() == b"x"
        assert sorted(p.name for p in Path(tmp).iterdir()) == ["uploads"]
    print("  ✓ Upload stored under the root")


def test_flat_upload_prefixes_names():
    print("\n[TEST 3] Testing flat upload...")

    with tempfile.TemporaryDirectory() as tmp:
        handler = UploadHandler(ServerConfig(upload_dir=tmp, nested_paths=False))
        first = store(handler, make_upload("dir/same.txt", b"1"))[0]
        second = store(handler, make_upload("same.txt", b"2"))[0]

        assert re.fullmatch(r"\d+-[0-9a-f]{8}-same\.txt", first["name"]), first["name"]
        assert first["name"] != second["name"]
        assert first["url"] == f"/uploads/{first['name']}"
        assert sorted(all_files(Path(tmp))) == sorted([first["name"], second["name"]])
    print("  ✓ Unique names, no overwrite")


def test_upload_rejections():
    print("\n[TEST 4] Testing rejected uploads...")

    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        (root / "keep.txt").write_bytes(b"original")
        handler = UploadHandler(ServerConfig(upload_dir=tmp, max_file_size=5, chunk_size=2))

        expect(ValidationError, handler.store([]))
        expect(ValidationError, handler.store([make_upload("../..", b"x")]))
        expect(SizeLimitExceeded, handler.store([
            make_upload("keep.txt", b"new"),
            make_upload("big.bin", b"123456"),
        ]))

        assert (root / "keep.txt").read_bytes() == b"original", "rejected request must not overwrite"
        assert all_files(root) == ["keep.txt"], "staging files must be removed"

        stored = store(handler, make_upload("exact.bin", b"12345"))
        assert stored[0]["size"] == 5
    print("  ✓ Empty, invalid and oversized uploads rejected")


def test_rejected_upload_leaves_no_folders():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        (root / "docs").mkdir()
        handler = UploadHandler(ServerConfig(upload_dir=tmp, max_file_size=4, chunk_size=2))

        expect(SizeLimitExceeded, handler.store([make_upload("newdir/sub/big.bin", b"123456")]))
        expect(SizeLimitExceeded, handler.store([
            make_upload("docs/fresh/ok.txt", b"ok"),
            make_upload("docs/big.bin", b"123456"),
        ]))

        assert sorted(p.name for p in root.iterdir()) == ["docs"]
        assert list((root / "docs").iterdir()) == [], "only folders the request created are removed"
        assert [e.name for e in FileTreeLister(root).list_tree()] == ["docs"]


def test_destination_conflicts():
    print("\n[TEST 5] Testing destination conflicts...")

    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        (root / "a.txt").write_text("file")
        (root / "d").mkdir()
        handler = UploadHandler(ServerConfig(upload_dir=tmp))

        expect(ValidationError, handler.store([make_upload("a.txt/b.txt", b"x")]))
        expect(ValidationError, handler.store([make_upload("a.txt/sub/b.txt", b"x")]))
        expect(ValidationError, handler.store([make_upload("d", b"x")]))
        expect(ValidationError, handler.store([
            make_upload("new/ok.txt", b"ok"),
            make_upload("d", b"x"),
        ]))

        assert (root / "a.txt").read_text() == "file"
        assert (root / "d").is_dir()
        assert all_files(root) == ["a.txt"]
        assert sorted(p.name for p in root.iterdir()) == ["a.txt", "d"]
    print("  ✓ Conflicting destinations rejected")


def test_hidden_names_rejected():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        nested = UploadHandler(ServerConfig(upload_dir=tmp))

        expect(ValidationError, nested.store([make_upload(".env", b"SECRET=1")]))
        expect(ValidationError, nested.store([make_upload("dir/.hidden/x.txt", b"x")]))
        assert list(root.iterdir()) == []

        flat = UploadHandler(ServerConfig(upload_dir=tmp, nested_paths=False))
        stored = store(flat, make_upload(".env", b"SECRET=1"))[0]
        assert stored["name"].endswith("-.env")
        assert not stored["name"].startswith(".")
        assert [e.name for e in FileTreeLister(root).list_flat()] == [stored["name"]]


def test_nested_delete():
    print("\n[TEST 6] Testing nested delete...")

    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        (root / "docs").mkdir()
        (root / "docs" / "a.txt").write_text("a")
        handler = DeleteHandler(ServerConfig(upload_dir=tmp))

        expect(UnsupportedOperation, handler.delete("docs"))
        assert (root / "docs" / "a.txt").exists()

        expect(NotFound, handler.delete("docs/missing.txt"))
        expect(NotFound, handler.delete("docs/a.txt/child"))
        expect(ValidationError, handler.delete(""))
        expect(ValidationError, handler.delete("../.."))

        # '..' is dropped, not resolved
        expect(NotFound, handler.delete("docs/../docs/a.txt"))

        assert asyncio.run(handler.delete("docs/a.txt")) == "docs/a.txt"
        assert not (root / "docs" / "a.txt").exists()
        assert (root / "docs").is_dir()
    print("  ✓ Files deleted, folders refused")


def test_flat_delete_strips_directories():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        (root / "sub").mkdir()
        (root / "sub" / "f.txt").write_text("nested")
        (root / "f.txt").write_text("top")
        handler = DeleteHandler(ServerConfig(upload_dir=tmp, nested_paths=False))

        assert asyncio.run(handler.delete("sub/f.txt")) == "f.txt"
        assert not (root / "f.txt").exists()
        assert (root / "sub" / "f.txt").exists()

        expect(UnsupportedOperation, handler.delete("sub"))
        expect(NotFound, handler.delete("..\\f.txt"))
        expect(ValidationError, handler.delete("a/.."))


def main():
    """Run all tests"""
    print("=" * 60)
    print("File Handler Test Suite")
    print("=" * 60)

    test_nested_upload_keeps_folders()
    test_nested_upload_overwrites()
    test_traversal_upload_stays_in_root()
    test_flat_upload_prefixes_names()
    test_upload_rejections()
    test_rejected_upload_leaves_no_folders()
    test_destination_conflicts()
    test_hidden_names_rejected()
    test_nested_delete()
    test_flat_delete_strips_directories()

    print("\n" + "=" * 60)
    print("✓ All tests passed!")
    print("=" * 60)


if __name__ == "__main__":
    main()
