from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from copytree.config import FileKind, NonTextReason
from copytree.exceptions import FileOperationError
from copytree.file_manipulation import (
    classify_path,
    classify_paths,
    create_file,
    create_folder,
    delete_path,
    looks_binary,
    relpath,
    rename_path,
)

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


@pytest.mark.unit
def test_relpath_uses_posix_separators_and_keeps_outside_paths(tmp_path: Path) -> None:
    assert relpath(tmp_path / "src" / "app.py", tmp_path) == "src/app.py"
    assert relpath(Path("/elsewhere/x.txt"), tmp_path) == "/elsewhere/x.txt"


@pytest.mark.unit
def test_looks_binary_detects_nul_bytes_suffixes_and_bad_utf8() -> None:
    assert looks_binary(Path("a.txt"), b"abc\x00def")
    assert looks_binary(Path("logo.png"), b"plain")
    assert looks_binary(Path("a.txt"), b"\xff\xfe\xfa rest of the data")
    assert not looks_binary(Path("a.txt"), "héllo".encode())


@pytest.mark.unit
def test_looks_binary_tolerates_sequence_cut_at_sniff_boundary() -> None:
    head = "abc".encode() + "é".encode()[:1]

    assert not looks_binary(Path("a.txt"), head)


@pytest.mark.unit
def test_classify_path_reads_text(tmp_path: Path) -> None:
    f = tmp_path / "a.txt"
    f.write_text("hello\n", encoding="utf-8")

    entry = classify_path(f, tmp_path)

    assert entry is not None
    assert entry.kind is FileKind.TEXT
    assert entry.rel == "a.txt"
    assert entry.content == "hello\n"


@pytest.mark.unit
def test_classify_path_demotes_directories_big_and_binary_files(tmp_path: Path) -> None:
    folder = tmp_path / "dir"
    folder.mkdir()
    big = tmp_path / "big.txt"
    big.write_text("x" * 20, encoding="utf-8")
    blob = tmp_path / "blob.dat"
    blob.write_bytes(b"\x00\x01\x02")

    dir_entry = classify_path(folder, tmp_path)
    big_entry = classify_path(big, tmp_path, max_text_bytes=10)
    blob_entry = classify_path(blob, tmp_path)

    assert dir_entry is not None
    assert dir_entry.reason is NonTextReason.DIRECTORY
    assert big_entry is not None
    assert big_entry.reason is NonTextReason.TOO_BIG
    assert blob_entry is not None
    assert blob_entry.reason is NonTextReason.BINARY
    assert not blob_entry.is_text


@pytest.mark.unit
def test_classify_path_returns_none_for_missing_path(tmp_path: Path) -> None:
    assert classify_path(tmp_path / "gone.txt", tmp_path) is None


@pytest.mark.unit
def test_classify_path_read_failure_is_non_text(tmp_path: Path, mocker: MockerFixture) -> None:
    f = tmp_path / "locked.txt"
    f.write_text("secret", encoding="utf-8")
    mocker.patch.object(Path, "read_bytes", side_effect=PermissionError("denied"))

    entry = classify_path(f, tmp_path)

    assert entry is not None
    assert entry.kind is FileKind.NON_TEXT
    assert entry.reason is NonTextReason.UNREADABLE


@pytest.mark.unit
def test_classify_paths_sorts_each_class_by_relative_path(tmp_path: Path) -> None:
    for name in ("b.txt", "a.txt", "c/z.txt"):
        p = tmp_path / name
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(name, encoding="utf-8")
    (tmp_path / "img.png").write_bytes(b"\x89PNG")

    paths = [str(tmp_path / n) for n in ("c/z.txt", "img.png", "b.txt", "a.txt", "c")]
    non_text, text = classify_paths(paths, tmp_path)

    assert [e.rel for e in non_text] == ["c", "img.png"]
    assert [e.rel for e in text] == ["a.txt", "b.txt", "c/z.txt"]


@pytest.mark.unit
def test_create_rename_delete_round(tmp_path: Path) -> None:
    created = create_file(tmp_path / "new" / "file.txt")
    folder = create_folder(tmp_path / "folder")

    renamed = rename_path(created, "renamed.txt")
    delete_path(folder)

    assert renamed == tmp_path / "new" / "renamed.txt"
    assert renamed.exists()
    assert not created.exists()
    assert not folder.exists()


@pytest.mark.unit
def test_filesystem_commands_refuse_conflicts(tmp_path: Path) -> None:
    existing = tmp_path / "a.txt"
    existing.write_text("", encoding="utf-8")
    (tmp_path / "b.txt").write_text("", encoding="utf-8")

    with pytest.raises(FileOperationError):
        create_file(existing)
    with pytest.raises(FileOperationError):
        rename_path(existing, "b.txt")
    with pytest.raises(FileOperationError):
        rename_path(existing, "../escape.txt")
    with pytest.raises(FileOperationError):
        delete_path(tmp_path / "missing")
