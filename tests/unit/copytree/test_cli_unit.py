from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from copytree import __version__, cli
from copytree.config import HeaderPolicy

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


def base_args(root: Path) -> list[str]:
    return ["--root", str(root), "--state-file", str(root.parent / "state.json")]


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text("print('app')\n", encoding="utf-8")
    (root / "src" / "util.py").write_text("print('util')\n", encoding="utf-8")
    return root


@pytest.mark.unit
def test_parse_args_merges_flags_into_settings(tmp_path: Path) -> None:
    args, settings = cli.parse_args(
        [
            "--root",
            str(tmp_path),
            "--character-limit",
            "500",
            "--header-policy",
            "allow_split",
            "--start-template",
            "BEGIN",
            "export",
            "--output",
            "out.html",
        ],
    )

    assert args.command == "export"
    assert args.output == Path("out.html")
    assert settings.character_limit == 500
    assert settings.header_policy is HeaderPolicy.ALLOW_SPLIT
    assert settings.export_start_template == "BEGIN"
    assert settings.roots == [tmp_path]


@pytest.mark.unit
def test_parse_args_version_flag(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.parse_args(["--version"])

    assert exc_info.value.code == 0
    captured = capsys.readouterr()
    assert __version__ in captured.out


@pytest.mark.unit
def test_select_persists_state_file(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main([*base_args(repo), "select", str(repo / "src" / "app.py")])

    assert exit_code == 0
    assert "1 selected" in capsys.readouterr().out
    state = json.loads((repo.parent / "state.json").read_text(encoding="utf-8"))
    assert state["selectedItems"] == [str((repo / "src" / "app.py").resolve())]


@pytest.mark.unit
def test_toggle_twice_leaves_selection_empty(repo: Path) -> None:
    target = str(repo / "src" / "util.py")

    cli.main([*base_args(repo), "toggle", target])
    cli.main([*base_args(repo), "toggle", target])

    state = json.loads((repo.parent / "state.json").read_text(encoding="utf-8"))
    assert state["selectedItems"] == []


@pytest.mark.unit
def test_path_outside_workspace_is_an_error(repo: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    outside = tmp_path / "outside.txt"
    outside.write_text("x", encoding="utf-8")

    exit_code = cli.main([*base_args(repo), "select", str(outside)])

    assert exit_code == cli.EXIT_ERROR
    assert "Not inside any workspace folder" in capsys.readouterr().err


@pytest.mark.unit
def test_commands_without_root_fail_explicitly(
    tmp_path: Path,
    mocker: MockerFixture,
    capsys: pytest.CaptureFixture[str],
) -> None:
    mocker.patch.dict("os.environ", {"COPYTREE_ROOTS": ""})

    exit_code = cli.main(["export", "--output", str(tmp_path / "out.html")])

    assert exit_code == cli.EXIT_ERROR
    assert "No workspace folder is open" in capsys.readouterr().err
    assert not (tmp_path / "out.html").exists()


@pytest.mark.unit
def test_export_without_character_limit_fails(repo: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    cli.main([*base_args(repo), "select", str(repo / "src" / "app.py")])

    exit_code = cli.main([*base_args(repo), "export", "--output", str(tmp_path / "out.html")])

    assert exit_code == cli.EXIT_ERROR
    assert "character_limit" in capsys.readouterr().err
    assert not (tmp_path / "out.html").exists()


@pytest.mark.unit
def test_clear_asks_for_confirmation(repo: Path, mocker: MockerFixture) -> None:
    cli.main([*base_args(repo), "select", str(repo / "src" / "app.py")])
    ask = mocker.patch("builtins.input", return_value="n")

    cli.main([*base_args(repo), "clear"])

    ask.assert_called_once()
    state = json.loads((repo.parent / "state.json").read_text(encoding="utf-8"))
    assert len(state["selectedItems"]) == 1

    cli.main([*base_args(repo), "clear", "--yes"])

    state = json.loads((repo.parent / "state.json").read_text(encoding="utf-8"))
    assert state["selectedItems"] == []


@pytest.mark.unit
def test_copy_writes_template_wrapped_text(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    cli.main([*base_args(repo), "select", str(repo / "src" / "app.py")])
    capsys.readouterr()

    exit_code = cli.main([*base_args(repo), "copy", "--template", "Look:\n%content%"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert out == "Look:\n------- src/app.py -----\nprint('app')\n------- end of src/app.py -----\n"


@pytest.mark.unit
def test_copy_names_second_root_files_by_root(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    lib = repo.parent / "lib"
    lib.mkdir()
    (lib / "b.py").write_text("b = 2\n", encoding="utf-8")
    args = [*base_args(repo), "--root", str(lib)]
    cli.main([*args, "select", str(repo / "src" / "app.py"), str(lib / "b.py")])
    capsys.readouterr()

    exit_code = cli.main([*args, "copy"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "------- lib/b.py -----\nb = 2\n------- end of lib/b.py -----\n" in out
    assert "------- src/app.py -----\n" in out


@pytest.mark.unit
def test_delete_prunes_selection(repo: Path) -> None:
    target = repo / "src" / "app.py"
    cli.main([*base_args(repo), "select", str(target)])

    exit_code = cli.main([*base_args(repo), "delete", str(target), "--yes"])

    assert exit_code == 0
    assert not target.exists()
    state = json.loads((repo.parent / "state.json").read_text(encoding="utf-8"))
    assert state["selectedItems"] == []
