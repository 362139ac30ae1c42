from pathlib import Path

import pytest

from copytree import cli


def test_end_to_end_select_tree_and_export(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    repo = tmp_path / "repo"
    (repo / "src").mkdir(parents=True)
    (repo / "src" / "app.py").write_text("print('app')\n", encoding="utf-8")
    (repo / "src" / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00")
    (repo / "notes.md").write_text("# notes\n", encoding="utf-8")
    option_file = tmp_path / "copytree.yaml"
    option_file.write_text(
        "characterLimit: 1000\nexportStartTemplate: \"BEGIN\\n\"\nexportEndTemplate: \"END\\n\"\n",
        encoding="utf-8",
    )
    args = ["--root", str(repo), "--config", str(option_file)]

    assert cli.main([*args, "select", str(repo / "src" / "app.py"), str(repo / "src" / "logo.png")]) == 0
    assert cli.main([*args, "tree"]) == 0
    tree_out = capsys.readouterr().out
    assert "src/ (2) selected" in tree_out
    assert "notes.md ☑️" in tree_out

    output = tmp_path / "export.html"
    assert cli.main([*args, "export", "--output", str(output)]) == 0

    page = output.read_text(encoding="utf-8")
    assert "BEGIN\nsrc/logo.png\nsrc/app.py\nprint('app')\nend of src/app.py\nEND\n" in page
    assert (repo / ".copytree" / "state.json").exists()


def test_end_to_end_refresh_drops_deleted_selection(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    target = repo / "gone.txt"
    target.write_text("bye\n", encoding="utf-8")
    args = ["--root", str(repo)]
    cli.main([*args, "select", str(target)])
    target.unlink()
    capsys.readouterr()

    assert cli.main([*args, "status"]) == 0

    assert capsys.readouterr().out.startswith("0 selected")
