from __future__ import annotations

from quizcraft.workspace import cli


def test_quizcraft_init_creates_workspace(tmp_path, capsys, monkeypatch):
    target = tmp_path / "workspace"
    monkeypatch.setenv("QUIZCRAFT_DATA_HOME", str(target))

    code = cli.main([])

    captured = capsys.readouterr()
    assert code == 0
    assert "Workspace ready" in captured.out
    assert target.is_dir()
    assert (target / "storage").is_dir()
    assert (target / "config" / "quizcraft.toml").exists()
    assert "(written)" in captured.out


def test_quizcraft_init_supports_custom_path(tmp_path, capsys):
    target = tmp_path / "custom"

    code = cli.main(["--path", str(target)])

    captured = capsys.readouterr()
    assert code == 0
    assert target.is_dir()
    assert str(target) in captured.out


def test_quizcraft_init_quiet_mode(tmp_path, capsys, monkeypatch):
    target = tmp_path / "quiet"
    monkeypatch.setenv("QUIZCRAFT_DATA_HOME", str(target))

    code = cli.main(["--quiet"])

    captured = capsys.readouterr()
    assert code == 0
    assert captured.out == ""


def test_quizcraft_init_keeps_existing_config(tmp_path, capsys):
    target = tmp_path / "keep"
    config_file = target / "config" / "quizcraft.toml"
    config_file.parent.mkdir(parents=True)
    config_file.write_text("# mine\n", encoding="utf-8")

    code = cli.main(["--path", str(target)])

    captured = capsys.readouterr()
    assert code == 0
    assert config_file.read_text(encoding="utf-8") == "# mine\n"
    assert "(exists)" in captured.out

    cli.main(["--path", str(target), "--force", "--quiet"])
    assert "[generation]" in config_file.read_text(encoding="utf-8")


def test_quizcraft_init_reports_workspace_error(tmp_path, capsys):
    target = tmp_path / "file"
    target.write_text("not a dir", encoding="utf-8")

    code = cli.main(["--path", str(target)])

    captured = capsys.readouterr()
    assert code == 1
    assert "Error:" in captured.err
