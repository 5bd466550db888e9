from typer.testing import CliRunner

from tierflow import __version__
from tierflow.cli import app

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"TIERFLOW v{__version__}" in result.stdout


def test_scope_set_show_clear(tmp_path):
    scope_file = tmp_path / ".project-manager" / ".tier-scope"

    result = runner.invoke(app, ["scope", "set", "feature", "booking", "--name", "Booking", "--repo", str(tmp_path)])
    assert result.exit_code == 0
    assert "feature.id=booking" in scope_file.read_text()

    result = runner.invoke(app, ["scope", "set", "session", "2.2.1", "--repo", str(tmp_path)])
    assert result.exit_code == 0

    result = runner.invoke(app, ["scope", "show", "--repo", str(tmp_path)])
    assert result.exit_code == 0
    assert "booking" in result.stdout
    assert "2.2.1" in result.stdout

    result = runner.invoke(app, ["scope", "clear", "session", "--repo", str(tmp_path)])
    assert result.exit_code == 0
    assert "session.id=\n" in scope_file.read_text()

    result = runner.invoke(app, ["scope", "clear", "--repo", str(tmp_path)])
    assert result.exit_code == 0
    assert not scope_file.exists()


def test_init_creates_layout(tmp_path):
    result = runner.invoke(app, ["init", str(tmp_path)])
    assert result.exit_code == 0
    assert (tmp_path / ".tierflow" / "config.yaml").exists()
    assert (tmp_path / ".project-manager" / "features").is_dir()
    assert ".tierflow/logs/" in (tmp_path / ".gitignore").read_text()


def test_unknown_level_is_rejected(tmp_path):
    result = runner.invoke(app, ["start", "epic", "1", "--repo", str(tmp_path)])
    assert result.exit_code != 0


def test_broken_repo_config_is_reported_as_a_failed_start(tmp_path):
    (tmp_path / ".tierflow").mkdir()
    (tmp_path / ".tierflow" / "config.yaml").write_text("testing: [unclosed\n")

    result = runner.invoke(app, ["start", "session", "2.2.1", "--repo", str(tmp_path), "--json"])

    assert result.exit_code == 1
    assert '"reason_code": "unhandled_error"' in result.stdout
