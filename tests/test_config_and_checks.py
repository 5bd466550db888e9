import socket

import pytest

from tierflow.checks import analyze_test_error, is_test_file, validate_test_goals
from tierflow.config_loader import ConfigError, PreflightConfig, load_config
from tierflow.levels import Level
from tierflow.preflight import verify_app

from conftest import write


def test_defaults_load():
    config = load_config()
    assert config.docs.scope_file == ".project-manager/.tier-scope"
    assert config.testing.require_explicit == [Level.SESSION]
    assert ".project-manager/" in config.git.ignore_dirty_paths
    assert "# DEBUG" in config.comments.strip_markers


def test_repo_override_merges(tmp_path):
    write(tmp_path, ".tierflow/config.yaml", "testing:\n  command: make test\nverify:\n  commands: [ruff check .]\n")
    config = load_config(tmp_path)
    assert config.testing.command == "make test"
    assert config.testing.validate_goals is True
    assert config.verify.commands == ["ruff check ."]


def test_env_override(tmp_path, monkeypatch):
    monkeypatch.setenv("TIERFLOW_TEST_COMMAND", "tox -q")
    assert load_config(tmp_path).testing.command == "tox -q"


def test_invalid_config_raises(tmp_path):
    write(tmp_path, ".tierflow/config.yaml", "testing: [unclosed\n")
    with pytest.raises(ConfigError):
        load_config(tmp_path)

    write(tmp_path, ".tierflow/config.yaml", "testing:\n  timeout_seconds: soon\n")
    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_error_analysis_points_at_app_code():
    output = 'File "app/slots.py", line 4, in slots\nFile "tests/test_slots.py", line 9\nAssertionError'
    analysis = analyze_test_error(output)
    assert not analysis.is_test_code_error
    assert analysis.affected_files == ["app/slots.py"]


def test_error_analysis_points_at_test_code():
    output = 'File "tests/test_slots.py", line 9, in test_x\nNameError: name \'slot\' is not defined'
    analysis = analyze_test_error(output)
    assert analysis.is_test_code_error
    assert analysis.affected_files == ["tests/test_slots.py"]


def test_test_file_detection():
    assert is_test_file("tests/test_slots.py")
    assert not is_test_file("app/slots.py")


def test_goal_validation(tmp_path):
    write(tmp_path, "tests/test_slots.py", "")
    section = "#### Task 1.1.1.1: X\n**Test Goals:**\n- Slots in `tests/test_slots.py`\n- Holds in `tests/test_holds.py`\n"

    result = validate_test_goals(section, tmp_path)

    assert not result.success
    assert result.missing == ["Holds in `tests/test_holds.py`"]
    assert validate_test_goals("no goals here", tmp_path).success


def test_preflight_reports_closed_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    config = PreflightConfig(port=port, timeout_seconds=0.3, poll_interval_seconds=0.1)

    result = verify_app(config)

    assert not result.success
    assert f"127.0.0.1:{port}" in result.output


def test_preflight_accepts_listening_port():
    with socket.socket() as server:
        server.bind(("127.0.0.1", 0))
        server.listen()
        config = PreflightConfig(port=server.getsockname()[1], timeout_seconds=1)
        assert verify_app(config).success
