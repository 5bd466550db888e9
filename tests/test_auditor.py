from tierflow.auditor.engine import Auditor, format_report
from tierflow.auditor.governance import build_governance_context
from tierflow.auditor.scanner import Scanner
from tierflow.config_loader import AuditConfig
from tierflow.levels import Level

from conftest import write

LEAKY = 'API_KEY = "abcdefghijklmnop1234"\n\ndef handler():\n    return 1   \n'


def test_scanner_finds_secrets_docs_and_whitespace(tmp_path):
    write(tmp_path, "app/keys.py", LEAKY)

    result = Scanner(tmp_path).scan(["app/keys.py"])

    kinds = {f.kind for f in result.findings}
    assert {"secret_detected", "missing_doc", "trailing_whitespace"} <= kinds
    assert result.files_scanned == 1
    assert "python" in result.languages_found


def test_scanner_whole_repo_skips_excluded_dirs(tmp_path):
    write(tmp_path, "app/ok.py", '"""Module."""\n')
    write(tmp_path, ".project-manager/notes.py", "# TODO: ignored\n")

    result = Scanner(tmp_path).scan()

    assert result.files_scanned == 1
    assert result.by_kind("todo") == []


def test_scanner_flags_long_functions(tmp_path):
    body = "\n".join(f"    x{i} = {i}" for i in range(8))
    write(tmp_path, "app/long.py", f'def long():\n    """Doc."""\n{body}\n')

    result = Scanner(tmp_path, long_function_lines=5).scan(["app/long.py"])

    assert [f.symbol for f in result.by_kind("complex_function")] == ["long"]


def test_gate_fails_only_on_blocking_kinds(tmp_path):
    write(tmp_path, "app/keys.py", LEAKY)
    write(tmp_path, "app/todo.py", "# TODO: later\n")
    auditor = Auditor(tmp_path, AuditConfig())

    assert auditor.run_gate(Level.TASK, "2.2.1.3", ["app/todo.py"]).status == "pass"
    failing = auditor.run_gate(Level.TASK, "2.2.1.3", ["app/keys.py"])
    assert failing.status == "fail"
    assert all(f["kind"] == "secret_detected" for f in failing.findings)


def test_end_audit_autofixes_and_persists(tmp_path):
    write(tmp_path, "app/ws.py", '"""Module."""\nvalue = 1   \n')
    auditor = Auditor(tmp_path, AuditConfig())

    report = auditor.run_end_audit(Level.SESSION, "2.2.1", {"files": ["app/ws.py"]})

    assert report.autofix_result.files_changed == ["app/ws.py"]
    assert (tmp_path / "app" / "ws.py").read_text() == '"""Module."""\nvalue = 1\n'
    assert [r.identifier for r in auditor.recent_reports()] == ["2.2.1"]
    assert "End Audit" in format_report(report, "End Audit")


def test_governance_context_scales_with_level(tmp_path):
    write(tmp_path, "app/keys.py", LEAKY)
    auditor = Auditor(tmp_path, AuditConfig())
    auditor.run_start_audit(Level.SESSION, "2.2.1", ["app/keys.py"])

    assert "Potential hardcoded secret" in build_governance_context(auditor, Level.SESSION)
    assert build_governance_context(auditor, Level.TASK) is None
