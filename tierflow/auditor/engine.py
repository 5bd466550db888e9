"""
TIERFLOW Auditor: Engine

Runs the scanner over the files a unit touched and turns findings into an
``AuditReport``. Three entry points:

  - start audit:  baseline of the unit's current files (non-blocking)
  - gate:         blocking check before a unit may end (failing kinds only)
  - end audit:    full report, optionally applying autofixes

Reports are persisted as JSON so later starts can inject them as
governance context.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, Field

from tierflow.auditor.scanner import Finding, Scanner
from tierflow.config_loader import AuditConfig
from tierflow.identifiers import to_filename
from tierflow.levels import Level

AuditStatus = Literal["pass", "warn", "fail"]


class AutofixResult(BaseModel):
    files_changed: list[str] = Field(default_factory=list)
    fixes_applied: int = 0


class AuditReport(BaseModel):
    level: Level
    identifier: str
    kind: Literal["start", "gate", "end"]
    status: AuditStatus
    findings: list[dict[str, Any]] = Field(default_factory=list)
    summary: str = ""
    autofix_result: AutofixResult | None = None
    created_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class Auditor:
    def __init__(self, repo_path: Path, config: AuditConfig):
        self.repo_path = Path(repo_path).resolve()
        self.config = config
        self.scanner = Scanner(self.repo_path, long_function_lines=config.long_function_lines)

    @property
    def reports_dir(self) -> Path:
        return self.repo_path / self.config.reports_dir

    # -----------------------------------------------------------------------
    # Entry points
    # -----------------------------------------------------------------------

    def run_start_audit(self, level: Level, identifier: str, files: list[str]) -> AuditReport:
        findings = self._scan(files)
        report = self._report(level, identifier, "start", findings)
        self._store(report)
        return report

    def run_gate(self, level: Level, identifier: str, files: list[str]) -> AuditReport:
        """Only kinds listed in ``audit.fail_on`` count; anything else is ignored here."""
        blocking = [f for f in self._scan(files) if f.kind in self.config.fail_on]
        return self._report(level, identifier, "gate", blocking)

    def run_end_audit(self, level: Level, identifier: str, payload: dict[str, Any]) -> AuditReport:
        files = list(payload.get("files", []))
        findings = self._scan(files)
        autofix = None
        if self.config.autofix:
            autofix = self._autofix([f for f in findings if f.fixable])
            if autofix.fixes_applied:
                findings = self._scan(files)
        report = self._report(level, identifier, "end", findings)
        report.autofix_result = autofix
        self._store(report)
        return report

    def recent_reports(self, limit: int = 5) -> list[AuditReport]:
        if not self.reports_dir.is_dir():
            return []
        paths = sorted(self.reports_dir.glob("*.json"), key=lambda p: p.stat().st_mtime, reverse=True)
        reports = []
        for path in paths[:limit]:
            try:
                reports.append(AuditReport.model_validate_json(path.read_text(encoding="utf-8")))
            except ValueError as e:
                logger.warning(f"[AUDIT] Skipping unreadable report {path.name}: {e}")
        return reports

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _scan(self, files: list[str]) -> list[Finding]:
        if not files:
            return []
        return self.scanner.scan(files).findings

    def _report(self, level: Level, identifier: str, kind: str, findings: list[Finding]) -> AuditReport:
        failing = [f for f in findings if f.kind in self.config.fail_on]
        if failing:
            status: AuditStatus = "fail"
        elif findings:
            status = "warn"
        else:
            status = "pass"
        counts: dict[str, int] = {}
        for f in findings:
            counts[f.kind] = counts.get(f.kind, 0) + 1
        summary = ", ".join(f"{k}: {v}" for k, v in sorted(counts.items())) or "no findings"
        logger.info(f"[AUDIT] {kind} audit {level.value} {identifier}: {status} ({summary})")
        return AuditReport(
            level=level,
            identifier=identifier,
            kind=kind,
            status=status,
            findings=[asdict(f) for f in findings],
            summary=summary,
        )

    def _autofix(self, fixable: list[Finding]) -> AutofixResult:
        result = AutofixResult()
        for rel in sorted({f.file for f in fixable}):
            path = self.repo_path / rel
            original = path.read_text(encoding="utf-8")
            fixed = "\n".join(line.rstrip() for line in original.split("\n"))
            if fixed != original:
                path.write_text(fixed, encoding="utf-8")
                result.files_changed.append(rel)
                result.fixes_applied += sum(1 for f in fixable if f.file == rel)
        return result

    def _store(self, report: AuditReport) -> None:
        self.reports_dir.mkdir(parents=True, exist_ok=True)
        name = f"{report.level.value}-{to_filename(report.identifier)}-{report.kind}.json"
        (self.reports_dir / name).write_text(report.model_dump_json(indent=2), encoding="utf-8")


def format_report(report: AuditReport, title: str, limit: int = 10) -> str:
    lines = [f"## {title}", f"**Status:** {report.status.upper()} ({report.summary})"]
    for finding in report.findings[:limit]:
        lines.append(f"- `{finding['file']}:{finding['line']}` {finding['description']}")
    if len(report.findings) > limit:
        lines.append(f"- ... and {len(report.findings) - limit} more")
    if report.autofix_result and report.autofix_result.fixes_applied:
        lines.append(
            f"**Autofix:** {report.autofix_result.fixes_applied} fix(es) in "
            f"{len(report.autofix_result.files_changed)} file(s)"
        )
    return "\n".join(lines)
