"""
Governance context injected at the start of a unit: a summary of recent
audit findings scaled to the level (coarser levels see more).
"""

from __future__ import annotations

from tierflow.levels import Level

SEVERITIES_BY_LEVEL: dict[Level, tuple[str, ...]] = {
    Level.FEATURE: ("high", "medium", "low"),
    Level.PHASE: ("high", "medium"),
    Level.SESSION: ("high",),
    Level.TASK: (),
}


def build_governance_context(auditor, level: Level, limit: int = 8) -> str | None:
    severities = SEVERITIES_BY_LEVEL[level]
    if not severities:
        return None
    findings = []
    for report in auditor.recent_reports():
        for finding in report.findings:
            if finding.get("severity") in severities:
                findings.append(finding)
    if not findings:
        return None
    lines = ["## Governance", "Recent audit findings to keep in mind:"]
    for finding in findings[:limit]:
        lines.append(f"- [{finding['severity']}] `{finding['file']}:{finding['line']}` {finding['description']}")
    return "\n".join(lines)
