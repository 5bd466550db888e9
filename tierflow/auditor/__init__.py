from tierflow.auditor.engine import AuditReport, Auditor, AutofixResult, format_report
from tierflow.auditor.scanner import Finding, ScanResult, Scanner

__all__ = ["AuditReport", "Auditor", "AutofixResult", "Finding", "ScanResult", "Scanner", "format_report"]
