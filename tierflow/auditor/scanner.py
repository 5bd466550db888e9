"""
TIERFLOW Auditor: Scanner

Regex scan of source files for audit findings. Pure Python, no external
calls. Fast and deterministic.

Scans either a whole repository or an explicit list of files (the files a
unit of work touched).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator


# ---------------------------------------------------------------------------
# Finding Types
# ---------------------------------------------------------------------------

@dataclass
class Finding:
    """A single audit finding."""
    kind: str                    # "missing_doc", "todo", "complex_function", "secret_detected", "trailing_whitespace"
    file: str                    # relative path from repo root
    line: int                    # 1-indexed line number
    symbol: str                  # function name or relevant identifier
    description: str             # human-readable description
    severity: str = "low"        # "low" | "medium" | "high"
    context: str = ""
    fixable: bool = False


@dataclass
class ScanResult:
    """Results of a scan."""
    repo_path: Path
    findings: list[Finding] = field(default_factory=list)
    files_scanned: int = 0
    languages_found: set[str] = field(default_factory=set)

    def by_file(self) -> dict[str, list[Finding]]:
        """Group findings by file path."""
        grouped: dict[str, list[Finding]] = {}
        for f in self.findings:
            grouped.setdefault(f.file, []).append(f)
        return grouped

    def by_kind(self, kind: str) -> list[Finding]:
        return [f for f in self.findings if f.kind == kind]

    def summary(self) -> dict:
        kinds: dict[str, int] = {}
        for f in self.findings:
            kinds[f.kind] = kinds.get(f.kind, 0) + 1
        return {
            "total": len(self.findings),
            "files_scanned": self.files_scanned,
            "by_kind": kinds,
        }


# ---------------------------------------------------------------------------
# Language Config
# ---------------------------------------------------------------------------

LANGUAGE_MAP = {
    ".py": "python",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".vue": "vue",
    ".go": "go",
    ".rs": "rust",
}

DEFAULT_EXCLUDES = [
    ".git", "node_modules", ".tierflow", ".project-manager",
    "dist", "build", "__pycache__", "venv", ".venv", "site-packages",
]


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------

class Scanner:
    """
    Scans source files for audit findings.
    """

    def __init__(
        self,
        repo_path: Path,
        exclude_dirs: list[str] | None = None,
        long_function_lines: int = 60,
    ):
        self.repo_path = Path(repo_path).resolve()
        self.exclude_dirs = set(exclude_dirs or DEFAULT_EXCLUDES)
        self.long_function_lines = long_function_lines

    def scan(self, files: Iterable[str] | None = None) -> ScanResult:
        """Run all checks over ``files`` (relative paths) or the whole repository."""
        result = ScanResult(repo_path=self.repo_path)

        paths = self._resolve(files) if files is not None else self._iter_source_files()
        for file_path in paths:
            rel = file_path.relative_to(self.repo_path).as_posix()
            lang = LANGUAGE_MAP.get(file_path.suffix)
            if lang:
                result.languages_found.add(lang)

            try:
                source = file_path.read_text(encoding="utf-8", errors="ignore")
            except OSError:
                continue

            result.files_scanned += 1

            result.findings.extend(self._check_missing_docs(rel, source, lang))
            result.findings.extend(self._check_todos(rel, source))
            result.findings.extend(self._check_complex_functions(rel, source, lang))
            result.findings.extend(self._check_secrets(rel, source))
            result.findings.extend(self._check_trailing_whitespace(rel, source))

        return result

    def _resolve(self, files: Iterable[str]) -> Iterator[Path]:
        for rel in files:
            path = self.repo_path / rel
            if path.is_file() and path.suffix in LANGUAGE_MAP:
                yield path

    def _iter_source_files(self) -> Iterator[Path]:
        """Yield all source files, respecting exclusions."""
        for path in self.repo_path.rglob("*"):
            if not path.is_file():
                continue
            if any(exc in path.parts for exc in self.exclude_dirs):
                continue
            if path.suffix in LANGUAGE_MAP:
                yield path

    # -----------------------------------------------------------------------
    # Check: Missing Docstrings
    # -----------------------------------------------------------------------

    def _check_missing_docs(self, rel: str, source: str, lang: str | None) -> list[Finding]:
        """Find public Python functions without docstrings."""
        if lang != "python":
            return []

        findings = []
        lines = source.splitlines()

        for i, line in enumerate(lines):
            match = re.match(r"^\s*(?:async\s+)?def\s+(\w+)", line)
            if not match:
                continue
            fn_name = match.group(1)
            if fn_name.startswith("_"):
                continue

            # Skip to the end of the signature, then look at the first body line.
            j = i
            while j < len(lines) and not lines[j].rstrip().endswith(":"):
                j += 1
            j += 1
            while j < len(lines) and lines[j].strip() == "":
                j += 1

            next_line = lines[j].strip() if j < len(lines) else ""
            if not (next_line.startswith('"""') or next_line.startswith("'''")):
                findings.append(Finding(
                    kind="missing_doc",
                    file=rel,
                    line=i + 1,
                    symbol=fn_name,
                    description=f"Public function `{fn_name}` is missing a docstring",
                    severity="low",
                    context="\n".join(lines[max(0, i - 1):min(len(lines), i + 4)]),
                ))

        return findings

    # -----------------------------------------------------------------------
    # Check: TODO / FIXME Comments
    # -----------------------------------------------------------------------

    def _check_todos(self, rel: str, source: str) -> list[Finding]:
        """Find TODO and FIXME comments."""
        findings = []
        pattern = re.compile(r"(?:#|//|/\*)\s*(TODO|FIXME|HACK|XXX)\b\s*[:\-]?\s*(.*)", re.IGNORECASE)

        for i, line in enumerate(source.splitlines()):
            match = pattern.search(line)
            if match:
                kind = match.group(1).upper()
                message = match.group(2).strip()
                findings.append(Finding(
                    kind="todo",
                    file=rel,
                    line=i + 1,
                    symbol=kind,
                    description=f"{kind}: {message}" if message else f"{kind} comment at line {i+1}",
                    severity="medium" if kind == "FIXME" else "low",
                    context=line.strip(),
                ))

        return findings

    # -----------------------------------------------------------------------
    # Check: Long Functions
    # -----------------------------------------------------------------------

    def _check_complex_functions(self, rel: str, source: str, lang: str | None) -> list[Finding]:
        """Find functions longer than the configured threshold."""
        if lang == "python":
            spans = _python_function_spans(source)
        elif lang in ("typescript", "tsx", "javascript", "go", "rust", "vue"):
            spans = _brace_function_spans(source)
        else:
            return []

        threshold = self.long_function_lines
        findings = []
        for name, start, end in spans:
            length = end - start + 1
            if length > threshold:
                findings.append(Finding(
                    kind="complex_function",
                    file=rel,
                    line=start + 1,
                    symbol=name,
                    description=f"Function `{name}` is {length} lines long (>{threshold})",
                    severity="medium",
                    context=f"Function spans lines {start+1}-{end+1}",
                ))
        return findings

    # -----------------------------------------------------------------------
    # Check: Hardcoded Secrets
    # -----------------------------------------------------------------------

    def _check_secrets(self, rel: str, source: str) -> list[Finding]:
        """Find hardcoded secrets or API keys."""
        findings = []
        pattern = re.compile(r"(?i)(?:api_key|secret|token|password)\s*[:=]\s*['\"]([a-zA-Z0-9_\-]{16,})['\"]")

        for i, line in enumerate(source.splitlines()):
            if pattern.search(line):
                findings.append(Finding(
                    kind="secret_detected",
                    file=rel,
                    line=i + 1,
                    symbol="secret",
                    description="Potential hardcoded secret or API key detected",
                    severity="high",
                    context=line.strip(),
                ))

        return findings

    # -----------------------------------------------------------------------
    # Check: Trailing Whitespace (autofixable)
    # -----------------------------------------------------------------------

    def _check_trailing_whitespace(self, rel: str, source: str) -> list[Finding]:
        findings = []
        for i, line in enumerate(source.splitlines()):
            if line != line.rstrip():
                findings.append(Finding(
                    kind="trailing_whitespace",
                    file=rel,
                    line=i + 1,
                    symbol="whitespace",
                    description="Trailing whitespace",
                    severity="low",
                    fixable=True,
                ))
        return findings


def _python_function_spans(source: str) -> list[tuple[str, int, int]]:
    """(name, first line, last non-blank line) per def, using indentation."""
    lines = source.splitlines()
    spans = []
    fn_pattern = re.compile(r"^(\s*)(?:async\s+)?def\s+(\w+)")
    for i, line in enumerate(lines):
        match = fn_pattern.match(line)
        if not match:
            continue
        indent = len(match.group(1))
        last = i
        for j in range(i + 1, len(lines)):
            stripped = lines[j].strip()
            if not stripped:
                continue
            if len(lines[j]) - len(lines[j].lstrip()) <= indent:
                break
            last = j
        spans.append((match.group(2), i, last))
    return spans


def _brace_function_spans(source: str) -> list[tuple[str, int, int]]:
    lines = source.splitlines()
    spans = []
    fn_pattern = re.compile(r"^\s*(?:export\s+)?(?:pub\s+)?(?:async\s+)?(?:fn|func|function)\s+(\w+)")
    fn_start = None
    fn_name = ""
    depth = 0
    for i, line in enumerate(lines):
        if fn_start is None:
            match = fn_pattern.match(line)
            if not match:
                continue
            fn_name, fn_start, depth = match.group(1), i, 0
        depth += line.count("{") - line.count("}")
        if depth <= 0 and "{" in "".join(lines[fn_start:i + 1]):
            spans.append((fn_name, fn_start, i))
            fn_start = None
    return spans
