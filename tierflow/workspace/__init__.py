"""
TIERFLOW Workspace: the git working tree.

Thin wrapper over the ``git`` CLI for the operations the tier workflows
need: branch inspection, creation and checkout, commits, merges and pushes.
Every command goes through ``_run_cmd`` and raises ``WorkspaceError`` on a
non-zero exit.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

from loguru import logger


class WorkspaceError(Exception):
    pass


class UncommittedChangesError(WorkspaceError):
    """A branch switch was refused because the working tree is dirty."""

    def __init__(self, files: list[str]):
        self.files = files
        super().__init__(f"Uncommitted changes block the branch switch: {', '.join(files[:10])}")


class GitRepo:
    """
    Git operations against a single working tree.
    """

    def __init__(self, repo_path: Path, ignore_dirty_paths: list[str] | None = None, remote: str = "origin"):
        self.repo_path = Path(repo_path).resolve()
        self.ignore_dirty_paths = list(ignore_dirty_paths or [])
        self.remote = remote

    def current_branch(self) -> str:
        return self._git("rev-parse", "--abbrev-ref", "HEAD", capture=True).strip()

    def branch_exists(self, name: str) -> bool:
        """Check if a local branch exists."""
        res = self._git("branch", "--list", name, capture=True)
        return any(line.strip(" *") == name for line in res.splitlines())

    def dirty_files(self) -> list[str]:
        """Paths with uncommitted changes, minus the workflow's own bookkeeping files."""
        status = self._git("status", "--porcelain", capture=True)
        files = []
        for line in status.splitlines():
            if not line.strip():
                continue
            path = line[3:].strip()
            if any(path.startswith(prefix) for prefix in self.ignore_dirty_paths):
                continue
            files.append(path)
        return files

    def has_uncommitted_changes(self) -> bool:
        return bool(self.dirty_files())

    def create_branch(self, name: str, base: str | None = None) -> None:
        if base:
            self._git("checkout", "-b", name, base)
        else:
            self._git("checkout", "-b", name)
        logger.info(f"[GIT] Created branch {name}" + (f" from {base}" if base else ""))

    def checkout(self, name: str) -> None:
        dirty = self.dirty_files()
        if dirty:
            raise UncommittedChangesError(dirty)
        self._git("checkout", name)
        logger.info(f"[GIT] Checked out {name}")

    def is_based_on(self, branch: str, base: str) -> bool:
        """True when ``base`` is an ancestor of ``branch``."""
        result = subprocess.run(
            ["git", "merge-base", "--is-ancestor", base, branch],
            cwd=self.repo_path, capture_output=True, text=True, timeout=60,
        )
        return result.returncode == 0

    def changed_files(self, base: str | None = None) -> list[str]:
        """Files changed on the current branch relative to ``base`` plus the working tree."""
        files: set[str] = set(self.dirty_files())
        if base and self.branch_exists(base):
            diff = self._git("diff", "--name-only", f"{base}...HEAD", capture=True, check=False)
            files.update(line.strip() for line in diff.splitlines() if line.strip())
        return sorted(files)

    def commit(self, message: str, add_all: bool = True) -> str | None:
        """Stage and commit. Returns the new sha, or None when there was nothing to commit."""
        if add_all:
            self._git("add", "-A")

        result = self._git("status", "--porcelain", capture=True)
        if not result.strip():
            logger.info("[GIT] Nothing to commit.")
            return None

        self._git("commit", "-m", message)
        sha = self._git("rev-parse", "HEAD", capture=True).strip()
        logger.info(f"[GIT] Committed {sha[:8]}: {message}")
        return sha

    def merge(self, source: str, into: str, delete_source: bool = False) -> None:
        """Check out ``into`` and merge ``source`` with a merge commit."""
        self.checkout(into)
        self._git("merge", "--no-ff", source, "-m", f"Merge {source} into {into}")
        logger.info(f"[GIT] Merged {source} into {into}")
        if delete_source:
            self._git("branch", "-d", source)
            logger.info(f"[GIT] Deleted merged branch {source}")

    def push(self, branch: str) -> None:
        self._git("push", "-u", self.remote, branch)
        logger.info(f"[GIT] Pushed {branch} to {self.remote}")

    def _git(self, *args: str, check: bool = True, capture: bool = False) -> str:
        return self._run_cmd(["git", *args], cwd=self.repo_path, check=check, capture=capture)

    @staticmethod
    def _run_cmd(cmd: list[str], cwd: Path, check: bool = True, capture: bool = False) -> str:
        result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, timeout=60)
        if check and result.returncode != 0:
            raise WorkspaceError(f"Git failed: {' '.join(cmd)}\n{result.stderr}")
        return result.stdout if capture else ""
