# Copyright (c) 2026 Mark Ferrell. MIT License.
"""Thin wrapper around the git command line.

References:
    - git merge-base: https://git-scm.com/docs/git-merge-base
    - git rev-list: https://git-scm.com/docs/git-rev-list
    - git fetch: https://git-scm.com/docs/git-fetch
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from release_startup.errors import InvalidInputError

logger = logging.getLogger(__name__)


@dataclass
class ShellResult:
    """Captured result of a finished command."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class GitRunner:
    """Runs git commands inside a working directory.

    All git calls go through ``run`` so callers (and tests) deal with one
    narrow primitive. Commands run sequentially; nothing here is safe to call
    from several threads against the same repository.
    """

    def __init__(self, cwd: str | Path | None = None, executable: str = "git") -> None:
        self._cwd = str(cwd) if cwd is not None else None
        self._executable = executable

    @property
    def cwd(self) -> str | None:
        return self._cwd

    def run(self, *args: str, check: bool = False) -> ShellResult:
        """Run ``git <args>`` and capture its output.

        Args:
            *args: Arguments passed to git.
            check: If True, raise on a nonzero exit code.

        Returns:
            ShellResult with stdout, stderr and the exit code.

        Raises:
            subprocess.CalledProcessError: If ``check`` is set and git fails.
        """
        cmd = [self._executable, *args]
        logger.debug("Running: %s", " ".join(cmd))
        completed = subprocess.run(
            cmd,
            cwd=self._cwd,
            text=True,
            capture_output=True,
            check=False,
        )
        if completed.returncode != 0:
            logger.debug("git exited with %d: %s", completed.returncode, completed.stderr.strip())
            if check:
                raise subprocess.CalledProcessError(
                    completed.returncode, cmd, output=completed.stdout, stderr=completed.stderr
                )
        return ShellResult(stdout=completed.stdout, stderr=completed.stderr, exit_code=completed.returncode)

    def is_work_tree(self) -> bool:
        """Check whether the working directory is inside a git checkout."""
        result = self.run("rev-parse", "--is-inside-work-tree")
        return result.ok and result.stdout.strip() == "true"

    def is_shallow(self) -> bool:
        """Check whether the repository is a shallow clone."""
        result = self.run("rev-parse", "--is-shallow-repository")
        return result.ok and result.stdout.strip() == "true"

    def clone(self, url: str, branch: str, depth: int | None = 1) -> None:
        """Clone ``branch`` of ``url`` into the working directory."""
        args = ["clone", "--branch", branch, "--no-tags"]
        if depth is not None:
            args += ["--depth", str(depth)]
        self.run(*args, url, ".", check=True)

    def ensure_checkout(self, url: str | None, branch: str) -> bool:
        """Clone ``branch`` of ``url`` unless the working directory is already a checkout.

        Returns:
            True if a clone was made.

        Raises:
            InvalidInputError: If there is no checkout and no URL to clone from.
        """
        if self.is_work_tree():
            return False

        if not url:
            raise InvalidInputError("No repository checkout was found and no remote URL was given to clone one.")

        logger.info("No repository checkout found, cloning '%s'", branch)
        self.clone(url, branch, depth=1)
        return True

    def fetch(self, remote: str, *refspecs: str, unshallow: bool = False) -> ShellResult:
        """Fetch refspecs from a remote without tags."""
        args = ["fetch", "--no-tags", "--quiet"]
        if unshallow:
            args.append("--unshallow")
        return self.run(*args, remote, *refspecs)

    def rev_parse(self, ref: str) -> str | None:
        """Resolve a ref to its commit SHA, or None if it does not exist."""
        result = self.run("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")
        sha = result.stdout.strip()
        return sha if result.ok and sha else None
