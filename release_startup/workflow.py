# Copyright (c) 2026 Mark Ferrell. MIT License.
"""GitHub Actions workflow file commands.

References:
    - Workflow commands: https://docs.github.com/en/actions/writing-workflows/choosing-what-your-workflow-does/workflow-commands-for-github-actions
    - Job summaries: https://docs.github.com/en/actions/writing-workflows/choosing-what-your-workflow-does/workflow-commands-for-github-actions#adding-a-job-summary
"""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


def _append(variable: str, line: str) -> bool:
    """Append a line to the file named by an environment variable."""
    path = os.environ.get(variable, "")
    if not path:
        logger.warning("%s not set, '%s' will not be written", variable, line.split("=", 1)[0])
        return False

    with open(path, "a", encoding="utf-8") as f:
        f.write(f"{line}\n")
    return True


def set_output(name: str, value: str | None) -> None:
    """Set a step output through GITHUB_OUTPUT."""
    _append("GITHUB_OUTPUT", f"{name}={value or ''}")


def export_variable(name: str, value: str | None) -> None:
    """Export an environment variable to later steps through GITHUB_ENV."""
    _append("GITHUB_ENV", f"{name}={value or ''}")
    os.environ[name] = value or ""


def save_state(name: str, value: str | bool) -> None:
    """Save state for the post step through GITHUB_STATE."""
    if isinstance(value, bool):
        value = "true" if value else "false"
    _append("GITHUB_STATE", f"{name}={value}")


def get_state(name: str) -> str:
    """Read state saved by the main step (exposed as STATE_<name>)."""
    return os.environ.get(f"STATE_{name}", "")


class RunSummary:
    """Collects raw markdown blocks and appends them to the job summary."""

    def __init__(self) -> None:
        self._blocks: list[str] = []

    @property
    def blocks(self) -> list[str]:
        return list(self._blocks)

    def add_raw(self, text: str, add_eol: bool = True) -> RunSummary:
        self._blocks.append(f"{text}\n" if add_eol else text)
        return self

    def write(self) -> None:
        """Flush buffered blocks to GITHUB_STEP_SUMMARY.

        Failing to write the summary is logged and otherwise ignored; the
        buffer is cleared either way.
        """
        content = "".join(self._blocks)
        self._blocks.clear()

        path = os.environ.get("GITHUB_STEP_SUMMARY", "")
        if not path:
            logger.warning("GITHUB_STEP_SUMMARY not set, run summary will not be written")
            logger.info("%s", content)
            return

        try:
            with open(path, "a", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            logger.warning("Failed to write run summary: %s", e)
