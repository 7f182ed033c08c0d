# Copyright (c) 2026 Mark Ferrell. MIT License.
"""Protection against re-running a workflow that already found blocking PRs.

When the open-PR guard blocks a release, a small flag artifact is attached
to the workflow run. Any later attempt of the same run finds the flag and
stops, so operators start a fresh run once the pull requests are dealt with.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from release_startup.artifacts import remove_file
from release_startup.errors import ErrorKind, ReleaseError, RerunDetectedError
from release_startup.stages import ReleaseStage, StageBranch

if TYPE_CHECKING:
    from release_startup.artifacts import ArtifactUploader
    from release_startup.git import GitRunner
    from release_startup.github_api import GitHubAPI
    from release_startup.guards import BranchGuard

logger = logging.getLogger(__name__)

FLAG_ARTIFACT_NAME = "unmerged-prs-flag"
FLAG_FILE = "unmerged-prs-flag.json"
FLAG_RETENTION_DAYS = 1

# (base branch, upstream branches its open PRs must not be based on), in order
OPEN_PR_CHECKS: dict[ReleaseStage, list[tuple[StageBranch, list[StageBranch]]]] = {
    ReleaseStage.ALPHA: [
        (StageBranch.DEVELOP, [StageBranch.MAIN, StageBranch.RELEASE]),
        (StageBranch.RELEASE, [StageBranch.MAIN]),
    ],
    ReleaseStage.BETA: [
        (StageBranch.RELEASE, [StageBranch.MAIN]),
    ],
}


def _quote(branches: list[StageBranch]) -> str:
    return " or ".join(f"'{branch}'" for branch in branches)


class RunIdempotencyGuard:
    """Detects re-runs of a blocked workflow run and runs the open-PR checks."""

    def __init__(
        self,
        api: GitHubAPI,
        uploader: ArtifactUploader,
        guard: BranchGuard,
        git: GitRunner,
    ) -> None:
        self.api = api
        self.uploader = uploader
        self.guard = guard
        self.git = git

    def flag_exists(self, run_id: int) -> bool:
        """Check whether a flag artifact was recorded for ``run_id``.

        The run's own artifact list is empty for an automatic retry attempt,
        so the repository-wide list is searched by parent run id as well.
        """
        if any(artifact.name == FLAG_ARTIFACT_NAME for artifact in self.api.list_run_artifacts(run_id)):
            logger.debug("Flag artifact found on run %d", run_id)
            return True

        for artifact in self.api.list_repository_artifacts(FLAG_ARTIFACT_NAME):
            workflow_run = getattr(artifact, "workflow_run", None)
            if artifact.name == FLAG_ARTIFACT_NAME and workflow_run is not None and workflow_run.id == run_id:
                logger.debug("Flag artifact %s of run %d found in repository artifacts", artifact.id, run_id)
                return True

        return False

    def ensure_fresh_workflow_run(
        self,
        run_id: int,
        stage: ReleaseStage | str | None = None,
        git_remote_url: str | None = None,
    ) -> None:
        """Stop re-runs of a blocked run, then run the open-PR checks for ``stage``.

        Args:
            run_id: The current workflow run id.
            stage: The release stage, selecting which open-PR checks to run.
            git_remote_url: Clone URL used when no checkout is present.

        Raises:
            RerunDetectedError: If a previous attempt of this run was blocked.
            BlockingHotfixPRError: If an open-PR check finds offenders.
        """
        stage = ReleaseStage(stage) if stage is not None else None

        if self.flag_exists(run_id):
            label = stage.value.capitalize() if stage is not None else "Alpha"
            raise RerunDetectedError(
                "A previous attempt of this workflow run found unmerged pull requests that block the release. "
                f"Do not re-run it; start a new {label} release workflow run instead."
            )

        checks = OPEN_PR_CHECKS.get(stage, []) if stage is not None else []
        if not checks:
            return

        self.git.ensure_checkout(git_remote_url, checks[0][0].value)

        try:
            for base, forbidden in checks:
                self.guard.assert_open_prs(
                    base.value,
                    [branch.value for branch in forbidden],
                    heading=(
                        f"Release canceled because of open pull requests into `{base}` "
                        f"that were created from {_quote(forbidden)}:"
                    ),
                    message=(
                        f"Found {{count}} open pull request(s) into '{base}' created from {_quote(forbidden)}. "
                        "Merge or close them first; check the run summary for the list of blocking pull requests."
                    ),
                )
        except ReleaseError as e:
            if e.kind is ErrorKind.BLOCKING_PRS:
                self.upload_flag()
            raise

    def upload_flag(self) -> None:
        """Attach the flag artifact to this run. Failures are logged, never raised."""
        file = Path(self.git.cwd or ".") / FLAG_FILE
        try:
            file.write_text(
                json.dumps({"reason": "unmerged_prs", "createdAt": datetime.now(timezone.utc).isoformat()}),
                encoding="utf-8",
            )
            self.uploader.upload(FLAG_ARTIFACT_NAME, [file], root=file.parent, retention_days=FLAG_RETENTION_DAYS)
            logger.info("Uploaded '%s' artifact", FLAG_ARTIFACT_NAME)
        except Exception as e:
            logger.warning("Failed to upload the '%s' artifact: %s", FLAG_ARTIFACT_NAME, e, exc_info=True)
        finally:
            remove_file(file)
