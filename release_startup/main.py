# Copyright (c) 2026 Mark Ferrell. MIT License.
"""Main entry point for the Release Startup Action.

This module reads the action inputs, computes the next release version and
promotes it onto its stage branch (develop for alpha, release for beta, main
for production).

References:
    - GitHub Actions Environment Variables:
      https://docs.github.com/en/actions/writing-workflows/choosing-what-your-workflow-does/store-information-in-variables#default-environment-variables
    - GitHub Actions Outputs:
      https://docs.github.com/en/actions/writing-workflows/choosing-what-your-workflow-does/passing-information-between-jobs#setting-an-output-parameter
"""

from __future__ import annotations

import argparse
import logging
import os
import subprocess
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import urlparse

from github.GithubException import GithubException

from release_startup.artifacts import ArtifactUploader, write_outputs_artifact
from release_startup.errors import InvalidInputError, ReleaseError
from release_startup.git import GitRunner
from release_startup.github_api import GitHubAPI
from release_startup.guards import BranchGuard
from release_startup.idempotency import OPEN_PR_CHECKS, RunIdempotencyGuard
from release_startup.promotion import MergePolicy, prepare_source_branch, promote
from release_startup.provenance import ForkProvenanceAnalyzer
from release_startup.stages import BRANCH_NAMES, STAGE_NAMES, ReleaseStage, StageBranch, is_detached, parse_stage
from release_startup.versioning import (
    build_extended_version,
    build_plain_version,
    collect_release_tags,
    compute_next_version,
    is_alpha_version,
    latest_release,
)
from release_startup.workflow import RunSummary, export_variable, save_state, set_output

logger = logging.getLogger(__name__)

AHEAD_STATUSES = ("ahead", "diverged")
CONTAINED_STATUSES = ("behind", "identical")


@dataclass
class ActionInputs:
    """Parsed action inputs from environment variables."""

    token: str
    stage: str
    reference: str = ""
    hotfix: bool = False
    exports: bool = True
    artifact: bool = True
    artifact_name: str = "release-startup-outputs"
    check_issues: bool = True
    debug: bool = False
    merge_attempts: int = 60
    merge_interval: float = 5.0


@dataclass
class GitHubContext:
    """GitHub workflow context from environment variables."""

    ref_name: str
    repository: str
    run_id: int = 0
    server_url: str = "https://github.com"


@dataclass
class ActionOutputs:
    """Action outputs written to GITHUB_OUTPUT."""

    version: str = ""
    plain_version: str = ""
    extended_version: str = ""
    previous_version: str = ""
    reference: str = ""


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() == "true"


def parse_inputs(args: list[str] | None = None) -> ActionInputs:
    """Parse action inputs from CLI arguments or environment variables.

    CLI arguments take precedence over environment variables.
    When run as a GitHub Action, environment variables are used.

    Args:
        args: Optional list of CLI arguments. If None, uses environment
              variables only (GitHub Actions mode).

    Returns:
        ActionInputs with parsed values.
    """
    parser = argparse.ArgumentParser(
        description="Release Startup Action - promote calendar-versioned releases",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables (used as defaults when CLI args not provided):
  INPUT_TOKEN, GITHUB_TOKEN    GitHub token for authentication
  INPUT_STAGE                  Target stage (alpha, beta, production)
  INPUT_REFERENCE              Commit, branch or version tag to release
  INPUT_HOTFIX                 Release a hotfix (true/false)
  INPUT_EXPORTS                Export outputs as environment variables (true/false)
  INPUT_ARTIFACT               Store outputs in an artifact (true/false)
  INPUT_ARTIFACT_NAME          Name of the outputs artifact
  INPUT_CHECK_ISSUES           Check issue approval before releasing (true/false)
  INPUT_DEBUG                  Enable debug logging (true/false)

Examples:
  # Run with environment variables (GitHub Actions mode)
  python -m release_startup.main

  # Run with CLI arguments (local testing)
  python -m release_startup.main --token ghp_xxx --stage alpha --debug
        """,
    )

    parser.add_argument(
        "--token",
        default=os.environ.get("INPUT_TOKEN", os.environ.get("GITHUB_TOKEN", "")),
        help="GitHub token for authentication (default: from INPUT_TOKEN or GITHUB_TOKEN env)",
    )
    parser.add_argument("--stage", default=os.environ.get("INPUT_STAGE", ""), help="Target stage")
    parser.add_argument("--reference", default=os.environ.get("INPUT_REFERENCE", ""), help="Git reference")
    parser.add_argument(
        "--hotfix", action="store_true", default=_env_flag("INPUT_HOTFIX", "false"), help="Release a hotfix"
    )
    parser.add_argument(
        "--no-exports",
        dest="exports",
        action="store_false",
        default=_env_flag("INPUT_EXPORTS", "true"),
        help="Do not export outputs as environment variables",
    )
    parser.add_argument(
        "--no-artifact",
        dest="artifact",
        action="store_false",
        default=_env_flag("INPUT_ARTIFACT", "true"),
        help="Do not store outputs in an artifact",
    )
    parser.add_argument(
        "--artifact-name",
        default=os.environ.get("INPUT_ARTIFACT_NAME", "release-startup-outputs"),
        help="Outputs artifact name (default: release-startup-outputs)",
    )
    parser.add_argument(
        "--no-check-issues",
        dest="check_issues",
        action="store_false",
        default=_env_flag("INPUT_CHECK_ISSUES", "true"),
        help="Skip the issue approval check",
    )
    parser.add_argument(
        "--debug", action="store_true", default=_env_flag("INPUT_DEBUG", "false"), help="Enable debug logging"
    )
    parser.add_argument(
        "--merge-attempts",
        type=int,
        default=int(os.environ.get("INPUT_MERGE_ATTEMPTS", "60")),
        help="Times to poll a generated pull request for mergeability (default: 60)",
    )
    parser.add_argument(
        "--merge-interval",
        type=float,
        default=float(os.environ.get("INPUT_MERGE_INTERVAL", "5")),
        help="Seconds between mergeability polls (default: 5)",
    )

    # Use empty list for GitHub Actions mode (env vars only), or provided args for CLI
    parsed = parser.parse_args(args if args is not None else [])

    return ActionInputs(
        token=parsed.token,
        stage=parsed.stage,
        reference=parsed.reference.strip(),
        hotfix=parsed.hotfix,
        exports=parsed.exports,
        artifact=parsed.artifact,
        artifact_name=parsed.artifact_name,
        check_issues=parsed.check_issues,
        debug=parsed.debug,
        merge_attempts=parsed.merge_attempts,
        merge_interval=parsed.merge_interval,
    )


def parse_context() -> GitHubContext:
    """Parse GitHub context from environment variables.

    References:
        - https://docs.github.com/en/actions/writing-workflows/choosing-what-your-workflow-does/store-information-in-variables#default-environment-variables
    """
    ref_name = os.environ.get("GITHUB_REF_NAME", "") or os.environ.get("GITHUB_REF", "").split("/")[-1]
    return GitHubContext(
        ref_name=ref_name,
        repository=os.environ.get("GITHUB_REPOSITORY", ""),
        run_id=int(os.environ.get("GITHUB_RUN_ID", "0") or 0),
        server_url=os.environ.get("GITHUB_SERVER_URL", "https://github.com"),
    )


def configure_logging(debug: bool) -> None:
    """Configure logging based on debug flag.

    Args:
        debug: If True, enable DEBUG level logging.
    """
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def validate_inputs(stage_name: str, reference: str, hotfix: bool) -> ReleaseStage:
    """Validate the stage, reference and hotfix inputs before any I/O.

    Returns:
        The requested ReleaseStage.

    Raises:
        InvalidInputError: If the inputs cannot describe a valid release.
    """
    stage = parse_stage(stage_name)
    if stage is None:
        raise InvalidInputError(f"Invalid stage name '{stage_name}'. Expected one of: {', '.join(STAGE_NAMES)}.")

    if hotfix and stage is ReleaseStage.ALPHA:
        raise InvalidInputError(
            f"A hotfix can only be released on 'production' or 'beta' but '{stage}' is specified as the stage."
        )

    if reference == stage.target.value:
        raise InvalidInputError(f"Cannot reference '{reference}' while releasing to '{stage}'.")

    if stage is ReleaseStage.BETA and not hotfix and reference != "" and not is_alpha_version(reference):
        raise InvalidInputError(f"The reference '{reference}' is not a release version from the 'alpha' stage.")

    return stage


def validate_starter_branch(ref_name: str) -> None:
    """Check that the workflow was started from develop, release or main."""
    if ref_name not in BRANCH_NAMES:
        raise InvalidInputError(
            "The release can only be started from the 'main', 'release' or 'develop' branch "
            f"but started from '{ref_name}'."
        )


def git_remote_url(context: GitHubContext, token: str) -> str:
    """Build an authenticated HTTPS clone URL for the repository."""
    server = urlparse(context.server_url)
    return f"{server.scheme}://x-access-token:{token}@{server.netloc}/{context.repository}.git"


def write_outputs(outputs: ActionOutputs) -> None:
    """Write the version outputs to GITHUB_OUTPUT."""
    set_output("version", outputs.version)
    set_output("plain_version", outputs.plain_version)
    set_output("extended_version", outputs.extended_version)
    set_output("previous_version", outputs.previous_version)
    logger.info("Set outputs: version=%s, previous_version=%s", outputs.version, outputs.previous_version)


def export_outputs(outputs: ActionOutputs) -> None:
    """Export the outputs as RELEASE_* environment variables for later steps."""
    logger.debug("Attempting to export the environment variables.")
    export_variable("RELEASE_VERSION", outputs.version)
    export_variable("RELEASE_PLAIN_VERSION", outputs.plain_version)
    export_variable("RELEASE_EXTENDED_VERSION", outputs.extended_version)
    export_variable("RELEASE_PREVIOUS_VERSION", outputs.previous_version)
    export_variable("RELEASE_REFERENCE", outputs.reference)
    logger.debug("Exported the environment variables.")


def _check_alpha_changes(api: GitHubAPI, reference: str, previous_version: str | None) -> None:
    """Require new commits since the previous alpha release."""
    if previous_version is None:
        return

    if reference not in ("", StageBranch.DEVELOP.value):
        status = api.compare_status(previous_version, reference)
        logger.debug("Status #1: '%s'", status)
        if status not in AHEAD_STATUSES:
            raise InvalidInputError(f"Reference '{reference}' is not ahead of the previous release '{previous_version}'.")
    else:
        status = api.compare_status(previous_version, StageBranch.DEVELOP.value)
        logger.debug("Status #2: '%s'", status)
        if status not in AHEAD_STATUSES:
            raise InvalidInputError(f"No new changes in 'develop' since release version '{previous_version}'.")


def run(
    api: GitHubAPI,
    context: GitHubContext,
    inputs: ActionInputs,
    git: GitRunner | None = None,
    uploader: ArtifactUploader | None = None,
    sleep: Callable[[float], object] = time.sleep,
    remote_url: str | None = None,
) -> ActionOutputs:
    """Compute the next version and promote it onto its stage branch.

    Args:
        api: GitHubAPI instance.
        context: GitHub workflow context.
        inputs: Action inputs.
        git: Git runner for provenance checks. Defaults to the current directory.
        uploader: Artifact uploader. Defaults to the runner's results service.
        sleep: Sleep function used while polling pull requests.
        remote_url: Clone URL used when the runner has no checkout. Defaults to
            the authenticated URL of the workflow's repository.

    Returns:
        ActionOutputs of the release.

    Raises:
        ReleaseError: If any validation, policy or promotion step fails.
    """
    validate_starter_branch(context.ref_name)
    stage = validate_inputs(inputs.stage, inputs.reference, inputs.hotfix)
    reference = inputs.reference
    hotfix = inputs.hotfix
    target = stage.target.value
    source = stage.source.value
    detached = is_detached(stage, reference, hotfix)

    logger.info("Stage is: '%s'", stage)
    logger.info("Reference is: '%s'", reference)
    logger.info("Hotfix is: %s", hotfix)
    logger.info("Target of release: '%s'", target)
    logger.info("Source of release: '%s'", source)
    logger.debug("Detached: %s", detached)

    git = git or GitRunner()
    uploader = uploader or ArtifactUploader()
    remote_url = remote_url or git_remote_url(context, inputs.token)
    summary = RunSummary()
    branch_guard = BranchGuard(api, ForkProvenanceAnalyzer(git), summary)

    if stage in OPEN_PR_CHECKS:
        if context.run_id:
            RunIdempotencyGuard(api, uploader, branch_guard, git).ensure_fresh_workflow_run(
                context.run_id, stage, remote_url
            )
        else:
            logger.warning("GITHUB_RUN_ID not set, skipping the re-run and open pull request checks")

    if detached and api.compare_status(source, reference) not in CONTAINED_STATUSES:
        raise InvalidInputError(f"The reference '{reference}' could not be found on the base branch '{source}'.")

    if not api.branch_exists(source):
        raise InvalidInputError(f"The source branch '{source}' was not found.")

    if hotfix:
        if reference == "":
            raise InvalidInputError("The hotfix branch name ('reference') cannot be empty.")
        if not api.branch_exists(reference):
            raise InvalidInputError(f"The hotfix branch '{reference}' could not be found.")
        git.ensure_checkout(remote_url, stage.target.value)
        branch_guard.assert_correct_hotfix_branch(reference, stage.target)

    tags = collect_release_tags(tag.name for tag in api.list_tags())
    logger.debug("Releases: %s", [release.tag for release in tags])

    previous_version = latest_release(tags, target)
    logger.info("Previous version: '%s'", previous_version or "")
    last_alpha_version = previous_version if stage is ReleaseStage.ALPHA else latest_release(tags, StageBranch.DEVELOP)
    logger.debug("Last Alpha Version: %s", last_alpha_version)
    last_production_version = (
        previous_version if stage is ReleaseStage.PRODUCTION else latest_release(tags, StageBranch.MAIN)
    )
    logger.debug("Last Production Version: %s", last_production_version)

    version = compute_next_version(
        stage,
        reference,
        hotfix,
        last_alpha_version if stage is ReleaseStage.BETA else previous_version,
        last_production_version,
        latest_stage_version_for_hotfix=latest_release(tags, StageBranch.RELEASE),
    )

    if any(release.tag == version for release in tags):
        raise InvalidInputError(f"Release version '{version}' already exists.")

    outputs = ActionOutputs(
        version=version,
        plain_version=build_plain_version(version),
        extended_version=version if hotfix else build_extended_version(version),
        previous_version=previous_version or "",
    )
    logger.info("Release Version: %s", version)
    write_outputs(outputs)
    save_state("delete", False)

    if stage is ReleaseStage.ALPHA:
        _check_alpha_changes(api, reference, previous_version)
        outputs.reference = reference if detached else StageBranch.DEVELOP.value
    else:
        if hotfix:
            head = reference
        else:
            if inputs.check_issues:
                logger.info("Issue approval checks are handled outside this action, skipping")

            ref = reference if detached else latest_release(tags, source)
            if ref is None:
                raise InvalidInputError(f"No suitable version found on '{source}' and no 'reference' was provided either.")
            logger.debug("Git Ref: '%s'", ref)

            head = prepare_source_branch(api, ref)
            save_state("branch", head)
            save_state("delete", True)

            status = api.compare_status(target, head)
            logger.debug("Status #3: '%s'", status)
            if status not in AHEAD_STATUSES:
                subject = f"Reference '{reference}'" if detached else f"Version '{ref}'"
                raise InvalidInputError(f"{subject} is not ahead of the branch '{target}'.")

        kind = "hotfix" if hotfix else stage.value
        title = f"Generated PR for {kind}/{version}"
        body = (
            "A pull request generated by the release-startup action for "
            f"**{kind}** release version **{version}**."
        )
        policy = MergePolicy(max_attempts=inputs.merge_attempts, interval=inputs.merge_interval)
        outputs.reference = promote(api, head, target, title, body, policy, sleep=sleep)

    logger.info("Reference: '%s'", outputs.reference)
    set_output("reference", outputs.reference)

    if inputs.exports:
        export_outputs(outputs)

    if inputs.artifact:
        write_outputs_artifact(
            uploader,
            inputs.artifact_name,
            {
                "version": outputs.version,
                "plainVersion": outputs.plain_version,
                "extendedVersion": outputs.extended_version,
                "previousVersion": outputs.previous_version,
                "reference": outputs.reference,
            },
        )

    return outputs


def main() -> None:
    """Main entry point for the action."""
    inputs = parse_inputs()
    configure_logging(inputs.debug)

    context = parse_context()
    logger.debug("Ref: %s, Repository: %s, Run: %s", context.ref_name, context.repository, context.run_id)

    if not inputs.token:
        logger.error("GitHub token is required. Set INPUT_TOKEN or GITHUB_TOKEN.")
        sys.exit(1)

    try:
        api = GitHubAPI(token=inputs.token, repository=context.repository)
    except ValueError as e:
        logger.error("Failed to initialize GitHub API: %s", e)
        sys.exit(1)

    try:
        run(api, context, inputs)
    except ReleaseError as e:
        logger.debug("Release failed with %s", e.kind.value, exc_info=True)
        logger.error("%s", e.message)
        sys.exit(1)
    except GithubException as e:
        logger.debug("GitHub API error", exc_info=True)
        logger.error("GitHub API request failed: %s", e)
        sys.exit(1)
    except subprocess.CalledProcessError as e:
        logger.error("Command '%s' failed: %s", " ".join(e.cmd), (e.stderr or "").strip())
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover
    main()
