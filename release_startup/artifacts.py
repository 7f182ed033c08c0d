# Copyright (c) 2026 Mark Ferrell. MIT License.
"""Workflow artifact upload through the GitHub Actions results service.

The runner exposes ``ACTIONS_RUNTIME_TOKEN`` and ``ACTIONS_RESULTS_URL`` to
actions. Uploading an artifact is a three step exchange: create the artifact,
PUT a zip archive to the returned signed blob URL, then finalize it with the
archive size and digest.

References:
    - Storing workflow data as artifacts: https://docs.github.com/en/actions/writing-workflows/choosing-what-your-workflow-does/storing-and-sharing-data-from-a-workflow
"""

from __future__ import annotations

import base64
import hashlib
import io
import json
import logging
import os
import zipfile
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path

import requests

from release_startup.errors import ArtifactUploadError

logger = logging.getLogger(__name__)

ARTIFACT_SERVICE = "twirp/github.actions.results.api.v1.ArtifactService"
RESULTS_SCOPE_PREFIX = "Actions.Results:"
REQUEST_TIMEOUT = 30


def _backend_ids(runtime_token: str) -> tuple[str, str]:
    """Extract the workflow run and job backend ids from the runtime token claims."""
    try:
        payload = runtime_token.split(".")[1]
        payload += "=" * (-len(payload) % 4)
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (IndexError, ValueError) as e:
        raise ArtifactUploadError(f"Malformed ACTIONS_RUNTIME_TOKEN: {e}") from e

    for scope in str(claims.get("scp", "")).split():
        if scope.startswith(RESULTS_SCOPE_PREFIX):
            parts = scope.split(":")
            if len(parts) == 3:
                return parts[1], parts[2]

    raise ArtifactUploadError("ACTIONS_RUNTIME_TOKEN carries no Actions.Results scope")


def _archive(files: Sequence[str | Path], root: str | Path) -> bytes:
    """Zip ``files`` with paths relative to ``root``."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for file in files:
            path = Path(file)
            archive.write(path, arcname=str(path.resolve().relative_to(Path(root).resolve())))
    return buffer.getvalue()


class ArtifactUploader:
    """Uploads files as a workflow artifact of the current job."""

    def __init__(
        self,
        runtime_token: str | None = None,
        results_url: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._runtime_token = runtime_token or os.environ.get("ACTIONS_RUNTIME_TOKEN", "")
        self._results_url = results_url or os.environ.get("ACTIONS_RESULTS_URL", "")
        self._session = session or requests.Session()

    def _call(self, method: str, body: dict[str, object]) -> dict[str, object]:
        url = f"{self._results_url.rstrip('/')}/{ARTIFACT_SERVICE}/{method}"
        try:
            response = self._session.post(
                url,
                json=body,
                headers={"Authorization": f"Bearer {self._runtime_token}"},
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ArtifactUploadError(f"{method} failed: {e}") from e

        if not data.get("ok"):
            raise ArtifactUploadError(f"{method} was rejected by the artifact service")
        return data

    def upload(
        self,
        name: str,
        files: Sequence[str | Path],
        root: str | Path = ".",
        retention_days: int = 1,
    ) -> str:
        """Upload ``files`` as the artifact ``name``.

        Args:
            name: Artifact name.
            files: Files to include.
            root: Directory the archived paths are relative to.
            retention_days: Days before the artifact expires.

        Returns:
            The id of the uploaded artifact.

        Raises:
            ArtifactUploadError: If the runner context is missing or any step fails.
        """
        if not self._runtime_token or not self._results_url:
            raise ArtifactUploadError("ACTIONS_RUNTIME_TOKEN and ACTIONS_RESULTS_URL are required to upload artifacts")

        run_id, job_id = _backend_ids(self._runtime_token)
        expires_at = datetime.now(timezone.utc) + timedelta(days=retention_days)

        created = self._call(
            "CreateArtifact",
            {
                "workflow_run_backend_id": run_id,
                "workflow_job_run_backend_id": job_id,
                "name": name,
                "version": 4,
                "expires_at": expires_at.isoformat().replace("+00:00", "Z"),
            },
        )

        content = _archive(files, root)
        try:
            response = self._session.put(
                str(created["signed_upload_url"]),
                data=content,
                headers={"x-ms-blob-type": "BlockBlob", "Content-Type": "application/zip"},
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
        except (KeyError, requests.RequestException) as e:
            raise ArtifactUploadError(f"Uploading artifact '{name}' failed: {e}") from e

        finalized = self._call(
            "FinalizeArtifact",
            {
                "workflow_run_backend_id": run_id,
                "workflow_job_run_backend_id": job_id,
                "name": name,
                "size": str(len(content)),
                "hash": f"sha256:{hashlib.sha256(content).hexdigest()}",
            },
        )

        artifact_id = str(finalized.get("artifact_id", ""))
        logger.info("Uploaded artifact '%s' (%d bytes)", name, len(content))
        return artifact_id


def remove_file(path: str | Path) -> None:
    """Delete a local artifact file, logging rather than raising on failure."""
    try:
        Path(path).unlink(missing_ok=True)
        logger.debug("Artifact file '%s' deleted", path)
    except OSError as e:
        logger.warning("Problem in deleting the artifact file '%s': %s", path, e)


def write_outputs_artifact(
    uploader: ArtifactUploader,
    artifact_name: str,
    outputs: dict[str, str | None],
    retention_days: int = 1,
) -> None:
    """Store release outputs as ``<artifact_name>.json`` in a workflow artifact.

    Upload failures are fatal; failing to clean up the local file is not.
    """
    file = Path(f"{artifact_name}.json")
    file.write_text(json.dumps(outputs), encoding="utf-8")
    logger.debug("Created artifact file '%s'", file)

    try:
        uploader.upload(artifact_name, [file], retention_days=retention_days)
    except ArtifactUploadError as e:
        remove_file(file)
        raise ArtifactUploadError(f"Problem in uploading the artifact file: {e.message}") from e

    remove_file(file)
