from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Union

from snappydoo.errors import NotFoundError, ReconcileError
from snappydoo.services.github import GitHubClient
from snappydoo.services.reporter import RunReport
from snappydoo.services.scheduler import RenderResult

LOGGER = logging.getLogger("snappydoo.reconciler")

CREATED = "created"
UPDATED = "updated"


class ArtifactStore:
    """Destination for rendered screenshots, keyed by output path."""

    async def write(self, path: str, data: bytes) -> str:  # pragma: no cover - interface stub
        raise NotImplementedError


class LocalArtifactStore(ArtifactStore):
    """Write screenshots below a root directory on disk."""

    def __init__(self, root: Optional[Path] = None) -> None:
        resolved_root = root or Path.cwd()
        self._root = resolved_root.resolve()

    def _ensure_dir(self, path: Path) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        return path

    def target(self, path: str) -> Path:
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self._root / candidate

    def _write_sync(self, path: str, data: bytes) -> str:
        destination = self.target(path)
        directory = self._ensure_dir(destination.parent)
        outcome = UPDATED if destination.exists() else CREATED
        handle, temp_name = tempfile.mkstemp(dir=directory, prefix=".snappydoo-", suffix=".tmp")
        try:
            with os.fdopen(handle, "wb") as stream:
                stream.write(data)
            os.replace(temp_name, destination)
        except BaseException:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise
        return outcome

    async def write(self, path: str, data: bytes) -> str:
        return await asyncio.to_thread(self._write_sync, path, data)


class GitHubArtifactStore(ArtifactStore):
    """Commit screenshots to a branch, updating files that already exist there."""

    def __init__(
        self,
        client: GitHubClient,
        repo: str,
        branch: str,
        *,
        message_template: str = "{verb} screenshot {path}",
    ) -> None:
        self._client = client
        self._repo = repo
        self._branch = branch
        self._message_template = message_template
        self._commit_lock = asyncio.Lock()

    @property
    def branch(self) -> str:
        return self._branch

    async def existing_sha(self, path: str) -> Optional[str]:
        try:
            existing = await self._client.get_file(self._repo, path, self._branch)
        except NotFoundError:
            return None
        return existing.sha

    async def write(self, path: str, data: bytes) -> str:
        # Each contents API write moves the branch head; concurrent writes race on it.
        async with self._commit_lock:
            sha = await self.existing_sha(path)
            outcome = UPDATED if sha else CREATED
            verb = "Update" if sha else "Create"
            await self._client.put_file(
                self._repo,
                path,
                data,
                message=self._message_template.format(verb=verb, path=path),
                branch=self._branch,
                sha=sha,
            )
        return outcome


async def _write_one(store: ArtifactStore, result: RenderResult) -> Union[str, ReconcileError]:
    try:
        outcome = await store.write(result.path, result.data)
    except Exception as exc:  # noqa: BLE001
        return ReconcileError(result.path, f"{type(exc).__name__}: {exc}")
    LOGGER.info("%s %s", outcome.capitalize(), result.path)
    return outcome


async def reconcile(
    store: ArtifactStore,
    results: Iterable[RenderResult],
    report: Optional[RunReport] = None,
) -> List[str]:
    """Write every rendered result; failed writes are logged and do not affect the others."""
    pending = list(results)
    outcomes = await asyncio.gather(*(_write_one(store, result) for result in pending))
    written: List[str] = []
    for result, outcome in zip(pending, outcomes):
        if isinstance(outcome, ReconcileError):
            LOGGER.error("%s", outcome)
            if report is not None:
                report.write_failures[outcome.path] = outcome.reason
            continue
        written.append(result.path)
        if report is not None:
            report.record_write(outcome)
    return written
