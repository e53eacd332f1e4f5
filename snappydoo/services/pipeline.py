from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from snappydoo.errors import ConfigError, SourceControlError
from snappydoo.schemas import LimitSettings, RunConfig
from snappydoo.services.extractor import SnapshotFile, extract_jobs
from snappydoo.services.reconciler import ArtifactStore, LocalArtifactStore, reconcile
from snappydoo.services.renderer import PlaywrightRenderer, Renderer
from snappydoo.services.reporter import RunReport
from snappydoo.services.scheduler import RenderScheduler
from snappydoo.services.staleness import resolve_local

LOGGER = logging.getLogger("snappydoo.pipeline")


async def render_and_reconcile(
    jobs: Mapping[str, Mapping[str, Any]],
    renderer: Renderer,
    store: ArtifactStore,
    report: RunReport,
    limit: Optional[LimitSettings] = None,
) -> RunReport:
    """Render every job on one renderer session, then write the successful screenshots."""
    count = len(jobs)
    LOGGER.info("Fetching %s screenshot%s from message builder", count, "" if count == 1 else "s")
    if not jobs:
        return report
    async with renderer:
        batch = await RenderScheduler(renderer, limit).run(jobs, report)
    await reconcile(store, batch.results, report)
    return report


def list_modified_files(cwd: Path) -> List[str]:
    """Paths git reports as modified or untracked, relative to the repository root."""
    try:
        proc = subprocess.run(
            ["git", "ls-files", "--modified", "--others", "--exclude-standard"],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise SourceControlError(f"Couldn't run 'git ls-files': {exc}") from exc
    if proc.returncode != 0 or proc.stderr.strip():
        raise SourceControlError(f"Couldn't run 'git ls-files' {proc.stderr.strip()}", status=proc.returncode)
    return [line.strip() for line in proc.stdout.splitlines() if line.strip()]


def list_snapshot_candidates(cwd: Path, in_root: str) -> List[str]:
    root = cwd / in_root
    if not root.is_dir():
        raise ConfigError(f"Input path {in_root} is not a directory")
    return sorted(path.relative_to(cwd).as_posix() for path in root.rglob("*.snap") if path.is_file())


def read_snapshot_files(cwd: Path, paths: Iterable[str]) -> List[SnapshotFile]:
    return [SnapshotFile(path=path, content=(cwd / path).read_bytes()) for path in paths]


async def run_local(
    config: RunConfig,
    *,
    cwd: Optional[Path] = None,
    render_all: bool = False,
    renderer: Optional[Renderer] = None,
    store: Optional[ArtifactStore] = None,
    modified: Optional[Iterable[str]] = None,
) -> RunReport:
    """Render the snapshots of the working tree that changed (or all with ``render_all``)."""
    report = RunReport()
    root = (cwd or Path.cwd()).resolve()
    candidates = list_snapshot_candidates(root, config.input_path)
    if render_all:
        changed: Iterable[str] = ()
    elif modified is not None:
        changed = modified
    else:
        changed = list_modified_files(root)
    selected = resolve_local(
        candidates,
        changed,
        in_root=config.input_path,
        render_all=render_all,
        exclude=config.exclude,
    )
    LOGGER.debug("%s of %s snapshot files need a render", len(selected), len(candidates))

    jobs: Dict[str, Dict[str, Any]] = extract_jobs(
        read_snapshot_files(root, selected),
        config.output_path,
        config.exclude,
        in_root=config.input_path,
        report=report,
    )
    await render_and_reconcile(
        jobs,
        renderer or PlaywrightRenderer(config.builder_url),
        store or LocalArtifactStore(root),
        report,
        config.limit,
    )
    return report.finish()
