from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from snappydoo.constants import MANIFEST_FILENAME, REDO_BRANCH_PREFIX
from snappydoo.errors import ConfigError, NotFoundError, SnappydooError
from snappydoo.schemas import BotSettings, IssueEvent, PullRequestEvent, RunConfig
from snappydoo.services.config import manifest_section, merge_config
from snappydoo.services.extractor import SnapshotFile, extract_jobs
from snappydoo.services.github import GitHubClient
from snappydoo.services.pipeline import render_and_reconcile
from snappydoo.services.reconciler import GitHubArtifactStore
from snappydoo.services.renderer import PlaywrightRenderer, Renderer
from snappydoo.services.reporter import RunReport
from snappydoo.services.staleness import resolve_commit_range, resolve_remote, resolve_tree

LOGGER = logging.getLogger("snappydoo.bot")

PULL_REQUEST_ACTIONS = {"opened", "synchronize", "reopened"}
PULL_REQUEST_WORKFLOW = "pull_request"
REDO_ALL_WORKFLOW = "redo_all"

BotEvent = Union[PullRequestEvent, IssueEvent]


def verify_signature(secret: Optional[str], body: bytes, signature: Optional[str]) -> bool:
    """Check an ``X-Hub-Signature-256`` header; deliveries are accepted unsigned only when no secret is set."""
    if not secret:
        return True
    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature[len("sha256=") :])


class SnappydooBot:
    """React to GitHub events by rendering snapshots and committing the screenshots."""

    def __init__(
        self,
        settings: Optional[BotSettings] = None,
        *,
        client_factory: Optional[Callable[[], GitHubClient]] = None,
        renderer_factory: Optional[Callable[[RunConfig], Renderer]] = None,
    ) -> None:
        self._settings = settings or BotSettings.from_env()
        self._client_factory = client_factory or self._default_client
        self._renderer_factory = renderer_factory or (lambda config: PlaywrightRenderer(config.builder_url))

    @property
    def settings(self) -> BotSettings:
        return self._settings

    def _default_client(self) -> GitHubClient:
        return GitHubClient(self._settings.github_token, api_url=self._settings.api_url)

    def is_redo_request(self, event: IssueEvent) -> bool:
        if event.action != "opened":
            return False
        if event.issue.user.login.lower() != event.repository.owner.login.lower():
            return False
        command = self._settings.redo_command.lower()
        text = f"{event.issue.title}\n{event.issue.body or ''}".lower()
        return command in text

    def classify(self, event_name: str, payload: Dict[str, Any]) -> Optional[Tuple[str, BotEvent]]:
        """Map a webhook delivery to the workflow it triggers, or ``None`` when it is ignored."""
        if event_name == "pull_request":
            event = PullRequestEvent.model_validate(payload)
            if event.action in PULL_REQUEST_ACTIONS:
                return PULL_REQUEST_WORKFLOW, event
            return None
        if event_name == "issues":
            issue_event = IssueEvent.model_validate(payload)
            if self.is_redo_request(issue_event):
                return REDO_ALL_WORKFLOW, issue_event
        return None

    async def process(self, workflow: str, event: BotEvent) -> Optional[RunReport]:
        try:
            if workflow == PULL_REQUEST_WORKFLOW and isinstance(event, PullRequestEvent):
                return await self.handle_pull_request(event)
            if workflow == REDO_ALL_WORKFLOW and isinstance(event, IssueEvent):
                return await self.handle_redo_all(event)
            LOGGER.warning("Unknown workflow %s", workflow)
        except SnappydooError as exc:
            LOGGER.error("%s workflow for %s aborted: %s", workflow, event.repository.full_name, exc)
        except Exception:
            LOGGER.exception("Unhandled error in %s workflow for %s", workflow, event.repository.full_name)
        return None

    async def load_config(self, client: GitHubClient, repo: str, ref: str) -> RunConfig:
        try:
            manifest = await client.get_file(repo, MANIFEST_FILENAME, ref)
        except NotFoundError as exc:
            raise ConfigError(f"No {MANIFEST_FILENAME} found in {repo} at {ref[:7]}") from exc
        return merge_config(manifest_section(manifest.text(), source=f"{MANIFEST_FILENAME}@{ref[:7]}"))

    async def _fetch_snapshots(self, client: GitHubClient, repo: str, paths: List[str], ref: str) -> List[SnapshotFile]:
        remote_files = await asyncio.gather(*(client.get_file(repo, path, ref) for path in paths))
        return [SnapshotFile(path=item.path, content=item.content) for item in remote_files]

    async def _render_into_branch(
        self,
        client: GitHubClient,
        repo: str,
        config: RunConfig,
        paths: List[str],
        ref: str,
        branch: str,
        report: RunReport,
    ) -> RunReport:
        files = await self._fetch_snapshots(client, repo, paths, ref)
        jobs = extract_jobs(
            files,
            config.output_path,
            config.exclude,
            in_root=config.input_path,
            case_insensitive=True,
            report=report,
        )
        store = GitHubArtifactStore(client, repo, branch)
        await render_and_reconcile(jobs, self._renderer_factory(config), store, report, config.limit)
        return report

    async def handle_pull_request(self, event: PullRequestEvent) -> Optional[RunReport]:
        pull = event.pull_request
        repo = event.repository.full_name
        if pull.head.repo is None or pull.head.repo.full_name != repo:
            LOGGER.info("Skipping %s#%s: head branch lives in another repository", repo, pull.number)
            return None

        report = RunReport()
        async with self._client_factory() as client:
            commits = await client.list_pull_commits(repo, pull.number)
            commit_range = resolve_commit_range(commits, self._settings.bot_login, pull.base.sha, pull.head.sha)
            if commit_range is None:
                LOGGER.info("Latest commit on %s#%s is ours; nothing to render", repo, pull.number)
                return None
            config = await self.load_config(client, repo, pull.head.sha)
            changed = await client.compare(repo, commit_range.base, commit_range.head)
            paths = resolve_remote(changed, config.exclude)
            LOGGER.info(
                "%s#%s: %s of %s changed files are snapshots to render (%s...%s)",
                repo,
                pull.number,
                len(paths),
                len(changed),
                commit_range.base[:7],
                commit_range.head[:7],
            )
            await self._render_into_branch(client, repo, config, paths, pull.head.sha, pull.head.ref, report)
        report.finish()
        LOGGER.info("%s#%s: %s", repo, pull.number, report.summary())
        return report

    async def _discard_branch(self, client: GitHubClient, repo: str, branch: str) -> None:
        try:
            await client.delete_branch(repo, branch)
        except SnappydooError as exc:
            LOGGER.warning("Could not remove %s from %s: %s", branch, repo, exc)

    async def handle_redo_all(self, event: IssueEvent) -> Optional[RunReport]:
        repo = event.repository.full_name
        default_branch = event.repository.default_branch
        branch = f"{REDO_BRANCH_PREFIX}-{time.strftime('%Y%m%d%H%M%S', time.gmtime())}"

        report = RunReport()
        async with self._client_factory() as client:
            base_sha = await client.get_branch_sha(repo, default_branch)
            config = await self.load_config(client, repo, base_sha)
            paths = resolve_tree(await client.list_tree(repo, base_sha), in_root=config.input_path, exclude=config.exclude)
            await client.create_branch(repo, branch, base_sha)
            try:
                await self._render_into_branch(client, repo, config, paths, base_sha, branch, report)
            except Exception:
                await self._discard_branch(client, repo, branch)
                raise
            report.finish()
            if report.written == 0:
                LOGGER.info("Redo-all for %s produced no screenshots; removing %s", repo, branch)
                await client.delete_branch(repo, branch)
                return report
            pull = await client.create_pull(
                repo,
                title="Re-render all snapshot screenshots",
                head=branch,
                base=default_branch,
                body=f"Requested in #{event.issue.number}.\n\n{report.summary()}",
            )
            LOGGER.info("Opened %s for %s: %s", pull.get("html_url", branch), repo, report.summary())
        return report


_bot: Optional[SnappydooBot] = None


def get_bot() -> SnappydooBot:
    global _bot
    if _bot is None:
        _bot = SnappydooBot()
    return _bot
