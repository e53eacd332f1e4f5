from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from snappydoo.constants import DEFAULT_API_URL
from snappydoo.errors import NotFoundError, SourceControlError
from snappydoo.schemas import ChangedFile, CommitInfo

LOGGER = logging.getLogger("snappydoo.github")

PER_PAGE = 100
MAX_COMMIT_PAGES = 3


@dataclass(frozen=True)
class RemoteFile:
    path: str
    content: bytes
    sha: str

    def text(self) -> str:
        return self.content.decode("utf-8")


def _login(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        login = payload.get("login")
        return str(login) if login else None
    return None


class GitHubClient:
    """Thin async wrapper over the GitHub REST endpoints snappydoo needs."""

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "snappydoo",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise SourceControlError(f"{method} {url} failed: {exc}") from exc
        if response.status_code == 404:
            raise NotFoundError(f"{method} {url}: not found")
        if response.status_code >= 400:
            detail = response.text[:200]
            raise SourceControlError(
                f"{method} {url} returned {response.status_code}: {detail}",
                status=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def list_pull_commits(self, repo: str, number: int) -> List[CommitInfo]:
        commits: List[CommitInfo] = []
        for page in range(1, MAX_COMMIT_PAGES + 1):
            payload = await self._request(
                "GET",
                f"/repos/{repo}/pulls/{number}/commits",
                params={"per_page": PER_PAGE, "page": page},
            )
            items = payload or []
            for item in items:
                commits.append(
                    CommitInfo(
                        sha=item["sha"],
                        author_login=_login(item.get("author")),
                        committer_login=_login(item.get("committer")),
                    )
                )
            if len(items) < PER_PAGE:
                break
        return commits

    async def compare(self, repo: str, base: str, head: str) -> List[ChangedFile]:
        payload = await self._request("GET", f"/repos/{repo}/compare/{base}...{head}")
        return [
            ChangedFile(filename=item["filename"], status=item.get("status", "modified"))
            for item in (payload or {}).get("files", [])
        ]

    async def get_file(self, repo: str, path: str, ref: str) -> RemoteFile:
        payload = await self._request(
            "GET",
            f"/repos/{repo}/contents/{quote(path)}",
            params={"ref": ref},
        )
        if not isinstance(payload, dict) or payload.get("type") != "file":
            raise SourceControlError(f"{path} at {ref} is not a file")
        encoded = payload.get("content") or ""
        content = base64.b64decode(encoded) if encoded else b""
        return RemoteFile(path=path, content=content, sha=payload["sha"])

    async def put_file(
        self,
        repo: str,
        path: str,
        content: bytes,
        *,
        message: str,
        branch: str,
        sha: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": branch,
        }
        if sha:
            body["sha"] = sha
        return await self._request("PUT", f"/repos/{repo}/contents/{quote(path)}", json=body)

    async def get_branch_sha(self, repo: str, branch: str) -> str:
        payload = await self._request("GET", f"/repos/{repo}/git/ref/heads/{quote(branch)}")
        return payload["object"]["sha"]

    async def create_branch(self, repo: str, name: str, sha: str) -> None:
        await self._request("POST", f"/repos/{repo}/git/refs", json={"ref": f"refs/heads/{name}", "sha": sha})
        LOGGER.info("Created branch %s at %s in %s", name, sha[:7], repo)

    async def delete_branch(self, repo: str, name: str) -> None:
        await self._request("DELETE", f"/repos/{repo}/git/refs/heads/{quote(name)}")
        LOGGER.info("Deleted branch %s in %s", name, repo)

    async def list_tree(self, repo: str, sha: str) -> List[str]:
        payload = await self._request("GET", f"/repos/{repo}/git/trees/{sha}", params={"recursive": "1"})
        if payload.get("truncated"):
            LOGGER.warning("Tree listing for %s@%s was truncated", repo, sha[:7])
        return [item["path"] for item in payload.get("tree", []) if item.get("type") == "blob"]

    async def create_pull(self, repo: str, *, title: str, head: str, base: str, body: str = "") -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/repos/{repo}/pulls",
            json={"title": title, "head": head, "base": base, "body": body},
        )
