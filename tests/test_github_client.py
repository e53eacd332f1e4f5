from __future__ import annotations

import base64
import json
from typing import Callable, List

import httpx
import pytest

from snappydoo.errors import NotFoundError, SourceControlError
from snappydoo.services.github import PER_PAGE, GitHubClient


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> GitHubClient:
    return GitHubClient("secret-token", api_url="https://github.test/", transport=httpx.MockTransport(handler))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pull_commits_are_paginated_and_carry_logins() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        page = int(request.url.params["page"])
        if page == 1:
            items = [{"sha": f"c{index}", "author": {"login": "dev"}, "committer": None} for index in range(PER_PAGE)]
        else:
            items = [{"sha": "last", "author": None, "committer": {"login": "snappydoo[bot]"}}]
        return httpx.Response(200, json=items)

    async with _client(handler) as client:
        commits = await client.list_pull_commits("acme/app", 7)

    assert len(commits) == PER_PAGE + 1
    assert commits[0].author_login == "dev"
    assert commits[-1].sha == "last"
    assert commits[-1].author_login is None
    assert commits[-1].committer_login == "snappydoo[bot]"
    assert [request.url.path for request in seen] == ["/repos/acme/app/pulls/7/commits"] * 2
    assert seen[0].headers["Authorization"] == "Bearer secret-token"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_compare_returns_changed_files() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/acme/app/compare/base1...head2"
        return httpx.Response(
            200,
            json={"files": [{"filename": "a/__snapshots__/b.test.js.snap", "status": "added"}, {"filename": "x.js"}]},
        )

    async with _client(handler) as client:
        files = await client.compare("acme/app", "base1", "head2")

    assert [(item.filename, item.status) for item in files] == [
        ("a/__snapshots__/b.test.js.snap", "added"),
        ("x.js", "modified"),
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_file_decodes_content() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/acme/app/contents/shots/renders correctly.png"
        assert request.url.params["ref"] == "main"
        encoded = base64.encodebytes(b"\x89PNG data").decode()
        return httpx.Response(200, json={"type": "file", "sha": "abc", "content": encoded})

    async with _client(handler) as client:
        remote = await client.get_file("acme/app", "shots/renders correctly.png", "main")

    assert remote.content == b"\x89PNG data"
    assert remote.sha == "abc"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_not_found_and_other_errors_are_distinguished() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if "missing" in request.url.path:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(500, text="boom")

    async with _client(handler) as client:
        with pytest.raises(NotFoundError):
            await client.get_file("acme/app", "missing.png", "main")
        with pytest.raises(SourceControlError) as excinfo:
            await client.get_file("acme/app", "other.png", "main")

    assert not isinstance(excinfo.value, NotFoundError)
    assert excinfo.value.status == 500


@pytest.mark.unit
@pytest.mark.asyncio
async def test_transport_errors_become_source_control_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(SourceControlError):
            await client.compare("acme/app", "a", "b")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_branch_tree_and_pull_calls() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        path = request.url.path
        if path == "/repos/acme/app/git/ref/heads/main":
            return httpx.Response(200, json={"object": {"sha": "sha-main"}})
        if path == "/repos/acme/app/git/refs":
            return httpx.Response(201, json={"ref": "refs/heads/redo"})
        if path == "/repos/acme/app/git/refs/heads/redo":
            return httpx.Response(204)
        if path == "/repos/acme/app/git/trees/sha-main":
            return httpx.Response(
                200,
                json={"tree": [{"path": "src", "type": "tree"}, {"path": "src/a.snap", "type": "blob"}]},
            )
        if path == "/repos/acme/app/pulls":
            return httpx.Response(201, json={"number": 12, "html_url": "https://github.test/acme/app/pull/12"})
        return httpx.Response(404)

    async with _client(handler) as client:
        sha = await client.get_branch_sha("acme/app", "main")
        await client.create_branch("acme/app", "redo", sha)
        tree = await client.list_tree("acme/app", sha)
        pull = await client.create_pull("acme/app", title="Redo", head="redo", base="main")
        await client.delete_branch("acme/app", "redo")

    assert sha == "sha-main"
    assert json.loads(seen[1].content) == {"ref": "refs/heads/redo", "sha": "sha-main"}
    assert tree == ["src/a.snap"]
    assert seen[2].url.params["recursive"] == "1"
    assert pull["number"] == 12
    assert json.loads(seen[3].content)["base"] == "main"
    assert seen[4].method == "DELETE"
