from __future__ import annotations

import pytest

from snappydoo.schemas import ChangedFile, CommitInfo
from snappydoo.services.staleness import (
    CommitRange,
    filter_candidates,
    resolve_commit_range,
    resolve_local,
    resolve_remote,
    resolve_tree,
)

BOT = "snappydoo[bot]"

CANDIDATES = [
    "src/alerts/__snapshots__/warning.test.js.snap",
    "src/alerts/__snapshots__/info.test.ts.snap",
    "src/menus/__snapshots__/picker.test.js.snap",
]


@pytest.mark.unit
def test_local_keeps_only_modified_or_untracked_files() -> None:
    modified = ["src/alerts/__snapshots__/warning.test.js.snap", "README.md"]

    selected = resolve_local(CANDIDATES, modified, in_root="src")

    assert selected == ["src/alerts/__snapshots__/warning.test.js.snap"]


@pytest.mark.unit
def test_local_render_all_keeps_everything_under_input_root() -> None:
    candidates = CANDIDATES + ["other/alerts/__snapshots__/warning.test.js.snap"]

    selected = resolve_local(candidates, [], in_root="./src/", render_all=True)

    assert selected == CANDIDATES


@pytest.mark.unit
def test_local_exclude_matches_test_name_exactly() -> None:
    selected = resolve_local(CANDIDATES, [], in_root="src", render_all=True, exclude=["warning", "Picker"])

    assert selected == [
        "src/alerts/__snapshots__/info.test.ts.snap",
        "src/menus/__snapshots__/picker.test.js.snap",
    ]


@pytest.mark.unit
def test_candidates_that_do_not_match_the_layout_are_dropped() -> None:
    paths = [
        "src/alerts/__snapshots__/warning.test.js.snap",
        "src/alerts/warning.snap",
        "src/alerts/__snapshots__/warning.test.js",
        "src/alerts/__snapshots__/notes.txt",
    ]

    assert filter_candidates(paths) == ["src/alerts/__snapshots__/warning.test.js.snap"]


@pytest.mark.unit
def test_commit_range_uses_full_range_without_bot_commits() -> None:
    commits = [CommitInfo(sha="a1", author_login="dev"), CommitInfo(sha="b2", author_login="dev")]

    assert resolve_commit_range(commits, BOT, "base", "b2") == CommitRange(base="base", head="b2")


@pytest.mark.unit
def test_commit_range_is_noop_when_bot_committed_last() -> None:
    commits = [
        CommitInfo(sha="a1", author_login="dev"),
        CommitInfo(sha="b2", author_login="Snappydoo[bot]"),
    ]

    assert resolve_commit_range(commits, BOT, "base", "b2") is None


@pytest.mark.unit
def test_commit_range_starts_after_most_recent_bot_commit() -> None:
    commits = [
        CommitInfo(sha="a1", author_login="dev"),
        CommitInfo(sha="b2", author_login=BOT),
        CommitInfo(sha="c3", author_login="dev"),
        CommitInfo(sha="d4", committer_login=BOT),
        CommitInfo(sha="e5", author_login="dev"),
    ]

    assert resolve_commit_range(commits, BOT, "base", "e5") == CommitRange(base="d4", head="e5")


@pytest.mark.unit
def test_commit_range_for_empty_history() -> None:
    assert resolve_commit_range([], BOT, "base", "head") == CommitRange(base="base", head="head")


@pytest.mark.unit
def test_remote_skips_removed_files_and_excludes_case_insensitively() -> None:
    changed = [
        ChangedFile(filename="src/alerts/__snapshots__/warning.test.js.snap", status="modified"),
        ChangedFile(filename="src/alerts/__snapshots__/Info.test.js.snap", status="added"),
        ChangedFile(filename="src/menus/__snapshots__/picker.test.js.snap", status="removed"),
        ChangedFile(filename="src/alerts/Warning.js", status="modified"),
    ]

    assert resolve_remote(changed, ["WARNING", "info"]) == []
    assert resolve_remote(changed, []) == [
        "src/alerts/__snapshots__/warning.test.js.snap",
        "src/alerts/__snapshots__/Info.test.js.snap",
    ]


@pytest.mark.unit
def test_tree_resolution_keeps_snapshots_below_input_root() -> None:
    tree = CANDIDATES + ["docs/__snapshots__/readme.test.js.snap", "package.json"]

    assert resolve_tree(tree, in_root="src", exclude=["PICKER"]) == CANDIDATES[:2]
