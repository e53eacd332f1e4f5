from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from snappydoo.schemas import ChangedFile, CommitInfo
from snappydoo.services.extractor import is_excluded, parse_snapshot_path

LOGGER = logging.getLogger("snappydoo.staleness")


@dataclass(frozen=True)
class CommitRange:
    base: str
    head: str


def _normalize(path: str) -> str:
    cleaned = path.replace("\\", "/")
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    return cleaned


def _under(path: str, root: str) -> bool:
    root = _normalize(root).strip("/")
    if root in ("", "."):
        return True
    return path == root or path.startswith(root + "/")


def filter_candidates(
    paths: Iterable[str],
    exclude: Sequence[str] = (),
    *,
    case_insensitive: bool = False,
) -> List[str]:
    """Keep ``.snap`` files that match the snapshot layout and are not excluded."""
    kept: List[str] = []
    for path in paths:
        if posixpath.splitext(path)[1] != ".snap":
            continue
        parsed = parse_snapshot_path(path)
        if parsed is None:
            LOGGER.debug("Dropping %s: does not match the snapshot layout", path)
            continue
        if is_excluded(parsed[1], exclude, case_insensitive=case_insensitive):
            LOGGER.info("Dropping %s: '%s' is excluded", path, parsed[1])
            continue
        kept.append(path)
    return kept


def resolve_local(
    candidates: Iterable[str],
    modified: Iterable[str],
    *,
    in_root: str,
    render_all: bool = False,
    exclude: Sequence[str] = (),
) -> List[str]:
    """Select the repository-relative snapshot paths under ``in_root`` that need a render."""
    changed = {_normalize(item) for item in modified if item}
    selected = []
    for candidate in candidates:
        path = _normalize(candidate)
        if not _under(path, in_root):
            continue
        if render_all or path in changed:
            selected.append(path)
    return filter_candidates(selected, exclude)


def resolve_commit_range(
    commits: Sequence[CommitInfo],
    bot_login: str,
    base_sha: str,
    head_sha: str,
) -> Optional[CommitRange]:
    """Narrow the range to the commits pushed after the most recent bot commit.

    ``commits`` is ordered oldest first, as the pull request commits API returns
    them. ``None`` means the bot already committed last and there is nothing new
    to render.
    """
    login = bot_login.lower()
    for index in range(len(commits) - 1, -1, -1):
        commit = commits[index]
        authors = {(commit.author_login or "").lower(), (commit.committer_login or "").lower()}
        if login not in authors:
            continue
        if index == len(commits) - 1:
            return None
        return CommitRange(base=commit.sha, head=head_sha)
    return CommitRange(base=base_sha, head=head_sha)


def resolve_remote(changed_files: Iterable[ChangedFile], exclude: Sequence[str] = ()) -> List[str]:
    paths = [item.filename for item in changed_files if item.status != "removed"]
    return filter_candidates(paths, exclude, case_insensitive=True)


def resolve_tree(paths: Iterable[str], *, in_root: str, exclude: Sequence[str] = ()) -> List[str]:
    """Every snapshot below ``in_root`` in a repository tree listing, for full re-renders."""
    selected = [_normalize(path) for path in paths if _under(_normalize(path), in_root)]
    return filter_candidates(selected, exclude, case_insensitive=True)
