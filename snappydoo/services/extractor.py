"""Turn Jest snapshot files into render jobs.

Snapshot files are JavaScript modules of the form::

    exports[`renders correctly 1`] = `
    Object {
      "text": "hi",
    }
    `;

They are read with a small grammar rather than evaluated, because the bot
mode reads them straight out of untrusted pull requests.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from snappydoo.errors import MalformedSnapshot
from snappydoo.services.reporter import RunReport

LOGGER = logging.getLogger("snappydoo.extractor")

SNAPSHOT_PATTERN = re.compile(r"^(?:(.*)/)?__snapshots__/([^/]+)\.test\.(js|ts)\.snap$")

Message = Dict[str, Any]

_WHITESPACE = re.compile(r"\s+")
_LINE_COMMENT = re.compile(r"//[^\n]*")
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_NUMBER = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_IDENTIFIER = re.compile(r"[A-Za-z_$][\w$]*")
_DOUBLE_QUOTED = re.compile(r'"(?:[^"\\]|\\.)*"', re.DOTALL)
_SINGLE_QUOTED = re.compile(r"'(?:[^'\\]|\\.)*'", re.DOTALL)
_LITERAL_WORDS = {"true": "true", "false": "false", "null": "null", "undefined": "null"}


@dataclass(frozen=True)
class SnapshotFile:
    path: str
    content: Union[str, bytes]

    @property
    def group(self) -> Optional[str]:
        parsed = parse_snapshot_path(self.path)
        return parsed[0] if parsed else None

    @property
    def test(self) -> Optional[str]:
        parsed = parse_snapshot_path(self.path)
        return parsed[1] if parsed else None

    def text(self) -> str:
        """Decoded file content; raises ``UnicodeDecodeError`` for non UTF-8 bytes."""
        if isinstance(self.content, bytes):
            return self.content.decode("utf-8").replace("\r\n", "\n")
        return self.content


@dataclass(frozen=True)
class SnapshotEntry:
    name: str
    raw: str


def parse_snapshot_path(path: str) -> Optional[Tuple[str, str]]:
    """Return ``(group, test)`` for a snapshot path or ``None`` when it is not one."""
    match = SNAPSHOT_PATTERN.match(path.replace("\\", "/"))
    if not match:
        return None
    return (match.group(1) or "").strip("/"), match.group(2)


def is_excluded(test: str, exclude: Sequence[str], *, case_insensitive: bool = False) -> bool:
    if case_insensitive:
        lowered = test.lower()
        return any(lowered == item.lower() for item in exclude)
    return test in exclude


def output_path(out_root: str, group: str, test: str, entry: str) -> str:
    parts = [out_root.rstrip("/")] + [part.strip("/") for part in (group, test)] + [f"{entry}.png"]
    joined = "/".join(part for part in parts if part)
    return re.sub(r"/{2,}", "/", joined)


def relative_group(group: str, in_root: Optional[str]) -> str:
    if not in_root:
        return group
    root = in_root.replace("\\", "/")
    while root.startswith("./"):
        root = root[2:]
    root = root.strip("/")
    if root in ("", "."):
        return group
    if group == root:
        return ""
    if group.startswith(root + "/"):
        return group[len(root) + 1 :]
    return group


class _ExportScanner:
    """Read ``exports[`name`] = `value`;`` statements without executing anything."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def _skip_trivia(self) -> None:
        while self._pos < len(self._text):
            for pattern in (_WHITESPACE, _LINE_COMMENT, _BLOCK_COMMENT):
                match = pattern.match(self._text, self._pos)
                if match and match.end() > self._pos:
                    self._pos = match.end()
                    break
            else:
                return

    def _expect(self, literal: str) -> None:
        self._skip_trivia()
        if not self._text.startswith(literal, self._pos):
            found = self._text[self._pos : self._pos + 20] or "end of file"
            raise ValueError(f"expected {literal!r} at offset {self._pos}, found {found!r}")
        self._pos += len(literal)

    def _template_literal(self) -> str:
        self._expect("`")
        chunks: List[str] = []
        text = self._text
        while self._pos < len(text):
            char = text[self._pos]
            if char == "\\":
                if self._pos + 1 >= len(text):
                    break
                chunks.append(text[self._pos + 1])
                self._pos += 2
                continue
            if char == "`":
                self._pos += 1
                return "".join(chunks)
            if char == "$" and text.startswith("${", self._pos):
                raise ValueError(f"template interpolation is not allowed (offset {self._pos})")
            chunks.append(char)
            self._pos += 1
        raise ValueError("unterminated template literal")

    def _key(self) -> str:
        self._skip_trivia()
        if self._text.startswith("`", self._pos):
            return self._template_literal()
        for pattern in (_DOUBLE_QUOTED, _SINGLE_QUOTED):
            match = pattern.match(self._text, self._pos)
            if match:
                self._pos = match.end()
                return _unquote(match.group(0))
        raise ValueError(f"expected a snapshot name at offset {self._pos}")

    def entries(self) -> List[SnapshotEntry]:
        found: List[SnapshotEntry] = []
        while True:
            self._skip_trivia()
            if self._pos >= len(self._text):
                return found
            self._expect("exports")
            self._expect("[")
            name = self._key()
            self._expect("]")
            self._expect("=")
            value = self._template_literal()
            self._expect(";")
            found.append(SnapshotEntry(name=name, raw=value))


def _unquote(token: str) -> str:
    if token.startswith('"'):
        return json.loads(token)
    body = token[1:-1]
    return re.sub(r"\\(.)", r"\1", body, flags=re.DOTALL)


def parse_exports(text: str) -> Dict[str, str]:
    """Return ``{snapshot name: serialized value}`` for a snapshot file's text."""
    return {entry.name: entry.raw for entry in _ExportScanner(text).entries()}


def relaxed_to_json(text: str) -> str:
    """Rewrite a relaxed object literal (bare keys, trailing commas, comments) as JSON."""
    tokens: List[Tuple[str, str]] = []
    pos = 0
    while pos < len(text):
        char = text[pos]
        if char.isspace():
            pos += 1
            continue
        if text.startswith("//", pos) or text.startswith("/*", pos):
            pattern = _LINE_COMMENT if text.startswith("//", pos) else _BLOCK_COMMENT
            match = pattern.match(text, pos)
            if not match:
                raise ValueError(f"unterminated comment at offset {pos}")
            pos = match.end()
            continue
        if char in "{}[]:,":
            tokens.append(("punct", char))
            pos += 1
            continue
        if char == '"':
            match = _DOUBLE_QUOTED.match(text, pos)
            if not match:
                raise ValueError(f"unterminated string at offset {pos}")
            tokens.append(("string", match.group(0)))
            pos = match.end()
            continue
        if char == "'":
            match = _SINGLE_QUOTED.match(text, pos)
            if not match:
                raise ValueError(f"unterminated string at offset {pos}")
            tokens.append(("string", json.dumps(_unquote(match.group(0)))))
            pos = match.end()
            continue
        match = _NUMBER.match(text, pos)
        if match:
            tokens.append(("number", match.group(0).lstrip("+")))
            pos = match.end()
            continue
        match = _IDENTIFIER.match(text, pos)
        if match:
            tokens.append(("word", match.group(0)))
            pos = match.end()
            continue
        raise ValueError(f"unexpected character {char!r} at offset {pos}")

    output: List[str] = []
    for index, (kind, value) in enumerate(tokens):
        following = tokens[index + 1][1] if index + 1 < len(tokens) else None
        if kind == "punct" and value == "," and following in ("}", "]"):
            continue
        if kind == "word":
            if following == ":":
                output.append(json.dumps(value))
            else:
                output.append(_LITERAL_WORDS.get(value, json.dumps(value)))
            continue
        output.append(value)
    return "".join(output)


def normalize_message(value: Any) -> Message:
    if isinstance(value, dict) and isinstance(value.get("attachments"), list):
        return value
    return {"attachments": [value]}


def decode_entry(raw: str) -> Message:
    cleaned = raw.replace("Object ", "").replace("Array ", "").replace("\n", "")
    return normalize_message(json.loads(relaxed_to_json(cleaned)))


def extract_messages(snapshot: SnapshotFile) -> Tuple[Dict[str, Message], List[MalformedSnapshot]]:
    """Decode every entry of one file, collecting per-entry failures instead of raising them."""
    try:
        raw_entries = parse_exports(snapshot.text())
    except ValueError as exc:  # UnicodeDecodeError included
        return {}, [MalformedSnapshot(snapshot.path, "*", str(exc))]

    messages: Dict[str, Message] = {}
    failures: List[MalformedSnapshot] = []
    for name, raw in raw_entries.items():
        try:
            messages[name] = decode_entry(raw)
        except ValueError as exc:
            failures.append(MalformedSnapshot(snapshot.path, name, str(exc)))
    return messages, failures


def extract_jobs(
    files: Iterable[SnapshotFile],
    out_root: str,
    exclude: Sequence[str] = (),
    *,
    in_root: Optional[str] = None,
    case_insensitive: bool = False,
    report: Optional[RunReport] = None,
) -> Dict[str, Message]:
    jobs: Dict[str, Message] = {}
    for snapshot in files:
        parsed = parse_snapshot_path(snapshot.path)
        if parsed is None:
            LOGGER.debug("Skipping %s: not a snapshot file", snapshot.path)
            continue
        group, test = parsed
        if is_excluded(test, exclude, case_insensitive=case_insensitive):
            LOGGER.info("Skipping %s: '%s' is excluded", snapshot.path, test)
            continue
        messages, failures = extract_messages(snapshot)
        for failure in failures:
            LOGGER.warning("%s", failure)
            if report is not None:
                report.malformed += 1
        folder_group = relative_group(group, in_root)
        for name, message in messages.items():
            jobs[output_path(out_root, folder_group, test, name)] = message
    if report is not None:
        report.jobs += len(jobs)
    return jobs
