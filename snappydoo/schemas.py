from __future__ import annotations

import os
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from snappydoo.constants import (
    DEFAULT_API_URL,
    DEFAULT_BOT_LOGIN,
    DEFAULT_BUILDER_URL,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_REDO_COMMAND,
)


class LimitSettings(BaseModel):
    """Concurrency limiter settings, Bottleneck style keys accepted."""

    max_concurrent: int = Field(default=DEFAULT_MAX_CONCURRENT, ge=1, alias="maxConcurrent")
    min_time: int = Field(default=0, ge=0, alias="minTime", description="Milliseconds between job starts.")

    model_config = {"populate_by_name": True, "frozen": True, "extra": "ignore"}

    @model_validator(mode="before")
    @classmethod
    def accept_bare_integer(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("limit must be an integer or a settings object")
        if isinstance(value, int):
            return {"max_concurrent": value}
        return value


class RunConfig(BaseModel):
    input_path: str = Field(..., alias="in")
    output_path: str = Field(..., alias="out")
    exclude: List[str] = Field(default_factory=list)
    limit: LimitSettings = Field(default_factory=LimitSettings)
    builder_url: str = Field(default=DEFAULT_BUILDER_URL, alias="builderUrl")

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("input_path", "output_path")
    @classmethod
    def validate_path(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Path must not be empty.")
        return cleaned

    @field_validator("exclude", mode="before")
    @classmethod
    def coerce_exclude(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


class BotSettings(BaseModel):
    github_token: Optional[str] = None
    webhook_secret: Optional[str] = None
    bot_login: str = DEFAULT_BOT_LOGIN
    api_url: str = DEFAULT_API_URL
    redo_command: str = DEFAULT_REDO_COMMAND

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BotSettings":
        env = os.environ if environ is None else environ
        values: Dict[str, str] = {}
        for field_name in cls.model_fields:
            raw = env.get(f"SNAPPYDOO_{field_name.upper()}")
            if raw:
                values[field_name] = raw
        return cls(**values)


class CommitInfo(BaseModel):
    sha: str
    author_login: Optional[str] = None
    committer_login: Optional[str] = None


class ChangedFile(BaseModel):
    filename: str
    status: str = "modified"


class Account(BaseModel):
    login: str


class Repository(BaseModel):
    full_name: str
    owner: Account
    default_branch: str = "main"


class GitRef(BaseModel):
    ref: str
    sha: str
    repo: Optional[Repository] = None


class PullRequest(BaseModel):
    number: int
    head: GitRef
    base: GitRef


class PullRequestEvent(BaseModel):
    action: str
    pull_request: PullRequest
    repository: Repository


class Issue(BaseModel):
    number: int
    title: str = ""
    body: Optional[str] = None
    user: Account


class IssueEvent(BaseModel):
    action: str
    issue: Issue
    repository: Repository
