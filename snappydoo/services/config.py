from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from snappydoo.constants import MANIFEST_KEY
from snappydoo.errors import ConfigError
from snappydoo.schemas import RunConfig

MISSING_PATHS_MESSAGE = "Please specify both an output and an input path."


def manifest_section(text: Union[str, bytes], source: str = "package.json") -> Dict[str, Any]:
    """Return the ``snappydoo`` section of a package manifest, or ``{}`` when it has none."""
    try:
        manifest = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Cannot parse {source}: {exc}") from exc
    if not isinstance(manifest, dict):
        raise ConfigError(f"{source} must contain a JSON object")
    section = manifest.get(MANIFEST_KEY) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{MANIFEST_KEY}' in {source} must be an object")
    return section


def load_manifest_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(
            f"Cannot find {path.name}. Make sure you run snappydoo from the root of your project ({exc})"
        ) from exc
    return manifest_section(text, source=str(path))


def merge_config(manifest: Optional[Mapping[str, Any]], overrides: Optional[Mapping[str, Any]] = None) -> RunConfig:
    """Combine manifest settings with overrides (CLI flags win) into a validated ``RunConfig``."""
    merged: Dict[str, Any] = dict(manifest or {})
    for key, value in (overrides or {}).items():
        if value is not None:
            merged[key] = value
    if not merged.get("in") or not merged.get("out"):
        raise ConfigError(MISSING_PATHS_MESSAGE)
    try:
        return RunConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid snappydoo configuration: {exc}") from exc
