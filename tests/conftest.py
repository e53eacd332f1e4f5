from __future__ import annotations

import asyncio
import io
from typing import Dict, List, Optional, Set

import pytest
from PIL import Image

from snappydoo.services.reconciler import ArtifactStore
from snappydoo.services.renderer import Renderer

SNAPSHOT_TEXT = """// Jest Snapshot v1, https://goo.gl/fbAQLP

exports[`renders correctly`] = `
Object {
  "text": "hi",
}
`;
"""


def png_bytes(width: int = 4, height: int = 2) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (255, 255, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


class StubRenderer(Renderer):
    """Renderer double that records page concurrency and can fail on demand.

    ``failures`` maps a substring of the serialized message to the number of
    captures that should raise before one succeeds.
    """

    def __init__(self, failures: Optional[Dict[str, int]] = None, delay: float = 0.01, payload: Optional[bytes] = None) -> None:
        self.failures = dict(failures or {})
        self.delay = delay
        self.payload = payload if payload is not None else png_bytes()
        self.active = 0
        self.peak = 0
        self.opened = 0
        self.closed = 0
        self.captures: List[str] = []
        self.page_opened_at: List[float] = []
        self.started = False
        self.shut_down = False

    async def start(self) -> None:
        self.started = True

    async def open_page(self) -> Dict[str, int]:
        self.opened += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        self.page_opened_at.append(asyncio.get_running_loop().time())
        return {"page": self.opened}

    async def capture(self, page: Dict[str, int], message_text: str) -> bytes:
        self.captures.append(message_text)
        await asyncio.sleep(self.delay)
        for marker, remaining in self.failures.items():
            if marker in message_text and remaining > 0:
                self.failures[marker] = remaining - 1
                raise RuntimeError(f"builder timed out for {marker}")
        return self.payload

    async def close_page(self, page: Dict[str, int]) -> None:
        self.closed += 1
        self.active -= 1

    async def shutdown(self) -> None:
        self.shut_down = True


class MemoryArtifactStore(ArtifactStore):
    def __init__(self, failing: Optional[Set[str]] = None) -> None:
        self.files: Dict[str, bytes] = {}
        self.failing = set(failing or ())

    async def write(self, path: str, data: bytes) -> str:
        await asyncio.sleep(0)
        if path in self.failing:
            raise OSError(f"disk full while writing {path}")
        outcome = "updated" if path in self.files else "created"
        self.files[path] = data
        return outcome


@pytest.fixture
def stub_renderer() -> StubRenderer:
    return StubRenderer()


@pytest.fixture
def memory_store() -> MemoryArtifactStore:
    return MemoryArtifactStore()
