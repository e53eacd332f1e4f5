from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from snappydoo.errors import RenderFailed
from snappydoo.schemas import LimitSettings
from snappydoo.services.renderer import Renderer, image_size
from snappydoo.services.reporter import RunReport

LOGGER = logging.getLogger("snappydoo.scheduler")

RENDER_ATTEMPTS = 2


@dataclass
class RenderResult:
    path: str
    data: bytes
    size: Optional[Tuple[int, int]] = None
    attempts: int = 1


@dataclass
class RenderBatch:
    results: List[RenderResult] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)


class RenderScheduler:
    """Run render jobs against a shared renderer behind one concurrency gate."""

    def __init__(self, renderer: Renderer, limit: Optional[LimitSettings] = None) -> None:
        self._renderer = renderer
        self._limit = limit or LimitSettings()
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._pace_lock: Optional[asyncio.Lock] = None
        self._last_start: Optional[float] = None

    @property
    def limit(self) -> LimitSettings:
        return self._limit

    def _gate(self) -> asyncio.Semaphore:
        # One gate per scheduler: overlapping run() calls share the limit.
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._limit.max_concurrent)
            self._pace_lock = asyncio.Lock()
        return self._semaphore

    async def _pace(self) -> None:
        if not self._limit.min_time or self._pace_lock is None:
            return
        async with self._pace_lock:
            loop = asyncio.get_running_loop()
            interval = self._limit.min_time / 1000.0
            if self._last_start is not None:
                delay = self._last_start + interval - loop.time()
                if delay > 0:
                    await asyncio.sleep(delay)
            self._last_start = loop.time()

    async def _capture(self, page: Any, message_text: str) -> Tuple[bytes, Tuple[int, int]]:
        data = await self._renderer.capture(page, message_text)
        return data, image_size(data)

    async def render_one(self, path: str, message: Mapping[str, Any]) -> RenderResult:
        message_text = json.dumps(message)
        async with self._gate():
            await self._pace()
            try:
                page = await self._renderer.open_page()
            except Exception as exc:  # noqa: BLE001
                raise RenderFailed(path, f"could not open page: {exc}") from exc
            try:
                last_error: Optional[Exception] = None
                for attempt in range(1, RENDER_ATTEMPTS + 1):
                    try:
                        data, size = await self._capture(page, message_text)
                    except Exception as exc:  # noqa: BLE001
                        last_error = exc
                        if attempt < RENDER_ATTEMPTS:
                            LOGGER.warning("Rendering %s failed (%s: %s); retrying", path, type(exc).__name__, exc)
                        continue
                    LOGGER.debug("Rendered %s (%sx%s, attempt %s)", path, size[0], size[1], attempt)
                    return RenderResult(path=path, data=data, size=size, attempts=attempt)
                raise RenderFailed(path, f"{type(last_error).__name__}: {last_error}")
            finally:
                try:
                    await self._renderer.close_page(page)
                except Exception as exc:  # noqa: BLE001
                    LOGGER.warning("Failed to close page for %s: %s", path, exc)

    async def _settle(self, path: str, message: Mapping[str, Any]) -> Union[RenderResult, RenderFailed]:
        try:
            return await self.render_one(path, message)
        except RenderFailed as exc:
            LOGGER.error("%s", exc)
            return exc

    async def run(self, jobs: Mapping[str, Mapping[str, Any]], report: Optional[RunReport] = None) -> RenderBatch:
        outcomes = await asyncio.gather(*(self._settle(path, message) for path, message in jobs.items()))

        batch = RenderBatch()
        for outcome in outcomes:
            if isinstance(outcome, RenderFailed):
                batch.failures[outcome.path] = outcome.reason
            else:
                batch.results.append(outcome)
        if report is not None:
            report.rendered += len(batch.results)
            report.render_failures.update(batch.failures)
        return batch
