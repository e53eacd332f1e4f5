from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, Optional


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


@dataclass
class RunReport:
    """Counters and timing for a single run. Build a fresh one per invocation."""

    jobs: int = 0
    malformed: int = 0
    rendered: int = 0
    created: int = 0
    updated: int = 0
    render_failures: Dict[str, str] = field(default_factory=dict)
    write_failures: Dict[str, str] = field(default_factory=dict)
    started_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None

    @property
    def written(self) -> int:
        return self.created + self.updated

    @property
    def duration(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return max(0.0, end - self.started_at)

    def record_write(self, outcome: str) -> None:
        if outcome == "updated":
            self.updated += 1
        else:
            self.created += 1

    def finish(self) -> "RunReport":
        if self.finished_at is None:
            self.finished_at = time.monotonic()
        return self

    def summary(self) -> str:
        text = (
            f"Snappydoo done in {self.duration:.2f}s. "
            f"Created {_plural(self.created, 'file')}, updated {_plural(self.updated, 'file')} "
            f"({self.written} of {_plural(self.jobs, 'screenshot')} written)"
        )
        failed = len(self.render_failures) + len(self.write_failures)
        if failed:
            text += f"; {failed} failed"
        if self.malformed:
            text += f"; {_plural(self.malformed, 'malformed snapshot')} skipped"
        return text
