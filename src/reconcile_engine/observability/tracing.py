"""Per-run phase spans, attached to the run state for inspection."""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class PhaseSpan:
    name: str
    offset_ms: float
    duration_ms: float = 0.0
    error: str | None = None
    metadata: dict = field(default_factory=dict)


class RunTrace:
    """Collects one span per executed phase; offsets are relative to trace creation."""

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        self.started_at = datetime.now(timezone.utc)
        self.spans: list[PhaseSpan] = []
        self._origin = time.monotonic()

    @contextmanager
    def span(self, name: str, **metadata):
        began = time.monotonic()
        s = PhaseSpan(name=name, offset_ms=(began - self._origin) * 1000, metadata=metadata)
        try:
            yield s
        except Exception as e:
            s.error = type(e).__name__
            raise
        finally:
            s.duration_ms = (time.monotonic() - began) * 1000
            self.spans.append(s)

    def to_dicts(self) -> list[dict]:
        out = []
        for s in self.spans:
            entry = {
                "name": s.name,
                "runId": self.run_id,
                "offsetMs": round(s.offset_ms, 2),
                "durationMs": round(s.duration_ms, 2),
                "startedAt": self.started_at.isoformat(),
                **s.metadata,
            }
            if s.error:
                entry["error"] = s.error
            out.append(entry)
        return out
