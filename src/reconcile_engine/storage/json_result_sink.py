"""Result sink that writes each finished run to a JSON file."""

from __future__ import annotations

import asyncio
from pathlib import Path

from pydantic import TypeAdapter

from reconcile_engine.models.domain import ReconciliationResult
from reconcile_engine.observability.logger import get_logger

logger = get_logger("json_result_sink")

_RESULT_ADAPTER = TypeAdapter(ReconciliationResult)


class JsonFileResultSink:
    def __init__(self, output_dir: str) -> None:
        self._output_dir = Path(output_dir)

    def path_for(self, run_id: str) -> Path:
        return self._output_dir / f"{run_id}.json"

    async def persist(self, result: ReconciliationResult) -> None:
        path = self.path_for(result.run_id)
        payload = _RESULT_ADAPTER.dump_json(result, indent=2)
        await asyncio.to_thread(self._write, path, payload)
        logger.info("result_written", run_id=result.run_id, path=str(path))

    def _write(self, path: Path, payload: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)

    @staticmethod
    def load(path: str | Path) -> ReconciliationResult:
        return _RESULT_ADAPTER.validate_json(Path(path).read_bytes())
