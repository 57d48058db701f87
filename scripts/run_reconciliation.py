"""Run a reconciliation over an evidence fixture without starting the server.

Usage:
    python scripts/run_reconciliation.py fixtures/repo.json [--mode delta --baseline-run RUN_ID]
        [--output-dir results] [--clustering semantic] [--threshold 70]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from reconcile_engine.config.settings import Settings
from reconcile_engine.discovery.fixture_provider import load_fixture
from reconcile_engine.generation.gemini_provider import GeminiProvider
from reconcile_engine.models.domain import ClusteringMethod, DeltaBaseline, RunMode, RunOptions
from reconcile_engine.observability.logger import setup_logging
from reconcile_engine.pipeline.orchestrator import ReconciliationPipeline
from reconcile_engine.pipeline.state import create_run_state
from reconcile_engine.storage.json_result_sink import JsonFileResultSink
from reconcile_engine.storage.sqlite_run_store import SQLiteRunStore


def print_header(title: str) -> None:
    print(f"\n{'=' * 64}")
    print(f"  {title}")
    print(f"{'=' * 64}")


async def main(args: argparse.Namespace) -> int:
    settings = Settings()
    setup_logging(settings.log_level, json_output=False)

    Path(settings.sqlite_run_db_path).parent.mkdir(parents=True, exist_ok=True)
    store = SQLiteRunStore(settings.sqlite_run_db_path)
    await store.initialize()

    options = RunOptions(
        mode=RunMode(args.mode),
        baseline=DeltaBaseline(run_id=args.baseline_run) if args.baseline_run else None,
        quality_threshold=args.threshold,
        clustering_method=ClusteringMethod(args.clustering) if args.clustering else None,
        use_llm_for_naming=False if args.no_llm_naming else None,
    )
    pipeline = ReconciliationPipeline(
        provider=load_fixture(args.fixture),
        llm=GeminiProvider(
            api_key=settings.google_api_key,
            model=settings.gemini_model,
            max_tokens=settings.gemini_max_tokens,
        ),
        settings=settings,
        dispositions=store,
        sink=JsonFileResultSink(args.output_dir),
        store=store,
    )

    result = await pipeline.run(create_run_state(args.root or args.fixture, options))

    print_header(f"RUN {result.run_id}: {result.status.value.upper()}")
    s = result.summary
    print(f"  Evidence:        {s.total_evidence}")
    print(f"  Atoms:           {s.total_atoms}")
    print(f"  Molecules:       {s.total_molecules}")
    print(f"  Approved:        {s.approved}")
    print(f"  Quality failed:  {s.quality_failed}")
    print(f"  LLM calls:       {s.llm_calls}")
    print(f"  Duration:        {s.duration_ms:.0f} ms")

    for warning in result.warnings:
        print(f"  WARN  {warning}")
    for error in result.errors:
        print(f"  ERROR {error}")

    return 1 if result.errors else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Reconcile an evidence fixture into atoms and molecules")
    parser.add_argument("fixture", help="Path to the evidence fixture JSON")
    parser.add_argument("--root", default=None, help="Root directory recorded for the run")
    parser.add_argument("--mode", choices=["full-scan", "delta"], default="full-scan")
    parser.add_argument("--baseline-run", default=None, help="Baseline run id for delta mode")
    parser.add_argument("--output-dir", default="results")
    parser.add_argument("--threshold", type=int, default=None, help="Quality threshold override")
    parser.add_argument(
        "--clustering",
        choices=[m.value for m in ClusteringMethod],
        default=None,
    )
    parser.add_argument("--no-llm-naming", action="store_true")
    sys.exit(asyncio.run(main(parser.parse_args())))
