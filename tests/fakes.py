"""Scripted collaborators shared by unit and integration tests."""

from __future__ import annotations

import json
from collections.abc import Callable

from reconcile_engine.models.domain import ReconciliationResult
from reconcile_engine.protocols.batch import BatchRequest, BatchResult
from reconcile_engine.protocols.llm import TaskType


def atom_payload(
    description: str,
    category: str = "functional",
    outcomes: list[str] | None = None,
    confidence: float | None = 0.8,
    reasoning: str = "Derived from the evidence assertions",
    ambiguity: list[str] | None = None,
) -> dict:
    return {
        "description": description,
        "category": category,
        "observableOutcomes": outcomes
        if outcomes is not None
        else [f"The user observes that {description.lower()}"],
        "confidence": confidence,
        "reasoning": reasoning,
        "ambiguityReasons": ambiguity or [],
    }


class FakeLLM:
    """Inference replies are picked by the first key found in the user prompt.

    A reply may be a dict (sent as JSON), a raw string, an exception to raise,
    or a list of those consumed one per call.
    """

    def __init__(self, responses: dict | None = None, naming=None) -> None:
        self.responses = dict(responses or {})
        self.naming = naming
        self.calls: list[tuple[TaskType, list[dict[str, str]]]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def calls_for(self, task_type: TaskType) -> list[list[dict[str, str]]]:
        return [messages for t, messages in self.calls if t == task_type]

    async def invoke(self, messages, task_type, prompt_caching=False) -> str:
        self.calls.append((task_type, messages))
        if task_type == TaskType.NAMING:
            reply = self.naming if self.naming is not None else "[]"
        else:
            prompt = messages[1]["content"]
            reply = None
            for key, value in self.responses.items():
                if key in prompt:
                    reply = value
                    break
            if reply is None:
                reply = atom_payload("Visitors see a confirmation banner after submitting")

        if isinstance(reply, list):
            reply = reply.pop(0) if len(reply) > 1 else reply[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply


class FakeToolRegistry:
    def __init__(self, handlers: dict[str, Callable[[dict], dict]] | None = None) -> None:
        self.handlers = dict(handlers or {})
        self.calls: list[tuple[str, dict]] = []

    def has_tool(self, name: str) -> bool:
        return name in self.handlers

    async def execute_tool(self, name: str, args: dict) -> dict:
        self.calls.append((name, args))
        return self.handlers[name](args)


class FakeBatchService:
    def __init__(
        self,
        responder: Callable[[BatchRequest], BatchResult] | None = None,
        available: bool = True,
        error: Exception | None = None,
    ) -> None:
        self.responder = responder or (
            lambda r: BatchResult(custom_id=r.custom_id, content='{"totalScore": 90, "feedback": "clear"}')
        )
        self.available = available
        self.error = error
        self.submitted: list[list[BatchRequest]] = []
        self.progress: list[tuple[int, int, int]] = []

    async def is_available(self) -> bool:
        return self.available

    async def submit_and_wait(self, requests, on_progress=None):
        self.submitted.append(list(requests))
        if self.error is not None:
            raise self.error
        results = [self.responder(r) for r in requests]
        if on_progress is not None:
            failed = sum(1 for r in results if r.error)
            on_progress(len(results), len(requests), failed)
            self.progress.append((len(results), len(requests), failed))
        return results


class RecordingSink:
    def __init__(self, error: Exception | None = None) -> None:
        self.results: list[ReconciliationResult] = []
        self.error = error

    async def persist(self, result: ReconciliationResult) -> None:
        if self.error is not None:
            raise self.error
        self.results.append(result)


class StaticDispositions:
    def __init__(self, keys: set[str] | None = None, error: Exception | None = None) -> None:
        self.keys = set(keys or ())
        self.error = error

    async def terminal_evidence_keys(self, root: str) -> set[str]:
        if self.error is not None:
            raise self.error
        return set(self.keys)


class CancellingLLM(FakeLLM):
    """Flags ``run_id`` as cancelled when ``trigger`` appears in a prompt."""

    def __init__(self, registry, run_id, trigger, responses=None) -> None:
        super().__init__(responses)
        self.registry = registry
        self.run_id = run_id
        self.trigger = trigger

    async def invoke(self, messages, task_type, prompt_caching=False) -> str:
        if self.trigger in messages[1]["content"]:
            self.registry.cancel(self.run_id)
        return await super().invoke(messages, task_type, prompt_caching)
