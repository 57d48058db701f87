"""Tests for atom inference."""

import pytest

from reconcile_engine.cancellation import CancellationRegistry
from reconcile_engine.exceptions import LLMError, RunCancelled
from reconcile_engine.inference.dependency import DependencyGraph, related_source_stem
from reconcile_engine.inference.engine import AtomInferenceEngine, order_by_tier
from reconcile_engine.inference.validation import find_violations, normalize_confidence
from reconcile_engine.models.domain import DependencyEdge, EvidenceType
from reconcile_engine.protocols.llm import TaskType

from fakes import CancellingLLM, FakeLLM, FakeToolRegistry, atom_payload


# --- helpers ---


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, 50), (0.85, 85), (1, 100), (0, 0), (72, 72), (72.6, 73),
        (84.5, 85), (0.125, 13), (150, 50), (-3, 50),
    ],
)
def test_normalize_confidence(value, expected):
    assert normalize_confidence(value) == expected


def test_find_violations():
    assert find_violations("User can reset a forgotten password") == []
    assert any("implementation detail" in v for v in find_violations("The AuthService class validates tokens"))
    assert find_violations("User can log in, and view the dashboard") == ["Description combines multiple behaviors"]


def test_related_source_stem():
    assert related_source_stem("src/auth/login.spec.ts") == "src/auth/login"
    assert related_source_stem("tests/test_login.py") == "tests/login"
    assert related_source_stem("pkg/login_test.go") == "pkg/login"


def test_order_by_tier_puts_tests_first(make_item):
    items = [
        make_item("documentation", "docs/a.md", "A"),
        make_item("source_export", "src/a.ts", "a"),
        make_item("test", "tests/test_a.py", "a works"),
    ]
    tiers = order_by_tier(items)
    assert [t[0].type for t in tiers] == [
        EvidenceType.TEST,
        EvidenceType.SOURCE_EXPORT,
        EvidenceType.DOCUMENTATION,
    ]


def test_foundational_detection():
    edges = [DependencyEdge(f"src/feature{i}.ts", "src/core/db.ts") for i in range(3)]
    edges.append(DependencyEdge("src/core/db.ts", "src/core/config.ts"))
    graph = DependencyGraph(edges)
    assert graph.is_foundational("src/core/db.ts")
    assert not graph.is_foundational("src/core/config.ts")
    assert not graph.is_foundational("src/core/db.ts", min_dependents=4)


# --- engine ---


@pytest.mark.asyncio
async def test_one_atom_per_evidence_item(settings, make_item):
    items = [
        make_item("source_export", "src/cart/cart.ts", "addToCart"),
        make_item("test", "src/cart/cart.spec.ts", "adds an item to the cart"),
        make_item("api_endpoint", "src/cart/cart.controller.ts", "getCart"),
    ]
    llm = FakeLLM(
        {
            "addToCart": atom_payload("Shopper can add a product to the cart"),
            "adds an item": atom_payload("Cart shows the added item", confidence=0.9),
            "getCart": atom_payload("Client retrieves the current cart contents", confidence=70),
        }
    )
    outcome = await AtomInferenceEngine(llm, settings).infer("run-1", items, {})

    assert [a.temp_id for a in outcome.atoms] == ["atom-1", "atom-2", "atom-3"]
    # tests are inferred first
    assert outcome.atoms[0].description == "Cart shows the added item"
    assert outcome.atoms[0].confidence == 90
    assert outcome.atoms[0].primary_evidence_type == EvidenceType.TEST
    # then endpoints, then exports
    assert outcome.atoms[1].confidence == 70
    assert outcome.atoms[2].description == "Shopper can add a product to the cart"
    assert outcome.llm_calls == 3
    assert outcome.fallback_count == 0


@pytest.mark.asyncio
async def test_llm_failure_produces_fallback_atom(settings, make_item):
    items = [
        make_item("test", "tests/test_login.py", "rejects expired token"),
        make_item("ui_component", "src/ui/Banner.tsx", "Banner"),
    ]
    llm = FakeLLM({"rejects expired token": LLMError("quota exceeded"), "Banner": "definitely not json"})
    outcome = await AtomInferenceEngine(llm, settings).infer("run-1", items, {})

    assert outcome.fallback_count == 2
    test_atom, ui_atom = outcome.atoms
    assert test_atom.confidence == 30
    assert test_atom.category == "functional"
    assert test_atom.description == "Behavior verified by test: rejects expired token"
    assert test_atom.observable_outcomes == ["Test passes as expected"]
    assert test_atom.reasoning == "Fallback atom - requires manual review"
    assert test_atom.ambiguity_reasons[0] == "LLM inference failed, using fallback"
    assert "quota exceeded" in test_atom.ambiguity_reasons[1]
    assert ui_atom.description == "Behavior evidenced by ui component: Banner"


@pytest.mark.asyncio
async def test_min_confidence_filter_accounts_for_every_item(settings, make_item):
    items = [make_item("test", f"tests/test_{i}.py", f"case-{i}") for i in range(6)]
    llm = FakeLLM(
        {
            "case-0": LLMError("boom"),
            "case-1": atom_payload("Order total includes tax", confidence=0.2),
            "case-2": atom_payload("Order total excludes shipping", confidence=0.9),
        }
    )
    outcome = await AtomInferenceEngine(llm, settings).infer("run-1", items, {}, min_confidence=40)

    assert outcome.filtered_count == 2
    assert len(outcome.atoms) + outcome.filtered_count == len(items)
    # temp ids stay unique even when atoms are filtered
    assert len({a.temp_id for a in outcome.atoms}) == len(outcome.atoms)


@pytest.mark.asyncio
async def test_unknown_category_maps_to_functional(settings, make_item):
    item = make_item("test", "tests/test_a.py", "case")
    llm = FakeLLM({"case": atom_payload("Invoice PDF is downloadable", category="Compliance")})
    outcome = await AtomInferenceEngine(llm, settings).infer("run-1", [item], {})
    atom = outcome.atoms[0]
    assert atom.category == "functional"
    assert any("Compliance" in r for r in atom.ambiguity_reasons)


@pytest.mark.asyncio
async def test_violation_triggers_corrective_reprompt(settings, make_item):
    item = make_item("test", "tests/test_a.py", "case")
    llm = FakeLLM(
        {
            "case": [
                atom_payload("The UserService class stores the profile"),
                atom_payload("User profile changes persist across sessions"),
            ]
        }
    )
    outcome = await AtomInferenceEngine(llm, settings).infer("run-1", [item], {})

    atom = outcome.atoms[0]
    assert atom.description == "User profile changes persist across sessions"
    assert atom.ambiguity_reasons == []
    assert outcome.llm_calls == 2
    reprompt = llm.calls_for(TaskType.INFERENCE)[1]
    assert "violated" in reprompt[-1]["content"]


@pytest.mark.asyncio
async def test_remaining_violations_recorded_as_ambiguity(settings, make_item):
    item = make_item("test", "tests/test_a.py", "case")
    llm = FakeLLM({"case": atom_payload("The OrderController class returns orders")})
    outcome = await AtomInferenceEngine(llm, settings).infer("run-1", [item], {})

    atom = outcome.atoms[0]
    assert atom.description == "The OrderController class returns orders"
    assert any("implementation detail" in r for r in atom.ambiguity_reasons)
    assert outcome.llm_calls == 1 + settings.max_reprompts


@pytest.mark.asyncio
async def test_inference_tool_preferred_over_llm(settings, make_item):
    tools = FakeToolRegistry(
        {"infer_atom_from_evidence": lambda args: atom_payload(f"Tool atom for {args['name']}")}
    )
    llm = FakeLLM()
    item = make_item("test", "tests/test_a.py", "case")
    outcome = await AtomInferenceEngine(llm, settings, tools).infer("run-1", [item], {})

    assert outcome.atoms[0].description == "Tool atom for case"
    assert llm.call_count == 0
    assert outcome.llm_calls == 0


@pytest.mark.asyncio
async def test_inference_tool_failure_falls_back_to_llm(settings, make_item):
    def broken(args):
        return {"description": ""}

    llm = FakeLLM({"case": atom_payload("Search returns matching products")})
    item = make_item("test", "tests/test_a.py", "case")
    outcome = await AtomInferenceEngine(
        llm, settings, FakeToolRegistry({"infer_atom_from_evidence": broken})
    ).infer("run-1", [item], {})

    assert outcome.atoms[0].description == "Search returns matching products"
    assert llm.call_count == 1


@pytest.mark.asyncio
async def test_foundational_boost(settings, make_item):
    edges = [DependencyEdge(f"src/feature{i}.ts", "src/auth/session.ts") for i in range(3)]
    graph = DependencyGraph(edges)
    items = [
        make_item("test", "src/auth/session.spec.ts", "keeps session alive"),
        make_item("test", "src/auth/session.spec.ts", "expires idle session"),
        make_item("test", "src/feature0.spec.ts", "feature works"),
    ]
    llm = FakeLLM(
        {
            "keeps session alive": atom_payload("Active users stay signed in", confidence=0.85),
            "expires idle session": atom_payload("Idle users are signed out", confidence=0.95),
            "feature works": atom_payload("Feature page renders", confidence=0.6),
        }
    )
    outcome = await AtomInferenceEngine(llm, settings).infer("run-1", items, {}, graph)

    assert [a.confidence for a in outcome.atoms] == [95, 100, 60]
    assert outcome.atoms[0].reasoning.endswith("(boosted: foundational module)")
    assert outcome.boosted_count == 2


@pytest.mark.asyncio
async def test_fallback_atoms_are_not_boosted(settings, make_item):
    graph = DependencyGraph([DependencyEdge(f"src/f{i}.ts", "src/core/db.ts") for i in range(3)])
    item = make_item("source_export", "src/core/db.ts", "connect")
    llm = FakeLLM({"connect": LLMError("down")})
    outcome = await AtomInferenceEngine(llm, settings).infer("run-1", [item], {}, graph)
    assert outcome.atoms[0].confidence == 30


@pytest.mark.asyncio
async def test_cancelled_before_start(settings, make_item):
    registry = CancellationRegistry()
    registry.cancel("run-1")
    llm = FakeLLM()
    with pytest.raises(RunCancelled) as exc_info:
        await AtomInferenceEngine(llm, settings, cancellation=registry).infer(
            "run-1", [make_item()], {}
        )
    assert exc_info.value.partial_atoms == []
    assert llm.call_count == 0


@pytest.mark.asyncio
async def test_cancellation_mid_batch_discards_in_flight_batch(settings, make_item):
    settings.inference_batch_size = 2
    registry = CancellationRegistry()
    items = [make_item("test", "tests/test_x.py", f"case-{i}") for i in range(6)]
    llm = CancellingLLM(registry, "run-1", trigger="case-2")

    with pytest.raises(RunCancelled) as exc_info:
        await AtomInferenceEngine(llm, settings, cancellation=registry).infer("run-1", items, {})

    partial = exc_info.value.partial_atoms
    assert [a.source_reference.name for a in partial] == ["case-0", "case-1"]
    # the third batch never starts
    assert llm.call_count == 4
