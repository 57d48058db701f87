"""Tests for evidence discovery, path filters and inference selection."""

import pytest

from reconcile_engine.discovery.discoverer import EvidenceDiscoverer
from reconcile_engine.discovery.fixture_provider import InMemoryEvidenceProvider
from reconcile_engine.discovery.path_filters import is_included
from reconcile_engine.discovery.selection import apply_type_caps, dedup_same_file, select_for_inference
from reconcile_engine.models.domain import DeltaBaseline, EvidenceType, RunMode, RunOptions

from fakes import StaticDispositions


@pytest.fixture
def evidence(make_item):
    return [
        make_item("test", "src/auth/login.spec.ts", "logs in with valid credentials"),
        make_item("test", "src/auth/login.spec.ts", "rejects a wrong password"),
        make_item("api_endpoint", "src/auth/auth.controller.ts", "login", method="POST", path="/auth/login"),
        make_item("source_export", "src/cart/cart.ts", "addToCart", export_type="function"),
        make_item("documentation", "docs/checkout.md", "Checkout", code="# Checkout\nPay by card"),
    ]


def delta_options(**kwargs):
    return RunOptions(mode=RunMode.DELTA, baseline=DeltaBaseline(run_id="run-previous"), **kwargs)


# --- path filters ---


def test_include_paths_prefix_match():
    options = RunOptions(include_paths=["src/auth"])
    assert is_included("src/auth/login.ts", options)
    assert is_included("./src/auth/login.ts", options)
    assert not is_included("src/authz/policy.ts", options)


def test_exclude_glob_and_file_patterns():
    options = RunOptions(exclude_paths=["**/generated/*"], exclude_file_patterns=["*.stories.tsx"])
    assert not is_included("src/ui/generated/api.ts", options)
    assert not is_included("src/ui/Button.stories.tsx", options)
    assert is_included("src/ui/Button.tsx", options)


def test_include_file_patterns_match_basename():
    options = RunOptions(include_file_patterns=["*.spec.ts"])
    assert is_included("src/auth/login.spec.ts", options)
    assert not is_included("src/auth/login.ts", options)


# --- full scan ---


@pytest.mark.asyncio
async def test_full_scan_returns_filtered_items(settings, evidence):
    discoverer = EvidenceDiscoverer(InMemoryEvidenceProvider(evidence), settings)
    outcome = await discoverer.discover("/repo", RunOptions(exclude_paths=["docs"]))
    assert outcome.mode_used == RunMode.FULL_SCAN
    assert [i.name for i in outcome.items] == [
        "logs in with valid credentials",
        "rejects a wrong password",
        "login",
        "addToCart",
    ]
    assert outcome.warnings == []


@pytest.mark.asyncio
async def test_full_scan_respects_max_items(settings, evidence):
    discoverer = EvidenceDiscoverer(InMemoryEvidenceProvider(evidence), settings)
    outcome = await discoverer.full_scan("/repo", RunOptions(max_evidence_items=2))
    assert len(outcome.items) == 2


# --- delta scan ---


@pytest.mark.asyncio
async def test_delta_without_baseline_falls_back_to_full_scan(settings, evidence):
    provider = InMemoryEvidenceProvider(evidence, changed_keys=[])
    outcome = await EvidenceDiscoverer(provider, settings).discover(
        "/repo", RunOptions(mode=RunMode.DELTA)
    )
    assert outcome.mode_used == RunMode.FULL_SCAN
    assert len(outcome.items) == len(evidence)
    assert any("falling back to full scan" in w for w in outcome.warnings)


@pytest.mark.asyncio
async def test_delta_provider_fallback_reason_triggers_full_scan(settings, evidence):
    provider = InMemoryEvidenceProvider(evidence, changed_keys=None)
    outcome = await EvidenceDiscoverer(provider, settings).discover("/repo", delta_options())
    assert outcome.mode_used == RunMode.FULL_SCAN
    assert "Fixture has no delta information" in outcome.warnings[0]


@pytest.mark.asyncio
async def test_delta_returns_only_changed_items(settings, evidence):
    changed = [evidence[1].key, evidence[3].key]
    provider = InMemoryEvidenceProvider(evidence, changed_keys=changed)
    outcome = await EvidenceDiscoverer(provider, settings).discover("/repo", delta_options())
    assert outcome.mode_used == RunMode.DELTA
    assert [i.key for i in outcome.items] == changed


@pytest.mark.asyncio
async def test_delta_closure_excludes_terminal_evidence(settings, evidence):
    changed = [evidence[0].key, evidence[2].key]
    provider = InMemoryEvidenceProvider(evidence, changed_keys=changed)
    dispositions = StaticDispositions({evidence[0].key})
    outcome = await EvidenceDiscoverer(provider, settings, dispositions).discover("/repo", delta_options())
    assert [i.key for i in outcome.items] == [evidence[2].key]
    assert outcome.closure_excluded == 1


@pytest.mark.asyncio
async def test_delta_isolates_atom_linked_evidence(settings, evidence):
    changed = [evidence[0].key, evidence[3].key]
    provider = InMemoryEvidenceProvider(
        evidence, changed_keys=changed, linked_atoms={evidence[3].key: "atom-existing-7"}
    )
    outcome = await EvidenceDiscoverer(provider, settings).discover("/repo", delta_options())

    assert [i.key for i in outcome.items] == [evidence[0].key]
    assert len(outcome.changed_atom_linked) == 1
    linked = outcome.changed_atom_linked[0]
    assert linked.atom_id == "atom-existing-7"
    assert linked.file_path == "src/cart/cart.ts"
    assert any("atom-existing-7" in w for w in outcome.warnings)


@pytest.mark.asyncio
async def test_delta_closure_lookup_failure_falls_back(settings, evidence):
    provider = InMemoryEvidenceProvider(evidence, changed_keys=[evidence[0].key])
    dispositions = StaticDispositions(error=RuntimeError("db locked"))
    outcome = await EvidenceDiscoverer(provider, settings, dispositions).discover("/repo", delta_options())
    assert outcome.mode_used == RunMode.FULL_SCAN
    assert len(outcome.items) == len(evidence)
    assert "db locked" in outcome.warnings[0]


# --- selection ---


def test_caps_keep_highest_confidence_in_discovery_order(make_item):
    items = [
        make_item("api_endpoint", f"src/api/r{i}.ts", f"route{i}", base_confidence=conf)
        for i, conf in enumerate([0.5, 0.9, 0.7, 0.9])
    ]
    kept, dropped = apply_type_caps(items, {"api_endpoint": 2})
    assert [i.name for i in kept] == ["route1", "route3"]
    assert dropped == {"api_endpoint": 2}


def test_caps_do_not_apply_to_tests(make_item):
    tests = [make_item("test", f"tests/t{i}.py", f"case {i}") for i in range(5)]
    kept, dropped = apply_type_caps(tests, {"api_endpoint": 1})
    assert len(kept) == 5
    assert dropped == {}


def test_same_file_dedup_keeps_higher_confidence(make_item):
    low = make_item("code_comment", "src/cart/cart.ts", "add item to cart", code="adds item to cart", base_confidence=0.4)
    high = make_item("source_export", "src/cart/cart.ts", "add item to cart", code="adds item to cart", base_confidence=0.7)
    other_file = make_item("code_comment", "src/cart/other.ts", "add item to cart", code="adds item to cart")
    kept, removed = dedup_same_file([low, high, other_file], 0.6)
    assert kept == [high, other_file]
    assert removed == 1


def test_same_file_dedup_never_touches_tests(make_item):
    a = make_item("test", "tests/test_cart.py", "adds item to cart")
    b = make_item("test", "tests/test_cart.py", "adds item to cart")
    kept, removed = dedup_same_file([a, b], 0.6)
    assert len(kept) == 2
    assert removed == 0


def test_same_file_dedup_disabled_at_zero(make_item):
    a = make_item("code_comment", "src/a.ts", "same text", code="same text")
    b = make_item("code_comment", "src/a.ts", "same text", code="same text")
    kept, removed = dedup_same_file([a, b], 0)
    assert len(kept) == 2


def test_select_for_inference_applies_caps_after_dedup(make_item, settings):
    items = [make_item("test", "tests/test_x.py", f"case {i}") for i in range(3)]
    items += [
        make_item("documentation", f"docs/page{i}.md", f"Page {i}", code=f"# Topic{i}")
        for i in range(60)
    ]
    result = select_for_inference(items, settings.evidence_caps(), settings.pre_inference_dedup_threshold)
    by_type = {}
    for item in result.items:
        by_type[item.type] = by_type.get(item.type, 0) + 1
    assert by_type[EvidenceType.TEST] == 3
    assert by_type[EvidenceType.DOCUMENTATION] == 50
    assert result.capped == {"documentation": 10}
