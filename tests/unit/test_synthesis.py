"""Tests for atom clustering and molecule synthesis."""

import json

import pytest

from reconcile_engine.exceptions import ConfigurationError, LLMError
from reconcile_engine.models.domain import ClusteringMethod
from reconcile_engine.synthesis.clustering import (
    cluster_atoms,
    cluster_by_domain_concept,
    extract_concepts,
    module_from_path,
)
from reconcile_engine.synthesis.synthesizer import (
    MoleculeSynthesizer,
    molecule_confidence,
    molecule_description,
    molecule_name,
)

from fakes import FakeLLM, FakeToolRegistry

NEUTRAL = {"reasoning": "Derived from evidence", "outcomes": ["Result is visible to the person"]}


@pytest.fixture
def neutral_atom(make_atom):
    def _make(description, **kwargs):
        return make_atom(description, **{**NEUTRAL, **kwargs})

    return _make


@pytest.fixture
def domain_atoms(neutral_atom):
    return [
        neutral_atom("User can update the profile photo", confidence=80),
        neutral_atom("User can delete the account", confidence=85),
        neutral_atom("Payment is refunded after order cancellation", category="security"),
        neutral_atom("Email notification is sent"),
        neutral_atom("Page renders quickly"),
    ]


def test_module_from_path():
    assert module_from_path("src/modules/users/users.service.ts") == "users"
    assert module_from_path("src/components/Cart/CartView.tsx") == "Cart"
    assert module_from_path("lib/util.ts") == "lib"
    assert module_from_path("main.ts") == "misc"


def test_extract_concepts_in_pattern_then_text_order(neutral_atom):
    atom = neutral_atom("Delete the user account and update billing")
    assert extract_concepts(atom) == ["user", "account", "delete", "update", "billing"]


def test_domain_concept_clusters_by_most_frequent_concept(domain_atoms):
    clusters = cluster_by_domain_concept(domain_atoms)
    assert list(clusters) == ["user", "payment", "email", "misc"]
    assert [a.temp_id for a in clusters["user"]] == [domain_atoms[0].temp_id, domain_atoms[1].temp_id]


def test_category_and_namespace_strategies(neutral_atom):
    atoms = [
        neutral_atom("A", category="security", file_path="src/auth/a.ts"),
        neutral_atom("B", category="functional", file_path="src/cart/b.ts"),
        neutral_atom("C", category="security", file_path="src/auth/c.ts"),
    ]
    assert list(cluster_atoms(atoms, ClusteringMethod.CATEGORY)) == ["security", "functional"]
    namespaces = cluster_atoms(atoms, ClusteringMethod.NAMESPACE)
    assert {k: len(v) for k, v in namespaces.items()} == {"src/auth": 2, "src/cart": 1}


def test_semantic_groups_similar_atoms(neutral_atom):
    atoms = [
        neutral_atom("Cart total updates when quantity changes"),
        neutral_atom("Admin exports the monthly sales report"),
        neutral_atom("Cart total updates when quantity changes"),
    ]
    clusters = cluster_atoms(atoms, ClusteringMethod.SEMANTIC, semantic_threshold=0.5)
    assert list(clusters) == ["semantic-group-0", "semantic-group-1"]
    assert [a.temp_id for a in clusters["semantic-group-0"]] == [atoms[0].temp_id, atoms[2].temp_id]


def test_template_helpers(neutral_atom):
    secure = [neutral_atom("Tokens expire", category="security")]
    assert molecule_name(secure, "session") == "Session Security"
    assert molecule_description(secure, "session") == "Behavior related to session: Tokens expire"
    assert molecule_confidence([neutral_atom("a", confidence=80), neutral_atom("b", confidence=85)]) == 83


@pytest.mark.asyncio
async def test_synthesize_template_molecules(settings, domain_atoms):
    outcome = await MoleculeSynthesizer(settings).synthesize(domain_atoms)

    assert [m.temp_id for m in outcome.molecules] == ["mol-1", "mol-2", "mol-3", "mol-4"]
    user = outcome.molecules[0]
    assert user.name == "User Functionality"
    assert user.confidence == 83
    assert user.atom_temp_ids == [domain_atoms[0].temp_id, domain_atoms[1].temp_id]
    assert outcome.molecules[1].name == "Payment Security"
    assert outcome.llm_calls == 0


@pytest.mark.asyncio
async def test_molecule_confidence_never_changes_atoms(settings, domain_atoms):
    before = [a.confidence for a in domain_atoms]
    await MoleculeSynthesizer(settings).synthesize(domain_atoms)
    assert [a.confidence for a in domain_atoms] == before


@pytest.mark.asyncio
async def test_min_atoms_per_molecule_drops_small_clusters(settings, domain_atoms):
    settings.min_atoms_per_molecule = 2
    outcome = await MoleculeSynthesizer(settings).synthesize(domain_atoms)
    assert len(outcome.molecules) == 1
    assert outcome.clusters_dropped == 3


@pytest.mark.asyncio
async def test_blank_group_key_degrades_to_unnamed_cluster(settings, neutral_atom):
    atoms = [neutral_atom("Widget renders", file_path="src/ /widget.ts")]
    outcome = await MoleculeSynthesizer(settings).synthesize(atoms, ClusteringMethod.MODULE)
    assert outcome.molecules[0].name == "Unnamed Cluster"
    assert outcome.molecules[0].atom_temp_ids == [atoms[0].temp_id]


@pytest.mark.asyncio
async def test_llm_naming_refines_names(settings, domain_atoms):
    naming = json.dumps(
        [
            {"index": 0, "name": "Account Management", "description": "Users manage accounts",
             "gherkin": "Feature: Account management"},
            {"index": 9, "name": "Out of range", "description": "ignored"},
            {"index": 1, "name": "", "description": "blank names are ignored"},
        ]
    )
    llm = FakeLLM(naming=naming)
    outcome = await MoleculeSynthesizer(settings, llm).synthesize(domain_atoms, use_llm_for_naming=True)

    assert outcome.molecules[0].name == "Account Management"
    assert outcome.molecules[0].gherkin_scenario == "Feature: Account management"
    assert outcome.molecules[1].name == "Payment Security"
    assert outcome.llm_calls == 1


@pytest.mark.asyncio
async def test_naming_failure_keeps_groupings(settings, domain_atoms):
    settings.naming_batch_size = 2
    ok = await MoleculeSynthesizer(settings, FakeLLM(naming="[]")).synthesize(
        domain_atoms, use_llm_for_naming=True
    )
    failed = await MoleculeSynthesizer(settings, FakeLLM(naming=LLMError("down"))).synthesize(
        domain_atoms, use_llm_for_naming=True
    )

    assert [m.atom_temp_ids for m in failed.molecules] == [m.atom_temp_ids for m in ok.molecules]
    assert failed.naming_batches_failed == 2
    assert [m.name for m in failed.molecules] == [m.name for m in ok.molecules]


def grouping_tool(confidence=99):
    """Clustering tool that puts the first two atoms together and the rest alone."""

    def handler(args):
        ids = [a["tempId"] for a in args["atoms"]]
        return {
            "molecules": [
                {"name": "Account Lifecycle", "description": "Users manage their account",
                 "atomTempIds": ids[:2], "confidence": confidence, "clusteringReason": "same actor"},
            ]
            + [
                {"name": f"Single {i}", "description": "Standalone behavior", "atomTempIds": [t]}
                for i, t in enumerate(ids[2:])
            ]
        }

    return handler


@pytest.mark.asyncio
async def test_clustering_tool_groups_are_used(settings, domain_atoms):
    tools = FakeToolRegistry({"cluster_atoms_for_molecules": grouping_tool()})
    outcome = await MoleculeSynthesizer(settings, tools=tools).synthesize(
        domain_atoms, ClusteringMethod.CATEGORY
    )

    name, args = tools.calls[0]
    assert name == "cluster_atoms_for_molecules"
    assert args["clusteringMethod"] == "category"
    assert args["minAtomsPerCluster"] == 1
    assert [a["tempId"] for a in args["atoms"]] == [a.temp_id for a in domain_atoms]

    assert len(outcome.molecules) == 4
    account = outcome.molecules[0]
    assert account.temp_id == "mol-1"
    assert account.name == "Account Lifecycle"
    assert account.atom_temp_ids == [domain_atoms[0].temp_id, domain_atoms[1].temp_id]
    # member confidences 80 and 85, not the tool's 99
    assert account.confidence == 83
    assert account.reasoning == "same actor"


@pytest.mark.asyncio
async def test_clustering_tool_respects_min_atoms(settings, domain_atoms):
    settings.min_atoms_per_molecule = 2
    tools = FakeToolRegistry({"cluster_atoms_for_molecules": grouping_tool()})
    outcome = await MoleculeSynthesizer(settings, tools=tools).synthesize(domain_atoms)

    assert [m.name for m in outcome.molecules] == ["Account Lifecycle"]
    assert outcome.clusters_dropped == 3


def failing_tool(args):
    raise RuntimeError("tool unavailable")


def unknown_atom_tool(args):
    return {"molecules": [{"name": "Ghost", "description": "Refers to nothing", "atomTempIds": ["atom-404"]}]}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "handler",
    [failing_tool, unknown_atom_tool, lambda args: {"molecules": "none"}, lambda args: [{"name": ""}]],
)
async def test_clustering_tool_failure_falls_back_to_direct_clustering(settings, domain_atoms, handler):
    direct = await MoleculeSynthesizer(settings).synthesize(domain_atoms)
    tools = FakeToolRegistry({"cluster_atoms_for_molecules": handler})
    outcome = await MoleculeSynthesizer(settings, tools=tools).synthesize(domain_atoms)

    assert len(tools.calls) == 1
    assert [m.atom_temp_ids for m in outcome.molecules] == [m.atom_temp_ids for m in direct.molecules]
    assert [m.name for m in outcome.molecules] == [m.name for m in direct.molecules]


@pytest.mark.asyncio
async def test_unregistered_clustering_tool_is_not_called(settings, domain_atoms):
    tools = FakeToolRegistry({"something_else": failing_tool})
    outcome = await MoleculeSynthesizer(settings, tools=tools).synthesize(domain_atoms)
    assert tools.calls == []
    assert outcome.molecules[0].name == "User Functionality"


@pytest.mark.asyncio
async def test_unknown_configured_clustering_method(settings, domain_atoms):
    settings.clustering_method = "alphabetical"
    with pytest.raises(ConfigurationError, match="alphabetical"):
        await MoleculeSynthesizer(settings).synthesize(domain_atoms)
