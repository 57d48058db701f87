"""Clustering strategies that group atoms into molecule candidates.

Every strategy returns an insertion-ordered ``{group_key: [atoms]}`` mapping, so the
same atoms always produce the same groups in the same order.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from pathlib import PurePosixPath

from reconcile_engine.config.constants import DOMAIN_PATTERNS, MISC_CLUSTER, MODULE_CONTAINER_KEYWORDS
from reconcile_engine.dedup.cross_evidence import atom_text
from reconcile_engine.models.domain import ClusteringMethod, InferredAtom
from reconcile_engine.similarity.text_similarity import similarity

Clusters = dict[str, list[InferredAtom]]


def module_from_path(file_path: str) -> str:
    """``src/modules/users/users.service.ts`` -> ``users``; otherwise the parent directory."""
    parts = PurePosixPath(file_path).parts
    for i, part in enumerate(parts):
        if part in MODULE_CONTAINER_KEYWORDS and i < len(parts) - 1:
            return parts[i + 1]
    if len(parts) >= 2:
        return parts[-2]
    return MISC_CLUSTER


def cluster_by_module(atoms: list[InferredAtom]) -> Clusters:
    clusters: Clusters = {}
    for atom in atoms:
        clusters.setdefault(module_from_path(atom.source_reference.file_path), []).append(atom)
    return clusters


def cluster_by_category(atoms: list[InferredAtom]) -> Clusters:
    clusters: Clusters = {}
    for atom in atoms:
        clusters.setdefault(atom.category or "functional", []).append(atom)
    return clusters


def cluster_by_namespace(atoms: list[InferredAtom]) -> Clusters:
    clusters: Clusters = {}
    for atom in atoms:
        directory = str(PurePosixPath(atom.source_reference.file_path).parent)
        clusters.setdefault(directory, []).append(atom)
    return clusters


def extract_concepts(atom: InferredAtom) -> list[str]:
    """Keyword hits across the six domain pattern groups, in pattern then text order."""
    text = " ".join([atom.description, *atom.observable_outcomes, atom.reasoning or ""])
    concepts: dict[str, None] = {}
    for pattern in DOMAIN_PATTERNS:
        for match in pattern.findall(text):
            concepts.setdefault(match.lower(), None)
    return list(concepts)


def cluster_by_domain_concept(atoms: list[InferredAtom]) -> Clusters:
    """Assign each atom to its globally most frequent concept; ties go to the first hit."""
    atom_concepts = [extract_concepts(atom) for atom in atoms]
    frequency = Counter(c for concepts in atom_concepts for c in concepts)

    clusters: Clusters = {}
    for atom, concepts in zip(atoms, atom_concepts):
        if not concepts:
            clusters.setdefault(MISC_CLUSTER, []).append(atom)
            continue
        primary = concepts[0]
        for concept in concepts[1:]:
            if frequency[concept] > frequency[primary]:
                primary = concept
        clusters.setdefault(primary, []).append(atom)
    return clusters


def cluster_by_semantic(atoms: list[InferredAtom], threshold: float = 0.3) -> Clusters:
    """Each unassigned atom seeds a group and pulls in later atoms similar to the seed."""
    texts = [atom_text(a) for a in atoms]
    assigned = [False] * len(atoms)
    clusters: Clusters = {}

    for i, seed in enumerate(atoms):
        if assigned[i]:
            continue
        assigned[i] = True
        group = [seed]
        for j in range(i + 1, len(atoms)):
            if not assigned[j] and similarity(texts[i], texts[j]) >= threshold:
                assigned[j] = True
                group.append(atoms[j])
        clusters[f"semantic-group-{len(clusters)}"] = group
    return clusters


STRATEGIES: dict[ClusteringMethod, Callable[[list[InferredAtom]], Clusters]] = {
    ClusteringMethod.MODULE: cluster_by_module,
    ClusteringMethod.CATEGORY: cluster_by_category,
    ClusteringMethod.NAMESPACE: cluster_by_namespace,
    ClusteringMethod.DOMAIN_CONCEPT: cluster_by_domain_concept,
}


def cluster_atoms(
    atoms: list[InferredAtom],
    method: ClusteringMethod,
    semantic_threshold: float = 0.3,
) -> Clusters:
    if method == ClusteringMethod.SEMANTIC:
        return cluster_by_semantic(atoms, semantic_threshold)
    return STRATEGIES[method](atoms)
