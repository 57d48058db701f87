"""Merge atoms independently inferred from different evidence types."""

from __future__ import annotations

from dataclasses import dataclass, replace

from reconcile_engine.models.domain import InferredAtom
from reconcile_engine.observability.logger import get_logger
from reconcile_engine.similarity.text_similarity import similarity

logger = get_logger("cross_evidence_dedup")


class UnionFind:
    """Flat parent list with path compression. Roots are always the smallest index."""

    def __init__(self, size: int) -> None:
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        root = i
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[i] != root:
            self.parent[i], i = root, self.parent[i]
        return root

    def union(self, a: int, b: int) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return
        if ra < rb:
            self.parent[rb] = ra
        else:
            self.parent[ra] = rb


@dataclass
class DedupResult:
    atoms: list[InferredAtom]
    merged_groups: int = 0
    absorbed_atoms: int = 0


def atom_text(atom: InferredAtom) -> str:
    return " ".join([atom.description, *atom.observable_outcomes, atom.category])


def corroboration_bonus(distinct_types: int, two_types: int = 10, three_plus: int = 15) -> int:
    if distinct_types >= 3:
        return three_plus
    if distinct_types == 2:
        return two_types
    return 0


def deduplicate_across_evidence(
    atoms: list[InferredAtom],
    threshold: float = 0.4,
    bonus_two_types: int = 10,
    bonus_three_plus: int = 15,
) -> DedupResult:
    """Union atoms of different primary evidence types whose text similarity meets ``threshold``.

    Each merged group keeps its highest-confidence member (first on ties), carrying the
    evidence sources of every member and a corroboration bonus capped at 100. Output
    order follows each group's earliest member.
    """
    n = len(atoms)
    texts = [atom_text(a) for a in atoms]
    uf = UnionFind(n)

    for i in range(n):
        for j in range(i + 1, n):
            if atoms[i].primary_evidence_type == atoms[j].primary_evidence_type:
                continue
            if uf.find(i) == uf.find(j):
                continue
            if similarity(texts[i], texts[j]) >= threshold:
                uf.union(i, j)

    groups: dict[int, list[int]] = {}
    for i in range(n):
        groups.setdefault(uf.find(i), []).append(i)

    result = DedupResult(atoms=[])
    for root in sorted(groups):
        members = groups[root]
        if len(members) == 1:
            result.atoms.append(atoms[members[0]])
            continue

        representative = atoms[members[0]]
        for i in members[1:]:
            if atoms[i].confidence > representative.confidence:
                representative = atoms[i]

        sources = [source for i in members for source in atoms[i].evidence_sources]
        distinct = len({source.type for source in sources})
        bonus = corroboration_bonus(distinct, bonus_two_types, bonus_three_plus)
        merged = replace(
            representative,
            evidence_sources=sources,
            confidence=min(100, representative.confidence + bonus),
            reasoning=f"{representative.reasoning} (corroborated by {distinct} evidence types)".strip(),
        )
        result.atoms.append(merged)
        result.merged_groups += 1
        result.absorbed_atoms += len(members) - 1

    logger.info(
        "cross_evidence_dedup_complete",
        input_atoms=n,
        output_atoms=len(result.atoms),
        merged_groups=result.merged_groups,
    )
    return result
