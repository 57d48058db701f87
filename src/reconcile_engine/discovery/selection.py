"""Select the evidence handed to inference: same-file dedup, then per-type caps."""

from __future__ import annotations

from dataclasses import dataclass, field

from reconcile_engine.models.domain import EvidenceItem, EvidenceType
from reconcile_engine.observability.logger import get_logger
from reconcile_engine.similarity.text_similarity import similarity

logger = get_logger("selection")


@dataclass
class SelectionResult:
    items: list[EvidenceItem]
    deduplicated: int = 0
    capped: dict[str, int] = field(default_factory=dict)


def _dedup_text(item: EvidenceItem) -> str:
    return f"{item.name} {item.code or ''}"


def dedup_same_file(items: list[EvidenceItem], threshold: float) -> tuple[list[EvidenceItem], int]:
    """Drop near-duplicate non-test evidence within a file, keeping the higher base confidence.

    A threshold of 0 disables the pass. Output keeps discovery order.
    """
    if threshold <= 0:
        return list(items), 0

    # file -> indices of surviving items in that file
    survivors_by_file: dict[str, list[int]] = {}
    keep = [True] * len(items)
    texts = [_dedup_text(item) for item in items]

    for i, item in enumerate(items):
        if item.type == EvidenceType.TEST:
            continue
        survivors = survivors_by_file.setdefault(item.file_path, [])
        duplicate_of = None
        for j in survivors:
            if similarity(texts[i], texts[j]) >= threshold:
                duplicate_of = j
                break
        if duplicate_of is None:
            survivors.append(i)
            continue
        if item.base_confidence > items[duplicate_of].base_confidence:
            keep[duplicate_of] = False
            survivors[survivors.index(duplicate_of)] = i
        else:
            keep[i] = False

    kept = [item for i, item in enumerate(items) if keep[i]]
    return kept, len(items) - len(kept)


def apply_type_caps(
    items: list[EvidenceItem], caps: dict[str, int]
) -> tuple[list[EvidenceItem], dict[str, int]]:
    """Keep the top ``caps[type]`` items per type by base confidence, ties by discovery order.

    Types without a cap (tests) pass through. Output keeps discovery order.
    """
    indices_by_type: dict[str, list[int]] = {}
    for i, item in enumerate(items):
        indices_by_type.setdefault(item.type.value, []).append(i)

    keep: set[int] = set()
    dropped: dict[str, int] = {}
    for type_value, indices in indices_by_type.items():
        cap = caps.get(type_value)
        if cap is None or len(indices) <= cap:
            keep.update(indices)
            continue
        ranked = sorted(indices, key=lambda i: (-items[i].base_confidence, i))
        keep.update(ranked[:cap])
        dropped[type_value] = len(indices) - cap

    return [item for i, item in enumerate(items) if i in keep], dropped


def select_for_inference(
    items: list[EvidenceItem], caps: dict[str, int], dedup_threshold: float
) -> SelectionResult:
    deduped, removed = dedup_same_file(items, dedup_threshold)
    capped, dropped = apply_type_caps(deduped, caps)
    if removed or dropped:
        logger.info(
            "evidence_selected",
            discovered=len(items),
            deduplicated=removed,
            capped=dropped,
            selected=len(capped),
        )
    return SelectionResult(items=capped, deduplicated=removed, capped=dropped)
