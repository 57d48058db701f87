"""Evidence discovery: full scan or delta scan with closure and isolation rules."""

from __future__ import annotations

from dataclasses import dataclass, field

from reconcile_engine.config.settings import Settings
from reconcile_engine.discovery.path_filters import apply_path_filters
from reconcile_engine.models.domain import (
    ChangedLinkedEvidence,
    EvidenceItem,
    RunMode,
    RunOptions,
)
from reconcile_engine.observability.logger import get_logger
from reconcile_engine.protocols.evidence import DispositionLookup, EvidenceProvider

logger = get_logger("discovery")


@dataclass
class DiscoveryOutcome:
    items: list[EvidenceItem]
    mode_used: RunMode
    changed_atom_linked: list[ChangedLinkedEvidence] = field(default_factory=list)
    closure_excluded: int = 0
    warnings: list[str] = field(default_factory=list)


class EvidenceDiscoverer:
    def __init__(
        self,
        provider: EvidenceProvider,
        settings: Settings,
        dispositions: DispositionLookup | None = None,
    ) -> None:
        self._provider = provider
        self._settings = settings
        self._dispositions = dispositions

    async def discover(self, root: str, options: RunOptions) -> DiscoveryOutcome:
        if options.mode == RunMode.DELTA:
            return await self.delta_scan(root, options)
        return await self.full_scan(root, options)

    async def full_scan(
        self, root: str, options: RunOptions, warnings: list[str] | None = None
    ) -> DiscoveryOutcome:
        warnings = list(warnings or [])
        max_items = options.max_evidence_items or self._settings.max_evidence_items

        items = await self._provider.enumerate_evidence(root, max_items)
        items = apply_path_filters(items, options)
        if len(items) > max_items:
            warnings.append(
                f"Evidence truncated to {max_items} items (discovered {len(items)})"
            )
            items = items[:max_items]

        logger.info("full_scan_complete", root=root, items=len(items))
        return DiscoveryOutcome(items=items, mode_used=RunMode.FULL_SCAN, warnings=warnings)

    async def delta_scan(self, root: str, options: RunOptions) -> DiscoveryOutcome:
        """Changed evidence since the baseline. Every failure falls back to a full scan."""
        baseline = options.baseline
        if baseline is None or not baseline.is_valid:
            return await self._fall_back(root, options, "No valid delta baseline")

        enumerate_delta = getattr(self._provider, "enumerate_delta", None)
        if enumerate_delta is None:
            return await self._fall_back(root, options, "Evidence provider does not support delta scans")

        try:
            scan = await enumerate_delta(root, baseline)
        except Exception as e:
            return await self._fall_back(root, options, f"Delta computation failed: {e}")

        if scan.fallback_reason:
            return await self._fall_back(root, options, scan.fallback_reason)

        terminal: set[str] = set()
        if self._dispositions is not None:
            try:
                terminal = await self._dispositions.terminal_evidence_keys(root)
            except Exception as e:
                return await self._fall_back(root, options, f"Closure lookup failed: {e}")

        changed = apply_path_filters(scan.changed_items, options)
        items: list[EvidenceItem] = []
        linked: list[ChangedLinkedEvidence] = []
        excluded = 0
        for item in changed:
            key = item.key
            if key in terminal:
                excluded += 1
                continue
            atom_id = scan.linked_atoms.get(key)
            if atom_id is not None:
                linked.append(
                    ChangedLinkedEvidence(
                        evidence_key=key,
                        file_path=item.file_path,
                        name=item.name,
                        atom_id=atom_id,
                    )
                )
                continue
            items.append(item)

        warnings = [
            f"Evidence {entry.evidence_key} changed but is linked to atom {entry.atom_id}; "
            "review the atom manually"
            for entry in linked
        ]

        max_items = options.max_evidence_items or self._settings.max_evidence_items
        if len(items) > max_items:
            warnings.append(f"Evidence truncated to {max_items} items (discovered {len(items)})")
            items = items[:max_items]

        logger.info(
            "delta_scan_complete",
            root=root,
            changed=len(changed),
            items=len(items),
            atom_linked=len(linked),
            closure_excluded=excluded,
        )
        return DiscoveryOutcome(
            items=items,
            mode_used=RunMode.DELTA,
            changed_atom_linked=linked,
            closure_excluded=excluded,
            warnings=warnings,
        )

    async def _fall_back(self, root: str, options: RunOptions, reason: str) -> DiscoveryOutcome:
        message = f"{reason}; falling back to full scan"
        logger.warning("delta_fallback", root=root, reason=reason)
        return await self.full_scan(root, options, warnings=[message])
