"""Core domain objects used throughout the system."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class EvidenceType(str, Enum):
    TEST = "test"
    SOURCE_EXPORT = "source_export"
    UI_COMPONENT = "ui_component"
    API_ENDPOINT = "api_endpoint"
    DOCUMENTATION = "documentation"
    CODE_COMMENT = "code_comment"
    COVERAGE_GAP = "coverage_gap"


class Phase(str, Enum):
    STRUCTURE = "structure"
    DISCOVER = "discover"
    CONTEXT = "context"
    INFER = "infer"
    SYNTHESIZE = "synthesize"
    VERIFY = "verify"
    PERSIST = "persist"


PHASE_ORDER = [
    Phase.STRUCTURE,
    Phase.DISCOVER,
    Phase.CONTEXT,
    Phase.INFER,
    Phase.SYNTHESIZE,
    Phase.VERIFY,
    Phase.PERSIST,
]


class Decision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    QUALITY_FAIL = "quality_fail"


class RunMode(str, Enum):
    FULL_SCAN = "full-scan"
    DELTA = "delta"


class RunStatus(str, Enum):
    RUNNING = "running"
    PENDING_REVIEW = "pending_review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ClusteringMethod(str, Enum):
    MODULE = "module"
    CATEGORY = "category"
    NAMESPACE = "namespace"
    DOMAIN_CONCEPT = "domain_concept"
    SEMANTIC = "semantic"


def evidence_key(type_: str, file_path: str, name: str) -> str:
    return f"{type_}:{file_path}:{name}"


@dataclass(frozen=True)
class EvidenceItem:
    type: EvidenceType
    file_path: str
    name: str
    code: str | None = None
    line_number: int | None = None
    metadata: dict = field(default_factory=dict)
    base_confidence: float = 0.5

    @property
    def key(self) -> str:
        return evidence_key(self.type.value, self.file_path, self.name)


@dataclass
class EvidenceAnalysis:
    evidence_key: str
    summary: str
    domain_concepts: list[str] = field(default_factory=list)
    related_docs: list[str] = field(default_factory=list)


@dataclass
class EvidenceSource:
    type: EvidenceType
    file_path: str
    name: str
    confidence: int


@dataclass
class SourceReference:
    file_path: str
    name: str
    line_number: int | None = None


@dataclass
class InferredAtom:
    temp_id: str
    description: str
    category: str
    observable_outcomes: list[str]
    confidence: int
    reasoning: str
    source_reference: SourceReference
    evidence_sources: list[EvidenceSource]
    primary_evidence_type: EvidenceType
    ambiguity_reasons: list[str] = field(default_factory=list)
    quality_score: int | None = None


@dataclass
class InferredMolecule:
    temp_id: str
    name: str
    description: str
    atom_temp_ids: list[str]
    confidence: int
    reasoning: str
    gherkin_scenario: str | None = None


@dataclass
class AtomQualityResult:
    atom_temp_id: str
    score: int
    passed: bool
    source: str  # "rules", "tool", "batch"
    feedback: str = ""


@dataclass
class DependencyEdge:
    from_file: str
    to_file: str


@dataclass
class RepoStructure:
    files: list[str] = field(default_factory=list)
    dependency_edges: list[DependencyEdge] = field(default_factory=list)


@dataclass
class DeltaBaseline:
    run_id: str | None = None
    commit_hash: str | None = None

    @property
    def is_valid(self) -> bool:
        return bool(self.run_id or self.commit_hash)


@dataclass
class DeltaScan:
    """Changed evidence since a baseline, as reported by the content provider."""

    changed_items: list[EvidenceItem] = field(default_factory=list)
    linked_atoms: dict[str, str] = field(default_factory=dict)  # evidence key -> atom id
    fallback_reason: str | None = None


@dataclass
class ChangedLinkedEvidence:
    evidence_key: str
    file_path: str
    name: str
    atom_id: str


@dataclass
class AtomReviewDecision:
    atom_temp_id: str
    decision: str  # "approve" or "reject"


@dataclass
class HumanReviewInput:
    atom_decisions: list[AtomReviewDecision] = field(default_factory=list)
    comments: str | None = None


@dataclass
class RunOptions:
    """Per-run overrides. ``None`` means use the configured default."""

    mode: RunMode = RunMode.FULL_SCAN
    baseline: DeltaBaseline | None = None
    include_paths: list[str] = field(default_factory=list)
    exclude_paths: list[str] = field(default_factory=list)
    include_file_patterns: list[str] = field(default_factory=list)
    exclude_file_patterns: list[str] = field(default_factory=list)
    max_evidence_items: int | None = None
    min_confidence: int | None = None
    quality_threshold: int | None = None
    require_review: bool | None = None
    clustering_method: ClusteringMethod | None = None
    use_llm_for_naming: bool | None = None


@dataclass
class RunState:
    run_id: str
    root_directory: str
    options: RunOptions = field(default_factory=RunOptions)
    phase: Phase = Phase.STRUCTURE
    status: RunStatus = RunStatus.RUNNING
    repo_structure: RepoStructure | None = None
    evidence_items: list[EvidenceItem] = field(default_factory=list)
    evidence_analysis: dict[str, EvidenceAnalysis] = field(default_factory=dict)
    changed_atom_linked: list[ChangedLinkedEvidence] = field(default_factory=list)
    closure_excluded_count: int = 0
    inferred_atoms: list[InferredAtom] = field(default_factory=list)
    inferred_molecules: list[InferredMolecule] = field(default_factory=list)
    decisions: list[Decision] = field(default_factory=list)
    pending_human_review: bool = False
    human_review_input: HumanReviewInput | None = None
    review_request: dict | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    llm_call_count: int = 0
    phases_completed: list[Phase] = field(default_factory=list)
    trace_spans: list[dict] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class RunSummary:
    total_evidence: int
    total_atoms: int
    total_molecules: int
    approved: int
    rejected: int
    quality_failed: int
    changed_atom_linked: int
    closure_excluded: int
    duration_ms: float
    llm_calls: int
    mode: RunMode
    phases_completed: list[Phase]


@dataclass
class ReconciliationResult:
    run_id: str
    status: RunStatus
    atoms: list[InferredAtom]
    molecules: list[InferredMolecule]
    decisions: list[Decision]
    summary: RunSummary
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    review_request: dict | None = None
    spans: list[dict] = field(default_factory=list)
