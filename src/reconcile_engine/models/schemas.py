"""Pydantic models for LLM/tool output validation and API serialization."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# --- LLM / tool payloads ---


class InferenceResponse(BaseModel):
    """Atom inference output. Accepts camelCase keys as the prompts request."""

    model_config = ConfigDict(populate_by_name=True)

    description: str = Field(min_length=1)
    category: str = Field(min_length=1)
    observable_outcomes: list[str] = Field(alias="observableOutcomes")
    confidence: float | None = None
    reasoning: str = ""
    ambiguity_reasons: list[str] = Field(default_factory=list, alias="ambiguityReasons")


class MoleculeNamingEntry(BaseModel):
    index: int
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    gherkin: str | None = None


class ClusteredMoleculeEntry(BaseModel):
    """One molecule from the clustering tool. Tool confidence is advisory only."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    atom_temp_ids: list[str] = Field(alias="atomTempIds", min_length=1)
    confidence: float | None = None
    clustering_reason: str = Field(default="", alias="clusteringReason")


class QualityJudgement(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_score: float = Field(alias="totalScore", ge=0, le=100)
    decision: str | None = None
    feedback: str = ""


# --- API ---


class StartRunRequest(BaseModel):
    root_directory: str
    mode: Literal["full-scan", "delta"] = "full-scan"
    baseline_run_id: str | None = None
    baseline_commit: str | None = None
    include_paths: list[str] = Field(default_factory=list)
    exclude_paths: list[str] = Field(default_factory=list)
    include_file_patterns: list[str] = Field(default_factory=list)
    exclude_file_patterns: list[str] = Field(default_factory=list)
    max_evidence_items: int | None = Field(default=None, gt=0)
    min_confidence: int | None = Field(default=None, ge=0, le=100)
    quality_threshold: int | None = Field(default=None, ge=0, le=100)
    require_review: bool | None = None
    clustering_method: (
        Literal["module", "category", "namespace", "domain_concept", "semantic"] | None
    ) = None
    use_llm_for_naming: bool | None = None


class AtomDecisionInput(BaseModel):
    atom_temp_id: str
    decision: Literal["approve", "reject"]


class ReviewSubmission(BaseModel):
    atom_decisions: list[AtomDecisionInput] = Field(default_factory=list)
    comments: str | None = None


class StartRunResponse(BaseModel):
    run_id: str
    status: str


class RunResponse(BaseModel):
    run_id: str
    status: str
    phase: str
    pending_human_review: bool
    atoms: list[dict]
    molecules: list[dict]
    decisions: list[str]
    errors: list[str]
    warnings: list[str]
    llm_call_count: int
    review_request: dict | None = None


class HealthResponse(BaseModel):
    status: str
    active_runs: int
