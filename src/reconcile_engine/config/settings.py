"""Central configuration via Pydantic Settings. All values driven by env vars."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # API Keys
    google_api_key: str = ""

    # LLM / Gemini
    gemini_model: str = "gemini-2.0-flash"
    gemini_max_tokens: int = 4096

    # Discovery
    max_evidence_items: int = 10_000
    include_dependencies: bool = True
    cap_api_endpoint: int = 200
    cap_ui_component: int = 150
    cap_source_export: int = 150
    cap_code_comment: int = 100
    cap_documentation: int = 50
    cap_coverage_gap: int = 50
    pre_inference_dedup_threshold: float = 0.6

    # Inference
    inference_batch_size: int = 5
    min_confidence: int = 0
    foundational_boost: int = 10
    foundational_min_dependents: int = 3
    foundational_max_dependencies: int = 2
    max_reprompts: int = 1
    use_inference_tool: bool = True

    # Cross-evidence dedup
    cross_evidence_dedup_threshold: float = 0.4
    corroboration_bonus_two_types: int = 10
    corroboration_bonus_three_plus: int = 15

    # Molecule synthesis
    clustering_method: str = "domain_concept"
    semantic_similarity_threshold: float = 0.3
    min_atoms_per_molecule: int = 1
    use_llm_for_naming: bool = True
    naming_batch_size: int = 5

    # Quality verification
    quality_threshold: int = 80
    batch_threshold: int = 20
    concurrency_limit: int = 5
    require_review: bool = False
    force_review_on_quality_fail: bool = False
    high_failure_rate: float = 0.5

    # Storage paths
    sqlite_run_db_path: str = "data/runs.db"
    evidence_fixture_path: str = ""

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    model_config = {"env_file": ".env", "env_prefix": "RECONCILE_"}

    def evidence_caps(self) -> dict[str, int]:
        """Per-type caps keyed by evidence type value. Tests are uncapped."""
        return {
            "api_endpoint": self.cap_api_endpoint,
            "ui_component": self.cap_ui_component,
            "source_export": self.cap_source_export,
            "code_comment": self.cap_code_comment,
            "documentation": self.cap_documentation,
            "coverage_gap": self.cap_coverage_gap,
        }
