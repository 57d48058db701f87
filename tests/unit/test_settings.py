"""Tests for environment-driven settings."""

from reconcile_engine.config.settings import Settings
from reconcile_engine.generation.gemini_provider import TASK_TEMPERATURES
from reconcile_engine.protocols.llm import TaskType


def test_env_prefix_overrides_defaults(monkeypatch):
    monkeypatch.setenv("RECONCILE_MIN_ATOMS_PER_MOLECULE", "3")
    monkeypatch.setenv("RECONCILE_CLUSTERING_METHOD", "category")
    settings = Settings(_env_file=None)
    assert settings.min_atoms_per_molecule == 3
    assert settings.clustering_method == "category"


def test_gemini_settings_cover_model_and_tokens_only():
    gemini_fields = {name for name in Settings.model_fields if name.startswith("gemini_")}
    assert gemini_fields == {"gemini_model", "gemini_max_tokens"}


def test_every_task_has_a_temperature():
    assert set(TASK_TEMPERATURES) == set(TaskType)


def test_evidence_caps_leave_tests_uncapped():
    caps = Settings(_env_file=None).evidence_caps()
    assert "test" not in caps
    assert caps["api_endpoint"] == Settings.model_fields["cap_api_endpoint"].default
