"""Custom exception hierarchy for the reconciliation engine."""

from __future__ import annotations


class ReconcileEngineError(Exception):
    """Base exception for all reconciliation engine errors."""


class DiscoveryError(ReconcileEngineError):
    """Error enumerating evidence."""


class AnalysisError(ReconcileEngineError):
    """Error building evidence analysis."""


class InferenceError(ReconcileEngineError):
    """Error inferring atoms from evidence."""


class MalformedOutputError(InferenceError):
    """LLM or tool output could not be parsed into the expected shape."""


class SynthesisError(ReconcileEngineError):
    """Error during molecule synthesis."""


class VerificationError(ReconcileEngineError):
    """Error during atom quality verification."""


class LLMError(ReconcileEngineError):
    """Error invoking the LLM provider."""


class ToolError(ReconcileEngineError):
    """Error invoking an external tool."""


class ConfigurationError(ReconcileEngineError):
    """Error in system configuration."""


class RunNotFoundError(ReconcileEngineError):
    """No run exists for the given id."""


class InvalidPhaseError(ReconcileEngineError):
    """The run is not in a phase that allows the requested action."""


class RunCancelled(Exception):
    """Cooperative cancellation observed at a batch or tier boundary.

    Not a ReconcileEngineError: phase error handling must let it propagate.
    ``partial_atoms`` holds atoms from completed batches for
    diagnostics only; the orchestrator discards them.
    """

    def __init__(self, run_id: str, partial_atoms: list | None = None) -> None:
        super().__init__(f"Run {run_id} was cancelled")
        self.run_id = run_id
        self.partial_atoms = partial_atoms or []
