"""All prompt templates for the reconciliation pipeline."""

from __future__ import annotations

from collections.abc import Callable

from reconcile_engine.models.domain import (
    EvidenceAnalysis,
    EvidenceItem,
    EvidenceType,
    InferredAtom,
)

ATOM_INFERENCE_SYSTEM = """You are an Intent Atom inference engine for a software product analysis system.

An Intent Atom is an irreducible behavioral specification: it describes WHAT a system does, not HOW it is implemented.
Rules:
- Observable outcomes only. Describe what a user or external system can observe.
  GOOD: "Login with invalid credentials returns 401 Unauthorized"
  BAD: "AuthService.login() is called with the right arguments"
- Testable and falsifiable. The behavior must be verifiable by a test or by observation.
- Implementation agnostic. Never mention classes, methods, functions, libraries or internal technologies.
- Single behavior. One atom describes one verifiable behavior, never a list of behaviors.
- Confidence is an integer from 0 to 100."""

ATOM_RESPONSE_FORMAT = """Respond with ONLY a JSON object:
{{
  "description": "one observable behavior",
  "category": "functional | security | performance | reliability | usability",
  "observableOutcomes": ["outcome 1", "outcome 2"],
  "confidence": 0-100,
  "reasoning": "why this evidence supports the behavior",
  "ambiguityReasons": ["anything unclear, or empty"]
}}"""

CORRECTIVE_REPROMPT = """Your previous answer violated these rules:
{violations}

Previous answer:
{previous}

Rewrite the atom so it describes a single observable behavior without implementation vocabulary.
""" + ATOM_RESPONSE_FORMAT

MOLECULE_NAMING_SYSTEM = """You name groups of behavioral specifications (molecules).
Each name is short (2-5 words), user-facing and free of implementation detail.
Each description is one or two sentences summarizing the shared capability.
Optionally include a Gherkin scenario (Given/When/Then) illustrating the group."""

MOLECULE_NAMING_PROMPT = """Name each of the following atom groups.

{clusters_block}

Respond with ONLY a JSON array, one entry per group:
[{{"index": 0, "name": "...", "description": "...", "gherkin": "Given ... When ... Then ..."}}]"""

QUALITY_SYSTEM = """You are a strict reviewer of behavioral specifications (Intent Atoms).
Score each atom from 0 to 100 on: observable and testable description (25), at least one concrete outcome (15),
valid category (15), clear reasoning (10), adequate confidence (15), no ambiguity (10), traceable source (10)."""

QUALITY_PROMPT = """Evaluate the quality of this atom.

{atom_block}

Respond with ONLY a JSON object:
{{"totalScore": 0-100, "decision": "approve | revise | reject", "feedback": "short explanation"}}"""


def _code_block(item: EvidenceItem, limit: int = 2000) -> str:
    if not item.code:
        return "(no code available)"
    return item.code[:limit]


def _analysis_block(analysis: EvidenceAnalysis | None) -> str:
    if analysis is None:
        return ""
    lines = [f"Summary: {analysis.summary}"]
    if analysis.domain_concepts:
        lines.append(f"Domain concepts: {', '.join(analysis.domain_concepts)}")
    if analysis.related_docs:
        lines.append(f"Related docs: {', '.join(analysis.related_docs[:5])}")
    return "\n".join(lines)


def prompt_for_test(item: EvidenceItem, analysis: EvidenceAnalysis | None) -> str:
    return f"""You are analyzing a test to infer an Intent Atom: a description of WHAT the system should do, not HOW.

Test: {item.name}
File: {item.file_path}
{_analysis_block(analysis)}

Test code:
{_code_block(item)}

The assertions reveal the expected behavior. Describe that behavior.

{ATOM_RESPONSE_FORMAT.format()}"""


def prompt_for_source_export(item: EvidenceItem, analysis: EvidenceAnalysis | None) -> str:
    export_type = item.metadata.get("export_type", "export")
    return f"""You are analyzing a source code export to infer an Intent Atom.

Export: {item.name} ({export_type})
File: {item.file_path}
{_analysis_block(analysis)}

Code:
{_code_block(item)}

Describe the capability this export provides to its callers in observable terms.

{ATOM_RESPONSE_FORMAT.format()}"""


def prompt_for_ui_component(item: EvidenceItem, analysis: EvidenceAnalysis | None) -> str:
    framework = item.metadata.get("framework", "unknown")
    return f"""You are analyzing a UI component to infer a user-facing Intent Atom.

Component: {item.name}
Framework: {framework}
File: {item.file_path}
{_analysis_block(analysis)}

Code:
{_code_block(item)}

Describe what the user can see or do with this component.

{ATOM_RESPONSE_FORMAT.format()}"""


def prompt_for_api_endpoint(item: EvidenceItem, analysis: EvidenceAnalysis | None) -> str:
    method = item.metadata.get("method", "GET")
    path = item.metadata.get("path", item.name)
    return f"""You are analyzing an API endpoint to infer an Intent Atom.

Endpoint: {method} {path}
Handler: {item.name}
File: {item.file_path}
{_analysis_block(analysis)}

Code:
{_code_block(item)}

Describe what a client observes when calling this endpoint, including status codes where evident.

{ATOM_RESPONSE_FORMAT.format()}"""


def prompt_for_documentation(item: EvidenceItem, analysis: EvidenceAnalysis | None) -> str:
    return f"""You are analyzing documentation to infer an Intent Atom.

Section: {item.name}
File: {item.file_path}
{_analysis_block(analysis)}

Content:
{_code_block(item)}

Describe the single most concrete behavior this documentation promises.

{ATOM_RESPONSE_FORMAT.format()}"""


def prompt_for_code_comment(item: EvidenceItem, analysis: EvidenceAnalysis | None) -> str:
    comment_type = item.metadata.get("comment_type", "comment")
    return f"""You are analyzing an inline code comment to infer an Intent Atom.

Comment ({comment_type}) near: {item.name}
File: {item.file_path}
{_analysis_block(analysis)}

Comment and surrounding code:
{_code_block(item)}

Describe the behavior the comment states or implies. Lower confidence if it is aspirational (TODO/FIXME).

{ATOM_RESPONSE_FORMAT.format()}"""


def prompt_for_coverage_gap(item: EvidenceItem, analysis: EvidenceAnalysis | None) -> str:
    coverage = item.metadata.get("coverage_percent")
    coverage_line = f"Line coverage: {coverage}%" if coverage is not None else ""
    return f"""You are analyzing an untested source file to infer what Intent Atom it might realize.

File: {item.file_path}
Symbol: {item.name}
{coverage_line}
{_analysis_block(analysis)}

Code:
{_code_block(item)}

No test covers this code, so keep confidence modest and record the lack of tests as an ambiguity.

{ATOM_RESPONSE_FORMAT.format()}"""


def prompt_for_generic(item: EvidenceItem, analysis: EvidenceAnalysis | None) -> str:
    return f"""You are analyzing code evidence to infer an Intent Atom.

Evidence: {item.name} ({item.type.value})
File: {item.file_path}
{_analysis_block(analysis)}

Content:
{_code_block(item)}

{ATOM_RESPONSE_FORMAT.format()}"""


PromptBuilder = Callable[[EvidenceItem, "EvidenceAnalysis | None"], str]

PROMPT_BUILDERS: dict[EvidenceType, PromptBuilder] = {
    EvidenceType.TEST: prompt_for_test,
    EvidenceType.SOURCE_EXPORT: prompt_for_source_export,
    EvidenceType.UI_COMPONENT: prompt_for_ui_component,
    EvidenceType.API_ENDPOINT: prompt_for_api_endpoint,
    EvidenceType.DOCUMENTATION: prompt_for_documentation,
    EvidenceType.CODE_COMMENT: prompt_for_code_comment,
    EvidenceType.COVERAGE_GAP: prompt_for_coverage_gap,
}


def build_inference_prompt(item: EvidenceItem, analysis: EvidenceAnalysis | None) -> str:
    return PROMPT_BUILDERS.get(item.type, prompt_for_generic)(item, analysis)


def format_atom_block(atom: InferredAtom) -> str:
    outcomes = "\n".join(f"  - {o}" for o in atom.observable_outcomes) or "  (none)"
    ambiguity = "; ".join(atom.ambiguity_reasons) or "none"
    return (
        f"ID: {atom.temp_id}\n"
        f"Description: {atom.description}\n"
        f"Category: {atom.category}\n"
        f"Observable outcomes:\n{outcomes}\n"
        f"Confidence: {atom.confidence}\n"
        f"Reasoning: {atom.reasoning}\n"
        f"Ambiguity: {ambiguity}\n"
        f"Source: {atom.source_reference.file_path}:{atom.source_reference.name}"
    )
