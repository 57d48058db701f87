"""Context phase: per-evidence summary and domain concept extraction."""

from __future__ import annotations

import re

from reconcile_engine.config.constants import ANALYSIS_DOMAIN_KEYWORDS
from reconcile_engine.exceptions import AnalysisError
from reconcile_engine.models.domain import EvidenceAnalysis, EvidenceItem, EvidenceType
from reconcile_engine.observability.logger import get_logger
from reconcile_engine.protocols.tools import ToolRegistry

logger = get_logger("evidence_analysis")

TEST_ANALYSIS_TOOL = "get_test_analysis"
MAX_RELATED_DOCS = 3

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_SPLIT_RE = re.compile(r"[^A-Za-z0-9]+")
_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+(.+)$", re.MULTILINE)
_BOLD_RE = re.compile(r"\*\*([^*]+)\*\*")


def split_identifier(name: str) -> list[str]:
    """``resetPassword_viaEmail`` -> ``["reset", "password", "via", "email"]``."""
    words: list[str] = []
    for part in _SPLIT_RE.split(name):
        words.extend(w.lower() for w in _CAMEL_RE.split(part) if w)
    return words


def extract_domain_concepts(*texts: str) -> list[str]:
    words: list[str] = []
    for text in texts:
        words.extend(split_identifier(text))
    concepts: list[str] = []
    for word in words:
        for keyword in ANALYSIS_DOMAIN_KEYWORDS:
            if keyword in word and keyword not in concepts:
                concepts.append(keyword)
    return concepts


def _first_line(text: str | None) -> str:
    if not text:
        return ""
    for line in text.splitlines():
        stripped = line.strip().lstrip("/#*").strip()
        if stripped:
            return stripped[:160]
    return ""


def summarize(item: EvidenceItem) -> str:
    meta = item.metadata
    if item.type == EvidenceType.TEST:
        related = meta.get("related_source_files") or []
        suffix = f"; exercises {', '.join(related[:3])}" if related else ""
        return f"Test '{item.name}' in {item.file_path}{suffix}"
    if item.type == EvidenceType.API_ENDPOINT:
        return f"{meta.get('method', 'GET')} {meta.get('path', item.name)} endpoint handled by {item.name}"
    if item.type == EvidenceType.UI_COMPONENT:
        return f"{meta.get('framework', 'UI')} component {item.name} in {item.file_path}"
    if item.type == EvidenceType.SOURCE_EXPORT:
        return f"Exported {meta.get('export_type', 'symbol')} {item.name} from {item.file_path}"
    if item.type == EvidenceType.DOCUMENTATION:
        headings = _HEADING_RE.findall(item.code or "")
        if headings:
            return f"Documentation '{item.name}' covering {', '.join(h.strip() for h in headings[:3])}"
        return f"Documentation section '{item.name}' in {item.file_path}"
    if item.type == EvidenceType.CODE_COMMENT:
        return f"{meta.get('comment_type', 'Inline')} comment near {item.name}: {_first_line(item.code)}"
    if item.type == EvidenceType.COVERAGE_GAP:
        pct = meta.get("coverage_percent")
        covered = f" ({pct}% covered)" if pct is not None else ""
        return f"Untested code {item.name} in {item.file_path}{covered}"
    return f"{item.type.value} evidence {item.name} in {item.file_path}"


def _concept_texts(item: EvidenceItem) -> list[str]:
    texts = [item.name, item.file_path]
    if item.type == EvidenceType.API_ENDPOINT:
        texts.append(str(item.metadata.get("path", "")))
    if item.type == EvidenceType.DOCUMENTATION and item.code:
        texts.extend(_HEADING_RE.findall(item.code))
        texts.extend(_BOLD_RE.findall(item.code))
    if item.type == EvidenceType.CODE_COMMENT and item.code:
        texts.append(item.code)
    return texts


class EvidenceAnalyzer:
    def __init__(self, tools: ToolRegistry | None = None) -> None:
        self._tools = tools

    async def analyze(self, items: list[EvidenceItem]) -> dict[str, EvidenceAnalysis]:
        analyses: dict[str, EvidenceAnalysis] = {}
        use_tool = self._tools is not None and self._tools.has_tool(TEST_ANALYSIS_TOOL)
        tool_failures = 0

        for item in items:
            analysis = None
            if use_tool and item.type == EvidenceType.TEST:
                analysis = await self._analyze_with_tool(item)
                if analysis is None:
                    tool_failures += 1
            if analysis is None:
                analysis = self.analyze_static(item)
            analyses[item.key] = analysis

        self._link_documentation(items, analyses)
        logger.info("evidence_analyzed", items=len(items), tool_failures=tool_failures)
        return analyses

    @staticmethod
    def analyze_static(item: EvidenceItem) -> EvidenceAnalysis:
        return EvidenceAnalysis(
            evidence_key=item.key,
            summary=summarize(item),
            domain_concepts=extract_domain_concepts(*_concept_texts(item)),
        )

    async def _analyze_with_tool(self, item: EvidenceItem) -> EvidenceAnalysis | None:
        try:
            result = await self._tools.execute_tool(
                TEST_ANALYSIS_TOOL,
                {"filePath": item.file_path, "testName": item.name, "code": item.code or ""},
            )
            summary = result.get("summary")
            if not summary:
                raise AnalysisError("Test analysis tool returned no summary")
            concepts = [str(c).lower() for c in result.get("domainConcepts", [])]
            return EvidenceAnalysis(
                evidence_key=item.key,
                summary=str(summary),
                domain_concepts=list(dict.fromkeys(concepts)),
            )
        except Exception as e:
            logger.warning("test_analysis_tool_failed", evidence=item.key, error=str(e))
            return None

    @staticmethod
    def _link_documentation(
        items: list[EvidenceItem], analyses: dict[str, EvidenceAnalysis]
    ) -> None:
        docs = [
            (item.file_path, set(analyses[item.key].domain_concepts))
            for item in items
            if item.type == EvidenceType.DOCUMENTATION
        ]
        if not docs:
            return
        for item in items:
            if item.type == EvidenceType.DOCUMENTATION:
                continue
            analysis = analyses[item.key]
            concepts = set(analysis.domain_concepts)
            if not concepts:
                continue
            related = [path for path, doc_concepts in docs if concepts & doc_concepts]
            analysis.related_docs = list(dict.fromkeys(related))[:MAX_RELATED_DOCS]
