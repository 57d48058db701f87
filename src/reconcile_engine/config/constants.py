"""Fixed vocabularies and constants used across the pipeline."""

from __future__ import annotations

import re

# Inference tier order. Tests always run first and are never capped.
TIER_ORDER = [
    "test",
    "api_endpoint",
    "ui_component",
    "source_export",
    "code_comment",
    "documentation",
    "coverage_gap",
]

# Default base confidence per evidence type, used when a provider does not set one.
BASE_CONFIDENCE = {
    "test": 1.0,
    "api_endpoint": 0.9,
    "ui_component": 0.8,
    "source_export": 0.7,
    "code_comment": 0.6,
    "documentation": 0.5,
    "coverage_gap": 0.4,
}

ATOM_CATEGORIES = ("functional", "security", "performance", "reliability", "usability")

FALLBACK_CONFIDENCE = 30
FALLBACK_AMBIGUITY = "LLM inference failed, using fallback"
FALLBACK_REASONING = "Fallback atom - requires manual review"

# Quality rule weights (sum to 100)
QUALITY_WEIGHTS = {
    "description": 25,
    "outcomes": 15,
    "category": 15,
    "reasoning": 10,
    "confidence": 15,
    "no_ambiguity": 10,
    "source_reference": 10,
}

# Words that name an implementation rather than an observable outcome
IMPLEMENTATION_PATTERNS = [
    re.compile(r"\bclass\b", re.IGNORECASE),
    re.compile(r"\bmethod\b", re.IGNORECASE),
    re.compile(r"\bfunction\b", re.IGNORECASE),
    re.compile(r"\(\)\s*$"),
    re.compile(r"\bService\b"),
    re.compile(r"\bRepository\b"),
    re.compile(r"\bController\b"),
]

VAGUE_OUTCOME_PATTERNS = [
    re.compile(r"works", re.IGNORECASE),
    re.compile(r"handles", re.IGNORECASE),
    re.compile(r"properly", re.IGNORECASE),
    re.compile(r"correctly", re.IGNORECASE),
]

# Conjunctions that usually mean more than one behavior was described
CONJUNCTION_PATTERN = re.compile(
    r"\b(?:and also|as well as|along with|including)\b|,\s*and\b", re.IGNORECASE
)

# Domain concept groups for molecule clustering, in priority order
DOMAIN_PATTERNS = [
    # identity / auth
    re.compile(
        r"\b(user|users|account|profile|authentication|login|logout|session|permission|role)\b",
        re.IGNORECASE,
    ),
    # data operations
    re.compile(
        r"\b(create|read|update|delete|crud|save|load|store|fetch|retrieve)\b", re.IGNORECASE
    ),
    # commerce
    re.compile(r"\b(order|payment|cart|checkout|invoice|subscription|billing)\b", re.IGNORECASE),
    # messaging / eventing
    re.compile(r"\b(cache|queue|event|message|notification|email|webhook)\b", re.IGNORECASE),
    # validation
    re.compile(r"\b(validate|validation|verify|check|constraint|rule)\b", re.IGNORECASE),
    # error / security
    re.compile(
        r"\b(error|exception|security|authorization|access|encrypt|decrypt)\b", re.IGNORECASE
    ),
]

MODULE_CONTAINER_KEYWORDS = ("modules", "components", "pages", "features")

MISC_CLUSTER = "misc"
UNNAMED_CLUSTER = "Unnamed Cluster"

# Keywords used by static evidence analysis
ANALYSIS_DOMAIN_KEYWORDS = (
    "auth", "login", "logout", "user", "account", "password", "session", "token",
    "payment", "order", "cart", "checkout", "invoice", "email", "notification",
    "search", "upload", "download", "export", "import", "report", "permission",
    "role", "admin", "profile", "settings", "cache", "queue", "validation", "error",
)
