"""Keyword-driven semantic search over registered agents.

Scoring is a weighted field match: each field contributes the fraction of
query keywords it contains, times the field weight (name > capability tags >
description > instructions). An optional domain focus adds a fixed boost for
agents that list that domain. Scores are clamped to ``[0, 1]``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from process_agent_orchestrator.agents.models import Agent, FeatureType
from process_agent_orchestrator.agents.registry import AgentRegistry
from process_agent_orchestrator.core.config import SemanticSearchConfig
from process_agent_orchestrator.core.errors import DomainValidationError
from process_agent_orchestrator.core.result import Result, result_boundary

logger = logging.getLogger(__name__)

STOP_WORDS: frozenset[str] = frozenset(
    """
    the a an and or but in on at to for of with by is are was were be been being
    have has had do does did will would could should can that this these those
    i you we they he she it me us them my your our their his her its need find
    get want
    """.split()
)

CONCEPT_KEYWORDS: Mapping[str, tuple[str, ...]] = {
    "data-processing": ("data", "process", "transform", "clean", "parse", "extract"),
    "analysis": ("analyze", "analysis", "insights", "patterns", "trends", "statistics"),
    "reporting": ("report", "generate", "create", "document", "summary", "dashboard"),
    "automation": ("automate", "automatic", "schedule", "workflow", "process"),
    "compliance": ("compliance", "regulatory", "rules", "validation", "audit"),
    "financial": ("financial", "money", "payment", "transaction", "accounting", "budget"),
    "communication": ("email", "message", "notification", "alert", "communicate"),
    "orchestration": ("orchestrate", "coordinate", "manage", "control", "workflow"),
}

DOMAIN_KEYWORDS: Mapping[str, tuple[str, ...]] = {
    "financial-services": (
        "financial",
        "banking",
        "payment",
        "transaction",
        "accounting",
        "compliance",
        "regulatory",
    ),
    "healthcare": ("health", "medical", "patient", "clinical", "diagnosis", "treatment"),
    "technology": ("software", "system", "application", "database", "api", "cloud"),
    "manufacturing": ("production", "manufacturing", "quality", "inventory", "supply"),
    "marketing": ("marketing", "campaign", "customer", "promotion", "brand"),
    "education": ("education", "student", "course", "learning", "academic"),
    "legal": ("legal", "contract", "compliance", "regulation", "law"),
}

_NON_WORD = re.compile(r"[^\w\s]")


def extract_keywords(text: str, limit: int = 20) -> list[str]:
    words = _NON_WORD.sub(" ", text.lower()).split()
    keywords: list[str] = []
    for word in words:
        if len(word) > 2 and word not in STOP_WORDS and word not in keywords:
            keywords.append(word)
    return keywords[:limit]


def identify_concepts(query: str, keywords: list[str]) -> list[str]:
    lowered = query.lower()
    return [
        concept
        for concept, words in CONCEPT_KEYWORDS.items()
        if any(w in keywords or w in lowered for w in words)
    ]


def detect_domain(query: str) -> str:
    lowered = query.lower()
    for domain, words in DOMAIN_KEYWORDS.items():
        if sum(1 for w in words if w in lowered) >= 2:
            return domain
    return "general"


def assess_complexity(query: str) -> str:
    words = query.split()
    structured = any(sep in query for sep in (",", ";")) or bool(
        re.search(r"\b(and|or)\b", query, re.IGNORECASE)
    )
    specific = bool(re.search(r"[A-Z]{2,}|[0-9]+|\b[a-z]+\.[a-z]+\b", query))
    if len(words) > 20 or (structured and specific):
        return "high"
    if len(words) > 10 or structured:
        return "medium"
    return "low"


@dataclass(frozen=True, slots=True)
class QueryAnalysis:
    keywords: tuple[str, ...]
    concepts: tuple[str, ...]
    complexity: str
    domain: str


@dataclass(frozen=True, slots=True)
class SemanticMatch:
    agent: Agent
    score: float
    matching_keywords: tuple[str, ...]
    explanation: str | None = None
    contextual_matches: tuple[str, ...] | None = None


@dataclass(frozen=True, slots=True)
class SemanticSearchResponse:
    matches: list[SemanticMatch]
    total_candidates: int
    analysis: QueryAnalysis
    field_weights: dict[str, float] = field(default_factory=dict)


class SemanticSearchEngine:
    def __init__(
        self, registry: AgentRegistry, config: SemanticSearchConfig | None = None
    ) -> None:
        self._registry = registry
        self._config = config or SemanticSearchConfig()

    @property
    def field_weights(self) -> dict[str, float]:
        c = self._config
        return {
            "name": c.name_weight,
            "capabilities": c.capability_weight,
            "description": c.description_weight,
            "instructions": c.instructions_weight,
        }

    def analyze(self, query: str, domain_focus: str | None = None) -> QueryAnalysis:
        keywords = extract_keywords(query, self._config.max_keywords)
        return QueryAnalysis(
            keywords=tuple(keywords),
            concepts=tuple(identify_concepts(query, keywords)),
            complexity=assess_complexity(query),
            domain=domain_focus or detect_domain(query),
        )

    def _fields(self, agent: Agent) -> dict[str, str]:
        return {
            "name": agent.name.lower(),
            "capabilities": " ".join(sorted(agent.capability_tags())).replace("_", " "),
            "description": agent.description.lower(),
            "instructions": agent.instructions.lower(),
        }

    def score(
        self, agent: Agent, analysis: QueryAnalysis, domain_focus: str | None = None
    ) -> tuple[float, tuple[str, ...]]:
        if not analysis.keywords:
            return 0.0, ()
        fields = self._fields(agent)
        total = 0.0
        matched: set[str] = set()
        for name, weight in self.field_weights.items():
            hits = [k for k in analysis.keywords if k in fields[name]]
            matched.update(hits)
            total += weight * len(hits) / len(analysis.keywords)

        if total > 0 and domain_focus:
            focus = domain_focus.strip().lower()
            if focus in {d.lower() for d in agent.capabilities.domains}:
                total += self._config.domain_focus_boost

        ordered = tuple(k for k in analysis.keywords if k in matched)
        return round(max(0.0, min(1.0, total)), 6), ordered

    def _explain(self, agent: Agent, analysis: QueryAnalysis, score: float) -> str:
        if score > 0.8:
            parts = ["Highly relevant match"]
        elif score > 0.6:
            parts = ["Good match for the requested capabilities"]
        else:
            parts = ["Partial match with some relevant capabilities"]

        caps = agent.capabilities
        specialties = []
        if "data-processing" in analysis.concepts and caps.can_read and caps.can_write:
            specialties.append("data processing")
        if "analysis" in analysis.concepts and caps.can_analyze:
            specialties.append("analysis")
        if "orchestration" in analysis.concepts and caps.can_orchestrate:
            specialties.append("orchestration")
        if specialties:
            parts.append("Specialized in " + ", ".join(specialties))
        return ". ".join(parts)

    def _contextual_matches(self, agent: Agent, analysis: QueryAnalysis) -> tuple[str, ...]:
        found = []
        if analysis.domain != "general":
            text = f"{agent.name} {agent.description}".lower()
            domains = {d.lower() for d in agent.capabilities.domains}
            if analysis.domain in domains or analysis.domain.replace("-", " ") in text:
                found.append(f"{analysis.domain} domain expertise")
        caps = agent.capabilities
        if caps.can_read and caps.can_write and caps.can_analyze:
            found.append("comprehensive data handling capabilities")
        if caps.can_orchestrate and caps.can_execute:
            found.append("workflow orchestration and execution")
        for concept in analysis.concepts:
            if concept in agent.capability_tags():
                found.append(f"{concept} capability")
        return tuple(found)

    @result_boundary
    def search(
        self,
        query: str,
        *,
        feature_type: FeatureType | None = None,
        entity_id: str | None = None,
        max_results: int = 10,
        min_semantic_score: float = 0.0,
        include_explanations: bool = False,
        domain_focus: str | None = None,
        contextual_understanding: bool = False,
    ) -> Result[SemanticSearchResponse]:
        if not query or not query.strip():
            raise DomainValidationError("Search query is required")
        if len(query) > self._config.max_query_length:
            raise DomainValidationError(
                f"Search query must be at most {self._config.max_query_length} characters"
            )
        if not 0.0 <= min_semantic_score <= 1.0:
            raise DomainValidationError("min_semantic_score must be between 0 and 1")
        if not 1 <= max_results <= self._config.max_results_limit:
            raise DomainValidationError(
                f"max_results must be between 1 and {self._config.max_results_limit}"
            )

        analysis = self.analyze(query, domain_focus)
        candidates = [
            a
            for a in self._registry.find_enabled().unwrap()
            if (feature_type is None or a.scope.feature_type == feature_type)
            and (entity_id is None or a.scope.entity_id == entity_id)
        ]

        matches = []
        for agent in candidates:
            score, keywords = self.score(agent, analysis, domain_focus)
            if score <= 0 or score < min_semantic_score:
                continue
            matches.append(
                SemanticMatch(
                    agent=agent,
                    score=score,
                    matching_keywords=keywords,
                    explanation=self._explain(agent, analysis, score)
                    if include_explanations
                    else None,
                    contextual_matches=self._contextual_matches(agent, analysis)
                    if contextual_understanding
                    else None,
                )
            )

        matches.sort(key=lambda m: (-m.score, m.agent.name, m.agent.agent_id))
        logger.debug(
            "Semantic search completed",
            extra={
                "keywords": list(analysis.keywords),
                "candidates": len(candidates),
                "matches": len(matches),
            },
        )
        return Result.success(
            SemanticSearchResponse(
                matches=matches[:max_results],
                total_candidates=len(candidates),
                analysis=analysis,
                field_weights=self.field_weights,
            )
        )
