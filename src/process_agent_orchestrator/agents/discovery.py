"""Capability-based agent discovery and scoring.

An agent's score for a query is::

    (matched_required / len(required)) * required_weight
        + (matched_optional / max(1, len(optional))) * optional_weight

with ``required_weight > optional_weight`` so required capabilities always
dominate. Rankings are deterministic: score descending, then current load
ascending, then name ascending.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from process_agent_orchestrator.agents.models import Agent, FeatureType
from process_agent_orchestrator.agents.registry import AgentRegistry
from process_agent_orchestrator.core.config import DiscoveryConfig
from process_agent_orchestrator.core.errors import DomainValidationError, NotFoundError
from process_agent_orchestrator.core.result import Result, result_boundary

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AgentMatch:
    agent: Agent
    score: float
    matching_capabilities: tuple[str, ...]
    missing_capabilities: tuple[str, ...]
    missing_optional: tuple[str, ...]
    current_load: int = 0

    @property
    def satisfies_required(self) -> bool:
        return not self.missing_capabilities


def _normalize(capabilities: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for cap in capabilities:
        cleaned = cap.strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


class DiscoveryEngine:
    def __init__(self, registry: AgentRegistry, config: DiscoveryConfig | None = None) -> None:
        self._registry = registry
        self._config = config or DiscoveryConfig()

    def score(
        self, agent: Agent, required: Sequence[str], optional: Sequence[str] = ()
    ) -> AgentMatch:
        matched_req = [c for c in required if agent.offers(c)]
        matched_opt = [c for c in optional if agent.offers(c)]
        req_ratio = len(matched_req) / len(required) if required else 0.0
        opt_ratio = len(matched_opt) / max(1, len(optional))
        score = (
            req_ratio * self._config.required_weight + opt_ratio * self._config.optional_weight
        )
        return AgentMatch(
            agent=agent,
            score=round(min(1.0, score), 6),
            matching_capabilities=tuple(matched_req + matched_opt),
            missing_capabilities=tuple(c for c in required if c not in matched_req),
            missing_optional=tuple(c for c in optional if c not in matched_opt),
            current_load=self._registry.in_flight_count(agent.agent_id),
        )

    def _candidates(
        self,
        feature_type: FeatureType | None,
        entity_id: str | None,
        node_id: str | None,
    ) -> list[Agent]:
        if feature_type is not None and entity_id is not None:
            agents = self._registry.find_by_scope(feature_type, entity_id, node_id).unwrap()
        else:
            agents = self._registry.list_all().unwrap()
            if feature_type is not None:
                agents = [a for a in agents if a.scope.feature_type == feature_type]
            if node_id is not None:
                agents = [a for a in agents if a.scope.node_id == node_id]
        return [a for a in agents if a.enabled]

    @result_boundary
    def discover(
        self,
        *,
        required_capabilities: Iterable[str],
        optional_capabilities: Iterable[str] = (),
        feature_type: FeatureType | None = None,
        entity_id: str | None = None,
        node_id: str | None = None,
        minimum_score: float = 0.0,
        max_results: int = 10,
        strict_mode: bool = False,
    ) -> Result[list[AgentMatch]]:
        required = _normalize(required_capabilities)
        optional = [c for c in _normalize(optional_capabilities) if c not in required]
        if not required:
            raise DomainValidationError("At least one required capability must be specified")
        if not 0.0 <= minimum_score <= 1.0:
            raise DomainValidationError("minimum_score must be between 0 and 1")
        if not 1 <= max_results <= self._config.max_results_limit:
            raise DomainValidationError(
                f"max_results must be between 1 and {self._config.max_results_limit}"
            )

        matches = []
        for agent in self._candidates(feature_type, entity_id, node_id):
            match = self.score(agent, required, optional)
            if strict_mode and not match.satisfies_required:
                continue
            if match.score <= 0 or match.score < minimum_score:
                continue
            matches.append(match)

        matches.sort(
            key=lambda m: (-m.score, m.current_load, m.agent.name, m.agent.agent_id)
        )
        logger.debug(
            "Discovery completed",
            extra={
                "required": required,
                "optional": optional,
                "strict_mode": strict_mode,
                "matches": len(matches),
            },
        )
        return Result.success(matches[:max_results])

    @result_boundary
    def best_agent_for(
        self,
        required_capabilities: Iterable[str],
        *,
        feature_type: FeatureType | None = None,
        entity_id: str | None = None,
    ) -> Result[Agent]:
        """The top strict match for a set of required capabilities."""
        required = _normalize(required_capabilities)
        matches = self.discover(
            required_capabilities=required,
            feature_type=feature_type,
            entity_id=entity_id,
            max_results=1,
            strict_mode=True,
        ).unwrap()
        if not matches:
            raise NotFoundError(
                "No enabled agent offers all required capabilities: " + ", ".join(required)
            )
        return Result.success(matches[0].agent)
