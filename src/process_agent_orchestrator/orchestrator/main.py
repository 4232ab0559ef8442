"""CLI entrypoint for the process agent orchestrator."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from process_agent_orchestrator import __version__
from process_agent_orchestrator.agents.models import FeatureType
from process_agent_orchestrator.agents.workflow_engine import WorkflowExecutionPlan
from process_agent_orchestrator.core.config import OrchestratorConfig
from process_agent_orchestrator.core.orchestrator import Orchestrator
from process_agent_orchestrator.core.result import Result

logger = logging.getLogger(__name__)


def _parse_list(value: str | None) -> list[str]:
    if value is None:
        return []
    return [p.strip() for p in value.split(",") if p.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orchestrator",
        description="Workflow model and agent orchestration toolkit",
    )
    parser.add_argument(
        "--version", action="version", version=f"process-agent-orchestrator {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the REST API")
    serve.add_argument("--host", default=None, help="Bind address (defaults to ORCHESTRATOR_HOST)")
    serve.add_argument(
        "--port", type=int, default=None, help="Port (defaults to ORCHESTRATOR_PORT)"
    )

    list_models = subparsers.add_parser("list-models", help="List stored workflow models")
    list_models.add_argument(
        "--include-deleted", action="store_true", help="Include soft-deleted models"
    )

    validate = subparsers.add_parser("validate-model", help="Validate a workflow model")
    validate.add_argument("--model-id", required=True)

    publish = subparsers.add_parser("publish-model", help="Publish a draft workflow model")
    publish.add_argument("--model-id", required=True)
    publish.add_argument("--version", dest="model_version", required=True, help="e.g. 1.0.0")
    publish.add_argument("--user", dest="user_id", required=True, help="Publishing user id")

    list_agents = subparsers.add_parser("list-agents", help="List registered agents")
    list_agents.add_argument(
        "--feature-type", choices=[f.value for f in FeatureType], default=None
    )
    list_agents.add_argument("--entity-id", default=None)

    discover = subparsers.add_parser("discover", help="Rank agents by capabilities")
    discover.add_argument(
        "--required", required=True, help="Comma-separated required capabilities"
    )
    discover.add_argument("--optional", default=None, help="Comma-separated optional capabilities")
    discover.add_argument("--min-score", type=float, default=0.0)
    discover.add_argument("--max-results", type=int, default=10)
    discover.add_argument(
        "--strict", action="store_true", help="Only agents offering every required capability"
    )

    search = subparsers.add_parser("search", help="Semantic search over agents")
    search.add_argument("--query", required=True)
    search.add_argument("--max-results", type=int, default=10)
    search.add_argument("--min-score", type=float, default=0.0)
    search.add_argument("--domain", default=None, help="Domain focus")
    search.add_argument("--explain", action="store_true", help="Include explanations")

    coordinate = subparsers.add_parser(
        "coordinate", help="Run a multi-stage workflow plan from a JSON file"
    )
    coordinate.add_argument("--plan", type=Path, required=True, help="Path to the plan JSON")

    return parser


def _fail(result: Result[Any]) -> int:
    kind = result.kind.value if result.kind else "error"
    print(f"Error ({kind}): {result.error}", file=sys.stderr)
    return 1


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = OrchestratorConfig()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    orch = Orchestrator(config)

    if args.command == "serve":
        import uvicorn

        from process_agent_orchestrator.server.app import create_app
        from process_agent_orchestrator.server.config import ServerSettings

        settings = ServerSettings()
        uvicorn.run(
            create_app(orch),
            host=args.host or settings.host,
            port=args.port or settings.port,
        )
        return 0

    if args.command == "list-models":
        models = orch.models.list_all(include_deleted=args.include_deleted)
        if not models.ok:
            return _fail(models)
        for model in models.value or []:
            print(f"{model.model_id}  {model.status.value:<9}  v{model.version}  {model.name}")
        return 0

    if args.command == "validate-model":
        report = orch.graph.validate_model(args.model_id)
        if not report.ok or report.value is None:
            return _fail(report)
        _print_json(
            {
                "is_valid": report.value.is_valid,
                "errors": list(report.value.errors),
                "warnings": list(report.value.warnings),
            }
        )
        return 0 if report.value.is_valid else 4

    if args.command == "publish-model":
        published = orch.graph.publish_model(
            args.model_id, version=args.model_version, user_id=args.user_id
        )
        if not published.ok or published.value is None:
            return _fail(published)
        print(f"Published {published.value.name} as version {published.value.current_version}")
        return 0

    if args.command == "list-agents":
        if args.feature_type and args.entity_id:
            agents = orch.registry.find_by_scope(FeatureType(args.feature_type), args.entity_id)
        else:
            agents = orch.registry.list_all()
        if not agents.ok:
            return _fail(agents)
        for agent in agents.value or []:
            if args.feature_type and agent.scope.feature_type.value != args.feature_type:
                continue
            state = "enabled" if agent.enabled else "disabled"
            print(f"{agent.agent_id}  {state:<8}  {agent.name}")
        return 0

    if args.command == "discover":
        matches = orch.discovery.discover(
            required_capabilities=_parse_list(args.required),
            optional_capabilities=_parse_list(args.optional),
            minimum_score=args.min_score,
            max_results=args.max_results,
            strict_mode=args.strict,
        )
        if not matches.ok:
            return _fail(matches)
        _print_json(
            [
                {
                    "agent_id": m.agent.agent_id,
                    "name": m.agent.name,
                    "score": m.score,
                    "matching": list(m.matching_capabilities),
                    "missing": list(m.missing_capabilities),
                }
                for m in matches.value or []
            ]
        )
        return 0

    if args.command == "search":
        response = orch.semantic_search.search(
            args.query,
            max_results=args.max_results,
            min_semantic_score=args.min_score,
            include_explanations=args.explain,
            domain_focus=args.domain,
        )
        if not response.ok or response.value is None:
            return _fail(response)
        _print_json(
            [
                {
                    "agent_id": m.agent.agent_id,
                    "name": m.agent.name,
                    "score": m.score,
                    "keywords": list(m.matching_keywords),
                    "explanation": m.explanation,
                }
                for m in response.value.matches
            ]
        )
        return 0

    if args.command == "coordinate":
        try:
            plan = WorkflowExecutionPlan.model_validate_json(args.plan.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            print(f"Invalid plan file {args.plan}: {e}", file=sys.stderr)
            return 2
        outcome = asyncio.run(orch.workflows.coordinate(plan))
        if not outcome.ok or outcome.value is None:
            return _fail(outcome)
        _print_json(outcome.value.to_json())
        logger.info(
            "Workflow coordinated",
            extra={"workflow_id": plan.workflow_id, "status": outcome.value.status},
        )
        return 0 if outcome.value.status == "completed" else 4

    parser.error(f"Unknown command: {args.command}")
    return 2
