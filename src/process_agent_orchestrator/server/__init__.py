"""FastAPI server adapter for process-agent-orchestrator.

This module exposes a REST API over the orchestrator services.

Design intent:
- Keep business logic in `process_agent_orchestrator.model` and `.agents`
- Keep server-specific concerns (routing, CORS, status mapping) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from process_agent_orchestrator.server.app import create_app
