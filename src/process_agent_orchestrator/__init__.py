"""Process Agent Orchestrator.

Business processes modelled as graphs of typed nodes, executed in parts by
autonomous agents:
- a workflow graph domain model with cycle prevention
- capability discovery and semantic search over registered agents
- task dispatch with metrics, and multi-stage workflow coordination
"""

__version__ = "0.1.0"

from process_agent_orchestrator.core.config import OrchestratorConfig

__all__ = ["__version__", "OrchestratorConfig"]
