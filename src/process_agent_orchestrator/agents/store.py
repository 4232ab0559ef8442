"""JSON-file persistence for registered agents."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from pathlib import Path

from process_agent_orchestrator.agents.models import Agent
from process_agent_orchestrator.core.errors import InfrastructureError


@dataclass
class AgentStore:
    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def load_all(self) -> list[Agent]:
        with self._lock:
            if not self.path.exists():
                return []
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                raise InfrastructureError(f"Agent store {self.path} is corrupt: {e}") from e
            if not isinstance(raw, list):
                raise InfrastructureError(f"Agent store {self.path} is not a list")
            return [Agent.model_validate(item) for item in raw]

    def save_all(self, agents: list[Agent]) -> None:
        payload = [a.model_dump(mode="json") for a in agents]
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(
                json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
            )
            tmp.replace(self.path)
