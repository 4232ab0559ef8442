"""JSON-file persistence for workflow models and their connections.

Models live one-per-file under a directory; connections share a single list
file. Every public call returns a :class:`Result`, so a disk failure reaches
callers as an infrastructure failure rather than an exception.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from process_agent_orchestrator.core.errors import (
    ConflictError,
    InfrastructureError,
    NotFoundError,
)
from process_agent_orchestrator.core.result import Result, result_boundary
from process_agent_orchestrator.model.connections import Connection
from process_agent_orchestrator.model.workflow import WorkflowModel

logger = logging.getLogger(__name__)


def _write_json(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    tmp.replace(path)


@dataclass
class WorkflowModelStore:
    root: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _path(self, model_id: str) -> Path:
        if not model_id or "/" in model_id or "\\" in model_id or model_id.startswith("."):
            raise NotFoundError(f"Model '{model_id}' not found")
        return self.root / f"{model_id}.json"

    def _load_unlocked(self, path: Path) -> WorkflowModel:
        try:
            return WorkflowModel.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise InfrastructureError(f"Stored model {path.name} is corrupt: {e}") from e

    def _save_unlocked(self, model: WorkflowModel) -> None:
        model.last_saved_at = datetime.now(tz=UTC)
        _write_json(self._path(model.model_id), model.model_dump(mode="json"))

    def _all_unlocked(self) -> list[WorkflowModel]:
        if not self.root.exists():
            return []
        return [self._load_unlocked(p) for p in sorted(self.root.glob("*.json"))]

    def _get_unlocked(self, model_id: str, *, include_deleted: bool) -> WorkflowModel:
        path = self._path(model_id)
        if not path.exists():
            raise NotFoundError(f"Model '{model_id}' not found")
        model = self._load_unlocked(path)
        if model.is_deleted and not include_deleted:
            raise NotFoundError(f"Model '{model_id}' not found")
        return model

    @result_boundary
    def save(self, model: WorkflowModel) -> Result[WorkflowModel]:
        with self._lock:
            self._save_unlocked(model)
        logger.debug("Model saved", extra={"model_id": model.model_id})
        return Result.success(model)

    @result_boundary
    def save_many(self, models: Iterable[WorkflowModel]) -> Result[list[WorkflowModel]]:
        saved = list(models)
        with self._lock:
            for model in saved:
                self._save_unlocked(model)
        return Result.success(saved)

    @result_boundary
    def find_by_id(
        self, model_id: str, *, include_deleted: bool = False
    ) -> Result[WorkflowModel]:
        with self._lock:
            return Result.success(self._get_unlocked(model_id, include_deleted=include_deleted))

    @result_boundary
    def list_all(self, *, include_deleted: bool = False) -> Result[list[WorkflowModel]]:
        with self._lock:
            models = self._all_unlocked()
        return Result.success([m for m in models if include_deleted or not m.is_deleted])

    @result_boundary
    def list_deleted(self) -> Result[list[WorkflowModel]]:
        with self._lock:
            return Result.success([m for m in self._all_unlocked() if m.is_deleted])

    @result_boundary
    def find_where(
        self, predicate: Callable[[WorkflowModel], bool], *, include_deleted: bool = False
    ) -> Result[list[WorkflowModel]]:
        with self._lock:
            models = self._all_unlocked()
        return Result.success(
            [m for m in models if (include_deleted or not m.is_deleted) and predicate(m)]
        )

    @result_boundary
    def soft_delete(self, model_id: str, user_id: str) -> Result[WorkflowModel]:
        with self._lock:
            model = self._get_unlocked(model_id, include_deleted=True)
            outcome = model.soft_delete(user_id)
            if outcome.ok:
                self._save_unlocked(model)
            return outcome

    @result_boundary
    def restore(self, model_id: str) -> Result[WorkflowModel]:
        with self._lock:
            model = self._get_unlocked(model_id, include_deleted=True)
            outcome = model.restore()
            if outcome.ok:
                self._save_unlocked(model)
            return outcome

    @result_boundary
    def delete(self, model_id: str) -> Result[None]:
        """Permanently remove a model file."""
        with self._lock:
            path = self._path(model_id)
            if not path.exists():
                raise NotFoundError(f"Model '{model_id}' not found")
            path.unlink()
        return Result.success(None)


@dataclass
class ConnectionStore:
    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _load_unlocked(self) -> list[Connection]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise InfrastructureError(f"Connection store {self.path} is corrupt: {e}") from e
        if not isinstance(raw, list):
            raise InfrastructureError(f"Connection store {self.path} is not a list")
        return [Connection.model_validate(item) for item in raw]

    def _save_unlocked(self, connections: list[Connection]) -> None:
        _write_json(self.path, [c.model_dump(mode="json") for c in connections])

    @result_boundary
    def add(self, connection: Connection) -> Result[Connection]:
        with self._lock:
            connections = self._load_unlocked()
            for existing in connections:
                if existing.connection_id == connection.connection_id:
                    raise ConflictError(f"Connection '{connection.connection_id}' already exists")
                if existing.model_id == connection.model_id and existing.edge == connection.edge:
                    raise ConflictError(
                        f"Nodes {connection.source_node_id} and {connection.target_node_id} "
                        "are already connected"
                    )
            connections.append(connection)
            self._save_unlocked(connections)
        return Result.success(connection)

    @result_boundary
    def remove(self, connection_id: str) -> Result[Connection]:
        with self._lock:
            connections = self._load_unlocked()
            for idx, existing in enumerate(connections):
                if existing.connection_id == connection_id:
                    del connections[idx]
                    self._save_unlocked(connections)
                    return Result.success(existing)
        raise NotFoundError(f"Connection '{connection_id}' not found")

    @result_boundary
    def find_by_id(self, connection_id: str) -> Result[Connection]:
        with self._lock:
            for existing in self._load_unlocked():
                if existing.connection_id == connection_id:
                    return Result.success(existing)
        raise NotFoundError(f"Connection '{connection_id}' not found")

    @result_boundary
    def find_by_model(self, model_id: str) -> Result[list[Connection]]:
        with self._lock:
            return Result.success([c for c in self._load_unlocked() if c.model_id == model_id])
