"""Rollout state persistence."""

import copy
import json
import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable, Iterator

from canaryctl.core.exceptions import NotFoundError, StoreError, ValidationError
from canaryctl.core.logging import get_logger
from canaryctl.deploy.models import (
    CanaryTemplate,
    Deployment,
    DeploymentStatus,
    MetricsRecord,
    RollbackRecord,
    Step,
)

logger = get_logger(__name__)

ID_PATTERN = re.compile(r"^[A-Za-z0-9-]+$")


def check_id(value: str, kind: str = "deployment") -> str:
    """Reject ids that cannot safely name a state file.

    Raises:
        ValidationError: If the id has characters outside ``[A-Za-z0-9-]``
    """
    if not ID_PATTERN.match(value or ""):
        raise ValidationError(f"Invalid {kind} id: {value!r}", details={"id": value})
    return value


class StateStore(ABC):
    """Store for deployments and everything they own.

    Each deployment is persisted as one document holding the deployment,
    its steps, metrics records and rollback records, so a ``commit`` that
    touches several of them lands atomically.
    """

    # Raw document access, implemented by backends

    @abstractmethod
    def _read(self, deployment_id: str) -> dict[str, Any] | None:
        """Return the stored document or None."""

    @abstractmethod
    def _write(self, deployment_id: str, document: dict[str, Any]) -> None:
        """Replace the stored document atomically."""

    @abstractmethod
    def _remove(self, deployment_id: str) -> bool:
        """Delete a document. Returns False if it did not exist."""

    @abstractmethod
    def _documents(self) -> Iterator[dict[str, Any]]:
        """Iterate over all stored documents."""

    @abstractmethod
    def _read_template(self, template_id: str) -> dict[str, Any] | None:
        """Return a stored template or None."""

    @abstractmethod
    def _write_template(self, template_id: str, data: dict[str, Any]) -> None:
        """Store a template."""

    @abstractmethod
    def _remove_template(self, template_id: str) -> bool:
        """Delete a template. Returns False if it did not exist."""

    @abstractmethod
    def _templates(self) -> Iterator[dict[str, Any]]:
        """Iterate over all stored templates."""

    def lock_path(self, deployment_id: str) -> Path | None:
        """Lock file serializing writers across processes, if the backend needs one."""
        return None

    # Deployments

    def create(self, deployment: Deployment, steps: Iterable[Step]) -> None:
        """Persist a new deployment together with its step ladder."""
        if self._read(deployment.id) is not None:
            raise StoreError(f"Deployment already exists: {deployment.id}", deployment_id=deployment.id)

        document = {
            "deployment": deployment.to_dict(),
            "steps": [s.to_dict() for s in sorted(steps, key=lambda s: s.step_number)],
            "metrics": [],
            "rollbacks": [],
        }
        self._write(deployment.id, document)
        logger.debug("Created deployment state", deployment_id=deployment.id)

    def commit(
        self,
        deployment: Deployment,
        steps: Iterable[Step] = (),
        metrics: Iterable[MetricsRecord] = (),
        rollbacks: Iterable[RollbackRecord] = (),
    ) -> None:
        """Write one unit of work for a deployment in a single document write.

        Args:
            deployment: Updated deployment
            steps: Steps to upsert
            metrics: Metrics records to append
            rollbacks: Rollback records to upsert
        """
        document = self._load_document(deployment.id)

        document["deployment"] = deployment.to_dict()

        stored_steps = {s["id"]: s for s in document["steps"]}
        for step in steps:
            if step.deployment_id != deployment.id:
                raise StoreError("Step belongs to another deployment", deployment_id=deployment.id)
            stored_steps[step.id] = step.to_dict()
        document["steps"] = sorted(stored_steps.values(), key=lambda s: s["step_number"])

        existing_metrics = {m["id"] for m in document["metrics"]}
        for record in metrics:
            if record.id in existing_metrics:
                raise StoreError(f"Metrics record already stored: {record.id}", deployment_id=deployment.id)
            document["metrics"].append(record.to_dict())

        stored_rollbacks = {r["id"]: r for r in document["rollbacks"]}
        for rollback in rollbacks:
            stored_rollbacks[rollback.id] = rollback.to_dict()
        document["rollbacks"] = list(stored_rollbacks.values())

        self._write(deployment.id, document)

    def get_deployment(self, deployment_id: str) -> Deployment:
        """Load a deployment.

        Raises:
            NotFoundError: If the deployment does not exist
        """
        document = self._load_document(deployment_id)
        return Deployment.from_dict(document["deployment"])

    def list_deployments(
        self,
        status: DeploymentStatus | None = None,
        namespace: str | None = None,
        limit: int = 50,
    ) -> list[Deployment]:
        """List deployments, newest first.

        Args:
            status: Filter by status
            namespace: Filter by namespace
            limit: Maximum deployments to return
        """
        deployments: list[Deployment] = []

        for document in self._documents():
            deployment = Deployment.from_dict(document["deployment"])

            if status and deployment.status != status:
                continue
            if namespace and deployment.namespace != namespace:
                continue

            deployments.append(deployment)

        deployments.sort(key=lambda d: d.created_at, reverse=True)
        return deployments[:limit]

    def get_steps(self, deployment_id: str) -> list[Step]:
        """Steps of a deployment ordered by step number."""
        document = self._load_document(deployment_id)
        return [Step.from_dict(s) for s in document["steps"]]

    def get_metrics(self, deployment_id: str, limit: int = 100) -> list[MetricsRecord]:
        """Latest metrics records, newest first."""
        document = self._load_document(deployment_id)
        records = [MetricsRecord.from_dict(m) for m in document["metrics"]]
        records.reverse()
        return records[:limit]

    def get_rollbacks(self, deployment_id: str) -> list[RollbackRecord]:
        """Rollback records of a deployment, newest first."""
        document = self._load_document(deployment_id)
        records = [RollbackRecord.from_dict(r) for r in document["rollbacks"]]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    def get_rollback(self, rollback_id: str) -> RollbackRecord:
        """Find a rollback record by id across deployments."""
        for document in self._documents():
            for data in document["rollbacks"]:
                if data["id"] == rollback_id:
                    return RollbackRecord.from_dict(data)
        raise NotFoundError(
            f"Rollback record not found: {rollback_id}",
            resource="rollback",
            resource_id=rollback_id,
        )

    def delete(self, deployment_id: str) -> None:
        """Delete a deployment and everything it owns."""
        if not self._remove(deployment_id):
            raise NotFoundError(
                f"Deployment not found: {deployment_id}",
                resource="deployment",
                resource_id=deployment_id,
            )
        logger.debug("Deleted deployment state", deployment_id=deployment_id)

    # Templates

    def save_template(self, template: CanaryTemplate) -> None:
        """Store a template. A default template clears the flag on the others."""
        if template.is_default:
            for data in list(self._templates()):
                if data.get("is_default") and data["id"] != template.id:
                    data["is_default"] = False
                    self._write_template(data["id"], data)
        self._write_template(template.id, template.to_dict())

    def get_template(self, template_id: str) -> CanaryTemplate:
        data = self._read_template(template_id)
        if data is None:
            raise NotFoundError(
                f"Template not found: {template_id}",
                resource="template",
                resource_id=template_id,
            )
        return CanaryTemplate.from_dict(data)

    def list_templates(self) -> list[CanaryTemplate]:
        templates = [CanaryTemplate.from_dict(t) for t in self._templates()]
        templates.sort(key=lambda t: t.created_at, reverse=True)
        return templates

    def get_default_template(self) -> CanaryTemplate | None:
        for template in self.list_templates():
            if template.is_default:
                return template
        return None

    def delete_template(self, template_id: str) -> None:
        if not self._remove_template(template_id):
            raise NotFoundError(
                f"Template not found: {template_id}",
                resource="template",
                resource_id=template_id,
            )

    def _load_document(self, deployment_id: str) -> dict[str, Any]:
        document = self._read(deployment_id)
        if document is None:
            raise NotFoundError(
                f"Deployment not found: {deployment_id}",
                resource="deployment",
                resource_id=deployment_id,
            )
        return document


class DeploymentState(StateStore):
    """JSON-file state store, one file per deployment."""

    def __init__(self, state_dir: str | Path | None = None):
        """Initialize deployment state manager.

        Args:
            state_dir: Directory to store deployment state
        """
        if state_dir:
            self._state_dir = Path(state_dir)
        else:
            self._state_dir = Path.home() / ".canaryctl" / "deployments"
        self._template_dir = self._state_dir / "templates"

        try:
            self._template_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create state directory {self._state_dir}: {e}")

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    def _path(self, deployment_id: str) -> Path:
        return self._state_dir / f"{check_id(deployment_id)}.json"

    def _template_path(self, template_id: str) -> Path:
        return self._template_dir / f"{check_id(template_id, 'template')}.json"

    def lock_path(self, deployment_id: str) -> Path:
        return self._state_dir / f".{check_id(deployment_id)}.lock"

    def _read_file(self, path: Path) -> dict[str, Any] | None:
        if not path.exists():
            return None
        try:
            with open(path) as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to load state from {path.name}: {e}")

    def _write_file(self, path: Path, data: dict[str, Any]) -> None:
        # Write to a sibling temp file and rename so readers never see a partial file
        try:
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StoreError(f"Failed to save state to {path.name}: {e}")

    def _read(self, deployment_id: str) -> dict[str, Any] | None:
        return self._read_file(self._path(deployment_id))

    def _write(self, deployment_id: str, document: dict[str, Any]) -> None:
        self._write_file(self._path(deployment_id), document)
        logger.debug("Saved deployment state", deployment_id=deployment_id)

    def _remove(self, deployment_id: str) -> bool:
        path = self._path(deployment_id)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            raise StoreError(f"Failed to delete state: {e}", deployment_id=deployment_id)
        return True

    def _documents(self) -> Iterator[dict[str, Any]]:
        for state_file in sorted(self._state_dir.glob("*.json")):
            try:
                document = self._read_file(state_file)
            except StoreError as e:
                logger.warning(f"Skipping unreadable state file {state_file.name}: {e}")
                continue
            if document is not None:
                yield document

    def _read_template(self, template_id: str) -> dict[str, Any] | None:
        return self._read_file(self._template_path(template_id))

    def _write_template(self, template_id: str, data: dict[str, Any]) -> None:
        self._write_file(self._template_path(template_id), data)

    def _remove_template(self, template_id: str) -> bool:
        path = self._template_path(template_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def _templates(self) -> Iterator[dict[str, Any]]:
        for path in sorted(self._template_dir.glob("*.json")):
            data = self._read_file(path)
            if data is not None:
                yield data


class MemoryDeploymentState(StateStore):
    """In-process state store.

    Documents are deep-copied on the way in and out, so callers mutating
    loaded objects never change stored state without a commit.
    """

    def __init__(self) -> None:
        self._documents_by_id: dict[str, dict[str, Any]] = {}
        self._templates_by_id: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _read(self, deployment_id: str) -> dict[str, Any] | None:
        with self._lock:
            document = self._documents_by_id.get(deployment_id)
            return copy.deepcopy(document) if document is not None else None

    def _write(self, deployment_id: str, document: dict[str, Any]) -> None:
        with self._lock:
            self._documents_by_id[deployment_id] = copy.deepcopy(document)

    def _remove(self, deployment_id: str) -> bool:
        with self._lock:
            return self._documents_by_id.pop(deployment_id, None) is not None

    def _documents(self) -> Iterator[dict[str, Any]]:
        with self._lock:
            snapshot = copy.deepcopy(list(self._documents_by_id.values()))
        yield from snapshot

    def _read_template(self, template_id: str) -> dict[str, Any] | None:
        with self._lock:
            data = self._templates_by_id.get(template_id)
            return copy.deepcopy(data) if data is not None else None

    def _write_template(self, template_id: str, data: dict[str, Any]) -> None:
        with self._lock:
            self._templates_by_id[template_id] = copy.deepcopy(data)

    def _remove_template(self, template_id: str) -> bool:
        with self._lock:
            return self._templates_by_id.pop(template_id, None) is not None

    def _templates(self) -> Iterator[dict[str, Any]]:
        with self._lock:
            snapshot = copy.deepcopy(list(self._templates_by_id.values()))
        yield from snapshot
