# ============================================================================
# WORKFLOW SERVICE
# ============================================================================
# STATUS: Service - Workflow definition management
# PURPOSE: Load, validate and cache workflow definitions
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Service

Loads workflow definitions from JSON or YAML files and provides lookup
capabilities. Caches loaded workflows by name.

Workflow files are stored in the workflows/ directory (WORKFLOWS_DIR).
Every document is validated in strict mode before it is cached.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from core.config import get_defaults
from core.models import WorkflowDefinition
from orchestrator.engine.errors import CycleError, WorkflowValidationError
from orchestrator.engine.evaluator import build_execution_plan

logger = logging.getLogger(__name__)

WORKFLOW_SUFFIXES = (".json", ".yaml", ".yml")


class WorkflowNotFoundError(KeyError):
    """Raised when a workflow name or path cannot be resolved."""

    def __init__(self, name: str, tried: Optional[List[str]] = None):
        self.name = name
        self.tried = tried or []
        message = f"Workflow not found: {name}"
        if self.tried:
            message += f" (tried: {', '.join(self.tried)})"
        super().__init__(message)

    def __str__(self) -> str:
        return self.args[0]


class WorkflowService:
    """Service for loading and managing workflow definitions."""

    def __init__(self, workflows_dir: Optional[Union[str, Path]] = None):
        """
        Initialize workflow service.

        Args:
            workflows_dir: Directory containing workflow files.
                          Defaults to the configured workflows_dir.
        """
        self.workflows_dir = Path(workflows_dir or get_defaults().engine.workflows_dir)

        self._cache: Dict[str, WorkflowDefinition] = {}
        self._sources: Dict[str, Path] = {}
        self._loaded = False

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, name_or_path: Union[str, Path]) -> WorkflowDefinition:
        """
        Load one workflow by file path or catalogue name.

        Resolution order: the path as given, then the name inside the
        workflows directory, with and without each known suffix.

        Raises:
            WorkflowNotFoundError: Nothing matched
            WorkflowValidationError: The document is invalid
        """
        path = self.resolve_path(name_or_path)
        workflow = self.load_file(path)
        self._cache[workflow.name] = workflow
        self._sources[workflow.name] = path
        return workflow

    def load_file(self, path: Union[str, Path]) -> WorkflowDefinition:
        """
        Parse and validate a workflow file (no caching).

        Raises:
            WorkflowValidationError: The document is invalid
        """
        path = Path(path)
        document = self.read_document(path)
        try:
            return WorkflowDefinition.from_document(document)
        except WorkflowValidationError as e:
            raise WorkflowValidationError(e.errors, f"Invalid workflow in {path}: {e.errors}")

    def load_all(self) -> int:
        """
        Load all workflow definitions from the workflows directory.

        Invalid files are logged and skipped.

        Returns:
            Number of workflows loaded
        """
        if not self.workflows_dir.exists():
            logger.warning(f"Workflows directory not found: {self.workflows_dir}")
            self._loaded = True
            return 0

        count = 0
        for path in sorted(self.workflows_dir.iterdir()):
            if path.suffix not in WORKFLOW_SUFFIXES or path.name.endswith(".test.json"):
                continue
            try:
                workflow = self.load_file(path)
            except (WorkflowValidationError, ValueError, OSError) as e:
                logger.error(f"Failed to load {path}: {e}")
                continue

            self._cache[workflow.name] = workflow
            self._sources[workflow.name] = path
            count += 1
            logger.info(f"Loaded workflow: {workflow.name} ({len(workflow.steps)} steps)")

        self._loaded = True
        logger.info(f"Loaded {count} workflows from {self.workflows_dir}")
        return count

    def reload(self) -> int:
        """
        Reload all workflows from disk.

        Returns:
            Number of workflows loaded
        """
        self._cache.clear()
        self._sources.clear()
        self._loaded = False
        return self.load_all()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> Optional[WorkflowDefinition]:
        """
        Get a workflow definition by name.

        Returns:
            WorkflowDefinition or None if not found
        """
        if not self._loaded:
            self.load_all()

        return self._cache.get(name)

    def get_or_raise(self, name: str) -> WorkflowDefinition:
        """
        Get a workflow definition, raising if not found.

        Raises:
            WorkflowNotFoundError if workflow not found
        """
        workflow = self.get(name)
        if workflow is None:
            raise WorkflowNotFoundError(name)
        return workflow

    def list_all(self) -> List[Dict[str, Any]]:
        """
        Summaries of every loaded workflow, sorted by name.

        Returns:
            List of dicts with name, description, version, steps, layers, source
        """
        if not self._loaded:
            self.load_all()

        summaries = []
        for name in sorted(self._cache):
            workflow = self._cache[name]
            try:
                layers: Optional[int] = len(build_execution_plan(workflow))
            except CycleError:
                layers = None
            source = self._sources.get(name)
            summaries.append({
                "name": workflow.name,
                "description": workflow.description,
                "version": workflow.version,
                "steps": len(workflow.steps),
                "layers": layers,
                "source": str(source) if source else None,
            })
        return summaries

    def register(self, workflow: Union[WorkflowDefinition, Dict[str, Any]]) -> WorkflowDefinition:
        """
        Register a workflow definition (for testing or programmatic use).

        Raises:
            WorkflowValidationError: The definition is invalid
        """
        if isinstance(workflow, WorkflowDefinition):
            workflow = WorkflowDefinition.from_document(workflow.to_document())
        else:
            workflow = WorkflowDefinition.from_document(workflow)

        self._cache[workflow.name] = workflow
        logger.info(f"Registered workflow: {workflow.name}")
        return workflow

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def resolve_path(self, name_or_path: Union[str, Path]) -> Path:
        candidate = Path(name_or_path)
        tried = [str(candidate)]
        if candidate.is_file():
            return candidate

        base = self.workflows_dir / str(name_or_path)
        for path in [base] + [base.with_name(base.name + suffix) for suffix in WORKFLOW_SUFFIXES]:
            tried.append(str(path))
            if path.is_file():
                return path

        raise WorkflowNotFoundError(str(name_or_path), tried)

    @staticmethod
    def read_document(path: Path) -> Any:
        """
        Read a JSON or YAML document.

        Raises:
            ValueError: The file does not parse
        """
        with open(path, encoding="utf-8") as f:
            if path.suffix == ".json":
                return json.load(f)
            try:
                return yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"{path}: invalid YAML: {e}") from e


__all__ = [
    "WorkflowService",
    "WorkflowNotFoundError",
    "WORKFLOW_SUFFIXES",
]
