# ============================================================================
# WORKFLOW DEFINITION MODEL
# ============================================================================
# STATUS: Core model - Workflow document / step graph
# PURPOSE: Define workflow structure loaded from JSON or YAML documents
# CREATED: 19 OCT 2026
# EXPORTS: WorkflowDefinition, StepDefinition, InputDefinition, ToolName,
#          ToolCategory
# DEPENDENCIES: pydantic, enum
# ============================================================================
"""
Workflow Definition Models

A WorkflowDefinition is the authored document for a workflow.
It defines:
- What inputs the workflow accepts
- What steps exist and which tool each one invokes
- Conditions, loops and error policy per step
- Which expression selects the final output

Step order in the document is authoring order, not execution order.
Execution order is derived from template references between steps.

Definitions are immutable once loaded and reused across many runs.
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class ToolName(str, Enum):
    """The fixed set of tools a step can invoke."""
    # Retrieval
    QUERY = "query"
    SEARCH = "search"
    RERANK = "rerank"
    # Embedding
    EMBED = "embed"
    SIMILARITY = "similarity"
    # Generation
    GENERATE = "generate"
    # Data management
    INGEST = "ingest"
    COLLECTIONS = "collections"
    AGGREGATE = "aggregate"
    CHUNK = "chunk"
    # Utility / static knowledge
    MODELS = "models"
    ESTIMATE = "estimate"
    EXPLAIN = "explain"
    TOPICS = "topics"
    HTTP = "http"
    # Control flow (engine-native)
    MERGE = "merge"
    FILTER = "filter"
    TRANSFORM = "transform"
    CONDITIONAL = "conditional"
    LOOP = "loop"
    TEMPLATE = "template"

    @classmethod
    def names(cls) -> List[str]:
        return [tool.value for tool in cls]


class ToolCategory(str, Enum):
    """Node categories used by diagram and markdown consumers."""
    RETRIEVAL = "retrieval"
    EMBEDDING = "embedding"
    GENERATION = "generation"
    DATA = "data"
    UTILITY = "utility"
    CONTROL = "control"


TOOL_CATEGORIES: Dict[ToolName, ToolCategory] = {
    ToolName.QUERY: ToolCategory.RETRIEVAL,
    ToolName.SEARCH: ToolCategory.RETRIEVAL,
    ToolName.RERANK: ToolCategory.RETRIEVAL,
    ToolName.EMBED: ToolCategory.EMBEDDING,
    ToolName.SIMILARITY: ToolCategory.EMBEDDING,
    ToolName.GENERATE: ToolCategory.GENERATION,
    ToolName.INGEST: ToolCategory.DATA,
    ToolName.COLLECTIONS: ToolCategory.DATA,
    ToolName.AGGREGATE: ToolCategory.DATA,
    ToolName.CHUNK: ToolCategory.DATA,
    ToolName.MODELS: ToolCategory.UTILITY,
    ToolName.ESTIMATE: ToolCategory.UTILITY,
    ToolName.EXPLAIN: ToolCategory.UTILITY,
    ToolName.TOPICS: ToolCategory.UTILITY,
    ToolName.HTTP: ToolCategory.UTILITY,
    ToolName.MERGE: ToolCategory.CONTROL,
    ToolName.FILTER: ToolCategory.CONTROL,
    ToolName.TRANSFORM: ToolCategory.CONTROL,
    ToolName.CONDITIONAL: ToolCategory.CONTROL,
    ToolName.LOOP: ToolCategory.CONTROL,
    ToolName.TEMPLATE: ToolCategory.CONTROL,
}

# Implemented inside the engine; everything else goes to a tool collaborator
ENGINE_NATIVE_TOOLS: FrozenSet[ToolName] = frozenset({
    ToolName.MERGE,
    ToolName.FILTER,
    ToolName.TRANSFORM,
    ToolName.CONDITIONAL,
    ToolName.LOOP,
    ToolName.TEMPLATE,
})

# Input keys holding bare expressions evaluated by the tool (per item or lazily)
EXPRESSION_INPUTS: Dict[ToolName, FrozenSet[str]] = {
    ToolName.FILTER: frozenset({"condition"}),
    ToolName.TRANSFORM: frozenset({"expression"}),
    ToolName.CONDITIONAL: frozenset({"condition"}),
}

# Input keys the executor passes through unresolved
DEFERRED_INPUTS: Dict[ToolName, FrozenSet[str]] = {
    ToolName.FILTER: frozenset({"condition"}),
    ToolName.TRANSFORM: frozenset({"expression"}),
    ToolName.CONDITIONAL: frozenset({"condition"}),
    ToolName.LOOP: frozenset({"step"}),
    ToolName.TEMPLATE: frozenset({"template"}),
}

# Tools that take no inputs at all
NO_INPUT_TOOLS: FrozenSet[ToolName] = frozenset({
    ToolName.MODELS,
    ToolName.COLLECTIONS,
    ToolName.TOPICS,
})

INPUT_TYPES = ("string", "number", "integer", "boolean", "array", "object")


class InputDefinition(BaseModel):
    """Definition of an input parameter for a workflow."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str = Field(default="string", pattern="^(string|number|integer|boolean|array|object)$")
    required: bool = False
    default: Optional[Any] = None
    description: Optional[str] = None

    @property
    def has_default(self) -> bool:
        """True when the document declared a default (even a null one)."""
        return "default" in self.model_fields_set


class StepDefinition(BaseModel):
    """
    Definition of a single step in a workflow.

    This is the TEMPLATE - what the step does.
    StepResult (in execution.py) is the OUTCOME of one run.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1, max_length=128)
    tool: ToolName
    name: Optional[str] = None
    description: Optional[str] = None
    inputs: Dict[str, Any] = Field(
        default_factory=dict,
        description="Parameters: literal values or {{ template }} expressions",
    )
    condition: Optional[str] = Field(
        default=None,
        description="Boolean expression gating execution",
    )
    for_each: Optional[str] = Field(
        default=None,
        alias="forEach",
        description="Expression resolving to an array; runs the tool once per item",
    )
    continue_on_error: bool = Field(default=False, alias="continueOnError")

    @property
    def label(self) -> str:
        """Display label for progress output."""
        return self.name or self.id

    @property
    def category(self) -> ToolCategory:
        return TOOL_CATEGORIES[self.tool]

    @property
    def is_engine_native(self) -> bool:
        return self.tool in ENGINE_NATIVE_TOOLS


class WorkflowDefinition(BaseModel):
    """
    Complete workflow definition loaded from a document.

    Immutable once loaded - changes require a new definition.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(..., min_length=1, max_length=256)
    description: Optional[str] = None
    version: Optional[Union[str, int]] = None

    # Input schema
    inputs: Dict[str, InputDefinition] = Field(default_factory=dict)

    # Values merged into the execution context under "defaults"
    defaults: Dict[str, Any] = Field(default_factory=dict)

    steps: List[StepDefinition] = Field(..., min_length=1)

    # Template expression (or structure of expressions) selecting the result
    output: Optional[Any] = None

    @property
    def step_ids(self) -> List[str]:
        """Step IDs in authoring order."""
        return [step.id for step in self.steps]

    def step_map(self) -> Dict[str, StepDefinition]:
        return {step.id: step for step in self.steps}

    def get_step(self, step_id: str) -> StepDefinition:
        """Get a step definition by ID."""
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(f"Step '{step_id}' not found in workflow '{self.name}'")

    def to_document(self) -> Dict[str, Any]:
        """Serialize back to the authored document shape (camelCase keys)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_document(cls, document: Any) -> "WorkflowDefinition":
        """
        Validate a raw document (strict mode) and parse it into a definition.

        Args:
            document: Parsed JSON/YAML object

        Returns:
            WorkflowDefinition instance

        Raises:
            WorkflowValidationError: If the document has any validation error
        """
        from orchestrator.engine.errors import WorkflowValidationError
        from orchestrator.engine.validator import validate_workflow

        errors = validate_workflow(document, mode="strict")
        if errors:
            raise WorkflowValidationError(errors)

        try:
            return cls.model_validate(document)
        except ValidationError as e:
            raise WorkflowValidationError(
                [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            ) from e


__all__ = [
    "ToolName",
    "ToolCategory",
    "TOOL_CATEGORIES",
    "ENGINE_NATIVE_TOOLS",
    "INPUT_TYPES",
    "EXPRESSION_INPUTS",
    "DEFERRED_INPUTS",
    "NO_INPUT_TOOLS",
    "InputDefinition",
    "StepDefinition",
    "WorkflowDefinition",
]
