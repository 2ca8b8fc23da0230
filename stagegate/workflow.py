"""Workflow definitions: ordered stages and gates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel

from .collaborators.base import (
    Collaborators,
    Concepts,
    Draft,
    Metadata,
    Outline,
    RenderedArtifact,
)
from .contracts import ExecutionInput

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class StageContext:
    """Read-only view of an execution handed to stage functions."""

    def __init__(self, input: ExecutionInput, results: Mapping[str, Any]) -> None:
        self.input = input
        self._results = dict(results)

    def __contains__(self, key: str) -> bool:
        return key in self._results

    def get(self, key: str, model: Optional[Type[ModelT]] = None) -> Any:
        """Return the result stored under ``key``, validated into ``model`` if given."""
        value = self._results.get(key)
        if value is None or model is None:
            return value
        return model.model_validate(value)

    def require(self, key: str, model: Optional[Type[ModelT]] = None) -> Any:
        if key not in self._results:
            raise KeyError(f"Stage result '{key}' is not available yet")
        return self.get(key, model)

    @property
    def results(self) -> Dict[str, Any]:
        return dict(self._results)


StageFunction = Callable[[StageContext], Union[Any, Awaitable[Any]]]
PayloadFunction = Callable[[StageContext], Mapping[str, Any]]


@dataclass
class Stage:
    """A unit of work whose result is stored in the context under ``key``."""

    step_id: str
    fn: StageFunction
    context_key: Optional[str] = None
    summarize: Optional[Callable[[Any], Dict[str, Any]]] = None

    @property
    def key(self) -> str:
        return self.context_key or self.step_id


@dataclass
class Gate:
    """A fixed point where the execution waits for an external decision."""

    gate_id: str
    reason: str
    payload: PayloadFunction = field(default=lambda ctx: {})


Step = Union[Stage, Gate]


class WorkflowDefinition:
    """Ordered sequence of stages and gates.

    Gate order is fixed at construction; an execution suspended at a gate
    always continues with the step right after it.
    """

    def __init__(self, name: str, steps: List[Step]) -> None:
        if not steps:
            raise ValueError("A workflow needs at least one step")
        seen: set[str] = set()
        for step in steps:
            step_id = step.gate_id if isinstance(step, Gate) else step.step_id
            if step_id in seen:
                raise ValueError(f"Duplicate step id '{step_id}' in workflow '{name}'")
            seen.add(step_id)
        # gate decisions are stored in the context under the gate id
        keys = [s.key for s in steps if isinstance(s, Stage)]
        gates = {s.gate_id for s in steps if isinstance(s, Gate)}
        if len(keys) != len(set(keys)) or gates.intersection(keys):
            raise ValueError(f"Duplicate context key in workflow '{name}'")
        self.name = name
        self.steps = list(steps)

    @property
    def gate_ids(self) -> List[str]:
        return [s.gate_id for s in self.steps if isinstance(s, Gate)]

    def position_after(self, gate_id: str) -> int:
        """Index of the step following ``gate_id``."""
        for index, step in enumerate(self.steps):
            if isinstance(step, Gate) and step.gate_id == gate_id:
                return index + 1
        raise KeyError(f"Workflow '{self.name}' has no gate '{gate_id}'")

    def last_stage(self) -> Optional[Stage]:
        for step in reversed(self.steps):
            if isinstance(step, Stage):
                return step
        return None


# ---------------------------------------------------------------------------
# Content pipeline

CONCEPT_REVIEW = "concept-review"
ARTIFACT_REVIEW = "artifact-review"


def content_workflow(collaborators: Collaborators) -> WorkflowDefinition:
    """Build the metadata -> concepts -> outline -> draft -> render pipeline.

    The execution pauses for an editor after the concepts are extracted and
    again once the draft is written.
    """

    async def extract_metadata(ctx: StageContext) -> Metadata:
        return await collaborators.extractor.extract(ctx.input.url)

    async def summarize_concepts(ctx: StageContext) -> Concepts:
        metadata = ctx.require("metadata", Metadata)
        return await collaborators.summarizer.summarize(metadata, model=ctx.input.model)

    async def generate_outline(ctx: StageContext) -> Outline:
        concepts = ctx.require("concepts", Concepts)
        review = ctx.get(CONCEPT_REVIEW) or {}
        return await collaborators.outline_generator.generate(
            concepts, guidance=review.get("comments"), model=ctx.input.model
        )

    async def generate_draft(ctx: StageContext) -> Draft:
        outline = ctx.require("outline", Outline)
        return await collaborators.draft_generator.generate(outline, model=ctx.input.model)

    def render(ctx: StageContext) -> RenderedArtifact:
        draft = ctx.require("draft", Draft)
        return collaborators.formatter.render(draft)

    def concept_payload(ctx: StageContext) -> Dict[str, Any]:
        concepts = ctx.require("concepts", Concepts)
        metadata = ctx.get("metadata", Metadata)
        return {
            "gate": CONCEPT_REVIEW,
            "concepts": concepts.concepts,
            "summary": concepts.summary,
            "metadata": {
                "title": metadata.title if metadata else "Untitled",
                "url": ctx.input.url,
            },
        }

    def artifact_payload(ctx: StageContext) -> Dict[str, Any]:
        return {"gate": ARTIFACT_REVIEW, "draft": ctx.require("draft")}

    return WorkflowDefinition(
        "content",
        [
            Stage("metadata", extract_metadata),
            Stage("concepts", summarize_concepts),
            Gate(CONCEPT_REVIEW, "Waiting for concept approval", concept_payload),
            Stage("outline", generate_outline),
            Stage("draft", generate_draft),
            Gate(ARTIFACT_REVIEW, "Waiting for draft approval", artifact_payload),
            Stage("render", render),
        ],
    )
