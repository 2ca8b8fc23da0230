"""LLM-backed generation collaborators built on pydantic-ai agents."""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Optional, Union

from pydantic_ai import Agent
from pydantic_ai.models import Model

from .base import ConceptSummarizer, Concepts, Draft, Metadata, Outline
from .prompts import (
    CONCEPT_SYSTEM_PROMPT,
    DRAFT_SYSTEM_PROMPT,
    OUTLINE_SYSTEM_PROMPT,
    concept_prompt,
    draft_prompt,
    outline_prompt,
)

logger = logging.getLogger(__name__)

ModelLike = Union[Model, str]

MAX_CONCEPTS = 7


def _agent(model: ModelLike, output_type: type, system_prompt: str, retries: int) -> Agent:
    return Agent(
        model,
        output_type=output_type,
        system_prompt=system_prompt,
        retries=retries,
        defer_model_check=True,
    )


class LLMConceptSummarizer:
    """Extract high-level concepts from page metadata with an LLM."""

    def __init__(self, model: ModelLike, retries: int = 2) -> None:
        self.agent = _agent(model, Concepts, CONCEPT_SYSTEM_PROMPT, retries)

    async def summarize(self, metadata: Metadata, model: Optional[str] = None) -> Concepts:
        result = await self.agent.run(concept_prompt(metadata), model=model)
        concepts = result.output
        return concepts.model_copy(update={"concepts": concepts.concepts[:MAX_CONCEPTS]})


class KeywordConceptSummarizer:
    """Deterministic concepts: the most frequent longer words of title and headings."""

    def __init__(self, limit: int = 5, min_length: int = 4) -> None:
        self.limit = limit
        self.min_length = min_length

    async def summarize(self, metadata: Metadata, model: Optional[str] = None) -> Concepts:
        text = " ".join([metadata.title, *metadata.headings]).lower()
        counts = Counter(w for w in re.findall(r"\b\w+\b", text) if len(w) >= self.min_length)
        concepts = [word[0].upper() + word[1:] for word, _ in counts.most_common(self.limit)]
        return Concepts(
            concepts=concepts,
            summary=f"Fallback concepts extracted from metadata: {', '.join(concepts)}",
        )


class FallbackConceptSummarizer:
    """Try ``primary`` and fall back to ``fallback`` when it raises."""

    def __init__(self, primary: ConceptSummarizer, fallback: ConceptSummarizer) -> None:
        self.primary = primary
        self.fallback = fallback

    async def summarize(self, metadata: Metadata, model: Optional[str] = None) -> Concepts:
        try:
            return await self.primary.summarize(metadata, model=model)
        except Exception as e:
            logger.warning(f"Concept extraction failed, using fallback concepts: {e}")
            return await self.fallback.summarize(metadata, model=model)


class LLMOutlineGenerator:
    def __init__(self, model: ModelLike, retries: int = 2) -> None:
        self.agent = _agent(model, Outline, OUTLINE_SYSTEM_PROMPT, retries)

    async def generate(
        self,
        concepts: Concepts,
        guidance: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Outline:
        if not concepts.concepts:
            raise ValueError("Cannot generate an outline without concepts")
        result = await self.agent.run(outline_prompt(concepts, guidance), model=model)
        return result.output


class LLMDraftGenerator:
    def __init__(self, model: ModelLike, retries: int = 2) -> None:
        self.agent = _agent(model, Draft, DRAFT_SYSTEM_PROMPT, retries)

    async def generate(self, outline: Outline, model: Optional[str] = None) -> Draft:
        result = await self.agent.run(draft_prompt(outline), model=model)
        draft = result.output
        word_count = sum(len(p.split()) for p in draft.body_paragraphs)
        return draft.model_copy(update={"word_count": word_count})
