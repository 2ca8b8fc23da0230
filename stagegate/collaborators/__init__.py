"""Stage collaborators used by the content workflow."""

from __future__ import annotations

from typing import Optional

from ..config import StageGateConfig, load_config
from .base import (
    Collaborators,
    ConceptSummarizer,
    Concepts,
    Draft,
    DraftGenerator,
    Formatter,
    Metadata,
    MetadataExtractor,
    Outline,
    OutlineGenerator,
    OutlineSection,
    RenderedArtifact,
)
from .formatter import HtmlFormatter
from .generation import (
    FallbackConceptSummarizer,
    KeywordConceptSummarizer,
    LLMConceptSummarizer,
    LLMDraftGenerator,
    LLMOutlineGenerator,
)
from .metadata import HttpMetadataExtractor


def build_collaborators(config: Optional[StageGateConfig] = None) -> Collaborators:
    """Assemble the default collaborators from configuration."""

    config = config or load_config()
    llm = config.llm
    ext = config.extractor

    summarizer: ConceptSummarizer = LLMConceptSummarizer(llm.model, retries=llm.retries)
    if llm.fallback_concepts:
        summarizer = FallbackConceptSummarizer(summarizer, KeywordConceptSummarizer())

    return Collaborators(
        extractor=HttpMetadataExtractor(
            timeout=ext.timeout,
            max_attempts=ext.max_attempts,
            retry_delay=ext.retry_delay,
            user_agent=ext.user_agent,
            max_headings=ext.max_headings,
        ),
        summarizer=summarizer,
        outline_generator=LLMOutlineGenerator(llm.model, retries=llm.retries),
        draft_generator=LLMDraftGenerator(llm.model, retries=llm.retries),
        formatter=HtmlFormatter(),
    )


__all__ = [
    "Collaborators",
    "ConceptSummarizer",
    "Concepts",
    "Draft",
    "DraftGenerator",
    "FallbackConceptSummarizer",
    "Formatter",
    "HtmlFormatter",
    "HttpMetadataExtractor",
    "KeywordConceptSummarizer",
    "LLMConceptSummarizer",
    "LLMDraftGenerator",
    "LLMOutlineGenerator",
    "Metadata",
    "MetadataExtractor",
    "Outline",
    "OutlineGenerator",
    "OutlineSection",
    "RenderedArtifact",
    "build_collaborators",
]
