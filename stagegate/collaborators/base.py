"""Result models and capability interfaces of the stage collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol

from pydantic import BaseModel, Field

from ..contracts import utcnow


class Metadata(BaseModel):
    """Facts extracted from the source page."""

    title: str
    meta_description: str = ""
    headings: List[str] = Field(default_factory=list)
    extracted_at: datetime = Field(default_factory=utcnow)


class Concepts(BaseModel):
    concepts: List[str] = Field(default_factory=list)
    summary: str = ""


class OutlineSection(BaseModel):
    heading: str
    key_points: List[str] = Field(default_factory=list)


class Outline(BaseModel):
    title: str
    introduction: List[str] = Field(default_factory=list)
    sections: List[OutlineSection] = Field(default_factory=list)
    conclusion: List[str] = Field(default_factory=list)


class Draft(BaseModel):
    title: str
    meta_description: str
    body_paragraphs: List[str] = Field(default_factory=list)
    word_count: int = 0


class RenderedArtifact(BaseModel):
    html: str
    word_count: int
    formatted_at: datetime = Field(default_factory=utcnow)


class MetadataExtractor(Protocol):
    async def extract(self, url: str) -> Metadata:
        """Fetch ``url`` and extract its metadata."""


class ConceptSummarizer(Protocol):
    async def summarize(self, metadata: Metadata, model: Optional[str] = None) -> Concepts:
        """Condense metadata into a handful of high-level concepts."""


class OutlineGenerator(Protocol):
    async def generate(
        self,
        concepts: Concepts,
        guidance: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Outline:
        """Produce an article outline from approved concepts."""


class DraftGenerator(Protocol):
    async def generate(self, outline: Outline, model: Optional[str] = None) -> Draft:
        """Write a full draft from an outline."""


class Formatter(Protocol):
    def render(self, draft: Draft) -> RenderedArtifact:
        """Render an approved draft into its final form."""


@dataclass
class Collaborators:
    """The set of capabilities the content workflow runs against."""

    extractor: MetadataExtractor
    summarizer: ConceptSummarizer
    outline_generator: OutlineGenerator
    draft_generator: DraftGenerator
    formatter: Formatter
