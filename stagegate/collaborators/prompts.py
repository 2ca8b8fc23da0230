from __future__ import annotations

from typing import Optional

from .base import Concepts, Metadata, Outline

CONCEPT_SYSTEM_PROMPT = (
    "You are an expert content analyst. Extract 5-7 high-level concepts from the "
    "given content metadata and a one-sentence summary of the main theme."
)

OUTLINE_SYSTEM_PROMPT = (
    "You are an expert content strategist and SEO specialist. Create structured "
    "article outlines that follow SEO best practices, proper heading hierarchy "
    "and logical flow."
)

DRAFT_SYSTEM_PROMPT = (
    "You are an expert content writer. Write engaging, well-structured, original "
    "articles with a consistent tone. The content must be structurally and "
    "conceptually distinct from any source material."
)


def concept_prompt(metadata: Metadata) -> str:
    headings = "\n".join(metadata.headings) if metadata.headings else "No headings found"
    description = (
        f"\nMeta Description: {metadata.meta_description}\n"
        if metadata.meta_description
        else ""
    )
    return (
        f"Title: {metadata.title}\n"
        f"{description}\n"
        f"Headings:\n{headings}\n\n"
        "Based on the title, meta description and headings, extract 5-7 high-level "
        "concepts that represent the main topics or themes."
    )


def outline_prompt(concepts: Concepts, guidance: Optional[str] = None) -> str:
    listing = "\n".join(f"{i}. {c}" for i, c in enumerate(concepts.concepts, start=1))
    editor_notes = f"\nEditor notes:\n{guidance}\n" if guidance else ""
    return (
        "Create a comprehensive article outline based on the following concepts:\n\n"
        f"{listing}\n"
        f"{editor_notes}\n"
        "Requirements:\n"
        "- An engaging, SEO-optimized article title\n"
        "- 2-3 key points for the introduction\n"
        "- 3-5 main sections with descriptive headings, each with 3-5 key points\n"
        "- 2-3 key points for the conclusion"
    )


def draft_prompt(outline: Outline, tone: str = "Professional, engaging, and informative") -> str:
    sections = "\n\n".join(
        f"Section {i}: {section.heading}\nKey points to cover:\n"
        + "\n".join(f"  - {point}" for point in section.key_points)
        for i, section in enumerate(outline.sections, start=1)
    )
    return (
        "Write a complete, high-quality article based on the following outline.\n\n"
        f"TITLE: {outline.title}\n\n"
        "INTRODUCTION:\n"
        + "\n".join(f"- {point}" for point in outline.introduction)
        + f"\n\n{sections}\n\n"
        "CONCLUSION:\n"
        + "\n".join(f"- {point}" for point in outline.conclusion)
        + f"\n\nTone and Style: {tone}\n"
        "Include a meta description of at most 160 characters."
    )
