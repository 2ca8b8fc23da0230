import asyncio

import pytest

from stagegate.collaborators import (
    Collaborators,
    Concepts,
    Draft,
    HtmlFormatter,
    Metadata,
    Outline,
    OutlineSection,
)
from stagegate.persistence import InMemoryExecutionStore, SQLiteExecutionStore


class FakeExtractor:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls = []

    async def extract(self, url):
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return Metadata(
            title="Example Domain",
            meta_description="An example page",
            headings=["Intro", "Usage"],
        )


class FakeSummarizer:
    async def summarize(self, metadata, model=None):
        return Concepts(concepts=["Examples", "Domains"], summary="About examples")


class FakeOutlineGenerator:
    def __init__(self):
        self.guidance = []

    async def generate(self, concepts, guidance=None, model=None):
        self.guidance.append(guidance)
        return Outline(
            title="Examples explained",
            introduction=["Why examples matter"],
            sections=[OutlineSection(heading="Usage", key_points=["Reserved domains"])],
            conclusion=["Use them"],
        )


class FakeDraftGenerator:
    def __init__(self, error: Exception | None = None):
        self.error = error

    async def generate(self, outline, model=None):
        if self.error is not None:
            raise self.error
        return Draft(
            title=outline.title,
            meta_description="All about example domains",
            body_paragraphs=["Example domains are reserved.", "Use them in docs."],
            word_count=9,
        )


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def outline_generator():
    return FakeOutlineGenerator()


@pytest.fixture
def draft_generator():
    return FakeDraftGenerator()


@pytest.fixture
def collaborators(extractor, outline_generator, draft_generator):
    return Collaborators(
        extractor=extractor,
        summarizer=FakeSummarizer(),
        outline_generator=outline_generator,
        draft_generator=draft_generator,
        formatter=HtmlFormatter(),
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryExecutionStore()
    return SQLiteExecutionStore(tmp_path / "executions.db")


class YieldingExecutionStore(InMemoryExecutionStore):
    """Hands control back to the event loop after every read.

    Concurrent callers all see the same snapshot before any of them writes,
    so only the conditional update can separate them.
    """

    async def get(self, execution_id):
        execution = await super().get(execution_id)
        await asyncio.sleep(0)
        return execution


@pytest.fixture
def yielding_store():
    return YieldingExecutionStore()


@pytest.fixture(params=["yielding-memory", "sqlite"])
def racing_store(request, tmp_path):
    if request.param == "yielding-memory":
        return YieldingExecutionStore()
    return SQLiteExecutionStore(tmp_path / "executions.db")
