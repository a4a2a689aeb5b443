"""
Pytest configuration for the ArticleRAG test suite.

Configures:
- pytest-asyncio for async test support
- Fake embedding and completion clients (no network access)
- Sample chunks and an in-memory chunk store
"""

from typing import Dict, List, Optional, Sequence

import pytest

from articlerag.components.store import InMemoryChunkStore
from articlerag.config import Config
from articlerag.models import Chunk, CompletionResult, RetrievedChunk

pytest_plugins = ["pytest_asyncio"]


class FakeEmbeddingClient:
    """Returns canned vectors; unknown texts get the default vector."""

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        default: Sequence[float] = (1.0, 0.0),
        error: Optional[Exception] = None,
    ):
        self.vectors = vectors or {}
        self.default = list(default)
        self.error = error
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return list(self.vectors.get(text, self.default))


class FakeCompletionClient:
    """Replays queued responses in order; the last one repeats."""

    def __init__(self, *responses, error: Optional[Exception] = None):
        self.responses = list(responses) or [
            CompletionResult(
                text="Answer citing [1].",
                prompt_tokens=120,
                completion_tokens=30,
                total_tokens=150,
            )
        ]
        self.error = error
        self.calls: List[dict] = []

    async def complete(self, system_prompt, user_prompt, model, temperature, max_tokens):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if self.error is not None:
            raise self.error
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, str):
            return CompletionResult(text=response)
        return response


def make_chunk(
    chunk_id: str,
    slug: str = "staff-engineer",
    title: str = "Staff Engineer Path",
    content: str = "Staff engineers lead technical direction.",
    locale: str = "en",
    token_count: int = 100,
    similarity: Optional[float] = None,
    chunk_index: int = 0,
):
    values = dict(
        chunk_id=chunk_id,
        article_id=f"article-{slug}",
        article_slug=slug,
        article_title=title,
        content=content,
        locale=locale,
        chunk_index=chunk_index,
        token_count=token_count,
    )
    if similarity is None:
        return Chunk(**values)
    return RetrievedChunk(similarity=similarity, **values)


@pytest.fixture
def app_config():
    """Config that never touches the environment."""
    return Config(openai_api_key="test-key", cache_enabled=False)


@pytest.fixture
def chunk_store():
    """
    In-memory store with three English chunks and one Chinese chunk.

    Against the query vector [1, 0] the cosine similarities are
    1.0 (c1), 0.6 (c2), 0.0 (c3) and 0.8 (c4, zh).
    """
    store = InMemoryChunkStore()
    store.add(
        [
            make_chunk("c1", slug="staff-engineer", content="Staff engineers set direction."),
            make_chunk(
                "c2",
                slug="tech-lead",
                title="Tech Lead Handbook",
                content="A tech lead guides delivery.",
            ),
            make_chunk(
                "c3",
                slug="react-hooks",
                title="React Hooks",
                content="React hooks manage component state.",
            ),
            make_chunk(
                "c4",
                slug="system-design",
                title="系統設計",
                content="系統設計與可擴展性。",
                locale="zh",
            ),
        ],
        [[1.0, 0.0], [0.6, 0.8], [0.0, 1.0], [0.8, 0.6]],
    )
    return store
