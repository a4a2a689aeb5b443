"""
Augmentation component for ArticleRAG.
Assembles a token-budgeted prompt context from retrieved chunks.
"""

import logging
from typing import Optional, Sequence

from articlerag.models import QueryConfig, QueryContext, RetrievedChunk

# Configure logging
logger = logging.getLogger(__name__)

# Formatting overhead charged per chunk on top of its token count
CHUNK_OVERHEAD_TOKENS = 50
CONTEXT_SEPARATOR = "\n\n---\n\n"


def article_label(locale: Optional[str]) -> str:
    return "Article" if locale == "en" else "文章"


def build_context(
    chunks: Sequence[RetrievedChunk],
    config: QueryConfig,
    locale: Optional[str] = None,
) -> QueryContext:
    """
    Build context from retrieved chunks, respecting the token budget.

    Chunks are accepted in input order until the first one that would exceed
    max_context_tokens; later, smaller chunks are not considered.

    Args:
        chunks: Retrieved chunks, best first
        config: Query configuration (max_context_tokens)
        locale: Query locale, selects the article label

    Returns:
        QueryContext with the accepted chunks and their formatted text
    """
    if not chunks:
        return QueryContext()

    selected = []
    total_tokens = 0

    for chunk in chunks:
        estimated_tokens = chunk.token_count + CHUNK_OVERHEAD_TOKENS
        if total_tokens + estimated_tokens > config.max_context_tokens:
            logger.warning(
                f"Token budget exceeded. Using {len(selected)}/{len(chunks)} chunks "
                f"({total_tokens} tokens)"
            )
            break
        selected.append(chunk)
        total_tokens += estimated_tokens

    if not selected:
        logger.warning("No chunks fit within token budget")

    label = article_label(locale)
    formatted_context = CONTEXT_SEPARATOR.join(
        f"[{i}] {label}: {chunk.article_title}\n{chunk.content}"
        for i, chunk in enumerate(selected, start=1)
    )

    logger.info(f"Context built: {len(selected)} chunks, ~{total_tokens} tokens")

    return QueryContext(
        chunks=selected,
        total_tokens=total_tokens,
        formatted_context=formatted_context,
    )
