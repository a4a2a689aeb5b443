"""
Citation component for ArticleRAG.
Turns context chunks into numbered sources and checks [N] markers in answers.
"""

import logging
import re
from typing import Dict, List, Sequence

from articlerag.models import RetrievedChunk, Source

# Configure logging
logger = logging.getLogger(__name__)

CITATION_PATTERN = re.compile(r"\[(\d+)\]")


def build_sources(
    chunks: Sequence[RetrievedChunk], base_url: str = "/posts/"
) -> List[Source]:
    """
    Build the source list from chunks used in the context.

    One source per article slug, carrying that article's best chunk. Sources
    are sorted by similarity descending and numbered 1..n in that order.

    Args:
        chunks: Chunks that made it into the context
        base_url: Prefix joined with the slug to form each source url

    Returns:
        List of Source
    """
    best: Dict[str, RetrievedChunk] = {}
    for chunk in chunks:
        current = best.get(chunk.article_slug)
        if current is None or chunk.similarity > current.similarity:
            best[chunk.article_slug] = chunk

    ranked = sorted(best.values(), key=lambda c: c.similarity, reverse=True)
    return [
        Source(
            id=i,
            article_slug=chunk.article_slug,
            article_title=chunk.article_title,
            chunk_content=chunk.content,
            similarity=chunk.similarity,
            locale=chunk.locale,
            url=f"{base_url}{chunk.article_slug}",
        )
        for i, chunk in enumerate(ranked, start=1)
    ]


def extract_citations(answer: str) -> List[int]:
    """Distinct citation numbers in the answer, ascending. "a [2] b [1] [2]" -> [1, 2]"""
    return sorted({int(n) for n in CITATION_PATTERN.findall(answer)})


def validate_citations(answer: str, sources: Sequence[Source]) -> bool:
    """True if every citation in the answer points at an existing source."""
    citations = extract_citations(answer)
    invalid = [c for c in citations if c < 1 or c > len(sources)]
    if invalid:
        logger.warning(
            f"Answer cites unknown sources {invalid} (only {len(sources)} available)"
        )
        return False
    return True


def format_sources_for_display(sources: Sequence[Source], locale: str = "en") -> str:
    """Render sources as text lines for terminal output."""
    if not sources:
        return ""

    header = "\n📚 參考來源：" if locale == "zh" else "\n📚 Sources:"
    label = "相似度" if locale == "zh" else "similarity"

    lines = [header]
    lines.extend(
        f"[{s.id}] {s.article_title} ({label}: {s.similarity:.3f})" for s in sources
    )
    return "\n".join(lines)
