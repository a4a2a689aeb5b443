"""
ArticleRAG - Cited question answering over a bilingual article corpus.
"""

__version__ = "0.1.0"

from articlerag.config import Config
from articlerag.pipelines import QueryPipeline, query

__all__ = ["Config", "QueryPipeline", "query", "__version__"]
