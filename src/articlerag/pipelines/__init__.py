"""
Pipeline implementations for ArticleRAG.

Pipelines:
- QueryPipeline: Cache → Enhance → Threshold → Retrieve → Augment → Generate → Cite
"""

from articlerag.pipelines.base import BasePipeline
from articlerag.pipelines.query import QueryPipeline, get_pipeline, query

__all__ = ["BasePipeline", "QueryPipeline", "get_pipeline", "query"]
