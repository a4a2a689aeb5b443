"""
Threshold Optimization component for ArticleRAG.
Picks a per-query similarity cutoff and learns from recorded outcomes.

Adjustments are applied in a fixed order and the result is clamped:
    base
    - 2 * query_length_factor   (query shorter than 10 chars)
    - query_length_factor       (shorter than 30 chars)
    + query_length_factor       (longer than 100 chars)
    - hybrid_adjustment         (hybrid search)
    - locale_adjustment         (locale other than the default)
    -/+ learning_rate           (adaptive learning from similar past queries)
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from articlerag.models import (
    PerformanceStats,
    QueryPerformance,
    RetrievedChunk,
    ThresholdConfig,
)

# Configure logging
logger = logging.getLogger(__name__)

VERY_SHORT_QUERY = 10
SHORT_QUERY = 30
LONG_QUERY = 100

# Result count at which the result score saturates at 1.0
RESULT_COUNT_NORMALIZER = 5
NEUTRAL_RATING = 0.5
POOR_PERFORMANCE = 0.4
GOOD_PERFORMANCE = 0.8


class PerformanceHistory:
    """
    Fixed-capacity ring buffer of QueryPerformance records.

    Capacity is 2 * history_size. When a write would overflow it, the oldest
    records are dropped so that history_size records remain (the new one
    included).
    """

    def __init__(self, history_size: int):
        self.history_size = history_size
        self.capacity = history_size * 2
        self._buffer: List[Optional[QueryPerformance]] = [None] * self.capacity
        self._cursor = 0
        self._size = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return self._size

    def append(self, record: QueryPerformance) -> None:
        with self._lock:
            if self._size == self.capacity:
                self._size = self.history_size - 1
            self._buffer[self._cursor] = record
            self._cursor = (self._cursor + 1) % self.capacity
            self._size += 1

    def records(self) -> List[QueryPerformance]:
        """Records oldest first."""
        with self._lock:
            start = self._cursor - self._size
            return [self._buffer[(start + i) % self.capacity] for i in range(self._size)]

    def recent(self, limit: int) -> List[QueryPerformance]:
        return self.records()[-limit:]

    def clear(self) -> None:
        with self._lock:
            self._buffer = [None] * self.capacity
            self._cursor = 0
            self._size = 0


def query_similarity(query1: str, query2: str) -> float:
    """Jaccard similarity of the lowercased word sets."""
    words1 = set(query1.lower().split())
    words2 = set(query2.lower().split())
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


class ThresholdOptimizer:
    """Computes similarity thresholds and keeps an in-process outcome history."""

    def __init__(self, config: Optional[ThresholdConfig] = None):
        self.config = config or ThresholdConfig()
        self._history = PerformanceHistory(self.config.history_size)

    def calculate_optimal_threshold(
        self,
        query: str,
        query_length: int,
        locale: str,
        use_hybrid_search: bool = False,
    ) -> float:
        """
        Calculate the similarity threshold for a query.

        Args:
            query: Query text (used to find similar past queries)
            query_length: Length of the query in characters
            locale: Query locale
            use_hybrid_search: Whether hybrid scoring will be used

        Returns:
            Threshold within [min_threshold, max_threshold]; the base threshold
            unchanged when the optimizer is disabled
        """
        if not self.config.enabled:
            return self.config.base_threshold

        threshold = self.config.base_threshold
        threshold = self._adjust_for_query_length(threshold, query_length)
        threshold = self._adjust_for_search_method(threshold, use_hybrid_search)
        threshold = self._adjust_for_language(threshold, locale)

        if self.config.adaptive_enabled:
            threshold = self._apply_adaptive_learning(threshold, query)

        return max(self.config.min_threshold, min(self.config.max_threshold, threshold))

    def _adjust_for_query_length(self, threshold: float, query_length: int) -> float:
        # Short queries get a more permissive cutoff, long ones a stricter one
        if query_length < VERY_SHORT_QUERY:
            threshold -= self.config.query_length_factor * 2
        elif query_length < SHORT_QUERY:
            threshold -= self.config.query_length_factor
        elif query_length > LONG_QUERY:
            threshold += self.config.query_length_factor
        return threshold

    def _adjust_for_search_method(self, threshold: float, use_hybrid_search: bool) -> float:
        if use_hybrid_search:
            threshold -= self.config.hybrid_adjustment
        return threshold

    def _adjust_for_language(self, threshold: float, locale: str) -> float:
        if locale and locale != self.config.default_locale:
            threshold -= self.config.locale_adjustment
        return threshold

    def _apply_adaptive_learning(self, threshold: float, query: str) -> float:
        cutoff = datetime.now() - timedelta(hours=self.config.history_window_hours)
        recent = [
            p
            for p in self._history.recent(self.config.history_size)
            if p.timestamp > cutoff
        ]

        if len(recent) < self.config.min_history:
            return threshold

        similar = [
            p
            for p in recent
            if query_similarity(query, p.query) > self.config.similar_query_cutoff
        ]
        if not similar:
            return threshold

        avg_performance = sum(self._performance_score(p) for p in similar) / len(similar)

        if avg_performance < POOR_PERFORMANCE:
            threshold -= self.config.learning_rate
        elif avg_performance > GOOD_PERFORMANCE:
            threshold += self.config.learning_rate * 0.5

        logger.debug(
            f"Adaptive learning: {len(similar)} similar queries, "
            f"avg performance {avg_performance:.3f}, threshold {threshold:.3f}"
        )
        return threshold

    @staticmethod
    def _performance_score(performance: QueryPerformance) -> float:
        result_score = min(performance.result_count / RESULT_COUNT_NORMALIZER, 1.0)
        rating_score = (
            performance.user_rating
            if performance.user_rating is not None
            else NEUTRAL_RATING
        )
        return result_score * 0.6 + rating_score * 0.4

    def record_performance(
        self,
        query: str,
        threshold: float,
        chunks: Sequence[RetrievedChunk],
        user_rating: Optional[float] = None,
    ) -> None:
        """Append one outcome to the history (no-op without adaptive learning)."""
        if not self.config.adaptive_enabled:
            return

        similarities = [c.similarity for c in chunks]
        performance = QueryPerformance(
            query=query,
            threshold=threshold,
            result_count=len(chunks),
            avg_similarity=sum(similarities) / len(similarities) if similarities else 0.0,
            max_similarity=max(similarities) if similarities else 0.0,
            min_similarity=min(similarities) if similarities else 0.0,
            user_rating=user_rating,
        )
        self._history.append(performance)

        logger.info(
            f"Recorded query performance: query='{query[:50]}', threshold={threshold:.3f}, "
            f"results={len(chunks)}, avgSimilarity={performance.avg_similarity:.3f}, "
            f"rating={user_rating}"
        )

    def get_performance_stats(self) -> PerformanceStats:
        history = self._history.records()
        if not history:
            return PerformanceStats()

        rated = [p for p in history if p.user_rating is not None]
        count = len(history)
        return PerformanceStats(
            total_queries=count,
            avg_result_count=sum(p.result_count for p in history) / count,
            avg_similarity=sum(p.avg_similarity for p in history) / count,
            avg_threshold=sum(p.threshold for p in history) / count,
            rated_queries=len(rated),
            avg_rating=sum(p.user_rating for p in rated) / len(rated) if rated else 0.0,
        )

    def update_config(self, **changes) -> ThresholdConfig:
        """Apply config changes; resizing the history discards it."""
        self.config = self.config.model_copy(update=changes)
        if self.config.history_size != self._history.history_size:
            self._history = PerformanceHistory(self.config.history_size)
        logger.info(f"Threshold optimization config updated: {changes}")
        return self.config

    def get_config(self) -> ThresholdConfig:
        return self.config.model_copy()

    def clear_history(self) -> None:
        self._history.clear()
        logger.info("Threshold optimization history cleared")

    def export_history(self) -> List[QueryPerformance]:
        return self._history.records()
