"""
Query Enhancement component for ArticleRAG.
Expands short or ambiguous queries into more searchable text with an LLM.

The completion may come back as the requested JSON object or as free text;
both are parsed into a tagged result before collapsing to QueryEnhancement,
so the confidence reflects which form the model produced.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from articlerag.components.completion import CompletionClient
from articlerag.models import EnhancementConfig, QueryEnhancement
from articlerag.utils import detect_query_language

# Configure logging
logger = logging.getLogger(__name__)

# Confidence assigned when the model answers in free text instead of JSON
FREEFORM_CONFIDENCE = 0.3
# Confidence assumed when the JSON omits it
DEFAULT_STRUCTURED_CONFIDENCE = 0.5
MAX_SEARCH_VARIATIONS = 5

ENGLISH_SYSTEM_PROMPT = """You are a query enhancement assistant for a technical blog search system. Your job is to expand short, ambiguous queries into more specific and searchable terms.

Given a short query, enhance it by:
1. Adding relevant technical context
2. Including common synonyms and related terms
3. Expanding abbreviations
4. Adding related concepts

The blog covers topics like:
- Software Engineering (Staff Engineer, Tech Lead, Architecture)
- Web Development (React, TypeScript, JavaScript)
- System Design and Scalability
- Performance Optimization
- Career Development in Tech
- Engineering Management

Respond with a JSON object:
{
  "enhanced_query": "expanded version of the query",
  "expansions": ["alternative", "phrasings", "of", "query"],
  "synonyms": ["related", "terms"],
  "related_terms": ["broader", "concepts"],
  "confidence": 0.8
}

Keep it concise and relevant. The enhanced query should be 1-2 sentences max."""

CHINESE_SYSTEM_PROMPT = """你是一個技術部落格搜尋系統的查詢增強助手。你的任務是將簡短、模糊的查詢擴展為更具體、更容易搜尋的詞彙。

對於簡短查詢，請通過以下方式增強：
1. 添加相關的技術背景
2. 包含常見同義詞和相關術語
3. 展開縮寫詞
4. 添加相關概念

部落格涵蓋的主題包括：
- 軟體工程（Staff Engineer、Tech Lead、架構）
- Web 開發（React、TypeScript、JavaScript）
- 系統設計和可擴展性
- 效能優化
- 技術職涯發展
- 工程管理

請用 JSON 格式回應：
{
  "enhanced_query": "查詢的擴展版本",
  "expansions": ["查詢的", "替代", "表述"],
  "synonyms": ["相關", "術語"],
  "related_terms": ["更廣泛的", "概念"],
  "confidence": 0.8
}

保持簡潔和相關性。增強查詢應該最多 1-2 句話。"""


@dataclass
class StructuredCompletion:
    """The model returned the requested JSON object."""

    enhanced_query: Optional[str]
    expansions: List[str] = field(default_factory=list)
    synonyms: List[str] = field(default_factory=list)
    related_terms: List[str] = field(default_factory=list)
    confidence: Optional[float] = None

    def to_enhancement(self, original_query: str) -> QueryEnhancement:
        return QueryEnhancement(
            original_query=original_query,
            enhanced_query=self.enhanced_query or original_query,
            expansions=self.expansions,
            synonyms=self.synonyms,
            related_terms=self.related_terms,
            confidence=(
                self.confidence
                if self.confidence is not None
                else DEFAULT_STRUCTURED_CONFIDENCE
            ),
        )


@dataclass
class FreeformCompletion:
    """The model answered in plain text; the text is used as the query."""

    text: str

    def to_enhancement(self, original_query: str) -> QueryEnhancement:
        return QueryEnhancement(
            original_query=original_query,
            enhanced_query=self.text.strip() or original_query,
            confidence=FREEFORM_CONFIDENCE,
        )


ParsedCompletion = Union[StructuredCompletion, FreeformCompletion]


def _string_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if isinstance(item, (str, int, float))]


def _strip_code_fence(content: str) -> str:
    """Pull the body out of a ```json ... ``` block if the model wrapped it."""
    if "```json" in content:
        start = content.find("```json") + 7
        end = content.find("```", start)
        if end != -1:
            return content[start:end].strip()
    elif content.startswith("```"):
        lines = [line for line in content.split("\n") if not line.startswith("```")]
        return "\n".join(lines).strip()
    return content


def parse_completion(content: str) -> ParsedCompletion:
    """Classify an enhancement completion as structured JSON or free text."""
    try:
        parsed = json.loads(_strip_code_fence(content.strip()))
    except json.JSONDecodeError as e:
        logger.debug(f"Failed to parse enhancement JSON, using as enhanced query: {e}")
        return FreeformCompletion(text=content)

    if not isinstance(parsed, dict):
        return FreeformCompletion(text=content)

    confidence = parsed.get("confidence")
    enhanced = parsed.get("enhanced_query")
    return StructuredCompletion(
        enhanced_query=enhanced if isinstance(enhanced, str) and enhanced else None,
        expansions=_string_list(parsed.get("expansions")),
        synonyms=_string_list(parsed.get("synonyms")),
        related_terms=_string_list(parsed.get("related_terms")),
        confidence=(
            float(confidence)
            if isinstance(confidence, (int, float)) and not isinstance(confidence, bool)
            else None
        ),
    )


class QueryEnhancer:
    """Rewrites short or ambiguous queries before retrieval."""

    def __init__(
        self,
        completion_client: CompletionClient,
        config: Optional[EnhancementConfig] = None,
    ):
        self.completion_client = completion_client
        self.config = config or EnhancementConfig()

    def should_enhance(self, query: str) -> bool:
        """True for short queries within the configured length and word bounds."""
        if not self.config.enabled:
            return False

        trimmed = query.strip()
        word_count = len(trimmed.split())
        char_count = len(trimmed)

        return (
            self.config.min_query_length <= char_count <= self.config.max_query_length
            and word_count <= self.config.max_word_count
        )

    async def enhance(self, query: str) -> QueryEnhancement:
        """
        Enhance a query. Never raises.

        Returns:
            QueryEnhancement; on any failure an identity enhancement with
            confidence 0
        """
        locale = detect_query_language(query)
        if locale == "zh":
            system_prompt = CHINESE_SYSTEM_PROMPT
            user_prompt = f'請增強這個查詢: "{query}"'
        else:
            system_prompt = ENGLISH_SYSTEM_PROMPT
            user_prompt = f'Please enhance this query: "{query}"'

        try:
            result = await self.completion_client.complete(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                model=self.config.expansion_model,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
            if not result.text or not result.text.strip():
                raise ValueError("No response from completion service")

            parsed = parse_completion(result.text)
            enhancement = parsed.to_enhancement(query)
            logger.debug(
                f"Query enhanced ({type(parsed).__name__}): '{query}' -> "
                f"'{enhancement.enhanced_query}' (confidence={enhancement.confidence}, "
                f"tokens={result.total_tokens})"
            )
            return enhancement

        except Exception as e:
            logger.warning(f"Query enhancement failed, using original: {e}")
            return QueryEnhancement(
                original_query=query,
                enhanced_query=query,
                confidence=0.0,
            )

    @staticmethod
    def generate_search_variations(enhancement: QueryEnhancement) -> List[str]:
        """Up to five distinct search strings derived from an enhancement."""
        variations = [enhancement.original_query, enhancement.enhanced_query]
        variations.extend(enhancement.expansions)
        variations.extend(
            f"{enhancement.original_query} {synonym}" for synonym in enhancement.synonyms
        )
        variations.extend(term for term in enhancement.related_terms if len(term) > 2)

        # dict preserves first-seen order
        unique = dict.fromkeys(v for v in variations if len(v.strip()) > 2)
        return list(unique)[:MAX_SEARCH_VARIATIONS]

    def update_config(self, **changes) -> EnhancementConfig:
        """Apply config changes and return the new config."""
        self.config = self.config.model_copy(update=changes)
        logger.info(f"Query enhancement config updated: {changes}")
        return self.config

    def get_config(self) -> EnhancementConfig:
        return self.config.model_copy()
