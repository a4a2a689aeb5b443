"""
Generation component for ArticleRAG.
Citation-aware answer generation through the completion client.
"""

import logging
import time

from articlerag.components.completion import CompletionClient
from articlerag.exceptions import GenerationError
from articlerag.models import GenerationResult, QueryConfig, TokenUsage

# Configure logging
logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a professional technical articles Q&A assistant.

Your Tasks:
1. Answer user questions based on the provided article content
2. Provide accurate, concise, and well-structured answers
3. If the content doesn't contain the answer, honestly acknowledge it
4. Use [1], [2] notation to cite sources

Answer Principles:
- Respond in the same language as the user's question
- Prioritize referencing the original content, then add your explanation
- Do not fabricate content or speculate excessively
- If the question is outside the scope of the articles, clearly inform the user
- Maintain a professional yet friendly tone

Citation Format:
- Use [1], [2] notation in your answer to reference sources
- Every key point should be attributed to a source"""

NO_CONTEXT_PROMPT = """User Question: {query}

Note: No relevant article content was found. Please inform the user that this question may be outside the scope of the available articles."""

CONTEXT_PROMPT = """Below are relevant excerpts from articles. Please answer the question based on this content.

===== Reference Content =====
{context}

===== User Question =====
{query}

Please answer the question above and cite your sources using [1], [2] notation."""


def build_user_message(query: str, context: str) -> str:
    if not context:
        return NO_CONTEXT_PROMPT.format(query=query)
    return CONTEXT_PROMPT.format(context=context, query=query)


class AnswerGenerator:
    """Generates a cited answer from a question and its formatted context."""

    def __init__(self, completion_client: CompletionClient):
        self.completion_client = completion_client

    async def generate_answer(
        self,
        query: str,
        context: str,
        config: QueryConfig,
    ) -> GenerationResult:
        """
        Generate an answer.

        Args:
            query: User question
            context: Formatted context (may be empty)
            config: Query configuration (model, temperature, max_response_tokens)

        Returns:
            GenerationResult with the stripped answer and token usage

        Raises:
            GenerationError: If the completion fails or returns no text
        """
        start_time = time.monotonic()

        try:
            logger.info(f"Generating answer with {config.model}...")
            result = await self.completion_client.complete(
                system_prompt=SYSTEM_PROMPT,
                user_prompt=build_user_message(query, context),
                model=config.model,
                temperature=config.temperature,
                max_tokens=config.max_response_tokens,
            )

            answer = (result.text or "").strip()
            if not answer:
                raise ValueError("No answer generated")

            elapsed = int((time.monotonic() - start_time) * 1000)
            logger.info(
                f"Answer generated in {elapsed}ms ({result.total_tokens} tokens)"
            )

            return GenerationResult(
                answer=answer,
                tokens_used=TokenUsage(
                    prompt=result.prompt_tokens,
                    completion=result.completion_tokens,
                    total=result.total_tokens,
                ),
            )

        except Exception as e:
            logger.error(f"Error generating answer: {e}")
            raise GenerationError(f"Generation failed: {e}") from e
