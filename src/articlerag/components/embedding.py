"""
Embedding component for ArticleRAG.
Turns text into vectors with the OpenAI embeddings API.
"""

import asyncio
import logging
import os
from typing import List, Optional

from openai import AsyncOpenAI
from tqdm import tqdm

from articlerag.exceptions import ConfigurationError

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
# text-embedding-3-small: 1536 dimensions, cheaper
# text-embedding-3-large: 3072 dimensions, more accurate

# USD per million tokens
PRICE_PER_MILLION = {"small": 0.02, "large": 0.13}


class EmbeddingClient:
    """Async wrapper around the OpenAI embeddings endpoint."""

    def __init__(
        self,
        model: str = DEFAULT_EMBEDDING_MODEL,
        api_key: Optional[str] = None,
        batch_size: int = 100,
        batch_delay: float = 0.5,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize embedding client.

        Args:
            model: OpenAI embedding model name
            api_key: OpenAI API key (falls back to OPENAI_API_KEY)
            batch_size: Texts per request in embed_batch
            batch_delay: Seconds to wait between batches (rate limiting)
            client: Pre-built AsyncOpenAI client
        """
        self.model = model
        self.batch_size = batch_size
        self.batch_delay = batch_delay

        if client is not None:
            self.client = client
        else:
            api_key = api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ConfigurationError(
                    "OpenAI API key is required. Set OPENAI_API_KEY environment variable "
                    "or pass api_key parameter."
                )
            self.client = AsyncOpenAI(api_key=api_key)
        logger.info(f"EmbeddingClient initialized with model: {model}")

    async def embed(self, text: str) -> List[float]:
        """Embed a single text."""
        if not text or not text.strip():
            raise ValueError("Text to embed cannot be empty")

        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=text,
                encoding_format="float",
            )
        except Exception as e:
            logger.error(f"Error generating embedding: {e}")
            raise
        return list(response.data[0].embedding)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Embed many texts, batch_size at a time.

        Args:
            texts: Texts to embed

        Returns:
            One vector per input text, in input order
        """
        if not texts:
            return []

        embeddings: List[List[float]] = []
        total_batches = (len(texts) + self.batch_size - 1) // self.batch_size

        for start in tqdm(
            range(0, len(texts), self.batch_size),
            total=total_batches,
            desc="Embedding",
            disable=total_batches < 2,
        ):
            batch = texts[start : start + self.batch_size]
            batch_num = start // self.batch_size + 1
            logger.debug(
                f"Embedding batch {batch_num}/{total_batches} ({len(batch)} texts)"
            )
            try:
                response = await self.client.embeddings.create(
                    model=self.model,
                    input=batch,
                    encoding_format="float",
                )
            except Exception as e:
                logger.error(f"Error in batch {batch_num}: {e}")
                raise

            embeddings.extend(list(item.embedding) for item in response.data)

            if start + self.batch_size < len(texts):
                await asyncio.sleep(self.batch_delay)

        return embeddings

    def estimate_cost(self, token_count: int, model: Optional[str] = None) -> float:
        """Estimate the embedding cost in USD for token_count tokens."""
        return estimate_embedding_cost(token_count, model or self.model)


def estimate_embedding_cost(
    token_count: int, model: str = DEFAULT_EMBEDDING_MODEL
) -> float:
    """
    Estimate embedding cost.

    text-embedding-3-small: $0.02 per 1M tokens
    text-embedding-3-large: $0.13 per 1M tokens
    """
    price = PRICE_PER_MILLION["large" if "large" in model else "small"]
    return (token_count / 1_000_000) * price
