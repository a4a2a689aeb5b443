"""
Completion component for ArticleRAG.
Thin async wrapper over OpenAI chat completions.
"""

import logging
import os
from typing import Optional

from openai import AsyncOpenAI, AuthenticationError

from articlerag.exceptions import ConfigurationError
from articlerag.models import CompletionResult

# Configure logging
logger = logging.getLogger(__name__)


class CompletionClient:
    """Sends a system + user prompt pair and returns text plus token usage."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize completion client.

        Args:
            api_key: OpenAI API key (falls back to OPENAI_API_KEY)
            client: Pre-built AsyncOpenAI client
        """
        if client is not None:
            self.client = client
            return

        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError(
                "OpenAI API key is required. Set OPENAI_API_KEY environment variable "
                "or pass api_key parameter."
            )
        self.client = AsyncOpenAI(api_key=api_key)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> CompletionResult:
        """
        Run one chat completion.

        Returns:
            CompletionResult with the first choice's text (empty if none)

        Raises:
            ConfigurationError: If the API key is rejected
            openai.APIError: For any other upstream failure (not retried)
        """
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except AuthenticationError as e:
            logger.error(f"OpenAI authentication failed: {e}")
            raise ConfigurationError(
                "OpenAI API authentication failed. Check your API key."
            ) from e

        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""

        usage = response.usage
        return CompletionResult(
            text=text,
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(usage, "total_tokens", 0) or 0,
        )
