"""OpenAI API LLM provider (optional). Requires: pip install openai."""
import logging

import openai
from openai import AsyncOpenAI

from notelog.exceptions import (
    ProviderError,
    RateLimitedError,
    ResponseTruncatedError,
    TransientProviderError,
)
from notelog.services.llm_provider import LLMProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI API provider (chat completions, JSON mode)."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        temperature: float = 0.15,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.temperature = temperature

    async def generate(self, prompt: str, *, system_instruction: str | None = None, **kwargs) -> str:
        """Generate full response from OpenAI chat completions."""
        client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url, max_retries=0)
        messages = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": prompt})
        try:
            resp = await client.chat.completions.create(
                model=self.model,
                messages=messages,
                stream=False,
                temperature=kwargs.get("temperature", self.temperature),
            )
        except openai.RateLimitError as e:
            raise RateLimitedError(f"OpenAI rate limit: {e}", details=getattr(e, "body", None)) from e
        except (openai.APIConnectionError, openai.APITimeoutError) as e:
            raise TransientProviderError(f"OpenAI connection error: {e}") from e
        except openai.APIError as e:
            raise ProviderError(f"OpenAI API error: {e}", details=getattr(e, "body", None)) from e

        if not resp.choices:
            raise ProviderError("OpenAI response had no choices.")
        choice = resp.choices[0]
        if choice.finish_reason == "length":
            raise ResponseTruncatedError("The response was too long and was truncated.")
        return choice.message.content or ""
