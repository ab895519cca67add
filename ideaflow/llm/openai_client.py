"""
OpenAI client wrapper for LLM text generation.
Returns the raw completion text; parsing is left to the caller.
"""
import os
import logging
from typing import Optional
from openai import AsyncOpenAI
from openai import APIConnectionError, APIStatusError, OpenAIError

from ideaflow import config
from ideaflow.errors import DecodeError, UpstreamUnavailable

logger = logging.getLogger(__name__)


async def generate_text(
    system_prompt: str,
    user_prompt: str,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    timeout: Optional[float] = None
) -> str:
    """
    Run one chat completion and return the model's text.

    Args:
        system_prompt: System message for the AI
        user_prompt: User message/input
        model: OpenAI model to use (default: OPENAI_MODEL)
        temperature: Sampling temperature (default: LLM_TEMPERATURE)
        max_tokens: Output bound (default: LLM_MAX_TOKENS)
        timeout: Request timeout in seconds (default: LLM_TIMEOUT_SECONDS)

    Returns:
        The completion content, unparsed

    Raises:
        UpstreamUnavailable: If the key is missing, the API is unreachable,
            the request times out or the API answers with a non-2xx status
        DecodeError: If the API returns an empty completion
    """
    api_key = os.environ.get('OPENAI_API_KEY')
    if not api_key:
        raise UpstreamUnavailable("OPENAI_API_KEY not configured")

    client = AsyncOpenAI(api_key=api_key, max_retries=0)

    try:
        response = await client.chat.completions.create(
            model=model or config.OPENAI_MODEL,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt}
            ],
            temperature=config.LLM_TEMPERATURE if temperature is None else temperature,
            max_tokens=max_tokens or config.LLM_MAX_TOKENS,
            timeout=timeout or config.LLM_TIMEOUT_SECONDS,
            response_format={"type": "json_object"}
        )
    except APIStatusError as e:
        logger.error(f"OpenAI API error: {e.status_code} {e.message}")
        raise UpstreamUnavailable(f"OpenAI API error: {e.status_code}") from e
    except APIConnectionError as e:
        # Covers timeouts as well
        logger.error(f"OpenAI API unreachable: {e}")
        raise UpstreamUnavailable(f"OpenAI API unreachable: {e}") from e
    except OpenAIError as e:
        logger.error(f"OpenAI client error: {e}")
        raise UpstreamUnavailable(f"OpenAI client error: {e}") from e

    response_text = response.choices[0].message.content if response.choices else None
    if not response_text:
        logger.error("OpenAI returned empty response")
        raise DecodeError("Empty response from OpenAI API")

    return response_text
