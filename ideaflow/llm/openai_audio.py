"""
OpenAI audio transcription module.
Transcribes recorded voice ideas with the Whisper API.
"""
import os
import logging
from typing import Optional
from openai import AsyncOpenAI
from openai import OpenAIError

from ideaflow import config
from ideaflow.errors import InvalidRequest, UpstreamUnavailable

logger = logging.getLogger(__name__)


async def transcribe_audio(
    audio: bytes,
    filename: str = "recording.webm",
    model: Optional[str] = None,
    language: Optional[str] = None
) -> str:
    """
    Transcribe an audio recording using OpenAI Whisper API.

    Args:
        audio: Raw audio bytes as recorded by the client
        filename: Name sent with the upload; Whisper infers the format from its extension
        model: Whisper model to use (default: WHISPER_MODEL)
        language: Language code. None for auto-detection.

    Returns:
        The transcribed text, stripped

    Raises:
        InvalidRequest: If the audio is empty
        UpstreamUnavailable: If OPENAI_API_KEY is missing or the API call fails
    """
    if not audio:
        raise InvalidRequest("No audio data provided")

    api_key = os.environ.get('OPENAI_API_KEY')
    if not api_key:
        raise UpstreamUnavailable("OPENAI_API_KEY not configured")

    client = AsyncOpenAI(api_key=api_key, max_retries=0)

    params = {
        "model": model or config.WHISPER_MODEL,
        "file": (filename, audio),
        "response_format": "json",
        "timeout": config.LLM_TIMEOUT_SECONDS,
    }
    if language:
        params["language"] = language

    try:
        transcript = await client.audio.transcriptions.create(**params)
    except OpenAIError as e:
        logger.error(f"OpenAI Whisper transcription error: {str(e)}")
        raise UpstreamUnavailable(f"Transcription failed: {e}") from e

    # Handle both dict and object access
    if isinstance(transcript, dict):
        text = transcript.get("text", "")
    else:
        text = getattr(transcript, "text", "")

    logger.info(f"Transcribed {len(audio)} bytes of audio into {len(text or '')} characters")
    return (text or "").strip()
