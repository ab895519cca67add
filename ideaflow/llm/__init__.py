"""LLM client modules."""
from .openai_client import generate_text
from .openai_audio import transcribe_audio

__all__ = ["generate_text", "transcribe_audio"]
