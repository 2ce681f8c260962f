"""Remote API access."""

from .openai import OpenAIApiCaller

__all__ = ["OpenAIApiCaller"]
