"""
generation/ — Text-to-image service access

Public API:
    from promptvolley.generation import GenerationClient

    client = GenerationClient.from_settings(settings)
    urls = await client.generate(prompt, negative_prompt, state, max_retries=3)
"""

from promptvolley.generation.client import GenerationClient
from promptvolley.generation.types import GeneratedImage, GenerationResponse, RetryCallback, RetryNotice

__all__ = ["GenerationClient", "GeneratedImage", "GenerationResponse", "RetryCallback", "RetryNotice"]
