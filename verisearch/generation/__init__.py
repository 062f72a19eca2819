"""Generation boundary, retry policy, and the OpenAI backend."""

from verisearch.generation.boundary import GenerationOutcome, Generator, is_failure
from verisearch.generation.openai_backend import OpenAIGenerator
from verisearch.generation.retry import RetryPolicy

__all__ = [
    "GenerationOutcome",
    "Generator",
    "OpenAIGenerator",
    "RetryPolicy",
    "is_failure",
]
