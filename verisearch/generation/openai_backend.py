"""
OpenAI Generation Backend
==========================

Generator implementation on top of the OpenAI chat completions API
(or any OpenAI-compatible endpoint via ``base_url``).

Transport failures are converted to GenerationError values:
timeouts, rate limits and connection errors are transient (retried by
the RetryPolicy), every other API error is permanent.

Usage:
    generator = OpenAIGenerator(api_key="sk-...", model="gpt-4o-mini")
    outcome = await generator.generate(QueryContext(query="2+2?"), SamplingParams())
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from verisearch.errors import GenerationError
from verisearch.generation.boundary import GenerationOutcome, Generator
from verisearch.generation.retry import RetryPolicy
from verisearch.schemas.candidate import (
    Candidate,
    GenerationMode,
    Provenance,
    QueryContext,
    SamplingParams,
)

logger = logging.getLogger("verisearch.generation.openai_backend")


SYSTEM_PROMPT = (
    "You are a careful problem solver. Think step by step and finish "
    "with a final line of the form 'Answer: <answer>'."
)

STEP_PROMPT = """Question: {query}

Reasoning so far:
{partial}

Write only the NEXT reasoning step. If the reasoning is finished, write the final line 'Answer: <answer>' instead."""

ROLLOUT_PROMPT = """Question: {query}

Reasoning so far:
{partial}

Continue the reasoning to the end and finish with 'Answer: <answer>'."""

ANSWER_MARKER = "answer:"


class OpenAIGenerator(Generator):
    """
    Chat-completions generator.

    Args:
        api_key: OpenAI API key (falls back to OPENAI_API_KEY in the client).
        model: Model name.
        base_url: Optional OpenAI-compatible endpoint.
        timeout_s: Per-request timeout handed to the client.
        retry_policy: Retry policy for transient failures.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        timeout_s: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        super().__init__(name=f"openai:{model}")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.retry_policy = retry_policy or RetryPolicy()
        self._client = None

    @classmethod
    def from_config(cls, config) -> "OpenAIGenerator":
        """Build from a VeriSearchConfig."""
        return cls(
            api_key=config.openai_api_key,
            model=config.openai_model,
            base_url=config.openai_base_url,
            timeout_s=config.generation.timeout_s,
            retry_policy=RetryPolicy.from_config(config.generation),
        )

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout_s,
                max_retries=0,
            )
        return self._client

    @staticmethod
    def build_messages(context: QueryContext, params: SamplingParams) -> list[dict[str, str]]:
        """Chat messages for one generation call."""
        if context.metadata.get("raw_prompt"):
            return [{"role": "user", "content": context.query}]
        if context.partial is None or params.mode == GenerationMode.ANSWER:
            user = context.query
        elif params.mode == GenerationMode.STEP:
            user = STEP_PROMPT.format(query=context.query, partial=context.partial)
        else:
            user = ROLLOUT_PROMPT.format(query=context.query, partial=context.partial)
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user},
        ]

    async def generate(
        self, context: QueryContext, params: SamplingParams
    ) -> GenerationOutcome:
        return await self.retry_policy.call(self._generate_once, context, params)

    async def _generate_once(
        self, context: QueryContext, params: SamplingParams
    ) -> GenerationOutcome:
        import openai

        start = time.perf_counter()
        try:
            response = await self._get_client().chat.completions.create(
                model=self.model,
                messages=self.build_messages(context, params),
                temperature=params.temperature,
                seed=params.seed,
                max_tokens=params.max_tokens,
            )
        except (openai.APITimeoutError, openai.RateLimitError, openai.APIConnectionError) as e:
            logger.warning(f"Transient OpenAI failure: {e}")
            return GenerationError(str(e), transient=True, generator=self.name)
        except openai.OpenAIError as e:
            logger.error(f"OpenAI request failed: {e}")
            return GenerationError(str(e), transient=False, generator=self.name)

        latency_ms = (time.perf_counter() - start) * 1000
        text = (response.choices[0].message.content or "").strip()
        if not text:
            return GenerationError("empty completion", transient=True, generator=self.name)

        usage = response.usage
        complete = (
            params.mode != GenerationMode.STEP
            or ANSWER_MARKER in text.lower()
        )
        return Candidate(
            id=self.next_candidate_id(),
            content=text,
            complete=complete,
            provenance=Provenance(
                generator=self.name,
                model=self.model,
                temperature=params.temperature,
                seed=params.seed,
                mode=params.mode,
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                latency_ms=latency_ms,
            ),
        )
