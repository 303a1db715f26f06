"""LLM scoring adapters.

Both providers return a ``ScoringOutcome`` validated against
``ScoringOutput``. Unparseable JSON is re-requested a bounded number of times;
a well-formed response that violates the schema is a hard failure.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from typing import Optional

from openai import APIError, AsyncOpenAI

from drill_eval.application.interfaces import ScoringAdapterInterface, ScoringOutcome
from drill_eval.config.settings import Settings
from drill_eval.domain.errors import ScoringError, ScoringValidationError
from drill_eval.services.llm_client import BedrockLlmClient, LlmInvocationError
from drill_eval.services.prompts import (
    EVALUATION_SYSTEM_PROMPT,
    JSON_ONLY_SUFFIX,
    build_user_prompt,
)
from drill_eval.services.response_contract import ResponseContractError, ScoringOutput

logger = logging.getLogger("drill_eval.pipeline")


def _truncate(value: str, max_length: int = 500) -> str:
    if len(value) <= max_length:
        return value
    return value[: max_length - 3] + "..."


class _JsonScoringService(ScoringAdapterInterface):
    provider = "llm"

    def __init__(self, max_json_retries: int = 2) -> None:
        self._max_json_retries = max_json_retries

    @abstractmethod
    async def _complete(self, transcript: str) -> tuple[str, Optional[int]]:
        """Return the raw model text and total tokens for one call."""

    async def score(self, transcript: str) -> ScoringOutcome:
        if not transcript or not transcript.strip():
            raise ScoringValidationError("No transcript available for evaluation")

        tokens_total = 0
        saw_usage = False
        for attempt in range(self._max_json_retries + 1):
            raw_response, tokens_used = await self._complete(transcript)
            if tokens_used is not None:
                tokens_total += tokens_used
                saw_usage = True

            logger.info(
                "Raw %s scoring response attempt=%s: %s",
                self.provider,
                attempt + 1,
                _truncate(raw_response or ""),
            )
            if not raw_response:
                raise ScoringError(f"{self.provider} returned an empty response")

            try:
                output = ScoringOutput.from_json(raw_response)
            except ResponseContractError as exc:
                logger.warning(
                    "%s produced invalid JSON attempt=%s: %s",
                    self.provider,
                    attempt + 1,
                    exc,
                )
                if attempt < self._max_json_retries:
                    continue
                raise ScoringValidationError(
                    "Scoring model returned invalid JSON even after retrying"
                ) from exc

            return ScoringOutcome(
                score=output.score,
                feedback=output.feedback,
                what_changed=output.what_changed,
                practice_rule=output.practice_rule,
                tokens_used=tokens_total if saw_usage else None,
            )

        raise ScoringValidationError("Scoring model produced no usable response")


class OpenAIScoringService(_JsonScoringService):
    """GPT scoring with a strict ``json_schema`` response format."""

    provider = "openai"

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str,
        temperature: float = 0.3,
        max_json_retries: int = 2,
    ) -> None:
        super().__init__(max_json_retries)
        self._client = client
        self._model = model
        self._temperature = temperature

    async def _complete(self, transcript: str) -> tuple[str, Optional[int]]:
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": EVALUATION_SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(transcript)},
                ],
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "interview_evaluation",
                        "schema": ScoringOutput.json_schema_for_llm(),
                        "strict": True,
                    },
                },
                temperature=self._temperature,
            )
        except APIError as exc:
            raise ScoringError(f"OpenAI API error: {exc}") from exc

        if not completion.choices:
            raise ScoringError("OpenAI response contained no choices")
        message = completion.choices[0].message
        if getattr(message, "refusal", None):
            raise ScoringValidationError(f"Scoring model refused: {message.refusal}")
        usage = completion.usage
        return message.content or "", usage.total_tokens if usage else None


class BedrockScoringService(_JsonScoringService):
    """Scoring through an Amazon Bedrock model prompted for JSON."""

    provider = "bedrock"

    def __init__(self, client: BedrockLlmClient, *, max_json_retries: int = 2) -> None:
        super().__init__(max_json_retries)
        self._client = client

    async def _complete(self, transcript: str) -> tuple[str, Optional[int]]:
        try:
            completion = await self._client.invoke(
                system_prompt=EVALUATION_SYSTEM_PROMPT + JSON_ONLY_SUFFIX,
                user_prompt=build_user_prompt(transcript),
            )
        except LlmInvocationError as exc:
            raise ScoringError(f"Bedrock invocation failed: {exc}") from exc
        return completion.text, completion.tokens_used


def build_scoring_service(
    settings: Settings,
    *,
    openai_client: AsyncOpenAI | None = None,
) -> ScoringAdapterInterface:
    """Return the adapter selected by ``SCORING_PROVIDER``."""

    if settings.scoring.provider == "bedrock":
        return BedrockScoringService(
            BedrockLlmClient(settings.bedrock, settings.s3),
            max_json_retries=settings.scoring.max_json_retries,
        )

    if openai_client is None:
        raise ScoringError("OpenAI scoring selected but no client configured.")
    return OpenAIScoringService(
        openai_client,
        model=settings.openai.scoring_model,
        temperature=settings.openai.temperature,
        max_json_retries=settings.scoring.max_json_retries,
    )


__all__ = [
    "BedrockScoringService",
    "OpenAIScoringService",
    "build_scoring_service",
]
