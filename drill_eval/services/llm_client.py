"""Thin Bedrock client wrapper for scoring invocations."""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi.concurrency import run_in_threadpool

from drill_eval.config.settings import BedrockConfig, S3Config
from drill_eval.services.aws import create_boto3_client

logger = logging.getLogger(__name__)


class LlmInvocationError(RuntimeError):
    """Raised when the Bedrock invocation fails."""


@dataclass(frozen=True)
class LlmCompletion:
    text: str
    tokens_used: Optional[int] = None


def _decode_bedrock_api_key(secret_value: Optional[str]) -> tuple[str, str] | None:
    """Decode the BEDROCK_API_KEY secret into access/secret key components."""

    if not secret_value:
        return None

    try:
        decoded_bytes = base64.b64decode(secret_value.strip())
    except (binascii.Error, ValueError):
        decoded_bytes = secret_value.encode("utf-8", "ignore")

    filtered = "".join(chr(b) for b in decoded_bytes if 31 < b < 127)
    if ":" not in filtered:
        return None
    access_key, secret_key = filtered.split(":", 1)
    return access_key, secret_key


class BedrockLlmClient:
    """Invoke Amazon Bedrock models through the ``converse`` API."""

    def __init__(
        self,
        config: BedrockConfig,
        aws_config: S3Config,
        client: Any | None = None,
    ) -> None:
        self._config = config
        if client is not None:
            self._client = client
            return

        api_key_tuple = None
        if config.api_key:
            api_key_tuple = _decode_bedrock_api_key(config.api_key.get_secret_value())

        self._client = create_boto3_client(
            "bedrock-runtime",
            aws_config,
            region_name=config.region,
            aws_access_key_id=api_key_tuple[0] if api_key_tuple else None,
            aws_secret_access_key=api_key_tuple[1] if api_key_tuple else None,
        )

    async def invoke(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> LlmCompletion:
        """Run a Bedrock ``converse`` call and return the aggregate text output."""

        inference_cfg = {
            "maxTokens": max_tokens or self._config.max_tokens,
            "temperature": (
                temperature if temperature is not None else self._config.temperature
            ),
            "topP": self._config.top_p,
        }

        def _call() -> LlmCompletion:
            response = self._client.converse(
                modelId=self._config.model_id,
                system=[{"text": system_prompt}],
                messages=[{"role": "user", "content": [{"text": user_prompt}]}],
                inferenceConfig=inference_cfg,
            )
            content_blocks = (
                response.get("output", {})
                .get("message", {})
                .get("content", [])
            )
            texts = [block.get("text", "") for block in content_blocks if block.get("text")]
            usage = response.get("usage") or {}
            return LlmCompletion(
                text="\n".join(texts).strip(),
                tokens_used=usage.get("totalTokens"),
            )

        try:
            return await run_in_threadpool(_call)
        except Exception as exc:
            raise LlmInvocationError(str(exc)) from exc


__all__ = ["BedrockLlmClient", "LlmCompletion", "LlmInvocationError"]
