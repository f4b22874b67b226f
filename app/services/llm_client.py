"""Thin Bedrock client wrapper for session analysis prompts."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from app.config.settings import BedrockConfig
from app.services.aws import create_boto3_client

logger = logging.getLogger(__name__)


class LlmInvocationError(RuntimeError):
    """Raised when the Bedrock invocation fails."""


def _decode_bedrock_api_key(secret_value: Optional[str]) -> tuple[str, str] | None:
    """Decode the BEDROCK_API_KEY secret (base64 `access:secret`) into its parts."""

    if not secret_value:
        return None

    try:
        decoded = base64.b64decode(secret_value.strip(), validate=True).decode("utf-8", "ignore")
    except (binascii.Error, ValueError):
        decoded = secret_value

    filtered = "".join(ch for ch in decoded if ch.isprintable())
    if ":" not in filtered:
        return None
    access_key, secret_key = filtered.split(":", 1)
    return access_key, secret_key


class BedrockLlmClient:
    """Invoke Amazon Bedrock models with standard configuration.

    `invoke` returns None when Bedrock is disabled or no client could be
    built, so callers can fall back without treating it as an error.
    """

    def __init__(self, config: BedrockConfig) -> None:
        self._config = config
        self._client = None
        if not config.enabled:
            logger.info("Bedrock analysis disabled by configuration")
            return

        api_key_tuple = None
        if config.api_key:
            api_key_tuple = _decode_bedrock_api_key(config.api_key.get_secret_value())

        try:
            self._client = create_boto3_client(
                "bedrock-runtime",
                region_name=config.region,
                aws_access_key_id=api_key_tuple[0] if api_key_tuple else None,
                aws_secret_access_key=api_key_tuple[1] if api_key_tuple else None,
            )
        except (BotoCoreError, ValueError) as exc:  # pragma: no cover - configuration issue
            logger.warning("Could not initialise Bedrock client: %s", exc)
            self._client = None

    @property
    def available(self) -> bool:
        return self._client is not None

    async def invoke(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str | None:
        """Run a Bedrock `converse` call and return the aggregate text output."""

        if not self._client or not self._config.model_id:
            return None

        inference_cfg = {
            "maxTokens": max_tokens or self._config.max_tokens,
            "temperature": (
                temperature if temperature is not None else self._config.temperature
            ),
            "topP": self._config.top_p,
        }

        def _call() -> str:
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
            return "\n".join(texts).strip()

        try:
            result = await run_in_threadpool(_call)
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover - external dependency
            raise LlmInvocationError(str(exc)) from exc

        return result or None


__all__ = ["BedrockLlmClient", "LlmInvocationError"]
