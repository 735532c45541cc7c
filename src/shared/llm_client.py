"""
Reasoning Client Module
Shared client for the external reasoning service (via litellm).

Every structured call returns a tagged union:
- ParsedResponse: payload parsed and (optionally) validated against a pydantic schema
- MalformedResponse: the service answered but the payload did not parse / validate

`request_json()` is the resilient entry point used by the pipeline: it runs
the call through the dependency's ResilientClient and turns a malformed payload
into a retryable MalformedResponseError.
"""

import asyncio
import json
import os
import time
from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Union

from litellm import acompletion
from pydantic import BaseModel, ValidationError

from src.core.resilient_client import ResilientClient
from src.domain.exceptions import LLMAPIError, MalformedResponseError, MissingCredentialError
from src.monitoring.logger import AgentLogger
from src.shared.model_registry import ModelRegistry, OperationType


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class ParsedResponse:
    data: dict[str, Any]
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0
    kind: Literal["parsed"] = "parsed"

    def unwrap(self) -> "ParsedResponse":
        return self


@dataclass(frozen=True)
class MalformedResponse:
    raw: str
    error: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0
    kind: Literal["malformed"] = "malformed"

    def unwrap(self) -> ParsedResponse:
        raise MalformedResponseError(
            f"Malformed response from {self.model}: {self.error}",
            raw_preview=self.raw,
            model=self.model,
        )


LLMResult = Union[ParsedResponse, MalformedResponse]


def strip_code_fences(text: str) -> str:
    """Remove ```json fences some models wrap around JSON payloads."""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


class ReasoningClient:
    """
    Client for structured (JSON) calls to the reasoning service.

    Usage:
        client = ReasoningClient(registry, resilient=reasoning_resilience)
        response = await client.request_json(
            OperationType.MARKET_ANALYSIS,
            system_prompt="You are a market analysis expert...",
            user_prompt=prompt,
            schema=MarketAnalysisPayload,
        )
        payload = response.data
    """

    def __init__(
        self,
        registry: Optional[ModelRegistry] = None,
        resilient: Optional[ResilientClient] = None,
        api_key: Optional[str] = None,
        logger: Optional[AgentLogger] = None
    ):
        """
        Args:
            registry: model registry used to resolve per-operation parameters
            resilient: resilience wrapper for the reasoning dependency (None = direct calls)
            api_key: reasoning service key (defaults to OPENAI_API_KEY)
            logger: optional logger instance
        """
        self.registry = registry or ModelRegistry()
        self.resilient = resilient
        self.api_key = api_key if api_key is not None else os.environ.get("OPENAI_API_KEY")
        self.logger = logger or AgentLogger("reasoning_client")

        self._total_calls = 0
        self._total_prompt_tokens = 0
        self._total_completion_tokens = 0
        self._total_errors = 0
        self._total_malformed = 0
        self._total_cost = 0.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def ensure_configured(self) -> None:
        """Raise MissingCredentialError when no API key is available."""
        if not self.api_key:
            raise MissingCredentialError("OPENAI_API_KEY", dependency="reasoning")

    async def complete_json(
        self,
        operation: OperationType,
        system_prompt: str,
        user_prompt: str,
        schema: Optional[type[BaseModel]] = None,
        premium: bool = False,
        model: Optional[str] = None
    ) -> LLMResult:
        """
        Single structured call, no retry.

        Args:
            operation: logical operation, selects model / token budget / timeout
            system_prompt: system instructions
            user_prompt: user content
            schema: pydantic model the payload must validate against
            premium: use the premium model for this operation
            model: explicit model override (e.g. an escalation model)

        Returns:
            ParsedResponse or MalformedResponse

        Raises:
            MissingCredentialError: no API key configured
            LLMAPIError: transport error, timeout, provider error
        """
        self.ensure_configured()

        config = self.registry.get_config(operation, premium=premium)
        effective_model = model or config.model
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": f"{user_prompt}\n\nRespond with valid JSON only."},
        ]

        self.logger.llm_request(effective_model, operation=operation.value)
        start_time = time.time()

        try:
            response = await asyncio.wait_for(
                acompletion(
                    model=effective_model,
                    messages=messages,
                    max_tokens=config.max_tokens,
                    temperature=config.temperature,
                    reasoning_effort=config.reasoning_effort,
                    response_format={"type": "json_object"},
                    api_key=self.api_key,
                    drop_params=True,
                ),
                timeout=config.timeout,
            )
        except TimeoutError as e:
            self._total_errors += 1
            raise LLMAPIError(
                f"{operation.value} timed out after {config.timeout}s",
                model=effective_model,
                error_code="timeout",
                is_retryable=True,
            ) from e
        except Exception as e:
            self._total_errors += 1
            status_code = getattr(e, "status_code", None)
            raise LLMAPIError(
                f"{operation.value} call failed: {e}",
                model=effective_model,
                error_code=str(status_code) if status_code else type(e).__name__,
                is_retryable=status_code not in (401, 403),
            ) from e

        latency_ms = (time.time() - start_time) * 1000
        usage = self._extract_usage(response)
        cost = self.registry.calculate_cost(
            effective_model, usage.prompt_tokens, usage.completion_tokens
        )

        self._total_calls += 1
        self._total_prompt_tokens += usage.prompt_tokens
        self._total_completion_tokens += usage.completion_tokens
        self._total_cost += cost
        self.logger.llm_response(effective_model, total_tokens=usage.total_tokens, latency_ms=latency_ms)

        content = ""
        if getattr(response, "choices", None):
            content = response.choices[0].message.content or ""

        return self._parse(content, schema, effective_model, usage, cost)

    async def request_json(
        self,
        operation: OperationType,
        system_prompt: str,
        user_prompt: str,
        schema: Optional[type[BaseModel]] = None,
        premium: bool = False,
        model: Optional[str] = None
    ) -> ParsedResponse:
        """
        Structured call through the resilience layer.

        A missing credential is raised before the breaker is touched. A
        malformed payload raises MalformedResponseError inside the resilient
        call so the limiter retries it like any other transient failure.
        """
        self.ensure_configured()

        async def _call() -> ParsedResponse:
            result = await self.complete_json(
                operation, system_prompt, user_prompt, schema=schema, premium=premium, model=model
            )
            return result.unwrap()

        if self.resilient is None:
            return await _call()
        return await self.resilient.call(_call)

    def _parse(
        self,
        content: str,
        schema: Optional[type[BaseModel]],
        model: str,
        usage: TokenUsage,
        cost: float
    ) -> LLMResult:
        try:
            data = json.loads(strip_code_fences(content))
        except json.JSONDecodeError as e:
            return self._malformed(content, f"invalid JSON: {e}", model, usage, cost)

        if not isinstance(data, dict):
            return self._malformed(content, "top-level JSON value is not an object", model, usage, cost)

        if schema is not None:
            try:
                data = schema.model_validate(data).model_dump()
            except ValidationError as e:
                return self._malformed(
                    content, f"schema validation failed ({e.error_count()} errors)", model, usage, cost
                )

        return ParsedResponse(data=data, model=model, usage=usage, cost=cost)

    def _malformed(
        self, content: str, error: str, model: str, usage: TokenUsage, cost: float
    ) -> MalformedResponse:
        self._total_malformed += 1
        self.logger.warning("Malformed reasoning response", {"model": model, "error": error})
        return MalformedResponse(raw=content, error=error, model=model, usage=usage, cost=cost)

    @staticmethod
    def _extract_usage(response: Any) -> TokenUsage:
        usage = getattr(response, "usage", None)
        if usage is None:
            return TokenUsage()
        return TokenUsage(
            prompt_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
            completion_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
        )

    def get_statistics(self) -> dict[str, Any]:
        return {
            "total_calls": self._total_calls,
            "total_prompt_tokens": self._total_prompt_tokens,
            "total_completion_tokens": self._total_completion_tokens,
            "total_errors": self._total_errors,
            "total_malformed": self._total_malformed,
            "total_cost": round(self._total_cost, 6),
        }

    def reset_statistics(self) -> None:
        self._total_calls = 0
        self._total_prompt_tokens = 0
        self._total_completion_tokens = 0
        self._total_errors = 0
        self._total_malformed = 0
        self._total_cost = 0.0
