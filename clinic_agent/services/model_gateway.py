"""Sequential failover across upstream chat-model providers.

Each provider is a LangChain chat model.  On every turn the gateway walks
the providers in priority order and returns the first non-empty completion.
A provider is called at most once per turn; the SDK-level retries are
switched off in :func:`build_providers` so a rate-limited model is never
hammered.

Per-provider calls return a tagged :data:`~clinic_agent.models.ProviderResult`
(``Ok`` / ``RateLimited`` / ``OtherError``) so the loop's decision is a
plain ``isinstance`` check rather than string matching on exceptions.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

import anthropic
import openai
from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_openai import ChatOpenAI

from clinic_agent import config
from clinic_agent.models import (
    AttemptOutcome,
    Completion,
    Ok,
    OtherError,
    ProviderAttempt,
    ProviderResult,
    RateLimited,
)
from clinic_agent.services.metrics import metrics

logger = logging.getLogger(__name__)

_RATE_LIMIT_ERRORS = (openai.RateLimitError, anthropic.RateLimitError)


class ProvidersExhaustedError(Exception):
    """Every provider failed for this turn."""

    def __init__(self, attempts: Sequence[ProviderAttempt]):
        self.attempts = list(attempts)
        self.rate_limited = any(
            a.outcome is AttemptOutcome.RATE_LIMITED for a in self.attempts
        )
        tried = ", ".join(f"{a.provider_id}={a.outcome.value}" for a in self.attempts)
        super().__init__(f"All model providers failed ({tried or 'none configured'})")


@dataclass(frozen=True)
class Provider:
    provider_id: str
    model: BaseChatModel


# ── Provider construction ───────────────────────────────────────────


def build_providers() -> list[Provider]:
    """Build the provider list from configuration.

    One OpenRouter model per entry of ``MODEL_PRIORITY`` (when an OpenRouter
    key is set), followed by the Anthropic fallback (when an Anthropic key is
    set).  An empty list means the deployment has no model credentials.
    """
    providers: list[Provider] = []

    if config.OPENROUTER_API_KEY:
        for model_id in config.MODEL_PRIORITY:
            providers.append(
                Provider(
                    provider_id=model_id,
                    model=ChatOpenAI(
                        model=model_id,
                        api_key=config.OPENROUTER_API_KEY,
                        base_url=config.OPENROUTER_BASE_URL,
                        temperature=config.MODEL_TEMPERATURE,
                        timeout=config.PROVIDER_TIMEOUT_SECONDS,
                        max_retries=0,
                        default_headers={
                            "HTTP-Referer": config.SITE_URL,
                            "X-Title": config.CLINIC_NAME,
                        },
                    ),
                )
            )

    if config.ANTHROPIC_API_KEY:
        providers.append(
            Provider(
                provider_id=f"anthropic/{config.ANTHROPIC_FALLBACK_MODEL}",
                model=ChatAnthropic(
                    model=config.ANTHROPIC_FALLBACK_MODEL,
                    api_key=config.ANTHROPIC_API_KEY,
                    temperature=config.MODEL_TEMPERATURE,
                    timeout=config.PROVIDER_TIMEOUT_SECONDS,
                    max_retries=0,
                    max_tokens=1024,
                ),
            )
        )

    logger.debug("Configured %d model provider(s)", len(providers))
    return providers


# ── Single provider call ────────────────────────────────────────────


def is_rate_limit(exc: BaseException) -> bool:
    """True for SDK rate-limit errors or anything carrying HTTP status 429."""
    if isinstance(exc, _RATE_LIMIT_ERRORS):
        return True
    return getattr(exc, "status_code", None) == 429


def _message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    # Anthropic returns a list of content blocks.
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def call_provider(provider: Provider, messages: list[BaseMessage]) -> ProviderResult:
    """Issue exactly one completion request and classify the outcome."""
    try:
        response = provider.model.invoke(messages)
    except Exception as exc:
        if is_rate_limit(exc):
            return RateLimited(str(exc))
        return OtherError(f"{type(exc).__name__}: {exc}")

    text = _message_text(response).strip()
    if not text:
        return OtherError("No completion choices returned")
    return Ok(text)


# ── Failover loop ───────────────────────────────────────────────────


class ModelGateway:
    def __init__(self, providers: Sequence[Provider]):
        self._providers = list(providers)

    @property
    def providers(self) -> list[Provider]:
        return list(self._providers)

    def complete(self, messages: list[BaseMessage]) -> Completion:
        """Return the first successful completion, or raise
        :class:`ProvidersExhaustedError` once every provider has failed.
        """
        attempts: list[ProviderAttempt] = []

        for provider in self._providers:
            t0 = time.perf_counter()
            result = call_provider(provider, messages)
            elapsed = (time.perf_counter() - t0) * 1000

            if isinstance(result, Ok):
                attempt = ProviderAttempt(provider.provider_id, AttemptOutcome.SUCCESS)
                metrics.record_provider_attempt(attempt, latency_ms=elapsed)
                logger.debug("Provider %s answered in %.0fms", provider.provider_id, elapsed)
                return Completion(provider_id=provider.provider_id, content=result.content)

            if isinstance(result, RateLimited):
                outcome = AttemptOutcome.RATE_LIMITED
            else:
                outcome = AttemptOutcome.OTHER_ERROR
            attempt = ProviderAttempt(provider.provider_id, outcome)
            attempts.append(attempt)
            metrics.record_provider_attempt(attempt, latency_ms=elapsed)
            logger.warning(
                "Model %s failed (%s): %.200s",
                provider.provider_id, outcome.value, result.message,
            )

        error = ProvidersExhaustedError(attempts)
        metrics.record_exhausted(error.rate_limited)
        logger.error("%s", error)
        raise error
