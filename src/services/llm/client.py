"""
LLMClient — Client multi-fournisseur pour les actions IA.

UN client, DEUX providers (Claude, OpenAI), MÊME interface.

Usage :
    from services.llm import LLMClient

    client = LLMClient()

    # Provider par défaut
    response = await client.complete("Analyse ce message...")

    # Réponse JSON attendue
    response = await client.complete_structured(prompt, system=system, max_tokens=300)

Design decisions :
  - Async par défaut (les appels LLM sont I/O bound)
  - Retry avec backoff exponentiel
  - Fallback automatique si un provider échoue
  - Ne lève JAMAIS : chaque appel retourne un LLMResponse typé (success/error)
  - Clients SDK injectables pour les tests
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import anthropic
import openai
from pydantic import BaseModel, Field

from services.config import LLMProvider, Settings, get_settings


logger = logging.getLogger("clyra.llm")


# ══════════════════════════════════════════════════════════════
# RESPONSE MODEL
# ══════════════════════════════════════════════════════════════


class LLMResponse(BaseModel):
    """Réponse unifiée de n'importe quel provider."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    provider: LLMProvider
    model: str
    content: str = ""
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    latency_ms: float = Field(default=0, ge=0)
    cost_usd: float = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error: str | None = None
    success: bool = True


# ══════════════════════════════════════════════════════════════
# PRICING (USD par 1M tokens)
# ══════════════════════════════════════════════════════════════

PRICING: dict[str, dict[str, float]] = {
    "claude-sonnet-4-20250514": {"input": 3.0, "output": 15.0},
    "claude-haiku-4-20250514": {"input": 0.80, "output": 4.0},
    "gpt-4o": {"input": 2.50, "output": 10.0},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
}


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Estime le coût USD d'un appel."""
    prices = PRICING.get(model, {"input": 1.0, "output": 5.0})
    cost = (
        input_tokens / 1_000_000 * prices["input"]
        + output_tokens / 1_000_000 * prices["output"]
    )
    return round(cost, 6)


JSON_INSTRUCTION = (
    "Réponds UNIQUEMENT en JSON valide. "
    "Pas de texte avant ou après le JSON. "
    "Pas de markdown. Juste le JSON brut."
)


# ══════════════════════════════════════════════════════════════
# CLIENT
# ══════════════════════════════════════════════════════════════


class LLMClient:
    """
    Client LLM multi-fournisseur.

    `clients` permet d'injecter des clients SDK déjà construits
    (provider → client) ; sinon ils sont créés depuis les clés configurées.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        clients: dict[LLMProvider, Any] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clients: dict[LLMProvider, Any] = dict(clients) if clients is not None else {}
        self._total_tokens: int = 0
        self._total_cost_usd: float = 0.0
        self._call_count: int = 0

        if clients is None:
            self._init_clients()

    def _init_clients(self) -> None:
        """Initialise un client par provider configuré."""
        if self._settings.has_claude:
            self._clients[LLMProvider.CLAUDE] = anthropic.AsyncAnthropic(
                api_key=self._settings.claude_api_key,
                timeout=self._settings.llm_timeout_seconds,
            )
        if self._settings.has_openai:
            self._clients[LLMProvider.OPENAI] = openai.AsyncOpenAI(
                api_key=self._settings.openai_api_key,
                timeout=self._settings.llm_timeout_seconds,
            )

    @property
    def available_providers(self) -> list[LLMProvider]:
        return list(self._clients.keys())

    @property
    def is_configured(self) -> bool:
        return bool(self._clients)

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "total_calls": self._call_count,
            "total_tokens": self._total_tokens,
            "total_cost_usd": round(self._total_cost_usd, 4),
            "available_providers": [p.value for p in self.available_providers],
        }

    # ──────────────────────────────────────────────────────
    # MAIN API
    # ──────────────────────────────────────────────────────

    async def complete(
        self,
        prompt: str,
        system: str | None = None,
        provider: LLMProvider | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        fallback: bool = True,
    ) -> LLMResponse:
        """
        Appel LLM unifié.

        Le provider demandé (ou celui par défaut) est essayé en premier ;
        s'il n'est pas disponible ou échoue, les autres providers
        configurés prennent le relais quand `fallback` est vrai.
        """
        provider = provider or self._settings.default_llm_provider
        if temperature is None:
            temperature = self._settings.llm_default_temperature
        max_tokens = max_tokens or self._settings.llm_default_max_tokens

        if not self.is_configured:
            return LLMResponse(
                provider=provider,
                model=model or self._settings.get_default_model(provider),
                success=False,
                error="Aucun fournisseur IA configuré",
            )

        order = [provider] + [p for p in self.available_providers if p != provider]
        if not fallback:
            order = [provider]

        response: LLMResponse | None = None
        for candidate in order:
            if candidate not in self._clients:
                continue
            response = await self._call_with_retry(
                provider=candidate,
                model=model if candidate == provider and model else self._settings.get_default_model(candidate),
                prompt=prompt,
                system=system,
                temperature=temperature,
                max_tokens=max_tokens,
            )
            if response.success:
                break
            logger.warning(f"LLM {candidate.value} failed: {response.error}")

        if response is None:
            response = LLMResponse(
                provider=provider,
                model=model or self._settings.get_default_model(provider),
                success=False,
                error=f"Fournisseur {provider.value} non configuré",
            )

        self._call_count += 1
        self._total_tokens += response.total_tokens
        self._total_cost_usd += response.cost_usd
        return response

    async def complete_structured(
        self,
        prompt: str,
        system: str | None = None,
        provider: LLMProvider | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Appel optimisé pour une réponse JSON."""
        full_system = f"{system}\n\n{JSON_INSTRUCTION}" if system else JSON_INSTRUCTION
        return await self.complete(
            prompt=prompt,
            system=full_system,
            provider=provider,
            temperature=0.1 if temperature is None else temperature,
            max_tokens=max_tokens,
        )

    # ──────────────────────────────────────────────────────
    # PROVIDER-SPECIFIC CALLS
    # ──────────────────────────────────────────────────────

    async def _call_with_retry(
        self,
        provider: LLMProvider,
        model: str,
        prompt: str,
        system: str | None,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        """Appel avec retry et backoff exponentiel."""
        max_retries = self._settings.llm_max_retries
        delay = self._settings.llm_retry_delay_seconds
        calls = {
            LLMProvider.CLAUDE: self._call_claude,
            LLMProvider.OPENAI: self._call_openai,
        }

        last_error = ""
        for attempt in range(max_retries):
            try:
                start = time.monotonic()
                response = await calls[provider](model, prompt, system, temperature, max_tokens)
                response.latency_ms = round((time.monotonic() - start) * 1000, 1)
                return response
            except Exception as e:
                last_error = f"{type(e).__name__}: {e}"
                if attempt < max_retries - 1:
                    await asyncio.sleep(delay * (2 ** attempt))

        return LLMResponse(
            provider=provider,
            model=model,
            success=False,
            error=f"Échec après {max_retries} tentative(s). Dernière erreur : {last_error}",
        )

    async def _call_claude(
        self,
        model: str,
        prompt: str,
        system: str | None,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        """Appel Anthropic Claude."""
        client = self._clients[LLMProvider.CLAUDE]

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system

        raw = await client.messages.create(**kwargs)
        content = raw.content[0].text if raw.content else ""
        input_tokens = raw.usage.input_tokens
        output_tokens = raw.usage.output_tokens

        return LLMResponse(
            provider=LLMProvider.CLAUDE,
            model=model,
            content=content,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            cost_usd=estimate_cost(model, input_tokens, output_tokens),
        )

    async def _call_openai(
        self,
        model: str,
        prompt: str,
        system: str | None,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        """Appel OpenAI."""
        client = self._clients[LLMProvider.OPENAI]

        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        raw = await client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

        choice = raw.choices[0] if raw.choices else None
        content = choice.message.content if choice else ""
        input_tokens = raw.usage.prompt_tokens if raw.usage else 0
        output_tokens = raw.usage.completion_tokens if raw.usage else 0

        return LLMResponse(
            provider=LLMProvider.OPENAI,
            model=model,
            content=content or "",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            cost_usd=estimate_cost(model, input_tokens, output_tokens),
        )
