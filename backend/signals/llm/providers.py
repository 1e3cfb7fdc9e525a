"""
LLM providers used by facts extraction.

Each provider exposes ``available()`` and ``run(prompt, ...)``. ``run`` never
raises for transport or API failures; it returns a ``ProviderResult`` whose
``error`` is set instead, so the chain runner can move on to the next provider.
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional, Iterable

import httpx

from ..config import settings

logger = logging.getLogger(__name__)


@dataclass
class ProviderResult:
    content: str = ""
    model: Optional[str] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    latency_ms: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class LLMProvider:
    name = "base"

    @property
    def model_name(self) -> str:
        return "unknown"

    def available(self) -> bool:
        return False

    def run(
        self,
        prompt: str,
        *,
        system_message: Optional[str] = None,
        max_tokens: int = 2500,
        temperature: float = 0.1,
        timeout_s: float = 45.0,
    ) -> ProviderResult:
        raise NotImplementedError


def _messages(prompt: str, system_message: Optional[str]) -> list[dict]:
    messages = []
    if system_message:
        messages.append({"role": "system", "content": system_message})
    messages.append({"role": "user", "content": prompt})
    return messages


class OpenAIProvider(LLMProvider):
    name = "openai"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.model = model or getattr(settings, "openai_model", None) or "gpt-4o-mini"

    @property
    def model_name(self) -> str:
        return self.model

    def available(self) -> bool:
        return bool(self.api_key)

    def _client(self, timeout_s: float):
        from openai import OpenAI
        return OpenAI(api_key=self.api_key, timeout=timeout_s, max_retries=0)

    def run(self, prompt, *, system_message=None, max_tokens=2500, temperature=0.1, timeout_s=45.0):
        started = time.monotonic()
        try:
            response = self._client(timeout_s).chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=float(temperature),
                # If supported by the model, this strongly enforces valid JSON output.
                response_format={"type": "json_object"},
                messages=_messages(prompt, system_message),
            )
        except Exception as e:
            latency_ms = int((time.monotonic() - started) * 1000)
            logger.warning(f"OpenAI call failed: {type(e).__name__}: {e}")
            return ProviderResult(model=self.model, latency_ms=latency_ms, error=f"{type(e).__name__}: {e}")

        latency_ms = int((time.monotonic() - started) * 1000)
        usage = getattr(response, "usage", None)
        return ProviderResult(
            content=(response.choices[0].message.content or "").strip(),
            model=getattr(response, "model", None) or self.model,
            input_tokens=getattr(usage, "prompt_tokens", None),
            output_tokens=getattr(usage, "completion_tokens", None),
            latency_ms=latency_ms,
        )


class OllamaProvider(LLMProvider):
    """Local Ollama server via its /api/chat endpoint."""

    name = "ollama"

    def __init__(self, base_url: Optional[str] = None, model: Optional[str] = None):
        self.base_url = (base_url if base_url is not None else settings.ollama_base_url or "").rstrip("/")
        self.model = model or settings.ollama_model

    @property
    def model_name(self) -> str:
        return self.model

    def available(self) -> bool:
        return bool(self.base_url)

    def run(self, prompt, *, system_message=None, max_tokens=2500, temperature=0.1, timeout_s=45.0):
        started = time.monotonic()
        payload = {
            "model": self.model,
            "messages": _messages(prompt, system_message),
            "stream": False,
            "format": "json",
            "options": {"temperature": float(temperature), "num_predict": int(max_tokens)},
        }
        try:
            resp = httpx.post(f"{self.base_url}/api/chat", json=payload, timeout=timeout_s)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            latency_ms = int((time.monotonic() - started) * 1000)
            logger.warning(f"Ollama call failed: {type(e).__name__}: {e}")
            return ProviderResult(model=self.model, latency_ms=latency_ms, error=f"{type(e).__name__}: {e}")

        latency_ms = int((time.monotonic() - started) * 1000)
        return ProviderResult(
            content=((data.get("message") or {}).get("content") or "").strip(),
            model=data.get("model") or self.model,
            input_tokens=data.get("prompt_eval_count"),
            output_tokens=data.get("eval_count"),
            latency_ms=latency_ms,
        )


PROVIDER_CLASSES = {
    "openai": OpenAIProvider,
    "ollama": OllamaProvider,
}


def build_provider_chain(names: Iterable[str]) -> list[LLMProvider]:
    """Instantiate providers in order. Unknown names are logged and skipped."""
    chain: list[LLMProvider] = []
    for name in names:
        cls = PROVIDER_CLASSES.get((name or "").strip().lower())
        if cls is None:
            logger.warning(f"Unknown LLM provider in chain: {name!r}")
            continue
        chain.append(cls())
    return chain
