"""Ordered provider fallback with one LlmApiLog row per attempt."""
import logging
from typing import Callable, Optional, Sequence, Tuple, Any

from sqlalchemy.orm import Session

from ..models import LlmApiLog
from .providers import LLMProvider, ProviderResult

logger = logging.getLogger(__name__)

# accept(content) -> (parsed, log_data, accepted)
AcceptFn = Callable[[str], Tuple[Any, dict, bool]]


class ProviderChainRunner:
    """
    Try providers in order; the first response that ``accept`` approves wins.

    Unavailable providers are skipped. Provider errors, timeouts and rejected
    responses all fall through to the next provider.
    """

    def __init__(
        self,
        db: Session,
        providers: Sequence[LLMProvider],
        prompt: str,
        *,
        system_message: Optional[str] = None,
        operation_type: str = "email_facts_extraction",
        synced_email_id: Optional[int] = None,
        max_tokens: int = 2500,
        temperature: float = 0.1,
        timeout_s: float = 45.0,
    ):
        self.db = db
        self.providers = list(providers)
        self.prompt = prompt
        self.system_message = system_message
        self.operation_type = operation_type
        self.synced_email_id = synced_email_id
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_s = timeout_s

    def _log_attempt(
        self,
        provider: LLMProvider,
        result: ProviderResult,
        status: str,
        error: Optional[str] = None,
        log_data: Optional[dict] = None,
    ) -> Optional[int]:
        row = LlmApiLog(
            operation_type=self.operation_type,
            synced_email_id=self.synced_email_id,
            provider=provider.name,
            model=result.model or provider.model_name,
            status=status,
            latency_ms=result.latency_ms,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            error=error,
            response_metadata=log_data or {},
        )
        self.db.add(row)
        self.db.commit()
        return row.id

    def run(self, accept: AcceptFn) -> dict:
        available = [p for p in self.providers if p.available()]
        if not available:
            logger.warning(f"No LLM providers available for {self.operation_type}")
            return {"success": False, "error": "no_providers_available"}

        last_error = None
        for provider in available:
            result = provider.run(
                self.prompt,
                system_message=self.system_message,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                timeout_s=self.timeout_s,
            )
            if result.ok and result.latency_ms > int(self.timeout_s * 1000):
                result.error = f"timeout: exceeded {self.timeout_s}s"

            if not result.ok:
                self._log_attempt(provider, result, "error", error=result.error)
                last_error = f"{provider.name}: {result.error}"
                logger.warning(f"LLM provider failed, trying next: {last_error}")
                continue

            parsed, log_data, accepted = accept(result.content)
            if not accepted:
                self._log_attempt(provider, result, "rejected", error="response_rejected", log_data=log_data)
                last_error = f"{provider.name}: response_rejected"
                logger.warning(f"LLM response rejected, trying next: provider={provider.name}")
                continue

            log_id = self._log_attempt(provider, result, "success", log_data=log_data)
            return {
                "success": True,
                "parsed": parsed,
                "provider": provider.name,
                "model": result.model or provider.model_name,
                "latency_ms": result.latency_ms,
                "llm_api_log_id": log_id,
            }

        return {"success": False, "error": last_error or "all_providers_failed"}
