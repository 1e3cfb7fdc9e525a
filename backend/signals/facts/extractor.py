"""
EmailFacts extraction.

Runs the extraction prompt through the provider chain and accepts only
schema-valid output. Every attempt is persisted onto
``SyncedEmail.extracted_data`` (facts + meta), success or not.
"""
import logging
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from ..config import PipelineConfig
from ..contracts.schema_validator import EMAIL_FACTS_SCHEMA_ID, JsonSchemaValidator
from ..llm.parsing import parse_json_response
from ..llm.providers import LLMProvider, build_provider_chain
from ..llm.runner import ProviderChainRunner
from ..models import SyncedEmail
from .prompts import DEFAULT_SYSTEM_PROMPT, build_email_facts_prompt

logger = logging.getLogger(__name__)

OPERATION_TYPE = "email_facts_extraction"
FACTS_KEY = "email_facts_v1"
FACTS_META_KEY = "email_facts_meta_v1"


def _now_iso() -> str:
    return datetime.utcnow().replace(microsecond=0).isoformat() + "Z"


class EmailFactsExtractor:
    def __init__(
        self,
        db: Session,
        email: SyncedEmail,
        decision_input_base: dict,
        config: Optional[PipelineConfig] = None,
        providers: Optional[Sequence[LLMProvider]] = None,
    ):
        self.db = db
        self.email = email
        self.decision_input_base = decision_input_base
        self.config = config or PipelineConfig()
        self._providers = providers
        self._validator = JsonSchemaValidator(EMAIL_FACTS_SCHEMA_ID)

    @property
    def providers(self) -> list[LLMProvider]:
        if self._providers is None:
            self._providers = build_provider_chain(self.config.provider_chain)
        return list(self._providers)

    def build_prompt(self) -> str:
        return build_email_facts_prompt(
            self.decision_input_base["event"],
            application_snapshot=self.decision_input_base.get("application"),
            email_type=self.email.email_type,
        )

    def _accept(self, content: str):
        parsed = parse_json_response(content)
        schema_errors = self._validator.errors_for(parsed)
        accepted = not schema_errors
        log_data = {
            "schema_valid": accepted,
            "schema_error_count": len(schema_errors),
            "classification_kind": (parsed.get("classification") or {}).get("kind"),
            "confidence": (parsed.get("extraction") or {}).get("confidence"),
        }
        return parsed, {k: v for k, v in log_data.items() if v is not None}, accepted

    def call(self) -> dict:
        """Returns {"success": True, "facts", "llm_api_log_id"} or {"success": False, "error"}."""
        logger.info(f"EmailFacts extraction start: synced_email_id={self.email.id}")
        try:
            runner = ProviderChainRunner(
                self.db,
                self.providers,
                self.build_prompt(),
                system_message=DEFAULT_SYSTEM_PROMPT,
                operation_type=OPERATION_TYPE,
                synced_email_id=self.email.id,
                max_tokens=self.config.llm_max_tokens,
                temperature=0.1,
                timeout_s=self.config.llm_timeout_s,
            )
            result = runner.run(self._accept)

            if not result["success"]:
                logger.warning(
                    f"EmailFacts extraction failed: synced_email_id={self.email.id} error={result['error']}"
                )
                self._persist(None, {"status": "failed", "errors": [{"message": result["error"]}], "generated_at": _now_iso()})
                return {"success": False, "error": result["error"]}

            facts = result["parsed"]
            self._persist(
                facts,
                {
                    "status": "ok",
                    "provider": result["provider"],
                    "model": result["model"],
                    "llm_api_log_id": result["llm_api_log_id"],
                    "latency_ms": result["latency_ms"],
                    "generated_at": _now_iso(),
                },
            )
            kind = (facts.get("classification") or {}).get("kind")
            logger.info(f"EmailFacts extraction ok: synced_email_id={self.email.id} kind={kind}")
            return {"success": True, "facts": facts, "llm_api_log_id": result["llm_api_log_id"]}
        except Exception as e:
            logger.error(f"EmailFacts extraction exception: synced_email_id={self.email.id} {type(e).__name__}: {e}")
            self.db.rollback()
            self._persist(
                None,
                {
                    "status": "exception",
                    "errors": [{"message": str(e), "class": type(e).__name__}],
                    "generated_at": _now_iso(),
                },
            )
            return {"success": False, "error": str(e)}

    def _persist(self, facts: Optional[dict], meta: dict) -> None:
        self.email.merge_extracted_data({FACTS_KEY: facts, FACTS_META_KEY: meta})
        self.db.commit()
