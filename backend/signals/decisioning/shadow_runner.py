"""
Shadow decisioning: build and validate DecisionInput/DecisionPlan, execute nothing.

Both documents are persisted onto ``SyncedEmail.extracted_data`` under
versioned keys so plans can be inspected before execution is switched on.
"""
import logging
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from ..config import PipelineConfig
from ..contracts.schema_validator import DECISION_INPUT_SCHEMA_ID, DECISION_PLAN_SCHEMA_ID, JsonSchemaValidator
from ..llm.providers import LLMProvider
from ..models import SyncedEmail
from ..observability.recorder import EmailPipelineRecorder
from .input_builder import DecisionInputBuilder
from .planner import Planner
from .runner import now_iso, resolve_facts, run_step

logger = logging.getLogger(__name__)

DECISION_INPUT_KEY = "decision_input_v1"
DECISION_PLAN_KEY = "decision_plan_v1"
DECISION_META_KEY = "decisioning_meta_v1"


class ShadowRunner:
    def __init__(
        self,
        db: Session,
        email: SyncedEmail,
        config: Optional[PipelineConfig] = None,
        recorder: Optional[EmailPipelineRecorder] = None,
        providers: Optional[Sequence[LLMProvider]] = None,
    ):
        self.db = db
        self.email = email
        self.config = config or PipelineConfig()
        self.recorder = recorder
        self.providers = providers

    def call(self) -> bool:
        email = self.email
        logger.info(f"Shadow decisioning start: synced_email_id={email.id} matched={email.matched}")
        try:
            builder = DecisionInputBuilder(email)
            base = builder.build_base()
            facts = resolve_facts(
                self.db, email, builder, base, self.config, recorder=self.recorder, providers=self.providers
            )

            decision_input = run_step(
                self.recorder,
                "decision_input_build",
                lambda: builder.build(facts=facts),
                input_payload={"synced_email_id": email.id},
                output_override={"matched": email.matched},
            )
            input_errors = JsonSchemaValidator(DECISION_INPUT_SCHEMA_ID).errors_for(decision_input)
            if input_errors:
                logger.warning(
                    f"Shadow decisioning invalid DecisionInput: synced_email_id={email.id} errors={len(input_errors)}"
                )
                self._event("failed", {"decision_input_error_count": len(input_errors)})
                return self._persist(None, None, "decision_input_invalid", input_errors)

            decision_plan = run_step(
                self.recorder,
                "decision_plan_build",
                lambda: Planner(decision_input).plan(),
                input_payload={"synced_email_id": email.id},
                output_override={},
            )
            plan_errors = JsonSchemaValidator(DECISION_PLAN_SCHEMA_ID).errors_for(decision_plan)
            if plan_errors:
                logger.warning(
                    f"Shadow decisioning invalid DecisionPlan: synced_email_id={email.id} errors={len(plan_errors)}"
                )
                self._event("failed", {"decision_plan_error_count": len(plan_errors)})
                return self._persist(None, None, "decision_plan_invalid", plan_errors)

            self._event(
                "success",
                {"decision": decision_plan.get("decision"), "steps": len(decision_plan.get("plan") or [])},
            )
            self._persist(decision_input, decision_plan, "ok", [])
            logger.info(f"Shadow decisioning ok: synced_email_id={email.id} decision={decision_plan.get('decision')}")
            return True
        except Exception as e:
            logger.error(f"Shadow decisioning exception: synced_email_id={email.id} {type(e).__name__}: {e}")
            self.db.rollback()
            return self._persist(None, None, "exception", [{"message": str(e), "class": type(e).__name__}])

    def _event(self, status: str, output_payload: dict) -> None:
        if self.recorder:
            self.recorder.event("decision_plan_schema_validate", status, output_payload=output_payload)

    def _persist(self, decision_input, decision_plan, status: str, errors: list) -> bool:
        self.email.merge_extracted_data(
            {
                DECISION_INPUT_KEY: decision_input,
                DECISION_PLAN_KEY: decision_plan,
                DECISION_META_KEY: {"status": status, "errors": errors, "generated_at": now_iso()},
            }
        )
        self.db.commit()
        return status == "ok"
