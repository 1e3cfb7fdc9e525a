"""
Execution runner: email -> facts -> DecisionInput -> DecisionPlan -> validated dispatch.

Flow (LangGraph):
    START -> facts -> decision_input -> decision_plan -> semantic_validate -> dispatch -> END

Any gate that fails sets ``status`` and routes straight to END, so no step of
an invalid plan is ever dispatched. The outcome is written onto
``SyncedEmail.extracted_data["decision_execution_v1"]``.
"""
import logging
from datetime import datetime
from typing import Any, List, Optional, Sequence

from langgraph.graph import END, START, StateGraph
from sqlalchemy.orm import Session
from typing_extensions import TypedDict

from ..config import PipelineConfig
from ..contracts.schema_validator import (
    DECISION_INPUT_SCHEMA_ID,
    DECISION_PLAN_SCHEMA_ID,
    EMAIL_FACTS_SCHEMA_ID,
    JsonSchemaValidator,
)
from ..execution.dispatcher import Dispatcher
from ..facts.extractor import FACTS_KEY, FACTS_META_KEY, EmailFactsExtractor
from ..llm.providers import LLMProvider
from ..models import SyncedEmail
from ..observability.recorder import EmailPipelineRecorder
from .input_builder import DecisionInputBuilder
from .planner import Planner
from .semantic_validator import SemanticValidator

logger = logging.getLogger(__name__)

EXECUTION_META_KEY = "decision_execution_v1"


def now_iso() -> str:
    return datetime.utcnow().replace(microsecond=0).isoformat() + "Z"


def extraction_output(result: dict) -> dict:
    facts = result.get("facts") or {}
    out = {
        "success": result.get("success"),
        "llm_api_log_id": result.get("llm_api_log_id"),
        "kind": (facts.get("classification") or {}).get("kind"),
        "error": result.get("error"),
    }
    return {k: v for k, v in out.items() if v is not None}


def run_step(recorder: Optional[EmailPipelineRecorder], event_type: str, fn, **kwargs) -> Any:
    """Run ``fn`` under ``recorder.measure`` when recording, else directly."""
    if recorder is None:
        return fn()
    return recorder.measure(event_type, fn, **kwargs)


def extract_facts(
    db: Session,
    email: SyncedEmail,
    builder: DecisionInputBuilder,
    base: dict,
    config: PipelineConfig,
    recorder: Optional[EmailPipelineRecorder] = None,
    providers: Optional[Sequence[LLMProvider]] = None,
) -> dict:
    """Run the extractor; fall back to legacy-derived facts when it fails."""
    extractor = EmailFactsExtractor(db, email, decision_input_base=base, config=config, providers=providers)
    result = run_step(
        recorder,
        "email_facts_extraction",
        extractor.call,
        input_payload={"synced_email_id": email.id},
        output_override=extraction_output,
    )
    return result["facts"] if result["success"] else builder.build_fallback_facts()


def load_persisted_facts(email: SyncedEmail) -> Optional[dict]:
    """Facts from an earlier successful extraction, if they are still schema-valid."""
    data = email.extracted_data if isinstance(email.extracted_data, dict) else {}
    facts = data.get(FACTS_KEY)
    meta = data.get(FACTS_META_KEY)
    if not isinstance(facts, dict) or not isinstance(meta, dict) or meta.get("status") != "ok":
        return None
    if not JsonSchemaValidator(EMAIL_FACTS_SCHEMA_ID).is_valid(facts):
        return None
    return facts


def resolve_facts(
    db: Session,
    email: SyncedEmail,
    builder: DecisionInputBuilder,
    base: dict,
    config: PipelineConfig,
    recorder: Optional[EmailPipelineRecorder] = None,
    providers: Optional[Sequence[LLMProvider]] = None,
) -> dict:
    """Fallback facts when extraction is off; persisted facts when present; otherwise extract."""
    if not config.facts_extraction_enabled:
        return builder.build_fallback_facts()

    persisted = load_persisted_facts(email)
    if persisted is not None:
        if recorder:
            kind = (persisted.get("classification") or {}).get("kind")
            recorder.event(
                "email_facts_extraction",
                "success",
                output_payload={k: v for k, v in {"source": "persisted", "kind": kind}.items() if v},
            )
        return persisted

    return extract_facts(db, email, builder, base, config, recorder=recorder, providers=providers)


class ExecutionState(TypedDict, total=False):
    """State that flows through the execution graph."""
    base: dict
    facts: dict
    decision_input: dict
    decision_plan: dict
    applied: List[dict]

    # Set by a failing gate; routes to END.
    status: str
    errors: List[Any]


class ExecutionRunner:
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
        self.builder = DecisionInputBuilder(email)

    def call(self) -> bool:
        """Returns True only when the plan was executed."""
        if not self.config.execution_enabled:
            logger.info(f"Execution disabled: synced_email_id={self.email.id}")
            return False

        logger.info(f"Execution start: synced_email_id={self.email.id} matched={self.email.matched}")
        try:
            state = self.graph().invoke({"base": self.builder.build_base()})
        except Exception as e:
            logger.error(f"Execution exception: synced_email_id={self.email.id} {type(e).__name__}: {e}")
            self.db.rollback()
            self.persist("exception", [{"message": str(e), "class": type(e).__name__}])
            raise

        if state.get("status"):
            return self.persist(state["status"], state.get("errors") or [])

        applied = state.get("applied") or []
        logger.info(f"Execution executed: synced_email_id={self.email.id} applied_steps={len(applied)}")
        return self.persist("executed", [], applied=applied)

    # -- graph -------------------------------------------------------------

    def graph(self):
        graph = StateGraph(ExecutionState)

        graph.add_node("facts", self.facts_node)
        graph.add_node("decision_input", self.decision_input_node)
        graph.add_node("decision_plan", self.decision_plan_node)
        graph.add_node("semantic_validate", self.semantic_validate_node)
        graph.add_node("dispatch", self.dispatch_node)

        graph.add_edge(START, "facts")
        graph.add_edge("facts", "decision_input")
        graph.add_conditional_edges("decision_input", _continue_or_end("decision_plan"))
        graph.add_conditional_edges("decision_plan", _continue_or_end("semantic_validate"))
        graph.add_conditional_edges("semantic_validate", _continue_or_end("dispatch"))
        graph.add_edge("dispatch", END)

        return graph.compile()

    def facts_node(self, state: ExecutionState) -> dict:
        facts = resolve_facts(
            self.db,
            self.email,
            self.builder,
            state["base"],
            self.config,
            recorder=self.recorder,
            providers=self.providers,
        )
        return {"facts": facts}

    def decision_input_node(self, state: ExecutionState) -> dict:
        decision_input = run_step(
            self.recorder,
            "decision_input_build",
            lambda: self.builder.build(facts=state["facts"]),
            input_payload={"synced_email_id": self.email.id},
            output_override={"matched": self.email.matched},
        )
        errors = JsonSchemaValidator(DECISION_INPUT_SCHEMA_ID).errors_for(decision_input)
        if errors:
            logger.warning(f"Execution invalid DecisionInput: synced_email_id={self.email.id} errors={len(errors)}")
            self.event("decision_plan_schema_validate", "failed", {"decision_input_error_count": len(errors)})
            return {"decision_input": decision_input, "status": "decision_input_invalid", "errors": errors}
        return {"decision_input": decision_input}

    def decision_plan_node(self, state: ExecutionState) -> dict:
        decision_plan = run_step(
            self.recorder,
            "decision_plan_build",
            lambda: Planner(state["decision_input"]).plan(),
            input_payload={"synced_email_id": self.email.id},
            output_override={},
        )
        errors = JsonSchemaValidator(DECISION_PLAN_SCHEMA_ID).errors_for(decision_plan)
        if errors:
            logger.warning(f"Execution invalid DecisionPlan: synced_email_id={self.email.id} errors={len(errors)}")
            self.event("decision_plan_schema_validate", "failed", {"decision_plan_error_count": len(errors)})
            return {"decision_plan": decision_plan, "status": "decision_plan_invalid", "errors": errors}
        self.event(
            "decision_plan_schema_validate",
            "success",
            {"decision": decision_plan.get("decision"), "steps": len(decision_plan.get("plan") or [])},
        )
        return {"decision_plan": decision_plan}

    def semantic_validate_node(self, state: ExecutionState) -> dict:
        validator = SemanticValidator(state["decision_input"], state["decision_plan"], self.config)
        errors = run_step(
            self.recorder,
            "decision_plan_semantic_validate",
            validator.errors,
            input_payload={"synced_email_id": self.email.id},
            output_override=lambda errs: {"error_count": len(errs or [])},
        )
        if errors:
            logger.warning(f"Execution semantic invalid: synced_email_id={self.email.id} errors={len(errors)}")
            return {"status": "semantic_invalid", "errors": errors}
        return {}

    def dispatch_node(self, state: ExecutionState) -> dict:
        applied = run_step(
            self.recorder,
            "execution_dispatch",
            lambda: self.execute_steps(state["decision_plan"]),
            input_payload={"synced_email_id": self.email.id},
            output_override={},
        )
        return {"applied": applied}

    def execute_steps(self, plan: dict) -> list[dict]:
        # Strictly in plan order; a handler exception stops the rest.
        dispatcher = Dispatcher(self.db, self.email, recorder=self.recorder)
        results = (dispatcher.dispatch(step) for step in plan.get("plan") or [])
        return [r for r in results if r is not None]

    # -- persistence -------------------------------------------------------

    def event(self, event_type: str, status: str, output_payload: dict) -> None:
        if self.recorder:
            self.recorder.event(event_type, status, output_payload=output_payload)

    def persist(self, status: str, errors: list, applied: Optional[list] = None) -> bool:
        self.email.merge_extracted_data(
            {
                EXECUTION_META_KEY: {
                    "status": status,
                    "errors": errors,
                    "applied": applied,
                    "executed_at": now_iso(),
                }
            }
        )
        self.db.commit()
        return status == "executed"


def _continue_or_end(next_node: str):
    def route(state: ExecutionState) -> str:
        return END if state.get("status") else next_node
    return route
