"""
Domain checks on a schema-valid plan, run before anything executes.

Fails closed: one error anywhere makes the whole plan non-executable.

Error types:
  missing_evidence             step cites no evidence
  evidence_not_in_body         cited text/URL is not in the canonical body
  target_unresolvable          application or round target does not exist in the input
  duplicate_step_id            two steps share an id
  source_mismatch              params.source points at a different email
  confidence_below_threshold   non-low-risk step on low-confidence facts
"""
import logging
import re
from typing import Optional, Union

from ..config import PipelineConfig
from ..contracts.types import DecisionInput, DecisionPlan, PlanStep
from ..execution.handlers import REQUIRES_APPLICATION, Action, parse_action
from ..execution.targets import parse_selector, resolve_round
from ..facts.canonical_event import URL_RE

logger = logging.getLogger(__name__)

ROUND_TARGETED_ACTIONS = frozenset(
    {Action.UPDATE_ROUND, Action.SET_ROUND_RESULT, Action.CREATE_INTERVIEW_FEEDBACK}
)


def normalize_text(text: Optional[str]) -> str:
    return re.sub(r"\s+", " ", (text or "").lower()).strip()


def normalize_alnum(text: Optional[str]) -> str:
    return re.sub(r"\s+", " ", re.sub(r"[^a-z0-9]+", " ", (text or "").lower())).strip()


class SemanticValidator:
    def __init__(
        self,
        decision_input: Union[dict, DecisionInput],
        decision_plan: Union[dict, DecisionPlan],
        config: Optional[PipelineConfig] = None,
    ):
        if not isinstance(decision_input, DecisionInput):
            decision_input = DecisionInput.model_validate(decision_input)
        if not isinstance(decision_plan, DecisionPlan):
            decision_plan = DecisionPlan.model_validate(decision_plan)
        self.input = decision_input
        self.plan = decision_plan
        self.config = config or PipelineConfig()

    def errors(self) -> list[dict]:
        body = self.input.body_text
        body_norm = normalize_text(body)
        body_alnum = normalize_alnum(body)
        errs: list[dict] = []
        seen_ids: set = set()

        for step in self.plan.plan:
            if step.step_id in seen_ids:
                errs.append({"type": "duplicate_step_id", "step_id": step.step_id})
            seen_ids.add(step.step_id)

            if step.action == "noop":
                continue

            errs.extend(self._evidence_errors(step, body, body_norm, body_alnum))
            errs.extend(self._target_errors(step))
            errs.extend(self._source_errors(step))
            errs.extend(self._confidence_errors(step))

        if errs:
            logger.warning(
                f"Semantic validation failed: synced_email_id={self.input.email_id} errors={len(errs)} "
                f"types={sorted({e['type'] for e in errs})}"
            )
        return errs

    def _evidence_errors(self, step: PlanStep, body: str, body_norm: str, body_alnum: str) -> list[dict]:
        if not step.evidence:
            return [{"type": "missing_evidence", "step_id": step.step_id}]
        errs = []
        for ev in step.evidence:
            ev = ev or ""
            if not normalize_alnum(ev):
                # Blank or punctuation-only evidence cites nothing from the email.
                errs.append({"type": "evidence_not_in_body", "step_id": step.step_id, "evidence": ev})
                continue
            urls = URL_RE.findall(ev)
            if urls:
                # Each cited URL must appear in the body; trailing punctuation there is fine.
                if any(not re.search(re.escape(u), body, re.IGNORECASE) for u in urls if u.strip()):
                    errs.append({"type": "evidence_not_in_body", "step_id": step.step_id, "evidence": ev})
                continue
            if normalize_text(ev) not in body_norm and normalize_alnum(ev) not in body_alnum:
                errs.append({"type": "evidence_not_in_body", "step_id": step.step_id, "evidence": ev})
        return errs

    def _target_errors(self, step: PlanStep) -> list[dict]:
        app = self.input.application
        action = parse_action(step.action)

        def err(reason: str) -> dict:
            return {"type": "target_unresolvable", "step_id": step.step_id, "reason": reason}

        if step.target.application_id is not None and (app is None or step.target.application_id != app.id):
            return [err("application_mismatch")]
        if action in REQUIRES_APPLICATION and app is None:
            return [err("no_application")]
        if action in ROUND_TARGETED_ACTIONS:
            selector = parse_selector(step.target.round)
            if selector is None:
                return [err("unknown_round_selector")]
            if resolve_round(selector, app.rounds_recent) is None:
                return [err("round_not_found")]
        return []

    def _source_errors(self, step: PlanStep) -> list[dict]:
        source_id = step.source_email_id
        if source_id is not None and source_id != self.input.email_id:
            return [{"type": "source_mismatch", "step_id": step.step_id, "synced_email_id": source_id}]
        return []

    def _confidence_errors(self, step: PlanStep) -> list[dict]:
        confidence = self.input.facts.extraction.confidence
        threshold = self.config.min_extraction_confidence
        if step.risk != "low" and confidence < threshold:
            return [
                {
                    "type": "confidence_below_threshold",
                    "step_id": step.step_id,
                    "risk": step.risk,
                    "confidence": confidence,
                    "threshold": threshold,
                }
            ]
        return []
