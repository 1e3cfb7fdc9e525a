"""
Deterministic planner: DecisionInput document -> DecisionPlan document.

Pure function of its input. No I/O, no clock, no randomness; the same input
always yields the same plan.
"""
import logging
from typing import Union

from ..contracts.types import DecisionInput
from .rules import RULES, RuleOutcome
from .step_factory import StepFactory

logger = logging.getLogger(__name__)

PLAN_VERSION = "2026-01-27"


class Planner:
    def __init__(self, decision_input: Union[dict, DecisionInput]):
        if not isinstance(decision_input, DecisionInput):
            decision_input = DecisionInput.model_validate(decision_input)
        self.input = decision_input

    def _step_factory(self) -> StepFactory:
        app = self.input.application
        return StepFactory(
            application_id=app.id if app else None,
            synced_email_id=self.input.event.synced_email_id,
            email_date=self.input.event.email_date,
        )

    def decide(self) -> RuleOutcome:
        factory = self._step_factory()
        for rule_cls in RULES:
            outcome = rule_cls(self.input, factory).evaluate()
            if outcome is not None:
                return outcome
        return RuleOutcome.noop("no_rule_matched")

    def plan(self) -> dict:
        outcome = self.decide()
        logger.debug(
            f"Planned: synced_email_id={self.input.event.synced_email_id} decision={outcome.decision} "
            f"steps={len(outcome.steps)} reasons={outcome.reasons}"
        )
        return {
            "version": PLAN_VERSION,
            "decision": outcome.decision,
            "confidence": float(outcome.confidence),
            "reasons": list(outcome.reasons),
            "plan": list(outcome.steps) if outcome.decision == "apply" else [],
        }
