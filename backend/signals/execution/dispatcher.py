"""
Step dispatch: application guard, preconditions, handler, recording.

Handler exceptions are not caught here. They are recorded as a failed event
by the recorder and propagate to the caller, which stops the plan.
"""
import logging
from typing import Optional, Union

from sqlalchemy.orm import Session

from ..contracts.types import PlanStep
from ..models import SyncedEmail
from ..observability.recorder import EmailPipelineRecorder
from .handlers import HANDLERS, REQUIRES_APPLICATION, parse_action
from .preconditions import PreconditionContext, evaluate_all

logger = logging.getLogger(__name__)


class Dispatcher:
    def __init__(self, db: Session, email: SyncedEmail, recorder: Optional[EmailPipelineRecorder] = None):
        self.db = db
        self.email = email
        self.recorder = recorder

    def dispatch(self, step: Union[PlanStep, dict]) -> Optional[dict]:
        """Returns the handler result, a skipped_* result, or None for noop."""
        if not isinstance(step, PlanStep):
            step = PlanStep.model_validate(step)
        action_name = step.action
        if action_name == "noop":
            return None

        action = parse_action(action_name)

        if action in REQUIRES_APPLICATION and not self.email.matched:
            res = {"step_id": step.step_id, "action": action_name, "status": "skipped_no_application"}
            self._emit_skipped(step, res)
            return res

        guard = evaluate_all(step.preconditions, PreconditionContext(self.db, self.email, step))
        if not guard["ok"]:
            res = {
                "step_id": step.step_id,
                "action": action_name,
                "status": "skipped_precondition_failed",
                "failed_preconditions": guard["failed"],
                "unknown_preconditions": guard["unknown"],
            }
            logger.info(f"Step skipped (preconditions): step_id={step.step_id} failed={guard['failed']}")
            self._emit_skipped(step, res)
            return res

        if action is None:
            # Recorded like any other skip so the audit trail shows the step was seen.
            res = {"step_id": step.step_id, "action": action_name, "status": "skipped_unknown_action"}
            logger.warning(f"Step skipped (unknown action): step_id={step.step_id} action={action_name!r}")
            self._emit_skipped(step, res)
            return res

        handler = HANDLERS[action](self.db, self.email)
        if self.recorder is None:
            return handler.call(step)
        return self.recorder.measure(
            f"execute_{action_name}",
            lambda: handler.call(step),
            input_payload={
                "step_id": step.step_id,
                "action": action_name,
                "target": step.target.model_dump(),
                "params": step.params,
            },
            output_override=lambda result: {"result": result},
        )

    def _emit_skipped(self, step: PlanStep, result: dict) -> None:
        if self.recorder is None:
            return
        self.recorder.event(
            f"execute_{step.action}",
            "skipped",
            input_payload={
                "step_id": step.step_id,
                "action": step.action,
                "target": step.target.model_dump(),
                "params": step.params,
                "preconditions": list(step.preconditions),
            },
            output_payload={"result": result},
        )
