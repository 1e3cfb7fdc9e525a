"""Interview and company feedback handlers."""
from typing import Optional

from pydantic import BaseModel

from ...contracts.types import PlanStep
from ...models import CompanyFeedback, InterviewFeedback
from .base import Action, Handler, SourceRef


class CreateInterviewFeedbackParams(BaseModel):
    round_selector: Optional[str] = None
    went_well: Optional[str] = None
    to_improve: Optional[str] = None
    ai_summary: Optional[str] = None
    interviewer_notes: Optional[str] = None
    recommended_action: Optional[str] = None
    source: SourceRef = SourceRef()


class CreateInterviewFeedback(Handler):
    """At most one feedback row per round."""

    action = Action.CREATE_INTERVIEW_FEEDBACK
    Params = CreateInterviewFeedbackParams

    def apply(self, step: PlanStep, params: CreateInterviewFeedbackParams) -> dict:
        rnd = self.resolve_round(step)
        if rnd is None:
            return self.result(status="no_round_resolved")

        def lookup():
            return self.db.query(InterviewFeedback).filter(InterviewFeedback.interview_round_id == rnd.id).first()

        existing = lookup()
        if existing is not None:
            return self.result(status="already_exists", feedback_id=existing.id, round_id=rnd.id)

        row = InterviewFeedback(
            interview_round_id=rnd.id,
            went_well=params.went_well,
            to_improve=params.to_improve,
            ai_summary=params.ai_summary,
            interviewer_notes=params.interviewer_notes,
            recommended_action=params.recommended_action,
            source_email_id=self.email.id,
        )
        row, created = self.insert_or_fetch(row, lookup)
        if not created:
            return self.result(status="already_exists", feedback_id=row.id, round_id=rnd.id)
        return self.result(feedback_id=row.id, round_id=rnd.id)


class CreateCompanyFeedbackParams(BaseModel):
    feedback_type: Optional[str] = None
    feedback_text: Optional[str] = None
    rejection_reason: Optional[str] = None
    next_steps: Optional[str] = None
    source: SourceRef = SourceRef()


class CreateCompanyFeedback(Handler):
    """One company feedback row per source email."""

    action = Action.CREATE_COMPANY_FEEDBACK
    Params = CreateCompanyFeedbackParams

    def _existing(self) -> Optional[CompanyFeedback]:
        return self.db.query(CompanyFeedback).filter(CompanyFeedback.source_email_id == self.email.id).first()

    def apply(self, step: PlanStep, params: CreateCompanyFeedbackParams) -> dict:
        app = self.application
        if app is None:
            return self.result(status="no_application")

        existing = self._existing()
        if existing is not None:
            return self.result(status="already_exists", feedback_id=existing.id)

        row = CompanyFeedback(
            interview_application_id=app.id,
            feedback_type=params.feedback_type or "general",
            feedback_text=params.feedback_text,
            rejection_reason=params.rejection_reason,
            next_steps=params.next_steps,
            received_at=self.email.email_date,
            source_email_id=self.email.id,
        )
        row, created = self.insert_or_fetch(row, self._existing)
        if not created:
            return self.result(status="already_exists", feedback_id=row.id)
        return self.result(feedback_id=row.id)
