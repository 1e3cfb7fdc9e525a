"""Interview round handlers."""
import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import func

from ...contracts.types import PlanStep
from ...models import ROUND_RESULTS, ROUND_STAGES, InterviewRound
from ..targets import parse_iso_datetime
from .base import Action, Handler, SourceRef

logger = logging.getLogger(__name__)


def _normalize_stage(stage: Optional[str]) -> str:
    if not stage:
        return "screening"
    return stage if stage in ROUND_STAGES else "other"


class CreateRoundParams(BaseModel):
    stage: Optional[str] = None
    stage_name: Optional[str] = None
    scheduled_at: Optional[str] = None
    duration_minutes: Optional[int] = None
    interviewer_name: Optional[str] = None
    interviewer_role: Optional[str] = None
    video_link: Optional[str] = None
    notes: Optional[str] = None
    confirmation_source: Optional[str] = None
    source: SourceRef = SourceRef()


class CreateRound(Handler):
    """One round per source email."""

    action = Action.CREATE_ROUND
    Params = CreateRoundParams

    def _existing(self) -> Optional[InterviewRound]:
        return self.db.query(InterviewRound).filter(InterviewRound.source_email_id == self.email.id).first()

    def apply(self, step: PlanStep, params: CreateRoundParams) -> dict:
        app = self.application
        if app is None:
            return self.result(status="no_application")

        existing = self._existing()
        if existing is not None:
            return self.result(status="already_exists", round_id=existing.id)

        max_position = (
            self.db.query(func.max(InterviewRound.position))
            .filter(InterviewRound.interview_application_id == app.id)
            .scalar()
        )
        row = InterviewRound(
            interview_application_id=app.id,
            position=(max_position or 0) + 1,
            stage=_normalize_stage(params.stage),
            stage_name=params.stage_name,
            scheduled_at=parse_iso_datetime(params.scheduled_at),
            duration_minutes=params.duration_minutes or None,
            interviewer_name=params.interviewer_name,
            interviewer_role=params.interviewer_role,
            video_link=params.video_link,
            notes=params.notes,
            result="pending",
            confirmation_source=params.confirmation_source or "email",
            source_email_id=self.email.id,
        )
        row, created = self.insert_or_fetch(row, self._existing)
        if not created:
            return self.result(status="already_exists", round_id=row.id)
        logger.info(f"Round created: round_id={row.id} application_id={app.id} synced_email_id={self.email.id}")
        return self.result(round_id=row.id)


class UpdateRoundParams(BaseModel):
    scheduled_at: Optional[str] = None
    duration_minutes: Optional[int] = None
    stage_name: Optional[str] = None
    interviewer_name: Optional[str] = None
    interviewer_role: Optional[str] = None
    video_link: Optional[str] = None
    notes_append: Optional[str] = None
    source: SourceRef = SourceRef()


class UpdateRound(Handler):
    """
    Apply a reschedule or extra details to an existing round.

    ``scheduled_at`` replaces the stored time; descriptive fields only fill
    blanks; ``notes_append`` is appended at most once.
    """

    action = Action.UPDATE_ROUND
    Params = UpdateRoundParams

    FILL_BLANK_FIELDS = ("duration_minutes", "stage_name", "interviewer_name", "interviewer_role", "video_link")

    def apply(self, step: PlanStep, params: UpdateRoundParams) -> dict:
        rnd = self.resolve_round(step)
        if rnd is None:
            return self.result(status="no_round_resolved")

        updated: list[str] = []
        scheduled_at = parse_iso_datetime(params.scheduled_at)
        if scheduled_at is not None and rnd.scheduled_at != scheduled_at:
            rnd.scheduled_at = scheduled_at
            updated.append("scheduled_at")

        for field in self.FILL_BLANK_FIELDS:
            value = getattr(params, field)
            if value and not getattr(rnd, field):
                setattr(rnd, field, value)
                updated.append(field)

        note = (params.notes_append or "").strip()
        if note and note not in (rnd.notes or ""):
            rnd.notes = f"{rnd.notes}\n{note}" if rnd.notes else note
            updated.append("notes")

        if not updated:
            return self.result(status="already_set", round_id=rnd.id)
        self.db.commit()
        return self.result(round_id=rnd.id, updated_fields=updated)


class SetRoundResultParams(BaseModel):
    result: str
    completed_at: Optional[str] = None
    source: SourceRef = SourceRef()


class SetRoundResult(Handler):
    action = Action.SET_ROUND_RESULT
    Params = SetRoundResultParams

    def apply(self, step: PlanStep, params: SetRoundResultParams) -> dict:
        if params.result not in ROUND_RESULTS:
            return self.result(status="invalid_params", errors=[{"loc": "result", "message": "unsupported result"}])
        rnd = self.resolve_round(step)
        if rnd is None:
            return self.result(status="no_round_resolved")
        if rnd.result == params.result:
            return self.result(status="already_set", round_id=rnd.id, result=rnd.result)

        rnd.result = params.result
        if params.result != "pending":
            rnd.completed_at = parse_iso_datetime(params.completed_at) or datetime.utcnow()
        self.db.commit()
        return self.result(round_id=rnd.id, result=rnd.result)
