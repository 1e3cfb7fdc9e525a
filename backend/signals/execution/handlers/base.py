"""
Shared handler plumbing.

A handler applies exactly one kind of mutation and is safe to call repeatedly
with the same step: it re-derives its idempotency key and reports
``already_exists`` / ``already_set`` / ``already_attached`` (or a ``no_*``
status) instead of duplicating work or raising.
"""
import logging
from enum import Enum
from typing import Any, Callable, Optional, Type, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...contracts.types import PlanStep
from ...models import InterviewApplication, InterviewRound, SyncedEmail
from ..targets import load_rounds, parse_selector, resolve_round

logger = logging.getLogger(__name__)


class Action(str, Enum):
    CREATE_ROUND = "create_round"
    UPDATE_ROUND = "update_round"
    SET_ROUND_RESULT = "set_round_result"
    CREATE_INTERVIEW_FEEDBACK = "create_interview_feedback"
    CREATE_COMPANY_FEEDBACK = "create_company_feedback"
    SET_PIPELINE_STAGE = "set_pipeline_stage"
    SET_APPLICATION_STATUS = "set_application_status"
    CREATE_OPPORTUNITY = "create_opportunity"
    UPSERT_JOB_LISTING_FROM_URL = "upsert_job_listing_from_url"
    ATTACH_JOB_LISTING_TO_OPPORTUNITY = "attach_job_listing_to_opportunity"
    ENQUEUE_SCRAPE_JOB_LISTING = "enqueue_scrape_job_listing"


# Actions that mutate the matched application; skipped when the email is unmatched.
REQUIRES_APPLICATION = frozenset(
    {
        Action.SET_PIPELINE_STAGE,
        Action.SET_APPLICATION_STATUS,
        Action.CREATE_ROUND,
        Action.UPDATE_ROUND,
        Action.SET_ROUND_RESULT,
        Action.CREATE_INTERVIEW_FEEDBACK,
        Action.CREATE_COMPANY_FEEDBACK,
    }
)


def parse_action(name: Optional[str]) -> Optional[Action]:
    try:
        return Action(name)
    except ValueError:
        return None


class SourceRef(BaseModel):
    synced_email_id: Optional[int] = None


class Handler:
    action: Action
    Params: Type[BaseModel] = BaseModel

    def __init__(self, db: Session, email: SyncedEmail):
        self.db = db
        self.email = email

    @property
    def application(self) -> Optional[InterviewApplication]:
        return self.email.interview_application

    def result(self, **fields: Any) -> dict:
        return {"action": self.action.value, **fields}

    def call(self, step: Union[PlanStep, dict]) -> dict:
        if not isinstance(step, PlanStep):
            step = PlanStep.model_validate(step)
        try:
            params = self.Params.model_validate(step.params or {})
        except ValidationError as e:
            logger.warning(f"Invalid params for {self.action.value}: step_id={step.step_id} errors={e.error_count()}")
            return self.result(
                status="invalid_params",
                errors=[{"loc": ".".join(str(p) for p in err["loc"]), "message": err["msg"]} for err in e.errors()],
            )
        return self.apply(step, params)

    def apply(self, step: PlanStep, params: Any) -> dict:
        raise NotImplementedError

    def resolve_round(self, step: PlanStep) -> Optional[InterviewRound]:
        app = self.application
        if app is None:
            return None
        return resolve_round(parse_selector(step.target.round), load_rounds(self.db, app.id))

    def insert_or_fetch(self, row: Any, lookup: Callable[[], Any]) -> tuple[Any, bool]:
        """
        Insert ``row``; if a unique constraint fires (concurrent run won the race),
        roll back and return the row that is already there. Returns (row, created).
        """
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = lookup()
            if existing is None:
                raise
            return existing, False
        return row, True
