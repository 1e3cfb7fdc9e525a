"""Application-level state handlers."""
import logging

from pydantic import BaseModel

from ...contracts.types import PlanStep
from ...models import APPLICATION_STATUSES, PIPELINE_STAGES
from .base import Action, Handler

logger = logging.getLogger(__name__)


class SetPipelineStageParams(BaseModel):
    stage: str


class SetPipelineStage(Handler):
    action = Action.SET_PIPELINE_STAGE
    Params = SetPipelineStageParams

    def apply(self, step: PlanStep, params: SetPipelineStageParams) -> dict:
        if params.stage not in PIPELINE_STAGES:
            return self.result(status="invalid_params", errors=[{"loc": "stage", "message": "unsupported stage"}])
        app = self.application
        if app is None:
            return self.result(status="no_application")
        if app.pipeline_stage == params.stage:
            return self.result(status="already_set", application_id=app.id, pipeline_stage=app.pipeline_stage)

        previous = app.pipeline_stage
        app.pipeline_stage = params.stage
        self.db.commit()
        logger.info(f"Pipeline stage: application_id={app.id} {previous} -> {params.stage}")
        return self.result(application_id=app.id, pipeline_stage=params.stage, previous=previous)


class SetApplicationStatusParams(BaseModel):
    status: str


class SetApplicationStatus(Handler):
    action = Action.SET_APPLICATION_STATUS
    Params = SetApplicationStatusParams

    def apply(self, step: PlanStep, params: SetApplicationStatusParams) -> dict:
        if params.status not in APPLICATION_STATUSES:
            return self.result(status="invalid_params", errors=[{"loc": "status", "message": "unsupported status"}])
        app = self.application
        if app is None:
            return self.result(status="no_application")
        if app.status == params.status:
            return self.result(status="already_set", application_id=app.id, application_status=app.status)

        previous = app.status
        app.status = params.status
        self.db.commit()
        logger.info(f"Application status: application_id={app.id} {previous} -> {params.status}")
        return self.result(application_id=app.id, application_status=params.status, previous=previous)
