"""Pipeline runs API: read-only audit trail for the admin dashboard."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_sync_db
from ..models import EmailPipelineEvent, EmailPipelineRun
from ..schemas import PipelineEventResponse, PipelineRunDetail, PipelineRunResponse

router = APIRouter(prefix="/api/signals", tags=["signals"])


@router.get("/runs", response_model=List[PipelineRunResponse])
def list_runs(
    synced_email_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_sync_db),
):
    """Most recent runs first."""
    q = db.query(EmailPipelineRun)
    if synced_email_id is not None:
        q = q.filter(EmailPipelineRun.synced_email_id == synced_email_id)
    if status:
        q = q.filter(EmailPipelineRun.status == status)
    return q.order_by(EmailPipelineRun.started_at.desc(), EmailPipelineRun.id.desc()).limit(limit).all()


@router.get("/runs/{run_id}", response_model=PipelineRunDetail)
def get_run(run_id: int, db: Session = Depends(get_sync_db)):
    run = db.get(EmailPipelineRun, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    events = (
        db.query(EmailPipelineEvent)
        .filter(EmailPipelineEvent.run_id == run_id)
        .order_by(EmailPipelineEvent.step_order.asc())
        .all()
    )
    detail = PipelineRunDetail.model_validate(run)
    detail.events = [PipelineEventResponse.model_validate(e) for e in events]
    return detail
