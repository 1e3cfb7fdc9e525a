"""
Best-effort recorder for email pipeline runs and their step events.

Recording never changes pipeline outcomes: failures to write run/event rows
are logged and swallowed, while exceptions raised by measured steps are
recorded and re-raised unchanged.
"""
import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import EmailPipelineEvent, EmailPipelineRun, SyncedEmail

logger = logging.getLogger(__name__)

OutputOverride = Union[dict, Callable[[Any], dict], None]


def _elapsed_ms(start: float) -> int:
    return int(round((time.monotonic() - start) * 1000))


class EmailPipelineRecorder:
    def __init__(self, db: Session, run: EmailPipelineRun):
        self.db = db
        self.run = run
        self.run_id = run.id

    @classmethod
    def start_for(
        cls,
        db: Session,
        email: SyncedEmail,
        trigger: str,
        mode: str,
        metadata: Optional[dict] = None,
    ) -> "EmailPipelineRecorder":
        run = EmailPipelineRun(
            synced_email_id=email.id,
            user_id=email.user_id,
            trigger=str(trigger),
            mode=str(mode),
            status="started",
            started_at=datetime.utcnow(),
            run_metadata=metadata or {},
        )
        db.add(run)
        db.commit()
        logger.info(f"Pipeline run started: run_id={run.id} synced_email_id={email.id} trigger={trigger} mode={mode}")
        return cls(db, run)

    def next_step_order(self) -> int:
        current = (
            self.db.query(func.max(EmailPipelineEvent.step_order))
            .filter(EmailPipelineEvent.run_id == self.run_id)
            .scalar()
        )
        return (current or 0) + 1

    def _application_id(self) -> Optional[int]:
        email = self.db.get(SyncedEmail, self.run.synced_email_id)
        return email.interview_application_id if email else None

    def _new_event(self, event_type: str, status: str, **fields: Any) -> EmailPipelineEvent:
        row = EmailPipelineEvent(
            run_id=self.run_id,
            synced_email_id=self.run.synced_email_id,
            interview_application_id=self._application_id(),
            step_order=self.next_step_order(),
            event_type=str(event_type),
            status=status,
            **fields,
        )
        self.db.add(row)
        self.db.commit()
        return row

    def event(
        self,
        event_type: str,
        status: str,
        input_payload: Optional[dict] = None,
        output_payload: Optional[dict] = None,
        error: Optional[BaseException] = None,
        metadata: Optional[dict] = None,
    ) -> Optional[EmailPipelineEvent]:
        """Record a point-in-time event."""
        now = datetime.utcnow()
        try:
            return self._new_event(
                event_type,
                str(status),
                started_at=now,
                completed_at=now,
                duration_ms=0,
                input_payload=input_payload or {},
                output_payload=output_payload or {},
                error_type=type(error).__name__ if error else None,
                error_message=str(error) if error else None,
                event_metadata=metadata or {},
            )
        except Exception as e:
            self.db.rollback()
            logger.warning(f"EmailPipelineRecorder event failed: run_id={self.run_id} {type(e).__name__}: {e}")
            return None

    def measure(
        self,
        event_type: str,
        fn: Callable[[], Any],
        input_payload: Optional[dict] = None,
        output_override: OutputOverride = None,
        metadata: Optional[dict] = None,
    ) -> Any:
        """
        Run ``fn`` inside a started -> success/failed event and return its result.

        Output payload: ``output_override`` (dict, or callable applied to the
        result), else the result itself when it is a dict, else
        ``{"result": result}``. Exceptions from ``fn`` are recorded and re-raised.
        """
        start = time.monotonic()
        event_id = None
        try:
            event_id = self._new_event(
                event_type,
                "started",
                started_at=datetime.utcnow(),
                input_payload=input_payload or {},
                output_payload={},
                event_metadata=metadata or {},
            ).id
        except Exception as e:
            self.db.rollback()
            logger.warning(f"EmailPipelineRecorder could not start event: run_id={self.run_id} {type(e).__name__}: {e}")

        try:
            result = fn()
        except Exception as exc:
            self._fail_event(event_id, exc, _elapsed_ms(start))
            raise

        if event_id is not None:
            if callable(output_override):
                output = output_override(result)
            elif output_override is not None:
                output = output_override
            else:
                output = result if isinstance(result, dict) else {"result": result}
            self._update_event(
                event_id,
                status="success",
                completed_at=datetime.utcnow(),
                duration_ms=_elapsed_ms(start),
                output_payload=output or {},
            )
        return result

    def _fail_event(self, event_id: Optional[int], exc: BaseException, duration_ms: int) -> None:
        # The failed step may have left the session mid-transaction.
        try:
            self.db.rollback()
        except Exception as e:
            logger.warning(f"EmailPipelineRecorder rollback failed: run_id={self.run_id} {type(e).__name__}: {e}")
        if event_id is None:
            return
        self._update_event(
            event_id,
            status="failed",
            completed_at=datetime.utcnow(),
            duration_ms=duration_ms,
            error_type=type(exc).__name__,
            error_message=str(exc),
            output_payload={"error": str(exc)},
        )

    def _update_event(self, event_id: int, **fields: Any) -> None:
        try:
            row = self.db.get(EmailPipelineEvent, event_id)
            if row is None:
                return
            for key, value in fields.items():
                setattr(row, key, value)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.warning(f"EmailPipelineRecorder failed to update event: run_id={self.run_id} {type(e).__name__}: {e}")

    def finish_success(self, metadata: Optional[dict] = None) -> None:
        self.finish("success", metadata=metadata)

    def finish_failed(self, exc: BaseException, metadata: Optional[dict] = None) -> None:
        self.finish("failed", error_type=type(exc).__name__, error_message=str(exc), metadata=metadata)

    def finish(
        self,
        status: str,
        error_type: Optional[str] = None,
        error_message: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        try:
            run = self.db.get(EmailPipelineRun, self.run_id)
            completed_at = datetime.utcnow()
            merged = dict(run.run_metadata) if isinstance(run.run_metadata, dict) else {}
            merged.update(metadata or {})
            run.status = status
            run.completed_at = completed_at
            if run.started_at:
                run.duration_ms = int((completed_at - run.started_at).total_seconds() * 1000)
            run.error_type = error_type
            run.error_message = error_message
            run.run_metadata = merged
            self.db.commit()
            logger.info(f"Pipeline run finished: run_id={self.run_id} status={status} duration_ms={run.duration_ms}")
        except Exception as e:
            self.db.rollback()
            logger.warning(f"EmailPipelineRecorder finish failed: run_id={self.run_id} {type(e).__name__}: {e}")
