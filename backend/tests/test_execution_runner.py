from datetime import datetime

import pytest


def _runner(db_session, email, recorder=None, providers=None, **config):
    from signals.config import PipelineConfig
    from signals.decisioning.runner import ExecutionRunner

    return ExecutionRunner(db_session, email, config=PipelineConfig(**config), recorder=recorder, providers=providers)


def _meta(db_session, email):
    db_session.refresh(email)
    return email.extracted_data["decision_execution_v1"]


def test_scheduling_confirmation_creates_one_round(db_session, scheduling_email):
    from signals.models import InterviewRound

    assert _runner(db_session, scheduling_email).call() is True

    rnd = db_session.query(InterviewRound).one()
    assert rnd.stage == "screening"
    assert rnd.stage_name == "Phone Screen"
    assert rnd.scheduled_at == datetime(2026, 1, 28, 22, 0)
    assert rnd.duration_minutes == 30
    assert rnd.interviewer_name == "Jordan Lee"
    assert rnd.interviewer_role == "Engineering Manager"
    assert rnd.video_link == "https://zoom.us/j/123456789"
    assert rnd.result == "pending"
    assert rnd.source_email_id == scheduling_email.id

    meta = _meta(db_session, scheduling_email)
    assert meta["status"] == "executed"
    assert meta["errors"] == []
    assert [r["action"] for r in meta["applied"]] == ["create_round", "set_pipeline_stage"]
    assert meta["executed_at"].endswith("Z")
    db_session.refresh(scheduling_email.interview_application)
    assert scheduling_email.interview_application.pipeline_stage == "screening"


def test_replay_is_idempotent(db_session, scheduling_email):
    from signals.models import InterviewRound

    _runner(db_session, scheduling_email).call()
    round_id = db_session.query(InterviewRound).one().id

    assert _runner(db_session, scheduling_email).call() is True
    assert db_session.query(InterviewRound).count() == 1
    assert _meta(db_session, scheduling_email)["applied"] == [
        {"action": "create_round", "status": "already_exists", "round_id": round_id}
    ]


def test_tampered_evidence_blocks_every_step(db_session, scheduling_email, monkeypatch):
    from signals.decisioning.planner import Planner
    from signals.models import InterviewRound

    original_plan = Planner.plan

    def tampered(self):
        plan = original_plan(self)
        plan["plan"][0]["evidence"] = ["Your onsite with Globex is confirmed"]
        return plan

    monkeypatch.setattr(Planner, "plan", tampered)

    assert _runner(db_session, scheduling_email).call() is False
    assert db_session.query(InterviewRound).count() == 0
    meta = _meta(db_session, scheduling_email)
    assert meta["status"] == "semantic_invalid"
    assert meta["errors"][0]["type"] == "evidence_not_in_body"
    assert meta["applied"] is None
    assert scheduling_email.interview_application.pipeline_stage == "applied"


def test_schema_invalid_plan_is_not_executed(db_session, scheduling_email, monkeypatch):
    from signals.decisioning.planner import Planner
    from signals.models import InterviewRound

    original_plan = Planner.plan

    def broken(self):
        plan = original_plan(self)
        plan["plan"][0]["risk"] = "extreme"
        return plan

    monkeypatch.setattr(Planner, "plan", broken)

    assert _runner(db_session, scheduling_email).call() is False
    assert _meta(db_session, scheduling_email)["status"] == "decision_plan_invalid"
    assert db_session.query(InterviewRound).count() == 0


def test_disabled_execution_does_nothing(db_session, scheduling_email):
    from signals.models import InterviewRound

    assert _runner(db_session, scheduling_email, execution_enabled=False).call() is False
    db_session.refresh(scheduling_email)
    assert "decision_execution_v1" not in scheduling_email.extracted_data
    assert db_session.query(InterviewRound).count() == 0


def test_extraction_disabled_uses_fallback_facts(db_session, scheduling_email):
    from signals.models import InterviewRound

    assert _runner(db_session, scheduling_email, facts_extraction_enabled=False).call() is True
    meta = _meta(db_session, scheduling_email)
    assert meta["status"] == "executed"
    assert meta["applied"] == []
    assert db_session.query(InterviewRound).count() == 0


def test_failed_extraction_falls_back(db_session, make_application, make_email):
    email = make_email(make_application(), email_type="scheduling")

    assert _runner(db_session, email, providers=[]).call() is True
    db_session.refresh(email)
    assert email.extracted_data["email_facts_meta_v1"]["status"] == "failed"
    assert email.extracted_data["decision_execution_v1"]["applied"] == []


def test_handler_exception_stops_plan_and_propagates(db_session, scheduling_email, monkeypatch):
    from signals.execution.handlers.rounds import CreateRound
    from signals.models import InterviewRound

    def boom(self, step, params):
        raise RuntimeError("db exploded")

    monkeypatch.setattr(CreateRound, "apply", boom)

    with pytest.raises(RuntimeError, match="db exploded"):
        _runner(db_session, scheduling_email).call()

    meta = _meta(db_session, scheduling_email)
    assert meta["status"] == "exception"
    assert meta["errors"] == [{"message": "db exploded", "class": "RuntimeError"}]
    assert db_session.query(InterviewRound).count() == 0
    db_session.refresh(scheduling_email.interview_application)
    assert scheduling_email.interview_application.pipeline_stage == "applied"


def test_recorded_run_has_ordered_events(db_session, scheduling_email):
    from signals.models import EmailPipelineEvent
    from signals.observability.recorder import EmailPipelineRecorder

    recorder = EmailPipelineRecorder.start_for(db_session, scheduling_email, trigger="manual", mode="execute")
    _runner(db_session, scheduling_email, recorder=recorder).call()

    events = (
        db_session.query(EmailPipelineEvent)
        .filter(EmailPipelineEvent.run_id == recorder.run_id)
        .order_by(EmailPipelineEvent.step_order)
        .all()
    )
    assert [(e.event_type, e.status) for e in events] == [
        ("email_facts_extraction", "success"),
        ("decision_input_build", "success"),
        ("decision_plan_build", "success"),
        ("decision_plan_schema_validate", "success"),
        ("decision_plan_semantic_validate", "success"),
        ("execution_dispatch", "success"),
        ("execute_create_round", "success"),
        ("execute_set_pipeline_stage", "success"),
    ]
    assert [e.step_order for e in events] == list(range(1, 9))
    assert events[0].output_payload == {"source": "persisted", "kind": "scheduling"}
    assert events[4].output_payload == {"error_count": 0}
