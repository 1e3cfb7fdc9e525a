import pytest


def _recorder(db_session, email):
    from signals.observability.recorder import EmailPipelineRecorder

    return EmailPipelineRecorder.start_for(db_session, email, trigger="manual", mode="execute")


def _events(db_session, recorder):
    from signals.models import EmailPipelineEvent

    return (
        db_session.query(EmailPipelineEvent)
        .filter(EmailPipelineEvent.run_id == recorder.run_id)
        .order_by(EmailPipelineEvent.step_order)
        .all()
    )


def _create_round_step(application_id, synced_email_id, preconditions=None):
    from signals.decisioning.step_factory import StepFactory

    return StepFactory(application_id, synced_email_id).create_round(
        "create_round",
        params={"stage": "screening", "scheduled_at": "2026-01-28T22:00:00Z"},
        preconditions=preconditions if preconditions is not None else ["match.matched == true"],
        evidence=["confirmed"],
    )


def test_noop_is_not_dispatched(db_session, make_email):
    from signals.execution.dispatcher import Dispatcher

    email = make_email()
    recorder = _recorder(db_session, email)
    step = {"step_id": "n", "action": "noop"}
    assert Dispatcher(db_session, email, recorder).dispatch(step) is None
    assert _events(db_session, recorder) == []


def test_executed_step_is_recorded(db_session, make_application, make_email):
    from signals.execution.dispatcher import Dispatcher

    application = make_application()
    email = make_email(application)
    recorder = _recorder(db_session, email)

    res = Dispatcher(db_session, email, recorder).dispatch(_create_round_step(application.id, email.id))

    assert res["action"] == "create_round"
    assert "round_id" in res
    (event,) = _events(db_session, recorder)
    assert event.event_type == "execute_create_round"
    assert event.status == "success"
    assert event.output_payload == {"result": res}
    assert event.input_payload["step_id"] == "create_round"
    assert event.interview_application_id == application.id


def test_application_step_on_unmatched_email_is_skipped(db_session, make_email):
    from signals.execution.dispatcher import Dispatcher
    from signals.models import InterviewRound

    email = make_email()
    recorder = _recorder(db_session, email)
    res = Dispatcher(db_session, email, recorder).dispatch(_create_round_step(None, email.id))

    assert res == {"step_id": "create_round", "action": "create_round", "status": "skipped_no_application"}
    (event,) = _events(db_session, recorder)
    assert event.status == "skipped"
    assert event.output_payload == {"result": res}
    assert db_session.query(InterviewRound).count() == 0


def test_failed_precondition_skips_step(db_session, make_application, make_email):
    from signals.execution.dispatcher import Dispatcher
    from signals.models import InterviewRound

    application = make_application()
    email = make_email(application)
    recorder = _recorder(db_session, email)
    step = _create_round_step(application.id, email.id, ["application.pipeline_stage == offer", "bogus()"])

    res = Dispatcher(db_session, email, recorder).dispatch(step)

    assert res["status"] == "skipped_precondition_failed"
    assert res["failed_preconditions"] == ["application.pipeline_stage == offer", "bogus()"]
    assert res["unknown_preconditions"] == ["bogus()"]
    (event,) = _events(db_session, recorder)
    assert event.status == "skipped"
    assert event.input_payload["preconditions"] == ["application.pipeline_stage == offer", "bogus()"]
    assert db_session.query(InterviewRound).count() == 0


def test_unknown_action_is_skipped_and_recorded(db_session, make_application, make_email):
    """Unknown actions leave a skipped event so the audit trail shows the step was seen."""
    from signals.execution.dispatcher import Dispatcher

    application = make_application()
    email = make_email(application)
    recorder = _recorder(db_session, email)
    step = {"step_id": "x", "action": "delete_everything", "evidence": ["confirmed"]}

    res = Dispatcher(db_session, email, recorder).dispatch(step)

    assert res == {"step_id": "x", "action": "delete_everything", "status": "skipped_unknown_action"}
    (event,) = _events(db_session, recorder)
    assert event.event_type == "execute_delete_everything"
    assert event.status == "skipped"


def test_dispatch_without_recorder(db_session, make_application, make_email):
    from signals.execution.dispatcher import Dispatcher

    application = make_application()
    email = make_email(application)
    res = Dispatcher(db_session, email).dispatch(_create_round_step(application.id, email.id))
    assert "round_id" in res


def test_handler_exception_is_recorded_and_propagates(db_session, make_application, make_email, monkeypatch):
    from signals.execution.dispatcher import Dispatcher
    from signals.execution.handlers.rounds import CreateRound

    def boom(self, step, params):
        raise RuntimeError("db exploded")

    monkeypatch.setattr(CreateRound, "apply", boom)
    application = make_application()
    email = make_email(application)
    recorder = _recorder(db_session, email)

    with pytest.raises(RuntimeError, match="db exploded"):
        Dispatcher(db_session, email, recorder).dispatch(_create_round_step(application.id, email.id))

    (event,) = _events(db_session, recorder)
    assert event.status == "failed"
    assert event.error_type == "RuntimeError"
    assert event.error_message == "db exploded"
