from signals.contracts.types import PlanStep


def _step(selector="none", round_id=None):
    return PlanStep.model_validate(
        {
            "step_id": "s1",
            "action": "create_interview_feedback",
            "target": {"application_id": None, "round": {"selector": selector, "id": round_id}},
        }
    )


def _check(db_session, email, predicates, step=None):
    from signals.execution.preconditions import PreconditionContext, evaluate_all

    return evaluate_all(predicates, PreconditionContext(db_session, email, step or _step()))


def test_unknown_predicate_fails_closed(db_session, make_application, make_email):
    email = make_email(make_application())
    res = _check(db_session, email, ["match.matched == true", "__import__('os').system('true')"])

    assert res["ok"] is False
    assert res["failed"] == ["__import__('os').system('true')"]
    assert res["unknown"] == ["__import__('os').system('true')"]


def test_near_miss_spelling_is_unknown(db_session, make_application, make_email):
    email = make_email(make_application())
    res = _check(db_session, email, ["match.matched==true"])
    assert res["unknown"] == ["match.matched==true"]


def test_empty_predicates_pass(db_session, make_email):
    assert _check(db_session, make_email(), []) == {"ok": True, "failed": [], "unknown": []}


def test_match_predicate(db_session, make_application, make_email):
    assert _check(db_session, make_email(make_application()), ["match.matched == true"])["ok"]
    assert _check(db_session, make_email(), ["match.matched == true"])["failed"] == ["match.matched == true"]


def test_pipeline_stage_and_status(db_session, make_application, make_email):
    email = make_email(make_application(pipeline_stage="screening", status="active"))

    res = _check(
        db_session,
        email,
        [
            "application.pipeline_stage == screening",
            "application.pipeline_stage != closed",
            "application.status == active",
        ],
    )
    assert res["ok"] is True

    res = _check(db_session, email, ["application.pipeline_stage == applied", "application.status == rejected"])
    assert res["failed"] == ["application.pipeline_stage == applied", "application.status == rejected"]
    assert res["unknown"] == []


def test_company_feedback_null(db_session, make_application, make_email):
    from signals.models import CompanyFeedback

    application = make_application()
    email = make_email(application)
    pred = ["application.company_feedback == null"]
    assert _check(db_session, email, pred)["ok"]

    db_session.add(CompanyFeedback(interview_application_id=application.id, feedback_type="offer"))
    db_session.commit()
    assert not _check(db_session, email, pred)["ok"]


def test_any_pending_round(db_session, make_application, make_email, make_round):
    application = make_application()
    email = make_email(application)
    pred = ["application.rounds_recent.any(result==pending) == true"]

    make_round(application, result="passed")
    assert not _check(db_session, email, pred)["ok"]
    make_round(application, result="pending")
    assert _check(db_session, email, pred)["ok"]


def test_round_feedback_null_resolves_the_step_target(db_session, make_application, make_email, make_round):
    from signals.models import InterviewFeedback

    application = make_application()
    email = make_email(application)
    rnd = make_round(application, result="passed")
    pred = ["round.interview_feedback == null"]

    assert _check(db_session, email, pred, _step("by_id", rnd.id))["ok"]
    # Unresolvable round fails rather than passing vacuously.
    assert not _check(db_session, email, pred, _step("by_id", rnd.id + 100))["ok"]

    db_session.add(InterviewFeedback(interview_round_id=rnd.id, went_well="ok"))
    db_session.commit()
    assert not _check(db_session, email, pred, _step("by_id", rnd.id))["ok"]


def test_application_predicates_fail_for_unmatched_email(db_session, make_email):
    email = make_email()
    res = _check(
        db_session,
        email,
        ["application.pipeline_stage != closed", "application.company_feedback == null"],
    )
    assert res["failed"] == ["application.pipeline_stage != closed", "application.company_feedback == null"]
