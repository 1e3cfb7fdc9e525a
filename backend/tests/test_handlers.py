from datetime import datetime

import pytest


def _factory(email):
    from signals.decisioning.step_factory import StepFactory

    return StepFactory(email.interview_application_id, email.id, "2026-01-26T17:04:00Z")


def _call(db_session, email, step):
    from signals.execution.handlers import HANDLERS, parse_action

    return HANDLERS[parse_action(step["action"])](db_session, email).call(step)


def test_every_action_has_a_handler():
    from signals.execution.handlers import HANDLERS, Action

    assert set(HANDLERS) == set(Action)
    assert all(cls.action is action for action, cls in HANDLERS.items())


def test_create_round_is_idempotent_per_email(db_session, make_application, make_email):
    from signals.models import InterviewRound

    application = make_application()
    email = make_email(application)
    step = _factory(email).create_round(
        "create_round",
        params={"stage": "phone", "scheduled_at": "2026-01-28T22:00:00Z", "duration_minutes": 30},
        preconditions=[],
        evidence=["x"],
    )

    first = _call(db_session, email, step)
    second = _call(db_session, email, step)

    assert "status" not in first
    assert second == {"action": "create_round", "status": "already_exists", "round_id": first["round_id"]}
    rnd = db_session.query(InterviewRound).one()
    assert rnd.stage == "other"
    assert rnd.position == 1
    assert rnd.scheduled_at == datetime(2026, 1, 28, 22, 0)
    assert rnd.source_email_id == email.id


def test_create_round_positions_follow_existing_rounds(db_session, make_application, make_email, make_round):
    application = make_application()
    make_round(application, position=3)
    email = make_email(application)
    step = _factory(email).create_round("create_round", params={}, preconditions=[], evidence=["x"])

    from signals.models import InterviewRound

    res = _call(db_session, email, step)
    assert db_session.get(InterviewRound, res["round_id"]).position == 4


def test_insert_race_returns_the_existing_row(db_session, make_application, make_email):
    from signals.execution.handlers.rounds import CreateRound
    from signals.models import InterviewRound

    application = make_application()
    email = make_email(application)
    winner = InterviewRound(interview_application_id=application.id, stage="screening", source_email_id=email.id)
    db_session.add(winner)
    db_session.commit()

    handler = CreateRound(db_session, email)
    loser = InterviewRound(interview_application_id=application.id, stage="screening", source_email_id=email.id)
    row, created = handler.insert_or_fetch(loser, handler._existing)

    assert created is False
    assert row.id == winner.id
    assert db_session.query(InterviewRound).count() == 1


def test_update_round_applies_reschedule_once(db_session, make_application, make_email, make_round):
    application = make_application()
    rnd = make_round(application, scheduled_at=datetime(2026, 1, 27, 22, 0), interviewer_name="Jordan Lee")
    email = make_email(application)
    step = _factory(email).update_round(
        "reschedule_round",
        selector="latest_pending",
        params={
            "scheduled_at": "2026-01-28T22:00:00Z",
            "interviewer_name": "Someone Else",
            "video_link": "https://zoom.us/j/1",
            "notes_append": "Rescheduled",
        },
        preconditions=[],
        evidence=["x"],
    )

    first = _call(db_session, email, step)
    assert first["updated_fields"] == ["scheduled_at", "video_link", "notes"]
    db_session.refresh(rnd)
    assert rnd.scheduled_at == datetime(2026, 1, 28, 22, 0)
    assert rnd.interviewer_name == "Jordan Lee"
    assert rnd.notes == "Rescheduled"

    assert _call(db_session, email, step)["status"] == "already_set"


def test_update_round_without_pending_round(db_session, make_application, make_email, make_round):
    application = make_application()
    make_round(application, result="passed")
    email = make_email(application)
    step = _factory(email).update_round("u", selector="latest_pending", params={}, preconditions=[], evidence=["x"])
    assert _call(db_session, email, step) == {"action": "update_round", "status": "no_round_resolved"}


def test_set_round_result(db_session, make_application, make_email, make_round):
    application = make_application()
    rnd = make_round(application)
    email = make_email(application)
    step = _factory(email).set_round_result(
        "cancel_round", "latest_pending", "cancelled", None, preconditions=[], evidence=["x"]
    )

    assert _call(db_session, email, step) == {"action": "set_round_result", "round_id": rnd.id, "result": "cancelled"}
    db_session.refresh(rnd)
    assert rnd.completed_at == datetime(2026, 1, 26, 17, 4)

    by_id = _factory(email).set_round_result("again", "by_id", "cancelled", None, [], ["x"])
    by_id["target"]["round"]["id"] = rnd.id
    assert _call(db_session, email, by_id)["status"] == "already_set"


def test_set_round_result_rejects_unknown_result(db_session, make_application, make_email, make_round):
    application = make_application()
    make_round(application)
    email = make_email(application)
    step = _factory(email).set_round_result("r", "latest_pending", "maybe", None, [], ["x"])
    assert _call(db_session, email, step)["status"] == "invalid_params"


def test_interview_feedback_one_per_round(db_session, make_application, make_email, make_round):
    from signals.models import InterviewFeedback

    application = make_application()
    rnd = make_round(application, result="passed")
    email = make_email(application)
    step = _factory(email).create_interview_feedback(
        "fb", "by_id", params={"went_well": "• Clear"}, preconditions=[], evidence=["x"], round_id=rnd.id
    )

    first = _call(db_session, email, step)
    assert first["round_id"] == rnd.id
    assert _call(db_session, email, step)["status"] == "already_exists"
    feedback = db_session.query(InterviewFeedback).one()
    assert feedback.went_well == "• Clear"
    assert feedback.source_email_id == email.id


def test_company_feedback_one_per_email(db_session, make_application, make_email):
    from signals.models import CompanyFeedback

    application = make_application()
    email = make_email(application)
    step = _factory(email).create_company_feedback(
        "cf", params={"feedback_type": "offer", "feedback_text": "Offer received."}, preconditions=[], evidence=["x"]
    )

    _call(db_session, email, step)
    assert _call(db_session, email, step)["status"] == "already_exists"
    row = db_session.query(CompanyFeedback).one()
    assert row.received_at == email.email_date


def test_pipeline_stage_and_status(db_session, make_application, make_email):
    application = make_application()
    email = make_email(application)
    f = _factory(email)

    res = _call(db_session, email, f.set_pipeline_stage("s", "screening", [], ["x"]))
    assert res == {"action": "set_pipeline_stage", "application_id": application.id, "pipeline_stage": "screening", "previous": "applied"}
    assert _call(db_session, email, f.set_pipeline_stage("s", "screening", [], ["x"]))["status"] == "already_set"
    assert _call(db_session, email, f.set_pipeline_stage("s", "party", [], ["x"]))["status"] == "invalid_params"

    assert _call(db_session, email, f.set_application_status("st", "rejected", [], ["x"]))["application_status"] == "rejected"
    assert _call(db_session, email, f.set_application_status("st", "rejected", [], ["x"]))["status"] == "already_set"
    db_session.refresh(application)
    assert (application.pipeline_stage, application.status) == ("screening", "rejected")


def test_missing_required_param_is_invalid_params(db_session, make_application, make_email):
    email = make_email(make_application())
    step = _factory(email).step("s", "set_pipeline_stage", _factory(email).target(), params={})
    res = _call(db_session, email, step)
    assert res["status"] == "invalid_params"
    assert res["errors"][0]["loc"] == "stage"


@pytest.fixture
def enqueued(monkeypatch):
    calls = []
    monkeypatch.setattr(
        "signals.execution.handlers.job_listings.enqueue_scrape",
        lambda job_listing_id, force=False: calls.append((job_listing_id, force)),
    )
    return calls


def test_opportunity_chain_is_idempotent(db_session, make_email, enqueued):
    from signals.models import Company, JobListing, Opportunity

    email = make_email(subject="Role at Globex", snippet="We'd love to chat")
    f = _factory(email)
    url = "https://jobs.globex.example/123?utm_source=mail"
    steps = [
        f.unmatched(
            "create_opportunity",
            "create_opportunity",
            params={"company_name": "Globex", "job_title": "SRE", "job_url": url, "extracted_links": [{"url": url}]},
            evidence=["x"],
        ),
        f.unmatched("upsert", "upsert_job_listing_from_url", params={"url": url, "company_name": "Globex", "job_title": "SRE"}, evidence=["x"]),
        f.unmatched("attach", "attach_job_listing_to_opportunity", params={"url": url}, evidence=["x"]),
        f.unmatched("enqueue", "enqueue_scrape_job_listing", params={"url": url, "force": False}, evidence=["x"]),
    ]

    first = [_call(db_session, email, s) for s in steps]
    second = [_call(db_session, email, s) for s in steps]

    listing = db_session.query(JobListing).one()
    opportunity = db_session.query(Opportunity).one()
    assert listing.url == "https://jobs.globex.example/123"
    assert listing.title == "SRE"
    assert listing.company_id == db_session.query(Company).filter(Company.name == "Globex").one().id
    assert opportunity.job_listing_id == listing.id
    assert opportunity.job_url == "https://jobs.globex.example/123"
    assert opportunity.email_snippet == "We'd love to chat"

    assert first[3] == {"action": "enqueue_scrape_job_listing", "status": "enqueued", "job_listing_id": listing.id}
    assert [r.get("status") for r in second] == ["already_exists", "already_exists", "already_attached", "already_enqueued"]
    assert enqueued == [(listing.id, False)]


def test_forced_enqueue_reenqueues(db_session, make_email, enqueued):
    from signals.models import JobListing

    email = make_email()
    db_session.add(JobListing(url="https://x.com/j", scraped_at=datetime(2026, 1, 1)))
    db_session.commit()
    f = _factory(email)

    assert _call(db_session, email, f.unmatched("e", "enqueue_scrape_job_listing", {"url": "https://x.com/j"}, ["x"]))["status"] == "already_scraped"
    assert _call(db_session, email, f.unmatched("e", "enqueue_scrape_job_listing", {"url": "https://x.com/j", "force": True}, ["x"]))["status"] == "enqueued"
    assert len(enqueued) == 1
    assert enqueued[0][1] is True


def test_broker_failure_leaves_listing_enqueueable(db_session, make_email, monkeypatch):
    from signals.models import JobListing

    calls = []

    def flaky_enqueue(job_listing_id, force=False):
        calls.append((job_listing_id, force))
        if len(calls) == 1:
            raise ConnectionError("broker unreachable")

    monkeypatch.setattr("signals.execution.handlers.job_listings.enqueue_scrape", flaky_enqueue)
    email = make_email()
    listing = JobListing(url="https://x.com/j")
    db_session.add(listing)
    db_session.commit()
    step = _factory(email).unmatched("e", "enqueue_scrape_job_listing", {"url": "https://x.com/j"}, ["x"])

    with pytest.raises(ConnectionError):
        _call(db_session, email, step)
    db_session.refresh(listing)
    assert listing.scrape_enqueued_at is None

    assert _call(db_session, email, step)["status"] == "enqueued"
    db_session.refresh(listing)
    assert listing.scrape_enqueued_at is not None
    assert calls == [(listing.id, False), (listing.id, False)]


def test_listing_steps_without_url_or_listing(db_session, make_email, enqueued):
    email = make_email()
    f = _factory(email)

    assert _call(db_session, email, f.unmatched("u", "upsert_job_listing_from_url", {"url": "  "}, ["x"]))["status"] == "no_url"
    assert _call(db_session, email, f.unmatched("a", "attach_job_listing_to_opportunity", {"url": "https://x.com/j"}, ["x"]))["status"] == "no_opportunity"
    assert _call(db_session, email, f.unmatched("e", "enqueue_scrape_job_listing", {"url": "https://x.com/j"}, ["x"]))["status"] == "no_job_listing"
    assert enqueued == []
