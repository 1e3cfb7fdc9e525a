"""Pytest fixtures: in-memory DB, factories, contract fixtures, API client."""
import os
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("OLLAMA_BASE_URL", "")

import copy
import json
from datetime import datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from signals.database import get_sync_db
from signals.main import app
from signals.models import Base, Company, InterviewApplication, InterviewRound, SyncedEmail

EXAMPLES_DIR = Path(__file__).resolve().parents[1] / "signals" / "contracts" / "examples"

SCHEDULING_BODY = (
    "Hi Sam, Your phone screen with Acme is confirmed for Wednesday, January 28 at 2:00 PM PT "
    "(30 minutes). Interviewer: Jordan Lee, Engineering Manager. Join via Zoom: "
    "https://zoom.us/j/123456789 Looking forward to speaking with you! Best, Riley"
)


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(db_engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def scheduling_input():
    """The scheduling-confirmation DecisionInput fixture (fresh copy per test)."""
    with (EXAMPLES_DIR / "decision_input" / "scheduling_confirmed.json").open() as f:
        return json.load(f)


@pytest.fixture
def scheduling_facts(scheduling_input):
    return copy.deepcopy(scheduling_input["facts"])


@pytest.fixture
def make_application(db_session):
    def _make(company_name="Acme", pipeline_stage="applied", status="active", job_title="Software Engineer"):
        company = db_session.query(Company).filter(Company.name == company_name).first()
        if company is None:
            company = Company(name=company_name)
            db_session.add(company)
            db_session.flush()
        application = InterviewApplication(
            company_id=company.id,
            job_title=job_title,
            status=status,
            pipeline_stage=pipeline_stage,
        )
        db_session.add(application)
        db_session.commit()
        return application

    return _make


@pytest.fixture
def make_email(db_session):
    def _make(application=None, body=SCHEDULING_BODY, **fields):
        email = SyncedEmail(
            interview_application_id=application.id if application is not None else None,
            thread_id=fields.pop("thread_id", "thread-acme-1"),
            subject=fields.pop("subject", "Phone screen confirmed: Acme"),
            from_email=fields.pop("from_email", "riley@acme.example"),
            from_name=fields.pop("from_name", "Riley Chen"),
            email_date=fields.pop("email_date", datetime(2026, 1, 26, 17, 4)),
            body_preview=body,
            **fields,
        )
        db_session.add(email)
        db_session.commit()
        return email

    return _make


@pytest.fixture
def make_round(db_session):
    def _make(application, result="pending", scheduled_at=None, position=None, stage="screening", **fields):
        rnd = InterviewRound(
            interview_application_id=application.id,
            result=result,
            scheduled_at=scheduled_at,
            position=position,
            stage=stage,
            **fields,
        )
        db_session.add(rnd)
        db_session.commit()
        return rnd

    return _make


@pytest.fixture
def scheduling_email(make_application, make_email, scheduling_facts):
    """Matched email whose persisted facts are the scheduling fixture's (status ok)."""
    application = make_application()
    return make_email(
        application,
        email_type="scheduling",
        extracted_data={
            "email_facts_v1": scheduling_facts,
            "email_facts_meta_v1": {"status": "ok", "provider": "openai", "model": "gpt-4o-mini"},
        },
    )


@pytest.fixture
def client(db_engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_sync_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_sync_db] = override_get_sync_db
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
