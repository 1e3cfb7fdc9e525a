"""SQLAlchemy models."""
from datetime import datetime
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Text,
    Float,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy import JSON

Base = declarative_base()


# Allowed values (stored as plain strings)
APPLICATION_STATUSES = ("active", "archived", "rejected", "accepted", "on_hold", "withdrawn")
PIPELINE_STAGES = ("applied", "screening", "interviewing", "offer", "closed")
ROUND_STAGES = ("screening", "technical", "hiring_manager", "culture_fit", "other")
ROUND_RESULTS = ("pending", "passed", "failed", "waitlisted", "cancelled")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Company(Base):
    """Canonical company records shared by applications and job listings."""
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True, nullable=False)
    website = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class InterviewApplication(Base):
    __tablename__ = "interview_applications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    job_title = Column(String, nullable=True)
    job_listing_id = Column(Integer, ForeignKey("job_listings.id"), nullable=True, index=True)
    status = Column(String, default="active", index=True)  # active, archived, rejected, accepted, on_hold, withdrawn
    pipeline_stage = Column(String, default="applied", index=True)  # applied, screening, interviewing, offer, closed
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = relationship("Company")
    rounds = relationship(
        "InterviewRound",
        back_populates="application",
        order_by=lambda: [InterviewRound.position, InterviewRound.scheduled_at, InterviewRound.id],
    )
    company_feedbacks = relationship("CompanyFeedback", back_populates="application")


class SyncedEmail(Base):
    """An email pulled from the user's inbox. Sync mechanics live elsewhere."""
    __tablename__ = "synced_emails"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    interview_application_id = Column(
        Integer, ForeignKey("interview_applications.id"), nullable=True, index=True
    )
    gmail_message_id = Column(String, nullable=True, index=True)
    thread_id = Column(String, nullable=True, index=True)
    subject = Column(String, nullable=True)
    from_email = Column(String, nullable=True)
    from_name = Column(String, nullable=True)
    email_date = Column(DateTime, nullable=True)
    body_preview = Column(Text, nullable=True)
    body_html = Column(Text, nullable=True)
    snippet = Column(Text, nullable=True)
    # Legacy classifier output (scheduling, rejection, offer, ...)
    email_type = Column(String, nullable=True, index=True)
    extraction_confidence = Column(Float, nullable=True)
    # Versioned pipeline outputs: email_facts_v1, decision_execution_v1, ...
    extracted_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    interview_application = relationship("InterviewApplication")
    user = relationship("User")

    @property
    def matched(self) -> bool:
        return self.interview_application_id is not None

    def merge_extracted_data(self, updates: dict) -> None:
        """Replace top-level keys of extracted_data. Assigns a new dict so the JSON column is flagged dirty."""
        existing = dict(self.extracted_data) if isinstance(self.extracted_data, dict) else {}
        existing.update(updates)
        self.extracted_data = existing


class InterviewRound(Base):
    __tablename__ = "interview_rounds"

    id = Column(Integer, primary_key=True, index=True)
    interview_application_id = Column(
        Integer, ForeignKey("interview_applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=True)
    stage = Column(String, default="screening", nullable=False, index=True)
    stage_name = Column(String, nullable=True)
    scheduled_at = Column(DateTime, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    interviewer_name = Column(String, nullable=True)
    interviewer_role = Column(String, nullable=True)
    video_link = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    result = Column(String, default="pending", index=True)  # pending, passed, failed, waitlisted, cancelled
    completed_at = Column(DateTime, nullable=True)
    confirmation_source = Column(String, nullable=True)
    # The email that created this round. One round per email.
    source_email_id = Column(Integer, ForeignKey("synced_emails.id"), nullable=True, unique=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    application = relationship("InterviewApplication", back_populates="rounds")
    interview_feedback = relationship("InterviewFeedback", back_populates="round", uselist=False)


class InterviewFeedback(Base):
    __tablename__ = "interview_feedbacks"

    id = Column(Integer, primary_key=True, index=True)
    interview_round_id = Column(
        Integer, ForeignKey("interview_rounds.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    went_well = Column(Text, nullable=True)
    to_improve = Column(Text, nullable=True)
    ai_summary = Column(Text, nullable=True)
    interviewer_notes = Column(Text, nullable=True)
    recommended_action = Column(String, nullable=True)
    source_email_id = Column(Integer, ForeignKey("synced_emails.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    round = relationship("InterviewRound", back_populates="interview_feedback")


class CompanyFeedback(Base):
    __tablename__ = "company_feedbacks"

    id = Column(Integer, primary_key=True, index=True)
    interview_application_id = Column(
        Integer, ForeignKey("interview_applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    feedback_type = Column(String, nullable=True)  # rejection, offer, general
    feedback_text = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    next_steps = Column(Text, nullable=True)
    received_at = Column(DateTime, nullable=True)
    source_email_id = Column(Integer, ForeignKey("synced_emails.id"), nullable=True, unique=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    application = relationship("InterviewApplication", back_populates="company_feedbacks")


class JobListing(Base):
    __tablename__ = "job_listings"

    id = Column(Integer, primary_key=True, index=True)
    # Normalized (tracking params stripped); the idempotency key for upserts.
    url = Column(String, unique=True, index=True, nullable=False)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    title = Column(String, nullable=True)
    status = Column(String, default="active")  # active, closed
    source_id = Column(String, nullable=True)
    scrape_enqueued_at = Column(DateTime, nullable=True)
    scraped_at = Column(DateTime, nullable=True)
    scraped_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = relationship("Company")


class Opportunity(Base):
    """Recruiter outreach captured before the user decides to apply."""
    __tablename__ = "opportunities"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    synced_email_id = Column(Integer, ForeignKey("synced_emails.id"), nullable=True, unique=True)
    interview_application_id = Column(Integer, ForeignKey("interview_applications.id"), nullable=True)
    job_listing_id = Column(Integer, ForeignKey("job_listings.id"), nullable=True, index=True)
    company_name = Column(String, nullable=True)
    job_role_title = Column(String, nullable=True)
    job_url = Column(String, nullable=True)
    recruiter_name = Column(String, nullable=True)
    recruiter_email = Column(String, nullable=True)
    email_snippet = Column(Text, nullable=True)
    extracted_links = Column(JSON, nullable=True)  # list of {url, type, description}
    status = Column(String, default="new", nullable=False, index=True)  # new, reviewing, applied, archived
    source_type = Column(String, nullable=True)  # direct_email, linkedin_forward, referral, other
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class LlmApiLog(Base):
    """One row per provider attempt made by the pipeline."""
    __tablename__ = "llm_api_logs"

    id = Column(Integer, primary_key=True, index=True)
    operation_type = Column(String, nullable=False, index=True)
    synced_email_id = Column(Integer, ForeignKey("synced_emails.id"), nullable=True, index=True)
    provider = Column(String, nullable=False)
    model = Column(String, nullable=True)
    status = Column(String, nullable=False)  # success, error, rejected
    latency_ms = Column(Integer, nullable=True)
    input_tokens = Column(Integer, nullable=True)
    output_tokens = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)
    response_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class EmailPipelineRun(Base):
    """One row per pipeline invocation."""
    __tablename__ = "email_pipeline_runs"

    id = Column(Integer, primary_key=True, index=True)
    synced_email_id = Column(Integer, ForeignKey("synced_emails.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    trigger = Column(String, nullable=False)  # gmail_sync, manual, replay
    mode = Column(String, nullable=True)  # execute, shadow
    status = Column(String, default="started", nullable=False, index=True)  # started, success, failed
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    error_type = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    run_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    synced_email = relationship("SyncedEmail")
    events = relationship(
        "EmailPipelineEvent",
        back_populates="run",
        order_by="EmailPipelineEvent.step_order",
    )


class EmailPipelineEvent(Base):
    """One row per recorded step within a run. Only moves started -> terminal."""
    __tablename__ = "email_pipeline_events"
    __table_args__ = (
        UniqueConstraint("run_id", "step_order", name="uq_email_pipeline_events_run_step"),
    )

    id = Column(Integer, primary_key=True, index=True)
    run_id = Column(Integer, ForeignKey("email_pipeline_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    synced_email_id = Column(Integer, ForeignKey("synced_emails.id"), nullable=True, index=True)
    interview_application_id = Column(Integer, ForeignKey("interview_applications.id"), nullable=True)
    step_order = Column(Integer, nullable=False)
    event_type = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False)  # started, success, failed, skipped
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    input_payload = Column(JSON, nullable=True)
    output_payload = Column(JSON, nullable=True)
    error_type = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    run = relationship("EmailPipelineRun", back_populates="events")


# Indexes for the admin run browser
Index("ix_email_pipeline_runs_email_started", EmailPipelineRun.synced_email_id, EmailPipelineRun.started_at)
Index("ix_interview_rounds_app_position", InterviewRound.interview_application_id, InterviewRound.position)
