"""Signals pipeline schema: applications, rounds, feedback, opportunities, job listings, LLM logs, pipeline runs/events.

Revision ID: 001_signals
Revises:
Create Date: 2026-01-27

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_signals"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"], unique=False)
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("website", sa.String(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_companies_id"), "companies", ["id"], unique=False)
    op.create_index(op.f("ix_companies_name"), "companies", ["name"], unique=True)

    # job_listings: url is normalized and unique (upsert key)
    op.create_table(
        "job_listings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("url", sa.String(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("source_id", sa.String(), nullable=True),
        sa.Column("scrape_enqueued_at", sa.DateTime(), nullable=True),
        sa.Column("scraped_at", sa.DateTime(), nullable=True),
        sa.Column("scraped_data", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_job_listings_id"), "job_listings", ["id"], unique=False)
    op.create_index(op.f("ix_job_listings_url"), "job_listings", ["url"], unique=True)
    op.create_index(op.f("ix_job_listings_company_id"), "job_listings", ["company_id"], unique=False)

    op.create_table(
        "interview_applications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("job_title", sa.String(), nullable=True),
        sa.Column("job_listing_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("pipeline_stage", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.ForeignKeyConstraint(["job_listing_id"], ["job_listings.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_interview_applications_id"), "interview_applications", ["id"], unique=False)
    for col in ("user_id", "company_id", "job_listing_id", "status", "pipeline_stage"):
        op.create_index(op.f(f"ix_interview_applications_{col}"), "interview_applications", [col], unique=False)

    op.create_table(
        "synced_emails",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("interview_application_id", sa.Integer(), nullable=True),
        sa.Column("gmail_message_id", sa.String(), nullable=True),
        sa.Column("thread_id", sa.String(), nullable=True),
        sa.Column("subject", sa.String(), nullable=True),
        sa.Column("from_email", sa.String(), nullable=True),
        sa.Column("from_name", sa.String(), nullable=True),
        sa.Column("email_date", sa.DateTime(), nullable=True),
        sa.Column("body_preview", sa.Text(), nullable=True),
        sa.Column("body_html", sa.Text(), nullable=True),
        sa.Column("snippet", sa.Text(), nullable=True),
        sa.Column("email_type", sa.String(), nullable=True),
        sa.Column("extraction_confidence", sa.Float(), nullable=True),
        sa.Column("extracted_data", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["interview_application_id"], ["interview_applications.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_synced_emails_id"), "synced_emails", ["id"], unique=False)
    for col in ("user_id", "interview_application_id", "gmail_message_id", "thread_id", "email_type"):
        op.create_index(op.f(f"ix_synced_emails_{col}"), "synced_emails", [col], unique=False)

    # interview_rounds: one round per source email
    op.create_table(
        "interview_rounds",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("interview_application_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=True),
        sa.Column("stage", sa.String(), nullable=False),
        sa.Column("stage_name", sa.String(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("interviewer_name", sa.String(), nullable=True),
        sa.Column("interviewer_role", sa.String(), nullable=True),
        sa.Column("video_link", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("result", sa.String(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("confirmation_source", sa.String(), nullable=True),
        sa.Column("source_email_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["interview_application_id"], ["interview_applications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["source_email_id"], ["synced_emails.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source_email_id"),
    )
    op.create_index(op.f("ix_interview_rounds_id"), "interview_rounds", ["id"], unique=False)
    for col in ("interview_application_id", "stage", "result"):
        op.create_index(op.f(f"ix_interview_rounds_{col}"), "interview_rounds", [col], unique=False)
    op.create_index(
        "ix_interview_rounds_app_position", "interview_rounds", ["interview_application_id", "position"], unique=False
    )

    # interview_feedbacks: at most one per round
    op.create_table(
        "interview_feedbacks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("interview_round_id", sa.Integer(), nullable=False),
        sa.Column("went_well", sa.Text(), nullable=True),
        sa.Column("to_improve", sa.Text(), nullable=True),
        sa.Column("ai_summary", sa.Text(), nullable=True),
        sa.Column("interviewer_notes", sa.Text(), nullable=True),
        sa.Column("recommended_action", sa.String(), nullable=True),
        sa.Column("source_email_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["interview_round_id"], ["interview_rounds.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["source_email_id"], ["synced_emails.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("interview_round_id"),
    )
    op.create_index(op.f("ix_interview_feedbacks_id"), "interview_feedbacks", ["id"], unique=False)
    op.create_index(op.f("ix_interview_feedbacks_source_email_id"), "interview_feedbacks", ["source_email_id"], unique=False)

    op.create_table(
        "company_feedbacks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("interview_application_id", sa.Integer(), nullable=False),
        sa.Column("feedback_type", sa.String(), nullable=True),
        sa.Column("feedback_text", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("next_steps", sa.Text(), nullable=True),
        sa.Column("received_at", sa.DateTime(), nullable=True),
        sa.Column("source_email_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["interview_application_id"], ["interview_applications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["source_email_id"], ["synced_emails.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source_email_id"),
    )
    op.create_index(op.f("ix_company_feedbacks_id"), "company_feedbacks", ["id"], unique=False)
    op.create_index(
        op.f("ix_company_feedbacks_interview_application_id"), "company_feedbacks", ["interview_application_id"], unique=False
    )

    op.create_table(
        "opportunities",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("synced_email_id", sa.Integer(), nullable=True),
        sa.Column("interview_application_id", sa.Integer(), nullable=True),
        sa.Column("job_listing_id", sa.Integer(), nullable=True),
        sa.Column("company_name", sa.String(), nullable=True),
        sa.Column("job_role_title", sa.String(), nullable=True),
        sa.Column("job_url", sa.String(), nullable=True),
        sa.Column("recruiter_name", sa.String(), nullable=True),
        sa.Column("recruiter_email", sa.String(), nullable=True),
        sa.Column("email_snippet", sa.Text(), nullable=True),
        sa.Column("extracted_links", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="new"),
        sa.Column("source_type", sa.String(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["synced_email_id"], ["synced_emails.id"]),
        sa.ForeignKeyConstraint(["interview_application_id"], ["interview_applications.id"]),
        sa.ForeignKeyConstraint(["job_listing_id"], ["job_listings.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("synced_email_id"),
    )
    op.create_index(op.f("ix_opportunities_id"), "opportunities", ["id"], unique=False)
    for col in ("user_id", "job_listing_id", "status"):
        op.create_index(op.f(f"ix_opportunities_{col}"), "opportunities", [col], unique=False)

    op.create_table(
        "llm_api_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("operation_type", sa.String(), nullable=False),
        sa.Column("synced_email_id", sa.Integer(), nullable=True),
        sa.Column("provider", sa.String(), nullable=False),
        sa.Column("model", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("latency_ms", sa.Integer(), nullable=True),
        sa.Column("input_tokens", sa.Integer(), nullable=True),
        sa.Column("output_tokens", sa.Integer(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("response_metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["synced_email_id"], ["synced_emails.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_llm_api_logs_id"), "llm_api_logs", ["id"], unique=False)
    op.create_index(op.f("ix_llm_api_logs_operation_type"), "llm_api_logs", ["operation_type"], unique=False)
    op.create_index(op.f("ix_llm_api_logs_synced_email_id"), "llm_api_logs", ["synced_email_id"], unique=False)

    op.create_table(
        "email_pipeline_runs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("synced_email_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("trigger", sa.String(), nullable=False),
        sa.Column("mode", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("error_type", sa.String(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["synced_email_id"], ["synced_emails.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_email_pipeline_runs_id"), "email_pipeline_runs", ["id"], unique=False)
    for col in ("synced_email_id", "user_id", "status"):
        op.create_index(op.f(f"ix_email_pipeline_runs_{col}"), "email_pipeline_runs", [col], unique=False)
    op.create_index(
        "ix_email_pipeline_runs_email_started", "email_pipeline_runs", ["synced_email_id", "started_at"], unique=False
    )

    # email_pipeline_events: step_order unique per run
    op.create_table(
        "email_pipeline_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("run_id", sa.Integer(), nullable=False),
        sa.Column("synced_email_id", sa.Integer(), nullable=True),
        sa.Column("interview_application_id", sa.Integer(), nullable=True),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("input_payload", sa.JSON(), nullable=True),
        sa.Column("output_payload", sa.JSON(), nullable=True),
        sa.Column("error_type", sa.String(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["run_id"], ["email_pipeline_runs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["synced_email_id"], ["synced_emails.id"]),
        sa.ForeignKeyConstraint(["interview_application_id"], ["interview_applications.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("run_id", "step_order", name="uq_email_pipeline_events_run_step"),
    )
    op.create_index(op.f("ix_email_pipeline_events_id"), "email_pipeline_events", ["id"], unique=False)
    op.create_index(op.f("ix_email_pipeline_events_run_id"), "email_pipeline_events", ["run_id"], unique=False)
    op.create_index(op.f("ix_email_pipeline_events_synced_email_id"), "email_pipeline_events", ["synced_email_id"], unique=False)
    op.create_index(op.f("ix_email_pipeline_events_event_type"), "email_pipeline_events", ["event_type"], unique=False)


def downgrade() -> None:
    for table in (
        "email_pipeline_events",
        "email_pipeline_runs",
        "llm_api_logs",
        "opportunities",
        "company_feedbacks",
        "interview_feedbacks",
        "interview_rounds",
        "synced_emails",
        "interview_applications",
        "job_listings",
        "companies",
        "users",
    ):
        op.drop_table(table)
