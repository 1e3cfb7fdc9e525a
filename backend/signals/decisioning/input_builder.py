"""
DecisionInput assembly.

Reads the email and its matched application once and produces the sealed
document the planner works from. Nothing here writes to the database.
"""
from typing import Optional

from sqlalchemy.orm import object_session

from ..execution.targets import load_rounds, ordered
from ..facts.canonical_event import build_canonical_event, to_iso
from ..models import InterviewApplication, SyncedEmail

VERSION = "2026-01-27"
ROUNDS_RECENT_LIMIT = 10

# Legacy classifier email_type -> EmailFacts classification.kind
_KIND_BY_EMAIL_TYPE = {
    "scheduling": "scheduling",
    "interview_reminder": "scheduling",
    "interview_invite": "interview_invite",
    "round_feedback": "round_feedback",
    "rejection": "status_update",
    "offer": "status_update",
    "application_confirmation": "application_confirmation",
    "recruiter_outreach": "recruiter_outreach",
    "assessment": "interview_assessment",
}


def map_kind(email_type: Optional[str]) -> str:
    if not email_type:
        return "unknown"
    return _KIND_BY_EMAIL_TYPE.get(email_type, "other")


def empty_scheduling() -> dict:
    return {
        "is_scheduling_related": False,
        "scheduled_at": None,
        "timezone_hint": None,
        "duration_minutes": 0,
        "stage": None,
        "round_type": None,
        "stage_name": None,
        "interviewer_name": None,
        "interviewer_role": None,
        "video_link": None,
        "phone_number": None,
        "location": None,
        "is_rescheduled": False,
        "is_cancelled": False,
        "original_scheduled_at": None,
        "evidence": [],
    }


def empty_round_feedback() -> dict:
    return {
        "has_round_feedback": False,
        "result": None,
        "stage_mentioned": None,
        "round_type": None,
        "interviewer_mentioned": None,
        "date_mentioned": None,
        "feedback": {
            "has_detailed_feedback": False,
            "summary": None,
            "strengths": [],
            "improvements": [],
            "full_feedback_text": None,
        },
        "next_steps": {
            "has_next_round": False,
            "next_round_type": None,
            "next_round_hint": None,
            "timeline_hint": None,
        },
        "evidence": [],
    }


def status_change_stub(email_type: Optional[str], effective_date: Optional[str]) -> dict:
    change_type = email_type if email_type in ("rejection", "offer") else "no_change"
    return {
        "has_status_change": email_type in ("rejection", "offer"),
        "type": change_type,
        "is_final": True if email_type == "rejection" else None,
        "effective_date": effective_date,
        "rejection_details": {"reason": None, "stage_rejected_at": None, "is_generic": False, "door_open": False},
        "offer_details": {
            "role_title": None,
            "department": None,
            "start_date": None,
            "response_deadline": None,
            "includes_compensation_info": False,
            "compensation_hints": None,
            "next_steps": None,
        },
        "feedback": {"has_feedback": False, "feedback_text": None, "is_constructive": False},
        "evidence": [],
    }


class DecisionInputBuilder:
    def __init__(self, email: SyncedEmail):
        self.email = email

    @property
    def application(self) -> Optional[InterviewApplication]:
        return self.email.interview_application

    def build(self, facts: Optional[dict] = None) -> dict:
        base = self.build_base()
        base["facts"] = facts if facts is not None else self.build_fallback_facts()
        return base

    def build_base(self) -> dict:
        """DecisionInput without facts; this is what facts extraction sees."""
        app = self.application
        return {
            "version": VERSION,
            "event": build_canonical_event(self.email),
            "match": self._match(app),
            "application": self._application_snapshot(app) if app else None,
        }

    def _match(self, app: Optional[InterviewApplication]) -> dict:
        matched = self.email.matched
        return {
            "matched": matched,
            "match_strategy": None,
            "interview_application_id": app.id if app else None,
            "confidence": 0.5 if matched else 0.0,
        }

    def _application_snapshot(self, app: InterviewApplication) -> dict:
        db = object_session(app)
        rounds = load_rounds(db, app.id) if db is not None else ordered(app.rounds)
        rounds = rounds[-ROUNDS_RECENT_LIMIT:]
        return {
            "id": app.id,
            "status": app.status,
            "pipeline_stage": app.pipeline_stage,
            "company": {
                "id": app.company_id,
                "name": app.company.name if app.company else None,
                "website": app.company.website if app.company else None,
            },
            "job_role": {"id": app.job_listing_id, "title": app.job_title},
            "rounds_recent": [
                {
                    "id": r.id,
                    "position": r.position,
                    "stage": r.stage,
                    "stage_name": r.stage_name,
                    "scheduled_at": to_iso(r.scheduled_at),
                    "result": r.result,
                    "interviewer_name": r.interviewer_name,
                    "source_email_id": r.source_email_id,
                }
                for r in rounds
            ],
        }

    def build_fallback_facts(self) -> dict:
        """Schema-valid EmailFacts derived from the legacy email_type when LLM facts are unavailable."""
        email = self.email
        app = self.application
        email_type = email.email_type or ""
        kind = map_kind(email_type)
        legacy = email.extracted_data if isinstance(email.extracted_data, dict) else {}
        evidence_seed = (email.subject or "").strip() or (email.snippet or "").strip() or "classified"
        company = app.company if app else None

        return {
            "extraction": {
                "provider": None,
                "model": None,
                "confidence": float(email.extraction_confidence or 0.0),
                "warnings": [],
            },
            "classification": {
                "kind": kind,
                "confidence": 0.0 if kind == "unknown" else 0.5,
                "evidence": [evidence_seed],
            },
            "entities": {
                "company": {
                    "name": company.name if company else None,
                    "website": company.website if company else None,
                },
                "recruiter": {"name": email.from_name, "email": email.from_email, "title": None},
                "job": {
                    "title": app.job_title if app else None,
                    "department": None,
                    "location": None,
                    "url": None,
                },
            },
            "action_links": [],
            "key_insights": legacy.get("key_insights"),
            "is_forwarded": bool(legacy.get("is_forwarded")),
            "scheduling": empty_scheduling(),
            "round_feedback": empty_round_feedback(),
            "status_change": status_change_stub(email_type, to_iso(email.email_date)),
        }
