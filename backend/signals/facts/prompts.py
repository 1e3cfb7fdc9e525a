"""Prompt for EmailFacts extraction."""
import json
from typing import Any, Optional

DEFAULT_SYSTEM_PROMPT = """You extract structured facts for an email-driven interview workflow.
Be conservative. Do not infer hidden state. Do not guess.
Return only valid JSON."""

# Placeholders: subject, body, from_email, from_name, email_type, application_snapshot.
# Literal braces in the JSON shape are doubled for str.format().
EMAIL_FACTS_PROMPT_TEMPLATE = """You are extracting workflow facts from a recruiting/interview email.
You MUST NOT guess. If information is not explicitly present, use null/false/empty.

FROM: {from_name} <{from_email}>
SUBJECT: {subject}
LEGACY_EMAIL_TYPE_HINT: {email_type}

APPLICATION SNAPSHOT (may be null):
{application_snapshot}

EMAIL BODY (canonicalized):
{body}

Return ONLY valid JSON matching this shape:

{{
  "extraction": {{ "provider": null, "model": null, "confidence": 0.0, "warnings": [] }},
  "classification": {{ "kind": "scheduling|interview_invite|round_feedback|status_update|application_confirmation|recruiter_outreach|interview_assessment|other|unknown", "confidence": 0.0, "evidence": ["..."] }},
  "entities": {{
    "company": {{ "name": null, "website": null }},
    "recruiter": {{ "name": null, "email": null, "title": null }},
    "job": {{ "title": null, "department": null, "location": null, "url": null }}
  }},
  "action_links": [{{ "url": "...", "action_label": "...", "priority": 1 }}],
  "key_insights": null,
  "is_forwarded": false,
  "scheduling": {{
    "is_scheduling_related": false,
    "scheduled_at": null,
    "timezone_hint": null,
    "duration_minutes": 0,
    "stage": null,
    "round_type": null,
    "stage_name": null,
    "interviewer_name": null,
    "interviewer_role": null,
    "video_link": null,
    "phone_number": null,
    "location": null,
    "is_rescheduled": false,
    "is_cancelled": false,
    "original_scheduled_at": null,
    "evidence": []
  }},
  "round_feedback": {{
    "has_round_feedback": false,
    "result": null,
    "stage_mentioned": null,
    "round_type": null,
    "interviewer_mentioned": null,
    "date_mentioned": null,
    "feedback": {{ "has_detailed_feedback": false, "summary": null, "strengths": [], "improvements": [], "full_feedback_text": null }},
    "next_steps": {{ "has_next_round": false, "next_round_type": null, "next_round_hint": null, "timeline_hint": null }},
    "evidence": []
  }},
  "status_change": {{
    "has_status_change": false,
    "type": "rejection|offer|withdrawal|ghosted|on_hold|no_change|null",
    "is_final": null,
    "effective_date": null,
    "rejection_details": {{ "reason": null, "stage_rejected_at": null, "is_generic": false, "door_open": false }},
    "offer_details": {{ "role_title": null, "department": null, "start_date": null, "response_deadline": null, "includes_compensation_info": false, "compensation_hints": null, "next_steps": null }},
    "feedback": {{ "has_feedback": false, "feedback_text": null, "is_constructive": false }},
    "evidence": []
  }}
}}

Rules:
- Output ONLY JSON, no markdown, no commentary.
- scheduled_at must be ISO-8601 in UTC (e.g. 2026-01-28T22:00:00Z) when a date and time are stated.
- Every evidence string MUST be a direct substring from the email body or subject.
- Include only up to 20 action_links. Prioritize schedule/join/apply links.
"""


def build_email_facts_prompt(
    event: dict,
    application_snapshot: Optional[Any] = None,
    email_type: Optional[str] = None,
) -> str:
    """Fill the extraction template from a canonical event document."""
    sender = event.get("from") or {}
    return EMAIL_FACTS_PROMPT_TEMPLATE.format(
        subject=event.get("subject") or "",
        body=(event.get("body") or {}).get("text") or "",
        from_email=sender.get("email") or "",
        from_name=sender.get("name") or "",
        email_type=email_type or "",
        application_snapshot=json.dumps(application_snapshot, indent=2) if application_snapshot else "null",
    )
