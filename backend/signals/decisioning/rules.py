"""
Planner decision table.

Each rule looks at the typed DecisionInput and either declines (returns
None) or decides: ``apply`` with steps, or ``noop`` with a reason. Rules never
touch the database; everything they need is in the input.
"""
from dataclasses import dataclass, field
from typing import Optional

from ..contracts.types import DecisionInput, EmailFacts, RoundFeedback, StatusChange
from ..execution.targets import LatestPending, resolve_round
from ..models import PIPELINE_STAGES
from .step_factory import StepFactory

ANY_PENDING_ROUND = "application.rounds_recent.any(result==pending) == true"

_ROUND_STAGE_ALIASES = {
    "screening": "screening",
    "phone_screen": "screening",
    "recruiter_screen": "screening",
    "technical": "technical",
    "coding": "technical",
    "system_design": "technical",
    "onsite": "technical",
    "hiring_manager": "hiring_manager",
    "culture_fit": "culture_fit",
    "behavioral": "culture_fit",
}


@dataclass
class RuleOutcome:
    decision: str
    confidence: float = 0.0
    reasons: list = field(default_factory=list)
    steps: list = field(default_factory=list)

    @classmethod
    def noop(cls, reason: str) -> "RuleOutcome":
        return cls(decision="noop", reasons=[reason])


class Rule:
    def __init__(self, decision_input: DecisionInput, steps: StepFactory):
        self.input = decision_input
        self.steps = steps

    @property
    def facts(self) -> EmailFacts:
        return self.input.facts

    @property
    def kind(self) -> str:
        return self.facts.classification.kind

    @property
    def matched(self) -> bool:
        return self.input.match.matched and self.input.application is not None

    @property
    def rounds(self) -> list:
        return list(self.input.application.rounds_recent) if self.input.application else []

    def has_pending_round(self) -> bool:
        return resolve_round(LatestPending(), self.rounds) is not None

    def evaluate(self) -> Optional[RuleOutcome]:
        raise NotImplementedError


def round_stage(stage: Optional[str], round_type: Optional[str] = None) -> str:
    raw = (stage or round_type or "").strip().lower()
    if not raw:
        return "screening"
    return _ROUND_STAGE_ALIASES.get(raw, "other")


class SchedulingRule(Rule):
    def evaluate(self) -> Optional[RuleOutcome]:
        if not self.matched or self.kind not in ("scheduling", "interview_invite"):
            return None
        s = self.facts.scheduling
        if not (s.is_scheduling_related or s.scheduled_at):
            return None

        evidence = s.evidence[:3] or self.facts.classification.evidence[:3]
        if not evidence:
            return RuleOutcome.noop("scheduling_no_evidence")

        if s.is_cancelled:
            if not self.has_pending_round():
                return RuleOutcome.noop("scheduling_cancel_no_pending_round")
            step = self.steps.set_round_result(
                "cancel_round",
                selector="latest_pending",
                result="cancelled",
                completed_at=self.input.event.email_date,
                preconditions=[ANY_PENDING_ROUND],
                evidence=evidence,
                risk="medium",
            )
            return RuleOutcome("apply", 0.7, ["scheduling_cancelled"], [step])

        if not s.scheduled_at:
            return RuleOutcome.noop("scheduling_no_datetime")

        if s.is_rescheduled and self.has_pending_round():
            params = {
                "scheduled_at": s.scheduled_at,
                "duration_minutes": s.duration_minutes or None,
                "stage_name": s.stage_name,
                "interviewer_name": s.interviewer_name,
                "interviewer_role": s.interviewer_role,
                "video_link": s.video_link,
            }
            if s.original_scheduled_at:
                params["notes_append"] = f"Rescheduled from {s.original_scheduled_at} to {s.scheduled_at}"
            step = self.steps.update_round(
                "reschedule_round",
                selector="latest_pending",
                params=params,
                preconditions=[ANY_PENDING_ROUND],
                evidence=evidence,
            )
            return RuleOutcome("apply", 0.75, ["scheduling_rescheduled"], [step])

        stage = round_stage(s.stage, s.round_type)
        steps = [
            self.steps.create_round(
                "create_round",
                params={
                    "stage": stage,
                    "stage_name": s.stage_name,
                    "scheduled_at": s.scheduled_at,
                    "duration_minutes": s.duration_minutes or None,
                    "interviewer_name": s.interviewer_name,
                    "interviewer_role": s.interviewer_role,
                    "video_link": s.video_link,
                    "confirmation_source": "email",
                },
                preconditions=["match.matched == true"],
                evidence=evidence,
            )
        ]

        target_stage = "screening" if stage == "screening" else "interviewing"
        current = self.input.application.pipeline_stage
        if current in PIPELINE_STAGES and PIPELINE_STAGES.index(current) < PIPELINE_STAGES.index(target_stage):
            steps.append(
                self.steps.set_pipeline_stage(
                    f"set_pipeline_{target_stage}",
                    stage=target_stage,
                    preconditions=[f"application.pipeline_stage == {current}"],
                    evidence=evidence[:1],
                )
            )
        return RuleOutcome("apply", 0.8, ["scheduling_confirmed"], steps)


def _bullets(items: list) -> Optional[str]:
    text = "\n".join(f"• {i}" for i in items if i)
    return text or None


def default_recommended_action(result: str, rf: RoundFeedback) -> Optional[str]:
    if result == "passed":
        if rf.next_steps.has_next_round:
            return f"Prepare for {rf.next_steps.next_round_type or 'next round'}"
        return "Follow up on next steps"
    if result == "failed":
        return "Review feedback and apply learnings to future interviews"
    if result == "waitlisted":
        return "Follow up in 1-2 weeks if no update"
    return None


class RoundFeedbackRule(Rule):
    def evaluate(self) -> Optional[RuleOutcome]:
        if not self.matched or self.kind != "round_feedback":
            return None
        rf = self.facts.round_feedback
        evidence = rf.evidence[:3]
        if not evidence:
            return RuleOutcome.noop("round_feedback_no_evidence")
        result = rf.result if rf.result in ("passed", "failed", "waitlisted", "cancelled") else None
        if result is None:
            return RuleOutcome.noop("round_feedback_unknown_result")
        pending = resolve_round(LatestPending(), self.rounds)
        if pending is None:
            return RuleOutcome.noop("round_feedback_no_pending_round")

        steps = [
            self.steps.set_round_result(
                "set_round_result",
                selector="latest_pending",
                result=result,
                completed_at=self.input.event.email_date,
                preconditions=[ANY_PENDING_ROUND],
                evidence=evidence,
                risk="high" if result == "failed" else "low",
            )
        ]

        fb = rf.feedback
        if fb.has_detailed_feedback:
            fb_evidence = [fb.full_feedback_text] if fb.full_feedback_text else evidence[:1]
            # The round is no longer pending once the previous step runs, so pin it by id.
            steps.append(
                self.steps.create_interview_feedback(
                    "create_interview_feedback",
                    selector="by_id",
                    round_id=pending.id,
                    params={
                        "went_well": _bullets(fb.strengths),
                        "to_improve": _bullets(fb.improvements),
                        "ai_summary": fb.summary,
                        "interviewer_notes": fb.full_feedback_text,
                        "recommended_action": default_recommended_action(result, rf),
                    },
                    preconditions=["round.interview_feedback == null"],
                    evidence=fb_evidence,
                )
            )
        return RuleOutcome("apply", 0.7, ["round_feedback_kind"], steps)


def offer_feedback_text(sc: StatusChange) -> str:
    od = sc.offer_details
    parts = [f"Offer received{' for ' + od.role_title if od.role_title else ''}."]
    if od.response_deadline:
        parts.append(f"Respond by: {od.response_deadline}")
    if od.start_date:
        parts.append(f"Start date: {od.start_date}")
    return "\n".join(parts)


class StatusUpdateRule(Rule):
    def evaluate(self) -> Optional[RuleOutcome]:
        if not self.matched or self.kind != "status_update":
            return None
        sc = self.facts.status_change
        evidence = sc.evidence[:3]
        if not evidence:
            return RuleOutcome.noop("status_update_no_evidence")

        if sc.type == "rejection":
            steps = [
                self.steps.set_application_status(
                    "set_status_rejected", "rejected", ["application.status == active"], evidence, risk="high"
                ),
                self.steps.set_pipeline_stage(
                    "set_pipeline_closed", "closed", ["application.pipeline_stage != closed"], evidence[:1], risk="high"
                ),
            ]
            return RuleOutcome("apply", 0.75, ["rejection_status_change"], steps)

        if sc.type == "offer":
            steps = [
                self.steps.set_pipeline_stage(
                    "set_pipeline_offer", "offer", ["application.pipeline_stage != offer"], evidence, risk="medium"
                ),
                self.steps.create_company_feedback(
                    "create_company_feedback_offer",
                    params={
                        "feedback_type": "offer",
                        "feedback_text": offer_feedback_text(sc),
                        "rejection_reason": None,
                        "next_steps": sc.offer_details.next_steps,
                    },
                    preconditions=["application.company_feedback == null"],
                    evidence=evidence[:2],
                ),
            ]
            return RuleOutcome("apply", 0.7, ["offer_status_change"], steps)

        if sc.type == "on_hold":
            step = self.steps.set_application_status(
                "set_status_on_hold", "on_hold", ["application.status == active"], evidence, risk="medium"
            )
            return RuleOutcome("apply", 0.65, ["on_hold_status_change"], [step])

        if sc.type == "withdrawal":
            step = self.steps.set_application_status(
                "set_status_withdrawn", "withdrawn", ["application.status == active"], evidence, risk="medium"
            )
            return RuleOutcome("apply", 0.65, ["withdrawal_status_change"], [step])

        return RuleOutcome.noop("status_update_no_change")


class OpportunityRule(Rule):
    MIN_CLASSIFICATION_CONFIDENCE = 0.7

    def evaluate(self) -> Optional[RuleOutcome]:
        if self.input.match.matched:
            return None
        if self.kind not in ("recruiter_outreach", "potential_opportunity"):
            return None
        if self.facts.classification.confidence < self.MIN_CLASSIFICATION_CONFIDENCE:
            return RuleOutcome.noop("opportunity_low_confidence")

        evidence = self.facts.classification.evidence[:3]
        if not evidence:
            evidence = [f"job posting: {link.url}" for link in self.facts.action_links[:1]]
        if not evidence:
            return RuleOutcome.noop("opportunity_no_evidence")

        entities = self.facts.entities
        sender = self.input.event.sender
        job_url = self._choose_job_url()
        steps = [
            self.steps.unmatched(
                "create_opportunity",
                "create_opportunity",
                params={
                    "company_name": entities.company.name,
                    "job_title": entities.job.title,
                    "job_url": job_url,
                    "recruiter_name": entities.recruiter.name or sender.name,
                    "recruiter_email": entities.recruiter.email or sender.email,
                    "extracted_links": self._extracted_links(job_url),
                },
                evidence=evidence,
            )
        ]
        if job_url:
            listing_evidence = [f"job posting: {job_url}"]
            steps += [
                self.steps.unmatched(
                    "upsert_job_listing_from_url",
                    "upsert_job_listing_from_url",
                    params={
                        "url": job_url,
                        "company_name": entities.company.name,
                        "job_role_title": entities.job.title,
                        "job_title": entities.job.title,
                    },
                    evidence=listing_evidence,
                ),
                self.steps.unmatched(
                    "attach_job_listing_to_opportunity",
                    "attach_job_listing_to_opportunity",
                    params={"url": job_url},
                    evidence=listing_evidence,
                ),
                self.steps.unmatched(
                    "enqueue_scrape_job_listing",
                    "enqueue_scrape_job_listing",
                    params={"url": job_url, "force": False},
                    evidence=listing_evidence,
                ),
            ]
        return RuleOutcome("apply", 0.75, ["recruiter_outreach_unmatched"], steps)

    def _choose_job_url(self) -> Optional[str]:
        if self.facts.entities.job.url:
            return self.facts.entities.job.url
        for link in self.facts.action_links:
            if link.url:
                return link.url
        for link in self.input.event.links:
            if link.url:
                return link.url
        return None

    def _extracted_links(self, job_url: Optional[str]) -> list:
        links = [
            {
                "url": link.url,
                "type": "job_posting" if link.url == job_url else "unknown",
                "description": link.label_hint,
            }
            for link in self.input.event.links
        ]
        if not links and job_url:
            links = [{"url": job_url, "type": "job_posting", "description": "Job posting"}]
        return links[:50]


RULES = (SchedulingRule, RoundFeedbackRule, StatusUpdateRule, OpportunityRule)
