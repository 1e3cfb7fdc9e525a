"""
Typed views over the contract documents.

Documents cross the pipeline boundary as JSON (validated against the schemas in
``contracts/schemas``); inside the planner, validators and handlers they are
read through these models instead of raw dicts.
"""
from typing import List, Optional, Any

from pydantic import BaseModel, Field


class _Frozen(BaseModel):
    class Config:
        frozen = True
        populate_by_name = True
        extra = "ignore"


# --- EmailFacts ---

class Extraction(_Frozen):
    provider: Optional[str] = None
    model: Optional[str] = None
    confidence: float = 0.0
    warnings: List[str] = Field(default_factory=list)


class Classification(_Frozen):
    kind: str = "unknown"
    confidence: float = 0.0
    evidence: List[str] = Field(default_factory=list)


class CompanyEntity(_Frozen):
    name: Optional[str] = None
    website: Optional[str] = None


class RecruiterEntity(_Frozen):
    name: Optional[str] = None
    email: Optional[str] = None
    title: Optional[str] = None


class JobEntity(_Frozen):
    title: Optional[str] = None
    department: Optional[str] = None
    location: Optional[str] = None
    url: Optional[str] = None


class Entities(_Frozen):
    company: CompanyEntity = Field(default_factory=CompanyEntity)
    recruiter: RecruiterEntity = Field(default_factory=RecruiterEntity)
    job: JobEntity = Field(default_factory=JobEntity)


class ActionLink(_Frozen):
    url: str
    action_label: str
    priority: int = 5


class Scheduling(_Frozen):
    is_scheduling_related: bool = False
    scheduled_at: Optional[str] = None
    timezone_hint: Optional[str] = None
    duration_minutes: Optional[int] = None
    stage: Optional[str] = None
    round_type: Optional[str] = None
    stage_name: Optional[str] = None
    interviewer_name: Optional[str] = None
    interviewer_role: Optional[str] = None
    video_link: Optional[str] = None
    phone_number: Optional[str] = None
    location: Optional[str] = None
    is_rescheduled: bool = False
    is_cancelled: bool = False
    original_scheduled_at: Optional[str] = None
    evidence: List[str] = Field(default_factory=list)


class FeedbackDetail(_Frozen):
    has_detailed_feedback: bool = False
    summary: Optional[str] = None
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    full_feedback_text: Optional[str] = None


class NextSteps(_Frozen):
    has_next_round: bool = False
    next_round_type: Optional[str] = None
    next_round_hint: Optional[str] = None
    timeline_hint: Optional[str] = None


class RoundFeedback(_Frozen):
    has_round_feedback: bool = False
    result: Optional[str] = None
    stage_mentioned: Optional[str] = None
    round_type: Optional[str] = None
    interviewer_mentioned: Optional[str] = None
    date_mentioned: Optional[str] = None
    feedback: FeedbackDetail = Field(default_factory=FeedbackDetail)
    next_steps: NextSteps = Field(default_factory=NextSteps)
    evidence: List[str] = Field(default_factory=list)


class RejectionDetails(_Frozen):
    reason: Optional[str] = None
    stage_rejected_at: Optional[str] = None
    is_generic: bool = False
    door_open: bool = False


class OfferDetails(_Frozen):
    role_title: Optional[str] = None
    department: Optional[str] = None
    start_date: Optional[str] = None
    response_deadline: Optional[str] = None
    includes_compensation_info: bool = False
    compensation_hints: Optional[str] = None
    next_steps: Optional[str] = None


class StatusFeedback(_Frozen):
    has_feedback: bool = False
    feedback_text: Optional[str] = None
    is_constructive: bool = False


class StatusChange(_Frozen):
    has_status_change: bool = False
    type: Optional[str] = None
    is_final: Optional[bool] = None
    effective_date: Optional[str] = None
    rejection_details: RejectionDetails = Field(default_factory=RejectionDetails)
    offer_details: OfferDetails = Field(default_factory=OfferDetails)
    feedback: StatusFeedback = Field(default_factory=StatusFeedback)
    evidence: List[str] = Field(default_factory=list)


class EmailFacts(_Frozen):
    extraction: Extraction = Field(default_factory=Extraction)
    classification: Classification = Field(default_factory=Classification)
    entities: Entities = Field(default_factory=Entities)
    action_links: List[ActionLink] = Field(default_factory=list)
    key_insights: Any = None
    is_forwarded: bool = False
    scheduling: Scheduling = Field(default_factory=Scheduling)
    round_feedback: RoundFeedback = Field(default_factory=RoundFeedback)
    status_change: StatusChange = Field(default_factory=StatusChange)


# --- CanonicalEmailEvent ---

class EmailAddress(_Frozen):
    email: Optional[str] = None
    name: Optional[str] = None


class Normalization(_Frozen):
    replies_removed: bool = False
    html_stripped: bool = False
    whitespace_collapsed: bool = False


class EventBody(_Frozen):
    text: str = ""
    source: str = "none"
    truncated: bool = False
    normalization: Normalization = Field(default_factory=Normalization)


class EventLink(_Frozen):
    url: str
    label_hint: Optional[str] = None


class CanonicalEmailEvent(_Frozen):
    event_type: str = "email"
    synced_email_id: int
    thread_id: Optional[str] = None
    received_at: Optional[str] = None
    email_date: Optional[str] = None
    sender: EmailAddress = Field(default_factory=EmailAddress, alias="from")
    to: List[str] = Field(default_factory=list)
    subject: str = ""
    body: EventBody = Field(default_factory=EventBody)
    links: List[EventLink] = Field(default_factory=list)


# --- DecisionInput ---

class Match(_Frozen):
    matched: bool = False
    match_strategy: Optional[str] = None
    interview_application_id: Optional[int] = None
    confidence: float = 0.0


class RoundSnapshot(_Frozen):
    id: int
    position: Optional[int] = None
    stage: Optional[str] = None
    stage_name: Optional[str] = None
    scheduled_at: Optional[str] = None
    result: Optional[str] = None
    interviewer_name: Optional[str] = None
    source_email_id: Optional[int] = None


class CompanySnapshot(_Frozen):
    id: Optional[int] = None
    name: Optional[str] = None
    website: Optional[str] = None


class JobRoleSnapshot(_Frozen):
    id: Optional[int] = None
    title: Optional[str] = None


class ApplicationSnapshot(_Frozen):
    id: int
    status: Optional[str] = None
    pipeline_stage: Optional[str] = None
    company: CompanySnapshot = Field(default_factory=CompanySnapshot)
    job_role: JobRoleSnapshot = Field(default_factory=JobRoleSnapshot)
    rounds_recent: List[RoundSnapshot] = Field(default_factory=list)


class DecisionInput(_Frozen):
    version: str
    event: CanonicalEmailEvent
    match: Match = Field(default_factory=Match)
    application: Optional[ApplicationSnapshot] = None
    facts: EmailFacts = Field(default_factory=EmailFacts)

    @property
    def body_text(self) -> str:
        return self.event.body.text

    @property
    def email_id(self) -> int:
        return self.event.synced_email_id


# --- DecisionPlan ---

class RoundTargetSpec(_Frozen):
    selector: str = "none"
    id: Optional[int] = None
    scheduled_at: Optional[str] = None
    window_minutes: int = 0
    stage: Optional[str] = None
    result: Optional[str] = None


class StepTarget(_Frozen):
    application_id: Optional[int] = None
    round: RoundTargetSpec = Field(default_factory=RoundTargetSpec)


class PlanStep(_Frozen):
    step_id: str
    action: str
    target: StepTarget = Field(default_factory=StepTarget)
    params: dict = Field(default_factory=dict)
    preconditions: List[str] = Field(default_factory=list)
    evidence: List[str] = Field(default_factory=list)
    risk: str = "low"

    @property
    def source_email_id(self) -> Optional[int]:
        source = self.params.get("source")
        if isinstance(source, dict):
            return source.get("synced_email_id")
        return None


class DecisionPlan(_Frozen):
    version: str
    decision: str
    confidence: float = 0.0
    reasons: List[str] = Field(default_factory=list)
    plan: List[PlanStep] = Field(default_factory=list)
