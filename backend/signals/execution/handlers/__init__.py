"""Action -> handler registry. Every Action member must have exactly one handler."""
from .application import SetApplicationStatus, SetPipelineStage
from .base import REQUIRES_APPLICATION, Action, Handler, parse_action
from .feedback import CreateCompanyFeedback, CreateInterviewFeedback
from .job_listings import EnqueueScrapeJobListing, UpsertJobListingFromUrl
from .opportunities import AttachJobListingToOpportunity, CreateOpportunity
from .rounds import CreateRound, SetRoundResult, UpdateRound

HANDLERS: dict[Action, type[Handler]] = {
    cls.action: cls
    for cls in (
        CreateRound,
        UpdateRound,
        SetRoundResult,
        CreateInterviewFeedback,
        CreateCompanyFeedback,
        SetPipelineStage,
        SetApplicationStatus,
        CreateOpportunity,
        UpsertJobListingFromUrl,
        AttachJobListingToOpportunity,
        EnqueueScrapeJobListing,
    )
}

_missing = set(Action) - set(HANDLERS)
if _missing:
    raise RuntimeError(f"Actions without handlers: {sorted(a.value for a in _missing)}")


__all__ = ["Action", "HANDLERS", "Handler", "REQUIRES_APPLICATION", "parse_action"]
