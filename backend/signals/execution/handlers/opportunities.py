"""Recruiter outreach -> Opportunity."""
import logging
from typing import List, Optional

from pydantic import BaseModel

from ...contracts.types import PlanStep
from ...models import JobListing, Opportunity
from ..urls import normalize_url
from .base import Action, Handler, SourceRef

logger = logging.getLogger(__name__)


class ExtractedLink(BaseModel):
    url: str
    type: Optional[str] = None
    description: Optional[str] = None


class CreateOpportunityParams(BaseModel):
    company_name: Optional[str] = None
    job_title: Optional[str] = None
    job_url: Optional[str] = None
    recruiter_name: Optional[str] = None
    recruiter_email: Optional[str] = None
    extracted_links: List[ExtractedLink] = []
    source: SourceRef = SourceRef()


def _opportunity_for_email(db, synced_email_id: int) -> Optional[Opportunity]:
    return db.query(Opportunity).filter(Opportunity.synced_email_id == synced_email_id).first()


class CreateOpportunity(Handler):
    """One opportunity per source email."""

    action = Action.CREATE_OPPORTUNITY
    Params = CreateOpportunityParams

    def apply(self, step: PlanStep, params: CreateOpportunityParams) -> dict:
        def lookup():
            return _opportunity_for_email(self.db, self.email.id)

        existing = lookup()
        if existing is not None:
            return self.result(status="already_exists", opportunity_id=existing.id)

        snippet = self.email.snippet or (self.email.body_preview or "")[:500] or None
        row = Opportunity(
            user_id=self.email.user_id,
            synced_email_id=self.email.id,
            interview_application_id=self.email.interview_application_id,
            company_name=params.company_name,
            job_role_title=params.job_title,
            job_url=normalize_url(params.job_url),
            recruiter_name=params.recruiter_name,
            recruiter_email=params.recruiter_email,
            email_snippet=snippet,
            extracted_links=[link.model_dump() for link in params.extracted_links][:50],
            status="new",
            source_type="direct_email",
        )
        row, created = self.insert_or_fetch(row, lookup)
        if not created:
            return self.result(status="already_exists", opportunity_id=row.id)
        logger.info(f"Opportunity created: opportunity_id={row.id} synced_email_id={self.email.id}")
        return self.result(opportunity_id=row.id)


class AttachJobListingParams(BaseModel):
    url: Optional[str] = None
    source: SourceRef = SourceRef()


class AttachJobListingToOpportunity(Handler):
    action = Action.ATTACH_JOB_LISTING_TO_OPPORTUNITY
    Params = AttachJobListingParams

    def apply(self, step: PlanStep, params: AttachJobListingParams) -> dict:
        url = normalize_url(params.url)
        if not url:
            return self.result(status="no_url")
        opportunity = _opportunity_for_email(self.db, self.email.id)
        if opportunity is None:
            return self.result(status="no_opportunity")
        listing = self.db.query(JobListing).filter(JobListing.url == url).first()
        if listing is None:
            return self.result(status="no_job_listing", opportunity_id=opportunity.id)
        if opportunity.job_listing_id == listing.id:
            return self.result(status="already_attached", opportunity_id=opportunity.id, job_listing_id=listing.id)

        opportunity.job_listing_id = listing.id
        self.db.commit()
        return self.result(opportunity_id=opportunity.id, job_listing_id=listing.id)
