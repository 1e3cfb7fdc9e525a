"""Job listing upsert and scrape enqueueing, keyed by normalized URL."""
import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ...contracts.types import PlanStep
from ...models import Company, JobListing
from ..urls import normalize_url
from .base import Action, Handler, SourceRef

logger = logging.getLogger(__name__)


def enqueue_scrape(job_listing_id: int, force: bool = False) -> None:
    """Hand the listing to the background scraper. Fire and forget."""
    from ...tasks import scrape_job_listing
    scrape_job_listing.delay(job_listing_id, force)


class UpsertJobListingParams(BaseModel):
    url: Optional[str] = None
    company_name: Optional[str] = None
    job_title: Optional[str] = None
    job_role_title: Optional[str] = None
    source: SourceRef = SourceRef()


class UpsertJobListingFromUrl(Handler):
    action = Action.UPSERT_JOB_LISTING_FROM_URL
    Params = UpsertJobListingParams

    def _company(self, name: Optional[str]) -> Optional[Company]:
        name = (name or "").strip()
        if not name:
            return None

        def lookup():
            return self.db.query(Company).filter(Company.name == name).first()

        existing = lookup()
        if existing is not None:
            return existing
        company, _ = self.insert_or_fetch(Company(name=name), lookup)
        return company

    def apply(self, step: PlanStep, params: UpsertJobListingParams) -> dict:
        url = normalize_url(params.url)
        if not url:
            return self.result(status="no_url")
        title = params.job_title or params.job_role_title

        def lookup():
            return self.db.query(JobListing).filter(JobListing.url == url).first()

        existing = lookup()
        if existing is not None:
            changed = False
            if title and not existing.title:
                existing.title = title
                changed = True
            if existing.company_id is None and params.company_name:
                company = self._company(params.company_name)
                existing.company_id = company.id if company else None
                changed = changed or company is not None
            if changed:
                self.db.commit()
            return self.result(status="already_exists", job_listing_id=existing.id, url=url)

        company = self._company(params.company_name)
        row = JobListing(
            url=url,
            title=title,
            company_id=company.id if company else None,
            status="active",
            source_id=str(self.email.id),
        )
        row, created = self.insert_or_fetch(row, lookup)
        if not created:
            return self.result(status="already_exists", job_listing_id=row.id, url=url)
        logger.info(f"Job listing created: job_listing_id={row.id} url={url}")
        return self.result(job_listing_id=row.id, url=url)


class EnqueueScrapeParams(BaseModel):
    url: Optional[str] = None
    force: bool = False
    source: SourceRef = SourceRef()


class EnqueueScrapeJobListing(Handler):
    """Stamps the listing only after the broker accepts it; a failed hand-off can be retried."""

    action = Action.ENQUEUE_SCRAPE_JOB_LISTING
    Params = EnqueueScrapeParams

    def apply(self, step: PlanStep, params: EnqueueScrapeParams) -> dict:
        url = normalize_url(params.url)
        if not url:
            return self.result(status="no_url")
        listing = self.db.query(JobListing).filter(JobListing.url == url).first()
        if listing is None:
            return self.result(status="no_job_listing")
        if not params.force:
            if listing.scraped_at is not None:
                return self.result(status="already_scraped", job_listing_id=listing.id)
            if listing.scrape_enqueued_at is not None:
                return self.result(status="already_enqueued", job_listing_id=listing.id)

        enqueue_scrape(listing.id, params.force)
        listing.scrape_enqueued_at = datetime.utcnow()
        self.db.commit()
        return self.result(status="enqueued", job_listing_id=listing.id)
