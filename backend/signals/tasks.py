"""Celery tasks: per-email signals pipeline and job listing scrape. DB session per task."""
import logging
import re
from datetime import datetime
from html import unescape
from typing import Optional

import httpx
from celery import shared_task
from sqlalchemy.orm import Session

from .config import PipelineConfig
from .database import SessionLocal
from .decisioning.runner import ExecutionRunner
from .decisioning.shadow_runner import ShadowRunner
from .models import JobListing, SyncedEmail
from .observability.recorder import EmailPipelineRecorder

logger = logging.getLogger(__name__)

PIPELINE_MODES = ("execute", "shadow")
SCRAPE_TIMEOUT_S = 20.0
TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)


def run_email_signals(
    db: Session,
    synced_email_id: int,
    trigger: str = "gmail_sync",
    mode: str = "execute",
    config: Optional[PipelineConfig] = None,
    providers=None,
) -> dict:
    """
    One email -> one recorded run. Used by the Celery task and the replay script.

    Handler exceptions mark the run failed and propagate.
    """
    if mode not in PIPELINE_MODES:
        raise ValueError(f"mode must be one of {PIPELINE_MODES}, got {mode!r}")
    email = db.get(SyncedEmail, synced_email_id)
    if email is None:
        logger.warning(f"Signals pipeline skipped: synced_email_id={synced_email_id} not found")
        return {"synced_email_id": synced_email_id, "status": "not_found"}

    config = config or PipelineConfig.from_settings()
    recorder = EmailPipelineRecorder.start_for(db, email, trigger=trigger, mode=mode)
    runner_cls = ShadowRunner if mode == "shadow" else ExecutionRunner
    try:
        ok = runner_cls(db, email, config=config, recorder=recorder, providers=providers).call()
    except Exception as e:
        recorder.finish_failed(e)
        raise
    recorder.finish_success({"ok": ok})
    return {"synced_email_id": synced_email_id, "run_id": recorder.run_id, "ok": ok}


@shared_task(bind=True, name="signals.tasks.process_email_signals")
def process_email_signals(self, synced_email_id: int, trigger: str = "gmail_sync", mode: str = "execute"):
    db = SessionLocal()
    try:
        return run_email_signals(db, synced_email_id, trigger=trigger, mode=mode)
    finally:
        db.close()


def parse_title(html: str) -> Optional[str]:
    m = TITLE_RE.search(html or "")
    if not m:
        return None
    title = re.sub(r"\s+", " ", unescape(m.group(1))).strip()
    return title or None


def scrape_listing(db: Session, job_listing_id: int, force: bool = False, client: Optional[httpx.Client] = None) -> dict:
    listing = db.get(JobListing, job_listing_id)
    if listing is None:
        return {"job_listing_id": job_listing_id, "status": "not_found"}
    if listing.scraped_at and not force:
        return {"job_listing_id": job_listing_id, "status": "already_scraped"}

    owns_client = client is None
    client = client or httpx.Client(timeout=SCRAPE_TIMEOUT_S, follow_redirects=True)
    try:
        resp = client.get(listing.url)
        scraped = {"status_code": resp.status_code, "final_url": str(resp.url), "title": None}
        if resp.status_code == 200:
            scraped["title"] = parse_title(resp.text)
        status = "scraped" if resp.status_code == 200 else "http_error"
    except httpx.HTTPError as e:
        logger.warning(f"Job listing scrape failed: job_listing_id={job_listing_id} {type(e).__name__}: {e}")
        scraped = {"error": str(e), "error_type": type(e).__name__}
        status = "fetch_failed"
    finally:
        if owns_client:
            client.close()

    now = datetime.utcnow()
    scraped["attempted_at"] = now.isoformat()
    listing.scraped_data = scraped
    if status == "scraped":
        listing.scraped_at = now
        if scraped.get("title") and not listing.title:
            listing.title = scraped["title"]
    else:
        # Failed fetches stay unscraped and drop the enqueue stamp so a later plan can retry.
        listing.scrape_enqueued_at = None
    db.commit()
    logger.info(f"Job listing scrape: job_listing_id={job_listing_id} status={status}")
    return {"job_listing_id": job_listing_id, "status": status}


@shared_task(bind=True, name="signals.tasks.scrape_job_listing")
def scrape_job_listing(self, job_listing_id: int, force: bool = False):
    db = SessionLocal()
    try:
        return scrape_listing(db, job_listing_id, force=force)
    finally:
        db.close()
