"""
Checksum-driven change detection for job detail rows.

The checksum covers the scraped fields only, never the derived extraction,
so identical posting text always maps to the same stored extraction.

States per posting:
- UNSEEN: no detail row yet; one is created.
- UNCHANGED: stored checksum matches; nothing is written.
- CHANGED: the old row is archived to history and overwritten in the same
  transaction.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.orm import Session

from . import storage
from .checksum import job_fields_checksum
from .database import JobPosting, JobPostingDetail, JobPostingDetailHistory, run_transaction
from .logger import get_logger
from .schema import validate_extraction

logger = get_logger()

Extractor = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


class ChangeState(Enum):
    UNSEEN = "unseen"
    UNCHANGED = "unchanged"
    CHANGED = "changed"


@dataclass
class ScrapedJob:
    """Fields read from a job page."""

    title: str
    company_name: Optional[str]
    location: str
    description: str
    company_id: Optional[int] = None

    def checksum_input(self) -> Dict[str, Any]:
        return {
            "jobTitle": self.title,
            "companyName": self.company_name,
            "location": self.location,
            "description": self.description,
        }

    def checksum(self) -> str:
        return job_fields_checksum(self.title, self.company_name, self.location, self.description)


@dataclass
class ChangeResult:
    state: ChangeState
    checksum: str
    detail_id: Optional[int] = None
    history_id: Optional[int] = None
    reused_extraction: bool = False


async def resolve_extraction(
    session: Session,
    checksum: str,
    scraped: ScrapedJob,
    extract: Extractor,
    skip_analyze: bool = False,
):
    """
    Find the extraction payload for new content.

    Returns:
        (payload, reused) where payload is None when analysis is skipped and
        no stored extraction matches.
    """
    stored = storage.find_extraction_by_checksum(session, checksum)
    if stored is not None:
        errors = validate_extraction(stored)
        if not errors:
            logger.record_extraction_reused()
            logger.info("Reusing extraction from identical posting", checksum=checksum)
            return stored, True
        logger.warning("Stored extraction failed validation, ignoring", checksum=checksum, errors=errors)

    if skip_analyze:
        return None, False

    logger.record_ai_call()
    return await extract(scraped.checksum_input()), False


def _archive_detail(session: Session, detail: JobPostingDetail) -> JobPostingDetailHistory:
    snapshot = JobPostingDetailHistory(
        job_posting_detail_id=detail.id,
        checksum=detail.checksum,
        title=detail.title,
        location=detail.location,
        text=detail.text,
        json=detail.json,
        linkedin_company_id=detail.linkedin_company_id,
    )
    session.add(snapshot)
    return snapshot


def _write_detail(
    session: Session,
    posting: JobPosting,
    detail: Optional[JobPostingDetail],
    scraped: ScrapedJob,
    checksum: str,
    payload: Any,
    company_id: Optional[int],
) -> JobPostingDetail:
    if detail is None:
        detail = JobPostingDetail(job_posting_id=posting.id)
        session.add(detail)
    detail.checksum = checksum
    detail.title = scraped.title
    detail.location = scraped.location
    detail.text = scraped.description
    detail.json = payload
    detail.linkedin_company_id = company_id
    return detail


def _mark_scraped(session: Session, posting: JobPosting) -> None:
    posting.last_scraped_at = datetime.now()


async def apply_scraped_job(
    session: Session,
    posting: JobPosting,
    scraped: ScrapedJob,
    extract: Extractor,
    skip_analyze: bool = False,
) -> ChangeResult:
    """
    Compare freshly scraped fields against the stored detail and persist changes.

    Args:
        session: Open database session
        posting: Posting the fields were scraped for
        scraped: Extracted page fields
        extract: Async AI extraction callable, invoked only when no stored
            extraction with the same checksum exists
        skip_analyze: Never call ``extract``; store no extraction instead

    Returns:
        ChangeResult describing the transition taken
    """
    checksum = scraped.checksum()
    existing = storage.find_detail(session, posting.id)

    if existing is not None and existing.checksum == checksum:
        logger.info("No changes detected, skipping update", posting_id=posting.id)
        return ChangeResult(ChangeState.UNCHANGED, checksum, detail_id=existing.id)

    state = ChangeState.CHANGED if existing is not None else ChangeState.UNSEEN
    payload, reused = await resolve_extraction(session, checksum, scraped, extract, skip_analyze)

    def work(tx: Session):
        snapshot = _archive_detail(tx, existing) if existing is not None else None

        company_id = None
        if scraped.company_id is not None and scraped.company_name:
            company_id = storage.upsert_company(tx, scraped.company_id, scraped.company_name).id

        detail = _write_detail(tx, posting, existing, scraped, checksum, payload, company_id)
        _mark_scraped(tx, posting)
        tx.flush()
        return detail, snapshot

    detail, snapshot = run_transaction(session, work)

    logger.info(
        "Saved job detail",
        posting_id=posting.id,
        state=state.value,
        checksum=checksum,
        reused_extraction=reused,
    )
    return ChangeResult(
        state,
        checksum,
        detail_id=detail.id,
        history_id=snapshot.id if snapshot is not None else None,
        reused_extraction=reused,
    )
