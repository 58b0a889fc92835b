"""
Scheduled tasks: discover job ids from searches, scrape stale postings, and
scrape stale company pages.

Postings and companies are processed one at a time; each is fully fetched,
extracted and persisted before the next one starts.
"""

from datetime import timedelta
from enum import Enum
from functools import partial
from typing import Dict, Iterable, Optional

from sqlalchemy.orm import Session

from . import storage
from .change_detection import ChangeState, Extractor, apply_scraped_job
from .database import JobPosting, LinkedinCompany, run_transaction
from .env import Settings
from .extraction import extract_job_data
from .logger import get_logger
from .scrapers.common import PageNotFound, get_html
from .scrapers.linkedin import (
    SchoolPageRedirect,
    SearchInput,
    discover_job_ids,
    job_view_url,
    parse_job_page,
    scrape_company_page,
)

logger = get_logger()

STALE_AFTER = timedelta(hours=24)
SCRAPE_BATCH_SIZE = 10
COMPANY_STALE_AFTER = timedelta(days=7)
COMPANY_BATCH_SIZE = 1000
# Scraped when the company table is empty; similar-pages links grow it from there
SEED_COMPANY_SLUGS = ["openai"]

DEFAULT_SEARCH_INPUTS = [
    SearchInput(
        query="react",
        geo_id=103644278,
        location="United States",
        work_types=["on-site"],
        job_types=["full-time"],
        time=86400,
    ),
    SearchInput(
        query="typescript",
        geo_id=103644278,
        location="United States",
        work_types=["on-site"],
        job_types=["full-time"],
        time=86400,
    ),
]


class ScrapeOutcome(Enum):
    UNSEEN = "unseen"
    CHANGED = "changed"
    UNCHANGED = "unchanged"
    NOT_FOUND = "not_found"


class CompanyOutcome(Enum):
    SCRAPED = "company_scraped"
    SCHOOL_PAGE = "school_page"


async def discover_job_ids_task(
    session: Session,
    inputs: Iterable[SearchInput] = DEFAULT_SEARCH_INPUTS,
) -> int:
    """Run every search and save new job ids. Returns the number of new postings."""
    total_new = 0
    for search in inputs:
        job_ids = await discover_job_ids(search)
        new = run_transaction(session, lambda tx: storage.save_job_ids(tx, job_ids))
        logger.info("Saved job IDs", query=search.query, found=len(job_ids), new=new)
        total_new += new
    return total_new


async def scrape_job_posting(
    session: Session,
    posting: JobPosting,
    settings: Settings,
    extract: Optional[Extractor] = None,
) -> ScrapeOutcome:
    """
    Fetch one posting's page and run change detection on it.

    A removed posting is marked deleted and reported as NOT_FOUND rather
    than raised.
    """
    if extract is None:
        extract = partial(extract_job_data, settings=settings)

    try:
        soup = await get_html(job_view_url(posting.linkedin_job_id))
    except PageNotFound:
        logger.info("Job posting not found, marking as deleted", posting_id=posting.id)
        run_transaction(session, lambda tx: storage.mark_posting_deleted(tx, posting))
        return ScrapeOutcome.NOT_FOUND

    scraped = parse_job_page(soup)
    result = await apply_scraped_job(
        session, posting, scraped, extract, skip_analyze=settings.skip_job_analyze
    )
    if result.state is ChangeState.UNCHANGED:
        # Nothing to write for the detail; advance the posting in the staleness queue
        run_transaction(session, lambda tx: storage.touch_posting(tx, posting))
    return ScrapeOutcome(result.state.value)


async def scrape_jobs_task(
    session: Session,
    settings: Settings,
    limit: int = SCRAPE_BATCH_SIZE,
    stale_after: timedelta = STALE_AFTER,
    extract: Optional[Extractor] = None,
) -> Dict[str, int]:
    """
    Scrape postings that were never scraped or have gone stale.

    Errors on one posting are logged and counted; the batch continues.

    Returns:
        Count per outcome plus "failed"
    """
    counts = {outcome.value: 0 for outcome in ScrapeOutcome}
    counts["failed"] = 0

    postings = storage.select_postings_to_scrape(session, stale_after=stale_after, limit=limit)
    if not postings:
        logger.info("No job postings to process at this time")
        return counts

    logger.info(f"Processing {len(postings)} job postings")
    for posting in postings:
        logger.record_scrape_attempt()
        try:
            outcome = await scrape_job_posting(session, posting, settings, extract=extract)
        except Exception as e:
            session.rollback()
            counts["failed"] += 1
            logger.record_scrape_failure(type(e).__name__)
            logger.exception("Failed to scrape job posting", posting_id=posting.id, error=str(e))
            continue
        counts[outcome.value] += 1
        logger.record_scrape_success(outcome.value)

    logger.info("Finished processing job postings", **counts)
    return counts


async def scrape_company(session: Session, company: LinkedinCompany) -> CompanyOutcome:
    """
    Fetch one company page, save its profile and queue its similar pages.

    A school page is stamped as scraped and reported as SCHOOL_PAGE.
    """
    try:
        scraped = await scrape_company_page(company.company_slug)
    except SchoolPageRedirect as e:
        logger.info(
            "Company is a school page, skipping",
            company_slug=company.company_slug,
            location=e.location,
        )
        run_transaction(session, lambda tx: storage.touch_company(tx, company))
        return CompanyOutcome.SCHOOL_PAGE

    def save(tx: Session) -> None:
        new = storage.save_company_slugs(tx, scraped.similar_pages)
        storage.save_company_profile(tx, company, scraped)
        logger.debug("Saved company", company_slug=company.company_slug, new_similar_pages=new)

    run_transaction(session, save)
    return CompanyOutcome.SCRAPED


async def scrape_companies_task(
    session: Session,
    limit: int = COMPANY_BATCH_SIZE,
    stale_after: timedelta = COMPANY_STALE_AFTER,
) -> Dict[str, int]:
    """
    Scrape company pages that were never scraped or have gone stale.

    Errors on one company are logged and counted; the batch continues.

    Returns:
        Count per outcome plus "failed"
    """
    counts = {outcome.value: 0 for outcome in CompanyOutcome}
    counts["failed"] = 0

    if not storage.has_companies(session):
        run_transaction(session, lambda tx: storage.save_company_slugs(tx, SEED_COMPANY_SLUGS))

    companies = storage.select_companies_to_scrape(session, stale_after=stale_after, limit=limit)
    if not companies:
        logger.info("No companies to process at this time")
        return counts

    logger.info(f"Scraping {len(companies)} companies")
    for company in companies:
        logger.record_scrape_attempt()
        try:
            outcome = await scrape_company(session, company)
        except Exception as e:
            session.rollback()
            counts["failed"] += 1
            logger.record_scrape_failure(type(e).__name__)
            logger.exception("Failed to scrape company", company_slug=company.company_slug, error=str(e))
            continue
        counts[outcome.value] += 1
        logger.record_scrape_success(outcome.value)

    logger.info("Finished scraping companies", **counts)
    return counts
