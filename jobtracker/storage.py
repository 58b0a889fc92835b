"""
Query and write helpers over the job and company tables.

No domain decisions live here; change detection decides what to write.
"""

from datetime import datetime, timedelta
from typing import Any, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .database import JobPosting, JobPostingDetail, LinkedinCompany


def find_detail(session: Session, posting_id: int) -> Optional[JobPostingDetail]:
    return session.scalars(
        select(JobPostingDetail).where(JobPostingDetail.job_posting_id == posting_id)
    ).first()


def find_extraction_by_checksum(session: Session, checksum: str) -> Optional[Any]:
    """
    Return a stored extraction for any detail row with this checksum.

    Rows without an extraction (skipped analysis) are ignored.
    """
    return session.scalars(
        select(JobPostingDetail.json)
        .where(JobPostingDetail.checksum == checksum)
        .where(JobPostingDetail.json.is_not(None))
        .order_by(JobPostingDetail.id)
    ).first()


def save_job_ids(session: Session, job_ids: Iterable[int]) -> int:
    """
    Insert postings for ids not seen before.

    Returns:
        Number of new postings added (caller commits)
    """
    ids = set(job_ids)
    if not ids:
        return 0
    existing = set(
        session.scalars(
            select(JobPosting.linkedin_job_id).where(JobPosting.linkedin_job_id.in_(ids))
        )
    )
    new_ids = sorted(ids - existing)
    session.add_all(JobPosting(linkedin_job_id=job_id) for job_id in new_ids)
    return len(new_ids)


def select_postings_to_scrape(
    session: Session,
    stale_after: timedelta = timedelta(hours=24),
    limit: int = 10,
    now: Optional[datetime] = None,
) -> List[JobPosting]:
    """Postings never scraped or scraped before the staleness cutoff, never-scraped first."""
    cutoff = (now or datetime.now()) - stale_after
    stmt = (
        select(JobPosting)
        .where(JobPosting.is_deleted.is_(False))
        .where(
            (JobPosting.last_scraped_at.is_(None)) | (JobPosting.last_scraped_at < cutoff)
        )
        .order_by(JobPosting.last_scraped_at.asc().nulls_first(), JobPosting.id)
        .limit(limit)
    )
    return list(session.scalars(stmt))


def mark_posting_deleted(session: Session, posting: JobPosting) -> None:
    posting.is_deleted = True
    posting.last_scraped_at = datetime.now()


def touch_posting(session: Session, posting: JobPosting) -> None:
    posting.last_scraped_at = datetime.now()


def upsert_company(session: Session, company_id: int, company_slug: str) -> LinkedinCompany:
    """Find a company by LinkedIn id (then slug) and keep its slug current."""
    company = session.scalars(
        select(LinkedinCompany).where(LinkedinCompany.linkedin_company_id == company_id)
    ).first()
    if company is None:
        company = session.scalars(
            select(LinkedinCompany).where(LinkedinCompany.company_slug == company_slug)
        ).first()
    if company is None:
        company = LinkedinCompany(linkedin_company_id=company_id, company_slug=company_slug)
        session.add(company)
    else:
        company.linkedin_company_id = company_id
        company.company_slug = company_slug
    session.flush()
    return company


COMPANY_PROFILE_FIELDS = (
    "title",
    "industry",
    "company_size",
    "headquarters_location",
    "website_url",
    "organization_type",
    "founded_year",
    "specialties",
    "description",
)


def has_companies(session: Session) -> bool:
    return session.scalar(select(func.count()).select_from(LinkedinCompany)) > 0


def save_company_slugs(session: Session, slugs: Iterable[str]) -> int:
    """
    Insert companies for slugs not seen before.

    Returns:
        Number of new companies added (caller commits)
    """
    slugs = set(slugs)
    if not slugs:
        return 0
    existing = set(
        session.scalars(
            select(LinkedinCompany.company_slug).where(LinkedinCompany.company_slug.in_(slugs))
        )
    )
    new_slugs = sorted(slugs - existing)
    session.add_all(LinkedinCompany(company_slug=slug) for slug in new_slugs)
    return len(new_slugs)


def select_companies_to_scrape(
    session: Session,
    stale_after: timedelta = timedelta(days=7),
    limit: int = 1000,
    now: Optional[datetime] = None,
) -> List[LinkedinCompany]:
    """Companies never scraped or scraped before the staleness cutoff, never-scraped first."""
    cutoff = (now or datetime.now()) - stale_after
    stmt = (
        select(LinkedinCompany)
        .where(
            (LinkedinCompany.last_scraped_at.is_(None)) | (LinkedinCompany.last_scraped_at < cutoff)
        )
        .order_by(LinkedinCompany.last_scraped_at.asc().nulls_first(), LinkedinCompany.id)
        .limit(limit)
    )
    return list(session.scalars(stmt))


def save_company_profile(session: Session, company: LinkedinCompany, scraped: Any) -> LinkedinCompany:
    """Copy a scraped profile onto the company row and stamp it as scraped."""
    company.linkedin_company_id = scraped.company_id
    for name in COMPANY_PROFILE_FIELDS:
        setattr(company, name, getattr(scraped, name))
    company.last_scraped_at = datetime.now()
    return company


def touch_company(session: Session, company: LinkedinCompany) -> None:
    company.last_scraped_at = datetime.now()
