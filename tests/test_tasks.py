"""
Tests for the discover, scrape and company tasks.
"""

import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest
from bs4 import BeautifulSoup

from jobtracker import tasks
from jobtracker.database import JobPosting, JobPostingDetail, JobPostingDetailHistory, LinkedinCompany
from jobtracker.scrapers.common import ExtractionError, PageNotFound
from jobtracker.scrapers.linkedin import SchoolPageRedirect, SearchInput, parse_company_page
from jobtracker.tasks import (
    CompanyOutcome,
    ScrapeOutcome,
    discover_job_ids_task,
    scrape_companies_task,
    scrape_company,
    scrape_job_posting,
    scrape_jobs_task,
)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def serve_pages(monkeypatch):
    """Serve job pages from a dict keyed by LinkedIn job id; missing ids are 404."""
    pages = {}

    async def fake_get_html(url, *args, **kwargs):
        job_id = int(url.rsplit("/", 1)[1])
        if job_id not in pages:
            raise PageNotFound(url)
        body = pages[job_id]
        if isinstance(body, Exception):
            raise body
        return BeautifulSoup(body, "html.parser")

    monkeypatch.setattr(tasks, "get_html", fake_get_html)
    return pages


class TestScrapeJobPosting:
    """Test a single posting scrape."""

    def test_new_posting(self, db_session, make_posting, settings, serve_pages, sample_job_page_html, fake_extractor):
        posting = make_posting(111)
        serve_pages[111] = sample_job_page_html

        outcome = run(scrape_job_posting(db_session, posting, settings, extract=fake_extractor))

        assert outcome is ScrapeOutcome.UNSEEN
        detail = db_session.query(JobPostingDetail).one()
        assert detail.title == "Senior React Engineer"
        assert detail.location == "Austin, TX"
        assert len(fake_extractor.calls) == 1

    def test_not_found_marks_deleted(self, db_session, make_posting, settings, serve_pages, fake_extractor):
        posting = make_posting(222)

        outcome = run(scrape_job_posting(db_session, posting, settings, extract=fake_extractor))

        assert outcome is ScrapeOutcome.NOT_FOUND
        db_session.expire_all()
        stored = db_session.query(JobPosting).filter_by(linkedin_job_id=222).one()
        assert stored.is_deleted is True
        assert stored.last_scraped_at is not None
        assert db_session.query(JobPostingDetail).count() == 0
        assert fake_extractor.calls == []

    def test_unchanged_touches_posting(
        self, db_session, make_posting, settings, serve_pages, sample_job_page_html, fake_extractor
    ):
        posting = make_posting(333)
        serve_pages[333] = sample_job_page_html
        run(scrape_job_posting(db_session, posting, settings, extract=fake_extractor))
        first_scraped = posting.last_scraped_at

        outcome = run(scrape_job_posting(db_session, posting, settings, extract=fake_extractor))

        assert outcome is ScrapeOutcome.UNCHANGED
        assert posting.last_scraped_at >= first_scraped
        assert db_session.query(JobPostingDetailHistory).count() == 0
        assert len(fake_extractor.calls) == 1

    def test_changed_page_archives(
        self, db_session, make_posting, settings, serve_pages, sample_job_page_html, fake_extractor
    ):
        posting = make_posting(444)
        serve_pages[444] = sample_job_page_html
        run(scrape_job_posting(db_session, posting, settings, extract=fake_extractor))

        serve_pages[444] = sample_job_page_html.replace("Austin, TX", "Denver, CO")
        outcome = run(scrape_job_posting(db_session, posting, settings, extract=fake_extractor))

        assert outcome is ScrapeOutcome.CHANGED
        assert db_session.query(JobPostingDetail).one().location == "Denver, CO"
        assert db_session.query(JobPostingDetailHistory).one().location == "Austin, TX"

    def test_skip_analyze_setting(
        self, db_session, make_posting, settings, serve_pages, sample_job_page_html, fake_extractor
    ):
        posting = make_posting(555)
        serve_pages[555] = sample_job_page_html

        run(scrape_job_posting(db_session, posting, replace(settings, skip_job_analyze=True), extract=fake_extractor))

        assert fake_extractor.calls == []
        assert db_session.query(JobPostingDetail).one().json is None


class TestScrapeJobsTask:
    """Test the batch scrape."""

    def test_counts_outcomes_and_failures(
        self, db_session, make_posting, settings, serve_pages, sample_job_page_html, fake_extractor
    ):
        make_posting(1)
        make_posting(2)
        make_posting(3)
        serve_pages[1] = sample_job_page_html
        serve_pages[3] = ConnectionError("network down")

        counts = run(scrape_jobs_task(db_session, settings, extract=fake_extractor))

        assert counts == {"unseen": 1, "changed": 0, "unchanged": 0, "not_found": 1, "failed": 1}
        assert db_session.query(JobPostingDetail).count() == 1
        failed = db_session.query(JobPosting).filter_by(linkedin_job_id=3).one()
        assert failed.last_scraped_at is None
        assert failed.is_deleted is False

    def test_skips_fresh_postings(
        self, db_session, make_posting, settings, serve_pages, sample_job_page_html, fake_extractor
    ):
        make_posting(10)
        serve_pages[10] = sample_job_page_html
        run(scrape_jobs_task(db_session, settings, extract=fake_extractor))

        counts = run(scrape_jobs_task(db_session, settings, extract=fake_extractor))
        assert sum(counts.values()) == 0

        counts = run(scrape_jobs_task(db_session, settings, stale_after=timedelta(0), extract=fake_extractor))
        assert counts["unchanged"] == 1

    def test_respects_limit(self, db_session, make_posting, settings, serve_pages, sample_job_page_html, fake_extractor):
        for job_id in range(20, 25):
            make_posting(job_id)
            serve_pages[job_id] = sample_job_page_html

        counts = run(scrape_jobs_task(db_session, settings, limit=2, extract=fake_extractor))

        assert counts["unseen"] == 2
        # identical pages share one extraction
        assert len(fake_extractor.calls) == 1


class TestDiscoverJobIdsTask:
    """Test saving discovered ids."""

    def test_saves_new_ids_once(self, db_session, monkeypatch, make_posting):
        make_posting(1)
        results = {"react": {1, 2, 3}, "typescript": {3, 4}}

        async def fake_discover(search):
            return results[search.query]

        monkeypatch.setattr(tasks, "discover_job_ids", fake_discover)
        inputs = [
            SearchInput(query="react", geo_id=1, location="US"),
            SearchInput(query="typescript", geo_id=1, location="US"),
        ]

        new = run(discover_job_ids_task(db_session, inputs))

        assert new == 3
        ids = sorted(p.linkedin_job_id for p in db_session.query(JobPosting))
        assert ids == [1, 2, 3, 4]


@pytest.fixture
def serve_companies(monkeypatch):
    """Serve parsed company pages from a dict keyed by slug; values may be exceptions."""
    pages = {}
    requested = []

    async def fake_scrape_company_page(company_slug):
        requested.append(company_slug)
        body = pages[company_slug]
        if isinstance(body, Exception):
            raise body
        return parse_company_page(BeautifulSoup(body, "html.parser"))

    monkeypatch.setattr(tasks, "scrape_company_page", fake_scrape_company_page)
    return pages, requested


@pytest.fixture
def make_company(db_session):
    """Factory that inserts a company row by slug."""
    def _make(company_slug: str) -> LinkedinCompany:
        company = LinkedinCompany(company_slug=company_slug)
        db_session.add(company)
        db_session.commit()
        return company

    return _make


class TestScrapeCompany:
    """Test a single company scrape."""

    def test_saves_profile_and_similar_pages(
        self, db_session, make_company, serve_companies, sample_company_page_html
    ):
        pages, requested = serve_companies
        company = make_company("acme-corp")
        pages["acme-corp"] = sample_company_page_html

        outcome = run(scrape_company(db_session, company))

        assert outcome is CompanyOutcome.SCRAPED
        db_session.expire_all()
        stored = db_session.query(LinkedinCompany).filter_by(company_slug="acme-corp").one()
        assert stored.linkedin_company_id == 123456
        assert stored.title == "Acme Corp"
        assert stored.website_url == "https://acme.example"
        assert stored.last_scraped_at is not None
        slugs = sorted(c.company_slug for c in db_session.query(LinkedinCompany))
        assert slugs == ["acme-corp", "acme-labs", "globex"]

    def test_school_page_is_stamped_and_skipped(self, db_session, make_company, serve_companies):
        pages, requested = serve_companies
        company = make_company("mit")
        pages["mit"] = SchoolPageRedirect("mit", "https://www.linkedin.com/school/mit/")

        outcome = run(scrape_company(db_session, company))

        assert outcome is CompanyOutcome.SCHOOL_PAGE
        db_session.expire_all()
        stored = db_session.query(LinkedinCompany).one()
        assert stored.last_scraped_at is not None
        assert stored.title is None


class TestScrapeCompaniesTask:
    """Test the batch company scrape."""

    def test_seeds_empty_table(self, db_session, serve_companies, sample_company_page_html):
        pages, requested = serve_companies
        pages["openai"] = sample_company_page_html

        counts = run(scrape_companies_task(db_session))

        assert requested == ["openai"]
        assert counts == {"company_scraped": 1, "school_page": 0, "failed": 0}
        # similar pages are queued for the next run, not scraped in this one
        assert db_session.query(LinkedinCompany).count() == 3

    def test_counts_outcomes_and_failures(
        self, db_session, make_company, serve_companies, sample_company_page_html
    ):
        pages, requested = serve_companies
        make_company("acme-corp")
        make_company("mit")
        make_company("broken")
        pages["acme-corp"] = sample_company_page_html
        pages["mit"] = SchoolPageRedirect("mit", "https://www.linkedin.com/school/mit/")
        pages["broken"] = ExtractionError("Unknown company section found: stockSymbol")

        counts = run(scrape_companies_task(db_session))

        assert counts == {"company_scraped": 1, "school_page": 1, "failed": 1}
        assert "openai" not in requested
        broken = db_session.query(LinkedinCompany).filter_by(company_slug="broken").one()
        assert broken.last_scraped_at is None

    def test_skips_fresh_companies(self, db_session, make_company, serve_companies, sample_company_page_html):
        pages, requested = serve_companies
        make_company("acme-corp")
        for n, slug in enumerate(("acme-corp", "globex", "acme-labs"), start=1):
            pages[slug] = sample_company_page_html.replace("organization:123456", f"organization:{n}")
        run(scrape_companies_task(db_session, limit=1))

        counts = run(scrape_companies_task(db_session, limit=10))

        assert counts["company_scraped"] == 2
        assert requested == ["acme-corp", "acme-labs", "globex"]

        counts = run(scrape_companies_task(db_session))
        assert sum(counts.values()) == 0
