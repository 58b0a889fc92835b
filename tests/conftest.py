"""
Pytest configuration and shared fixtures.
"""

import copy
from typing import Any, Dict

import pytest

from jobtracker.change_detection import ScrapedJob
from jobtracker.database import JobPosting, get_session, init_database, sqlite_url
from jobtracker.env import Settings


@pytest.fixture
def sample_job_page_html() -> str:
    """Sample LinkedIn guest job page HTML."""
    return """
    <html>
    <head>
        <title>Acme hiring Senior React Engineer in Austin, TX | LinkedIn</title>
        <meta name="companyId" content="123456">
    </head>
    <body>
        <section class="top-card-layout">
            <h1 class="top-card-layout__title">Senior React Engineer</h1>
            <h4 class="top-card-layout__second-subline">
                <div class="topcard__flavor-row">
                    <span class="topcard__flavor">
                        <a class="topcard__org-name-link"
                           href="https://www.linkedin.com/company/acme-corp?trk=public_jobs_topcard-org-name">Acme</a>
                    </span>
                    <span class="topcard__flavor topcard__flavor--bullet">Austin, TX</span>
                </div>
                <div class="topcard__flavor-row">
                    <span class="topcard__flavor topcard__flavor--bullet">2 days ago</span>
                </div>
            </h4>
        </section>
        <div class="description__text description__text--rich">
            <p>We are looking for a React engineer.</p>
            <p>Requirements: 5+ years of TypeScript.</p>
            <button class="show-more-less-html__button">Show more</button>
        </div>
    </body>
    </html>
    """


@pytest.fixture
def sample_search_page_html() -> str:
    """Sample LinkedIn guest search results page HTML."""
    return """
    <html><body>
    <ul class="jobs-search__results-list">
        <li><div class="base-card" data-entity-urn="urn:li:jobPosting:4260453597"></div></li>
        <li><div class="base-card" data-entity-urn="urn:li:jobPosting:4260453598"></div></li>
    </ul>
    </body></html>
    """


@pytest.fixture
def sample_company_page_html() -> str:
    """Sample LinkedIn guest company page HTML."""
    return """
    <html><body>
    <section class="top-card-layout">
        <h1 class="top-card-layout__title">Acme Corp</h1>
        <a data-semaphore-content-urn="urn:li:organization:123456"
           data-tracking-control-name="public_biz_follow">Follow</a>
    </section>
    <section class="about-us">
        <p data-test-id="about-us__description">We build rockets and roadrunner traps.</p>
        <dl>
            <div data-test-id="about-us__website">
                <dt>Website</dt>
                <dd><a href="https://www.linkedin.com/redir/redirect?url=acme.example">acme.example/</a></dd>
            </div>
            <div data-test-id="about-us__industry"><dt>Industry</dt><dd>Aviation and Aerospace</dd></div>
            <div data-test-id="about-us__size"><dt>Company size</dt><dd>51-200 employees</dd></div>
            <div data-test-id="about-us__headquarters"><dt>Headquarters</dt><dd>Austin, TX</dd></div>
            <div data-test-id="about-us__organizationType"><dt>Type</dt><dd>Privately Held</dd></div>
            <div data-test-id="about-us__foundedOn"><dt>Founded</dt><dd>1949</dd></div>
            <div data-test-id="about-us__specialties"><dt>Specialties</dt><dd>Rockets, Traps</dd></div>
        </dl>
    </section>
    <section data-test-id="about-us__headquarters"></section>
    <section class="similar-pages">
        <a data-tracking-control-name="similar-pages"
           href="https://www.linkedin.com/company/globex?trk=similar-pages">Globex</a>
        <a data-tracking-control-name="similar-pages"
           href="https://www.linkedin.com/showcase/acme-labs/">Acme Labs</a>
    </section>
    </body></html>
    """


@pytest.fixture
def valid_extraction() -> Dict[str, Any]:
    """Valid AI extraction payload."""
    return {
        "visa_sponsorship": {
            "status": "explicitly_available",
            "details": {
                "will_sponsor_new": True,
                "will_transfer_existing": None,
                "visa_types": ["H-1B"],
                "geographic_restrictions": [],
                "timing": "immediate",
                "relocation_assistance": False,
                "relocation_package": None,
                "notes": None,
            },
            "work_authorization_required": None,
            "citizenship_requirements": None,
        },
        "technical_requirements": {
            "programming_languages": [
                {"name": "TypeScript", "required": True, "years_experience": 5},
            ],
            "frameworks": [
                {"name": "React", "required": True, "years_experience": None},
            ],
            "tools_platforms": [],
            "databases": [],
            "other_technical_skills": [],
        },
    }


@pytest.fixture
def scraped_job() -> ScrapedJob:
    return ScrapedJob(
        title="Senior React Engineer",
        company_name="acme-corp",
        location="Austin, TX",
        description="We are looking for a React engineer.",
        company_id=123456,
    )


@pytest.fixture
def database_url(tmp_path) -> str:
    url = sqlite_url(tmp_path / "test.db")
    init_database(url)
    return url


@pytest.fixture
def db_session(database_url):
    """Create a temporary database and return a session."""
    session = get_session(database_url)
    yield session
    session.close()


@pytest.fixture
def make_posting(db_session):
    """Factory that inserts a posting and returns it."""
    def _make(linkedin_job_id: int) -> JobPosting:
        posting = JobPosting(linkedin_job_id=linkedin_job_id)
        db_session.add(posting)
        db_session.commit()
        return posting

    return _make


@pytest.fixture
def fake_extractor(valid_extraction):
    """Async extractor stub that records the fields it was called with."""
    class FakeExtractor:
        def __init__(self):
            self.calls = []

        async def __call__(self, fields):
            self.calls.append(fields)
            return copy.deepcopy(valid_extraction)

    return FakeExtractor()


@pytest.fixture
def settings(database_url) -> Settings:
    return Settings(database_url=database_url, anthropic_api_key="test-key")
