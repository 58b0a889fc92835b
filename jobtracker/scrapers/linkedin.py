"""
LinkedIn guest pages: job search discovery, job detail and company page parsing.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Set
from urllib.parse import urlencode, urlparse

from bs4 import BeautifulSoup

from ..change_detection import ScrapedJob
from ..logger import get_logger
from .common import (
    ExtractionError,
    FetchError,
    find_element,
    get_attribute_or_throw,
    get_element,
    get_html,
    get_text_or_throw,
)

logger = get_logger()

JOB_SEARCH_URL = "https://www.linkedin.com/jobs/search"
JOB_SEARCH_INCREMENTAL_URL = "https://www.linkedin.com/jobs-guest/jobs/api/seeMoreJobPostings/search"
JOB_VIEW_URL = "https://www.linkedin.com/jobs/view/{job_id}"
COMPANY_URL = "https://www.linkedin.com/company/{company_slug}"

# LinkedIn stops serving guest results past this offset
MAX_SEARCH_RESULTS = 1000

WORK_TYPES: Dict[str, str] = {
    "on-site": "1",
    "remote": "2",
    "hybrid": "3",
}

JOB_TYPES: Dict[str, str] = {
    "full-time": "F",
    "part-time": "P",
    "contract": "C",
    "temporary": "T",
    "volunteer": "V",
    "internship": "I",
}

COMPANY_PATH_PREFIXES = {"company", "showcase", "school"}

# "about-us__<name>" sections parse_company_page knows how to read
KNOWN_COMPANY_SECTIONS = {
    "headquarters",
    "website",
    "industry",
    "organizationType",
    "specialties",
    "foundedOn",
    "size",
}


@dataclass(frozen=True)
class SearchInput:
    """
    A saved LinkedIn job search.

    time is the posting age window in seconds (f_TPR=r<time>).
    """

    query: str
    geo_id: int
    location: str
    work_types: List[str] = field(default_factory=list)
    job_types: List[str] = field(default_factory=list)
    time: int = 86400
    start: Optional[int] = None
    company_ids: List[int] = field(default_factory=list)


def create_job_search_url(search: SearchInput, is_initial: bool) -> str:
    base = JOB_SEARCH_URL if is_initial else JOB_SEARCH_INCREMENTAL_URL
    params = {
        "keywords": search.query,
        "geoid": str(search.geo_id),
        "location": search.location,
        "f_TPR": f"r{search.time}",
    }
    if search.start:
        params["start"] = str(search.start)
    if search.work_types:
        params["f_WT"] = ",".join(WORK_TYPES[t] for t in search.work_types)
    if search.job_types:
        params["f_JT"] = ",".join(JOB_TYPES[t] for t in search.job_types)
    if search.company_ids:
        params["f_C"] = ",".join(str(c) for c in search.company_ids)
    return f"{base}?{urlencode(params)}"


def job_view_url(job_id: int) -> str:
    return JOB_VIEW_URL.format(job_id=job_id)


def company_url(company_slug: str) -> str:
    return COMPANY_URL.format(company_slug=company_slug)


def is_school_page(location: Optional[str]) -> bool:
    if not location:
        return False
    return urlparse(location).path.startswith("/school/")


def extract_job_id_from_urn(urn: str) -> Optional[int]:
    """Extract the job id from a URN like "urn:li:jobPosting:4260453597"."""
    parts = urn.split(":")
    if len(parts) == 4 and parts[:3] == ["urn", "li", "jobPosting"]:
        if re.fullmatch(r"\d+", parts[3]):
            return int(parts[3])
    return None


def extract_company_name(url: str) -> Optional[str]:
    """
    Extract the slug from a company, showcase or school URL.

    Example: "https://www.linkedin.com/company/try-glimpse?trk=..." -> "try-glimpse"
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None
    path_parts = [p for p in parsed.path.split("/") if p]
    if len(path_parts) >= 2 and path_parts[0] in COMPANY_PATH_PREFIXES:
        return path_parts[1]
    return None


def parse_search_results(soup: BeautifulSoup, item_selector: str) -> List[int]:
    """Return the job ids of every result item in a search page, in page order."""
    job_ids = []
    for item in soup.select(item_selector):
        element = item.select_one('[data-entity-urn*="jobPosting"]')
        if element is None:
            raise ExtractionError("Element with data-entity-urn not found")
        urn = get_attribute_or_throw(element, "data-entity-urn")
        job_id = extract_job_id_from_urn(urn)
        if job_id is None:
            raise ExtractionError(f"Failed to extract job ID from URN: {urn}")
        job_ids.append(job_id)
    return job_ids


async def discover_job_ids(search: SearchInput, max_results: int = MAX_SEARCH_RESULTS) -> Set[int]:
    """Collect job ids from the initial search page and every following page."""
    url = create_job_search_url(search, is_initial=True)
    logger.info("Scraping job IDs", url=url)

    job_ids: Set[int] = set()
    soup = await get_html(url)
    job_ids.update(parse_search_results(soup, ".jobs-search__results-list li"))

    start = 0
    while True:
        if start >= max_results:
            logger.info("Reached maximum search offset, stopping", max_results=max_results)
            break
        next_url = create_job_search_url(replace(search, start=start), is_initial=False)
        soup = await get_html(next_url)
        page_ids = parse_search_results(soup, "li")
        if not page_ids:
            break
        job_ids.update(page_ids)
        start += len(page_ids)

    return job_ids


def _get_title(soup: BeautifulSoup) -> str:
    return get_text_or_throw(get_element(soup, ".top-card-layout__title"))


def _get_company_id(soup: BeautifulSoup) -> Optional[int]:
    meta = find_element(soup, 'meta[name="companyId"]')
    if meta is None:
        logger.debug("Company ID meta element not found")
        return None
    content = get_attribute_or_throw(meta, "content").strip()
    if not content.isdigit():
        raise ExtractionError(f"Company ID is not a valid number: {content}")
    return int(content)


def _get_company_name(soup: BeautifulSoup) -> Optional[str]:
    link = find_element(soup, "a.topcard__org-name-link")
    if link is None:
        logger.debug("Company link element not found")
        return None
    href = get_attribute_or_throw(link, "href")
    company_name = extract_company_name(href)
    if not company_name:
        raise ExtractionError(f"Failed to extract company name from URL: {href}")
    return company_name


def _get_location(soup: BeautifulSoup) -> str:
    return get_text_or_throw(
        get_element(soup, ".topcard__flavor-row:first-child .topcard__flavor--bullet")
    )


def _get_description(soup: BeautifulSoup) -> str:
    element = get_element(soup, ".description__text")
    for button in element.find_all("button"):
        button.decompose()
    text = element.get_text(separator="\n").strip()
    # Collapse the blank runs left behind by nested markup
    text = re.sub(r"\n\s*\n+", "\n\n", text)
    if not text:
        raise ExtractionError("Description text is empty")
    return text


def parse_job_page(soup: BeautifulSoup) -> ScrapedJob:
    """Extract the tracked fields from a job detail page."""
    return ScrapedJob(
        title=_get_title(soup),
        company_name=_get_company_name(soup),
        location=_get_location(soup),
        description=_get_description(soup),
        company_id=_get_company_id(soup),
    )


# Company pages


class SchoolPageRedirect(Exception):
    """The slug belongs to a school; LinkedIn only serves those pages to a logged-in browser."""

    def __init__(self, company_slug: str, location: str):
        super().__init__(f"Company {company_slug} redirects to school page {location}")
        self.company_slug = company_slug
        self.location = location


@dataclass
class ScrapedCompany:
    """Profile fields read from a company's about page."""

    company_id: int
    title: str
    industry: Optional[str] = None
    company_size: Optional[str] = None
    headquarters_location: Optional[str] = None
    website_url: Optional[str] = None
    organization_type: Optional[str] = None
    founded_year: Optional[int] = None
    specialties: Optional[str] = None
    description: Optional[str] = None
    similar_pages: List[str] = field(default_factory=list)


def _check_company_sections(soup: BeautifulSoup) -> None:
    # A new section means the page layout changed under us
    for section in soup.select('section[data-test-id^="about-us__"]'):
        name = get_attribute_or_throw(section, "data-test-id").replace("about-us__", "", 1)
        if name not in KNOWN_COMPANY_SECTIONS:
            raise ExtractionError(f"Unknown company section found: {name}")


def _get_organization_id(soup: BeautifulSoup) -> int:
    link = get_element(soup, 'a[data-semaphore-content-urn^="urn:li:organization:"]')
    urn = get_attribute_or_throw(link, "data-semaphore-content-urn")
    match = re.search(r"urn:li:organization:(\d+)", urn)
    if not match:
        raise ExtractionError(f"Failed to extract company ID from URN: {urn}")
    return int(match.group(1))


def _get_about_field(soup: BeautifulSoup, name: str) -> Optional[str]:
    element = find_element(soup, f'div[data-test-id="about-us__{name}"] dd')
    if element is None:
        return None
    return get_text_or_throw(element)


def _get_website_url(soup: BeautifulSoup) -> Optional[str]:
    element = find_element(soup, 'div[data-test-id="about-us__website"] dd a')
    if element is None:
        return None
    url = get_text_or_throw(element)
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    if not urlparse(url).netloc:
        raise ExtractionError(f"Website is not a valid URL: {url}")
    return url[:-1] if url.endswith("/") else url


def _get_founded_year(soup: BeautifulSoup) -> Optional[int]:
    content = _get_about_field(soup, "foundedOn")
    if content is None:
        return None
    if not content.isdigit():
        raise ExtractionError(f"Founded year is not a valid number: {content}")
    return int(content)


def _get_company_description(soup: BeautifulSoup) -> Optional[str]:
    element = find_element(soup, 'p[data-test-id="about-us__description"]')
    if element is None:
        return None
    return get_text_or_throw(element)


def _get_similar_pages(soup: BeautifulSoup) -> List[str]:
    slugs = []
    for link in soup.select('a[data-tracking-control-name="similar-pages"]'):
        href = get_attribute_or_throw(link, "href")
        slug = extract_company_name(href)
        if not slug:
            raise ExtractionError(f"Failed to extract company slug from similar page URL: {href}")
        slugs.append(slug)
    return slugs


def parse_company_page(soup: BeautifulSoup) -> ScrapedCompany:
    """
    Extract the profile fields from a company about page.

    Only the organization id and the name are required; every about-us
    field may be missing, but a present field must not be empty.

    Raises:
        ExtractionError: Missing required element, malformed value, or an
            about-us section this parser does not know
    """
    _check_company_sections(soup)
    return ScrapedCompany(
        company_id=_get_organization_id(soup),
        title=get_text_or_throw(get_element(soup, "h1")),
        industry=_get_about_field(soup, "industry"),
        company_size=_get_about_field(soup, "size"),
        headquarters_location=_get_about_field(soup, "headquarters"),
        website_url=_get_website_url(soup),
        organization_type=_get_about_field(soup, "organizationType"),
        founded_year=_get_founded_year(soup),
        specialties=_get_about_field(soup, "specialties"),
        description=_get_company_description(soup),
        similar_pages=_get_similar_pages(soup),
    )


async def scrape_company_page(company_slug: str) -> ScrapedCompany:
    """
    Fetch and parse a company page.

    Raises:
        SchoolPageRedirect: The slug redirects to a school page
        FetchError: Any other redirect, or a failed fetch
    """
    url = company_url(company_slug)
    logger.info("Scraping company", company_slug=company_slug, url=url)
    try:
        soup = await get_html(url)
    except FetchError as e:
        if e.is_redirect and is_school_page(e.location):
            raise SchoolPageRedirect(company_slug, e.location) from e
        raise
    return parse_company_page(soup)
