"""
Database schema and connection management.

Uses SQLAlchemy; SQLite by default, any SQLAlchemy URL via DATABASE_URL.
"""

from datetime import datetime
from pathlib import Path
from typing import Callable, TypeVar

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    make_url,
)
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

Base = declarative_base()

T = TypeVar("T")


class JobPosting(Base):
    """A LinkedIn job id discovered from search results."""

    __tablename__ = "job_postings"

    id = Column(Integer, primary_key=True)
    linkedin_job_id = Column(BigInteger, nullable=False, unique=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    last_scraped_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    detail = relationship("JobPostingDetail", back_populates="posting", uselist=False)


class LinkedinCompany(Base):
    """
    Company referenced by a job page or a similar-pages link.

    Profile columns stay null until the company page has been scraped.
    """

    __tablename__ = "linkedin_companies"

    id = Column(Integer, primary_key=True)
    linkedin_company_id = Column(BigInteger, nullable=True, unique=True)
    company_slug = Column(String, nullable=False, unique=True)
    title = Column(String, nullable=True)
    industry = Column(String, nullable=True)
    company_size = Column(String, nullable=True)
    headquarters_location = Column(String, nullable=True)
    website_url = Column(String, nullable=True)
    organization_type = Column(String, nullable=True)
    founded_year = Column(Integer, nullable=True)
    specialties = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    last_scraped_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class JobPostingDetail(Base):
    """Current scraped content of a posting. checksum covers the scraped fields only."""

    __tablename__ = "job_posting_details"

    id = Column(Integer, primary_key=True)
    job_posting_id = Column(Integer, ForeignKey("job_postings.id"), nullable=False, unique=True)
    checksum = Column(String(64), nullable=False, index=True)
    title = Column(String, nullable=False)
    location = Column(String, nullable=False)
    text = Column(Text, nullable=False)
    json = Column(JSON(none_as_null=True), nullable=True)
    linkedin_company_id = Column(Integer, ForeignKey("linkedin_companies.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    posting = relationship("JobPosting", back_populates="detail")
    history = relationship(
        "JobPostingDetailHistory",
        back_populates="detail",
        order_by="JobPostingDetailHistory.id",
    )


class JobPostingDetailHistory(Base):
    """Append-only snapshot of a detail row taken before it was overwritten."""

    __tablename__ = "job_posting_detail_history"

    id = Column(Integer, primary_key=True)
    job_posting_detail_id = Column(Integer, ForeignKey("job_posting_details.id"), nullable=False)
    checksum = Column(String(64), nullable=False)
    title = Column(String, nullable=False)
    location = Column(String, nullable=False)
    text = Column(Text, nullable=False)
    json = Column(JSON(none_as_null=True), nullable=True)
    linkedin_company_id = Column(Integer, ForeignKey("linkedin_companies.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    detail = relationship("JobPostingDetail", back_populates="history")


def sqlite_url(db_path: Path) -> str:
    """Build a SQLite URL for a database file path."""
    return f"sqlite:///{db_path}"


def get_engine(database_url: str):
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url)


def init_database(database_url: str) -> None:
    """
    Initialize database and create tables.

    Args:
        database_url: SQLAlchemy database URL
    """
    engine = get_engine(database_url)
    Base.metadata.create_all(engine)


def get_session(database_url: str) -> Session:
    """
    Get database session.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        SQLAlchemy session
    """
    engine = get_engine(database_url)
    Session = sessionmaker(bind=engine)
    return Session()


def run_transaction(session: Session, work: Callable[[Session], T]) -> T:
    """
    Run ``work`` and commit everything it did, or nothing.

    Any exception raised by ``work`` or by the commit rolls the session back
    and is re-raised.
    """
    try:
        result = work(session)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return result
