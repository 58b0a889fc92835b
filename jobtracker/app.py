import argparse
import asyncio
from dataclasses import replace

from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .database import get_session, init_database
from .env import ConfigError, Settings, load_env
from .logger import get_logger
from .tasks import COMPANY_BATCH_SIZE, discover_job_ids_task, scrape_companies_task, scrape_jobs_task

logger = get_logger()


def _settings(args: argparse.Namespace) -> Settings:
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        raise SystemExit(str(e))
    if args.database_url:
        settings = replace(settings, database_url=args.database_url)
    logger.set_level(settings.log_level)
    return settings


def _open_session(settings: Settings):
    try:
        init_database(settings.database_url)
    except SQLAlchemyError as e:
        raise SystemExit(f"Could not open database {settings.database_url}: {e}")
    return get_session(settings.database_url)


def cmd_init_db(args: argparse.Namespace) -> None:
    settings = _settings(args)
    session = _open_session(settings)
    session.close()
    print(f"Database ready: {settings.database_url}")


def cmd_discover(args: argparse.Namespace) -> None:
    settings = _settings(args)
    session = _open_session(settings)
    try:
        new = asyncio.run(discover_job_ids_task(session))
    finally:
        session.close()
    print(f"Done. new job ids={new}")


def cmd_scrape(args: argparse.Namespace) -> None:
    settings = _settings(args)
    if not settings.skip_job_analyze and not settings.anthropic_api_key:
        raise SystemExit("ANTHROPIC_API_KEY not set. Set env var or SKIP_JOB_ANALYZE=true.")
    session = _open_session(settings)
    try:
        counts = asyncio.run(scrape_jobs_task(session, settings, limit=args.limit))
    finally:
        session.close()
    logger.log_metrics_summary()
    print("Done. " + " ".join(f"{k}={v}" for k, v in counts.items()))


def cmd_companies(args: argparse.Namespace) -> None:
    settings = _settings(args)
    session = _open_session(settings)
    try:
        counts = asyncio.run(scrape_companies_task(session, limit=args.company_limit))
    finally:
        session.close()
    logger.log_metrics_summary()
    print("Done. " + " ".join(f"{k}={v}" for k, v in counts.items()))


def cmd_run(args: argparse.Namespace) -> None:
    cmd_discover(args)
    cmd_scrape(args)
    cmd_companies(args)


def main():
    # Load .env if present (DATABASE_URL, ANTHROPIC_API_KEY, etc.)
    load_env()
    parser = argparse.ArgumentParser(prog="jobtracker", description="LinkedIn job posting tracker")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--database-url", help="SQLAlchemy database URL (or set DATABASE_URL)")

    subparsers = parser.add_subparsers(dest="command")
    ini = subparsers.add_parser("init-db", help="Create database tables")
    ini.set_defaults(func=cmd_init_db)

    dsc = subparsers.add_parser("discover", help="Discover job ids from the configured searches")
    dsc.set_defaults(func=cmd_discover)

    scr = subparsers.add_parser("scrape", help="Scrape new or stale job postings and record changes")
    scr.add_argument("--limit", type=int, default=10, help="Postings per run (default 10)")
    scr.set_defaults(func=cmd_scrape)

    cmp = subparsers.add_parser("companies", help="Scrape new or stale company pages")
    cmp.add_argument(
        "--company-limit", type=int, default=COMPANY_BATCH_SIZE,
        help=f"Companies per run (default {COMPANY_BATCH_SIZE})",
    )
    cmp.set_defaults(func=cmd_companies)

    run = subparsers.add_parser("run", help="Discover, scrape postings, then scrape companies")
    run.add_argument("--limit", type=int, default=10, help="Postings per run (default 10)")
    run.add_argument(
        "--company-limit", type=int, default=COMPANY_BATCH_SIZE,
        help=f"Companies per run (default {COMPANY_BATCH_SIZE})",
    )
    run.set_defaults(func=cmd_run)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
