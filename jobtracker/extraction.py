"""
Structured data extraction from job postings with Claude.

The model is forced to answer through a single ``json`` tool whose input
schema is EXTRACTION_JSON_SCHEMA; replies that do not validate are retried
once.
"""

import json
from typing import Any, Dict, Optional

import anthropic
import httpx

from .env import ConfigError, Settings
from .logger import get_logger
from .retry import RetryDecision, retrying
from .schema import EXTRACTION_JSON_SCHEMA, validate_extraction

logger = get_logger()

REQUEST_TIMEOUT = 120.0
# Overloaded (529), rate limited and 5xx replies are retried inside the SDK
API_MAX_RETRIES = 3
MAX_TOKENS = 8192
TOOL_NAME = "json"

SYSTEM_PROMPT = """You extract structured facts from job postings.

Report only what the posting states. Use "not_mentioned" for visa sponsorship
when the posting is silent, and null for any detail it does not give. List
every technology under exactly one technical_requirements group, marking it
required only when the posting says it is required (not "nice to have"),
with years_experience taken from the posting or null."""


class MalformedExtractionError(Exception):
    """The model reply did not contain a valid extraction."""
    pass


def _retry_only_malformed(exception: BaseException) -> RetryDecision:
    return RetryDecision(retry=isinstance(exception, MalformedExtractionError))


def _log_retry(exception: BaseException, attempt: int, delay: float) -> None:
    logger.record_retry()
    logger.warning("Malformed extraction, retrying", attempt=attempt, error=str(exception))


def build_request(fields: Dict[str, Any], model: str) -> Dict[str, Any]:
    return {
        "model": model,
        "max_tokens": MAX_TOKENS,
        "system": SYSTEM_PROMPT,
        "messages": [
            {
                "role": "user",
                "content": "Extract the information from this job posting:\n\n"
                + json.dumps(fields, indent=2, ensure_ascii=False),
            }
        ],
        "tools": [
            {
                "name": TOOL_NAME,
                "description": "Respond with a JSON object",
                "input_schema": EXTRACTION_JSON_SCHEMA,
            }
        ],
        "tool_choice": {"type": "tool", "name": TOOL_NAME},
    }


def parse_response(message: anthropic.types.Message) -> Dict[str, Any]:
    """
    Pull the validated tool input out of a Messages API response.

    Raises:
        MalformedExtractionError: No tool call, wrong tool, or invalid payload
    """
    blocks = [b for b in message.content if b.type == "tool_use"]
    if not blocks:
        raise MalformedExtractionError("No tool use block found in the response")
    block = blocks[0]
    if block.name != TOOL_NAME:
        raise MalformedExtractionError(f"Unexpected tool name: {block.name}")

    data = block.input
    errors = validate_extraction(data)
    if errors:
        logger.debug("Extraction failed validation", errors=errors)
        raise MalformedExtractionError(f"Failed to parse job extraction data: {errors[0]}")
    return data


def create_client(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
) -> anthropic.AsyncAnthropic:
    return anthropic.AsyncAnthropic(
        api_key=settings.anthropic_api_key,
        max_retries=API_MAX_RETRIES,
        timeout=REQUEST_TIMEOUT,
        http_client=http_client,
    )


@retrying(
    max_attempts=2,
    initial_delay=1.0,
    max_delay=3.0,
    retry_condition=_retry_only_malformed,
    on_retry=_log_retry,
)
async def _extract(client: anthropic.AsyncAnthropic, fields: Dict[str, Any], model: str) -> Dict[str, Any]:
    message = await client.messages.create(**build_request(fields, model))
    return parse_response(message)


async def extract_job_data(
    fields: Dict[str, Any],
    settings: Settings,
    client: Optional[anthropic.AsyncAnthropic] = None,
) -> Dict[str, Any]:
    """
    Derive visa sponsorship and technical requirements from scraped fields.

    A client is created (and closed) per call unless one is passed in.

    Raises:
        ConfigError: ANTHROPIC_API_KEY is not configured
        MalformedExtractionError: The model failed twice to produce valid output
        anthropic.APIError: Request failures, once the SDK's own retries are spent
    """
    if not settings.anthropic_api_key:
        raise ConfigError("ANTHROPIC_API_KEY not set. Set it or enable SKIP_JOB_ANALYZE.")
    if client is not None:
        return await _extract(client, fields, settings.anthropic_model)
    async with create_client(settings) as owned:
        return await _extract(owned, fields, settings.anthropic_model)
