"""
Content fingerprints for structured data.

A checksum is the SHA-256 of a canonical JSON rendering: mapping keys are
sorted at every depth, array order is kept. Only JSON-representable values
are accepted; anything else raises ChecksumTypeError.
"""

import hashlib
import json
import math
from collections.abc import Mapping
from typing import Any, Optional

# Largest integer a JSON consumer can represent exactly (IEEE-754 double)
MAX_SAFE_INTEGER = 2 ** 53 - 1


class ChecksumTypeError(TypeError):
    """Raised when a value outside the JSON data model is checksummed."""
    pass


def _unsupported(value: Any, reason: str = "") -> ChecksumTypeError:
    type_name = type(value).__name__
    detail = f" ({reason})" if reason else ""
    return ChecksumTypeError(
        f"Unsupported type for checksum: {type_name}{detail}. "
        "Only None, bool, numbers, strings, lists and str-keyed mappings are allowed."
    )


def canonicalize(value: Any) -> Any:
    """
    Normalize a value for hashing.

    Returns an equivalent structure whose mappings are plain dicts with
    sorted keys. Integral floats become ints so 1 and 1.0 hash the same.

    Raises:
        ChecksumTypeError: If the value (at any depth) is not JSON data
    """
    if value is None or isinstance(value, (bool, str)):
        return value

    if isinstance(value, int):
        if abs(value) > MAX_SAFE_INTEGER:
            raise _unsupported(value, "integer beyond safe range")
        return value

    if isinstance(value, float):
        if not math.isfinite(value):
            raise _unsupported(value, "non-finite number")
        if value.is_integer() and abs(value) <= MAX_SAFE_INTEGER:
            return int(value)
        return value

    if isinstance(value, (list, tuple)):
        return [canonicalize(item) for item in value]

    if isinstance(value, Mapping):
        for key in value:
            if not isinstance(key, str):
                raise _unsupported(key, "mapping keys must be strings")
        return {key: canonicalize(value[key]) for key in sorted(value)}

    raise _unsupported(value)


def create_checksum(value: Any) -> str:
    """
    Create a SHA-256 checksum of a JSON-like value.

    Order-independent for mapping keys at all nesting levels, order-dependent
    for arrays.

    Example:
        create_checksum({"b": 2, "a": 1}) == create_checksum({"a": 1, "b": 2})
    """
    normalized = canonicalize(value)
    rendered = json.dumps(normalized, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(rendered.encode("utf-8")).hexdigest()


def job_fields_checksum(
    title: str,
    company_name: Optional[str],
    location: str,
    description: str,
) -> str:
    """Fingerprint of the scraped fields that drive change detection."""
    return create_checksum(
        {
            "jobTitle": title,
            "companyName": company_name,
            "location": location,
            "description": description,
        }
    )
