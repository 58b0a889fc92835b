from typing import Any, Dict, List

VISA_STATUSES = {"explicitly_available", "explicitly_not_available", "not_mentioned"}
VISA_TIMINGS = {
    "immediate",
    "after_probation",
    "after_6_months",
    "after_1_year",
    "not_specified",
}
SKILL_GROUPS = [
    "programming_languages",
    "frameworks",
    "tools_platforms",
    "databases",
    "other_technical_skills",
]

# JSON schema handed to the model as the tool input schema
_NULLABLE_BOOL = {"type": ["boolean", "null"]}
_STRING_LIST = {"type": "array", "items": {"type": "string"}}
_SKILL_LIST = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "name": {"type": "string", "description": "Name of the technology/skill"},
            "required": {"type": "boolean", "description": "Required (true) or preferred (false)"},
            "years_experience": {"type": ["number", "null"]},
        },
        "required": ["name", "required", "years_experience"],
    },
}

EXTRACTION_JSON_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "visa_sponsorship": {
            "type": "object",
            "properties": {
                "status": {"type": "string", "enum": sorted(VISA_STATUSES)},
                "details": {
                    "type": ["object", "null"],
                    "properties": {
                        "will_sponsor_new": _NULLABLE_BOOL,
                        "will_transfer_existing": _NULLABLE_BOOL,
                        "visa_types": _STRING_LIST,
                        "geographic_restrictions": _STRING_LIST,
                        "timing": {"type": ["string", "null"], "enum": sorted(VISA_TIMINGS) + [None]},
                        "relocation_assistance": _NULLABLE_BOOL,
                        "relocation_package": {"type": ["string", "null"]},
                        "notes": {"type": ["string", "null"]},
                    },
                },
                "work_authorization_required": _NULLABLE_BOOL,
                "citizenship_requirements": {"type": ["array", "null"], "items": {"type": "string"}},
            },
            "required": ["status", "details", "work_authorization_required", "citizenship_requirements"],
        },
        "technical_requirements": {
            "type": "object",
            "properties": {group: _SKILL_LIST for group in SKILL_GROUPS},
            "required": SKILL_GROUPS,
        },
    },
    "required": ["visa_sponsorship", "technical_requirements"],
}


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _is_str_list(v: Any) -> bool:
    return isinstance(v, list) and all(isinstance(x, str) for x in v)


def _check_nullable_bool(errors: List[str], obj: Dict[str, Any], field: str, path: str) -> None:
    if field not in obj:
        errors.append(f"Missing required field: {path}.{field}")
    elif obj[field] is not None and not isinstance(obj[field], bool):
        errors.append(f"Field '{path}.{field}' must be a boolean or null")


def _validate_visa(data: Any, errors: List[str]) -> None:
    path = "visa_sponsorship"
    if not isinstance(data, dict):
        errors.append(f"Field '{path}' must be an object")
        return

    if data.get("status") not in VISA_STATUSES:
        errors.append(f"Field '{path}.status' must be one of {sorted(VISA_STATUSES)}")

    _check_nullable_bool(errors, data, "work_authorization_required", path)

    citizenship = data.get("citizenship_requirements")
    if "citizenship_requirements" not in data:
        errors.append(f"Missing required field: {path}.citizenship_requirements")
    elif citizenship is not None and not _is_str_list(citizenship):
        errors.append(f"Field '{path}.citizenship_requirements' must be a list of strings or null")

    if "details" not in data:
        errors.append(f"Missing required field: {path}.details")
        return
    details = data["details"]
    if details is None:
        return
    if not isinstance(details, dict):
        errors.append(f"Field '{path}.details' must be an object or null")
        return

    dpath = f"{path}.details"
    for f in ("will_sponsor_new", "will_transfer_existing", "relocation_assistance"):
        _check_nullable_bool(errors, details, f, dpath)
    for f in ("visa_types", "geographic_restrictions"):
        if not _is_str_list(details.get(f)):
            errors.append(f"Field '{dpath}.{f}' must be a list of strings")
    timing = details.get("timing")
    if timing is not None and timing not in VISA_TIMINGS:
        errors.append(f"Field '{dpath}.timing' must be one of {sorted(VISA_TIMINGS)} or null")
    for f in ("relocation_package", "notes"):
        if details.get(f) is not None and not isinstance(details[f], str):
            errors.append(f"Field '{dpath}.{f}' must be a string or null")


def _validate_skills(data: Any, errors: List[str]) -> None:
    path = "technical_requirements"
    if not isinstance(data, dict):
        errors.append(f"Field '{path}' must be an object")
        return

    for group in SKILL_GROUPS:
        items = data.get(group)
        if not isinstance(items, list):
            errors.append(f"Field '{path}.{group}' must be a list")
            continue
        for i, item in enumerate(items):
            ipath = f"{path}.{group}[{i}]"
            if not isinstance(item, dict):
                errors.append(f"Field '{ipath}' must be an object")
                continue
            if not isinstance(item.get("name"), str) or not item["name"].strip():
                errors.append(f"Field '{ipath}.name' must be a non-empty string")
            if not isinstance(item.get("required"), bool):
                errors.append(f"Field '{ipath}.required' must be a boolean")
            years = item.get("years_experience")
            if years is not None and not _is_number(years):
                errors.append(f"Field '{ipath}.years_experience' must be a number or null")


def validate_extraction(data: Any) -> List[str]:
    """
    Returns a list of validation error messages for an AI extraction payload.
    Empty list means valid.
    """
    if not isinstance(data, dict):
        return ["Extraction must be an object"]

    errors: List[str] = []
    for f in ("visa_sponsorship", "technical_requirements"):
        if f not in data:
            errors.append(f"Missing required field: {f}")

    if "visa_sponsorship" in data:
        _validate_visa(data["visa_sponsorship"], errors)
    if "technical_requirements" in data:
        _validate_skills(data["technical_requirements"], errors)
    return errors
