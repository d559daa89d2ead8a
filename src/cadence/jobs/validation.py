"""Validation of incoming job specs.

Checks beyond the model's own field rules: the recurrence must parse, HTTP
URLs must start with an allowed base URL and broker subjects must be on the
allowed list. Failures carry coded error entries for API responses.
"""

from typing import Any

from pydantic import ValidationError

from cadence.errors import InvalidSpecError
from cadence.jobs.types import JobSpec
from cadence.scheduling.recurrence import parse_recurrence

# Coded error entries, keyed by the field at fault
ERRORS: dict[str, dict[str, Any]] = {
    "internal": {"code": 1, "message": "Something went wrong. Try again later."},
    "notfound": {"code": 2, "message": "Job not found."},
    "time": {"code": 101, "message": "Invalid time: expected a cron expression."},
    "timezone": {"code": 102, "message": "Invalid timezone: expected an IANA name."},
    "name": {"code": 103, "message": "Invalid name: 2 to 128 characters."},
    "description": {"code": 104, "message": "Invalid description: up to 1024 characters."},
    "action": {"code": 105, "message": "Exactly one action ('http' or 'broker') is required."},
    "http.method": {"code": 111, "message": "Invalid http method."},
    "http.headers": {"code": 112, "message": "Invalid http headers: up to 2048 characters."},
    "http.url": {"code": 113, "message": "Invalid http url."},
    "http.criterion": {"code": 114, "message": "Invalid http criterion: 1, 2 or 3, with the matching regex."},
    "http.sregex": {"code": 115, "message": "Invalid http sregex: up to 256 characters."},
    "http.fregex": {"code": 116, "message": "Invalid http fregex: up to 256 characters."},
    "http.body": {"code": 117, "message": "Invalid http body: up to 8192 characters."},
    "broker.subject": {"code": 121, "message": "Invalid broker subject."},
    "broker.message": {"code": 122, "message": "Invalid broker message: JSON object up to 8192 characters."},
}

UNKNOWN_ERROR_CODE = 100

# Model-level validators report against the enclosing object
_OBJECT_FIELDS = {"": "action", "http": "http.criterion", "broker": "broker.message"}


def error_entry(field: str, detail: str | None = None) -> dict[str, Any]:
    entry = dict(ERRORS.get(field) or {"code": UNKNOWN_ERROR_CODE, "message": detail})
    entry["field"] = field
    return entry


def _field_for(loc: tuple[Any, ...]) -> str:
    path = ".".join(str(part) for part in loc[:2])
    return _OBJECT_FIELDS.get(path, path)


def describe_validation_errors(error: ValidationError) -> list[dict[str, Any]]:
    """Convert a pydantic ValidationError into coded error entries."""
    entries: list[dict[str, Any]] = []
    seen: set[str] = set()
    for item in error.errors():
        field = _field_for(tuple(item.get("loc", ())))
        if field in seen:
            continue
        seen.add(field)
        entries.append(error_entry(field, item.get("msg")))
    return entries


def validate_spec(
    payload: Any,
    allowed_base_urls: list[str] | None = None,
    allowed_subjects: list[str] | None = None,
) -> JobSpec:
    """Build a JobSpec from a request payload and check it for scheduling.

    An empty or missing allow-list disables that check.

    Raises:
        InvalidSpecError: With ``errors`` listing every problem found.
    """
    try:
        spec = JobSpec.model_validate(payload)
    except ValidationError as e:
        entries = describe_validation_errors(e)
        raise InvalidSpecError(
            f"Invalid job spec: {', '.join(entry['field'] for entry in entries)}",
            errors=entries,
        ) from e

    errors: list[dict[str, Any]] = []
    try:
        parse_recurrence(spec.time, spec.timezone)
    except InvalidSpecError as e:
        errors.append(error_entry(e.field or "time", str(e)))

    if spec.http is not None and allowed_base_urls:
        if not any(spec.http.url.startswith(base) for base in allowed_base_urls):
            errors.append(error_entry("http.url"))

    if spec.broker is not None and allowed_subjects:
        if spec.broker.subject not in allowed_subjects:
            errors.append(error_entry("broker.subject"))

    if errors:
        raise InvalidSpecError(
            f"Invalid job spec: {', '.join(entry['field'] for entry in errors)}",
            field=errors[0]["field"],
            errors=errors,
        )
    return spec
