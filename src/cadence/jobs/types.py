"""Job types.

Public types:
- JobSpec: recurrence plus exactly one action
- HttpAction / BrokerAction: the two action variants
- Job: persisted record ``{"jobId": ..., "spec": {...}}``
"""

import json
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cadence.errors import InternalError

MAX_HEADERS_LENGTH = 2048
MAX_PAYLOAD_LENGTH = 8192
MAX_REGEX_LENGTH = 256


def _serialized_length(value: Any) -> int:
    return len(json.dumps(value, separators=(",", ":")))


class HttpAction(BaseModel):
    """Outbound HTTP call.

    ``criterion`` selects how the response is judged:
    1 = any response, 2 = body matches ``sregex``,
    3 = body does not match ``fregex``.
    """

    model_config = ConfigDict(frozen=True)

    method: str = Field(min_length=1)
    url: str = Field(min_length=1)
    headers: dict[str, str] | None = None
    body: Any = None
    criterion: int = Field(default=1, ge=1, le=3)
    sregex: str | None = Field(default=None, max_length=MAX_REGEX_LENGTH)
    fregex: str | None = Field(default=None, max_length=MAX_REGEX_LENGTH)

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @field_validator("headers")
    @classmethod
    def _limit_headers(cls, value: dict[str, str] | None) -> dict[str, str] | None:
        if value and _serialized_length(value) > MAX_HEADERS_LENGTH:
            raise ValueError(f"headers exceed {MAX_HEADERS_LENGTH} characters")
        return value

    @field_validator("body")
    @classmethod
    def _limit_body(cls, value: Any) -> Any:
        if value is not None and _serialized_length(value) > MAX_PAYLOAD_LENGTH:
            raise ValueError(f"body exceeds {MAX_PAYLOAD_LENGTH} characters")
        return value

    @field_validator("sregex", "fregex")
    @classmethod
    def _compiles(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid regular expression: {e}") from e
        return value

    @model_validator(mode="after")
    def _criterion_has_regex(self) -> "HttpAction":
        if self.criterion == 2 and self.sregex is None:
            raise ValueError("criterion 2 requires sregex")
        if self.criterion == 3 and self.fregex is None:
            raise ValueError("criterion 3 requires fregex")
        return self


class BrokerAction(BaseModel):
    """Publish of a JSON message onto a tenant-scoped subject."""

    model_config = ConfigDict(frozen=True)

    subject: str = Field(min_length=1, max_length=128)
    message: dict[str, Any]

    @field_validator("message")
    @classmethod
    def _limit_message(cls, value: dict[str, Any]) -> dict[str, Any]:
        if not value:
            raise ValueError("message must not be empty")
        if _serialized_length(value) > MAX_PAYLOAD_LENGTH:
            raise ValueError(f"message exceeds {MAX_PAYLOAD_LENGTH} characters")
        return value


Action = HttpAction | BrokerAction


class JobSpec(BaseModel):
    """Declarative description of a scheduled action."""

    model_config = ConfigDict(frozen=True)

    time: str = Field(min_length=1)
    timezone: str = "UTC"
    name: str | None = Field(default=None, min_length=2, max_length=128)
    description: str | None = Field(default=None, max_length=1024)
    http: HttpAction | None = None
    broker: BrokerAction | None = None

    @model_validator(mode="after")
    def _exactly_one_action(self) -> "JobSpec":
        if (self.http is None) == (self.broker is None):
            raise ValueError("exactly one of 'http' or 'broker' is required")
        return self

    @property
    def action(self) -> Action:
        action = self.http or self.broker
        if action is None:
            raise InternalError("Job spec has no action")
        return action

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return self.model_dump(mode="json", exclude_none=True)


class Job(BaseModel):
    """A job record as persisted and as returned to callers."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    job_id: str = Field(alias="jobId")
    spec: JobSpec

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape ``{"jobId": ..., "spec": {...}}``."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        return cls.model_validate(data)
