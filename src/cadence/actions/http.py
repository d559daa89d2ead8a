"""HTTP action executor.

Sends the configured request and judges the response body with the action's
success criterion:

1. Any response counts as success.
2. Success if the body matches ``sregex``.
3. Failure if the body matches ``fregex``.

The HTTP status code is not part of any criterion.
"""

import json
import logging
import re

import httpx

from cadence.errors import ExecutionFailure, InternalError
from cadence.jobs.types import HttpAction

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

# Response bodies are truncated in debug logs
BODY_PREVIEW_LENGTH = 200


def evaluate_criterion(action: HttpAction, body: str) -> bool:
    """Return True if ``body`` satisfies the action's success criterion.

    Raises:
        InternalError: For a criterion other than 1, 2 or 3.
    """
    if action.criterion == 1:
        return True
    if action.criterion == 2:
        return re.search(action.sregex or "", body) is not None
    if action.criterion == 3:
        return re.search(action.fregex or "", body) is None
    raise InternalError(
        f"Unknown evaluation criterion {action.criterion} for http response"
    )


class HttpExecutor:
    """Executes HTTP actions with a shared httpx client."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._timeout = timeout

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _build_request(self, action: HttpAction) -> tuple[dict[str, str], bytes | None]:
        headers = dict(action.headers or {})
        if action.body is None:
            return headers, None
        if not any(name.lower() == "content-type" for name in headers):
            headers["Content-Type"] = "application/json"
        return headers, json.dumps(action.body).encode("utf-8")

    async def send(self, tenant: str, action: HttpAction) -> httpx.Response:
        """Send the request and apply the success criterion.

        Raises:
            ExecutionFailure: On transport error, timeout or a failed criterion.
            InternalError: On an unknown criterion.
        """
        headers, content = self._build_request(action)
        logger.debug(
            "http_action_request",
            extra={
                "tenant": tenant,
                "http.method": action.method,
                "http.url": action.url,
                "http.headers": headers,
            },
        )

        try:
            response = await self._client.request(
                action.method,
                action.url,
                headers=headers,
                content=content,
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise ExecutionFailure(
                f"HTTP {action.method} {action.url} failed: {type(e).__name__}: {e}"
            ) from e

        body = response.text
        logger.debug(
            "http_action_response",
            extra={
                "tenant": tenant,
                "http.status_code": response.status_code,
                "http.body_preview": body[:BODY_PREVIEW_LENGTH],
            },
        )

        if not evaluate_criterion(action, body):
            raise ExecutionFailure(
                f"HTTP {action.method} {action.url} failed by criterion "
                f"{action.criterion} (status {response.status_code})"
            )
        return response
