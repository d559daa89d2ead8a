"""Tenant resolution from the request's bearer token.

The token is a JWT whose payload carries the tenant in its ``service`` claim.
The signature is not verified here; that is the API gateway's job.
"""

import base64
import json

from fastapi import Header, HTTPException

MISSING_TOKEN = "Authentication (JWT) required for API"
INVALID_TOKEN = "Invalid authentication token given"


def extract_tenant(token: str) -> str | None:
    """Decode the JWT payload (base64url, no verification) and read ``service``.

    Returns:
        The tenant, or None if the token is malformed or has no tenant.
    """
    parts = token.split(".")
    if len(parts) != 3:
        return None

    payload_b64 = parts[1]
    # Add padding if needed
    padding = 4 - len(payload_b64) % 4
    if padding != 4:
        payload_b64 += "=" * padding

    try:
        payload = json.loads(base64.urlsafe_b64decode(payload_b64))
    except ValueError:
        return None

    if not isinstance(payload, dict):
        return None
    tenant = payload.get("service")
    if isinstance(tenant, str) and tenant:
        return tenant
    return None


async def get_tenant(authorization: str | None = Header(default=None)) -> str:
    """FastAPI dependency resolving the calling tenant."""
    if not authorization:
        raise HTTPException(status_code=401, detail=MISSING_TOKEN)

    scheme, _, credentials = authorization.partition(" ")
    token = credentials if scheme.lower() == "bearer" and credentials else authorization

    tenant = extract_tenant(token.strip())
    if tenant is None:
        raise HTTPException(status_code=401, detail=INVALID_TOKEN)
    return tenant
