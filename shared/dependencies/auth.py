"""FastAPI authentication dependency for the knowledge base API."""

import secrets

from fastapi import HTTPException, Request


def _get_provided_key(request: Request) -> str | None:
    """Read the key from X-API-Key, falling back to an Authorization bearer token."""
    provided_key = request.headers.get("X-API-Key")
    if provided_key:
        return provided_key
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


async def verify_api_key(request: Request) -> None:
    """Compare the caller's key with APP_API_KEY.

    Args:
        request (Request): The incoming FastAPI request.

    Raises:
        HTTPException: 401 if the key is missing or does not match.
    """
    expected_key = request.app.state.config.get_string_val("APP_API_KEY")
    provided_key = _get_provided_key(request)
    if not provided_key or not secrets.compare_digest(provided_key, expected_key):
        raise HTTPException(status_code=401, detail="Invalid or missing API key.")
