import hmac

from fastapi import HTTPException, Request


def get_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header.

    Args:
        request: The incoming request

    Returns:
        The token string if present, None otherwise
    """
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.replace("Bearer ", "", 1).strip()


def require_admin(request: Request) -> str:
    """Validate the admin token for operator endpoints.

    When no admin token is configured the endpoint is open.

    Raises:
        HTTPException: 401 if the token is missing or wrong
    """
    pipeline = getattr(request.app.state, "pipeline", None)
    expected = pipeline.settings.admin_token.strip() if pipeline is not None else ""
    if not expected:
        return "anonymous"

    token = get_bearer_token(request) or ""
    # Constant-time comparison
    if not hmac.compare_digest(token, expected):
        raise HTTPException(status_code=401, detail="Invalid or missing admin token")
    return "admin"
