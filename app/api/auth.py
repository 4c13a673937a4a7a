import base64
import hmac

from fastapi import HTTPException, Request


def token_for(password: str) -> str:
    return base64.b64encode(password.encode("utf-8")).decode("ascii")


def _presented_token(request: Request) -> str | None:
    token = request.query_params.get("auth") or request.headers.get("x-auth-token")
    if token:
        return token
    header = request.headers.get("authorization") or ""
    if header.startswith("Bearer "):
        return header.split(" ", 1)[1]
    return None


def require_auth(request: Request):
    """Router dependency; a no-op when no site password is configured."""
    password = getattr(request.app.state, "site_password", None)
    if not password:
        return
    token = _presented_token(request)
    if token and hmac.compare_digest(token, token_for(password)):
        return
    raise HTTPException(401, "Authentication required")
