import hmac
import logging
import os

from fastapi import Depends, HTTPException, Request, status

logger = logging.getLogger(__name__)

TOKEN_ENV = "KASBOEK_API_TOKEN"
LOOPBACK_HOSTS = frozenset({"127.0.0.1", "::1", "localhost"})


def _configured_token() -> str:
    return os.getenv(TOKEN_ENV, "").strip()


def _bearer(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    return value.strip() if scheme.lower() == "bearer" else ""


async def require_api_auth(request: Request) -> None:
    """
    Guard for every data endpoint.

    - With KASBOEK_API_TOKEN set, require `Authorization: Bearer <token>`.
    - Without it, only loopback clients (localhost / 127.0.0.1 / ::1) are
      accepted.
    """
    token = _configured_token()
    if token:
        if not hmac.compare_digest(_bearer(request).encode(), token.encode()):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or missing API token.",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return

    client_host = request.client.host if request.client else ""
    if client_host not in LOOPBACK_HOSTS:
        logger.warning("Rejected request from %s: no %s configured", client_host or "unknown host", TOKEN_ENV)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Remote access requires {TOKEN_ENV}.",
        )


RequireAPIAuth = Depends(require_api_auth)
