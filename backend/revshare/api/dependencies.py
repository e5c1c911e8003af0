import hmac

from fastapi import HTTPException, Request, status

from revshare.core.config import settings


def require_admin_token(request: Request) -> None:
    expected = settings.ADMIN_API_TOKEN
    if not expected:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Admin API is disabled")
    provided = request.headers.get(settings.ADMIN_TOKEN_HEADER_NAME) or ""
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")
