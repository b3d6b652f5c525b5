"""
CORS for the browser chat client.

Only the HTTP routes (health, presence) are affected. WebSocket upgrades are
not subject to preflight and are never seen by this middleware, since
BaseHTTPMiddleware only handles "http" scopes.

Usage:
    app.add_middleware(CORSMiddleware, allowed_origins=settings.allowed_origins())
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from signal_hub.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_HEADERS = ("Accept", "Content-Type", "Authorization", "X-Requested-With")


class CORSMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        allowed_origins: list[str] | None = None,
        allow_credentials: bool = True,
        max_age: int = 600,
    ):
        super().__init__(app)
        self.allowed_origins = set(allowed_origins or [])
        self.allow_credentials = allow_credentials
        self.max_age = max_age

        logger.info("CORS middleware initialized", allowed_origins=sorted(self.allowed_origins))

    async def dispatch(self, request, call_next):
        origin = request.headers.get("origin")
        allowed = origin is not None and origin in self.allowed_origins

        if request.method == "OPTIONS":
            if not allowed:
                logger.warning("CORS preflight rejected", origin=origin)
                return Response(status_code=403, content="Origin not allowed")
            return Response(status_code=204, headers=self._headers(origin, preflight=True))

        response = await call_next(request)
        if allowed:
            response.headers.update(self._headers(origin))
        elif origin:
            logger.warning("CORS request from disallowed origin", origin=origin, path=request.url.path)
        return response

    def _headers(self, origin: str, preflight: bool = False) -> dict[str, str]:
        headers = {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
        if self.allow_credentials:
            headers["Access-Control-Allow-Credentials"] = "true"
        if preflight:
            headers["Access-Control-Allow-Methods"] = "GET, OPTIONS"
            headers["Access-Control-Allow-Headers"] = ", ".join(DEFAULT_HEADERS)
            headers["Access-Control-Max-Age"] = str(self.max_age)
        return headers
