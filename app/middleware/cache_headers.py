"""
Middleware to add HTTP cache headers
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


class CacheHeadersMiddleware(BaseHTTPMiddleware):
    """
    API responses carry per-owner clinical data, so browsers and proxies
    must never store them. Only the health check may be cached briefly.
    """

    def __init__(self, app, api_prefix: str = "/api"):
        super().__init__(app)
        self.api_prefix = api_prefix

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        path = request.url.path

        if path == f"{self.api_prefix}/health" and response.status_code < 400:
            response.headers["Cache-Control"] = "public, max-age=60"
        elif path.startswith(self.api_prefix):
            response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"
            response.headers["Vary"] = "Authorization"
        else:
            response.headers["Cache-Control"] = "no-cache, must-revalidate"

        return response
