# src/itorero/middleware/security_headers.py

from fastapi import Request

from src.itorero.config import settings

# JSON-only API: nothing is rendered, so nothing needs to be loaded
_API_CSP = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'"


async def security_headers_middleware(request: Request, call_next):
    resp = await call_next(request)
    resp.headers.setdefault("Content-Security-Policy", _API_CSP)
    resp.headers["X-Content-Type-Options"] = "nosniff"
    resp.headers["X-Frame-Options"] = "DENY"
    resp.headers["Referrer-Policy"] = "no-referrer"
    # tokens and profile data must not sit in shared caches
    if request.url.path.startswith("/api/auth"):
        resp.headers["Cache-Control"] = "no-store"
    if settings.is_prod:
        resp.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
    return resp
