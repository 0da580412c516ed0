# src/itorero/utils/client.py
from __future__ import annotations

from typing import Optional

from fastapi import Request


def get_header(request: Request, name: str) -> Optional[str]:
    val = request.headers.get(name)
    return val if isinstance(val, str) else None


def get_client_ip(request: Request) -> str:
    """Best-effort client IP with proxy header support."""
    xff = get_header(request, "X-Forwarded-For")
    if xff:
        ip = xff.split(",")[0].strip()
        if ip:
            return ip
    xri = get_header(request, "X-Real-IP")
    if xri:
        return xri.strip()
    cfip = get_header(request, "CF-Connecting-IP")
    if cfip:
        return cfip.strip()
    return request.client.host if (request and request.client and request.client.host) else "0.0.0.0"


def get_user_agent(request: Request) -> str:
    return get_header(request, "User-Agent") or "Unknown"
