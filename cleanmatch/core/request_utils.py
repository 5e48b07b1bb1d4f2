"""Request helpers shared by the HTTP layer."""

import ipaddress
import logging

from fastapi import Request

logger = logging.getLogger(__name__)

_LOOPBACK_HOSTS = ("127.0.0.1", "::1", "localhost")


def _is_valid_ip(ip_str: str) -> bool:
    try:
        ipaddress.ip_address(ip_str)
        return True
    except ValueError:
        return False


def get_client_ip(request: Request) -> str:
    """Best-effort client address used to key login throttling.

    X-Real-IP is honoured only when the direct peer is a local reverse proxy;
    X-Forwarded-For is never trusted since any client can set it.
    """
    if request.client and request.client.host in _LOOPBACK_HOSTS:
        real_ip = request.headers.get("X-Real-IP", "").strip()
        if real_ip:
            if _is_valid_ip(real_ip):
                return real_ip
            logger.warning(f"Ignoring invalid X-Real-IP: {real_ip!r}")

    if request.client:
        return request.client.host
    return "unknown"


def extract_bearer_token(request: Request) -> str | None:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
