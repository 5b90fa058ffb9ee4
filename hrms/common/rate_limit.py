"""Per-client request throttling for the sign-in and sign-up endpoints.

Clients are keyed by the connection's peer address. Behind a reverse proxy,
run uvicorn with ``--proxy-headers --forwarded-allow-ips=<proxy>`` so that
address comes from a trusted hop; a raw ``X-Forwarded-For`` header is never
read here.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from hrms.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=settings.RATE_LIMIT_ENABLED,
)
