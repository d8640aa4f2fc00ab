"""
boqdesk/scope.py

Explicit request scope.

Every service call receives a Scope instead of reading the current company / user from
globals. Routes build it once per request with scope_from_request(); tests build it directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import has_request_context, request
from flask_login import current_user

from .errors import GuardError
from .logging_config import get_logger

logger = get_logger("scope")


@dataclass(frozen=True)
class Actor:
    id: Optional[int]
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email or "Unknown"


@dataclass(frozen=True)
class Scope:
    company_id: int
    actor: Actor
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def client_ip() -> Optional[str]:
    """
    Best-effort client IP. Never raises.

    SECURITY NOTE:
    - access_route honours X-Forwarded-For; in production behind a reverse proxy, configure
      ProxyFix / trusted proxy headers so this is the real client address.
    """
    try:
        if not has_request_context():
            return None
        route = request.access_route
        if route:
            return route[0]
        return request.remote_addr
    except Exception:  # noqa: BLE001
        logger.warning("client_ip_lookup_failed", exc_info=True)
        return None


def client_user_agent() -> Optional[str]:
    if not has_request_context():
        return None
    return request.headers.get("User-Agent") or None


def scope_from_request() -> Scope:
    """Build the Scope for the logged-in user of the current request."""
    if not current_user.is_authenticated:
        raise GuardError("Authentication required")
    if current_user.company_id is None:
        raise GuardError("User is not assigned to a company")

    actor = Actor(
        id=current_user.id,
        name=current_user.full_name or current_user.username,
        email=current_user.email,
    )
    return Scope(
        company_id=current_user.company_id,
        actor=actor,
        ip_address=client_ip(),
        user_agent=client_user_agent(),
    )
