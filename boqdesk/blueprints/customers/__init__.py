"""
boqdesk/blueprints/customers/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose customers_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import customers_bp  # noqa: F401
