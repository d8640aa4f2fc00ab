"""
boqdesk/blueprints/audit/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose audit_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import audit_bp  # noqa: F401
