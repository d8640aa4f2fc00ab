"""
boqdesk/blueprints/units/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose units_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import units_bp  # noqa: F401
