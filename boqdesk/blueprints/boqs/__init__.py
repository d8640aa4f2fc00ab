"""
boqdesk/blueprints/boqs/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose boqs_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import boqs_bp  # noqa: F401
