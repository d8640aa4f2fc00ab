"""
boqdesk/security.py

Access control helpers for the BOQ Desk API.

Key rules:
- The client is never trusted; all permission checks are server-side.
- Every business record belongs to a Company. Users only ever see records of their own company.
- Admin: may read the audit trail and restore deleted records of their company.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
- Responses are JSON; there are no HTML error pages.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Tuple

from flask import Response, jsonify
from flask_login import current_user


def _forbidden(message: str = "You do not have permission to perform this action") -> Tuple[Response, int]:
    """Consistent JSON 403."""
    return jsonify({"error": "forbidden", "message": message}), 403


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return bool(current_user.is_authenticated and getattr(current_user, "is_admin", False))


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_admin():
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper


def company_record_required(load_record: Callable[..., Any]) -> Callable[..., Any]:
    """
    Decorator factory: the record addressed by the URL must belong to the user's company.

    The loader receives the view kwargs and returns the record (or aborts 404 itself).
    Records without a company_id attribute are rejected.

    Usage:
        @company_record_required(lambda boq_id: Boq.query.get_or_404(boq_id))
        def view(boq_id): ...
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            record = load_record(**kwargs)

            user_company_id = getattr(current_user, "company_id", None)
            if not user_company_id or getattr(record, "company_id", None) != user_company_id:
                return _forbidden("Record belongs to another company")

            return view_func(*args, **kwargs)

        return wrapper

    return decorator
