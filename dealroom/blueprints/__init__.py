"""
Deal Room Diligence
Blueprint registry helpers shared by the API blueprints.
"""

from flask import request


def current_actor() -> str | None:
    """Acting user id from the X-User header (authentication happens upstream)."""
    return (
        request.headers.get("X-User", "").strip()
        or request.headers.get("X-Forwarded-User", "").strip()
        or None
    )


def paginate_query(query, default_limit=50, max_limit=200):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 50, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total
