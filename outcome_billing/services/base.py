"""
Shared helpers for the session-backed services.
"""

import math

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from ..exceptions import InvalidArgument

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def paginate(session: Session, stmt: Select, page: int | None = None, limit: int | None = None) -> dict:
    """
    Run ``stmt`` one page at a time.

    Returns {"data", "total", "page", "limit", "total_pages"}; pages start at 1.
    """
    page = page or 1
    limit = limit or DEFAULT_PAGE_SIZE
    if page < 1:
        raise InvalidArgument(f"page must be >= 1, got: {page}")
    if not (1 <= limit <= MAX_PAGE_SIZE):
        raise InvalidArgument(f"limit must be between 1 and {MAX_PAGE_SIZE}, got: {limit}")

    total = session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery()))
    rows = session.scalars(stmt.offset((page - 1) * limit).limit(limit)).all()

    return {
        "data": list(rows),
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit),
    }
