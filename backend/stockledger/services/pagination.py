# Overview: Offset pagination shared by list endpoints.

from __future__ import annotations


def paginate(query, page: int | None, per_page: int | None, *, default_per_page: int = 50, max_per_page: int = 200):
    """
    Apply offset pagination to an already-ordered query.

    Returns (items, pagination_dict). Page numbers are 1-indexed; out-of-range
    values are clamped rather than rejected.
    """
    per_page = min(max(per_page or default_per_page, 1), max_per_page)
    page = max(page or 1, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return items, {
        "page": page,
        "per_page": per_page,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
