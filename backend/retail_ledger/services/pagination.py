# Overview: Shared offset pagination for list endpoints.

from __future__ import annotations


DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


def paginate(query, page: int | None = None, per_page: int | None = None) -> tuple[list, dict]:
    """
    Apply offset/limit to an ordered query.

    Returns (rows, pagination); pagination carries current_page,
    total_pages, total_items, items_per_page and the next/previous flags.
    """
    per_page = min(per_page or DEFAULT_PER_PAGE, MAX_PER_PAGE)
    per_page = max(per_page, 1)
    page = max(page or 1, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return rows, {
        "current_page": page,
        "total_pages": total_pages,
        "total_items": total,
        "items_per_page": per_page,
        "has_next_page": page < total_pages,
        "has_previous_page": page > 1,
    }
