# Overview: JSON response envelope and page option parsing shared by all routes.

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping

from flask import jsonify


ORDER_ASC = "ASC"
ORDER_DESC = "DESC"


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class PageOptions:
    """
    Page/take/order parsed from query args.

    - page >= 1 (default 1)
    - take clamped to 1..100 (default 10)
    - order ASC or DESC (anything else is DESC)
    """
    page: int = 1
    take: int = 10
    order: str = ORDER_DESC

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "PageOptions":
        order = str(args.get("order") or ORDER_DESC).upper()
        return cls(
            page=max(1, _to_int(args.get("page"), 1)),
            take=min(100, max(1, _to_int(args.get("take"), 10))),
            order=ORDER_ASC if order == ORDER_ASC else ORDER_DESC,
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.take

    @property
    def limit(self) -> int:
        return self.take

    @property
    def descending(self) -> bool:
        return self.order == ORDER_DESC

    def meta(self, total: int, item_count: int) -> dict:
        total_pages = math.ceil(total / self.take) if total else 0
        return {
            "take": self.take,
            "item_count": item_count,
            "page": self.page,
            "total_pages": total_pages,
            "has_previous_page": self.page > 1,
            "has_next_page": self.page < total_pages,
        }


def envelope(
    data: Any = None,
    message: str = "Request completed successfully",
    status: int = 200,
    *,
    page: PageOptions | None = None,
    total: int | None = None,
    token: str | None = None,
    extra: dict | None = None,
):
    """
    Build the success envelope: {success, message, data, meta?, token?}.

    extra adds further top-level keys (e.g. a list summary).
    """
    body: dict = {"success": True, "message": message, "data": data}
    if extra:
        body.update(extra)
    if page is not None and total is not None:
        item_count = len(data) if isinstance(data, list) else 0
        body["meta"] = page.meta(total, item_count)
    if token is not None:
        body["token"] = token
    return jsonify(body), status
