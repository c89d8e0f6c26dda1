import logging
import math
from dataclasses import dataclass
from typing import Any, List, Optional

from marshmallow import Schema

from api_client import ApiClient, ApiError, CancellationToken
from schemas import load_many

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 6


@dataclass
class Page:
    items: List[Any]
    number: int
    per_page: int
    total: int

    @property
    def pages(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))

    @property
    def has_prev(self) -> bool:
        return self.number > 1

    @property
    def has_next(self) -> bool:
        return self.number < self.pages


def paginate(items: List[Any], page: int = 1, per_page: int = DEFAULT_PAGE_SIZE) -> Page:
    per_page = max(1, per_page)
    total_pages = max(1, math.ceil(len(items) / per_page))
    number = min(max(1, page), total_pages)
    last = number * per_page
    first = last - per_page
    return Page(items=items[first:last], number=number, per_page=per_page, total=len(items))


def fetch_collection(api: ApiClient, path: str, schema: Optional[Schema] = None,
                     cancel: Optional[CancellationToken] = None) -> List[Any]:
    """Fetch a whole collection; on failure log it and return an empty list."""
    try:
        records = api.get_collection(path, cancel=cancel)
    except ApiError as exc:
        logger.error("Error fetching %s: %s", path, exc.message)
        return []
    if schema is not None:
        return load_many(schema, records)
    return records
