"""
Paginated reader.

Walks a collection in ascending ``_id`` order with one short
``find + sort + limit`` query per page instead of a single long-lived
cursor, so managed tiers that kill idle cursors never see one.

``$gt`` only matches values of the same BSON type as the last key, so when
a page comes back empty the reader looks for ``_id`` values of the types
that sort after it before it stops. Collections that mix key types (for
example strings and ObjectIds) are read completely.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from bson import Binary, Decimal128, ObjectId, Timestamp
from bson.max_key import MaxKey
from bson.min_key import MinKey
from pymongo import ASCENDING

DEFAULT_PAGE_SIZE = 10

_UNSET = object()

# Smallest value of each _id-capable BSON type, in server sort order
TYPE_FLOORS = (
    (2, float('-inf')),
    (3, ''),
    (4, {}),
    (5, Binary(b'', 0)),
    (6, ObjectId('0' * 24)),
    (7, False),
    (8, datetime(1, 1, 1)),
    (9, Timestamp(0, 0)),
)


def sort_rank(value: Any) -> Optional[int]:
    """Position of a value's BSON type in the server's cross-type sort order."""
    if isinstance(value, MinKey):
        return 0
    if value is None:
        return 1
    if isinstance(value, bool):
        return 7
    if isinstance(value, (int, float, Decimal128)):
        return 2
    if isinstance(value, str):
        return 3
    if isinstance(value, dict):
        return 4
    if isinstance(value, (bytes, Binary, uuid.UUID)):
        return 5
    if isinstance(value, ObjectId):
        return 6
    if isinstance(value, datetime):
        return 8
    if isinstance(value, Timestamp):
        return 9
    if isinstance(value, MaxKey):
        return 10
    return None


def page_filter(last_id: Any = _UNSET) -> Dict[str, Any]:
    if last_id is _UNSET:
        return {}
    return {'_id': {'$gt': last_id}}


def later_type_filters(last_id: Any) -> Iterator[Dict[str, Any]]:
    """``$gte`` floors for every key type that sorts after ``last_id``'s."""
    rank = sort_rank(last_id)
    if rank is None:
        return
    for floor_rank, floor in TYPE_FLOORS:
        if floor_rank > rank:
            yield {'_id': {'$gte': floor}}


def query_page(collection, query: Dict[str, Any], page_size: int) -> List[Dict[str, Any]]:
    return list(collection.find(query).sort('_id', ASCENDING).limit(page_size))


def fetch_page(collection, last_id: Any = _UNSET, page_size: int = DEFAULT_PAGE_SIZE) -> List[Dict[str, Any]]:
    """Return up to ``page_size`` documents with ``_id`` strictly after ``last_id``."""
    page = query_page(collection, page_filter(last_id), page_size)
    if page or last_id is _UNSET:
        return page
    for query in later_type_filters(last_id):
        page = query_page(collection, query, page_size)
        if page:
            return page
    return []


def iter_pages(collection, page_size: int = DEFAULT_PAGE_SIZE, start_after: Any = _UNSET) -> Iterator[List[Dict[str, Any]]]:
    """
    Yield successive pages until the collection is exhausted.

    The position lives only in this generator; a new call starts from the
    beginning unless ``start_after`` is given. Read errors propagate.
    """
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")

    last_id = start_after
    while True:
        page = fetch_page(collection, last_id, page_size)
        if not page:
            return
        yield page
        tail = page[-1].get('_id', _UNSET)
        if tail is _UNSET:
            # A document without _id cannot advance the cursor
            return
        last_id = tail
