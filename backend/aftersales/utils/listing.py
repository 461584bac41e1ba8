from __future__ import annotations
from typing import Tuple
from flask import request
from sqlalchemy.orm import Query
from aftersales.config.pagination import normalize_pagination
from aftersales.errors import ValidationError


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        raise ValidationError(str(e))
    total = q.order_by(None).count()
    return q.offset(offset).limit(limit), total, limit, offset


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }


def paginated(q: Query, to_json):
    """Paginate q with the request's limit/offset and serialize each row with to_json."""
    paged_q, total, limit, offset = apply_pagination(q)
    rows = [to_json(r) for r in paged_q.all()]
    return build_list_payload(rows, total, limit, offset)
