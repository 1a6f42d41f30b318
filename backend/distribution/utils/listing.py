"""List responses: limit/offset pagination, ``{data, pagination}`` payloads and
ETag / Last-Modified validators for conditional GETs.

Dashboards poll the board and active-delivery lists every few seconds, so every list
endpoint answers ``If-None-Match`` / ``If-Modified-Since`` with a bodiless 304.
"""
from __future__ import annotations
from typing import Callable, Iterable, List, Optional, Tuple
from flask import request, abort, make_response
from sqlalchemy.orm import Query
import hashlib
from datetime import datetime, timezone, timedelta
from email.utils import parsedate_to_datetime, format_datetime

DEFAULT_LIMIT = 50
MAX_LIMIT = 200
TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def normalize_pagination(limit_raw, offset_raw) -> Tuple[int, int]:
    try:
        limit = int(limit_raw) if limit_raw is not None else DEFAULT_LIMIT
        offset = int(offset_raw) if offset_raw is not None else 0
    except ValueError:
        raise ValueError('limit/offset must be int')
    limit = max(1, min(limit, MAX_LIMIT))
    offset = max(0, offset)
    return limit, offset


def canonicalize_timestamp(dt: datetime) -> datetime:
    """Return UTC tz-aware timestamp truncated to whole seconds (stored values are naive UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.replace(microsecond=0)


def iso_z(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return canonicalize_timestamp(dt).isoformat().replace('+00:00', 'Z')


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    total = q.count()
    return q.offset(offset).limit(limit), total, limit, offset


def compute_etag(ids: Iterable, total: int, limit: int, offset: int, latest_ts: Optional[str] = '', extra: str = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest_ts or ''}|{extra}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


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


def _http_date(dt: datetime) -> str:
    """RFC 1123 HTTP-date in GMT."""
    return format_datetime(dt, usegmt=True)


def latest_timestamp(rows, attr: str = 'updated_at') -> Optional[datetime]:
    stamps = [getattr(r, attr) for r in rows if getattr(r, attr, None) is not None]
    return max(stamps) if stamps else None


def _set_validators(resp, etag: str, latest_ts: Optional[datetime]):
    resp.headers['ETag'] = etag
    if latest_ts:
        latest_c = canonicalize_timestamp(latest_ts)
        resp.headers['Last-Modified'] = _http_date(latest_c)
        resp.headers['X-Last-Modified-ISO'] = iso_z(latest_c)
    return resp


def make_cached_list_response(rows: list, total: int, limit: int, offset: int, latest_ts: Optional[datetime] = None,
                              extra: str = ''):
    ids = [r.get('id') for r in rows]
    # ``extra`` folds in row state that can change without touching updated_at (status, is_late).
    etag = compute_etag(ids, total, limit, offset, iso_z(latest_ts) or '', extra)
    resp = make_response(build_list_payload(rows, total, limit, offset))
    return _set_validators(resp, etag, latest_ts), etag


def _parse_if_modified_since(header_val: str) -> Optional[datetime]:
    if not header_val:
        return None
    try:
        dt = datetime.fromisoformat(header_val.replace('Z', '+00:00'))
    except ValueError:
        try:
            dt = parsedate_to_datetime(header_val)
        except (TypeError, ValueError):
            return None
    if dt and dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def handle_conditional(etag_value: str, latest_ts: Optional[datetime]):
    """Evaluate conditional request headers.

    Precedence: If-None-Match over If-Modified-Since (per RFC 9110 semantics).
    Returns a 304 response object if conditions satisfied, else None.
    """
    inm = request.headers.get('If-None-Match')
    if inm:
        if inm.strip('"') == etag_value:
            return _set_validators(make_response('', 304), etag_value, latest_ts)
        return None
    ims_dt = _parse_if_modified_since(request.headers.get('If-Modified-Since'))
    if ims_dt and latest_ts:
        if canonicalize_timestamp(latest_ts) <= canonicalize_timestamp(ims_dt) + TIMESTAMP_TOLERANCE:
            return _set_validators(make_response('', 304), etag_value, latest_ts)
    return None


def cached_list(q: Query, serialize: Callable, state_key: Optional[Callable] = None):
    """Paginate ``q``, serialize the page and answer conditional requests.

    ``state_key(row)`` contributes per-row state to the ETag seed.
    """
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    latest_ts = latest_timestamp(rows)
    extra = ','.join(str(state_key(r)) for r in rows) if state_key else ''
    resp, etag = make_cached_list_response([serialize(r) for r in rows], total, limit, offset, latest_ts, extra)
    cond = handle_conditional(etag, latest_ts)
    if cond is not None:
        return cond
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp


def single_resource_response(body: dict, latest_ts: Optional[datetime], state: str = ''):
    """ETag-validated response for one resource (``GET``/``HEAD``)."""
    etag = compute_etag([body.get('id')], 1, 1, 0, iso_z(latest_ts) or '', state)
    cond = handle_conditional(etag, latest_ts)
    if cond is not None:
        return cond
    resp = _set_validators(make_response(body), etag, latest_ts)
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp


__all__: List[str] = [
    'normalize_pagination', 'canonicalize_timestamp', 'iso_z', 'apply_pagination', 'compute_etag',
    'build_list_payload', 'latest_timestamp', 'make_cached_list_response', 'handle_conditional',
    'cached_list', 'single_resource_response',
]
