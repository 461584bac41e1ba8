from __future__ import annotations
from flask import Blueprint, request
from sqlalchemy import select, or_
from aftersales import get_db, get_services, unit_of_work
from aftersales.constants.enums import Role, MANAGER_ROLES
from aftersales.decorators.auth import require_roles, current_actor
from aftersales.errors import NotFoundError, ValidationError
from aftersales.models.spare_part import SparePart
from aftersales.models.users import User
from aftersales.services.inventory import PART_FIELDS
from aftersales.utils.filters import apply_filters, parse_bool
from aftersales.utils.listing import paginated
from aftersales.utils.sorting import apply_multi_sort
from aftersales.utils.validation import snake_case_keys

storage_bp = Blueprint('storage', __name__)

# managers browse the warehouse; only keepers change it (enforced in the ledger)
STORAGE_ROLES = tuple(MANAGER_ROLES) + (Role.WAREHOUSE_KEEPER,)

SORTABLE = {
    'id': SparePart.id,
    'name': SparePart.name,
    'part_number': SparePart.part_number,
    'category': SparePart.category,
    'present_pieces': SparePart.present_pieces,
    'unit_price': SparePart.unit_price,
    'created_at': SparePart.created_at,
}

FILTERS = {
    'search': {'op': lambda q, v: q.filter(or_(SparePart.name.ilike(f"%{v}%"), SparePart.part_number.ilike(f"%{v}%")))},
    'category': {'op': lambda q, v: q.filter(SparePart.category == v)},
    'department_id': {'coerce': int, 'op': lambda q, v: q.filter(SparePart.department_id == v)},
    'low_stock': {'coerce': parse_bool, 'op': lambda q, v: q.filter(SparePart.present_pieces <= SparePart.min_quantity) if v else q},
}


@storage_bp.get('')
@require_roles(*STORAGE_ROLES)
def list_parts():
    q = apply_filters(get_db().query(SparePart), FILTERS, request.args.to_dict())
    q = apply_multi_sort(q, request.args.get('sort'), SORTABLE, SparePart.id)
    return paginated(q, _part_json)


@storage_bp.get('/categories')
@require_roles(*STORAGE_ROLES)
def list_categories():
    rows = get_db().execute(select(SparePart.category).distinct().order_by(SparePart.category)).scalars()
    return {'data': list(rows)}


@storage_bp.get('/activities')
@require_roles(*STORAGE_ROLES)
def recent_activities():
    window = request.args.get('window', 'all')
    try:
        limit = max(1, min(int(request.args.get('limit', 50)), 200))
    except ValueError:
        raise ValidationError('limit must be int')
    rows = get_services().recorder.recent_activity(window, limit)
    return {'data': _history_rows_json(rows)}


@storage_bp.get('/<int:part_id>')
@require_roles(*STORAGE_ROLES)
def get_part(part_id: int):
    part = get_db().get(SparePart, part_id)
    if part is None:
        raise NotFoundError('Spare part not found')
    return _part_json(part)


@storage_bp.get('/<int:part_id>/history')
@require_roles(*STORAGE_ROLES)
def part_history(part_id: int):
    rows = get_services().recorder.history_for_part(part_id)
    if not rows and get_db().get(SparePart, part_id) is None:
        raise NotFoundError('Spare part not found')
    return {'data': _history_rows_json(rows)}


@storage_bp.post('')
@require_roles(*STORAGE_ROLES)
def create_part():
    data = snake_case_keys(request.get_json(silent=True) or {})
    with unit_of_work() as uow:
        part = get_services().ledger.create_part(uow, current_actor(), data)
        body = _part_json(part)
    return body, 201


@storage_bp.put('/<int:part_id>')
@require_roles(*STORAGE_ROLES)
def update_part(part_id: int):
    data = snake_case_keys(request.get_json(silent=True) or {})
    changes = {k: v for k, v in data.items() if k in PART_FIELDS}
    with unit_of_work() as uow:
        part = get_services().ledger.update_part(uow, part_id, current_actor(), changes)
        body = _part_json(part)
    return body


@storage_bp.delete('/<int:part_id>')
@require_roles(*STORAGE_ROLES)
def delete_part(part_id: int):
    with unit_of_work() as uow:
        get_services().ledger.delete_part(uow, part_id, current_actor())
    return {'success': True}


@storage_bp.post('/<int:part_id>/adjust-quantity')
@require_roles(*STORAGE_ROLES)
def adjust_quantity(part_id: int):
    data = snake_case_keys(request.get_json(silent=True) or {})
    with unit_of_work() as uow:
        part = get_services().ledger.adjust_stock(uow, part_id, current_actor(), data.get('adjustment'), data.get('reason'))
        body = _part_json(part)
    return body


def _part_json(p: SparePart):
    return {
        'id': p.id,
        'part_number': p.part_number,
        'name': p.name,
        'description': p.description,
        'category': p.category,
        'present_pieces': p.present_pieces,
        'min_quantity': p.min_quantity,
        'low_stock': p.present_pieces <= p.min_quantity,
        'unit_price': p.unit_price,
        'currency': p.currency,
        'department_id': p.department_id,
        'version_id': p.version_id,
    }


def _history_rows_json(rows):
    session = get_db()
    user_ids = {h.changed_by_id for h in rows}
    part_ids = {h.spare_part_id for h in rows}
    users = {}
    parts = {}
    if user_ids:
        users = {u.id: u.display_name for u in session.execute(select(User).where(User.id.in_(user_ids))).scalars()}
    if part_ids:
        parts = {p.id: p.name for p in session.execute(select(SparePart).where(SparePart.id.in_(part_ids))).scalars()}
    return [
        {
            'id': h.id,
            'spare_part_id': h.spare_part_id,
            'spare_part_name': parts.get(h.spare_part_id),
            'changed_by_id': h.changed_by_id,
            'changed_by': users.get(h.changed_by_id),
            'change_type': h.change_type,
            'field_changed': h.field_changed,
            'old_value': h.old_value,
            'new_value': h.new_value,
            'quantity_change': h.quantity_change,
            'description': h.description,
            'request_id': h.request_id,
            'created_at': h.created_at.isoformat() if h.created_at else None,
        }
        for h in rows
    ]
