from __future__ import annotations
from flask import Blueprint, request
from aftersales import get_db, get_services, unit_of_work
from aftersales.decorators.auth import require_roles, current_actor
from aftersales.errors import ValidationError
from aftersales.services.inventory import parts_for_request
from aftersales.utils.validation import snake_case_keys, positive_int

request_parts_bp = Blueprint('request_parts', __name__)


@request_parts_bp.get('/<int:request_id>')
@require_roles()
def list_request_parts(request_id: int):
    rows = parts_for_request(get_db(), request_id)
    return {'data': [request_part_json(rp) for rp in rows]}


@request_parts_bp.post('')
@require_roles()
def reserve_part():
    # added_by always comes from the token; a body added_by_id is ignored
    data = snake_case_keys(request.get_json(silent=True) or {})
    request_id = data.get('request_id')
    spare_part_id = data.get('spare_part_id')
    if request_id is None or spare_part_id is None:
        raise ValidationError('request_id, spare_part_id and quantity_used required')
    with unit_of_work() as uow:
        rp = get_services().ledger.reserve(
            uow,
            positive_int(spare_part_id, 'spare_part_id'),
            positive_int(request_id, 'request_id'),
            data.get('quantity_used'),
            current_actor(),
        )
        body = {'request_part': request_part_json(rp)}
    return body, 201


@request_parts_bp.put('/<int:request_part_id>')
@require_roles()
def adjust_request_part(request_part_id: int):
    data = snake_case_keys(request.get_json(silent=True) or {})
    with unit_of_work() as uow:
        rp = get_services().ledger.adjust(uow, request_part_id, data.get('quantity_used'), current_actor())
        body = {'request_part': request_part_json(rp)}
    return body


@request_parts_bp.delete('/<int:request_part_id>')
@require_roles()
def release_request_part(request_part_id: int):
    with unit_of_work() as uow:
        get_services().ledger.release(uow, request_part_id, current_actor())
    return {'success': True}


def request_part_json(rp):
    part = rp.spare_part
    return {
        'id': rp.id,
        'request_id': rp.request_id,
        'spare_part_id': rp.spare_part_id,
        'quantity_used': rp.quantity_used,
        'unit_price': rp.unit_price,
        'total_cost': rp.total_cost,
        'added_by_id': rp.added_by_id,
        'created_at': rp.created_at.isoformat() if rp.created_at else None,
        'spare_part': {
            'id': part.id,
            'name': part.name,
            'part_number': part.part_number,
            'present_pieces': part.present_pieces,
        } if part is not None else None,
    }
