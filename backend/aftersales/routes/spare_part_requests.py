from __future__ import annotations
from flask import Blueprint, request
from aftersales import get_db, get_services, unit_of_work
from aftersales.constants.enums import Role, MANAGER_ROLES, PartRequestStatus, PartRequestUrgency, values
from aftersales.decorators.auth import require_roles, current_actor
from aftersales.errors import ForbiddenError, NotFoundError
from aftersales.models.service_request import ServiceRequest
from aftersales.models.spare_part_request import SparePartRequest
from aftersales.services.policy import Actor, is_technician
from aftersales.utils.filters import apply_filters
from aftersales.utils.listing import paginated
from aftersales.utils.sorting import apply_multi_sort
from aftersales.utils.validation import snake_case_keys

spare_part_requests_bp = Blueprint('spare_part_requests', __name__)

DEPARTMENT_SCOPED = (Role.DEPARTMENT_MANAGER, Role.SECTION_SUPERVISOR)

SORTABLE = {
    'id': SparePartRequest.id,
    'status': SparePartRequest.status,
    'urgency': SparePartRequest.urgency,
    'part_name': SparePartRequest.part_name,
    'created_at': SparePartRequest.created_at,
}

FILTERS = {
    'status': {'validate': lambda v: v in values(PartRequestStatus), 'op': lambda q, v: q.filter(SparePartRequest.status == v)},
    'urgency': {'validate': lambda v: v in values(PartRequestUrgency), 'op': lambda q, v: q.filter(SparePartRequest.urgency == v)},
    'request_id': {'coerce': int, 'op': lambda q, v: q.filter(SparePartRequest.request_id == v)},
    'technician_id': {'coerce': int, 'op': lambda q, v: q.filter(SparePartRequest.technician_id == v)},
}


def _scope(q, actor: Actor):
    if is_technician(actor):
        return q.filter(SparePartRequest.technician_id == actor.id)
    if actor.role in DEPARTMENT_SCOPED:
        return q.join(ServiceRequest, SparePartRequest.request_id == ServiceRequest.id).filter(
            ServiceRequest.department_id == actor.department_id)
    return q


@spare_part_requests_bp.get('')
@require_roles()
def list_part_requests():
    q = _scope(get_db().query(SparePartRequest), current_actor())
    q = apply_filters(q, FILTERS, request.args.to_dict())
    q = apply_multi_sort(q, request.args.get('sort'), SORTABLE, SparePartRequest.id)
    return paginated(q, _part_request_json)


@spare_part_requests_bp.get('/<int:part_request_id>')
@require_roles()
def get_part_request(part_request_id: int):
    row = get_db().get(SparePartRequest, part_request_id)
    if row is None:
        raise NotFoundError('Spare part request not found')
    actor = current_actor()
    if is_technician(actor) and row.technician_id != actor.id:
        raise ForbiddenError('Spare part request not yours')
    if actor.role in DEPARTMENT_SCOPED and row.request.department_id != actor.department_id:
        raise ForbiddenError('Department access denied')
    return _part_request_json(row)


@spare_part_requests_bp.post('')
@require_roles(Role.TECHNICIAN)
def create_part_request():
    data = snake_case_keys(request.get_json(silent=True) or {})
    with unit_of_work() as uow:
        row = get_services().part_requests.create(uow, current_actor(), data)
        body = _part_request_json(row)
    return body, 201


@spare_part_requests_bp.put('/<int:part_request_id>/approve')
@require_roles(*MANAGER_ROLES)
def approve_part_request(part_request_id: int):
    with unit_of_work() as uow:
        row = get_services().part_requests.approve(uow, part_request_id, current_actor())
        body = _part_request_json(row)
    return body


@spare_part_requests_bp.put('/<int:part_request_id>/reject')
@require_roles(*MANAGER_ROLES)
def reject_part_request(part_request_id: int):
    data = snake_case_keys(request.get_json(silent=True) or {})
    with unit_of_work() as uow:
        row = get_services().part_requests.reject(uow, part_request_id, current_actor(), data.get('rejection_reason'))
        body = _part_request_json(row)
    return body


@spare_part_requests_bp.put('/<int:part_request_id>/fulfill')
@require_roles(Role.WAREHOUSE_KEEPER)
def fulfill_part_request(part_request_id: int):
    with unit_of_work() as uow:
        row = get_services().part_requests.fulfill(uow, part_request_id, current_actor())
        body = _part_request_json(row)
    return body


def _part_request_json(r: SparePartRequest):
    return {
        'id': r.id,
        'request_id': r.request_id,
        'request_number': r.request.request_number if r.request is not None else None,
        'technician_id': r.technician_id,
        'technician_name': r.technician.display_name if r.technician is not None else None,
        'part_name': r.part_name,
        'part_number': r.part_number,
        'description': r.description,
        'quantity': r.quantity,
        'urgency': r.urgency,
        'status': r.status,
        'approved_by_id': r.approved_by_id,
        'fulfilled_by_id': r.fulfilled_by_id,
        'rejection_reason': r.rejection_reason,
        'created_at': r.created_at.isoformat() if r.created_at else None,
        'updated_at': r.updated_at.isoformat() if r.updated_at else None,
    }
