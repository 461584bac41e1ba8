from __future__ import annotations
from flask import Blueprint, request
from sqlalchemy import select, or_
from aftersales import get_db, get_services, unit_of_work
from aftersales.constants.enums import Role, RequestStatus, Priority, WarrantyStatus, MANAGER_ROLES, values
from aftersales.decorators.auth import require_roles, current_actor
from aftersales.errors import ForbiddenError, NotFoundError
from aftersales.models.service_request import ServiceRequest, RequestActivity
from aftersales.routes.request_parts import request_part_json
from aftersales.services.policy import Actor, assert_department_access, is_technician
from aftersales.utils.filters import apply_filters, parse_bool
from aftersales.utils.listing import paginated
from aftersales.utils.sorting import apply_multi_sort
from aftersales.utils.validation import snake_case_keys

requests_bp = Blueprint('requests', __name__)

SORTABLE = {
    'id': ServiceRequest.id,
    'request_number': ServiceRequest.request_number,
    'status': ServiceRequest.status,
    'priority': ServiceRequest.priority,
    'sla_due_date': ServiceRequest.sla_due_date,
    'created_at': ServiceRequest.created_at,
    'updated_at': ServiceRequest.updated_at,
}

FILTERS = {
    'status': {'validate': lambda v: v in values(RequestStatus), 'op': lambda q, v: q.filter(ServiceRequest.status == v)},
    'priority': {'validate': lambda v: v in values(Priority), 'op': lambda q, v: q.filter(ServiceRequest.priority == v)},
    'warranty_status': {'validate': lambda v: v in values(WarrantyStatus), 'op': lambda q, v: q.filter(ServiceRequest.warranty_status == v)},
    'department_id': {'coerce': int, 'op': lambda q, v: q.filter(ServiceRequest.department_id == v)},
    'assigned_technician_id': {'coerce': int, 'op': lambda q, v: q.filter(ServiceRequest.assigned_technician_id == v)},
    'is_overdue': {'coerce': parse_bool, 'op': lambda q, v: q.filter(ServiceRequest.is_overdue.is_(v))},
    'search': {'op': lambda q, v: q.filter(or_(
        ServiceRequest.request_number.ilike(f"%{v}%"),
        ServiceRequest.serial_number.ilike(f"%{v}%"),
        ServiceRequest.issue_description.ilike(f"%{v}%"),
    ))},
}


def _scope(q, actor: Actor):
    """Technicians see their own work; department leads see their department."""
    if is_technician(actor):
        return q.filter(or_(ServiceRequest.assigned_technician_id == actor.id, ServiceRequest.received_by_id == actor.id))
    if actor.role in (Role.DEPARTMENT_MANAGER, Role.SECTION_SUPERVISOR):
        return q.filter(ServiceRequest.department_id == actor.department_id)
    return q


def _assert_can_view(req: ServiceRequest, actor: Actor):
    if is_technician(actor) and actor.id not in (req.assigned_technician_id, req.received_by_id):
        raise ForbiddenError('Request not assigned to you')
    if actor.role == Role.SECTION_SUPERVISOR and req.department_id != actor.department_id:
        raise ForbiddenError('Department access denied')
    assert_department_access(actor, req.department_id)


@requests_bp.get('')
@require_roles()
def list_requests():
    with unit_of_work() as uow:
        get_services().sla.check_overdue(uow)
    actor = current_actor()
    q = _scope(get_db().query(ServiceRequest), actor)
    q = apply_filters(q, FILTERS, request.args.to_dict())
    q = apply_multi_sort(q, request.args.get('sort'), SORTABLE, ServiceRequest.id)
    return paginated(q, _request_json)


@requests_bp.post('')
@require_roles()
def create_request():
    data = snake_case_keys(request.get_json(silent=True) or {})
    with unit_of_work() as uow:
        req = get_services().requests.create_request(uow, current_actor(), data)
        body = _request_json(req)
    return body, 201


@requests_bp.get('/<int:request_id>')
@require_roles()
def get_request(request_id: int):
    req = get_db().get(ServiceRequest, request_id)
    if req is None:
        raise NotFoundError('Request not found')
    _assert_can_view(req, current_actor())
    body = _request_json(req)
    body['activities'] = [_activity_json(a) for a in req.activities]
    body['costs'] = [_cost_json(c) for c in req.costs]
    body['parts'] = [request_part_json(p) for p in req.parts]
    return body


@requests_bp.patch('/<int:request_id>/status')
@require_roles()
def change_status(request_id: int):
    data = snake_case_keys(request.get_json(silent=True) or {})
    with unit_of_work() as uow:
        req = get_services().guard.change_status(uow, request_id, current_actor(), data.get('status'), data.get('comment'))
        body = _request_json(req)
    return body


@requests_bp.patch('/<int:request_id>/assign')
@require_roles(*MANAGER_ROLES)
def assign_technician(request_id: int):
    data = snake_case_keys(request.get_json(silent=True) or {})
    with unit_of_work() as uow:
        req = get_services().guard.assign_technician(uow, request_id, current_actor(), data.get('technician_id'))
        body = _request_json(req)
    return body


@requests_bp.post('/<int:request_id>/close')
@require_roles(*MANAGER_ROLES)
def close_request(request_id: int):
    data = snake_case_keys(request.get_json(silent=True) or {})
    with unit_of_work() as uow:
        req = get_services().guard.close_request(
            uow, request_id, current_actor(), data.get('final_notes'), data.get('customer_satisfaction'),
        )
        body = _request_json(req)
    return body


@requests_bp.post('/<int:request_id>/costs')
@require_roles()
def add_cost(request_id: int):
    data = snake_case_keys(request.get_json(silent=True) or {})
    with unit_of_work() as uow:
        cost, rp = get_services().requests.add_cost(uow, request_id, current_actor(), data)
        body = {'cost': _cost_json(cost)}
        if rp is not None:
            body['spare_part'] = {
                'id': rp.spare_part.id,
                'name': rp.spare_part.name,
                'present_pieces': rp.spare_part.present_pieces,
                'request_part': request_part_json(rp),
            }
    return body, 201


@requests_bp.get('/<int:request_id>/activities')
@require_roles()
def list_activities(request_id: int):
    session = get_db()
    req = session.get(ServiceRequest, request_id)
    if req is None:
        raise NotFoundError('Request not found')
    _assert_can_view(req, current_actor())
    rows = session.execute(
        select(RequestActivity).where(RequestActivity.request_id == request_id).order_by(RequestActivity.id.desc())
    ).scalars()
    return {'data': [_activity_json(a) for a in rows]}


@requests_bp.post('/sla/check')
@require_roles(*MANAGER_ROLES)
def check_sla():
    with unit_of_work() as uow:
        flagged = get_services().sla.check_overdue(uow)
    return {'flagged': flagged}


def _iso(dt):
    return dt.isoformat() if dt is not None else None


def _request_json(r: ServiceRequest):
    return {
        'id': r.id,
        'request_number': r.request_number,
        'customer_id': r.customer_id,
        'product_id': r.product_id,
        'department_id': r.department_id,
        'received_by_id': r.received_by_id,
        'assigned_technician_id': r.assigned_technician_id,
        'issue_description': r.issue_description,
        'serial_number': r.serial_number,
        'purchase_date': r.purchase_date.isoformat() if r.purchase_date else None,
        'execution_method': r.execution_method,
        'warranty_status': r.warranty_status,
        'priority': r.priority,
        'status': r.status,
        'sla_due_date': _iso(r.sla_due_date),
        'is_overdue': bool(r.is_overdue),
        'assigned_at': _iso(r.assigned_at),
        'started_at': _iso(r.started_at),
        'completed_at': _iso(r.completed_at),
        'closed_at': _iso(r.closed_at),
        'final_notes': r.final_notes,
        'customer_satisfaction': r.customer_satisfaction,
        'created_at': _iso(r.created_at),
        'updated_at': _iso(r.updated_at),
    }


def _activity_json(a: RequestActivity):
    return {
        'id': a.id,
        'request_id': a.request_id,
        'user_id': a.user_id,
        'activity_type': a.activity_type,
        'description': a.description,
        'old_value': a.old_value,
        'new_value': a.new_value,
        'created_at': _iso(a.created_at),
    }


def _cost_json(c):
    return {
        'id': c.id,
        'request_id': c.request_id,
        'description': c.description,
        'amount': c.amount,
        'cost_type': c.cost_type,
        'currency': c.currency,
        'request_part_id': c.request_part_id,
        'added_by_id': c.added_by_id,
        'created_at': _iso(c.created_at),
    }
