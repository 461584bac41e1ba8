from __future__ import annotations
from flask import Blueprint, request
from aftersales import get_db, get_services, unit_of_work
from aftersales.constants.enums import Role, MANAGER_ROLES
from aftersales.decorators.auth import require_roles, current_actor
from aftersales.errors import ForbiddenError, NotFoundError
from aftersales.models.service_request import ServiceRequest
from aftersales.models.technician_report import TechnicianReport
from aftersales.services.policy import Actor, is_technician
from aftersales.utils.filters import apply_filters, parse_bool
from aftersales.utils.listing import paginated
from aftersales.utils.sorting import apply_multi_sort
from aftersales.utils.validation import snake_case_keys

technician_reports_bp = Blueprint('technician_reports', __name__)

# warehouse keepers have no access to reports
REPORT_ROLES = tuple(MANAGER_ROLES) + (Role.TECHNICIAN,)
DEPARTMENT_SCOPED = (Role.DEPARTMENT_MANAGER, Role.SECTION_SUPERVISOR)

SORTABLE = {
    'id': TechnicianReport.id,
    'request_id': TechnicianReport.request_id,
    'created_at': TechnicianReport.created_at,
}

FILTERS = {
    'request_id': {'coerce': int, 'op': lambda q, v: q.filter(TechnicianReport.request_id == v)},
    'technician_id': {'coerce': int, 'op': lambda q, v: q.filter(TechnicianReport.technician_id == v)},
    'is_approved': {'coerce': parse_bool, 'op': lambda q, v: q.filter(TechnicianReport.is_approved.is_(v))},
    'pending': {'coerce': parse_bool, 'op': lambda q, v: q.filter(TechnicianReport.is_approved.is_(None)) if v else q},
}


def _scope(q, actor: Actor):
    if is_technician(actor):
        return q.filter(TechnicianReport.technician_id == actor.id)
    if actor.role in DEPARTMENT_SCOPED:
        return q.join(ServiceRequest, TechnicianReport.request_id == ServiceRequest.id).filter(
            ServiceRequest.department_id == actor.department_id)
    return q


@technician_reports_bp.get('')
@require_roles(*REPORT_ROLES)
def list_reports():
    q = _scope(get_db().query(TechnicianReport), current_actor())
    q = apply_filters(q, FILTERS, request.args.to_dict())
    q = apply_multi_sort(q, request.args.get('sort'), SORTABLE, TechnicianReport.id)
    return paginated(q, _report_json)


@technician_reports_bp.get('/<int:report_id>')
@require_roles(*REPORT_ROLES)
def get_report(report_id: int):
    report = get_db().get(TechnicianReport, report_id)
    if report is None:
        raise NotFoundError('Report not found')
    actor = current_actor()
    if is_technician(actor) and report.technician_id != actor.id:
        raise ForbiddenError('Report not yours')
    if actor.role in DEPARTMENT_SCOPED and report.request.department_id != actor.department_id:
        raise ForbiddenError('Department access denied')
    return _report_json(report)


@technician_reports_bp.post('')
@require_roles(Role.TECHNICIAN)
def create_report():
    data = snake_case_keys(request.get_json(silent=True) or {})
    with unit_of_work() as uow:
        report = get_services().reports.create(uow, current_actor(), data)
        body = _report_json(report)
    return body, 201


@technician_reports_bp.put('/<int:report_id>/approve')
@require_roles(*MANAGER_ROLES)
def approve_report(report_id: int):
    data = snake_case_keys(request.get_json(silent=True) or {})
    with unit_of_work() as uow:
        report = get_services().reports.approve(uow, report_id, current_actor(), data.get('approval_comment'))
        body = _report_json(report)
    return body


@technician_reports_bp.put('/<int:report_id>/reject')
@require_roles(*MANAGER_ROLES)
def reject_report(report_id: int):
    data = snake_case_keys(request.get_json(silent=True) or {})
    with unit_of_work() as uow:
        report = get_services().reports.reject(uow, report_id, current_actor(), data.get('approval_comment'))
        body = _report_json(report)
    return body


def _report_json(r: TechnicianReport):
    return {
        'id': r.id,
        'request_id': r.request_id,
        'request_number': r.request.request_number if r.request is not None else None,
        'technician_id': r.technician_id,
        'technician_name': r.technician.display_name if r.technician is not None else None,
        'report_content': r.report_content,
        'current_status': r.current_status,
        'parts_used': r.parts_used,
        'send_to_supervisor': r.send_to_supervisor,
        'send_to_admin': r.send_to_admin,
        'is_approved': r.is_approved,
        'approved_by_id': r.approved_by_id,
        'approval_comment': r.approval_comment,
        'created_at': r.created_at.isoformat() if r.created_at else None,
        'updated_at': r.updated_at.isoformat() if r.updated_at else None,
    }
