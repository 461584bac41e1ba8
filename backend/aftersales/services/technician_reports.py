from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional
from sqlalchemy import select
from sqlalchemy.orm import Session
from aftersales.constants.enums import ActivityType, RequestStatus
from aftersales.errors import ForbiddenError, NotFoundError, ValidationError
from aftersales.models.service_request import ServiceRequest
from aftersales.models.technician_report import TechnicianReport
from aftersales.services.audit import add_activity, utcnow
from aftersales.services.notifications import notify_report_created, notify_report_decided
from aftersales.services.policy import Actor, assert_department_access, is_manager, is_technician
from aftersales.utils.filters import parse_bool
from aftersales.utils.validation import positive_int, require_text, validate_enum

logger = logging.getLogger(__name__)


def _flag(value, field_name: str) -> bool:
    if value in (None, ''):
        return False
    try:
        return parse_bool(value)
    except ValueError:
        raise ValidationError(f"{field_name} must be a boolean")


def load_report_for_update(session: Session, report_id: int) -> TechnicianReport:
    stmt = (
        select(TechnicianReport)
        .where(TechnicianReport.id == report_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    report = session.execute(stmt).scalar_one_or_none()
    if report is None:
        raise NotFoundError('Report not found')
    return report


class TechnicianReportService:
    """Reports filed by the assigned technician and reviewed by management."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    def create(self, uow, actor: Actor, data: Mapping[str, Any]) -> TechnicianReport:
        if not is_technician(actor):
            raise ForbiddenError('Only technicians can file reports')
        request_id = positive_int(data.get('request_id'), 'request_id')
        content = require_text(data.get('report_content'), 'report_content')
        current_status = data.get('current_status')
        if current_status not in (None, ''):
            current_status = validate_enum(current_status, RequestStatus, 'current_status').value
        else:
            current_status = None
        parts_used = str(data.get('parts_used') or '').strip() or None
        to_supervisor = _flag(data.get('send_to_supervisor'), 'send_to_supervisor')
        to_admin = _flag(data.get('send_to_admin'), 'send_to_admin')

        session = uow.session
        req = session.get(ServiceRequest, request_id)
        # the request's existence is not revealed to other technicians
        if req is None or req.assigned_technician_id != actor.id:
            raise NotFoundError('Request not found or you do not have access to it')

        now = self.clock()
        report = TechnicianReport(
            request_id=req.id,
            technician_id=actor.id,
            report_content=content,
            current_status=current_status or req.status,
            parts_used=parts_used,
            send_to_supervisor=to_supervisor,
            send_to_admin=to_admin,
            created_at=now,
            updated_at=now,
        )
        session.add(report)
        session.flush()
        add_activity(uow, req.id, actor.id, ActivityType.COMMENT, f"Created report for request {req.request_number}", now=now)
        session.flush()
        notify_report_created(uow, req, report, actor)
        logger.info('Report %s filed on request %s by user %s', report.id, req.request_number, actor.id)
        return report

    def approve(self, uow, report_id: int, actor: Actor, comment: Optional[str] = None) -> TechnicianReport:
        comment = str(comment).strip() if comment not in (None, '') else None
        return self._decide(uow, report_id, actor, True, comment)

    def reject(self, uow, report_id: int, actor: Actor, comment: Optional[str]) -> TechnicianReport:
        if comment is None or not str(comment).strip():
            raise ValidationError('Rejection reason is required')
        return self._decide(uow, report_id, actor, False, str(comment).strip())

    def _decide(self, uow, report_id: int, actor: Actor, approved: bool, comment: Optional[str]) -> TechnicianReport:
        if not is_manager(actor):
            raise ForbiddenError('Only management can review reports')
        report = load_report_for_update(uow.session, report_id)
        req = report.request
        assert_department_access(actor, req.department_id)

        now = self.clock()
        previous = report.is_approved
        report.is_approved = approved
        report.approved_by_id = actor.id
        report.approval_comment = comment
        report.updated_at = now
        verb = 'Approved' if approved else 'Rejected'
        add_activity(uow, req.id, actor.id, ActivityType.COMMENT,
                     f"{verb} technician report for request {req.request_number}",
                     _decision(previous), _decision(approved), now=now)
        uow.session.flush()
        notify_report_decided(uow, req, report, actor)
        logger.info('Report %s %s by user %s', report.id, verb.lower(), actor.id)
        return report


def _decision(value: Optional[bool]) -> Optional[str]:
    if value is None:
        return None
    return 'APPROVED' if value else 'REJECTED'


__all__ = ['TechnicianReportService', 'load_report_for_update']
