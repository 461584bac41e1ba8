"""Notification recipient fan-out.

Functions here only decide who hears about what. Intents are queued on the unit
of work and handed to the configured sink after commit; delivery (sockets,
e-mail, persistence of inbox rows) lives behind the sink.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional
from sqlalchemy import select
from sqlalchemy.orm import Session
from aftersales.constants.enums import NotificationType, Role, TOP_ROLES, DEPARTMENT_LEAD_ROLES
from aftersales.models.users import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationIntent:
    recipient_user_id: int
    title: str
    message: str
    type: NotificationType
    request_id: Optional[int] = None
    acting_user_id: Optional[int] = None


class LoggingNotificationSink:
    """Default sink: writes each intent to the log."""

    def deliver(self, intent: NotificationIntent) -> None:
        logger.info('notify user=%s type=%s request=%s title=%r', intent.recipient_user_id, intent.type.value, intent.request_id, intent.title)


def active_user_ids(session: Session, roles: Iterable[Role], department_id: Optional[int] = None) -> List[int]:
    stmt = select(User.id).where(User.is_active.is_(True), User.role.in_([r.value for r in roles]))
    if department_id is not None:
        stmt = stmt.where(User.department_id == department_id)
    return list(session.execute(stmt.order_by(User.id)).scalars())


def department_leads(session: Session, department_id: Optional[int]) -> List[int]:
    if department_id is None:
        return []
    return active_user_ids(session, DEPARTMENT_LEAD_ROLES, department_id)


def top_managers(session: Session) -> List[int]:
    return active_user_ids(session, TOP_ROLES)


def warehouse_keepers(session: Session) -> List[int]:
    return active_user_ids(session, [Role.WAREHOUSE_KEEPER])


def fan_out(uow, recipients: Iterable[Optional[int]], title: str, message: str, type_: NotificationType,
            request_id: Optional[int] = None, actor_id: Optional[int] = None) -> int:
    """Queue one intent per distinct recipient, never the acting user. Returns the count queued."""
    seen = set()
    for uid in recipients:
        if uid is None or uid == actor_id or uid in seen:
            continue
        seen.add(uid)
        uow.notify(NotificationIntent(uid, title, message, type_, request_id, actor_id))
    return len(seen)


def notify_request_created(uow, req, actor) -> int:
    return fan_out(
        uow, department_leads(uow.session, req.department_id),
        'New Request Assigned', f"New request {req.request_number} has been assigned to your department",
        NotificationType.ASSIGNMENT, req.id, actor.id,
    )


def notify_status_changed(uow, req, actor, old_status: str, new_status: str) -> int:
    message = f"{actor.display_name} changed request {req.request_number} from {old_status} to {new_status}"
    queued = 0
    if req.assigned_technician_id and req.assigned_technician_id != actor.id:
        queued += fan_out(uow, [req.assigned_technician_id], 'Request status updated', message,
                          NotificationType.STATUS_CHANGE, req.id, actor.id)
    if actor.role == Role.TECHNICIAN:
        recipients = top_managers(uow.session) + department_leads(uow.session, req.department_id)
        queued += fan_out(uow, recipients, 'Request status updated', message,
                          NotificationType.STATUS_CHANGE, req.id, actor.id)
    return queued


def notify_assignment(uow, req, actor, technician_id: int, previous_technician_id: Optional[int]) -> int:
    queued = fan_out(
        uow, [technician_id], 'New request assigned to you',
        f"{actor.display_name} assigned you to request {req.request_number}",
        NotificationType.ASSIGNMENT, req.id, actor.id,
    )
    if previous_technician_id and previous_technician_id != technician_id:
        # the replaced technician loses access, so no request link
        queued += fan_out(
            uow, [previous_technician_id], 'Unassigned from request',
            f"You are no longer responsible for request {req.request_number}",
            NotificationType.ASSIGNMENT, None, actor.id,
        )
    return queued


def notify_request_closed(uow, req, actor) -> int:
    return fan_out(
        uow, [req.assigned_technician_id], 'Request closed',
        f"{actor.display_name} closed request {req.request_number}",
        NotificationType.COMPLETION, req.id, actor.id,
    )


def notify_cost_added(uow, req, actor, description: str, amount: float, currency: str,
                      part_name: Optional[str] = None, quantity: Optional[int] = None,
                      remaining: Optional[int] = None) -> int:
    if part_name:
        detail = f"{quantity} x {part_name} used on request {req.request_number}"
    else:
        detail = f"Cost added to request {req.request_number}: {description} - {amount} {currency}"
    recipients = [req.assigned_technician_id, req.received_by_id] + department_leads(uow.session, req.department_id)
    queued = fan_out(uow, recipients, 'Request costs updated', detail, NotificationType.COST_ADDED, req.id, actor.id)
    if part_name:
        queued += fan_out(uow, warehouse_keepers(uow.session), 'Spare part stock updated',
                          f"{quantity} x {part_name} used. Remaining: {remaining}",
                          NotificationType.WAREHOUSE_UPDATE, req.id, actor.id)
    return queued


def notify_part_reserved(uow, req, actor, part, quantity: int) -> int:
    recipients = warehouse_keepers(uow.session) + top_managers(uow.session) + department_leads(uow.session, req.department_id)
    return fan_out(
        uow, recipients, 'Spare part used',
        f"{actor.display_name} used {quantity} x {part.name} on request {req.request_number}. Remaining: {part.present_pieces}",
        NotificationType.WAREHOUSE_UPDATE, req.id, actor.id,
    )


def notify_warehouse_change(uow, part, actor, summary: str) -> int:
    recipients = top_managers(uow.session) + department_leads(uow.session, part.department_id)
    return fan_out(uow, recipients, 'Warehouse updated', f"{actor.display_name}: {summary}",
                   NotificationType.WAREHOUSE_UPDATE, None, actor.id)


def notify_overdue(uow, req) -> int:
    recipients = [req.assigned_technician_id] + department_leads(uow.session, req.department_id)
    return fan_out(uow, recipients, 'Request overdue',
                   f"Request {req.request_number} passed its SLA due date",
                   NotificationType.OVERDUE, req.id, None)


def notify_part_request_created(uow, req, part_request, actor) -> int:
    recipients = top_managers(uow.session) + department_leads(uow.session, req.department_id)
    return fan_out(
        uow, recipients, 'New Spare Part Request',
        f"{actor.display_name} requested {part_request.part_name} (Qty: {part_request.quantity}) for request {req.request_number}",
        NotificationType.SPARE_PART_REQUEST, req.id, actor.id,
    )


def notify_part_request_approved(uow, part_request, actor) -> int:
    label = f"{part_request.part_name} (Qty: {part_request.quantity})"
    queued = fan_out(uow, [part_request.technician_id], 'Spare Part Request Approved',
                     f"Your request for {label} was approved",
                     NotificationType.SPARE_PART_APPROVED, part_request.request_id, actor.id)
    queued += fan_out(uow, warehouse_keepers(uow.session), 'Spare Part Request Approved - Action Required',
                      f"Please add spare part: {label} to inventory",
                      NotificationType.SPARE_PART_REQUEST, part_request.request_id, actor.id)
    return queued


def notify_part_request_rejected(uow, part_request, actor) -> int:
    return fan_out(
        uow, [part_request.technician_id], 'Spare Part Request Rejected',
        f"Your request for {part_request.part_name} was rejected: {part_request.rejection_reason}",
        NotificationType.SPARE_PART_REJECTED, part_request.request_id, actor.id,
    )


def notify_part_request_fulfilled(uow, part_request, actor) -> int:
    return fan_out(
        uow, [part_request.technician_id], 'Spare Part Request Fulfilled',
        f"{part_request.part_name} (Qty: {part_request.quantity}) is ready in the warehouse",
        NotificationType.SPARE_PART_APPROVED, part_request.request_id, actor.id,
    )


def notify_report_created(uow, req, report, actor) -> int:
    recipients: List[Optional[int]] = []
    if report.send_to_supervisor:
        recipients += active_user_ids(uow.session, [Role.SECTION_SUPERVISOR], req.department_id)
    if report.send_to_admin:
        recipients += top_managers(uow.session)
        recipients += active_user_ids(uow.session, [Role.DEPARTMENT_MANAGER], req.department_id)
    return fan_out(uow, recipients, 'New Technician Report',
                   f"{actor.display_name} submitted a report for request {req.request_number}",
                   NotificationType.TECHNICIAN_REPORT, req.id, actor.id)


def notify_report_decided(uow, req, report, actor) -> int:
    if report.is_approved:
        title, type_ = 'Report Approved', NotificationType.REPORT_APPROVED
        message = f"Your report for request {req.request_number} was approved"
    else:
        title, type_ = 'Report Rejected', NotificationType.REPORT_REJECTED
        message = f"Your report for request {req.request_number} was rejected"
    if report.approval_comment:
        message += f": {report.approval_comment}"
    return fan_out(uow, [report.technician_id], title, message, type_, req.id, actor.id)


__all__ = [
    'NotificationIntent', 'LoggingNotificationSink', 'fan_out', 'active_user_ids', 'department_leads',
    'top_managers', 'warehouse_keepers', 'notify_request_created', 'notify_status_changed',
    'notify_assignment', 'notify_request_closed', 'notify_cost_added', 'notify_part_reserved',
    'notify_warehouse_change', 'notify_overdue', 'notify_part_request_created', 'notify_part_request_approved',
    'notify_part_request_rejected', 'notify_part_request_fulfilled', 'notify_report_created', 'notify_report_decided',
]
