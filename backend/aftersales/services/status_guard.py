"""Role-gated request lifecycle.

Who may move a request where is expressed as transition graphs per actor tier:
    technicians   NEW->ASSIGNED, ASSIGNED->{UNDER_INSPECTION, WAITING_PARTS, IN_REPAIR}, IN_REPAIR->COMPLETED
    managers      any non-closed status -> {ASSIGNED .. COMPLETED}
    top managers  same targets, and may also leave CLOSED
CLOSED is reached only through close_request; NEW only through reassignment of a
closed request. Every check runs before the first write, so a rejected call
changes nothing and leaves no activity row.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Callable, Optional
from sqlalchemy import select
from sqlalchemy.orm import Session
from aftersales.constants.enums import ActivityType, RequestStatus, Role
from aftersales.errors import ForbiddenError, NotFoundError, ValidationError
from aftersales.models.service_request import ServiceRequest
from aftersales.models.users import User
from aftersales.services.audit import add_activity, utcnow
from aftersales.services.notifications import notify_assignment, notify_request_closed, notify_status_changed
from aftersales.services.policy import Actor, assert_department_access, is_manager, is_technician, is_top, is_warehouse
from aftersales.utils.fsm import TransitionValidator
from aftersales.utils.validation import positive_int, validate_enum

logger = logging.getLogger(__name__)

S = RequestStatus

MANAGER_TARGETS = {S.ASSIGNED, S.UNDER_INSPECTION, S.WAITING_PARTS, S.IN_REPAIR, S.COMPLETED}

TECHNICIAN_FSM = TransitionValidator({
    S.NEW: {S.ASSIGNED},
    S.ASSIGNED: {S.UNDER_INSPECTION, S.WAITING_PARTS, S.IN_REPAIR},
    S.IN_REPAIR: {S.COMPLETED},
})
MANAGER_FSM = TransitionValidator.from_targets([s for s in S if s != S.CLOSED], MANAGER_TARGETS)
TOP_FSM = TransitionValidator.from_targets(list(S), MANAGER_TARGETS)

# status -> timestamp written on first entry
FIRST_ENTRY_TIMESTAMPS = {
    S.UNDER_INSPECTION: 'started_at',
    S.COMPLETED: 'completed_at',
    S.CLOSED: 'closed_at',
}


def load_request_for_update(session: Session, request_id: int) -> ServiceRequest:
    stmt = (
        select(ServiceRequest)
        .where(ServiceRequest.id == request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    req = session.execute(stmt).scalar_one_or_none()
    if req is None:
        raise NotFoundError('Request not found')
    return req


class StatusTransitionGuard:
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    def change_status(self, uow, request_id: int, actor: Actor, target, comment: Optional[str] = None) -> ServiceRequest:
        target = validate_enum(target, RequestStatus, 'status')
        if target == S.CLOSED:
            return self.close_request(uow, request_id, actor, final_notes=comment)
        if is_warehouse(actor):
            raise ForbiddenError('Warehouse keepers cannot change request status')
        req = load_request_for_update(uow.session, request_id)
        current = RequestStatus(req.status)
        if is_technician(actor):
            if actor.id not in (req.assigned_technician_id, req.received_by_id):
                raise ForbiddenError('Only the assigned technician or the receiver can change this request')
            TECHNICIAN_FSM.assert_can_transition(current, target)
        else:
            assert_department_access(actor, req.department_id)
            if current == S.CLOSED and not is_top(actor):
                raise ForbiddenError('Only top management can reopen a closed request')
            (TOP_FSM if is_top(actor) else MANAGER_FSM).assert_can_transition(current, target)

        now = self.clock()
        req.status = target.value
        self._stamp_first_entry(req, target, now)
        req.updated_at = now
        if current == S.CLOSED:
            description = f"Request reopened from CLOSED to {target.value}"
        else:
            description = f"Status changed from {current.value} to {target.value}"
        if comment:
            description += f". Comment: {comment}"
        add_activity(uow, req.id, actor.id, ActivityType.STATUS_CHANGE, description, current, target, now=now)
        uow.session.flush()
        notify_status_changed(uow, req, actor, current.value, target.value)
        logger.info('Request %s status %s -> %s by user %s', req.request_number, current.value, target.value, actor.id)
        return req

    def assign_technician(self, uow, request_id: int, actor: Actor, technician_id) -> ServiceRequest:
        if not is_manager(actor):
            raise ForbiddenError('Only managers and supervisors can assign technicians')
        tech_id = positive_int(technician_id, 'technician_id')
        session = uow.session
        req = load_request_for_update(session, request_id)
        assert_department_access(actor, req.department_id)
        current = RequestStatus(req.status)
        if current == S.CLOSED and not is_top(actor):
            raise ForbiddenError('Only top management can reassign a closed request')
        tech = session.get(User, tech_id)
        if tech is None or not tech.is_active or tech.role != Role.TECHNICIAN.value:
            raise ValidationError('Technician not found, inactive or not a technician')
        if not is_top(actor) and tech.department_id != actor.department_id:
            raise ForbiddenError('Technician belongs to another department')

        if current == S.CLOSED:
            new_status = S.NEW
        elif current == S.COMPLETED:
            new_status = S.COMPLETED
        else:
            new_status = S.ASSIGNED
        now = self.clock()
        previous = req.assigned_technician_id
        req.assigned_technician_id = tech.id
        if req.assigned_at is None:
            req.assigned_at = now
        req.status = new_status.value
        req.updated_at = now
        description = f"Assigned to technician {tech.display_name}"
        if new_status != current:
            description += f". Status changed from {current.value} to {new_status.value}"
        add_activity(uow, req.id, actor.id, ActivityType.ASSIGNMENT, description, previous, tech.id, now=now)
        session.flush()
        notify_assignment(uow, req, actor, tech.id, previous)
        logger.info('Request %s assigned to technician %s by user %s', req.request_number, tech.id, actor.id)
        return req

    def close_request(self, uow, request_id: int, actor: Actor, final_notes: Optional[str] = None,
                      customer_satisfaction=None) -> ServiceRequest:
        if not is_manager(actor):
            raise ForbiddenError('Only managers and supervisors can close requests')
        req = load_request_for_update(uow.session, request_id)
        assert_department_access(actor, req.department_id)
        if req.status != S.COMPLETED.value:
            raise ValidationError('Only completed requests can be closed')
        satisfaction = None
        if customer_satisfaction not in (None, ''):
            satisfaction = positive_int(customer_satisfaction, 'customer_satisfaction')
            if satisfaction > 5:
                raise ValidationError('customer_satisfaction must be between 1 and 5')

        now = self.clock()
        req.status = S.CLOSED.value
        self._stamp_first_entry(req, S.CLOSED, now)
        if final_notes:
            req.final_notes = final_notes
        if satisfaction is not None:
            req.customer_satisfaction = satisfaction
        req.updated_at = now
        add_activity(uow, req.id, actor.id, ActivityType.STATUS_CHANGE, 'Request closed', S.COMPLETED, S.CLOSED, now=now)
        uow.session.flush()
        notify_request_closed(uow, req, actor)
        logger.info('Request %s closed by user %s', req.request_number, actor.id)
        return req

    @staticmethod
    def _stamp_first_entry(req: ServiceRequest, status: RequestStatus, now: datetime):
        attr = FIRST_ENTRY_TIMESTAMPS.get(status)
        if attr and getattr(req, attr) is None:
            setattr(req, attr, now)


__all__ = ['StatusTransitionGuard', 'TECHNICIAN_FSM', 'MANAGER_FSM', 'TOP_FSM', 'load_request_for_update']
