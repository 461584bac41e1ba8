"""Spare-part request workflow.

A technician working a request asks for a part the warehouse may not stock:
    PENDING  -> APPROVED | REJECTED   (management, department managers in their own department)
    APPROVED -> FULFILLED             (warehouse keepers)
Each step writes one RequestActivity on the parent request and queues
notifications on the unit of work.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional
from sqlalchemy import select
from sqlalchemy.orm import Session
from aftersales.constants.enums import ActivityType, PartRequestStatus, PartRequestUrgency
from aftersales.errors import ForbiddenError, NotFoundError, ValidationError
from aftersales.models.service_request import ServiceRequest
from aftersales.models.spare_part_request import SparePartRequest
from aftersales.services.audit import add_activity, utcnow
from aftersales.services.notifications import (
    notify_part_request_approved, notify_part_request_created, notify_part_request_fulfilled,
    notify_part_request_rejected,
)
from aftersales.services.policy import Actor, assert_department_access, is_manager, is_technician, is_warehouse
from aftersales.utils.validation import positive_int, require_text, validate_enum

logger = logging.getLogger(__name__)

P = PartRequestStatus


def load_part_request_for_update(session: Session, part_request_id: int) -> SparePartRequest:
    stmt = (
        select(SparePartRequest)
        .where(SparePartRequest.id == part_request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    row = session.execute(stmt).scalar_one_or_none()
    if row is None:
        raise NotFoundError('Spare part request not found')
    return row


class SparePartRequestService:
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    def create(self, uow, actor: Actor, data: Mapping[str, Any]) -> SparePartRequest:
        if not is_technician(actor):
            raise ForbiddenError('Only technicians can request spare parts')
        request_id = positive_int(data.get('request_id'), 'request_id')
        part_name = require_text(data.get('part_name'), 'part_name')
        description = require_text(data.get('description'), 'description')
        quantity = positive_int(data.get('quantity'), 'quantity')
        urgency = validate_enum(data.get('urgency') or PartRequestUrgency.NORMAL, PartRequestUrgency, 'urgency')
        part_number = str(data.get('part_number') or '').strip() or None

        session = uow.session
        req = session.get(ServiceRequest, request_id)
        if req is None:
            raise NotFoundError('Request not found')
        if actor.id not in (req.assigned_technician_id, req.received_by_id):
            raise ForbiddenError('You can only request parts for requests assigned to you')

        now = self.clock()
        row = SparePartRequest(
            request_id=req.id,
            technician_id=actor.id,
            part_name=part_name,
            part_number=part_number,
            description=description,
            quantity=quantity,
            urgency=urgency.value,
            status=P.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        session.flush()
        add_activity(uow, req.id, actor.id, ActivityType.CREATED,
                     f"Spare part request created: {part_name} (Qty: {quantity})", None, P.PENDING, now=now)
        session.flush()
        notify_part_request_created(uow, req, row, actor)
        logger.info('Spare part request %s for %s x%s on request %s by user %s',
                    row.id, part_name, quantity, req.request_number, actor.id)
        return row

    def approve(self, uow, part_request_id: int, actor: Actor) -> SparePartRequest:
        row = self._load_for_decision(uow, part_request_id, actor, 'approved')
        self._move(uow, row, actor, P.APPROVED, f"Spare part request approved: {row.part_name} (Qty: {row.quantity})")
        row.approved_by_id = actor.id
        uow.session.flush()
        notify_part_request_approved(uow, row, actor)
        return row

    def reject(self, uow, part_request_id: int, actor: Actor, reason: Optional[str]) -> SparePartRequest:
        reason = require_text(reason, 'rejection_reason')
        row = self._load_for_decision(uow, part_request_id, actor, 'rejected')
        self._move(uow, row, actor, P.REJECTED, f"Spare part request rejected: {row.part_name} - Reason: {reason}")
        row.approved_by_id = actor.id
        row.rejection_reason = reason
        uow.session.flush()
        notify_part_request_rejected(uow, row, actor)
        return row

    def fulfill(self, uow, part_request_id: int, actor: Actor) -> SparePartRequest:
        if not is_warehouse(actor):
            raise ForbiddenError('Only warehouse keepers can fulfill spare part requests')
        row = load_part_request_for_update(uow.session, part_request_id)
        if row.status != P.APPROVED.value:
            raise ValidationError('Only approved requests can be fulfilled')
        self._move(uow, row, actor, P.FULFILLED, f"Spare part request fulfilled: {row.part_name} (Qty: {row.quantity})")
        row.fulfilled_by_id = actor.id
        uow.session.flush()
        notify_part_request_fulfilled(uow, row, actor)
        return row

    def _load_for_decision(self, uow, part_request_id: int, actor: Actor, verb: str) -> SparePartRequest:
        if not is_manager(actor):
            raise ForbiddenError('Only management can review spare part requests')
        row = load_part_request_for_update(uow.session, part_request_id)
        assert_department_access(actor, row.request.department_id)
        if row.status != P.PENDING.value:
            raise ValidationError(f"Only pending requests can be {verb}")
        return row

    def _move(self, uow, row: SparePartRequest, actor: Actor, target: PartRequestStatus, description: str):
        now = self.clock()
        previous = row.status
        row.status = target.value
        row.updated_at = now
        add_activity(uow, row.request_id, actor.id, ActivityType.UPDATED, description, previous, target, now=now)
        logger.info('Spare part request %s %s -> %s by user %s', row.id, previous, target.value, actor.id)


__all__ = ['SparePartRequestService', 'load_part_request_for_update']
