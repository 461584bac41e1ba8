from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Tuple
from aftersales.constants.enums import (
    ActivityType, CostType, ExecutionMethod, Priority, RequestStatus, WarrantyStatus,
)
from aftersales.errors import ForbiddenError, NotFoundError, ValidationError
from aftersales.models.service_request import ServiceRequest, RequestCost
from aftersales.models.spare_part import RequestPart, SparePart
from aftersales.models.users import Department
from aftersales.services.audit import add_activity, utcnow
from aftersales.services.inventory import InventoryLedger
from aftersales.services.notifications import notify_cost_added, notify_request_created
from aftersales.services.policy import Actor, assert_department_access, is_manager
from aftersales.services.sla import SlaEngine
from aftersales.utils.numbering import next_daily_number
from aftersales.utils.validation import (
    optional_int, parse_date, positive_amount, positive_int, require_text, validate_enum,
)

logger = logging.getLogger(__name__)

REQUEST_NUMBER_PREFIX = 'REQ'


class RequestService:
    """Request intake and cost capture. Status changes go through StatusTransitionGuard."""

    def __init__(self, sla: SlaEngine, ledger: InventoryLedger, clock: Callable[[], datetime] = utcnow,
                 default_currency: str = 'SYP'):
        self.sla = sla
        self.ledger = ledger
        self.clock = clock
        self.default_currency = default_currency

    def create_request(self, uow, actor: Actor, data: Mapping[str, Any]) -> ServiceRequest:
        session = uow.session
        customer_id = positive_int(data.get('customer_id'), 'customer_id')
        issue = require_text(data.get('issue_description'), 'issue_description')
        method = validate_enum(data.get('execution_method'), ExecutionMethod, 'execution_method')
        warranty = validate_enum(data.get('warranty_status'), WarrantyStatus, 'warranty_status')
        priority = validate_enum(data.get('priority') or Priority.NORMAL, Priority, 'priority')
        department_id = optional_int(data.get('department_id'), 'department_id') or actor.department_id
        if department_id is None:
            raise ValidationError('department_id required')
        department = session.get(Department, department_id)
        if department is None or not department.is_active:
            raise ValidationError('Department not found or inactive')
        assert_department_access(actor, department_id)

        now = self.clock()
        req = ServiceRequest(
            request_number=next_daily_number(session, ServiceRequest.request_number, REQUEST_NUMBER_PREFIX, now),
            customer_id=customer_id,
            product_id=optional_int(data.get('product_id'), 'product_id'),
            department_id=department_id,
            received_by_id=actor.id,
            issue_description=issue,
            serial_number=(str(data['serial_number']).strip() or None) if data.get('serial_number') else None,
            purchase_date=parse_date(data.get('purchase_date'), 'purchase_date'),
            execution_method=method.value,
            warranty_status=warranty.value,
            priority=priority.value,
            status=RequestStatus.NEW.value,
            sla_due_date=self.sla.calculate_due_date(warranty, method, now),
            is_overdue=False,
            created_at=now,
            updated_at=now,
        )
        session.add(req)
        session.flush()
        add_activity(uow, req.id, actor.id, ActivityType.CREATED, f"Request {req.request_number} created", now=now)
        session.flush()
        notify_request_created(uow, req, actor)
        logger.info('Created request %s in department %s by user %s', req.request_number, department_id, actor.id)
        return req

    def add_cost(self, uow, request_id: int, actor: Actor, data: Mapping[str, Any]) -> Tuple[RequestCost, Optional[RequestPart]]:
        """Record a cost line; with spare_part_id the units are reserved in the same transaction."""
        description = require_text(data.get('description'), 'description')
        amount = positive_amount(data.get('amount'))
        cost_type = validate_enum(data.get('cost_type'), CostType, 'cost_type')
        currency = str(data.get('currency') or self.default_currency)
        spare_part_id = optional_int(data.get('spare_part_id'), 'spare_part_id')
        quantity = None
        if spare_part_id is not None:
            if data.get('quantity') in (None, ''):
                raise ValidationError('quantity required when a spare part is used')
            quantity = positive_int(data.get('quantity'), 'quantity')

        session = uow.session
        req = session.get(ServiceRequest, request_id)
        if req is None:
            raise NotFoundError('Request not found')
        if req.warranty_status == WarrantyStatus.UNDER_WARRANTY.value and not is_manager(actor):
            raise ForbiddenError('Cannot add costs to under-warranty requests')
        if spare_part_id is not None and session.get(SparePart, spare_part_id) is None:
            raise ValidationError('Selected spare part not found')

        now = self.clock()
        rp = None
        part = None
        if spare_part_id is not None:
            rp = self.ledger.reserve(uow, spare_part_id, req.id, quantity, actor,
                                     unit_price_fallback=amount / quantity, notify=False)
            part = rp.spare_part
        cost = RequestCost(
            request_id=req.id,
            description=description,
            amount=amount,
            cost_type=cost_type.value,
            currency=currency,
            request_part_id=rp.id if rp is not None else None,
            added_by_id=actor.id,
            created_at=now,
        )
        session.add(cost)
        session.flush()
        if part is not None:
            details = f"Spare part used: {part.name} x{quantity}"
        else:
            details = f"Cost added: {description} - {amount} {currency}"
        add_activity(uow, req.id, actor.id, ActivityType.COST_ADDED, details, None, f"{description}: {amount} {currency}", now=now)
        session.flush()
        notify_cost_added(
            uow, req, actor, description, amount, currency,
            part_name=part.name if part is not None else None,
            quantity=quantity,
            remaining=part.present_pieces if part is not None else None,
        )
        logger.info('Added %s cost %s %s to request %s', cost_type.value, amount, currency, req.request_number)
        return cost, rp


__all__ = ['RequestService', 'REQUEST_NUMBER_PREFIX']
