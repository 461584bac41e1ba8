from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from sqlalchemy import select
from aftersales.config.sla import SlaPolicy
from aftersales.constants.enums import ExecutionMethod, WarrantyStatus, TERMINAL_PROGRESS
from aftersales.models.service_request import ServiceRequest
from aftersales.services.audit import utcnow
from aftersales.services.notifications import notify_overdue
from aftersales.utils.validation import validate_enum

logger = logging.getLogger(__name__)


class SlaEngine:
    """Due-date calculation and overdue flagging."""

    def __init__(self, policy: Optional[SlaPolicy] = None, clock: Callable[[], datetime] = utcnow):
        self.policy = policy or SlaPolicy()
        self.clock = clock

    def calculate_due_date(self, warranty_status, execution_method, start: Optional[datetime] = None) -> datetime:
        warranty = validate_enum(warranty_status, WarrantyStatus, 'warranty_status')
        method = validate_enum(execution_method, ExecutionMethod, 'execution_method')
        if warranty == WarrantyStatus.UNDER_WARRANTY:
            hours = self.policy.under_warranty_hours
        else:
            hours = self.policy.out_of_warranty_hours
        if method == ExecutionMethod.ON_SITE:
            hours += self.policy.onsite_buffer_hours
        return (start or self.clock()) + timedelta(hours=hours)

    def check_overdue(self, uow, now: Optional[datetime] = None) -> List[int]:
        """Flag open requests past their due date. Already-flagged rows are skipped, so
        repeated calls return only requests that crossed the line since the last run."""
        now = now or self.clock()
        stmt = (
            select(ServiceRequest)
            .where(
                ServiceRequest.sla_due_date.is_not(None),
                ServiceRequest.sla_due_date < now,
                ServiceRequest.status.not_in([s.value for s in TERMINAL_PROGRESS]),
                ServiceRequest.is_overdue.is_(False),
            )
            .order_by(ServiceRequest.id)
            .with_for_update()
        )
        flagged = []
        for req in uow.session.execute(stmt).scalars().all():
            req.is_overdue = True
            flagged.append(req.id)
            notify_overdue(uow, req)
        if flagged:
            uow.session.flush()
            logger.info('Flagged %s request(s) overdue: %s', len(flagged), flagged)
        return flagged


__all__ = ['SlaEngine']
