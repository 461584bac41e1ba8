"""Spare-part inventory ledger.

Every stock change happens inside the caller's unit of work: the SparePart row is
read FOR UPDATE (and carries a version counter), validated, mutated and flushed
before any history entry is staged. Validation failures raise before the first
write, so a rejected call leaves no RequestPart and no stock change behind.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional
from sqlalchemy import select, func, update
from sqlalchemy.orm import Session
from aftersales.constants.enums import ChangeType
from aftersales.errors import NotFoundError, ValidationError
from aftersales.models.service_request import ServiceRequest, RequestCost
from aftersales.models.spare_part import SparePart, RequestPart
from aftersales.services.audit import HistoryEntry, utcnow
from aftersales.services.notifications import notify_part_reserved, notify_warehouse_change
from aftersales.services.policy import Actor, assert_warehouse_keeper
from aftersales.utils.numbering import next_daily_number
from aftersales.utils.validation import positive_int, optional_int, require_text

logger = logging.getLogger(__name__)

PART_NUMBER_PREFIX = 'PART'


def _non_negative_int(value, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a non-negative integer")
    try:
        as_int = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a non-negative integer")
    if as_int < 0 or (isinstance(value, float) and value != as_int):
        raise ValidationError(f"{field_name} must be a non-negative integer")
    return as_int


def _price(value, field_name: str = 'unit_price') -> float:
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if price < 0:
        raise ValidationError(f"{field_name} cannot be negative")
    return price


def _optional_text(value, field_name: str) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None


# field -> coercer used by update_part; order is the order of history rows
PART_FIELDS: Dict[str, Callable[[Any, str], Any]] = {
    'name': require_text,
    'part_number': require_text,
    'present_pieces': _non_negative_int,
    'unit_price': _price,
    'currency': require_text,
    'description': _optional_text,
    'category': require_text,
    'min_quantity': _non_negative_int,
    'department_id': optional_int,
}


class InventoryLedger:
    def __init__(self, clock: Callable[[], datetime] = utcnow, default_currency: str = 'SYP'):
        self.clock = clock
        self.default_currency = default_currency

    # ---- reservations against requests ----

    def reserve(self, uow, spare_part_id: int, request_id: int, quantity, actor: Actor,
                unit_price_fallback: Optional[float] = None, notify: bool = True) -> RequestPart:
        """Take quantity units of a part for a request, snapshotting the current unit price."""
        qty = positive_int(quantity, 'quantity')
        session = uow.session
        req = session.get(ServiceRequest, request_id)
        if req is None:
            raise NotFoundError('Request not found')
        part = self._lock_part(session, spare_part_id)
        if qty > part.present_pieces:
            raise ValidationError(f"Insufficient stock for {part.name}: requested {qty}, available {part.present_pieces}")
        now = self.clock()
        unit_price = part.unit_price or unit_price_fallback or 0.0
        rp = RequestPart(
            request_id=req.id,
            spare_part_id=part.id,
            quantity_used=qty,
            unit_price=unit_price,
            total_cost=unit_price * qty,
            added_by_id=actor.id,
            created_at=now,
            updated_at=now,
        )
        session.add(rp)
        before = part.present_pieces
        part.present_pieces = before - qty
        session.flush()
        uow.stage_history(HistoryEntry(
            spare_part_id=part.id,
            changed_by_id=actor.id,
            change_type=ChangeType.USED_IN_REQUEST,
            field_changed='present_pieces',
            old_value=before,
            new_value=part.present_pieces,
            quantity_change=-qty,
            request_id=req.id,
            description=f"Used {qty} pieces in request {req.request_number}",
            created_at=now,
        ))
        if notify:
            notify_part_reserved(uow, req, actor, part, qty)
        logger.info('Reserved %s x part %s for request %s (stock %s -> %s)', qty, part.id, req.id, before, part.present_pieces)
        return rp

    def release(self, uow, request_part_id: int, actor: Actor) -> int:
        """Delete a reservation and return its units to stock. Returns the units restored."""
        session = uow.session
        rp = self._get_request_part(session, request_part_id)
        part = self._lock_part(session, rp.spare_part_id)
        req = session.get(ServiceRequest, rp.request_id)
        qty = rp.quantity_used
        before = part.present_pieces
        part.present_pieces = before + qty
        session.execute(update(RequestCost).where(RequestCost.request_part_id == rp.id).values(request_part_id=None))
        session.delete(rp)
        session.flush()
        number = req.request_number if req is not None else rp.request_id
        uow.stage_history(HistoryEntry(
            spare_part_id=part.id,
            changed_by_id=actor.id,
            change_type=ChangeType.QUANTITY_CHANGED,
            field_changed='present_pieces',
            old_value=before,
            new_value=part.present_pieces,
            quantity_change=qty,
            request_id=rp.request_id,
            description=f"Returned {qty} pieces from request {number}",
            created_at=self.clock(),
        ))
        logger.info('Released request part %s: %s x part %s back to stock', request_part_id, qty, part.id)
        return qty

    def adjust(self, uow, request_part_id: int, new_quantity, actor: Actor) -> RequestPart:
        """Change a reservation's quantity, moving only the difference in or out of stock."""
        new_qty = positive_int(new_quantity, 'quantity_used')
        session = uow.session
        rp = self._get_request_part(session, request_part_id)
        delta = new_qty - rp.quantity_used
        if delta == 0:
            return rp
        part = self._lock_part(session, rp.spare_part_id)
        if part.present_pieces - delta < 0:
            raise ValidationError(f"Insufficient stock for {part.name}: {part.present_pieces} available, {delta} more needed")
        now = self.clock()
        old_qty = rp.quantity_used
        before = part.present_pieces
        rp.quantity_used = new_qty
        rp.total_cost = rp.unit_price * new_qty
        rp.updated_at = now
        part.present_pieces = before - delta
        session.flush()
        req = session.get(ServiceRequest, rp.request_id)
        uow.stage_history(HistoryEntry(
            spare_part_id=part.id,
            changed_by_id=actor.id,
            change_type=ChangeType.QUANTITY_CHANGED,
            field_changed='present_pieces',
            old_value=before,
            new_value=part.present_pieces,
            quantity_change=-delta,
            request_id=rp.request_id,
            description=f"Request {req.request_number if req else rp.request_id} usage changed from {old_qty} to {new_qty}",
            created_at=now,
        ))
        logger.info('Adjusted request part %s from %s to %s (stock %s -> %s)', rp.id, old_qty, new_qty, before, part.present_pieces)
        return rp

    # ---- warehouse maintenance ----

    def create_part(self, uow, actor: Actor, data: Mapping[str, Any]) -> SparePart:
        assert_warehouse_keeper(actor)
        session = uow.session
        name = require_text(data.get('name'), 'name')
        present = _non_negative_int(data.get('present_pieces', 0), 'present_pieces')
        now = self.clock()
        part_number = data.get('part_number')
        if part_number:
            part_number = require_text(part_number, 'part_number')
            self._assert_part_number_free(session, part_number)
        else:
            part_number = next_daily_number(session, SparePart.part_number, PART_NUMBER_PREFIX, now)
        part = SparePart(
            part_number=part_number,
            name=name,
            description=_optional_text(data.get('description'), 'description'),
            category=require_text(data.get('category') or 'GENERAL', 'category'),
            present_pieces=present,
            min_quantity=_non_negative_int(data.get('min_quantity', 5), 'min_quantity'),
            unit_price=_price(data.get('unit_price', 0)),
            currency=require_text(data.get('currency') or self.default_currency, 'currency'),
            department_id=optional_int(data.get('department_id'), 'department_id'),
            created_at=now,
            updated_at=now,
        )
        session.add(part)
        session.flush()
        uow.stage_history(HistoryEntry(
            spare_part_id=part.id,
            changed_by_id=actor.id,
            change_type=ChangeType.CREATED,
            new_value=present,
            quantity_change=present,
            description=f"Spare part {part.name} created with {present} pieces",
            created_at=now,
        ))
        notify_warehouse_change(uow, part, actor, f"added spare part {part.name} ({part.part_number})")
        logger.info('Created spare part %s (%s) with %s pieces', part.id, part.part_number, present)
        return part

    def update_part(self, uow, part_id: int, actor: Actor, changes: Mapping[str, Any]) -> SparePart:
        """Apply field edits and record one history row per changed field plus a summary row."""
        assert_warehouse_keeper(actor)
        session = uow.session
        part = self._lock_part(session, part_id)
        diffs = []
        for name, coerce in PART_FIELDS.items():
            if name not in changes:
                continue
            value = coerce(changes[name], name)
            current = getattr(part, name)
            if value != current:
                diffs.append((name, current, value))
        if not diffs:
            return part
        for name, _old, value in diffs:
            if name == 'part_number':
                self._assert_part_number_free(session, value, exclude_id=part.id)
        now = self.clock()
        for name, _old, value in diffs:
            setattr(part, name, value)
        part.updated_at = now
        session.flush()
        for name, old, value in diffs:
            if name == 'present_pieces':
                uow.stage_history(HistoryEntry(
                    spare_part_id=part.id, changed_by_id=actor.id, change_type=ChangeType.QUANTITY_CHANGED,
                    field_changed=name, old_value=old, new_value=value, quantity_change=value - old,
                    description=f"Quantity changed from {old} to {value}", created_at=now,
                ))
            else:
                uow.stage_history(HistoryEntry(
                    spare_part_id=part.id, changed_by_id=actor.id, change_type=ChangeType.UPDATED,
                    field_changed=name, old_value=old, new_value=value,
                    description=f"{name} changed from {old} to {value}", created_at=now,
                ))
        changed = ', '.join(d[0] for d in diffs)
        uow.stage_history(HistoryEntry(
            spare_part_id=part.id, changed_by_id=actor.id, change_type=ChangeType.UPDATED,
            description=f"Updated fields: {changed}", created_at=now,
        ))
        notify_warehouse_change(uow, part, actor, f"updated spare part {part.name} ({changed})")
        logger.info('Updated spare part %s: %s', part.id, changed)
        return part

    def adjust_stock(self, uow, part_id: int, actor: Actor, adjustment, reason) -> SparePart:
        """Signed manual stock correction with a mandatory reason."""
        assert_warehouse_keeper(actor)
        if isinstance(adjustment, bool):
            raise ValidationError('adjustment must be a non-zero integer')
        try:
            delta = int(adjustment)
        except (TypeError, ValueError):
            raise ValidationError('adjustment must be a non-zero integer')
        if delta == 0 or (isinstance(adjustment, float) and adjustment != delta):
            raise ValidationError('adjustment must be a non-zero integer')
        reason = require_text(reason, 'reason')
        session = uow.session
        part = self._lock_part(session, part_id)
        before = part.present_pieces
        if before + delta < 0:
            raise ValidationError(f"Adjustment would make stock negative ({before} + {delta})")
        now = self.clock()
        part.present_pieces = before + delta
        part.updated_at = now
        session.flush()
        uow.stage_history(HistoryEntry(
            spare_part_id=part.id, changed_by_id=actor.id, change_type=ChangeType.QUANTITY_CHANGED,
            field_changed='present_pieces', old_value=before, new_value=part.present_pieces,
            quantity_change=delta, description=f"Manual adjustment: {reason}", created_at=now,
        ))
        notify_warehouse_change(uow, part, actor, f"adjusted {part.name} by {delta:+d} ({reason})")
        logger.info('Adjusted stock of part %s by %+d (%s -> %s)', part.id, delta, before, part.present_pieces)
        return part

    def delete_part(self, uow, part_id: int, actor: Actor) -> None:
        assert_warehouse_keeper(actor)
        session = uow.session
        part = self._lock_part(session, part_id)
        in_use = session.execute(
            select(func.count(RequestPart.id)).where(RequestPart.spare_part_id == part.id)
        ).scalar_one()
        if in_use:
            raise ValidationError(f"Spare part is used in {in_use} request(s) and cannot be deleted")
        snapshot = (part.id, part.name, part.part_number, part.present_pieces)
        notify_warehouse_change(uow, part, actor, f"deleted spare part {part.name} ({part.part_number})")
        session.delete(part)
        session.flush()
        uow.stage_history(HistoryEntry(
            spare_part_id=snapshot[0], changed_by_id=actor.id, change_type=ChangeType.DELETED,
            old_value=snapshot[3], description=f"Spare part {snapshot[1]} ({snapshot[2]}) deleted",
            created_at=self.clock(),
        ))
        logger.info('Deleted spare part %s (%s)', snapshot[0], snapshot[2])

    # ---- helpers ----

    def _lock_part(self, session: Session, part_id: int) -> SparePart:
        stmt = (
            select(SparePart)
            .where(SparePart.id == part_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        part = session.execute(stmt).scalar_one_or_none()
        if part is None:
            raise NotFoundError('Spare part not found')
        return part

    def _get_request_part(self, session: Session, request_part_id: int) -> RequestPart:
        rp = session.get(RequestPart, request_part_id)
        if rp is None:
            raise NotFoundError('Request part not found')
        return rp

    def _assert_part_number_free(self, session: Session, part_number: str, exclude_id: Optional[int] = None):
        stmt = select(SparePart.id).where(SparePart.part_number == part_number)
        if exclude_id is not None:
            stmt = stmt.where(SparePart.id != exclude_id)
        if session.execute(stmt).first() is not None:
            raise ValidationError(f"Part number {part_number} already exists")


def parts_for_request(session: Session, request_id: int) -> List[RequestPart]:
    stmt = select(RequestPart).where(RequestPart.request_id == request_id).order_by(RequestPart.id.desc())
    return list(session.execute(stmt).scalars())


__all__ = ['InventoryLedger', 'parts_for_request', 'PART_FIELDS', 'PART_NUMBER_PREFIX']
