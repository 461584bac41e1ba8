from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional
from sqlalchemy import select
from sqlalchemy.orm import Session
from aftersales.constants.enums import ActivityType, ChangeType
from aftersales.errors import ValidationError
from aftersales.models.service_request import RequestActivity
from aftersales.models.spare_part import SparePartHistory

logger = logging.getLogger(__name__)

ACTIVITY_WINDOWS = ('today', 'week', 'all')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class HistoryEntry:
    """One stock ledger row waiting to be recorded after its transaction commits."""
    spare_part_id: int
    changed_by_id: int
    change_type: ChangeType
    description: str
    field_changed: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    quantity_change: Optional[int] = None
    request_id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)


class AuditRecorder:
    """Writes SparePartHistory rows in their own short transaction.

    History is diagnostic; present_pieces on the part is authoritative. A failed
    write is logged with its traceback and never propagates to the caller.
    """

    def __init__(self, session_factory: Callable[[], Session], clock: Callable[[], datetime] = utcnow):
        self.session_factory = session_factory
        self.clock = clock

    def record(self, entry: HistoryEntry) -> Optional[SparePartHistory]:
        session = self.session_factory()
        try:
            row = SparePartHistory(
                spare_part_id=entry.spare_part_id,
                changed_by_id=entry.changed_by_id,
                change_type=entry.change_type.value,
                field_changed=entry.field_changed,
                old_value=_text(entry.old_value),
                new_value=_text(entry.new_value),
                quantity_change=entry.quantity_change,
                description=entry.description,
                request_id=entry.request_id,
                created_at=entry.created_at,
            )
            session.add(row)
            session.commit()
            return row
        except Exception:
            # best-effort: the stock mutation this row describes has already committed
            session.rollback()
            logger.exception('Failed to record %s history for spare part %s', entry.change_type.value, entry.spare_part_id)
            return None
        finally:
            session.close()

    def history_for_part(self, part_id: int) -> List[SparePartHistory]:
        """Newest-first history of one part; still available after the part is deleted."""
        with self.session_factory() as session:
            stmt = (
                select(SparePartHistory)
                .where(SparePartHistory.spare_part_id == part_id)
                .order_by(SparePartHistory.created_at.desc(), SparePartHistory.id.desc())
            )
            return list(session.execute(stmt).scalars())

    def recent_activity(self, window: str = 'all', limit: int = 50) -> List[SparePartHistory]:
        if window not in ACTIVITY_WINDOWS:
            raise ValidationError(f"window must be one of {', '.join(ACTIVITY_WINDOWS)}")
        stmt = select(SparePartHistory)
        since = window_start(window, self.clock())
        if since is not None:
            stmt = stmt.where(SparePartHistory.created_at >= since)
        stmt = stmt.order_by(SparePartHistory.created_at.desc(), SparePartHistory.id.desc()).limit(limit)
        with self.session_factory() as session:
            return list(session.execute(stmt).scalars())


def window_start(window: str, now: datetime) -> Optional[datetime]:
    if window == 'today':
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if window == 'week':
        return now - timedelta(days=7)
    return None


def add_activity(uow, request_id: int, user_id: int, activity_type: ActivityType, description: str,
                 old_value=None, new_value=None, now: Optional[datetime] = None) -> RequestActivity:
    """Stage one RequestActivity row inside the caller's transaction (no commit here)."""
    row = RequestActivity(
        request_id=request_id,
        user_id=user_id,
        activity_type=activity_type.value,
        description=description,
        old_value=_text(old_value),
        new_value=_text(new_value),
        created_at=now or utcnow(),
    )
    uow.session.add(row)
    return row


def _text(value) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, 'value', value))


__all__ = ['HistoryEntry', 'AuditRecorder', 'add_activity', 'window_start', 'utcnow', 'ACTIVITY_WINDOWS']
