from __future__ import annotations
from datetime import datetime
from sqlalchemy import select
from sqlalchemy.orm import Session


def daily_prefix(prefix: str, now: datetime) -> str:
    return f"{prefix}{now:%y%m%d}"


def next_daily_number(session: Session, column, prefix: str, now: datetime, width: int = 3) -> str:
    """Next "<PREFIX><yymmdd>-<seq>" value for column.

    The sequence is derived from the numbers already issued under today's prefix,
    not from row timestamps, so it is independent of the database clock. A racing
    insert hits the unique constraint on column rather than duplicating a number.
    """
    day = daily_prefix(prefix, now)
    issued = session.execute(select(column).where(column.like(f"{day}-%"))).scalars().all()
    highest = 0
    for number in issued:
        tail = number.rsplit('-', 1)[-1]
        if tail.isdigit():
            highest = max(highest, int(tail))
    return f"{day}-{highest + 1:0{width}d}"


__all__ = ['daily_prefix', 'next_daily_number']
