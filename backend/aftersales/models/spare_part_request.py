from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, DateTime, ForeignKey, func

from aftersales.constants.enums import PartRequestStatus, PartRequestUrgency
from .users import Base


class SparePartRequest(Base):
    """A technician asking the warehouse for a part a request needs.

    PENDING -> APPROVED | REJECTED by management, APPROVED -> FULFILLED by a
    warehouse keeper. The row is not linked to a SparePart: the part may not be
    stocked yet.
    """
    __tablename__ = 'spare_part_requests'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(ForeignKey('requests.id'), nullable=False, index=True)
    technician_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False, index=True)
    part_name: Mapped[str] = mapped_column(String(150), nullable=False)
    part_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    urgency: Mapped[str] = mapped_column(String(16), nullable=False, default=PartRequestUrgency.NORMAL.value)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=PartRequestStatus.PENDING.value, index=True)
    approved_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True)
    fulfilled_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    request = relationship('ServiceRequest')
    technician = relationship('User', foreign_keys=[technician_id])
