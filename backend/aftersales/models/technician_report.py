from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey, func

from .users import Base


class TechnicianReport(Base):
    """Field report written by the assigned technician.

    is_approved is None until management decides; a decision may be revisited.
    """
    __tablename__ = 'technician_reports'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(ForeignKey('requests.id'), nullable=False, index=True)
    technician_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False, index=True)
    report_content: Mapped[str] = mapped_column(Text, nullable=False)
    current_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    parts_used: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    send_to_supervisor: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    send_to_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_approved: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, index=True)
    approved_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True)
    approval_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    request = relationship('ServiceRequest')
    technician = relationship('User', foreign_keys=[technician_id])
