from __future__ import annotations
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, JSON, DateTime, Index
from typing import Any, Dict, Optional

from .base import Base
from distribution.utils.clock import utcnow


class AuditLog(Base):
    """Append-only trail of state-changing requests (who moved which order or courier, and how)."""
    __tablename__ = 'audit_logs'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # 0 when the change did not come from an authenticated request (sweep script).
    actor_user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    actor_staff_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    perms_snapshot: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    meta: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index('ix_audit_logs_entity', 'entity', 'entity_id'),)
