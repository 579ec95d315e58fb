"""
Audit logging models

Records admin actions and the position deltas that reach a portfolio
while it is in MANUAL mode (and therefore do not move its totals).
"""

from sqlalchemy import String, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_engine.models.base import Base, TimestampMixin


class SystemAuditLog(Base, TimestampMixin):
    """System-wide audit log"""

    __tablename__ = "system_audit_logs"
    __table_args__ = (
        Index("idx_system_audit_logs_action", "action"),
        Index("idx_system_audit_logs_resource", "resource_type", "resource_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    action: Mapped[str] = mapped_column(String(50))  # position_change, manual_totals, approve, ...
    resource_type: Mapped[str] = mapped_column(String(50))  # portfolio, order, position
    resource_id: Mapped[str | None] = mapped_column(String(50), default=None)
    user_id: Mapped[int | None] = mapped_column(default=None)
    changes: Mapped[str | None] = mapped_column(Text, default=None)  # JSON payload
    details: Mapped[str | None] = mapped_column(Text, default=None)
    status: Mapped[str] = mapped_column(String(20), default="success")
