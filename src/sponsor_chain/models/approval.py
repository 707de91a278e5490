"""Fee approval request model."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sponsor_chain.models.base import Base, TimestampMixin


class AgentApproval(Base, TimestampMixin):
    """One fee-approval request for an agent profile.

    Rows are never deleted; status only moves through explicit transitions.
    """

    __tablename__ = "agent_approval"

    approval_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    agent_id: Mapped[str] = mapped_column(String(64), nullable=False)
    billing_category_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    purpose: Mapped[str] = mapped_column(String(120), nullable=False)
    joining_level: Mapped[str | None] = mapped_column(String(16), nullable=True)
    promotion_level: Mapped[str | None] = mapped_column(String(16), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    branch_id: Mapped[str] = mapped_column(String(64), nullable=False)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    approved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'paid')",
            name="agent_approval_status_check",
        ),
        CheckConstraint(
            "joining_level IS NULL OR promotion_level IS NULL",
            name="agent_approval_single_level",
        ),
        CheckConstraint("amount >= 0", name="agent_approval_amount_nonneg"),
        Index("ix_agent_approval_agent_created", "agent_id", "created_at"),
        Index("ix_agent_approval_status", "status"),
    )
