"""
ORM tables for outcome billing and the CRM records it reads.

Organizations, memberships and opportunities belong to the wider CRM; only
the columns the billing core reads are mapped here.

Invariants enforced by the schema:
    - One pricing plan per organization (uq_outcome_plan_organization).
    - At most one live event per opportunity: a partial unique index over
      opportunity_id for events not WAIVED or VOIDED. Concurrent deal-closed
      signals cannot both insert.
    - fee_amount and deal_amount are non-negative.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import TrackedBase

_LIVE_EVENT = text("status NOT IN ('WAIVED', 'VOIDED')")


# =============================================================================
# CRM COLLABORATORS
# =============================================================================


class Organization(TrackedBase):
    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str | None] = mapped_column(String(100), unique=True)


class OrganizationMember(TrackedBase):
    __tablename__ = "organization_members"

    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", name="uq_member_user_organization"),
        Index("idx_member_user", "user_id"),
    )

    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    organization_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Opportunity(TrackedBase):
    __tablename__ = "opportunities"

    organization_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_name: Mapped[str | None] = mapped_column(String(255))
    owner_id: Mapped[str | None] = mapped_column(String(36))
    owner_name: Mapped[str | None] = mapped_column(String(255))
    # Major currency units (dollars), as the CRM stores it
    amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2))
    closed_date: Mapped[datetime | None] = mapped_column(DateTime)
    is_won: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


# =============================================================================
# OUTCOME BILLING
# =============================================================================


class OutcomePricingPlan(TrackedBase):
    __tablename__ = "outcome_pricing_plans"

    __table_args__ = (
        UniqueConstraint("organization_id", name="uq_outcome_plan_organization"),
        Index("idx_outcome_plan_active", "is_active"),
    )

    organization_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False)
    pricing_model: Mapped[str] = mapped_column(String(32), nullable=False)

    revenue_share_percent: Mapped[Decimal | None] = mapped_column(Numeric(7, 4))
    tier_configuration: Mapped[list | None] = mapped_column(JSON)
    flat_fee_per_deal: Mapped[int | None] = mapped_column(BigInteger)
    base_subscription_id: Mapped[str | None] = mapped_column(String(64))
    outcome_percent: Mapped[Decimal | None] = mapped_column(Numeric(7, 4))

    monthly_cap: Mapped[int | None] = mapped_column(BigInteger)
    min_deal_value: Mapped[int | None] = mapped_column(BigInteger)
    min_fee_per_deal: Mapped[int | None] = mapped_column(BigInteger)
    platform_access_fee: Mapped[int | None] = mapped_column(BigInteger)

    grants_full_access: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    billing_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    organization: Mapped[Organization] = relationship(lazy="joined")


class OutcomeInvoice(TrackedBase):
    __tablename__ = "outcome_invoices"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_outcome_invoice_number"),
        Index("idx_outcome_invoice_org", "organization_id"),
    )

    organization_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="OPEN")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    issued_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)

    line_items: Mapped[list["OutcomeInvoiceLineItem"]] = relationship(
        back_populates="invoice", order_by="OutcomeInvoiceLineItem.position", cascade="all, delete-orphan"
    )


class OutcomeInvoiceLineItem(TrackedBase):
    __tablename__ = "outcome_invoice_line_items"

    invoice_id: Mapped[str] = mapped_column(ForeignKey("outcome_invoices.id"), nullable=False)
    outcome_event_id: Mapped[str | None] = mapped_column(String(36))
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    invoice: Mapped[OutcomeInvoice] = relationship(back_populates="line_items")


class OutcomeEvent(TrackedBase):
    __tablename__ = "outcome_events"

    __table_args__ = (
        Index(
            "uq_outcome_event_live_opportunity",
            "opportunity_id",
            unique=True,
            sqlite_where=_LIVE_EVENT,
            postgresql_where=_LIVE_EVENT,
        ),
        Index("idx_outcome_event_org_closed", "organization_id", "closed_date"),
        Index("idx_outcome_event_status", "status"),
        CheckConstraint("fee_amount >= 0", name="ck_outcome_event_fee_non_negative"),
        CheckConstraint("deal_amount >= 0", name="ck_outcome_event_deal_non_negative"),
    )

    organization_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False)
    pricing_plan_id: Mapped[str] = mapped_column(ForeignKey("outcome_pricing_plans.id"), nullable=False)

    # Weak reference: the opportunity may change or disappear, the snapshot stays
    opportunity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    opportunity_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[str | None] = mapped_column(String(36))
    owner_name: Mapped[str | None] = mapped_column(String(255))

    deal_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee_calculation: Mapped[dict] = mapped_column(JSON, nullable=False)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")
    closed_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    billing_period_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    billing_period_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    admin_notes: Mapped[str | None] = mapped_column(Text)
    reviewed_by: Mapped[str | None] = mapped_column(String(36))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime)

    invoice_id: Mapped[str | None] = mapped_column(ForeignKey("outcome_invoices.id"))
    invoice_line_item_id: Mapped[str | None] = mapped_column(String(36))
    invoiced_at: Mapped[datetime | None] = mapped_column(DateTime)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)
