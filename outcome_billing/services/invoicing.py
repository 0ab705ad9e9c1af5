"""
Outcome Invoicing

Rolls a tenant's PENDING outcome events into an invoice, runs the scheduled
billing pass, and settles invoices. Status changes go through the
EventLifecycleManager so its guards apply.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..clock import SystemClock, effective_billing_day
from ..db.base import new_id
from ..db.tables import OutcomeEvent, OutcomeInvoice, OutcomeInvoiceLineItem, OutcomePricingPlan
from ..exceptions import InvalidState, NotFound
from ..models import EventStatus
from .lifecycle import EventLifecycleManager
from .plans import PricingPlanStore

logger = logging.getLogger(__name__)

INVOICE_OPEN = "OPEN"
INVOICE_PAID = "PAID"


class InvoiceService:
    def __init__(self, session: Session, clock=None):
        self.session = session
        self.clock = clock or SystemClock()
        self.plans = PricingPlanStore(session)
        self.lifecycle = EventLifecycleManager(session, self.clock)

    def generate_invoice(self, organization_id: str) -> OutcomeInvoice | None:
        """
        Invoice every PENDING event of an organization.

        One line item per event, plus the platform access fee when the plan
        charges one. Returns None when there is nothing pending.
        """
        plan = self.plans.get_by_organization(organization_id, for_update=True)
        if plan is None:
            raise NotFound(f"No pricing plan found for organization {organization_id}")

        events = self.session.scalars(
            select(OutcomeEvent)
            .where(
                OutcomeEvent.organization_id == organization_id,
                OutcomeEvent.status == EventStatus.PENDING.value,
            )
            .order_by(OutcomeEvent.closed_date, OutcomeEvent.id)
        ).all()

        if not events:
            logger.debug(f"No pending outcome events to invoice for organization {organization_id}")
            return None

        now = self.clock.now()
        invoice = OutcomeInvoice(
            id=new_id(),
            organization_id=organization_id,
            invoice_number=self._next_invoice_number(plan),
            status=INVOICE_OPEN,
            currency=plan.currency,
            issued_at=now,
        )
        self.session.add(invoice)
        self.session.flush()

        total = 0
        for position, event in enumerate(events):
            line = OutcomeInvoiceLineItem(
                id=new_id(),
                invoice_id=invoice.id,
                outcome_event_id=event.id,
                position=position,
                description=f"Outcome fee: {event.opportunity_name} ({event.account_name})",
                amount=event.fee_amount,
            )
            invoice.line_items.append(line)
            self.lifecycle.mark_invoiced(event, invoice.id, line.id)
            total += event.fee_amount

        if plan.platform_access_fee:
            invoice.line_items.append(
                OutcomeInvoiceLineItem(
                    id=new_id(),
                    invoice_id=invoice.id,
                    position=len(events),
                    description="Platform access fee",
                    amount=plan.platform_access_fee,
                )
            )
            total += plan.platform_access_fee

        invoice.total_amount = total
        self.session.flush()

        logger.info(
            f"Generated invoice {invoice.invoice_number} for organization {organization_id}: "
            f"{len(events)} events, total=${total / 100:.2f}"
        )
        return invoice

    def process_billing(self) -> list[OutcomeInvoice]:
        """Invoice every active plan whose billing day is today."""
        today = self.clock.now()
        plans = self.session.scalars(
            select(OutcomePricingPlan).where(OutcomePricingPlan.is_active.is_(True)).order_by(OutcomePricingPlan.id)
        ).all()

        invoices = []
        for plan in plans:
            if effective_billing_day(plan.billing_day, today) != today.day:
                continue
            invoice = self.generate_invoice(plan.organization_id)
            if invoice is not None:
                invoices.append(invoice)

        logger.info(f"Outcome billing run complete: {len(invoices)} invoices generated")
        return invoices

    def mark_invoice_paid(self, invoice_id: str) -> OutcomeInvoice:
        """Settle an invoice and move its events to PAID."""
        invoice = self.session.get(OutcomeInvoice, invoice_id)
        if invoice is None:
            raise NotFound(f"Invoice {invoice_id} not found")
        if invoice.status == INVOICE_PAID:
            raise InvalidState(f"Invoice {invoice.invoice_number} is already paid", current_status=invoice.status)

        events = self.session.scalars(
            select(OutcomeEvent).where(
                OutcomeEvent.invoice_id == invoice_id,
                OutcomeEvent.status == EventStatus.INVOICED.value,
            )
        ).all()
        for event in events:
            self.lifecycle.mark_paid(event)

        invoice.status = INVOICE_PAID
        invoice.paid_at = self.clock.now()
        self.session.flush()

        logger.info(f"Invoice {invoice.invoice_number} paid: {len(events)} events settled")
        return invoice

    def get_invoice(self, invoice_id: str) -> OutcomeInvoice | None:
        return self.session.get(OutcomeInvoice, invoice_id)

    def _next_invoice_number(self, plan: OutcomePricingPlan) -> str:
        count = self.session.scalar(
            select(func.count()).select_from(OutcomeInvoice).where(
                OutcomeInvoice.organization_id == plan.organization_id
            )
        )
        slug = plan.organization.slug if plan.organization is not None else None
        prefix = (slug or plan.organization_id[:8]).upper()
        return f"OB-{self.clock.now():%Y%m}-{prefix}-{count + 1:04d}"
