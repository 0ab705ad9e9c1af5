"""
Event Lifecycle Manager

Guarded status transitions for recorded outcome events:

    PENDING -> INVOICED -> PAID
    PENDING <-> FLAGGED_FOR_REVIEW
    PENDING | FLAGGED_FOR_REVIEW -> WAIVED | VOIDED

PAID, WAIVED and VOIDED are terminal. A transition attempted from any other
status raises InvalidState; nothing is silently ignored. No transition ever
recomputes fee_amount - corrections go through waive or void.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..clock import SystemClock
from ..db.tables import OutcomeEvent
from ..exceptions import InvalidArgument, InvalidState, NotFound
from ..models import EventStatus
from .base import paginate

logger = logging.getLogger(__name__)

REVIEWABLE = (EventStatus.PENDING, EventStatus.FLAGGED_FOR_REVIEW)

REVIEW_ACTIONS = {
    "approve": EventStatus.PENDING,
    "waive": EventStatus.WAIVED,
    "void": EventStatus.VOIDED,
}


class EventLifecycleManager:
    """Moves outcome events between statuses."""

    def __init__(self, session: Session, clock=None):
        self.session = session
        self.clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Review transitions
    # -------------------------------------------------------------------------

    def flag_event_for_review(self, opportunity_id: str, notes: str) -> OutcomeEvent | None:
        """
        Flag the deal's PENDING event for manual review, e.g. when the deal is
        reopened. No pending event means there is nothing to flag.
        """
        event = self.session.scalars(
            select(OutcomeEvent).where(
                OutcomeEvent.opportunity_id == opportunity_id,
                OutcomeEvent.status == EventStatus.PENDING.value,
            )
        ).first()

        if event is None:
            logger.debug(f"No active outcome event found for opportunity {opportunity_id}")
            return None

        event.status = EventStatus.FLAGGED_FOR_REVIEW.value
        event.admin_notes = _append_note(event.admin_notes, notes)
        self.session.flush()

        logger.warning(f"Flagged outcome event {event.id} for review: {notes}")
        return event

    def waive_event(self, event_id: str, reason: str, reviewer_id: str) -> OutcomeEvent:
        return self._close_event(event_id, EventStatus.WAIVED, "waive", reason, reviewer_id)

    def void_event(self, event_id: str, reason: str, reviewer_id: str) -> OutcomeEvent:
        return self._close_event(event_id, EventStatus.VOIDED, "void", reason, reviewer_id)

    def resolve_review(
        self, event_id: str, action: str, reason: str | None, reviewer_id: str
    ) -> OutcomeEvent:
        """
        Decide a flagged event: approve returns it to PENDING with its fee
        intact; waive and void close it.
        """
        if action not in REVIEW_ACTIONS:
            raise InvalidArgument(f"Invalid review action: {action}. Must be one of approve, waive, void")

        event = self._require_event(event_id)
        if event.status != EventStatus.FLAGGED_FOR_REVIEW.value:
            raise InvalidState(
                f"Event is not flagged for review. Current status: {event.status}",
                current_status=event.status,
            )

        decision = f"Review decision: {action}. {reason}" if reason else f"Review decision: {action}"
        event.status = REVIEW_ACTIONS[action].value
        event.admin_notes = _append_note(event.admin_notes, decision)
        self._stamp_review(event, reviewer_id)
        self.session.flush()

        logger.info(f"Resolved review of outcome event {event_id}: {action} by {reviewer_id}")
        return event

    # -------------------------------------------------------------------------
    # Billing transitions
    # -------------------------------------------------------------------------

    def mark_invoiced(self, event: OutcomeEvent, invoice_id: str, line_item_id: str) -> OutcomeEvent:
        self._guard(event, (EventStatus.PENDING,), "invoice")
        event.status = EventStatus.INVOICED.value
        event.invoice_id = invoice_id
        event.invoice_line_item_id = line_item_id
        event.invoiced_at = self.clock.now()
        self.session.flush()
        return event

    def mark_paid(self, event: OutcomeEvent) -> OutcomeEvent:
        self._guard(event, (EventStatus.INVOICED,), "mark paid")
        event.status = EventStatus.PAID.value
        event.paid_at = self.clock.now()
        self.session.flush()
        return event

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_event(self, event_id: str) -> OutcomeEvent | None:
        return self.session.get(OutcomeEvent, event_id)

    def list_events(
        self,
        organization_id: str | None = None,
        status: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> dict:
        """Paginated events, newest close first. Dates bound closed_date inclusively."""
        stmt = select(OutcomeEvent).order_by(OutcomeEvent.closed_date.desc(), OutcomeEvent.id)

        if organization_id:
            stmt = stmt.where(OutcomeEvent.organization_id == organization_id)
        if status:
            try:
                status = EventStatus(status).value
            except ValueError:
                raise InvalidArgument(f"Invalid status: {status}") from None
            stmt = stmt.where(OutcomeEvent.status == status)
        if start_date:
            stmt = stmt.where(OutcomeEvent.closed_date >= start_date)
        if end_date:
            stmt = stmt.where(OutcomeEvent.closed_date <= end_date)

        return paginate(self.session, stmt, page, limit)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _close_event(
        self, event_id: str, target: EventStatus, verb: str, reason: str, reviewer_id: str
    ) -> OutcomeEvent:
        event = self._require_event(event_id)
        self._guard(event, REVIEWABLE, verb)

        event.status = target.value
        event.admin_notes = _append_note(event.admin_notes, reason)
        self._stamp_review(event, reviewer_id)
        self.session.flush()

        logger.info(f"Outcome event {event_id} {target.value.lower()} by {reviewer_id}")
        return event

    def _require_event(self, event_id: str) -> OutcomeEvent:
        event = self.session.get(OutcomeEvent, event_id)
        if event is None:
            raise NotFound(f"Outcome event {event_id} not found")
        return event

    def _guard(self, event: OutcomeEvent, allowed: tuple, verb: str) -> None:
        if event.status not in [s.value for s in allowed]:
            allowed_names = " or ".join(s.value for s in allowed)
            raise InvalidState(
                f"Cannot {verb} event with status {event.status}. "
                f"Only {allowed_names} events can be {_past_tense(verb)}.",
                current_status=event.status,
            )

    def _stamp_review(self, event: OutcomeEvent, reviewer_id: str) -> None:
        event.reviewed_by = reviewer_id
        event.reviewed_at = self.clock.now()


def _append_note(existing: str | None, note: str | None) -> str | None:
    if not note:
        return existing
    if not existing:
        return note
    return f"{existing}\n{note}"


def _past_tense(verb: str) -> str:
    return {"waive": "waived", "void": "voided", "invoice": "invoiced", "mark paid": "marked paid"}.get(verb, verb)
