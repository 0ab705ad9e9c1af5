"""
Deal Signal Handler

Entry point for the CRM deal pipeline. A deal moving to closed-won records an
outcome event; a closed-won deal being reopened flags its event for review.

The pipeline is fire-and-forget: failures are logged, never raised back to
the signal source. Redelivered signals carrying a key already processed are
dropped by the injected DeduplicationStore.
"""

import logging
import threading
from collections import OrderedDict

from .db.engine import session_scope
from .services.lifecycle import EventLifecycleManager
from .services.recorder import OutcomeRecorder

logger = logging.getLogger(__name__)


class DeduplicationStore:
    """Bounded set of processed signal keys, evicting the least recently seen."""

    def __init__(self, max_size: int = 10000):
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got: {max_size}")
        self.max_size = max_size
        self._keys: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    def seen(self, key: str) -> bool:
        with self._lock:
            if key in self._keys:
                self._keys.move_to_end(key)
                return True
            return False

    def add(self, key: str) -> None:
        with self._lock:
            self._keys[key] = None
            self._keys.move_to_end(key)
            while len(self._keys) > self.max_size:
                self._keys.popitem(last=False)

    def __len__(self) -> int:
        return len(self._keys)


class DealSignalHandler:
    """Routes deal-stage signals to the recorder and lifecycle manager."""

    def __init__(self, dedup_store: DeduplicationStore, clock=None, scope=session_scope):
        self.dedup_store = dedup_store
        self.clock = clock
        self.scope = scope

    def deal_closed_won(self, opportunity_id: str, organization_id: str, signal_key: str | None = None):
        """Record the outcome of a closed-won deal. Returns the event or None."""
        if self._is_duplicate(signal_key):
            return None

        try:
            with self.scope() as session:
                event = OutcomeRecorder(session, self.clock).record_deal_outcome(opportunity_id, organization_id)
        except Exception as e:
            logger.error(f"Failed to record outcome event: {str(e)}", exc_info=True)
            return None

        self._remember(signal_key)
        return event

    def deal_reopened(self, opportunity_id: str, new_stage: str, signal_key: str | None = None):
        """Flag the outcome event of a deal moved out of closed-won."""
        if self._is_duplicate(signal_key):
            return None

        notes = f"Deal reopened - changed from CLOSED_WON to {new_stage}"
        try:
            with self.scope() as session:
                event = EventLifecycleManager(session, self.clock).flag_event_for_review(opportunity_id, notes)
        except Exception as e:
            logger.error(f"Failed to flag outcome event for review: {str(e)}", exc_info=True)
            return None

        self._remember(signal_key)
        return event

    def _is_duplicate(self, signal_key: str | None) -> bool:
        if signal_key and self.dedup_store.seen(signal_key):
            logger.debug(f"Skipping duplicate deal signal {signal_key}")
            return True
        return False

    def _remember(self, signal_key: str | None) -> None:
        if signal_key:
            self.dedup_store.add(signal_key)
