"""Idempotency ledger: which events a consumer has already applied."""

import structlog

from messaging.store import LedgerStatus

logger = structlog.get_logger(__name__)


class IdempotencyLedger:
    def __init__(self, store, group=None):
        self.store = store
        self.group = group

    def find(self, event_type, event_key):
        return (
            self.store.ledger._dao.query.filter(ledger_key=self.store.ledger_cls.key_for(event_type, event_key))
            .all()
            .first
        )

    def record_success(self, entry, event_type, event_key, payload_snapshot, message):
        """Mark the event applied. ``entry`` is the prior FAILED entry, if any."""
        if entry is None:
            entry = self.store.ledger_cls.first_sighting(
                event_type, event_key, payload_snapshot=payload_snapshot, consumer_group=self.group
            )
        entry.mark_success(message)
        self.store.ledger.add(entry)
        return entry

    def record_duplicate(self, entry):
        entry.mark_duplicate()
        self.store.ledger.add(entry)
        return entry

    def record_failure(self, event_type, event_key, payload_snapshot, message):
        """Record a failed attempt. A settled entry is left untouched."""
        entry = self.find(event_type, event_key)
        if entry is None:
            entry = self.store.ledger_cls.first_sighting(
                event_type, event_key, payload_snapshot=payload_snapshot, consumer_group=self.group
            )
        elif entry.is_settled:
            logger.warning(
                "Failure reported for an already applied event",
                event_type=event_type,
                event_key=str(event_key),
            )
            return entry

        entry.mark_failed(message)
        self.store.ledger.add(entry)
        return entry

    def count_by_status(self) -> dict:
        dao = self.store.ledger._dao
        return {status.value: dao.query.filter(status=status.value).all().total for status in LedgerStatus}
