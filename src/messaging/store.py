"""Persistent records of the messaging core.

The records are plain classes registered as aggregates into each service's
domain by ``MessageStore.register()``. Every service therefore keeps its own
outbox, idempotency ledger and dead letters in its own database, inside the
same transactions as its business aggregates.

State machines:
    OutboxRecord:      PENDING → PUBLISHED, PENDING → FAILED → (retry) → PUBLISHED
    LedgerEntry:       SUCCESS ⇄ DUPLICATE, FAILED → SUCCESS
    DeadLetterRecord:  PENDING → PROCESSING → PROCESSED | RETRY_FAILED | IGNORED
"""

import threading
from datetime import UTC, datetime, timedelta
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Integer, String, Text

STACK_TRACE_LIMIT = 5000

_clock_lock = threading.Lock()
_last_stamp = None


def monotonic_utc() -> datetime:
    """Current UTC time, strictly increasing within this process.

    Outbox rows appended in one transaction must sort in append order, so two
    stamps are never allowed to collide.
    """
    global _last_stamp
    with _clock_lock:
        now = datetime.now(UTC)
        if _last_stamp is not None and now <= _last_stamp:
            now = _last_stamp + timedelta(microseconds=1)
        _last_stamp = now
        return now


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OutboxStatus(Enum):
    PENDING = "PENDING"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"


class LedgerStatus(Enum):
    SUCCESS = "SUCCESS"
    DUPLICATE = "DUPLICATE"
    FAILED = "FAILED"


class DeadLetterStatus(Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    RETRY_FAILED = "RETRY_FAILED"
    IGNORED = "IGNORED"


_OUTBOX_TRANSITIONS = {
    OutboxStatus.PENDING: {OutboxStatus.PUBLISHED, OutboxStatus.FAILED},
    OutboxStatus.FAILED: {OutboxStatus.PUBLISHED, OutboxStatus.FAILED},
    OutboxStatus.PUBLISHED: set(),  # Terminal
}

_DEAD_LETTER_TRANSITIONS = {
    DeadLetterStatus.PENDING: {
        DeadLetterStatus.PROCESSING,
        DeadLetterStatus.PROCESSED,
        DeadLetterStatus.IGNORED,
    },
    DeadLetterStatus.PROCESSING: {
        DeadLetterStatus.PROCESSED,
        DeadLetterStatus.RETRY_FAILED,
        DeadLetterStatus.IGNORED,
    },
    DeadLetterStatus.RETRY_FAILED: {
        DeadLetterStatus.PROCESSING,
        DeadLetterStatus.PROCESSED,
        DeadLetterStatus.IGNORED,
    },
    DeadLetterStatus.PROCESSED: set(),  # Terminal
    DeadLetterStatus.IGNORED: set(),  # Terminal
}


# ---------------------------------------------------------------------------
# Outbox
# ---------------------------------------------------------------------------
class OutboxRecord:
    """An event waiting to be published, written in the producer's transaction."""

    aggregate_type: String(required=True, max_length=100)
    aggregate_id: String(required=True, max_length=100)
    event_type: String(required=True, max_length=150)  # Topic
    type_tag: String(required=True, max_length=200)
    payload: Text(required=True)

    status: String(choices=OutboxStatus, default=OutboxStatus.PENDING.value, max_length=20)
    attempts: Integer(default=0)
    last_error: Text()

    created_at: DateTime()
    published_at: DateTime()

    @classmethod
    def create(cls, aggregate_type, aggregate_id, event_type, type_tag, payload):
        return cls(
            aggregate_type=aggregate_type,
            aggregate_id=str(aggregate_id),
            event_type=event_type,
            type_tag=type_tag,
            payload=payload,
            status=OutboxStatus.PENDING.value,
            attempts=0,
            created_at=monotonic_utc(),
        )

    @property
    def partition_key(self):
        return f"{self.aggregate_type}-{self.aggregate_id}"

    def _assert_can_transition(self, target_status):
        current = OutboxStatus(self.status)
        if target_status not in _OUTBOX_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def mark_published(self, published_at=None):
        self._assert_can_transition(OutboxStatus.PUBLISHED)
        self.status = OutboxStatus.PUBLISHED.value
        self.attempts = (self.attempts or 0) + 1
        self.last_error = None
        self.published_at = published_at or datetime.now(UTC)

    def mark_failed(self, error):
        self._assert_can_transition(OutboxStatus.FAILED)
        self.status = OutboxStatus.FAILED.value
        self.attempts = (self.attempts or 0) + 1
        self.last_error = str(error)


# ---------------------------------------------------------------------------
# Idempotency ledger
# ---------------------------------------------------------------------------
class LedgerEntry:
    """One row per (event type, event key) a consumer has seen."""

    ledger_key: String(required=True, unique=True, max_length=400)
    consumer_group: String(max_length=100)
    event_type: String(required=True, max_length=200)
    event_key: String(required=True, max_length=200)
    payload_snapshot: Text()

    status: String(choices=LedgerStatus, required=True, max_length=20)
    result_message: Text()
    duplicate_count: Integer(default=0)
    failure_count: Integer(default=0)

    processed_at: DateTime()

    @staticmethod
    def key_for(event_type, event_key):
        return f"{event_type}:{event_key}"

    @classmethod
    def first_sighting(cls, event_type, event_key, payload_snapshot=None, consumer_group=None):
        """Build an entry for an event that has never been recorded."""
        return cls(
            ledger_key=cls.key_for(event_type, event_key),
            consumer_group=consumer_group,
            event_type=event_type,
            event_key=str(event_key),
            payload_snapshot=payload_snapshot,
            status=LedgerStatus.FAILED.value,
            duplicate_count=0,
            failure_count=0,
            processed_at=datetime.now(UTC),
        )

    @property
    def is_settled(self):
        """True when the effect has already been applied."""
        return LedgerStatus(self.status) in (LedgerStatus.SUCCESS, LedgerStatus.DUPLICATE)

    def mark_success(self, message):
        if self.is_settled:
            raise ValidationError({"status": ["Event has already been applied"]})
        self.status = LedgerStatus.SUCCESS.value
        self.result_message = message
        self.processed_at = datetime.now(UTC)

    def mark_duplicate(self):
        if not self.is_settled:
            raise ValidationError({"status": ["Only applied events can be marked duplicate"]})
        self.status = LedgerStatus.DUPLICATE.value
        self.result_message = "duplicate event skipped"
        self.duplicate_count = (self.duplicate_count or 0) + 1
        self.processed_at = datetime.now(UTC)

    def mark_failed(self, message):
        if self.is_settled:
            raise ValidationError({"status": ["Event has already been applied"]})
        self.status = LedgerStatus.FAILED.value
        self.result_message = message
        self.failure_count = (self.failure_count or 0) + 1
        self.processed_at = datetime.now(UTC)


# ---------------------------------------------------------------------------
# Dead letters
# ---------------------------------------------------------------------------
class DeadLetterRecord:
    """A message that exhausted its retries, kept for operator disposition."""

    source_key: String(required=True, unique=True, max_length=400)
    dead_letter_topic: String(required=True, max_length=200)

    # Original coordinates
    topic: String(required=True, max_length=200)
    partition: Integer(required=True)
    offset: Integer(required=True)
    message_key: String(max_length=200)
    consumer_group: String(max_length=100)

    event_type: String(required=True, max_length=250)
    payload: Text()
    headers: Text()  # JSON
    exception_message: Text()
    stack_trace: Text()
    attempts: Integer(default=1)

    status: String(choices=DeadLetterStatus, default=DeadLetterStatus.PENDING.value, max_length=20)
    retry_count: Integer(default=0)
    memo: Text()

    failed_at: DateTime()
    last_retry_at: DateTime()
    processed_at: DateTime()

    @staticmethod
    def key_for(dead_letter_topic, partition, offset):
        return f"{dead_letter_topic}:{partition}:{offset}"

    @classmethod
    def create(
        cls,
        dead_letter_topic,
        dead_letter_partition,
        dead_letter_offset,
        topic,
        partition,
        offset,
        event_type,
        payload,
        exception_message=None,
        stack_trace=None,
        attempts=1,
        message_key=None,
        consumer_group=None,
        headers=None,
    ):
        return cls(
            source_key=cls.key_for(dead_letter_topic, dead_letter_partition, dead_letter_offset),
            dead_letter_topic=dead_letter_topic,
            topic=topic,
            partition=partition,
            offset=offset,
            message_key=message_key,
            consumer_group=consumer_group,
            event_type=event_type,
            payload=payload,
            headers=headers,
            exception_message=exception_message,
            stack_trace=(stack_trace or "")[:STACK_TRACE_LIMIT] or None,
            attempts=attempts,
            status=DeadLetterStatus.PENDING.value,
            retry_count=0,
            failed_at=datetime.now(UTC),
        )

    def _assert_can_transition(self, target_status):
        current = DeadLetterStatus(self.status)
        if target_status not in _DEAD_LETTER_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def start_processing(self):
        self._assert_can_transition(DeadLetterStatus.PROCESSING)
        self.status = DeadLetterStatus.PROCESSING.value

    def mark_processed(self, memo=None):
        self._assert_can_transition(DeadLetterStatus.PROCESSED)
        self.status = DeadLetterStatus.PROCESSED.value
        self.memo = memo
        self.processed_at = datetime.now(UTC)

    def mark_retry_failed(self, memo=None):
        self._assert_can_transition(DeadLetterStatus.RETRY_FAILED)
        self.status = DeadLetterStatus.RETRY_FAILED.value
        self.retry_count = (self.retry_count or 0) + 1
        self.last_retry_at = datetime.now(UTC)
        self.memo = memo

    def mark_ignored(self, memo=None):
        self._assert_can_transition(DeadLetterStatus.IGNORED)
        self.status = DeadLetterStatus.IGNORED.value
        self.memo = memo
        self.processed_at = datetime.now(UTC)

    def record_replay(self):
        """Count a manual replay; the record stays PROCESSING until resolved."""
        if DeadLetterStatus(self.status) != DeadLetterStatus.PROCESSING:
            self.start_processing()
        self.retry_count = (self.retry_count or 0) + 1
        self.last_retry_at = datetime.now(UTC)


# ---------------------------------------------------------------------------
# Relay lease
# ---------------------------------------------------------------------------
class RelayLease:
    """Single-leader lock for the relay of one outbox table."""

    name: String(identifier=True, max_length=100)
    locked_by: String(max_length=200)
    locked_at: DateTime()
    locked_until: DateTime()

    def held_by_other(self, owner, now):
        return self.locked_by != owner and self.locked_until is not None and self.locked_until > now

    def grant(self, owner, now, seconds):
        if self.held_by_other(owner, now):
            raise ValidationError({"locked_by": [f"Lease `{self.name}` is held by {self.locked_by}"]})
        if self.locked_by != owner:
            self.locked_at = now
        self.locked_by = owner
        self.locked_until = now + timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------
class MessageStore:
    """The messaging records as registered in one service domain."""

    def __init__(self, domain, outbox_cls, ledger_cls, dead_letter_cls, lease_cls):
        self.domain = domain
        self.outbox_cls = outbox_cls
        self.ledger_cls = ledger_cls
        self.dead_letter_cls = dead_letter_cls
        self.lease_cls = lease_cls

    @classmethod
    def register(cls, domain):
        """Register the messaging aggregates with ``domain``."""
        return cls(
            domain,
            outbox_cls=domain.aggregate(OutboxRecord, schema_name="outbox_records"),
            ledger_cls=domain.aggregate(LedgerEntry, schema_name="idempotency_ledger"),
            dead_letter_cls=domain.aggregate(DeadLetterRecord, schema_name="dead_letter_records"),
            lease_cls=domain.aggregate(RelayLease, schema_name="relay_leases"),
        )

    @property
    def outbox(self):
        return self.domain.repository_for(self.outbox_cls)

    @property
    def ledger(self):
        return self.domain.repository_for(self.ledger_cls)

    @property
    def dead_letters(self):
        return self.domain.repository_for(self.dead_letter_cls)

    @property
    def leases(self):
        return self.domain.repository_for(self.lease_cls)
