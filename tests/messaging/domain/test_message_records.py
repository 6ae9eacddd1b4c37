from datetime import UTC, datetime, timedelta

import pytest
from protean.exceptions import ValidationError

from messaging.store import STACK_TRACE_LIMIT, DeadLetterStatus, LedgerStatus, OutboxStatus, monotonic_utc


def _outbox_record(store):
    return store.outbox_cls.create(
        aggregate_type="Order",
        aggregate_id="100",
        event_type="order.created",
        type_tag="Ordering.OrderCreated.v1",
        payload="{}",
    )


class TestOutboxRecord:
    def test_new_record_is_pending(self, store):
        record = _outbox_record(store)
        assert record.status == OutboxStatus.PENDING.value
        assert record.created_at is not None
        assert record.published_at is None
        assert record.partition_key == "Order-100"

    def test_publish_sets_timestamp(self, store):
        record = _outbox_record(store)
        record.mark_published()
        assert record.status == OutboxStatus.PUBLISHED.value
        assert record.published_at is not None

    def test_failed_record_can_fail_again_and_then_publish(self, store):
        record = _outbox_record(store)
        record.mark_failed("broker down")
        record.mark_failed("broker still down")
        assert record.attempts == 2
        assert record.last_error == "broker still down"

        record.mark_published()
        assert record.status == OutboxStatus.PUBLISHED.value
        assert record.last_error is None

    def test_published_is_terminal(self, store):
        record = _outbox_record(store)
        record.mark_published()
        with pytest.raises(ValidationError):
            record.mark_failed("late failure")
        with pytest.raises(ValidationError):
            record.mark_published()

    def test_timestamps_strictly_increase(self):
        stamps = [monotonic_utc() for _ in range(50)]
        assert all(later > earlier for earlier, later in zip(stamps, stamps[1:]))


class TestLedgerEntry:
    def test_key_combines_type_and_key(self, store):
        assert store.ledger_cls.key_for("Ordering.OrderCreated.v1", "100") == "Ordering.OrderCreated.v1:100"

    def test_success_then_duplicate(self, store):
        entry = store.ledger_cls.first_sighting("Ordering.OrderCreated.v1", "100")
        entry.mark_success("allocated")
        entry.mark_duplicate()
        entry.mark_duplicate()

        assert entry.status == LedgerStatus.DUPLICATE.value
        assert entry.duplicate_count == 2
        assert entry.result_message == "duplicate event skipped"

    def test_failed_entry_can_succeed_on_retry(self, store):
        entry = store.ledger_cls.first_sighting("Ordering.OrderCreated.v1", "100")
        entry.mark_failed("boom")
        entry.mark_success("allocated")
        assert entry.status == LedgerStatus.SUCCESS.value
        assert entry.failure_count == 1

    def test_applied_entry_cannot_fail(self, store):
        entry = store.ledger_cls.first_sighting("Ordering.OrderCreated.v1", "100")
        entry.mark_success("allocated")
        with pytest.raises(ValidationError):
            entry.mark_failed("boom")


class TestDeadLetterRecord:
    def _record(self, store, stack_trace="trace"):
        return store.dead_letter_cls.create(
            dead_letter_topic="order.created-dlt",
            dead_letter_partition=1,
            dead_letter_offset=7,
            topic="order.created",
            partition=2,
            offset=41,
            event_type="Ordering.OrderCreated.v1",
            payload="{}",
            exception_message="boom",
            stack_trace=stack_trace,
            attempts=4,
        )

    def test_created_pending_with_original_coordinates(self, store):
        record = self._record(store)
        assert record.status == DeadLetterStatus.PENDING.value
        assert (record.topic, record.partition, record.offset) == ("order.created", 2, 41)
        assert record.source_key == "order.created-dlt:1:7"
        assert record.retry_count == 0

    def test_stack_trace_is_truncated(self, store):
        record = self._record(store, stack_trace="x" * (STACK_TRACE_LIMIT + 500))
        assert len(record.stack_trace) == STACK_TRACE_LIMIT

    def test_retry_failed_counts_and_stamps(self, store):
        record = self._record(store)
        record.start_processing()
        record.mark_retry_failed("still broken")

        assert record.status == DeadLetterStatus.RETRY_FAILED.value
        assert record.retry_count == 1
        assert record.last_retry_at is not None
        assert record.memo == "still broken"

    def test_processed_and_ignored_are_terminal(self, store):
        processed = self._record(store)
        processed.mark_processed("fixed by hand")
        with pytest.raises(ValidationError):
            processed.start_processing()

        ignored = self._record(store)
        ignored.mark_ignored("obsolete")
        with pytest.raises(ValidationError):
            ignored.mark_processed()


class TestRelayLease:
    def test_lease_expires(self, store):
        now = datetime.now(UTC)
        lease = store.lease_cls(name="outbox-relay:ordering")
        lease.grant("relay-a", now, 5)

        assert lease.held_by_other("relay-b", now + timedelta(seconds=4))
        assert not lease.held_by_other("relay-b", now + timedelta(seconds=6))
        assert not lease.held_by_other("relay-a", now)

    def test_grant_refused_while_held(self, store):
        now = datetime.now(UTC)
        lease = store.lease_cls(name="outbox-relay:ordering")
        lease.grant("relay-a", now, 5)

        with pytest.raises(ValidationError):
            lease.grant("relay-b", now + timedelta(seconds=1), 5)
