import pytest
from protean.exceptions import ObjectNotFoundError, ValidationError

from messaging.dead_letter import DeadLetterAdmin, DeadLetterHandler
from messaging.retry import ATTEMPT, EXCEPTION_MESSAGE, FAILURE_KIND, TARGET_GROUP, RetryChain
from messaging.store import DeadLetterStatus
from messaging.worker import ConsumerWorker


@pytest.fixture
def admin(store):
    from ordering.domain import ordering

    return DeadLetterAdmin(ordering, store)


@pytest.fixture
def dead_letter(test_consumer, broker, clock, store, publish, recorder, order_created):
    """Drive one OrderCreated through the whole retry chain into a dead-letter record."""
    from ordering.domain import ordering

    chain = RetryChain.exponential()
    worker = ConsumerWorker(test_consumer, broker, chain, clock=clock)
    recorder.failures_left = chain.max_attempts
    publish(order_created(), "Order-100")

    worker.poll_once()
    for delay in chain.delays:
        clock.advance(delay)
        worker.poll_once()

    DeadLetterHandler(ordering, store, broker, ["order.created"], group="test-group").poll_once()
    [record] = store.dead_letters._dao.query.all().items
    return record


class TestQueries:
    def test_list_and_filter_by_status(self, admin, dead_letter):
        assert [record.id for record in admin.list()] == [dead_letter.id]
        assert [record.id for record in admin.list(status="PENDING")] == [dead_letter.id]
        assert admin.list(status="IGNORED") == []

    def test_unknown_status_is_rejected(self, admin):
        with pytest.raises(ValueError):
            admin.list(status="LOST")

    def test_counts(self, admin, dead_letter):
        counts = admin.counts()
        assert counts["PENDING"] == 1
        assert counts["PROCESSED"] == 0

    def test_get_unknown_record(self, admin):
        with pytest.raises(ObjectNotFoundError):
            admin.get("missing")


class TestDisposition:
    def test_processing_then_retry_failed(self, admin, dead_letter):
        admin.start_processing(dead_letter.id)
        record = admin.mark_retry_failed(dead_letter.id, memo="stock service still down")

        assert record.status == DeadLetterStatus.RETRY_FAILED.value
        assert record.retry_count == 1
        assert admin.get(dead_letter.id).memo == "stock service still down"

    def test_ignore_is_final(self, admin, dead_letter):
        admin.mark_ignored(dead_letter.id, memo="order was refunded manually")

        with pytest.raises(ValidationError):
            admin.start_processing(dead_letter.id)

    def test_processed_is_final(self, admin, dead_letter):
        admin.mark_processed(dead_letter.id, memo="fixed")

        assert admin.get(dead_letter.id).processed_at is not None
        with pytest.raises(ValidationError):
            admin.mark_ignored(dead_letter.id)


class TestReplay:
    def test_replay_republishes_to_the_original_topic(self, admin, dead_letter, broker):
        message = admin.replay(dead_letter.id, broker)

        assert message.topic == "order.created"
        assert message.key == "Order-100"
        assert message.value == dead_letter.payload
        assert message.header("type") == "Ordering.OrderCreated.v1"
        for header in (ATTEMPT, TARGET_GROUP, FAILURE_KIND, EXCEPTION_MESSAGE):
            assert message.header(header) is None

        record = admin.get(dead_letter.id)
        assert record.status == DeadLetterStatus.PROCESSING.value
        assert record.retry_count == 1

    def test_replayed_message_is_applied_after_fix(self, admin, dead_letter, broker, test_consumer, recorder, clock):
        admin.replay(dead_letter.id, broker)

        result = ConsumerWorker(test_consumer, broker, RetryChain.exponential(), clock=clock).poll_once()

        assert result.applied == 1
        assert recorder.calls[-1] == "100"
        admin.mark_processed(dead_letter.id, memo="replayed")

    def test_resolved_record_cannot_be_replayed(self, admin, dead_letter, broker):
        admin.mark_ignored(dead_letter.id)

        with pytest.raises(ValidationError):
            admin.replay(dead_letter.id, broker)
