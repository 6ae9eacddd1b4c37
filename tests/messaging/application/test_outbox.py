import pytest
from protean.core.unit_of_work import UnitOfWork

from messaging.exceptions import TransactionRequired
from messaging.outbox import Outbox
from messaging.store import OutboxStatus


@pytest.fixture
def outbox(store, registry):
    return Outbox(store, registry)


class TestAppend:
    def test_append_requires_unit_of_work(self, outbox, order_created):
        with pytest.raises(TransactionRequired):
            outbox.append(order_created(), "Order", "100")

    def test_appended_row_is_pending(self, outbox, order_created):
        with UnitOfWork():
            outbox.append(order_created(), "Order", "100")

        [record] = outbox.list_pending()
        assert record.status == OutboxStatus.PENDING.value
        assert record.event_type == "order.created"
        assert record.type_tag == "Ordering.OrderCreated.v1"
        assert record.partition_key == "Order-100"

    def test_rolled_back_transaction_leaves_no_row(self, outbox, order_created):
        with pytest.raises(RuntimeError):
            with UnitOfWork():
                outbox.append(order_created(), "Order", "100")
                raise RuntimeError("state change failed")

        assert outbox.list_pending() == []


class TestListing:
    def test_pending_rows_oldest_first(self, outbox, order_created):
        with UnitOfWork():
            for order_id in ("1", "2", "3"):
                outbox.append(order_created(order_id=order_id), "Order", order_id)

        assert [record.aggregate_id for record in outbox.list_pending()] == ["1", "2", "3"]
        assert [record.aggregate_id for record in outbox.list_pending(limit=2)] == ["1", "2"]

    def test_failed_rows_are_listed_unless_excluded(self, outbox, order_created):
        with UnitOfWork():
            first = outbox.append(order_created(order_id="1"), "Order", "1")
            outbox.append(order_created(order_id="2"), "Order", "2")
        with UnitOfWork():
            outbox.mark_failed(first.id, "broker down")

        assert len(outbox.list_pending()) == 2
        assert [record.aggregate_id for record in outbox.list_pending(include_failed=False)] == ["2"]

    def test_pages_past_a_creation_time(self, outbox, order_created):
        with UnitOfWork():
            first, second, third = [outbox.append(order_created(order_id=order_id), "Order", order_id) for order_id in ("1", "2", "3")]

        page = outbox.list_pending(limit=2, created_after=first.created_at)

        assert [record.aggregate_id for record in page] == ["2", "3"]

    def test_failed_rows_and_their_keys(self, outbox, order_created):
        with UnitOfWork():
            first = outbox.append(order_created(order_id="1"), "Order", "1")
            outbox.append(order_created(order_id="2"), "Order", "2")
        with UnitOfWork():
            outbox.mark_failed(first.id, "broker down")

        assert [record.aggregate_id for record in outbox.list_failed()] == ["1"]
        assert outbox.failed_keys() == {"Order-1"}

    def test_count_by_status(self, outbox, order_created):
        with UnitOfWork():
            first = outbox.append(order_created(order_id="1"), "Order", "1")
            outbox.append(order_created(order_id="2"), "Order", "2")
        with UnitOfWork():
            outbox.mark_published(first.id)

        assert outbox.count_by_status() == {"PENDING": 1, "PUBLISHED": 1, "FAILED": 0}
