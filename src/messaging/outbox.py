"""Transactional outbox: events are stored with the state change that caused them."""

import structlog
from protean.utils.globals import current_uow

from messaging.exceptions import TransactionRequired
from messaging.store import OutboxStatus

logger = structlog.get_logger(__name__)


class Outbox:
    def __init__(self, store, registry):
        self.store = store
        self.registry = registry

    def append(self, event, aggregate_type: str, aggregate_id):
        """Stage ``event`` for publication in the caller's unit of work.

        The row commits or rolls back together with the caller's domain
        changes. Appending outside a unit of work is refused, since the row
        would otherwise be written independently of the state change.
        """
        if not current_uow:
            raise TransactionRequired(
                f"Outbox append of {type(event).__name__} requires an active unit of work"
            )

        record = self.store.outbox_cls.create(
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=self.registry.topic_for(event),
            type_tag=self.registry.tag_for(event),
            payload=self.registry.encode(event),
        )
        self.store.outbox.add(record)

        logger.debug(
            "Event staged in outbox",
            outbox_id=str(record.id),
            topic=record.event_type,
            aggregate_type=aggregate_type,
            aggregate_id=str(aggregate_id),
        )
        return record

    def list_pending(self, limit: int = 100, include_failed: bool = True, created_after=None):
        """Unpublished rows, oldest first.

        ``created_after`` pages through the backlog by creation time, so a
        caller can read past rows it has decided to skip.
        """
        statuses = [OutboxStatus.PENDING.value]
        if include_failed:
            statuses.append(OutboxStatus.FAILED.value)

        query = self.store.outbox._dao.query.filter(status__in=statuses)
        if created_after is not None:
            query = query.filter(created_at__gt=created_after)
        return query.order_by("created_at").limit(limit).all().items

    def list_failed(self, limit: int = 100):
        """Rows whose last publish attempt failed, oldest first."""
        return (
            self.store.outbox._dao.query.filter(status=OutboxStatus.FAILED.value)
            .order_by("created_at")
            .limit(limit)
            .all()
            .items
        )

    def failed_keys(self) -> set[str]:
        """Partition keys that have a failed row, and so must not publish newer rows."""
        failed = self.store.outbox._dao.query.filter(status=OutboxStatus.FAILED.value).limit(None).all().items
        return {record.partition_key for record in failed}

    def mark_published(self, record_id):
        repo = self.store.outbox
        record = repo.get(record_id)
        record.mark_published()
        repo.add(record)
        return record

    def mark_failed(self, record_id, error):
        repo = self.store.outbox
        record = repo.get(record_id)
        record.mark_failed(error)
        repo.add(record)
        return record

    def count_by_status(self) -> dict:
        dao = self.store.outbox._dao
        return {status.value: dao.query.filter(status=status.value).all().total for status in OutboxStatus}
