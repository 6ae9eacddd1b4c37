"""Outbox relay: publishes staged outbox rows to the broker.

One relay per service holds a lease on its outbox table, so concurrent relay
instances never publish the same row twice in the same cycle. Rows are sent
oldest first. If a row fails, later rows with the same partition key wait for
the next cycle, which preserves per-aggregate order.
"""

import os
import socket
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from protean.core.unit_of_work import UnitOfWork
from protean.exceptions import ObjectNotFoundError, ValidationError

from messaging.outbox import Outbox

logger = structlog.get_logger(__name__)


@dataclass
class RelayResult:
    leader: bool = True
    published: int = 0
    failed: int = 0
    deferred: int = 0


def _default_relay_id():
    return f"{socket.gethostname()}:{os.getpid()}"


class OutboxRelay:
    def __init__(
        self,
        domain,
        store,
        broker,
        registry,
        relay_id=None,
        batch_size=100,
        lease_seconds=5.0,
        clock=None,
    ):
        self.domain = domain
        self.store = store
        self.broker = broker
        self.outbox = Outbox(store, registry)
        self.relay_id = relay_id or _default_relay_id()
        self.batch_size = batch_size
        self.lease_seconds = lease_seconds
        self.clock = clock or (lambda: datetime.now(UTC))

    @property
    def lease_name(self):
        return f"outbox-relay:{self.domain.name}"

    def poll_once(self) -> RelayResult:
        """Run one relay cycle.

        Failed rows are retried first with their own budget, so a broken
        topic or aggregate cannot use up the batch meant for fresh rows.
        Fresh rows are then read page by page, skipping rows whose key is
        still blocked by a failed row, until ``batch_size`` of them have
        been attempted.
        """
        with self.domain.domain_context():
            if not self._acquire_lease():
                logger.debug("Relay lease held elsewhere, skipping cycle", relay_id=self.relay_id)
                return RelayResult(leader=False)

            result = RelayResult()

            retried = set()
            for record in self._read(self.outbox.list_failed, limit=self.batch_size):
                if record.partition_key in retried:
                    result.deferred += 1
                    continue
                if not self._publish(record, result):
                    retried.add(record.partition_key)

            blocked_keys = self._read(self.outbox.failed_keys)
            attempted = 0
            cursor = None
            while attempted < self.batch_size:
                page = self._read(
                    self.outbox.list_pending,
                    limit=self.batch_size,
                    include_failed=False,
                    created_after=cursor,
                )
                for record in page:
                    if attempted >= self.batch_size:
                        break
                    cursor = record.created_at
                    if record.partition_key in blocked_keys:
                        result.deferred += 1
                        continue
                    attempted += 1
                    if not self._publish(record, result):
                        blocked_keys.add(record.partition_key)
                if len(page) < self.batch_size:
                    break

            if result.published or result.failed:
                logger.info(
                    "Relay cycle complete",
                    domain=self.domain.name,
                    published=result.published,
                    failed=result.failed,
                    deferred=result.deferred,
                )
            return result

    def _read(self, query, **kwargs):
        with UnitOfWork():
            return query(**kwargs)

    def _publish(self, record, result) -> bool:
        try:
            self.broker.publish(
                record.event_type,
                record.partition_key,
                record.payload,
                {"type": record.type_tag, "outbox-id": str(record.id)},
            )
        except Exception as exc:
            with UnitOfWork():
                self.outbox.mark_failed(record.id, exc)
            result.failed += 1
            logger.warning(
                "Outbox publish failed",
                outbox_id=str(record.id),
                topic=record.event_type,
                key=record.partition_key,
                attempts=(record.attempts or 0) + 1,
                error=str(exc),
            )
            return False

        with UnitOfWork():
            self.outbox.mark_published(record.id)
        result.published += 1
        return True

    def _acquire_lease(self) -> bool:
        now = self.clock()
        try:
            with UnitOfWork():
                repo = self.store.leases
                try:
                    lease = repo.get(self.lease_name)
                except ObjectNotFoundError:
                    lease = self.store.lease_cls(name=self.lease_name)

                if lease.held_by_other(self.relay_id, now):
                    return False
                lease.grant(self.relay_id, now, self.lease_seconds)
                repo.add(lease)
        except ValidationError as exc:
            # Lost a race to create or renew the lease
            logger.debug("Relay lease not acquired", relay_id=self.relay_id, error=str(exc))
            return False
        return True

    def release_lease(self) -> None:
        """Give up the lease so a standby relay can take over immediately."""
        with self.domain.domain_context(), UnitOfWork():
            repo = self.store.leases
            try:
                lease = repo.get(self.lease_name)
            except ObjectNotFoundError:
                return
            if lease.locked_by == self.relay_id:
                lease.locked_until = self.clock()
                repo.add(lease)
