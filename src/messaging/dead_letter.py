"""Dead-letter handling: persist exhausted messages and let operators dispose of them.

Nothing here reprocesses a message automatically. ``DeadLetterAdmin.replay``
exists for an operator who has fixed the underlying cause.
"""

import json

import structlog
from protean.core.unit_of_work import UnitOfWork

from messaging.retry import (
    ATTEMPT,
    EXCEPTION_MESSAGE,
    EXCEPTION_STACKTRACE,
    FAILURE_KIND,
    NOT_BEFORE,
    ORIGINAL_OFFSET,
    ORIGINAL_PARTITION,
    RETRY_DELAY,
    TARGET_GROUP,
    RetryChain,
)
from messaging.store import DeadLetterStatus

logger = structlog.get_logger(__name__)

# Headers that describe a past failure and must not travel with a replay
_FAILURE_HEADERS = (
    ATTEMPT,
    NOT_BEFORE,
    RETRY_DELAY,
    TARGET_GROUP,
    FAILURE_KIND,
    EXCEPTION_MESSAGE,
    EXCEPTION_STACKTRACE,
)


def dead_letter_event_type(message) -> str:
    if message.header(FAILURE_KIND) == "poison" or not message.header("type"):
        return f"PARSE_FAILED_{RetryChain.original_topic(message)}"
    return message.header("type")


class DeadLetterHandler:
    """Consumes ``{topic}-dlt`` channels into ``DeadLetterRecord`` rows."""

    def __init__(self, domain, store, broker, topics, group: str, batch_size: int = 50):
        self.domain = domain
        self.store = store
        self.broker = broker
        self.topics = list(topics)
        self.group = group
        self.batch_size = batch_size

    @property
    def reader_group(self):
        return f"{self.group}-dlt"

    def poll_once(self) -> int:
        """Persist every new dead-lettered message. Returns the number recorded."""
        recorded = 0
        with self.domain.domain_context():
            for topic in self.topics:
                dead_letter_topic = RetryChain.dead_letter_topic(topic)
                for partition in self.broker.partitions_for(dead_letter_topic):
                    for message in self.broker.poll(dead_letter_topic, self.reader_group, partition, self.batch_size):
                        target = message.header(TARGET_GROUP)
                        if target is None or target == self.group:
                            recorded += int(self._record(message))
                        self.broker.commit(self.reader_group, message)
        return recorded

    def _record(self, message) -> bool:
        repo = self.store.dead_letters
        source_key = self.store.dead_letter_cls.key_for(message.topic, message.partition, message.offset)
        if repo._dao.query.filter(source_key=source_key).all().first is not None:
            return False

        record = self.store.dead_letter_cls.create(
            dead_letter_topic=message.topic,
            dead_letter_partition=message.partition,
            dead_letter_offset=message.offset,
            topic=RetryChain.original_topic(message),
            partition=int(message.header(ORIGINAL_PARTITION, message.partition)),
            offset=int(message.header(ORIGINAL_OFFSET, message.offset)),
            event_type=dead_letter_event_type(message),
            payload=message.value,
            exception_message=message.header(EXCEPTION_MESSAGE),
            stack_trace=message.header(EXCEPTION_STACKTRACE),
            attempts=RetryChain.attempt_of(message) + 1,
            message_key=message.key,
            consumer_group=self.group,
            headers=json.dumps(message.headers, sort_keys=True),
        )
        with UnitOfWork():
            repo.add(record)

        logger.error(
            "Dead letter recorded",
            dead_letter_id=str(record.id),
            group=self.group,
            topic=record.topic,
            partition=record.partition,
            offset=record.offset,
            event_type=record.event_type,
            attempts=record.attempts,
            exception_message=record.exception_message,
        )
        return True


class DeadLetterAdmin:
    """Operator actions on a service's dead letters."""

    def __init__(self, domain, store):
        self.domain = domain
        self.store = store

    def list(self, status=None, limit=100):
        with self.domain.domain_context():
            query = self.store.dead_letters._dao.query
            if status:
                query = query.filter(status=DeadLetterStatus(status).value)
            return query.order_by("-failed_at").limit(limit).all().items

    def get(self, record_id):
        with self.domain.domain_context():
            return self.store.dead_letters.get(record_id)

    def counts(self) -> dict:
        with self.domain.domain_context():
            dao = self.store.dead_letters._dao
            return {status.value: dao.query.filter(status=status.value).all().total for status in DeadLetterStatus}

    def _transition(self, record_id, action, **kwargs):
        with self.domain.domain_context(), UnitOfWork():
            repo = self.store.dead_letters
            record = repo.get(record_id)
            getattr(record, action)(**kwargs)
            repo.add(record)

        logger.info("Dead letter updated", dead_letter_id=str(record_id), action=action, status=record.status)
        return record

    def start_processing(self, record_id):
        return self._transition(record_id, "start_processing")

    def mark_processed(self, record_id, memo=None):
        return self._transition(record_id, "mark_processed", memo=memo)

    def mark_retry_failed(self, record_id, memo=None):
        return self._transition(record_id, "mark_retry_failed", memo=memo)

    def mark_ignored(self, record_id, memo=None):
        return self._transition(record_id, "mark_ignored", memo=memo)

    def replay(self, record_id, broker):
        """Republish the dead-lettered payload to its original topic.

        The message starts a fresh retry budget. The record moves to
        PROCESSING and waits for the operator to resolve it.
        """
        record = self._transition(record_id, "record_replay")

        headers = json.loads(record.headers) if record.headers else {}
        for name in _FAILURE_HEADERS:
            headers.pop(name, None)

        message = broker.publish(record.topic, record.message_key or str(record.id), record.payload, headers)
        logger.warning(
            "Dead letter replayed",
            dead_letter_id=str(record.id),
            topic=record.topic,
            retry_count=record.retry_count,
            partition=message.partition,
            offset=message.offset,
        )
        return message
