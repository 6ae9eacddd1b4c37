"""Retry escalation: failed messages move through delayed retry topics to a dead-letter topic.

With the defaults a message is attempted four times: once on its original
topic and once on each of ``{topic}-retry-0``, ``-retry-1`` and ``-retry-2``,
waiting 1, 2 and 4 seconds before each retry. A failure on the last retry
topic sends the message to ``{topic}-dlt``.
"""

import traceback
from datetime import UTC, datetime

import structlog

from messaging.store import STACK_TRACE_LIMIT

logger = structlog.get_logger(__name__)

# Headers added by the router
ATTEMPT = "attempt"
NOT_BEFORE = "not-before"
RETRY_DELAY = "retry-delay"
TARGET_GROUP = "target-group"
ORIGINAL_TOPIC = "original-topic"
ORIGINAL_PARTITION = "original-partition"
ORIGINAL_OFFSET = "original-offset"
EXCEPTION_MESSAGE = "exception-message"
EXCEPTION_STACKTRACE = "exception-stacktrace"
FAILURE_KIND = "failure-kind"

RETRY_INFIX = "-retry-"
DLT_SUFFIX = "-dlt"


def utc_now() -> datetime:
    return datetime.now(UTC)


class RetryChain:
    """The ordered retry delays of a topic, in seconds."""

    def __init__(self, delays):
        delays = tuple(float(delay) for delay in delays)
        if any(delay <= 0 for delay in delays):
            raise ValueError("Retry delays must be positive")
        if any(later < earlier for earlier, later in zip(delays, delays[1:], strict=False)):
            raise ValueError("Retry delays must not decrease")
        self.delays = delays

    @classmethod
    def exponential(cls, initial=1.0, multiplier=2.0, max_delay=10.0, retries=3):
        return cls(min(initial * multiplier**index, max_delay) for index in range(retries))

    @classmethod
    def from_settings(cls, settings):
        return cls.exponential(
            initial=settings.retry_initial_delay,
            multiplier=settings.retry_multiplier,
            max_delay=settings.retry_max_delay,
            retries=settings.retry_attempts,
        )

    @property
    def retries(self) -> int:
        return len(self.delays)

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    def delay_for(self, index: int) -> float:
        return self.delays[index]

    @staticmethod
    def retry_topic(topic: str, index: int) -> str:
        return f"{topic}{RETRY_INFIX}{index}"

    @staticmethod
    def dead_letter_topic(topic: str) -> str:
        return f"{topic}{DLT_SUFFIX}"

    def retry_topics(self, topic: str) -> list[str]:
        return [self.retry_topic(topic, index) for index in range(self.retries)]

    @staticmethod
    def original_topic(message) -> str:
        """The topic a message was first published on, whichever channel it came from."""
        return message.header(ORIGINAL_TOPIC) or message.topic

    @staticmethod
    def attempt_of(message) -> int:
        """Zero for the original delivery, ``i + 1`` on ``{topic}-retry-{i}``."""
        return int(message.header(ATTEMPT, 0))


def _stack_trace(exc) -> str:
    return "".join(traceback.format_exception(exc))[:STACK_TRACE_LIMIT]


class RetryRouter:
    """Republishes failed messages to the next retry topic or to the dead-letter topic.

    The router only looks at headers and coordinates, never at the payload.
    """

    def __init__(self, broker, chain: RetryChain, group: str | None = None, clock=utc_now):
        self.broker = broker
        self.chain = chain
        self.group = group
        self.clock = clock

    def _carried_headers(self, message) -> dict:
        headers = dict(message.headers)
        headers.setdefault(ORIGINAL_TOPIC, message.topic)
        headers.setdefault(ORIGINAL_PARTITION, str(message.partition))
        headers.setdefault(ORIGINAL_OFFSET, str(message.offset))
        if self.group:
            headers[TARGET_GROUP] = self.group
        return headers

    def route_failure(self, message, exc):
        """Send ``message`` one step down the chain after a processing failure."""
        attempt = RetryChain.attempt_of(message)
        if attempt >= self.chain.retries:
            return self._dead_letter(message, exc, kind="exhausted")

        topic = RetryChain.original_topic(message)
        delay = self.chain.delay_for(attempt)
        headers = self._carried_headers(message)
        headers.update(
            {
                ATTEMPT: str(attempt + 1),
                RETRY_DELAY: str(delay),
                NOT_BEFORE: str(self.clock().timestamp() + delay),
                EXCEPTION_MESSAGE: str(exc),
            }
        )
        retry_topic = self.chain.retry_topic(topic, attempt)
        routed = self.broker.publish(retry_topic, message.key, message.value, headers)

        logger.warning(
            "Message scheduled for retry",
            topic=topic,
            retry_topic=retry_topic,
            attempt=attempt + 1,
            delay_seconds=delay,
            error=str(exc),
        )
        return routed

    def route_poison(self, message, exc):
        """Send an undecodable message straight to the dead-letter topic."""
        return self._dead_letter(message, exc, kind="poison")

    def _dead_letter(self, message, exc, kind):
        topic = RetryChain.original_topic(message)
        headers = self._carried_headers(message)
        headers.update(
            {
                ATTEMPT: str(RetryChain.attempt_of(message)),
                FAILURE_KIND: kind,
                EXCEPTION_MESSAGE: str(exc),
                EXCEPTION_STACKTRACE: _stack_trace(exc),
            }
        )
        headers.pop(NOT_BEFORE, None)
        headers.pop(RETRY_DELAY, None)

        dead_letter_topic = self.chain.dead_letter_topic(topic)
        routed = self.broker.publish(dead_letter_topic, message.key, message.value, headers)

        logger.error(
            "Message dead-lettered",
            topic=topic,
            dead_letter_topic=dead_letter_topic,
            failure_kind=kind,
            attempts=RetryChain.attempt_of(message) + 1,
            error=str(exc),
        )
        return routed
