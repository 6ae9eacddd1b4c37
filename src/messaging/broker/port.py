"""Broker port: abstract interface for a partitioned message log."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Message:
    """A message as read back from the broker, with its log coordinates."""

    topic: str
    partition: int
    offset: int
    key: str
    value: str
    headers: dict = field(default_factory=dict)

    def header(self, name, default=None):
        return self.headers.get(name, default)


class BrokerPort(ABC):
    """Interface for message brokers.

    Messages sharing a key always land on the same partition, and a partition
    is read strictly in offset order. ``poll`` is not destructive: a message is
    returned again until its group commits past it.
    """

    @abstractmethod
    def publish(self, topic: str, key: str, value: str, headers: dict | None = None) -> Message:
        """Append a message and return it once acknowledged.

        Raises ``PublishError`` when the broker cannot accept the message.
        """

    @abstractmethod
    def partitions_for(self, topic: str) -> list[int]:
        """Return the partition numbers of ``topic``."""

    @abstractmethod
    def poll(self, topic: str, group: str, partition: int, max_messages: int = 50) -> list[Message]:
        """Return up to ``max_messages`` uncommitted messages for ``group``."""

    @abstractmethod
    def commit(self, group: str, message: Message) -> None:
        """Mark ``message`` and everything before it as consumed by ``group``."""

    @abstractmethod
    def topics(self) -> list[str]:
        """Return the topics that have received at least one message."""

    def lag(self, topic: str, group: str) -> int:
        """Number of messages in ``topic`` not yet committed by ``group``."""
        return sum(len(self.poll(topic, group, partition, max_messages=10_000)) for partition in self.partitions_for(topic))
