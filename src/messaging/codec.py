"""Event type registry and JSON codec.

Every event that crosses a service boundary is registered once with a
versioned type tag (``Ordering.OrderCreated.v1``) and the topic it travels on.
The tag is carried in the ``type`` header so consumers never guess a payload's
shape from the topic name alone.
"""

import json

from protean.exceptions import ConfigurationError, ValidationError

from messaging.exceptions import UndecodableMessage


class EventRegistry:
    def __init__(self):
        self._classes = {}  # type tag -> event class
        self._tags = {}  # event class -> type tag
        self._topics = {}  # type tag -> topic

    def register(self, event_cls, type_tag: str, topic: str):
        """Register ``event_cls`` under ``type_tag``, published on ``topic``."""
        known = self._classes.get(type_tag)
        if known is not None and known is not event_cls:
            raise ConfigurationError(f"Type tag `{type_tag}` is already bound to {known.__name__}")
        if event_cls in self._tags and self._tags[event_cls] != type_tag:
            raise ConfigurationError(f"{event_cls.__name__} is already registered as `{self._tags[event_cls]}`")

        self._classes[type_tag] = event_cls
        self._tags[event_cls] = type_tag
        self._topics[type_tag] = topic
        return event_cls

    def register_with(self, domain) -> None:
        """Make every registered contract deserializable inside ``domain``."""
        for type_tag, event_cls in self._classes.items():
            domain.register_external_event(event_cls, type_tag)

    @property
    def type_tags(self) -> list[str]:
        return list(self._classes)

    def tag_for(self, event) -> str:
        event_cls = event if isinstance(event, type) else type(event)
        try:
            return self._tags[event_cls]
        except KeyError:
            raise ConfigurationError(f"{event_cls.__name__} is not a registered event contract") from None

    def topic_for(self, event) -> str:
        return self._topics[self.tag_for(event)]

    def class_for(self, type_tag: str):
        try:
            return self._classes[type_tag]
        except KeyError:
            raise UndecodableMessage(f"Unknown event type `{type_tag}`", type_tag=type_tag) from None

    def tags_for_topic(self, topic: str) -> list[str]:
        return [tag for tag, registered_topic in self._topics.items() if registered_topic == topic]

    def encode(self, event) -> str:
        """Serialize an event's declared fields to a JSON document."""
        data = {key: value for key, value in event.to_dict().items() if not key.startswith("_")}
        return json.dumps(data, default=str, sort_keys=True)

    def decode(self, type_tag: str | None, value: str):
        """Rebuild an event from its type tag and JSON payload.

        Raises ``UndecodableMessage`` when the tag is unknown, the payload is
        not a JSON object, or it does not satisfy the event schema.
        """
        if not type_tag:
            raise UndecodableMessage("Message carries no type header")

        event_cls = self.class_for(type_tag)
        try:
            data = json.loads(value)
        except (TypeError, ValueError) as exc:
            raise UndecodableMessage(f"Payload of `{type_tag}` is not valid JSON: {exc}", type_tag=type_tag) from exc
        if not isinstance(data, dict):
            raise UndecodableMessage(f"Payload of `{type_tag}` is not a JSON object", type_tag=type_tag)

        try:
            return event_cls(**data)
        except ValidationError as exc:
            raise UndecodableMessage(
                f"Payload of `{type_tag}` violates its schema: {exc.messages}", type_tag=type_tag
            ) from exc

    def validate(self, topics) -> None:
        """Ensure every topic in ``topics`` has at least one registered contract."""
        missing = sorted(topic for topic in topics if not self.tags_for_topic(topic))
        if missing:
            raise ConfigurationError(f"No event contract registered for topics: {', '.join(missing)}")
