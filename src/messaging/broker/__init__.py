"""Broker adapters: pluggable message transport."""

_broker_instance = None


def get_broker():
    """Return the configured broker adapter (singleton).

    Uses the in-memory broker by default. In production, set
    BROKER_ADAPTER=redis and REDIS_URL.
    """
    global _broker_instance
    if _broker_instance is None:
        from messaging.config import MessagingSettings

        settings = MessagingSettings.from_env()
        if settings.broker_adapter == "memory":
            from messaging.broker.memory_adapter import InMemoryBroker

            _broker_instance = InMemoryBroker(partitions=settings.broker_partitions)
        elif settings.broker_adapter == "redis":
            from messaging.broker.redis_adapter import RedisBroker

            _broker_instance = RedisBroker(settings.redis_url, partitions=settings.broker_partitions)
        else:
            raise ValueError(f"Unknown broker adapter: {settings.broker_adapter}")
    return _broker_instance


def reset_broker():
    """Reset the broker singleton (useful for testing)."""
    global _broker_instance
    _broker_instance = None
