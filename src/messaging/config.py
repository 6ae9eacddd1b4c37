"""Runtime settings for the messaging core, read from the environment."""

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, default))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, default))


@dataclass(frozen=True)
class MessagingSettings:
    relay_interval_ms: int = 1000
    relay_batch_size: int = 100
    relay_lease_seconds: float = 5.0

    retry_initial_delay: float = 1.0
    retry_multiplier: float = 2.0
    retry_max_delay: float = 10.0
    retry_attempts: int = 3

    consumer_workers: int = 4
    consumer_batch_size: int = 50
    consumer_interval_ms: int = 500

    broker_adapter: str = "memory"
    broker_partitions: int = 3
    redis_url: str = "redis://localhost:6379/0"

    order_expiration_minutes: int = 10
    order_expiry_scan_seconds: int = 60

    @classmethod
    def from_env(cls) -> "MessagingSettings":
        """Build settings from environment variables, falling back to defaults."""
        return cls(
            relay_interval_ms=_env_int("RELAY_INTERVAL_MS", cls.relay_interval_ms),
            relay_batch_size=_env_int("RELAY_BATCH_SIZE", cls.relay_batch_size),
            relay_lease_seconds=_env_float("RELAY_LEASE_SECONDS", cls.relay_lease_seconds),
            retry_initial_delay=_env_float("RETRY_INITIAL_DELAY", cls.retry_initial_delay),
            retry_multiplier=_env_float("RETRY_MULTIPLIER", cls.retry_multiplier),
            retry_max_delay=_env_float("RETRY_MAX_DELAY", cls.retry_max_delay),
            retry_attempts=_env_int("RETRY_ATTEMPTS", cls.retry_attempts),
            consumer_workers=_env_int("CONSUMER_WORKERS", cls.consumer_workers),
            consumer_batch_size=_env_int("CONSUMER_BATCH_SIZE", cls.consumer_batch_size),
            consumer_interval_ms=_env_int("CONSUMER_INTERVAL_MS", cls.consumer_interval_ms),
            broker_adapter=os.getenv("BROKER_ADAPTER", cls.broker_adapter),
            broker_partitions=_env_int("BROKER_PARTITIONS", cls.broker_partitions),
            redis_url=os.getenv("REDIS_URL", cls.redis_url),
            order_expiration_minutes=_env_int("ORDER_EXPIRATION_MINUTES", cls.order_expiration_minutes),
            order_expiry_scan_seconds=_env_int("ORDER_EXPIRY_SCAN_SECONDS", cls.order_expiry_scan_seconds),
        )
