import pytest

from messaging.config import MessagingSettings
from messaging.retry import RetryChain


class TestRetryChain:
    def test_default_chain_has_three_increasing_delays(self):
        chain = RetryChain.exponential()
        assert chain.delays == (1.0, 2.0, 4.0)
        assert chain.retries == 3
        assert chain.max_attempts == 4

    def test_delays_are_capped_at_max_delay(self):
        chain = RetryChain.exponential(initial=1.0, multiplier=3.0, max_delay=10.0, retries=4)
        assert chain.delays == (1.0, 3.0, 9.0, 10.0)

    def test_chain_from_settings(self):
        settings = MessagingSettings(retry_initial_delay=0.5, retry_multiplier=2.0, retry_max_delay=10.0, retry_attempts=2)
        assert RetryChain.from_settings(settings).delays == (0.5, 1.0)

    def test_channel_names(self):
        chain = RetryChain.exponential()
        assert chain.retry_topics("order.created") == [
            "order.created-retry-0",
            "order.created-retry-1",
            "order.created-retry-2",
        ]
        assert chain.dead_letter_topic("order.created") == "order.created-dlt"

    def test_rejects_non_positive_delays(self):
        with pytest.raises(ValueError):
            RetryChain([1.0, 0])

    def test_rejects_decreasing_delays(self):
        with pytest.raises(ValueError):
            RetryChain([2.0, 1.0])


class TestMessagingSettings:
    def test_defaults(self, monkeypatch):
        for name in ("RELAY_INTERVAL_MS", "RETRY_ATTEMPTS", "ORDER_EXPIRATION_MINUTES", "BROKER_ADAPTER"):
            monkeypatch.delenv(name, raising=False)

        settings = MessagingSettings.from_env()
        assert settings.relay_interval_ms == 1000
        assert settings.retry_attempts == 3
        assert settings.order_expiration_minutes == 10
        assert settings.broker_adapter == "memory"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("RELAY_BATCH_SIZE", "25")
        monkeypatch.setenv("RETRY_MAX_DELAY", "30")
        monkeypatch.setenv("BROKER_ADAPTER", "redis")

        settings = MessagingSettings.from_env()
        assert settings.relay_batch_size == 25
        assert settings.retry_max_delay == 30.0
        assert settings.broker_adapter == "redis"
