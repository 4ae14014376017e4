"""Client configuration."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class TransportConfig:
    """Transport-related settings."""

    timeout_connect_seconds: float = 5.0
    timeout_read_seconds: float = 60.0
    timeout_write_seconds: float = 60.0
    timeout_pool_seconds: float = 5.0

    def validate(self) -> None:
        for field_name in (
            "timeout_connect_seconds",
            "timeout_read_seconds",
            "timeout_write_seconds",
            "timeout_pool_seconds",
        ):
            if getattr(self, field_name) <= 0:
                raise ValueError(f"transport.{field_name} must be > 0")


@dataclass(slots=True, frozen=True)
class StreamConfig:
    """Record streaming settings."""

    channel_capacity: int = 1
    send_timeout_seconds: float = 300.0
    poll_interval_seconds: float = 0.1

    def validate(self) -> None:
        if not isinstance(self.channel_capacity, int) or self.channel_capacity < 1:
            raise ValueError("stream.channel_capacity must be >= 1")
        if self.send_timeout_seconds <= 0:
            raise ValueError("stream.send_timeout_seconds must be > 0")
        if self.poll_interval_seconds <= 0:
            raise ValueError("stream.poll_interval_seconds must be > 0")


@dataclass(slots=True, frozen=True)
class QuickBaseClientConfig:
    """Runtime configuration for QuickBase client."""

    base_url: str = "https://www.quickbase.com"
    user_agent: str = "quickbase-api-client/0.1.0"

    transport: TransportConfig = field(default_factory=TransportConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)

    def validate(self) -> None:
        if not self.base_url:
            raise ValueError("base_url must not be empty")
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        self.transport.validate()
        self.stream.validate()


__all__ = [
    "TransportConfig",
    "StreamConfig",
    "QuickBaseClientConfig",
]
