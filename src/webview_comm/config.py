"""Configuration surface for a CommunicationManager endpoint."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from webview_comm.const import (
    DEFAULT_ACK_TIMEOUT_MS,
    DEFAULT_DEDUP_CACHE_SIZE,
    DEFAULT_HEARTBEAT_INTERVAL_MS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MISSED_PONG_THRESHOLD,
    DEFAULT_RESPONSE_TIMEOUT_MS,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_SYNC_INTERVAL_MS,
    ENV_PREFIX,
)
from webview_comm.protocol.message_types import Command

__all__ = ["CommunicationConfig"]


class CommunicationConfig(BaseModel):
    """Timeouts, retry budget and timer cadences for one endpoint.

    Durations are milliseconds, as in the webview's configuration. Both
    snake_case names and the camelCase spelling (``ackTimeoutMs``) are accepted.

    Attributes:
        ack_timeout_ms: Wait for an ACK before the first retransmission
        response_timeout_ms: Wait for a RESPONSE, measured from the first send
        max_retries: Retransmissions sent before giving up with DeliveryFailed
        retry_delay_ms: Fixed wait for an ACK after each retransmission
        heartbeat_interval_ms: PING cadence
        sync_interval_ms: Full state resynchronization cadence
        missed_pong_threshold: Consecutive missed PONGs before health is degraded
        sync_command: Command sent by the resync timer (None disables it)
        validate_payloads: Validate incoming payloads of known commands
        dedup_cache_size: Recently handled request ids remembered for duplicate detection
        endpoint_name: Label for logs and metrics

    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )

    ack_timeout_ms: int = Field(default=DEFAULT_ACK_TIMEOUT_MS, gt=0)
    response_timeout_ms: int = Field(default=DEFAULT_RESPONSE_TIMEOUT_MS, gt=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    retry_delay_ms: int = Field(default=DEFAULT_RETRY_DELAY_MS, gt=0)
    heartbeat_interval_ms: int = Field(default=DEFAULT_HEARTBEAT_INTERVAL_MS, gt=0)
    sync_interval_ms: int = Field(default=DEFAULT_SYNC_INTERVAL_MS, gt=0)
    missed_pong_threshold: int = Field(default=DEFAULT_MISSED_PONG_THRESHOLD, gt=0)
    sync_command: str | None = Command.REQUEST_SYNC.value
    validate_payloads: bool = True
    dedup_cache_size: int = Field(default=DEFAULT_DEDUP_CACHE_SIZE, ge=0)
    endpoint_name: str = "endpoint"

    @property
    def ack_timeout_seconds(self) -> float:
        return self.ack_timeout_ms / 1000.0

    @property
    def response_timeout_seconds(self) -> float:
        return self.response_timeout_ms / 1000.0

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000.0

    @property
    def heartbeat_interval_seconds(self) -> float:
        return self.heartbeat_interval_ms / 1000.0

    @property
    def sync_interval_seconds(self) -> float:
        return self.sync_interval_ms / 1000.0

    @property
    def ack_phase_budget_ms(self) -> int:
        """Worst-case time from first send until DeliveryFailed."""
        return self.ack_timeout_ms + self.max_retries * self.retry_delay_ms

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: object,
    ) -> CommunicationConfig:
        """Build a config from ``WEBVIEW_COMM_<FIELD>`` environment variables.

        ``WEBVIEW_COMM_SYNC_COMMAND`` set to an empty string or "none" disables
        the resync timer. Keyword overrides win over the environment.

        Raises:
            pydantic.ValidationError: If a value cannot be parsed or is out of range

        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            if name == "sync_command" and raw.strip().casefold() in ("", "none", "null"):
                values[name] = None
            else:
                values[name] = raw
        values.update(overrides)
        return cls.model_validate(values)

    def __repr__(self) -> str:
        return (
            f"CommunicationConfig(endpoint={self.endpoint_name!r}, "
            f"ack={self.ack_timeout_ms}ms, response={self.response_timeout_ms}ms, "
            f"retries={self.max_retries}x{self.retry_delay_ms}ms, "
            f"heartbeat={self.heartbeat_interval_ms}ms, sync={self.sync_interval_ms}ms)"
        )
