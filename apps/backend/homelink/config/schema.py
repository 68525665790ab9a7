from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from .defaults import (
    APP_VERSION,
    BACKUP_VERSION,
    DEFAULT_ALERT_INJECTION_PROBABILITY,
    DEFAULT_BACKUP_FILE,
    DEFAULT_CRITICAL_BATTERY_THRESHOLD,
    DEFAULT_FAULT_RATES,
    DEFAULT_GEOFENCE_DETECTION_SECONDS,
    DEFAULT_GEOFENCE_TRANSITION_PROBABILITY,
    DEFAULT_HEALTHY_BATTERY_THRESHOLD,
    DEFAULT_LATENCY_SECONDS,
    DEFAULT_LOW_BATTERY_THRESHOLD,
    DEFAULT_MAX_ANALYTICS_EVENTS,
    DEFAULT_MAX_RECENT_ALERTS,
    DEFAULT_MAX_REMOTE_BACKUPS,
    DEFAULT_MAX_REQUESTS_PER_MINUTE,
    DEFAULT_NETWORK_CHECK_SECONDS,
    DEFAULT_NETWORK_ONLINE_PROBABILITY,
    DEFAULT_NOTIFICATION_COOLDOWN_SECONDS,
    DEFAULT_NOTIFICATION_HISTORY,
    DEFAULT_PERIODIC_TASK_SECONDS,
    DEFAULT_STALE_AFTER_HOURS,
    DEFAULT_STATUS_REFRESH_SECONDS,
)


def _probability(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


class PollingConfig(BaseModel):
    network_check_seconds: float = DEFAULT_NETWORK_CHECK_SECONDS
    status_refresh_seconds: float = DEFAULT_STATUS_REFRESH_SECONDS
    periodic_task_seconds: float = DEFAULT_PERIODIC_TASK_SECONDS
    geofence_detection_seconds: float = DEFAULT_GEOFENCE_DETECTION_SECONDS
    network_online_probability: float = DEFAULT_NETWORK_ONLINE_PROBABILITY
    alert_injection_probability: float = DEFAULT_ALERT_INJECTION_PROBABILITY
    geofence_transition_probability: float = DEFAULT_GEOFENCE_TRANSITION_PROBABILITY

    @field_validator("network_check_seconds", "status_refresh_seconds", "periodic_task_seconds", "geofence_detection_seconds")
    @classmethod
    def positive_interval(cls, value: float) -> float:
        if value <= 0:
            msg = "polling intervals must be positive"
            raise ValueError(msg)
        return value

    @field_validator("network_online_probability", "alert_injection_probability", "geofence_transition_probability")
    @classmethod
    def clamp_probability(cls, value: float) -> float:
        return _probability(value)


class GatewayConfig(BaseModel):
    latency_scale: float = 1.0
    latency_seconds: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_LATENCY_SECONDS))
    fault_rates: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_FAULT_RATES))
    auth_failure_rate: float = 0.0
    max_requests_per_minute: int = DEFAULT_MAX_REQUESTS_PER_MINUTE
    max_remote_backups: int = DEFAULT_MAX_REMOTE_BACKUPS
    seed: int | None = None

    @field_validator("latency_scale")
    @classmethod
    def non_negative_scale(cls, value: float) -> float:
        return max(0.0, value)

    @field_validator("fault_rates")
    @classmethod
    def clamp_fault_rates(cls, value: dict[str, float]) -> dict[str, float]:
        return {key: _probability(rate) for key, rate in value.items()}

    @field_validator("auth_failure_rate")
    @classmethod
    def clamp_auth_failure(cls, value: float) -> float:
        return _probability(value)

    @field_validator("max_requests_per_minute", "max_remote_backups")
    @classmethod
    def at_least_one(cls, value: int) -> int:
        return max(1, value)


class ThresholdConfig(BaseModel):
    max_recent_alerts: int = DEFAULT_MAX_RECENT_ALERTS
    low_battery: int = DEFAULT_LOW_BATTERY_THRESHOLD
    critical_battery: int = DEFAULT_CRITICAL_BATTERY_THRESHOLD
    healthy_battery: int = DEFAULT_HEALTHY_BATTERY_THRESHOLD
    stale_after_hours: int = DEFAULT_STALE_AFTER_HOURS


class NotificationConfig(BaseModel):
    enabled: bool = True
    cooldown_seconds: float = DEFAULT_NOTIFICATION_COOLDOWN_SECONDS
    history_size: int = DEFAULT_NOTIFICATION_HISTORY
    muted_categories: list[str] = Field(default_factory=list)


class CoreSettings(BaseModel):
    version: str = APP_VERSION
    backup_version: str = BACKUP_VERSION
    data_dir: str
    backup_file: str = DEFAULT_BACKUP_FILE
    max_analytics_events: int = DEFAULT_MAX_ANALYTICS_EVENTS
    polling: PollingConfig = Field(default_factory=PollingConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    @field_validator("data_dir")
    @classmethod
    def data_dir_not_empty(cls, value: str) -> str:
        if not value.strip():
            msg = "data_dir cannot be empty"
            raise ValueError(msg)
        return value
