from __future__ import annotations

import random
from dataclasses import dataclass, field

from homelink.analytics.aggregator import AnalyticsAggregator
from homelink.auth.session import AuthSession
from homelink.core.models import Device, DeviceStatus, DeviceType
from homelink.gateway.policy import FaultPolicy, LatencyPolicy
from homelink.gateway.remote import RemoteDeviceState, RemoteGateway
from homelink.notify.dispatcher import Notification, NotificationDispatcher
from homelink.registry.devices import DeviceRegistry


class SleepRecorder:
    """Stand-in for ``time.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@dataclass
class FakeHome:
    session: AuthSession
    gateway: RemoteGateway
    registry: DeviceRegistry
    analytics: AnalyticsAggregator
    notifications: NotificationDispatcher
    sleeps: SleepRecorder
    delivered: list[Notification] = field(default_factory=list)


def make_device(
    name: str,
    device_type: DeviceType = DeviceType.CAMERA,
    status: DeviceStatus = DeviceStatus.ON,
    battery: int | None = 80,
    shared: bool = False,
) -> Device:
    return Device(name=name, device_type=device_type, status=status, battery=battery, shared=shared)


def make_home(
    devices: list[Device] | None = None,
    states: dict[str, RemoteDeviceState] | None = None,
    faults: FaultPolicy | None = None,
    sign_in: bool = True,
    seed: int = 7,
) -> FakeHome:
    rng = random.Random(seed)
    sleeps = SleepRecorder()
    latency = LatencyPolicy(sleep=sleeps)
    delivered: list[Notification] = []
    notifications = NotificationDispatcher(sinks=[delivered.append], cooldown_seconds=0.0)
    analytics = AnalyticsAggregator()
    session = AuthSession(latency=latency, faults=FaultPolicy.never())
    gateway = RemoteGateway(
        session,
        latency=latency,
        faults=faults or FaultPolicy.never(),
        devices=[],
        rng=rng,
        notify=notifications.send,
    )
    for device in devices or []:
        gateway.seed_device(device, (states or {}).get(device.id, RemoteDeviceState()))
    registry = DeviceRegistry(gateway, session, analytics=analytics, notifications=notifications, rng=rng)
    if sign_in:
        session.sign_in()
    return FakeHome(
        session=session,
        gateway=gateway,
        registry=registry,
        analytics=analytics,
        notifications=notifications,
        sleeps=sleeps,
        delivered=delivered,
    )
