from __future__ import annotations

import math
import random
import threading

from homelink.analytics.aggregator import AnalyticsAggregator
from homelink.analytics.events import GeofenceEvent
from homelink.config.schema import PollingConfig
from homelink.core.errors import HomeLinkError
from homelink.core.models import CAMERA_TYPES, Coordinate, DeviceType, Geofence, GeofenceAction, GeofenceActionKind
from homelink.gateway.remote import RemoteGateway
from homelink.notify.dispatcher import NotificationDispatcher
from homelink.pipeline.polling import RecurringTick
from homelink.registry.devices import DeviceRegistry
from homelink.util.logging import get_logger

logger = get_logger(__name__)

EARTH_RADIUS_METERS = 6_371_000.0


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))


class GeofenceMonitor:
    """Tracks inside/outside state per geofence and runs entry actions.

    A transition is only acted on when it changes the recorded state, so a
    repeated entry without an exit in between is a no-op.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        gateway: RemoteGateway,
        notifications: NotificationDispatcher | None = None,
        analytics: AnalyticsAggregator | None = None,
        config: PollingConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.registry = registry
        self.gateway = gateway
        self.notifications = notifications or registry.notifications
        self.analytics = analytics or registry.analytics
        self.config = config or PollingConfig()
        self.rng = rng or random.Random()
        self._lock = threading.RLock()
        self._inside: dict[str, bool] = {}
        self.tick = RecurringTick("geofence", self.config.geofence_detection_seconds, self.detect)
        registry.subscribe(self._on_registry_change)

    def _on_registry_change(self, change: str) -> None:
        if change in ("restored", "cleared"):
            self.reset()

    def start(self) -> None:
        if not self.registry.session.is_signed_in:
            return
        self.tick.start()
        logger.info("geofence monitoring started")

    def stop(self, timeout: float = 3.0) -> None:
        self.tick.stop(timeout=timeout)
        if self.tick.is_running():
            logger.warning("geofence thread did not stop before timeout")
        logger.info("geofence monitoring stopped")

    def is_running(self) -> bool:
        return self.tick.is_running()

    def reset(self) -> None:
        with self._lock:
            self._inside.clear()

    def is_inside(self, geofence_id: str) -> bool:
        with self._lock:
            return self._inside.get(geofence_id, False)

    # CRUD

    def create(self, geofence: Geofence) -> Geofence:
        stored = self.gateway.create_geofence(geofence)
        self.registry.put_geofence(stored)
        with self._lock:
            self._inside[stored.id] = False
        logger.info("geofence created: %s", stored.id)
        return stored

    def update(self, geofence: Geofence) -> Geofence:
        if geofence.id in self.gateway.geofence_ids():
            stored = self.gateway.update_geofence(geofence)
        else:
            stored = self.gateway.create_geofence(geofence)
        self.registry.put_geofence(stored)
        logger.info("geofence updated: %s", stored.id)
        return stored

    def remove(self, geofence_id: str) -> None:
        if geofence_id in self.gateway.geofence_ids():
            self.gateway.delete_geofence(geofence_id)
        else:
            self.registry.session.require_signed_in()
            logger.info("geofence %s not held remotely; removing locally", geofence_id)
        self.registry.drop_geofence(geofence_id)
        with self._lock:
            self._inside.pop(geofence_id, None)
        logger.info("geofence removed: %s", geofence_id)

    # Detection

    def handle_event(self, geofence: Geofence, entered: bool) -> bool:
        if not self.registry.session.is_signed_in:
            return False
        with self._lock:
            if self._inside.get(geofence.id, False) == entered:
                return False
            self._inside[geofence.id] = entered

        logger.info("geofence %s: %s", "entered" if entered else "exited", geofence.id)
        self.analytics.record(GeofenceEvent(geofence_id=geofence.id, entered=entered))
        verb = "Arrived at" if entered else "Left"
        self.notifications.send(f"{verb} {geofence.name}", f"Geofence {geofence.name} was {'entered' if entered else 'exited'}", category="geofence")
        if entered:
            for action in geofence.actions:
                self._run_action(geofence, action)
        return True

    def _run_action(self, geofence: Geofence, action: GeofenceAction) -> None:
        if action.kind == GeofenceActionKind.SEND_NOTIFICATION:
            self.notifications.send(
                action.title or geofence.name,
                action.body or f"Geofence action for {geofence.name}",
                category="geofence_action",
            )
            return

        targets = self._action_targets(action)
        if not targets:
            logger.info("geofence action %s for %s has no eligible devices", action.kind.value, geofence.id)
        for device_id in targets:
            try:
                if action.kind == GeofenceActionKind.ENABLE_MOTION_DETECTION:
                    self.registry.ensure_motion_detection(device_id, True)
                elif action.kind == GeofenceActionKind.DISABLE_MOTION_DETECTION:
                    self.registry.ensure_motion_detection(device_id, False)
                elif action.kind == GeofenceActionKind.CAPTURE_SNAPSHOT:
                    self.registry.capture_snapshot(device_id)
            except HomeLinkError as exc:
                logger.warning(
                    "geofence action %s failed for %s on %s: %s",
                    action.kind.value,
                    geofence.id,
                    device_id,
                    exc.kind.value,
                )

    def _action_targets(self, action: GeofenceAction) -> list[str]:
        if action.device_ids:
            return list(action.device_ids)
        if action.kind == GeofenceActionKind.CAPTURE_SNAPSHOT:
            return [device.id for device in self.registry.devices if device.device_type in CAMERA_TYPES]
        return [device.id for device in self.registry.devices if device.device_type != DeviceType.CHIME]

    def detect(self) -> list[tuple[str, bool]]:
        """Simulated detection pass: each enabled geofence flips with a small probability."""
        transitions: list[tuple[str, bool]] = []
        for geofence in self.registry.geofences:
            if not geofence.enabled:
                continue
            if self.rng.random() >= self.config.geofence_transition_probability:
                continue
            entered = not self.is_inside(geofence.id)
            if self.handle_event(geofence, entered):
                transitions.append((geofence.id, entered))
        return transitions

    def update_location(self, latitude: float, longitude: float) -> list[tuple[str, bool]]:
        position = Coordinate(latitude=latitude, longitude=longitude)
        transitions: list[tuple[str, bool]] = []
        for geofence in self.registry.geofences:
            if not geofence.enabled:
                continue
            entered = distance_meters(position, geofence.center) <= geofence.radius
            if self.handle_event(geofence, entered):
                transitions.append((geofence.id, entered))
        return transitions

    def check_status(self) -> dict[str, bool]:
        geofences = self.registry.geofences
        known = {geofence.id for geofence in geofences}
        with self._lock:
            for geofence_id in [gid for gid in self._inside if gid not in known]:
                del self._inside[geofence_id]
            status = {geofence.id: self._inside.get(geofence.id, False) for geofence in geofences if geofence.enabled}
        logger.debug("geofence status: %s active, %s inside", len(status), sum(status.values()))
        return status
