from __future__ import annotations

import random
import threading
from collections.abc import Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from homelink.analytics.aggregator import AnalyticsAggregator
from homelink.analytics.events import AuthenticationEvent
from homelink.api import routes_alerts, routes_auth, routes_backup, routes_devices, routes_geofences, routes_health
from homelink.auth.session import AuthSession
from homelink.config.defaults import APP_VERSION, DEFAULT_LOG_LEVEL
from homelink.config.migrate import SettingsStore
from homelink.core.errors import HomeLinkError
from homelink.gateway.policy import FaultPolicy, LatencyPolicy, RateLimiter
from homelink.gateway.remote import RemoteGateway
from homelink.notify.dispatcher import NotificationDispatcher, NotificationSink
from homelink.pipeline.geofence import GeofenceMonitor
from homelink.pipeline.polling import PollingScheduler
from homelink.registry.devices import DeviceRegistry
from homelink.storage.backup import BackupManager
from homelink.util.logging import get_logger, setup_logging
from homelink.util.paths import ensure_data_tree

logger = get_logger(__name__)


@dataclass
class HomeLinkState:
    settings_store: SettingsStore
    log_level: str
    data_dir: Path
    session: AuthSession
    gateway: RemoteGateway
    analytics: AnalyticsAggregator
    notifications: NotificationDispatcher
    registry: DeviceRegistry
    geofences: GeofenceMonitor
    scheduler: PollingScheduler
    backups: BackupManager
    _shutdown_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _shutdown_complete: bool = field(default=False, init=False, repr=False)

    @classmethod
    def create(
        cls,
        data_dir: str | None = None,
        log_level: str = DEFAULT_LOG_LEVEL,
        latency: LatencyPolicy | None = None,
        faults: FaultPolicy | None = None,
        rng: random.Random | None = None,
        sinks: Iterable[NotificationSink] | None = None,
        **overrides: Any,
    ) -> "HomeLinkState":
        settings_store = SettingsStore(data_dir=data_dir)
        if overrides:
            settings_store.update(**overrides)
        settings = settings_store.settings

        data_path = Path(settings.data_dir)
        ensure_data_tree(data_path)
        setup_logging(log_level, data_path)

        rng = rng or random.Random(settings.gateway.seed)
        latency = latency or LatencyPolicy(seconds=settings.gateway.latency_seconds, scale=settings.gateway.latency_scale)
        faults = faults or FaultPolicy(rates=settings.gateway.fault_rates, rng=rng)
        auth_rate = settings.gateway.auth_failure_rate
        auth_faults = FaultPolicy(rates={"sign_in": auth_rate, "refresh": auth_rate}, rng=rng)

        notifications = NotificationDispatcher(
            sinks=sinks,
            cooldown_seconds=settings.notifications.cooldown_seconds,
            history_size=settings.notifications.history_size,
            muted_categories=settings.notifications.muted_categories,
            enabled=settings.notifications.enabled,
        )
        analytics = AnalyticsAggregator(max_events=settings.max_analytics_events)
        session = AuthSession(latency=latency, faults=auth_faults)
        gateway = RemoteGateway(
            session,
            latency=latency,
            faults=faults,
            rate_limiter=RateLimiter(max_requests=settings.gateway.max_requests_per_minute),
            rng=rng,
            max_backups=settings.gateway.max_remote_backups,
            notify=notifications.send,
        )
        registry = DeviceRegistry(
            gateway,
            session,
            analytics=analytics,
            notifications=notifications,
            thresholds=settings.thresholds,
            rng=rng,
        )
        geofences = GeofenceMonitor(registry, gateway, notifications, analytics, settings.polling, rng)
        scheduler = PollingScheduler(registry, settings.polling, notifications, geofences, rng)
        backups = BackupManager(
            registry,
            data_path,
            analytics=analytics,
            gateway=gateway,
            version=settings.backup_version,
            backup_file=settings.backup_file,
        )

        state = cls(
            settings_store=settings_store,
            log_level=log_level,
            data_dir=data_path,
            session=session,
            gateway=gateway,
            analytics=analytics,
            notifications=notifications,
            registry=registry,
            geofences=geofences,
            scheduler=scheduler,
            backups=backups,
        )
        session.add_sign_in_listener(state._on_sign_in)
        session.add_sign_out_listener(state._on_sign_out)
        return state

    def sign_in(self) -> bool:
        try:
            self.session.sign_in()
        except HomeLinkError:
            self.analytics.record(AuthenticationEvent(success=False))
            raise
        self.analytics.record(AuthenticationEvent(success=True))
        return True

    def sign_out(self) -> None:
        self.session.sign_out()

    def _on_sign_in(self) -> None:
        try:
            self.registry.load_devices()
            for geofence in self.gateway.list_geofences():
                self.registry.put_geofence(geofence)
        except HomeLinkError as exc:
            logger.warning("initial device load failed: %s", exc.kind.value)
        self.scheduler.start()
        self.geofences.start()

    def _on_sign_out(self) -> None:
        self.scheduler.stop()
        self.geofences.stop()
        self.geofences.reset()
        self.registry.clear()
        self.analytics.reset()
        self.notifications.reset()

    def shutdown(self) -> None:
        with self._shutdown_lock:
            if self._shutdown_complete:
                return
            self._shutdown_complete = True
        self.scheduler.stop()
        self.geofences.stop()
        logger.info("homelink core shut down")


def create_app(
    data_dir: str | None = None,
    log_level: str = DEFAULT_LOG_LEVEL,
    state: HomeLinkState | None = None,
) -> FastAPI:
    state = state or HomeLinkState.create(data_dir=data_dir, log_level=log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            app.state.homelink.shutdown()

    app = FastAPI(title="HomeLink", version=APP_VERSION, lifespan=lifespan)
    app.state.homelink = state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(routes_health.router, prefix="/api")
    app.include_router(routes_auth.router, prefix="/api")
    app.include_router(routes_devices.router, prefix="/api")
    app.include_router(routes_alerts.router, prefix="/api")
    app.include_router(routes_geofences.router, prefix="/api")
    app.include_router(routes_backup.router, prefix="/api")
    return app
