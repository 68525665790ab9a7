from __future__ import annotations

import threading
from collections.abc import Callable
from enum import Enum

from homelink.core.errors import ErrorKind, HomeLinkError
from homelink.gateway.policy import FaultPolicy, LatencyPolicy
from homelink.util.logging import get_logger
from homelink.util.security import issue_token

logger = get_logger(__name__)


class SessionState(str, Enum):
    SIGNED_OUT = "signed_out"
    AUTHENTICATING = "authenticating"
    SIGNED_IN = "signed_in"
    REFRESHING = "refreshing"


class AuthSession:
    """Access/refresh token holder that gates every remote call.

    ``REFRESHING`` counts as signed in: the previous access token stays valid
    until the new one is issued.
    """

    def __init__(self, latency: LatencyPolicy | None = None, faults: FaultPolicy | None = None) -> None:
        self.latency = latency or LatencyPolicy()
        self.faults = faults or FaultPolicy.never()
        self._lock = threading.RLock()
        self._state = SessionState.SIGNED_OUT
        self._access_token: str | None = None
        self._refresh_token: str | None = None
        self._generation = 0
        self._sign_in_listeners: list[Callable[[], None]] = []
        self._sign_out_listeners: list[Callable[[], None]] = []

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def is_signed_in(self) -> bool:
        with self._lock:
            return self._state in {SessionState.SIGNED_IN, SessionState.REFRESHING} and self._access_token is not None

    @property
    def access_token(self) -> str | None:
        with self._lock:
            return self._access_token

    @property
    def refresh_token(self) -> str | None:
        with self._lock:
            return self._refresh_token

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def require_signed_in(self) -> None:
        if not self.is_signed_in:
            raise HomeLinkError(ErrorKind.NOT_AUTHENTICATED)

    def add_sign_in_listener(self, listener: Callable[[], None]) -> None:
        self._sign_in_listeners.append(listener)

    def add_sign_out_listener(self, listener: Callable[[], None]) -> None:
        self._sign_out_listeners.append(listener)

    def sign_in(self, callback: Callable[[bool], None] | None = None) -> bool:
        """Authenticate from ``SIGNED_OUT``.

        Without a callback a failure raises ``authentication_failed``. With a
        callback the outcome is reported through it and nothing is raised.
        """
        try:
            self._authenticate()
        except HomeLinkError:
            if callback is None:
                raise
            callback(False)
            return False
        if callback is not None:
            callback(True)
        return True

    def _authenticate(self) -> None:
        with self._lock:
            if self._state != SessionState.SIGNED_OUT:
                msg = f"sign-in is not valid while {self._state.value}"
                raise HomeLinkError(ErrorKind.OPERATION_FAILED, msg)
            self._state = SessionState.AUTHENTICATING
            generation = self._generation

        logger.info("authenticating account")
        self.latency.wait("sign_in")
        failed = self.faults.should_fail("sign_in")

        with self._lock:
            if self._generation != generation or self._state != SessionState.AUTHENTICATING:
                logger.info("sign-in superseded by sign-out; discarding tokens")
                raise HomeLinkError(ErrorKind.AUTHENTICATION_FAILED, "Sign-in was cancelled")
            if failed:
                self._state = SessionState.SIGNED_OUT
                logger.warning("authentication failed")
                raise HomeLinkError(ErrorKind.AUTHENTICATION_FAILED)
            self._access_token = issue_token("at")
            self._refresh_token = issue_token("rt")
            self._state = SessionState.SIGNED_IN

        logger.info("signed in")
        self._notify(self._sign_in_listeners)

    def refresh(self) -> None:
        with self._lock:
            if self._state != SessionState.SIGNED_IN or self._refresh_token is None:
                raise HomeLinkError(ErrorKind.NOT_AUTHENTICATED)
            self._state = SessionState.REFRESHING
            generation = self._generation

        self.latency.wait("refresh")
        failed = self.faults.should_fail("refresh")

        with self._lock:
            if self._generation != generation or self._state != SessionState.REFRESHING:
                raise HomeLinkError(ErrorKind.NOT_AUTHENTICATED)
            if not failed:
                self._access_token = issue_token("at")
                self._state = SessionState.SIGNED_IN
                logger.info("access token refreshed")
                return

        logger.warning("token refresh failed; signing out")
        self.sign_out()
        raise HomeLinkError(ErrorKind.AUTHENTICATION_FAILED, "Session expired")

    def sign_out(self) -> None:
        with self._lock:
            was_active = self._state != SessionState.SIGNED_OUT
            self._access_token = None
            self._refresh_token = None
            self._state = SessionState.SIGNED_OUT
            self._generation += 1
        if was_active:
            logger.info("signed out")
        self._notify(self._sign_out_listeners)

    @staticmethod
    def _notify(listeners: list[Callable[[], None]]) -> None:
        for listener in list(listeners):
            try:
                listener()
            except Exception:
                logger.exception("session listener failed")
