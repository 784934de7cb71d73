"""Connectivity state and time sources injected into the sync path."""
import logging
from datetime import datetime, UTC
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class ConnectivityProbe(Protocol):
    def is_online(self) -> bool:
        ...


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class ConnectivityMonitor:
    """Online/offline flag fed by the host platform's network callbacks."""

    def __init__(self, online: bool = True, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()
        self._online = online
        self.last_online_at: Optional[datetime] = self.clock.now() if online else None

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        if online != self._online:
            logger.info("Connectivity changed: %s", "online" if online else "offline")
        self._online = online
        if online:
            self.last_online_at = self.clock.now()
