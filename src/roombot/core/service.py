"""
Lifecycle of RoomBot's long-running parts.

The chat gateway, the scheduler and the slash-command server are
services: started in dependency order at boot, stopped in reverse on
shutdown. The agent blocks on the manager until a signal arrives.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Iterable

logger = logging.getLogger(__name__)


class ServiceState(Enum):
    """Service lifecycle states."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class ServiceStatus:
    """Point-in-time view of one service."""
    name: str
    state: ServiceState
    error: Optional[str] = None
    uptime_seconds: float = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "state": self.state.value,
            "error": self.error,
            "uptime_seconds": round(self.uptime_seconds, 1),
        }


class Service(ABC):
    """A component with an async start/stop lifecycle."""

    def __init__(self, name: str):
        self.name = name
        self._state = ServiceState.STOPPED
        self._error: Optional[str] = None
        self._started_at: Optional[float] = None

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ServiceState.RUNNING

    @abstractmethod
    async def start(self) -> None:
        """Start the service."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop the service."""
        pass

    def get_status(self) -> ServiceStatus:
        uptime = 0.0
        if self._started_at is not None and self.is_running:
            uptime = time.monotonic() - self._started_at
        return ServiceStatus(self.name, self._state, self._error, uptime)

    def _set_state(self, state: ServiceState, error: Optional[str] = None) -> None:
        self._state = state
        self._error = error
        if state == ServiceState.RUNNING:
            self._started_at = time.monotonic()
        elif state == ServiceState.STOPPED:
            self._started_at = None


class ServiceManager:
    """
    Starts and stops registered services.

    A service registered with dependencies is placed after all of them.
    Only services that actually started are stopped again, newest first.
    """

    def __init__(self):
        self._services: Dict[str, Service] = {}
        self._order: List[str] = []
        self._started: List[Service] = []
        self._shutdown = asyncio.Event()

    def register(self, service: Service, dependencies: Optional[Iterable[str]] = None) -> None:
        """
        Add a service.

        Raises:
            ValueError: If the name is taken or a dependency is unknown.
        """
        if service.name in self._services:
            raise ValueError(f"Service '{service.name}' already registered")

        deps = list(dependencies or [])
        unknown = [d for d in deps if d not in self._services]
        if unknown:
            raise ValueError(f"Unknown dependencies for '{service.name}': {', '.join(unknown)}")

        position = max((self._order.index(d) + 1 for d in deps), default=len(self._order))
        self._order.insert(position, service.name)
        self._services[service.name] = service
        logger.info(f"Registered service: {service.name}")

    def get_service(self, name: str) -> Optional[Service]:
        return self._services.get(name)

    @property
    def start_order(self) -> List[str]:
        return list(self._order)

    @property
    def is_running(self) -> bool:
        return bool(self._started)

    async def start_all(self) -> bool:
        """
        Start every service in order.

        Returns:
            False if a service failed to start; whatever had started is
            stopped again.
        """
        self._shutdown.clear()

        for name in self._order:
            service = self._services[name]
            logger.info(f"Starting service: {name}")
            service._set_state(ServiceState.STARTING)
            try:
                await service.start()
            except Exception as e:
                logger.error(f"Failed to start service '{name}': {e}")
                service._set_state(ServiceState.ERROR, str(e))
                await self.stop_all()
                return False
            service._set_state(ServiceState.RUNNING)
            self._started.append(service)

        logger.info(f"Started {len(self._started)} services")
        return True

    async def stop_all(self) -> None:
        """Stop started services in reverse start order."""
        self._shutdown.set()

        while self._started:
            service = self._started.pop()
            logger.info(f"Stopping service: {service.name}")
            service._set_state(ServiceState.STOPPING)
            try:
                await service.stop()
            except Exception as e:
                logger.error(f"Error stopping service '{service.name}': {e}")
                service._set_state(ServiceState.ERROR, str(e))
            else:
                service._set_state(ServiceState.STOPPED)

    def get_status(self) -> Dict[str, ServiceStatus]:
        return {name: self._services[name].get_status() for name in self._order}

    async def wait_for_shutdown(self) -> None:
        await self._shutdown.wait()

    def request_shutdown(self) -> None:
        self._shutdown.set()
