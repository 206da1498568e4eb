"""
Tests for roombot.core.service module.
"""

import pytest

from roombot.core.service import Service, ServiceManager, ServiceState


class RecordingService(Service):
    """Service that records lifecycle calls into a shared log."""

    def __init__(self, name, log, fail_on_start=False):
        super().__init__(name)
        self.log = log
        self.fail_on_start = fail_on_start

    async def start(self):
        if self.fail_on_start:
            raise RuntimeError(f"{self.name} cannot start")
        self.log.append(f"start:{self.name}")

    async def stop(self):
        self.log.append(f"stop:{self.name}")


class TestService:
    """Tests for Service base class."""

    def test_initial_state(self):
        service = RecordingService("svc", [])

        assert service.state == ServiceState.STOPPED
        assert service.is_running is False
        assert service.get_status().uptime_seconds == 0.0

    def test_running_state(self):
        service = RecordingService("svc", [])
        service._set_state(ServiceState.RUNNING)

        status = service.get_status()
        assert status.state == ServiceState.RUNNING
        assert status.error is None

    def test_status_to_dict(self):
        service = RecordingService("svc", [])
        service._set_state(ServiceState.ERROR, "boom")

        assert service.get_status().to_dict() == {
            "state": "error",
            "error": "boom",
            "uptime_seconds": 0.0,
        }


class TestServiceManager:
    """Tests for ServiceManager."""

    def test_duplicate_registration(self):
        manager = ServiceManager()
        manager.register(RecordingService("slack", []))

        with pytest.raises(ValueError):
            manager.register(RecordingService("slack", []))

    def test_unknown_dependency(self):
        manager = ServiceManager()

        with pytest.raises(ValueError):
            manager.register(RecordingService("scheduler", []), dependencies=["slack"])

    def test_dependencies_start_first(self):
        manager = ServiceManager()
        log = []
        manager.register(RecordingService("web", log))
        manager.register(RecordingService("slack", log))
        manager.register(RecordingService("scheduler", log), dependencies=["slack"])

        assert manager.start_order == ["web", "slack", "scheduler"]

    @pytest.mark.asyncio
    async def test_start_and_stop_order(self):
        manager = ServiceManager()
        log = []
        manager.register(RecordingService("slack", log))
        manager.register(RecordingService("scheduler", log), dependencies=["slack"])

        assert await manager.start_all() is True
        assert manager.get_service("scheduler").is_running

        await manager.stop_all()

        assert log == ["start:slack", "start:scheduler", "stop:scheduler", "stop:slack"]
        assert manager.is_running is False

    @pytest.mark.asyncio
    async def test_failed_start_stops_started_services(self):
        manager = ServiceManager()
        log = []
        manager.register(RecordingService("slack", log))
        manager.register(RecordingService("web", log, fail_on_start=True))

        assert await manager.start_all() is False

        assert "stop:slack" in log
        assert manager.get_status()["slack"].state == ServiceState.STOPPED
        assert manager.get_status()["web"].state == ServiceState.ERROR
        assert manager.is_running is False

    @pytest.mark.asyncio
    async def test_request_shutdown_releases_waiter(self):
        manager = ServiceManager()
        await manager.start_all()

        manager.request_shutdown()

        await manager.wait_for_shutdown()
