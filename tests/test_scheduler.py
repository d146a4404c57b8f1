"""Tests for the maintenance scheduler and the background event loop."""

import asyncio
import concurrent.futures
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.async_utils import BackgroundLoop
from core.scheduler import MaintenanceScheduler


class TestMaintenanceScheduler:
    @pytest.mark.asyncio
    async def test_jobs_registered(self, adapter, authority):
        scheduler = MaintenanceScheduler(
            adapter, authority,
            session_sweep_interval=600, health_check_interval=30, stats_log_interval=60,
        )
        scheduler.start()
        try:
            assert scheduler.running is True
            jobs = {job["id"]: job for job in scheduler.list_jobs()}
            assert set(jobs) == {"session_sweep", "db_health_check", "db_stats_log"}
            assert jobs["db_health_check"]["next_run"] is not None
        finally:
            scheduler.shutdown()
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_only_session_job_without_adapter(self, authority):
        scheduler = MaintenanceScheduler(authority=authority)
        scheduler.start()
        try:
            assert [job["id"] for job in scheduler.list_jobs()] == ["session_sweep"]
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, authority):
        scheduler = MaintenanceScheduler(authority=authority)
        scheduler.start()
        scheduler.start()
        try:
            assert len(scheduler.list_jobs()) == 1
        finally:
            scheduler.shutdown()
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_sweep_job(self):
        authority = MagicMock()
        authority.sweep_expired = AsyncMock(return_value=2)
        assert await MaintenanceScheduler(authority=authority).sweep_sessions() == 2

    @pytest.mark.asyncio
    async def test_sweep_job_contains_errors(self):
        authority = MagicMock()
        authority.sweep_expired = AsyncMock(side_effect=ConnectionError("redis down"))
        assert await MaintenanceScheduler(authority=authority).sweep_sessions() == 0

    @pytest.mark.asyncio
    async def test_health_job_reconnects(self, make_adapter):
        adapter = make_adapter([RuntimeError("gone away")])
        assert await MaintenanceScheduler(adapter=adapter).check_database() is True
        assert adapter.dialect.open_count == 2

    @pytest.mark.asyncio
    async def test_health_job_contains_errors(self):
        adapter = MagicMock()
        adapter.check_health = AsyncMock(side_effect=RuntimeError("boom"))
        assert await MaintenanceScheduler(adapter=adapter).check_database() is False

    @pytest.mark.asyncio
    async def test_stats_job(self):
        adapter = MagicMock()
        await MaintenanceScheduler(adapter=adapter).log_database_stats()
        adapter.log_performance_stats.assert_called_once()


class TestBackgroundLoop:
    def test_run_returns_result(self):
        loop = BackgroundLoop(name="test-loop").start()
        try:
            async def add(a, b):
                await asyncio.sleep(0)
                return a + b
            assert loop.run(add(2, 3), timeout=5) == 5
        finally:
            loop.stop()
        assert loop.is_running is False

    def test_exceptions_propagate(self):
        loop = BackgroundLoop().start()
        try:
            async def fail():
                raise ValueError("bad")
            with pytest.raises(ValueError, match="bad"):
                loop.run(fail(), timeout=5)
        finally:
            loop.stop()

    def test_timeout(self):
        loop = BackgroundLoop().start()
        try:
            with pytest.raises(concurrent.futures.TimeoutError):
                loop.run(asyncio.sleep(5), timeout=0.05)
        finally:
            loop.stop()

    def test_run_when_stopped(self):
        with pytest.raises(RuntimeError, match="not running"):
            BackgroundLoop(name="idle").run(asyncio.sleep(0))
