"""
Unit tests for monitoring.resource_monitor.

Tests pressure levels, the admission decision derived from them and the
storage high-water callback.
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from monitoring.resource_monitor import PressureLevel, ResourceMonitor


class TestResourceMonitor:

    @pytest.fixture
    def memory(self):
        return {'mb': 100.0}

    @pytest.fixture
    def monitor(self, store, memory):
        return ResourceMonitor(store, memory_warning_mb=256, memory_critical_mb=512,
                               memory_reader=lambda: memory['mb'])

    @pytest.mark.unit
    def test_normal_before_first_sample(self, monitor):
        assert monitor.level == PressureLevel.NORMAL
        assert monitor.allowed_concurrency(3) == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_levels_drive_admission(self, monitor, memory):
        sample = await monitor.sample()
        assert sample.level == PressureLevel.NORMAL
        assert monitor.allowed_concurrency(3) == 3

        memory['mb'] = 300.0
        await monitor.sample()
        assert monitor.level == PressureLevel.WARNING
        assert monitor.allowed_concurrency(3) == 1

        memory['mb'] = 600.0
        await monitor.sample()
        assert monitor.level == PressureLevel.CRITICAL
        assert monitor.allowed_concurrency(3) == 0

        memory['mb'] = 100.0
        await monitor.sample()
        assert monitor.allowed_concurrency(3) == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_memory_read_is_critical_until_next_good_sample(self, store):
        readings = iter([RuntimeError("psutil unavailable"), 80.0])

        def read_memory():
            value = next(readings)
            if isinstance(value, Exception):
                raise value
            return value

        monitor = ResourceMonitor(store, memory_reader=read_memory)

        failed = await monitor.sample()
        assert failed.level == PressureLevel.CRITICAL
        assert failed.error == "psutil unavailable"
        assert monitor.sampling_failures == 1
        assert monitor.allowed_concurrency(3) == 0

        await monitor.sample()
        assert monitor.level == PressureLevel.NORMAL

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_storage_levels_and_high_water_callback(self, store):
        store.get_storage_size = AsyncMock(return_value=750 * 1024 * 1024)
        callback = AsyncMock()
        monitor = ResourceMonitor(store, storage_warning_mb=500, storage_critical_mb=800,
                                  storage_high_water_mb=700, memory_reader=lambda: 10.0)
        monitor.register_pressure_callback(callback)

        sample = await monitor.sample()

        assert sample.level == PressureLevel.WARNING
        assert sample.storage_mb == 750
        callback.assert_awaited_once_with(sample)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_level_reflects_eviction_by_pressure_callback(self, store):
        store.get_storage_size = AsyncMock(side_effect=[900 * 1024 * 1024, 100 * 1024 * 1024])
        callback = AsyncMock()
        monitor = ResourceMonitor(store, storage_warning_mb=500, storage_critical_mb=800,
                                  storage_high_water_mb=700, memory_reader=lambda: 10.0)
        monitor.register_pressure_callback(callback)

        sample = await monitor.sample()

        callback.assert_awaited_once()
        assert sample.storage_mb == 100
        assert sample.level == PressureLevel.NORMAL
        assert monitor.allowed_concurrency(3) == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_sampling(self, store):
        store.get_storage_size = AsyncMock(return_value=900 * 1024 * 1024)
        monitor = ResourceMonitor(store, memory_reader=lambda: 10.0)
        monitor.register_pressure_callback(AsyncMock(side_effect=RuntimeError("cleanup down")))

        sample = await monitor.sample()

        assert sample.level == PressureLevel.CRITICAL

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_background_loop(self, store):
        monitor = ResourceMonitor(store, interval_seconds=0.01, memory_reader=lambda: 10.0)

        monitor.start()
        await asyncio.sleep(0.05)
        assert monitor.running
        await monitor.stop()

        assert not monitor.running
        assert monitor.samples_taken >= 2
        status = monitor.get_status()
        assert status['level'] == 'normal'
        assert status['last_sample']['memory_mb'] == 10.0

    @pytest.mark.unit
    def test_thresholds_validated(self, store):
        with pytest.raises(ValueError):
            ResourceMonitor(store, memory_warning_mb=600, memory_critical_mb=512)
