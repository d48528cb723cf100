"""
Dashboard Session Tests

Tests for:
1. History growth and bounding across polling cycles
2. Soft fail to synthetic data (and the configurable warning)
3. Results that arrive after teardown are discarded
4. RelayDeviceClient error mapping and end-to-end read through the relay

Run with: pytest tests/test_dashboard_session.py -v
"""
import asyncio

import httpx
import pytest

from sensor_relay.main import app
from sensor_relay.routes.relay import get_upstream_client
from sensor_relay.schemas import SensorSample
from sensor_relay.services.dashboard import DashboardSession, FALLBACK_WARNING
from sensor_relay.services.device_client import (
    DeviceClient,
    DeviceReadError,
    RelayDeviceClient,
)
from sensor_relay.services.fallback import FallbackSynthesizer


class ScriptedClient(DeviceClient):
    """Returns queued samples; raises DeviceReadError when the queue says so."""

    def __init__(self, results=None):
        self.results = list(results or [])
        self.opened = False
        self.closed = False
        self.reads = 0

    async def open(self):
        self.opened = True

    async def read(self) -> SensorSample:
        self.reads += 1
        result = self.results.pop(0) if self.results else DeviceReadError("unreachable")
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self):
        self.closed = True


class RecordingSynthesizer(FallbackSynthesizer):
    """Keeps every sample it produced."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.produced = []

    def synthesize(self):
        sample = super().synthesize()
        self.produced.append(sample)
        return sample


def real_samples(snapshot, count):
    samples = []
    for i in range(count):
        payload = dict(snapshot, timestamp=1706000000.0 + i)
        samples.append(SensorSample.model_validate(payload))
    return samples


# ============================================
# Test: History Across Cycles
# ============================================

class TestPollingCycles:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cycles", [1, 5, 20, 21, 30])
    async def test_history_length_is_min_of_cycles_and_capacity(self, canonical_snapshot, cycles):
        session = DashboardSession(ScriptedClient(real_samples(canonical_snapshot, cycles)))
        await session.mount()

        for _ in range(cycles):
            await session.refresh()

        assert len(session.history) == min(cycles, 20)
        assert session.failures == 0
        assert session.synthetic is False

    @pytest.mark.asyncio
    async def test_oldest_sample_is_evicted_first(self, canonical_snapshot):
        samples = real_samples(canonical_snapshot, 21)
        session = DashboardSession(ScriptedClient(samples))
        await session.mount()

        for _ in range(20):
            await session.refresh()
        before = session.history.snapshot()
        await session.refresh()
        after = session.history.snapshot()

        assert samples[0] not in after
        assert after[:-1] == before[1:]
        assert session.latest == samples[20]

    @pytest.mark.asyncio
    async def test_not_mounted_does_nothing(self, canonical_snapshot):
        client = ScriptedClient(real_samples(canonical_snapshot, 1))
        session = DashboardSession(client)

        assert await session.refresh() is None
        assert client.reads == 0

    @pytest.mark.asyncio
    async def test_latest_is_none_before_first_cycle(self):
        session = DashboardSession(ScriptedClient())
        await session.mount()

        state = session.state()

        assert state.latest is None
        assert state.history == []
        assert state.mounted is True


# ============================================
# Test: Soft Fail
# ============================================

class TestFallback:

    @pytest.mark.asyncio
    async def test_twenty_five_failures_fill_history_with_synthetic_samples(self):
        synthesizer = RecordingSynthesizer(seed=11)
        session = DashboardSession(ScriptedClient(), synthesizer=synthesizer)
        await session.mount()

        for _ in range(25):
            await session.refresh()

        history = session.history.snapshot()
        assert len(history) == 20
        assert history == synthesizer.produced[-20:]
        stamps = [s.timestamp for s in history]
        assert all(later > earlier for earlier, later in zip(stamps, stamps[1:]))
        assert session.failures == 25

    @pytest.mark.asyncio
    async def test_any_exception_falls_back(self):
        session = DashboardSession(ScriptedClient([RuntimeError("serial port gone")]))
        await session.mount()

        sample = await session.refresh()

        assert sample is not None
        assert session.synthetic is True
        assert session.last_error == "serial port gone"

    @pytest.mark.asyncio
    async def test_banner_policy_sets_warning(self):
        session = DashboardSession(ScriptedClient(), fallback_notice="banner")
        await session.mount()

        await session.refresh()

        assert session.state().warning == FALLBACK_WARNING

    @pytest.mark.asyncio
    async def test_silent_policy_has_no_warning(self):
        session = DashboardSession(ScriptedClient(), fallback_notice="silent")
        await session.mount()

        await session.refresh()

        state = session.state()
        assert state.warning is None
        assert state.synthetic is True

    @pytest.mark.asyncio
    async def test_real_data_clears_warning(self, canonical_snapshot):
        real = real_samples(canonical_snapshot, 1)[0]
        session = DashboardSession(ScriptedClient([DeviceReadError("down"), real]))
        await session.mount()

        await session.refresh()
        assert session.warning == FALLBACK_WARNING
        await session.refresh()

        assert session.warning is None
        assert session.synthetic is False
        assert session.latest == real
        assert len(session.history) == 2


# ============================================
# Test: Teardown
# ============================================

class BlockingClient(ScriptedClient):
    """read() waits until released."""

    def __init__(self, sample):
        super().__init__()
        self.sample = sample
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def read(self):
        self.started.set()
        await self.release.wait()
        return self.sample


class TestTeardown:

    @pytest.mark.asyncio
    async def test_result_after_unmount_is_discarded(self, canonical_snapshot):
        client = BlockingClient(real_samples(canonical_snapshot, 1)[0])
        session = DashboardSession(client)
        await session.mount()

        pending = asyncio.create_task(session.refresh())
        await client.started.wait()
        await session.unmount()
        client.release.set()

        assert await pending is None
        assert len(session.history) == 0
        assert session.latest is None
        assert client.closed is True

    @pytest.mark.asyncio
    async def test_result_from_previous_mount_is_discarded(self, canonical_snapshot):
        client = BlockingClient(real_samples(canonical_snapshot, 1)[0])
        session = DashboardSession(client)
        await session.mount()

        pending = asyncio.create_task(session.refresh())
        await client.started.wait()
        await session.unmount()
        await session.mount()
        client.release.set()

        assert await pending is None
        assert len(session.history) == 0

    @pytest.mark.asyncio
    async def test_unmount_clears_history(self, canonical_snapshot):
        session = DashboardSession(ScriptedClient(real_samples(canonical_snapshot, 3)))
        await session.mount()
        for _ in range(3):
            await session.refresh()

        await session.unmount()

        assert session.state().history == []
        assert session.state().mounted is False


# ============================================
# Test: RelayDeviceClient
# ============================================

def mock_relay(handler) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


class TestRelayDeviceClient:

    @pytest.mark.asyncio
    async def test_reads_legacy_snapshot(self, legacy_snapshot):
        transport = mock_relay(lambda r: httpx.Response(200, json=legacy_snapshot))

        async with RelayDeviceClient("http://relay.test", transport=transport) as client:
            sample = await client.read()

        assert sample.schema_version == 1
        assert sample.temperature == 27.5

    @pytest.mark.asyncio
    async def test_non_success_status_raises(self):
        transport = mock_relay(lambda r: httpx.Response(503, text="busy"))

        async with RelayDeviceClient("http://relay.test", transport=transport) as client:
            with pytest.raises(DeviceReadError, match="503"):
                await client.read()

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        transport = mock_relay(lambda r: httpx.Response(200, text="<html>oops</html>"))

        async with RelayDeviceClient("http://relay.test", transport=transport) as client:
            with pytest.raises(DeviceReadError, match="JSON"):
                await client.read()

    @pytest.mark.asyncio
    async def test_incomplete_sample_raises(self, canonical_snapshot):
        del canonical_snapshot["gyro"]
        transport = mock_relay(lambda r: httpx.Response(200, json=canonical_snapshot))

        async with RelayDeviceClient("http://relay.test", transport=transport) as client:
            with pytest.raises(DeviceReadError, match="rejected"):
                await client.read()

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        async with RelayDeviceClient("http://relay.test", transport=mock_relay(refuse)) as client:
            with pytest.raises(DeviceReadError):
                await client.read()

    @pytest.mark.asyncio
    async def test_read_before_open_raises(self):
        with pytest.raises(DeviceReadError):
            await RelayDeviceClient("http://relay.test").read()

    @pytest.mark.asyncio
    async def test_incomplete_sample_never_reaches_history(self, canonical_snapshot):
        del canonical_snapshot["magneticField"]
        transport = mock_relay(lambda r: httpx.Response(200, json=canonical_snapshot))
        synthesizer = RecordingSynthesizer(seed=2)
        session = DashboardSession(
            RelayDeviceClient("http://relay.test", transport=transport),
            synthesizer=synthesizer,
        )
        await session.mount()

        await session.refresh()

        assert session.history.snapshot() == synthesizer.produced
        assert len(synthesizer.produced) == 1
        assert "rejected" in session.last_error
        await session.unmount()

    @pytest.mark.asyncio
    async def test_reads_through_relay_gateway(self, canonical_snapshot):
        """Session -> relay app (in process) -> fake device."""
        device = httpx.AsyncClient(
            transport=mock_relay(lambda r: httpx.Response(200, json=canonical_snapshot)),
            base_url="http://device.test",
        )
        app.dependency_overrides[get_upstream_client] = lambda: device
        try:
            client = RelayDeviceClient(
                "http://relay.internal", transport=httpx.ASGITransport(app=app)
            )
            session = DashboardSession(client)
            await session.mount()
            sample = await session.refresh()
            await session.unmount()
        finally:
            app.dependency_overrides.pop(get_upstream_client, None)
            await device.aclose()

        assert sample.magnetic_field.z == -45.0
        assert sample.uv_sensor.index == 3.2

    @pytest.mark.asyncio
    async def test_relay_failure_falls_back(self):
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        device = httpx.AsyncClient(transport=mock_relay(refuse), base_url="http://device.test")
        app.dependency_overrides[get_upstream_client] = lambda: device
        try:
            session = DashboardSession(
                RelayDeviceClient("http://relay.internal", transport=httpx.ASGITransport(app=app)),
                fallback_notice="banner",
            )
            await session.mount()
            await session.refresh()
            state = session.state()
            last_error = session.last_error
            await session.unmount()
        finally:
            app.dependency_overrides.pop(get_upstream_client, None)
            await device.aclose()

        assert state.synthetic is True
        assert state.warning == FALLBACK_WARNING
        assert len(state.history) == 1
        assert state.failures == 1
        assert "500" in last_error
