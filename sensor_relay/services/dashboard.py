"""
Dashboard session: latest sample plus bounded history.

The session is mounted once at startup and torn down at shutdown. Each
refresh() is one fetch-and-update cycle:
  device read -> (ok) append real sample
              -> (any failure) append synthetic sample

Results that resolve after unmount (or after a remount) are discarded.
"""
from typing import Optional

import structlog

from sensor_relay.schemas import DashboardStateResponse, SensorSample
from sensor_relay.services.device_client import DeviceClient
from sensor_relay.services.fallback import FallbackSynthesizer
from sensor_relay.services.history import HistoryBuffer, MAX_HISTORY_LENGTH

logger = structlog.get_logger()

FALLBACK_WARNING = "Device unreachable, showing simulated data"


class DashboardSession:
    """Owns the dashboard's history; only refresh() mutates it."""

    def __init__(
        self,
        client: DeviceClient,
        synthesizer: Optional[FallbackSynthesizer] = None,
        capacity: int = MAX_HISTORY_LENGTH,
        fallback_notice: str = "banner",
    ):
        self.client = client
        self.synthesizer = synthesizer or FallbackSynthesizer()
        self.history: HistoryBuffer[SensorSample] = HistoryBuffer(capacity)
        self.fallback_notice = fallback_notice

        self.mounted = False
        self.latest: Optional[SensorSample] = None
        self.synthetic = False
        self.warning: Optional[str] = None
        self.last_error: Optional[str] = None
        self.cycles = 0
        self.failures = 0

        # Bumped on every mount/unmount so late results can be told apart.
        self._generation = 0

    async def mount(self) -> None:
        if self.mounted:
            return
        self._generation += 1
        self._reset()
        await self.client.open()
        self.mounted = True
        logger.info("Dashboard session mounted", capacity=self.history.capacity)

    async def unmount(self) -> None:
        if not self.mounted:
            return
        self._generation += 1
        self.mounted = False
        self._reset()
        await self.client.close()
        logger.info("Dashboard session unmounted")

    def _reset(self) -> None:
        self.history.clear()
        self.latest = None
        self.synthetic = False
        self.warning = None
        self.last_error = None
        self.cycles = 0
        self.failures = 0

    async def refresh(self) -> Optional[SensorSample]:
        """
        Run one fetch-and-update cycle.

        Returns the sample that was appended, or None if the session was
        not mounted or was torn down while the read was in flight.
        """
        if not self.mounted:
            return None
        generation = self._generation

        error: Optional[Exception] = None
        try:
            sample = await self.client.read()
        except Exception as exc:
            error = exc
            sample = self.synthesizer.synthesize()

        if generation != self._generation:
            logger.debug("Discarding cycle result after teardown")
            return None

        self._apply(sample, error)
        return sample

    def _apply(self, sample: SensorSample, error: Optional[Exception]) -> None:
        self.cycles += 1
        was_synthetic = self.synthetic

        if error is None:
            self.synthetic = False
            self.warning = None
            self.last_error = None
            if was_synthetic:
                logger.info("Device data resumed", failures=self.failures)
        else:
            self.failures += 1
            self.synthetic = True
            self.last_error = str(error)
            if self.fallback_notice == "banner":
                self.warning = FALLBACK_WARNING
            if not was_synthetic:
                logger.warning("Error fetching sensor data, using simulated data", error=str(error))

        self.latest = sample
        self.history.append(sample)

    def state(self) -> DashboardStateResponse:
        """Read-only view; never mutates the session."""
        return DashboardStateResponse(
            mounted=self.mounted,
            latest=self.latest,
            history=self.history.snapshot(),
            synthetic=self.synthetic,
            warning=self.warning,
            cycles=self.cycles,
            failures=self.failures,
        )
