"""
Synthetic telemetry used when the device cannot be reached.

Values are drawn from bounded ranges that look plausible for a board
sitting still on a desk:
- acceleration: 0 to 0.001 g per axis
- gyro: +/-0.05 deg/s per axis
- magnetic field: x +/-5 uT, y and z +/-50 uT
- temperature: 25 to 35 C
- UV: 10-bit ADC count, UV index 0-11, 0-3.3 V output
"""
import random
import time
from typing import Callable, Optional

from sensor_relay.schemas import SensorSample

ACCEL_RANGE_G = (0.0, 0.001)
GYRO_RANGE_DPS = (-0.05, 0.05)
MAG_X_RANGE_UT = (-5.0, 5.0)
MAG_YZ_RANGE_UT = (-50.0, 50.0)
TEMP_RANGE_C = (25.0, 35.0)
UV_ADC_RANGE = (0.0, 1023.0)
UV_INDEX_RANGE = (0.0, 11.0)
UV_VOLTAGE_RANGE = (0.0, 3.3)

# Timestamps of consecutive samples always move forward by at least this much.
MIN_TIMESTAMP_STEP_S = 0.001


class FallbackSynthesizer:
    """
    Produces schema-complete SensorSample values from a seeded RNG.

    Samples carry every group, including uvSensor, so any mapping that
    reads a real sample also works on a synthetic one.
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._rng = random.Random(seed)
        self._clock = clock
        self._last_ts: Optional[float] = None

    def _uniform(self, bounds: tuple[float, float]) -> float:
        return self._rng.uniform(*bounds)

    def _axis(self, x_range, yz_range=None) -> dict:
        yz_range = yz_range or x_range
        return {
            "x": self._uniform(x_range),
            "y": self._uniform(yz_range),
            "z": self._uniform(yz_range),
        }

    def _next_timestamp(self) -> float:
        ts = self._clock()
        if self._last_ts is not None and ts <= self._last_ts:
            ts = self._last_ts + MIN_TIMESTAMP_STEP_S
        self._last_ts = ts
        return ts

    def synthesize(self) -> SensorSample:
        """One synthetic sample stamped with the current time."""
        return SensorSample(
            acceleration=self._axis(ACCEL_RANGE_G),
            gyro=self._axis(GYRO_RANGE_DPS),
            magnetic_field=self._axis(MAG_X_RANGE_UT, MAG_YZ_RANGE_UT),
            temperature=self._uniform(TEMP_RANGE_C),
            uv_sensor={
                "rawAdc": float(round(self._uniform(UV_ADC_RANGE))),
                "index": self._uniform(UV_INDEX_RANGE),
                "voltageOrOutput": self._uniform(UV_VOLTAGE_RANGE),
            },
            timestamp=self._next_timestamp(),
        )
