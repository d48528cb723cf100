"""
Chart series built from a history snapshot.

The x value of every point is its position in history (0 = oldest), i.e.
"polling cycles ago" counted from the left edge, not wall-clock time.
"""
from typing import Sequence

from sensor_relay.schemas import (
    AxisPoint,
    ChartsResponse,
    ScalarPoint,
    SensorSample,
    UVPoint,
    Vector3,
)


def _axis_series(values: Sequence[Vector3]) -> list[AxisPoint]:
    return [
        AxisPoint(time=index, x=v.x, y=v.y, z=v.z)
        for index, v in enumerate(values)
    ]


def acceleration_series(history: Sequence[SensorSample]) -> list[AxisPoint]:
    return _axis_series([s.acceleration for s in history])


def gyro_series(history: Sequence[SensorSample]) -> list[AxisPoint]:
    return _axis_series([s.gyro for s in history])


def magnetic_field_series(history: Sequence[SensorSample]) -> list[AxisPoint]:
    return _axis_series([s.magnetic_field for s in history])


def temperature_series(history: Sequence[SensorSample]) -> list[ScalarPoint]:
    return [ScalarPoint(time=index, value=s.temperature) for index, s in enumerate(history)]


def uv_series(history: Sequence[SensorSample]) -> list[UVPoint]:
    """Samples without a UV group keep their slot with empty values."""
    points = []
    for index, sample in enumerate(history):
        uv = sample.uv_sensor
        if uv is None:
            points.append(UVPoint(time=index))
        else:
            points.append(UVPoint(
                time=index,
                raw_adc=uv.raw_adc,
                index=uv.index,
                voltage_or_output=uv.voltage_or_output,
            ))
    return points


def build_charts(history: Sequence[SensorSample]) -> ChartsResponse:
    """All dashboard series; the UV series is omitted if no sample has UV data."""
    has_uv = any(s.uv_sensor is not None for s in history)
    return ChartsResponse(
        acceleration=acceleration_series(history),
        gyro=gyro_series(history),
        magnetic_field=magnetic_field_series(history),
        temperature=temperature_series(history),
        uv_sensor=uv_series(history) if has_uv else None,
    )
